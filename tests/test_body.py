import math
import random

import numpy as np
import pytest

from locomotion.body import BodyFrame, pair_tilt, pitch_pairs, roll_pairs
from locomotion.geometry import FORWARD, LEFT, weighted_average
from locomotion.rig import BodySpec, LimbSpec, RigSpec
from locomotion.settings import LocomotionConfig, WEIGHT_EPSILON
from locomotion.system import LocomotionSystem
from locomotion.terrain import AnalyticTerrain, flat_ground


def square_rig(front_tip_z=0.0, body_weight=2.0):
    """LF, RF, LH, RH; roots 1.6 above their tips, two unit bones on level ground."""
    limbs = []
    for name, x, y in (("LF", 1.0, 1.0), ("RF", 1.0, -1.0), ("LH", -1.0, 1.0), ("RH", -1.0, -1.0)):
        s = 1.0 if y > 0 else -1.0
        tip_z = front_tip_z if x > 0 else 0.0
        limbs.append(LimbSpec([[x, y, 1.6], [x, y + 0.6 * s, 0.8], [x, y, tip_z]], name=name))
    return RigSpec(body=BodySpec(weight=body_weight, mass_offset=[0.0, 0.0, 1.0]), limbs=limbs)


def cfg(**kw):
    kw.setdefault("randomize_starting_pattern", False)
    return LocomotionConfig(**kw)


def test_pair_tilt_45_and_sign():
    a = np.array([0.0, 0.0, 0.0])
    b = np.array([1.0, 0.0, 1.0])
    assert pair_tilt(a, b, FORWARD, 0.1) == pytest.approx(45.0)
    assert pair_tilt(b, a, FORWARD, 0.1) == pytest.approx(45.0)
    assert pair_tilt(a, b, -FORWARD, 0.1) == pytest.approx(-45.0)


def test_pair_tilt_uses_smaller_angle_and_threshold():
    a = np.array([0.0, 0.0, 0.0])
    b = np.array([2.0, 0.0, 1.0])
    assert pair_tilt(a, b, FORWARD, 0.1) == pytest.approx(math.degrees(math.atan(0.5)))
    assert pair_tilt(a, np.array([1.0, 0.0, 0.05]), FORWARD, 0.1) == 0.0
    assert pair_tilt(a, np.array([0.0, 1.0, 0.5]), LEFT, 0.1) > 0.0


def test_pairs():
    assert pitch_pairs(4) == [(0, 2), (1, 3)]
    assert roll_pairs(4) == [(0, 1), (2, 3)]
    assert roll_pairs(5) == [(0, 1), (2, 3)]
    assert pitch_pairs(2) == []


def test_center_of_mass_is_order_independent():
    rng = random.Random(3)
    pts = [np.array([rng.uniform(-1, 1) for _ in range(3)]) for _ in range(13)]
    ws = [rng.uniform(0, 5) for _ in range(13)]
    total = sum(ws)
    ref = weighted_average(pts, ws, total)
    order = list(range(13))
    rng.shuffle(order)
    got = weighted_average([pts[i] for i in order], [ws[i] for i in order], total)
    assert np.allclose(ref, got)


def test_system_center_of_mass_matches_weighted_joints():
    system = LocomotionSystem(square_rig(), cfg(), flat_ground())
    # body (z=1, w=2) + 4 roots (1.6) + 4 mids (0.8) + 4 tips (0), unit weights
    assert system.body.total_weight == pytest.approx(14.0)
    assert np.allclose(system.center_of_mass, [0.0, 0.0, (2.0 + 6.4 + 3.2) / 14.0])
    no_tips = LocomotionSystem(square_rig(), cfg(include_tip_weight=False), flat_ground())
    assert no_tips.body.total_weight == pytest.approx(10.0)


def test_non_positive_body_weight_is_clamped(caplog):
    with caplog.at_level("WARNING"):
        body = BodyFrame(weight=0.0)
    assert body.weight == WEIGHT_EPSILON
    assert any("not positive" in r.getMessage() for r in caplog.records)


def test_level_ground_is_a_fixed_point():
    system = LocomotionSystem(square_rig(), cfg(), flat_ground())
    for _ in range(5):
        rep = system.tick(0.02)
        assert rep.pitch == 0.0 and rep.roll == 0.0
        assert rep.started == []
    assert np.allclose(system.body.position, np.zeros(3))


def test_pitch_converges_and_snaps():
    system = LocomotionSystem(square_rig(front_tip_z=0.5), cfg(), flat_ground())
    pitch_target, roll_target = system.solver.target_tilt()
    assert pitch_target == pytest.approx(math.degrees(math.atan(0.25)))
    assert roll_target == 0.0
    pitches = []
    for _ in range(40):
        pitches.append(system.tick(0.02).pitch)
    assert pitches[0] < pitch_target
    assert system.body.pitch == pitch_target
    assert not system.body.is_rotating
    # already aligned: another tick leaves the pose alone
    system.tick(0.02)
    assert system.body.pitch == pitch_target


def test_height_blends_then_snaps():
    system = LocomotionSystem(square_rig(), cfg(), flat_ground(0.4))
    first = system.tick(0.02).position[2]
    assert 0.0 < first < 0.4
    for _ in range(30):
        system.tick(0.02)
    assert system.body.position[2] == pytest.approx(0.4)


def test_heavier_body_realigns_slower():
    light = LocomotionSystem(square_rig(front_tip_z=0.5, body_weight=1.0), cfg(), flat_ground())
    heavy = LocomotionSystem(square_rig(front_tip_z=0.5, body_weight=4.0), cfg(), flat_ground())
    assert light.tick(0.02).pitch > heavy.tick(0.02).pitch > 0.0


def test_limit_movement_registers_snapped_arc():
    system = LocomotionSystem(square_rig(), cfg(), flat_ground())
    com = system.center_of_mass
    arc = system.solver.limit_movement(com + np.array([3.0, 0.0, -1.0]), 2)
    assert arc == (-30.0, 0.0)
    assert system.limiter.arc(2) == arc
    assert system.solver.limit_movement(com + np.array([0.0, 0.0, -1.0]), 1) is None
    system.solver.clear_movement_limit(2)
    assert system.limiter.active_arcs() == []


def test_no_ground_under_com_keeps_pose():
    system = LocomotionSystem(square_rig(front_tip_z=0.5), cfg(), flat_ground())
    empty = AnalyticTerrain()
    system.terrain = empty
    system.solver.terrain = empty
    system.tick(0.02)
    assert system.body.pitch == 0.0
    assert system.body.position[2] == 0.0
