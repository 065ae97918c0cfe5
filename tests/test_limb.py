import numpy as np
import pytest

from locomotion.body import BodyFrame, BodySolver
from locomotion.geometry import FORWARD
from locomotion.ground_anchor import GroundAnchor
from locomotion.limb import LimbController, StepState
from locomotion.movement import NO_LIMIT, MovementLimiter
from locomotion.rig import BodySpec, KinematicRig, LimbChain, LimbSpec, RigSpec
from locomotion.settings import UNTRAVERSABLE_TAG, LocomotionConfig
from locomotion.swing import SwingScheduler
from locomotion.terrain import AnalyticTerrain, flat_ground

COM = np.array([0.0, 0.0, 1.0])


def make_limb(limb_id=0, x=0.0, y=0.0, **kw):
    # two unit bones: reach 2, root 1.6 above the tip
    body = BodyFrame()
    chain = LimbChain([x, y, 1.6], [x, y + 0.6, 0.8], [x, y, 0.0])
    anchor = GroundAnchor(chain.tip, body)
    kw.setdefault("step_size", 1.0)
    return LimbController(limb_id, chain, anchor, **kw)


def test_each_condition_independently():
    ground = flat_ground()
    limb = make_limb()
    c = limb.check(COM, ground)
    assert not c.far_enough and c.reachable and c.traversable and c.stable
    assert not c.legal

    limb.anchor.displace([1.1, 0.0, 0.0])
    c = limb.check(COM, ground)
    assert c.far_enough and c.reachable and c.legal

    limb.anchor.displace([0.4, 0.0, 0.0])
    c = limb.check(COM, ground)
    assert c.far_enough and not c.reachable and not c.legal


def test_untraversable_segment_blocks():
    limb = make_limb()
    limb.anchor.displace([1.1, 0.0, 0.0])
    wall = flat_ground().add_box([0.5, -1.0, 0.0], [0.6, 1.0, 3.0], tag=UNTRAVERSABLE_TAG)
    c = limb.check(COM, wall)
    assert c.far_enough and c.reachable and not c.traversable
    # plain ground obstacles are fine
    bump = flat_ground().add_box([0.5, -1.0, 0.0], [0.6, 1.0, 3.0])
    assert limb.check(COM, bump).traversable


def test_moving_neighbour_blocks():
    a = make_limb(0)
    b = make_limb(1, y=-1.0)
    a.opposite, b.opposite = b, a
    a.anchor.displace([1.1, 0.0, 0.0])
    b.anchor.displace([1.1, 0.0, 0.0])
    sched = SwingScheduler()
    b.start_swing(sched)
    c = a.check(COM, flat_ground())
    assert c.far_enough and c.reachable and c.traversable and not c.stable


def test_step_duration_and_sprint():
    limb = make_limb(speed=4.0, sprint_multiplier=2.0)
    assert limb.step_duration() == pytest.approx(0.25)
    assert limb.step_duration(sprinting=True) == pytest.approx(1.0 / 8.0 ** (1.0 / 1.4))
    no_sprint = make_limb(speed=4.0, enable_sprint=False)
    assert no_sprint.step_duration(sprinting=True) == pytest.approx(0.25)


def test_step_size_and_reach_overrides():
    limb = make_limb(step_size=0.3)
    limb.set_step_size(1.0)
    assert limb.step_size == 0.3
    unset = make_limb(step_size=0.0)
    unset.set_step_size(0.8)
    assert unset.step_size == 0.8
    assert limb.max_reach == pytest.approx(2.0)
    assert make_limb(max_reach=5.0).max_reach == 5.0
    limb.set_max_range(-1.0)
    assert limb.max_reach == pytest.approx(2.0)


def _solver(limbs, limiter=None):
    body = BodyFrame()
    return BodySolver(body, limbs, flat_ground(), limiter or MovementLimiter(), LocomotionConfig())


def test_update_swings_and_lands_on_target():
    limb = make_limb()
    solver = _solver([limb])
    sched = SwingScheduler()
    limb.anchor.displace([1.1, 0.0, 0.0])
    assert limb.update(solver, sched, flat_ground())
    assert limb.state is StepState.SWINGING
    target = limb.target
    # a swinging limb does not start again
    assert not limb.update(solver, sched, flat_ground())
    for _ in range(20):
        sched.tick(0.02)
    assert limb.state is StepState.PLANTED
    assert np.allclose(limb.effector, target)
    assert limb.swing_count == 1


def test_unreachable_target_limits_movement_until_reachable():
    limb = make_limb()
    limiter = MovementLimiter()
    solver = _solver([limb], limiter)
    sched = SwingScheduler()
    limb.anchor.displace([3.0, 0.0, 0.0])
    assert not limb.update(solver, sched, flat_ground())
    assert limiter.arc(0) != NO_LIMIT
    limb.anchor.displace([-3.0, 0.0, 0.0])
    limb.update(solver, sched, flat_ground())
    assert limiter.arc(0) == NO_LIMIT


def test_untraversable_step_gates_travel_towards_the_obstacle():
    limb = make_limb()
    limiter = MovementLimiter()
    solver = _solver([limb], limiter)
    solver.update_center_of_mass()
    sched = SwingScheduler()
    limb.anchor.displace([1.1, 0.0, 0.0])
    wall = flat_ground().add_box([0.5, -1.0, 0.0], [0.6, 1.0, 3.0], tag=UNTRAVERSABLE_TAG)
    assert not limb.update(solver, sched, wall)
    assert limb.last_check.reachable and not limb.last_check.traversable
    assert limiter.arc(0) == (-30.0, 0.0)
    assert not limiter.can_move(FORWARD, FORWARD)
    assert limiter.can_move(-FORWARD, FORWARD)
    # the obstacle is gone: the arc clears and the limb steps
    assert limb.update(solver, sched, flat_ground())
    assert limiter.arc(0) == NO_LIMIT


def test_com_inside_a_wall_is_not_traversable():
    limb = make_limb(x=3.0)
    limb.anchor.position = np.array([4.6, 0.0, 0.0])
    wall = flat_ground().add_box([3.0, -5.0, 0.0], [3.3, 5.0, 3.0], tag=UNTRAVERSABLE_TAG)
    hit = limb.blocking_hit(np.array([3.1, 0.0, 0.9]), wall)
    assert hit is not None and hit.point[0] == pytest.approx(3.3)
    assert not limb.check(np.array([3.1, 0.0, 0.9]), wall).traversable


def test_segment_stops_short_of_the_target_surface(monkeypatch):
    limb = make_limb()
    ledge = AnalyticTerrain().add_box([-1.0, -1.0, 0.0], [1.0, 1.0, 0.5], tag=UNTRAVERSABLE_TAG)
    limb.anchor.position = np.array([0.5, 0.0, 0.5])
    com = np.array([0.5, 0.0, 1.0])
    # the target rests on the top face; 98% of the segment never touches it
    assert limb.is_traversable(com, ledge)
    monkeypatch.setattr("locomotion.limb.TRAVERSABILITY_RAY_SCALE", 1.0)
    assert not limb.is_traversable(com, ledge)


def test_planted_tip_stays_put_while_the_body_moves():
    limb = make_limb()
    rig = KinematicRig(RigSpec(body=BodySpec(), limbs=[LimbSpec([[0, 0, 1.6], [0, 0.6, 0.8], [0, 0, 0]])]))
    body = BodyFrame()
    body.position = np.array([0.3, 0.0, 0.0])
    body.yaw = 10.0
    rig.carry(body, [limb])
    rig.update(body, [limb])
    assert np.allclose(limb.chain.root, body.position + body.rotation @ np.array([0.0, 0.0, 1.6]))
    assert np.allclose(limb.chain.tip, [0.0, 0.0, 0.0])
    assert np.allclose(limb.effector, [0.0, 0.0, 0.0])


def test_cancel_plants_mid_swing():
    limb = make_limb()
    sched = SwingScheduler()
    limb.anchor.displace([1.1, 0.0, 0.0])
    limb.start_swing(sched)
    sched.tick(0.1)
    mid_pose = limb.swing.pose.copy()
    limb.cancel()
    assert not limb.is_moving
    assert np.array_equal(limb.effector, mid_pose)


def test_seed_offsets_alternate():
    back = make_limb(0, x=1.0)
    front = make_limb(1, x=1.0)
    p0 = back.seed_target(0, 0, 4, np.array([1.0, 0.0, 0.0]))
    p1 = front.seed_target(1, 1, 4, np.array([1.0, 0.0, 0.0]))
    assert p0[0] == pytest.approx(1.0 - 0.125)
    assert p1[0] == pytest.approx(1.0 + 0.1875)


def test_seed_backs_off_towards_reach():
    limb = make_limb(max_reach=1.65)
    p = limb.seed_target(3, 1, 1, np.array([1.0, 0.0, 0.0]))
    d0 = 1.0 / 2 + 1.0 / 4 * 3
    assert p[0] < d0
    assert p[0] == pytest.approx(d0 - 10 * 0.005)
