from __future__ import annotations

"""Top-level wiring: rig + config + terrain -> limbs, anchors, solver, limiter.

Usage:
    system = LocomotionSystem(load_rig("configs/quadruped.json"), cfg, terrain)
    while running:
        report = system.tick(dt, MovementInput(direction=[1, 0]))

Per tick, in order:
  1. limiter gate + body translation (movement controller); roots follow the body
  2. ground anchors re-project step targets
  3. limbs anchor or start swings
  4. swing tasks advance
  5. rig places root/mid/tip joints
  6. body solver: CoM, tilt, height
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .body import BodyFrame, BodySolver
from .ground_anchor import GroundAnchor
from .limb import LimbController
from .movement import MovementController, MovementInput, MovementLimiter
from .rig import KinematicRig, LimbChain, RigSetupError, RigSpec
from .settings import LocomotionConfig
from .swing import SwingScheduler

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    moved: bool
    started: List[int] = field(default_factory=list)
    completed: List[int] = field(default_factory=list)
    swinging: List[int] = field(default_factory=list)
    center_of_mass: np.ndarray = field(default_factory=lambda: np.zeros(3))
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    pitch: float = 0.0
    roll: float = 0.0


def neighbour_indices(i: int, n: int):
    """(opposite, ahead, behind) limb indices; None when out of range.

    Opposites pair up as (0, 1), (2, 3), ...; ahead/behind are two indices away.
    """
    opposite = i + 1 if i % 2 == 0 else i - 1
    ahead = i + 2
    behind = i - 2
    return (opposite if opposite < n else None,
            ahead if ahead < n else None,
            behind if behind >= 0 else None)


class LocomotionSystem:
    def __init__(self, spec: RigSpec, config: Optional[LocomotionConfig] = None, terrain=None, rig=None):
        self.cfg = config or LocomotionConfig()
        if terrain is None:
            raise RigSetupError("a terrain oracle is required")
        spec.validate()
        self.spec = spec
        self.terrain = terrain

        b = spec.body
        self.body = BodyFrame(position=b.position, yaw=b.yaw, weight=b.weight, mass_offset=b.mass_offset)
        self.scheduler = SwingScheduler()
        self.limiter = MovementLimiter(enabled=self.cfg.use_direction_limiter)
        self.mover = MovementController(self.limiter, self.cfg.move_speed, self.cfg.turn_speed,
                                        self.cfg.enable_sprint, self.cfg.sprint_multiplier)
        self.limbs: List[LimbController] = self._build_limbs()
        self.rig = rig or KinematicRig(spec)
        self.solver = BodySolver(self.body, self.limbs, terrain, self.limiter, self.cfg)
        self.solver.update_center_of_mass()

        if self.cfg.randomize_starting_pattern:
            self.seed_gait()
        self.time = 0.0
        logger.info("locomotion set up: %d limbs, total weight %.3f", len(self.limbs), self.body.total_weight)

    def _build_limbs(self) -> List[LimbController]:
        R = self.body.rotation
        limbs = []
        for i, ls in enumerate(self.spec.limbs):
            (root, mid, tip), (wr, wm, wt) = ls.resolve()
            world = [self.body.position + R @ p for p in (root, mid, tip)]
            chain = LimbChain(*world, root_weight=wr, mid_weight=wm, tip_weight=wt)
            if chain.chain_length <= 0.0:
                logger.warning("limb '%s' has zero length; it can only step under a max_reach override",
                               ls.name or i)
            anchor = GroundAnchor(chain.tip, self.body, self.cfg.probe_height, self.cfg.anchor_mode)
            limb = LimbController(
                i, chain, anchor,
                step_size=ls.step_size if ls.step_size and ls.step_size > 0 else 0.0,
                step_height=ls.step_height if ls.step_height is not None else self.cfg.step_height,
                speed=ls.speed if ls.speed is not None else self.cfg.speed,
                max_reach=self.cfg.max_reach,
                up_axis=self.cfg.up_axis,
                enable_sprint=self.cfg.enable_sprint,
                sprint_multiplier=self.cfg.sprint_multiplier,
                name=ls.name,
            )
            limb.set_step_size(self.cfg.step_size)
            limbs.append(limb)
        n = len(limbs)
        for i, limb in enumerate(limbs):
            o, a, bh = neighbour_indices(i, n)
            limb.opposite = limbs[o] if o is not None else None
            limb.ahead = limbs[a] if a is not None else None
            limb.behind = limbs[bh] if bh is not None else None
        return limbs

    def seed_gait(self) -> None:
        disparity = 0
        n = len(self.limbs)
        for i, limb in enumerate(self.limbs):
            limb.seed_target(i, disparity, n, self.body.forward, self.body.yaw)
            if i % 2 == 0:
                disparity += 1

    @property
    def center_of_mass(self) -> np.ndarray:
        return self.body.center_of_mass

    def any_moving(self) -> bool:
        return any(limb.is_moving for limb in self.limbs)

    def tick(self, dt: float, movement_input: Optional[MovementInput] = None) -> TickReport:
        dt = max(0.0, float(dt))
        sprinting = bool(movement_input.sprint) if movement_input is not None else False

        moved = self.mover.step(self.body, movement_input, dt)
        self.rig.carry(self.body, self.limbs)

        for limb in self.limbs:
            limb.anchor.update(self.body, self.terrain, suspended=limb.is_moving or self.body.is_rotating)

        started = []
        for limb in self.limbs:
            if limb.update(self.solver, self.scheduler, self.terrain, sprinting):
                started.append(limb.id)

        completed = [t.limb_id for t in self.scheduler.tick(dt)]
        self.rig.update(self.body, self.limbs)
        self.solver.step(dt)
        self.time += dt

        return TickReport(
            moved=moved,
            started=started,
            completed=completed,
            swinging=self.scheduler.active_ids,
            center_of_mass=self.body.center_of_mass.copy(),
            position=self.body.position.copy(),
            pitch=self.body.pitch,
            roll=self.body.roll,
        )

    def teardown(self) -> None:
        for limb in self.limbs:
            limb.cancel()
        self.scheduler.clear()
        self.limiter.clear()
        self.limbs = []
        self.solver.limbs = []
        logger.info("locomotion torn down")
