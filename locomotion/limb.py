from __future__ import annotations

"""Per-limb stepping state machine.

A limb is either PLANTED (its effector held at a world-fixed rest anchor) or
SWINGING (its effector driven by a swing task towards a latched target).
Each tick a planted limb checks four conditions and swings only when all hold:

  - far enough: tip is more than `step_size` from the target
  - reachable: target within the chain's reach from the root
  - traversable: CoM->target segment crosses nothing untraversable
  - stable: none of the opposite/ahead/behind neighbours is swinging

An unreachable target, or a segment blocked by untraversable terrain, also
registers an exclusion arc so the body stops heading that way.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .geometry import horizontal, rescale, vec3
from .ground_anchor import GroundAnchor
from .rig import LimbChain
from .settings import (SEED_BACKOFF_ITERS, SEED_BACKOFF_STEP, SPRINT_SOFTENING, TRAVERSABILITY_RAY_SCALE,
                       UNTRAVERSABLE_TAG)
from .swing import SwingScheduler, SwingTask
from .terrain import RayHit

logger = logging.getLogger(__name__)


class StepState(Enum):
    PLANTED = "planted"
    SWINGING = "swinging"


@dataclass(frozen=True)
class StepCheck:
    far_enough: bool
    reachable: bool
    traversable: bool
    stable: bool

    @property
    def legal(self) -> bool:
        return self.far_enough and self.reachable and self.traversable and self.stable


class LimbController:
    def __init__(self, limb_id: int, chain: LimbChain, anchor: GroundAnchor, step_size: float = 1.0,
                 step_height: float = 0.5, speed: float = 4.0, max_reach: Optional[float] = None,
                 up_axis: int = 2, enable_sprint: bool = True, sprint_multiplier: float = 2.0,
                 name: str = ""):
        self.id = int(limb_id)
        self.name = name or str(limb_id)
        self.chain = chain
        self.anchor = anchor
        self.step_size = float(step_size)
        self.step_height = float(step_height)
        self.speed = float(speed)
        self.max_reach = chain.chain_length
        if max_reach is not None:
            self.set_max_range(max_reach)
        self.up_axis = int(up_axis)
        self.enable_sprint = bool(enable_sprint)
        self.sprint_multiplier = float(sprint_multiplier)

        self.opposite: Optional[LimbController] = None
        self.ahead: Optional[LimbController] = None
        self.behind: Optional[LimbController] = None

        self._effector = chain.tip.copy()
        self.rest_anchor = self._effector.copy()
        self._swing: Optional[SwingTask] = None
        self.swing_count = 0
        self.last_check: Optional[StepCheck] = None

    # ---------------- state ---------------- #

    @property
    def state(self) -> StepState:
        return StepState.SWINGING if self._swing is not None else StepState.PLANTED

    @property
    def is_moving(self) -> bool:
        return self._swing is not None

    @property
    def effector(self) -> np.ndarray:
        """Point the tip follows; driven by the swing task while swinging."""
        if self._swing is not None:
            return self._swing.pose.copy()
        return self._effector.copy()

    @property
    def target(self) -> np.ndarray:
        return self.anchor.position.copy()

    @property
    def swing(self) -> Optional[SwingTask]:
        return self._swing

    @property
    def neighbours(self):
        return [n for n in (self.opposite, self.ahead, self.behind) if n is not None]

    def set_step_size(self, size: float) -> None:
        """Adopt the global step size unless this limb carries its own."""
        if self.step_size <= 0.0:
            self.step_size = float(size)

    def set_max_range(self, reach: float) -> None:
        if reach > 0.0:
            self.max_reach = float(reach)

    # ---------------- checks ---------------- #

    def distance_from_body(self) -> float:
        return float(np.linalg.norm(self.chain.root - self.anchor.position))

    def distance_to_target(self) -> float:
        return float(np.linalg.norm(self.chain.tip - self.anchor.position))

    def is_reachable(self) -> bool:
        return self.distance_from_body() <= self.max_reach

    def blocking_hit(self, com: np.ndarray, terrain) -> Optional[RayHit]:
        """First untraversable surface on the CoM->target segment, if any."""
        end = rescale(com, self.anchor.position, TRAVERSABILITY_RAY_SCALE)
        for hit in terrain.linecast_all(com, end):
            if hit.tag == UNTRAVERSABLE_TAG:
                return hit
        return None

    def is_traversable(self, com: np.ndarray, terrain) -> bool:
        return self.blocking_hit(com, terrain) is None

    def neighbours_free(self) -> bool:
        return not any(n.is_moving for n in self.neighbours)

    def check(self, com: np.ndarray, terrain) -> StepCheck:
        return StepCheck(
            far_enough=self.distance_to_target() > self.step_size,
            reachable=self.is_reachable(),
            traversable=self.is_traversable(com, terrain),
            stable=self.neighbours_free(),
        )

    def step_duration(self, sprinting: bool = False) -> float:
        speed = self.speed
        if sprinting and self.enable_sprint:
            speed = (speed * self.sprint_multiplier) ** (1.0 / SPRINT_SOFTENING)
        return self.chain.average_weight / speed

    # ---------------- per-tick ---------------- #

    def update(self, solver, scheduler: SwingScheduler, terrain, sprinting: bool = False) -> bool:
        """Anchor or start a swing; returns True when a swing was started."""
        if self.is_moving:
            return False
        com = solver.center_of_mass
        self.last_check = self.check(com, terrain)
        if not self.last_check.reachable:
            solver.limit_movement(self.anchor.position, self.id)
            self.anchor.request_clamp(self.chain.root, self.max_reach)
        elif not self.last_check.traversable:
            # block travel into the obstacle
            hit = self.blocking_hit(com, terrain)
            solver.limit_movement(com - horizontal(hit.normal), self.id)
        else:
            solver.clear_movement_limit(self.id)

        if self.last_check.legal:
            self.start_swing(scheduler, sprinting)
            return True
        return False

    def start_swing(self, scheduler: SwingScheduler, sprinting: bool = False) -> SwingTask:
        duration = self.step_duration(sprinting)
        self._swing = scheduler.start(self.id, self._effector, self.anchor.position, duration,
                                      self.up_axis, self.step_height, self._on_swing_end)
        logger.debug("limb %s swing %s -> %s over %.3fs", self.name, np.round(self._effector, 3),
                     np.round(self.anchor.position, 3), duration)
        return self._swing

    def _on_swing_end(self, task: SwingTask) -> None:
        self._effector = task.end.copy()
        self.rest_anchor = self._effector.copy()
        self._swing = None
        self.swing_count += 1

    def cancel(self) -> None:
        """Drop an in-flight swing, planting the limb where it is."""
        if self._swing is not None:
            self._effector = self._swing.pose.copy()
            self.rest_anchor = self._effector.copy()
            self._swing = None

    # ---------------- setup ---------------- #

    def seed_target(self, index: int, disparity: int, limb_count: int, forward: np.ndarray,
                    yaw: float = 0.0) -> np.ndarray:
        """Push the target along `forward` so limbs start out of phase.

        Offset is step/(2N) + step/(4N) * index, negative for even disparity,
        then backed off while the target would be out of reach.
        """
        forward = vec3(forward)
        dist = self.step_size / (limb_count * 2) + (self.step_size / (limb_count * 4)) * index
        sign = 1.0 if disparity % 2 != 0 else -1.0
        start = self.anchor.position
        target = start + forward * dist * sign
        for _ in range(SEED_BACKOFF_ITERS):
            if float(np.linalg.norm(target - self.chain.root)) <= self.max_reach:
                break
            target = target - forward * SEED_BACKOFF_STEP * sign
        self.anchor.displace(target - start, yaw)
        return self.anchor.position.copy()
