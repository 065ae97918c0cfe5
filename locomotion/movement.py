from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .geometry import heading_deg, horizontal, smooth_damp_angle, vec3, wrap_deg
from .settings import ARC_HALF_WIDTH_DEG, MIN_INPUT_MAGNITUDE

logger = logging.getLogger(__name__)

ArcLimit = Tuple[float, float]
NO_LIMIT: ArcLimit = (0.0, 0.0)


def _to_unit_circle(heading: float) -> float:
    # headings run clockwise from forward; the unit circle runs counter-clockwise from +x
    return -heading + 90.0


def snap_arc(heading: float, half_width: float = ARC_HALF_WIDTH_DEG) -> ArcLimit:
    """Arc of +-half_width around `heading`, one endpoint snapped to a 90 deg sector line.

    Only the endpoint that is already closer to its nearest multiple of 90 is
    snapped (ties snap `to`).
    """
    lo = heading - half_width
    hi = heading + half_width
    snap_lo = 90.0 * round(lo / 90.0)
    snap_hi = 90.0 * round(hi / 90.0)
    if abs(snap_lo - lo) < abs(snap_hi - hi):
        lo = snap_lo
    else:
        hi = snap_hi
    return float(lo), float(hi)


@dataclass
class MovementLimiter:
    """Per-limb exclusion arcs and the direction gate built on them.

    Arc angles are headings in degrees relative to the body forward axis,
    clockwise positive (towards the body's right).
    """
    enabled: bool = True
    arcs: List[ArcLimit] = field(default_factory=list)

    def set_arc(self, limb_id: int, arc: ArcLimit) -> None:
        if limb_id < 0:
            raise IndexError(f"limb id must be >= 0, got {limb_id}")
        while len(self.arcs) <= limb_id:
            self.arcs.append(NO_LIMIT)
        self.arcs[limb_id] = (float(arc[0]), float(arc[1]))

    def reset_arc(self, limb_id: int) -> None:
        self.set_arc(limb_id, NO_LIMIT)

    def arc(self, limb_id: int) -> ArcLimit:
        if limb_id < len(self.arcs):
            return self.arcs[limb_id]
        return NO_LIMIT

    def active_arcs(self) -> List[Tuple[int, ArcLimit]]:
        return [(i, a) for i, a in enumerate(self.arcs) if a != NO_LIMIT]

    def clear(self) -> None:
        self.arcs.clear()

    def is_blocked(self, heading: float) -> bool:
        for _, (a_from, a_to) in self.active_arcs():
            lo, hi = _to_unit_circle(a_from), _to_unit_circle(a_to)
            if lo > hi:
                lo, hi = hi, lo
            for h in (heading, heading - 360.0, heading + 360.0):
                if lo <= _to_unit_circle(h) <= hi:
                    return True
        return False

    def can_move(self, direction: np.ndarray, forward: np.ndarray) -> bool:
        """True if moving along world `direction` is outside every registered arc."""
        if not self.enabled:
            return True
        d = horizontal(vec3(direction))
        if float(np.linalg.norm(d)) < 1e-12:
            return True
        return not self.is_blocked(heading_deg(d, forward))


@dataclass
class MovementInput:
    """Polled once per tick: world horizontal direction (normalised on use) and sprint flag."""
    direction: np.ndarray = field(default_factory=lambda: np.zeros(3))
    sprint: bool = False

    def __post_init__(self):
        d = np.asarray(self.direction, dtype=float).reshape(-1)
        if d.shape == (2,):
            d = np.array([d[0], d[1], 0.0])
        self.direction = horizontal(vec3(d))


class MovementController:
    """Turns input into body yaw and translation, gated by the limiter."""

    def __init__(self, limiter: MovementLimiter, move_speed: float = 3.0, turn_speed: float = 3.0,
                 enable_sprint: bool = True, sprint_multiplier: float = 2.0):
        self.limiter = limiter
        self.move_speed = float(move_speed)
        self.turn_speed = float(turn_speed)
        self.enable_sprint = bool(enable_sprint)
        self.sprint_multiplier = float(sprint_multiplier)
        self.turn_velocity = 0.0
        self.blocked_ticks = 0

    @staticmethod
    def world_direction(inp: MovementInput) -> np.ndarray:
        d = inp.direction
        n = float(np.linalg.norm(d))
        if n < 1e-12:
            return np.zeros(3)
        return d / n

    def step(self, body, inp: Optional[MovementInput], dt: float) -> bool:
        """Advance body yaw/position; returns True if the body moved."""
        if inp is None or float(np.linalg.norm(inp.direction)) < MIN_INPUT_MAGNITUDE:
            return False
        direction = self.world_direction(inp)
        if not self.limiter.can_move(direction, body.forward):
            self.blocked_ticks += 1
            logger.debug("movement blocked towards heading %.1f", heading_deg(direction, body.forward))
            return False
        weight = body.weight
        target_yaw = math.degrees(math.atan2(direction[1], direction[0]))
        yaw, self.turn_velocity = smooth_damp_angle(body.yaw, target_yaw, self.turn_velocity,
                                                    weight / self.turn_speed, dt)
        speed = self.move_speed / weight
        if inp.sprint and self.enable_sprint:
            speed *= self.sprint_multiplier
        body.yaw = wrap_deg(yaw)
        body.position = body.position + direction * speed * dt
        return True
