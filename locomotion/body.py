from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .geometry import FORWARD, LEFT, UP, body_rotation, heading_deg, horizontal, rot_z, vec3, weighted_average
from .movement import ArcLimit, MovementLimiter, snap_arc
from .settings import ANGLE_TOLERANCE_DEG, POSITION_TOLERANCE, WEIGHT_EPSILON, LocomotionConfig

logger = logging.getLogger(__name__)


@dataclass
class BodyFrame:
    """Body pose. `position` is the ground-level body origin; angles in degrees."""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0
    weight: float = 1.0
    mass_offset: np.ndarray = field(default_factory=lambda: np.zeros(3))
    center_of_mass: np.ndarray = field(default_factory=lambda: np.zeros(3))
    total_weight: float = 1.0
    is_rotating: bool = False

    def __post_init__(self):
        self.position = vec3(self.position)
        self.mass_offset = vec3(self.mass_offset)
        self.center_of_mass = self.position.copy()
        if self.weight <= 0.0:
            logger.warning("body weight %s is not positive; clamping to %g", self.weight, WEIGHT_EPSILON)
            self.weight = WEIGHT_EPSILON

    @property
    def rotation(self) -> np.ndarray:
        return body_rotation(self.yaw, self.pitch, self.roll)

    @property
    def forward(self) -> np.ndarray:
        """Horizontal forward (yaw only)."""
        return rot_z(self.yaw) @ FORWARD

    @property
    def left(self) -> np.ndarray:
        return rot_z(self.yaw) @ LEFT

    @property
    def up(self) -> np.ndarray:
        return self.rotation @ UP

    @property
    def mass_point(self) -> np.ndarray:
        return self.position + self.rotation @ self.mass_offset


def pair_tilt(a: np.ndarray, b: np.ndarray, axis_dir: np.ndarray, threshold: float) -> float:
    """Tilt (deg) implied by two limb tips along `axis_dir`.

    Right triangle a-c-b with c under the higher tip at the lower tip's height;
    the smaller of its two acute angles, positive when the tip further along
    `axis_dir` is the higher one. Below `threshold` height difference -> 0.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if abs(a[2] - b[2]) <= threshold:
        return 0.0
    if a[2] > b[2]:
        c = np.array([a[0], a[1], b[2]])
    else:
        c = np.array([b[0], b[1], a[2]])
    hyp = float(np.linalg.norm(a - b))
    if hyp < 1e-12:
        return 0.0
    opposite = float(np.linalg.norm(a - c))
    adjacent = float(np.linalg.norm(b - c))
    theta = math.asin(min(1.0, opposite / hyp))
    gamma = math.asin(min(1.0, adjacent / hyp))
    angle = min(theta, gamma)

    if float(np.dot(a, axis_dir)) > float(np.dot(b, axis_dir)):
        ahead, behind = a, b
    else:
        ahead, behind = b, a
    sign = 1.0 if ahead[2] > behind[2] else -1.0
    return math.degrees(angle) * sign


def pitch_pairs(n: int) -> List[Tuple[int, int]]:
    """Limbs two indices apart lie one behind the other."""
    return [(i, i + 2) for i in range(n - 2)]


def roll_pairs(n: int) -> List[Tuple[int, int]]:
    """Adjacent (even, odd) indices are left/right opposites."""
    return [(i, i + 1) for i in range(0, n - 1, 2)]


class BodySolver:
    """Center of mass, tilt/height targets, smoothing and exclusion arcs."""

    def __init__(self, body: BodyFrame, limbs: Sequence, terrain, limiter: MovementLimiter,
                 config: Optional[LocomotionConfig] = None):
        self.body = body
        self.limbs = list(limbs)
        self.terrain = terrain
        self.limiter = limiter
        self.cfg = config or LocomotionConfig()
        self.body.total_weight = self.compute_total_weight()
        self.body.center_of_mass = self.body.mass_point

    @property
    def center_of_mass(self) -> np.ndarray:
        return self.body.center_of_mass

    # ---------------- weights / CoM ---------------- #

    def _weighted_points(self):
        points = [self.body.mass_point]
        weights = [self.body.weight]
        for limb in self.limbs:
            ch = limb.chain
            points += [ch.root, ch.mid]
            weights += [ch.root_weight, ch.mid_weight]
            if self.cfg.include_tip_weight:
                points.append(ch.tip)
                weights.append(ch.tip_weight)
        return points, weights

    def compute_total_weight(self) -> float:
        _, weights = self._weighted_points()
        total = float(sum(weights))
        if total <= 0.0:
            logger.warning("total weight %s is not positive; clamping to %g", total, WEIGHT_EPSILON)
            total = WEIGHT_EPSILON
        return total

    def update_center_of_mass(self) -> np.ndarray:
        points, weights = self._weighted_points()
        self.body.center_of_mass = weighted_average(points, weights, self.body.total_weight)
        return self.body.center_of_mass

    # ---------------- tilt / height targets ---------------- #

    def _axis_tilt(self, pairs, axis_dir: np.ndarray) -> float:
        if not pairs:
            return 0.0
        tips = [limb.chain.tip for limb in self.limbs]
        th = self.cfg.realignment_threshold
        angles = [pair_tilt(tips[i], tips[j], axis_dir, th) for i, j in pairs]
        return float(sum(angles) / len(angles))

    def target_tilt(self) -> Tuple[float, float]:
        """(pitch, roll) in degrees implied by the limb tips."""
        n = len(self.limbs)
        pitch = self._axis_tilt(pitch_pairs(n), self.body.forward)
        roll = self._axis_tilt(roll_pairs(n), self.body.left)
        return pitch, roll

    def target_height(self) -> Optional[float]:
        """Ground height under the CoM, or None on a terrain miss."""
        origin = self.body.center_of_mass + UP * self.cfg.probe_height
        hit = self.terrain.raycast(origin, -UP)
        if hit is None:
            return None
        return float(hit.point[2])

    # ---------------- smoothing ---------------- #

    def _alpha(self, dt: float) -> float:
        return min(1.0, max(0.0, dt * self.cfg.realignment_speed / self.body.weight))

    def realign(self, dt: float) -> None:
        ground_z = self.target_height()
        if ground_z is None:
            logger.debug("no ground under CoM %s; keeping pose", np.round(self.body.center_of_mass, 3))
            return
        body = self.body
        settled = True
        if any(limb.is_moving for limb in self.limbs):
            body.is_rotating = False
        else:
            pitch, roll = self.target_tilt()
            if max(abs(pitch - body.pitch), abs(roll - body.roll)) > ANGLE_TOLERANCE_DEG:
                a = self._alpha(dt)
                body.pitch += (pitch - body.pitch) * a
                body.roll += (roll - body.roll) * a
                body.is_rotating = True
                settled = False
            else:
                body.pitch, body.roll = pitch, roll
                body.is_rotating = False

        if settled and body.position[2] != ground_z:
            dz = ground_z - body.position[2]
            if abs(dz) > POSITION_TOLERANCE:
                body.position[2] += dz * self._alpha(dt)
            else:
                body.position[2] = ground_z

    def step(self, dt: float) -> np.ndarray:
        com = self.update_center_of_mass()
        self.realign(dt)
        return com

    # ---------------- movement limits ---------------- #

    def limit_movement(self, target: np.ndarray, limb_id: int) -> Optional[ArcLimit]:
        """Register an exclusion arc pointing from the CoM at `target` (unreachable or walled off)."""
        v = horizontal(np.asarray(target, dtype=float) - self.body.center_of_mass)
        if float(np.linalg.norm(v)) < 1e-9:
            logger.debug("limb %d target straight above/below CoM; no arc", limb_id)
            return None
        arc = snap_arc(heading_deg(v, self.body.forward))
        self.limiter.set_arc(limb_id, arc)
        return arc

    def clear_movement_limit(self, limb_id: int) -> None:
        self.limiter.reset_arc(limb_id)
