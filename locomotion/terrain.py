from __future__ import annotations

"""Terrain oracle interface and a small analytic implementation.

The controller only ever asks three questions of the terrain:
  - raycast(origin, direction, max_distance): nearest surface along a ray
  - linecast(a, b): nearest surface on the segment a->b
  - linecast_all(a, b): every surface on the segment, nearest first

`AnalyticTerrain` answers them for planes (optionally bounded) and axis-aligned
boxes, which is enough for flat ground, slopes, steps, cliffs and walls.
See `envs/mujoco_terrain.py` for the MuJoCo-backed oracle.
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

import numpy as np

from .geometry import normalized, vec3
from .settings import GROUND_TAG


@dataclass
class RayHit:
    point: np.ndarray
    normal: np.ndarray
    tag: str = GROUND_TAG
    distance: float = 0.0


class TerrainOracle(Protocol):
    def raycast(self, origin: np.ndarray, direction: np.ndarray,
                max_distance: float = math.inf) -> Optional[RayHit]: ...

    def linecast(self, a: np.ndarray, b: np.ndarray) -> Optional[RayHit]: ...

    def linecast_all(self, a: np.ndarray, b: np.ndarray) -> List[RayHit]: ...


@dataclass
class Plane:
    point: np.ndarray
    normal: np.ndarray
    tag: str = GROUND_TAG
    # Optional horizontal extent (xmin, xmax, ymin, ymax); None = infinite
    bounds: Optional[Tuple[float, float, float, float]] = None

    def __post_init__(self):
        self.point = vec3(self.point)
        self.normal = normalized(vec3(self.normal))
        if not self.normal.any():
            raise ValueError("plane normal must be non-zero")

    def intersect(self, o: np.ndarray, d: np.ndarray) -> Optional[Tuple[float, np.ndarray]]:
        denom = float(np.dot(d, self.normal))
        if abs(denom) < 1e-12:
            return None
        t = float(np.dot(self.point - o, self.normal)) / denom
        if t < 0.0:
            return None
        p = o + t * d
        if self.bounds is not None:
            xmin, xmax, ymin, ymax = self.bounds
            if not (xmin <= p[0] <= xmax and ymin <= p[1] <= ymax):
                return None
        n = self.normal if denom < 0.0 else -self.normal
        return t, n


@dataclass
class Box:
    lo: np.ndarray
    hi: np.ndarray
    tag: str = GROUND_TAG

    def __post_init__(self):
        self.lo = vec3(self.lo)
        self.hi = vec3(self.hi)
        if np.any(self.hi < self.lo):
            raise ValueError(f"box bounds inverted: lo={self.lo} hi={self.hi}")

    def intersect(self, o: np.ndarray, d: np.ndarray) -> Optional[Tuple[float, np.ndarray]]:
        """Slab test; a ray starting inside the box reports where it leaves.

        Normals face back along the ray, so an exit hit carries the inward normal
        of the face it leaves through.
        """
        t_enter, t_exit = -math.inf, math.inf
        axis_enter, sign_enter = 0, 1.0
        axis_exit, sign_exit = 0, 1.0
        for k in range(3):
            if abs(d[k]) < 1e-12:
                if o[k] < self.lo[k] or o[k] > self.hi[k]:
                    return None
                continue
            t1 = (self.lo[k] - o[k]) / d[k]
            t2 = (self.hi[k] - o[k]) / d[k]
            # entering through the lo face means the outward normal is -axis
            sign = -1.0
            if t1 > t2:
                t1, t2 = t2, t1
                sign = 1.0
            if t1 > t_enter:
                t_enter, axis_enter, sign_enter = t1, k, sign
            if t2 < t_exit:
                t_exit, axis_exit, sign_exit = t2, k, sign
            if t_enter > t_exit:
                return None
        if t_exit < 0.0:
            return None
        n = np.zeros(3)
        if t_enter < 0.0:
            n[axis_exit] = sign_exit
            return t_exit, n
        n[axis_enter] = sign_enter
        return t_enter, n


@dataclass
class AnalyticTerrain:
    planes: List[Plane] = field(default_factory=list)
    boxes: List[Box] = field(default_factory=list)

    def add_plane(self, point, normal, tag: str = GROUND_TAG, bounds=None) -> "AnalyticTerrain":
        self.planes.append(Plane(point, normal, tag, bounds))
        return self

    def add_box(self, lo, hi, tag: str = GROUND_TAG) -> "AnalyticTerrain":
        self.boxes.append(Box(lo, hi, tag))
        return self

    def _hits(self, origin, direction, max_distance: float) -> List[RayHit]:
        o = vec3(origin)
        d = normalized(vec3(direction))
        if not d.any():
            return []
        out: List[RayHit] = []
        for shape in [*self.planes, *self.boxes]:
            res = shape.intersect(o, d)
            if res is None:
                continue
            t, n = res
            if t <= max_distance:
                out.append(RayHit(point=o + t * d, normal=n, tag=shape.tag, distance=float(t)))
        out.sort(key=lambda h: h.distance)
        return out

    def raycast(self, origin, direction, max_distance: float = math.inf) -> Optional[RayHit]:
        hits = self._hits(origin, direction, max_distance)
        return hits[0] if hits else None

    def linecast_all(self, a, b) -> List[RayHit]:
        a, b = vec3(a), vec3(b)
        return self._hits(a, b - a, float(np.linalg.norm(b - a)))

    def linecast(self, a, b) -> Optional[RayHit]:
        hits = self.linecast_all(a, b)
        return hits[0] if hits else None


def flat_ground(height: float = 0.0) -> AnalyticTerrain:
    return AnalyticTerrain().add_plane([0.0, 0.0, height], [0.0, 0.0, 1.0])


def slope(angle_deg: float, axis: int = 0) -> AnalyticTerrain:
    """Plane through the origin rising by angle_deg along +x (axis=0) or +y (axis=1)."""
    r = math.radians(angle_deg)
    n = np.array([0.0, 0.0, math.cos(r)])
    n[axis] = -math.sin(r)
    return AnalyticTerrain().add_plane([0.0, 0.0, 0.0], n)
