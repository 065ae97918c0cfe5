from __future__ import annotations

"""Terrain oracle over a compiled MuJoCo scene.

Answers the controller's raycast/linecast queries with `mujoco.mj_ray`.
Geoms whose name starts with `untraversable` are tagged untraversable; every
other geom is ground. Normals are estimated from two neighbouring rays since
mj_ray only reports a distance.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import mujoco

from locomotion.geometry import normalized, vec3
from locomotion.settings import GROUND_TAG, UNTRAVERSABLE_TAG
from locomotion.terrain import RayHit


@dataclass
class TerrainEnvConfig:
    xml_path: Optional[str] = None
    xml_string: Optional[str] = None
    untraversable_prefix: str = "untraversable"
    geomgroup: Optional[Sequence[int]] = None  # 6 flags; None = all groups
    normal_probe: float = 1e-3


class MujocoTerrain:
    def __init__(self, cfg: TerrainEnvConfig):
        self.cfg = cfg
        if cfg.xml_string is not None:
            self.m = mujoco.MjModel.from_xml_string(cfg.xml_string)
        elif cfg.xml_path is not None:
            self.m = mujoco.MjModel.from_xml_path(cfg.xml_path)
        else:
            raise ValueError("TerrainEnvConfig needs xml_path or xml_string")
        self.d = mujoco.MjData(self.m)
        self._geomgroup = None
        if cfg.geomgroup is not None:
            self._geomgroup = np.asarray(cfg.geomgroup, dtype=np.uint8).reshape(6)
        mujoco.mj_forward(self.m, self.d)

    def tag(self, geom_id: int) -> str:
        name = mujoco.mj_id2name(self.m, mujoco.mjtObj.mjOBJ_GEOM, int(geom_id)) or ""
        return UNTRAVERSABLE_TAG if name.startswith(self.cfg.untraversable_prefix) else GROUND_TAG

    def _ray(self, origin: np.ndarray, d: np.ndarray, max_distance: float):
        geomid = np.zeros(1, dtype=np.int32)
        dist = mujoco.mj_ray(self.m, self.d, np.asarray(origin, dtype=np.float64),
                             np.asarray(d, dtype=np.float64), self._geomgroup, 1, -1, geomid)
        if dist < 0.0 or dist > max_distance:
            return None
        return float(dist), int(geomid[0])

    def _normal(self, origin: np.ndarray, d: np.ndarray, p0: np.ndarray) -> np.ndarray:
        # two perpendicular offsets of the same ray
        helper = np.array([0.0, 0.0, 1.0]) if abs(d[2]) < 0.9 else np.array([1.0, 0.0, 0.0])
        e1 = normalized(np.cross(d, helper))
        e2 = np.cross(d, e1)
        h = self.cfg.normal_probe
        pts = []
        for e in (e1, e2):
            r = self._ray(origin + e * h, d, math.inf)
            if r is None:
                return -d
            pts.append(origin + e * h + d * r[0])
        n = normalized(np.cross(pts[0] - p0, pts[1] - p0))
        if not n.any():
            return -d
        return n if float(np.dot(n, d)) < 0.0 else -n

    def raycast(self, origin, direction, max_distance: float = math.inf) -> Optional[RayHit]:
        o = vec3(origin)
        d = normalized(vec3(direction))
        if not d.any():
            return None
        r = self._ray(o, d, max_distance)
        if r is None:
            return None
        dist, gid = r
        p = o + d * dist
        return RayHit(point=p, normal=self._normal(o, d, p), tag=self.tag(gid), distance=dist)

    def linecast_all(self, a, b) -> List[RayHit]:
        a, b = vec3(a), vec3(b)
        d = normalized(b - a)
        length = float(np.linalg.norm(b - a))
        if not d.any():
            return []
        out: List[RayHit] = []
        seen = set()
        travelled = 0.0
        origin = a.copy()
        for _ in range(16):
            r = self._ray(origin, d, length - travelled)
            if r is None:
                break
            dist, gid = r
            travelled += dist
            p = a + d * travelled
            if gid not in seen:
                seen.add(gid)
                out.append(RayHit(point=p, normal=self._normal(origin, d, p), tag=self.tag(gid),
                                  distance=travelled))
            # step past the surface and keep looking
            travelled += 1e-6
            origin = a + d * travelled
        return out

    def linecast(self, a, b) -> Optional[RayHit]:
        hits = self.linecast_all(a, b)
        return hits[0] if hits else None
