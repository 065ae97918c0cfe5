from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np

from .geometry import UP, horizontal, rot_z, vec3
from .settings import AnchorMode

logger = logging.getLogger(__name__)


class GroundAnchor:
    """Keeps one limb's step target on the terrain below it.

    The target rides with the body horizontally (its offset is stored in the
    body's yaw frame) and is dropped vertically onto the surface under it.
    A terrain miss keeps the previous anchored position.
    """

    def __init__(self, target: np.ndarray, body, probe_height: float = 2.0,
                 mode: AnchorMode = AnchorMode.GEOMETRICAL):
        self.position = vec3(target)
        self.probe_height = float(probe_height)
        self.mode = AnchorMode(mode)
        self.local_offset = rot_z(-body.yaw) @ horizontal(self.position - body.position)
        self._clamp: Optional[tuple] = None
        self.misses = 0

    def displace(self, offset: np.ndarray, yaw: float = 0.0) -> None:
        """Shift the target by a world-space horizontal offset (gait seeding)."""
        offset = horizontal(vec3(offset))
        self.position = self.position + offset
        self.local_offset = self.local_offset + rot_z(-yaw) @ offset

    def request_clamp(self, root: np.ndarray, reach: float) -> None:
        """Keep the next projected target within `reach` of `root` where the vertical gap allows."""
        self._clamp = (vec3(root), float(reach))

    def _clamped(self, xy_point: np.ndarray, ground_z: float) -> np.ndarray:
        root, reach = self._clamp
        p = xy_point.copy()
        p[2] = ground_z
        dz = ground_z - root[2]
        if abs(dz) >= reach:
            # no horizontal placement can fix a vertical gap this large
            return p
        max_r = math.sqrt(reach * reach - dz * dz)
        v = horizontal(p - root)
        r = float(np.linalg.norm(v))
        if r > max_r and r > 1e-12:
            p[:2] = root[:2] + v[:2] * (max_r / r)
        return p

    def update(self, body, terrain, suspended: bool = False) -> np.ndarray:
        """Re-project the target; returns the (possibly unchanged) anchored position."""
        if suspended:
            return self.position
        xy = body.position + rot_z(body.yaw) @ self.local_offset
        xy[2] = self.position[2]
        if self.mode is AnchorMode.LOCAL:
            down = -(body.rotation @ UP)
        else:
            down = -UP
        origin = xy - down * self.probe_height
        hit = terrain.raycast(origin, down)
        if hit is None:
            self.misses += 1
            logger.debug("ground anchor miss at %s; keeping %s", np.round(origin, 3), np.round(self.position, 3))
            self._clamp = None
            return self.position
        p = np.asarray(hit.point, dtype=float).copy()
        if self._clamp is not None:
            p = self._clamped(p, float(p[2]))
            self._clamp = None
            # the clamped xy may sit over different ground
            again = terrain.raycast(p - down * self.probe_height, down)
            if again is not None:
                p = np.asarray(again.point, dtype=float).copy()
            self.local_offset = rot_z(-body.yaw) @ horizontal(p - body.position)
        self.position = p
        return self.position
