from __future__ import annotations

import math
from typing import Iterable, Sequence

import numpy as np

UP = np.array([0.0, 0.0, 1.0])
FORWARD = np.array([1.0, 0.0, 0.0])
LEFT = np.array([0.0, 1.0, 0.0])


def vec3(p: Iterable[float]) -> np.ndarray:
    v = np.asarray(p, dtype=float).reshape(-1)
    if v.shape != (3,):
        raise ValueError(f"expected a 3-vector, got shape {v.shape}")
    return v.copy()


def horizontal(v: np.ndarray) -> np.ndarray:
    """Drop the vertical (z) component."""
    out = np.asarray(v, dtype=float).copy()
    out[2] = 0.0
    return out


def normalized(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    """Unit vector along v, or the zero vector when v is degenerate."""
    v = np.asarray(v, dtype=float)
    n = float(np.linalg.norm(v))
    if n < eps:
        return np.zeros_like(v)
    return v / n


def rescale(a: np.ndarray, b: np.ndarray, scale: float) -> np.ndarray:
    """Point at `scale` of the way from a to b."""
    a = np.asarray(a, dtype=float)
    return a + float(scale) * (np.asarray(b, dtype=float) - a)


def rot_x(deg: float) -> np.ndarray:
    r = math.radians(deg)
    c, s = math.cos(r), math.sin(r)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def rot_y(deg: float) -> np.ndarray:
    r = math.radians(deg)
    c, s = math.cos(r), math.sin(r)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def rot_z(deg: float) -> np.ndarray:
    r = math.radians(deg)
    c, s = math.cos(r), math.sin(r)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def body_rotation(yaw: float, pitch: float, roll: float) -> np.ndarray:
    """Body-to-world rotation from yaw/pitch/roll in degrees.

    Conventions (z up, x forward, y left):
      - yaw: counter-clockwise about +z
      - pitch: positive raises the nose (+x towards +z)
      - roll: positive raises the left side (+y towards +z)
    """
    return rot_z(yaw) @ rot_y(-pitch) @ rot_x(roll)


def heading_deg(v: np.ndarray, forward: np.ndarray) -> float:
    """Clockwise angle (deg) from `forward` to `v` on the horizontal plane.

    0 is straight ahead, +90 the right-hand side, -90 the left, range (-180, 180].
    Degenerate vectors yield 0.
    """
    f = normalized(horizontal(forward))
    d = normalized(horizontal(v))
    if not f.any() or not d.any():
        return 0.0
    # right-hand side of forward under z-up is (f_y, -f_x)
    right = np.array([f[1], -f[0], 0.0])
    return math.degrees(math.atan2(float(np.dot(d, right)), float(np.dot(d, f))))


def wrap_deg(a: float) -> float:
    """Wrap to (-180, 180]."""
    a = math.fmod(a + 180.0, 360.0)
    if a <= 0.0:
        a += 360.0
    return a - 180.0


def weighted_average(points: Sequence[np.ndarray], weights: Sequence[float], total: float) -> np.ndarray:
    """Sum(w_i * p_i) / total. Order independent."""
    if len(points) != len(weights):
        raise ValueError(f"points ({len(points)}) and weights ({len(weights)}) differ in length")
    P = np.asarray(points, dtype=float).reshape(-1, 3)
    w = np.asarray(weights, dtype=float).reshape(-1) / float(total)
    return (w[:, None] * P).sum(axis=0)


def smooth_damp_angle(current: float, target: float, velocity: float, smooth_time: float,
                      dt: float) -> tuple[float, float]:
    """Critically damped approach of an angle (deg) towards target.

    Returns (new_angle, new_velocity). Follows the usual game-engine
    smooth-damp approximation (Game Programming Gems 4, ch. 1.10).
    """
    target = current + wrap_deg(target - current)
    smooth_time = max(1e-4, float(smooth_time))
    omega = 2.0 / smooth_time
    x = omega * dt
    exp = 1.0 / (1.0 + x + 0.48 * x * x + 0.235 * x * x * x)
    change = current - target
    temp = (velocity + omega * change) * dt
    velocity = (velocity - omega * temp) * exp
    out = target + (change + temp) * exp
    # no overshoot
    if (target - current > 0.0) == (out > target):
        out = target
        velocity = (out - target) / dt if dt > 0 else 0.0
    return out, velocity
