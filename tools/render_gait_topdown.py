#!/usr/bin/env python3
from __future__ import annotations

"""Headless 2D (top-down) renderer for the stepping gait.

Runs a rig over an analytic terrain scenario and draws world-XY overlays
with Pillow, writing frames via imageio. Shows:
  - Foot positions (planted=green, swinging=magenta)
  - Step targets (small grey dots)
  - Body CoM (yellow)
  - Exclusion arcs registered by the direction limiter (red wedges)
  - Support polygon of the planted feet (white)

Usage:
  python tools/render_gait_topdown.py --rig configs/quadruped.json --scenario flat --out docs/gait_flat.mp4
  python tools/render_gait_topdown.py --rig configs/hexapod.json --scenario cliff --out docs/gait_cliff.gif
"""

import argparse, json, sys
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
from PIL import Image, ImageDraw
import imageio

from pathlib import Path as _Path
_ROOT = _Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from locomotion.movement import MovementInput
from locomotion.rig import load_rig
from locomotion.settings import load_config
from locomotion.system import LocomotionSystem
from tools.sim_locomotion import build_terrain


def convex_hull(points: List[np.ndarray]) -> np.ndarray:
    """Monotone chain hull of 2D points (counter-clockwise)."""
    pts = sorted({(float(p[0]), float(p[1])) for p in points})
    if len(pts) < 3:
        return np.asarray(pts, dtype=float).reshape(-1, 2)

    def cross(o, a, b):
        return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])

    lower: list = []
    for p in pts:
        while len(lower) >= 2 and cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)
    upper: list = []
    for p in reversed(pts):
        while len(upper) >= 2 and cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)
    return np.asarray(lower[:-1] + upper[:-1], dtype=float)


def frame_features(system: LocomotionSystem) -> Dict[str, Any]:
    feet = {}
    planted = []
    for limb in system.limbs:
        feet[limb.name] = {"xy": limb.chain.tip[:2].copy(), "target": limb.target[:2].copy(),
                           "swinging": limb.is_moving}
        if not limb.is_moving:
            planted.append(limb.chain.tip[:2])
    return {
        "feet": feet,
        "hull": convex_hull(planted),
        "com": system.center_of_mass[:2].copy(),
        "yaw": system.body.yaw,
        "arcs": [a for _, a in system.limiter.active_arcs()],
    }


def draw_frame(img: Image.Image, feat: Dict[str, Any], scale=120, center=(400, 400)):
    draw = ImageDraw.Draw(img)
    cx, cy = center
    com = feat["com"]

    def to_px(p):
        # world XY relative to the CoM -> image pixels (y up)
        return (int(cx + scale * float(p[0] - com[0])), int(cy - scale * float(p[1] - com[1])))

    # Background grid, 1 m spacing, scrolling with the body
    x0 = np.floor(com[0]) - 4
    y0 = np.floor(com[1]) - 4
    for k in range(9):
        gx = to_px((x0 + k, com[1]))[0]
        gy = to_px((com[0], y0 + k))[1]
        draw.line([gx, 0, gx, img.height], fill=(30, 30, 30))
        draw.line([0, gy, img.width, gy], fill=(30, 30, 30))

    # Exclusion arcs: limiter headings are clockwise from body forward;
    # PIL angles are clockwise from +x in image space
    r = 2.5 * scale
    for a_from, a_to in feat["arcs"]:
        lo, hi = sorted((a_from, a_to))
        start = -feat["yaw"] + lo
        end = -feat["yaw"] + hi
        draw.pieslice([cx - r, cy - r, cx + r, cy + r], start, end, outline=(200, 40, 40))

    hull = feat["hull"]
    if hull.shape[0] >= 3:
        draw.polygon([to_px(p) for p in hull], outline=(255, 255, 255))

    for name, p in feat["feet"].items():
        t = to_px(p["target"])
        draw.ellipse([t[0] - 2, t[1] - 2, t[0] + 2, t[1] + 2], fill=(120, 120, 120))
        pos = to_px(p["xy"])
        col = (255, 0, 255) if p["swinging"] else (0, 255, 0)
        draw.ellipse([pos[0] - 6, pos[1] - 6, pos[0] + 6, pos[1] + 6], fill=col)
        draw.text((pos[0] + 8, pos[1] - 8), name, fill=(180, 180, 180))

    px = to_px(com)
    draw.ellipse([px[0] - 5, px[1] - 5, px[0] + 5, px[1] + 5], fill=(255, 255, 0))


def simulate_and_render(system: LocomotionSystem, seconds: float, dt: float, direction, out_path: Path,
                        size: int = 800, every: int = 1) -> int:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    writer = imageio.get_writer(str(out_path), fps=max(1, int(round(1.0 / (dt * every)))))
    inp = MovementInput(direction=direction)
    frames = 0
    steps = max(1, int(round(seconds / dt)))
    for k in range(steps):
        system.tick(dt, inp)
        if k % every:
            continue
        img = Image.new("RGB", (size, size), color=(0, 0, 0))
        draw_frame(img, frame_features(system), center=(size // 2, size // 2))
        writer.append_data(np.asarray(img))
        frames += 1
    writer.close()
    return frames


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--rig", default="configs/quadruped.json")
    ap.add_argument("--scenario", default="flat", choices=["flat", "slope", "step", "wall", "cliff"])
    ap.add_argument("--out", required=True)
    ap.add_argument("--seconds", type=float, default=6.0)
    ap.add_argument("--dt", type=float, default=0.02)
    ap.add_argument("--dir", type=float, nargs=2, default=[1.0, 0.0])
    ap.add_argument("--every", type=int, default=1, help="draw one frame per N ticks")
    args = ap.parse_args()

    system = LocomotionSystem(load_rig(args.rig), load_config(args.rig), build_terrain(args.scenario))
    frames = simulate_and_render(system, args.seconds, args.dt, list(args.dir), Path(args.out),
                                 every=max(1, args.every))
    print(json.dumps({"saved": args.out, "seconds": args.seconds, "frames": frames}, indent=2))


if __name__ == '__main__':
    main()
