#!/usr/bin/env python3
from __future__ import annotations

"""Headless locomotion run over a terrain scenario.

Steps a rig file for a fixed duration with a constant input direction and
prints one JSON summary line (distance travelled, swings and final tip per
limb, peak tilt, ticks blocked by the direction limiter).

Usage:
  python tools/sim_locomotion.py --rig configs/quadruped.json --scenario flat --seconds 5
  python tools/sim_locomotion.py --rig configs/hexapod.json --scenario slope --slope-deg 10
  python tools/sim_locomotion.py --rig configs/quadruped.json --xml scene.xml

Scenarios:
  flat   ground plane at z=0
  slope  plane rising along +x by --slope-deg
  step   flat ground with a raised block ahead
  wall   flat ground with an untraversable wall ahead
  cliff  ground that ends ahead (terrain misses keep the last pose)
"""

import argparse, json, logging, sys
from typing import Any, Dict, List

import numpy as np

from pathlib import Path as _Path
_ROOT = _Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from locomotion.movement import MovementInput
from locomotion.rig import load_rig
from locomotion.settings import UNTRAVERSABLE_TAG, load_config
from locomotion.system import LocomotionSystem
from locomotion.terrain import AnalyticTerrain, flat_ground, slope


def build_terrain(scenario: str, slope_deg: float = 10.0, ahead: float = 3.0) -> AnalyticTerrain:
    if scenario == "flat":
        return flat_ground()
    if scenario == "slope":
        return slope(slope_deg)
    if scenario == "step":
        return flat_ground().add_box([ahead, -5.0, 0.0], [ahead + 10.0, 5.0, 0.25])
    if scenario == "wall":
        return flat_ground().add_box([ahead, -5.0, 0.0], [ahead + 0.3, 5.0, 3.0], tag=UNTRAVERSABLE_TAG)
    if scenario == "cliff":
        return AnalyticTerrain().add_plane([0.0, 0.0, 0.0], [0.0, 0.0, 1.0],
                                           bounds=(-50.0, ahead, -50.0, 50.0))
    raise ValueError(f"unknown scenario '{scenario}'")


def run(system: LocomotionSystem, seconds: float, dt: float, direction: List[float],
        sprint: bool = False, trace: bool = False) -> Dict[str, Any]:
    inp = MovementInput(direction=direction, sprint=sprint)
    start = system.body.position.copy()
    max_pitch = max_roll = 0.0
    moved_ticks = blocked_ticks = 0
    frames = []
    steps = int(round(seconds / dt))
    for _ in range(steps):
        rep = system.tick(dt, inp)
        moved_ticks += int(rep.moved)
        blocked_ticks += int(not rep.moved)
        max_pitch = max(max_pitch, abs(rep.pitch))
        max_roll = max(max_roll, abs(rep.roll))
        if trace:
            frames.append({
                "t": round(system.time, 4),
                "feet": [limb.chain.tip.tolist() for limb in system.limbs],
                "targets": [limb.target.tolist() for limb in system.limbs],
                "swinging": rep.swinging,
                "com": rep.center_of_mass.tolist(),
                "yaw": system.body.yaw,
                "arcs": [list(a) for _, a in system.limiter.active_arcs()],
            })
    end = system.body.position
    out = {
        "ok": bool(np.all(np.isfinite(end))),
        "seconds": seconds,
        "distance": float(np.linalg.norm((end - start)[:2])),
        "final_position": [round(float(v), 4) for v in end],
        "height": float(end[2]),
        "swings": {limb.name: limb.swing_count for limb in system.limbs},
        "tips": {limb.name: [round(float(v), 4) for v in limb.chain.tip] for limb in system.limbs},
        "max_pitch_deg": max_pitch,
        "max_roll_deg": max_roll,
        "moved_ticks": moved_ticks,
        "blocked_ticks": blocked_ticks,
    }
    if trace:
        out["frames"] = frames
    return out


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--rig", default="configs/quadruped.json")
    ap.add_argument("--scenario", default="flat", choices=["flat", "slope", "step", "wall", "cliff"])
    ap.add_argument("--xml", default=None, help="MuJoCo scene used as terrain instead of --scenario")
    ap.add_argument("--seconds", type=float, default=5.0)
    ap.add_argument("--dt", type=float, default=0.02)
    ap.add_argument("--dir", type=float, nargs=2, default=[1.0, 0.0])
    ap.add_argument("--sprint", action="store_true")
    ap.add_argument("--slope-deg", type=float, default=10.0)
    ap.add_argument("--no-limiter", action="store_true")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, stream=sys.stderr)

    cfg = load_config(args.rig)
    if args.no_limiter:
        cfg.use_direction_limiter = False
    if args.xml:
        from envs.mujoco_terrain import MujocoTerrain, TerrainEnvConfig
        terrain = MujocoTerrain(TerrainEnvConfig(xml_path=args.xml))
    else:
        terrain = build_terrain(args.scenario, args.slope_deg)
    system = LocomotionSystem(load_rig(args.rig), cfg, terrain)
    out = run(system, args.seconds, args.dt, list(args.dir), args.sprint)
    out["scenario"] = "xml" if args.xml else args.scenario
    print(json.dumps(out, separators=(",", ":")))
    sys.exit(0 if out["ok"] else 2)


if __name__ == "__main__":
    main()
