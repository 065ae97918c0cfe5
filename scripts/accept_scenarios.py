#!/usr/bin/env python3
"""Run the terrain scenarios headless and gate on their summaries.

Writes .proofs/LOCOMOTION_ACCEPT.json and exits non-zero unless every gate holds.
"""
import json, os, subprocess, sys
from pathlib import Path

RIGS = ["configs/quadruped.json", "configs/hexapod.json"]


def sim(rig, scenario, *extra):
    cmd = [sys.executable, "tools/sim_locomotion.py", "--rig", rig, "--scenario", scenario,
           "--seconds", "6", *extra]
    p = subprocess.run(cmd, check=False, capture_output=True, text=True)
    lines = [l for l in p.stdout.splitlines() if l.strip().startswith("{")]
    return json.loads(lines[-1]) if lines else {"ok": False, "stderr": p.stderr[-400:]}


report = {}
for rig in RIGS:
    name = Path(rig).stem
    flat = sim(rig, "flat")
    slope = sim(rig, "slope", "--slope-deg", "10")
    wall = sim(rig, "wall")
    cliff = sim(rig, "cliff")
    ok_flat_walks = flat.get("ok", False) and flat.get("distance", 0.0) > 1.0
    ok_flat_all_limbs_step = all(v > 0 for v in flat.get("swings", {0: 0}).values())
    ok_flat_level = flat.get("max_pitch_deg", 99.0) < 2.0 and flat.get("max_roll_deg", 99.0) < 2.0
    ok_slope_pitches = slope.get("ok", False) and slope.get("max_pitch_deg", 0.0) > 2.0
    # wall face at x=3 (sim_locomotion.build_terrain)
    wall_tips = [tip[0] for tip in wall.get("tips", {}).values()]
    ok_wall_stops = (wall.get("ok", False) and wall.get("final_position", [99.0])[0] < 3.0
                     and bool(wall_tips) and max(wall_tips) < 3.05 and wall.get("blocked_ticks", 0) > 0)
    ok_cliff_keeps_height = cliff.get("ok", False) and cliff.get("height", -1.0) > -0.1
    report[name] = {
        "ok_flat_walks": ok_flat_walks,
        "ok_flat_all_limbs_step": ok_flat_all_limbs_step,
        "ok_flat_level": ok_flat_level,
        "ok_slope_pitches": ok_slope_pitches,
        "ok_wall_stops": ok_wall_stops,
        "ok_cliff_keeps_height": ok_cliff_keeps_height,
        "pass": all([ok_flat_walks, ok_flat_all_limbs_step, ok_flat_level,
                     ok_slope_pitches, ok_wall_stops, ok_cliff_keeps_height]),
    }
report["pass_all"] = all(v["pass"] for v in report.values())
os.makedirs(".proofs", exist_ok=True)
Path(".proofs/LOCOMOTION_ACCEPT.json").write_text(json.dumps(report, indent=2))
print(report)
sys.exit(0 if report["pass_all"] else 2)
