from __future__ import annotations

"""Rig description, chain resolution and a kinematic stand-in for the IK rig.

The controller never rotates joints. It needs, per limb, a root/mid/tip triple
with weights and somebody that moves those joints when the body or the limb
effector moves. `KinematicRig` is that somebody for tools and tests: roots ride
rigidly on the body, the tip follows the effector (clamped to reach) and the
mid joint is placed with the law of cosines.
"""

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .geometry import UP, FORWARD, normalized, vec3
from .settings import MAX_WEIGHT, MIN_WEIGHT


class RigSetupError(ValueError):
    """Missing or malformed rig references; setup is aborted."""


def _check_weight(w: float, what: str) -> float:
    w = float(w)
    if not MIN_WEIGHT <= w <= MAX_WEIGHT or math.isnan(w):
        raise RigSetupError(f"{what} weight {w} outside [{MIN_WEIGHT}, {MAX_WEIGHT}]")
    return w


@dataclass
class LimbChain:
    """Root/mid/tip joint positions (world) and their weights.

    `chain_length` is the reach of the limb, fixed at construction.
    """
    root: np.ndarray
    mid: np.ndarray
    tip: np.ndarray
    root_weight: float = 1.0
    mid_weight: float = 1.0
    tip_weight: float = 1.0
    upper_length: float = field(init=False)
    lower_length: float = field(init=False)
    chain_length: float = field(init=False)

    def __post_init__(self):
        self.root, self.mid, self.tip = vec3(self.root), vec3(self.mid), vec3(self.tip)
        self.root_weight = _check_weight(self.root_weight, "root")
        self.mid_weight = _check_weight(self.mid_weight, "mid")
        self.tip_weight = _check_weight(self.tip_weight, "tip")
        self.upper_length = float(np.linalg.norm(self.mid - self.root))
        self.lower_length = float(np.linalg.norm(self.tip - self.mid))
        self.chain_length = self.upper_length + self.lower_length

    @property
    def weights(self) -> Tuple[float, float, float]:
        return self.root_weight, self.mid_weight, self.tip_weight

    @property
    def average_weight(self) -> float:
        return sum(self.weights) / 3.0

    @property
    def positions(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self.root, self.mid, self.tip


@dataclass
class LimbSpec:
    """A limb as declared by the rig: body-local joint positions root->tip."""
    joints: List[np.ndarray]
    weights: Optional[List[float]] = None
    name: str = ""
    # Optional per-limb overrides (non-positive or None = use the global config)
    step_size: Optional[float] = None
    step_height: Optional[float] = None
    speed: Optional[float] = None

    def resolve(self) -> Tuple[Tuple[np.ndarray, np.ndarray, np.ndarray], Tuple[float, float, float]]:
        """Pick root (first), tip (deepest) and mid (generation midpoint) with their weights."""
        if len(self.joints) < 2:
            raise RigSetupError(f"limb '{self.name}' needs at least 2 joints, got {len(self.joints)}")
        joints = [vec3(j) for j in self.joints]
        n = len(joints)
        weights = list(self.weights) if self.weights is not None else []
        if len(weights) > n:
            raise RigSetupError(f"limb '{self.name}' has {len(weights)} weights for {n} joints")
        weights += [1.0] * (n - len(weights))
        idx = (0, (n - 1) // 2, n - 1)
        return tuple(joints[i] for i in idx), tuple(float(weights[i]) for i in idx)


@dataclass
class BodySpec:
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    yaw: float = 0.0
    weight: float = 1.0
    # Body mass point relative to the body origin (body-local)
    mass_offset: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.position = vec3(self.position)
        self.mass_offset = vec3(self.mass_offset)


@dataclass
class RigSpec:
    body: Optional[BodySpec]
    limbs: List[LimbSpec] = field(default_factory=list)

    def validate(self) -> None:
        if self.body is None:
            raise RigSetupError("missing body reference")
        if not self.limbs:
            raise RigSetupError("no limbs declared")
        _check_weight(self.body.weight, "body")
        for limb in self.limbs:
            _, weights = limb.resolve()
            for w, what in zip(weights, ("root", "mid", "tip")):
                _check_weight(w, f"limb '{limb.name}' {what}")


def rig_from_dict(data: Dict[str, Any]) -> RigSpec:
    body = data.get("body")
    body_spec = None
    if body is not None:
        body_spec = BodySpec(
            position=body.get("position", [0.0, 0.0, 0.0]),
            yaw=float(body.get("yaw", 0.0)),
            weight=float(body.get("weight", 1.0)),
            mass_offset=body.get("mass_offset", [0.0, 0.0, 0.0]),
        )
    limbs = []
    for i, ld in enumerate(data.get("limbs", [])):
        if "joints" not in ld:
            raise RigSetupError(f"limb {i} has no joints")
        limbs.append(LimbSpec(
            joints=[vec3(j) for j in ld["joints"]],
            weights=ld.get("weights"),
            name=ld.get("name", str(i)),
            step_size=ld.get("step_size"),
            step_height=ld.get("step_height"),
            speed=ld.get("speed"),
        ))
    return RigSpec(body=body_spec, limbs=limbs)


def load_rig(path: str | Path) -> RigSpec:
    return rig_from_dict(json.loads(Path(path).read_text()))


def place_mid(root: np.ndarray, tip: np.ndarray, upper: float, lower: float, bend_hint: np.ndarray) -> np.ndarray:
    """Mid joint for a two-bone chain reaching `tip`, bent towards `bend_hint`.

    Law of cosines at the root; the knee lies in the plane spanned by the
    root->tip direction and the part of `bend_hint` orthogonal to it.
    """
    v = tip - root
    L = float(np.linalg.norm(v))
    if L < 1e-9 or upper < 1e-9:
        return root + normalized(bend_hint) * upper
    u = v / L
    L = max(min(L, upper + lower - 1e-9), abs(upper - lower) + 1e-9)
    cos_a = (upper * upper + L * L - lower * lower) / (2.0 * upper * L)
    cos_a = max(-1.0, min(1.0, cos_a))
    b = bend_hint - np.dot(bend_hint, u) * u
    if float(np.linalg.norm(b)) < 1e-9:
        # hint parallel to the limb; bend along any perpendicular
        alt = FORWARD if abs(float(np.dot(u, FORWARD))) < 0.9 else UP
        b = alt - np.dot(alt, u) * u
    b = normalized(b)
    return root + upper * (cos_a * u + math.sqrt(max(0.0, 1.0 - cos_a * cos_a)) * b)


class KinematicRig:
    """Moves chain joints from the body pose and each limb's effector."""

    def __init__(self, spec: RigSpec):
        spec.validate()
        self.root_local: List[np.ndarray] = []
        # body-local direction the knee bends towards, as declared
        self.bend_local: List[np.ndarray] = []
        for limb in spec.limbs:
            (root, mid, _), _ = limb.resolve()
            self.root_local.append(root)
            bend = normalized(mid - root)
            self.bend_local.append(bend if bend.any() else UP.copy())

    def carry(self, body, limbs: Sequence) -> None:
        """Move the roots rigidly with the body; mids and tips stay put."""
        R = body.rotation
        for limb, root_local in zip(limbs, self.root_local):
            limb.chain.root = body.position + R @ root_local

    def update(self, body, limbs: Sequence) -> None:
        R = body.rotation
        for limb, root_local, bend in zip(limbs, self.root_local, self.bend_local):
            chain = limb.chain
            root = body.position + R @ root_local
            target = limb.effector
            v = target - root
            dist = float(np.linalg.norm(v))
            if dist > chain.chain_length and dist > 1e-12:
                target = root + v * (chain.chain_length / dist)
            chain.root = root
            chain.tip = np.asarray(target, dtype=float).copy()
            chain.mid = place_mid(root, chain.tip, chain.upper_length, chain.lower_length, R @ bend)
