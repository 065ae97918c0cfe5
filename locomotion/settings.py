from __future__ import annotations

"""Configuration and shared constants for the locomotion controller.

`LocomotionConfig` mirrors the JSON files under `configs/` (one flat object,
unknown keys ignored so rig files can carry extra sections).
"""

import json
from dataclasses import dataclass, fields, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

# Terrain tags
GROUND_TAG = "ground"
UNTRAVERSABLE_TAG = "untraversable"

# Minimum swing distance; closer targets are snapped to directly.
STEP_DISTANCE_THRESH = 0.01

# Joint/body weights
MIN_WEIGHT = 0.0
MAX_WEIGHT = 10.0
WEIGHT_EPSILON = 1e-6

# Body realignment snap tolerances
POSITION_TOLERANCE = 0.05
ANGLE_TOLERANCE_DEG = 1.1

# Movement limiter
ARC_HALF_WIDTH_DEG = 30.0
MIN_INPUT_MAGNITUDE = 0.1

# Only cast 98% of the CoM->target segment so the ground under the target is not hit.
TRAVERSABILITY_RAY_SCALE = 0.98

SPRINT_SOFTENING = 1.4

# Gait seeding back-off
SEED_BACKOFF_STEP = 0.005
SEED_BACKOFF_ITERS = 10


class ConfigError(ValueError):
    """Invalid configuration value."""


class AnchorMode(str, Enum):
    GEOMETRICAL = "geometrical"  # project along world down
    LOCAL = "local"              # project along the body's local down


class ColliderGeneration(str, Enum):
    NONE = "none"
    COMPLETE_BODY = "complete_body"
    EACH_LIMB = "each_limb"


@dataclass
class LocomotionConfig:
    # Stepping
    step_size: float = 1.0
    max_reach: Optional[float] = None   # overrides every chain length when set
    speed: float = 4.0
    step_height: float = 0.5
    up_axis: int = 2
    randomize_starting_pattern: bool = True
    # Body realignment
    realignment_speed: float = 25.0
    realignment_threshold: float = 0.1
    include_tip_weight: bool = True
    probe_height: float = 2.0
    anchor_mode: AnchorMode = AnchorMode.GEOMETRICAL
    # Movement
    move_speed: float = 3.0
    turn_speed: float = 3.0
    enable_sprint: bool = True
    sprint_multiplier: float = 2.0
    use_direction_limiter: bool = False
    # Informational only; the controller never builds colliders
    collider_generation: ColliderGeneration = ColliderGeneration.NONE
    collider_axis: int = 1

    def __post_init__(self):
        self.anchor_mode = AnchorMode(self.anchor_mode)
        self.collider_generation = ColliderGeneration(self.collider_generation)
        self.validate()

    def validate(self) -> None:
        if self.step_size <= 0.0:
            raise ConfigError(f"step_size must be > 0, got {self.step_size}")
        if self.max_reach is not None and self.max_reach <= 0.0:
            raise ConfigError(f"max_reach must be > 0 when set, got {self.max_reach}")
        if not 0.1 <= self.speed <= 50.0:
            raise ConfigError(f"speed must be in [0.1, 50], got {self.speed}")
        if self.step_height < 0.0:
            raise ConfigError(f"step_height must be >= 0, got {self.step_height}")
        if self.up_axis not in (0, 1, 2):
            raise ConfigError(f"up_axis must be 0, 1 or 2, got {self.up_axis}")
        if not 0.1 <= self.realignment_speed <= 50.0:
            raise ConfigError(f"realignment_speed must be in [0.1, 50], got {self.realignment_speed}")
        if not 0.01 <= self.realignment_threshold <= 1.0:
            raise ConfigError(f"realignment_threshold must be in [0.01, 1], got {self.realignment_threshold}")
        if not 1.0 <= self.sprint_multiplier <= 10.0:
            raise ConfigError(f"sprint_multiplier must be in [1, 10], got {self.sprint_multiplier}")
        if not 0.1 <= self.turn_speed <= 10.0:
            raise ConfigError(f"turn_speed must be in [0.1, 10], got {self.turn_speed}")
        if self.move_speed < 0.0:
            raise ConfigError(f"move_speed must be >= 0, got {self.move_speed}")
        if self.probe_height < 0.0:
            raise ConfigError(f"probe_height must be >= 0, got {self.probe_height}")
        if self.collider_axis not in range(6):
            raise ConfigError(f"collider_axis must be in 0..5, got {self.collider_axis}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocomotionConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["anchor_mode"] = self.anchor_mode.value
        out["collider_generation"] = self.collider_generation.value
        return out


def load_config(path: str | Path) -> LocomotionConfig:
    """Load a config from a JSON file; a nested "config" object is used if present."""
    data = json.loads(Path(path).read_text())
    if isinstance(data.get("config"), dict):
        data = data["config"]
    return LocomotionConfig.from_dict(data)
