# Copyright 2024 The HuggingFace Inc. team. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Solver Configuration

Tunable settings for the limb solvers and the iteration controller. Every
numeric default here is a starting point for tuning, not a measured value.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Dict, Optional, Union


class LimbKind(Enum):
    """Limb family an end-effector belongs to"""

    ARM = "arm"
    LEG = "leg"


class IKMode(Enum):
    """Which parts of the end-effector pose the solver drives"""

    POSITION = "position"
    POSITION_ORIENTATION = "position_orientation"


SOLVER_METHODS = ("damped_least_squares", "transpose")


DEFAULT_CONFIG = {
    "max_steps": 20,
    "error_threshold": 0.01,
    "arm": {
        "ik_mode": "position_orientation",
        "damping": 0.05,
        "position_weight": 1.0,
        "orientation_weight": 0.1,
        "method": "damped_least_squares",
        "max_angle_step": 0.2,
    },
    "leg": {
        "ik_mode": "position_orientation",
        "damping": 0.05,
        "position_weight": 1.0,
        "orientation_weight": 0.1,
        "method": "damped_least_squares",
        "max_angle_step": 0.2,
    },
}


@dataclass
class LimbSettings:
    """
    Settings for one limb family's Jacobian solver

    damping is the lambda of the damped least-squares update (or the gain of
    the transpose update). Larger values are more stable near singularities
    but converge slower. max_angle_step bounds the norm of a single update
    in radians, so far or unreachable targets are approached in small steps.
    """

    ik_mode: IKMode = IKMode.POSITION_ORIENTATION
    damping: float = 0.05
    position_weight: float = 1.0
    orientation_weight: float = 0.1
    method: str = "damped_least_squares"
    max_angle_step: float = 0.2

    def __post_init__(self):
        """Validate the settings after initialization"""
        self._validate()

    def _validate(self):
        if isinstance(self.ik_mode, str):
            try:
                self.ik_mode = IKMode(self.ik_mode)
            except ValueError:
                raise ValueError(f"Unknown IK mode: {self.ik_mode}")

        if self.method not in SOLVER_METHODS:
            raise ValueError(f"Unknown solver method: {self.method}")

        if self.damping < 0:
            raise ValueError(f"damping must be non-negative, got {self.damping}")

        if self.max_angle_step <= 0:
            raise ValueError(f"max_angle_step must be positive, got {self.max_angle_step}")

        if self.position_weight < 0 or self.orientation_weight < 0:
            raise ValueError(
                f"error weights must be non-negative, got "
                f"{self.position_weight} / {self.orientation_weight}"
            )

    @classmethod
    def from_dict(cls, data: Dict) -> "LimbSettings":
        """Create from dictionary format, unknown keys are rejected"""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown limb settings keys: {sorted(unknown)}")
        return cls(**data)

    def to_dict(self) -> Dict:
        return {
            "ik_mode": self.ik_mode.value,
            "damping": self.damping,
            "position_weight": self.position_weight,
            "orientation_weight": self.orientation_weight,
            "method": self.method,
            "max_angle_step": self.max_angle_step,
        }


@dataclass
class SolverSettings:
    """Settings for the IK iteration controller and both limb solvers"""

    max_steps: int = 20
    error_threshold: float = 0.01
    arm: LimbSettings = field(default_factory=LimbSettings)
    leg: LimbSettings = field(default_factory=LimbSettings)

    def __post_init__(self):
        if self.max_steps < 0:
            raise ValueError(f"max_steps must be >= 0, got {self.max_steps}")

        if self.error_threshold <= 0:
            raise ValueError(f"error_threshold must be positive, got {self.error_threshold}")

        if isinstance(self.arm, dict):
            self.arm = LimbSettings.from_dict(self.arm)
        if isinstance(self.leg, dict):
            self.leg = LimbSettings.from_dict(self.leg)

    def limb(self, kind: LimbKind) -> LimbSettings:
        """Settings for the given limb family"""
        if kind == LimbKind.ARM:
            return self.arm
        return self.leg

    @classmethod
    def from_dict(cls, config: Optional[Dict] = None) -> "SolverSettings":
        """
        Build settings from a (possibly partial) nested config dictionary

        Args:
            config: Dictionary shaped like DEFAULT_CONFIG. Missing keys fall
                back to the defaults, limb sections are merged key by key.

        Returns:
            Validated SolverSettings
        """
        config = config or {}
        unknown = set(config) - set(DEFAULT_CONFIG)
        if unknown:
            raise ValueError(f"Unknown solver config keys: {sorted(unknown)}")

        merged = {key: value for key, value in DEFAULT_CONFIG.items() if key not in ("arm", "leg")}
        merged.update({key: value for key, value in config.items() if key not in ("arm", "leg")})

        limbs = {}
        for limb in ("arm", "leg"):
            limb_config = dict(DEFAULT_CONFIG[limb])
            limb_config.update(config.get(limb, {}))
            limbs[limb] = LimbSettings.from_dict(limb_config)

        return cls(
            max_steps=int(merged["max_steps"]),
            error_threshold=float(merged["error_threshold"]),
            arm=limbs["arm"],
            leg=limbs["leg"],
        )

    def to_dict(self) -> Dict:
        return {
            "max_steps": self.max_steps,
            "error_threshold": self.error_threshold,
            "arm": self.arm.to_dict(),
            "leg": self.leg.to_dict(),
        }


def load_settings(config: Union[Dict, SolverSettings, None] = None) -> SolverSettings:
    """Accept either a settings object or a config dictionary"""
    if isinstance(config, SolverSettings):
        return config
    return SolverSettings.from_dict(config)
