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
Joint Limits

Static range-of-motion table for the humanoid's controllable joints. Ranges
are in radians and follow published human range-of-motion studies. Right-side
joints are mirrored from the left ones.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class JointLimit:
    """Free axes of a joint and one (min, max) range per free axis"""

    free_axes: Tuple[bool, bool, bool]
    limits: Tuple[Tuple[float, float], ...]

    def __post_init__(self):
        if len(self.limits) != sum(self.free_axes):
            raise ValueError(
                f"{sum(self.free_axes)} free axes need as many limits, got {len(self.limits)}"
            )


# Axes whose rotation direction flips between the left and right side
MIRRORED_AXES = (1, 2)


LEFT_JOINT_LIMITS = {
    # Shoulder
    "upper_arm": JointLimit(
        free_axes=(True, True, True),
        limits=(
            (-5 * np.pi / 18, np.pi),           # -50 to 180 deg
            (-np.pi / 2, np.pi / 2),            # -90 to 90 deg
            (-13 * np.pi / 18, np.pi / 2),      # -130 to 90 deg
        ),
    ),
    # Elbow
    "forearm": JointLimit(
        free_axes=(True, False, False),
        limits=((-np.pi / 18, 7 * np.pi / 9),),  # -10 to 140 deg
    ),
    # Hip
    "thigh": JointLimit(
        free_axes=(True, True, True),
        limits=(
            (-13 * np.pi / 18, np.pi / 6),      # -130 to 30 deg
            (-np.pi / 3, 2 * np.pi / 9),        # -60 to 40 deg
            (-5 * np.pi / 18, 5 * np.pi / 18),  # -50 to 50 deg
        ),
    ),
    # Knee
    "calf": JointLimit(
        free_axes=(True, False, False),
        limits=((0.0, 7 * np.pi / 9),),         # 0 to 140 deg
    ),
}

# Wrist, only used when the hands get their own DOFs
LEFT_WRIST_LIMIT = JointLimit(
    free_axes=(True, False, True),
    limits=(
        (-2 * np.pi / 9, np.pi / 6),            # -40 to 30 deg
        (-7 * np.pi / 18, np.pi / 3),           # -70 to 60 deg
    ),
)


def mirror_joint_limit(limit: JointLimit, mirrored_axes: Sequence[int] = MIRRORED_AXES) -> JointLimit:
    """
    Mirror a left-side joint limit to the right side

    Ranges on mirrored axes are negated as (-min, -max), which leaves them
    reversed. The constraint enforcer orders bounds before clamping.
    """
    axes = [axis for axis, flag in enumerate(limit.free_axes) if flag]
    limits: List[Tuple[float, float]] = []
    for axis, (low, high) in zip(axes, limit.limits):
        if axis in mirrored_axes:
            limits.append((-low, -high))
        else:
            limits.append((low, high))
    return JointLimit(free_axes=limit.free_axes, limits=tuple(limits))


def build_joint_limit_table(hand_joint_dofs: int = 6) -> Dict[str, JointLimit]:
    """
    Joint limit table for the humanoid keyed by bone name

    Args:
        hand_joint_dofs: 6 adds wrist DOFs to the hands, any other value
            leaves the hands without free axes

    Returns:
        Dictionary of bone name to JointLimit
    """
    left = dict(LEFT_JOINT_LIMITS)
    if hand_joint_dofs == 6:
        left["hand"] = LEFT_WRIST_LIMIT

    table = {}
    for joint, limit in left.items():
        table[f"left_{joint}"] = limit
        table[f"right_{joint}"] = mirror_joint_limit(limit)
    return table
