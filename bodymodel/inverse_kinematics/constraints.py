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
Joint Constraint Enforcement

Clamps the local rotation of each bone in a kinematic chain to the joint's
configured Euler angle ranges.
"""

import logging
from typing import Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from .bone_hierarchy import Bone, Skeleton, normalize_quaternion

# Intrinsic x -> y -> z, the order deltas are applied in
EULER_SEQUENCE = "XYZ"


class JointConstraintEnforcer:
    """Keeps joint rotations inside their range of motion"""

    @staticmethod
    def clamp_value(min_val: float, max_val: float, value: float) -> Tuple[float, bool]:
        """
        Clamp a value into [min_val, max_val]

        Reversed bounds are swapped first.

        Returns:
            Tuple of (clamped_value, was_clamped)
        """
        if min_val > max_val:
            min_val, max_val = max_val, min_val

        if value < min_val:
            return min_val, True
        if value > max_val:
            return max_val, True
        return value, False

    def constrain_bone(self, skeleton: Skeleton, bone: Bone) -> bool:
        """
        Clamp one bone's free axes and rebuild its rotation

        Returns:
            True if any axis had to be clamped
        """
        angles = Rotation.from_quat(bone.local_rotation).as_euler(EULER_SEQUENCE)

        clamped = False
        for (min_val, max_val), axis in zip(bone.limits, bone.free_axis_indices):
            angles[axis], axis_clamped = self.clamp_value(min_val, max_val, angles[axis])
            clamped |= axis_clamped

        if clamped:
            logging.debug(f"Clamped {bone.name} to {np.degrees(angles).round(1)} deg")

        bone.local_rotation = normalize_quaternion(
            Rotation.from_euler(EULER_SEQUENCE, angles).as_quat()
        )
        skeleton.compose_local(bone)
        return clamped

    def apply(self, skeleton: Skeleton, target_index: int) -> int:
        """
        Constrain every bone of the target's chain, walking toward the root

        World transforms are not touched; the caller propagates afterwards.

        Returns:
            Number of bones that were clamped
        """
        num_clamped = 0
        for bone in skeleton.chain(target_index):
            if self.constrain_bone(skeleton, bone):
                num_clamped += 1
        return num_clamped
