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
Pose Validation

Checks a solved skeleton pose against the joint limits and the rotation
invariants, for evaluation runs and regression checks.
"""

import logging
from typing import Dict, List, Optional

import numpy as np
from scipy.spatial.transform import Rotation

from .bone_hierarchy import AXIS_NAMES, Skeleton
from .config import SolverSettings
from .constraints import EULER_SEQUENCE


class PoseValidator:
    """Validates skeleton poses produced by the IK solver"""

    def __init__(self, angle_tolerance: float = 1e-4, norm_tolerance: float = 1e-6):
        self.angle_tolerance = angle_tolerance
        self.norm_tolerance = norm_tolerance

    def validate_pose(self, skeleton: Skeleton) -> Dict:
        """
        Check every bone of a skeleton

        Returns:
            Dictionary with validation results:
                - is_valid: Overall validity flag
                - violations: List of validation violations
                - recommendations: List of recommendations for fixes
                - num_violations: Number of violations
        """
        violations = []
        violations.extend(self._validate_normalization(skeleton))
        violations.extend(self._validate_joint_limits(skeleton))

        recommendations = self._generate_fix_recommendations(violations) if violations else []

        return {
            "is_valid": len(violations) == 0,
            "violations": violations,
            "recommendations": recommendations,
            "num_violations": len(violations),
        }

    def _validate_normalization(self, skeleton: Skeleton) -> List[str]:
        """Local rotations must be unit quaternions"""
        violations = []
        for bone in skeleton:
            norm = np.linalg.norm(bone.local_rotation)
            if abs(norm - 1.0) > self.norm_tolerance:
                violations.append(f"Bone {bone.name} rotation is not normalized (norm {norm:.6f})")
        return violations

    def _validate_joint_limits(self, skeleton: Skeleton) -> List[str]:
        """Free axes must lie within their range of motion"""
        violations = []

        for bone in skeleton:
            if bone.num_free_axes == 0:
                continue

            angles = Rotation.from_quat(bone.local_rotation).as_euler(EULER_SEQUENCE)
            for (low, high), axis in zip(bone.limits, bone.free_axis_indices):
                low, high = min(low, high), max(low, high)
                angle = angles[axis]

                if angle < low - self.angle_tolerance:
                    violations.append(
                        f"Bone {bone.name} {AXIS_NAMES[axis]} under minimum limit "
                        f"({np.degrees(angle):.1f} < {np.degrees(low):.1f} deg)"
                    )
                elif angle > high + self.angle_tolerance:
                    violations.append(
                        f"Bone {bone.name} {AXIS_NAMES[axis]} over maximum limit "
                        f"({np.degrees(angle):.1f} > {np.degrees(high):.1f} deg)"
                    )

        return violations

    def validate_outcome(self, outcome, settings: Optional[SolverSettings] = None) -> Dict:
        """
        Check a SolveOutcome against the solver settings

        Returns:
            Dictionary with is_valid, violations and recommendations
        """
        settings = settings or SolverSettings()
        violations = []

        if outcome is None:
            violations.append("Solve was rejected (target not initialized)")
        else:
            if not outcome.reached:
                violations.append(
                    f"Target not reached, error {outcome.error:.4f} >= {settings.error_threshold:.4f}"
                )
            if outcome.iterations >= settings.max_steps and not outcome.reached:
                violations.append(f"Iteration limit of {settings.max_steps} exhausted")

        recommendations = self._generate_fix_recommendations(violations) if violations else []
        if violations:
            logging.info(f"Solve outcome has {len(violations)} issue(s)")

        return {
            "is_valid": len(violations) == 0,
            "violations": violations,
            "recommendations": recommendations,
        }

    def _generate_fix_recommendations(self, violations: List[str]) -> List[str]:
        """Generate recommendations to fix the found violations"""

        recommendations = []

        if any("limit" in v and "Iteration" not in v for v in violations):
            recommendations.append("Run the joint constraint enforcer over the affected chains")

        if any("normalized" in v for v in violations):
            recommendations.append("Re-normalize local rotations after every update")

        if any("exhausted" in v for v in violations):
            recommendations.append("Increase max_steps or lower the damping factor")

        if any("not reached" in v for v in violations):
            recommendations.append("Check that the target lies within the limb's reach")

        if any("rejected" in v for v in violations):
            recommendations.append("Check the target bone's chain setup")

        return recommendations
