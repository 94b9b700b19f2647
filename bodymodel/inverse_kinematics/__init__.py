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
Inverse Kinematics Module for the BodyModel avatar

This module moves an avatar's hands and feet to tracked target poses by
iterating Jacobian based joint updates under human joint limits.
"""

from .bone_hierarchy import Bone, Skeleton, create_humanoid_skeleton
from .config import IKMode, LimbKind, LimbSettings, SolverSettings
from .constraints import JointConstraintEnforcer
from .jacobian import JacobianLimbSolver, UninitializedTargetError
from .joint_limits import JointLimit, build_joint_limit_table
from .solver import InverseKinematicsSolver, SolveOutcome
from .statistics import NO_DATA, ConvergenceStatistics
from .validation import PoseValidator

__all__ = [
    "Bone",
    "Skeleton",
    "create_humanoid_skeleton",
    "IKMode",
    "LimbKind",
    "LimbSettings",
    "SolverSettings",
    "JointConstraintEnforcer",
    "JacobianLimbSolver",
    "UninitializedTargetError",
    "JointLimit",
    "build_joint_limit_table",
    "InverseKinematicsSolver",
    "SolveOutcome",
    "NO_DATA",
    "ConvergenceStatistics",
    "PoseValidator",
]
