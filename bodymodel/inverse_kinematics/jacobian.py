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
Jacobian Limb Solver

Linearizes one kinematic chain around the current pose and computes a single
joint angle update that moves the end-effector toward the desired pose.
"""

import logging
from typing import List, Optional, Sequence, Union

import numpy as np
from scipy.spatial.transform import Rotation

from .bone_hierarchy import Bone, Skeleton, as_rotation
from .config import IKMode, LimbSettings


class UninitializedTargetError(ValueError):
    """Raised when a solve is requested for a bone excluded from kinematics"""


class JacobianLimbSolver:
    """
    Jacobian based IK step for one limb family (arms or legs)

    Each call to calc_delta_theta returns one angle delta per free axis of
    the chain, ordered from the target bone up to the chain root and x before
    y before z within a bone. The pose error of the last call is available
    through get_error().
    """

    def __init__(self, settings: Optional[LimbSettings] = None):
        self.settings = settings or LimbSettings()
        self.error = float("inf")
        self.position_error = float("inf")
        self.orientation_error = 0.0

    def get_error(self) -> float:
        return self.error

    def get_position_error(self) -> float:
        return self.position_error

    def get_orientation_error(self) -> float:
        return self.orientation_error

    def calc_delta_theta(
        self,
        skeleton: Skeleton,
        target_index: int,
        desired_position: Sequence[float],
        desired_orientation: Union[Rotation, Sequence[float]],
        ik_mode: Optional[IKMode] = None,
    ) -> np.ndarray:
        """
        Compute one linearized joint update

        Args:
            skeleton: Skeleton with up to date world transforms
            target_index: Index of the end-effector bone
            desired_position: Desired world position [x, y, z]
            desired_orientation: Desired world orientation, Rotation or [x, y, z, w]
            ik_mode: Overrides the mode from the settings

        Returns:
            Flat array of angle deltas, empty if the chain has no free axes
        """
        target = skeleton.bone(target_index)
        if not target.initialized:
            raise UninitializedTargetError(f"Bone {target.name} is not initialized")

        ik_mode = ik_mode or self.settings.ik_mode
        use_orientation = ik_mode == IKMode.POSITION_ORIENTATION

        pose_error = self._compute_pose_error(target, desired_position, desired_orientation, use_orientation)

        chain = skeleton.chain(target_index)
        if sum(bone.num_free_axes for bone in chain) == 0:
            logging.debug(f"End-effector {target.name} has no free axes in its chain")
            self.error = self.position_error
            return np.zeros(0)

        jacobian = self.compute_jacobian(chain, target, use_orientation)
        return self._limit_step(self._update(jacobian, pose_error))

    def _compute_pose_error(
        self,
        target: Bone,
        desired_position: Sequence[float],
        desired_orientation: Union[Rotation, Sequence[float]],
        use_orientation: bool,
    ) -> np.ndarray:
        """Weighted error vector, also stores the scalar errors"""
        weights = self.settings

        position_delta = np.asarray(desired_position, dtype=float) - target.world_position
        self.position_error = float(np.linalg.norm(position_delta))

        if not use_orientation:
            self.orientation_error = 0.0
            self.error = weights.position_weight * self.position_error
            return weights.position_weight * position_delta

        # Rotation taking the current orientation to the desired one, world frame
        rotation_delta = (as_rotation(desired_orientation) * target.world_rotation.inv()).as_rotvec()
        self.orientation_error = float(np.linalg.norm(rotation_delta))
        self.error = (
            weights.position_weight * self.position_error
            + weights.orientation_weight * self.orientation_error
        )
        return np.concatenate([
            weights.position_weight * position_delta,
            weights.orientation_weight * rotation_delta,
        ])

    def compute_jacobian(self, chain: List[Bone], target: Bone, use_orientation: bool) -> np.ndarray:
        """
        Geometric Jacobian of the end-effector pose w.r.t. the chain's free axes

        Deltas are applied in the bone's local frame, so the rotation axis of
        a free axis k is column k of the bone's world rotation and the pivot
        is the bone's world position.

        Returns:
            Jacobian matrix (6 x num_dofs) or (3 x num_dofs), rows weighted
            like the error vector
        """
        effector_position = target.world_position
        columns = []

        for bone in chain:
            rotation = bone.world_transform[:3, :3]
            pivot = bone.world_transform[:3, 3]
            for axis in bone.free_axis_indices:
                world_axis = rotation[:, axis]
                linear = np.cross(world_axis, effector_position - pivot)
                if use_orientation:
                    columns.append(np.concatenate([
                        self.settings.position_weight * linear,
                        self.settings.orientation_weight * world_axis,
                    ]))
                else:
                    columns.append(self.settings.position_weight * linear)

        return np.column_stack(columns)

    def _update(self, jacobian: np.ndarray, pose_error: np.ndarray) -> np.ndarray:
        """Turn the Jacobian and error into joint angle deltas"""
        damping = self.settings.damping

        if self.settings.method == "transpose":
            return damping * jacobian.T @ pose_error

        # Damped least squares: J^T (J J^T + lambda^2 I)^-1 e
        jjt = jacobian @ jacobian.T
        damped = jjt + (damping ** 2) * np.eye(jjt.shape[0])
        try:
            return jacobian.T @ np.linalg.solve(damped, pose_error)
        except np.linalg.LinAlgError:
            # Only reachable with zero damping at a singular pose
            return jacobian.T @ np.linalg.pinv(damped) @ pose_error

    def _limit_step(self, delta_theta: np.ndarray) -> np.ndarray:
        """Scale the update down to max_angle_step, keeping its direction"""
        norm = float(np.linalg.norm(delta_theta))
        if norm > self.settings.max_angle_step:
            return delta_theta * (self.settings.max_angle_step / norm)
        return delta_theta
