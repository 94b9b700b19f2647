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
Inverse Kinematics Solver

Drives the per-limb Jacobian solvers to move an avatar's hands and feet to
tracked target poses, enforcing joint limits after every step.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.spatial.transform import Rotation

from .bone_hierarchy import Skeleton, normalize_quaternion
from .config import LimbKind, SolverSettings, load_settings
from .constraints import JointConstraintEnforcer
from .jacobian import JacobianLimbSolver
from .statistics import ConvergenceStatistics

UNIT_AXES = np.eye(3)

TargetPose = Tuple[Sequence[float], Union[Rotation, Sequence[float]]]


@dataclass
class SolveOutcome:
    """Result of one terminated solve call"""

    reached: bool
    iterations: int
    error: float
    position_error: float
    orientation_error: float
    evaluations: int


class InverseKinematicsSolver:
    """
    Iteration controller for one skeleton

    Only one solve may run per skeleton at a time since bones are updated in
    place. The statistics object can be shared between skeletons.
    """

    def __init__(
        self,
        skeleton: Skeleton,
        config: Union[Dict, SolverSettings, None] = None,
        statistics: Optional[ConvergenceStatistics] = None,
        limb_solvers: Optional[Dict[LimbKind, JacobianLimbSolver]] = None,
    ):
        self.skeleton = skeleton
        self.settings = load_settings(config)
        self.statistics = statistics if statistics is not None else ConvergenceStatistics()
        self.enforcer = JointConstraintEnforcer()
        self.last_outcome: Optional[SolveOutcome] = None

        self._create_limb_solvers(limb_solvers or {})

    def _create_limb_solvers(self, overrides: Dict[LimbKind, JacobianLimbSolver]):
        """One Jacobian solver per limb family"""
        self.limb_solvers = {
            LimbKind.ARM: JacobianLimbSolver(self.settings.arm),
            LimbKind.LEG: JacobianLimbSolver(self.settings.leg),
        }
        self.limb_solvers.update(overrides)

    def solve(
        self,
        target_index: int,
        desired_position: Sequence[float],
        desired_orientation: Union[Rotation, Sequence[float]],
    ) -> bool:
        """
        Move an end-effector toward a desired world pose

        Args:
            target_index: Index of a hand or foot bone
            desired_position: Desired world position [x, y, z]
            desired_orientation: Desired world orientation, Rotation or [x, y, z, w]

        Returns:
            True if the pose error fell below the error threshold. On False
            the partially improved pose is kept.
        """
        target = self.skeleton.bone(target_index)
        if not target.initialized:
            logging.debug(f"Rejected IK request for uninitialized bone {target.name}")
            self.last_outcome = None
            return False

        limb = self.skeleton.limb_kind(target_index)
        limb_solver = self.limb_solvers[limb]
        ik_mode = self.settings.limb(limb).ik_mode
        max_steps = self.settings.max_steps
        error_threshold = self.settings.error_threshold

        for step in range(max_steps + 1):
            delta_theta = limb_solver.calc_delta_theta(
                self.skeleton, target_index, desired_position, desired_orientation, ik_mode
            )
            error = limb_solver.get_error()

            # Without free axes the pose cannot change any more
            if error < error_threshold or step == max_steps or len(delta_theta) == 0:
                reached = error < error_threshold
                self.statistics.record(step, reached, error)
                self.last_outcome = SolveOutcome(
                    reached=reached,
                    iterations=step,
                    error=error,
                    position_error=limb_solver.get_position_error(),
                    orientation_error=limb_solver.get_orientation_error(),
                    evaluations=step + 1,
                )
                logging.debug(
                    f"IK {target.name}: {'reached' if reached else 'not reached'} "
                    f"after {step} steps, error {error:.5f}"
                )
                return reached

            self.apply_changes(delta_theta, target_index)
            self.enforcer.apply(self.skeleton, target_index)
            self.skeleton.update_world_transforms()

        return False

    def apply_changes(self, delta_theta: Sequence[float], target_index: int):
        """
        Rotate the chain's free axes by the given deltas

        Deltas are consumed from the target bone upward, x before y before z
        within a bone. Each one is applied in the bone's local frame.
        """
        i = 0
        size = len(delta_theta)

        for bone in self.skeleton.chain(target_index):
            if i >= size:
                break
            if bone.num_free_axes == 0:
                continue

            rotation = Rotation.from_quat(bone.local_rotation)
            for axis in bone.free_axis_indices:
                if i >= size:
                    break
                rotation = rotation * Rotation.from_rotvec(UNIT_AXES[axis] * delta_theta[i])
                i += 1

            bone.local_rotation = normalize_quaternion(rotation.as_quat())
            self.skeleton.compose_local(bone)

    def solve_frame(self, targets: Dict[int, TargetPose]) -> Dict[int, bool]:
        """
        Solve every tracked end-effector of one frame

        Args:
            targets: Mapping of end-effector bone index to (position, orientation)

        Returns:
            Mapping of end-effector bone index to reached flag
        """
        return {
            index: self.solve(index, position, orientation)
            for index, (position, orientation) in targets.items()
        }

    def solve_sequence(self, frames: Sequence[Dict[int, TargetPose]]) -> Dict:
        """
        Solve a sequence of tracking frames

        Args:
            frames: One solve_frame target dictionary per frame

        Returns:
            Dictionary containing:
                - reached_flags: Per frame mapping of bone index to reached flag
                - reach_rate: Fraction of solve calls that reached their target
                - average_iterations: Mean step count of the terminated calls
                - average_error: Mean final error of the terminated calls
        """
        reached_flags: List[Dict[int, bool]] = []
        outcomes: List[SolveOutcome] = []
        num_frames = len(frames)

        for i, targets in enumerate(frames):
            frame_flags = {}
            for index, (position, orientation) in targets.items():
                frame_flags[index] = self.solve(index, position, orientation)
                if self.last_outcome is not None:
                    outcomes.append(self.last_outcome)
            reached_flags.append(frame_flags)

            if i % 10 == 0:
                logging.info(f"IK Progress: {i+1}/{num_frames} frames solved")

        all_flags = [flag for frame_flags in reached_flags for flag in frame_flags.values()]

        return {
            "reached_flags": reached_flags,
            "reach_rate": float(np.mean(all_flags)) if all_flags else 0.0,
            "average_iterations": float(np.mean([o.iterations for o in outcomes])) if outcomes else 0.0,
            "average_error": float(np.mean([o.error for o in outcomes])) if outcomes else 0.0,
        }

    def get_total_calls(self) -> int:
        return self.statistics.get_total_calls()

    def get_average_iterations(self) -> float:
        return self.statistics.get_average_iterations()

    def get_average_reach_rate(self) -> float:
        return self.statistics.get_average_reach_rate()

    def get_average_error(self) -> float:
        return self.statistics.get_average_error()

    def get_min_error(self) -> float:
        return self.statistics.get_min_error()

    def get_max_error(self) -> float:
        return self.statistics.get_max_error()
