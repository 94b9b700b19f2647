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
Bone Hierarchy

Skeleton arena for the avatar: bones are stored by integer index and refer to
their parent and children by index. Holds the rest-pose (bind) transforms, the
current local rotations set by the solver, and the cached world transforms.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.spatial.transform import Rotation

from .config import LimbKind

IDENTITY_QUATERNION = np.array([0.0, 0.0, 0.0, 1.0])

AXIS_NAMES = ("x", "y", "z")


def make_transform(
    translation: Sequence[float] = (0.0, 0.0, 0.0),
    rotation: Optional[Union[Rotation, Sequence[float]]] = None,
) -> np.ndarray:
    """
    Build a 4x4 homogeneous transform

    Args:
        translation: [x, y, z] translation
        rotation: scipy Rotation or quaternion [x, y, z, w], identity if None

    Returns:
        4x4 transform matrix
    """
    transform = np.eye(4)
    if rotation is not None:
        transform[:3, :3] = as_rotation(rotation).as_matrix()
    transform[:3, 3] = np.asarray(translation, dtype=float)
    return transform


def as_rotation(rotation: Union[Rotation, Sequence[float]]) -> Rotation:
    """Accept a scipy Rotation or an [x, y, z, w] quaternion"""
    if isinstance(rotation, Rotation):
        return rotation
    return Rotation.from_quat(np.asarray(rotation, dtype=float))


def normalize_quaternion(q: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(q)
    if norm == 0:
        return IDENTITY_QUATERNION.copy()
    return q / norm


@dataclass(eq=False)
class Bone:
    """
    A joint of the skeleton

    local_rotation is a unit quaternion in scipy order [x, y, z, w]. It is
    applied on top of bind_transform, so local_transform = bind @ R(rotation).
    """

    index: int
    name: str
    parent: Optional[int]
    bind_transform: np.ndarray
    initialized: bool = True
    children: List[int] = field(default_factory=list)
    local_rotation: np.ndarray = field(default_factory=lambda: IDENTITY_QUATERNION.copy())
    local_transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    world_transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    free_axes: Tuple[bool, bool, bool] = (False, False, False)
    limits: List[Tuple[float, float]] = field(default_factory=list)

    def __post_init__(self):
        # Rest pose never changes after load
        self.bind_transform = np.array(self.bind_transform, dtype=float)
        self.bind_transform.setflags(write=False)

    @property
    def num_free_axes(self) -> int:
        return sum(1 for flag in self.free_axes if flag)

    @property
    def free_axis_indices(self) -> List[int]:
        """Indices (0=x, 1=y, 2=z) of the controllable axes, in x, y, z order"""
        return [axis for axis, flag in enumerate(self.free_axes) if flag]

    @property
    def world_position(self) -> np.ndarray:
        return self.world_transform[:3, 3].copy()

    @property
    def world_rotation(self) -> Rotation:
        return Rotation.from_matrix(self.world_transform[:3, :3])

    def set_constraints(self, free_axes: Sequence[bool], limits: Sequence[Tuple[float, float]]):
        """
        Set the joint's degrees of freedom and their angle ranges

        Args:
            free_axes: Three flags for the local x, y, z axes
            limits: One (min, max) pair in radians per flagged axis, x before y before z
        """
        free_axes = tuple(bool(flag) for flag in free_axes)
        if len(free_axes) != 3:
            raise ValueError(f"free_axes needs 3 flags, got {len(free_axes)}")

        limits = [(float(low), float(high)) for low, high in limits]
        expected = sum(free_axes)
        if len(limits) != expected:
            raise ValueError(
                f"Bone {self.name} has {expected} free axes but {len(limits)} limits"
            )

        self.free_axes = free_axes
        self.limits = limits


class Skeleton:
    """Arena of bones forming one or more rooted trees"""

    def __init__(self):
        self.bones: List[Bone] = []
        self.end_effectors: Dict[int, LimbKind] = {}
        self._names: Dict[str, int] = {}
        self._order: Optional[List[int]] = None

    def __len__(self) -> int:
        return len(self.bones)

    def __iter__(self):
        return iter(self.bones)

    def add_bone(
        self,
        name: str,
        parent: Optional[int] = None,
        translation: Sequence[float] = (0.0, 0.0, 0.0),
        rotation: Optional[Union[Rotation, Sequence[float]]] = None,
        initialized: bool = True,
    ) -> Bone:
        """
        Append a bone to the arena

        The parent has to exist already, so the tree stays acyclic.

        Args:
            name: Unique bone name
            parent: Index of the parent bone, None for a root
            translation: Bind translation relative to the parent
            rotation: Bind orientation relative to the parent
            initialized: Whether the bone takes part in kinematics

        Returns:
            The new bone, already composed and propagated
        """
        if name in self._names:
            raise ValueError(f"Duplicate bone name: {name}")
        if parent is not None and not 0 <= parent < len(self.bones):
            raise ValueError(f"Unknown parent bone index {parent} for {name}")

        bone = Bone(
            index=len(self.bones),
            name=name,
            parent=parent,
            bind_transform=make_transform(translation, rotation),
            initialized=initialized,
        )
        self.bones.append(bone)
        self._names[name] = bone.index
        if parent is not None:
            self.bones[parent].children.append(bone.index)

        self._order = None
        self.compose_local(bone)
        self.propagate(bone)
        return bone

    def bone(self, index: int) -> Bone:
        if not 0 <= index < len(self.bones):
            raise KeyError(f"Unknown bone index {index}")
        return self.bones[index]

    def find(self, name: str) -> Bone:
        if name not in self._names:
            raise KeyError(f"Unknown bone name {name}")
        return self.bones[self._names[name]]

    def set_end_effector(self, index: int, limb: LimbKind):
        """Tag a bone as a hand (ARM) or foot (LEG) end-effector"""
        self.bone(index)
        self.end_effectors[index] = limb

    def limb_kind(self, index: int) -> LimbKind:
        if index not in self.end_effectors:
            raise KeyError(f"Bone {index} is not an end-effector")
        return self.end_effectors[index]

    def compose_local(self, bone: Bone):
        """Recompute the local transform after the local rotation changed"""
        rotation = np.eye(4)
        rotation[:3, :3] = Rotation.from_quat(bone.local_rotation).as_matrix()
        bone.local_transform = bone.bind_transform @ rotation

    def propagate(self, bone: Bone):
        """Recompute the world transform from the parent's current world transform"""
        if bone.parent is None:
            bone.world_transform = bone.local_transform.copy()
        else:
            bone.world_transform = self.bones[bone.parent].world_transform @ bone.local_transform

    def traversal_order(self) -> List[int]:
        """Bone indices in root-to-leaf (breadth-first) order"""
        if self._order is None:
            queue = deque(bone.index for bone in self.bones if bone.parent is None)
            order = []
            while queue:
                index = queue.popleft()
                order.append(index)
                queue.extend(self.bones[index].children)
            self._order = order
        return self._order

    def update_world_transforms(self):
        """Propagate every bone, parents before children"""
        for index in self.traversal_order():
            self.propagate(self.bones[index])

    def chain(self, index: int) -> List[Bone]:
        """
        Kinematic chain of a target bone

        Returns:
            Bones from the target upward, stopping before the first bone that
            is not initialized (the root is normally excluded this way)
        """
        chain = []
        bone = self.bone(index)
        while bone is not None and bone.initialized:
            chain.append(bone)
            bone = self.bones[bone.parent] if bone.parent is not None else None
        return chain

    def set_joint_limits(self, table: Dict):
        """
        Apply a joint limit table keyed by bone name

        Args:
            table: Mapping of bone name to JointLimit
        """
        for name, joint_limit in table.items():
            if name not in self._names:
                logging.warning(f"Joint limit for unknown bone {name} ignored")
                continue
            self.find(name).set_constraints(joint_limit.free_axes, joint_limit.limits)

    def reset_pose(self):
        """Put every bone back into its rest pose"""
        for bone in self.bones:
            bone.local_rotation = IDENTITY_QUATERNION.copy()
            self.compose_local(bone)
        self.update_world_transforms()

    def local_rotations(self) -> np.ndarray:
        """Current local rotations of all bones as an (N, 4) array"""
        return np.array([bone.local_rotation for bone in self.bones])


# Bones point along their local +Y axis, so the hinge joints (elbow, knee)
# bend about local x.
_ARM_LEFT = Rotation.from_euler("z", -90, degrees=True)
_ARM_RIGHT = Rotation.from_euler("z", 90, degrees=True)
_LEG = Rotation.from_euler("x", -90, degrees=True)

# T-pose humanoid, Z up, metres. (name, parent, rest world position, rest world orientation)
HUMANOID_LAYOUT = [
    ("hips", None, (0.0, 0.0, 1.0), None),
    ("spine", "hips", (0.0, 0.0, 1.1), None),
    ("chest", "spine", (0.0, 0.0, 1.3), None),
    ("neck", "chest", (0.0, 0.0, 1.55), None),
    ("head", "neck", (0.0, 0.0, 1.65), None),
    ("left_shoulder", "chest", (0.05, 0.0, 1.5), _ARM_LEFT),
    ("left_upper_arm", "left_shoulder", (0.17, 0.0, 1.5), _ARM_LEFT),
    ("left_forearm", "left_upper_arm", (0.45, 0.0, 1.5), _ARM_LEFT),
    ("left_hand", "left_forearm", (0.7, 0.0, 1.5), _ARM_LEFT),
    ("right_shoulder", "chest", (-0.05, 0.0, 1.5), _ARM_RIGHT),
    ("right_upper_arm", "right_shoulder", (-0.17, 0.0, 1.5), _ARM_RIGHT),
    ("right_forearm", "right_upper_arm", (-0.45, 0.0, 1.5), _ARM_RIGHT),
    ("right_hand", "right_forearm", (-0.7, 0.0, 1.5), _ARM_RIGHT),
    ("left_thigh", "hips", (0.1, 0.0, 0.95), _LEG),
    ("left_calf", "left_thigh", (0.1, 0.0, 0.5), _LEG),
    ("left_foot", "left_calf", (0.1, 0.0, 0.07), _LEG),
    ("right_thigh", "hips", (-0.1, 0.0, 0.95), _LEG),
    ("right_calf", "right_thigh", (-0.1, 0.0, 0.5), _LEG),
    ("right_foot", "right_calf", (-0.1, 0.0, 0.07), _LEG),
]

HUMANOID_END_EFFECTORS = {
    "left_hand": LimbKind.ARM,
    "right_hand": LimbKind.ARM,
    "left_foot": LimbKind.LEG,
    "right_foot": LimbKind.LEG,
}


def create_humanoid_skeleton(config: Optional[Dict] = None) -> Skeleton:
    """
    Factory function to build the default humanoid skeleton

    Args:
        config: Optional dictionary with
            - height_scale: uniform scale of the rest positions (default 1.0)
            - hand_joint_dofs: 6 to give the wrists their own DOFs (default 6)
            - uninitialized: bone names to exclude from kinematics

    Returns:
        Skeleton in T-pose with joint limits and end-effectors set up
    """
    from .joint_limits import build_joint_limit_table

    config = config or {}
    scale = float(config.get("height_scale", 1.0))
    hand_joint_dofs = int(config.get("hand_joint_dofs", 6))
    uninitialized = set(config.get("uninitialized", ()))

    if scale <= 0:
        raise ValueError(f"height_scale must be positive, got {scale}")

    skeleton = Skeleton()
    rest_world = {}
    for name, parent, position, orientation in HUMANOID_LAYOUT:
        rest_world[name] = make_transform(np.asarray(position) * scale, orientation)
        if parent is None:
            local = rest_world[name]
            parent_index = None
        else:
            local = np.linalg.inv(rest_world[parent]) @ rest_world[name]
            parent_index = skeleton.find(parent).index

        skeleton.add_bone(
            name,
            parent=parent_index,
            translation=local[:3, 3],
            rotation=Rotation.from_matrix(local[:3, :3]),
            # the root only carries the avatar's placement
            initialized=parent is not None and name not in uninitialized,
        )

    skeleton.set_joint_limits(build_joint_limit_table(hand_joint_dofs))

    for name, limb in HUMANOID_END_EFFECTORS.items():
        skeleton.set_end_effector(skeleton.find(name).index, limb)

    return skeleton
