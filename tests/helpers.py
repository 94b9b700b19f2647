import numpy as np
from scipy.spatial.transform import Rotation


def rotation_angle_between(q1, q2) -> float:
    return (Rotation.from_quat(q1) * Rotation.from_quat(q2).inv()).magnitude()


def snapshot(skeleton):
    return (
        skeleton.local_rotations().copy(),
        np.array([bone.world_transform for bone in skeleton]),
        np.array([bone.local_transform for bone in skeleton]),
    )


def assert_snapshot_equal(before, after):
    for expected, actual in zip(before, after):
        np.testing.assert_array_equal(expected, actual)


def pose_bone(skeleton, name, angles):
    """Set a bone's local rotation from intrinsic XYZ Euler angles (radians)"""
    bone = skeleton.find(name)
    bone.local_rotation = Rotation.from_euler("XYZ", angles).as_quat()
    skeleton.compose_local(bone)
    skeleton.update_world_transforms()
    return bone


def dof_labels(chain):
    """(bone name, axis name) for every entry of a delta vector"""
    return [(bone.name, "xyz"[axis]) for bone in chain for axis in bone.free_axis_indices]
