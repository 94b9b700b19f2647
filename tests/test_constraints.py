import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from bodymodel.inverse_kinematics import InverseKinematicsSolver, JointConstraintEnforcer
from tests.helpers import pose_bone, rotation_angle_between


@pytest.mark.parametrize("low, high", [(-1.0, 2.0), (2.0, -1.0), (0.5, 0.5)])
def test_clamp_value_stays_in_range_for_any_bound_order(low, high):
    for value in np.linspace(-4.0, 4.0, 33):
        clamped, _ = JointConstraintEnforcer.clamp_value(low, high, value)
        assert min(low, high) <= clamped <= max(low, high)


def test_clamp_value_reports_clamping():
    assert JointConstraintEnforcer.clamp_value(0.0, 1.0, 0.5) == (0.5, False)
    assert JointConstraintEnforcer.clamp_value(0.0, 1.0, -0.5) == (0.0, True)
    assert JointConstraintEnforcer.clamp_value(0.0, 1.0, 1.5) == (1.0, True)
    # reversed bounds are swapped, not rejected
    assert JointConstraintEnforcer.clamp_value(1.0, 0.0, 1.5) == (1.0, True)


def test_hinge_delta_below_range_is_clamped_to_zero(hinge_skeleton):
    hinge = hinge_skeleton.find("hinge")
    tip = hinge_skeleton.find("tip")
    solver = InverseKinematicsSolver(hinge_skeleton)

    solver.apply_changes([np.radians(-20)], tip.index)
    angle = Rotation.from_quat(hinge.local_rotation).as_euler("XYZ")[0]
    assert angle == pytest.approx(np.radians(-20))

    value, clamped = JointConstraintEnforcer.clamp_value(0.0, np.radians(140), angle)
    assert clamped
    assert value == 0.0

    assert solver.enforcer.apply(hinge_skeleton, tip.index) == 1
    np.testing.assert_allclose(Rotation.from_quat(hinge.local_rotation).as_euler("XYZ"), 0.0, atol=1e-12)


def test_constrain_bone_keeps_rotation_within_limits(humanoid):
    enforcer = JointConstraintEnforcer()
    bone = pose_bone(humanoid, "left_forearm", (-1.0, 0.0, 0.0))

    assert enforcer.constrain_bone(humanoid, bone)

    angles = Rotation.from_quat(bone.local_rotation).as_euler("XYZ")
    assert angles[0] == pytest.approx(-np.pi / 18)
    assert np.linalg.norm(bone.local_rotation) == pytest.approx(1.0)


def test_constrain_bone_leaves_valid_rotation_alone(humanoid):
    enforcer = JointConstraintEnforcer()
    bone = pose_bone(humanoid, "left_upper_arm", (0.3, 0.2, -0.4))
    before = bone.local_rotation.copy()

    assert not enforcer.constrain_bone(humanoid, bone)
    assert rotation_angle_between(before, bone.local_rotation) < 1e-9


def test_mirrored_limits_are_ordered_before_clamping(humanoid):
    enforcer = JointConstraintEnforcer()
    # right shoulder y range is stored as (pi/2, -pi/2)
    bone = pose_bone(humanoid, "right_upper_arm", (0.0, 0.5, 0.0))

    assert not enforcer.constrain_bone(humanoid, bone)

    # right hip z range is stored as (5pi/18, -5pi/18)
    bone = pose_bone(humanoid, "right_thigh", (0.0, 0.0, 1.2))
    assert enforcer.constrain_bone(humanoid, bone)
    angles = Rotation.from_quat(bone.local_rotation).as_euler("XYZ")
    assert angles[2] == pytest.approx(5 * np.pi / 18)


def test_enforcer_is_idempotent(humanoid):
    enforcer = JointConstraintEnforcer()
    pose_bone(humanoid, "left_hand", (0.9, 0.0, -1.5))
    pose_bone(humanoid, "left_forearm", (-1.0, 0.0, 0.0))
    pose_bone(humanoid, "left_upper_arm", (0.5, 0.3, -3.0))
    hand_index = humanoid.find("left_hand").index

    assert enforcer.apply(humanoid, hand_index) == 3
    first = humanoid.local_rotations().copy()

    enforcer.apply(humanoid, hand_index)
    second = humanoid.local_rotations()

    for q1, q2 in zip(first, second):
        assert rotation_angle_between(q1, q2) < 1e-9


def test_zero_delta_leaves_shoulder_and_pose_unchanged(humanoid):
    solver = InverseKinematicsSolver(humanoid)
    hand_index = humanoid.find("left_hand").index
    shoulder = humanoid.find("left_upper_arm")
    rotation_before = shoulder.local_rotation.copy()
    world_before = shoulder.world_transform.copy()
    hand_before = humanoid.find("left_hand").world_transform.copy()

    # hand x/z, elbow x, shoulder x/y/z
    solver.apply_changes(np.zeros(6), hand_index)
    solver.enforcer.apply(humanoid, hand_index)
    humanoid.update_world_transforms()

    np.testing.assert_allclose(shoulder.local_rotation, rotation_before, atol=1e-12)
    np.testing.assert_allclose(shoulder.world_transform, world_before, atol=1e-12)
    np.testing.assert_allclose(humanoid.find("left_hand").world_transform, hand_before, atol=1e-12)
