import numpy as np
import pytest

from bodymodel.inverse_kinematics import LimbKind, Skeleton, create_humanoid_skeleton
from tests.helpers import pose_bone


def test_world_transform_is_parent_world_times_local(humanoid):
    pose_bone(humanoid, "left_upper_arm", (0.3, -0.2, 0.4))
    pose_bone(humanoid, "left_forearm", (0.9, 0.0, 0.0))
    pose_bone(humanoid, "right_thigh", (-0.5, 0.1, 0.2))

    for bone in humanoid:
        if bone.parent is None:
            np.testing.assert_allclose(bone.world_transform, bone.local_transform)
        else:
            parent = humanoid.bone(bone.parent)
            np.testing.assert_allclose(bone.world_transform, parent.world_transform @ bone.local_transform)


def test_compose_local_applies_rotation_on_top_of_bind(humanoid):
    bone = pose_bone(humanoid, "left_forearm", (0.5, 0.0, 0.0))

    expected = bone.bind_transform.copy()
    expected[:3, :3] = bone.bind_transform[:3, :3] @ np.array([
        [1.0, 0.0, 0.0],
        [0.0, np.cos(0.5), -np.sin(0.5)],
        [0.0, np.sin(0.5), np.cos(0.5)],
    ])
    np.testing.assert_allclose(bone.local_transform, expected, atol=1e-12)


def test_humanoid_rest_pose_positions(humanoid):
    np.testing.assert_allclose(humanoid.find("left_hand").world_position, [0.7, 0.0, 1.5], atol=1e-12)
    np.testing.assert_allclose(humanoid.find("right_hand").world_position, [-0.7, 0.0, 1.5], atol=1e-12)
    np.testing.assert_allclose(humanoid.find("left_foot").world_position, [0.1, 0.0, 0.07], atol=1e-12)


def test_height_scale_scales_rest_positions():
    skeleton = create_humanoid_skeleton({"height_scale": 2.0})
    np.testing.assert_allclose(skeleton.find("head").world_position, [0.0, 0.0, 3.3], atol=1e-12)

    with pytest.raises(ValueError):
        create_humanoid_skeleton({"height_scale": 0.0})


def test_rotating_parent_moves_descendants_after_propagation(humanoid):
    hand = humanoid.find("left_hand")
    before = hand.world_position

    upper_arm = humanoid.find("left_upper_arm")
    upper_arm.local_rotation = np.array([np.sin(0.25), 0.0, 0.0, np.cos(0.25)])
    humanoid.compose_local(upper_arm)
    np.testing.assert_allclose(hand.world_position, before)

    humanoid.update_world_transforms()
    assert not np.allclose(hand.world_position, before)


def test_traversal_order_visits_parents_first(humanoid):
    order = humanoid.traversal_order()
    position = {index: i for i, index in enumerate(order)}

    assert sorted(order) == list(range(len(humanoid)))
    for bone in humanoid:
        if bone.parent is not None:
            assert position[bone.parent] < position[bone.index]


def test_chain_stops_at_uninitialized_root(humanoid):
    chain = humanoid.chain(humanoid.find("left_hand").index)
    assert [bone.name for bone in chain] == [
        "left_hand", "left_forearm", "left_upper_arm", "left_shoulder", "chest", "spine"
    ]

    chain = humanoid.chain(humanoid.find("right_foot").index)
    assert [bone.name for bone in chain] == ["right_foot", "right_calf", "right_thigh"]


def test_end_effectors_are_tagged_by_limb(humanoid):
    assert humanoid.limb_kind(humanoid.find("left_hand").index) == LimbKind.ARM
    assert humanoid.limb_kind(humanoid.find("right_foot").index) == LimbKind.LEG

    with pytest.raises(KeyError):
        humanoid.limb_kind(humanoid.find("spine").index)


def test_constraints_need_one_limit_per_free_axis():
    skeleton = Skeleton()
    bone = skeleton.add_bone("joint")

    with pytest.raises(ValueError):
        bone.set_constraints((True, True, False), [(0.0, 1.0)])

    bone.set_constraints((True, False, True), [(0.0, 1.0), (-1.0, 0.5)])
    assert bone.num_free_axes == 2
    assert bone.free_axis_indices == [0, 2]


def test_add_bone_rejects_bad_input():
    skeleton = Skeleton()
    skeleton.add_bone("root")

    with pytest.raises(ValueError):
        skeleton.add_bone("root")
    with pytest.raises(ValueError):
        skeleton.add_bone("orphan", parent=5)
    with pytest.raises(KeyError):
        skeleton.find("missing")
    with pytest.raises(KeyError):
        skeleton.bone(3)


def test_bind_transform_is_read_only(humanoid):
    bone = humanoid.find("left_forearm")
    with pytest.raises(ValueError):
        bone.bind_transform[0, 3] = 1.0


def test_reset_pose_restores_rest_pose(humanoid):
    rest = humanoid.find("left_hand").world_position
    pose_bone(humanoid, "left_upper_arm", (0.4, 0.4, 0.4))

    humanoid.reset_pose()

    np.testing.assert_allclose(humanoid.find("left_hand").world_position, rest, atol=1e-12)
    np.testing.assert_allclose(humanoid.find("left_upper_arm").local_rotation, [0.0, 0.0, 0.0, 1.0])


def test_uninitialized_bones_from_config():
    skeleton = create_humanoid_skeleton({"uninitialized": ["left_hand"]})
    assert not skeleton.find("left_hand").initialized
    assert not skeleton.find("hips").initialized
    assert skeleton.find("right_hand").initialized
