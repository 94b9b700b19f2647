import numpy as np
import pytest

from bodymodel.inverse_kinematics import LimbKind, Skeleton, create_humanoid_skeleton


@pytest.fixture
def humanoid():
    return create_humanoid_skeleton()


@pytest.fixture
def hinge_skeleton():
    """base (not initialized) -> hinge (x only, 0..140 deg) -> tip"""
    skeleton = Skeleton()
    base = skeleton.add_bone("base", initialized=False)
    hinge = skeleton.add_bone("hinge", parent=base.index, translation=(0.0, 0.0, 0.5))
    tip = skeleton.add_bone("tip", parent=hinge.index, translation=(0.0, 1.0, 0.0))
    hinge.set_constraints((True, False, False), [(0.0, np.radians(140))])
    skeleton.set_end_effector(tip.index, LimbKind.ARM)
    return skeleton


@pytest.fixture
def rigid_skeleton():
    """Chain without any free axis"""
    skeleton = Skeleton()
    base = skeleton.add_bone("base", initialized=False)
    link = skeleton.add_bone("link", parent=base.index, translation=(0.0, 0.0, 1.0))
    tip = skeleton.add_bone("tip", parent=link.index, translation=(0.0, 0.5, 0.0))
    skeleton.set_end_effector(tip.index, LimbKind.LEG)
    return skeleton
