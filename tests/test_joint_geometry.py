import numpy as np
import pytest

from gait_signature.features.joint_geometry import (
    GROUP_SIZES,
    JOINT_INDEX,
    descriptor_length,
    joint_geometry_descriptor,
    ordered_groups,
    point_distance,
)
from gait_signature.vision.pose_estimation import Pose


def _pose() -> Pose:
    rng = np.random.default_rng(7)
    return Pose(joints=rng.uniform(0, 200, size=(17, 2)))


def test_point_distance_is_symmetric():
    pose = _pose()
    for a in range(17):
        for b in range(17):
            assert point_distance(pose.joints[a], pose.joints[b]) == point_distance(
                pose.joints[b], pose.joints[a]
            )
    assert point_distance((0, 0), (3, 4)) == 5.0


def test_descriptor_layout_follows_groups():
    pose = _pose()
    centroid = (100.0, 100.0)
    full = joint_geometry_descriptor(pose, centroid, ("radial", "face", "widths", "heights"))
    assert len(full) == 35
    assert not full.incomplete

    radial = joint_geometry_descriptor(pose, centroid, ("radial",))
    assert len(radial) == GROUP_SIZES["radial"] == 15
    np.testing.assert_allclose(full.values[:15], radial.values)
    assert radial.values[0] == pytest.approx(
        np.hypot(*(pose.joints[JOINT_INDEX["nose"]] - np.array(centroid)))
    )

    # group order in the vector is canonical, not the order asked for
    swapped = joint_geometry_descriptor(pose, centroid, ("heights", "radial"))
    np.testing.assert_allclose(swapped.values[:15], radial.values)


def test_width_entries():
    pose = _pose()
    desc = joint_geometry_descriptor(pose, (0.0, 0.0), ("widths",))
    ls, rs = pose.joints[JOINT_INDEX["left_shoulder"]], pose.joints[JOINT_INDEX["right_shoulder"]]
    assert desc.values[0] == pytest.approx(np.linalg.norm(ls - rs))


def test_missing_joints_are_zero_filled_and_flagged():
    pose = _pose()
    pose.joints[JOINT_INDEX["nose"]] = np.nan
    desc = joint_geometry_descriptor(pose, (50.0, 50.0), ("radial", "face"))

    assert desc.incomplete
    assert desc.meta["missing_joints"] == 1
    assert desc.values[0] == 0.0  # nose to centroid
    assert desc.values[15 + 1] == 0.0  # left eye to nose
    assert desc.values[15 + 2] == 0.0  # nose to right eye
    assert np.all(np.isfinite(desc.values))
    assert np.count_nonzero(desc.values) == len(desc) - 3


def test_no_pose_gives_incomplete_zero_vector():
    desc = joint_geometry_descriptor(None, (0.0, 0.0), ("radial", "widths"))
    assert desc.incomplete
    assert len(desc) == 20
    assert not desc.values.any()


def test_unknown_group_rejected():
    with pytest.raises(ValueError):
        ordered_groups(["radial", "tail"])
    assert descriptor_length(["face", "heights"]) == 15
