from typing import Iterable, List, Sequence, Tuple

import numpy as np

from ..vision.pose_estimation import JOINT_INDEX, Pose
from .descriptor import DescriptorVector

# Joints measured against the centroid. Wrists are left out.
RADIAL_JOINTS = (
    "nose",
    "right_eye",
    "left_eye",
    "right_ear",
    "left_ear",
    "right_shoulder",
    "left_shoulder",
    "right_elbow",
    "left_elbow",
    "right_hip",
    "left_hip",
    "right_knee",
    "left_knee",
    "right_ankle",
    "left_ankle",
)

FACE_PAIRS = (
    ("left_ear", "left_eye"),
    ("left_eye", "nose"),
    ("nose", "right_eye"),
    ("right_eye", "right_ear"),
    ("left_ear", "right_ear"),
)

WIDTH_PAIRS = (
    ("left_shoulder", "right_shoulder"),
    ("left_elbow", "right_elbow"),
    ("left_hip", "right_hip"),
    ("left_knee", "right_knee"),
    ("left_ankle", "right_ankle"),
)

HEIGHT_PAIRS = (
    ("left_elbow", "left_shoulder"),
    ("right_elbow", "right_shoulder"),
    ("left_hip", "left_shoulder"),
    ("right_hip", "right_shoulder"),
    ("left_hip", "left_elbow"),
    ("right_hip", "right_elbow"),
    ("left_hip", "left_knee"),
    ("right_hip", "right_knee"),
    ("left_knee", "left_ankle"),
    ("right_knee", "right_ankle"),
)

GROUP_ORDER = ("radial", "face", "widths", "heights")
GROUP_SIZES = {
    "radial": len(RADIAL_JOINTS),
    "face": len(FACE_PAIRS),
    "widths": len(WIDTH_PAIRS),
    "heights": len(HEIGHT_PAIRS),
}


def point_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean pixel distance; NaN when either point is missing."""
    return float(np.hypot(float(a[0]) - float(b[0]), float(a[1]) - float(b[1])))


def ordered_groups(groups: Iterable[str]) -> Tuple[str, ...]:
    groups = set(groups)
    unknown = groups.difference(GROUP_ORDER)
    if unknown:
        raise ValueError(f"Unknown joint groups: {sorted(unknown)}")
    return tuple(g for g in GROUP_ORDER if g in groups)


def descriptor_length(groups: Iterable[str]) -> int:
    return sum(GROUP_SIZES[g] for g in ordered_groups(groups))


def _group_distances(pose: Pose, centroid: Sequence[float], group: str) -> List[float]:
    if group == "radial":
        return [point_distance(pose.joint(name), centroid) for name in RADIAL_JOINTS]
    pairs = {"face": FACE_PAIRS, "widths": WIDTH_PAIRS, "heights": HEIGHT_PAIRS}[group]
    return [point_distance(pose.joint(a), pose.joint(b)) for a, b in pairs]


def joint_geometry_descriptor(
    pose: Pose | None, centroid: Sequence[float], groups: Iterable[str]
) -> DescriptorVector:
    """Pairwise joint distances for the enabled groups, in canonical group order.

    Distances touching a missing joint are zero-filled and the descriptor is
    flagged incomplete; with no pose at all every entry is zero.
    """
    groups = ordered_groups(groups)
    length = descriptor_length(groups)
    if pose is None:
        return DescriptorVector(
            source="joints",
            values=np.zeros(length, dtype=np.float64),
            incomplete=True,
            meta={"groups": list(groups), "missing_joints": len(JOINT_INDEX)},
        )

    distances: List[float] = []
    for group in groups:
        distances.extend(_group_distances(pose, centroid, group))
    values = np.asarray(distances, dtype=np.float64)
    missing = np.isnan(values)
    values[missing] = 0.0

    return DescriptorVector(
        source="joints",
        values=values,
        incomplete=bool(missing.any()),
        meta={"groups": list(groups), "missing_joints": int(pose.missing.sum())},
    )
