from dataclasses import dataclass
from typing import Mapping, Sequence, Tuple

import numpy as np

from ..config import PipelineConfig
from ..vision.pose_estimation import Pose
from ..vision.silhouette import Silhouette
from .descriptor import DescriptorVector
from .joint_geometry import joint_geometry_descriptor
from .moments import moment_descriptor
from .polar_histogram import silhouette_descriptor
from .region_histogram import region_histogram

PRODUCERS = ("silhouette", "joints", "regions", "moments")


@dataclass(frozen=True, eq=False)
class FeatureVector:
    parts: Tuple[DescriptorVector, ...]

    def __post_init__(self):
        values = (
            np.concatenate([p.values for p in self.parts], axis=0)
            if self.parts
            else np.zeros(0, dtype=np.float64)
        )
        values.setflags(write=False)
        object.__setattr__(self, "_values", values)

    def as_array(self) -> np.ndarray:
        return self._values

    def __len__(self) -> int:
        return int(self._values.shape[0])

    @property
    def sources(self) -> Tuple[str, ...]:
        return tuple(p.source for p in self.parts)

    @property
    def incomplete(self) -> bool:
        return any(p.incomplete for p in self.parts)

    def to_dict(self) -> dict:
        return {"parts": [p.to_dict() for p in self.parts]}

    @staticmethod
    def from_dict(payload: dict) -> "FeatureVector":
        return FeatureVector(
            parts=tuple(DescriptorVector.from_dict(p) for p in payload.get("parts", []))
        )


def fuse_features(
    descriptors: Mapping[str, DescriptorVector], order: Sequence[str], norm: str = "l2"
) -> FeatureVector:
    """Normalise each descriptor on its own and concatenate them in `order`."""
    missing = [name for name in order if name not in descriptors]
    if missing:
        raise ValueError(f"No descriptor computed for: {missing}")
    return FeatureVector(parts=tuple(descriptors[name].normalize(norm) for name in order))


def extract_descriptors(
    silhouette: Silhouette, pose: Pose | None, view: str, cfg: PipelineConfig
) -> dict:
    descriptors = {}
    for name in cfg.fusion.producers:
        if name == "silhouette":
            descriptors[name] = silhouette_descriptor(silhouette, cfg.silhouette)
        elif name == "joints":
            groups = cfg.joints.groups_by_view.get(view)
            if groups is None:
                raise ValueError(f"No joint groups configured for view {view!r}")
            descriptors[name] = joint_geometry_descriptor(pose, silhouette.centroid, groups)
        elif name == "regions":
            descriptors[name] = region_histogram(silhouette, cfg.regions)
        elif name == "moments":
            descriptors[name] = moment_descriptor(silhouette)
        else:
            raise ValueError(f"Unknown descriptor producer: {name}")
    return descriptors


def build_feature_vector(
    silhouette: Silhouette, pose: Pose | None, view: str, cfg: PipelineConfig
) -> FeatureVector:
    descriptors = extract_descriptors(silhouette, pose, view, cfg)
    return fuse_features(descriptors, cfg.fusion.producers, cfg.fusion.norm)
