from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .config import FRONT
from .features.fusion import FeatureVector
from .vision.pose_estimation import Pose
from .vision.silhouette import Silhouette

GALLERY = "gallery"
PROBE = "probe"


@dataclass(frozen=True, eq=False)
class SubjectImage:
    """A decoded photograph entering the pipeline, tagged at ingestion."""

    id: str
    role: str  # GALLERY | PROBE
    image: np.ndarray  # BGR, uint8
    view: str = FRONT


@dataclass(frozen=True, eq=False)
class SubjectImageRecord:
    id: str
    role: str
    view: str
    silhouette: Silhouette
    silhouette_image: np.ndarray
    pose: Pose | None
    feature: FeatureVector
    moments: np.ndarray | None = None

    @property
    def centroid(self) -> Tuple[float, float]:
        return self.silhouette.centroid

    @property
    def bbox(self) -> Tuple[int, int, int, int]:
        return self.silhouette.bbox

    @property
    def incomplete(self) -> bool:
        return self.feature.incomplete
