"""Foreground segmentation of a single walking subject.

Two segmenters share one result contract:

- `KMeansSegmenter` clusters the Lab colours of the frame into two classes,
  labels 8-connected regions of each class, and takes the component at the
  configured area rank (by default the second largest, the largest being the
  background).
- `MedianBackgroundSegmenter` thresholds each frame against a per-pixel median
  background built from a set of frames and keeps the largest foreground
  component.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import cv2
import numpy as np

from ..config import CropConfig, SegmentationConfig
from ..errors import SegmentationFailure
from .silhouette import Silhouette

logger = logging.getLogger(__name__)


@dataclass
class Component:
    area: int
    value: int  # cluster / foreground value the component was labelled from
    index: int  # label within that value's label map


@dataclass
class SegmentationResult:
    image: np.ndarray  # original colours inside the mask, fill colour outside
    silhouette: Silhouette
    component_areas: Tuple[int, ...]


def prepare_image(image: np.ndarray, crop: CropConfig) -> np.ndarray:
    """Centre-crop and rescale a BGR frame before segmentation."""
    if image is None or image.size == 0:
        raise SegmentationFailure("empty image")
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    elif image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)

    h, w = image.shape[:2]
    cw = min(crop.width or w, w)
    ch = min(crop.height or h, h)
    cx = w // 2 + crop.offset_x
    cy = h // 2 + crop.offset_y
    x1 = int(np.clip(cx - cw // 2, 0, w - cw))
    y1 = int(np.clip(cy - ch // 2, 0, h - ch))
    out = image[y1 : y1 + ch, x1 : x1 + cw]

    if crop.resize_factor != 1.0:
        out = cv2.resize(
            out, None, fx=crop.resize_factor, fy=crop.resize_factor, interpolation=cv2.INTER_AREA
        )
    return np.ascontiguousarray(out)


def label_components(
    label_map: np.ndarray, values: Iterable[int]
) -> Tuple[List[Component], dict]:
    """Label 8-connected regions of each value in `label_map`.

    Returns the components sorted by area (largest first, ties keep labelling
    order) and the per-value label maps needed to rebuild a component's mask.
    """
    components: List[Component] = []
    maps = {}
    for value in values:
        binary = (label_map == value).astype(np.uint8)
        n, labels, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=8)
        maps[value] = labels
        for i in range(1, n):
            components.append(
                Component(area=int(stats[i, cv2.CC_STAT_AREA]), value=value, index=i)
            )
    components.sort(key=lambda c: -c.area)
    return components, maps


def select_component(
    components: Sequence[Component], rank: int, min_area: int, tolerance: float
) -> Component:
    if len(components) <= rank:
        raise SegmentationFailure(
            f"found {len(components)} connected components, need at least {rank + 1}"
        )
    chosen = components[rank]
    if chosen.area < min_area:
        raise SegmentationFailure(
            f"selected component area {chosen.area} is below the minimum {min_area}"
        )
    for j in (rank - 1, rank + 1):
        if 0 <= j < len(components):
            other = components[j].area
            if abs(other - chosen.area) <= tolerance * max(other, chosen.area):
                raise SegmentationFailure(
                    f"ambiguous component ordering: areas {chosen.area} and {other}"
                )
    return chosen


def _build_result(
    image: np.ndarray, mask: np.ndarray, components: Sequence[Component], fill: Sequence[int]
) -> SegmentationResult:
    silhouette = Silhouette.from_mask(mask)
    out = image.copy()
    out[~silhouette.mask] = np.asarray(fill, dtype=out.dtype)[: out.shape[2]]
    return SegmentationResult(
        image=out,
        silhouette=silhouette,
        component_areas=tuple(c.area for c in components),
    )


class KMeansSegmenter:
    """Two-colour k-means segmentation in CIE Lab.

    The clustering is seeded deterministically (farthest-colour initial labels,
    a single attempt) and the two centres are ordered darkest first, so the same
    frame always yields the same assignment.
    """

    def __init__(self, cfg: SegmentationConfig):
        self.cfg = cfg

    def cluster(self, image: np.ndarray) -> np.ndarray:
        """Return an (H, W) map of cluster labels, 0 being the darker centre."""
        h, w = image.shape[:2]
        lab = cv2.cvtColor(image.astype(np.float32) / 255.0, cv2.COLOR_BGR2LAB)
        if self.cfg.blur_sigma > 0:
            lab = cv2.GaussianBlur(lab, (0, 0), self.cfg.blur_sigma)
        data = np.ascontiguousarray(lab.reshape(-1, 3), dtype=np.float32)

        if float(np.ptp(data, axis=0).max()) < 1e-6:
            raise SegmentationFailure("image has a single colour")

        # farthest colour from the first pixel seeds the second class
        dist_first = np.linalg.norm(data - data[0], axis=1)
        far = data[int(np.argmax(dist_first))]
        dist_far = np.linalg.norm(data - far, axis=1)
        init = (dist_far < dist_first).astype(np.int32).reshape(-1, 1)

        criteria = (
            cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER,
            self.cfg.kmeans_max_iter,
            self.cfg.kmeans_epsilon,
        )
        _, labels, centers = cv2.kmeans(
            data, 2, init, criteria, 1, cv2.KMEANS_USE_INITIAL_LABELS
        )
        labels = labels.reshape(h, w)
        if centers[0, 0] > centers[1, 0]:
            labels = 1 - labels
        return labels

    def segment(self, image: np.ndarray) -> SegmentationResult:
        labels = self.cluster(image)
        components, maps = label_components(labels, (0, 1))
        chosen = select_component(
            components,
            rank=self.cfg.component_rank,
            min_area=self.cfg.min_component_area,
            tolerance=self.cfg.ambiguity_tolerance,
        )
        logger.debug(
            "kmeans segmentation: %d components, chose rank %d with area %d",
            len(components),
            self.cfg.component_rank,
            chosen.area,
        )
        mask = maps[chosen.value] == chosen.index
        return _build_result(image, mask, components, self.cfg.fill_colour)


def build_median_background(images: Sequence[np.ndarray]) -> np.ndarray:
    """Per-pixel median grey level over equally sized frames."""
    if not images:
        raise ValueError("Cannot build a background model from zero images")
    grays = []
    for img in images:
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY) if img.ndim == 3 else img
        if grays and gray.shape != grays[0].shape:
            raise ValueError(
                f"Background images must share one size: {gray.shape} != {grays[0].shape}"
            )
        grays.append(gray.astype(np.float32))
    return np.median(np.stack(grays, axis=0), axis=0).astype(np.float32)


class MedianBackgroundSegmenter:
    """Background subtraction against a median background frame."""

    def __init__(self, background: np.ndarray, cfg: SegmentationConfig):
        self.background = background
        self.cfg = cfg

    def segment(self, image: np.ndarray) -> SegmentationResult:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY).astype(np.float32)
        if gray.shape != self.background.shape:
            raise SegmentationFailure(
                f"frame size {gray.shape} does not match the background {self.background.shape}"
            )
        foreground = (np.abs(gray - self.background) >= self.cfg.background_threshold).astype(
            np.int32
        )
        components, maps = label_components(foreground, (1,))
        chosen = select_component(
            components,
            rank=0,
            min_area=self.cfg.min_component_area,
            tolerance=self.cfg.ambiguity_tolerance,
        )
        mask = maps[chosen.value] == chosen.index
        return _build_result(image, mask, components, self.cfg.fill_colour)


def make_segmenter(cfg: SegmentationConfig, background: np.ndarray | None = None):
    if cfg.method == "kmeans":
        return KMeansSegmenter(cfg)
    if cfg.method == "median_background":
        if background is None:
            raise ValueError("median_background segmentation needs a background frame")
        return MedianBackgroundSegmenter(background, cfg)
    raise ValueError(f"Unknown segmentation method: {cfg.method}")
