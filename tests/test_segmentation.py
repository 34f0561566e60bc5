import numpy as np
import pytest

from conftest import draw_walker
from gait_signature.config import CropConfig, SegmentationConfig
from gait_signature.errors import SegmentationFailure
from gait_signature.vision.segmentation import (
    Component,
    KMeansSegmenter,
    MedianBackgroundSegmenter,
    build_median_background,
    make_segmenter,
    prepare_image,
    select_component,
)
from gait_signature.vision.silhouette import Silhouette


def test_kmeans_segmenter_isolates_figure(walker):
    result = KMeansSegmenter(SegmentationConfig()).segment(walker)
    figure = walker[:, :, 0] == 0
    sil = result.silhouette

    # blur can move the edge by a pixel either way, never more
    overlap = np.logical_and(sil.mask, figure).sum() / figure.sum()
    assert overlap > 0.9
    assert abs(sil.area - figure.sum()) < 0.15 * figure.sum()
    assert sil.bbox_contains(*sil.centroid)
    assert len(result.component_areas) >= 2


def test_segmented_image_keeps_colours_inside_mask_only(walker):
    result = KMeansSegmenter(SegmentationConfig(fill_colour=(10, 20, 30))).segment(walker)
    mask = result.silhouette.mask
    assert result.image.shape == walker.shape
    assert np.array_equal(result.image[mask], walker[mask])
    assert np.all(result.image[~mask] == np.array([10, 20, 30], dtype=np.uint8))


def test_kmeans_segmentation_is_deterministic(walker):
    seg = KMeansSegmenter(SegmentationConfig())
    a = seg.segment(walker).silhouette
    b = seg.segment(walker.copy()).silhouette
    assert np.array_equal(a.mask, b.mask)
    assert a.centroid == b.centroid


def test_single_colour_image_fails():
    img = np.full((40, 40, 3), 128, dtype=np.uint8)
    with pytest.raises(SegmentationFailure):
        KMeansSegmenter(SegmentationConfig()).segment(img)


def test_tiny_component_fails(walker):
    cfg = SegmentationConfig(min_component_area=100_000)
    with pytest.raises(SegmentationFailure):
        KMeansSegmenter(cfg).segment(walker)


def test_select_component_rejects_ties_and_missing_ranks():
    comps = [Component(area=500, value=0, index=1), Component(area=200, value=1, index=1)]
    assert select_component(comps, rank=1, min_area=10, tolerance=0.02).area == 200

    with pytest.raises(SegmentationFailure):
        select_component(comps[:1], rank=1, min_area=10, tolerance=0.02)

    tied = comps + [Component(area=199, value=1, index=2)]
    with pytest.raises(SegmentationFailure, match="ambiguous"):
        select_component(tied, rank=1, min_area=10, tolerance=0.02)


def test_component_rank_is_a_policy(walker):
    # rank 0 picks the background instead of the person
    result = KMeansSegmenter(SegmentationConfig(component_rank=0)).segment(walker)
    assert result.silhouette.area > (walker[:, :, 0] == 0).sum()


def test_median_background_segmenter():
    empty = np.full((120, 80, 3), 255, dtype=np.uint8)
    background = build_median_background([empty, empty, draw_walker()])
    assert background.shape == (120, 80)
    assert np.all(background == 255)

    seg = MedianBackgroundSegmenter(background, SegmentationConfig())
    sil = seg.segment(draw_walker()).silhouette
    assert np.array_equal(sil.mask, draw_walker()[:, :, 0] == 0)


def test_median_background_rejects_mixed_sizes():
    with pytest.raises(ValueError):
        build_median_background([np.zeros((10, 10, 3), np.uint8), np.zeros((12, 10, 3), np.uint8)])


def test_make_segmenter_needs_background_for_median_method():
    with pytest.raises(ValueError):
        make_segmenter(SegmentationConfig(method="median_background"))
    with pytest.raises(ValueError):
        make_segmenter(SegmentationConfig(method="watershed"))


def test_prepare_image_crops_and_resizes(walker):
    out = prepare_image(walker, CropConfig(width=40, height=60, resize_factor=0.5))
    assert out.shape == (30, 20, 3)

    # crop larger than the frame is clamped
    assert prepare_image(walker, CropConfig(width=500, height=500)).shape == walker.shape

    gray = walker[:, :, 0]
    assert prepare_image(gray, CropConfig()).shape == walker.shape


def test_silhouette_geometry_is_derived_from_mask():
    mask = np.zeros((20, 30), dtype=bool)
    mask[5:15, 10:20] = True
    sil = Silhouette.from_mask(mask)
    assert sil.centroid == (14.5, 9.5)
    assert sil.bbox == (10, 5, 10, 10)
    assert sil.area == 100
    assert sil.boundary.shape[1] == 2
    assert not sil.mask.flags.writeable

    mask[:] = False  # the silhouette owns its own copy
    assert sil.area == 100

    with pytest.raises(SegmentationFailure):
        Silhouette.from_mask(np.zeros((5, 5), dtype=bool))
