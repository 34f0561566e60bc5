import json
from pathlib import Path

import pytest

from gait_signature.config import DEFAULT_SEED, PipelineConfig, load_pipeline_config
from gait_signature.features.joint_geometry import descriptor_length


def test_missing_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("GS_GLOBAL_SEED", raising=False)
    assert load_pipeline_config(tmp_path / "nope.json") == PipelineConfig()
    assert load_pipeline_config(None).seed == DEFAULT_SEED


def test_partial_config_overrides_nested_keys(tmp_path, monkeypatch):
    monkeypatch.delenv("GS_GLOBAL_SEED", raising=False)
    path = tmp_path / "pipeline.json"
    path.write_text(
        json.dumps(
            {
                "segmentation": {"blur_sigma": 1.5, "crop": {"width": 100}},
                "fusion": {"producers": ["silhouette", "regions"]},
                "joints": {"groups_by_view": {"side": ["radial", "heights"]}},
                "pca": {"enabled": True},
                "unknown_section": {"x": 1},
            }
        ),
        encoding="utf-8",
    )
    cfg = load_pipeline_config(path)

    assert cfg.segmentation.blur_sigma == 1.5
    assert cfg.segmentation.crop.width == 100
    assert cfg.segmentation.crop.height is None
    assert cfg.segmentation.method == "kmeans"
    assert cfg.fusion.producers == ("silhouette", "regions")
    assert cfg.joints.groups_by_view["side"] == ("radial", "heights")
    assert cfg.joints.groups_by_view["front"] == ("radial", "face", "widths", "heights")
    assert cfg.pca.enabled
    assert cfg.matching == PipelineConfig().matching


def test_non_object_payload_is_rejected(tmp_path):
    path = tmp_path / "pipeline.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError, match="JSON object"):
        load_pipeline_config(path)


def test_seed_from_environment(monkeypatch):
    monkeypatch.setenv("GS_GLOBAL_SEED", "7")
    assert load_pipeline_config().seed == 7


def test_example_pipeline_config_gives_one_layout_for_both_views(monkeypatch):
    monkeypatch.delenv("GS_GLOBAL_SEED", raising=False)
    cfg = load_pipeline_config(Path(__file__).resolve().parents[1] / "examples" / "pipeline_config.json")
    groups = cfg.joints.groups_by_view
    assert descriptor_length(groups["front"]) == descriptor_length(groups["side"])
    assert not cfg.matching.eer_group_by_view
