import json

import pytest

from gait_signature.matching.ground_truth import GroundTruth


def test_direct_matches_label_probes_with_gallery_identity():
    gt = GroundTruth.from_dict({"matches": {"1": "48", "2": 47}})
    assert gt.is_correct_match("1", "48")
    assert gt.is_correct_match(2, 47)
    assert not gt.is_correct_match("1", "47")
    assert not gt.is_correct_match("3", "48")


def test_ranges_expand_inclusively():
    gt = GroundTruth.from_dict(
        {
            "gallery_ranges": [{"identity": "s01", "start": 48, "end": 50}],
            "probe": {"1": "s01"},
        }
    )
    assert gt.is_same_identity("48", "50")
    assert not gt.is_same_identity("48", "51")
    assert gt.is_correct_match("1", "49")


def test_unlabelled_ids_never_match():
    gt = GroundTruth()
    assert not gt.is_correct_match("1", "1")
    assert not gt.is_same_identity("1", "1")


def test_load_json(tmp_path):
    path = tmp_path / "gt.json"
    path.write_text(json.dumps({"gallery": {"10": "a"}, "matches": {"4": "10"}}), encoding="utf-8")
    gt = GroundTruth.load_json(path)
    assert gt.probe == {"4": "a"}
    with pytest.raises(FileNotFoundError):
        GroundTruth.load_json(tmp_path / "missing.json")
