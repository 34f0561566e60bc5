import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict


def _expand(table: dict, ranges: list) -> Dict[str, str]:
    out = {str(k): str(v) for k, v in (table or {}).items()}
    for entry in ranges or []:
        identity = str(entry["identity"])
        for image_id in range(int(entry["start"]), int(entry["end"]) + 1):
            out[str(image_id)] = identity
    return out


@dataclass
class GroundTruth:
    """Identity labels per image id, for the gallery and the probe set.

    Ids are compared as strings. An id without a label never matches anything.
    """

    gallery: Dict[str, str] = field(default_factory=dict)
    probe: Dict[str, str] = field(default_factory=dict)

    def is_correct_match(self, probe_id, gallery_id) -> bool:
        p = self.probe.get(str(probe_id))
        return p is not None and p == self.gallery.get(str(gallery_id))

    def is_same_identity(self, id_a, id_b) -> bool:
        a = self.gallery.get(str(id_a))
        return a is not None and a == self.gallery.get(str(id_b))

    @staticmethod
    def from_dict(payload: dict) -> "GroundTruth":
        """Accepts explicit tables, inclusive integer id ranges, and direct matches.

        {
          "gallery": {"48": "s01"},
          "gallery_ranges": [{"identity": "s02", "start": 49, "end": 50}],
          "probe": {"2": "s02"},
          "probe_ranges": [...],
          "matches": {"1": "48"}
        }

        `matches` maps a probe id to its correct gallery id; the probe takes the
        gallery image's identity, or the gallery id itself when unlabelled.
        """
        gallery = _expand(payload.get("gallery", {}), payload.get("gallery_ranges", []))
        probe = _expand(payload.get("probe", {}), payload.get("probe_ranges", []))
        for probe_id, gallery_id in (payload.get("matches", {}) or {}).items():
            gallery_id = str(gallery_id)
            identity = gallery.setdefault(gallery_id, gallery_id)
            probe[str(probe_id)] = identity
        return GroundTruth(gallery=gallery, probe=probe)

    @staticmethod
    def load_json(path: Path | str) -> "GroundTruth":
        in_path = Path(path)
        if not in_path.exists():
            raise FileNotFoundError(f"Ground truth file not found: {in_path}")
        with open(in_path, "r", encoding="utf-8") as f:
            return GroundTruth.from_dict(json.load(f))
