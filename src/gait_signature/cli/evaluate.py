"""Gallery/probe evaluation over two directories of walking-subject photos.

The dataset config is a JSON object:

{
  "gallery_dir": "data/gallery",
  "probe_dir": "data/probe",
  "default_view": "front",
  "views": {"gallery": {"47": "side"}, "probe": {"1": "side"}},
  "ground_truth": {"matches": {"1": "48", "2": "47"}}
}

Image ids are file stems. `ground_truth` follows `GroundTruth.from_dict`.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List

import cv2

from ..config import FRONT, VIEWS, Paths, load_pipeline_config
from ..matching.evaluation import write_pairs_csv
from ..matching.ground_truth import GroundTruth
from ..pipeline import GaitPipeline
from ..records import GALLERY, PROBE, SubjectImage
from ..report import RunReport
from ..vision.pose_estimation import OnnxJointPredictor

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp"}


@dataclasses.dataclass
class DatasetConfig:
    gallery_dir: Path
    probe_dir: Path
    ground_truth: GroundTruth
    default_view: str = FRONT
    views: Dict[str, Dict[str, str]] = dataclasses.field(default_factory=dict)

    def view_of(self, role: str, image_id: str) -> str:
        return self.views.get(role, {}).get(image_id, self.default_view)


def load_dataset_config(path: str | Path) -> DatasetConfig:
    cfg_path = Path(path)
    data = json.loads(cfg_path.read_text(encoding="utf-8"))
    base = cfg_path.parent

    def _dir(key: str) -> Path:
        p = Path(data[key]).expanduser()
        return p if p.is_absolute() else (base / p)

    views = {
        role: {str(k): str(v) for k, v in (data.get("views", {}).get(role, {}) or {}).items()}
        for role in (GALLERY, PROBE)
    }
    default_view = str(data.get("default_view", FRONT))
    for view in [default_view] + [v for table in views.values() for v in table.values()]:
        if view not in VIEWS:
            raise ValueError(f"Unknown view {view!r}; expected one of {VIEWS}")

    return DatasetConfig(
        gallery_dir=_dir("gallery_dir"),
        probe_dir=_dir("probe_dir"),
        ground_truth=GroundTruth.from_dict(data.get("ground_truth", {}) or {}),
        default_view=default_view,
        views=views,
    )


def _sort_key(path: Path):
    stem = path.stem
    return (0, int(stem), "") if stem.isdigit() else (1, 0, stem)


def load_images(directory: Path, role: str, dataset: DatasetConfig) -> List[SubjectImage]:
    if not directory.is_dir():
        raise FileNotFoundError(f"Image directory not found: {directory}")
    files = sorted(
        [p for p in directory.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES], key=_sort_key
    )
    images: List[SubjectImage] = []
    for p in files:
        frame = cv2.imread(str(p), cv2.IMREAD_COLOR)
        if frame is None:
            logger.warning("could not decode %s, skipping", p)
            continue
        images.append(
            SubjectImage(id=p.stem, role=role, image=frame, view=dataset.view_of(role, p.stem))
        )
    return images


def evaluate(dataset: DatasetConfig, pipeline: GaitPipeline) -> RunReport:
    gallery = load_images(dataset.gallery_dir, GALLERY, dataset)
    probes = load_images(dataset.probe_dir, PROBE, dataset)
    gt = dataset.ground_truth
    return pipeline.run(gallery, probes, gt.is_correct_match, gt.is_same_identity)


def write_silhouettes(report: RunReport, out_dir: Path) -> int:
    count = 0
    for record in report.records:
        target = out_dir / record.role / f"{record.id}.png"
        target.parent.mkdir(parents=True, exist_ok=True)
        if cv2.imwrite(str(target), record.silhouette_image):
            count += 1
    return count


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Match probe photos against a gallery and report CCR / EER."
    )
    parser.add_argument("dataset", type=Path, help="Dataset config JSON")
    parser.add_argument("--config", type=Path, default=None, help="Pipeline config JSON")
    parser.add_argument(
        "--pose-model",
        type=Path,
        default=None,
        help="ONNX pose model (default: models/pose_estimator.onnx)",
    )
    parser.add_argument(
        "--no-pose",
        action="store_true",
        help="Skip pose estimation; joint descriptors are zero-filled and flagged incomplete",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Paths().output_dir / "report.json",
        help="Where to write the JSON report",
    )
    parser.add_argument("--pairs-csv", type=Path, default=None, help="Optional pairwise distance CSV")
    parser.add_argument(
        "--silhouettes-dir", type=Path, default=None, help="Optional dir for segmented images"
    )
    parser.add_argument("--log-level", type=str, default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    dataset = load_dataset_config(args.dataset)
    cfg = load_pipeline_config(args.config)
    predictor = None if args.no_pose else OnnxJointPredictor(model_path=args.pose_model)
    report = evaluate(dataset, GaitPipeline(cfg, predictor))

    out_path = args.output.expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)

    if args.pairs_csv is not None:
        write_pairs_csv(args.pairs_csv, report.samples)
    if args.silhouettes_dir is not None:
        written = write_silhouettes(report, args.silhouettes_dir)
        logger.info("wrote %d silhouette images to %s", written, args.silhouettes_dir)

    print(report.summary_text())
    print(f"Report written to {out_path}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
