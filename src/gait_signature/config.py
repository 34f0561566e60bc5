import os
import random
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
import json

import cv2
import numpy as np

DEFAULT_SEED = 1337

FRONT = "front"
SIDE = "side"
VIEWS = (FRONT, SIDE)


def set_global_seed(seed: int = DEFAULT_SEED) -> None:
    """Set seeds for RNG sources to encourage deterministic behaviour."""
    random.seed(seed)
    np.random.seed(seed)
    cv2.setRNGSeed(seed)


@dataclass(frozen=True)
class Paths:
    project_root: Path = Path(__file__).resolve().parents[2]
    data_root: Path = project_root / "data"
    gallery_dir: Path = data_root / "gallery"
    probe_dir: Path = data_root / "probe"
    output_dir: Path = project_root / "output"
    models_dir: Path = project_root / "models"


@dataclass
class CropConfig:
    # None keeps the full frame along that axis
    width: int | None = None
    height: int | None = None
    offset_x: int = 0  # shift of the crop centre from the image centre
    offset_y: int = 0
    resize_factor: float = 1.0


@dataclass
class SegmentationConfig:
    method: str = "kmeans"  # "kmeans" | "median_background"
    blur_sigma: float = 2.0
    kmeans_max_iter: int = 100
    kmeans_epsilon: float = 1e-4
    component_rank: int = 1  # 0 = largest; the person is assumed second largest
    min_component_area: int = 100
    ambiguity_tolerance: float = 0.02  # relative area gap treated as a tie
    background_threshold: int = 50
    fill_colour: tuple = (255, 255, 255)
    crop: CropConfig = field(default_factory=CropConfig)


@dataclass
class SilhouetteConfig:
    max_bins: int = 56
    half_blank_bins: int = 2


@dataclass
class JointConfig:
    num_joints: int = 17
    groups_by_view: dict = field(
        default_factory=lambda: {
            FRONT: ("radial", "face", "widths", "heights"),
            SIDE: ("radial",),
        }
    )


@dataclass
class RegionConfig:
    bands: int = 24


@dataclass
class FusionConfig:
    producers: tuple = ("silhouette", "joints", "regions")
    norm: str = "l2"  # "l2" | "sum"


@dataclass
class PcaConfig:
    enabled: bool = False
    max_components: int = 0  # 0 keeps every component the gallery supports


@dataclass
class MatchingConfig:
    group_by_view: bool = True
    exclude_incomplete: bool = False
    moment_prefilter: float | None = None
    eer_step: float = 0.001
    eer_group_by_view: bool = False  # gallery pairs for EER span views by default


@dataclass
class ConcurrencyConfig:
    workers: int = 4
    pose_concurrency: int = 2


@dataclass
class PipelineConfig:
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    silhouette: SilhouetteConfig = field(default_factory=SilhouetteConfig)
    joints: JointConfig = field(default_factory=JointConfig)
    regions: RegionConfig = field(default_factory=RegionConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    pca: PcaConfig = field(default_factory=PcaConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    pose_failure_policy: str = "silhouette_only"  # "silhouette_only" | "exclude"
    seed: int = DEFAULT_SEED


def _from_payload(cls, payload: dict):
    """Build dataclass `cls` from a JSON payload, keeping defaults for missing keys.

    Only keys the dataclass knows about are used; lists become tuples so that
    JSON configs compare equal to the defaults. Mappings are merged over the
    default mapping.
    """
    default = cls()
    kwargs = {}
    for f in fields(cls):
        if f.name not in payload:
            continue
        value = payload[f.name]
        current = getattr(default, f.name)
        if is_dataclass(current) and isinstance(value, dict):
            value = _from_payload(type(current), value)
        elif isinstance(value, list):
            value = tuple(value)
        elif isinstance(value, dict):
            value = {k: tuple(v) if isinstance(v, list) else v for k, v in value.items()}
            if isinstance(current, dict):
                value = {**current, **value}
        kwargs[f.name] = value
    return cls(**kwargs)


def load_pipeline_config(path: Path | str | None = None) -> PipelineConfig:
    if path is None:
        cfg = PipelineConfig()
    else:
        cfg_path = Path(path)
        if not cfg_path.exists():
            cfg = PipelineConfig()
        else:
            with open(cfg_path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            if not isinstance(payload, dict):
                raise ValueError(f"Pipeline config must be a JSON object: {cfg_path}")
            cfg = _from_payload(PipelineConfig, payload)

    env_seed = os.getenv("GS_GLOBAL_SEED")
    if env_seed is not None:
        cfg.seed = int(env_seed)
    return cfg
