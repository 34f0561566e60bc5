import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple

import numpy as np
import cv2

from ..config import Paths
from ..errors import PoseEstimationFailure

try:
    import onnxruntime as ort
except ImportError:  # pragma: no cover - handled gracefully when missing
    ort = None

logger = logging.getLogger(__name__)

# COCO keypoint order
JOINT_NAMES = (
    "nose",
    "left_eye",
    "right_eye",
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
)
JOINT_INDEX = {name: i for i, name in enumerate(JOINT_NAMES)}

NormalizedJoint = Optional[Tuple[float, float]]


class JointPredictor(Protocol):
    """Black-box pose model: image -> ordered joints normalised to [0, 1].

    A joint the model could not place is returned as None.
    """

    def predict(self, image: np.ndarray) -> Sequence[NormalizedJoint]: ...


@dataclass
class Pose:
    joints: np.ndarray  # shape (num_joints, 2) in image pixel coords, NaN when missing

    @property
    def missing(self) -> np.ndarray:
        return np.isnan(self.joints).any(axis=1)

    @property
    def complete(self) -> bool:
        return not bool(self.missing.any())

    def joint(self, name: str) -> np.ndarray:
        return self.joints[JOINT_INDEX[name]]


class PoseAdapter:
    """Runs a joint predictor and maps its output into pixel space.

    Calls into the predictor are bounded by a semaphore so a slow model cannot
    tie up every worker thread of the pipeline.
    """

    def __init__(self, predictor: JointPredictor, num_joints: int = 17, max_concurrency: int = 2):
        self.predictor = predictor
        self.num_joints = num_joints
        self._slots = threading.BoundedSemaphore(max(1, max_concurrency))

    def locate(self, image: np.ndarray) -> Pose:
        with self._slots:
            try:
                raw = self.predictor.predict(image)
            except PoseEstimationFailure:
                raise
            except Exception as e:
                raise PoseEstimationFailure(f"joint predictor raised: {e}") from e

        if raw is None or len(raw) < self.num_joints:
            got = 0 if raw is None else len(raw)
            raise PoseEstimationFailure(f"expected {self.num_joints} joints, got {got}")

        h, w = image.shape[:2]
        joints = np.full((self.num_joints, 2), np.nan, dtype=np.float64)
        for i, joint in enumerate(list(raw)[: self.num_joints]):
            if joint is None:
                continue
            try:
                x, y = float(joint[0]), float(joint[1])
            except (TypeError, ValueError, IndexError) as e:
                raise PoseEstimationFailure(f"malformed joint {i}: {joint!r}") from e
            if not (np.isfinite(x) and np.isfinite(y)):
                continue
            joints[i] = (x * w, y * h)

        pose = Pose(joints=joints)
        if not pose.complete:
            logger.debug("pose has %d missing joints", int(pose.missing.sum()))
        return pose


class OnnxJointPredictor:
    """Joint predictor backed by an ONNX model.

    Expects a single image input (NCHW, RGB in [0, 1]) and an output of shape
    (1, J, 2) or (1, J, 3), the latter carrying (y, x, score). Joints scoring
    under `min_score` are reported as missing. Drop a model at
    `models/pose_estimator.onnx` or pass a custom path.
    """

    def __init__(self, model_path: Path | None = None, input_size: int = 256, min_score: float = 0.1):
        if model_path is None:
            model_path = Paths().models_dir / "pose_estimator.onnx"
        self.model_path = Path(model_path)
        self.input_size = input_size
        self.min_score = min_score

        if ort is None:
            raise PoseEstimationFailure("onnxruntime is not installed")
        if not self.model_path.exists():
            raise FileNotFoundError(f"Pose model not found: {self.model_path}")

        self._session = ort.InferenceSession(
            str(self.model_path), providers=["CPUExecutionProvider"]
        )
        self._input_name = self._session.get_inputs()[0].name
        self._output_name = self._session.get_outputs()[0].name

    def _preprocess(self, image: np.ndarray) -> np.ndarray:
        resized = cv2.resize(image, (self.input_size, self.input_size))
        # BGR -> RGB and normalize to [0,1]
        rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB).astype(np.float32) / 255.0
        return np.transpose(rgb, (2, 0, 1))[np.newaxis, ...]  # NCHW

    def _normalize_output(self, raw: np.ndarray) -> list:
        """Coerce model output to a list of (x, y) in [0, 1] or None."""
        raw = np.squeeze(np.asarray(raw, dtype=np.float32))
        if raw.ndim != 2 or raw.shape[-1] not in (2, 3):
            raise PoseEstimationFailure(f"unexpected pose output shape {raw.shape}")

        if raw.shape[-1] == 3:
            # raw format (y, x, score)
            coords = raw[:, [1, 0]]
            scores = raw[:, 2]
        else:
            coords = raw
            scores = np.ones(raw.shape[0], dtype=np.float32)
        coords = np.clip(coords, 0.0, 1.0)

        joints = []
        for (x, y), score in zip(coords, scores):
            joints.append((float(x), float(y)) if score >= self.min_score else None)
        return joints

    def predict(self, image: np.ndarray) -> list:
        batch = self._preprocess(image)
        outputs = self._session.run([self._output_name], {self._input_name: batch})[0]
        return self._normalize_output(outputs)
