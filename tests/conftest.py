import cv2
import numpy as np
import pytest


def draw_walker(height: int = 120, width: int = 80, mirrored: bool = False) -> np.ndarray:
    """Solid black figure with one arm out, on a white background (BGR)."""
    img = np.full((height, width, 3), 255, dtype=np.uint8)
    black = (0, 0, 0)
    cv2.rectangle(img, (35, 10), (45, 22), black, thickness=-1)  # head
    cv2.rectangle(img, (30, 23), (50, 65), black, thickness=-1)  # torso
    cv2.rectangle(img, (30, 66), (36, 105), black, thickness=-1)  # left leg
    cv2.rectangle(img, (44, 66), (50, 105), black, thickness=-1)  # right leg
    cv2.rectangle(img, (20, 25), (29, 60), black, thickness=-1)  # arm
    if mirrored:
        img = np.ascontiguousarray(img[:, ::-1])
    return img


class FakePredictor:
    """Returns the same normalised skeleton for every image."""

    def __init__(self, joints=None, fail: bool = False):
        if joints is None:
            joints = [
                (0.50, 0.10),  # nose
                (0.48, 0.09),
                (0.52, 0.09),
                (0.46, 0.10),
                (0.54, 0.10),
                (0.40, 0.22),  # shoulders
                (0.60, 0.22),
                (0.35, 0.35),  # elbows
                (0.65, 0.35),
                (0.33, 0.48),  # wrists
                (0.67, 0.48),
                (0.42, 0.55),  # hips
                (0.58, 0.55),
                (0.42, 0.72),  # knees
                (0.58, 0.72),
                (0.42, 0.87),  # ankles
                (0.58, 0.87),
            ]
        self.joints = list(joints)
        self.fail = fail
        self.calls = 0

    def predict(self, image):
        self.calls += 1
        if self.fail:
            raise RuntimeError("model crashed")
        return list(self.joints)


@pytest.fixture
def walker() -> np.ndarray:
    return draw_walker()


@pytest.fixture
def fake_predictor() -> FakePredictor:
    return FakePredictor()
