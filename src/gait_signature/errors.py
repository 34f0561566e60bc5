class GaitSignatureError(Exception):
    """Base class for per-image pipeline failures."""

    stage = "pipeline"


class SegmentationFailure(GaitSignatureError):
    """No plausible person region could be isolated."""

    stage = "segmentation"


class PoseEstimationFailure(GaitSignatureError):
    """The joint predictor raised or returned malformed joints."""

    stage = "pose"


class DescriptorFailure(GaitSignatureError):
    """Degenerate geometry, e.g. an empty boundary or an all-zero vector."""

    stage = "descriptor"
