class PoseOverlayError(Exception):
    """Base class for pose overlay errors."""


class FrameSourceError(PoseOverlayError):
    """The frame source could not deliver a frame."""


class FrameSourceExhausted(FrameSourceError):
    """A finite frame source has no more frames."""


class EstimatorError(PoseOverlayError):
    """Pose inference failed for a single frame."""


class EstimatorNotReadyError(PoseOverlayError):
    """The loop was started before the estimator finished loading."""
