from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from .config import EstimatorConfig
from .errors import EstimatorError
from .types import Frame, Keypoint, Pose


COCO17_NAMES = [
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
]

# MediaPipe Pose (BlazePose 33) landmark index for each COCO-17 joint
MEDIAPIPE_COCO17_INDEX = {
    "nose": 0,
    "left_eye": 2,
    "right_eye": 5,
    "left_ear": 7,
    "right_ear": 8,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
}


class PoseEstimator(ABC):
    """
    Model adapter interface.

    Implementations take a Frame holding an RGB image (H,W,3 uint8) and return
    poses whose keypoints are in the frame's pixel space, best pose first.
    """

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def is_ready(self) -> bool: ...

    @abstractmethod
    def estimate(self, frame: Frame, timestamp_ms: int) -> list[Pose]: ...

    @abstractmethod
    def close(self) -> None: ...


class NullPoseEstimator(PoseEstimator):
    """Returns no poses; used for dry runs without a model."""

    def name(self) -> str:
        return "none"

    def is_ready(self) -> bool:
        return True

    def estimate(self, frame: Frame, timestamp_ms: int) -> list[Pose]:
        return []

    def close(self) -> None:
        return None


class MediaPipePoseEstimator(PoseEstimator):
    """
    MediaPipe Tasks Pose Landmarker in VIDEO mode.

    Notes:
    - VIDEO mode smooths landmarks across calls, so timestamps must increase.
    - Landmarks are normalized; we convert to the frame's pixel space.
    - `visibility` is used as score.
    """

    def __init__(
        self,
        model_path: str,
        num_poses: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ) -> None:
        try:
            import mediapipe as mp  # type: ignore
            from mediapipe.tasks import python as mp_python  # type: ignore
            from mediapipe.tasks.python import vision  # type: ignore
        except Exception as e:
            raise RuntimeError(
                "MediaPipe is not installed. Install pose deps with: pip install 'pose-overlay[mediapipe]'"
            ) from e

        if not Path(model_path).exists():
            raise FileNotFoundError(f"Pose model not found: {model_path}")

        self._mp = mp
        options = vision.PoseLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=str(model_path)),
            running_mode=vision.RunningMode.VIDEO,
            num_poses=int(num_poses),
            min_pose_detection_confidence=float(min_detection_confidence),
            min_tracking_confidence=float(min_tracking_confidence),
        )
        self._landmarker = vision.PoseLandmarker.create_from_options(options)
        self._last_ts = -1

    def name(self) -> str:
        return "mediapipe_pose"

    def is_ready(self) -> bool:
        return self._landmarker is not None

    def estimate(self, frame: Frame, timestamp_ms: int) -> list[Pose]:
        if self._landmarker is None:
            raise EstimatorError("Pose landmarker is closed")

        h, w = int(frame.image.shape[0]), int(frame.image.shape[1])
        ts = max(int(timestamp_ms), self._last_ts + 1)
        self._last_ts = ts

        image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=frame.image)
        try:
            result = self._landmarker.detect_for_video(image, ts)
        except Exception as e:
            raise EstimatorError(f"Pose inference failed on frame {frame.idx}: {e}") from e

        poses = []
        for landmarks in result.pose_landmarks or []:
            keypoints = []
            for name in COCO17_NAMES:
                idx = MEDIAPIPE_COCO17_INDEX[name]
                if idx >= len(landmarks):
                    continue
                lm = landmarks[idx]
                keypoints.append(
                    Keypoint(
                        name=name,
                        x=float(lm.x) * w,
                        y=float(lm.y) * h,
                        score=float(getattr(lm, "visibility", 0.0) or 0.0),
                    )
                )
            poses.append(Pose(tuple(keypoints)))
        return poses

    def close(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None


def load_estimator(config: EstimatorConfig) -> PoseEstimator:
    backend = (config.backend or "").strip().lower()
    if backend in ("none", "null"):
        return NullPoseEstimator()
    if backend == "mediapipe":
        return MediaPipePoseEstimator(
            config.model_path,
            num_poses=config.num_poses,
            min_detection_confidence=config.min_detection_confidence,
            min_tracking_confidence=config.min_tracking_confidence,
        )
    raise ValueError(f"Unknown estimator backend: {config.backend!r}")
