"""Frame source abstraction for the pose overlay loop.

A frame source hands out one tensor-sized RGB frame per pull and owns the
preview surface the overlay is presented on:
- Device cameras (USB/V4L2, video files or stream URLs via OpenCV)
- Synthetic blank frames for headless runs and tests
"""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence

import cv2
import numpy as np

from .errors import FrameSourceError, FrameSourceExhausted
from .mapper import effective_output_size
from .types import CameraFacing, Frame, Orientation, OutputGeometry, Platform


class FrameSource(ABC):
    """Abstract base class for frame sources."""

    def __init__(self, geometry: OutputGeometry, platform: Platform):
        self.geometry = geometry
        self.platform = platform
        self.orientation = Orientation.PORTRAIT_UP
        self.pulled = 0
        self.released = 0
        self.presented = 0

    @property
    def tensor_size(self) -> tuple[int, int]:
        w, h = effective_output_size(self.geometry, self.orientation, self.platform)
        return int(round(w)), int(round(h))

    def configure(self, orientation: Orientation) -> None:
        """Adopt the orientation used to size the next frame."""
        self.orientation = orientation

    @abstractmethod
    def start(self) -> None:
        """Start the frame source. Called before any next_frame() calls."""
        ...

    @abstractmethod
    def next_frame(self) -> Frame:
        """Block until the next frame is available.

        Raises:
            FrameSourceError: the source can no longer deliver frames.
        """
        ...

    def release(self, frame: Frame) -> None:
        """Dispose a frame returned by next_frame()."""
        frame.dispose()
        self.released += 1

    @abstractmethod
    def preview(self) -> np.ndarray:
        """BGR image of the most recent capture, used as the overlay background."""
        ...

    def present_frame(self, canvas: np.ndarray) -> None:
        """Show the rendered canvas. Called once per loop iteration."""
        self.presented += 1

    def switch_facing(self, facing: CameraFacing) -> None:
        return None

    @abstractmethod
    def stop(self) -> None:
        """Stop the frame source and release resources."""
        ...


def open_capture(device: int | str) -> Any:
    if isinstance(device, int):
        return cv2.VideoCapture(device, cv2.CAP_V4L2)
    dev_str = str(device)
    match = re.match(r"^/dev/video(\d+)$", dev_str)
    if match:
        return cv2.VideoCapture(int(match.group(1)), cv2.CAP_V4L2)
    return cv2.VideoCapture(dev_str)


class DeviceCameraSource(FrameSource):
    """Camera source backed by cv2.VideoCapture with an OpenCV preview window."""

    def __init__(
        self,
        device: int | str,
        geometry: OutputGeometry,
        platform: Platform,
        fps: int = 30,
        back_device: Optional[int | str] = None,
        facing: CameraFacing = CameraFacing.FRONT,
        window_name: str = "pose_overlay",
        show: bool = True,
        key_handler: Optional[Callable[[int], None]] = None,
    ):
        super().__init__(geometry, platform)
        self.device = device
        self.back_device = back_device
        self.facing = facing
        self.fps = fps
        self.window_name = window_name
        self.show = show
        self.key_handler = key_handler
        self.cap: Any = None
        self._last_image: Optional[np.ndarray] = None

    def _device_for(self, facing: CameraFacing) -> int | str:
        if facing is CameraFacing.BACK and self.back_device is not None:
            return self.back_device
        return self.device

    def _open(self) -> None:
        device = self._device_for(self.facing)
        self.cap = open_capture(device)
        self.cap.set(cv2.CAP_PROP_FPS, self.fps)
        if not self.cap.isOpened():
            raise FrameSourceError(f"Failed to open camera: {device}")

    def start(self) -> None:
        self._open()
        self.pulled = 0

    def next_frame(self) -> Frame:
        if self.cap is None:
            raise FrameSourceError("Camera not started")

        ok, img = self.cap.read()
        if not ok or img is None:
            raise FrameSourceError(f"Failed to read frame from camera: {self._device_for(self.facing)}")

        self._last_image = img
        resized = cv2.resize(img, self.tensor_size, interpolation=cv2.INTER_LINEAR)
        rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)
        self.pulled += 1
        return Frame(self.pulled, int(time.time() * 1000), rgb)

    def preview(self) -> np.ndarray:
        if self._last_image is None:
            w, h = int(self.geometry.preview_width), int(self.geometry.preview_height)
            return np.zeros((h, w, 3), dtype=np.uint8)
        return self._last_image

    def present_frame(self, canvas: np.ndarray) -> None:
        super().present_frame(canvas)
        if not self.show:
            return
        cv2.imshow(self.window_name, canvas)
        key = cv2.waitKey(1) & 0xFF
        if key != 0xFF and self.key_handler is not None:
            self.key_handler(key)

    def switch_facing(self, facing: CameraFacing) -> None:
        previous = self._device_for(self.facing)
        self.facing = facing
        if self.cap is None or self._device_for(facing) == previous:
            return
        self.cap.release()
        self._open()

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None
        if self.show:
            try:
                cv2.destroyWindow(self.window_name)
            except cv2.error:
                pass


class SyntheticFrameSource(FrameSource):
    """Headless source producing blank (or supplied) frames at a fixed rate."""

    def __init__(
        self,
        geometry: OutputGeometry,
        platform: Platform,
        fps: int = 0,
        max_frames: Optional[int] = None,
        images: Optional[Sequence[np.ndarray]] = None,
    ):
        super().__init__(geometry, platform)
        self.fps = fps
        self.max_frames = max_frames
        self.images = list(images) if images is not None else None
        self.canvases: list[np.ndarray] = []
        self._last = 0.0

    def start(self) -> None:
        self._last = time.time()
        self.pulled = 0

    def next_frame(self) -> Frame:
        limit = self.max_frames
        if self.images is not None:
            limit = len(self.images) if limit is None else min(limit, len(self.images))
        if limit is not None and self.pulled >= limit:
            raise FrameSourceExhausted(f"Synthetic source exhausted after {self.pulled} frames")

        now = time.time()
        if self.fps > 0:
            wait = max(0.0, (1.0 / self.fps) - (now - self._last))
            if wait > 0:
                time.sleep(wait)
        self._last = time.time()

        if self.images is not None:
            img = self.images[self.pulled]
        else:
            w, h = self.tensor_size
            img = np.zeros((h, w, 3), dtype=np.uint8)
        self.pulled += 1
        return Frame(self.pulled, int(self._last * 1000), img)

    def preview(self) -> np.ndarray:
        w, h = int(self.geometry.preview_width), int(self.geometry.preview_height)
        return np.zeros((h, w, 3), dtype=np.uint8)

    def present_frame(self, canvas: np.ndarray) -> None:
        super().present_frame(canvas)
        self.canvases = [canvas]

    def stop(self) -> None:
        return None
