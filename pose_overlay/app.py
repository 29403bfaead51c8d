from __future__ import annotations

import logging
from typing import Optional

import cv2

from .config import OverlayConfig
from .estimator import NullPoseEstimator, PoseEstimator, load_estimator
from .frame_source import DeviceCameraSource, FrameSource, SyntheticFrameSource
from .logging_utils import add_file_handler, bind_facing, remove_handler, setup_logger
from .loop import LoopController, LoopSummary, ResultCallback
from .render import OverlayRenderer
from .scheduler import RefreshScheduler
from .state import AppState, ManualOrientationProvider
from .types import CameraFacing

KEY_ESC = 27


class PoseOverlayApp:
    """Wires camera, estimator, state and renderer into a running loop.

    Keyboard controls on the preview window:
        c  switch between front and back camera
        o  rotate the simulated device orientation
        q  quit (ESC works too)
    """

    def __init__(
        self,
        config: OverlayConfig,
        logger: Optional[logging.Logger] = None,
        source: Optional[FrameSource] = None,
        estimator: Optional[PoseEstimator] = None,
    ):
        self.config = config.validate()
        self.platform = config.platform_enum
        self.geometry = config.geometry()
        self.state = AppState(config.orientation_enum, config.facing_enum)
        self.orientation = ManualOrientationProvider(config.orientation_enum)
        self.state.attach(self.orientation)

        self.logger = logger or setup_logger(config.name)
        bind_facing(self.logger, self._current_facing)
        self._file_handler = None
        if config.log_file:
            self._file_handler = add_file_handler(
                self.logger, config.name, config.log_file, facing=self._current_facing
            )

        self.source = source or self._build_source()
        self.estimator = estimator or self._build_estimator()
        self.renderer = OverlayRenderer(
            self.geometry, self.platform, config.min_keypoint_score, config.style
        )
        self.loop = LoopController(
            self.source,
            self.estimator,
            self.renderer,
            state=self.state,
            scheduler=RefreshScheduler(config.refresh_hz),
            logger=self.logger,
            max_frames=config.max_frames,
        )

    def _current_facing(self) -> CameraFacing:
        return self.state.facing

    def _build_source(self) -> FrameSource:
        if self.config.dry_run:
            return SyntheticFrameSource(
                self.geometry, self.platform, fps=self.config.fps, max_frames=self.config.max_frames
            )
        return DeviceCameraSource(
            self.config.device,
            self.geometry,
            self.platform,
            fps=self.config.fps,
            back_device=self.config.back_device,
            facing=self.config.facing_enum,
            window_name=self.config.window_name,
            key_handler=self.handle_key,
        )

    def _build_estimator(self) -> PoseEstimator:
        if self.config.dry_run:
            return NullPoseEstimator()
        estimator = load_estimator(self.config.estimator)
        self.logger.info("Model loaded: %s", estimator.name())
        return estimator

    def toggle_facing(self) -> None:
        facing = self.state.toggle_facing()
        self.source.switch_facing(facing)
        self.logger.info("camera facing: %s", facing.value)

    def rotate(self) -> None:
        orientation = self.orientation.rotate()
        self.logger.info("orientation: %s", orientation.value)

    def handle_key(self, key: int) -> None:
        if key == ord("c"):
            self.toggle_facing()
        elif key == ord("o"):
            self.rotate()
        elif key in (ord("q"), KEY_ESC):
            self.logger.info("quit requested")
            self.loop.stop()

    def run(self, on_result: Optional[ResultCallback] = None) -> LoopSummary:
        try:
            return self.loop.run(on_result)
        finally:
            self.close()

    def stop(self) -> None:
        self.loop.stop()

    def close(self) -> None:
        self.loop.stop()
        try:
            self.source.stop()
        except Exception as e:
            self.logger.warning("frame source stop failed: %s", e)
        try:
            self.estimator.close()
        except Exception as e:
            self.logger.warning("estimator close failed: %s", e)
        if isinstance(self.source, DeviceCameraSource):
            cv2.destroyAllWindows()
        remove_handler(self.logger, self._file_handler)
        self._file_handler = None
