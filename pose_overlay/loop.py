from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import EstimatorNotReadyError
from .estimator import PoseEstimator
from .frame_source import FrameSource
from .logging_utils import setup_logger
from .render import OverlayRenderer
from .scheduler import RefreshScheduler
from .state import AppState
from .types import LoopResult

ResultCallback = Callable[[LoopResult], None]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class LoopSummary:
    iterations: int
    failures: int
    last_fps: int
    avg_fps: float
    elapsed_s: float


class LoopController:
    """
    Pull-infer-render loop with a single frame in flight.

    Each iteration pulls one frame, runs the estimator on it, publishes the
    poses and instantaneous FPS, releases the frame, then renders and
    presents the overlay and waits for the next refresh tick. The next pull
    never starts before the previous frame was released.
    """

    def __init__(
        self,
        source: FrameSource,
        estimator: PoseEstimator,
        renderer: OverlayRenderer,
        state: Optional[AppState] = None,
        scheduler: Optional[RefreshScheduler] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], int] = wall_clock_ms,
        max_frames: Optional[int] = None,
    ):
        self.source = source
        self.estimator = estimator
        self.renderer = renderer
        self.state = state or AppState()
        self.scheduler = scheduler or RefreshScheduler()
        self.logger = logger or setup_logger("loop")
        self.max_frames = max_frames
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None

        self.iterations = 0
        self.failures = 0
        self.last_fps = 0
        self.summary: Optional[LoopSummary] = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        self._stop_event.set()
        self.scheduler.cancel()

    def _begin_session(self) -> None:
        """Reset a controller whose previous run has finished.

        A stop() issued before the first run is kept, so that run ends at once.
        """
        if not self.estimator.is_ready():
            raise EstimatorNotReadyError(f"Estimator '{self.estimator.name()}' is not ready")
        if self.summary is None:
            return
        self._stop_event.clear()
        self.scheduler.reset()
        self.iterations = 0
        self.failures = 0
        self.last_fps = 0
        self.summary = None

    def start(self, on_result: Optional[ResultCallback] = None) -> threading.Thread:
        """Run the loop on a dedicated thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Loop already running")
        self._begin_session()

        self._error = None
        self._thread = threading.Thread(
            target=self._run_thread, args=(on_result,), name="pose-overlay-loop", daemon=True
        )
        self._thread.start()
        return self._thread

    def _run_thread(self, on_result: Optional[ResultCallback]) -> None:
        try:
            self._run_session(on_result)
        except Exception as e:
            self.logger.error("loop terminated: %s", e)
            self._error = e

    def join(self, timeout: Optional[float] = None) -> Optional[LoopSummary]:
        """Wait for the loop thread; re-raises whatever ended the loop abnormally."""
        if self._thread is not None:
            self._thread.join(timeout)
        if self._error is not None:
            raise self._error
        return self.summary

    def run(self, on_result: Optional[ResultCallback] = None) -> LoopSummary:
        self._begin_session()
        return self._run_session(on_result)

    def _run_session(self, on_result: Optional[ResultCallback]) -> LoopSummary:
        self.logger.info("loop started: estimator=%s", self.estimator.name())
        t0 = time.time()

        try:
            self.source.start()
            while not self._stop_event.is_set():
                if self.max_frames and self.iterations >= self.max_frames:
                    break
                if not self.run_once(on_result):
                    break
        finally:
            try:
                self.source.stop()
            except Exception as e:
                self.logger.warning("frame source stop failed: %s", e)

            elapsed = max(1e-6, time.time() - t0)
            self.summary = LoopSummary(
                self.iterations,
                self.failures,
                self.last_fps,
                self.iterations / elapsed,
                elapsed,
            )
            self.logger.info(
                "summary iterations=%d failures=%d last_fps=%d avg_fps=%.2f",
                self.iterations,
                self.failures,
                self.last_fps,
                self.summary.avg_fps,
            )

        return self.summary

    def run_once(self, on_result: Optional[ResultCallback] = None) -> bool:
        """Perform one iteration. Returns False when the loop should end."""
        orientation = self.state.sync_orientation()
        self.source.configure(orientation)

        frame = self.source.next_frame()
        self.iterations += 1
        try:
            start_ms = self._clock()
            try:
                poses = self.estimator.estimate(frame, start_ms)
            except Exception as e:
                poses = None
                self.logger.warning("frame=%d inference failed: %s", frame.idx, e)

            if poses is None:
                self.failures += 1
            else:
                latency_ms = max(1, self._clock() - start_ms)
                fps = 1000 // latency_ms
                self.last_fps = fps
                self.state.publish(poses, fps)
                self.logger.debug(
                    "frame=%d poses=%d latency_ms=%d fps=%d", frame.idx, len(poses), latency_ms, fps
                )
                if on_result is not None:
                    on_result(LoopResult(self.iterations, list(poses), latency_ms, fps))
        finally:
            self.source.release(frame)

        if self._stop_event.is_set():
            return False

        canvas = self.renderer.render(self.state.snapshot(), self.source.preview())
        self.source.present_frame(canvas)
        return self.scheduler.wait_next()
