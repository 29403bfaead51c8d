import logging
import threading
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeClock, RecordingRenderer, RecordingSource, ScriptedEstimator, single_pose
from pose_overlay.errors import EstimatorNotReadyError, FrameSourceError, FrameSourceExhausted
from pose_overlay.frame_source import DeviceCameraSource
from pose_overlay.loop import LoopController
from pose_overlay.render import OverlayRenderer
from pose_overlay.scheduler import RefreshScheduler
from pose_overlay.state import AppState, ManualOrientationProvider
from pose_overlay.types import CameraFacing, Orientation, Platform


def _quiet_logger():
    logger = logging.Logger("test-loop")
    logger.addHandler(logging.NullHandler())
    return logger


def _build(geometry, clock, estimator, scheduler, max_frames=None, source_frames=None, state=None):
    source = RecordingSource(geometry, Platform.ANDROID, max_frames=source_frames)
    renderer = RecordingRenderer(geometry, Platform.ANDROID)
    loop = LoopController(
        source,
        estimator,
        renderer,
        state=state or AppState(Orientation.PORTRAIT_UP, CameraFacing.FRONT),
        scheduler=scheduler,
        logger=_quiet_logger(),
        clock=clock,
        max_frames=max_frames,
    )
    return loop, source, renderer


def test_three_frames_report_instantaneous_fps(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [20, 50, 25])
    loop, source, renderer = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=3)
    results = []

    summary = loop.run(results.append)

    assert [r.fps for r in results] == [50, 20, 40]
    assert [r.latency_ms for r in results] == [20, 50, 25]
    assert summary.iterations == 3
    assert summary.failures == 0
    assert summary.last_fps == 40
    assert source.released == 3
    assert source.presented == 3
    assert source.started and source.stopped

    assert len(renderer.rendered) == 3
    for circles in renderer.rendered:
        assert len(circles) == 1
        assert circles[0].cx == pytest.approx(180.0)
        assert circles[0].cy == pytest.approx(180.0)


def test_estimator_receives_start_timestamp(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [20, 30])
    loop, _, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=2)

    loop.run()

    assert [c[1] for c in estimator.calls] == [1_000, 1_020]
    assert all(disposed is False for _, _, disposed in estimator.calls)


def test_zero_latency_is_clamped_to_one_ms(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [0])
    loop, _, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=1)
    results = []

    loop.run(results.append)

    assert results[0].latency_ms == 1
    assert results[0].fps == 1000


def test_inference_failure_releases_frame_and_continues(
    android_geometry, clock, no_wait_scheduler, inference_error
):
    estimator = ScriptedEstimator(
        clock, [20, 40, 25], results=[single_pose(), inference_error, single_pose()]
    )
    loop, source, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=3)
    results = []

    summary = loop.run(results.append)

    assert [r.iteration for r in results] == [1, 3]
    assert [r.fps for r in results] == [50, 40]
    assert summary.iterations == 3
    assert summary.failures == 1
    assert source.pulled == 3
    assert source.released == 3
    assert source.presented == 3


def test_missing_result_counts_as_failure(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [20, 20], results=[None, single_pose()])
    loop, source, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=2)

    summary = loop.run()

    assert summary.failures == 1
    assert source.released == 2
    assert loop.state.snapshot().fps == 50


def test_failed_inference_keeps_previous_result(android_geometry, clock, no_wait_scheduler, inference_error):
    estimator = ScriptedEstimator(clock, [20, 10], results=[single_pose(), inference_error])
    loop, _, renderer = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=2)

    loop.run()

    snap = loop.state.snapshot()
    assert snap.fps == 50
    assert len(snap.poses) == 1
    assert len(renderer.rendered[1]) == 1


def test_exactly_one_release_per_frame(android_geometry, clock, no_wait_scheduler, inference_error):
    estimator = ScriptedEstimator(
        clock, [5] * 5, results=[inference_error, single_pose(), inference_error, single_pose(), single_pose()]
    )
    loop, source, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=5)

    loop.run()

    pulls = [idx for kind, idx in source.events if kind == "pull"]
    releases = [idx for kind, idx in source.events if kind == "release"]
    assert pulls == releases == [1, 2, 3, 4, 5]


def test_pipeline_is_strictly_sequential(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [10, 10, 10])
    loop, source, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=3)

    loop.run()

    assert source.max_in_flight == 1
    assert source.events == [
        ("pull", 1), ("release", 1), ("present", 1),
        ("pull", 2), ("release", 2), ("present", 2),
        ("pull", 3), ("release", 3), ("present", 3),
    ]


def test_stop_during_inference_finishes_current_iteration(android_geometry, clock, no_wait_scheduler):
    holder = {}

    def stop_on_second_call(n):
        if n == 2:
            holder["loop"].stop()

    estimator = ScriptedEstimator(clock, [20, 50, 25], on_call=stop_on_second_call)
    loop, source, _ = _build(android_geometry, clock, estimator, no_wait_scheduler)
    holder["loop"] = loop
    results = []

    summary = loop.run(results.append)

    assert summary.iterations == 2
    assert [r.fps for r in results] == [50, 20]
    assert source.pulled == 2
    assert source.released == 2
    assert source.presented == 1
    assert len(estimator.calls) == 2


def test_start_before_estimator_ready_fails_fast(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [], ready=False)
    loop, source, _ = _build(android_geometry, clock, estimator, no_wait_scheduler)

    with pytest.raises(EstimatorNotReadyError):
        loop.start()
    with pytest.raises(EstimatorNotReadyError):
        loop.run()
    assert source.pulled == 0


def test_source_exhaustion_propagates(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [10, 10])
    loop, source, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, source_frames=2)

    with pytest.raises(FrameSourceExhausted):
        loop.run()

    assert source.released == source.pulled == 2
    assert source.stopped
    assert loop.summary.iterations == 2


def test_threaded_loop_join_reraises_source_error(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [10])
    loop, _, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, source_frames=1)

    thread = loop.start()
    thread.join(timeout=5)

    with pytest.raises(FrameSourceExhausted):
        loop.join()


def test_threaded_loop_stops_on_request(android_geometry):
    clock = FakeClock()
    first_result = threading.Event()
    estimator = ScriptedEstimator(clock, [])

    loop, source, _ = _build(android_geometry, clock, estimator, RefreshScheduler(refresh_hz=200))

    def on_result(_result):
        first_result.set()

    loop.start(on_result)
    assert first_result.wait(timeout=5)
    loop.stop()
    summary = loop.join(timeout=5)

    assert summary is not None
    assert summary.iterations >= 1
    assert source.released == source.pulled
    assert loop.stopped


def test_orientation_change_is_read_at_next_iteration(android_geometry, clock, no_wait_scheduler):
    provider = ManualOrientationProvider(Orientation.PORTRAIT_UP)
    state = AppState()
    state.attach(provider)
    seen = []

    def rotate_after_first(n):
        seen.append(state.snapshot().orientation)
        if n == 1:
            provider.set(Orientation.LANDSCAPE_LEFT)

    estimator = ScriptedEstimator(clock, [10, 10], on_call=rotate_after_first)
    loop, source, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=2, state=state)

    loop.run()

    assert seen == [Orientation.PORTRAIT_UP, Orientation.LANDSCAPE_LEFT]
    assert source.orientation is Orientation.LANDSCAPE_LEFT


@patch("pose_overlay.frame_source.cv2.VideoCapture")
def test_camera_that_fails_to_open_is_released(mock_cap_class, android_geometry, clock, no_wait_scheduler):
    mock_cap = MagicMock()
    mock_cap.isOpened.return_value = False
    mock_cap_class.return_value = mock_cap
    source = DeviceCameraSource(0, android_geometry, Platform.ANDROID, show=False)
    loop = LoopController(
        source,
        ScriptedEstimator(clock, []),
        OverlayRenderer(android_geometry, Platform.ANDROID),
        scheduler=no_wait_scheduler,
        logger=_quiet_logger(),
        clock=clock,
    )

    with pytest.raises(FrameSourceError):
        loop.run()

    assert mock_cap.release.call_count == 1
    assert source.cap is None
    assert loop.summary is not None
    assert loop.summary.iterations == 0


def test_finished_loop_can_run_again(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [20] * 6)
    loop, source, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=2)

    first = loop.run()
    loop.stop()
    loop.max_frames = 4
    second = loop.run()

    assert first.iterations == 2
    assert second.iterations == 4
    assert source.pulled == 4
    assert len(estimator.calls) == 6


def test_finished_threaded_loop_can_start_again(android_geometry, clock, no_wait_scheduler):
    estimator = ScriptedEstimator(clock, [10] * 3)
    loop, _, _ = _build(android_geometry, clock, estimator, no_wait_scheduler, max_frames=1)

    loop.start()
    assert loop.join(timeout=5).iterations == 1
    loop.max_frames = 2
    loop.start()

    assert loop.join(timeout=5).iterations == 2
    assert len(estimator.calls) == 3
