import pytest

from pose_overlay.errors import EstimatorError
from pose_overlay.estimator import PoseEstimator
from pose_overlay.frame_source import SyntheticFrameSource
from pose_overlay.render import OverlayRenderer
from pose_overlay.scheduler import RefreshScheduler
from pose_overlay.types import Keypoint, OutputGeometry, Platform, Pose


class FakeClock:
    """Millisecond clock advanced explicitly by the fake estimator."""

    def __init__(self, start_ms: int = 1_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class ScriptedEstimator(PoseEstimator):
    """Replays canned latencies/results; an Exception entry is raised instead."""

    def __init__(self, clock, latencies, results=None, ready=True, on_call=None):
        self.clock = clock
        self.latencies = list(latencies)
        self.results = list(results) if results is not None else None
        self.ready = ready
        self.on_call = on_call
        self.calls = []
        self.closed = False

    def name(self) -> str:
        return "scripted"

    def is_ready(self) -> bool:
        return self.ready

    def estimate(self, frame, timestamp_ms):
        self.calls.append((frame.idx, timestamp_ms, frame.disposed))
        if self.on_call is not None:
            self.on_call(len(self.calls))
        latency = self.latencies.pop(0) if self.latencies else 10
        self.clock.advance(latency)
        result = self.results.pop(0) if self.results else single_pose()
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        self.closed = True


class RecordingSource(SyntheticFrameSource):
    """Synthetic source that logs pull/release/present events in order."""

    def __init__(self, geometry, platform, max_frames=None):
        super().__init__(geometry, platform, fps=0, max_frames=max_frames)
        self.events = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.started = False
        self.stopped = False

    def start(self):
        super().start()
        self.started = True

    def next_frame(self):
        frame = super().next_frame()
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.events.append(("pull", frame.idx))
        return frame

    def release(self, frame):
        super().release(frame)
        self.in_flight -= 1
        self.events.append(("release", frame.idx))

    def present_frame(self, canvas):
        super().present_frame(canvas)
        self.events.append(("present", self.pulled))

    def stop(self):
        self.stopped = True


class RecordingRenderer(OverlayRenderer):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.rendered = []

    def render(self, snapshot, image=None):
        self.rendered.append(self.circles(snapshot))
        return super().render(snapshot, image)


def single_pose(x=90.0, y=90.0, score=0.9, name="nose"):
    return [Pose((Keypoint(name, x, y, score),))]


@pytest.fixture
def android_geometry():
    return OutputGeometry.for_platform(Platform.ANDROID, tensor_width=180, preview_width=360)


@pytest.fixture
def ios_geometry():
    return OutputGeometry.for_platform(Platform.IOS, tensor_width=180, preview_width=360)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def no_wait_scheduler():
    return RefreshScheduler(refresh_hz=0)


@pytest.fixture
def inference_error():
    return EstimatorError("bad frame")
