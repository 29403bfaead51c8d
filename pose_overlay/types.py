from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


@dataclass
class Frame:
    idx: int
    timestamp_ms: int
    image: Any  # (H, W, 3) ndarray, RGB
    disposed: bool = False

    def dispose(self) -> None:
        self.image = None
        self.disposed = True


@dataclass(frozen=True)
class Keypoint:
    """A single body joint in model-output coordinates."""

    name: str
    x: float
    y: float
    score: float  # confidence [0..1]


@dataclass(frozen=True)
class Pose:
    keypoints: tuple[Keypoint, ...] = ()
    score: Optional[float] = None


class Orientation(Enum):
    PORTRAIT_UP = "portrait_up"
    LANDSCAPE_RIGHT = "landscape_right"
    PORTRAIT_DOWN = "portrait_down"
    LANDSCAPE_LEFT = "landscape_left"

    @property
    def is_portrait(self) -> bool:
        return self in (Orientation.PORTRAIT_UP, Orientation.PORTRAIT_DOWN)

    @property
    def is_landscape(self) -> bool:
        return not self.is_portrait

    def rotated(self) -> "Orientation":
        members = list(Orientation)
        return members[(members.index(self) + 1) % len(members)]


class CameraFacing(Enum):
    FRONT = "front"
    BACK = "back"

    def toggled(self) -> "CameraFacing":
        return CameraFacing.BACK if self is CameraFacing.FRONT else CameraFacing.FRONT


@dataclass(frozen=True)
class PlatformProfile:
    name: str
    mirrors_by_default: bool
    texture_autorotates: bool
    aspect: float  # preview width / height in portrait


class Platform(Enum):
    ANDROID = PlatformProfile("android", mirrors_by_default=True, texture_autorotates=True, aspect=3 / 4)
    IOS = PlatformProfile("ios", mirrors_by_default=False, texture_autorotates=False, aspect=9 / 16)

    @property
    def profile(self) -> PlatformProfile:
        return self.value

    @classmethod
    def from_name(cls, name: str) -> "Platform":
        key = (name or "").strip().lower()
        for member in cls:
            if member.value.name == key:
                return member
        raise ValueError(f"Unsupported platform: {name!r} (expected 'android' or 'ios')")


@dataclass(frozen=True)
class OutputGeometry:
    """Model-output (tensor) size and preview size, both in portrait."""

    tensor_width: float
    tensor_height: float
    preview_width: float
    preview_height: float

    @classmethod
    def for_platform(
        cls, platform: Platform, tensor_width: float = 180, preview_width: float = 360
    ) -> "OutputGeometry":
        aspect = platform.profile.aspect
        return cls(
            tensor_width=tensor_width,
            tensor_height=tensor_width / aspect,
            preview_width=preview_width,
            preview_height=preview_width / aspect,
        )


@dataclass(frozen=True)
class Circle:
    cx: float
    cy: float
    radius: float = 4
    fill: str = "#00AA00"
    stroke: str = "white"
    stroke_width: float = 2
    name: str = ""


@dataclass(frozen=True)
class LoopResult:
    iteration: int
    poses: list[Pose] = field(default_factory=list)
    latency_ms: int = 1
    fps: int = 0
