"""Shared application state: orientation, camera facing and latest result.

Orientation changes arrive from an OrientationProvider on whatever thread
the provider uses; they land in a single-slot cell that the loop reads once
at the top of each iteration. Everything the renderer needs is handed out as
an immutable AppSnapshot.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from .types import CameraFacing, Orientation, Pose

T = TypeVar("T")


class LatestCell(Generic[T]):
    """Holds only the most recent value pushed into it."""

    def __init__(self, value: T):
        self._lock = threading.Lock()
        self._value = value

    def push(self, value: T) -> None:
        with self._lock:
            self._value = value

    def read(self) -> T:
        with self._lock:
            return self._value


class OrientationProvider(ABC):
    @abstractmethod
    def current_orientation(self) -> Orientation: ...

    @abstractmethod
    def on_change(self, callback: Callable[[Orientation], None]) -> None: ...


class ManualOrientationProvider(OrientationProvider):
    """Orientation driven by explicit calls (keyboard, tests, config)."""

    def __init__(self, orientation: Orientation = Orientation.PORTRAIT_UP):
        self._orientation = orientation
        self._callbacks: list[Callable[[Orientation], None]] = []

    def current_orientation(self) -> Orientation:
        return self._orientation

    def on_change(self, callback: Callable[[Orientation], None]) -> None:
        self._callbacks.append(callback)

    def set(self, orientation: Orientation) -> None:
        self._orientation = orientation
        for cb in list(self._callbacks):
            cb(orientation)

    def rotate(self) -> Orientation:
        self.set(self._orientation.rotated())
        return self._orientation


@dataclass(frozen=True)
class AppSnapshot:
    orientation: Orientation
    facing: CameraFacing
    poses: tuple[Pose, ...]
    fps: int


class AppState:
    def __init__(
        self,
        orientation: Orientation = Orientation.PORTRAIT_UP,
        facing: CameraFacing = CameraFacing.FRONT,
    ):
        self.orientation_cell: LatestCell[Orientation] = LatestCell(orientation)
        self._lock = threading.Lock()
        self._orientation = orientation
        self._facing = facing
        self._poses: tuple[Pose, ...] = ()
        self._fps = 0

    def attach(self, provider: OrientationProvider) -> None:
        self.orientation_cell.push(provider.current_orientation())
        provider.on_change(self.orientation_cell.push)
        self.sync_orientation()

    def sync_orientation(self) -> Orientation:
        """Adopt the latest pushed orientation; called once per iteration."""
        latest = self.orientation_cell.read()
        with self._lock:
            self._orientation = latest
        return latest

    @property
    def facing(self) -> CameraFacing:
        with self._lock:
            return self._facing

    def toggle_facing(self) -> CameraFacing:
        with self._lock:
            self._facing = self._facing.toggled()
            return self._facing

    def publish(self, poses: list[Pose], fps: int) -> None:
        with self._lock:
            self._poses = tuple(poses or ())
            self._fps = int(fps)

    def snapshot(self) -> AppSnapshot:
        with self._lock:
            return AppSnapshot(
                orientation=self._orientation,
                facing=self._facing,
                poses=self._poses,
                fps=self._fps,
            )
