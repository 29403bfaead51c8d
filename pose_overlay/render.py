from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from .config import StyleConfig
from .mapper import MIN_KEYPOINT_SCORE, display_size, map_pose
from .state import AppSnapshot
from .types import CameraFacing, Circle, OutputGeometry, Platform

_NAMED_COLORS = {
    "white": (255, 255, 255),
    "black": (0, 0, 0),
    "red": (0, 0, 255),
    "green": (0, 255, 0),
    "blue": (255, 0, 0),
}


def parse_color(value: str) -> tuple[int, int, int]:
    """Parse '#RRGGBB' or a basic color name into an OpenCV BGR tuple."""
    text = (value or "").strip().lower()
    if text in _NAMED_COLORS:
        return _NAMED_COLORS[text]
    if text.startswith("#") and len(text) == 7:
        r, g, b = (int(text[i:i + 2], 16) for i in (1, 3, 5))
        return b, g, r
    raise ValueError(f"Unsupported color: {value!r}")


class OverlayRenderer:
    def __init__(
        self,
        geometry: OutputGeometry,
        platform: Platform,
        min_score: float = MIN_KEYPOINT_SCORE,
        style: Optional[StyleConfig] = None,
    ):
        self.geometry = geometry
        self.platform = platform
        self.min_score = min_score
        self.style = style or StyleConfig()

    def circles(self, snapshot: AppSnapshot) -> list[Circle]:
        if not snapshot.poses:
            return []
        return map_pose(
            snapshot.poses[0],
            self.geometry,
            snapshot.orientation,
            snapshot.facing,
            self.platform,
            self.min_score,
            **self.style.circle_style(),
        )

    def render(self, snapshot: AppSnapshot, image: Optional[np.ndarray] = None) -> np.ndarray:
        """Draw the overlay on a display-sized copy of `image` and return it."""
        w, h = (int(round(v)) for v in display_size(self.geometry, snapshot.orientation))
        if image is None:
            canvas = np.zeros((h, w, 3), dtype=np.uint8)
        else:
            canvas = cv2.resize(image, (w, h), interpolation=cv2.INTER_LINEAR)

        for c in self.circles(snapshot):
            center = (int(round(c.cx)), int(round(c.cy)))
            radius = max(1, int(round(c.radius)))
            cv2.circle(canvas, center, radius, parse_color(c.fill), -1, cv2.LINE_AA)
            if c.stroke_width > 0:
                cv2.circle(
                    canvas, center, radius, parse_color(c.stroke), int(round(c.stroke_width)), cv2.LINE_AA
                )

        if self.style.show_fps:
            self._label(canvas, fps_label(snapshot.fps), anchor_right=False)
        if self.style.show_switcher:
            self._label(canvas, switcher_label(snapshot.facing), anchor_right=True)
        return canvas

    def _label(self, canvas: np.ndarray, text: str, anchor_right: bool) -> None:
        font, scale, thickness = cv2.FONT_HERSHEY_SIMPLEX, 0.45, 1
        (tw, th), baseline = cv2.getTextSize(text, font, scale, thickness)
        pad, margin = 8, 10
        x0 = canvas.shape[1] - margin - tw - 2 * pad if anchor_right else margin
        y0 = margin
        x1, y1 = x0 + tw + 2 * pad, y0 + th + baseline + 2 * pad

        # translucent white box behind the text
        box = canvas.copy()
        cv2.rectangle(box, (x0, y0), (x1, y1), (255, 255, 255), -1)
        cv2.addWeighted(box, 0.7, canvas, 0.3, 0, dst=canvas)
        cv2.putText(canvas, text, (x0 + pad, y0 + pad + th), font, scale, (0, 0, 0), thickness, cv2.LINE_AA)


def fps_label(fps: int) -> str:
    return f"FPS: {fps}"


def switcher_label(facing: CameraFacing) -> str:
    target = "back" if facing is CameraFacing.FRONT else "front"
    return f"Switch to {target} camera"
