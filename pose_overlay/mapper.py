"""Model-output to preview-space coordinate mapping.

All functions here are pure: the same keypoint, orientation, facing and
platform always produce the same display coordinates.
"""

from __future__ import annotations

from typing import Iterable, Tuple

from .types import CameraFacing, Circle, Keypoint, Orientation, OutputGeometry, Platform, Pose

MIN_KEYPOINT_SCORE = 0.3


def effective_output_size(
    geometry: OutputGeometry, orientation: Orientation, platform: Platform
) -> Tuple[float, float]:
    """
    Width and height of the model-output space for the current orientation.

    When the camera texture does not rotate with the device (iOS), the
    tensor is requested with swapped dimensions in landscape so the image
    is not stretched; normalization must use the same swap.
    """
    if orientation.is_landscape and not platform.profile.texture_autorotates:
        return geometry.tensor_height, geometry.tensor_width
    return geometry.tensor_width, geometry.tensor_height


def display_size(geometry: OutputGeometry, orientation: Orientation) -> Tuple[float, float]:
    if orientation.is_portrait:
        return geometry.preview_width, geometry.preview_height
    return geometry.preview_height, geometry.preview_width


def should_mirror(platform: Platform, facing: CameraFacing) -> bool:
    return platform.profile.mirrors_by_default or facing is CameraFacing.BACK


def map_keypoint(
    kp: Keypoint,
    geometry: OutputGeometry,
    orientation: Orientation,
    facing: CameraFacing,
    platform: Platform,
) -> Tuple[float, float]:
    out_w, out_h = effective_output_size(geometry, orientation, platform)
    disp_w, disp_h = display_size(geometry, orientation)

    x = out_w - kp.x if should_mirror(platform, facing) else kp.x
    cx = (x / out_w) * disp_w
    cy = (kp.y / out_h) * disp_h
    return cx, cy


def visible_keypoints(
    keypoints: Iterable[Keypoint], min_score: float = MIN_KEYPOINT_SCORE
) -> list[Keypoint]:
    return [k for k in keypoints if (k.score or 0.0) >= min_score]


def map_pose(
    pose: Pose,
    geometry: OutputGeometry,
    orientation: Orientation,
    facing: CameraFacing,
    platform: Platform,
    min_score: float = MIN_KEYPOINT_SCORE,
    **style,
) -> list[Circle]:
    circles = []
    for kp in visible_keypoints(pose.keypoints, min_score):
        cx, cy = map_keypoint(kp, geometry, orientation, facing, platform)
        circles.append(Circle(cx, cy, name=f"skeletonkp_{kp.name}", **style))
    return circles
