from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

from .types import CameraFacing, Orientation, OutputGeometry, Platform


@dataclass
class EstimatorConfig:
    backend: str = "mediapipe"  # "mediapipe", "none"
    model_path: str = "models/pose_landmarker_lite.task"
    num_poses: int = 1
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class StyleConfig:
    radius: float = 4
    fill: str = "#00AA00"
    stroke: str = "white"
    stroke_width: float = 2
    show_fps: bool = True
    show_switcher: bool = True

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def circle_style(self) -> dict[str, Any]:
        return {
            "radius": self.radius,
            "fill": self.fill,
            "stroke": self.stroke,
            "stroke_width": self.stroke_width,
        }


@dataclass
class OverlayConfig:
    name: str = "pose"
    device: int | str = 0
    back_device: Optional[int | str] = None  # None: same device for both facings
    platform: str = "android"  # "android", "ios"
    facing: str = "front"  # "front", "back"
    orientation: str = "portrait_up"
    tensor_width: int = 180
    preview_width: int = 360
    fps: int = 30  # requested capture rate
    refresh_hz: float = 60.0
    min_keypoint_score: float = 0.3
    max_frames: Optional[int] = None
    dry_run: bool = False
    window_name: str = "pose_overlay"
    log_file: Optional[str] = None
    estimator: EstimatorConfig = field(default_factory=EstimatorConfig)
    style: StyleConfig = field(default_factory=StyleConfig)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "OverlayConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self

    @property
    def platform_enum(self) -> Platform:
        return Platform.from_name(self.platform)

    @property
    def facing_enum(self) -> CameraFacing:
        return _parse_enum(CameraFacing, self.facing, "facing")

    @property
    def orientation_enum(self) -> Orientation:
        return _parse_enum(Orientation, self.orientation, "orientation")

    def geometry(self) -> OutputGeometry:
        return OutputGeometry.for_platform(
            self.platform_enum, tensor_width=self.tensor_width, preview_width=self.preview_width
        )

    def validate(self) -> "OverlayConfig":
        self.platform_enum
        self.facing_enum
        self.orientation_enum
        if self.tensor_width <= 0 or self.preview_width <= 0:
            raise ValueError("tensor_width and preview_width must be positive")
        if not 0.0 <= self.min_keypoint_score <= 1.0:
            raise ValueError("min_keypoint_score must be within [0, 1]")
        return self


def _parse_enum(enum_cls, value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    key = str(value).strip().lower().replace("-", "_")
    for member in enum_cls:
        if member.value == key:
            return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValueError(f"Invalid {field_name}: {value!r} (expected one of: {allowed})")


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        import yaml  # type: ignore
    except Exception as exc:  # pragma: no cover - dependency missing
        raise RuntimeError(
            "YAML config requested but PyYAML is not installed. "
            "Install with: pip install pyyaml"
        ) from exc
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _normalize_device(value: Any) -> int | str:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def load_config(path: str | Path) -> OverlayConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = OverlayConfig()
    cfg.name = str(raw.get("name", cfg.name))
    cfg.device = _normalize_device(raw.get("device", cfg.device))
    back_device = raw.get("back_device", cfg.back_device)
    cfg.back_device = _normalize_device(back_device) if back_device is not None else None
    cfg.platform = str(raw.get("platform", cfg.platform))
    cfg.facing = str(raw.get("facing", cfg.facing))
    cfg.orientation = str(raw.get("orientation", cfg.orientation))
    cfg.tensor_width = int(raw.get("tensor_width", cfg.tensor_width))
    cfg.preview_width = int(raw.get("preview_width", cfg.preview_width))
    cfg.fps = int(raw.get("fps", cfg.fps))
    cfg.refresh_hz = float(raw.get("refresh_hz", cfg.refresh_hz))
    cfg.min_keypoint_score = float(raw.get("min_keypoint_score", cfg.min_keypoint_score))
    cfg.max_frames = raw.get("max_frames", cfg.max_frames)
    if cfg.max_frames is not None:
        cfg.max_frames = int(cfg.max_frames)
    cfg.dry_run = bool(raw.get("dry_run", cfg.dry_run))
    cfg.window_name = str(raw.get("window_name", cfg.window_name))
    cfg.log_file = raw.get("log_file", cfg.log_file)

    est_raw = raw.get("estimator")
    if est_raw is not None:
        if not isinstance(est_raw, dict):
            raise ValueError("estimator must be a mapping")
        est = EstimatorConfig()
        est.backend = str(est_raw.get("backend", est.backend))
        est.model_path = str(est_raw.get("model_path", est.model_path))
        est.num_poses = int(est_raw.get("num_poses", est.num_poses))
        est.min_detection_confidence = float(
            est_raw.get("min_detection_confidence", est.min_detection_confidence)
        )
        est.min_tracking_confidence = float(
            est_raw.get("min_tracking_confidence", est.min_tracking_confidence)
        )
        cfg.estimator = est

    style_raw = raw.get("style")
    if style_raw is not None:
        if not isinstance(style_raw, dict):
            raise ValueError("style must be a mapping")
        style = StyleConfig()
        style.radius = float(style_raw.get("radius", style.radius))
        style.fill = str(style_raw.get("fill", style.fill))
        style.stroke = str(style_raw.get("stroke", style.stroke))
        style.stroke_width = float(style_raw.get("stroke_width", style.stroke_width))
        style.show_fps = bool(style_raw.get("show_fps", style.show_fps))
        style.show_switcher = bool(style_raw.get("show_switcher", style.show_switcher))
        cfg.style = style

    return cfg.validate()
