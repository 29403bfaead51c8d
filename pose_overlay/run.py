import argparse
import logging
import signal
import sys

from .app import PoseOverlayApp
from .config import OverlayConfig, load_config
from .errors import FrameSourceError


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Overlay live pose keypoints on a camera preview")
    ap.add_argument("--config", help="Path to JSON/YAML config")

    ap.add_argument("--name")
    ap.add_argument("--device")
    ap.add_argument("--back-device")
    ap.add_argument("--platform", choices=["android", "ios"])
    ap.add_argument("--facing", choices=["front", "back"])
    ap.add_argument(
        "--orientation",
        choices=["portrait_up", "portrait_down", "landscape_left", "landscape_right"],
    )
    ap.add_argument("--tensor-width", type=int)
    ap.add_argument("--preview-width", type=int)
    ap.add_argument("--fps", type=int)
    ap.add_argument("--refresh-hz", type=float)
    ap.add_argument("--min-score", type=float)
    ap.add_argument("--max-frames", type=int)
    ap.add_argument("--model")
    ap.add_argument("--dry-run", action="store_true")
    ap.add_argument("--log-file")
    ap.add_argument("--verbose", action="store_true")

    return ap


def _device(value):
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def _apply_args(cfg: OverlayConfig, args: argparse.Namespace) -> OverlayConfig:
    cfg.apply_overrides(
        name=args.name,
        device=_device(args.device),
        back_device=_device(args.back_device),
        platform=args.platform,
        facing=args.facing,
        orientation=args.orientation,
        tensor_width=args.tensor_width,
        preview_width=args.preview_width,
        fps=args.fps,
        refresh_hz=args.refresh_hz,
        min_keypoint_score=args.min_score,
        max_frames=args.max_frames,
        dry_run=args.dry_run if args.dry_run else None,
        log_file=args.log_file,
    )
    if args.model:
        cfg.estimator.model_path = args.model
    return cfg.validate()


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config) if args.config else OverlayConfig()
    cfg = _apply_args(cfg, args)

    app = PoseOverlayApp(cfg)
    if args.verbose:
        app.logger.setLevel(logging.DEBUG)

    def _handle_signal(_sig, _frame):
        app.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    try:
        summary = app.run()
    except FrameSourceError as e:
        app.logger.error("camera feed lost: %s", e)
        return 1
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
