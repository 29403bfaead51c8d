"""Logger setup for the overlay app.

Records carry the session name and the facing of the active camera, so the
lines written by the loop thread can be told apart after a camera switch.
"""

import logging
from typing import Callable, Optional

from .types import CameraFacing

_FORMAT = "%(asctime)s %(levelname)s [%(session)s/%(facing)s] %(threadName)s: %(message)s"


class SessionContextFilter(logging.Filter):
    def __init__(self, session: str, facing: Optional[Callable[[], CameraFacing]] = None):
        super().__init__()
        self.session = session
        self.facing = facing

    def filter(self, record: logging.LogRecord) -> bool:
        record.session = self.session
        record.facing = self.facing().value if self.facing is not None else "-"
        return True


def _attach(logger: logging.Logger, handler: logging.Handler, context: logging.Filter) -> logging.Handler:
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(context)
    logger.addHandler(handler)
    return handler


def setup_logger(session: str, verbose: bool = False) -> logging.Logger:
    logger = logging.getLogger(f"pose_overlay.{session}")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if not logger.handlers:
        _attach(logger, logging.StreamHandler(), SessionContextFilter(session))

    return logger


def bind_facing(logger: logging.Logger, facing: Callable[[], CameraFacing]) -> None:
    """Make every handler of ``logger`` report the camera facing returned by ``facing``."""
    for handler in logger.handlers:
        for flt in handler.filters:
            if isinstance(flt, SessionContextFilter):
                flt.facing = facing


def add_file_handler(
    logger: logging.Logger,
    session: str,
    log_path: str,
    facing: Optional[Callable[[], CameraFacing]] = None,
) -> logging.Handler:
    return _attach(logger, logging.FileHandler(log_path), SessionContextFilter(session, facing))


def remove_handler(logger: logging.Logger, handler: Optional[logging.Handler]) -> None:
    if handler is None:
        return
    logger.removeHandler(handler)
    handler.close()
