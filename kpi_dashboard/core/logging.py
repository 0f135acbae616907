"""Process-wide logging configuration."""

import logging
import sys

_CONFIGURED = False
_QUIET_LOGGERS = ("sqlalchemy", "httpx", "httpcore", "opentelemetry")


def setup_logging(level: str | int = logging.INFO) -> None:
    """Send every record to stdout once, whichever entrypoint calls first."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    )
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _CONFIGURED = True
