"""Shared logging configuration for the lyric submission checker.

Call ``configure_logging()`` once at any CLI entry point to ensure logs are emitted.
The function is idempotent: if the root logger already has handlers, it does nothing.
"""

import logging
import os
from typing import Optional

LOG_LEVEL_VAR = "LYRIC_CHECKER_LOG_LEVEL"


def resolve_level(level: Optional[int] = None) -> int:
    """Explicit level, else $LYRIC_CHECKER_LOG_LEVEL, else INFO."""
    if level is not None:
        return level
    name = os.environ.get(LOG_LEVEL_VAR, "").strip().upper()
    value = logging.getLevelName(name) if name else logging.INFO
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: Optional[int] = None, log_file: Optional[str] = "logs/lyric_checker.log") -> None:
    """Configure root logger with console + optional file handler.

    Only configures if the root logger has no handlers (idempotent).
    """
    root = logging.getLogger()
    if root.handlers:
        return

    fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(fmt)

    # Console handler; stderr keeps stdout free for the verdict
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    # File handler (optional, only if the log directory can be created)
    if log_file:
        try:
            os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
            fh = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            fh.setFormatter(formatter)
            root.addHandler(fh)
        except OSError:
            pass

    root.setLevel(resolve_level(level))
