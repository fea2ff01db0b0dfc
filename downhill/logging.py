"""Package loggers and the bridge from line search traces to tracking sinks.

Every module logs through :func:`get_logger`, which places it under the
``downhill`` namespace with its own stderr handler. :func:`tracking_handler`
lets :class:`downhill.TrackCalls` copy those records into a tracking file.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional, TextIO

_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

# level given to loggers created from now on
_DEFAULT_LEVEL = logging.WARNING

# loggers handed out so far, by full name
_loggers: dict[str, logging.Logger] = {}


def _as_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.WARNING)
    return level


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the ``downhill`` logger for ``name``.

    Names outside the package namespace get the ``downhill.`` prefix, so
    ``get_logger(__name__)`` inside the package and ``get_logger("mine")``
    in user code both land under ``downhill``. The first request attaches a
    stderr handler and turns off propagation; later requests for the same
    name return the same object.

    Example:
        >>> from downhill.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Bracketing the minimum")
    """
    if name is None:
        name = "downhill"
    full_name = name if name == "downhill" or name.startswith("downhill.") else f"downhill.{name}"

    cached = _loggers.get(full_name)
    if cached is not None:
        return cached

    logger = logging.getLogger(full_name)
    # a logger set up elsewhere keeps its handlers
    if not logger.handlers:
        logger.setLevel(_DEFAULT_LEVEL)
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(_DEFAULT_LEVEL)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False

    _loggers[full_name] = logger
    return logger


def set_log_level(level: int | str) -> None:
    """Change the threshold of every ``downhill`` logger and its handlers.

    ``level`` is a :mod:`logging` constant or its name (``"DEBUG"`` shows the
    line search trace on stderr). Loggers created afterwards start at it too.
    """
    level = _as_level(level)
    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)

    global _DEFAULT_LEVEL
    _DEFAULT_LEVEL = level


def configure_logging(
    level: int | str = logging.WARNING,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Replace the handlers of every ``downhill`` logger.

    Each logger gets a single handler writing to ``stream`` (stderr when
    omitted) with ``format_string`` at ``level``.
    """
    level = _as_level(level)
    formatter = logging.Formatter(_FORMAT if format_string is None else format_string)
    target = sys.stderr if stream is None else stream

    for logger in _loggers.values():
        logger.setLevel(level)
        for old in logger.handlers[:]:
            logger.removeHandler(old)
        handler = logging.StreamHandler(target)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    global _DEFAULT_LEVEL
    _DEFAULT_LEVEL = level


@contextmanager
def tracking_handler(
    logger: logging.Logger, sink: TextIO, level: int = logging.DEBUG
) -> Iterator[logging.Handler]:
    """Temporarily copy records of ``logger`` at ``level`` and above into ``sink``.

    The logger's own level is lowered for the duration of the block and
    restored afterwards; its regular handlers keep their thresholds.
    """
    handler = logging.StreamHandler(sink)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    old_level = logger.level
    logger.addHandler(handler)
    if old_level > level or old_level == logging.NOTSET:
        logger.setLevel(level)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        logger.setLevel(old_level)
        handler.flush()


__all__ = ["configure_logging", "get_logger", "set_log_level", "tracking_handler"]
