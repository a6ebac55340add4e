"""Logging for the ``finledger`` package.

Library modules log through ``get_logger("finledger.<module>")`` with
``event:key=value`` messages such as ``sync:page_applied item_id=3 added=12``
and never attach handlers themselves. Entrypoints (the CLI, a scheduler
wrapper) call :func:`configure_logging`; calling it again only changes the
level.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "finledger"
LEVEL_ENV = "FINLEDGER_LOG_LEVEL"

_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
# Bank-sync SDK and its HTTP stack; request-level chatter stays out of the
# ledger log unless it is a warning.
_QUIET_LOGGERS: tuple[str, ...] = ("plaid", "urllib3")

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


class _PackageHandler(logging.StreamHandler):
    """The one stream handler :func:`configure_logging` installs.

    Without an explicit stream it writes to whatever ``sys.stderr`` is at
    emit time, as :data:`logging.lastResort` does.
    """

    def __init__(self, stream: IO[str] | None = None) -> None:
        logging.Handler.__init__(self)
        self._stream = stream

    @property
    def stream(self) -> IO[str]:
        return self._stream if self._stream is not None else sys.stderr

    @stream.setter
    def stream(self, value: IO[str] | None) -> None:
        self._stream = value


def resolve_level(level: int | str | None = None) -> int:
    """``level`` when recognised, else ``FINLEDGER_LOG_LEVEL``, else ``INFO``."""

    for candidate in (level, os.getenv(LEVEL_ENV)):
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
        if isinstance(candidate, str) and candidate.strip():
            name = candidate.strip().upper()
            if name.isdigit():
                return int(name)
            mapped = logging.getLevelNamesMapping().get(name)
            if mapped is not None:
                return mapped
    return logging.INFO


def configure_logging(
    level: int | str | None = None, *, stream: IO[str] | None = None
) -> logging.Logger:
    """Send ``finledger`` logs to ``stream`` (stderr) at the resolved level."""

    logger = logging.getLogger(PACKAGE_LOGGER)
    resolved = resolve_level(level)

    handler = next((h for h in logger.handlers if isinstance(h, _PackageHandler)), None)
    if handler is None:
        handler = _PackageHandler(stream)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    elif stream is not None:
        handler.setStream(stream)
    handler.setLevel(resolved)
    logger.setLevel(resolved)
    # Avoid double emission via the root logger.
    logger.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["LEVEL_ENV", "PACKAGE_LOGGER", "configure_logging", "get_logger", "resolve_level"]
