"""structlog configuration shared by every CLI command."""

from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

from guide_augment.config import settings

_LOG_LEVEL_MAP: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class _TeeWriter:
    """Write log lines to stderr and to a run log file.

    If the file cannot be opened or a write fails, file logging is disabled
    and the run keeps logging to stderr only.
    """

    def __init__(self, file_path: str) -> None:
        self._file: IO[str] | None = None
        try:
            self._file = open(file_path, "a", encoding="utf-8")  # noqa: SIM115
        except OSError as exc:
            # structlog is not configured yet
            print(
                f"WARNING: Could not open log file {file_path!r}: {exc}. "
                "Logging to stderr only.",
                file=sys.stderr,
            )

    def write(self, data: str) -> None:
        sys.stderr.write(data)
        if self._file is not None:
            try:
                self._file.write(data)
                self._file.flush()
            except (OSError, ValueError):
                self._file = None
                print("WARNING: Log file write failed. File logging disabled.", file=sys.stderr)

    def flush(self) -> None:
        sys.stderr.flush()
        if self._file is not None:
            try:
                self._file.flush()
            except (OSError, ValueError):
                self._file = None
                print("WARNING: Log file flush failed. File logging disabled.", file=sys.stderr)


def configure_logging(verbose: bool = False, command: str | None = None) -> None:
    """Configure structlog: console renderer in development, JSON lines otherwise.

    Logs go to stderr so the run summary on stdout stays readable. ``verbose``
    forces DEBUG regardless of LOG_LEVEL. ``command`` names the CLI command
    and is bound to every line of the run, so lines from `augment` and
    `extract` runs sharing one LOG_FILE can be told apart.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )

    level = _LOG_LEVEL_MAP.get(settings.log_level.upper(), logging.INFO)
    if verbose:
        level = logging.DEBUG

    logger_factory: structlog.types.WrappedLogger
    if settings.log_file:
        logger_factory = structlog.PrintLoggerFactory(file=_TeeWriter(settings.log_file))  # type: ignore[arg-type]
    else:
        logger_factory = structlog.PrintLoggerFactory(file=sys.stderr)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    if command:
        structlog.contextvars.bind_contextvars(command=command)
