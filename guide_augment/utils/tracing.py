"""LangSmith tracing for extraction calls, no-ops when LANGSMITH_API_KEY is unset.

The env var and the import are checked on each call, not at import time.
If tracing is requested but langsmith is not installed (it ships in the
``tracing`` extra), calls run untraced and a warning is logged.
"""

from __future__ import annotations

import os
from typing import Any

import structlog

_log = structlog.get_logger("tracing")

_INSTALL_HINT = "install with: pip install 'guide-augment[tracing]'"
TRACE_TAG = "guide-augment"


def _tracing_enabled() -> bool:
    return bool(os.environ.get("LANGSMITH_API_KEY", "").strip())


def _noop(fn: Any) -> Any:
    return fn


def wrap_anthropic(client: Any) -> Any:
    """Wrap an Anthropic client for auto-tracing. No-op without LANGSMITH_API_KEY."""
    if not _tracing_enabled():
        return client
    try:
        from langsmith.wrappers import wrap_anthropic as _wrap
    except (ImportError, ModuleNotFoundError):
        _log.warning(
            "langsmith_not_installed",
            reason=f"LANGSMITH_API_KEY is set but langsmith is not installed; {_INSTALL_HINT}",
        )
        return client
    try:
        return _wrap(client)
    except Exception as exc:
        _log.error(
            "langsmith_wrap_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            reason="langsmith wrapping failed; continuing without tracing",
        )
        return client


def traceable(**kwargs: Any) -> Any:
    """Decorator for tracing a pipeline step. No-op without LANGSMITH_API_KEY.

    Runs are tagged ``guide-augment`` unless the caller passes its own tags.
    """
    if not _tracing_enabled():
        return _noop
    kwargs.setdefault("tags", [TRACE_TAG])
    try:
        from langsmith import traceable as _traceable
    except (ImportError, ModuleNotFoundError):
        _log.warning(
            "langsmith_not_installed",
            reason=f"LANGSMITH_API_KEY is set but langsmith is not installed; {_INSTALL_HINT}",
        )
        return _noop
    try:
        return _traceable(**kwargs)
    except Exception as exc:
        _log.error(
            "langsmith_traceable_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            reason="langsmith decorator failed; continuing without tracing",
        )
        return _noop
