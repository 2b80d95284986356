"""Disk cache for extraction responses, for development re-runs.

Keyed by a hash of the model name, the rendered system prompt and the
document body, so editing either the guide or the prompt is a cache miss.
Controlled by the LLM_CACHE_DIR setting; disabled when empty, which is the
production default. Cache read/write failures are ignored:
the cache is never a reason to fail a document.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import structlog

from guide_augment.config import settings

logger = structlog.get_logger("llm_cache")

_CACHE_DIR: str | None = settings.llm_cache_dir.strip() or None


def _cache_path(namespace: str, key_parts: list[str]) -> Path | None:
    """Return cache file path, or None if caching is disabled."""
    if not _CACHE_DIR:
        return None
    raw = "|".join(key_parts)
    digest = hashlib.sha256(raw.encode()).hexdigest()[:20]
    cache_dir = Path(_CACHE_DIR) / namespace
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir / f"{digest}.json"


def get_cached(namespace: str, key_parts: list[str]) -> Any | None:
    """Return the cached JSON value if present, else None."""
    path = _cache_path(namespace, key_parts)
    if path and path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            logger.info("llm_cache_hit", namespace=namespace)
            return data
        except (json.JSONDecodeError, OSError):
            pass
    return None


def set_cached(namespace: str, key_parts: list[str], value: Any) -> None:
    """Save a JSON-serializable value to the cache."""
    path = _cache_path(namespace, key_parts)
    if path:
        try:
            path.write_text(json.dumps(value), encoding="utf-8")
            logger.info("llm_cache_saved", namespace=namespace)
        except (OSError, TypeError):
            pass
