"""Local document store for guide files.

Guides are text files with an optional ``---`` delimited YAML front-matter
header followed by a markdown body. Only the body is ever rewritten: the
header is kept as the exact text that was read and written back untouched.
"""

from __future__ import annotations

import os
import re
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
import yaml

from guide_augment.errors import ConfigurationError, WriteFailed
from guide_augment.models.contracts import GuideDocument

log = structlog.get_logger("documents")

GUIDE_EXTENSIONS = (".mdx", ".md")

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


def parse_frontmatter(inner: str) -> dict[str, Any]:
    """Load the YAML between the delimiters. Anything but a mapping reads as empty."""
    if not inner.strip():
        return {}
    try:
        data = yaml.safe_load(inner)
    except yaml.YAMLError as exc:
        log.warning("frontmatter_invalid", error=str(exc)[:200])
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        log.warning("frontmatter_not_mapping", got=type(data).__name__)
        return {}
    return {str(key): value for key, value in data.items()}


def split_frontmatter(text: str) -> tuple[str, dict[str, Any], str]:
    """Split raw file text into (header block, parsed metadata, body).

    The metadata is informational; the header is never re-serialized.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return "", {}, text
    return match.group(0), parse_frontmatter(match.group(1) or ""), text[match.end() :]


def load_document(path: Path) -> GuideDocument:
    # newline="" keeps CRLF files byte-identical on rewrite
    with open(path, encoding="utf-8", newline="") as fh:
        text = fh.read()
    block, data, body = split_frontmatter(text)
    return GuideDocument(
        id=path.name,
        path=path,
        frontmatter=data,
        frontmatter_block=block,
        body=body,
    )


def render_document(document: GuideDocument, body: str) -> str:
    return document.frontmatter_block + body


def backup_timestamp(now: datetime | None = None) -> str:
    """Filesystem-safe run timestamp, e.g. ``2026-10-18T09-30-00-123456``."""
    now = now or datetime.now()
    return now.isoformat(timespec="microseconds").replace(":", "-").replace(".", "-")


def create_backup(path: Path, backup_dir: Path, run_timestamp: str) -> Path:
    """Copy ``path`` to ``backup_dir/<run_timestamp>-<name>``.

    Raises WriteFailed if the copy cannot be made or a backup by that name
    already exists; callers must not touch the original in that case.
    """
    backup_path = backup_dir / f"{run_timestamp}-{path.name}"
    if backup_path.exists():
        raise WriteFailed(
            f"Backup of {path.name} failed: {backup_path.name} already exists",
            document_id=path.name,
        )
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, backup_path)
    except OSError as exc:
        raise WriteFailed(
            f"Backup of {path.name} failed: {exc}", document_id=path.name
        ) from exc
    log.debug("document_backed_up", document_id=path.name, backup_path=str(backup_path))
    return backup_path


def write_document(document: GuideDocument, body: str) -> None:
    """Replace the document file with its header plus ``body`` in one step.

    The new content is written to a temp file in the same directory and
    moved over the original with ``os.replace``, so readers see either the
    old or the new file, never a partial one.
    """
    path = document.path
    content = render_document(document, body)
    tmp_name: str | None = None
    replaced = False
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
        shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
        replaced = True
    except OSError as exc:
        raise WriteFailed(f"Writing {path.name} failed: {exc}", document_id=path.name) from exc
    finally:
        if not replaced and tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
    log.debug("document_written", document_id=path.name, bytes=len(content.encode("utf-8")))


# === Discovery ===


def _resolve_path(raw: str, content_dir: Path) -> Path:
    candidate = Path(raw)
    if candidate.is_absolute():
        resolved = candidate
    elif candidate.exists():
        resolved = candidate.resolve()
    else:
        resolved = content_dir / candidate

    if not resolved.exists():
        raise ConfigurationError(f"File not found: {raw} (resolved to: {resolved})")
    if not resolved.is_file():
        raise ConfigurationError(f"Path is not a file: {raw}")
    if resolved.suffix.lower() not in GUIDE_EXTENSIONS:
        raise ConfigurationError(f"Unsupported guide file type: {raw}")
    return resolved


def discover_documents(
    content_dir: Path,
    *,
    paths: list[str] | None = None,
    pattern: str | None = None,
    max_files: int | None = None,
) -> list[Path]:
    """Resolve the documents a run should process.

    Explicit ``paths`` win over directory listing. Otherwise every guide in
    ``content_dir`` whose name matches ``pattern`` (case-insensitive regex)
    is returned, sorted by name. ``max_files`` caps the result. Two explicit
    paths naming different files with the same file name are rejected;
    repeats of the same file are dropped.
    """
    if paths:
        files = []
        seen: dict[str, Path] = {}
        for raw in paths:
            resolved = _resolve_path(raw, content_dir)
            previous = seen.get(resolved.name)
            if previous is None:
                seen[resolved.name] = resolved
                files.append(resolved)
            elif previous.resolve() != resolved.resolve():
                # document ids and backup names are keyed on the file name
                raise ConfigurationError(
                    f"Duplicate guide file name {resolved.name}: {previous} and {resolved}"
                )
    else:
        if not content_dir.is_dir():
            raise ConfigurationError(f"Content directory not found: {content_dir}")
        files = sorted(
            p
            for p in content_dir.iterdir()
            if p.is_file() and p.suffix.lower() in GUIDE_EXTENSIONS
        )
        if pattern:
            try:
                regex = re.compile(pattern, re.IGNORECASE)
            except re.error as exc:
                raise ConfigurationError(f"Invalid file pattern {pattern!r}: {exc}") from exc
            files = [p for p in files if regex.search(p.name)]

    if max_files is not None and max_files > 0 and len(files) > max_files:
        log.info("documents_capped", found=len(files), max_files=max_files)
        files = files[:max_files]
    return files
