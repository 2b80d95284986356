"""Shared fixtures and builders for the guide augmentation tests."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from guide_augment.models.contracts import CatalogCandidate, GearMention
from guide_augment.utils import llm_cache

LONG_BODY = (
    "Planning a first overnight on the Appalachian Trail starts with shelter. "
    "A lightweight tent is essential for staying dry when afternoon storms roll "
    "through the ridgeline, and it should pitch quickly with cold hands. "
    "Pair it with a sleeping bag rated a few degrees below the coldest night you "
    "expect, because ridge camps lose heat fast after sunset. "
    "Carry water treatment for every stream crossing; the springs on this stretch "
    "are reliable but not always clean. A headlamp with spare batteries makes the "
    "pre-dawn start to the summit far safer than a phone flashlight.\n"
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep tracing and the dev response cache off unless a test turns them on."""
    monkeypatch.delenv("LANGSMITH_API_KEY", raising=False)
    monkeypatch.setattr(llm_cache, "_CACHE_DIR", None)


def make_candidate(
    id: int | str = 1,
    name: str = "Trail Tent X",
    similarity: float = 0.85,
    url: str | None = None,
    **extra,
) -> CatalogCandidate:
    return CatalogCandidate(
        id=id,
        name=name,
        product_url=url or f"https://shop.example.com/p/{id}",
        similarity=similarity,
        **extra,
    )


def make_mention(item: str = "tent", category: str | None = "shelter", context: str | None = None):
    return GearMention(item=item, category=category, context=context)


def tool_use_block(name: str, payload: dict, block_id: str = "toolu_1") -> MagicMock:
    block = MagicMock()
    block.type = "tool_use"
    block.name = name
    block.id = block_id
    block.input = payload
    return block


def claude_response(*blocks) -> MagicMock:
    resp = MagicMock()
    resp.content = list(blocks)
    resp.usage = MagicMock(input_tokens=100, output_tokens=50)
    return resp


def write_guide(directory: Path, name: str, body: str = LONG_BODY, frontmatter: str | None = None) -> Path:
    if frontmatter is None:
        frontmatter = '---\ntitle: "Appalachian Overnight"\ndate: 2024-05-01\ntags:\n  - hiking\n---\n'
    path = directory / name
    path.write_text(frontmatter + body, encoding="utf-8", newline="")
    return path
