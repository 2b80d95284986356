"""Gear mention extraction: one Claude tool-use session per guide.

The model reads the guide body, may call ``catalog_lookup`` a few times to
disambiguate a mention, and finishes by calling ``record_gear_mentions``
with the structured list. The tool input is validated strictly before it
becomes GearMention models; anything that does not validate is an
ExtractionFailed, never a silent pass-through.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import anthropic
import structlog
from pydantic import BaseModel, ValidationError

from guide_augment.errors import ExtractionFailed, SearchDegraded
from guide_augment.models.contracts import GearMention
from guide_augment.utils import llm_cache
from guide_augment.utils.catalog_search import CatalogSearchClient
from guide_augment.utils.tracing import traceable

log = structlog.get_logger("extraction")

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
MAX_TOKENS = 4096
MAX_TOOL_TURNS = 4
LOOKUP_RESULT_LIMIT = 5
CACHE_NAMESPACE = "gear_extraction"

GEAR_CATEGORIES = (
    "shelter",
    "sleeping",
    "backpacks",
    "clothing",
    "footwear",
    "cooking",
    "water",
    "navigation",
    "safety",
    "lighting",
    "tools",
    "hiking",
    "electronics",
    "personal care",
    "other",
)

RECORD_TOOL: dict[str, Any] = {
    "name": "record_gear_mentions",
    "description": (
        "Record the final list of distinct purchasable gear items mentioned in the guide. "
        "Call exactly once, after any catalog lookups."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "gears": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "item": {
                            "type": "string",
                            "description": "Name of the gear item as mentioned in the guide",
                        },
                        "category": {
                            "type": "string",
                            "enum": list(GEAR_CATEGORIES),
                            "description": "Gear category",
                        },
                        "context": {
                            "type": "string",
                            "description": "How the guide says the item is used",
                        },
                    },
                    "required": ["item"],
                },
            },
        },
        "required": ["gears"],
    },
}

LOOKUP_TOOL: dict[str, Any] = {
    "name": "catalog_lookup",
    "description": (
        "Search the outdoor gear catalog to check what kind of products match an "
        "ambiguous mention. Returns product names, brands and categories."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Free-text gear query"},
        },
        "required": ["query"],
    },
}

_system_prompt_cache: str | None = None


def load_system_prompt() -> str:
    """Load the extraction system prompt with the category labels filled in (cached)."""
    global _system_prompt_cache  # noqa: PLW0603
    if _system_prompt_cache is None:
        template = (PROMPTS_DIR / "gear_extraction.txt").read_text(encoding="utf-8")
        _system_prompt_cache = template.format(categories=", ".join(GEAR_CATEGORIES))
    return _system_prompt_cache


def build_messages(body: str) -> list[dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": (
                "Please analyze this outdoor adventure guide and extract all the outdoor "
                f"gear and equipment mentioned:\n\n{body}"
            ),
        }
    ]


class _RecordedGears(BaseModel):
    gears: list[Any]


def find_tool_call(response: anthropic.types.Message, name: str) -> Any | None:
    """Return the first tool_use block named ``name``, or None."""
    for block in response.content:
        if block.type == "tool_use" and block.name == name:
            return block
    return None


def _normalize_category(raw: Any) -> str | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    category = raw.strip().lower()
    return category if category in GEAR_CATEGORIES else "other"


def _optional_text(raw: Any) -> str | None:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


def validate_gear_payload(data: Any) -> list[GearMention]:
    """Turn ``record_gear_mentions`` input into deduplicated GearMention models.

    The envelope must be ``{"gears": [...]}``; otherwise ExtractionFailed.
    Entries without a usable ``item`` are dropped with a warning, unknown
    categories become ``other``, and repeated items (case/whitespace
    insensitive) keep their first occurrence.
    """
    try:
        envelope = _RecordedGears.model_validate(data)
    except ValidationError as exc:
        raise ExtractionFailed(
            f"record_gear_mentions input did not validate: {exc.error_count()} error(s)"
        ) from exc

    mentions: list[GearMention] = []
    seen: set[str] = set()
    dropped = 0
    for entry in envelope.gears:
        item = entry.get("item") if isinstance(entry, dict) else None
        if not isinstance(item, str) or not item.strip():
            dropped += 1
            log.warning("gear_mention_dropped", reason="missing item", entry=repr(entry)[:200])
            continue
        mention = GearMention(
            item=item.strip(),
            category=_normalize_category(entry.get("category")),
            context=_optional_text(entry.get("context")),
        )
        if mention.normalized_item in seen:
            continue
        seen.add(mention.normalized_item)
        mentions.append(mention)

    if dropped:
        log.info("gear_mentions_validated", raw=len(envelope.gears), valid=len(mentions), dropped=dropped)
    return mentions


class GearMentionExtractor:
    """Extracts gear mentions from a guide body with a Claude tool-use session.

    ``catalog`` enables the ``catalog_lookup`` disambiguation tool; without
    it the model is forced straight to ``record_gear_mentions``. Retries are
    the SDK's bounded ``max_retries`` only: a failed session raises
    ExtractionFailed and the orchestrator decides what happens to the document.
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = MAX_TOKENS,
        catalog: CatalogSearchClient | None = None,
        max_tool_turns: int = MAX_TOOL_TURNS,
    ) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.catalog = catalog
        self.max_tool_turns = max(1, max_tool_turns)

    @traceable(name="extract_gear_mentions", run_type="chain")
    async def extract(self, body: str) -> list[GearMention]:
        if not body or not body.strip():
            return []

        cache_key = [self.model, load_system_prompt(), body]
        cached = llm_cache.get_cached(CACHE_NAMESPACE, cache_key)
        if isinstance(cached, list):
            try:
                return [GearMention.model_validate(m) for m in cached]
            except ValidationError:
                log.warning("gear_extraction_cache_invalid")

        mentions = await self._run_session(body)
        llm_cache.set_cached(CACHE_NAMESPACE, cache_key, [m.model_dump() for m in mentions])
        return mentions

    def _tools(self) -> list[dict[str, Any]]:
        if self.catalog is None:
            return [RECORD_TOOL]
        return [RECORD_TOOL, LOOKUP_TOOL]

    def _tool_choice(self, turn: int) -> dict[str, Any]:
        # Lookups are allowed on every turn but the last, which must record.
        if self.catalog is not None and turn < self.max_tool_turns - 1:
            return {"type": "any"}
        return {"type": "tool", "name": RECORD_TOOL["name"]}

    async def _run_session(self, body: str) -> list[GearMention]:
        system_prompt = load_system_prompt()
        messages = build_messages(body)
        input_tokens = 0
        output_tokens = 0

        for turn in range(self.max_tool_turns):
            response = await self._create(system_prompt, messages, turn)
            input_tokens += response.usage.input_tokens
            output_tokens += response.usage.output_tokens

            record = find_tool_call(response, RECORD_TOOL["name"])
            if record is not None:
                mentions = validate_gear_payload(record.input)
                log.info(
                    "gear_extraction_complete",
                    mentions=len(mentions),
                    turns=turn + 1,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    model=self.model,
                )
                return mentions

            lookups = [
                block
                for block in response.content
                if block.type == "tool_use" and block.name == LOOKUP_TOOL["name"]
            ]
            if not lookups:
                log.warning("gear_extraction_no_tool_call", turn=turn + 1)
                raise ExtractionFailed("Model did not call record_gear_mentions")

            messages.append({"role": "assistant", "content": response.content})
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": block.id,
                            "content": json.dumps(await self._lookup(block.input)),
                        }
                        for block in lookups
                    ],
                }
            )

        raise ExtractionFailed(
            f"Model did not record gear mentions within {self.max_tool_turns} turns"
        )

    async def _create(
        self, system_prompt: str, messages: list[dict[str, Any]], turn: int
    ) -> anthropic.types.Message:
        try:
            return await self.client.messages.create(  # type: ignore[call-overload,no-any-return]
                model=self.model,
                max_tokens=self.max_tokens,
                system=system_prompt,
                tools=self._tools(),
                tool_choice=self._tool_choice(turn),
                messages=messages,
                temperature=0.3,
            )
        except anthropic.RateLimitError as e:
            log.warning("gear_extraction_rate_limited", turn=turn + 1)
            raise ExtractionFailed(f"Claude rate limited during extraction: {e}") from e
        except anthropic.APIStatusError as e:
            log.error("gear_extraction_api_error", status=e.status_code, turn=turn + 1)
            raise ExtractionFailed(
                f"Claude API error during extraction ({e.status_code}): {e}"
            ) from e
        except anthropic.APIError as e:
            log.error("gear_extraction_connection_error", error_type=type(e).__name__)
            raise ExtractionFailed(f"Claude request failed during extraction: {e}") from e

    async def _lookup(self, tool_input: Any) -> dict[str, Any]:
        query = tool_input.get("query") if isinstance(tool_input, dict) else None
        if not isinstance(query, str) or not query.strip():
            return {"error": "query is required"}
        if self.catalog is None:
            return {"error": "catalog lookup is not available", "items": []}
        try:
            candidates = await self.catalog.search(query, limit=LOOKUP_RESULT_LIMIT)
        except SearchDegraded as exc:
            log.warning("gear_lookup_degraded", query=query[:80], error=exc.message)
            return {"error": "catalog search unavailable", "items": []}
        log.debug("gear_lookup", query=query[:80], results=len(candidates))
        return {
            "items": [
                {"name": c.name, "brand": c.brand, "categories": c.categories or []}
                for c in candidates
            ]
        }
