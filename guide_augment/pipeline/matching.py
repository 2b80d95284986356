"""Catalog matching: gear mention → ranked catalog candidates above a threshold."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from guide_augment.models.contracts import CatalogCandidate, GearMention, GearWithCandidates
from guide_augment.utils.catalog_search import CatalogSearchClient

log = structlog.get_logger("matching")

MAX_CONCURRENT_SEARCHES = 5
# Over-fetch so threshold filtering still leaves up to ``limit`` candidates.
SEARCH_OVERFETCH = 2


def format_similarity(similarity: float) -> str:
    """Render a [0,1] similarity as a one-decimal percentage: 0.852 -> '85.2%'."""
    return f"{similarity * 100:.1f}%"


def build_query(mention: GearMention, include_context: bool = True) -> str:
    parts = [mention.item]
    if include_context:
        if mention.category:
            parts.append(mention.category)
        if mention.context:
            parts.append(mention.context)
    return " ".join(p.strip() for p in parts if p and p.strip())


def _id_sort_key(candidate_id: int | str) -> tuple[int, Any]:
    # Numeric ids sort numerically and before string ids.
    if isinstance(candidate_id, int):
        return (0, candidate_id)
    return (1, candidate_id)


def rank_candidates(
    candidates: list[CatalogCandidate], limit: int, threshold: float
) -> list[CatalogCandidate]:
    """Drop candidates below ``threshold``, order best first, cap at ``limit``.

    Ties on similarity are broken by ascending id so output is deterministic.
    """
    if limit <= 0:
        return []
    qualifying = [c for c in candidates if c.similarity >= threshold]
    qualifying.sort(key=lambda c: (-c.similarity, _id_sort_key(c.id)))
    return qualifying[:limit]


class CatalogMatcher:
    def __init__(
        self,
        search_client: CatalogSearchClient,
        *,
        include_context: bool = True,
        max_concurrency: int = MAX_CONCURRENT_SEARCHES,
    ) -> None:
        self.search_client = search_client
        self.include_context = include_context
        self.max_concurrency = max(1, max_concurrency)

    async def match(
        self, mention: GearMention, limit: int, threshold: float
    ) -> list[CatalogCandidate]:
        """Return at most ``limit`` candidates with similarity >= ``threshold``.

        Search errors propagate; ``match_all`` is where they are softened.
        """
        if limit <= 0:
            return []
        query = build_query(mention, self.include_context)
        candidates = await self.search_client.search(query, limit=limit * SEARCH_OVERFETCH)
        return rank_candidates(candidates, limit, threshold)

    async def match_all(
        self, mentions: list[GearMention], limit: int, threshold: float
    ) -> tuple[list[GearWithCandidates], list[str]]:
        """Match every mention concurrently and wait for all of them to settle.

        A failed search degrades only its own mention to zero candidates and
        is reported in the returned soft-error list. Output order follows
        ``mentions``.
        """
        if not mentions:
            return [], []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _match_limited(mention: GearMention) -> list[CatalogCandidate]:
            async with semaphore:
                return await self.match(mention, limit, threshold)

        raw_results = await asyncio.gather(
            *(_match_limited(m) for m in mentions), return_exceptions=True
        )

        joined: list[GearWithCandidates] = []
        soft_errors: list[str] = []
        for mention, result in zip(mentions, raw_results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                message = f"{mention.item}: {result}"
                soft_errors.append(message)
                log.warning(
                    "catalog_match_degraded",
                    item=mention.item,
                    error_type=type(result).__name__,
                    error=str(result)[:200],
                )
                joined.append(GearWithCandidates(gear=mention, products=[]))
                continue
            joined.append(GearWithCandidates(gear=mention, products=result))

        matched = sum(1 for g in joined if g.products)
        log.info(
            "catalog_matching_complete",
            mentions=len(mentions),
            matched=matched,
            degraded=len(soft_errors),
        )
        return joined, soft_errors
