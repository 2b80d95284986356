"""Client for the catalog semantic-search endpoint.

The search service owns the embedding index; this client only issues
queries and validates the returned items into CatalogCandidate models.
Transient failures (timeouts, transport errors, 429, 5xx) are retried with
exponential backoff up to ``max_attempts``; once exhausted, or on a
non-retryable status, SearchDegraded is raised so the caller can degrade
that one query to zero candidates.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from guide_augment.errors import SearchDegraded
from guide_augment.models.contracts import CatalogCandidate

log = structlog.get_logger("catalog_search")

SEARCH_PATH = "/api/catalog/vector-search"
RETRY_BASE_DELAY = 0.5
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


async def _backoff(attempt: int) -> None:
    await asyncio.sleep(RETRY_BASE_DELAY * 2 ** (attempt - 1))


class CatalogSearchClient:
    """Thin async wrapper over ``GET /api/catalog/vector-search``.

    Owns an ``httpx.AsyncClient`` unless one is passed in; use as an async
    context manager so the connection pool is closed with the run.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        timeout: float = 10.0,
        max_attempts: int = 3,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None

    async def __aenter__(self) -> CatalogSearchClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def search(
        self,
        query: str,
        *,
        limit: int = 10,
        offset: int = 0,
        category: str | None = None,
        min_rating: float | None = None,
    ) -> list[CatalogCandidate]:
        """Return candidates for ``query`` in the order the service ranked them."""
        if not query.strip():
            return []

        params: dict[str, Any] = {"q": query, "limit": limit, "offset": offset}
        if category:
            params["category"] = category
        if min_rating is not None:
            params["minRating"] = min_rating

        url = f"{self.base_url}{SEARCH_PATH}"
        for attempt in range(1, self.max_attempts + 1):
            last_attempt = attempt == self.max_attempts
            try:
                resp = await self._http.get(
                    url, params=params, headers=self._headers(), timeout=self.timeout
                )
            except httpx.TimeoutException as exc:
                if not last_attempt:
                    log.warning("catalog_search_timeout", query=query[:80], attempt=attempt)
                    await _backoff(attempt)
                    continue
                raise SearchDegraded(f"Catalog search timed out: {query[:80]}", query=query) from exc
            except httpx.TransportError as exc:
                if not last_attempt:
                    log.warning(
                        "catalog_search_transport_error",
                        query=query[:80],
                        attempt=attempt,
                        error_type=type(exc).__name__,
                    )
                    await _backoff(attempt)
                    continue
                raise SearchDegraded(
                    f"Catalog search unreachable ({type(exc).__name__}): {query[:80]}",
                    query=query,
                ) from exc
            except httpx.HTTPError as exc:
                # bad encodings and redirect loops will not fix themselves on retry
                raise SearchDegraded(
                    f"Catalog search failed ({type(exc).__name__}): {query[:80]}",
                    query=query,
                ) from exc

            if resp.status_code == 200:
                return self._parse_items(resp, query)

            if resp.status_code in _RETRYABLE_STATUS and not last_attempt:
                log.warning(
                    "catalog_search_retrying",
                    status=resp.status_code,
                    query=query[:80],
                    attempt=attempt,
                )
                await _backoff(attempt)
                continue

            raise SearchDegraded(
                f"Catalog search failed with HTTP {resp.status_code}: {query[:80]}",
                query=query,
                status_code=resp.status_code,
            )

        # Unreachable: the loop either returns or raises on its last attempt.
        raise SearchDegraded(f"Catalog search failed: {query[:80]}", query=query)

    def _parse_items(self, resp: httpx.Response, query: str) -> list[CatalogCandidate]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise SearchDegraded(f"Catalog search returned invalid JSON: {query[:80]}", query=query) from exc

        raw_items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(raw_items, list):
            raise SearchDegraded(f"Catalog search response has no items list: {query[:80]}", query=query)

        candidates: list[CatalogCandidate] = []
        for raw in raw_items:
            try:
                candidates.append(CatalogCandidate.model_validate(raw))
            except ValidationError as exc:
                log.warning(
                    "catalog_item_dropped",
                    query=query[:80],
                    error_count=exc.error_count(),
                    item=repr(raw)[:200],
                )
        return candidates

    async def ping(self) -> bool:
        """Return True when the search endpoint answers a one-result query."""
        try:
            resp = await self._http.get(
                f"{self.base_url}{SEARCH_PATH}",
                params={"q": "test", "limit": 1},
                headers=self._headers(),
                timeout=min(self.timeout, 5.0),
            )
        except httpx.HTTPError as exc:
            log.warning("catalog_ping_failed", error_type=type(exc).__name__, error=str(exc))
            return False
        if resp.status_code != 200:
            log.warning("catalog_ping_failed", status=resp.status_code)
            return False
        return True
