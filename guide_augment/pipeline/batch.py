"""Batch orchestration over a corpus of guide documents.

Documents are processed strictly one after another:

    load → size check → idempotency check → extract → match → augment
         → (dry run: report) | (backup → atomic write)

Each document ends in exactly one terminal DocumentOutcome (enhanced,
skipped or errored). Any exception raised while handling a document is
turned into an errored outcome and the batch moves on; run statistics are
derived from the outcome list alone.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from guide_augment.errors import PipelineError
from guide_augment.models.contracts import (
    AugmentationResult,
    DocumentOutcome,
    ExtractionReportEntry,
    GearWithCandidates,
    GuideDocument,
    RunReport,
)
from guide_augment.pipeline.augment import augment
from guide_augment.pipeline.extraction import GearMentionExtractor
from guide_augment.pipeline.idempotency import already_augmented
from guide_augment.pipeline.matching import CatalogMatcher, format_similarity
from guide_augment.utils.documents import (
    backup_timestamp,
    create_backup,
    load_document,
    write_document,
)

log = structlog.get_logger("batch")


class BatchOptions(BaseModel):
    dry_run: bool = False
    backup: bool = True
    backup_dir: Path = Path("content/backups")
    similarity_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    max_products_per_gear: int = Field(default=3, ge=0)
    min_content_length: int = Field(default=500, ge=0)
    inter_document_delay_seconds: float = Field(default=2.0, ge=0.0)


class BatchOrchestrator:
    def __init__(
        self,
        extractor: GearMentionExtractor,
        matcher: CatalogMatcher,
        options: BatchOptions,
    ) -> None:
        self.extractor = extractor
        self.matcher = matcher
        self.options = options

    async def augment_document(
        self, document: GuideDocument
    ) -> tuple[AugmentationResult, list[GearWithCandidates], list[str]]:
        """Extract, match and augment one document. Does not touch storage."""
        mentions = await self.extractor.extract(document.body)
        log.info("gear_mentions_extracted", count=len(mentions))
        if not mentions:
            return AugmentationResult(augmented_content=document.body), [], []

        gears, soft_errors = await self.matcher.match_all(
            mentions,
            self.options.max_products_per_gear,
            self.options.similarity_threshold,
        )
        return augment(document, gears), gears, soft_errors

    async def process_document(self, path: Path, run_timestamp: str) -> DocumentOutcome:
        structlog.contextvars.bind_contextvars(document_id=path.name)
        try:
            return await self._process(path, run_timestamp)
        except PipelineError as exc:
            log.error("document_failed", error_type=type(exc).__name__, error=exc.message)
            return DocumentOutcome.errored(path.name, exc.message)
        except Exception as exc:
            log.exception("document_failed_unexpected", error_type=type(exc).__name__)
            return DocumentOutcome.errored(path.name, f"{type(exc).__name__}: {exc}")
        finally:
            structlog.contextvars.unbind_contextvars("document_id")

    async def _process(self, path: Path, run_timestamp: str) -> DocumentOutcome:
        document = load_document(path)

        if len(document.body) < self.options.min_content_length:
            log.info(
                "document_skipped",
                reason="content too short",
                length=len(document.body),
                min_length=self.options.min_content_length,
            )
            return DocumentOutcome.skipped(document.id, "content too short")

        if already_augmented(document.body):
            log.info("document_skipped", reason="already augmented")
            return DocumentOutcome.skipped(document.id, "already augmented")

        result, gears, soft_errors = await self.augment_document(document)

        if result.total_products_added == 0:
            log.info("document_skipped", reason="no qualifying products", gears=len(gears))
            return DocumentOutcome.skipped(document.id, "no qualifying products", soft_errors)

        if self.options.dry_run:
            log.info(
                "dry_run_would_enhance",
                products=result.total_products_added,
                gears=[f"{g.gear.item}: {len(g.products)}" for g in gears if g.products],
            )
            for usage in result.products_used:
                log.debug(
                    "dry_run_product",
                    product=usage.name,
                    gear=usage.gear,
                    similarity=format_similarity(usage.similarity or 0.0),
                )
            return DocumentOutcome.enhanced(document.id, result, gears, soft_errors)

        backup_path: str | None = None
        if self.options.backup:
            backup_path = str(create_backup(path, self.options.backup_dir, run_timestamp))

        write_document(document, result.augmented_content)
        log.info(
            "document_enhanced",
            products=result.total_products_added,
            backup_path=backup_path,
        )
        for usage in result.products_used:
            log.debug("product_inserted", product=usage.name, gear=usage.gear)
        return DocumentOutcome.enhanced(document.id, result, gears, soft_errors, backup_path)

    async def run(self, paths: list[Path]) -> RunReport:
        """Process ``paths`` in order and return the run report.

        Waits ``inter_document_delay_seconds`` between documents (not after
        the last one) to stay under the language-model rate limit.
        """
        started_at = datetime.now()
        run_timestamp = backup_timestamp(started_at)
        log.info(
            "batch_start",
            documents=len(paths),
            dry_run=self.options.dry_run,
            backup=self.options.backup and not self.options.dry_run,
            threshold=self.options.similarity_threshold,
            max_products_per_gear=self.options.max_products_per_gear,
        )

        report = RunReport(started_at=started_at, dry_run=self.options.dry_run)
        for index, path in enumerate(paths):
            log.info("document_start", document_id=path.name, position=f"{index + 1}/{len(paths)}")
            report.outcomes.append(await self.process_document(path, run_timestamp))

            if index < len(paths) - 1 and self.options.inter_document_delay_seconds > 0:
                await asyncio.sleep(self.options.inter_document_delay_seconds)

        stats = report.statistics
        log.info("batch_complete", **stats.model_dump())
        return report

    async def collect_matches(self, paths: list[Path]) -> list[ExtractionReportEntry]:
        """Extract and match every document without rewriting anything."""
        entries: list[ExtractionReportEntry] = []
        for index, path in enumerate(paths):
            structlog.contextvars.bind_contextvars(document_id=path.name)
            try:
                document = load_document(path)
                title = str(document.frontmatter.get("title") or "Untitled Guide")
                mentions = await self.extractor.extract(document.body)
                gears, soft_errors = await self.matcher.match_all(
                    mentions,
                    self.options.max_products_per_gear,
                    self.options.similarity_threshold,
                )
                entries.append(
                    ExtractionReportEntry(
                        document_id=path.name,
                        title=title,
                        gears=gears,
                        soft_errors=soft_errors,
                        processed_at=datetime.now(),
                    )
                )
            except Exception as exc:
                message = exc.message if isinstance(exc, PipelineError) else f"{type(exc).__name__}: {exc}"
                log.error("document_extraction_failed", error=message)
                entries.append(
                    ExtractionReportEntry(
                        document_id=path.name, error=message, processed_at=datetime.now()
                    )
                )
            finally:
                structlog.contextvars.unbind_contextvars("document_id")

            if index < len(paths) - 1 and self.options.inter_document_delay_seconds > 0:
                await asyncio.sleep(self.options.inter_document_delay_seconds)
        return entries
