"""Pipeline data models.

Everything that crosses a step boundary (extractor → matcher → augmenter →
orchestrator) is one of these models. Catalog payloads arrive in camelCase
from the search service, so catalog models accept both the wire alias and
the field name.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# === Documents ===


class GuideDocument(BaseModel):
    """A guide loaded from the document store.

    ``frontmatter_block`` is the raw header (including both ``---`` lines and
    the newline that ends the closing one) and is written back verbatim.
    """

    id: str
    path: Path
    frontmatter: dict[str, Any] = {}
    frontmatter_block: str = ""
    body: str


# === Extraction ===


class GearMention(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: str = Field(min_length=1)
    category: str | None = None
    context: str | None = None

    @property
    def normalized_item(self) -> str:
        return self.item.strip().lower()


# === Catalog ===


class CatalogCandidate(BaseModel):
    """A product returned by semantic search for one query."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: int | str
    name: str = Field(min_length=1)
    product_url: str = Field(alias="productUrl", min_length=1)
    brand: str | None = None
    price: float | None = None
    currency: str | None = None
    weight: float | None = None
    weight_unit: str | None = Field(default=None, alias="weightUnit")
    categories: list[str] | None = None
    rating: float | None = Field(default=None, alias="ratingValue")
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)


class GearWithCandidates(BaseModel):
    """A gear mention joined with its qualifying catalog candidates (best first)."""

    gear: GearMention
    products: list[CatalogCandidate] = []


# === Augmentation ===


class ProductUsage(BaseModel):
    name: str
    url: str
    context: str
    gear: str
    similarity: float | None = None


class AugmentationResult(BaseModel):
    augmented_content: str
    total_products_added: int = Field(ge=0, default=0)
    products_used: list[ProductUsage] = []


# === Batch ===

DocumentStatus = Literal["enhanced", "skipped", "errored"]


class DocumentOutcome(BaseModel):
    """Terminal state of one document in a batch run."""

    document_id: str
    status: DocumentStatus
    reason: str | None = None
    products_added: int = Field(ge=0, default=0)
    products_used: list[ProductUsage] = []
    gears: list[GearWithCandidates] = []
    soft_errors: list[str] = []
    backup_path: str | None = None

    @classmethod
    def enhanced(
        cls,
        document_id: str,
        result: AugmentationResult,
        gears: list[GearWithCandidates],
        soft_errors: list[str],
        backup_path: str | None = None,
    ) -> DocumentOutcome:
        return cls(
            document_id=document_id,
            status="enhanced",
            products_added=result.total_products_added,
            products_used=result.products_used,
            gears=gears,
            soft_errors=soft_errors,
            backup_path=backup_path,
        )

    @classmethod
    def skipped(
        cls, document_id: str, reason: str, soft_errors: list[str] | None = None
    ) -> DocumentOutcome:
        return cls(
            document_id=document_id,
            status="skipped",
            reason=reason,
            soft_errors=soft_errors or [],
        )

    @classmethod
    def errored(cls, document_id: str, reason: str) -> DocumentOutcome:
        return cls(document_id=document_id, status="errored", reason=reason)


class RunStatistics(BaseModel):
    processed: int = 0
    enhanced: int = 0
    skipped: int = 0
    errors: int = 0
    total_products: int = 0

    @property
    def average_products_per_enhanced(self) -> float:
        if self.enhanced == 0:
            return 0.0
        return self.total_products / self.enhanced

    def record(self, outcome: DocumentOutcome) -> None:
        """Accumulate one terminal outcome. Counters only ever grow."""
        self.processed += 1
        if outcome.status == "enhanced":
            self.enhanced += 1
            self.total_products += outcome.products_added
        elif outcome.status == "skipped":
            self.skipped += 1
        else:
            self.errors += 1

    @classmethod
    def from_outcomes(cls, outcomes: list[DocumentOutcome]) -> RunStatistics:
        stats = cls()
        for outcome in outcomes:
            stats.record(outcome)
        return stats


class ExtractionReportEntry(BaseModel):
    """Extraction + matching result for one guide, without rewriting it."""

    document_id: str
    title: str = "Untitled Guide"
    gears: list[GearWithCandidates] = []
    soft_errors: list[str] = []
    error: str | None = None
    processed_at: datetime


class RunReport(BaseModel):
    started_at: datetime
    dry_run: bool = False
    outcomes: list[DocumentOutcome] = []

    @property
    def statistics(self) -> RunStatistics:
        return RunStatistics.from_outcomes(self.outcomes)

    @property
    def error_messages(self) -> list[str]:
        return [f"{o.document_id}: {o.reason}" for o in self.outcomes if o.status == "errored"]

    @property
    def all_failed(self) -> bool:
        stats = self.statistics
        return stats.processed > 0 and stats.errors == stats.processed

    def summary_lines(self) -> list[str]:
        """Human-readable run summary, produced even when documents failed."""
        stats = self.statistics
        lines = [
            "Augmentation summary",
            f"  Processed: {stats.processed}",
            f"  Enhanced:  {stats.enhanced}",
            f"  Skipped:   {stats.skipped}",
            f"  Errors:    {stats.errors}",
            f"  Total products added: {stats.total_products}",
        ]
        if stats.enhanced > 0:
            lines.append(
                f"  Average products per enhanced document: "
                f"{stats.average_products_per_enhanced:.1f}"
            )
        if self.error_messages:
            lines.append("Errors:")
            lines.extend(f"  - {message}" for message in self.error_messages)
        if self.dry_run:
            lines.append("Dry run: no files were modified.")
        return lines
