"""
Command-line entry point for guide augmentation.

Commands:

    augment        extract → match → append recommendation blocks → write
    extract        extract → match, write a JSON report, leave guides alone
    check-catalog  confirm the catalog search endpoint answers

Configuration comes from the environment / .env (see ``config.Settings``);
command-line flags override it for a single run.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path

import anthropic
import structlog
import typer

from guide_augment.config import settings
from guide_augment.errors import ConfigurationError
from guide_augment.logging import configure_logging
from guide_augment.models.contracts import ExtractionReportEntry, RunReport
from guide_augment.pipeline.batch import BatchOptions, BatchOrchestrator
from guide_augment.pipeline.extraction import GearMentionExtractor
from guide_augment.pipeline.matching import CatalogMatcher
from guide_augment.utils.catalog_search import CatalogSearchClient
from guide_augment.utils.documents import discover_documents
from guide_augment.utils.tracing import wrap_anthropic

app = typer.Typer(help="Augment outdoor guides with catalog product recommendations.")
log = structlog.get_logger("cli")

DEFAULT_REPORT_PATH = "extracted_products.json"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_options(
    *,
    threshold: float | None,
    max_products: int | None,
    dry_run: bool = False,
    skip_backup: bool = False,
    backup_dir: str | None = None,
) -> BatchOptions:
    threshold = settings.similarity_threshold if threshold is None else threshold
    max_products = settings.max_products_per_gear if max_products is None else max_products
    if not 0.0 <= threshold <= 1.0:
        raise ConfigurationError(f"Similarity threshold must be between 0 and 1, got {threshold}")
    if max_products < 0:
        raise ConfigurationError(f"Max products per gear must not be negative, got {max_products}")

    return BatchOptions(
        dry_run=dry_run,
        backup=not skip_backup,
        backup_dir=Path(backup_dir or settings.backup_dir),
        similarity_threshold=threshold,
        max_products_per_gear=max_products,
        min_content_length=settings.min_content_length,
        inter_document_delay_seconds=settings.inter_document_delay_seconds,
    )


def _catalog_client(api_url: str | None) -> CatalogSearchClient:
    return CatalogSearchClient(
        api_url or settings.catalog_api_url,
        settings.catalog_api_key,
        timeout=settings.catalog_timeout_seconds,
        max_attempts=settings.catalog_max_attempts,
    )


def _build_extractor(api_key: str, catalog: CatalogSearchClient) -> GearMentionExtractor:
    client = wrap_anthropic(
        anthropic.AsyncAnthropic(
            api_key=api_key,
            max_retries=settings.llm_max_retries,
            timeout=settings.llm_timeout_seconds,
        )
    )
    return GearMentionExtractor(
        client,
        model=settings.extraction_model,
        max_tokens=settings.extraction_max_tokens,
        catalog=catalog,
    )


async def _run_augment(
    files: list[Path], options: BatchOptions, api_url: str | None, api_key: str
) -> RunReport:
    async with _catalog_client(api_url) as catalog:
        orchestrator = BatchOrchestrator(
            _build_extractor(api_key, catalog), CatalogMatcher(catalog), options
        )
        return await orchestrator.run(files)


async def _run_extract(
    files: list[Path], options: BatchOptions, api_url: str | None, api_key: str
) -> list[ExtractionReportEntry]:
    async with _catalog_client(api_url) as catalog:
        orchestrator = BatchOrchestrator(
            _build_extractor(api_key, catalog), CatalogMatcher(catalog), options
        )
        return await orchestrator.collect_matches(files)


async def _ping_catalog(api_url: str | None) -> bool:
    async with _catalog_client(api_url) as catalog:
        return await catalog.ping()


def _echo_details(report: RunReport, verbose: bool) -> None:
    """Per-document listing: inserted products (verbose) or candidate counts (dry run)."""
    for outcome in report.outcomes:
        if outcome.status != "enhanced":
            continue
        if report.dry_run:
            typer.echo(f"{outcome.document_id}: would add {outcome.products_added} product(s)")
            for entry in outcome.gears:
                if entry.products:
                    typer.echo(f"  {entry.gear.item}: {len(entry.products)} candidate(s)")
        elif verbose:
            typer.echo(f"{outcome.document_id}: added {outcome.products_added} product(s)")
            for usage in outcome.products_used:
                typer.echo(f"  - {usage.name} ({usage.gear})")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("augment")
def augment_command(
    paths: list[str] | None = typer.Argument(
        None, help="Guide files to process. Defaults to every guide in the content directory."
    ),
    pattern: str | None = typer.Option(
        None, "--pattern", "-p", help="Case-insensitive regex applied to file names."
    ),
    max_files: int | None = typer.Option(
        None, "--max-files", "-n", help="Process at most this many guides."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-d", help="Report what would change without writing anything."
    ),
    skip_backup: bool = typer.Option(
        False, "--skip-backup", help="Do not copy guides to the backup directory before writing."
    ),
    threshold: float | None = typer.Option(
        None, "--threshold", help="Minimum similarity (0-1) for a product to be recommended."
    ),
    max_products: int | None = typer.Option(
        None, "--max-products", help="Maximum products recommended per gear item."
    ),
    api_url: str | None = typer.Option(
        None, "--api-url", "-u", help="Catalog search API base URL."
    ),
    content_dir: str | None = typer.Option(
        None, "--content-dir", help="Directory holding the guide files."
    ),
    backup_dir: str | None = typer.Option(
        None, "--backup-dir", help="Directory backups are written to."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Debug logging and a per-guide product listing."
    ),
) -> None:
    """
    Append catalog product recommendations to outdoor guides.

    Guides that already carry recommendation blocks, are shorter than the
    minimum length, or get no qualifying products are left untouched.
    """
    configure_logging(verbose, command="augment")

    try:
        api_key = settings.require_anthropic_key()
        options = _build_options(
            threshold=threshold,
            max_products=max_products,
            dry_run=dry_run,
            skip_backup=skip_backup,
            backup_dir=backup_dir,
        )
        files = discover_documents(
            Path(content_dir or settings.content_dir),
            paths=paths or None,
            pattern=pattern,
            max_files=max_files,
        )
        if not files:
            typer.echo("No guide documents found.")
            return
        report = asyncio.run(_run_augment(files, options, api_url, api_key))
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    except Exception as exc:
        log.exception("augment_failed", error_type=type(exc).__name__)
        typer.echo(f"Augmentation failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    _echo_details(report, verbose)
    for line in report.summary_lines():
        typer.echo(line)

    if report.all_failed:
        raise typer.Exit(code=1)


@app.command("extract")
def extract_command(
    paths: list[str] | None = typer.Argument(
        None, help="Guide files to process. Defaults to every guide in the content directory."
    ),
    pattern: str | None = typer.Option(
        None, "--pattern", "-p", help="Case-insensitive regex applied to file names."
    ),
    max_files: int | None = typer.Option(
        None, "--max-files", "-n", help="Process at most this many guides."
    ),
    threshold: float | None = typer.Option(
        None, "--threshold", help="Minimum similarity (0-1) for a product to be listed."
    ),
    max_products: int | None = typer.Option(
        None, "--max-products", help="Maximum products listed per gear item."
    ),
    api_url: str | None = typer.Option(
        None, "--api-url", "-u", help="Catalog search API base URL."
    ),
    content_dir: str | None = typer.Option(
        None, "--content-dir", help="Directory holding the guide files."
    ),
    output: str = typer.Option(
        DEFAULT_REPORT_PATH, "--output", "-o", help="Where to write the JSON report."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """
    Extract gear mentions and matching products into a JSON report.

    No guide is modified.
    """
    configure_logging(verbose, command="extract")

    try:
        api_key = settings.require_anthropic_key()
        options = _build_options(threshold=threshold, max_products=max_products)
        files = discover_documents(
            Path(content_dir or settings.content_dir),
            paths=paths or None,
            pattern=pattern,
            max_files=max_files,
        )
        if not files:
            typer.echo("No guide documents found.")
            return
        entries = asyncio.run(_run_extract(files, options, api_url, api_key))
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    except Exception as exc:
        log.exception("extract_failed", error_type=type(exc).__name__)
        typer.echo(f"Extraction failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    errors = [e for e in entries if e.error]
    report = {
        "extracted_at": datetime.now().isoformat(),
        "total_guides": len(entries),
        "errors": len(errors),
        "guides": [e.model_dump(mode="json") for e in entries],
    }
    try:
        Path(output).write_text(json.dumps(report, indent=2), encoding="utf-8")
    except OSError as exc:
        typer.echo(f"Could not write report to {output}: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    total_gears = sum(len(e.gears) for e in entries)
    matched = sum(1 for e in entries for g in e.gears if g.products)
    typer.echo(f"Guides processed: {len(entries)} ({len(errors)} failed)")
    typer.echo(f"Gear items found: {total_gears} ({matched} with catalog matches)")
    typer.echo(f"Report written to {output}")

    if entries and len(errors) == len(entries):
        raise typer.Exit(code=1)


@app.command("check-catalog")
def check_catalog_command(
    api_url: str | None = typer.Option(
        None, "--api-url", "-u", help="Catalog search API base URL."
    ),
) -> None:
    """Check that the catalog search API is reachable."""
    configure_logging(command="check-catalog")
    url = api_url or settings.catalog_api_url

    if asyncio.run(_ping_catalog(url)):
        typer.echo(f"Catalog API reachable at {url}")
        return
    typer.echo(f"Catalog API not reachable at {url}", err=True)
    raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
