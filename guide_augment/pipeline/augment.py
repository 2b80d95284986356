"""Content augmentation: render recommendation blocks into a guide body.

Pure: takes the document and its matched gear, returns the proposed body.
Whether that body is written anywhere is the orchestrator's call.
"""

from __future__ import annotations

from guide_augment.models.contracts import (
    AugmentationResult,
    CatalogCandidate,
    GearWithCandidates,
    GuideDocument,
    ProductUsage,
)
from guide_augment.pipeline.idempotency import AUGMENTATION_MARKER
from guide_augment.pipeline.matching import format_similarity

_SEPARATOR = " - "


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def format_price(price: float, currency: str | None = None) -> str:
    amount = _format_number(price)
    if currency is None or currency.upper() == "USD":
        return f"${amount}"
    return f"{amount} {currency.upper()}"


def format_product_line(product: CatalogCandidate) -> str:
    """One markdown bullet for a product; absent fields leave no separators behind."""
    line = f"- [{product.name}]({product.product_url})"
    if product.brand:
        line += f" by {product.brand}"

    details: list[str] = []
    if product.price is not None:
        details.append(format_price(product.price, product.currency))
    if product.weight is not None and product.weight_unit:
        details.append(f"{_format_number(product.weight)}{product.weight_unit}")
    details.append(f"Similarity: {format_similarity(product.similarity)}")
    return _SEPARATOR.join([line, *details])


def format_recommendation_block(item: str, products: list[CatalogCandidate]) -> str:
    lines = [f"{AUGMENTATION_MARKER}{item}:**"]
    lines.extend(format_product_line(p) for p in products)
    return "\n".join(lines) + "\n"


def augment(
    document: GuideDocument, gears_with_candidates: list[GearWithCandidates]
) -> AugmentationResult:
    """Append one recommendation block per matched gear, in extraction order.

    The original body is left intact as a prefix of the result. A product
    already recommended under an earlier gear is not repeated, so
    ``total_products_added`` counts distinct products. With nothing to insert
    the body is returned unchanged.
    """
    body = document.body
    used_urls: set[str] = set()
    blocks: list[str] = []
    products_used: list[ProductUsage] = []

    for entry in gears_with_candidates:
        fresh = [p for p in entry.products if p.product_url not in used_urls]
        if not fresh:
            continue
        for product in fresh:
            used_urls.add(product.product_url)
            products_used.append(
                ProductUsage(
                    name=product.name,
                    url=product.product_url,
                    context=entry.gear.context or entry.gear.item,
                    gear=entry.gear.item,
                    similarity=product.similarity,
                )
            )
        blocks.append(format_recommendation_block(entry.gear.item, fresh))

    if not blocks:
        return AugmentationResult(augmented_content=body, total_products_added=0)

    separator = "\n" if body.endswith("\n") else "\n\n"
    if not body:
        separator = ""
    augmented = body + separator + "\n".join(blocks)
    return AugmentationResult(
        augmented_content=augmented,
        total_products_added=len(products_used),
        products_used=products_used,
    )
