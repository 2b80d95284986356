"""Tests for recommendation block rendering.

Covers product line formatting, block headings, body preservation,
cross-gear product dedup, and the identity result when nothing qualifies.
"""

from pathlib import Path

from conftest import make_candidate, make_mention
from guide_augment.models.contracts import GearWithCandidates, GuideDocument
from guide_augment.pipeline.augment import (
    augment,
    format_price,
    format_product_line,
    format_recommendation_block,
)
from guide_augment.pipeline.idempotency import already_augmented
from guide_augment.pipeline.matching import rank_candidates

BODY = "A lightweight tent is essential."


def _document(body: str = BODY) -> GuideDocument:
    return GuideDocument(id="guide.mdx", path=Path("guide.mdx"), body=body)


class TestFormatting:
    def test_price_usd(self):
        assert format_price(199) == "$199"
        assert format_price(19.5, "usd") == "$19.50"

    def test_price_other_currency(self):
        assert format_price(150, "eur") == "150 EUR"

    def test_full_product_line(self):
        product = make_candidate(
            1,
            "Trail Tent X",
            0.852,
            url="https://shop.example.com/tent",
            brand="Ridgeline",
            price=199.0,
            weight=1.2,
            weight_unit="kg",
        )
        assert format_product_line(product) == (
            "- [Trail Tent X](https://shop.example.com/tent) by Ridgeline"
            " - $199 - 1.20kg - Similarity: 85.2%"
        )

    def test_absent_fields_leave_no_separators(self):
        product = make_candidate(1, "Trail Tent X", 0.85, url="https://x/t")
        assert format_product_line(product) == "- [Trail Tent X](https://x/t) - Similarity: 85.0%"

    def test_weight_without_unit_omitted(self):
        product = make_candidate(1, "Tent", 0.5, url="https://x/t", weight=900)
        assert "900" not in format_product_line(product)

    def test_block_heading(self):
        block = format_recommendation_block("tent", [make_candidate()])
        assert block.startswith("**Recommended tent:**\n- [Trail Tent X]")
        assert block.endswith("\n")


class TestAugment:
    def test_single_gear_block_appended(self):
        product = make_candidate(1, "Trail Tent X", 0.85, url="https://x/t", price=199)
        gears = [GearWithCandidates(gear=make_mention("tent"), products=[product])]

        result = augment(_document(), gears)

        assert result.augmented_content.startswith(BODY)
        assert "**Recommended tent:**" in result.augmented_content
        assert "Trail Tent X" in result.augmented_content
        assert "$199" in result.augmented_content
        assert "85.0%" in result.augmented_content
        assert result.total_products_added == 1
        assert result.products_used[0].gear == "tent"

    def test_low_similarity_candidate_never_rendered(self):
        ranked = rank_candidates([make_candidate(1, "Cheap Tarp", 0.2)], 3, 0.3)
        gears = [GearWithCandidates(gear=make_mention("tent"), products=ranked)]

        result = augment(_document(), gears)

        assert result.augmented_content == BODY
        assert result.total_products_added == 0
        assert "Cheap Tarp" not in result.augmented_content

    def test_no_candidates_is_identity(self):
        gears = [GearWithCandidates(gear=make_mention("tent"), products=[])]
        result = augment(_document(), gears)
        assert result.augmented_content == BODY
        assert result.products_used == []

    def test_blocks_follow_extraction_order(self):
        gears = [
            GearWithCandidates(gear=make_mention("tent"), products=[make_candidate(1)]),
            GearWithCandidates(
                gear=make_mention("stove", "cooking"), products=[make_candidate(2, "Jet Stove")]
            ),
        ]
        content = augment(_document(), gears).augmented_content
        assert content.index("**Recommended tent:**") < content.index("**Recommended stove:**")

    def test_product_shared_across_gears_counted_once(self):
        shared = make_candidate(1, "Trail Tent X", 0.9, url="https://x/shared")
        gears = [
            GearWithCandidates(gear=make_mention("tent"), products=[shared]),
            GearWithCandidates(gear=make_mention("shelter", None), products=[shared]),
        ]
        result = augment(_document(), gears)
        assert result.total_products_added == 1
        assert result.augmented_content.count("https://x/shared") == 1
        assert "**Recommended shelter:**" not in result.augmented_content

    def test_total_matches_products_used(self):
        gears = [
            GearWithCandidates(
                gear=make_mention("tent"), products=[make_candidate(1), make_candidate(2)]
            ),
            GearWithCandidates(gear=make_mention("headlamp", None), products=[make_candidate(3)]),
        ]
        result = augment(_document(), gears)
        assert result.total_products_added == len(result.products_used) == 3

    def test_body_with_trailing_newline(self):
        gears = [GearWithCandidates(gear=make_mention("tent"), products=[make_candidate()])]
        content = augment(_document(BODY + "\n"), gears).augmented_content
        assert content.startswith(BODY + "\n\n**Recommended tent:**")

    def test_context_falls_back_to_item(self):
        gears = [
            GearWithCandidates(
                gear=make_mention("tent", context="storm shelter"), products=[make_candidate(1)]
            ),
            GearWithCandidates(gear=make_mention("stove", None), products=[make_candidate(2)]),
        ]
        used = augment(_document(), gears).products_used
        assert [u.context for u in used] == ["storm shelter", "stove"]

    def test_augmented_body_is_detected_as_augmented(self):
        gears = [GearWithCandidates(gear=make_mention("tent"), products=[make_candidate()])]
        assert already_augmented(augment(_document(), gears).augmented_content)
