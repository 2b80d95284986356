"""Detects guides that already carry recommendation blocks.

The check is the presence of the block heading prefix anywhere in the body.
It cannot tell our blocks from an author's hand-written "**Recommended ...**"
heading; such a guide is skipped, which is preferred over inserting a second
set of blocks.
"""

from __future__ import annotations

AUGMENTATION_MARKER = "**Recommended "


def already_augmented(body: str) -> bool:
    return AUGMENTATION_MARKER in body
