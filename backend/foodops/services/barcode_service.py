# Overview: Barcode normalization and parsing into menu, size and master product code.

"""
Barcode Service

Label formats printed by the kitchen:
    212-HOK-L  -> LARGE,   master code HOK-L
    342-HOK-R  -> REGULAR, master code HOK-R
    343-BRW    -> PCS,     master code BRW

The leading segment is the unit serial; it makes the barcode unique but
carries no product meaning. Manual receipts get synthetic AUTO-... codes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

SIZE_PCS = "PCS"
SIZE_REGULAR = "REGULAR"
SIZE_LARGE = "LARGE"

SIZE_SUFFIXES = {"L": SIZE_LARGE, "R": SIZE_REGULAR}

AUTO_PREFIX = "AUTO"


@dataclass(frozen=True)
class ParsedBarcode:
    raw: str
    menu: str
    size: str
    master_code: str


def normalize_barcode(value) -> str:
    """Uppercase, trimmed; internal spaces removed."""
    return str(value or "").strip().upper().replace(" ", "")


def parse_barcode(value) -> ParsedBarcode | None:
    """Parse a printed label; returns None when the format is not recognized."""
    raw = normalize_barcode(value)
    if not raw:
        return None

    parts = raw.split("-")
    if len(parts) == 3:
        size = SIZE_SUFFIXES.get(parts[2])
        if size is None:
            return None
        menu = parts[1]
        master_code = f"{menu}-{parts[2]}"
    elif len(parts) == 2:
        size = SIZE_PCS
        menu = parts[1]
        master_code = menu
    else:
        return None

    if not parts[0] or not menu:
        return None

    return ParsedBarcode(raw=raw, menu=menu, size=size, master_code=master_code)


def synthesize_barcode(product_code: str) -> str:
    """Placeholder barcode for a unit received without a printed label."""
    return f"{AUTO_PREFIX}-{product_code}-{uuid.uuid4().hex[:12].upper()}"
