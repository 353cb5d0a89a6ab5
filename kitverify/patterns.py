"""
Pattern Library — Brand Code Formats

Each manufacturer prints product codes in a small number of fixed
formats. This module holds those formats and answers two questions:

  1. Which brand does a code's format belong to?
  2. Is a code valid for a given brand?

Patterns are anchored full-string matches. A valid code embedded in a
longer string ("1638920-0134") is not a match. Brands are tried in
declaration order and the first matching pattern wins, so formats shared
between brands (six pure digits: early Nike vs. Umbro) resolve to the
earlier brand.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

UNKNOWN_BRAND = "Unknown"


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class CodePattern:
    """One code format owned by a brand."""
    id: str
    brand: str
    regex: str
    example: str
    description: str

    @property
    def compiled(self) -> re.Pattern:
        return _COMPILED[self.id]


# ============================================================
# CODE FORMATS
# ============================================================

CODE_PATTERNS: list[CodePattern] = [
    # --- Nike ---
    CodePattern(
        id="NIKE_MODERN",
        brand="Nike",
        regex=r"[A-Z]{2}\d{4}-\d{3}",
        example="CZ3984-100",
        description="Two letters, four digits, three-digit colour suffix",
    ),
    CodePattern(
        id="NIKE_LEGACY",
        brand="Nike",
        regex=r"\d{6}-\d{3}",
        example="638920-013",
        description="Six-digit style number, three-digit colour suffix",
    ),
    CodePattern(
        id="NIKE_EARLY",
        brand="Nike",
        regex=r"\d{6}",
        example="118834",
        description="Six-digit style number without suffix (2002-2006)",
    ),

    # --- Adidas ---
    CodePattern(
        id="ADIDAS_MODERN",
        brand="Adidas",
        regex=r"[A-Z]{2}\d{4}",
        example="IS7462",
        description="Two letters, four digits",
    ),
    CodePattern(
        id="ADIDAS_LEGACY",
        brand="Adidas",
        regex=r"[A-Z]\d{5}",
        example="M36158",
        description="One letter, five digits",
    ),
    CodePattern(
        id="ADIDAS_EXTENDED",
        brand="Adidas",
        regex=r"[A-Z]{2}\d{5}",
        example="IT97851",
        description="Two letters, five digits",
    ),

    # --- Puma ---
    CodePattern(
        id="PUMA_STANDARD",
        brand="Puma",
        regex=r"\d{6}-\d{2}",
        example="736251-01",
        description="Six-digit article number, two-digit colourway",
    ),

    # --- Umbro ---
    CodePattern(
        id="UMBRO_SUFFIXED",
        brand="Umbro",
        regex=r"\d{5}-U",
        example="96281-U",
        description="Five digits with -U suffix",
    ),
    CodePattern(
        id="UMBRO_NUMERIC",
        brand="Umbro",
        regex=r"\d{5,6}",
        example="96281",
        description="Pure numeric, five or six digits",
    ),
]

BRANDS: tuple[str, ...] = tuple(dict.fromkeys(p.brand for p in CODE_PATTERNS))

_COMPILED: dict[str, re.Pattern] = {
    p.id: re.compile(p.regex) for p in CODE_PATTERNS
}


# ============================================================
# LOOKUPS
# ============================================================

def normalize_code(code: str) -> str:
    """Trimmed, uppercased form used for every lookup."""
    return code.strip().upper()


def patterns_for(brand: str) -> list[CodePattern]:
    """Patterns owned by a brand (case-insensitive). Empty if unknown."""
    wanted = brand.lower()
    return [p for p in CODE_PATTERNS if p.brand.lower() == wanted]


def match_pattern(code: str) -> Optional[CodePattern]:
    """First pattern that fully matches the code, in brand order."""
    normalized = normalize_code(code)
    for pattern in CODE_PATTERNS:
        if pattern.compiled.fullmatch(normalized):
            return pattern
    return None


def detect_brand(code: str) -> str:
    """Brand whose format the code matches, or "Unknown"."""
    pattern = match_pattern(code)
    return pattern.brand if pattern else UNKNOWN_BRAND


def is_valid_format(code: str, brand: str) -> bool:
    """True if the code fully matches one of the brand's formats."""
    normalized = normalize_code(code)
    return any(p.compiled.fullmatch(normalized) for p in patterns_for(brand))


def get_patterns(brand: Optional[str] = None) -> list[dict]:
    """
    Return the code formats, optionally for one brand.

    Used by the GET /v1/patterns endpoint.
    """
    patterns = patterns_for(brand) if brand else CODE_PATTERNS
    return [
        {
            "id": p.id,
            "brand": p.brand,
            "regex": f"^{p.regex}$",
            "example": p.example,
            "description": p.description,
        }
        for p in patterns
    ]
