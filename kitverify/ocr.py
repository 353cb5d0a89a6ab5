"""
OCR Post-Processing

Text recognition itself happens outside this package. These helpers take
the raw text it produces and pull out:

  - candidate product codes, with the brand whose format they match
  - a sponsor hint and a technology hint for the visual cross-check

OCR engines routinely read 0 as O and 1 as I or L. Corrections are only
applied after the first digit of a token, so letter prefixes such as
"IS7462" survive while "638920-O13" becomes "638920-013".
"""

from __future__ import annotations

import re
from dataclasses import dataclass, asdict
from typing import Iterable, Optional

from kitverify.patterns import CODE_PATTERNS

_OCR_DIGIT_FIXES = str.maketrans({"O": "0", "I": "1", "L": "1"})
_FIRST_DIGIT = re.compile(r"\d")

# Unanchored but bounded: a code must not run into more code characters
_SEARCH_PATTERNS = [
    (p, re.compile(rf"(?<![A-Z0-9-]){p.regex}(?![A-Z0-9-])"))
    for p in CODE_PATTERNS
]

KNOWN_SPONSORS = (
    # Premier League
    "chevrolet", "aig", "vodafone", "sharp", "aon", "teamviewer", "snapdragon",
    "fly emirates", "emirates", "etihad", "standard chartered", "rakuten",
    "yokohama", "samsung", "o2", "dreamcast", "jvc",
    # Serie A
    "pirelli", "lete", "bwin",
    # La Liga
    "beko", "spotify",
    # General
    "bet365", "betway", "w88", "mansion",
)

KNOWN_TECHNOLOGIES = (
    # Adidas
    "aeroready", "climacool", "climalite", "heat.rdy", "cold.rdy", "formotion",
    # Nike
    "dri-fit", "therma-fit", "vaporknit", "aeroswift", "cool motion", "total 90",
)


@dataclass(frozen=True)
class ExtractedCode:
    code: str
    brand: str
    pattern_id: str
    confidence: float = 0.9

    def to_dict(self) -> dict:
        return asdict(self)


def _fix_token(token: str) -> str:
    match = _FIRST_DIGIT.search(token)
    if not match:
        return token
    head, tail = token[:match.start()], token[match.start():]
    return head + tail.translate(_OCR_DIGIT_FIXES)


def normalize_ocr_text(text: str) -> str:
    """Uppercase, collapse whitespace, fix digit look-alikes in code tokens."""
    tokens = text.upper().split()
    return " ".join(_fix_token(t) for t in tokens)


def extract_codes(text: str) -> list[ExtractedCode]:
    """Candidate product codes in text order, each reported once."""
    normalized = normalize_ocr_text(text)
    found: list[tuple[int, int, ExtractedCode]] = []
    for order, (pattern, regex) in enumerate(_SEARCH_PATTERNS):
        for match in regex.finditer(normalized):
            found.append((
                match.start(), order,
                ExtractedCode(code=match.group(0), brand=pattern.brand, pattern_id=pattern.id),
            ))

    seen: set[str] = set()
    codes = []
    for _, _, extracted in sorted(found, key=lambda item: (item[0], item[1])):
        if extracted.code in seen:
            continue
        seen.add(extracted.code)
        codes.append(extracted)
    return codes


def _find_known(texts: Iterable[str], known: tuple[str, ...]) -> Optional[str]:
    combined = " ".join(texts).lower()
    for term in known:
        if re.search(rf"(?<![a-z0-9]){re.escape(term)}(?![a-z0-9])", combined):
            return term
    return None


def detect_sponsor(texts: Iterable[str]) -> Optional[str]:
    """First known sponsor in the text, title-cased ("Fly Emirates")."""
    sponsor = _find_known(texts, KNOWN_SPONSORS)
    return sponsor.title() if sponsor else None


def detect_technology(texts: Iterable[str]) -> Optional[str]:
    """First known fabric technology in the text, uppercased ("AEROREADY")."""
    technology = _find_known(texts, KNOWN_TECHNOLOGIES)
    return technology.upper() if technology else None
