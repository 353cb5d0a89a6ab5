"""
Data Model — Signals, Reference Records, Results

Every verification produces a list of Signals. A Signal is immutable:
later passes (the visual cross-check) build a replacement with the same
id via dataclasses.replace instead of editing it.

Reference records mirror the rows of the reference store. The engine
reads them and never writes them back, apart from the fire-and-forget
lookup counter.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Optional


# ============================================================
# VOCABULARY
# ============================================================

PASS = "pass"
FAIL = "fail"
WARNING = "warning"
UNKNOWN = "unknown"

SIGNAL_VALUES = (PASS, FAIL, WARNING, UNKNOWN)

VERDICTS = (
    "highly_likely_authentic",
    "probably_authentic",
    "uncertain",
    "suspicious",
    "likely_fake",
    "blacklisted",
)


# ============================================================
# SIGNAL
# ============================================================

@dataclass(frozen=True)
class Signal:
    """One independent piece of evidence about a code."""
    id: str                 # e.g. "database_match", "sponsor_era"
    category: str           # Display group, e.g. "Database Match"
    weight: float           # Fixed per id (see scorer.SIGNAL_WEIGHTS)
    confidence: float       # 0.0 to 1.0
    value: str              # "pass" | "fail" | "warning" | "unknown"
    evidence: str           # Human-readable explanation
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.value not in SIGNAL_VALUES:
            raise ValueError(f"Invalid signal value: {self.value!r}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(
                f"Signal confidence must be within [0, 1], got {self.confidence}"
            )

    def to_dict(self) -> dict:
        return asdict(self)


# ============================================================
# REFERENCE RECORDS
# ============================================================

@dataclass(frozen=True)
class ProductCodeRecord:
    """Canonical reference entry for a manufacturer product code."""
    code: str
    brand: str
    team: Optional[str] = None
    season: Optional[str] = None
    kit_type: Optional[str] = None
    variant: Optional[str] = None
    verified: bool = False
    verification_source: str = "community"
    # Extended attributes used by the cross-validation signals
    primary_color: Optional[str] = None
    sponsor: Optional[str] = None
    technology: Optional[str] = None
    tier: Optional[str] = None
    label_position_era: Optional[str] = None
    expected_suffix_digit: Optional[int] = None
    country_of_manufacture: Optional[str] = None
    lookup_count: int = 0

    @classmethod
    def from_row(cls, row: dict) -> "ProductCodeRecord":
        """Build a record from a store row, ignoring unknown columns."""
        known = {k: row[k] for k in cls.__dataclass_fields__ if k in row}
        known["verified"] = bool(known.get("verified", False))
        digit = known.get("expected_suffix_digit")
        if digit is not None and digit != "":
            known["expected_suffix_digit"] = int(digit)
        else:
            known["expected_suffix_digit"] = None
        known["lookup_count"] = int(known.get("lookup_count") or 0)
        return cls(**known)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BlacklistRecord:
    """A code known to be printed on counterfeit products."""
    code: str
    brand: str
    reason: str
    severity: str = "high"          # "high" | "medium" | "low"
    legitimate_use: Optional[str] = None
    reported_count: int = 0

    @classmethod
    def from_row(cls, row: dict) -> "BlacklistRecord":
        known = {k: row[k] for k in cls.__dataclass_fields__ if k in row}
        known["reported_count"] = int(known.get("reported_count") or 0)
        return cls(**known)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class EraWindow:
    """
    A period during which an attribute value held for a team or brand.

    The window covers start_year <= year < end_year; end_year None means
    the window is still open. ``mismatch`` is the signal value to emit
    when an item claims this value outside the window ("fail" for
    historical impossibilities, "warning" for softer anomalies).
    """
    value: str
    start_year: int
    end_year: Optional[int] = None
    mismatch: str = FAIL
    tier: Optional[str] = None  # Restrict the value to one product tier

    def contains(self, year: int) -> bool:
        return year >= self.start_year and (
            self.end_year is None or year < self.end_year
        )


# ============================================================
# VISUAL OBSERVATION
# ============================================================

@dataclass(frozen=True)
class VisualObservation:
    """Attributes read off a photo of the shirt (colour + OCR hints)."""
    dominant_color: Optional[str] = None
    sponsor_hint: Optional[str] = None
    technology_hint: Optional[str] = None
    color_confidence: float = 0.0   # 0-100
    detected_texts: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.dominant_color or self.sponsor_hint or self.technology_hint)


# ============================================================
# RESULT
# ============================================================

@dataclass(frozen=True)
class VerificationResult:
    """Outcome of one verification call."""
    code: str
    normalized_code: str
    verdict: str
    confidence_score: int
    signals: tuple[Signal, ...]
    matched_product: Optional[ProductCodeRecord]
    blacklist_match: Optional[BlacklistRecord]
    recommendation: str
    timestamp: str
    evidence_available: bool = True
    visual_check: Optional[dict] = None

    def signal(self, signal_id: str) -> Optional[Signal]:
        """Return the signal with the given id, if present."""
        for s in self.signals:
            if s.id == signal_id:
                return s
        return None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "normalized_code": self.normalized_code,
            "verdict": self.verdict,
            "confidence_score": self.confidence_score,
            "signals": [s.to_dict() for s in self.signals],
            "matched_product": (
                self.matched_product.to_dict() if self.matched_product else None
            ),
            "blacklist_match": (
                self.blacklist_match.to_dict() if self.blacklist_match else None
            ),
            "recommendation": self.recommendation,
            "timestamp": self.timestamp,
            "evidence_available": self.evidence_available,
            "visual_check": self.visual_check,
        }
