"""
Confidence Score Calculator

Computes a 0-100 confidence score from a list of signals and maps it to
a verdict. Separated from verifier.py for single-responsibility.

Score = weighted mean of signal outcomes, where each signal's weight is
scaled by its own confidence:

  pass = 1.0, warning = 0.5, fail = 0.0, unknown = skipped entirely
  effective_weight = weight * confidence
  score = round(100 * sum(outcome * ew) / sum(ew))

With no evaluable signal the score is the neutral 50.
A blacklist match overrides everything: score 0, verdict "blacklisted".
"""

from __future__ import annotations

import math
from typing import Iterable

from kitverify.models import Signal, PASS, WARNING, FAIL, UNKNOWN


# ============================================================
# SIGNAL WEIGHTS (sum = 100)
# ============================================================

SIGNAL_WEIGHTS: dict[str, int] = {
    "database_match": 25,        # Code found in the reference database
    "blacklist_check": 20,       # Not on the known-counterfeit list
    "format_validation": 15,     # Matches the brand's code format
    "brand_consistency": 8,      # Brand filter agrees with the result
    "era_plausibility": 5,       # Season is a plausible year
    "sponsor_era": 8,            # Sponsor matches the team's era
    "technology_tier": 7,        # Fabric technology matches the brand era
    "label_position": 4,         # Label position matches the era
    "color_suffix": 5,           # Nike colour suffix matches the kit colour
    "manufacturing_origin": 3,   # Country of manufacture matches the era
}

# Manufacturer-era checks sit outside the 100-point table: a wrong kit
# maker for the season is a historical impossibility and weighs heavier.
MANUFACTURER_ERA_WEIGHT = 25

ALL_SIGNAL_IDS: frozenset[str] = frozenset(SIGNAL_WEIGHTS) | {"manufacturer_era"}


def weight_for(signal_id: str) -> int:
    if signal_id == "manufacturer_era":
        return MANUFACTURER_ERA_WEIGHT
    return SIGNAL_WEIGHTS[signal_id]


# ============================================================
# THRESHOLDS
# ============================================================

THRESHOLDS: dict[str, int] = {
    "highly_likely_authentic": 90,
    "probably_authentic": 70,
    "uncertain": 50,
    "suspicious": 30,
    "likely_fake": 0,
}

NEUTRAL_SCORE = 50
UNMATCHED_SCORE_CAP = THRESHOLDS["highly_likely_authentic"] - 1

_OUTCOME = {PASS: 1.0, WARNING: 0.5, FAIL: 0.0}


# ============================================================
# AGGREGATION
# ============================================================

def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def calculate_confidence_score(signals: Iterable[Signal]) -> int:
    """Weighted-by-confidence mean of signal outcomes, 0-100."""
    total_weight = 0.0
    weighted_sum = 0.0

    for signal in signals:
        if signal.value == UNKNOWN:
            continue
        effective_weight = signal.weight * signal.confidence
        weighted_sum += _OUTCOME[signal.value] * effective_weight
        total_weight += effective_weight

    if total_weight == 0:
        return NEUTRAL_SCORE

    score = _round_half_up(weighted_sum / total_weight * 100)
    return max(0, min(100, score))


def final_score(signals: Iterable[Signal], is_blacklisted: bool, has_match: bool) -> int:
    """
    Score reported on a result.

    A blacklist match forces 0. A code with no reference match is capped
    at UNMATCHED_SCORE_CAP: format and blacklist checks alone never make
    an item "highly likely authentic".
    """
    if is_blacklisted:
        return 0
    score = calculate_confidence_score(signals)
    if not has_match:
        score = min(score, UNMATCHED_SCORE_CAP)
    return score


def has_evidence(signals: Iterable[Signal]) -> bool:
    """False when nothing but unknown (or zero-weight) signals were produced."""
    return any(
        s.value != UNKNOWN and s.weight * s.confidence > 0 for s in signals
    )


def score_breakdown(signals: Iterable[Signal]) -> dict:
    """
    Show how each signal contributed to the score.

    Returns:
        {"contributions": [...], "total_effective_weight": float,
         "skipped": [...], "final_score": int}
    """
    signals = list(signals)
    contributions = []
    skipped = []
    total = 0.0
    for s in signals:
        if s.value == UNKNOWN:
            skipped.append(s.id)
            continue
        ew = s.weight * s.confidence
        total += ew
        contributions.append({
            "signal": s.id,
            "value": s.value,
            "effective_weight": round(ew, 3),
            "earned": round(_OUTCOME[s.value] * ew, 3),
        })
    return {
        "contributions": contributions,
        "total_effective_weight": round(total, 3),
        "skipped": skipped,
        "final_score": calculate_confidence_score(signals),
    }


# ============================================================
# VERDICT
# ============================================================

def determine_verdict(score: int, is_blacklisted: bool) -> str:
    """Blacklist first, then the threshold ladder from the top."""
    if is_blacklisted:
        return "blacklisted"
    if score >= THRESHOLDS["highly_likely_authentic"]:
        return "highly_likely_authentic"
    if score >= THRESHOLDS["probably_authentic"]:
        return "probably_authentic"
    if score >= THRESHOLDS["uncertain"]:
        return "uncertain"
    if score >= THRESHOLDS["suspicious"]:
        return "suspicious"
    return "likely_fake"


RECOMMENDATIONS: dict[str, str] = {
    "highly_likely_authentic": (
        "This code strongly indicates an authentic product. Proceed with confidence."
    ),
    "probably_authentic": (
        "This code appears legitimate. Consider additional visual checks for high-value items."
    ),
    "uncertain": (
        "We cannot definitively verify this code. Recommend additional authentication methods."
    ),
    "suspicious": (
        "Several warning signs detected. Exercise caution and consider expert verification."
    ),
    "likely_fake": (
        "Multiple indicators suggest this may be counterfeit. Strongly recommend avoiding purchase."
    ),
    "blacklisted": (
        "This code is known to be used on counterfeit products. Do not purchase."
    ),
}

VERDICT_LABELS: dict[str, str] = {
    "highly_likely_authentic": "Highly Likely Authentic",
    "probably_authentic": "Probably Authentic",
    "uncertain": "Uncertain",
    "suspicious": "Suspicious",
    "likely_fake": "Likely Fake",
    "blacklisted": "Known Counterfeit",
}


def generate_recommendation(verdict: str) -> str:
    return RECOMMENDATIONS[verdict]
