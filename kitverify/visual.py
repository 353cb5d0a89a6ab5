"""
Visual Cross-Checker

Compares what a photo of the shirt shows (dominant colour, sponsor and
technology text) against the matched reference record, then overrides
the matching signals and re-scores.

The pass never adds signals. A mini-verdict only replaces a signal the
base verification already produced, so a visual check cannot outweigh
the database on its own.

Also holds the image helpers that turn a Pillow image plus OCR text
into a VisualObservation.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from PIL import Image

from kitverify.config import settings
from kitverify.logging import get_logger
from kitverify.models import (
    ProductCodeRecord,
    VerificationResult,
    VisualObservation,
    PASS,
    FAIL,
    UNKNOWN,
)
from kitverify.ocr import detect_sponsor, detect_technology
from kitverify.scorer import (
    ALL_SIGNAL_IDS,
    determine_verdict,
    final_score,
    generate_recommendation,
    has_evidence,
)
from kitverify.signals import text_matches

logger = get_logger("visual")


# ============================================================
# ATTRIBUTE -> SIGNAL MAPPING
# ============================================================

class VisualAttribute(str, Enum):
    COLOR = "color"
    SPONSOR = "sponsor"
    TECHNOLOGY = "technology"


DEFAULT_SIGNAL_MAP: dict[VisualAttribute, str] = {
    VisualAttribute.COLOR: "color_suffix",
    VisualAttribute.SPONSOR: "sponsor_era",
    VisualAttribute.TECHNOLOGY: "technology_tier",
}


@dataclass(frozen=True)
class AttributeCheck:
    """Mini-verdict for one visual attribute."""
    attribute: VisualAttribute
    value: str              # "pass" | "fail" | "unknown"
    evidence: str
    observed: Optional[str] = None
    expected: Optional[str] = None


@dataclass(frozen=True)
class VisualCheck:
    checks: tuple[AttributeCheck, ...]

    def get(self, attribute: VisualAttribute) -> Optional[AttributeCheck]:
        for check in self.checks:
            if check.attribute == attribute:
                return check
        return None

    def to_dict(self) -> dict:
        return {
            c.attribute.value: {
                "value": c.value,
                "evidence": c.evidence,
                "observed": c.observed,
                "expected": c.expected,
            }
            for c in self.checks
        }


# ============================================================
# CROSS-CHECKER
# ============================================================

class VisualCrossChecker:
    """Validates a visual observation against a record and re-scores."""

    def __init__(
        self,
        signal_map: Optional[Mapping] = None,
        color_confidence_min: Optional[float] = None,
    ):
        self.signal_map: dict[VisualAttribute, str] = {}
        for key, signal_id in (signal_map or DEFAULT_SIGNAL_MAP).items():
            try:
                attribute = VisualAttribute(key)
            except ValueError:
                raise ValueError(f"Unknown visual attribute: {key!r}") from None
            if signal_id not in ALL_SIGNAL_IDS:
                raise ValueError(f"Unknown signal id for {attribute.value}: {signal_id!r}")
            self.signal_map[attribute] = signal_id

        self.color_confidence_min = (
            settings.COLOR_CONFIDENCE_MIN
            if color_confidence_min is None else color_confidence_min
        )

    def _compare(
        self,
        attribute: VisualAttribute,
        label: str,
        expected: Optional[str],
        observed: Optional[str],
    ) -> AttributeCheck:
        if not expected or not observed:
            return AttributeCheck(
                attribute, UNKNOWN, f"No {label} data to compare",
                observed=observed, expected=expected,
            )
        if text_matches(expected, observed):
            return AttributeCheck(
                attribute, PASS,
                f"Detected {label} {observed} matches expected {expected}",
                observed=observed, expected=expected,
            )
        return AttributeCheck(
            attribute, FAIL,
            f"{label.upper()} MISMATCH: Expected {expected} but detected {observed}",
            observed=observed, expected=expected,
        )

    def cross_validate(
        self,
        record: Optional[ProductCodeRecord],
        observation: VisualObservation,
    ) -> VisualCheck:
        """Per-attribute mini-verdicts. Missing data on either side is unknown."""
        if record is None:
            return VisualCheck(tuple(
                AttributeCheck(attr, UNKNOWN, "No matched product to compare against")
                for attr in VisualAttribute
            ))

        if observation.dominant_color and observation.color_confidence <= self.color_confidence_min:
            color = AttributeCheck(
                VisualAttribute.COLOR, UNKNOWN,
                f"Colour detection confidence too low ({observation.color_confidence:.0f})",
                observed=observation.dominant_color, expected=record.primary_color,
            )
        else:
            color = self._compare(
                VisualAttribute.COLOR, "colour",
                record.primary_color, observation.dominant_color,
            )

        return VisualCheck((
            color,
            self._compare(
                VisualAttribute.SPONSOR, "sponsor",
                record.sponsor, observation.sponsor_hint,
            ),
            self._compare(
                VisualAttribute.TECHNOLOGY, "technology",
                record.technology, observation.technology_hint,
            ),
        ))

    def apply(
        self, result: VerificationResult, observation: VisualObservation,
    ) -> VerificationResult:
        """Override mapped signals with the visual mini-verdicts and re-score."""
        check = self.cross_validate(result.matched_product, observation)
        signals = list(result.signals)

        for item in check.checks:
            signal_id = self.signal_map.get(item.attribute)
            if item.value == UNKNOWN or signal_id is None:
                continue
            for i, signal in enumerate(signals):
                if signal.id == signal_id:
                    signals[i] = replace(
                        signal,
                        value=item.value,
                        evidence=item.evidence,
                        details={**signal.details, "visual_check": True},
                    )
                    logger.debug(
                        f"Visual {item.attribute.value} check set {signal_id} to {item.value}",
                        extra={"code": result.normalized_code, "signal_id": signal_id},
                    )

        if result.blacklist_match is not None:
            score, verdict, recommendation = 0, "blacklisted", result.recommendation
        else:
            score = final_score(signals, False, has_match=result.matched_product is not None)
            verdict = determine_verdict(score, False)
            recommendation = generate_recommendation(verdict)

        return replace(
            result,
            signals=tuple(signals),
            confidence_score=score,
            verdict=verdict,
            recommendation=recommendation,
            evidence_available=has_evidence(signals),
            visual_check=check.to_dict(),
        )


# ============================================================
# ATTRIBUTE CROSS-VALIDATION
# ============================================================

# Shade names a seller or a detector may use for the record's base colour
COLOR_SYNONYMS: dict[str, str] = {
    "scarlet": "red",
    "crimson": "red",
    "navy": "blue",
    "royal": "blue",
    "gold": "yellow",
    "amber": "yellow",
}


def normalize_color(color: str) -> str:
    normalized = color.strip().lower()
    return COLOR_SYNONYMS.get(normalized, normalized)


@dataclass(frozen=True)
class AttributeValidation:
    """
    Result of checking claimed attributes (brand, kit type, colour)
    against the record a code points to.

    confidence is matched / compared * 100, or 50 when nothing could be
    compared. passed means no mismatch was found.
    """
    passed: bool
    confidence: float
    mismatches: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "confidence": self.confidence,
            "mismatches": list(self.mismatches),
        }


def cross_validate_attributes(
    record: Optional[ProductCodeRecord],
    brand: Optional[str] = None,
    kit_type: Optional[str] = None,
    primary_color: Optional[str] = None,
) -> AttributeValidation:
    """
    Catch a genuine code sewn into the wrong shirt: compare what the
    shirt looks like against the record for its code.

    Brand is compared case-insensitively, colour after synonym
    normalisation, and kit type by containment in either direction
    ("home" matches "home_authentic"). An attribute is only compared
    when both sides have a value (brand only needs the claim).
    """
    if record is None:
        return AttributeValidation(False, 0.0, ("Code not found in reference data",))

    mismatches: list[str] = []
    compared = matched = 0

    if brand:
        compared += 1
        if (record.brand or "").lower() == brand.strip().lower():
            matched += 1
        else:
            mismatches.append(f"Brand mismatch: expected {record.brand}, got {brand}")

    if primary_color and record.primary_color:
        compared += 1
        if normalize_color(record.primary_color) == normalize_color(primary_color):
            matched += 1
        else:
            mismatches.append(
                f"Color mismatch: expected {record.primary_color}, got {primary_color}"
            )

    if kit_type and record.kit_type:
        compared += 1
        expected, actual = record.kit_type.lower(), kit_type.strip().lower()
        if expected in actual or actual in expected:
            matched += 1
        else:
            mismatches.append(f"Kit type mismatch: expected {record.kit_type}, got {kit_type}")

    confidence = round(matched / compared * 100, 2) if compared else 50.0
    return AttributeValidation(not mismatches, confidence, tuple(mismatches))


# ============================================================
# IMAGE HELPERS
# ============================================================

# name -> (reference RGB, match tolerance as Euclidean distance)
COLOR_PALETTE: dict[str, tuple[tuple[int, int, int], int]] = {
    "red": ((200, 30, 30), 60),
    "blue": ((30, 60, 180), 60),
    "navy": ((20, 30, 80), 40),
    "white": ((240, 240, 240), 30),
    "black": ((30, 30, 30), 40),
    "yellow": ((230, 200, 30), 50),
    "green": ((30, 150, 60), 60),
    "orange": ((230, 120, 30), 50),
    "purple": ((100, 40, 140), 50),
    "pink": ((230, 100, 150), 50),
    "grey": ((130, 130, 130), 40),
    "gold": ((200, 170, 50), 50),
}

SAMPLE_SIZE = 200
CENTER_FRACTION = 0.4
MIN_BRIGHTNESS = 20
MAX_BRIGHTNESS = 240


def nearest_color_name(rgb: tuple[int, int, int]) -> tuple[Optional[str], float]:
    """Closest palette colour within its tolerance, with a 0-100 confidence."""
    best_name, best_distance = None, math.inf
    for name, (reference, tolerance) in COLOR_PALETTE.items():
        distance = math.dist(rgb, reference)
        if distance <= tolerance and distance < best_distance:
            best_name, best_distance = name, distance

    if best_name is None:
        return None, 0.0
    confidence = max(0.0, min(100.0, 100 - best_distance * 2))
    return best_name, round(confidence, 1)


def dominant_color(image: Image.Image) -> Optional[tuple[int, int, int]]:
    """
    Average colour of the centre of the image, where the shirt body
    usually is. Near-black and near-white pixels (shadows, background,
    glare) are skipped. None if every sampled pixel was skipped.
    """
    img = image.convert("RGB")
    img.thumbnail((SAMPLE_SIZE, SAMPLE_SIZE))
    width, height = img.size

    margin = (1 - CENTER_FRACTION) / 2
    left, top = int(width * margin), int(height * margin)
    right = max(left + 1, int(width * (1 - margin)))
    bottom = max(top + 1, int(height * (1 - margin)))
    region = img.crop((left, top, right, bottom))

    pixels = region.load()
    total_r = total_g = total_b = count = 0
    for y in range(region.height):
        for x in range(region.width):
            r, g, b = pixels[x, y]
            brightness = (r + g + b) / 3
            if brightness <= MIN_BRIGHTNESS or brightness >= MAX_BRIGHTNESS:
                continue
            total_r += r
            total_g += g
            total_b += b
            count += 1

    if count == 0:
        return None
    return round(total_r / count), round(total_g / count), round(total_b / count)


ImageSource = Union[Image.Image, bytes, str, Path]


def _open_image(source: ImageSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, (bytes, bytearray)):
        return Image.open(io.BytesIO(source))
    return Image.open(source)


def analyze_image(
    image: ImageSource, ocr_texts: Optional[Iterable[str]] = None,
) -> VisualObservation:
    """
    Build a VisualObservation from an image and optional OCR text.

    An unreadable image yields no colour, never an exception; OCR hints
    are still used.
    """
    texts = tuple(ocr_texts or ())
    color_name, confidence = None, 0.0
    try:
        rgb = dominant_color(_open_image(image))
    except (OSError, ValueError) as e:
        logger.warning(
            f"Image analysis failed: {e}",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        rgb = None
    if rgb is not None:
        color_name, confidence = nearest_color_name(rgb)

    return VisualObservation(
        dominant_color=color_name,
        sponsor_hint=detect_sponsor(texts),
        technology_hint=detect_technology(texts),
        color_confidence=confidence,
        detected_texts=texts,
    )
