"""
Visual Cross-Checker and Image Helper Tests
"""

from __future__ import annotations

import io
from dataclasses import replace
from datetime import datetime, timezone

import pytest
from PIL import Image

from kitverify.models import (
    BlacklistRecord,
    ProductCodeRecord,
    Signal,
    VerificationResult,
    VisualObservation,
    PASS,
    FAIL,
    UNKNOWN,
)
from kitverify.scorer import weight_for
from kitverify.visual import (
    VisualAttribute,
    VisualCrossChecker,
    analyze_image,
    cross_validate_attributes,
    dominant_color,
    nearest_color_name,
    normalize_color,
)

RECORD = ProductCodeRecord(
    code="638920-613",
    brand="Nike",
    team="Manchester United",
    season="2007/08",
    verified=True,
    primary_color="red",
    sponsor="AIG",
    technology="Dri-FIT",
)


def _signal(signal_id, value=PASS):
    return Signal(
        id=signal_id, category="Test", weight=weight_for(signal_id),
        confidence=0.95, value=value, evidence="base",
    )


def _result(signals, blacklist=None, record=RECORD, verdict="highly_likely_authentic",
            score=100, recommendation="base recommendation"):
    return VerificationResult(
        code=record.code if record else "X",
        normalized_code=record.code if record else "X",
        verdict=verdict,
        confidence_score=score,
        signals=tuple(signals),
        matched_product=record,
        blacklist_match=blacklist,
        recommendation=recommendation,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@pytest.fixture
def checker():
    return VisualCrossChecker(color_confidence_min=40)


class TestConstruction:
    """Attribute-to-signal mapping is validated up front."""

    def test_default_mapping(self, checker):
        assert checker.signal_map[VisualAttribute.COLOR] == "color_suffix"
        assert checker.signal_map[VisualAttribute.SPONSOR] == "sponsor_era"
        assert checker.signal_map[VisualAttribute.TECHNOLOGY] == "technology_tier"

    def test_string_keys_accepted(self):
        checker = VisualCrossChecker({"color": "color_suffix"})
        assert checker.signal_map == {VisualAttribute.COLOR: "color_suffix"}

    def test_unknown_attribute_rejected(self):
        with pytest.raises(ValueError):
            VisualCrossChecker({"collar": "color_suffix"})

    def test_unknown_signal_rejected(self):
        with pytest.raises(ValueError):
            VisualCrossChecker({"color": "colour_check"})


class TestCrossValidate:

    def test_all_match(self, checker):
        check = checker.cross_validate(RECORD, VisualObservation(
            dominant_color="Red", sponsor_hint="Aig", technology_hint="DRI-FIT",
            color_confidence=90,
        ))
        assert [c.value for c in check.checks] == [PASS, PASS, PASS]

    def test_colour_mismatch(self, checker):
        check = checker.cross_validate(
            RECORD, VisualObservation(dominant_color="blue", color_confidence=80),
        )
        assert check.get(VisualAttribute.COLOR).value == FAIL
        assert check.get(VisualAttribute.SPONSOR).value == UNKNOWN

    def test_low_colour_confidence_is_unknown(self, checker):
        check = checker.cross_validate(
            RECORD, VisualObservation(dominant_color="blue", color_confidence=40),
        )
        assert check.get(VisualAttribute.COLOR).value == UNKNOWN

    def test_no_record(self, checker):
        check = checker.cross_validate(None, VisualObservation(dominant_color="red", color_confidence=99))
        assert all(c.value == UNKNOWN for c in check.checks)

    def test_missing_stored_attribute(self, checker):
        record = ProductCodeRecord(code="IS7462", brand="Adidas")
        check = checker.cross_validate(record, VisualObservation(sponsor_hint="Aon"))
        assert check.get(VisualAttribute.SPONSOR).value == UNKNOWN


class TestApply:

    def test_replaces_mapped_signal(self, checker):
        base = _result([_signal("database_match"), _signal("color_suffix"), _signal("sponsor_era")])
        result = checker.apply(base, VisualObservation(dominant_color="blue", color_confidence=80))

        color = result.signal("color_suffix")
        assert color.value == FAIL
        assert color.details["visual_check"] is True
        assert result.signal("sponsor_era").evidence == "base"
        assert result.confidence_score < base.confidence_score
        assert result.visual_check["color"]["value"] == FAIL

    def test_never_adds_signals(self, checker):
        base = _result([_signal("database_match")])
        result = checker.apply(base, VisualObservation(
            dominant_color="blue", sponsor_hint="Vodafone", color_confidence=80,
        ))
        assert [s.id for s in result.signals] == ["database_match"]
        assert result.confidence_score == 100

    def test_original_result_untouched(self, checker):
        base = _result([_signal("color_suffix")])
        checker.apply(base, VisualObservation(dominant_color="blue", color_confidence=80))
        assert base.signal("color_suffix").value == PASS

    def test_blacklist_keeps_override(self, checker):
        base = _result(
            [_signal("blacklist_check", FAIL), _signal("sponsor_era")],
            blacklist=BlacklistRecord(code=RECORD.code, brand="Nike", reason="fake"),
            verdict="blacklisted", score=0, recommendation="Do not purchase.",
        )
        result = checker.apply(base, VisualObservation(sponsor_hint="AIG"))
        assert result.verdict == "blacklisted"
        assert result.confidence_score == 0
        assert result.recommendation == "Do not purchase."
        assert result.signal("sponsor_era").details["visual_check"] is True

    def test_reclassifies(self, checker):
        base = _result([_signal("sponsor_era")])
        result = checker.apply(base, VisualObservation(sponsor_hint="Chevrolet"))
        assert result.confidence_score == 0
        assert result.verdict == "likely_fake"


class TestAttributeCrossValidation:
    """Claimed brand, kit type and colour against the record."""

    HOME = replace(RECORD, kit_type="home_authentic", primary_color="scarlet")

    def test_all_match(self):
        result = cross_validate_attributes(self.HOME, brand="NIKE", kit_type="home", primary_color="crimson")
        assert result.passed is True
        assert result.confidence == 100.0
        assert result.mismatches == ()

    def test_mismatch_list(self):
        result = cross_validate_attributes(self.HOME, brand="Adidas", kit_type="away", primary_color="red")
        assert result.passed is False
        assert result.confidence == pytest.approx(33.33)
        assert result.mismatches == (
            "Brand mismatch: expected Nike, got Adidas",
            "Kit type mismatch: expected home_authentic, got away",
        )

    def test_colour_synonyms(self):
        assert normalize_color(" Navy ") == "blue"
        assert normalize_color("amber") == "yellow"
        assert normalize_color("teal") == "teal"
        result = cross_validate_attributes(self.HOME, primary_color="navy")
        assert result.mismatches == ("Color mismatch: expected scarlet, got navy",)
        assert result.confidence == 0.0

    def test_nothing_compared_is_neutral(self):
        result = cross_validate_attributes(replace(self.HOME, kit_type=None), kit_type="home")
        assert result.passed is True
        assert result.confidence == 50.0

    def test_missing_record(self):
        result = cross_validate_attributes(None, brand="Nike")
        assert result.to_dict() == {
            "passed": False,
            "confidence": 0.0,
            "mismatches": ["Code not found in reference data"],
        }


class TestImageHelpers:

    def test_nearest_colour_exact(self):
        name, confidence = nearest_color_name((200, 30, 30))
        assert name == "red"
        assert confidence == 100.0

    def test_nearest_colour_within_tolerance(self):
        name, confidence = nearest_color_name((210, 40, 35))
        assert name == "red"
        assert 0 < confidence < 100

    def test_nearest_colour_outside_palette(self):
        assert nearest_color_name((0, 255, 255)) == (None, 0.0)

    def test_dominant_colour_of_solid_image(self):
        image = Image.new("RGB", (400, 300), (30, 60, 180))
        assert dominant_color(image) == (30, 60, 180)

    def test_dominant_colour_uses_centre(self):
        image = Image.new("RGB", (100, 100), (30, 150, 60))
        image.paste((200, 30, 30), (30, 30, 70, 70))
        assert nearest_color_name(dominant_color(image))[0] == "red"

    def test_pure_white_is_skipped(self):
        assert dominant_color(Image.new("RGB", (50, 50), (255, 255, 255))) is None

    def test_analyze_image_from_bytes(self):
        buffer = io.BytesIO()
        Image.new("RGB", (64, 64), (200, 30, 30)).save(buffer, format="PNG")
        observation = analyze_image(buffer.getvalue(), ["AIG", "Dri-FIT 100% polyester"])
        assert observation.dominant_color == "red"
        assert observation.color_confidence == 100.0
        assert observation.sponsor_hint == "Aig"
        assert observation.technology_hint == "DRI-FIT"

    def test_unreadable_image_gives_empty_colour(self):
        observation = analyze_image(b"not an image", ["Chevrolet"])
        assert observation.dominant_color is None
        assert observation.color_confidence == 0.0
        assert observation.sponsor_hint == "Chevrolet"
