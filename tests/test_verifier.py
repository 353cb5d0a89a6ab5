"""
Verifier Tests — End-to-End Pipeline Against an In-Memory Store

Covers the orchestration rules: validation before lookups, signal order,
blacklist override, era lookups through the default tables, timeouts,
fire-and-forget side effects, batches and the visual pass.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from kitverify import verifier as verifier_module
from kitverify.defaults import SPONSOR
from kitverify.errors import InvalidCodeError
from kitverify.models import (
    BlacklistRecord,
    EraWindow,
    ProductCodeRecord,
    VisualObservation,
    PASS,
    FAIL,
    UNKNOWN,
)
from kitverify.reference import InMemoryReferenceStore
from kitverify.verifier import Verifier, validate_code


MAN_UTD_0708 = ProductCodeRecord(
    code="238347-010",
    brand="Nike",
    team="Manchester United",
    season="2007/08",
    kit_type="home",
    verified=True,
    verification_source="official",
    sponsor="AIG",
)

RED_NIKE = ProductCodeRecord(
    code="638920-613",
    brand="Nike",
    team="Arsenal",
    season="2012/13",
    kit_type="home",
    verified=True,
    primary_color="red",
)


class SlowStore(InMemoryReferenceStore):
    async def lookup_product_code(self, code, brand_filter=None):
        await asyncio.sleep(1)
        return await super().lookup_product_code(code, brand_filter)


class BrokenLogStore(InMemoryReferenceStore):
    async def log_verification(self, entry):
        raise RuntimeError("log table unavailable")


class EraDownStore(InMemoryReferenceStore):
    async def lookup_era_reference(self, subject, kind):
        raise ConnectionError("era table unreachable")


class EraSlowStore(InMemoryReferenceStore):
    async def lookup_era_reference(self, subject, kind):
        await asyncio.sleep(1)
        return await super().lookup_era_reference(subject, kind)


CHEVROLET_0708 = ProductCodeRecord(
    code="238347-011",
    brand="Nike",
    team="Manchester United",
    season="2007/08",
    kit_type="home",
    verified=True,
    sponsor="Chevrolet",
)


@pytest.fixture
def store():
    return InMemoryReferenceStore(
        products=[MAN_UTD_0708, RED_NIKE],
        blacklist=[BlacklistRecord(
            code="CZ3984-101", brand="Nike", reason="known counterfeit batch",
        )],
    )


@pytest.fixture
def verifier(store):
    return Verifier(store, lookup_timeout=0.5)


# ============================================================
# INPUT VALIDATION
# ============================================================

class TestValidation:
    """Malformed codes fail before any lookup."""

    @pytest.mark.parametrize("bad", [None, 123, "", "   ", "X" * 33, "CZ3984 100", "CZ3984_100"])
    def test_invalid_codes(self, bad):
        with pytest.raises(InvalidCodeError):
            validate_code(bad)

    def test_normalises(self):
        assert validate_code(" cz3984-100 ") == "CZ3984-100"

    def test_invalid_code_is_value_error(self):
        with pytest.raises(ValueError):
            validate_code("")

    @pytest.mark.asyncio
    async def test_no_lookup_on_invalid_code(self):
        store = AsyncMock()
        with pytest.raises(InvalidCodeError):
            await Verifier(store).verify_product_code("not a code!")
        store.lookup_blacklist.assert_not_awaited()
        store.lookup_product_code.assert_not_awaited()


# ============================================================
# CORE PIPELINE
# ============================================================

class TestVerifyProductCode:

    @pytest.mark.asyncio
    async def test_unmatched_nike_code(self, verifier):
        result = await verifier.verify_product_code("CZ3984-100")
        assert [s.id for s in result.signals] == [
            "blacklist_check", "database_match", "format_validation", "brand_consistency",
        ]
        assert result.signal("format_validation").value == PASS
        assert result.signal("database_match").value == UNKNOWN
        assert result.signal("blacklist_check").value == PASS
        assert result.signal("brand_consistency").value == PASS
        assert 50 <= result.confidence_score <= 89
        assert result.verdict not in ("blacklisted", "likely_fake")
        assert result.matched_product is None

    @pytest.mark.asyncio
    async def test_blacklisted_code(self, verifier):
        result = await verifier.verify_product_code("cz3984-101")
        assert result.verdict == "blacklisted"
        assert result.confidence_score == 0
        assert "Do not purchase" in result.recommendation
        assert result.blacklist_match.reason == "known counterfeit batch"
        assert result.signal("blacklist_check").value == FAIL

    @pytest.mark.asyncio
    async def test_blacklist_overrides_valid_format_and_match(self, store, verifier):
        store.add_blacklist(BlacklistRecord(
            code=MAN_UTD_0708.code, brand="Nike", reason="cloned label",
        ))
        result = await verifier.verify_product_code(MAN_UTD_0708.code)
        assert result.matched_product is not None
        assert result.verdict == "blacklisted"
        assert result.confidence_score == 0

    @pytest.mark.asyncio
    async def test_matched_record_runs_era_family(self, verifier):
        result = await verifier.verify_product_code(MAN_UTD_0708.code)
        ids = [s.id for s in result.signals]
        assert ids == [
            "blacklist_check", "database_match", "format_validation", "brand_consistency",
            "sponsor_era", "manufacturer_era", "era_plausibility",
        ]
        assert result.signal("sponsor_era").value == PASS
        assert result.signal("manufacturer_era").value == PASS
        assert result.verdict == "highly_likely_authentic"
        assert result.evidence_available is True

    @pytest.mark.asyncio
    async def test_wrong_sponsor_is_penalised(self, store, verifier):
        clean = await verifier.verify_product_code(MAN_UTD_0708.code)
        store.add_product(ProductCodeRecord(**{**MAN_UTD_0708.to_dict(), "sponsor": "Chevrolet"}))
        fake = await verifier.verify_product_code(MAN_UTD_0708.code)

        sponsor = fake.signal("sponsor_era")
        assert sponsor.value == FAIL
        assert "AIG" in sponsor.evidence
        assert fake.confidence_score < clean.confidence_score

    @pytest.mark.asyncio
    async def test_store_eras_override_defaults(self, store, verifier):
        store.add_product(ProductCodeRecord(**{**MAN_UTD_0708.to_dict(), "sponsor": "Chevrolet"}))
        store.add_era_windows("Manchester United", SPONSOR, [EraWindow("Chevrolet", 2005, 2010)])
        result = await verifier.verify_product_code(MAN_UTD_0708.code)
        assert result.signal("sponsor_era").value == PASS

    @pytest.mark.asyncio
    async def test_brand_filter_excludes_other_brand(self, verifier):
        result = await verifier.verify_product_code(MAN_UTD_0708.code, brand_filter="Adidas")
        assert result.matched_product is None
        assert result.signal("brand_consistency").value == "warning"

    @pytest.mark.asyncio
    async def test_unknown_format_without_match(self, verifier):
        result = await verifier.verify_product_code("ABC-1")
        assert result.signal("format_validation").value == UNKNOWN
        assert result.signal("database_match").value == UNKNOWN

    @pytest.mark.asyncio
    async def test_colour_suffix_from_primary_colour(self, verifier):
        result = await verifier.verify_product_code(RED_NIKE.code)
        assert result.signal("color_suffix").value == PASS


# ============================================================
# COLLABORATOR FAILURES
# ============================================================

class TestDegradation:

    @pytest.mark.asyncio
    async def test_lookup_timeout_is_not_found(self):
        store = SlowStore(products=[MAN_UTD_0708])
        result = await Verifier(store, lookup_timeout=0.01).verify_product_code(MAN_UTD_0708.code)
        database = result.signal("database_match")
        assert database.value == UNKNOWN
        assert database.details["timed_out"] is True
        assert result.matched_product is None

    @pytest.mark.asyncio
    async def test_store_error_is_not_found(self):
        store = InMemoryReferenceStore()
        store.lookup_blacklist = AsyncMock(side_effect=ConnectionError("down"))
        result = await Verifier(store).verify_product_code("IS7462")
        assert result.signal("blacklist_check").value == PASS
        assert result.blacklist_match is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("store_cls", [InMemoryReferenceStore, EraDownStore, EraSlowStore])
    async def test_era_outage_falls_back_to_defaults(self, store_cls):
        store = store_cls(products=[CHEVROLET_0708])
        result = await Verifier(store, lookup_timeout=0.05).verify_product_code(CHEVROLET_0708.code)

        sponsor = result.signal("sponsor_era")
        manufacturer = result.signal("manufacturer_era")
        assert sponsor is not None
        assert sponsor.value == FAIL
        assert manufacturer is not None
        assert manufacturer.value == PASS

    @pytest.mark.asyncio
    async def test_era_outage_scores_like_healthy_store(self):
        healthy = await Verifier(
            InMemoryReferenceStore(products=[CHEVROLET_0708]), lookup_timeout=0.05,
        ).verify_product_code(CHEVROLET_0708.code)
        down = await Verifier(
            EraDownStore(products=[CHEVROLET_0708]), lookup_timeout=0.05,
        ).verify_product_code(CHEVROLET_0708.code)
        assert [(s.id, s.value) for s in down.signals] == [(s.id, s.value) for s in healthy.signals]
        assert down.confidence_score == healthy.confidence_score

    @pytest.mark.asyncio
    async def test_failing_side_effects_do_not_change_result(self):
        healthy = Verifier(InMemoryReferenceStore(products=[MAN_UTD_0708]))
        broken = Verifier(BrokenLogStore(products=[MAN_UTD_0708]))

        good = await healthy.verify_product_code(MAN_UTD_0708.code)
        bad = await broken.verify_product_code(MAN_UTD_0708.code)
        await healthy.side_effects.drain()
        await broken.side_effects.drain()

        assert bad.verdict == good.verdict
        assert bad.confidence_score == good.confidence_score
        assert broken.side_effects.error_count == 1
        assert broken.side_effects.errors[0]["task"] == "log_verification"


# ============================================================
# SIDE EFFECTS
# ============================================================

class TestSideEffects:

    @pytest.mark.asyncio
    async def test_lookup_count_and_log(self, store, verifier):
        await verifier.verify_product_code(MAN_UTD_0708.code)
        await verifier.side_effects.drain()

        assert store.products[MAN_UTD_0708.code].lookup_count == 1
        entry = store.verification_logs[-1]
        assert entry["code"] == MAN_UTD_0708.code
        assert entry["verdict"] == "highly_likely_authentic"
        assert {"id": "sponsor_era", "value": PASS} in entry["signals"]

    @pytest.mark.asyncio
    async def test_no_increment_without_match(self, store, verifier):
        await verifier.verify_product_code("IS7462")
        await verifier.side_effects.drain()
        assert all(p.lookup_count == 0 for p in store.products.values())
        assert len(store.verification_logs) == 1


# ============================================================
# BATCH
# ============================================================

class TestBatch:

    @pytest.mark.asyncio
    async def test_invalid_entries_do_not_fail_batch(self, verifier):
        batch = await verifier.verify_batch(["CZ3984-101", "", MAN_UTD_0708.code])
        results = batch["results"]
        assert [r["code"] for r in results] == ["CZ3984-101", "", MAN_UTD_0708.code]
        assert results[1]["result"] is None
        assert results[1]["error"]
        assert results[0]["result"].verdict == "blacklisted"
        assert batch["stats"] == {
            "total": 3,
            "valid": 2,
            "invalid": 1,
            "verdicts": {"blacklisted": 1, "highly_likely_authentic": 1},
        }

    @pytest.mark.asyncio
    async def test_batch_limit(self, store):
        verifier = Verifier(store, max_batch_size=2)
        with pytest.raises(InvalidCodeError):
            await verifier.verify_batch(["IS7462"] * 3)


# ============================================================
# VISUAL PASS
# ============================================================

class TestVisualData:

    @pytest.mark.asyncio
    async def test_colour_mismatch_lowers_score(self, verifier):
        base = await verifier.verify_product_code(RED_NIKE.code)
        result = await verifier.verify_with_visual_data(
            RED_NIKE.code,
            VisualObservation(dominant_color="blue", color_confidence=80),
        )
        signal = result.signal("color_suffix")
        assert signal.value == FAIL
        assert signal.details["visual_check"] is True
        assert result.confidence_score <= base.confidence_score
        assert len(result.signals) == len(base.signals)
        assert result.visual_check["color"]["value"] == FAIL

    @pytest.mark.asyncio
    async def test_without_observation_is_base_result(self, verifier):
        result = await verifier.verify_with_visual_data(RED_NIKE.code)
        assert result.visual_check is None


class TestAttributes:

    @pytest.mark.asyncio
    async def test_against_matched_record(self, verifier):
        validation = await verifier.cross_validate_attributes(
            "638920-613", brand="nike", kit_type="away", primary_color="crimson",
        )
        assert validation.passed is False
        assert validation.mismatches == ("Kit type mismatch: expected home, got away",)

    @pytest.mark.asyncio
    async def test_unknown_code(self, verifier):
        validation = await verifier.cross_validate_attributes("IS7462", brand="Adidas")
        assert validation.passed is False
        assert validation.confidence == 0.0

    @pytest.mark.asyncio
    async def test_invalid_code(self, verifier):
        with pytest.raises(InvalidCodeError):
            await verifier.cross_validate_attributes("not a code!")


class TestModuleLevel:

    @pytest.mark.asyncio
    async def test_convenience_functions_use_default_verifier(self, verifier, monkeypatch):
        monkeypatch.setattr(verifier_module, "_default_verifier", verifier)
        result = await verifier_module.verify_product_code(MAN_UTD_0708.code)
        assert result.matched_product == MAN_UTD_0708
        visual = await verifier_module.verify_with_visual_data(
            MAN_UTD_0708.code, VisualObservation(sponsor_hint="Aig"),
        )
        assert visual.signal("sponsor_era").details["visual_check"] is True
