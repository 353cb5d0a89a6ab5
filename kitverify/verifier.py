"""
Verifier — Product Code Verification Orchestrator

Pipeline:
  1. Validate and normalise the code (before any lookup)
  2. Detect the brand from the code format
  3. Blacklist + database lookups, concurrently, each under a timeout
  4. Core signals, then the era-consistency family when a record matched
  5. Score, verdict (blacklist overrides), recommendation
  6. Fire-and-forget: lookup counter and verification log

A lookup that times out or errors counts as "not found". Reference data
that is missing produces unknown or absent signals, never an error.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Awaitable, Iterable, Optional

from kitverify.config import settings
from kitverify.defaults import (
    LABEL_POSITION,
    MANUFACTURER,
    MANUFACTURING_ORIGIN,
    SPONSOR,
    TECHNOLOGY,
)
from kitverify.errors import InvalidCodeError, VerificationError
from kitverify.logging import get_logger
from kitverify.models import (
    ProductCodeRecord,
    Signal,
    VerificationResult,
    VisualObservation,
)
from kitverify.patterns import detect_brand, normalize_code
from kitverify.reference import EraReference, ReferenceStore, get_store
from kitverify.scorer import (
    determine_verdict,
    final_score,
    generate_recommendation,
    has_evidence,
)
from kitverify.side_effects import SideEffects
from kitverify.signals import (
    blacklist_signal,
    brand_consistency_signal,
    color_suffix_signal,
    database_match_signal,
    era_plausibility_signal,
    format_signal,
    label_position_signal,
    manufacturer_era_signal,
    manufacturing_origin_signal,
    sponsor_era_signal,
    technology_tier_signal,
)
from kitverify.visual import AttributeValidation, VisualCrossChecker, cross_validate_attributes

logger = get_logger("verifier")

MAX_CODE_LENGTH = 32
_CODE_CHARS = re.compile(r"[A-Z0-9-]+")


def validate_code(code: Any) -> str:
    """Return the normalised code or raise InvalidCodeError."""
    if not isinstance(code, str):
        raise InvalidCodeError("Product code must be a string")
    normalized = normalize_code(code)
    if not normalized:
        raise InvalidCodeError("Product code is empty")
    if len(normalized) > MAX_CODE_LENGTH:
        raise InvalidCodeError(
            f"Product code exceeds {MAX_CODE_LENGTH} characters"
        )
    if not _CODE_CHARS.fullmatch(normalized):
        raise InvalidCodeError(
            "Product code may only contain letters, digits and hyphens"
        )
    return normalized


class Verifier:
    """Runs the signal pipeline against one reference store."""

    def __init__(
        self,
        store: ReferenceStore,
        side_effects: Optional[SideEffects] = None,
        lookup_timeout: Optional[float] = None,
        era_reference: Optional[EraReference] = None,
        visual_checker: Optional[VisualCrossChecker] = None,
        max_batch_size: Optional[int] = None,
    ):
        self.store = store
        self.side_effects = side_effects or SideEffects()
        self.lookup_timeout = (
            settings.LOOKUP_TIMEOUT if lookup_timeout is None else lookup_timeout
        )
        self.eras = era_reference or EraReference(store, timeout=self.lookup_timeout)
        self.visual = visual_checker or VisualCrossChecker()
        self.max_batch_size = (
            settings.MAX_BATCH_SIZE if max_batch_size is None else max_batch_size
        )

    # ------------------------------------------------------------
    # Bounded lookups
    # ------------------------------------------------------------

    async def _bounded(self, lookup: str, awaitable: Awaitable, code: str) -> tuple[Any, bool]:
        """
        Await a store call under the lookup timeout.

        Returns (value, timed_out). Timeouts and store errors degrade to
        (None, ...) and are logged, never raised.
        """
        try:
            return await asyncio.wait_for(awaitable, self.lookup_timeout), False
        except asyncio.TimeoutError:
            logger.warning(
                f"{lookup} lookup timed out after {self.lookup_timeout}s",
                extra={"code": code, "lookup": lookup},
            )
            return None, True
        except Exception as e:
            logger.warning(
                f"{lookup} lookup failed: {e}",
                extra={
                    "code": code, "lookup": lookup,
                    "error": str(e), "error_type": type(e).__name__,
                },
            )
            return None, False

    # ------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------

    async def _record_signals(self, code: str, record: ProductCodeRecord) -> list[Signal]:
        """Era-consistency signals for a matched record, in fixed order."""
        team, season, brand = record.team, record.season, record.brand

        sponsors, technologies, labels, manufacturers, origins = await asyncio.gather(
            self.eras.windows(team if record.sponsor else None, SPONSOR),
            self.eras.windows(brand if record.technology else None, TECHNOLOGY),
            self.eras.windows(brand if record.label_position_era else None, LABEL_POSITION),
            self.eras.windows(team, MANUFACTURER),
            self.eras.windows(brand if record.country_of_manufacture else None, MANUFACTURING_ORIGIN),
        )

        candidates = [
            sponsor_era_signal(team, season, record.sponsor, sponsors),
            technology_tier_signal(brand, season, record.technology, record.tier, technologies),
            label_position_signal(brand, season, record.label_position_era, labels),
            color_suffix_signal(code, record.expected_suffix_digit, record.primary_color),
            manufacturer_era_signal(team, season, brand, manufacturers),
            manufacturing_origin_signal(brand, season, record.country_of_manufacture, origins),
            era_plausibility_signal(season),
        ]
        return [s for s in candidates if s is not None]

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    async def verify_product_code(
        self, code: str, brand_filter: Optional[str] = None,
    ) -> VerificationResult:
        """Verify one product code against the reference data."""
        normalized = validate_code(code)
        started = time.perf_counter()
        detected_brand = detect_brand(normalized)

        (blacklisted, blacklist_timed_out), (record, db_timed_out) = await asyncio.gather(
            self._bounded("blacklist", self.store.lookup_blacklist(normalized), normalized),
            self._bounded(
                "database",
                self.store.lookup_product_code(normalized, brand_filter),
                normalized,
            ),
        )

        signals: list[Signal] = [
            blacklist_signal(blacklisted, blacklist_timed_out),
            database_match_signal(record, db_timed_out),
            format_signal(normalized, record.brand if record else detected_brand),
            brand_consistency_signal(
                detected_brand, brand_filter, record.brand if record else None,
            ),
        ]
        if record is not None:
            signals.extend(await self._record_signals(normalized, record))

        if not signals:
            raise VerificationError(f"No signals could be produced for {normalized}")

        is_blacklisted = blacklisted is not None
        score = final_score(signals, is_blacklisted, has_match=record is not None)
        verdict = determine_verdict(score, is_blacklisted)

        result = VerificationResult(
            code=code,
            normalized_code=normalized,
            verdict=verdict,
            confidence_score=score,
            signals=tuple(signals),
            matched_product=record,
            blacklist_match=blacklisted,
            recommendation=generate_recommendation(verdict),
            timestamp=datetime.now(timezone.utc).isoformat(),
            evidence_available=has_evidence(signals),
        )

        self._schedule_side_effects(result, brand_filter)

        logger.info(
            f"Verified {normalized}: {verdict} ({score})",
            extra={
                "code": normalized,
                "brand": record.brand if record else detected_brand,
                "verdict": verdict,
                "confidence_score": score,
                "signals_count": len(signals),
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return result

    async def verify_with_visual_data(
        self,
        code: str,
        observation: Optional[VisualObservation] = None,
        brand_filter: Optional[str] = None,
    ) -> VerificationResult:
        """Base verification, then the visual cross-check when an observation is given."""
        result = await self.verify_product_code(code, brand_filter)
        if observation is None:
            return result
        return self.visual.apply(result, observation)

    async def cross_validate_attributes(
        self,
        code: str,
        brand: Optional[str] = None,
        kit_type: Optional[str] = None,
        primary_color: Optional[str] = None,
    ) -> AttributeValidation:
        """Compare claimed shirt attributes with the record for ``code``."""
        normalized = validate_code(code)
        record, _ = await self._bounded(
            "database", self.store.lookup_product_code(normalized), normalized,
        )
        validation = cross_validate_attributes(record, brand, kit_type, primary_color)
        logger.info(
            f"Attribute check {normalized}: "
            f"{'passed' if validation.passed else 'mismatch'} ({validation.confidence})",
            extra={"code": normalized, "confidence_score": validation.confidence},
        )
        return validation

    async def verify_batch(
        self, codes: Iterable[Any], brand_filter: Optional[str] = None,
    ) -> dict:
        """
        Verify several codes concurrently.

        Invalid codes get an error entry instead of failing the batch.

        Returns:
            {"results": [{"code", "result", "error"}, ...],
             "stats": {"total", "valid", "invalid", "verdicts"}}
        """
        codes = list(codes)
        if len(codes) > self.max_batch_size:
            raise InvalidCodeError(
                f"Batch of {len(codes)} codes exceeds the limit of {self.max_batch_size}"
            )

        async def _one(code: Any) -> dict:
            try:
                result = await self.verify_product_code(code, brand_filter)
            except InvalidCodeError as e:
                return {"code": code, "result": None, "error": str(e)}
            return {"code": code, "result": result, "error": None}

        entries = await asyncio.gather(*(_one(c) for c in codes))
        verdicts = Counter(e["result"].verdict for e in entries if e["result"] is not None)
        valid = sum(verdicts.values())
        stats = {
            "total": len(entries),
            "valid": valid,
            "invalid": len(entries) - valid,
            "verdicts": dict(verdicts),
        }
        logger.info(
            f"Verified batch of {len(entries)} codes",
            extra={"brand_filter": brand_filter, **stats},
        )
        return {"results": list(entries), "stats": stats}

    # ------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------

    def _schedule_side_effects(
        self, result: VerificationResult, brand_filter: Optional[str],
    ) -> None:
        code = result.normalized_code
        entry = {
            "code": code,
            "brand_filter": brand_filter,
            "verdict": result.verdict,
            "confidence_score": result.confidence_score,
            "signals": [{"id": s.id, "value": s.value} for s in result.signals],
        }
        if result.matched_product is not None:
            self.side_effects.submit(
                "increment_lookup_count", self.store.increment_lookup_count, code,
            )
        self.side_effects.submit("log_verification", self.store.log_verification, entry)


# ============================================================
# MODULE-LEVEL CONVENIENCE
# ============================================================

_default_verifier: Optional[Verifier] = None


def get_verifier() -> Verifier:
    """Lazily build the default verifier from settings."""
    global _default_verifier
    if _default_verifier is None:
        store = get_store(
            store_kind=settings.STORE,
            db_path=settings.DB_PATH,
            seed_defaults=settings.SEED_DEFAULTS,
        )
        _default_verifier = Verifier(store)
    return _default_verifier


async def verify_product_code(
    code: str, brand_filter: Optional[str] = None,
) -> VerificationResult:
    return await get_verifier().verify_product_code(code, brand_filter)


async def verify_with_visual_data(
    code: str,
    observation: Optional[VisualObservation] = None,
    brand_filter: Optional[str] = None,
) -> VerificationResult:
    return await get_verifier().verify_with_visual_data(code, observation, brand_filter)
