"""
Signal Evaluators

Each evaluator turns a narrow slice of input into one Signal, or None
when the check does not apply (no season to date the item, no era table
for the team, a code format the check does not cover).

Evaluators are pure. Reference data (matched record, era windows) is
fetched by the orchestrator and passed in, so every function here can
be exercised without a store.

Era-consistency family: sponsor_era, technology_tier, label_position,
manufacturing_origin, manufacturer_era and color_suffix all date the
item from its season, find the reference window(s) for that year, and
compare the item's attribute against what the window says.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from kitverify.defaults import OPEN_TECHNOLOGY_BRANDS, suffix_digit_for_color
from kitverify.models import (
    BlacklistRecord,
    EraWindow,
    ProductCodeRecord,
    Signal,
    PASS,
    FAIL,
    WARNING,
    UNKNOWN,
)
from kitverify.patterns import UNKNOWN_BRAND, is_valid_format, normalize_code, patterns_for
from kitverify.scorer import weight_for

_YEAR_RE = re.compile(r"(\d{4})")
_SEASON_SPAN_RE = re.compile(r"^\s*(\d{4})\s*[/-]\s*(\d{2}|\d{4})\s*$")
_NIKE_SUFFIXED_RE = re.compile(r"\d{6}-(\d{3})")

EARLIEST_PLAUSIBLE_YEAR = 1950


# ============================================================
# HELPERS
# ============================================================

def _signal(
    signal_id: str,
    category: str,
    confidence: float,
    value: str,
    evidence: str,
    **details,
) -> Signal:
    return Signal(
        id=signal_id,
        category=category,
        weight=weight_for(signal_id),
        confidence=confidence,
        value=value,
        evidence=evidence,
        details=details,
    )


def parse_season_year(season: Optional[str]) -> Optional[int]:
    """First 4-digit year in a season string ("2007/08" -> 2007)."""
    if not season:
        return None
    match = _YEAR_RE.search(season)
    return int(match.group(1)) if match else None


def find_windows(windows: list[EraWindow], year: int) -> list[EraWindow]:
    """All windows covering the year, in table order."""
    return [w for w in windows if w.contains(year)]


def text_matches(a: str, b: str) -> bool:
    """Case-insensitive containment in either direction."""
    a, b = a.lower().strip(), b.lower().strip()
    if not a or not b:
        return False
    return a in b or b in a


def _span(window: EraWindow) -> str:
    end = window.end_year if window.end_year is not None else "present"
    return f"{window.start_year}-{end}"


# ============================================================
# CORE SIGNALS
# ============================================================

def database_match_signal(
    record: Optional[ProductCodeRecord], timed_out: bool = False,
) -> Signal:
    """
    Reference database match.

    Not found is "unknown" rather than "fail": the database is
    incomplete, so absence is not evidence against the code.
    """
    if record is None:
        evidence = (
            "Database lookup timed out; treated as not found"
            if timed_out else "Code not found in our verified database"
        )
        details = {"timed_out": True} if timed_out else {}
        return _signal(
            "database_match", "Database Match", 0.6, UNKNOWN, evidence, **details,
        )

    description = " ".join(
        part for part in (record.brand, record.team, record.season, record.kit_type)
        if part
    )
    return _signal(
        "database_match",
        "Database Match",
        1.0 if record.verified else 0.7,
        PASS,
        f"Matches {description}",
        team=record.team,
        season=record.season,
        kit_type=record.kit_type,
        verified=record.verified,
        source=record.verification_source,
    )


def blacklist_signal(record: Optional[BlacklistRecord], timed_out: bool = False) -> Signal:
    """Known-counterfeit list. Absence is never perfect proof."""
    if record is None:
        evidence = (
            "Blacklist lookup timed out; treated as not listed"
            if timed_out else "Code not found on known fake codes blacklist"
        )
        details = {"timed_out": True} if timed_out else {}
        return _signal("blacklist_check", "Blacklist Check", 0.95, PASS, evidence, **details)

    return _signal(
        "blacklist_check",
        "Blacklist Check",
        1.0,
        FAIL,
        f"BLACKLISTED: {record.reason}",
        severity=record.severity,
        legitimate_use=record.legitimate_use,
    )


def format_signal(code: str, brand: str) -> Signal:
    """Code format against the effective brand's patterns."""
    normalized = normalize_code(code)
    if not patterns_for(brand):
        return _signal(
            "format_validation",
            "Code Format",
            0.5,
            UNKNOWN,
            f'Unknown brand "{brand}" - cannot validate format',
        )

    if is_valid_format(normalized, brand):
        return _signal(
            "format_validation",
            "Code Format",
            0.95,
            PASS,
            f'Code "{normalized}" matches {brand} format pattern',
        )
    return _signal(
        "format_validation",
        "Code Format",
        0.3,
        WARNING,
        f'Code "{normalized}" does not match expected {brand} format',
    )


def brand_consistency_signal(
    detected_brand: str,
    brand_filter: Optional[str],
    matched_brand: Optional[str],
) -> Signal:
    """Caller's brand filter against the matched (or detected) brand."""
    if not brand_filter or brand_filter.lower() == "all":
        return _signal(
            "brand_consistency", "Brand Consistency", 0.8, PASS,
            "No brand filter applied",
        )

    actual = matched_brand or detected_brand
    if actual.lower() == brand_filter.lower():
        return _signal(
            "brand_consistency", "Brand Consistency", 0.95, PASS,
            f"Brand matches selected filter ({brand_filter})",
        )
    return _signal(
        "brand_consistency", "Brand Consistency", 0.4, WARNING,
        f"Brand mismatch: expected {brand_filter}, detected {actual or UNKNOWN_BRAND}",
    )


def era_plausibility_signal(
    season: Optional[str], current_year: Optional[int] = None,
) -> Optional[Signal]:
    """Is the season itself a year a shirt could come from?"""
    year = parse_season_year(season)
    if year is None:
        return None
    current_year = current_year or datetime.now(timezone.utc).year

    if year > current_year + 1:
        return _signal(
            "era_plausibility", "Era Plausibility", 0.9, FAIL,
            f"Season {season} lies in the future",
            season_year=year,
        )
    if year < EARLIEST_PLAUSIBLE_YEAR:
        return _signal(
            "era_plausibility", "Era Plausibility", 0.6, WARNING,
            f"Season {season} predates modern product codes",
            season_year=year,
        )

    span = _SEASON_SPAN_RE.match(season)
    if span:
        second = span.group(2)
        expected = (year + 1) % 100 if len(second) == 2 else year + 1
        if int(second) != expected:
            return _signal(
                "era_plausibility", "Era Plausibility", 0.6, WARNING,
                f"Season {season} does not span consecutive years",
                season_year=year,
            )

    return _signal(
        "era_plausibility", "Era Plausibility", 0.9, PASS,
        f"Season {season} is plausible",
        season_year=year,
    )


# ============================================================
# ERA-CONSISTENCY FAMILY
# ============================================================

def sponsor_era_signal(
    team: str, season: str, sponsor: str, windows: list[EraWindow],
) -> Optional[Signal]:
    """Shirt sponsor against the team's sponsor for the season."""
    year = parse_season_year(season)
    if year is None or not sponsor:
        return None
    current = find_windows(windows, year)
    if not current:
        return None

    expected = current[0].value
    if text_matches(sponsor, expected):
        return _signal(
            "sponsor_era", "Sponsor Era Check", 0.95, PASS,
            f"Sponsor {sponsor} matches {team}'s sponsor for {year}",
            expected_sponsor=expected, season_year=year,
        )
    return _signal(
        "sponsor_era", "Sponsor Era Check", 1.0, FAIL,
        f"SPONSOR MISMATCH: {team} had {expected} in {year}, not {sponsor}. "
        f"Possible fake!",
        expected_sponsor=expected, season_year=year,
    )


def technology_tier_signal(
    brand: str,
    season: str,
    technology: str,
    tier: Optional[str],
    windows: list[EraWindow],
    open_brands: frozenset = OPEN_TECHNOLOGY_BRANDS,
) -> Optional[Signal]:
    """
    Fabric technology against the brand's technology eras.

    A technology missing from the table gives no signal, except on
    brands in ``open_brands``, where it reads as consistent (0.9).
    """
    year = parse_season_year(season)
    if year is None or not technology:
        return None

    known = [w for w in windows if text_matches(technology, w.value)]
    if not known:
        if (brand or "").strip().lower() in open_brands:
            return _signal(
                "technology_tier", "Technology Tier Check", 0.9, PASS,
                f"{technology} technology consistent with {brand} standards",
                season_year=year,
            )
        return None

    for window in known:
        if window.tier and (tier or "").lower() != window.tier.lower():
            return _signal(
                "technology_tier", "Technology Tier Check", 0.9, WARNING,
                f"{window.value} technology is only used on {window.tier} tier shirts, "
                f"not {tier or 'replica'}",
                required_tier=window.tier,
            )

    if any(w.contains(year) for w in known):
        return _signal(
            "technology_tier", "Technology Tier Check", 0.95, PASS,
            f"{technology} technology matches {brand} {year} era",
            season_year=year,
        )

    window = known[0]
    expected = [w.value for w in find_windows(windows, year)]
    typical = f" A {year} kit would typically have {'/'.join(expected)}." if expected else ""
    return _signal(
        "technology_tier", "Technology Tier Check", 0.85, window.mismatch,
        f"TECH MISMATCH: {brand} used {window.value} in {_span(window)}.{typical}",
        season_year=year, expected_technology=expected,
    )


def label_position_signal(
    brand: str, season: str, label_position: str, windows: list[EraWindow],
) -> Optional[Signal]:
    """Where the product label is sewn, against the brand's era."""
    year = parse_season_year(season)
    if year is None or not label_position:
        return None
    current = find_windows(windows, year)
    if not current:
        return None

    expected = current[0]
    if label_position.lower().strip() == expected.value.lower():
        return _signal(
            "label_position", "Label Position Era", 0.9, PASS,
            f"Label position {label_position} matches {brand} {year} manufacturing standard",
            expected_position=expected.value,
        )
    return _signal(
        "label_position", "Label Position Era", 0.8, expected.mismatch,
        f"Label position mismatch: {year} {brand} kits typically have "
        f"{expected.value}, not {label_position}",
        expected_position=expected.value,
    )


def manufacturing_origin_signal(
    brand: str, season: str, country: str, windows: list[EraWindow],
) -> Optional[Signal]:
    """Country of manufacture against the brand's sourcing eras."""
    year = parse_season_year(season)
    if year is None or not country or not windows:
        return None

    expected = find_windows(windows, year)
    if not expected:
        return _signal(
            "manufacturing_origin", "Manufacturing Origin", 0.5, UNKNOWN,
            f"No manufacturing data for {brand} {year}",
        )

    normalized = country.lower().strip()
    expected_names = [w.value for w in expected]
    if any(w.value.lower() in normalized for w in expected):
        return _signal(
            "manufacturing_origin", "Manufacturing Origin", 0.9, PASS,
            f"{country} is a valid manufacturing origin for {brand} {year}",
            expected_origins=expected_names,
        )
    return _signal(
        "manufacturing_origin", "Manufacturing Origin", 0.75, WARNING,
        f"{brand} {year} kits were typically made in {', '.join(expected_names)}, "
        f"not {country}",
        expected_origins=expected_names,
    )


def manufacturer_era_signal(
    team: str, season: str, brand: str, windows: list[EraWindow],
) -> Optional[Signal]:
    """Kit manufacturer against the team's manufacturer for the season."""
    year = parse_season_year(season)
    if year is None or not windows:
        return None

    current = find_windows(windows, year)
    if not current:
        return _signal(
            "manufacturer_era", "Historical Validation", 0.7, WARNING,
            f"No manufacturer era data found for {team} in {year}",
        )

    expected = current[0].value
    if brand.lower() == expected.lower():
        return _signal(
            "manufacturer_era", "Historical Validation", 0.95, PASS,
            f"{brand} was the official manufacturer for {team} in {year}",
            expected_manufacturer=expected,
        )
    return _signal(
        "manufacturer_era", "Historical Validation", 1.0, FAIL,
        f"HISTORICAL IMPOSSIBILITY: {team} was supplied by {expected} in {year}, "
        f"not {brand}.",
        expected_manufacturer=expected,
    )


def color_suffix_signal(
    code: str,
    expected_digit: Optional[int],
    primary_color: Optional[str] = None,
) -> Optional[Signal]:
    """
    Nike legacy colour suffix (638920-013: suffix 013, digit 0 = black).

    The expected digit comes from the record; without one it is derived
    from the record's primary colour.
    """
    match = _NIKE_SUFFIXED_RE.fullmatch(normalize_code(code))
    if not match:
        return None
    if expected_digit is None and primary_color:
        expected_digit = suffix_digit_for_color(primary_color)
    if expected_digit is None:
        return None

    suffix = match.group(1)
    actual = int(suffix[0])
    color_label = primary_color or "this kit colour"
    if actual != expected_digit:
        return _signal(
            "color_suffix", "Color Suffix Validation", 0.95, FAIL,
            f"COLOR CODE MISMATCH: Suffix {suffix} starts with {actual} but "
            f"{expected_digit} is expected for {color_label}. Possible code manipulation!",
            suffix=suffix, expected_digit=expected_digit,
        )
    return _signal(
        "color_suffix", "Color Suffix Validation", 0.95, PASS,
        f"Color suffix {suffix} verified: digit {actual} matches {color_label}",
        suffix=suffix, expected_digit=expected_digit,
    )
