"""
Default Reference Data

Era tables the engine falls back to when the reference store has no rows
for a team or brand. They are loaded into the same lookup path as store
data (see reference.EraReference), so no evaluator ever special-cases a
team or a brand by name.

Layout: kind -> subject (lowercase team or brand) -> windows.

Kinds:
  - manufacturer:          team  -> kit manufacturer
  - sponsor:               team  -> front-of-shirt sponsor
  - technology:            brand -> fabric technology
  - label_position:        brand -> where the product label is sewn
  - manufacturing_origin:  brand -> country of manufacture (windows overlap)
"""

from __future__ import annotations

from kitverify.models import EraWindow, FAIL, WARNING

MANUFACTURER = "manufacturer"
SPONSOR = "sponsor"
TECHNOLOGY = "technology"
LABEL_POSITION = "label_position"
MANUFACTURING_ORIGIN = "manufacturing_origin"

ERA_KINDS = (MANUFACTURER, SPONSOR, TECHNOLOGY, LABEL_POSITION, MANUFACTURING_ORIGIN)


DEFAULT_ERA_DATA: dict[str, dict[str, list[EraWindow]]] = {
    MANUFACTURER: {
        "manchester united": [
            EraWindow("Umbro", 1975, 2002),
            EraWindow("Nike", 2002, 2015),
            EraWindow("Adidas", 2015, None),
        ],
    },
    SPONSOR: {
        "manchester united": [
            EraWindow("Sharp", 1982, 2000),
            EraWindow("Vodafone", 2000, 2006),
            EraWindow("AIG", 2006, 2010),
            EraWindow("Aon", 2010, 2014),
            EraWindow("Chevrolet", 2014, 2021),
            EraWindow("TeamViewer", 2021, 2024),
            EraWindow("Snapdragon", 2024, None),
        ],
    },
    TECHNOLOGY: {
        "adidas": [
            EraWindow("ClimaCool", 2015, 2020, FAIL),
            EraWindow("Climalite", 2015, 2020, FAIL),
            EraWindow("AEROREADY", 2020, None, FAIL),
            EraWindow("HEAT.RDY", 2020, None, FAIL, tier="authentic"),
        ],
        "nike": [
            EraWindow("Cool Motion", 2002, 2006, WARNING),
            EraWindow("Dri-FIT", 1991, None, WARNING),
        ],
    },
    LABEL_POSITION: {
        "adidas": [
            EraWindow("hip_tag", 1990, 2020, WARNING),
            EraWindow("neck_tag", 2020, None, WARNING),
        ],
    },
    MANUFACTURING_ORIGIN: {
        "nike": [
            EraWindow("china", 1990, 2010, WARNING),
            EraWindow("thailand", 2005, 2015, WARNING),
            EraWindow("vietnam", 2012, None, WARNING),
            EraWindow("indonesia", 2015, None, WARNING),
            EraWindow("cambodia", 2018, None, WARNING),
        ],
        "adidas": [
            EraWindow("china", 1990, 2012, WARNING),
            EraWindow("thailand", 2008, 2020, WARNING),
            EraWindow("indonesia", 2015, None, WARNING),
            EraWindow("vietnam", 2018, None, WARNING),
            EraWindow("cambodia", 2020, None, WARNING),
        ],
        "puma": [
            EraWindow("vietnam", 1990, None, WARNING),
            EraWindow("cambodia", 1990, None, WARNING),
            EraWindow("china", 1990, None, WARNING),
            EraWindow("turkey", 1990, None, WARNING),
        ],
    },
}

# Brands whose technology table lists only the exceptions: an unlisted
# technology on one of these is consistent rather than unknown.
OPEN_TECHNOLOGY_BRANDS = frozenset({"nike"})


# Nike legacy colour suffix: first digit of the three-digit suffix
NIKE_COLOR_SUFFIX_MAP: dict[int, tuple[str, ...]] = {
    6: ("red", "maroon", "crimson", "diablo_red"),
    0: ("black",),
    1: ("white",),
    4: ("blue", "royal_blue"),
    3: ("navy", "navy_blue", "dark_blue"),
    2: ("yellow", "gold"),
}


def suffix_digit_for_color(color: str) -> int | None:
    """First suffix digit Nike uses for a colour name, if known."""
    normalized = color.lower().strip().replace(" ", "_")
    # Longest names first so "navy_blue" is not read as "blue"
    candidates = sorted(
        ((name, digit) for digit, names in NIKE_COLOR_SUFFIX_MAP.items() for name in names),
        key=lambda item: len(item[0]),
        reverse=True,
    )
    for name, digit in candidates:
        if name in normalized:
            return digit
    return None
