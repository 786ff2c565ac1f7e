"""Unit and price normalization for products imported from Poster.

Poster quotes prices in currency subunits (kopecks) and reports weighed goods
per 100 g. The storefront stores display prices per kilogram, per litre or per
piece, so every imported price goes through :func:`normalize_price`.
"""
from __future__ import annotations

import enum
import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from common.utils import to_decimal

MONEY_QUANT = Decimal("0.01")
SUBUNITS_PER_UNIT = Decimal("100")
GRAMS_100_PER_KG = Decimal("10")

MASS_UNITS = frozenset({"kg", "g"})
DEFAULT_UNIT = "pcs"

# Single lexicon for beverage detection. Ukrainian terms first, then English
# and Latin transliterations of the same drinks. "tea" is absent: as a
# substring it matches "steak".
BEVERAGE_KEYWORDS = frozenset(
    {
        "пиво",
        "вино",
        "сидр",
        "коктейль",
        "напій",
        "лимонад",
        "квас",
        "сік",
        "вода",
        "чай",
        "кава",
        "beer",
        "wine",
        "cider",
        "cocktail",
        "drink",
        "lemonade",
        "juice",
        "water",
        "coffee",
        "pyvo",
        "pivo",
        "vyno",
        "vino",
        "sidr",
        "kokteil",
        "napii",
        "limonad",
        "kvas",
        "voda",
        "chai",
        "kava",
    }
)

# Weighed foods whose names contain a beverage keyword ("вино" in "виноград",
# "кава" in "кавун", "квас" in "квасоля", "water" in "watermelon"). They are
# blanked out of the name before keyword matching.
NON_BEVERAGE_TERMS = (
    "виноград",
    "кавун",
    "квасол",
    "watermelon",
    "vynograd",
    "vinograd",
    "kavun",
    "kvasol",
)
NON_BEVERAGE_PATTERN = re.compile("|".join(NON_BEVERAGE_TERMS))


class Classification(str, enum.Enum):
    STANDARD = "standard"
    WEIGHT_BASED = "weight_based"
    BEVERAGE_WEIGHT_UNIT = "beverage_weight_unit"


@dataclass(frozen=True)
class RetailStep:
    quantity: Decimal
    unit: str
    step: Decimal


DEFAULT_RETAIL_STEPS = {
    Classification.WEIGHT_BASED: RetailStep(quantity=Decimal("50"), unit="g", step=Decimal("1")),
    Classification.BEVERAGE_WEIGHT_UNIT: RetailStep(quantity=Decimal("0.5"), unit="l", step=Decimal("1")),
}


def is_beverage(name: str | None) -> bool:
    lowered = NON_BEVERAGE_PATTERN.sub(" ", (name or "").lower())
    return any(keyword in lowered for keyword in BEVERAGE_KEYWORDS)


def classify(name: str | None, unit: str | None) -> Classification:
    """Beverages sold by weight are never treated as weighed goods."""
    if (unit or "").strip().lower() not in MASS_UNITS:
        return Classification.STANDARD
    if is_beverage(name):
        return Classification.BEVERAGE_WEIGHT_UNIT
    return Classification.WEIGHT_BASED


def parse_remote_price(raw) -> Decimal:
    """Raw Poster price in subunits; price-tier mappings use their first tier."""
    if isinstance(raw, Mapping):
        if not raw:
            return Decimal("0")
        raw = next(iter(raw.values()))
    return to_decimal(raw)


def normalize_price(raw, classification: Classification) -> Decimal:
    price = parse_remote_price(raw) / SUBUNITS_PER_UNIT
    if classification == Classification.WEIGHT_BASED:
        price = price / GRAMS_100_PER_KG
    if price < 0:
        return Decimal("0.00")
    return price.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def default_retail_step(classification: Classification) -> RetailStep | None:
    return DEFAULT_RETAIL_STEPS.get(classification)
