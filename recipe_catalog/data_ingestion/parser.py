from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, DivisionByZero, InvalidOperation

_QUANTITY = r"\d+(?:\s+\d+/\d+|\.\d+|/\d+)?"

# Tried in order: quantity + unit words + name, quantity + name, name only
_WITH_UNIT = re.compile(rf"^({_QUANTITY})\s+([a-zA-Z]+(?:\s+[a-zA-Z]+)*?)\s+(.+)$")
_WITHOUT_UNIT = re.compile(rf"^({_QUANTITY})\s+(.+)$")

_PARENTHETICAL = re.compile(r"\([^)]*\)")
_NON_LETTERS = re.compile(r"[^a-z]")

DESCRIPTORS: frozenset[str] = frozenset(
    _NON_LETTERS.sub("", word)
    for word in """
    large medium small extra fresh frozen dried ground chopped
    diced minced sliced crushed whole shredded grated finely
    coarsely roughly thinly thickly lean boneless skinless
    unsalted salted sweetened unsweetened packed unpacked
    active dry instant quick-cooking long-grain short-grain
    all-purpose bread whole wheat white brown raw cooked
    softened melted cold warm room-temperature
    """.split()
)

_THOUSANDTH = Decimal("0.001")


@dataclass(frozen=True)
class ParsedIngredient:
    name: str
    quantity: Decimal | None = None
    unit: str | None = None


def normalize_name(name: str) -> str:
    """Canonical storage / lookup form of an ingredient name."""
    return name.strip().lower()


def parse_quantity(token: str | None) -> Decimal | None:
    """
    Convert a quantity token to a Decimal.

    Handles integers, decimals, simple fractions ("1/2") and mixed numbers
    ("1 1/2"). Anything unparseable or not strictly positive yields ``None``.
    """
    if not token:
        return None
    parts = token.split()
    try:
        if len(parts) == 2 and "/" in parts[1]:
            numerator, denominator = parts[1].split("/")
            value = Decimal(parts[0]) + Decimal(numerator) / Decimal(denominator)
        elif len(parts) == 1 and "/" in parts[0]:
            numerator, denominator = parts[0].split("/")
            value = Decimal(numerator) / Decimal(denominator)
        elif len(parts) == 1:
            value = Decimal(parts[0])
        else:
            return None
        value = value.quantize(_THOUSANDTH)
    except (InvalidOperation, DivisionByZero, ValueError):
        return None
    return value if value > 0 else None


def format_quantity(quantity: Decimal | None) -> str:
    if quantity is None:
        return ""
    return f"{quantity.normalize():f}"


def clean_ingredient_name(name: str) -> str:
    # "large eggs" -> "eggs", "all-purpose flour, sifted" -> "flour"
    name = _PARENTHETICAL.sub("", name)
    name = name.split(",")[0].strip()

    words = name.split()
    if len(words) > 1:
        kept = [w for w in words if _NON_LETTERS.sub("", w.lower()) not in DESCRIPTORS]
        name = " ".join(kept or [words[-1]])

    return name.strip()


def parse_ingredient_line(text: str) -> ParsedIngredient:
    """Split a freeform ingredient line into name, quantity and unit."""
    line = text.strip()
    quantity_token: str | None = None
    unit: str | None = None

    match = _WITH_UNIT.match(line)
    if match:
        quantity_token, unit, name = (g.strip() for g in match.groups())
    else:
        match = _WITHOUT_UNIT.match(line)
        if match:
            quantity_token, name = (g.strip() for g in match.groups())
        else:
            name = line

    cleaned = clean_ingredient_name(name) or name
    return ParsedIngredient(
        name=normalize_name(cleaned),
        quantity=parse_quantity(quantity_token),
        unit=unit,
    )
