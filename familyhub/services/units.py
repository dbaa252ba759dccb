"""Closed-set unit conversion for recipe quantities.

Units belong to one of three families. Volume units convert through a cup base,
weight units through a gram base. Count units ("clove", "can", ...) are listed so
they are recognised, but they never convert to each other: two count units only
match when they are the same unit.

Arithmetic is done with :class:`decimal.Decimal` and every conversion result is
rounded to 10 decimal places so repeated conversions of the same quantity stay
stable.
"""

from __future__ import annotations

from collections import Counter
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping, NamedTuple, Optional

from ..errors import IncompatibleUnitFamilyError, UnknownUnitError


class UnitFamily:
    VOLUME = "volume"
    WEIGHT = "weight"
    COUNT = "count"


class UnitDefinition(NamedTuple):
    family: str
    to_base: Decimal


_CUP = Decimal("1")
_TBSP = Decimal("0.0625")  # 1/16 cup
_TSP = Decimal("0.0208333333333333333333333333")  # 1/48 cup
_FL_OZ = Decimal("0.125")  # 1/8 cup
_ML = Decimal("0.00422675283773885889524670710")  # 1/236.588 cup
_LITRE = Decimal("4.22675283773885889524670710")  # 1000/236.588 cup

_GRAM = Decimal("1")
_KG = Decimal("1000")
_OZ = Decimal("28.3495")
_LB = Decimal("453.592")

_ONE = Decimal("1")

RESULT_QUANTUM = Decimal("1E-10")

UNIT_TABLE: Mapping[str, UnitDefinition] = MappingProxyType(
    {
        # Volume (base: cup)
        "cup": UnitDefinition(UnitFamily.VOLUME, _CUP),
        "cups": UnitDefinition(UnitFamily.VOLUME, _CUP),
        "c": UnitDefinition(UnitFamily.VOLUME, _CUP),
        "tbsp": UnitDefinition(UnitFamily.VOLUME, _TBSP),
        "tablespoon": UnitDefinition(UnitFamily.VOLUME, _TBSP),
        "tablespoons": UnitDefinition(UnitFamily.VOLUME, _TBSP),
        "tsp": UnitDefinition(UnitFamily.VOLUME, _TSP),
        "teaspoon": UnitDefinition(UnitFamily.VOLUME, _TSP),
        "teaspoons": UnitDefinition(UnitFamily.VOLUME, _TSP),
        "fl oz": UnitDefinition(UnitFamily.VOLUME, _FL_OZ),
        "fluid ounce": UnitDefinition(UnitFamily.VOLUME, _FL_OZ),
        "fluid ounces": UnitDefinition(UnitFamily.VOLUME, _FL_OZ),
        "ml": UnitDefinition(UnitFamily.VOLUME, _ML),
        "milliliter": UnitDefinition(UnitFamily.VOLUME, _ML),
        "milliliters": UnitDefinition(UnitFamily.VOLUME, _ML),
        "l": UnitDefinition(UnitFamily.VOLUME, _LITRE),
        "liter": UnitDefinition(UnitFamily.VOLUME, _LITRE),
        "liters": UnitDefinition(UnitFamily.VOLUME, _LITRE),
        # Weight (base: gram)
        "g": UnitDefinition(UnitFamily.WEIGHT, _GRAM),
        "gram": UnitDefinition(UnitFamily.WEIGHT, _GRAM),
        "grams": UnitDefinition(UnitFamily.WEIGHT, _GRAM),
        "kg": UnitDefinition(UnitFamily.WEIGHT, _KG),
        "kilogram": UnitDefinition(UnitFamily.WEIGHT, _KG),
        "kilograms": UnitDefinition(UnitFamily.WEIGHT, _KG),
        "oz": UnitDefinition(UnitFamily.WEIGHT, _OZ),
        "ounce": UnitDefinition(UnitFamily.WEIGHT, _OZ),
        "ounces": UnitDefinition(UnitFamily.WEIGHT, _OZ),
        "lb": UnitDefinition(UnitFamily.WEIGHT, _LB),
        "lbs": UnitDefinition(UnitFamily.WEIGHT, _LB),
        "pound": UnitDefinition(UnitFamily.WEIGHT, _LB),
        "pounds": UnitDefinition(UnitFamily.WEIGHT, _LB),
        # Count (identity only)
        "piece": UnitDefinition(UnitFamily.COUNT, _ONE),
        "pieces": UnitDefinition(UnitFamily.COUNT, _ONE),
        "clove": UnitDefinition(UnitFamily.COUNT, _ONE),
        "cloves": UnitDefinition(UnitFamily.COUNT, _ONE),
        "can": UnitDefinition(UnitFamily.COUNT, _ONE),
        "cans": UnitDefinition(UnitFamily.COUNT, _ONE),
        "bunch": UnitDefinition(UnitFamily.COUNT, _ONE),
    }
)


def normalize_unit(unit: str) -> str:
    return unit.strip().lower()


def _is_blank(unit: Optional[str]) -> bool:
    return unit is None or not unit.strip()


def _lookup(unit: str) -> UnitDefinition:
    definition = UNIT_TABLE.get(unit)
    if definition is None:
        raise UnknownUnitError(unit)
    return definition


def convert(quantity: Decimal, from_unit: Optional[str], to_unit: Optional[str]) -> Decimal:
    """Convert ``quantity`` between two units of the same family.

    A missing unit on either side is a no-op, as is converting a unit to itself.

    Raises:
        UnknownUnitError: either unit is not in :data:`UNIT_TABLE`.
        IncompatibleUnitFamilyError: the units are in different families, or are
            two different count units.
    """
    if _is_blank(from_unit) or _is_blank(to_unit):
        return quantity

    source = normalize_unit(from_unit)
    target = normalize_unit(to_unit)
    if source == target:
        return quantity

    source_def = _lookup(source)
    target_def = _lookup(target)
    if source_def.family != target_def.family or source_def.family == UnitFamily.COUNT:
        raise IncompatibleUnitFamilyError(source, target, source_def.family, target_def.family)

    result = Decimal(quantity) * source_def.to_base / target_def.to_base
    return result.quantize(RESULT_QUANTUM)


def can_convert(from_unit: Optional[str], to_unit: Optional[str]) -> bool:
    if _is_blank(from_unit) or _is_blank(to_unit):
        return False
    source = normalize_unit(from_unit)
    target = normalize_unit(to_unit)
    source_def = UNIT_TABLE.get(source)
    target_def = UNIT_TABLE.get(target)
    if source_def is None or target_def is None:
        return False
    if source_def.family != target_def.family:
        return False
    if source_def.family == UnitFamily.COUNT:
        return source == target
    return True


def find_common_unit(units: Iterable[Optional[str]]) -> Optional[str]:
    """Pick the unit a group of quantities can all be summed in.

    Blank entries are ignored. Returns ``None`` when nothing is left, when the units
    span more than one family, when they are different count units, or when an
    unknown unit appears next to any other unit. Otherwise the most frequent
    (normalized) unit wins, ties going to the one seen first.
    """
    normalized = [normalize_unit(unit) for unit in units if not _is_blank(unit)]
    if not normalized:
        return None

    distinct = list(dict.fromkeys(normalized))
    if len(distinct) > 1:
        if any(unit not in UNIT_TABLE for unit in distinct):
            return None
        families = {UNIT_TABLE[unit].family for unit in distinct}
        if len(families) > 1 or families == {UnitFamily.COUNT}:
            return None

    # Counter preserves insertion order, so most_common() breaks ties by first sighting.
    return Counter(normalized).most_common(1)[0][0]
