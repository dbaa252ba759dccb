from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from . import units as unit_converter

# Removed wherever they appear in a lowercased name (substring match, not per word).
NAME_DESCRIPTORS: Tuple[str, ...] = ("fresh", "organic", "chopped", "diced", "minced", "sliced")

ORIGINAL_UNITS_SEPARATOR = " + "

_MULTI_SPACE = re.compile(r" {2,}")
_ZERO = Decimal("0")


@dataclass(frozen=True)
class IngredientRef:
    """A recipe ingredient as read from a meal plan; never mutated here."""

    household_id: int
    recipe_id: int
    ingredient_id: int
    name: str
    quantity: Optional[Decimal] = None
    unit: Optional[str] = None
    category: str = "Pantry"
    recipe_name: Optional[str] = None

    @property
    def ref_id(self) -> str:
        return f"{self.household_id}:{self.recipe_id}:{self.ingredient_id}"

    @property
    def has_unit(self) -> bool:
        return bool(self.unit and self.unit.strip())


@dataclass
class ConsolidationResult:
    name: str
    quantity: Decimal
    unit: str
    category: str
    source_recipes: List[str] = field(default_factory=list)
    original_units: Optional[str] = None
    recipe_ingredient_ids: List[str] = field(default_factory=list)


def normalize_ingredient_name(name: str) -> str:
    normalized = name.lower().strip()
    for descriptor in NAME_DESCRIPTORS:
        normalized = normalized.replace(descriptor, "")
    normalized = _MULTI_SPACE.sub(" ", normalized)
    return normalized.strip()


def format_quantity(quantity: Decimal) -> str:
    """Render a decimal without exponent or trailing zeros ("2.50" -> "2.5")."""
    return f"{Decimal(quantity).normalize():f}"


def consolidate_ingredients(
    ingredients: Sequence[IngredientRef], auto_consolidate: bool = True
) -> List[ConsolidationResult]:
    """Merge ingredients that name the same grocery item into shopping-list lines.

    Ingredients are grouped by normalized name and raw category. A group is summed
    into one line when its units share a common unit; otherwise (or when
    ``auto_consolidate`` is off) every member becomes its own line. A group that
    mixes members with and without a unit is never summed, since a bare count
    cannot be reconciled with a measured amount.

    Callers should treat the returned list as unordered.
    """
    groups: Dict[Tuple[str, str], List[IngredientRef]] = {}
    for ingredient in ingredients:
        key = (normalize_ingredient_name(ingredient.name), ingredient.category)
        groups.setdefault(key, []).append(ingredient)

    results: List[ConsolidationResult] = []
    for members in groups.values():
        common_unit = _common_unit_for(members)
        if common_unit is not None and auto_consolidate:
            results.append(_merge_group(members, common_unit))
        else:
            results.extend(_separate_members(members))
    return results


def _common_unit_for(members: Sequence[IngredientRef]) -> Optional[str]:
    with_unit = [member for member in members if member.has_unit]
    if with_unit and len(with_unit) != len(members):
        return None
    return unit_converter.find_common_unit([member.unit for member in members])


def _merge_group(members: Sequence[IngredientRef], common_unit: str) -> ConsolidationResult:
    total = _ZERO
    original_units: List[str] = []
    source_recipes: List[str] = []
    ref_ids: List[str] = []

    for member in members:
        if member.quantity is not None and member.has_unit:
            total += unit_converter.convert(member.quantity, member.unit, common_unit)
            original_units.append(f"{format_quantity(member.quantity)} {member.unit}")
        else:
            total += member.quantity if member.quantity is not None else _ZERO

        recipe_name = (member.recipe_name or "").strip()
        if recipe_name and recipe_name not in source_recipes:
            source_recipes.append(recipe_name)
        ref_ids.append(member.ref_id)

    first = members[0]
    return ConsolidationResult(
        name=first.name,
        quantity=total,
        unit=common_unit,
        category=first.category,
        source_recipes=source_recipes,
        original_units=ORIGINAL_UNITS_SEPARATOR.join(original_units) if len(original_units) > 1 else None,
        recipe_ingredient_ids=ref_ids,
    )


def _separate_members(members: Sequence[IngredientRef]) -> List[ConsolidationResult]:
    separated: List[ConsolidationResult] = []
    for member in members:
        recipe_name = (member.recipe_name or "").strip()
        separated.append(
            ConsolidationResult(
                name=member.name,
                quantity=member.quantity if member.quantity is not None else _ZERO,
                unit=member.unit or "",
                category=member.category,
                source_recipes=[recipe_name] if recipe_name else [],
                recipe_ingredient_ids=[member.ref_id],
            )
        )
    return separated
