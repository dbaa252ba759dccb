"""Build shopping lists from meal plans and rebuild them when the plan changes.

Generation reads a household's meal plan, consolidates every recipe ingredient in
the requested date range and writes one non-manual item per consolidated line.

Regeneration recomputes the same lines from the current plan and swaps out the
list's non-manual items in a single transaction. Items a user added by hand are
left alone, and quantity adjustments a user made to generated items (their
``quantity_delta``) are matched by normalized name and applied again on top of
the fresh totals.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import MealPlanNotFoundError, NotLinkedToMealPlanError, ShoppingListNotFoundError
from ..models import MealPlan, ShoppingList, ShoppingListItem
from .consolidation import (
    ConsolidationResult,
    IngredientRef,
    consolidate_ingredients,
    normalize_ingredient_name,
)
from .id_retry import execute_with_retry
from .meal_plans import load_meal_plan
from .regeneration_guard import BaseRegenerationGuard, get_regeneration_guard
from .shopping_lists import (
    add_item,
    create_shopping_list,
    get_shopping_list,
    next_item_id,
    record_issued_item_id,
    require_shopping_list,
)

logger = logging.getLogger(__name__)

SOURCE_RECIPES_SEPARATOR = ", "
INGREDIENT_IDS_SEPARATOR = ","

# Column widths on shopping_list_items.
_SOURCE_RECIPES_MAX = 500
_ORIGINAL_UNITS_MAX = 200
_INGREDIENT_IDS_MAX = 500


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    if not value:
        return None
    return value[:limit]


def collect_ingredient_refs(
    plan: MealPlan,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[IngredientRef]:
    """Flatten the recipe ingredients of every entry in ``[start_date, end_date]``.

    Either bound may be omitted. Entries without a recipe (custom meals) add nothing.
    """
    refs: List[IngredientRef] = []
    for entry in plan.entries:
        if start_date is not None and entry.meal_date < start_date:
            continue
        if end_date is not None and entry.meal_date > end_date:
            continue
        recipe = entry.recipe
        if entry.recipe_id is None or recipe is None:
            continue
        for ingredient in recipe.ingredients:
            refs.append(
                IngredientRef(
                    household_id=ingredient.household_id,
                    recipe_id=ingredient.recipe_id,
                    ingredient_id=ingredient.ingredient_id,
                    name=ingredient.name,
                    quantity=ingredient.quantity,
                    unit=ingredient.unit,
                    category=ingredient.category,
                    recipe_name=recipe.name,
                )
            )
    return refs


async def _consolidate_plan(
    session: AsyncSession,
    household_id: int,
    meal_plan_id: int,
    start_date: Optional[date],
    end_date: Optional[date],
) -> List[ConsolidationResult]:
    plan = await load_meal_plan(session, household_id, meal_plan_id)
    if plan is None:
        raise MealPlanNotFoundError(household_id, meal_plan_id)
    refs = collect_ingredient_refs(plan, start_date, end_date)
    return consolidate_ingredients(refs, auto_consolidate=True)


def _provenance(result: ConsolidationResult) -> Dict[str, Optional[str]]:
    return {
        "source_recipes": _clip(SOURCE_RECIPES_SEPARATOR.join(result.source_recipes), _SOURCE_RECIPES_MAX),
        "original_units": _clip(result.original_units, _ORIGINAL_UNITS_MAX),
        "recipe_ingredient_ids": _clip(
            INGREDIENT_IDS_SEPARATOR.join(result.recipe_ingredient_ids), _INGREDIENT_IDS_MAX
        ),
    }


async def generate_from_meal_plan(
    session: AsyncSession,
    *,
    household_id: int,
    meal_plan_id: int,
    list_name: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> ShoppingList:
    results = await _consolidate_plan(session, household_id, meal_plan_id, start_date, end_date)

    shopping_list = await create_shopping_list(
        session,
        household_id=household_id,
        name=list_name,
        meal_plan_id=meal_plan_id,
        start_date=start_date,
        end_date=end_date,
    )
    shopping_list_id = shopping_list.shopping_list_id

    # Items are written one by one; an interrupted run leaves a partial list.
    for result in results:
        await add_item(
            session,
            household_id=household_id,
            shopping_list_id=shopping_list_id,
            name=result.name,
            quantity=result.quantity,
            unit=result.unit,
            category=result.category,
            is_manually_added=False,
            sort_order=0,
            **_provenance(result),
        )

    logger.info(
        "Generated shopping list %s for household %s from meal plan %s items=%s",
        shopping_list_id,
        household_id,
        meal_plan_id,
        len(results),
    )
    return await require_shopping_list(session, household_id, shopping_list_id)


def _delta_lookup(items: Sequence[ShoppingListItem]) -> Dict[str, Decimal]:
    deltas: Dict[str, Decimal] = {}
    for item in items:
        if item.is_manually_added or item.quantity_delta is None:
            continue
        deltas[normalize_ingredient_name(item.name)] = item.quantity_delta
    return deltas


async def regenerate_shopping_list(
    session: AsyncSession,
    *,
    household_id: int,
    shopping_list_id: int,
    guard: Optional[BaseRegenerationGuard] = None,
) -> ShoppingList:
    """Rebuild a plan-derived list in place.

    Raises:
        ShoppingListNotFoundError: no such list in the household.
        NotLinkedToMealPlanError: the list was not generated from a meal plan.
        MealPlanNotFoundError: the linked plan is gone.
        RegenerationInProgressError: the same list is already being rebuilt.
    """
    guard = guard or get_regeneration_guard()
    async with guard.hold(household_id, shopping_list_id):
        return await _regenerate(session, household_id, shopping_list_id)


async def _regenerate(session: AsyncSession, household_id: int, shopping_list_id: int) -> ShoppingList:
    shopping_list = await get_shopping_list(session, household_id, shopping_list_id)
    if shopping_list is None:
        raise ShoppingListNotFoundError(household_id, shopping_list_id)
    if shopping_list.meal_plan_id is None:
        raise NotLinkedToMealPlanError(household_id, shopping_list_id)

    meal_plan_id = shopping_list.meal_plan_id
    start_date = shopping_list.start_date
    end_date = shopping_list.end_date
    deltas = _delta_lookup(shopping_list.items)
    manual_count = sum(1 for item in shopping_list.items if item.is_manually_added)

    results = await _consolidate_plan(session, household_id, meal_plan_id, start_date, end_date)

    async def _attempt(attempt: int) -> int:
        generated = await session.execute(
            select(ShoppingListItem).where(
                ShoppingListItem.household_id == household_id,
                ShoppingListItem.shopping_list_id == shopping_list_id,
                ShoppingListItem.is_manually_added.is_(False),
            )
        )
        for item in generated.scalars().all():
            await session.delete(item)
        await session.flush()

        item_id = await next_item_id(session, household_id, shopping_list_id)
        if results:
            await record_issued_item_id(
                session, household_id, shopping_list_id, item_id + len(results) - 1
            )
        for result in results:
            delta = deltas.get(normalize_ingredient_name(result.name))
            quantity = result.quantity + delta if delta is not None else result.quantity
            session.add(
                ShoppingListItem(
                    household_id=household_id,
                    shopping_list_id=shopping_list_id,
                    item_id=item_id,
                    name=result.name,
                    quantity=quantity,
                    unit=result.unit,
                    category=result.category,
                    is_checked=False,
                    is_manually_added=False,
                    quantity_delta=delta,
                    sort_order=0,
                    version=1,
                    **_provenance(result),
                )
            )
            item_id += 1
        try:
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        return len(results)

    created = await execute_with_retry(_attempt, entity_name="ShoppingListItem")
    logger.info(
        "Regenerated shopping list %s for household %s items=%s manual_kept=%s deltas=%s",
        shopping_list_id,
        household_id,
        created,
        manual_count,
        len(deltas),
    )
    return await require_shopping_list(session, household_id, shopping_list_id)
