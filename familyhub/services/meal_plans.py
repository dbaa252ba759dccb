from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..errors import InvalidMealEntryError, MealEntryNotFoundError
from ..models import MealPlan, MealPlanEntry, MealType, Recipe
from .id_retry import execute_with_retry

logger = logging.getLogger(__name__)


def week_start_date(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


async def load_meal_plan(
    session: AsyncSession, household_id: int, meal_plan_id: int
) -> Optional[MealPlan]:
    """Fetch a plan with entries, recipes and ingredients, scoped to one household."""
    result = await session.execute(
        select(MealPlan)
        .where(MealPlan.household_id == household_id, MealPlan.meal_plan_id == meal_plan_id)
        .options(
            selectinload(MealPlan.entries)
            .selectinload(MealPlanEntry.recipe)
            .selectinload(Recipe.ingredients)
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _find_plan_for_week(
    session: AsyncSession, household_id: int, week_start: date
) -> Optional[MealPlan]:
    result = await session.execute(
        select(MealPlan).where(
            MealPlan.household_id == household_id,
            MealPlan.week_start_date == week_start,
        )
    )
    return result.scalar_one_or_none()


async def _next_meal_plan_id(session: AsyncSession, household_id: int) -> int:
    result = await session.execute(
        select(func.max(MealPlan.meal_plan_id)).where(MealPlan.household_id == household_id)
    )
    return int(result.scalar_one() or 0) + 1


async def _next_entry_id(session: AsyncSession, household_id: int, meal_plan_id: int) -> int:
    result = await session.execute(
        select(func.max(MealPlanEntry.entry_id)).where(
            MealPlanEntry.household_id == household_id,
            MealPlanEntry.meal_plan_id == meal_plan_id,
        )
    )
    return int(result.scalar_one() or 0) + 1


async def get_or_create_meal_plan(
    session: AsyncSession, household_id: int, week_start: date
) -> MealPlan:
    async def _attempt(attempt: int) -> MealPlan:
        existing = await _find_plan_for_week(session, household_id, week_start)
        if existing is not None:
            return existing
        plan = MealPlan(
            household_id=household_id,
            meal_plan_id=await _next_meal_plan_id(session, household_id),
            week_start_date=week_start,
        )
        session.add(plan)
        try:
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        logger.info(
            "Created meal plan %s for household %s week=%s",
            plan.meal_plan_id,
            household_id,
            week_start,
        )
        return plan

    return await execute_with_retry(_attempt, entity_name="MealPlan")


async def add_meal(
    session: AsyncSession,
    *,
    household_id: int,
    meal_date: date,
    meal_type: str = MealType.DINNER,
    recipe_id: Optional[int] = None,
    custom_meal_name: Optional[str] = None,
    notes: Optional[str] = None,
) -> MealPlanEntry:
    """Put a recipe or a custom meal on the plan for ``meal_date``.

    An existing entry for the same date and meal type is replaced in place.
    """
    custom_meal_name = (custom_meal_name or "").strip() or None
    if recipe_id is not None and custom_meal_name:
        raise InvalidMealEntryError("Cannot specify both a recipe and a custom meal name")
    if recipe_id is None and not custom_meal_name:
        raise InvalidMealEntryError("Must specify either a recipe or a custom meal name")
    if meal_type not in MealType.ALL:
        raise InvalidMealEntryError(f"Unknown meal type '{meal_type}'")

    if recipe_id is not None:
        recipe = await session.get(Recipe, (household_id, recipe_id))
        if recipe is None or recipe.is_deleted:
            raise InvalidMealEntryError(f"Recipe {recipe_id} not found for household {household_id}")

    plan = await get_or_create_meal_plan(session, household_id, week_start_date(meal_date))
    # A failed attempt rolls back and expires loaded rows; keep the key as a plain int.
    meal_plan_id = plan.meal_plan_id

    result = await session.execute(
        select(MealPlanEntry).where(
            MealPlanEntry.household_id == household_id,
            MealPlanEntry.meal_plan_id == meal_plan_id,
            MealPlanEntry.meal_date == meal_date,
            MealPlanEntry.meal_type == meal_type,
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        existing.recipe_id = recipe_id
        existing.custom_meal_name = custom_meal_name
        existing.notes = notes
        try:
            await session.commit()
        except Exception:  # pragma: no cover
            await session.rollback()
            raise
        logger.info(
            "Updated meal entry %s in plan %s for household %s",
            existing.entry_id,
            meal_plan_id,
            household_id,
        )
        return existing

    async def _attempt(attempt: int) -> MealPlanEntry:
        entry = MealPlanEntry(
            household_id=household_id,
            meal_plan_id=meal_plan_id,
            entry_id=await _next_entry_id(session, household_id, meal_plan_id),
            meal_date=meal_date,
            meal_type=meal_type,
            recipe_id=recipe_id,
            custom_meal_name=custom_meal_name,
            notes=notes,
        )
        session.add(entry)
        try:
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        return entry

    entry = await execute_with_retry(_attempt, entity_name="MealPlanEntry")
    logger.info(
        "Created meal entry %s in plan %s for household %s",
        entry.entry_id,
        meal_plan_id,
        household_id,
    )
    return entry


async def remove_meal(
    session: AsyncSession, *, household_id: int, meal_plan_id: int, entry_id: int
) -> None:
    entry = await session.get(MealPlanEntry, (household_id, meal_plan_id, entry_id))
    if entry is None:
        raise MealEntryNotFoundError(household_id, meal_plan_id, entry_id)
    await session.delete(entry)
    try:
        await session.commit()
    except Exception:  # pragma: no cover
        await session.rollback()
        raise
    logger.info(
        "Removed meal entry %s from plan %s for household %s",
        entry_id,
        meal_plan_id,
        household_id,
    )
