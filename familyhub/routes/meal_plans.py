from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, status

from ..db import get_session
from ..errors import FamilyHubError
from ..models import MealPlanEntry
from ..schemas import AddMealRequest, AddMealResponse, MealEntrySchema, MealPlanResponse
from ..services.meal_plans import add_meal, load_meal_plan, remove_meal
from .http_errors import to_http_exception

router = APIRouter(prefix="/households/{household_id}/meal-plans", tags=["meal-plans"])


def _entry_schema(entry: MealPlanEntry, recipe_name: Optional[str] = None) -> MealEntrySchema:
    return MealEntrySchema(
        entryId=entry.entry_id,
        mealDate=entry.meal_date,
        mealType=entry.meal_type,
        recipeId=entry.recipe_id,
        recipeName=recipe_name,
        customMealName=entry.custom_meal_name,
        notes=entry.notes,
    )


@router.get("/{meal_plan_id}", response_model=MealPlanResponse)
async def get_meal_plan(household_id: int, meal_plan_id: int):
    async with get_session() as session:
        plan = await load_meal_plan(session, household_id, meal_plan_id)
        if plan is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Meal plan not found")
        return MealPlanResponse(
            householdId=plan.household_id,
            mealPlanId=plan.meal_plan_id,
            weekStartDate=plan.week_start_date,
            entries=[
                _entry_schema(entry, entry.recipe.name if entry.recipe is not None else None)
                for entry in plan.entries
            ],
        )


@router.post("/entries", response_model=AddMealResponse, status_code=status.HTTP_201_CREATED)
async def add_meal_entry(household_id: int, payload: AddMealRequest):
    async with get_session() as session:
        try:
            entry = await add_meal(
                session,
                household_id=household_id,
                meal_date=payload.mealDate,
                meal_type=payload.mealType,
                recipe_id=payload.recipeId,
                custom_meal_name=payload.customMealName,
                notes=payload.notes,
            )
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc
        return AddMealResponse(mealPlanId=entry.meal_plan_id, entry=_entry_schema(entry))


@router.delete("/{meal_plan_id}/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_meal_entry(household_id: int, meal_plan_id: int, entry_id: int) -> None:
    async with get_session() as session:
        try:
            await remove_meal(
                session, household_id=household_id, meal_plan_id=meal_plan_id, entry_id=entry_id
            )
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc
