from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, HTTPException, Query, Request, status

from ..config import get_settings
from ..db import get_session
from ..errors import FamilyHubError, ItemNotFoundError
from ..models import ShoppingList, ShoppingListItem
from ..ratelimit import limiter
from ..schemas import (
    AddItemRequest,
    ClearCheckedResponse,
    GenerateShoppingListRequest,
    ShoppingListItemSchema,
    ShoppingListSchema,
    UpdateItemRequest,
    UpdateItemResponse,
)
from ..services.item_concurrency import ItemUpdate, update_item_with_concurrency
from ..services.shopping_list_generator import generate_from_meal_plan, regenerate_shopping_list
from ..services.shopping_lists import (
    SqlItemVersionStore,
    add_item,
    apply_quantity_edit,
    archive_shopping_list,
    clear_checked_items,
    delete_item,
    get_active_shopping_lists,
    get_item,
    get_item_name_suggestions,
    require_shopping_list,
    toggle_item_checked,
)
from .http_errors import to_http_exception

router = APIRouter(prefix="/households/{household_id}/shopping-lists", tags=["shopping-lists"])

logger = logging.getLogger(__name__)

GENERATION_LIMIT = get_settings().generation_rate_limit


def _item_schema(item: ShoppingListItem) -> ShoppingListItemSchema:
    return ShoppingListItemSchema(
        itemId=item.item_id,
        name=item.name,
        quantity=item.quantity,
        unit=item.unit,
        category=item.category,
        isChecked=item.is_checked,
        checkedAt=item.checked_at,
        isManuallyAdded=item.is_manually_added,
        quantityDelta=item.quantity_delta,
        sourceRecipes=item.source_recipes,
        originalUnits=item.original_units,
        recipeIngredientIds=item.recipe_ingredient_ids,
        sortOrder=item.sort_order,
        version=item.version,
    )


def _list_schema(shopping_list: ShoppingList) -> ShoppingListSchema:
    return ShoppingListSchema(
        householdId=shopping_list.household_id,
        shoppingListId=shopping_list.shopping_list_id,
        name=shopping_list.name,
        mealPlanId=shopping_list.meal_plan_id,
        startDate=shopping_list.start_date,
        endDate=shopping_list.end_date,
        isArchived=shopping_list.is_archived,
        isFavorite=shopping_list.is_favorite,
        items=[_item_schema(item) for item in shopping_list.items],
    )


@router.get("", response_model=List[ShoppingListSchema])
async def list_active_shopping_lists(household_id: int):
    async with get_session() as session:
        shopping_lists = await get_active_shopping_lists(session, household_id)
        return [_list_schema(shopping_list) for shopping_list in shopping_lists]


@router.post("/generate", response_model=ShoppingListSchema, status_code=status.HTTP_201_CREATED)
@limiter.limit(GENERATION_LIMIT)
async def generate_shopping_list(request: Request, household_id: int, payload: GenerateShoppingListRequest):
    async with get_session() as session:
        try:
            shopping_list = await generate_from_meal_plan(
                session,
                household_id=household_id,
                meal_plan_id=payload.mealPlanId,
                list_name=payload.name,
                start_date=payload.startDate,
                end_date=payload.endDate,
            )
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc
        return _list_schema(shopping_list)


@router.get("/suggestions", response_model=List[str])
async def item_name_suggestions(
    household_id: int,
    prefix: str = Query(default="", max_length=100),
    limit: int = Query(default=10, ge=1, le=50),
):
    async with get_session() as session:
        return await get_item_name_suggestions(session, household_id, prefix, limit)


@router.get("/{shopping_list_id}", response_model=ShoppingListSchema)
async def get_shopping_list_detail(household_id: int, shopping_list_id: int):
    async with get_session() as session:
        try:
            shopping_list = await require_shopping_list(session, household_id, shopping_list_id)
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc
        return _list_schema(shopping_list)


@router.post("/{shopping_list_id}/regenerate", response_model=ShoppingListSchema)
@limiter.limit(GENERATION_LIMIT)
async def regenerate(request: Request, household_id: int, shopping_list_id: int):
    async with get_session() as session:
        try:
            shopping_list = await regenerate_shopping_list(
                session, household_id=household_id, shopping_list_id=shopping_list_id
            )
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc
        return _list_schema(shopping_list)


@router.post("/{shopping_list_id}/archive", response_model=ShoppingListSchema)
async def archive(household_id: int, shopping_list_id: int):
    async with get_session() as session:
        try:
            shopping_list = await archive_shopping_list(
                session, household_id=household_id, shopping_list_id=shopping_list_id
            )
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc
        return _list_schema(shopping_list)


@router.post(
    "/{shopping_list_id}/items",
    response_model=ShoppingListItemSchema,
    status_code=status.HTTP_201_CREATED,
)
async def add_manual_item(household_id: int, shopping_list_id: int, payload: AddItemRequest):
    async with get_session() as session:
        try:
            item = await add_item(
                session,
                household_id=household_id,
                shopping_list_id=shopping_list_id,
                name=payload.name,
                quantity=payload.quantity,
                unit=payload.unit,
                category=payload.category,
                is_manually_added=True,
            )
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc
        return _item_schema(item)


@router.patch("/{shopping_list_id}/items/{item_id}", response_model=UpdateItemResponse)
async def update_item(household_id: int, shopping_list_id: int, item_id: int, payload: UpdateItemRequest):
    async with get_session() as session:
        item = await get_item(session, household_id, shopping_list_id, item_id)
        if item is None:
            raise to_http_exception(ItemNotFoundError(household_id, shopping_list_id, item_id))

        checked_at = None
        if payload.isChecked:
            checked_at = item.checked_at or datetime.now(timezone.utc)
        proposed = ItemUpdate(
            household_id=household_id,
            shopping_list_id=shopping_list_id,
            item_id=item_id,
            name=payload.name,
            quantity=payload.quantity,
            unit=payload.unit,
            category=payload.category,
            is_checked=payload.isChecked,
            checked_at=checked_at,
            quantity_delta=apply_quantity_edit(item, payload.quantity),
            version=payload.version,
        )
        result = await update_item_with_concurrency(SqlItemVersionStore(session), proposed)
        if not result.success:
            logger.info(
                "Item update rejected household=%s list=%s item=%s reason=%s",
                household_id,
                shopping_list_id,
                item_id,
                result.conflict_message,
            )
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.conflict_message)

        fresh = await get_item(session, household_id, shopping_list_id, item_id)
        return UpdateItemResponse(
            success=result.success,
            wasConflict=result.was_conflict,
            conflictMessage=result.conflict_message,
            item=_item_schema(fresh) if fresh is not None else None,
        )


@router.post("/{shopping_list_id}/items/{item_id}/toggle", response_model=ShoppingListItemSchema)
async def toggle_item(household_id: int, shopping_list_id: int, item_id: int):
    async with get_session() as session:
        try:
            item = await toggle_item_checked(
                session, household_id=household_id, shopping_list_id=shopping_list_id, item_id=item_id
            )
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc
        return _item_schema(item)


@router.delete("/{shopping_list_id}/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_item(household_id: int, shopping_list_id: int, item_id: int) -> None:
    async with get_session() as session:
        try:
            await delete_item(
                session, household_id=household_id, shopping_list_id=shopping_list_id, item_id=item_id
            )
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc


@router.post("/{shopping_list_id}/clear-checked", response_model=ClearCheckedResponse)
async def clear_checked(household_id: int, shopping_list_id: int):
    async with get_session() as session:
        try:
            removed = await clear_checked_items(
                session, household_id=household_id, shopping_list_id=shopping_list_id
            )
        except FamilyHubError as exc:
            raise to_http_exception(exc) from exc
        return ClearCheckedResponse(removed=removed)
