from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..errors import ItemNotFoundError, ShoppingListNotFoundError
from ..models import ShoppingList, ShoppingListItem
from .id_retry import execute_with_retry
from .item_concurrency import ItemUpdate

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _commit(session: AsyncSession) -> None:
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def _next_shopping_list_id(session: AsyncSession, household_id: int) -> int:
    result = await session.execute(
        select(func.max(ShoppingList.shopping_list_id)).where(ShoppingList.household_id == household_id)
    )
    return int(result.scalar_one() or 0) + 1


async def next_item_id(session: AsyncSession, household_id: int, shopping_list_id: int) -> int:
    """Next item id for a list, past every id the list has ever issued.

    Item ids are never handed out twice, so an (item id, version) pair a client read
    cannot later match a different row that happens to reuse the id.
    """
    highest = await session.execute(
        select(func.max(ShoppingListItem.item_id)).where(
            ShoppingListItem.household_id == household_id,
            ShoppingListItem.shopping_list_id == shopping_list_id,
        )
    )
    issued = await session.execute(
        select(ShoppingList.last_item_id).where(
            ShoppingList.household_id == household_id,
            ShoppingList.shopping_list_id == shopping_list_id,
        )
    )
    return max(int(highest.scalar_one() or 0), int(issued.scalar_one_or_none() or 0)) + 1


async def record_issued_item_id(
    session: AsyncSession, household_id: int, shopping_list_id: int, item_id: int
) -> None:
    # Run before the new items are added so a collision surfaces at commit.
    await session.execute(
        update(ShoppingList)
        .where(
            ShoppingList.household_id == household_id,
            ShoppingList.shopping_list_id == shopping_list_id,
            ShoppingList.last_item_id < item_id,
        )
        .values(last_item_id=item_id)
        .execution_options(synchronize_session=False)
    )


async def create_shopping_list(
    session: AsyncSession,
    *,
    household_id: int,
    name: str,
    meal_plan_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> ShoppingList:
    async def _attempt(attempt: int) -> ShoppingList:
        shopping_list = ShoppingList(
            household_id=household_id,
            shopping_list_id=await _next_shopping_list_id(session, household_id),
            name=name,
            meal_plan_id=meal_plan_id,
            start_date=start_date,
            end_date=end_date,
            is_archived=False,
            is_favorite=False,
        )
        session.add(shopping_list)
        await _commit(session)
        return shopping_list

    shopping_list = await execute_with_retry(_attempt, entity_name="ShoppingList")
    logger.info(
        "Created shopping list %s for household %s meal_plan=%s",
        shopping_list.shopping_list_id,
        household_id,
        meal_plan_id,
    )
    return shopping_list


async def get_shopping_list(
    session: AsyncSession, household_id: int, shopping_list_id: int
) -> Optional[ShoppingList]:
    """Fetch a list with its items, scoped to one household."""
    result = await session.execute(
        select(ShoppingList)
        .where(
            ShoppingList.household_id == household_id,
            ShoppingList.shopping_list_id == shopping_list_id,
        )
        .options(selectinload(ShoppingList.items))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def require_shopping_list(
    session: AsyncSession, household_id: int, shopping_list_id: int
) -> ShoppingList:
    shopping_list = await get_shopping_list(session, household_id, shopping_list_id)
    if shopping_list is None:
        raise ShoppingListNotFoundError(household_id, shopping_list_id)
    return shopping_list


async def get_active_shopping_lists(session: AsyncSession, household_id: int) -> List[ShoppingList]:
    result = await session.execute(
        select(ShoppingList)
        .where(ShoppingList.household_id == household_id, ShoppingList.is_archived.is_(False))
        .order_by(ShoppingList.created_at.desc(), ShoppingList.shopping_list_id.desc())
        .options(selectinload(ShoppingList.items))
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_item(
    session: AsyncSession, household_id: int, shopping_list_id: int, item_id: int
) -> Optional[ShoppingListItem]:
    result = await session.execute(
        select(ShoppingListItem)
        .where(
            ShoppingListItem.household_id == household_id,
            ShoppingListItem.shopping_list_id == shopping_list_id,
            ShoppingListItem.item_id == item_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _require_item(
    session: AsyncSession, household_id: int, shopping_list_id: int, item_id: int
) -> ShoppingListItem:
    item = await get_item(session, household_id, shopping_list_id, item_id)
    if item is None:
        raise ItemNotFoundError(household_id, shopping_list_id, item_id)
    return item


async def add_item(
    session: AsyncSession,
    *,
    household_id: int,
    shopping_list_id: int,
    name: str,
    quantity: Optional[Decimal] = None,
    unit: Optional[str] = None,
    category: str = "Pantry",
    is_manually_added: bool = True,
    quantity_delta: Optional[Decimal] = None,
    source_recipes: Optional[str] = None,
    original_units: Optional[str] = None,
    recipe_ingredient_ids: Optional[str] = None,
    sort_order: int = 0,
) -> ShoppingListItem:
    """Append one line to a list. Items added through here default to manual."""
    exists = await session.execute(
        select(ShoppingList.shopping_list_id).where(
            ShoppingList.household_id == household_id,
            ShoppingList.shopping_list_id == shopping_list_id,
        )
    )
    if exists.scalar_one_or_none() is None:
        raise ShoppingListNotFoundError(household_id, shopping_list_id)

    async def _attempt(attempt: int) -> ShoppingListItem:
        item_id = await next_item_id(session, household_id, shopping_list_id)
        await record_issued_item_id(session, household_id, shopping_list_id, item_id)
        item = ShoppingListItem(
            household_id=household_id,
            shopping_list_id=shopping_list_id,
            item_id=item_id,
            name=name,
            quantity=quantity,
            unit=unit,
            category=category,
            is_checked=False,
            is_manually_added=is_manually_added,
            quantity_delta=quantity_delta,
            source_recipes=source_recipes,
            original_units=original_units,
            recipe_ingredient_ids=recipe_ingredient_ids,
            sort_order=sort_order,
            version=1,
        )
        session.add(item)
        await _commit(session)
        return item

    item = await execute_with_retry(_attempt, entity_name="ShoppingListItem")
    logger.info(
        "Added item %s to list %s household=%s manual=%s",
        item.item_id,
        shopping_list_id,
        household_id,
        is_manually_added,
    )
    return item


async def delete_item(
    session: AsyncSession, *, household_id: int, shopping_list_id: int, item_id: int
) -> None:
    item = await _require_item(session, household_id, shopping_list_id, item_id)
    await session.delete(item)
    await _commit(session)
    logger.info("Deleted item %s from list %s household=%s", item_id, shopping_list_id, household_id)


async def toggle_item_checked(
    session: AsyncSession, *, household_id: int, shopping_list_id: int, item_id: int
) -> ShoppingListItem:
    item = await _require_item(session, household_id, shopping_list_id, item_id)
    now = _utcnow()
    item.is_checked = not item.is_checked
    item.checked_at = now if item.is_checked else None
    item.updated_at = now
    item.version = item.version + 1
    await _commit(session)
    logger.info(
        "Toggled item %s on list %s household=%s checked=%s",
        item_id,
        shopping_list_id,
        household_id,
        item.is_checked,
    )
    return item


async def get_item_name_suggestions(
    session: AsyncSession, household_id: int, prefix: str, limit: int = 10
) -> List[str]:
    """Past item names for autocomplete, most used first.

    Searches every list in the household, archived ones included. Names starting with
    ``prefix`` (case-insensitive) come first; names that only contain it fill the
    remaining slots.
    """
    if limit <= 0:
        return []
    needle = prefix.strip().lower()
    lowered = func.lower(ShoppingListItem.name)

    async def _ranked(condition, count: int) -> List[str]:
        result = await session.execute(
            select(ShoppingListItem.name)
            .where(ShoppingListItem.household_id == household_id, condition)
            .group_by(ShoppingListItem.name)
            .order_by(func.count().desc(), ShoppingListItem.name)
            .limit(count)
        )
        return list(result.scalars().all())

    starts_with = lowered.startswith(needle, autoescape=True)
    names = await _ranked(starts_with, limit)
    if len(names) < limit:
        names += await _ranked(
            and_(lowered.contains(needle, autoescape=True), ~starts_with), limit - len(names)
        )
    return names


async def clear_checked_items(
    session: AsyncSession, *, household_id: int, shopping_list_id: int
) -> int:
    await require_shopping_list(session, household_id, shopping_list_id)
    result = await session.execute(
        delete(ShoppingListItem)
        .where(
            ShoppingListItem.household_id == household_id,
            ShoppingListItem.shopping_list_id == shopping_list_id,
            ShoppingListItem.is_checked.is_(True),
        )
        .execution_options(synchronize_session=False)
    )
    await _commit(session)
    removed = result.rowcount or 0
    logger.info(
        "Cleared %s checked items from list %s household=%s", removed, shopping_list_id, household_id
    )
    return removed


async def archive_shopping_list(
    session: AsyncSession, *, household_id: int, shopping_list_id: int
) -> ShoppingList:
    shopping_list = await require_shopping_list(session, household_id, shopping_list_id)
    shopping_list.is_archived = True
    await _commit(session)
    logger.info("Archived shopping list %s household=%s", shopping_list_id, household_id)
    return shopping_list


async def rename_shopping_list(
    session: AsyncSession, *, household_id: int, shopping_list_id: int, name: str
) -> ShoppingList:
    shopping_list = await require_shopping_list(session, household_id, shopping_list_id)
    shopping_list.name = name
    await _commit(session)
    return shopping_list


async def toggle_favorite(
    session: AsyncSession, *, household_id: int, shopping_list_id: int
) -> ShoppingList:
    shopping_list = await require_shopping_list(session, household_id, shopping_list_id)
    shopping_list.is_favorite = not shopping_list.is_favorite
    await _commit(session)
    return shopping_list


def apply_quantity_edit(item: ShoppingListItem, new_quantity: Optional[Decimal]) -> Optional[Decimal]:
    """Return the ``quantity_delta`` to store when a user changes ``item``'s quantity.

    Only generated items track a delta; it accumulates the user's adjustments on top
    of the consolidated amount so the next regeneration can reapply them. Manual
    items keep whatever they had.
    """
    if item.is_manually_added or new_quantity == item.quantity:
        return item.quantity_delta
    old_quantity = item.quantity if item.quantity is not None else Decimal("0")
    target = new_quantity if new_quantity is not None else Decimal("0")
    previous_delta = item.quantity_delta if item.quantity_delta is not None else Decimal("0")
    return previous_delta + (target - old_quantity)


class SqlItemVersionStore:
    """Compare-and-swap over ``shopping_list_items.version``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_item(
        self, household_id: int, shopping_list_id: int, item_id: int
    ) -> Optional[ShoppingListItem]:
        return await get_item(self._session, household_id, shopping_list_id, item_id)

    async def compare_and_swap(self, item_update: ItemUpdate) -> bool:
        stmt = (
            update(ShoppingListItem)
            .where(
                ShoppingListItem.household_id == item_update.household_id,
                ShoppingListItem.shopping_list_id == item_update.shopping_list_id,
                ShoppingListItem.item_id == item_update.item_id,
                ShoppingListItem.version == item_update.version,
            )
            .values(
                name=item_update.name,
                quantity=item_update.quantity,
                unit=item_update.unit,
                category=item_update.category,
                is_checked=item_update.is_checked,
                checked_at=item_update.checked_at,
                quantity_delta=item_update.quantity_delta,
                updated_at=_utcnow(),
                version=ShoppingListItem.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await _commit(self._session)
        return result.rowcount == 1
