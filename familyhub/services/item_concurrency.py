"""Optimistic-concurrency updates for shared shopping-list items.

Household members edit the same list at the same time. Every item row carries a
``version`` token and a write only lands if the stored version still matches the
one the writer read (a compare-and-swap supplied by an :class:`ItemVersionStore`).

When the swap loses a race the stored row is re-read and merged:

* ``is_checked`` merges with OR, so an item ticked off by anyone stays ticked off.
* ``name`` and ``quantity`` are never merged. The retry writes the caller's values
  (last writer wins), but a conflict message is returned so the caller can show a
  non-blocking notice.

A row deleted underneath the writer ends the update immediately. Conflicts are
reported through :class:`ItemUpdateResult`, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

ITEM_DELETED_MESSAGE = "item was deleted by another user"
CONCURRENT_EDIT_MESSAGE = "another family member also edited this item"
RETRIES_EXHAUSTED_MESSAGE = "could not save changes after multiple attempts"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ItemUpdate:
    """The values a caller wants stored, plus the version it read them at."""

    household_id: int
    shopping_list_id: int
    item_id: int
    name: str
    quantity: Optional[Decimal]
    unit: Optional[str]
    category: str
    is_checked: bool
    checked_at: Optional[datetime]
    quantity_delta: Optional[Decimal]
    version: int

    @classmethod
    def from_item(cls, item) -> "ItemUpdate":
        return cls(
            household_id=item.household_id,
            shopping_list_id=item.shopping_list_id,
            item_id=item.item_id,
            name=item.name,
            quantity=item.quantity,
            unit=item.unit,
            category=item.category,
            is_checked=item.is_checked,
            checked_at=item.checked_at,
            quantity_delta=item.quantity_delta,
            version=item.version,
        )


@dataclass(frozen=True)
class ItemUpdateResult:
    success: bool
    was_conflict: bool
    conflict_message: Optional[str] = None


class StoredItem(Protocol):
    name: str
    quantity: Optional[Decimal]
    is_checked: bool
    checked_at: Optional[datetime]
    version: int


class ItemVersionStore(Protocol):
    async def get_item(
        self, household_id: int, shopping_list_id: int, item_id: int
    ) -> Optional[StoredItem]:
        ...

    async def compare_and_swap(self, update: ItemUpdate) -> bool:
        """Write ``update`` only if the stored version equals ``update.version``."""
        ...


def merge_conflict(proposed: ItemUpdate, stored: StoredItem) -> tuple[ItemUpdate, Optional[str]]:
    """Rebase ``proposed`` onto the freshly read ``stored`` row.

    Returns the update to retry with and the conflict message to surface, if any.
    """
    is_checked = proposed.is_checked or stored.is_checked
    checked_at: Optional[datetime] = None
    if is_checked:
        checked_at = proposed.checked_at or stored.checked_at or _utcnow()

    message = None
    if proposed.name != stored.name or proposed.quantity != stored.quantity:
        message = CONCURRENT_EDIT_MESSAGE

    rebased = replace(
        proposed,
        is_checked=is_checked,
        checked_at=checked_at,
        version=stored.version,
    )
    return rebased, message


async def update_item_with_concurrency(
    store: ItemVersionStore,
    update: ItemUpdate,
    *,
    max_attempts: int = MAX_ATTEMPTS,
) -> ItemUpdateResult:
    was_conflict = False
    conflict_message: Optional[str] = None
    pending = update

    for attempt in range(1, max_attempts + 1):
        if await store.compare_and_swap(pending):
            if was_conflict:
                logger.info(
                    "Resolved concurrent edit on item %s list=%s household=%s attempts=%s",
                    pending.item_id,
                    pending.shopping_list_id,
                    pending.household_id,
                    attempt,
                )
            return ItemUpdateResult(True, was_conflict, conflict_message)

        was_conflict = True
        stored = await store.get_item(pending.household_id, pending.shopping_list_id, pending.item_id)
        if stored is None:
            logger.warning(
                "Item %s list=%s household=%s deleted during update",
                pending.item_id,
                pending.shopping_list_id,
                pending.household_id,
            )
            return ItemUpdateResult(False, True, ITEM_DELETED_MESSAGE)

        pending, message = merge_conflict(pending, stored)
        conflict_message = message or conflict_message

    logger.warning(
        "Giving up on item %s list=%s household=%s after %s attempts",
        pending.item_id,
        pending.shopping_list_id,
        pending.household_id,
        max_attempts,
    )
    return ItemUpdateResult(False, True, RETRIES_EXHAUSTED_MESSAGE)
