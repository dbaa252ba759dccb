from __future__ import annotations

import unittest
from dataclasses import replace
from datetime import date
from decimal import Decimal
from unittest import IsolatedAsyncioTestCase, mock

from familyhub.errors import (
    MealPlanNotFoundError,
    NotLinkedToMealPlanError,
    RegenerationInProgressError,
    ShoppingListNotFoundError,
)
from familyhub.models import MealType
from familyhub.services.item_concurrency import (
    ITEM_DELETED_MESSAGE,
    ItemUpdate,
    update_item_with_concurrency,
)
from familyhub.services.meal_plans import add_meal, load_meal_plan
from familyhub.services.regeneration_guard import RegenerationGuard
from familyhub.services.shopping_list_generator import (
    collect_ingredient_refs,
    generate_from_meal_plan,
    regenerate_shopping_list,
)
from familyhub.services.shopping_lists import (
    SqlItemVersionStore,
    add_item,
    apply_quantity_edit,
    create_shopping_list,
    get_item,
    get_shopping_list,
    next_item_id,
)
from tests.seed import create_test_engine, seed_household, seed_recipe

MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
WEDNESDAY = date(2026, 10, 21)
THURSDAY = date(2026, 10, 22)


def by_name(shopping_list):
    return {item.name: item for item in shopping_list.items}


class ShoppingListGeneratorTest(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine, self.Session = await create_test_engine()
        self.guard = RegenerationGuard()
        async with self.Session() as session:
            await seed_household(session, 1, "Smiths")
            await seed_household(session, 2, "Joneses")
            await seed_recipe(
                session,
                1,
                1,
                "Pancakes",
                [
                    ("Milk", "1", "cup", "Dairy"),
                    ("Flour", "2", "cups", "Baking"),
                    ("Eggs", "2", "piece", "Dairy"),
                ],
            )
            await seed_recipe(
                session,
                1,
                2,
                "Garlic Pasta",
                [
                    ("Fresh Garlic", "2", "cloves", "Produce"),
                    ("milk", "0.5", "cup", "Dairy"),
                    ("Flour", "500", "g", "Baking"),
                ],
            )
            # Same recipe id and overlapping names in another household.
            await seed_recipe(
                session,
                2,
                1,
                "Pancakes",
                [("Milk", "9", "cup", "Dairy"), ("Maple syrup", "1", "cup", "Pantry")],
            )
            breakfast = await add_meal(
                session, household_id=1, meal_date=MONDAY, meal_type=MealType.BREAKFAST, recipe_id=1
            )
            self.meal_plan_id = breakfast.meal_plan_id
            await add_meal(session, household_id=1, meal_date=TUESDAY, recipe_id=2)
            await add_meal(session, household_id=1, meal_date=WEDNESDAY, custom_meal_name="Takeaway")
            other = await add_meal(session, household_id=2, meal_date=MONDAY, recipe_id=1)
            self.other_meal_plan_id = other.meal_plan_id

    async def asyncTearDown(self):
        await self.engine.dispose()

    async def test_generation_consolidates_plan(self):
        async with self.Session() as session:
            shopping_list = await generate_from_meal_plan(
                session, household_id=1, meal_plan_id=self.meal_plan_id, list_name="Week 43"
            )
            self.assertEqual(shopping_list.meal_plan_id, self.meal_plan_id)
            items = shopping_list.items
            self.assertEqual(len(items), 5)
            self.assertTrue(all(not item.is_manually_added for item in items))
            self.assertTrue(all(item.sort_order == 0 for item in items))
            self.assertEqual(len({item.item_id for item in items}), 5)

            milk = by_name(shopping_list)["Milk"]
            self.assertEqual(milk.quantity, Decimal("1.5"))
            self.assertEqual(milk.unit, "cup")
            self.assertEqual(milk.source_recipes, "Pancakes, Garlic Pasta")
            self.assertEqual(milk.original_units, "1 cup + 0.5 cup")
            self.assertEqual(milk.recipe_ingredient_ids, "1:1:1,1:2:2")

            flour = [item for item in items if item.name == "Flour"]
            self.assertEqual({(item.quantity, item.unit) for item in flour}, {(Decimal("2"), "cups"), (Decimal("500"), "g")})

    async def test_household_isolation(self):
        async with self.Session() as session:
            shopping_list = await generate_from_meal_plan(
                session, household_id=1, meal_plan_id=self.meal_plan_id, list_name="Week 43"
            )
            for item in shopping_list.items:
                for ref in item.recipe_ingredient_ids.split(","):
                    self.assertTrue(ref.startswith("1:"), ref)
            self.assertNotIn("Maple syrup", by_name(shopping_list))

            # Plan ids are per household, so the same id resolves to a different plan.
            other = await generate_from_meal_plan(
                session, household_id=2, meal_plan_id=self.other_meal_plan_id, list_name="Theirs"
            )
            self.assertEqual(by_name(other)["Milk"].quantity, Decimal("9"))
            self.assertIn("Maple syrup", by_name(other))
            for item in other.items:
                self.assertTrue(item.recipe_ingredient_ids.startswith("2:"))

            with self.assertRaises(MealPlanNotFoundError):
                await generate_from_meal_plan(session, household_id=1, meal_plan_id=99, list_name="Nope")

    async def test_date_range_filters_entries(self):
        async with self.Session() as session:
            shopping_list = await generate_from_meal_plan(
                session,
                household_id=1,
                meal_plan_id=self.meal_plan_id,
                list_name="Tuesday only",
                start_date=TUESDAY,
                end_date=TUESDAY,
            )
            self.assertEqual(shopping_list.start_date, TUESDAY)
            self.assertEqual(
                sorted(item.name for item in shopping_list.items), ["Flour", "Fresh Garlic", "milk"]
            )

            plan = await load_meal_plan(session, 1, self.meal_plan_id)
            self.assertEqual(len(collect_ingredient_refs(plan, start_date=WEDNESDAY)), 0)
            self.assertEqual(len(collect_ingredient_refs(plan, end_date=MONDAY)), 3)

    async def test_regeneration_preserves_deltas_and_manual_items(self):
        async with self.Session() as session:
            shopping_list = await generate_from_meal_plan(
                session, household_id=1, meal_plan_id=self.meal_plan_id, list_name="Week 43"
            )
            list_id = shopping_list.shopping_list_id
            milk = by_name(shopping_list)["Milk"]

            # The user bumps milk from 1.5 to 2.5 cups.
            edit = ItemUpdate.from_item(milk)
            delta = apply_quantity_edit(milk, Decimal("2.5"))
            self.assertEqual(delta, Decimal("1"))
            result = await update_item_with_concurrency(
                SqlItemVersionStore(session),
                replace(edit, quantity=Decimal("2.5"), quantity_delta=delta),
            )
            self.assertTrue(result.success)

            towels = await add_item(
                session,
                household_id=1,
                shopping_list_id=list_id,
                name="Paper towels",
                quantity=Decimal("2"),
                unit="rolls",
                category="Household",
            )
            towels_id = towels.item_id

            # The plan changes: another cup of milk on Thursday.
            await seed_recipe(session, 1, 3, "Porridge", [("Milk", "1", "cup", "Dairy")])
            await add_meal(session, household_id=1, meal_date=THURSDAY, recipe_id=3)

            regenerated = await regenerate_shopping_list(
                session, household_id=1, shopping_list_id=list_id, guard=self.guard
            )
            self.assertEqual(regenerated.shopping_list_id, list_id)
            items = by_name(regenerated)

            self.assertEqual(items["Milk"].quantity, Decimal("3.5"))
            self.assertEqual(items["Milk"].quantity_delta, Decimal("1"))
            self.assertFalse(items["Milk"].is_manually_added)
            self.assertEqual(items["Milk"].source_recipes, "Pancakes, Garlic Pasta, Porridge")

            manual = await get_item(session, 1, list_id, towels_id)
            self.assertIsNotNone(manual)
            self.assertTrue(manual.is_manually_added)
            self.assertEqual(manual.quantity, Decimal("2"))
            self.assertEqual(manual.unit, "rolls")
            self.assertEqual(manual.version, 1)
            self.assertEqual(sum(1 for item in regenerated.items if item.is_manually_added), 1)
            self.assertEqual(len(regenerated.items), 6)
            self.assertFalse(self.guard.is_held(1, list_id))

    async def test_regeneration_reapplies_stored_date_range(self):
        async with self.Session() as session:
            shopping_list = await generate_from_meal_plan(
                session,
                household_id=1,
                meal_plan_id=self.meal_plan_id,
                list_name="Monday",
                start_date=MONDAY,
                end_date=MONDAY,
            )
            regenerated = await regenerate_shopping_list(
                session, household_id=1, shopping_list_id=shopping_list.shopping_list_id, guard=self.guard
            )
            self.assertEqual(sorted(item.name for item in regenerated.items), ["Eggs", "Flour", "Milk"])

    async def test_stale_edit_after_regeneration_finds_item_gone(self):
        async with self.Session() as session:
            shopping_list = await generate_from_meal_plan(
                session, household_id=1, meal_plan_id=self.meal_plan_id, list_name="Week 43"
            )
            list_id = shopping_list.shopping_list_id
            old_ids = {item.item_id for item in shopping_list.items}
            stale = ItemUpdate.from_item(shopping_list.items[0])

            regenerated = await regenerate_shopping_list(
                session, household_id=1, shopping_list_id=list_id, guard=self.guard
            )
            self.assertTrue(old_ids.isdisjoint(item.item_id for item in regenerated.items))

            result = await update_item_with_concurrency(
                SqlItemVersionStore(session), replace(stale, is_checked=True)
            )
            self.assertFalse(result.success)
            self.assertTrue(result.was_conflict)
            self.assertEqual(result.conflict_message, ITEM_DELETED_MESSAGE)

            reloaded = await get_shopping_list(session, 1, list_id)
            self.assertFalse(any(item.is_checked for item in reloaded.items))

    async def test_regeneration_retries_whole_transaction_on_id_collision(self):
        async with self.Session() as session:
            shopping_list = await generate_from_meal_plan(
                session,
                household_id=1,
                meal_plan_id=self.meal_plan_id,
                list_name="Monday",
                start_date=MONDAY,
                end_date=MONDAY,
            )
            list_id = shopping_list.shopping_list_id
            towels = await add_item(
                session,
                household_id=1,
                shopping_list_id=list_id,
                name="Towels",
                quantity=Decimal("1"),
                category="Household",
            )
            towels_id = towels.item_id

            calls = []

            async def colliding_next_item_id(session_, household_id, shopping_list_id):
                calls.append(shopping_list_id)
                if len(calls) == 1:
                    return towels_id
                return await next_item_id(session_, household_id, shopping_list_id)

            with mock.patch(
                "familyhub.services.shopping_list_generator.next_item_id", new=colliding_next_item_id
            ), mock.patch("familyhub.services.id_retry.asyncio.sleep", new=mock.AsyncMock()):
                regenerated = await regenerate_shopping_list(
                    session, household_id=1, shopping_list_id=list_id, guard=self.guard
                )

            self.assertEqual(len(calls), 2)
            self.assertEqual(sorted(item.name for item in regenerated.items), ["Eggs", "Flour", "Milk", "Towels"])
            manual = await get_item(session, 1, list_id, towels_id)
            self.assertEqual(manual.name, "Towels")
            self.assertEqual(manual.quantity, Decimal("1"))
            self.assertTrue(manual.is_manually_added)
            self.assertEqual(manual.version, 1)

    async def test_regeneration_failures(self):
        async with self.Session() as session:
            with self.assertRaises(ShoppingListNotFoundError):
                await regenerate_shopping_list(session, household_id=1, shopping_list_id=42, guard=self.guard)

            unlinked = await create_shopping_list(session, household_id=1, name="Groceries")
            with self.assertRaises(NotLinkedToMealPlanError):
                await regenerate_shopping_list(
                    session, household_id=1, shopping_list_id=unlinked.shopping_list_id, guard=self.guard
                )

            shopping_list = await generate_from_meal_plan(
                session, household_id=1, meal_plan_id=self.meal_plan_id, list_name="Week 43"
            )
            list_id = shopping_list.shopping_list_id
            with self.assertRaises(ShoppingListNotFoundError):
                await regenerate_shopping_list(session, household_id=2, shopping_list_id=list_id + 10, guard=self.guard)

    async def test_concurrent_regeneration_is_rejected(self):
        async with self.Session() as session:
            shopping_list = await generate_from_meal_plan(
                session, household_id=1, meal_plan_id=self.meal_plan_id, list_name="Week 43"
            )
            list_id = shopping_list.shopping_list_id
            token = await self.guard.try_acquire(1, list_id)
            self.assertIsNotNone(token)
            with self.assertRaises(RegenerationInProgressError):
                await regenerate_shopping_list(session, household_id=1, shopping_list_id=list_id, guard=self.guard)
            await self.guard.release(1, list_id, token)

            regenerated = await regenerate_shopping_list(
                session, household_id=1, shopping_list_id=list_id, guard=self.guard
            )
            self.assertEqual(len(regenerated.items), 5)
            reloaded = await get_shopping_list(session, 1, list_id)
            self.assertEqual(len(reloaded.items), 5)


if __name__ == "__main__":
    unittest.main()
