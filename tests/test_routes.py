from __future__ import annotations

import unittest
from decimal import Decimal
from unittest import IsolatedAsyncioTestCase, mock

import httpx

from familyhub import db
from familyhub.main import app
from familyhub.services.regeneration_guard import RegenerationGuard
from familyhub.services.shopping_lists import create_shopping_list
from tests.seed import create_test_engine, seed_household, seed_recipe

HOUSEHOLD = "/v1/households/1"


class ShoppingListRoutesTest(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine, self.Session = await create_test_engine()
        async with self.Session() as session:
            await seed_household(session, 1)
            await seed_household(session, 2)
            await seed_recipe(
                session,
                1,
                1,
                "Tacos",
                [
                    ("Ground beef", "500", "g", "Meat"),
                    ("Tortillas", "8", "piece", "Bakery"),
                    ("Cheese", "1", "cup", "Dairy"),
                ],
            )
            await seed_recipe(session, 1, 2, "Mac and cheese", [("cheese", "2", "cups", "Dairy")])

        patchers = [
            mock.patch.object(db, "SessionLocal", self.Session),
            mock.patch(
                "familyhub.services.shopping_list_generator.get_regeneration_guard",
                return_value=RegenerationGuard(),
            ),
        ]
        for patcher in patchers:
            patcher.start()
            self.addCleanup(patcher.stop)
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    async def asyncTearDown(self):
        await self.client.aclose()
        await self.engine.dispose()

    async def _plan_week(self) -> int:
        resp = await self.client.post(
            f"{HOUSEHOLD}/meal-plans/entries", json={"mealDate": "2026-10-19", "recipeId": 1}
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        meal_plan_id = resp.json()["mealPlanId"]
        resp = await self.client.post(
            f"{HOUSEHOLD}/meal-plans/entries",
            json={"mealDate": "2026-10-20", "mealType": "Lunch", "recipeId": 2},
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        return meal_plan_id

    async def _generate(self, meal_plan_id: int) -> dict:
        resp = await self.client.post(
            f"{HOUSEHOLD}/shopping-lists/generate",
            json={"mealPlanId": meal_plan_id, "name": "Taco week"},
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    async def test_health(self):
        resp = await self.client.get("/v1/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")
        self.assertEqual(resp.headers["X-Content-Type-Options"], "nosniff")

    async def test_meal_plan_round_trip(self):
        meal_plan_id = await self._plan_week()
        resp = await self.client.get(f"{HOUSEHOLD}/meal-plans/{meal_plan_id}")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["weekStartDate"], "2026-10-19")
        self.assertEqual([entry["recipeName"] for entry in body["entries"]], ["Tacos", "Mac and cheese"])

        resp = await self.client.delete(f"{HOUSEHOLD}/meal-plans/{meal_plan_id}/entries/1")
        self.assertEqual(resp.status_code, 204)
        resp = await self.client.delete(f"{HOUSEHOLD}/meal-plans/{meal_plan_id}/entries/1")
        self.assertEqual(resp.status_code, 404)

        resp = await self.client.get(f"/v1/households/2/meal-plans/{meal_plan_id}")
        self.assertEqual(resp.status_code, 404)

    async def test_invalid_meal_entry_is_rejected(self):
        resp = await self.client.post(
            f"{HOUSEHOLD}/meal-plans/entries",
            json={"mealDate": "2026-10-19", "recipeId": 1, "customMealName": "Both"},
        )
        self.assertEqual(resp.status_code, 400)

    async def test_generate_and_edit_list(self):
        meal_plan_id = await self._plan_week()
        body = await self._generate(meal_plan_id)
        list_id = body["shoppingListId"]
        items = {item["name"]: item for item in body["items"]}
        self.assertEqual(set(items), {"Ground beef", "Tortillas", "Cheese"})
        self.assertEqual(Decimal(items["Cheese"]["quantity"]), Decimal("3"))
        self.assertEqual(items["Cheese"]["unit"], "cup")
        self.assertEqual(items["Cheese"]["sourceRecipes"], "Tacos, Mac and cheese")

        cheese = items["Cheese"]
        patch = {
            "name": "Cheese",
            "quantity": "4",
            "unit": "cup",
            "category": "Dairy",
            "isChecked": False,
            "version": cheese["version"],
        }
        resp = await self.client.patch(f"{HOUSEHOLD}/shopping-lists/{list_id}/items/{cheese['itemId']}", json=patch)
        self.assertEqual(resp.status_code, 200, resp.text)
        result = resp.json()
        self.assertTrue(result["success"])
        self.assertFalse(result["wasConflict"])
        self.assertEqual(Decimal(result["item"]["quantityDelta"]), Decimal("1"))

        # Someone else ticks it off; the stale edit still lands but stays checked.
        resp = await self.client.post(f"{HOUSEHOLD}/shopping-lists/{list_id}/items/{cheese['itemId']}/toggle")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["isChecked"])
        stale = dict(patch, name="Cheddar", version=result["item"]["version"])
        resp = await self.client.patch(f"{HOUSEHOLD}/shopping-lists/{list_id}/items/{cheese['itemId']}", json=stale)
        self.assertEqual(resp.status_code, 200, resp.text)
        result = resp.json()
        self.assertTrue(result["wasConflict"])
        self.assertEqual(result["conflictMessage"], "another family member also edited this item")
        self.assertTrue(result["item"]["isChecked"])
        self.assertEqual(result["item"]["name"], "Cheddar")

        resp = await self.client.post(
            f"{HOUSEHOLD}/shopping-lists/{list_id}/items",
            json={"name": "Napkins", "quantity": "1", "unit": "pack", "category": "Household"},
        )
        self.assertEqual(resp.status_code, 201)
        self.assertTrue(resp.json()["isManuallyAdded"])

        resp = await self.client.post(f"{HOUSEHOLD}/shopping-lists/{list_id}/clear-checked")
        self.assertEqual(resp.json(), {"removed": 1})

        resp = await self.client.post(f"{HOUSEHOLD}/shopping-lists/{list_id}/regenerate")
        self.assertEqual(resp.status_code, 200, resp.text)
        regenerated = {item["name"]: item for item in resp.json()["items"]}
        self.assertIn("Napkins", regenerated)
        self.assertEqual(Decimal(regenerated["Cheese"]["quantity"]), Decimal("3"))

    async def test_item_name_suggestions(self):
        meal_plan_id = await self._plan_week()
        await self._generate(meal_plan_id)
        resp = await self.client.get(f"{HOUSEHOLD}/shopping-lists/suggestions", params={"prefix": "tor"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), ["Tortillas"])
        resp = await self.client.get(f"{HOUSEHOLD}/shopping-lists/suggestions", params={"limit": 0})
        self.assertEqual(resp.status_code, 422)

    async def test_missing_items_and_lists(self):
        meal_plan_id = await self._plan_week()
        list_id = (await self._generate(meal_plan_id))["shoppingListId"]

        resp = await self.client.patch(
            f"{HOUSEHOLD}/shopping-lists/{list_id}/items/99",
            json={"name": "Ghost", "version": 1},
        )
        self.assertEqual(resp.status_code, 404)
        resp = await self.client.delete(f"{HOUSEHOLD}/shopping-lists/{list_id}/items/99")
        self.assertEqual(resp.status_code, 404)
        resp = await self.client.get(f"/v1/households/2/shopping-lists/{list_id}")
        self.assertEqual(resp.status_code, 404)
        resp = await self.client.post(
            f"{HOUSEHOLD}/shopping-lists/generate", json={"mealPlanId": 77, "name": "Nothing"}
        )
        self.assertEqual(resp.status_code, 404)

    async def test_regenerating_unlinked_list_conflicts(self):
        async with self.Session() as session:
            shopping_list = await create_shopping_list(session, household_id=1, name="Manual only")
        resp = await self.client.post(f"{HOUSEHOLD}/shopping-lists/{shopping_list.shopping_list_id}/regenerate")
        self.assertEqual(resp.status_code, 409)

    async def test_archived_lists_leave_the_active_view(self):
        meal_plan_id = await self._plan_week()
        list_id = (await self._generate(meal_plan_id))["shoppingListId"]
        resp = await self.client.get(f"{HOUSEHOLD}/shopping-lists")
        self.assertEqual([entry["shoppingListId"] for entry in resp.json()], [list_id])

        resp = await self.client.post(f"{HOUSEHOLD}/shopping-lists/{list_id}/archive")
        self.assertTrue(resp.json()["isArchived"])
        resp = await self.client.get(f"{HOUSEHOLD}/shopping-lists")
        self.assertEqual(resp.json(), [])


if __name__ == "__main__":
    unittest.main()
