"""Typed failures raised by the shopping-list and meal-plan services."""

from __future__ import annotations


class FamilyHubError(Exception):
    """Base class for domain failures surfaced to callers."""


class UnknownUnitError(FamilyHubError, ValueError):
    def __init__(self, unit: str) -> None:
        self.unit = unit
        super().__init__(f"Unknown unit '{unit}'")


class IncompatibleUnitFamilyError(FamilyHubError, ValueError):
    def __init__(self, from_unit: str, to_unit: str, from_family: str, to_family: str) -> None:
        self.from_unit = from_unit
        self.to_unit = to_unit
        self.from_family = from_family
        self.to_family = to_family
        super().__init__(f"Cannot convert {from_unit} ({from_family}) to {to_unit} ({to_family})")


class NotFoundError(FamilyHubError):
    """Raised when a household-scoped record does not exist."""


class MealPlanNotFoundError(NotFoundError):
    def __init__(self, household_id: int, meal_plan_id: int) -> None:
        self.household_id = household_id
        self.meal_plan_id = meal_plan_id
        super().__init__(f"MealPlan {meal_plan_id} not found for household {household_id}")


class MealEntryNotFoundError(NotFoundError):
    def __init__(self, household_id: int, meal_plan_id: int, entry_id: int) -> None:
        self.household_id = household_id
        self.meal_plan_id = meal_plan_id
        self.entry_id = entry_id
        super().__init__(
            f"Meal entry {entry_id} not found in plan {meal_plan_id} for household {household_id}"
        )


class ShoppingListNotFoundError(NotFoundError):
    def __init__(self, household_id: int, shopping_list_id: int) -> None:
        self.household_id = household_id
        self.shopping_list_id = shopping_list_id
        super().__init__(f"ShoppingList {shopping_list_id} not found for household {household_id}")


class ItemNotFoundError(NotFoundError):
    def __init__(self, household_id: int, shopping_list_id: int, item_id: int) -> None:
        self.household_id = household_id
        self.shopping_list_id = shopping_list_id
        self.item_id = item_id
        super().__init__(
            f"Item {item_id} not found in ShoppingList {shopping_list_id} for household {household_id}"
        )


class NotLinkedToMealPlanError(FamilyHubError):
    def __init__(self, household_id: int, shopping_list_id: int) -> None:
        self.household_id = household_id
        self.shopping_list_id = shopping_list_id
        super().__init__(f"ShoppingList {shopping_list_id} is not linked to a meal plan")


class InvalidMealEntryError(FamilyHubError, ValueError):
    """A meal entry needs exactly one of a recipe or a custom meal name."""


class IdGenerationExhaustedError(FamilyHubError):
    """Unique-constraint collisions persisted through every retry.

    The last underlying database error is chained as ``__cause__``.
    """

    def __init__(self, entity_name: str, attempts: int) -> None:
        self.entity_name = entity_name
        self.attempts = attempts
        super().__init__(
            f"Failed to generate unique ID for {entity_name} after {attempts} attempts. "
            "This may indicate high concurrent write activity."
        )


class RegenerationInProgressError(FamilyHubError):
    def __init__(self, household_id: int, shopping_list_id: int) -> None:
        self.household_id = household_id
        self.shopping_list_id = shopping_list_id
        super().__init__(
            f"ShoppingList {shopping_list_id} for household {household_id} is already being regenerated"
        )
