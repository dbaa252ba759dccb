from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from .models import MealType


class MealEntrySchema(BaseModel):
    entryId: int
    mealDate: date
    mealType: str
    recipeId: Optional[int] = None
    recipeName: Optional[str] = None
    customMealName: Optional[str] = None
    notes: Optional[str] = None


class MealPlanResponse(BaseModel):
    householdId: int
    mealPlanId: int
    weekStartDate: date
    entries: List[MealEntrySchema] = []


class AddMealRequest(BaseModel):
    mealDate: date
    mealType: str = Field(default=MealType.DINNER)
    recipeId: Optional[int] = None
    customMealName: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None


class AddMealResponse(BaseModel):
    mealPlanId: int
    entry: MealEntrySchema


class ShoppingListItemSchema(BaseModel):
    itemId: int
    name: str
    quantity: Optional[Decimal] = None
    unit: Optional[str] = None
    category: str
    isChecked: bool = False
    checkedAt: Optional[datetime] = None
    isManuallyAdded: bool = False
    quantityDelta: Optional[Decimal] = None
    sourceRecipes: Optional[str] = None
    originalUnits: Optional[str] = None
    recipeIngredientIds: Optional[str] = None
    sortOrder: int = 0
    version: int


class ShoppingListSchema(BaseModel):
    householdId: int
    shoppingListId: int
    name: str
    mealPlanId: Optional[int] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    isArchived: bool = False
    isFavorite: bool = False
    items: List[ShoppingListItemSchema] = []


class GenerateShoppingListRequest(BaseModel):
    mealPlanId: int
    name: str = Field(min_length=1, max_length=200)
    startDate: Optional[date] = None
    endDate: Optional[date] = None

    @model_validator(mode="after")
    def _check_range(self) -> "GenerateShoppingListRequest":
        if self.startDate and self.endDate and self.startDate > self.endDate:
            raise ValueError("startDate must not be after endDate")
        return self


class AddItemRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    quantity: Optional[Decimal] = Field(default=None, ge=0)
    unit: Optional[str] = Field(default=None, max_length=50)
    category: str = Field(default="Pantry", max_length=50)


class UpdateItemRequest(BaseModel):
    """Full desired state of an item plus the version the client last saw."""

    name: str = Field(min_length=1, max_length=200)
    quantity: Optional[Decimal] = Field(default=None, ge=0)
    unit: Optional[str] = Field(default=None, max_length=50)
    category: str = Field(default="Pantry", max_length=50)
    isChecked: bool = False
    version: int = Field(ge=1)


class UpdateItemResponse(BaseModel):
    success: bool
    wasConflict: bool
    conflictMessage: Optional[str] = None
    item: Optional[ShoppingListItemSchema] = None


class ClearCheckedResponse(BaseModel):
    removed: int
