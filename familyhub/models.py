from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TimestampMixin:
    """Common created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class MealType:
    BREAKFAST = "Breakfast"
    LUNCH = "Lunch"
    DINNER = "Dinner"
    SNACK = "Snack"

    ALL = (BREAKFAST, LUNCH, DINNER, SNACK)


class Household(Base):
    __tablename__ = "households"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Recipe(Base, TimestampMixin):
    __tablename__ = "recipes"

    household_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("households.id", ondelete="CASCADE"), primary_key=True
    )
    recipe_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    servings: Mapped[Optional[int]] = mapped_column(Integer)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    ingredients: Mapped[List["RecipeIngredient"]] = relationship(
        back_populates="recipe",
        order_by="RecipeIngredient.sort_order",
        cascade="all, delete-orphan",
    )


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        ForeignKeyConstraint(
            ["household_id", "recipe_id"],
            ["recipes.household_id", "recipes.recipe_id"],
            ondelete="CASCADE",
        ),
    )

    household_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recipe_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    ingredient_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    unit: Mapped[Optional[str]] = mapped_column(String(50))
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="Pantry")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recipe: Mapped[Recipe] = relationship(back_populates="ingredients")


class MealPlan(Base, TimestampMixin):
    __tablename__ = "meal_plans"
    __table_args__ = (
        UniqueConstraint("household_id", "week_start_date", name="uq_meal_plans_household_week"),
    )

    household_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("households.id", ondelete="CASCADE"), primary_key=True
    )
    meal_plan_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)

    entries: Mapped[List["MealPlanEntry"]] = relationship(
        back_populates="meal_plan",
        order_by="MealPlanEntry.meal_date",
        cascade="all, delete-orphan",
    )


class MealPlanEntry(Base):
    __tablename__ = "meal_plan_entries"
    __table_args__ = (
        ForeignKeyConstraint(
            ["household_id", "meal_plan_id"],
            ["meal_plans.household_id", "meal_plans.meal_plan_id"],
            ondelete="CASCADE",
        ),
        ForeignKeyConstraint(
            ["household_id", "recipe_id"],
            ["recipes.household_id", "recipes.recipe_id"],
        ),
        Index("ix_meal_plan_entries_plan_date", "household_id", "meal_plan_id", "date"),
    )

    household_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    meal_plan_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    meal_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    meal_type: Mapped[str] = mapped_column(String(16), nullable=False, default=MealType.DINNER)
    recipe_id: Mapped[Optional[int]] = mapped_column(Integer)
    custom_meal_name: Mapped[Optional[str]] = mapped_column(String(200))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    meal_plan: Mapped[MealPlan] = relationship(back_populates="entries")
    # Composite FK shares household_id with the plan key, so this side never writes it.
    recipe: Mapped[Optional[Recipe]] = relationship(viewonly=True)


class ShoppingList(Base, TimestampMixin):
    __tablename__ = "shopping_lists"

    household_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("households.id", ondelete="CASCADE"), primary_key=True
    )
    shopping_list_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    meal_plan_id: Mapped[Optional[int]] = mapped_column(Integer)
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Highest item id ever issued on this list; ids are not reused after a delete.
    last_item_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    items: Mapped[List["ShoppingListItem"]] = relationship(
        back_populates="shopping_list",
        order_by="ShoppingListItem.item_id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"ShoppingList(household_id={self.household_id}, "
            f"shopping_list_id={self.shopping_list_id}, name={self.name!r})"
        )


class ShoppingListItem(Base):
    __tablename__ = "shopping_list_items"
    __table_args__ = (
        ForeignKeyConstraint(
            ["household_id", "shopping_list_id"],
            ["shopping_lists.household_id", "shopping_lists.shopping_list_id"],
            ondelete="CASCADE",
        ),
    )

    household_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shopping_list_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    item_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4))
    unit: Mapped[Optional[str]] = mapped_column(String(50))
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="Pantry")
    is_checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Consolidation provenance
    is_manually_added: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quantity_delta: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4))
    source_recipes: Mapped[Optional[str]] = mapped_column(String(500))
    original_units: Mapped[Optional[str]] = mapped_column(String(200))
    recipe_ingredient_ids: Mapped[Optional[str]] = mapped_column(String(500))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Optimistic concurrency token; bumped on every write.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    shopping_list: Mapped[ShoppingList] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return (
            f"ShoppingListItem(household_id={self.household_id}, "
            f"shopping_list_id={self.shopping_list_id}, item_id={self.item_id}, "
            f"name={self.name!r}, version={self.version})"
        )
