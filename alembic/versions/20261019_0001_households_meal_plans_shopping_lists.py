"""Households, recipes, meal plans and shopping lists.

Revision ID: 5b8f2a41c0d7
Revises:
Create Date: 2026-10-19 09:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5b8f2a41c0d7"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "households",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )

    op.create_table(
        "recipes",
        sa.Column("household_id", sa.Integer(), sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipe_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("servings", sa.Integer(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("household_id", "recipe_id"),
    )

    op.create_table(
        "recipe_ingredients",
        sa.Column("household_id", sa.Integer(), nullable=False),
        sa.Column("recipe_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("ingredient_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 3), nullable=True),
        sa.Column("unit", sa.String(length=50), nullable=True),
        sa.Column("category", sa.String(length=50), nullable=False, server_default="Pantry"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("household_id", "recipe_id", "ingredient_id"),
        sa.ForeignKeyConstraint(
            ["household_id", "recipe_id"],
            ["recipes.household_id", "recipes.recipe_id"],
            ondelete="CASCADE",
        ),
    )

    op.create_table(
        "meal_plans",
        sa.Column("household_id", sa.Integer(), sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("meal_plan_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("week_start_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("household_id", "meal_plan_id"),
        sa.UniqueConstraint("household_id", "week_start_date", name="uq_meal_plans_household_week"),
    )

    op.create_table(
        "meal_plan_entries",
        sa.Column("household_id", sa.Integer(), nullable=False),
        sa.Column("meal_plan_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("entry_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("meal_type", sa.String(length=16), nullable=False, server_default="Dinner"),
        sa.Column("recipe_id", sa.Integer(), nullable=True),
        sa.Column("custom_meal_name", sa.String(length=200), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("household_id", "meal_plan_id", "entry_id"),
        sa.ForeignKeyConstraint(
            ["household_id", "meal_plan_id"],
            ["meal_plans.household_id", "meal_plans.meal_plan_id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["household_id", "recipe_id"],
            ["recipes.household_id", "recipes.recipe_id"],
        ),
    )
    op.create_index(
        "ix_meal_plan_entries_plan_date",
        "meal_plan_entries",
        ["household_id", "meal_plan_id", "date"],
    )

    op.create_table(
        "shopping_lists",
        sa.Column("household_id", sa.Integer(), sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shopping_list_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("meal_plan_id", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_item_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("household_id", "shopping_list_id"),
    )

    op.create_table(
        "shopping_list_items",
        sa.Column("household_id", sa.Integer(), nullable=False),
        sa.Column("shopping_list_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("item_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=True),
        sa.Column("unit", sa.String(length=50), nullable=True),
        sa.Column("category", sa.String(length=50), nullable=False, server_default="Pantry"),
        sa.Column("is_checked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_manually_added", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("quantity_delta", sa.Numeric(12, 4), nullable=True),
        sa.Column("source_recipes", sa.String(length=500), nullable=True),
        sa.Column("original_units", sa.String(length=200), nullable=True),
        sa.Column("recipe_ingredient_ids", sa.String(length=500), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("household_id", "shopping_list_id", "item_id"),
        sa.ForeignKeyConstraint(
            ["household_id", "shopping_list_id"],
            ["shopping_lists.household_id", "shopping_lists.shopping_list_id"],
            ondelete="CASCADE",
        ),
    )


def downgrade() -> None:
    op.drop_table("shopping_list_items")
    op.drop_table("shopping_lists")
    op.drop_index("ix_meal_plan_entries_plan_date", table_name="meal_plan_entries")
    op.drop_table("meal_plan_entries")
    op.drop_table("meal_plans")
    op.drop_table("recipe_ingredients")
    op.drop_table("recipes")
    op.drop_table("households")
