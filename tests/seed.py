from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from familyhub.models import Base, Household, Recipe, RecipeIngredient

# (name, quantity, unit, category)
IngredientRow = Tuple[str, Optional[str], Optional[str], str]


async def create_test_engine() -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


async def seed_household(session: AsyncSession, household_id: int, name: str = "Household") -> Household:
    household = Household(id=household_id, name=name)
    session.add(household)
    await session.commit()
    return household


async def seed_recipe(
    session: AsyncSession,
    household_id: int,
    recipe_id: int,
    name: str,
    ingredients: Iterable[IngredientRow],
    *,
    is_deleted: bool = False,
) -> Recipe:
    recipe = Recipe(household_id=household_id, recipe_id=recipe_id, name=name, is_deleted=is_deleted)
    session.add(recipe)
    for index, (ingredient_name, quantity, unit, category) in enumerate(ingredients, start=1):
        session.add(
            RecipeIngredient(
                household_id=household_id,
                recipe_id=recipe_id,
                ingredient_id=index,
                name=ingredient_name,
                quantity=Decimal(quantity) if quantity is not None else None,
                unit=unit,
                category=category,
                sort_order=index,
            )
        )
    await session.commit()
    return recipe
