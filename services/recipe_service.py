"""
HealthyMeal Recipe Service
Recipe write path: recipe insert, ingredient bulk insert, audit trail and
nutrition enrichment
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import AppError
from middleware.logging import log_business_event
from models.recipe_models import Ingredient, Recipe, RecipeAudit, new_id
from models.users import utcnow
from services.nutrition_service import NutritionService

logger = structlog.get_logger()

ENRICHMENT_MODES = ("background", "sync", "disabled")


def _ingredient_rows(recipe_id: str, entries: List[Dict[str, Any]]) -> List[Ingredient]:
    return [
        Ingredient(
            id=new_id(),
            recipe_id=recipe_id,
            name=entry["name"],
            normalized_name=entry.get("normalized_name"),
            quantity=entry["quantity"],
            unit_id=entry.get("unit_id"),
            unit_text=entry.get("unit_text"),
            position=position,
        )
        for position, entry in enumerate(entries)
    ]


def _assemble(recipe: Recipe, recipe_data: Dict[str, Any], ingredients: List[Ingredient]) -> Dict[str, Any]:
    data = recipe.to_dict()
    data["recipe_data"] = recipe_data
    data["ingredients"] = [ingredient.to_dict() for ingredient in ingredients]
    return data


class RecipeService:
    """
    Coordinates the multi-step recipe write

    By default every step commits on its own and a failed ingredient insert
    is undone with a compensating delete of the recipe row. With
    ``atomic_writes`` the recipe, ingredient and audit inserts share one
    transaction and the audit insert runs in a savepoint.
    """

    def __init__(
        self,
        nutrition_service: Optional[NutritionService] = None,
        *,
        enrichment_mode: str = "background",
        atomic_writes: bool = False,
    ):
        if enrichment_mode not in ENRICHMENT_MODES:
            raise ValueError(f"enrichment_mode must be one of {ENRICHMENT_MODES}")
        self.nutrition_service = nutrition_service
        self.enrichment_mode = enrichment_mode
        self.atomic_writes = atomic_writes
        self._background_tasks: Set[asyncio.Task] = set()

    @property
    def enrichment_configured(self) -> bool:
        return self.nutrition_service is not None and self.enrichment_mode != "disabled"

    async def create_recipe(self, db: AsyncSession, owner_id: str, command: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a recipe and its ingredients

        Args:
            db: Request-scoped session
            owner_id: Internal user id resolved from the bearer token
            command: Validated payload (title, raw_text, recipe_data)

        Returns:
            Recipe fields, recipe_data as submitted and persisted ingredient rows

        Raises:
            AppError(PERSISTENCE) if the recipe or its ingredients cannot be stored
        """
        recipe_data = command["recipe_data"]
        recipe = Recipe(
            id=new_id(),
            owner_user_id=owner_id,
            title=command["title"],
            raw_text=command["raw_text"],
            recipe_data=recipe_data,
        )
        ingredients = _ingredient_rows(recipe.id, recipe_data["ingredients"])

        if self.atomic_writes:
            response = await self._write_atomic(db, recipe, ingredients, recipe_data)
        else:
            response = await self._write_compensating(db, recipe, ingredients, recipe_data)

        log_business_event("recipe_created", {"recipe_id": response["id"], "user_id": owner_id})

        response["cached_nutrition"] = await self._enrich(response["id"], owner_id, response["ingredients"])
        return response

    async def _write_compensating(
        self,
        db: AsyncSession,
        recipe: Recipe,
        ingredients: List[Ingredient],
        recipe_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        # A rollback expires loaded rows, so keep the keys as plain values
        recipe_id, owner_id = recipe.id, recipe.owner_user_id

        try:
            db.add(recipe)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to insert recipe", recipe_id=recipe_id, error=str(e))
            raise AppError.persistence(f"Failed to insert recipe: {e.__class__.__name__}")

        try:
            db.add_all(ingredients)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to insert ingredients", recipe_id=recipe_id, error=str(e))
            await self._compensate(db, recipe_id, owner_id, e)
            raise AppError.persistence(
                f"Failed to insert ingredients: {e.__class__.__name__}",
                details={"recipe_id": recipe_id},
            )

        # Snapshot before the audit insert; a rollback there would expire the rows
        response = _assemble(recipe, recipe_data, ingredients)

        try:
            db.add(self._audit(recipe_id, owner_id, "create", {"title": response["title"]}))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to write audit row", recipe_id=recipe_id, error=str(e))

        return response

    async def _compensate(self, db: AsyncSession, recipe_id: str, owner_id: str, cause: Exception) -> None:
        """Best-effort removal of a recipe whose ingredients could not be stored"""
        try:
            await db.execute(
                delete(Recipe).where(Recipe.id == recipe_id).execution_options(synchronize_session=False)
            )
            await db.commit()
            logger.info("Removed orphaned recipe after failed ingredient insert", recipe_id=recipe_id)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Compensating delete failed; recipe left without ingredients",
                recipe_id=recipe_id,
                error=str(e),
            )
            return

        try:
            db.add(self._audit(None, owner_id, "create_failed", {
                "recipe_id": recipe_id,
                "error": cause.__class__.__name__,
            }))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to write audit row", recipe_id=recipe_id, error=str(e))

    async def _write_atomic(
        self,
        db: AsyncSession,
        recipe: Recipe,
        ingredients: List[Ingredient],
        recipe_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        recipe_id, owner_id = recipe.id, recipe.owner_user_id

        try:
            db.add(recipe)
            await db.flush()
            db.add_all(ingredients)
            await db.flush()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Recipe transaction rolled back", recipe_id=recipe_id, error=str(e))
            raise AppError.persistence(f"Failed to store recipe: {e.__class__.__name__}")

        response = _assemble(recipe, recipe_data, ingredients)

        try:
            async with db.begin_nested():
                db.add(self._audit(recipe_id, owner_id, "create", {"title": response["title"]}))
        except SQLAlchemyError as e:
            logger.error("Failed to write audit row", recipe_id=recipe_id, error=str(e))

        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Recipe transaction commit failed", recipe_id=recipe_id, error=str(e))
            raise AppError.persistence(f"Failed to store recipe: {e.__class__.__name__}")

        return response

    @staticmethod
    def _audit(recipe_id: Optional[str], user_id: str, action: str, meta: Dict[str, Any]) -> RecipeAudit:
        return RecipeAudit(recipe_id=recipe_id, user_id=user_id, action=action, meta=meta)

    # Enrichment

    async def _enrich(
        self,
        recipe_id: str,
        owner_id: str,
        ingredients: List[Dict[str, Any]],
    ) -> Optional[Dict[str, Any]]:
        if not self.enrichment_configured:
            return None

        if self.enrichment_mode == "sync":
            return await self.nutrition_service.enrich_recipe(recipe_id, owner_id, ingredients)

        task = asyncio.create_task(self.nutrition_service.enrich_recipe(recipe_id, owner_id, ingredients))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return None

    async def wait_for_background_tasks(self) -> None:
        """Wait for scheduled enrichment tasks to finish"""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # Reads and deletes

    async def _get_owned(self, db: AsyncSession, owner_id: str, recipe_id: str) -> Recipe:
        result = await db.execute(
            select(Recipe).where(
                Recipe.id == recipe_id,
                Recipe.owner_user_id == owner_id,
                Recipe.deleted_at.is_(None),
            )
        )
        recipe = result.scalar_one_or_none()
        if recipe is None:
            raise AppError.not_found("Recipe not found")
        return recipe

    async def get_recipe(self, db: AsyncSession, owner_id: str, recipe_id: str) -> Dict[str, Any]:
        recipe = await self._get_owned(db, owner_id, recipe_id)
        result = await db.execute(
            select(Ingredient).where(Ingredient.recipe_id == recipe_id).order_by(Ingredient.position)
        )
        ingredients = list(result.scalars().all())
        return _assemble(recipe, recipe.recipe_data, ingredients)

    async def delete_recipe(self, db: AsyncSession, owner_id: str, recipe_id: str) -> None:
        """Soft delete: mark ``deleted_at`` and append an audit row"""
        recipe = await self._get_owned(db, owner_id, recipe_id)
        try:
            recipe.deleted_at = utcnow()
            db.add(self._audit(recipe.id, owner_id, "delete", {"title": recipe.title}))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to delete recipe", recipe_id=recipe_id, error=str(e))
            raise AppError.persistence("Failed to delete recipe")
        log_business_event("recipe_deleted", {"recipe_id": recipe_id, "user_id": owner_id})
