"""
HealthyMeal Nutrition Service
LLM-backed nutrition estimates and ingredient substitutions for recipes
"""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from core.database import Database
from core.errors import AppError, ErrorKind
from models.recipe_models import AIJob, AIJobStatus, AIJobType, Recipe
from schemas.ai_schemas import NUTRITION_ESTIMATE, SUBSTITUTION_PROPOSAL
from services.openrouter_client import OpenRouterClient

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are a clinical nutrition assistant for a recipe application. "
    "Answer only with JSON that matches the requested schema. "
    "Quantities are given in grams unless a unit is stated."
)

CONDITION_GUIDANCE = {
    "diabetes": "The user has diabetes: keep the glycemic load low, limit added sugar and refined starch.",
    "celiac": "The user has celiac disease: every ingredient must be strictly gluten free.",
    "lactose_intolerance": "The user is lactose intolerant: avoid milk, cream, soft cheese and other lactose sources.",
}


def format_ingredients(ingredients: List[Dict[str, Any]]) -> str:
    lines = []
    for ing in ingredients:
        unit = ing.get("unit_text") or "g"
        lines.append(f"- {ing.get('name')}: {ing.get('quantity')} {unit}")
    return "\n".join(lines)


class NutritionService:
    """
    Builds prompts for the LLM client and stores the results

    Enrichment after recipe creation is best effort: every failure is
    logged and recorded on the AI job, never raised.
    """

    def __init__(self, client: OpenRouterClient, database: Optional[Database] = None):
        self.client = client
        self.database = database

    async def estimate_nutrition(
        self,
        ingredients: List[Dict[str, Any]],
        condition: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Ask the provider for a nutrition estimate of the ingredient list"""
        prompt = "Estimate the total nutrition of a recipe with these ingredients:\n"
        prompt += format_ingredients(ingredients)
        if condition:
            prompt += "\n" + CONDITION_GUIDANCE[condition]
            prompt += "\nPut remarks relevant to this condition in condition_notes."

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        return await self.client.send_structured_message(
            messages,
            self.client.response_format_for(NUTRITION_ESTIMATE),
            params={"temperature": 0},
            timeout_ms=timeout_ms,
        )

    async def propose_substitutions(
        self,
        ingredients: List[Dict[str, Any]],
        condition: Optional[str] = None,
        avoid_allergens: bool = False,
        allergies: Optional[List[str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        prompt = "Propose ingredient substitutions for a recipe with these ingredients:\n"
        prompt += format_ingredients(ingredients)
        if condition:
            prompt += "\n" + CONDITION_GUIDANCE[condition]
        if avoid_allergens:
            listed = ", ".join(allergies) if allergies else "common allergens"
            prompt += f"\nReplace ingredients containing {listed}."
        prompt += "\nOnly list ingredients that need to change, each with a short reason."

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        proposal = await self.client.send_structured_message(
            messages,
            self.client.response_format_for(SUBSTITUTION_PROPOSAL),
            params={"temperature": 0.2},
            timeout_ms=timeout_ms,
        )
        return proposal["changes"]

    async def run_operation(
        self,
        ingredients: List[Dict[str, Any]],
        operation: str,
        disease_focus: Optional[str] = None,
        avoid_allergens: bool = False,
        allergies: Optional[List[str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Run a synchronous AI operation on a recipe's ingredients"""
        if operation == AIJobType.NUTRITION.value:
            estimate = await self.estimate_nutrition(ingredients, disease_focus, timeout_ms=timeout_ms)
            return {"status": "ok", "computed_nutrition": estimate}
        if operation == AIJobType.SUBSTITUTION.value:
            changes = await self.propose_substitutions(
                ingredients, disease_focus, avoid_allergens, allergies, timeout_ms=timeout_ms
            )
            return {"status": "ok", "explanations": changes}
        raise AppError(ErrorKind.VALIDATION, f"Unsupported operation: {operation}")

    async def enrich_recipe(
        self,
        recipe_id: str,
        owner_id: str,
        ingredients: List[Dict[str, Any]],
    ) -> Optional[Dict[str, Any]]:
        """
        Compute and cache the nutrition estimate for a new recipe

        Returns:
            The estimate, or None when enrichment failed or was skipped
        """
        if self.database is None:
            logger.warning("Nutrition enrichment skipped: no database", recipe_id=recipe_id)
            return None

        try:
            job_id = await self._start_job(recipe_id, owner_id)
        except AppError as e:
            logger.warning("Nutrition enrichment skipped", recipe_id=recipe_id, reason=e.message)
            return None
        except Exception as e:
            logger.error("Failed to register nutrition job", recipe_id=recipe_id, error=str(e))
            return None

        try:
            estimate = await self.estimate_nutrition(ingredients)
        except Exception as e:
            kind = e.kind.value if isinstance(e, AppError) else type(e).__name__
            logger.warning("Nutrition enrichment failed", recipe_id=recipe_id, error_kind=kind, error=str(e))
            await self._finish_job(job_id, AIJobStatus.FAILED, error=str(e))
            return None

        try:
            async with self.database.session() as db:
                await db.execute(
                    update(Recipe).where(Recipe.id == recipe_id).values(cached_nutrition=estimate)
                )
                await db.commit()
        except Exception as e:
            logger.error("Failed to store cached nutrition", recipe_id=recipe_id, error=str(e))
            await self._finish_job(job_id, AIJobStatus.FAILED, error=str(e))
            return None

        await self._finish_job(job_id, AIJobStatus.COMPLETED, result=estimate)
        logger.info("Recipe nutrition enriched", recipe_id=recipe_id)
        return estimate

    async def _start_job(self, recipe_id: str, owner_id: str) -> str:
        async with self.database.session() as db:
            job = AIJob(
                recipe_id=recipe_id,
                requested_by_user_id=owner_id,
                type=AIJobType.NUTRITION.value,
                status=AIJobStatus.RUNNING.value,
            )
            db.add(job)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise AppError.conflict(
                    "An active nutrition job already exists for this recipe",
                    details={"recipe_id": recipe_id, "type": AIJobType.NUTRITION.value},
                )
            return job.id

    async def _finish_job(
        self,
        job_id: str,
        status: AIJobStatus,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        try:
            async with self.database.session() as db:
                job = (await db.execute(select(AIJob).where(AIJob.id == job_id))).scalar_one()
                job.status = status.value
                job.result = result
                job.error = error
                await db.commit()
        except Exception as e:
            logger.error("Failed to update AI job", job_id=job_id, error=str(e))
