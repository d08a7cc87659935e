"""
Tests for nutrition estimates, substitutions and recipe enrichment jobs
"""

import json

import httpx
import pytest
from sqlalchemy import select

from core.errors import AppError, ErrorKind
from models import AIJob, AIJobStatus, AIJobType, Recipe
from services.auth_service import UserMappingService
from services.nutrition_service import NutritionService
from services.recipe_service import RecipeService
from tests.helpers import NUTRITION, completion, salmon_recipe

INGREDIENTS = [
    {"name": "Salmon", "quantity": 200, "unit_text": "g"},
    {"name": "Whole milk", "quantity": 250, "unit_text": "ml"},
]


class Provider:
    """Fake provider that records prompts and answers with ``content``"""

    def __init__(self, content):
        self.content = content
        self.bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        return httpx.Response(200, json=completion(self.content))

    @property
    def last_prompt(self) -> str:
        return self.bodies[-1]["messages"][-1]["content"]


async def test_nutrition_operation_with_condition(provider):
    fake = Provider(NUTRITION)
    service = NutritionService(provider(fake))

    result = await service.run_operation(INGREDIENTS, "nutrition", disease_focus="diabetes")

    assert result == {"status": "ok", "computed_nutrition": NUTRITION}
    assert "- Salmon: 200 g" in fake.last_prompt
    assert "diabetes" in fake.last_prompt
    assert fake.bodies[-1]["response_format"]["json_schema"]["name"] == "nutrition_estimate"


async def test_substitution_operation_avoids_allergens(provider):
    changes = [{"original": "Whole milk", "substitute": "Oat milk", "reason": "lactose free"}]
    fake = Provider({"changes": changes})
    service = NutritionService(provider(fake))

    result = await service.run_operation(
        INGREDIENTS,
        "substitution",
        disease_focus="lactose_intolerance",
        avoid_allergens=True,
        allergies=["milk", "peanuts"],
    )

    assert result == {"status": "ok", "explanations": changes}
    assert "milk, peanuts" in fake.last_prompt
    assert "lactose" in fake.last_prompt


async def test_unknown_operation_is_rejected(provider):
    service = NutritionService(provider(Provider(NUTRITION)))

    with pytest.raises(AppError) as exc_info:
        await service.run_operation(INGREDIENTS, "shopping_list")
    assert exc_info.value.kind is ErrorKind.VALIDATION


async def test_enrichment_skipped_while_job_is_active(database, provider):
    async with database.session() as db:
        owner_id = await UserMappingService().resolve_owner_id(db, "auth-user-1")
    async with database.session() as db:
        created = await RecipeService().create_recipe(db, owner_id, salmon_recipe())
        db.add(AIJob(
            recipe_id=created["id"],
            requested_by_user_id=owner_id,
            type=AIJobType.NUTRITION.value,
            status=AIJobStatus.RUNNING.value,
        ))
        await db.commit()

    fake = Provider(NUTRITION)
    service = NutritionService(provider(fake), database)
    result = await service.enrich_recipe(created["id"], owner_id, created["ingredients"])

    assert result is None
    assert fake.bodies == []
    async with database.session() as db:
        jobs = (await db.execute(select(AIJob))).scalars().all()
        recipe = (await db.execute(select(Recipe).where(Recipe.id == created["id"]))).scalar_one()
    assert len(jobs) == 1
    assert recipe.cached_nutrition is None


async def test_completed_jobs_do_not_block_new_enrichment(database, provider):
    async with database.session() as db:
        owner_id = await UserMappingService().resolve_owner_id(db, "auth-user-1")
    async with database.session() as db:
        created = await RecipeService().create_recipe(db, owner_id, salmon_recipe())

    service = NutritionService(provider(Provider(NUTRITION)), database)
    assert await service.enrich_recipe(created["id"], owner_id, created["ingredients"]) == NUTRITION
    assert await service.enrich_recipe(created["id"], owner_id, created["ingredients"]) == NUTRITION

    async with database.session() as db:
        statuses = (await db.execute(select(AIJob.status))).scalars().all()
    assert statuses == ["completed", "completed"]


async def test_invalid_estimate_marks_job_failed(database, provider):
    async with database.session() as db:
        owner_id = await UserMappingService().resolve_owner_id(db, "auth-user-1")
    async with database.session() as db:
        created = await RecipeService().create_recipe(db, owner_id, salmon_recipe())

    service = NutritionService(provider(Provider({"calories_kcal": -5})), database)
    assert await service.enrich_recipe(created["id"], owner_id, created["ingredients"]) is None

    async with database.session() as db:
        job = (await db.execute(select(AIJob))).scalar_one()
    assert job.status == "failed"
    assert job.error == "Response did not match schema"
