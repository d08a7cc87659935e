"""
HealthyMeal Recipe Endpoints
Recipe creation, owner-scoped reads, soft delete and AI operations
"""

from fastapi import APIRouter, Depends, Response, status

from core.dependencies import (
    CurrentOwnerId,
    DbSession,
    RecipePayload,
    get_nutrition_service,
    get_recipe_service,
)
from models.users import User
from schemas.recipe_schemas import AIOperationRequest, AIOperationResponse, RecipeResponse
from services.nutrition_service import NutritionService
from services.recipe_service import RecipeService

router = APIRouter()


@router.post("", response_model=RecipeResponse, status_code=status.HTTP_201_CREATED)
async def create_recipe(
    payload: RecipePayload,
    owner_id: CurrentOwnerId,
    db: DbSession,
    recipes: RecipeService = Depends(get_recipe_service),
):
    """
    Create a recipe with its ingredients

    The owner is always taken from the bearer token; an ``owner_user_id``
    in the body is ignored.
    """
    return await recipes.create_recipe(db, owner_id, payload)


@router.get("/{recipe_id}", response_model=RecipeResponse)
async def get_recipe(
    recipe_id: str,
    owner_id: CurrentOwnerId,
    db: DbSession,
    recipes: RecipeService = Depends(get_recipe_service),
):
    """Get a recipe owned by the caller"""
    return await recipes.get_recipe(db, owner_id, recipe_id)


@router.delete("/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recipe(
    recipe_id: str,
    owner_id: CurrentOwnerId,
    db: DbSession,
    recipes: RecipeService = Depends(get_recipe_service),
):
    """Soft delete a recipe owned by the caller"""
    await recipes.delete_recipe(db, owner_id, recipe_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{recipe_id}/ai", response_model=AIOperationResponse, response_model_exclude_none=True)
async def run_ai_operation(
    recipe_id: str,
    request: AIOperationRequest,
    owner_id: CurrentOwnerId,
    db: DbSession,
    recipes: RecipeService = Depends(get_recipe_service),
    nutrition: NutritionService = Depends(get_nutrition_service),
):
    """Run a substitution or nutrition operation on an existing recipe"""
    recipe = await recipes.get_recipe(db, owner_id, recipe_id)

    allergies = None
    if request.constraints.avoid_allergens:
        user = await db.get(User, owner_id)
        allergies = list(user.allergies or []) if user else None

    return await nutrition.run_operation(
        recipe["ingredients"],
        request.operation,
        disease_focus=request.constraints.disease_focus,
        avoid_allergens=request.constraints.avoid_allergens,
        allergies=allergies,
        timeout_ms=request.timeout_ms,
    )
