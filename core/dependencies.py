"""
HealthyMeal Core Dependencies
FastAPI dependencies for authentication, request bodies and services
"""

import json
from typing import Annotated, Any, Dict, Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.errors import AppError, ErrorKind
from services.auth_service import TokenVerifier, UserMappingService
from services.nutrition_service import NutritionService
from services.recipe_service import RecipeService
from utils.recipe_validator import validate_create_recipe_command

logger = structlog.get_logger()

# Security scheme; missing credentials are reported as AppError, not 403
security = HTTPBearer(auto_error=False)
user_mapping_service = UserMappingService()


def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier


def get_recipe_service(request: Request) -> RecipeService:
    return request.app.state.recipe_service


def get_nutrition_service(request: Request) -> NutritionService:
    """The nutrition service, or 503 when no LLM provider is configured"""
    service: Optional[NutritionService] = getattr(request.app.state, "nutrition_service", None)
    if service is None:
        raise AppError(
            ErrorKind.PROVIDER,
            "AI provider is not configured",
            upstream=True,
            http_status=503,
        )
    return service


async def validated_recipe_payload(request: Request) -> Dict[str, Any]:
    """
    Parse and validate the create-recipe body

    Declared before authentication on the endpoint so malformed bodies are
    rejected with 400 ahead of any token check.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise AppError(ErrorKind.VALIDATION, "Invalid JSON body")

    result = validate_create_recipe_command(body)
    if not result.valid:
        logger.info("Recipe payload rejected", fields=sorted(result.errors))
        raise AppError.validation(result.errors)

    return {
        "title": body["title"],
        "raw_text": body["raw_text"],
        "recipe_data": body["recipe_data"],
    }


async def get_current_owner_id(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: AsyncSession = Depends(get_db),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> str:
    """
    Resolve the bearer token to an internal user id

    Raises:
        AppError(AUTHENTICATION): missing header or token rejected
        AppError(PERSISTENCE): the user mapping could not be read or created
    """
    if not credentials or not credentials.credentials:
        raise AppError.authentication()

    subject = verifier.verify(credentials.credentials)
    return await user_mapping_service.resolve_owner_id(db, subject)


# Type aliases for common dependencies
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentOwnerId = Annotated[str, Depends(get_current_owner_id)]
RecipePayload = Annotated[Dict[str, Any], Depends(validated_recipe_payload)]
