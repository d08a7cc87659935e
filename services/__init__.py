"""
HealthyMeal Services Module
Recipe writes, LLM client and nutrition services
"""

from .auth_service import TokenVerifier, UserMappingService
from .nutrition_service import NutritionService
from .openrouter_client import OpenRouterClient
from .recipe_service import RecipeService

__all__ = [
    "TokenVerifier",
    "UserMappingService",
    "NutritionService",
    "OpenRouterClient",
    "RecipeService",
]
