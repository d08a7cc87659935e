"""
HealthyMeal Database Models
Central import module for all database models
"""

from .users import User, AuthUserMap
from .recipe_models import (
    Recipe,
    Ingredient,
    RecipeAudit,
    AIJob,
    AIJobStatus,
    AIJobType,
)

__all__ = [
    # User models
    "User",
    "AuthUserMap",

    # Recipe models
    "Recipe",
    "Ingredient",
    "RecipeAudit",
    "AIJob",

    # Enums
    "AIJobStatus",
    "AIJobType",
]
