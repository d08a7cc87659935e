"""
HealthyMeal Recipe Schemas
Pydantic models for recipe responses and AI operation requests
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class IngredientResponse(BaseModel):
    """Persisted ingredient row"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    recipe_id: str
    name: str
    normalized_name: Optional[str] = None
    quantity: float
    unit_id: Optional[str] = None
    unit_text: Optional[str] = None


class RecipeResponse(BaseModel):
    """Recipe as returned by the API"""
    id: str
    owner_user_id: str
    title: str
    raw_text: str
    recipe_data: Dict[str, Any]
    ingredients: List[IngredientResponse] = Field(default_factory=list)
    cached_nutrition: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class AIConstraints(BaseModel):
    """Constraints for an AI operation on a recipe"""
    avoid_allergens: bool = False
    disease_focus: Optional[Literal["diabetes", "celiac", "lactose_intolerance"]] = None


class AIOperationRequest(BaseModel):
    """Request body for POST /recipes/{id}/ai"""
    operation: Literal["substitution", "nutrition"]
    constraints: AIConstraints = Field(default_factory=AIConstraints)
    timeout_ms: Optional[int] = Field(default=None, gt=0, le=60000)


class AIChange(BaseModel):
    original: str
    substitute: str
    reason: Optional[str] = None


class AIOperationResponse(BaseModel):
    status: Literal["ok"] = "ok"
    explanations: Optional[List[AIChange]] = None
    computed_nutrition: Optional[Dict[str, Any]] = None
