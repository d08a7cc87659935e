"""
HealthyMeal AI Response Schemas
Named structured-response contracts the LLM provider must conform to
"""

from typing import Dict, List, Optional, Type

from pydantic import BaseModel, Field


class NutritionEstimate(BaseModel):
    """Nutrition estimate for a whole recipe"""
    calories_kcal: float = Field(..., ge=0)
    protein_g: float = Field(..., ge=0)
    fat_g: float = Field(..., ge=0)
    carbohydrates_g: float = Field(..., ge=0)
    fiber_g: float = Field(default=0, ge=0)
    sugar_g: float = Field(default=0, ge=0)
    sodium_mg: float = Field(default=0, ge=0)
    condition_notes: Optional[str] = Field(
        default=None, description="Remarks for the requested health condition"
    )


class SubstitutionChange(BaseModel):
    original: str = Field(..., min_length=1)
    substitute: str = Field(..., min_length=1)
    reason: Optional[str] = None


class SubstitutionProposal(BaseModel):
    """Ingredient substitutions suited to a health condition"""
    changes: List[SubstitutionChange]


NUTRITION_ESTIMATE = "nutrition_estimate"
SUBSTITUTION_PROPOSAL = "substitution_proposal"

RESPONSE_SCHEMAS: Dict[str, Type[BaseModel]] = {
    NUTRITION_ESTIMATE: NutritionEstimate,
    SUBSTITUTION_PROPOSAL: SubstitutionProposal,
}
