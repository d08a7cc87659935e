"""
HealthyMeal Recipe Request Validation
Field-level structural checks for incoming recipe payloads

The database enforces the same rules with constraints; this layer exists to
fail fast with per-field messages and never consults the database.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

TITLE_MAX_LENGTH = 300
INGREDIENT_NAME_MAX_LENGTH = 200
STEP_MIN_LENGTH = 10
STEP_MAX_LENGTH = 500

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


@dataclass
class ValidationResult:
    """Outcome of a validation; ``errors`` maps field path to message"""
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 36 and bool(_UUID_RE.match(value))


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) > 0


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a quantity
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int too large for a float
        return False


def validate_ingredient(item: Any, index: int) -> Optional[str]:
    """Return the first violation for one ingredient entry, or None"""
    prefix = f"ingredients[{index}]"
    if not isinstance(item, dict):
        return f"{prefix} must be an object"

    name = item.get("name")
    if not _is_non_empty_string(name):
        return f"{prefix}.name is required"
    if len(name) > INGREDIENT_NAME_MAX_LENGTH:
        return f"{prefix}.name too long (max {INGREDIENT_NAME_MAX_LENGTH})"

    quantity = item.get("quantity")
    if not _is_number(quantity) or quantity <= 0:
        return f"{prefix}.quantity must be a number > 0"

    unit_id = item.get("unit_id")
    if unit_id is not None and not is_uuid(unit_id):
        return f"{prefix}.unit_id must be a valid UUID"

    unit_text = item.get("unit_text")
    if unit_text is not None and not isinstance(unit_text, str):
        return f"{prefix}.unit_text must be a string"

    normalized_name = item.get("normalized_name")
    if normalized_name is not None and not isinstance(normalized_name, str):
        return f"{prefix}.normalized_name must be a string"

    return None


def validate_step(step: Any) -> Optional[str]:
    if not isinstance(step, str):
        return "step must be a string"
    if len(step) < STEP_MIN_LENGTH:
        return f"step too short (min {STEP_MIN_LENGTH} chars)"
    if len(step) > STEP_MAX_LENGTH:
        return f"step too long (max {STEP_MAX_LENGTH} chars)"
    return None


def validate_create_recipe_command(body: Any) -> ValidationResult:
    """
    Validate a create-recipe payload

    Args:
        body: Decoded JSON request body of any type

    Returns:
        ValidationResult; malformed input is reported, never raised
    """
    result = ValidationResult()
    errors = result.errors

    if not isinstance(body, dict):
        errors["body"] = "Request body must be a JSON object"
        return result

    title = body.get("title")
    if not _is_non_empty_string(title):
        errors["title"] = "title is required"
    elif len(title) > TITLE_MAX_LENGTH:
        errors["title"] = f"title too long (max {TITLE_MAX_LENGTH})"

    if not _is_non_empty_string(body.get("raw_text")):
        errors["raw_text"] = "raw_text is required"

    recipe_data = body.get("recipe_data")
    if not isinstance(recipe_data, dict):
        errors["recipe_data"] = "recipe_data is required and must be an object"
        return result

    if not _is_non_empty_string(recipe_data.get("title")):
        errors["recipe_data.title"] = "recipe_data.title required"

    ingredients = recipe_data.get("ingredients")
    if not isinstance(ingredients, list) or not ingredients:
        errors["recipe_data.ingredients"] = "ingredients must be a non-empty array"
    else:
        for idx, ingredient in enumerate(ingredients):
            error = validate_ingredient(ingredient, idx)
            if error:
                errors[f"recipe_data.ingredients[{idx}]"] = error

    steps = recipe_data.get("steps")
    if not isinstance(steps, list):
        errors["recipe_data.steps"] = "steps must be an array of strings"
    else:
        for idx, step in enumerate(steps):
            error = validate_step(step)
            if error:
                errors[f"recipe_data.steps[{idx}]"] = error

    return result
