"""Sample payloads and provider responses used across the test modules"""

import copy
import json
from typing import Any, Dict

JWT_SECRET = "test-jwt-secret"
JWT_AUDIENCE = "authenticated"

NUTRITION = {
    "calories_kcal": 512.0,
    "protein_g": 41.0,
    "fat_g": 30.5,
    "carbohydrates_g": 6.0,
    "fiber_g": 4.4,
    "sugar_g": 1.2,
    "sodium_mg": 310.0,
    "condition_notes": None,
}

SALMON_RECIPE = {
    "title": "Salmon with spinach",
    "raw_text": "Pan-fry the salmon and wilt the spinach in the same pan.",
    "recipe_data": {
        "title": "Salmon with spinach",
        "ingredients": [
            {"name": "Salmon", "quantity": 200, "unit_text": "g"},
            {"name": "Spinach", "quantity": 100, "unit_text": "g"},
        ],
        "steps": [
            "Season the salmon with salt and pepper.",
            "Pan-fry for four minutes on each side.",
            "Wilt the spinach in the remaining oil.",
        ],
    },
}


def salmon_recipe() -> Dict[str, Any]:
    return copy.deepcopy(SALMON_RECIPE)


def completion(content: Any) -> Dict[str, Any]:
    """Chat-completions body whose message content is ``content``"""
    if not isinstance(content, str):
        content = json.dumps(content)
    return {
        "id": "gen-test",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
    }
