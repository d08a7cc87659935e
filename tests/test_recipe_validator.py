"""
Tests for create-recipe payload validation
"""

import pytest

from tests.helpers import salmon_recipe
from utils.recipe_validator import (
    is_uuid,
    validate_create_recipe_command,
    validate_ingredient,
    validate_step,
)


def test_valid_payload_has_no_errors():
    result = validate_create_recipe_command(salmon_recipe())
    assert result.valid
    assert result.errors == {}


@pytest.mark.parametrize("body", [None, [], "recipe", 42])
def test_non_object_body(body):
    result = validate_create_recipe_command(body)
    assert result.errors == {"body": "Request body must be a JSON object"}


def test_title_required_and_bounded():
    body = salmon_recipe()
    body["title"] = "   "
    assert validate_create_recipe_command(body).errors["title"] == "title is required"

    body["title"] = "x" * 300
    assert "title" not in validate_create_recipe_command(body).errors

    body["title"] = "x" * 301
    assert validate_create_recipe_command(body).errors["title"] == "title too long (max 300)"


def test_missing_recipe_data_stops_nested_checks():
    body = salmon_recipe()
    body["recipe_data"] = "not an object"
    errors = validate_create_recipe_command(body).errors
    assert list(errors) == ["recipe_data"]


def test_empty_ingredients_rejected():
    body = salmon_recipe()
    body["recipe_data"]["ingredients"] = []
    errors = validate_create_recipe_command(body).errors
    assert errors["recipe_data.ingredients"] == "ingredients must be a non-empty array"


@pytest.mark.parametrize("quantity", [0, -1, -0.5, True, "200", None, float("nan"), float("inf"), 10 ** 400])
def test_invalid_quantity(quantity):
    error = validate_ingredient({"name": "Salmon", "quantity": quantity}, 0)
    assert error == "ingredients[0].quantity must be a number > 0"


def test_oversized_integer_quantity_reported():
    body = salmon_recipe()
    body["recipe_data"]["ingredients"][0]["quantity"] = 10 ** 400
    errors = validate_create_recipe_command(body).errors
    assert errors == {"recipe_data.ingredients[0]": "ingredients[0].quantity must be a number > 0"}


def test_tiny_positive_quantity_accepted():
    assert validate_ingredient({"name": "Salt", "quantity": 1e-9}, 0) is None


def test_ingredient_errors_are_indexed():
    body = salmon_recipe()
    body["recipe_data"]["ingredients"].append({"name": "", "quantity": 1})
    errors = validate_create_recipe_command(body).errors
    assert errors == {"recipe_data.ingredients[2]": "ingredients[2].name is required"}


def test_ingredient_unit_id_must_be_uuid():
    item = {"name": "Milk", "quantity": 250, "unit_id": "ml"}
    assert validate_ingredient(item, 1) == "ingredients[1].unit_id must be a valid UUID"

    item["unit_id"] = "6f1c9f6e-3b7a-4c1e-9a55-2d0f0c7d8e21"
    assert validate_ingredient(item, 1) is None


@pytest.mark.parametrize(
    "length,expected",
    [
        (9, "step too short (min 10 chars)"),
        (10, None),
        (500, None),
        (501, "step too long (max 500 chars)"),
    ],
)
def test_step_length_boundaries(length, expected):
    assert validate_step("s" * length) == expected


def test_short_step_reported_by_index():
    body = salmon_recipe()
    body["recipe_data"]["steps"] = ["short"]
    errors = validate_create_recipe_command(body).errors
    assert errors == {"recipe_data.steps[0]": "step too short (min 10 chars)"}


def test_steps_must_be_list():
    body = salmon_recipe()
    body["recipe_data"]["steps"] = "Cook it all."
    errors = validate_create_recipe_command(body).errors
    assert errors["recipe_data.steps"] == "steps must be an array of strings"


def test_empty_steps_list_is_allowed():
    body = salmon_recipe()
    body["recipe_data"]["steps"] = []
    assert validate_create_recipe_command(body).valid


def test_is_uuid():
    assert is_uuid("00000000-0000-0000-0000-000000000000")
    assert not is_uuid("00000000000000000000000000000000")
    assert not is_uuid("00000000-0000-0000-0000-00000000000g")
    assert not is_uuid(None)
