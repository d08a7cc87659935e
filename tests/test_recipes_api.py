"""
HTTP tests for the recipe and health endpoints
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from main import create_app
from tests.helpers import NUTRITION, completion, salmon_recipe

RECIPES_URL = "/api/v1/recipes"


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api_client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def token(make_token):
    return make_token(sub="auth-user-1")


def test_create_recipe(api_client, token):
    response = api_client.post(RECIPES_URL, json=salmon_recipe(), headers=auth_header(token))

    assert response.status_code == 201
    body = response.json()
    assert len(body["ingredients"]) == 2
    assert body["cached_nutrition"] is None
    assert body["recipe_data"] == salmon_recipe()["recipe_data"]
    assert response.headers["X-Request-ID"]


def test_owner_comes_from_token(api_client, token):
    payload = salmon_recipe()
    payload["owner_user_id"] = "11111111-1111-1111-1111-111111111111"

    created = api_client.post(RECIPES_URL, json=payload, headers=auth_header(token)).json()
    again = api_client.post(RECIPES_URL, json=salmon_recipe(), headers=auth_header(token)).json()

    assert created["owner_user_id"] != payload["owner_user_id"]
    assert created["owner_user_id"] == again["owner_user_id"]


def test_short_step_is_bad_request(api_client, token):
    payload = salmon_recipe()
    payload["recipe_data"]["steps"] = ["short"]

    response = api_client.post(RECIPES_URL, json=payload, headers=auth_header(token))

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "bad_request"
    assert error["details"]["recipe_data.steps[0]"] == "step too short (min 10 chars)"


def test_oversized_quantity_is_bad_request(api_client, token):
    body = salmon_recipe()
    body["recipe_data"]["ingredients"][0]["quantity"] = 0
    raw = json.dumps(body).replace('"quantity": 0', '"quantity": 1' + "0" * 400)

    response = api_client.post(
        RECIPES_URL,
        content=raw.encode(),
        headers={**auth_header(token), "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert "recipe_data.ingredients[0]" in response.json()["error"]["details"]


def test_validation_runs_before_authentication(api_client):
    payload = salmon_recipe()
    payload["title"] = ""

    response = api_client.post(RECIPES_URL, json=payload)

    assert response.status_code == 400
    assert "title" in response.json()["error"]["details"]


def test_invalid_json_body(api_client, token):
    response = api_client.post(
        RECIPES_URL,
        content=b"{not json",
        headers={**auth_header(token), "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Invalid JSON body"


def test_missing_token_is_unauthorized(api_client):
    response = api_client.post(RECIPES_URL, json=salmon_recipe())

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "unauthorized"


def test_expired_token_is_unauthorized(api_client, make_token):
    response = api_client.post(
        RECIPES_URL, json=salmon_recipe(), headers=auth_header(make_token(expires_in=-60))
    )
    assert response.status_code == 401


def test_get_and_delete_recipe(api_client, token, make_token):
    created = api_client.post(RECIPES_URL, json=salmon_recipe(), headers=auth_header(token)).json()
    url = f"{RECIPES_URL}/{created['id']}"

    fetched = api_client.get(url, headers=auth_header(token))
    assert fetched.status_code == 200
    assert fetched.json()["id"] == created["id"]
    assert len(fetched.json()["ingredients"]) == 2

    stranger = auth_header(make_token(sub="auth-user-2"))
    assert api_client.get(url, headers=stranger).status_code == 404
    assert api_client.delete(url, headers=stranger).status_code == 404

    assert api_client.delete(url, headers=auth_header(token)).status_code == 204

    missing = api_client.get(url, headers=auth_header(token))
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"


def test_ai_operation_without_provider(api_client, token):
    created = api_client.post(RECIPES_URL, json=salmon_recipe(), headers=auth_header(token)).json()

    response = api_client.post(
        f"{RECIPES_URL}/{created['id']}/ai", json={"operation": "nutrition"}, headers=auth_header(token)
    )

    assert response.status_code == 503


def test_ai_operation_rejects_unknown_operation(api_client, token):
    response = api_client.post(
        f"{RECIPES_URL}/any-id/ai", json={"operation": "translate"}, headers=auth_header(token)
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "bad_request"
    assert "operation" in error["details"]


def test_sync_enrichment_and_ai_operation(settings, provider, token):
    settings = settings.model_copy(update={"NUTRITION_ENRICHMENT_MODE": "sync"})
    client = provider(lambda request: httpx.Response(200, json=completion(NUTRITION)))

    with TestClient(create_app(settings, enrichment_client=client)) as api_client:
        created = api_client.post(RECIPES_URL, json=salmon_recipe(), headers=auth_header(token))
        assert created.status_code == 201
        assert created.json()["cached_nutrition"] == NUTRITION

        response = api_client.post(
            f"{RECIPES_URL}/{created.json()['id']}/ai",
            json={"operation": "nutrition", "constraints": {"disease_focus": "diabetes"}},
            headers=auth_header(token),
        )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["computed_nutrition"]["calories_kcal"] == NUTRITION["calories_kcal"]
    assert "explanations" not in body


def test_rate_limited_provider_maps_to_503(settings, provider, token):
    settings = settings.model_copy(update={"NUTRITION_ENRICHMENT_MODE": "disabled"})
    client = provider(
        lambda request: httpx.Response(429, headers={"Retry-After": "30"}), max_retries=1
    )

    with TestClient(create_app(settings, enrichment_client=client)) as api_client:
        created = api_client.post(RECIPES_URL, json=salmon_recipe(), headers=auth_header(token)).json()
        response = api_client.post(
            f"{RECIPES_URL}/{created['id']}/ai", json={"operation": "substitution"}, headers=auth_header(token)
        )

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "30"
    assert response.json()["error"]["code"] == "upstream_rate_limit"


def test_health(api_client):
    response = api_client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"

    ai = api_client.get("/api/v1/health/ai")
    assert ai.status_code == 200
    assert ai.json()["ok"] is False


def test_malformed_provider_body_maps_to_502(settings, provider, token):
    settings = settings.model_copy(update={"NUTRITION_ENRICHMENT_MODE": "disabled"})
    client = provider(lambda request: httpx.Response(200, json={"choices": ["oops"]}))

    with TestClient(create_app(settings, enrichment_client=client)) as api_client:
        created = api_client.post(RECIPES_URL, json=salmon_recipe(), headers=auth_header(token)).json()
        response = api_client.post(
            f"{RECIPES_URL}/{created['id']}/ai", json={"operation": "nutrition"}, headers=auth_header(token)
        )

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "upstream_response_format"
