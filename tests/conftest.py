"""
Shared fixtures: settings, database, bearer tokens and a fake LLM provider
"""

import time
from typing import Callable

import httpx
import pytest
from jose import jwt

from core.config import Settings
from core.database import Database
from schemas.ai_schemas import RESPONSE_SCHEMAS
from services.openrouter_client import OpenRouterClient
from tests.helpers import JWT_AUDIENCE, JWT_SECRET


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        ENVIRONMENT="testing",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'healthymeal.db'}",
        DATABASE_CREATE_TABLES=True,
        AUTH_JWT_SECRET=JWT_SECRET,
        AUTH_JWT_AUDIENCE=JWT_AUDIENCE,
        OPENROUTER_API_KEY="",
        NUTRITION_ENRICHMENT_MODE="background",
        LOG_FORMAT="console",
        CORS_ORIGINS="http://localhost:3000",
    )


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'service.db'}")
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
def make_token() -> Callable[..., str]:
    def _make_token(sub: str = "auth-user-1", secret: str = JWT_SECRET, expires_in: int = 3600, **claims) -> str:
        payload = {"sub": sub, "aud": JWT_AUDIENCE, "exp": int(time.time()) + expires_in, **claims}
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make_token


@pytest.fixture
def provider() -> Callable[..., OpenRouterClient]:
    """Build an OpenRouterClient whose HTTP calls go to ``handler``; backoff waits are skipped"""
    def _provider(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> OpenRouterClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kwargs.setdefault("response_schema_registry", RESPONSE_SCHEMAS)
        kwargs.setdefault("base_url", "https://openrouter.test/api")
        kwargs.setdefault("sleep", _no_sleep)
        return OpenRouterClient("sk-or-test-key", http_client=http_client, **kwargs)

    return _provider
