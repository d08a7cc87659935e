"""
HealthyMeal Backend Service - Main API Server
Recipe storage with LLM-backed nutrition enrichment
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import api_router
from core.config import Settings, get_settings
from core.database import Database
from core.errors import AppError
from middleware.logging import LoggingMiddleware
from schemas.ai_schemas import RESPONSE_SCHEMAS
from services.auth_service import TokenVerifier
from services.nutrition_service import SYSTEM_PROMPT, NutritionService
from services.openrouter_client import OpenRouterClient
from services.recipe_service import RecipeService

logger = structlog.get_logger()


def configure_logging(settings: Settings) -> None:
    """Configure structured logging"""
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.LOG_FORMAT == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.LOG_LEVEL.upper())
        ),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=settings.is_production,
    )


def build_openrouter_client(settings: Settings) -> Optional[OpenRouterClient]:
    if not settings.OPENROUTER_API_KEY:
        logger.warning("OPENROUTER_API_KEY not set; AI features disabled")
        return None
    client = OpenRouterClient(
        settings.OPENROUTER_API_KEY,
        base_url=settings.OPENROUTER_BASE_URL,
        default_model=settings.OPENROUTER_MODEL,
        timeout_ms=settings.OPENROUTER_TIMEOUT_MS,
        max_retries=settings.OPENROUTER_MAX_RETRIES,
        response_schema_registry=RESPONSE_SCHEMAS,
    )
    client.set_system_message(SYSTEM_PROMPT)
    return client


def create_app(
    settings: Optional[Settings] = None,
    *,
    enrichment_client: Optional[OpenRouterClient] = None,
    token_verifier: Optional[TokenVerifier] = None,
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        settings: Application settings; defaults to the environment
        enrichment_client: LLM client to use instead of one built from settings
        token_verifier: Bearer token verifier to use instead of one built from settings
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan events"""
        logger.info("Starting HealthyMeal Backend Service", environment=settings.ENVIRONMENT)

        database = Database.from_settings(settings)
        if settings.DATABASE_CREATE_TABLES:
            await database.create_all()

        client = enrichment_client or build_openrouter_client(settings)
        nutrition_service = NutritionService(client, database) if client else None
        recipe_service = RecipeService(
            nutrition_service,
            enrichment_mode=settings.NUTRITION_ENRICHMENT_MODE,
            atomic_writes=settings.ATOMIC_RECIPE_WRITES,
        )

        app.state.settings = settings
        app.state.database = database
        app.state.openrouter_client = client
        app.state.nutrition_service = nutrition_service
        app.state.recipe_service = recipe_service
        app.state.token_verifier = token_verifier or TokenVerifier.from_settings(settings)

        logger.info(
            "Backend service startup complete",
            enrichment_mode=settings.NUTRITION_ENRICHMENT_MODE if client else "disabled",
            atomic_recipe_writes=settings.ATOMIC_RECIPE_WRITES,
        )

        yield

        logger.info("Shutting down HealthyMeal Backend Service")
        await recipe_service.wait_for_background_tasks()
        if client is not None:
            await client.shutdown()
        await database.close()
        logger.info("Backend service shutdown complete")

    app = FastAPI(
        title="HealthyMeal Backend Service",
        description="Recipe management with nutrition enrichment",
        version=settings.VERSION,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Process-Time", "X-Request-ID"],
    )
    app.add_middleware(LoggingMiddleware)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        log = logger.error if exc.http_status >= 500 else logger.info
        log(
            "Request failed",
            path=request.url.path,
            error_kind=exc.kind.value,
            error=exc.message,
            upstream=exc.upstream,
        )
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return JSONResponse(status_code=exc.http_status, content=exc.to_response(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"][1:]) or "body"
            details[field] = error["msg"]
        return JSONResponse(
            status_code=400,
            content={"error": {"code": "bad_request", "message": "Validation failed", "details": details}},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(
            "Unhandled exception",
            exception=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(
            status_code=500,
            content={"error": {"code": "internal_error", "message": "An unexpected error occurred"}},
        )

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "HealthyMeal Backend Service",
            "version": settings.VERSION,
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
        }

    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_config=None  # Use structlog instead
    )
