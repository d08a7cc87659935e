"""
HealthyMeal OpenRouter Client
Calls the OpenRouter chat-completions API with retries and structured output
"""

import asyncio
import json
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from core.errors import AppError, ErrorKind
from middleware.logging import mask_sensitive_data

logger = structlog.get_logger()

DEFAULT_BASE_URL = "https://openrouter.ai/api"
DEFAULT_MODEL = "tngtech/deepseek-r1t2-chimera:free"
DEFAULT_TIMEOUT_MS = 15000
DEFAULT_MAX_RETRIES = 3

BACKOFF_BASE_MS = 300
BACKOFF_CAP_MS = 2000
BACKOFF_JITTER_MS = 100

ROLES = ("system", "user", "assistant")

Message = Dict[str, str]


def _provider_error(kind: ErrorKind, message: str, **kwargs) -> AppError:
    return AppError(kind, message, upstream=True, **kwargs)


def backoff_delay_ms(attempt: int) -> float:
    """Delay before retrying after the ``attempt``-th failure (1-based)"""
    return min(BACKOFF_CAP_MS, BACKOFF_BASE_MS * (2 ** attempt)) + random.uniform(0, BACKOFF_JITTER_MS)


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Retry-After in whole seconds; HTTP-date and zero values are ignored"""
    if not value:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return seconds if seconds > 0 else None


class OpenRouterClient:
    """
    Client for the OpenRouter LLM provider

    Network failures and rate limits are retried with exponential backoff;
    authentication, request and schema failures are not.

    Usage:
        client = OpenRouterClient(api_key="sk-or-...", response_schema_registry=RESPONSE_SCHEMAS)
        estimate = await client.send_structured_message(
            messages, client.response_format_for("nutrition_estimate")
        )
        await client.shutdown()
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        response_schema_registry: Optional[Dict[str, Type[BaseModel]]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not api_key or not isinstance(api_key, str):
            raise _provider_error(ErrorKind.AUTHENTICATION, "OpenRouter api key is required")

        self._api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.default_model = default_model or DEFAULT_MODEL
        self.timeout_ms = timeout_ms
        self.max_retries = max_retries
        self.response_schema_registry: Dict[str, Type[BaseModel]] = dict(response_schema_registry or {})

        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout_ms / 1000)
        self._sleep = sleep
        self._system_message: Optional[str] = None
        self._default_params: Dict[str, Any] = {}
        self._is_shutdown = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    def __repr__(self) -> str:
        return f"OpenRouterClient(base_url={self.base_url!r}, model={self.default_model!r})"

    # Configuration

    def set_system_message(self, message: str) -> None:
        if not isinstance(message, str) or not message.strip():
            raise AppError(ErrorKind.VALIDATION, "system message must be a non-empty string")
        self._system_message = message

    def set_params(self, params: Dict[str, Any]) -> None:
        """Merge default request parameters (temperature, max_tokens, ...)"""
        self._default_params.update(params)

    def response_format_for(self, name: str, strict: bool = True) -> Dict[str, Any]:
        """Build a json_schema response format from a registered schema"""
        model = self.response_schema_registry.get(name)
        if model is None:
            raise AppError(ErrorKind.VALIDATION, f"Unknown response schema: {name}")
        return {
            "type": "json_schema",
            "json_schema": {
                "name": name,
                "strict": strict,
                "schema": model.model_json_schema(),
            },
        }

    # Requests

    def build_payload(
        self,
        messages: List[Message],
        model: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not isinstance(messages, list) or not messages:
            raise AppError(ErrorKind.VALIDATION, "messages must be a non-empty list")
        for message in messages:
            if not isinstance(message, dict) or message.get("role") not in ROLES:
                raise AppError(ErrorKind.VALIDATION, f"invalid message: roles must be one of {ROLES}")
            if not isinstance(message.get("content"), str):
                raise AppError(ErrorKind.VALIDATION, "message content must be a string")

        combined: List[Message] = []
        if self._system_message:
            combined.append({"role": "system", "content": self._system_message})
        combined.extend({"role": m["role"], "content": m["content"]} for m in messages)

        payload: Dict[str, Any] = {**self._default_params, **(params or {})}
        payload["model"] = model or self.default_model
        payload["messages"] = combined
        if response_format:
            payload["response_format"] = response_format
        return payload

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def send_message(
        self,
        messages: List[Message],
        model: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        response_format: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Send a chat completion request and return the provider JSON"""
        if self._is_shutdown:
            raise _provider_error(ErrorKind.PROVIDER, "OpenRouter client is shut down")

        payload = self.build_payload(messages, model=model, params=params, response_format=response_format)
        timeout = (timeout_ms or self.timeout_ms) / 1000
        url = f"{self.base_url}/v1/chat/completions"

        logger.debug(
            "OpenRouter request",
            request=mask_sensitive_data({"url": url, "headers": self._headers(), "payload": payload}),
        )

        async def attempt() -> Dict[str, Any]:
            try:
                response = await self.client.post(url, json=payload, headers=self._headers(), timeout=timeout)
            except httpx.TimeoutException as e:
                raise _provider_error(ErrorKind.NETWORK, "Request timeout", details={"error": str(e)})
            except httpx.TransportError as e:
                raise _provider_error(ErrorKind.NETWORK, "Network request failed", details={"error": str(e)})
            return self._handle_response(response)

        return await self._retry_with_backoff(attempt)

    async def send_structured_message(
        self,
        messages: List[Message],
        response_format: Dict[str, Any],
        model: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Send a request constrained to a named schema and validate the answer

        Returns:
            The validated JSON object produced by the model

        Raises:
            AppError(RESPONSE_FORMAT) when the answer does not match the schema
        """
        if not isinstance(response_format, dict) or response_format.get("type") != "json_schema":
            raise AppError(ErrorKind.VALIDATION, "response_format must be json_schema")
        json_schema = response_format.get("json_schema") or {}
        name = json_schema.get("name")
        model_cls = self.response_schema_registry.get(name)
        if model_cls is None:
            raise AppError(ErrorKind.VALIDATION, f"Unknown response schema: {name}")

        data = await self.send_message(
            messages, model=model, params=params, response_format=response_format, timeout_ms=timeout_ms
        )

        content = self._extract_content(data)
        if isinstance(content, str):
            try:
                content = json.loads(_strip_code_fence(content))
            except json.JSONDecodeError as e:
                raise _provider_error(
                    ErrorKind.RESPONSE_FORMAT,
                    "Response is not valid JSON",
                    details={"schema": name, "error": str(e)},
                )

        try:
            validated = model_cls.model_validate(content)
        except ValidationError as e:
            raise _provider_error(
                ErrorKind.RESPONSE_FORMAT,
                "Response did not match schema",
                details={"schema": name, "errors": e.errors(include_url=False, include_context=False, include_input=False)},
            )
        return validated.model_dump()

    def stream_responses(self, messages: List[Message], **kwargs):
        raise AppError(ErrorKind.UNSUPPORTED, "Streaming responses are not supported")

    async def health_check(self) -> Dict[str, Any]:
        """Probe the models endpoint; never raises"""
        start = time.monotonic()
        try:
            response = await self.client.get(
                f"{self.base_url}/v1/models", headers=self._headers(), timeout=self.timeout_ms / 1000
            )
        except httpx.HTTPError as e:
            logger.error("OpenRouter health check failed", error=str(e))
            return {"ok": False, "latency_ms": None, "details": {"message": str(e)}}

        latency_ms = round((time.monotonic() - start) * 1000, 1)
        details: Dict[str, Any] = {"status": response.status_code}
        if response.status_code == 401:
            details["message"] = "Invalid API key"
        return {"ok": response.is_success, "latency_ms": latency_ms, "details": details}

    async def shutdown(self) -> None:
        if self._is_shutdown:
            return
        self._is_shutdown = True
        if self._owns_client:
            await self.client.aclose()
        logger.info("OpenRouter client shut down")

    aclose = shutdown

    # Internals

    def _handle_response(self, response: httpx.Response) -> Dict[str, Any]:
        if response.status_code == 401:
            raise _provider_error(ErrorKind.AUTHENTICATION, "Invalid API key", status_code=401)
        if response.status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise _provider_error(
                ErrorKind.RATE_LIMIT,
                "Rate limited by OpenRouter",
                status_code=429,
                retry_after=retry_after,
                details={"retry_after": retry_after},
            )
        if not response.is_success:
            raise _provider_error(
                ErrorKind.PROVIDER,
                f"OpenRouter returned {response.status_code}",
                status_code=response.status_code,
                details={"status": response.status_code, "body": response.text[:2000]},
            )
        try:
            return response.json()
        except ValueError as e:
            raise _provider_error(
                ErrorKind.PROVIDER,
                "Invalid JSON response from OpenRouter",
                status_code=response.status_code,
                details={"error": str(e)},
            )

    @staticmethod
    def _extract_content(data: Dict[str, Any]) -> Any:
        if isinstance(data, dict):
            if "output" in data:
                return data["output"]
            choices = data.get("choices")
            if isinstance(choices, list) and choices:
                choice = choices[0]
                message = choice.get("message") if isinstance(choice, dict) else None
                # Malformed choices fall through to schema validation
                return message.get("content") if isinstance(message, dict) else None
        return data

    async def _retry_with_backoff(self, fn: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
        attempt = 0
        while True:
            try:
                return await fn()
            except AppError as err:
                attempt += 1
                if not err.retriable or attempt > self.max_retries:
                    raise
                wait_ms = backoff_delay_ms(attempt)
                logger.warning(
                    "Retrying OpenRouter request",
                    attempt=attempt,
                    wait_ms=round(wait_ms, 1),
                    error_kind=err.kind.value,
                    error=err.message,
                )
                await self._sleep(wait_ms / 1000)


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()
