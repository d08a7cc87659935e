"""
HealthyMeal Error Types
A single tagged error type shared by the API, persistence and LLM layers
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Kinds of failures the application distinguishes"""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    PERSISTENCE = "persistence"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    RESPONSE_FORMAT = "response_format"
    UNSUPPORTED = "unsupported"
    PROVIDER = "provider"


# Kinds the LLM client may retry
RETRIABLE_KINDS = frozenset({ErrorKind.NETWORK, ErrorKind.RATE_LIMIT})

# HTTP status and public error code for errors raised by this service
HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: (400, "bad_request"),
    ErrorKind.AUTHENTICATION: (401, "unauthorized"),
    ErrorKind.NOT_FOUND: (404, "not_found"),
    ErrorKind.CONFLICT: (409, "conflict"),
    ErrorKind.PERSISTENCE: (500, "internal_error"),
    ErrorKind.UNSUPPORTED: (501, "unsupported"),
}


class AppError(Exception):
    """
    Application error tagged with an ErrorKind

    Callers branch on ``error.kind``. ``details`` carries the structured
    payload for the kind (field errors, schema violations, response body).
    ``upstream`` marks failures reported by the LLM provider rather than
    by this service.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        upstream: bool = False,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        self.retry_after = retry_after
        self.upstream = upstream
        self._http_status = http_status

    @property
    def retriable(self) -> bool:
        return self.kind in RETRIABLE_KINDS

    @property
    def http_status(self) -> int:
        if self._http_status is not None:
            return self._http_status
        if self.upstream:
            return 503 if self.kind in RETRIABLE_KINDS else 502
        return HTTP_STATUS_BY_KIND.get(self.kind, (500, "internal_error"))[0]

    @property
    def code(self) -> str:
        if self.upstream:
            return f"upstream_{self.kind.value}"
        return HTTP_STATUS_BY_KIND.get(self.kind, (500, "internal_error"))[1]

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}

    def __repr__(self) -> str:
        return f"AppError(kind={self.kind.value!r}, message={self.message!r})"

    # Constructors for the common kinds

    @classmethod
    def validation(cls, details: Dict[str, Any], message: str = "Validation failed") -> "AppError":
        return cls(ErrorKind.VALIDATION, message, details)

    @classmethod
    def authentication(cls, message: str = "Missing or invalid token", **kwargs) -> "AppError":
        return cls(ErrorKind.AUTHENTICATION, message, **kwargs)

    @classmethod
    def not_found(cls, message: str = "Not found") -> "AppError":
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def conflict(cls, message: str, details: Optional[Dict[str, Any]] = None) -> "AppError":
        return cls(ErrorKind.CONFLICT, message, details)

    @classmethod
    def persistence(cls, message: str, details: Optional[Dict[str, Any]] = None) -> "AppError":
        return cls(ErrorKind.PERSISTENCE, message, details)
