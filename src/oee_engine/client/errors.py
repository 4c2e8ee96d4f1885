"""Compute-service error taxonomy and the typed success/failure envelope.

Every client call resolves to ``ApiSuccess`` or ``ApiFailure``; nothing is
raised across the client boundary. Callers that prefer exceptions use
``unwrap()`` / ``raise_error()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, NoReturn, Optional, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError

from oee_engine.validation.issues import ValidationIssue

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIMEOUT = "TIMEOUT"
NETWORK_ERROR = "NETWORK_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"
VALIDATION_FAILED = "VALIDATION_FAILED"

_TRANSPORT_CODES = frozenset({TIMEOUT, NETWORK_ERROR})


class ErrorCategory(str, Enum):
    CALLER = "caller"  # 4xx: bad request or failed validation
    COMPUTE = "compute"  # 5xx: the service failed
    TRANSPORT = "transport"  # timeout, connection refused, reset
    UNKNOWN = "unknown"


class ApiError(BaseModel):
    """Translation-ready error, in the service's ``{code, message_key, params}`` shape."""

    code: str
    message_key: str
    params: dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def category(self) -> ErrorCategory:
        if self.code in _TRANSPORT_CODES:
            return ErrorCategory.TRANSPORT
        if self.status_code is not None:
            if 400 <= self.status_code < 500:
                return ErrorCategory.CALLER
            if self.status_code >= 500:
                return ErrorCategory.COMPUTE
        return ErrorCategory.UNKNOWN

    @property
    def retryable(self) -> bool:
        return self.category is ErrorCategory.TRANSPORT

    @property
    def validation_issues(self) -> list[ValidationIssue]:
        """Issues carried by a ``VALIDATION_FAILED`` error, decoded."""
        if self.code != VALIDATION_FAILED:
            return []
        issues = []
        for raw in self.params.get("issues") or []:
            try:
                issues.append(ValidationIssue.model_validate(raw))
            except ValidationError:
                logger.debug("Skipping malformed validation issue in error params: %r", raw)
        return issues

    # -- constructors for client-side failures --------------------------------

    @classmethod
    def timeout(cls, detail: str | None = None) -> ApiError:
        return cls(code=TIMEOUT, message_key="api.error.timeout", message=detail or "Request timed out")

    @classmethod
    def network(cls, detail: str) -> ApiError:
        return cls(code=NETWORK_ERROR, message_key="api.error.network", message=detail)

    @classmethod
    def unknown(cls, detail: str | None = None) -> ApiError:
        return cls(code=UNKNOWN_ERROR, message_key="api.error.unknown", message=detail or "An unknown error occurred")

    @classmethod
    def parse_failed(cls, status_code: int, reason: str | None = None) -> ApiError:
        return cls(
            code=f"HTTP_{status_code}",
            message_key="api.error.parse_failed",
            message=reason,
            status_code=status_code,
        )


class OeeApiException(Exception):
    """Raised only on request, via ``unwrap()`` / ``raise_error()``."""

    def __init__(self, error: ApiError):
        self.error = error
        super().__init__(f"{error.code}: {error.message or error.message_key}")


@dataclass(frozen=True)
class ApiSuccess(Generic[T]):
    data: T

    @property
    def success(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.data


@dataclass(frozen=True)
class ApiFailure:
    error: ApiError

    @property
    def success(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        raise OeeApiException(self.error)

    def raise_error(self) -> NoReturn:
        raise OeeApiException(self.error)


ApiResponse = Union[ApiSuccess[T], ApiFailure]
