"""Error taxonomy shared by services and controllers.

Every failure the API reports is an :class:`ApiError` subclass. The exception
handler registered in :mod:`cropscan.main` renders them as
``{"code": ..., "message": ...}`` bodies with the matching status code.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel


class ErrorCode(str, Enum):
    MISSING_FILE = "MISSING_FILE"
    UNSUPPORTED_TYPE = "UNSUPPORTED_TYPE"
    TOO_LARGE = "TOO_LARGE"
    NO_FARM = "NO_FARM"
    INVALID_FARM = "INVALID_FARM"
    INVALID_PERIOD = "INVALID_PERIOD"
    UNAUTHORIZED = "UNAUTHORIZED"
    UPGRADE_REQUIRED = "UPGRADE_REQUIRED"
    NOT_FOUND = "NOT_FOUND"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    CLIENT_CLOSED = "CLIENT_CLOSED"
    CONFIG_ERROR = "CONFIG_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    AI_PARSE_FAILURE = "AI_PARSE_FAILURE"
    AI_TIMEOUT = "AI_TIMEOUT"
    AI_UNAVAILABLE = "AI_UNAVAILABLE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class ErrorResponse(BaseModel):
    code: str
    message: str


class ParseFailureResponse(ErrorResponse):
    error: str
    raw: str


class ApiError(Exception):
    status_code = 500
    default_code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_body(self) -> dict[str, Any]:
        return ErrorResponse(code=self.code.value, message=self.message).model_dump()


class ValidationError(ApiError):
    """Client-fixable request problem (bad upload, unknown farm, bad period)."""

    status_code = 400
    default_code = ErrorCode.MISSING_FILE


class AuthError(ApiError):
    status_code = 401
    default_code = ErrorCode.UNAUTHORIZED


class NotFoundError(ApiError):
    status_code = 404
    default_code = ErrorCode.NOT_FOUND


class UpgradeRequiredError(ApiError):
    status_code = 426
    default_code = ErrorCode.UPGRADE_REQUIRED


class RateLimitedError(ApiError):
    status_code = 429
    default_code = ErrorCode.TOO_MANY_REQUESTS


class ClientDisconnectedError(ApiError):
    # nginx convention for "client closed request"
    status_code = 499
    default_code = ErrorCode.CLIENT_CLOSED


class ConfigError(ApiError):
    status_code = 500
    default_code = ErrorCode.CONFIG_ERROR


class PersistenceError(ApiError):
    status_code = 500
    default_code = ErrorCode.PERSISTENCE_ERROR


class UnknownError(ApiError):
    status_code = 500
    default_code = ErrorCode.INTERNAL_ERROR


class UpstreamParseError(ApiError):
    """Model output could not be turned into a diagnostic payload."""

    status_code = 502
    default_code = ErrorCode.AI_PARSE_FAILURE

    def __init__(self, message: str, raw: str) -> None:
        super().__init__(message)
        self.raw = raw

    def to_body(self) -> dict[str, Any]:
        return ParseFailureResponse(
            code=self.code.value,
            message=self.message,
            error="Failed to parse AI response",
            raw=self.raw,
        ).model_dump()


class UpstreamTimeoutError(ApiError):
    status_code = 502
    default_code = ErrorCode.AI_TIMEOUT


class UpstreamUnavailableError(ApiError):
    status_code = 502
    default_code = ErrorCode.AI_UNAVAILABLE


class ServiceUnavailableError(ApiError):
    status_code = 503
    default_code = ErrorCode.SERVICE_UNAVAILABLE


__all__ = [
    "ApiError",
    "AuthError",
    "ClientDisconnectedError",
    "ConfigError",
    "ErrorCode",
    "ErrorResponse",
    "NotFoundError",
    "ParseFailureResponse",
    "PersistenceError",
    "RateLimitedError",
    "ServiceUnavailableError",
    "UnknownError",
    "UpgradeRequiredError",
    "UpstreamParseError",
    "UpstreamTimeoutError",
    "UpstreamUnavailableError",
    "ValidationError",
]
