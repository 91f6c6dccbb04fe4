"""Error codes for standardized API error responses.

Maps HTTP status codes to semantic error codes for consistent client-side handling,
and domain exceptions to HTTP responses.
"""

import logging
from enum import Enum

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.services.github.exceptions import (
    GithubConfigurationError,
    GithubError,
    GithubNotFoundError,
    GithubPermissionError,
    GithubRateLimitError,
)
from app.services.onboarding_exceptions import (
    FetchCandidatesFailed,
    InvalidOnboardingTransition,
    OnboardingError,
    WorkflowAborted,
    WorkflowNotFound,
)
from app.services.session import SignInError
from app.store.exceptions import StoreError, StoreErrorCode

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    UNPROCESSABLE = "UNPROCESSABLE"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    GATEWAY_ERROR = "GATEWAY_ERROR"


# HTTP status code to ErrorCode mapping
STATUS_TO_ERROR_CODE: dict[int, ErrorCode] = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
    500: ErrorCode.INTERNAL_ERROR,
    502: ErrorCode.GATEWAY_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def get_error_code(status_code: int) -> ErrorCode:
    """Get ErrorCode from HTTP status code."""
    return STATUS_TO_ERROR_CODE.get(status_code, ErrorCode.INTERNAL_ERROR)


# Domain exception -> HTTP status
STORE_ERROR_STATUS: dict[StoreErrorCode, int] = {
    StoreErrorCode.NOT_FOUND: 404,
    StoreErrorCode.ALREADY_EXISTS: 409,
    StoreErrorCode.PERMISSION_DENIED: 403,
    StoreErrorCode.UNAVAILABLE: 503,
    StoreErrorCode.DECODE: 502,
    StoreErrorCode.UNKNOWN: 500,
}


def error_response(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": get_error_code(status_code).value},
    )


def onboarding_error_status(exc: OnboardingError) -> int:
    if isinstance(exc, WorkflowNotFound):
        return 404
    if isinstance(exc, WorkflowAborted):
        return 410
    if isinstance(exc, InvalidOnboardingTransition):
        return 409
    if isinstance(exc, FetchCandidatesFailed):
        return 502
    return 400


def github_error_status(exc: GithubError) -> int:
    if isinstance(exc, GithubRateLimitError):
        return 429
    if isinstance(exc, GithubPermissionError):
        return 403
    if isinstance(exc, GithubNotFoundError):
        return 404
    if isinstance(exc, GithubConfigurationError):
        return 503
    return 502


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    status_code = STORE_ERROR_STATUS.get(exc.code, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return error_response(status_code, str(exc))


async def _onboarding_error_handler(request: Request, exc: OnboardingError) -> JSONResponse:
    return error_response(onboarding_error_status(exc), str(exc))


async def _sign_in_error_handler(request: Request, exc: SignInError) -> JSONResponse:
    return error_response(400, exc.message)


async def _github_error_handler(request: Request, exc: GithubError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path}: GitHub call failed: {exc}")
    return error_response(github_error_status(exc), str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StoreError, _store_error_handler)
    app.add_exception_handler(OnboardingError, _onboarding_error_handler)
    app.add_exception_handler(SignInError, _sign_in_error_handler)
    app.add_exception_handler(GithubError, _github_error_handler)
