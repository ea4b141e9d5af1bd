"""
Errors reported by the access-control backend.

Every failure is an AppError subclass with a stable machine-readable code.
They are local and recoverable; none is fatal to the process. Clients get

    {"error": {"code": ..., "message": ..., "details": {...}}}

plus an X-Correlation-ID header, and never a stack trace.

Codes and HTTP statuses:
- VALIDATION_ERROR (400): bad input, e.g. empty store name
- AUTHENTICATION_ERROR (401): no resolvable caller identity
- STORE_ACCESS_DENIED (403): selecting a store outside the resolved access
- UNAUTHORIZED_OPERATION (403): non-admin/non-owner directory mutation
- NOT_FOUND (404): token, store, brand, profile or association absent
- INVALID_TRANSITION (409): state machine violation
- INVITATION_NOT_PENDING (409): lost an accept race or already consumed
- DUPLICATE_ACTIVE_INVITATION (409)
- DUPLICATE_STORE_NAME (409)
- BRAND_IN_USE (409)
- INVITATION_EXPIRED (410)
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class AppError(Exception):
    """
    Base error. Subclasses pin ``code`` and ``status_code``; ad-hoc errors
    (e.g. TOKEN_GENERATION_FAILED) pass them explicitly.
    """

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(AppError):
    code = "AUTHENTICATION_ERROR"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required", details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Optional[str] = None):
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message, {"resource": resource})
        self.resource = resource


class InvalidTransitionError(AppError):
    """Invitation state machine violation, e.g. cancel on an accepted row."""

    code = "INVALID_TRANSITION"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} invitation with status {current_status}",
            {"current_status": current_status, "action": action},
        )
        self.current_status = current_status
        self.action = action


class InvitationNotPendingError(AppError):
    """Already consumed or withdrawn. Callers must not retry the token."""

    code = "INVITATION_NOT_PENDING"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current_status: str):
        super().__init__(f"Invitation is {current_status}", {"current_status": current_status})
        self.current_status = current_status


class InvitationExpiredError(AppError):
    code = "INVITATION_EXPIRED"
    status_code = status.HTTP_410_GONE

    def __init__(self, message: str = "Invitation has expired"):
        super().__init__(message)


class DuplicateActiveInvitationError(AppError):
    code = "DUPLICATE_ACTIVE_INVITATION"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, store_id: str):
        super().__init__(
            "An active invitation already exists for this email and store",
            {"store_id": store_id},
        )


class DuplicateStoreNameError(AppError):
    code = "DUPLICATE_STORE_NAME"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, name: str):
        super().__init__(f"An active store named '{name}' already exists", {"name": name})


class BrandInUseError(AppError):
    code = "BRAND_IN_USE"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, brand_id: str, product_count: int):
        super().__init__(
            "Brand is referenced by products and cannot be deleted",
            {"brand_id": brand_id, "product_count": product_count},
        )


class StoreAccessDeniedError(AppError):
    """
    Store outside the caller's resolved access.

    The message is fixed whatever the caller passes, so a response never
    tells apart a foreign store from one that does not exist.
    """

    code = "STORE_ACCESS_DENIED"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Access to store denied"):
        super().__init__("Access to store denied")


class UnauthorizedOperationError(AppError):
    code = "UNAUTHORIZED_OPERATION"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Operation not permitted", details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id(request: Request) -> str:
    """Incoming X-Correlation-ID, else one already on request.state, else a new one."""
    return (
        request.headers.get(CORRELATION_HEADER)
        or getattr(request.state, "correlation_id", None)
        or generate_correlation_id()
    )


def error_response(
    status_code: int,
    code: str,
    message: str,
    correlation_id: str,
    details: Optional[dict[str, Any]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "details": details or {}}},
        headers={CORRELATION_HEADER: correlation_id},
    )


def app_error_response(error: AppError, correlation_id: str) -> JSONResponse:
    return error_response(
        error.status_code, error.code, error.message, correlation_id, error.details
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Renders every exception escaping a route in the common error shape and
    stamps X-Correlation-ID on all responses.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = get_correlation_id(request)
        request.state.correlation_id = correlation_id
        log_context = {
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
        }

        try:
            response = await call_next(request)
        except AppError as e:
            logger.warning(
                "Application error",
                extra={**log_context, "error_code": e.code, "status_code": e.status_code},
            )
            return app_error_response(e, correlation_id)
        except HTTPException as e:
            logger.warning(
                "HTTP exception",
                extra={**log_context, "status_code": e.status_code, "detail": e.detail},
            )
            return error_response(e.status_code, "HTTP_ERROR", str(e.detail), correlation_id)
        except Exception as e:
            logger.exception(
                "Unhandled exception",
                extra={**log_context, "error_type": type(e).__name__},
            )
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_ERROR",
                "An unexpected error occurred",
                correlation_id,
                {"correlation_id": correlation_id},
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
