"""
Error envelope for the care-team HTTP API.

Every failure, whether a domain rejection, a malformed body, an unknown
route or an unexpected crash, is answered with the same JSON shape
(``ErrorResponse``) and carries the request id that also appears in the
logs. Domain errors keep their own ``code``; the HTTP status follows from
the code.

Usage:
    from security.api_errors import APIError, ErrorCode

    raise APIError(code=ErrorCode.AUTH_REQUIRED, message="X-Actor-Id header is required")
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from domain.clock import utcnow
from domain.exceptions import CareTeamError, ValidationError
from services.logging_config import actor_id_var, request_id_var

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Codes a client can branch on."""

    AUTH_REQUIRED = "AUTH_REQUIRED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    CLIENT_ARCHIVED = "CLIENT_ARCHIVED"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    CARE_TEAM_ERROR = "CARE_TEAM_ERROR"
    SERVER_INTERNAL_ERROR = "SERVER_INTERNAL_ERROR"


ERROR_CODE_STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.AUTH_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RESOURCE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.CLIENT_ARCHIVED: status.HTTP_403_FORBIDDEN,
    ErrorCode.METHOD_NOT_ALLOWED: status.HTTP_405_METHOD_NOT_ALLOWED,
    ErrorCode.CARE_TEAM_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.SERVER_INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Framework HTTPExceptions (unknown route, wrong verb) mapped back to codes
_STATUS_CODE_MAP: Dict[int, ErrorCode] = {
    code_status: code
    for code, code_status in ERROR_CODE_STATUS_MAP.items()
    if code is not ErrorCode.CARE_TEAM_ERROR
}


class FieldError(BaseModel):
    """One offending input field."""
    field: str = Field(..., description="Field path, camelCase as sent")
    message: str
    code: str = Field(default="invalid")


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""
    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": True,
            "code": "RESOURCE_CONFLICT",
            "message": "Staff member is restricted for this client; remove the restriction first",
            "status_code": 409,
            "timestamp": "2026-01-29T12:00:00Z",
            "request_id": "550e8400-e29b-41d4-a716-446655440000",
            "path": "/clients/6f1c.../staff-preferences",
            "details": {"restriction_id": "2b7e..."},
            "field_errors": None,
        }
    })

    error: bool = True
    code: str
    message: str
    status_code: int
    timestamp: str
    request_id: str
    path: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    field_errors: Optional[List[FieldError]] = None


class APIError(Exception):
    """
    An error raised by the HTTP layer itself (missing actor header), or a
    domain error on its way out (``APIError.from_domain``).
    """

    def __init__(
        self,
        code: Union[ErrorCode, str],
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        field_errors: Optional[List[FieldError]] = None,
    ):
        self.code = ErrorCode(code)
        self.message = message
        self.status_code = status_code or ERROR_CODE_STATUS_MAP[self.code]
        self.details = details
        self.field_errors = field_errors
        super().__init__(message)

    @classmethod
    def from_domain(cls, exc: CareTeamError) -> "APIError":
        field_errors = None
        if isinstance(exc, ValidationError) and exc.field:
            field_errors = [FieldError(field=exc.field, message=exc.message)]
        return cls(
            code=exc.code,
            message=exc.message,
            details=exc.details or None,
            field_errors=field_errors,
        )

    def to_response(self, request_id: str, path: Optional[str] = None) -> ErrorResponse:
        return ErrorResponse(
            code=self.code.value,
            message=self.message,
            status_code=self.status_code,
            timestamp=utcnow().isoformat() + "Z",
            request_id=request_id,
            path=path,
            details=self.details,
            field_errors=self.field_errors,
        )


def get_request_id(request: Request) -> str:
    """Request id set by RequestIDMiddleware, else the header, else a new one."""
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get("X-Request-ID")
        or str(uuid.uuid4())
    )


def _error_json(exc: APIError, request: Request) -> JSONResponse:
    request_id = get_request_id(request)
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        "%s %s rejected: %s %s",
        request.method, request.url.path, exc.code.value, exc.message,
        extra={"extra_data": {"status_code": exc.status_code, "details": exc.details}},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(request_id, request.url.path).model_dump(),
        headers={"X-Request-ID": request_id},
    )


def _body_field(loc) -> str:
    return ".".join(str(part) for part in loc if part != "body") or "body"


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope for every error the app can raise."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        return _error_json(exc, request)

    @app.exception_handler(CareTeamError)
    async def domain_error_handler(request: Request, exc: CareTeamError) -> JSONResponse:
        return _error_json(APIError.from_domain(exc), request)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        field_errors = [
            FieldError(field=_body_field(error["loc"]), message=error["msg"], code=error["type"])
            for error in exc.errors()
        ]
        return _error_json(
            APIError(
                code=ErrorCode.VALIDATION_ERROR,
                message="Request validation failed",
                field_errors=field_errors,
            ),
            request,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_json(
            APIError(
                code=_STATUS_CODE_MAP.get(exc.status_code, ErrorCode.SERVER_INTERNAL_ERROR),
                message=str(exc.detail) if exc.detail else "An error occurred",
                status_code=exc.status_code,
            ),
            request,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # Internals stay in the log; the client only gets the reference id
        request_id = get_request_id(request)
        logger.error(
            "Unhandled %s on %s %s",
            type(exc).__name__, request.method, request.url.path,
            exc_info=exc,
        )
        api_error = APIError(
            code=ErrorCode.SERVER_INTERNAL_ERROR,
            message="An unexpected error occurred. Please try again later.",
            details={"support": f"Reference ID: {request_id}"},
        )
        return JSONResponse(
            status_code=api_error.status_code,
            content=api_error.to_response(request_id, request.url.path).model_dump(),
            headers={"X-Request-ID": request_id},
        )


class RequestIDMiddleware:
    """
    Pure ASGI middleware giving each request an id.

    The caller's ``X-Request-ID`` is reused when present. The id is bound
    to the logging context, stored on ``request.state`` and echoed on the
    response. The actor context is cleared per request.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = dict(scope.get("headers", [])).get(b"x-request-id", b"").decode()
        request_id = incoming or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_id(message):
            if message["type"] == "http.response.start":
                message["headers"] = [
                    (k, v) for k, v in message.get("headers", []) if k.lower() != b"x-request-id"
                ] + [(b"x-request-id", request_id.encode())]
            await send(message)

        request_token = request_id_var.set(request_id)
        actor_token = actor_id_var.set(None)
        try:
            await self.app(scope, receive, send_with_id)
        finally:
            actor_id_var.reset(actor_token)
            request_id_var.reset(request_token)
