"""
projecthub/errors.py

Error taxonomy and the JSON envelope every failure is rendered into.

Services raise these; register_exception_handlers() maps them onto
`{success: false, message, errors?, error?}` responses.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from projecthub import config


class ProjectHubError(Exception):
    """Base class for errors that render as a JSON envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(ProjectHubError):
    status_code = status.HTTP_400_BAD_REQUEST

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class CapacityExceededError(ValidationError):
    """A staffing change would push a user past their project ceiling."""


class AuthenticationError(ProjectHubError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(ProjectHubError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ProjectHubError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ProjectHubError):
    status_code = status.HTTP_409_CONFLICT


class ServerError(ProjectHubError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def server_error_body(exc: Exception) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": "Server error"}
    if config.IS_DEV:
        body["error"] = str(exc)
    return body


def _validation_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    errors = []
    for err in exc.errors():
        # Drop the "body"/"query"/"path" prefix FastAPI puts on locations
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        errors.append({"field": ".".join(loc) or "request", "message": err.get("msg", "Invalid value")})
    return errors


async def projecthub_error_handler(request: Request, exc: ProjectHubError) -> JSONResponse:
    if isinstance(exc, ServerError):
        print(f"[ERROR] {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=server_error_body(exc))
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = _validation_errors(exc)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    print(f"[ERROR] Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=server_error_body(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProjectHubError, projecthub_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
