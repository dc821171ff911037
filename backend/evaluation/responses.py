"""Response envelope and the centralized error formatter.

Every endpoint answers with
`{success, message, data?, error?, errors?, timestamp}`. Controllers build
the success case with `success()`; all failures funnel through the
handlers registered by `install_error_handlers()`, which map each
`ErrorKind` to a status code and never expose storage internals.
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import INTERNAL_ERROR, INVALID_ID, AppError, ErrorKind
from .validation import field_errors

logger = logging.getLogger("evaluation.api")

# kind -> (status code, `error` label)
STATUS_BY_KIND = {
    ErrorKind.VALIDATION: (400, "Validation failed"),
    ErrorKind.NOT_FOUND: (404, "Not found"),
    ErrorKind.CONFLICT: (400, "Conflict"),
    ErrorKind.STORAGE: (500, "Internal server error"),
}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def success(data: Any = None, message: str = "Operation successful", status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "message": message, "data": data, "timestamp": now_iso()},
    )


def error(
    message: str,
    status_code: int = 500,
    error: Optional[str] = None,
    errors: Optional[List[dict]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    body = {"success": False, "message": message, "timestamp": now_iso()}
    if error is not None:
        body["error"] = error
    if errors:
        body["errors"] = errors
    if field is not None:
        body["field"] = field
    return JSONResponse(status_code=status_code, content=body)


def _request_context(request: Request) -> dict:
    return {
        "request_id": getattr(request.state, "request_id", ""),
        "method": request.method,
        "path": request.url.path,
    }


def format_app_error(request: Request, exc: AppError) -> JSONResponse:
    status_code, label = STATUS_BY_KIND[exc.kind]
    if exc.kind == ErrorKind.STORAGE:
        logger.error("storage failure %s: %s (%s)", _request_context(request), exc.message, exc.detail)
        return error(INTERNAL_ERROR, status_code, label)
    logger.warning("%s %s: %s", exc.kind.value, _request_context(request), exc.message)
    return error(exc.message, status_code, label, errors=exc.errors, field=exc.field)


def _entity_for_path(path: str) -> str:
    return "competency" if path.startswith("/competencies") else "subject"


def install_error_handlers(app: FastAPI) -> None:
    """Register the one formatting stage for every failure the app can raise."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return format_app_error(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        raw = list(exc.errors())
        items = field_errors(raw, _entity_for_path(request.url.path))
        in_path = any(err.get("loc", ("",))[0] == "path" for err in raw)
        label = "Invalid parameter" if in_path else "Validation failed"
        message = INVALID_ID if in_path else items[0]["message"]
        logger.warning("validation failed %s: %s", _request_context(request), items)
        return error(message, 400, label, errors=items)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            logger.warning("route not found %s", _request_context(request))
            return error(f"Route {request.method} {request.url.path} not found", 404, "Route not found")
        if exc.status_code == 405:
            return error(f"Method {request.method} not allowed on {request.url.path}", 405, "Method not allowed")
        return error(str(exc.detail), exc.status_code, "Request failed")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error %s", _request_context(request))
        return error("An unexpected error occurred", 500, "Internal server error")
