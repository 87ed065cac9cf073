from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .exceptions import FederatedIdentityError

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"


def _status_title(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def _split_detail(detail: Any, status_code: int) -> tuple[str, str]:
    """Route handlers raise ``{"detail": ..., "error_code": ...}`` dicts;
    anything else gets a code derived from the status."""
    fallback_code = f"http_{status_code}"
    if isinstance(detail, dict):
        return (
            str(detail.get("detail") or _status_title(status_code)),
            str(detail.get("error_code") or fallback_code),
        )
    if not detail:
        return _status_title(status_code), fallback_code
    return str(detail), fallback_code


def problem_response(
    *,
    request: Request,
    status_code: int,
    detail: str,
    error_code: str,
    headers: dict[str, str] | None = None,
    extra: dict[str, Any] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {
        "type": "about:blank",
        "title": _status_title(status_code),
        "status": status_code,
        "detail": detail,
        "instance": str(request.url.path),
        "error_code": error_code,
    }
    content.update(extra or {})
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers,
        media_type=PROBLEM_MEDIA_TYPE,
    )


async def identity_error_handler(
    request: Request, exc: FederatedIdentityError
) -> JSONResponse:
    # 5xx here means the provider misbehaved, not the caller.
    log = logger.warning if exc.status_code >= 500 else logger.info
    log(
        "Federated identity request failed",
        extra={"error_code": exc.error_code, "path": request.url.path},
    )
    return problem_response(
        request=request,
        status_code=exc.status_code,
        detail=exc.message,
        error_code=exc.error_code,
        extra=exc.problem_extra(),
    )


async def http_exception_handler(
    request: Request, exc: HTTPException | StarletteHTTPException
) -> JSONResponse:
    detail, error_code = _split_detail(exc.detail, exc.status_code)
    return problem_response(
        request=request,
        status_code=exc.status_code,
        detail=detail,
        error_code=error_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return problem_response(
        request=request,
        status_code=422,
        detail="Request validation failed",
        error_code="validation_error",
        extra={"errors": exc.errors()},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"path": request.url.path}, exc_info=exc)
    return problem_response(
        request=request,
        status_code=500,
        detail="Internal Server Error",
        error_code="http_500",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FederatedIdentityError, identity_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
