"""Response envelope and the exception handlers that produce it.

Success: {"success": true, "message"?, "data"?}
Failure: {"success": false, "message", "errors"?, "stack"?}
"""
from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import AppError

logger = logging.getLogger(__name__)


def ok(data=None, message: str | None = None) -> dict:
    body: dict = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def page(items_key: str, items: list, pagination: dict) -> dict:
    return ok({items_key: items, "pagination": pagination})


def _failure(
    status_code: int,
    message: str,
    errors=None,
    exc: Exception | None = None,
    show_stack: bool = False,
) -> JSONResponse:
    body: dict = {"success": False, "message": message}
    if errors:
        body["errors"] = jsonable_encoder(errors)
    if show_stack and exc is not None:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI, show_stack: bool = False) -> None:
    """Map every failure to the envelope. Stacks are included only when asked."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _failure(exc.status_code, exc.message, exc.errors, exc, show_stack)

    @app.exception_handler(RequestValidationError)
    async def handle_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return _failure(400, "Invalid request", errors)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http(request: Request, exc: StarletteHTTPException):
        return _failure(exc.status_code, str(exc.detail))

    @app.exception_handler(IntegrityError)
    async def handle_integrity(request: Request, exc: IntegrityError):
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return _failure(400, "Request conflicts with the current state", exc=exc,
                        show_stack=show_stack)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _failure(500, "Internal server error", exc=exc, show_stack=show_stack)
