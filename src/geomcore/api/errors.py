"""
Terminal error handling for the HTTP surface.

Every failure ends up here. The full detail is logged server-side; the
client gets ``{"message": ...}`` plus ``"stack"`` outside production.
"""

import logging
import traceback
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import GeomCoreError

logger = logging.getLogger(__name__)


def error_body(message: str, exc: BaseException, include_stack: bool) -> Dict[str, Any]:
    body: Dict[str, Any] = {"message": message}
    if include_stack:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def install_error_handlers(app: FastAPI, production: bool) -> None:
    include_stack = not production

    @app.exception_handler(GeomCoreError)
    async def _geomcore_error(request: Request, exc: GeomCoreError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        else:
            logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc, include_stack))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content=error_body(message, exc, include_stack))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        where = ".".join(str(p) for p in first.get("loc", ()))
        message = f"Invalid request: {where} {first.get('msg', '')}".strip()
        return JSONResponse(status_code=422, content=error_body(message, exc, include_stack))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body(str(exc) or exc.__class__.__name__, exc, include_stack))
