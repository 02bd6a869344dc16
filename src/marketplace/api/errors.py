"""Map :class:`~marketplace.errors.AppError` onto JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from marketplace.errors import AppError

logger = structlog.get_logger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, code=exc.code, status=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.to_dict()})


def install_error_handlers(app: FastAPI) -> None:
    """Protean's own handlers plus the coded-error handler."""
    register_exception_handlers(app)
    app.add_exception_handler(AppError, app_error_handler)
