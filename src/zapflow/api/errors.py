"""
Error handlers — map zapflow errors to JSON responses.

``ZapflowError.to_dict()`` is the response body; the HTTP status follows the
error category.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from zapflow.core.errors import ErrorCategory, ZapflowError
from zapflow.core.logging import get_logger

logger = get_logger(__name__)

CATEGORY_TO_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.CONFIG: 500,
    ErrorCategory.SCHEDULE: 400,
    ErrorCategory.AUTH: 401,
}


def status_for_error(error: ZapflowError) -> int:
    if error.retryable:
        return CATEGORY_TO_STATUS.get(error.category, 503)
    return CATEGORY_TO_STATUS.get(error.category, 500)


async def zapflow_error_handler(request: Request, exc: ZapflowError) -> JSONResponse:
    status = status_for_error(exc)
    logger.warning("request_failed", path=request.url.path, status=status, **exc.to_dict())
    return JSONResponse(status_code=status, content={"success": False, "error": exc.to_dict()})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — returns 500."""
    logger.exception("request_crashed", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": {"message": "An unexpected error occurred."}},
    )


__all__ = ["status_for_error", "unhandled_exception_handler", "zapflow_error_handler"]
