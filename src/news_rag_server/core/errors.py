"""
Global Error Handling

Application-wide exception handlers. Every error leaves the API as a JSON
object with an ``error`` message; outside production, unexpected failures also
carry the exception text under ``details``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import Request
from fastapi.responses import JSONResponse

from ..config import settings

logger = logging.getLogger("news_rag.errors")


async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unknown routes answer with the requested path instead of a bare 404."""
    return JSONResponse(
        status_code=404,
        content={"error": "Endpoint not found", "path": request.url.path},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Final safety net for exceptions no route handled.

    Parameters
    ----------
    request : Request
        The request being served when the exception escaped.

    exc : Exception
        The uncaught exception.

    Returns
    -------
    JSONResponse
        Status 500 with ``{"error": "Internal server error"}``, plus
        ``details`` when not running in production.
    """
    logger.exception(
        "Unhandled error during %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {"error": "Internal server error"}
    if not settings.is_production:
        payload["details"] = str(exc)

    return JSONResponse(status_code=500, content=payload)
