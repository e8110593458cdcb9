"""
Central API router and utilities for the LearnIQ service.

This module provides:
- The main router that feature routers are registered on
- The standard response envelope
- Exception handlers mapping errors to HTTP responses
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from learniq.common.error_handling import (
    ErrorCode, LearnIQError, RateLimitError, error_response, log_error
)
from learniq.common.logger import app_logger

logger = app_logger.getChild("api")

main_router = APIRouter()

registered_modules: Dict[str, APIRouter] = {}


def register_module(name: str, router: APIRouter) -> None:
    """Include a feature router on the main router."""
    if name in registered_modules:
        logger.warning(f"Module '{name}' already registered, overwriting")

    main_router.include_router(router)
    registered_modules[name] = router
    logger.info(f"Registered module: {name} with {len(router.routes)} routes")


class APIResponse:
    """Standard API response structure"""

    @staticmethod
    def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        return {
            "status": "success",
            "message": message,
            "data": data
        }

    @staticmethod
    def error(message: str, details: Optional[Any] = None,
              code: Optional[str] = None) -> Dict[str, Any]:
        response = {
            "status": "error",
            "message": message
        }

        if details:
            response["details"] = details

        if code:
            response["code"] = code

        return response


def _user_context(request: Request) -> Dict[str, Any]:
    context = {"path": request.url.path, "method": request.method}
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer ") and not request.url.path.startswith("/api/cron"):
        context["user_id"] = authorization.split(None, 1)[1]
    return context


async def learniq_exception_handler(request: Request, exc: LearnIQError) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    log_error(exc, level=level, include_stack_trace=exc.status_code >= 500, context=_user_context(request))

    headers = exc.headers if isinstance(exc, RateLimitError) else None
    return JSONResponse(status_code=exc.status_code, content=error_response(exc), headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body and query validation failures are client errors (400)."""
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": list(error.get("loc", [])),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=APIResponse.error("Validation error", error_details, ErrorCode.VALIDATION_ERROR.value)
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error(exc, context=_user_context(request))
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_response(exc))


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LearnIQError, learniq_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
