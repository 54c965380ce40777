"""Exception handlers that render every failure as ``{"error": ..., "code": ...}``."""

from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from flex_rental.core.exceptions import RentalCoreException


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = [str(loc) for loc in error.get("loc", []) if loc != "body"]
        message = error.get("msg", "Invalid input")
        if location:
            messages.append(f"{'.'.join(location)}: {message}")
        else:
            messages.append(message)
    return "; ".join(messages) if messages else "Invalid request"


def _detail_message(detail: Any) -> str:
    if isinstance(detail, str):
        return detail
    if detail is None:
        return "An error occurred"
    return str(detail)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RentalCoreException)
    async def rental_exception_handler(request: Request, exc: RentalCoreException):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": _validation_message(exc), "code": "VALIDATION_ERROR"},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        response = JSONResponse(
            status_code=exc.status_code, content={"error": _detail_message(exc.detail)}
        )
        if exc.headers:
            for key, value in exc.headers.items():
                response.headers[key] = value
        return response

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception while processing {request.method} {request.url}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
