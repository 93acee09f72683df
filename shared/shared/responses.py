"""
Standardized API response format for all endpoints.
"""
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import AppError

logger = logging.getLogger(__name__)


class ApiResponse:
    """
    Standardized API response format.

    Format:
    {
        "success": boolean,
        "message": string,
        "data": object | null
    }
    """

    @staticmethod
    def success(
        data: Any = None,
        message: str = "Success",
        status_code: int = status.HTTP_200_OK,
    ) -> JSONResponse:
        """
        Create a successful response.

        Args:
            data: Response data
            message: Success message
            status_code: HTTP status code

        Returns:
            JSONResponse with the envelope
        """
        return JSONResponse(
            status_code=status_code,
            content={
                "success": True,
                "message": message,
                "data": jsonable_encoder(data),
            },
        )

    @staticmethod
    def created(data: Any = None, message: str = "Resource created") -> JSONResponse:
        return ApiResponse.success(data=data, message=message, status_code=status.HTTP_201_CREATED)

    @staticmethod
    def error(
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ) -> JSONResponse:
        """
        Create an error response.

        Args:
            message: Human readable error message
            status_code: HTTP status code

        Returns:
            JSONResponse with the envelope and ``data`` set to null
        """
        return JSONResponse(
            status_code=status_code,
            content={
                "success": False,
                "message": message,
                "data": None,
            },
        )


def _format_location(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts)


def validation_message(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        field = _format_location(err.get("loc", ()))
        msg = err.get("msg", "Invalid value")
        messages.append(f"{field}: {msg}" if field else msg)
    return ". ".join(messages) or "Invalid request"


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
    return ApiResponse.error(exc.message, status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return ApiResponse.error(validation_message(exc), status_code=status.HTTP_400_BAD_REQUEST)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return ApiResponse.error(message, status_code=exc.status_code)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return ApiResponse.error("Internal server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
