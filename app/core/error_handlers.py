"""
Централизованные обработчики ошибок для FastAPI

Любая ошибка отдается клиенту в одном формате:
{"success": false, "error": {"kind", "message", "details"}}
"""

import json
import logging
import traceback
from typing import Any, Dict
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from asyncpg.exceptions import PostgresError

from app.core.config import DEBUG
from app.core.exceptions import (
    BaseAppException,
    UnavailableError,
    ValidationError as AppValidationError,
)

logger = logging.getLogger(__name__)

_HTTP_KINDS = {
    status.HTTP_401_UNAUTHORIZED: "Unauthenticated",
    status.HTTP_403_FORBIDDEN: "Forbidden",
    status.HTTP_404_NOT_FOUND: "NotFound",
    status.HTTP_405_METHOD_NOT_ALLOWED: "MethodNotAllowed",
}


def error_response(
    status_code: int, kind: str, message: str, details: Dict[str, Any] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"kind": kind, "message": message, "details": details or {}},
        },
    )


async def app_exception_handler(
    request: Request, exc: BaseAppException
) -> JSONResponse:
    """Обработчик пользовательских исключений приложения"""

    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"App exception: {exc.kind} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method,
        },
    )

    response = error_response(exc.status_code, exc.kind, exc.message, exc.details)
    if exc.retryable:
        response.headers["Retry-After"] = "1"
    return response


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Обработчик стандартных HTTP исключений (неизвестный путь, метод)"""

    logger.warning(
        f"HTTP exception: {exc.status_code} - {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    kind = _HTTP_KINDS.get(exc.status_code, "HttpError")
    return error_response(exc.status_code, kind, str(exc.detail))


def _safe_input(value: Any) -> Any:
    if value is None:
        return None
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Ошибки валидации тела, query и path параметров"""

    formatted_errors = []
    for error in exc.errors():
        formatted_errors.append(
            {
                "field": " -> ".join(str(loc) for loc in error.get("loc", [])),
                "message": error.get("msg", "Validation error"),
                "type": error.get("type", "value_error"),
                "input": _safe_input(error.get("input")),
            }
        )

    logger.warning(
        f"Validation error: {len(formatted_errors)} field(s)",
        extra={
            "errors": formatted_errors,
            "path": request.url.path,
            "method": request.method,
        },
    )

    app_exc = AppValidationError(
        f"Validation failed for {len(formatted_errors)} field(s)",
        details={"fields": formatted_errors},
    )
    return error_response(app_exc.status_code, app_exc.kind, app_exc.message, app_exc.details)


async def database_exception_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Инфраструктурные ошибки хранилища отдаются как Unavailable"""

    logger.error(
        f"Database exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exception_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
    )

    return await app_exception_handler(request, UnavailableError())


async def postgres_exception_handler(
    request: Request, exc: PostgresError
) -> JSONResponse:
    """Ошибки asyncpg, не обернутые SQLAlchemy"""

    logger.error(
        f"PostgreSQL exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exception_type": type(exc).__name__,
            "postgres_code": getattr(exc, "sqlstate", None),
            "path": request.url.path,
            "method": request.method,
        },
    )

    return await app_exception_handler(request, UnavailableError())


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Обработчик всех остальных исключений"""

    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exception_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
    )

    # В production не показываем детали ошибки
    details = {}
    if DEBUG:
        details = {
            "exception_type": type(exc).__name__,
            "traceback": traceback.format_exc(),
        }

    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalError",
        "An unexpected error occurred",
        details,
    )


def setup_exception_handlers(app):
    """Регистрация всех обработчиков исключений"""

    app.add_exception_handler(BaseAppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)

    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(PostgresError, postgres_exception_handler)

    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered successfully")
