"""
Централизованные обработчики ошибок для FastAPI

Все ответы об ошибке имеют одну форму:
``{"error": <ErrorKind>, "message": str, "detail": {...}, "path": str}``
"""

import json
import logging
import re
import traceback
from typing import Any, Dict, List, Union
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    TimeoutError,
    DisconnectionError,
)
from asyncpg.exceptions import (
    PostgresError,
    ConnectionFailureError,
    ConnectionDoesNotExistError,
    TooManyConnectionsError,
)

from edu_admin.core.config import DEBUG
from edu_admin.core.exceptions import (
    BaseAppException,
    DatabaseError,
    DatabaseConnectionError,
    DatabaseTimeoutError,
    DatabaseIntegrityError,
    ErrorKind,
    StateConflictError,
)
from edu_admin.core.logging_utils import error_tracker

logger = logging.getLogger(__name__)

_CONSTRAINT_NAME = re.compile(r'constraint "([^"]+)"')


def _error_body(request: Request, error: str, message: str, detail: dict) -> dict:
    return {
        "error": error,
        "message": message,
        "detail": detail,
        "path": request.url.path,
    }


def _json_safe(value: Any) -> Any:
    if value is None:
        return None
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


def _format_validation_errors(errors) -> List[Dict[str, Any]]:
    formatted = []
    for error in errors:
        # body -> days, query -> page
        location = [str(loc) for loc in error.get("loc", [])]
        formatted.append(
            {
                "field": ".".join(location[1:]) if len(location) > 1 else ".".join(location),
                "location": location[0] if location else None,
                "message": error.get("msg", "Validation error"),
                "type": error.get("type", "value_error"),
                "input": _json_safe(error.get("input")),
            }
        )
    return formatted


def database_error_to_app_exception(exc: Exception) -> BaseAppException:
    """Ошибка драйвера/ORM -> исключение приложения с нужным кодом"""
    if isinstance(exc, IntegrityError):
        constraint = getattr(exc.orig, "constraint_name", None)
        if not constraint:
            match = _CONSTRAINT_NAME.search(str(exc.orig))
            constraint = match.group(1) if match else "unknown"
        # contract_number уникален
        return DatabaseIntegrityError(constraint, {"original_error": str(exc.orig)})

    if isinstance(
        exc,
        (
            OperationalError,
            DisconnectionError,
            ConnectionFailureError,
            ConnectionDoesNotExistError,
            TooManyConnectionsError,
        ),
    ):
        return DatabaseConnectionError("Database connection failed")

    if isinstance(exc, TimeoutError):
        return DatabaseTimeoutError("database_operation", 30)

    details = {}
    if isinstance(exc, PostgresError):
        details["postgres_code"] = getattr(exc, "sqlstate", None)
    return DatabaseError(f"Database operation failed: {type(exc).__name__}", details)


async def app_exception_handler(
    request: Request, exc: BaseAppException
) -> JSONResponse:
    """Обработчик пользовательских исключений приложения"""

    # Отказы по правилам жизненного цикла это штатный ответ, а не сбой
    if exc.status_code < 500:
        log_level = logging.INFO if isinstance(exc, StateConflictError) else logging.WARNING
    else:
        log_level = logging.ERROR

    logger.log(
        log_level,
        f"{exc.error_code}: {exc.message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method,
        },
    )
    error_tracker.track_error(exc.error_code, exc.message, {"path": request.url.path})

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.error_code, exc.message, exc.details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """404 на неизвестный маршрут, 405 и прочие исключения Starlette"""

    error = ErrorKind.not_found.value if exc.status_code == 404 else "HTTPError"
    logger.warning(
        f"HTTP exception: {exc.status_code} - {exc.detail}",
        extra={"status_code": exc.status_code, "path": request.url.path},
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, error, str(exc.detail), {}),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """Тело или параметры запроса не прошли валидацию -> InvalidInput (400)"""

    fields = _format_validation_errors(exc.errors())

    logger.warning(
        f"Validation error: {len(fields)} field(s)",
        extra={"errors": fields, "path": request.url.path, "method": request.method},
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(
            request,
            ErrorKind.invalid_input.value,
            f"Validation failed for {len(fields)} field(s)",
            {"fields": fields},
        ),
    )


async def database_exception_handler(
    request: Request, exc: Union[SQLAlchemyError, PostgresError]
) -> JSONResponse:
    """Обработчик ошибок SQLAlchemy и asyncpg"""

    logger.error(
        f"Database exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exception_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return await app_exception_handler(request, database_error_to_app_exception(exc))


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
    error_tracker.track_error(type(exc).__name__, str(exc), {"path": request.url.path})

    # В production не показываем детали ошибки
    details = {}
    if DEBUG:
        details = {
            "exception_type": type(exc).__name__,
            "traceback": traceback.format_exc(),
        }

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            request, "InternalServerError", "An unexpected error occurred", details
        ),
    )


def setup_exception_handlers(app):
    """Регистрация всех обработчиков исключений"""

    app.add_exception_handler(BaseAppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)

    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(PostgresError, database_exception_handler)

    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered successfully")
