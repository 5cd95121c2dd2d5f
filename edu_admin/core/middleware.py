import logging
import re
import time
import uuid
from typing import Callable, Optional
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from edu_admin.core.logging_utils import error_tracker, request_id_var

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_PATHS = ["/health", "/docs", "/openapi.json", "/redoc"]

# /api/students/{id}/freeze, /api/contracts/{id}/confirm
_RECORD_PATH = re.compile(r"/(?:students|contracts)/([^/]+)")


def _client_ip(request: Request) -> str:
    """IP клиента с учетом proxy"""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _record_id(path: str) -> Optional[str]:
    match = _RECORD_PATH.search(path)
    return match.group(1) if match else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Request id, лог начала/конца запроса и предупреждение о медленных запросах.

    Входящий X-Request-ID сохраняется, иначе генерируется короткий id. Он же
    попадает во все записи лога внутри запроса (в том числе в бизнес-события).
    """

    def __init__(
        self,
        app: ASGIApp,
        exclude_paths: list = None,
        slow_request_threshold: float = 1.0,
    ):
        super().__init__(app)
        self.exclude_paths = exclude_paths or DEFAULT_EXCLUDE_PATHS
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]
        token = request_id_var.set(request_id)
        request.state.request_id = request_id

        path = request.url.path
        context = {"method": request.method, "path": path}
        record_id = _record_id(path)
        if record_id:
            context["student_id"] = record_id

        logger.info(
            f"Request started: {request.method} {path}",
            extra={**context, "client_ip": _client_ip(request)},
        )
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {path}",
                extra={**context, "error_type": type(e).__name__},
            )
            error_tracker.track_error(type(e).__name__, str(e), context)
            raise
        finally:
            request_id_var.reset(token)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        # actor_id выставляет зависимость авторизации
        actor_id = getattr(request.state, "actor_id", None)

        logger.info(
            f"Request completed: {request.method} {path} -> {response.status_code}",
            extra={
                **context,
                "request_id": request_id,
                "actor_id": actor_id,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        if duration_ms > self.slow_request_threshold * 1000:
            logger.warning(
                f"Slow request: {request.method} {path} took {duration_ms}ms",
                extra={**context, "request_id": request_id, "category": "performance"},
            )

        if response.status_code >= 500:
            error_tracker.track_error(
                f"HTTP_{response.status_code}",
                f"{request.method} {path}",
                {**context, "request_id": request_id},
            )

        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        # Снимки записей содержат суммы оплаты
        response.headers["Cache-Control"] = "no-store"

        return response


def setup_middleware(app, config: dict = None):
    """
    Настройка middleware приложения

    Args:
        app: FastAPI приложение
        config: slow_request_threshold (секунды), exclude_paths
    """
    config = config or {}

    # Middleware применяются в обратном порядке добавления
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RequestContextMiddleware,
        exclude_paths=config.get("exclude_paths", DEFAULT_EXCLUDE_PATHS),
        slow_request_threshold=config.get("slow_request_threshold", 1.0),
    )

    logger.info("Middleware configured")
