import time
import logging
import uuid
from typing import Callable, Optional
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.core.logging_utils import error_tracker

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_PATHS = ["/health", "/docs", "/openapi.json", "/redoc"]


def _get_client_ip(request: Request) -> str:
    """IP клиента с учетом proxy"""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def _get_actor_ref(request: Request) -> Optional[str]:
    """Идентичность из заголовков, только для логов"""
    user_id = request.headers.get("x-user-id")
    if not user_id:
        return None
    return f"{request.headers.get('x-user-role', '?')}:{user_id}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware для логирования HTTP запросов к движку расписания
    """

    def __init__(self, app: ASGIApp, exclude_paths: list = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or DEFAULT_EXCLUDE_PATHS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        # Короткий ID для трассировки запроса через логи
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start_time = time.time()

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "query_params": (
                    str(request.query_params) if request.query_params else None
                ),
                "client_ip": _get_client_ip(request),
                "actor": _get_actor_ref(request),
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration * 1000, 2),
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            error_tracker.track_error(
                error_type=type(e).__name__,
                error_message=str(e),
                context={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                },
            )
            raise

        duration = time.time() - start_time
        logger.info(
            f"Request completed: {request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            },
        )

        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """JSON API: запрещаем sniffing и встраивание во фреймы"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"

        return response


class PerformanceMonitoringMiddleware(BaseHTTPMiddleware):
    """
    Предупреждение о медленных запросах (обычно это повторы транзакций
    при конкурентной записи в один слот или одну форму)
    """

    def __init__(self, app: ASGIApp, slow_request_threshold: float = 1.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold  # секунды

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        if duration > self.slow_request_threshold:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration * 1000, 2),
                    "threshold_ms": self.slow_request_threshold * 1000,
                    "status_code": response.status_code,
                    "category": "performance",
                },
            )

        return response


class ErrorTrackingMiddleware(BaseHTTPMiddleware):
    """
    Статистика ответов 4xx/5xx в error_tracker
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if response.status_code >= 400:
            error_tracker.track_error(
                error_type=f"HTTP_{response.status_code}",
                error_message=f"HTTP {response.status_code} response",
                context={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "actor": _get_actor_ref(request),
                },
            )

        return response


def setup_middleware(app, config: dict = None):
    """
    Настройка всех middleware для приложения

    Args:
        app: FastAPI приложение
        config: Конфигурация middleware
    """
    config = config or {}

    # Порядок важен! Middleware применяются в обратном порядке добавления
    app.add_middleware(ErrorTrackingMiddleware)

    app.add_middleware(
        PerformanceMonitoringMiddleware,
        slow_request_threshold=config.get("slow_request_threshold", 1.0),
    )

    app.add_middleware(SecurityHeadersMiddleware)

    app.add_middleware(
        RequestLoggingMiddleware,
        exclude_paths=config.get("exclude_paths", DEFAULT_EXCLUDE_PATHS),
    )

    logger.info("All middleware configured successfully")
