import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import RATE_LIMIT_DEFAULT, RATE_LIMIT_ENABLED
from app.core.error_handlers import error_response

logger = logging.getLogger(__name__)


def get_rate_limit_key(request: Request) -> str:
    """Лимит на пользователя, если он представился, иначе на IP"""
    user_id = request.headers.get("x-user-id")
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[RATE_LIMIT_DEFAULT],
    enabled=RATE_LIMIT_ENABLED,
)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        f"Rate limit exceeded: {exc.detail}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "key": get_rate_limit_key(request),
        },
    )
    return error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "RateLimited",
        f"Rate limit exceeded: {exc.detail}",
    )
