from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import settings
from app.core.exceptions import AppError
from app.core.logging import logger
from app.core.security import decode_access_token, extract_token


def upload_rate_limit_key(request: Request) -> str:
    """Key upload limits by the caller's user id when a valid token is presented."""
    token = extract_token(request)
    if token:
        try:
            payload = decode_access_token(token)
        except AppError:
            payload = {}
        user_id = payload.get("id") or payload.get("sub")
        if user_id:
            return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.RATE_LIMIT_ENABLED,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = exc.limit.limit.get_expiry()
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        client_ip=get_remote_address(request),
        limit=str(exc.limit.limit),
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests",
            "message": "Too many requests, please try again later.",
            "retryAfter": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )
