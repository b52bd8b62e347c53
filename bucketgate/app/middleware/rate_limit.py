"""Rate limiting middleware.

Consults a limiter once per request and turns denials into 429 responses
carrying Retry-After and X-RateLimit-* headers.
"""

import hashlib
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from bucketgate.app.core.config import settings
from bucketgate.app.core.logging import get_log_context, get_logger
from bucketgate.app.exceptions import RateLimitExceededError
from bucketgate.app.services.rate_limit import Limiter

logger = get_logger(__name__)

MAX_API_KEY_LENGTH = 512


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce rate limits on requests.

    Rate limits are applied per authenticated user id if an upstream
    dependency set request.state.user_id, otherwise per API key, otherwise
    per client IP.
    """

    def __init__(
        self,
        app,
        limiter: Limiter,
        fail_closed: Optional[bool] = None,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.fail_closed = (
            settings.rate_limit_fail_closed if fail_closed is None else fail_closed
        )

    def _get_client_key(self, request: Request) -> str:
        """Get rate limit key for the request.

        API keys and IP addresses are hashed using SHA-256 so raw values are
        never stored.

        Args:
            request: FastAPI request object

        Returns:
            Rate limit key string
        """
        user_id = getattr(request.state, "user_id", None)
        if user_id:
            return f"user:{user_id}"

        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            api_key = auth[7:].strip()
            # Validate API key length to prevent DoS via extremely long keys
            if len(api_key) > MAX_API_KEY_LENGTH:
                raise HTTPException(
                    status_code=400,
                    detail=f"API key too long (max {MAX_API_KEY_LENGTH} characters)",
                )
            key_hash = hashlib.sha256(api_key.encode()).hexdigest()[:32]
            return f"apikey:{key_hash}"

        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"

        ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
        return f"ip:{ip_hash}"

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        try:
            key = self._get_client_key(request)
        except HTTPException as e:
            return JSONResponse(status_code=e.status_code, content={"detail": e.detail})

        try:
            result = await self.limiter.limit(key)
        except Exception as e:
            context = get_log_context(
                rate_limit_key=key, path=request.url.path, method=request.method
            )
            if self.fail_closed:
                logger.error(f"Rate limiter error, failing closed: {e}", extra=context)
                return JSONResponse(
                    status_code=503,
                    content={
                        "error": "rate_limiter_unavailable",
                        "message": "Rate limiting is temporarily unavailable.",
                    },
                )
            logger.error(f"Rate limiter error, failing open: {e}", extra=context)
            return await call_next(request)

        if not result.allowed:
            exc = RateLimitExceededError(result)
            logger.info(
                "Rejected request over rate limit",
                extra=get_log_context(
                    rate_limit_key=key,
                    path=request.url.path,
                    method=request.method,
                    status_code=exc.status_code,
                ),
            )
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response(),
                headers=result.headers(),
            )

        response = await call_next(request)
        for name, value in result.headers().items():
            response.headers[name] = value
        return response


def rate_limit_lifespan(limiter: Limiter) -> Callable:
    """Build a FastAPI lifespan that runs the limiter's housekeeping.

    Example:
        >>> limiter = create_limiter()
        >>> app = FastAPI(lifespan=rate_limit_lifespan(limiter))
        >>> app.add_middleware(RateLimitMiddleware, limiter=limiter)
    """

    @asynccontextmanager
    async def lifespan(app) -> AsyncIterator[None]:
        await limiter.start()
        try:
            yield
        finally:
            await limiter.destroy()

    return lifespan
