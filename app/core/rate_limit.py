"""
Rate Limiting
=============

Redis fixed-window rate limiting for API endpoints.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, status

from app.core.security import decode_token
from app.services.cache import get_redis

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window counter per (identifier, action).

    Authenticated requests are keyed by user id, anonymous ones by client IP.

    Default limits:
        - auth: 5 requests/minute
        - create: 30 requests/minute
        - read: 100 requests/minute
        - payment: 20 requests/minute
        - export: 10 requests/minute
    """

    LIMITS = {
        "auth": {"max_requests": 5, "window_seconds": 60},
        "create": {"max_requests": 30, "window_seconds": 60},
        "read": {"max_requests": 100, "window_seconds": 60},
        "payment": {"max_requests": 20, "window_seconds": 60},
        "export": {"max_requests": 10, "window_seconds": 60},
    }

    @staticmethod
    def _get_key(identifier: str, action: str) -> str:
        return f"ratelimit:{action}:{identifier}"

    @staticmethod
    async def check_rate_limit(
        identifier: str,
        action: str,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ) -> dict:
        """
        Count this request against the window.

        Args:
            identifier: User ID or IP address
            action: Key into LIMITS; unknown actions use the ``read`` limit
            max_requests: Override max requests
            window_seconds: Override window size

        Returns:
            Dict with 'allowed', 'remaining', 'reset_in' keys
        """
        limits = RateLimiter.LIMITS.get(action, RateLimiter.LIMITS["read"])
        max_req = max_requests or limits["max_requests"]
        window = window_seconds or limits["window_seconds"]

        key = RateLimiter._get_key(identifier, action)

        try:
            client = await get_redis()
            count = await client.incr(key)
            if count == 1:
                await client.expire(key, window)
            ttl = await client.ttl(key)
            reset_in = ttl if ttl and ttl > 0 else window

            if count > max_req:
                return {"allowed": False, "remaining": 0, "reset_in": reset_in}

            return {
                "allowed": True,
                "remaining": max_req - count,
                "reset_in": reset_in,
            }

        except Exception as e:
            # Fail open
            logger.warning("Rate limit check failed for %s: %s", key, e)
            return {"allowed": True, "remaining": max_req, "reset_in": window}


def _request_identifier(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        payload = decode_token(auth_header[7:])
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"

    return f"ip:{request.client.host if request.client else 'unknown'}"


async def rate_limit_dependency(
    request: Request,
    action: str = "read",
) -> None:
    """Raise 429 RATE_LIMIT once the caller exceeds the action's window."""
    identifier = _request_identifier(request)
    result = await RateLimiter.check_rate_limit(identifier, action)

    if not result["allowed"]:
        limit = RateLimiter.LIMITS.get(action, RateLimiter.LIMITS["read"])["max_requests"]
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "code": "RATE_LIMIT",
                "message": f"Rate limit exceeded. Try again in {result['reset_in']} seconds.",
            },
            headers={
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": str(result["remaining"]),
                "X-RateLimit-Reset": str(result["reset_in"]),
                "Retry-After": str(result["reset_in"]),
            },
        )


def create_rate_limit_dependency(action: str = "read"):
    """
    Factory for rate limit dependencies.

    Usage:
        @router.post("/x", dependencies=[Depends(create_rate_limit_dependency("payment"))])
    """
    async def dependency(request: Request) -> None:
        await rate_limit_dependency(request, action)

    return dependency
