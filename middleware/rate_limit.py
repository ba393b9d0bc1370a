# middleware/rate_limit.py
"""
Rate limiting for checkout endpoints, using slowapi.

Usage in route files:
    from middleware.rate_limit import limiter, CHECKOUT_RATE_LIMIT

    @router.post("/checkout")
    @limiter.limit(CHECKOUT_RATE_LIMIT)
    def create_checkout(request: Request, ...):
        ...

Only the checkout routes are limited. Webhooks are never decorated: providers
retry on 429. Gallery and access routes are read-mostly and stay open.

    RATE_LIMIT_CHECKOUT  limit string (default "10/minute")
    REDIS_URL            shared counter storage; in-process memory otherwise
"""
import logging
import os

from fastapi import Request
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def checkout_rate_key(request: Request) -> str:
    """``user:<sub>`` for signed-in buyers, ``ip:<addr>`` for anonymous image checkouts."""
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        try:
            # bucket key only; the route's auth dependency verifies the token
            sub = jwt.get_unverified_claims(token).get("sub")
        except JWTError:
            logger.debug("rate_limit_key_fallback reason=undecodable_token")
            sub = None
        if sub:
            return f"user:{sub}"

    return f"ip:{get_remote_address(request)}"


CHECKOUT_RATE_LIMIT = os.getenv("RATE_LIMIT_CHECKOUT", "10/minute")

limiter = Limiter(
    key_func=checkout_rate_key,
    storage_uri=os.getenv("REDIS_URL", "memory://"),
    strategy="fixed-window",
)
