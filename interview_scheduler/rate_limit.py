"""Rate limiting singleton using slowapi.

Booking endpoints are limited per signed-in user; anonymous traffic falls
back to the client address.
"""

from fastapi import Request
from slowapi import Limiter


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _rate_key(request: Request) -> str:
    user_id = request.session.get("user_id") if "session" in request.scope else None
    if user_id:
        return f"user:{user_id}"
    return f"ip:{_client_ip(request)}"


limiter = Limiter(key_func=_rate_key)
