"""Request throttling for the trigger endpoints (slowapi)."""

from fastapi import Request
from slowapi import Limiter


def _get_real_ip(request: Request) -> str:
    """Client IP for throttling the HTTP triggers, honouring proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=_get_real_ip)
