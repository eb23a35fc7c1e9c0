"""Rate limiting configuration for the support triage API."""

import os

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from support_triage.core.config import settings

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)


def get_client_ip(request: Request) -> str:
    """
    Rate-limit key for a request.

    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            # First IP is the original client
            return forwarded.split(",")[0].strip()
    return get_remote_address(request)


# Counters live in process memory; run one limiter per worker.
limiter = Limiter(
    key_func=get_client_ip,
    storage_uri="memory://",
    default_limits=DEFAULT_LIMITS,
)
