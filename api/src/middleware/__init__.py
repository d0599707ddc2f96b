"""FastAPI middleware components.

This package contains the cookie authentication guard, CSRF protection and
per-route rate limiting.
"""

from api.src.middleware.auth import (
    clear_auth_cookies,
    require_user,
    set_auth_cookies,
)
from api.src.middleware.csrf import CSRFMiddleware
from api.src.middleware.rate_limit import (
    RateLimitGuard,
    enforce_rate_limit,
    rate_limit,
)

__all__ = [
    # Auth
    "clear_auth_cookies",
    "require_user",
    "set_auth_cookies",
    # CSRF
    "CSRFMiddleware",
    # Rate limiting
    "RateLimitGuard",
    "enforce_rate_limit",
    "rate_limit",
]
