"""Authentication and rate limiting for the booking API."""

from auth.exceptions import (
    AuthError,
    RateLimitedError,
    SessionExpiredError,
)
from auth.types import Session
from auth.config import AuthConfig
from auth.rate_limiter import MutationRateLimiter
from auth.session import SessionManager
from auth.security_middleware import AuthMiddleware
