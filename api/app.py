"""FastAPI application assembly."""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from api.base import success_response
from api.bookings import create_bookings_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.config import AuthConfig
from auth.rate_limiter import MutationRateLimiter
from auth.security_middleware import AuthMiddleware
from auth.session import SessionManager
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_valkey_url
from core.bootstrap import BookingServices, configure_logging, connect, load_environment

logger = logging.getLogger(__name__)


def create_app(
    services: BookingServices,
    session_manager: SessionManager,
    rate_limiter: MutationRateLimiter | None = None,
) -> FastAPI:
    """
    Build the API around already-wired services.

    Args:
        services: Booking services (see core.bootstrap)
        session_manager: Validates session cookies
        rate_limiter: Per-actor limit on booking mutations; None disables it
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        services.shutdown()

    app = FastAPI(title="Marketplace Bookings", lifespan=lifespan)

    api = APIRouter(prefix="/api")
    api.include_router(create_bookings_router({
        "state_machine": services.state_machine,
        "confirmation": services.confirmation,
        "payment": services.payment,
        "rate_limiter": rate_limiter,
    }))
    app.include_router(api)

    @app.get("/health")
    async def health():
        return success_response({"status": "ok"}).model_dump(mode="json")

    register_error_handlers(app)

    # Last added runs first: request ids are assigned before auth runs
    app.add_middleware(AuthMiddleware, session_manager=session_manager)
    app.add_middleware(RequestIDMiddleware)

    return app


def create_production_app() -> FastAPI:
    """Entry point for ASGI servers: reads .env and Vault, connects everything."""
    load_environment()
    configure_logging()

    auth_config = AuthConfig()
    valkey = ValkeyClient(get_valkey_url())

    return create_app(
        connect(),
        SessionManager(valkey, auth_config),
        MutationRateLimiter(valkey, auth_config),
    )
