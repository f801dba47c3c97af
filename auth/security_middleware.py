"""Session cookie authentication for the booking API."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth.session import SessionManager
from auth.exceptions import SessionExpiredError
from api.base import error_response, ErrorCodes
from utils.actor_context import actor_context

SESSION_COOKIE = "session_token"

# Matched exactly; everything else under the app needs a session
PUBLIC_PATHS = frozenset({
    "/health",
    "/docs",
    "/docs/oauth2-redirect",
    "/openapi.json",
})


def _unauthorized(code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content=error_response(code, message).model_dump(mode="json"),
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolves the session cookie to the acting party.

    The Actor (user id plus signed-in roles) is exposed two ways for the
    duration of the request: on request.state.actor and through
    utils.actor_context, which the booking routes read.
    """

    def __init__(self, app, session_manager: SessionManager):
        super().__init__(app)
        self._session_manager = session_manager

    async def dispatch(self, request: Request, call_next):
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        token = request.cookies.get(SESSION_COOKIE)
        if not token:
            return _unauthorized(ErrorCodes.NOT_AUTHENTICATED, "Authentication required")

        try:
            session = self._session_manager.validate_session(token)
        except SessionExpiredError:
            return _unauthorized(ErrorCodes.SESSION_EXPIRED, "Session has expired")

        request.state.session = session
        request.state.actor = session.actor

        with actor_context(session.actor):
            return await call_next(request)
