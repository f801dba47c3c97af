"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import RateLimitedError
from clients.payment_client import PaymentGatewayError
from core.exceptions import (
    AccessDeniedError, AlreadyProcessedError, BookingNotFoundError,
    BookingValidationError, ConflictError, IllegalTransitionError,
)

logger = logging.getLogger(__name__)

# Handlers resolve by the raised class MRO, so subclasses win over BookingValidationError
_BOOKING_ERRORS = [
    (BookingNotFoundError, 404, ErrorCodes.NOT_FOUND),
    (AccessDeniedError, 403, ErrorCodes.ACCESS_DENIED),
    (IllegalTransitionError, 400, ErrorCodes.INVALID_STATUS_TRANSITION),
    (AlreadyProcessedError, 409, ErrorCodes.BOOKING_ALREADY_PROCESSED),
    (BookingValidationError, 400, ErrorCodes.VALIDATION_ERROR),
    (ConflictError, 409, ErrorCodes.BOOKING_CONFLICT),
]


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _error(request: Request, status_code: int, code: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, _request_id(request)).model_dump(mode="json"),
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    for exc_class, status_code, code in _BOOKING_ERRORS:
        def make_handler(status_code=status_code, code=code):
            async def booking_error_handler(request: Request, exc: Exception):
                if status_code == 409:
                    logger.warning("%s %s: %s", request.method, request.url.path, exc)
                return _error(request, status_code, code, str(exc))
            return booking_error_handler

        app.add_exception_handler(exc_class, make_handler())

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError):
        return _error(
            request, 429, ErrorCodes.RATE_LIMITED, str(exc),
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(PaymentGatewayError)
    async def payment_error_handler(request: Request, exc: PaymentGatewayError):
        logger.error("Payment gateway failure on %s: %s", request.url.path, exc)
        return _error(request, 502, ErrorCodes.PAYMENT_FAILED, "Payment could not be processed")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return _error(request, 404, ErrorCodes.NOT_FOUND, message)
        return _error(request, 400, ErrorCodes.INVALID_REQUEST, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
