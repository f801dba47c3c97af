"""Booking lifecycle endpoints under /api/bookings."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from api.base import success_response
from core.models import (
    Actor, BookingCreate, BookingStatus, ConfirmAction, RespondAction,
)
from utils.actor_context import get_current_actor


class RespondRequest(BaseModel):
    action: RespondAction
    message: str | None = Field(None, max_length=2000)


class StatusUpdateRequest(BaseModel):
    status: BookingStatus
    cancellation_reason: str | None = Field(None, max_length=2000)
    notes: str | None = Field(None, max_length=2000)
    dispute_reason: str | None = Field(None, max_length=5000)


class ConfirmRequest(BaseModel):
    action: ConfirmAction
    reason: str | None = Field(None, max_length=5000)
    rating: int | None = Field(None, ge=1, le=5)
    review: str | None = Field(None, max_length=5000)


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class PaymentRequest(BaseModel):
    payment_method: str | None = Field(None, max_length=100)


def create_bookings_router(services: dict) -> APIRouter:
    router = APIRouter(prefix="/bookings")

    state_machine = services["state_machine"]
    confirmation = services["confirmation"]
    payment = services["payment"]
    rate_limiter = services.get("rate_limiter")

    def mutating_actor() -> Actor:
        actor = get_current_actor()
        if rate_limiter is not None:
            rate_limiter.check(actor.id)
        return actor

    def respond_with(request: Request, data) -> dict:
        return success_response(
            data, getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    @router.get("/{booking_id}")
    async def get_booking(request: Request, booking_id: UUID):
        booking = state_machine.get(booking_id, get_current_actor())
        return respond_with(request, booking.model_dump(mode="json"))

    @router.post("", status_code=201)
    async def create_booking(request: Request, body: BookingCreate):
        booking = state_machine.create(mutating_actor(), body)
        return respond_with(request, booking.model_dump(mode="json"))

    @router.post("/{booking_id}/respond")
    async def respond_to_request(request: Request, booking_id: UUID, body: RespondRequest):
        booking = state_machine.respond(
            booking_id, body.action, mutating_actor(), body.message
        )
        return respond_with(request, booking.model_dump(mode="json"))

    @router.put("/{booking_id}/status")
    async def update_status(request: Request, booking_id: UUID, body: StatusUpdateRequest):
        booking = state_machine.transition(
            booking_id,
            body.status,
            mutating_actor(),
            cancellation_reason=body.cancellation_reason,
            notes=body.notes,
            dispute_reason=body.dispute_reason,
        )
        return respond_with(request, booking.model_dump(mode="json"))

    @router.post("/{booking_id}/complete")
    async def mark_complete(request: Request, booking_id: UUID):
        booking = state_machine.mark_complete(booking_id, mutating_actor())
        return respond_with(request, booking.model_dump(mode="json"))

    @router.post("/{booking_id}/confirm")
    async def confirm_completion(request: Request, booking_id: UUID, body: ConfirmRequest):
        booking = confirmation.confirm_completion(
            booking_id,
            mutating_actor(),
            body.action,
            reason=body.reason,
            rating=body.rating,
            review=body.review,
        )
        return respond_with(request, booking.model_dump(mode="json"))

    @router.post("/{booking_id}/cancel")
    async def cancel_booking(request: Request, booking_id: UUID, body: CancelRequest | None = None):
        result = state_machine.cancel(
            booking_id, mutating_actor(), body.reason if body else None
        )
        return respond_with(request, result.model_dump(mode="json"))

    @router.post("/{booking_id}/payment")
    async def capture_payment(request: Request, booking_id: UUID, body: PaymentRequest | None = None):
        booking, transaction = payment.capture(
            booking_id, mutating_actor(), body.payment_method if body else None
        )
        return respond_with(request, {
            "booking": booking.model_dump(mode="json"),
            "transaction": transaction.model_dump(mode="json"),
        })

    return router
