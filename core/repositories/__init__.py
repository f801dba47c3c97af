"""Persistence for bookings and the records they own."""

from core.repositories.booking_repository import BookingRepository
