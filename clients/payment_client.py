"""
Payment gateway client: charge a client, refund a client.

The marketplace holds captured funds itself (escrow); releasing them to a
provider is a ledger entry, not a gateway call.
"""

import logging
from uuid import UUID

from clients.signed_gateway import GatewayError, SignedGatewayClient

logger = logging.getLogger(__name__)


class PaymentGatewayError(GatewayError):
    """Raised when a charge or refund is rejected or cannot be sent."""


class PaymentGatewayClient(SignedGatewayClient):
    """Charge and refund through the HMAC-signed payment gateway."""

    error_class = PaymentGatewayError
    gateway_name = "Payment gateway"

    def charge(
        self,
        booking_id: UUID,
        amount_cents: int,
        currency: str,
        payment_method: str | None = None,
    ) -> str:
        """
        Capture a payment for a booking.

        Args:
            booking_id: Booking being paid (also the idempotency key)
            amount_cents: Amount to capture
            currency: ISO 4217 code
            payment_method: Method the client chose (card, mobile_money, ...)

        Returns:
            Gateway reference for the charge

        Raises:
            ValueError: If amount is not positive
            PaymentGatewayError: On gateway failure
        """
        if amount_cents <= 0:
            raise ValueError("amount_cents must be positive")

        response = self._sign_and_send(
            {
                "type": "charge",
                "booking_id": str(booking_id),
                "amount_cents": amount_cents,
                "currency": currency,
                "payment_method": payment_method,
            },
            idempotency_key=f"charge:{booking_id}",
        )
        reference = response.get("reference") or ""
        logger.info(f"Charged {amount_cents} {currency} for booking {booking_id} ({reference})")
        return reference

    def refund(
        self,
        booking_id: UUID,
        amount_cents: int,
        currency: str,
        reason: str | None = None,
    ) -> str:
        """
        Refund part or all of a booking's payment.

        Returns:
            Gateway reference for the refund

        Raises:
            ValueError: If amount is not positive
            PaymentGatewayError: On gateway failure
        """
        if amount_cents <= 0:
            raise ValueError("amount_cents must be positive")

        response = self._sign_and_send(
            {
                "type": "refund",
                "booking_id": str(booking_id),
                "amount_cents": amount_cents,
                "currency": currency,
                "reason": reason,
            },
            idempotency_key=f"refund:{booking_id}:{amount_cents}",
        )
        reference = response.get("reference") or ""
        logger.info(f"Refunded {amount_cents} {currency} for booking {booking_id} ({reference})")
        return reference
