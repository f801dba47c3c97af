"""
Email gateway client for booking notification emails.

Signed with HMAC-SHA256 like every gateway (see clients.signed_gateway).
"""

import logging

from clients.signed_gateway import GatewayError, SignedGatewayClient

logger = logging.getLogger(__name__)


class EmailGatewayError(GatewayError):
    """Raised when email gateway request fails."""


class EmailGatewayClient(SignedGatewayClient):
    """Send emails via HTTP gateway with HMAC signature verification."""

    error_class = EmailGatewayError
    gateway_name = "Email gateway"

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        sender: str = "bookings",
    ) -> None:
        """
        Send a plain text email via gateway.

        Args:
            to: Recipient email address
            subject: Email subject line
            body: Plain text email body
            sender: Sender identity - "bookings" or "system" (default: "bookings")

        Raises:
            ValueError: If sender is invalid or recipient is empty
            EmailGatewayError: On gateway failure
        """
        if not to:
            raise ValueError("recipient address is required")
        if sender not in ("bookings", "system"):
            raise ValueError(f"sender must be 'bookings' or 'system', got '{sender}'")

        payload = {
            "type": "custom",
            "email": to,
            "subject": subject,
            "body": body,
            "sender": sender,
        }
        self._sign_and_send(payload)
        logger.info(f"Email sent to {to}: {subject}")
