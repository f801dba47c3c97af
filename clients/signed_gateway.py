"""
Base for HTTP gateways authenticated with an API key and HMAC-SHA256 body signature.

The email gateway and the payment gateway speak the same envelope: a JSON
body signed with a shared secret, answered with {"success": bool, ...}.
"""

import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when a signed gateway request fails."""


class SignedGatewayClient:
    """POST signed JSON payloads to one gateway endpoint."""

    # Subclasses narrow this so callers can catch per-gateway failures
    error_class: type[GatewayError] = GatewayError
    gateway_name = "Gateway"

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, timeout: float = 10):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature
            timeout: Per-request timeout in seconds

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.timeout = timeout

    def sign(self, payload_json: str) -> str:
        """Hex HMAC-SHA256 of the exact body bytes sent."""
        return hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _sign_and_send(self, payload: dict, idempotency_key: str | None = None) -> dict:
        """
        Sign payload with HMAC and send to gateway.

        Args:
            payload: Dict to send as JSON
            idempotency_key: Sent as Idempotency-Key so retries are not double-applied

        Returns:
            Decoded response body

        Raises:
            GatewayError (error_class): On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": self.sign(payload_json),
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"{self.gateway_name} connection failed: {e}")
            raise self.error_class(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except (json.JSONDecodeError, ValueError):
            logger.error(f"{self.gateway_name} returned invalid JSON: {response.text}")
            raise self.error_class("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"{self.gateway_name} error: {error_msg}")
            raise self.error_class(f"Gateway error: {error_msg}")

        return response_data
