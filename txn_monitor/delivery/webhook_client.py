# This file implements the outbound Teams webhook client.
# It exists so jobs hand over a card payload and get either a delivered notification or one clear exception type.
# A missing webhook URL is an operational choice (delivery disabled), so it is logged and skipped rather than raised.

from __future__ import annotations

import logging
from typing import Any

import requests

LOGGER = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    """Raised when the webhook cannot be reached or rejects the payload."""


class TeamsWebhookClient:
    def __init__(
        self,
        *,
        webhook_url: str | None,
        timeout_seconds: int = 30,
        session: requests.Session | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def send_card(self, payload: dict[str, Any]) -> bool:
        """Post one card payload; returns False when delivery is not configured."""

        if not self.webhook_url:
            LOGGER.warning("Teams webhook URL is not configured. Skipping notification.")
            return False

        LOGGER.debug("sending teams payload attachments=%d", len(payload.get("attachments", [])))
        try:
            response = self.session.post(self.webhook_url, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            LOGGER.error("failed to send teams notification error=%s", exc)
            raise DeliveryError(f"Teams webhook request failed: {exc}") from exc

        if response.status_code >= 400:
            LOGGER.error("teams webhook rejected notification status=%s", response.status_code)
            raise DeliveryError(f"Teams webhook responded with status {response.status_code}")

        LOGGER.info("teams notification sent status=%s", response.status_code)
        return True
