# This test file validates the Teams webhook client against fake sessions.
# Delivery is skipped without a URL, and transport errors or rejected posts surface as DeliveryError.
# No test opens a real network connection.

from __future__ import annotations

from typing import Any

import pytest
import requests

from txn_monitor.delivery.webhook_client import DeliveryError, TeamsWebhookClient

WEBHOOK_URL = "https://example.webhook.office.com/webhookb2/monitor"


class _FakeResponse:
    def __init__(self, *, status_code: int) -> None:
        self.status_code = status_code


class _FakeSession:
    def __init__(self, response: _FakeResponse | None = None, raise_error: Exception | None = None) -> None:
        self.response = response or _FakeResponse(status_code=200)
        self.raise_error = raise_error
        self.calls: list[tuple[str, dict[str, Any], int]] = []

    def post(self, url: str, json: dict[str, Any], timeout: int) -> _FakeResponse:
        self.calls.append((url, json, timeout))
        if self.raise_error is not None:
            raise self.raise_error
        return self.response


def test_send_card_posts_json_payload() -> None:
    session = _FakeSession()
    client = TeamsWebhookClient(webhook_url=WEBHOOK_URL, timeout_seconds=12, session=session)

    delivered = client.send_card({"type": "message", "attachments": []})

    assert delivered is True
    assert session.calls == [(WEBHOOK_URL, {"type": "message", "attachments": []}, 12)]


def test_send_card_without_url_skips_delivery() -> None:
    session = _FakeSession()
    client = TeamsWebhookClient(webhook_url=None, session=session)

    assert client.send_card({"type": "message"}) is False
    assert session.calls == []


def test_send_card_raises_on_rejected_status() -> None:
    client = TeamsWebhookClient(webhook_url=WEBHOOK_URL, session=_FakeSession(_FakeResponse(status_code=400)))

    with pytest.raises(DeliveryError, match="status 400"):
        client.send_card({"type": "message"})


def test_send_card_raises_on_transport_error() -> None:
    session = _FakeSession(raise_error=requests.ConnectionError("connection refused"))
    client = TeamsWebhookClient(webhook_url=WEBHOOK_URL, session=session)

    with pytest.raises(DeliveryError, match="connection refused"):
        client.send_card({"type": "message"})
