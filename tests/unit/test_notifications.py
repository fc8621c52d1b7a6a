from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from anonvote.core.config import Settings
from anonvote.services.notifications import (
    DeliveryResult,
    HTTPEmailGateway,
    InvitationMessage,
    LoggingGateway,
    build_gateway,
    deliver_batch,
    render_invitation_html,
)

MESSAGE = InvitationMessage(
    contact="alice@example.com",
    token="tok_abcdefghijkl",
    event_id=3,
    event_name="Budget <2026>",
    opens_at=datetime(2026, 4, 1, 9, 0, tzinfo=UTC),
    closes_at=datetime(2026, 4, 2, 9, 0, tzinfo=UTC),
)


def _settings(**overrides: object) -> Settings:
    base = {
        "notification_api_key": "re_test_key",
        "notification_api_url": "https://mail.test/emails",
        "frontend_url": "https://vote.test/",
    }
    base.update(overrides)
    return Settings(**base)


def test_magic_link_carries_event_and_token() -> None:
    assert MESSAGE.magic_link("https://vote.test/") == "https://vote.test/event/3?token=tok_abcdefghijkl"


def test_rendered_invitation_escapes_event_name() -> None:
    html = render_invitation_html(MESSAGE, frontend_url="https://vote.test")

    assert "Budget &lt;2026&gt;" in html
    assert "https://vote.test/event/3?token=tok_abcdefghijkl" in html
    assert "Wed, Apr 01, 2026 09:00 UTC" in html


def test_http_gateway_posts_invitation() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email-123"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    gateway = HTTPEmailGateway(settings=_settings(), client=client)

    result = gateway.deliver(MESSAGE)

    assert result == DeliveryResult(contact="alice@example.com", delivered=True, message_id="email-123")
    assert captured["url"] == "https://mail.test/emails"
    assert captured["auth"] == "Bearer re_test_key"
    payload = captured["payload"]
    assert isinstance(payload, dict)
    assert payload["to"] == "alice@example.com"
    assert "Budget <2026>" in payload["subject"]


def test_http_gateway_reports_failures_instead_of_raising() -> None:
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "busy"})))
    gateway = HTTPEmailGateway(settings=_settings(), client=client)

    result = gateway.deliver(MESSAGE)

    assert not result.delivered
    assert result.error is not None and "503" in result.error


def test_http_gateway_requires_api_key() -> None:
    with pytest.raises(ValueError):
        HTTPEmailGateway(settings=_settings(notification_api_key=None))


def test_build_gateway_falls_back_to_logging() -> None:
    assert isinstance(build_gateway(_settings(notification_api_key=None)), LoggingGateway)
    assert isinstance(build_gateway(_settings()), HTTPEmailGateway)


def test_logging_gateway_never_logs_the_full_token(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("INFO", logger="anonvote.services.notifications")

    result = LoggingGateway(settings=_settings()).deliver(MESSAGE)

    assert result.delivered
    assert all("tok_abcdefghijkl" not in str(record.__dict__) for record in caplog.records)


def test_batch_delivery_isolates_failing_recipients() -> None:
    class FlakyGateway:
        def deliver(self, message: InvitationMessage) -> DeliveryResult:
            if message.contact == "boom@example.com":
                raise RuntimeError("connection reset")
            if message.contact == "bounce@example.com":
                return DeliveryResult(contact=message.contact, delivered=False, error="bounced")
            return DeliveryResult(contact=message.contact, delivered=True)

    contacts = ["a@example.com", "boom@example.com", "bounce@example.com", "b@example.com"]
    messages = [
        InvitationMessage(contact=contact, token=f"token-{index:08d}", event_id=1, event_name="E")
        for index, contact in enumerate(contacts)
    ]

    report = deliver_batch(FlakyGateway(), messages)

    assert report.success_count == 2
    assert report.failed_count == 2
    assert [result.contact for result in report.results] == contacts
    assert report.results[1].error == "connection reset"
