"""Invitation delivery through a transactional email API."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from html import escape
from typing import Protocol

import httpx

from anonvote.core.config import Settings, get_settings
from anonvote.obs import INVITATION_DELIVERY_COUNTER
from anonvote.services.tokens import mask_token

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class InvitationMessage:
    """Everything needed to render one invitation."""

    contact: str
    token: str
    event_id: int
    event_name: str
    opens_at: datetime | None = None
    closes_at: datetime | None = None

    def magic_link(self, frontend_url: str) -> str:
        return f"{frontend_url.rstrip('/')}/event/{self.event_id}?token={self.token}"


@dataclass(slots=True, frozen=True)
class DeliveryResult:
    contact: str
    delivered: bool
    message_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, str | bool | None]:
        return {
            "contact": self.contact,
            "delivered": self.delivered,
            "message_id": self.message_id,
            "error": self.error,
        }


@dataclass(slots=True)
class BatchDeliveryReport:
    results: list[DeliveryResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.delivered)

    @property
    def failed_count(self) -> int:
        return len(self.results) - self.success_count


class NotificationGateway(Protocol):
    def deliver(self, message: InvitationMessage) -> DeliveryResult:
        """Deliver one invitation; report failure instead of raising."""


def _format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "Not set"
    return value.strftime("%a, %b %d, %Y %H:%M UTC")


def render_invitation_html(message: InvitationMessage, *, frontend_url: str) -> str:
    link = escape(message.magic_link(frontend_url), quote=True)
    name = escape(message.event_name)
    window = ""
    if message.opens_at or message.closes_at:
        window = (
            "<p><strong>Voting period:</strong><br>"
            f"{_format_timestamp(message.opens_at)} - {_format_timestamp(message.closes_at)}</p>"
        )
    deadline = ""
    if message.opens_at:
        deadline = f"<p>Register before <strong>{_format_timestamp(message.opens_at)}</strong> to take part.</p>"
    return (
        "<!DOCTYPE html><html><body>"
        "<h1>You're invited to vote</h1>"
        f"<h2>{name}</h2>"
        f"{window}"
        f'<p><a href="{link}">Register &amp; vote</a></p>'
        f"{deadline}"
        "<p>This invitation link can only be used once.</p>"
        "</body></html>"
    )


class HTTPEmailGateway:
    """Posts invitations to a Resend-compatible ``/emails`` endpoint."""

    def __init__(self, *, settings: Settings | None = None, client: httpx.Client | None = None) -> None:
        self._settings = settings or get_settings()
        if not self._settings.notification_api_key:
            raise ValueError("notification_api_key is required for the HTTP email gateway")
        self._client = client or httpx.Client(timeout=self._settings.notification_timeout_seconds)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def deliver(self, message: InvitationMessage) -> DeliveryResult:
        payload = {
            "from": self._settings.notification_sender,
            "to": message.contact,
            "subject": f"You're invited to vote in {message.event_name}",
            "html": render_invitation_html(message, frontend_url=self._settings.frontend_url),
        }
        try:
            response = self._client.post(
                self._settings.notification_api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._settings.notification_api_key}"},
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "invitation delivery failed",
                extra={"event_id": message.event_id, "error": str(exc)},
            )
            return DeliveryResult(contact=message.contact, delivered=False, error=str(exc))
        return DeliveryResult(contact=message.contact, delivered=True, message_id=body.get("id"))


class LoggingGateway:
    """Development gateway that records the invitation in the log instead of sending it."""

    def __init__(self, *, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def deliver(self, message: InvitationMessage) -> DeliveryResult:
        logger.info(
            "invitation ready for delivery",
            extra={"event_id": message.event_id, "token": mask_token(message.token)},
        )
        return DeliveryResult(contact=message.contact, delivered=True)


def build_gateway(settings: Settings | None = None) -> NotificationGateway:
    settings = settings or get_settings()
    if settings.notification_api_key:
        return HTTPEmailGateway(settings=settings)
    return LoggingGateway(settings=settings)


def deliver_batch(gateway: NotificationGateway, messages: Iterable[InvitationMessage]) -> BatchDeliveryReport:
    """Deliver every message; one failing recipient never stops the rest."""

    report = BatchDeliveryReport()
    for message in messages:
        try:
            result = gateway.deliver(message)
        except Exception as exc:  # per-recipient isolation
            logger.exception("invitation gateway raised", extra={"event_id": message.event_id})
            result = DeliveryResult(contact=message.contact, delivered=False, error=str(exc))
        INVITATION_DELIVERY_COUNTER.labels(status="delivered" if result.delivered else "failed").inc()
        report.results.append(result)
    logger.info(
        "invitation batch complete",
        extra={"success_count": report.success_count, "failed_count": report.failed_count},
    )
    return report


__all__ = [
    "BatchDeliveryReport",
    "DeliveryResult",
    "HTTPEmailGateway",
    "InvitationMessage",
    "LoggingGateway",
    "NotificationGateway",
    "build_gateway",
    "deliver_batch",
    "render_invitation_html",
]
