"""Schemas for invitation issuance, delivery and token validation."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from anonvote.services.tokens import TokenInvalidReason


class InviteRequest(BaseModel):
    contact: str = Field(..., min_length=1, max_length=320, description="Email or wallet address")


class InvitationIssued(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    event_id: int
    identity_id: int
    contact: str
    expires_at: datetime


class SendInvitationsRequest(BaseModel):
    contacts: list[str] = Field(..., min_length=1)


class DeliveryResultRead(BaseModel):
    contact: str
    delivered: bool
    message_id: str | None = None
    error: str | None = None


class BatchDeliveryRead(BaseModel):
    success_count: int
    failed_count: int
    results: list[DeliveryResultRead]


class InvitedParticipantRead(BaseModel):
    contact: str
    identity_id: int | None = None
    invited_at: datetime | None = None


class InvitationsSentRead(BaseModel):
    event_id: int
    invitations_sent_at: datetime


class TokenValidationRead(BaseModel):
    valid: bool
    identity_id: int | None = None
    event_id: int | None = None
    contact: str | None = None
    reason: TokenInvalidReason | None = None


__all__ = [
    "BatchDeliveryRead",
    "DeliveryResultRead",
    "InvitationIssued",
    "InvitationsSentRead",
    "InviteRequest",
    "InvitedParticipantRead",
    "SendInvitationsRequest",
    "TokenValidationRead",
]
