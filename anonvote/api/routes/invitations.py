"""Invitation token lookup."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from anonvote.api.deps import get_controller
from anonvote.schemas import TokenValidationRead
from anonvote.services.events import EventLifecycleController

router = APIRouter(prefix="/invitations")


@router.get("/{token}", response_model=TokenValidationRead)
def validate_invitation(
    token: str,
    controller: EventLifecycleController = Depends(get_controller),
) -> TokenValidationRead:
    """Report whether a token can still be redeemed; never consumes it."""

    validation = controller.ledger.validate(token)
    return TokenValidationRead(
        valid=validation.valid,
        identity_id=validation.identity_id,
        event_id=validation.event_id,
        contact=validation.contact,
        reason=validation.reason,
    )


__all__ = ["router", "validate_invitation"]
