"""Identity directory endpoints."""
from __future__ import annotations

from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from anonvote.api.deps import get_db_session
from anonvote.models import Identity
from anonvote.schemas import EmailLookup, IdentityRead, WalletLookup
from anonvote.services.identity import (
    IdentityConflictError,
    IdentityDirectory,
    IdentityNotFoundError,
    InvalidContactError,
)

router = APIRouter(prefix="/identities")


def _resolve(session: Session, lookup: Callable[[str], Identity], contact: str) -> IdentityRead:
    try:
        identity = lookup(contact)
        session.commit()
    except InvalidContactError as exc:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except IdentityConflictError as exc:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    session.refresh(identity)
    return IdentityRead.model_validate(identity)


@router.post("/find-or-create-by-email", response_model=IdentityRead)
def find_or_create_by_email(
    payload: EmailLookup,
    session: Session = Depends(get_db_session),
) -> IdentityRead:
    return _resolve(session, IdentityDirectory(session).resolve_or_create_by_email, payload.email)


@router.post("/find-or-create-by-wallet", response_model=IdentityRead)
def find_or_create_by_wallet(
    payload: WalletLookup,
    session: Session = Depends(get_db_session),
) -> IdentityRead:
    return _resolve(session, IdentityDirectory(session).resolve_or_create_by_wallet, payload.wallet_address)


@router.get("/{identity_id}", response_model=IdentityRead)
def get_identity(
    identity_id: int,
    session: Session = Depends(get_db_session),
) -> IdentityRead:
    try:
        identity = IdentityDirectory(session).get(identity_id)
    except IdentityNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return IdentityRead.model_validate(identity)


__all__ = ["find_or_create_by_email", "find_or_create_by_wallet", "get_identity", "router"]
