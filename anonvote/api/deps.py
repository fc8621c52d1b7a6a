"""Common dependencies for API routes."""
from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from anonvote.core.config import get_settings
from anonvote.db.session import SessionLocal
from anonvote.services.events import EventLifecycleController, EventNotFoundError
from anonvote.services.notifications import NotificationGateway, build_gateway


def get_db_session() -> Iterator[Session]:
    """Yield a database session for FastAPI dependencies."""

    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_controller(session: Session = Depends(get_db_session)) -> EventLifecycleController:
    return EventLifecycleController(session, settings=get_settings())


def get_notification_gateway() -> Iterator[NotificationGateway]:
    gateway = build_gateway(get_settings())
    try:
        yield gateway
    finally:
        close = getattr(gateway, "close", None)
        if close is not None:
            close()


def require_admin(
    event_id: int,
    x_admin_token: str | None = Header(default=None),
    controller: EventLifecycleController = Depends(get_controller),
) -> None:
    """Reject the request unless ``X-Admin-Token`` matches the event's admin credential."""

    if not x_admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing admin token")
    try:
        authenticated = controller.admin_authenticate(event_id, x_admin_token)
    except EventNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if not authenticated:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token")


__all__ = ["get_controller", "get_db_session", "get_notification_gateway", "require_admin"]
