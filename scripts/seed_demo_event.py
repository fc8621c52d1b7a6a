"""Seed a demo voting event with a few invited participants."""
from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from anonvote.core.config import get_settings
from anonvote.db.session import engine, get_session
from anonvote.models import Base, VotingEvent
from anonvote.services.events import EventLifecycleController

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_EVENT_NAME = "Demo Board Election"
DEMO_CONTACTS = ["alice@demo.local", "bob@demo.local", "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"]


def seed(session: Session) -> None:
    """Create the demo event once and print its admin token and invitation tokens."""

    existing = session.scalars(select(VotingEvent).where(VotingEvent.name == DEMO_EVENT_NAME)).first()
    if existing is not None:
        logger.info("Demo event %s already exists", existing.id)
        return

    controller = EventLifecycleController(session, settings=get_settings())
    now = datetime.now(UTC)
    event = controller.create_event(
        name=DEMO_EVENT_NAME,
        options=["Approve", "Reject", "Abstain"],
        opens_at=now + timedelta(hours=1),
        closes_at=now + timedelta(days=3),
    )
    print(f"Created event {event.id} with admin token {event.admin_token}")

    for token in controller.invite_batch(event.id, DEMO_CONTACTS):
        print(f"Invited identity {token.identity_id} with token {token.token}")


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_session() as session:
        seed(session)


if __name__ == "__main__":
    main()
