"""Top level API router registration."""
from fastapi import APIRouter, FastAPI

from anonvote.api.routes import events, health, identities, invitations


def register_routes(application: FastAPI) -> None:
    """Register all API routers with the FastAPI application."""
    api_router = APIRouter(prefix="/api")

    api_router.include_router(health.router, tags=["health"])
    api_router.include_router(events.router, tags=["voting-events"])
    api_router.include_router(invitations.router, tags=["invitations"])
    api_router.include_router(identities.router, tags=["identities"])

    application.include_router(api_router)


__all__ = ["register_routes"]
