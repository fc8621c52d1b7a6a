"""Schemas for identity directory endpoints."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EmailLookup(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)


class WalletLookup(BaseModel):
    wallet_address: str = Field(..., min_length=1, max_length=128)


class IdentityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str | None
    wallet_address: str | None


__all__ = ["EmailLookup", "IdentityRead", "WalletLookup"]
