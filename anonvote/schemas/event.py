"""Schemas for voting event, membership and ballot endpoints."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from anonvote.models import as_utc
from anonvote.models.voting_event import PowerMode, TallyRule
from anonvote.services.events import EventState


def _check_options(options: list[str] | None) -> None:
    if options is None:
        return
    if len(options) == 1:
        raise ValueError("At least two options are required")
    if any(not option.strip() for option in options):
        raise ValueError("Option text must not be empty")


def _check_window(opens_at: datetime | None, closes_at: datetime | None) -> None:
    opens_at, closes_at = as_utc(opens_at), as_utc(closes_at)
    if opens_at is not None and closes_at is not None and opens_at >= closes_at:
        raise ValueError("closes_at must be after opens_at")


class VotingEventCreate(BaseModel):
    """Payload for creating a voting event; options may be left empty for a draft."""

    name: str = Field(..., min_length=1, max_length=255)
    options: list[str] = Field(default_factory=list, description="Option texts in ballot order")
    power_mode: PowerMode = Field(default=PowerMode.SIMPLE)
    weighted_points: int | None = Field(default=None, ge=2, description="Points each voter distributes")
    opens_at: datetime | None = None
    closes_at: datetime | None = None
    capacity: int | None = Field(default=None, gt=0, description="Declared accumulator capacity")
    admin_identity_id: int | None = None

    @model_validator(mode="after")
    def _validate_configuration(self) -> "VotingEventCreate":
        if not self.name.strip():
            raise ValueError("Event name is required")
        _check_options(self.options)
        _check_window(self.opens_at, self.closes_at)
        if self.power_mode is PowerMode.WEIGHTED and self.weighted_points is None:
            raise ValueError("weighted_points is required for weighted voting")
        return self


class VotingEventUpdate(BaseModel):
    """Partial update; only fields present in the request are applied."""

    options: list[str] | None = None
    power_mode: PowerMode | None = None
    weighted_points: int | None = Field(default=None, ge=2)
    opens_at: datetime | None = None
    closes_at: datetime | None = None

    @model_validator(mode="after")
    def _validate_configuration(self) -> "VotingEventUpdate":
        if self.options is not None and len(self.options) < 2:
            raise ValueError("At least two options are required")
        _check_options(self.options)
        _check_window(self.opens_at, self.closes_at)
        return self


class OptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    index: int
    text: str
    votes: int


class VotingEventRead(BaseModel):
    """Event descriptor with live tallies and the derived lifecycle state."""

    id: int
    name: str
    state: EventState
    options: list[OptionRead]
    power_mode: PowerMode
    weighted_points: int | None
    tally_rule: TallyRule
    opens_at: datetime | None
    closes_at: datetime | None
    accumulator_root: str
    accumulator_capacity: int
    member_count: int
    total_votes: int
    invitations_sent_at: datetime | None
    blockchain_data: dict | None
    admin_identity_id: int | None


class VotingEventCreated(VotingEventRead):
    """Returned once at creation; the admin token is never shown again."""

    admin_token: str


class AdminTokenCheck(BaseModel):
    admin_token: str = Field(..., min_length=1, max_length=128)


class AdminTokenValidation(BaseModel):
    valid: bool


class RegistrationRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    commitment: str = Field(..., min_length=1, max_length=256, description="Opaque membership commitment")


class RegistrationRead(BaseModel):
    identity_id: int
    root: str
    members: list[int]


class MembersRead(BaseModel):
    event_id: int
    root: str
    capacity: int
    members: list[int]


class MemberRemovalRead(BaseModel):
    event_id: int
    root: str


class VoteRequest(BaseModel):
    """A single option index, or a point distribution for weighted events."""

    identity_id: int
    option_index: int | None = None
    points: dict[int, int] | None = Field(
        default=None, description="Option index to allocated points; reduced to the plurality option"
    )

    @model_validator(mode="after")
    def _one_selection(self) -> "VoteRequest":
        if (self.option_index is None) == (self.points is None):
            raise ValueError("Provide exactly one of option_index or points")
        return self


class VoteRead(BaseModel):
    accepted: bool
    option_index: int


class ResultsRead(BaseModel):
    event_id: int
    state: EventState
    tally_rule: TallyRule
    options: list[OptionRead]
    total_votes: int


class BlockchainDataPayload(BaseModel):
    data: dict = Field(..., description="Opaque on-chain deployment details")


__all__ = [
    "AdminTokenCheck",
    "AdminTokenValidation",
    "BlockchainDataPayload",
    "MemberRemovalRead",
    "MembersRead",
    "OptionRead",
    "RegistrationRead",
    "RegistrationRequest",
    "ResultsRead",
    "VoteRead",
    "VoteRequest",
    "VotingEventCreate",
    "VotingEventCreated",
    "VotingEventRead",
    "VotingEventUpdate",
]
