"""Pydantic schemas package."""

from .event import (
    AdminTokenCheck,
    AdminTokenValidation,
    BlockchainDataPayload,
    MemberRemovalRead,
    MembersRead,
    OptionRead,
    RegistrationRead,
    RegistrationRequest,
    ResultsRead,
    VoteRead,
    VoteRequest,
    VotingEventCreate,
    VotingEventCreated,
    VotingEventRead,
    VotingEventUpdate,
)
from .identity import EmailLookup, IdentityRead, WalletLookup
from .invitation import (
    BatchDeliveryRead,
    DeliveryResultRead,
    InvitationIssued,
    InvitationsSentRead,
    InviteRequest,
    InvitedParticipantRead,
    SendInvitationsRequest,
    TokenValidationRead,
)

__all__ = [
    "AdminTokenCheck",
    "AdminTokenValidation",
    "BatchDeliveryRead",
    "BlockchainDataPayload",
    "DeliveryResultRead",
    "EmailLookup",
    "IdentityRead",
    "InvitationIssued",
    "InvitationsSentRead",
    "InviteRequest",
    "InvitedParticipantRead",
    "MemberRemovalRead",
    "MembersRead",
    "OptionRead",
    "RegistrationRead",
    "RegistrationRequest",
    "ResultsRead",
    "SendInvitationsRequest",
    "TokenValidationRead",
    "VoteRead",
    "VoteRequest",
    "VotingEventCreate",
    "VotingEventCreated",
    "VotingEventRead",
    "VotingEventUpdate",
]
