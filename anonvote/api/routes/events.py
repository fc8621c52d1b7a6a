"""Voting event lifecycle, membership and ballot endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from anonvote.api.deps import get_controller, get_notification_gateway, require_admin
from anonvote.models import VotingEvent
from anonvote.schemas import (
    AdminTokenCheck,
    AdminTokenValidation,
    BatchDeliveryRead,
    BlockchainDataPayload,
    InvitationIssued,
    InvitationsSentRead,
    InviteRequest,
    InvitedParticipantRead,
    MemberRemovalRead,
    MembersRead,
    OptionRead,
    RegistrationRead,
    RegistrationRequest,
    ResultsRead,
    SendInvitationsRequest,
    VoteRead,
    VoteRequest,
    VotingEventCreate,
    VotingEventCreated,
    VotingEventRead,
    VotingEventUpdate,
)
from anonvote.services.accumulator import AccumulatorError, CapacityExceededError, DuplicateCommitmentError
from anonvote.services.ballot import BallotStore, PointDistributionError, RejectionReason
from anonvote.services.events import (
    EventConcurrencyError,
    EventError,
    EventLifecycleController,
    EventNotFoundError,
    TokenEventMismatchError,
    VotingStartedError,
)
from anonvote.services.identity import IdentityConflictError, IdentityError, IdentityNotFoundError
from anonvote.services.notifications import NotificationGateway, deliver_batch
from anonvote.services.tokens import TokenError, TokenInvalidError

router = APIRouter(prefix="/voting-events")

_DOMAIN_ERRORS = (EventError, TokenError, AccumulatorError, IdentityError, PointDistributionError)

_REJECTION_STATUS = {
    RejectionReason.NOT_OPEN: status.HTTP_409_CONFLICT,
    RejectionReason.CLOSED: status.HTTP_409_CONFLICT,
    RejectionReason.ALREADY_VOTED: status.HTTP_409_CONFLICT,
    RejectionReason.NOT_MEMBER: status.HTTP_403_FORBIDDEN,
    RejectionReason.INVALID_OPTION: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (EventNotFoundError, IdentityNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, TokenInvalidError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"reason": exc.reason.value, "message": str(exc)},
        )
    if isinstance(exc, TokenEventMismatchError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(
        exc,
        (
            VotingStartedError,
            EventConcurrencyError,
            DuplicateCommitmentError,
            CapacityExceededError,
            IdentityConflictError,
        ),
    ):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


def _describe(controller: EventLifecycleController, event: VotingEvent) -> dict:
    ballot = BallotStore.from_records(event.options, event.nullifiers)
    return {
        "id": event.id,
        "name": event.name,
        "state": controller.state(event),
        "options": [OptionRead.model_validate(option) for option, _ in ballot.results()],
        "power_mode": event.power_mode,
        "weighted_points": event.weighted_points,
        "tally_rule": event.tally_rule,
        "opens_at": event.opens_at,
        "closes_at": event.closes_at,
        "accumulator_root": event.accumulator_root,
        "accumulator_capacity": event.accumulator_capacity,
        "member_count": len(event.accumulator_leaves or []),
        "total_votes": ballot.total_votes(),
        "invitations_sent_at": event.invitations_sent_at,
        "blockchain_data": event.blockchain_data,
        "admin_identity_id": event.admin_identity_id,
    }


@router.post("", response_model=VotingEventCreated, status_code=status.HTTP_201_CREATED)
def create_voting_event(
    payload: VotingEventCreate,
    controller: EventLifecycleController = Depends(get_controller),
) -> VotingEventCreated:
    """Create an event and return its admin credential; this is the only time it is shown."""

    try:
        event = controller.create_event(
            name=payload.name,
            options=payload.options,
            power_mode=payload.power_mode,
            weighted_points=payload.weighted_points,
            opens_at=payload.opens_at,
            closes_at=payload.closes_at,
            capacity=payload.capacity,
            admin_identity_id=payload.admin_identity_id,
        )
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return VotingEventCreated(**_describe(controller, event), admin_token=event.admin_token)


@router.get("/{event_id}", response_model=VotingEventRead)
def get_voting_event(
    event_id: int,
    controller: EventLifecycleController = Depends(get_controller),
) -> VotingEventRead:
    try:
        event = controller.get_event(event_id)
    except EventNotFoundError as exc:
        raise _http_error(exc) from exc
    return VotingEventRead(**_describe(controller, event))


@router.patch("/{event_id}", response_model=VotingEventRead, dependencies=[Depends(require_admin)])
def update_voting_event(
    event_id: int,
    payload: VotingEventUpdate,
    controller: EventLifecycleController = Depends(get_controller),
) -> VotingEventRead:
    """Apply the fields present in the request; replacing options is refused once voting started."""

    changes = payload.model_dump(include=payload.model_fields_set)
    try:
        event = controller.configure(event_id, **changes)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return VotingEventRead(**_describe(controller, event))


@router.post("/{event_id}/validate-admin-token", response_model=AdminTokenValidation)
def validate_admin_token(
    event_id: int,
    payload: AdminTokenCheck,
    controller: EventLifecycleController = Depends(get_controller),
) -> AdminTokenValidation:
    try:
        valid = controller.admin_authenticate(event_id, payload.admin_token)
    except EventNotFoundError as exc:
        raise _http_error(exc) from exc
    return AdminTokenValidation(valid=valid)


@router.post(
    "/{event_id}/invite",
    response_model=InvitationIssued,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def invite_participant(
    event_id: int,
    payload: InviteRequest,
    controller: EventLifecycleController = Depends(get_controller),
) -> InvitationIssued:
    try:
        token = controller.invite(event_id, payload.contact)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return InvitationIssued.model_validate(token)


@router.post(
    "/{event_id}/send-invitations",
    response_model=BatchDeliveryRead,
    dependencies=[Depends(require_admin)],
)
def send_invitations(
    event_id: int,
    payload: SendInvitationsRequest,
    controller: EventLifecycleController = Depends(get_controller),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> BatchDeliveryRead:
    """Issue one token per contact, commit, then deliver each invitation independently."""

    try:
        tokens = controller.invite_batch(event_id, payload.contacts)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc

    report = deliver_batch(gateway, controller.invitation_messages(event_id, tokens))
    return BatchDeliveryRead(
        success_count=report.success_count,
        failed_count=report.failed_count,
        results=[result.to_dict() for result in report.results],
    )


@router.post(
    "/{event_id}/mark-invitations-sent",
    response_model=InvitationsSentRead,
    dependencies=[Depends(require_admin)],
)
def mark_invitations_sent(
    event_id: int,
    controller: EventLifecycleController = Depends(get_controller),
) -> InvitationsSentRead:
    try:
        event = controller.mark_invitations_sent(event_id)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return InvitationsSentRead(event_id=event.id, invitations_sent_at=event.invitations_sent_at)


@router.get("/{event_id}/invited", response_model=list[InvitedParticipantRead])
def list_invited(
    event_id: int,
    controller: EventLifecycleController = Depends(get_controller),
) -> list[InvitedParticipantRead]:
    try:
        invited = controller.list_invited(event_id)
    except EventNotFoundError as exc:
        raise _http_error(exc) from exc
    return [InvitedParticipantRead.model_validate(entry) for entry in invited]


@router.post("/{event_id}/participants", response_model=RegistrationRead, status_code=status.HTTP_201_CREATED)
def register_participant(
    event_id: int,
    payload: RegistrationRequest,
    controller: EventLifecycleController = Depends(get_controller),
) -> RegistrationRead:
    """Redeem an invitation token and add the commitment to the membership accumulator."""

    try:
        result = controller.register(event_id, payload.token, payload.commitment)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return RegistrationRead(identity_id=result.identity_id, root=result.root, members=result.members)


@router.get("/{event_id}/participants", response_model=MembersRead)
def list_participants(
    event_id: int,
    controller: EventLifecycleController = Depends(get_controller),
) -> MembersRead:
    try:
        event = controller.get_event(event_id)
        members = controller.members(event_id)
    except EventNotFoundError as exc:
        raise _http_error(exc) from exc
    return MembersRead(
        event_id=event.id,
        root=event.accumulator_root,
        capacity=event.accumulator_capacity,
        members=members,
    )


@router.delete(
    "/{event_id}/participants/{identity_id}",
    response_model=MemberRemovalRead,
    dependencies=[Depends(require_admin)],
)
def remove_participant(
    event_id: int,
    identity_id: int,
    controller: EventLifecycleController = Depends(get_controller),
) -> MemberRemovalRead:
    try:
        root = controller.remove_member(event_id, identity_id)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return MemberRemovalRead(event_id=event_id, root=root)


@router.post("/{event_id}/vote", response_model=VoteRead)
def cast_vote(
    event_id: int,
    payload: VoteRequest,
    controller: EventLifecycleController = Depends(get_controller),
) -> VoteRead:
    """Cast one vote; rejections map to 4xx responses carrying the reason code."""

    try:
        outcome = controller.cast(event_id, payload.identity_id, payload.option_index, points=payload.points)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc

    if outcome.reason is not None:
        raise HTTPException(
            status_code=_REJECTION_STATUS[outcome.reason],
            detail={"reason": outcome.reason.value, "message": f"Vote rejected: {outcome.reason.value}"},
        )
    return VoteRead(accepted=True, option_index=outcome.option_index)


@router.get("/{event_id}/results", response_model=ResultsRead)
def get_results(
    event_id: int,
    controller: EventLifecycleController = Depends(get_controller),
) -> ResultsRead:
    try:
        event = controller.get_event(event_id)
        options = controller.results(event_id)
    except EventNotFoundError as exc:
        raise _http_error(exc) from exc
    return ResultsRead(
        event_id=event.id,
        state=controller.state(event),
        tally_rule=event.tally_rule,
        options=[OptionRead.model_validate(option) for option in options],
        total_votes=sum(option.votes for option in options),
    )


@router.post(
    "/{event_id}/blockchain-data",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def save_blockchain_data(
    event_id: int,
    payload: BlockchainDataPayload,
    controller: EventLifecycleController = Depends(get_controller),
) -> Response:
    try:
        controller.save_blockchain_data(event_id, payload.data)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
