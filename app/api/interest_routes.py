"""
Interest API routes - Contact requests, disclosure and direct messages.

Called by the web backend on behalf of an authenticated recruiter or
candidate; the acting principal's ID travels in the request body.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import require_api_key
from app.api.errors import http_error
from app.db.session import get_write_db
from app.exceptions import BillingError
from app.models.api import (
    AccessPreference,
    ApproveContactRequest,
    ContactInfo,
    DeclineContactRequest,
    DirectMessageResponse,
    InterestStatusResponse,
    RequestContactRequest,
    SendMessageRequest,
)
from app.models.domain import InterestOutcome
from app.services.interests import InterestService

router = APIRouter(prefix="/v1/interests", tags=["interests"])


def _interest_response(outcome: InterestOutcome) -> InterestStatusResponse:
    contact = None
    if outcome.contact is not None:
        contact = ContactInfo(
            name=outcome.contact.name,
            email=outcome.contact.email,
            phone=outcome.contact.phone,
        )
    return InterestStatusResponse(status=outcome.status, auto=outcome.auto, contact=contact)


@router.post(
    "/{interest_id}/request-contact",
    response_model=InterestStatusResponse,
    dependencies=[Depends(require_api_key)],
)
async def request_contact(
    interest_id: UUID,
    request: RequestContactRequest,
    db: AsyncSession = Depends(get_write_db),
) -> InterestStatusResponse:
    """
    Recruiter asks for the candidate's contact details.

    Honors the candidate's standing ALLOW/DENY preference for the company.
    """
    try:
        outcome = await InterestService(db).request_contact(interest_id, request.member_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return _interest_response(outcome)


@router.post(
    "/{interest_id}/approve",
    response_model=InterestStatusResponse,
    dependencies=[Depends(require_api_key)],
)
async def approve_contact(
    interest_id: UUID,
    request: ApproveContactRequest,
    db: AsyncSession = Depends(get_write_db),
) -> InterestStatusResponse:
    """Candidate discloses contact details; the company is charged."""
    preference = AccessPreference.ALLOW if request.preference == "ALLOW" else None
    try:
        outcome = await InterestService(db).approve(interest_id, request.candidate_id, preference)
    except BillingError as exc:
        raise http_error(exc) from exc
    return _interest_response(outcome)


@router.post(
    "/{interest_id}/decline",
    response_model=InterestStatusResponse,
    dependencies=[Depends(require_api_key)],
)
async def decline_contact(
    interest_id: UUID,
    request: DeclineContactRequest,
    db: AsyncSession = Depends(get_write_db),
) -> InterestStatusResponse:
    """Candidate declines contact."""
    preference = AccessPreference.DENY if request.preference == "DENY" else None
    try:
        outcome = await InterestService(db).decline(interest_id, request.candidate_id, preference)
    except BillingError as exc:
        raise http_error(exc) from exc
    return _interest_response(outcome)


@router.post(
    "/{interest_id}/messages",
    response_model=DirectMessageResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_key)],
)
async def send_message(
    interest_id: UUID,
    request: SendMessageRequest,
    db: AsyncSession = Depends(get_write_db),
) -> DirectMessageResponse:
    """
    Send a direct message on a disclosed interest.

    Recruiter messages are billed; candidate replies are free.
    """
    try:
        message = await InterestService(db).send_message(
            interest_id, request.sender_type, request.sender_id, request.content
        )
    except BillingError as exc:
        raise http_error(exc) from exc

    return DirectMessageResponse(
        message_id=message.message_id,
        interest_id=message.interest_id,
        sender_type=message.sender_type,
        content=message.content,
        created_at=message.created_at.isoformat(),
        points_consumed=message.points_consumed,
    )
