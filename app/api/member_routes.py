"""
Membership API routes - Team member status, invites and email verification.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import require_api_key
from app.api.errors import http_error
from app.db.session import get_write_db
from app.exceptions import BillingError
from app.models.api import (
    AcceptInviteRequest,
    ChangeMemberStatusRequest,
    DisableMemberRequest,
    MemberStatus,
    MemberStatusResponse,
    TeamMemberResponse,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from app.services.memberships import MembershipService

router = APIRouter(tags=["members"], dependencies=[Depends(require_api_key)])


@router.post(
    "/v1/tenants/{tenant_id}/members/{member_id}/status",
    response_model=MemberStatusResponse,
)
async def change_member_status(
    tenant_id: str,
    member_id: UUID,
    request: ChangeMemberStatusRequest,
    db: AsyncSession = Depends(get_write_db),
) -> MemberStatusResponse:
    """Suspend or reactivate a team member."""
    try:
        new_status = await MembershipService(db).change_status(
            tenant_id, member_id, request.status
        )
    except BillingError as exc:
        raise http_error(exc) from exc
    return MemberStatusResponse(member_id=member_id, status=new_status)


@router.post(
    "/v1/tenants/{tenant_id}/members/{member_id}/disable",
    response_model=MemberStatusResponse,
)
async def disable_member(
    tenant_id: str,
    member_id: UUID,
    request: DisableMemberRequest,
    db: AsyncSession = Depends(get_write_db),
) -> MemberStatusResponse:
    """Permanently disable a team member."""
    try:
        await MembershipService(db).disable(tenant_id, member_id, request.acting_member_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return MemberStatusResponse(member_id=member_id, status=MemberStatus.DISABLED)


@router.post(
    "/v1/invites/accept",
    response_model=TeamMemberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def accept_invite(
    request: AcceptInviteRequest,
    db: AsyncSession = Depends(get_write_db),
) -> TeamMemberResponse:
    """Join a team with a one-time invite token."""
    try:
        member = await MembershipService(db).accept_invite(
            request.token, request.account_id, request.display_name
        )
    except BillingError as exc:
        raise http_error(exc) from exc

    return TeamMemberResponse(
        member_id=member.id,
        tenant_id=member.tenant_id,
        account_id=member.account_id,
        display_name=member.display_name,
        status=member.status,
    )


@router.post("/v1/verification/consume", response_model=VerifyEmailResponse)
async def consume_verification_token(
    request: VerifyEmailRequest,
    db: AsyncSession = Depends(get_write_db),
) -> VerifyEmailResponse:
    """Verify an email address with a one-time token."""
    try:
        account_id = await MembershipService(db).consume_verification_token(request.token)
    except BillingError as exc:
        raise http_error(exc) from exc
    return VerifyEmailResponse(account_id=account_id)
