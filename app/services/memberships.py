"""
Membership Service - Team member status, invites and email verification.

Each state change is a conditional UPDATE so concurrent admins (or a replayed
link) can't apply the same change twice. Invite acceptance creates the member
and consumes the invite in one transaction.
"""

import hashlib
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Account, Invite, TeamMember, VerificationToken, utc_now
from app.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    ResourceNotFoundError,
)
from app.models.api import InviteStatus, MemberStatus
from app.observability import get_logger
from app.services.transitions import StateTransitionGuard, run_atomically

logger = get_logger(__name__)


def hash_token(token: str) -> str:
    """SHA-256 of a one-time token; only hashes are stored."""
    return hashlib.sha256(token.encode()).hexdigest()


def _as_utc(moment: datetime) -> datetime:
    # Some drivers hand back naive timestamps for timestamptz columns
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


class MembershipService:
    """Team membership lifecycle."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize membership service with database session."""
        self.session = session
        self.guard = StateTransitionGuard(session)

    async def _get_member(self, tenant_id: str, member_id: UUID) -> TeamMember:
        stmt = select(TeamMember).where(
            TeamMember.id == member_id, TeamMember.tenant_id == tenant_id
        )
        member = (await self.session.execute(stmt)).scalar_one_or_none()
        if member is None:
            raise ResourceNotFoundError("TeamMember", member_id)
        return member

    async def change_status(
        self, tenant_id: str, member_id: UUID, new_status: MemberStatus
    ) -> MemberStatus:
        """
        Switch a member between ACTIVE and SUSPENDED.

        The UPDATE only matches if the member is still in the status read
        here, so a concurrent change wins and this one raises.

        Raises:
            ResourceNotFoundError: Member not in this tenant
            InvalidRequestError: Target is DISABLED (use disable())
            ConflictError: Member is disabled or changed concurrently
        """
        if new_status == MemberStatus.DISABLED:
            raise InvalidRequestError("Use disable() to disable a member")

        member = await self._get_member(tenant_id, member_id)
        current = MemberStatus(member.status)

        if current == MemberStatus.DISABLED:
            raise ConflictError("TeamMember", "Disabled members can't be reactivated")
        if current == new_status:
            return current

        async def apply(session: AsyncSession) -> None:
            await self.guard.require_transition(TeamMember, member.id, [current], new_status)

        await run_atomically(self.session, apply)
        logger.info(
            "member_status_changed",
            tenant_id=tenant_id,
            member_id=str(member_id),
            from_status=current.value,
            to_status=new_status.value,
        )
        return new_status

    async def disable(self, tenant_id: str, member_id: UUID, acting_member_id: UUID) -> None:
        """
        Permanently disable a member.

        Raises:
            ForbiddenError: Member tried to disable themselves
            ResourceNotFoundError: Member not in this tenant
            ConflictError: Member already disabled
        """
        if member_id == acting_member_id:
            raise ForbiddenError("Members can't disable themselves")

        member = await self._get_member(tenant_id, member_id)
        not_disabled = [s for s in MemberStatus if s != MemberStatus.DISABLED]

        async def apply(session: AsyncSession) -> None:
            await self.guard.require_transition(
                TeamMember,
                member.id,
                not_disabled,
                MemberStatus.DISABLED,
                message="Member is already disabled",
            )

        await run_atomically(self.session, apply)
        logger.info("member_disabled", tenant_id=tenant_id, member_id=str(member_id))

    async def accept_invite(self, token: str, account_id: UUID, display_name: str) -> TeamMember:
        """
        Join a tenant with an invite token.

        Raises:
            ResourceNotFoundError: Unknown token
            InvalidRequestError: Invite expired
            ConflictError: Invite already used or revoked, or account already a member
        """
        stmt = select(Invite).where(Invite.token_hash == hash_token(token))
        invite = (await self.session.execute(stmt)).scalar_one_or_none()
        if invite is None:
            raise ResourceNotFoundError("Invite", "token")
        if invite.status != InviteStatus.PENDING:
            raise ConflictError("Invite", "Invite was already used or revoked")
        if _as_utc(invite.expires_at) < utc_now():
            raise InvalidRequestError("Invite has expired")

        async def apply(session: AsyncSession) -> TeamMember:
            await self.guard.require_transition(
                Invite,
                invite.id,
                [InviteStatus.PENDING],
                InviteStatus.USED,
                message="Invite was already used",
                used_account_id=account_id,
                used_at=utc_now(),
            )
            member = TeamMember(
                tenant_id=invite.tenant_id,
                account_id=account_id,
                display_name=display_name,
                status=MemberStatus.ACTIVE,
            )
            session.add(member)
            await session.flush()
            return member

        try:
            member = await run_atomically(self.session, apply)
        except IntegrityError as e:
            raise ConflictError("TeamMember", "Account is already a member of this team") from e

        logger.info(
            "invite_accepted",
            tenant_id=member.tenant_id,
            member_id=str(member.id),
            invite_id=str(invite.id),
        )
        return member

    async def consume_verification_token(self, token: str) -> UUID:
        """
        Verify an account's email with a one-time token.

        Returns:
            Verified account ID

        Raises:
            ResourceNotFoundError: Unknown token
            InvalidRequestError: Token expired
            ConflictError: Token already used
        """
        stmt = select(VerificationToken).where(VerificationToken.token_hash == hash_token(token))
        record = (await self.session.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise ResourceNotFoundError("VerificationToken", "token")
        if record.used_at is not None:
            raise ConflictError("VerificationToken", "Token was already used")
        if _as_utc(record.expires_at) < utc_now():
            raise InvalidRequestError("Verification token has expired")

        account_id = record.account_id

        async def apply(session: AsyncSession) -> None:
            if await self.guard.consume_once(VerificationToken, record.id) == 0:
                raise ConflictError("VerificationToken", "Token was already used")
            await session.execute(
                update(Account).where(Account.id == account_id).values(email_verified=True)
            )

        await run_atomically(self.session, apply)
        logger.info("email_verified", account_id=str(account_id))
        return account_id
