"""
Interest Service - Contact pipeline between recruiters and candidates.

Status flow:

    INTERESTED -> CONTACT_REQUESTED -> CONTACT_DISCLOSED
         \\               \\
          +-> DECLINED <---+

Disclosure costs the tenant CONTACT_DISCLOSURE points and happens inside the
consumption transaction, guarded by a conditional UPDATE so two approvals of
the same interest can't both charge. DECLINED and CONTACT_DISCLOSED are
terminal.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    Candidate,
    CompanyAccess,
    DirectMessage,
    Interest,
    Notification,
    TeamMember,
)
from app.exceptions import (
    ConflictError,
    ForbiddenError,
    InsufficientPointsError,
    InvalidRequestError,
    ResourceNotFoundError,
    WriteVerificationError,
)
from app.models.api import (
    AccessPreference,
    BillableAction,
    InterestStatus,
    MemberStatus,
    NotificationType,
    SenderType,
)
from app.models.domain import ContactDetails, InterestOutcome, SentMessage
from app.observability import get_logger
from app.services.consumption import ConsumptionCoordinator
from app.services.transitions import StateTransitionGuard, run_atomically

logger = get_logger(__name__)

OPEN_STATUSES = (InterestStatus.INTERESTED, InterestStatus.CONTACT_REQUESTED)


class InterestService:
    """Contact requests, approvals, declines and messaging on interests."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize interest service with database session."""
        self.session = session
        self.guard = StateTransitionGuard(session)
        self.coordinator = ConsumptionCoordinator(session)

    async def _load(self, interest_id: UUID) -> tuple[Interest, Candidate, TeamMember]:
        stmt = (
            select(Interest, Candidate, TeamMember)
            .join(Candidate, Candidate.id == Interest.candidate_id)
            .join(TeamMember, TeamMember.id == Interest.member_id)
            .where(Interest.id == interest_id)
        )
        row = (await self.session.execute(stmt)).one_or_none()
        if row is None:
            raise ResourceNotFoundError("Interest", interest_id)
        return row[0], row[1], row[2]

    async def _access_preference(
        self, candidate_id: UUID, tenant_id: str
    ) -> AccessPreference | None:
        stmt = select(CompanyAccess.preference).where(
            CompanyAccess.candidate_id == candidate_id,
            CompanyAccess.tenant_id == tenant_id,
        )
        preference = (await self.session.execute(stmt)).scalar_one_or_none()
        return AccessPreference(preference) if preference is not None else None

    async def _set_access(
        self, candidate_id: UUID, tenant_id: str, preference: AccessPreference
    ) -> None:
        stmt = select(CompanyAccess).where(
            CompanyAccess.candidate_id == candidate_id,
            CompanyAccess.tenant_id == tenant_id,
        )
        access = (await self.session.execute(stmt)).scalar_one_or_none()
        if access is None:
            self.session.add(
                CompanyAccess(candidate_id=candidate_id, tenant_id=tenant_id, preference=preference)
            )
        else:
            access.preference = preference

    def _notify(
        self,
        account_id: UUID,
        title: str,
        body: str,
        interest_id: UUID,
        message_id: UUID | None = None,
    ) -> None:
        self.session.add(
            Notification(
                account_id=account_id,
                type=NotificationType.PIPELINE_UPDATE,
                title=title,
                body=body,
                interest_id=interest_id,
                message_id=message_id,
            )
        )

    # ========================================================================
    # Recruiter side
    # ========================================================================

    async def request_contact(self, interest_id: UUID, member_id: UUID) -> InterestOutcome:
        """
        Ask the candidate for contact details.

        A standing DENY declines immediately; a standing ALLOW discloses
        immediately and charges the tenant. Otherwise the interest waits for
        the candidate in CONTACT_REQUESTED.

        Raises:
            ResourceNotFoundError: Unknown interest
            ForbiddenError: Interest belongs to another team member
            ConflictError: Candidate already declined, or a concurrent change won
            InsufficientPointsError: Auto-disclosure can't be paid for
        """
        interest, candidate, member = await self._load(interest_id)

        if interest.member_id != member_id or member.status != MemberStatus.ACTIVE:
            raise ForbiddenError("Interest belongs to another team member")

        if interest.status == InterestStatus.CONTACT_DISCLOSED:
            return InterestOutcome(
                interest_id=interest.id,
                status=InterestStatus.CONTACT_DISCLOSED,
                contact=_contact(candidate),
            )
        if interest.status == InterestStatus.DECLINED:
            raise ConflictError("Interest", "Candidate has declined contact")

        preference = await self._access_preference(candidate.id, interest.tenant_id)

        if preference == AccessPreference.DENY:

            async def auto_decline(session: AsyncSession) -> None:
                await self.guard.require_transition(
                    Interest, interest.id, OPEN_STATUSES, InterestStatus.DECLINED
                )
                self._notify(
                    member.account_id,
                    "Contact request declined",
                    f"{candidate.name} is not accepting contact from your company",
                    interest.id,
                )

            await run_atomically(self.session, auto_decline)
            logger.info("contact_auto_declined", interest_id=str(interest.id))
            return InterestOutcome(
                interest_id=interest.id, status=InterestStatus.DECLINED, auto=True
            )

        if preference == AccessPreference.ALLOW:

            async def auto_disclose(session: AsyncSession) -> None:
                await self.guard.require_transition(
                    Interest, interest.id, OPEN_STATUSES, InterestStatus.CONTACT_DISCLOSED
                )
                self._notify(
                    candidate.account_id,
                    "Contact details shared",
                    "Your contact details were shared with a company you allowed",
                    interest.id,
                )

            await self.coordinator.consume(
                interest.tenant_id,
                BillableAction.CONTACT_DISCLOSURE,
                auto_disclose,
                related_id=str(interest.id),
                description=f"Contact disclosure: {candidate.name}",
            )
            logger.info("contact_auto_disclosed", interest_id=str(interest.id))
            return InterestOutcome(
                interest_id=interest.id,
                status=InterestStatus.CONTACT_DISCLOSED,
                auto=True,
                contact=_contact(candidate),
            )

        if interest.status == InterestStatus.CONTACT_REQUESTED:
            return InterestOutcome(interest_id=interest.id, status=InterestStatus.CONTACT_REQUESTED)

        async def request(session: AsyncSession) -> None:
            await self.guard.require_transition(
                Interest,
                interest.id,
                [InterestStatus.INTERESTED],
                InterestStatus.CONTACT_REQUESTED,
            )
            self._notify(
                candidate.account_id,
                "Contact request",
                "A company would like your contact details",
                interest.id,
            )

        await run_atomically(self.session, request)
        return InterestOutcome(interest_id=interest.id, status=InterestStatus.CONTACT_REQUESTED)

    # ========================================================================
    # Candidate side
    # ========================================================================

    async def approve(
        self,
        interest_id: UUID,
        candidate_id: UUID,
        preference: AccessPreference | None = None,
    ) -> InterestOutcome:
        """
        Disclose contact details and charge the tenant.

        Approving an already-disclosed interest returns it unchanged and
        charges nothing. With preference=ALLOW the candidate also allows
        future requests from this tenant.

        Raises:
            ResourceNotFoundError: Unknown interest
            ForbiddenError: Interest belongs to another candidate
            ConflictError: Interest was declined, or a concurrent change won
            InvalidRequestError: No pending contact request
            InsufficientPointsError: Tenant can't pay for the disclosure
        """
        interest, candidate, member = await self._load(interest_id)

        if interest.candidate_id != candidate_id:
            raise ForbiddenError("Interest belongs to another candidate")

        if interest.status == InterestStatus.CONTACT_DISCLOSED:
            return InterestOutcome(
                interest_id=interest.id,
                status=InterestStatus.CONTACT_DISCLOSED,
                contact=_contact(candidate),
            )
        if interest.status == InterestStatus.DECLINED:
            raise ConflictError("Interest", "Interest was already declined")
        if interest.status != InterestStatus.CONTACT_REQUESTED:
            raise InvalidRequestError("No pending contact request")

        check = await self.coordinator.check_balance(
            interest.tenant_id, BillableAction.CONTACT_DISCLOSURE
        )
        if not check.can_proceed:
            raise InsufficientPointsError(required=check.required, available=check.available)

        async def disclose(session: AsyncSession) -> None:
            await self.guard.require_transition(
                Interest,
                interest.id,
                [InterestStatus.CONTACT_REQUESTED],
                InterestStatus.CONTACT_DISCLOSED,
                message="Interest is no longer awaiting approval",
            )
            if preference == AccessPreference.ALLOW:
                await self._set_access(candidate.id, interest.tenant_id, AccessPreference.ALLOW)
            self._notify(
                member.account_id,
                "Contact details disclosed",
                f"{candidate.name} shared their contact details",
                interest.id,
            )

        await self.coordinator.consume(
            interest.tenant_id,
            BillableAction.CONTACT_DISCLOSURE,
            disclose,
            related_id=str(interest.id),
            description=f"Contact disclosure: {candidate.name}",
        )

        return InterestOutcome(
            interest_id=interest.id,
            status=InterestStatus.CONTACT_DISCLOSED,
            contact=_contact(candidate),
        )

    async def decline(
        self,
        interest_id: UUID,
        candidate_id: UUID,
        preference: AccessPreference | None = None,
    ) -> InterestOutcome:
        """
        Decline contact. Declining twice is a no-op.

        With preference=DENY future requests from this tenant decline
        automatically.

        Raises:
            ResourceNotFoundError: Unknown interest
            ForbiddenError: Interest belongs to another candidate
            ConflictError: Contact was already disclosed, or a concurrent change won
        """
        interest, candidate, member = await self._load(interest_id)

        if interest.candidate_id != candidate_id:
            raise ForbiddenError("Interest belongs to another candidate")
        if interest.status == InterestStatus.CONTACT_DISCLOSED:
            raise ConflictError("Interest", "Contact details were already disclosed")

        already_declined = interest.status == InterestStatus.DECLINED

        async def apply(session: AsyncSession) -> None:
            if not already_declined:
                await self.guard.require_transition(
                    Interest, interest.id, OPEN_STATUSES, InterestStatus.DECLINED
                )
                self._notify(
                    member.account_id,
                    "Contact request declined",
                    f"{candidate.name} declined to share contact details",
                    interest.id,
                )
            if preference == AccessPreference.DENY:
                await self._set_access(candidate.id, interest.tenant_id, AccessPreference.DENY)

        await run_atomically(self.session, apply)
        return InterestOutcome(interest_id=interest.id, status=InterestStatus.DECLINED)

    # ========================================================================
    # Messaging
    # ========================================================================

    async def send_message(
        self,
        interest_id: UUID,
        sender_type: SenderType,
        sender_id: UUID,
        content: str,
    ) -> SentMessage:
        """
        Send a direct message on a disclosed interest.

        Recruiter messages cost MESSAGE_SEND points; candidate replies are
        free. Both run in a transaction that re-checks the interest is still
        CONTACT_DISCLOSED.

        Raises:
            ResourceNotFoundError: Unknown interest
            ForbiddenError: Sender isn't a party, or contact isn't disclosed
            ConflictError: Interest changed state during the send
            InsufficientPointsError: Recruiter's tenant can't pay
        """
        interest, candidate, member = await self._load(interest_id)

        if sender_type == SenderType.RECRUITER:
            if sender_id != interest.member_id:
                raise ForbiddenError("Sender is not the interest's team member")
            recipient_account_id = candidate.account_id
        else:
            if sender_id != interest.candidate_id:
                raise ForbiddenError("Sender is not the interest's candidate")
            recipient_account_id = member.account_id

        if interest.status != InterestStatus.CONTACT_DISCLOSED:
            raise ForbiddenError("Messaging requires disclosed contact details")

        async def deliver(session: AsyncSession) -> DirectMessage:
            touched = await self.guard.touch_if(
                Interest, interest.id, [InterestStatus.CONTACT_DISCLOSED]
            )
            if touched == 0:
                raise ConflictError("Interest", "Interest is no longer open for messaging")

            message = DirectMessage(
                interest_id=interest.id,
                sender_type=sender_type,
                sender_id=sender_id,
                content=content,
            )
            session.add(message)
            await session.flush()

            self._notify(
                recipient_account_id,
                "New message",
                content[:100],
                interest.id,
                message_id=message.id,
            )
            return message

        if sender_type == SenderType.RECRUITER:
            consumed = await self.coordinator.consume(
                interest.tenant_id,
                BillableAction.MESSAGE_SEND,
                deliver,
                related_id=str(interest.id),
                description=f"Message: {candidate.name}",
            )
            message = consumed.result
            points = consumed.consumed
        else:
            message = await run_atomically(self.session, deliver)
            points = 0

        if message is None:
            raise WriteVerificationError(f"Message for interest {interest.id} was not persisted")

        return SentMessage(
            message_id=message.id,
            interest_id=interest.id,
            sender_type=sender_type,
            content=message.content,
            created_at=message.created_at,
            points_consumed=points,
        )


def _contact(candidate: Candidate) -> ContactDetails:
    return ContactDetails(name=candidate.name, email=candidate.email, phone=candidate.phone)
