"""
Chat Session Service - Billed conversations with candidate agents.

Opening a session costs CONVERSATION points once per (member, agent) pair.
The existence check is repeated inside the consumption transaction, under the
tenant lock, so two concurrent opens charge once and share one session.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import ChatSession
from app.exceptions import DuplicateSessionError, WriteVerificationError
from app.models.api import BillableAction, SessionType
from app.models.domain import OpenedSession
from app.observability import get_logger
from app.services.consumption import ConsumptionCoordinator

logger = get_logger(__name__)


class ChatSessionService:
    """Opens recruiter-agent chat sessions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.coordinator = ConsumptionCoordinator(session)

    async def _find(self, member_id: UUID, agent_id: str) -> ChatSession | None:
        stmt = select(ChatSession).where(
            ChatSession.member_id == member_id,
            ChatSession.agent_id == agent_id,
            ChatSession.session_type == SessionType.RECRUITER_AGENT_CHAT,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def open_session(self, tenant_id: str, member_id: UUID, agent_id: str) -> OpenedSession:
        """
        Return the member's session with the agent, creating and charging for it if new.

        Raises:
            NoSubscriptionError, SubscriptionInactiveError, InsufficientPointsError:
                From the consumption for a new session
        """
        existing = await self._find(member_id, agent_id)
        if existing is not None:
            return _opened(existing, created=False, points=0)

        async def create(session: AsyncSession) -> ChatSession:
            if await self._find(member_id, agent_id) is not None:
                raise DuplicateSessionError(member_id, agent_id)
            chat = ChatSession(
                tenant_id=tenant_id,
                member_id=member_id,
                agent_id=agent_id,
                session_type=SessionType.RECRUITER_AGENT_CHAT,
            )
            session.add(chat)
            await session.flush()
            return chat

        try:
            consumed = await self.coordinator.consume(
                tenant_id,
                BillableAction.CONVERSATION,
                create,
                related_id=agent_id,
                description=f"Agent conversation: {agent_id}",
            )
        except DuplicateSessionError:
            logger.warning(
                "duplicate_session_prevented",
                tenant_id=tenant_id,
                member_id=str(member_id),
                agent_id=agent_id,
            )
            existing = await self._find(member_id, agent_id)
            if existing is None:
                raise WriteVerificationError(
                    f"Session for member {member_id} and agent {agent_id} vanished"
                ) from None
            return _opened(existing, created=False, points=0)

        chat = consumed.result
        if chat is None:
            raise WriteVerificationError(f"Session for member {member_id} was not persisted")
        return _opened(chat, created=True, points=consumed.consumed)


def _opened(chat: ChatSession, created: bool, points: int) -> OpenedSession:
    return OpenedSession(
        session_id=chat.id,
        tenant_id=chat.tenant_id,
        member_id=chat.member_id,
        agent_id=chat.agent_id,
        created=created,
        points_consumed=points,
    )
