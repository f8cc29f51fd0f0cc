"""
State Transition Guard - Compare-and-swap updates on entity status.

Every guarded change is a single conditional UPDATE whose WHERE clause
includes the expected current state. The affected row count tells the caller
whether it won: 1 means the transition happened, 0 means another request got
there first (or the entity is in a state that doesn't allow it).

Never read-then-write a status outside a lock; use these instead.
"""

from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Base, utc_now
from app.exceptions import ConflictError
from app.observability import get_logger, metrics

logger = get_logger(__name__)

T = TypeVar("T")


class StateTransitionGuard:
    """Conditional updates bound to the caller's session and transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def transition(
        self,
        model: type[Base],
        entity_id: UUID,
        from_statuses: Iterable[Enum],
        to_status: Enum,
        **values: Any,
    ) -> int:
        """
        Move an entity to to_status if it is currently in one of from_statuses.

        Extra keyword values are written in the same UPDATE.

        Returns:
            Affected row count (0 or 1)
        """
        allowed = list(from_statuses)
        if not allowed:
            raise ValueError("from_statuses must name at least one status")

        column: Any = model.status  # type: ignore[attr-defined]
        stmt = (
            update(model)
            .where(model.id == entity_id, column.in_(allowed))  # type: ignore[attr-defined]
            .values(status=to_status, **values)
        )
        count = await self._execute(stmt)

        if count == 0:
            self._record_conflict(model, entity_id, to_status=to_status.value)
        return count

    async def require_transition(
        self,
        model: type[Base],
        entity_id: UUID,
        from_statuses: Iterable[Enum],
        to_status: Enum,
        message: str | None = None,
        **values: Any,
    ) -> None:
        """
        transition() that raises instead of returning 0.

        Raises:
            ConflictError: No row matched the expected state
        """
        count = await self.transition(model, entity_id, from_statuses, to_status, **values)
        if count == 0:
            raise ConflictError(model.__name__, message)

    async def touch_if(
        self, model: type[Base], entity_id: UUID, statuses: Iterable[Enum]
    ) -> int:
        """
        Bump updated_at only while the entity is in one of statuses.

        Used as a guard inside a transaction: a concurrent status change makes
        the count 0 and the caller aborts.
        """
        allowed = list(statuses)
        if not allowed:
            raise ValueError("statuses must name at least one status")

        column: Any = model.status  # type: ignore[attr-defined]
        stmt = (
            update(model)
            .where(model.id == entity_id, column.in_(allowed))  # type: ignore[attr-defined]
            .values(updated_at=utc_now())
        )
        count = await self._execute(stmt)

        if count == 0:
            self._record_conflict(model, entity_id)
        return count

    async def consume_once(self, model: type[Base], entity_id: UUID, **values: Any) -> int:
        """
        Mark a single-use record used (used_at IS NULL -> now).

        Returns:
            1 for the first caller, 0 for everyone after
        """
        column: Any = model.used_at  # type: ignore[attr-defined]
        stmt = (
            update(model)
            .where(model.id == entity_id, column.is_(None))  # type: ignore[attr-defined]
            .values(used_at=utc_now(), **values)
        )
        count = await self._execute(stmt)

        if count == 0:
            self._record_conflict(model, entity_id)
        return count

    async def _execute(self, stmt: Any) -> int:
        result = await self.session.execute(stmt)
        return int(result.rowcount)  # type: ignore[attr-defined]

    def _record_conflict(self, model: type[Base], entity_id: UUID, **context: Any) -> None:
        entity = model.__tablename__
        metrics.record_transition_conflict(entity)
        logger.info("state_transition_conflict", entity=entity, entity_id=str(entity_id), **context)


async def run_atomically(
    session: AsyncSession, operation: Callable[[AsyncSession], Awaitable[T]]
) -> T:
    """Run operation in the session's transaction, commit on success, roll back on error."""
    try:
        result = await operation(session)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return result
