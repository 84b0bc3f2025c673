"""
Compare-and-set state transitions.

Both the booking and the visitor pass state machines move rows forward with
the same primitive: an UPDATE whose WHERE clause carries the expected current
state. The store evaluates the predicate and applies the mutation as one
statement, so among concurrent callers exactly one sees rowcount == 1.

    won = await transition(
        session, VisitorPass, pass_id,
        when=[VisitorPass.status == "active"],
        values={"status": "verified", ...},
    )

On PostgreSQL (READ COMMITTED) a second writer blocks on the row lock until
the first commits, then re-checks the predicate against the committed row and
matches nothing. The caller decides what losing means: re-read and report
(verification), retry the transaction (slot claims) or fail with a Conflict
(booking decisions).
"""

from typing import Any, Iterable, Optional, Type, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


async def transition(
    session: AsyncSession,
    model: Type[ModelT],
    row_id: int,
    *,
    when: Iterable[Any],
    values: dict,
) -> bool:
    """Apply values to row_id only if every `when` clause still holds."""
    result = await session.execute(
        update(model)
        .where(model.id == row_id, *when)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def reload(session: AsyncSession, model: Type[ModelT], row_id: int) -> Optional[ModelT]:
    """Read the row as it is now, discarding any state cached in the session."""
    result = await session.execute(
        select(model)
        .where(model.id == row_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
