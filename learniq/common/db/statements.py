"""
Portable write statements.

``insert_if_absent`` is the building block for every exactly-once record
(milestones, unlocks, deduplicated point transactions): the unique key
decides the winner inside the database and the caller learns whether its
own row was the one written.
"""

from typing import Any, Dict

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.error_handling import DatabaseError

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def insert_if_absent(session: AsyncSession, model: Any, values: Dict[str, Any]) -> bool:
    """
    Insert one row unless it would violate a unique constraint.

    Returns:
        True if this call inserted the row, False if it already existed.

    Raises:
        DatabaseError: The session is bound to an unsupported dialect.
    """
    dialect = session.get_bind().dialect.name
    try:
        insert = _DIALECT_INSERTS[dialect]
    except KeyError:
        raise DatabaseError("insert_if_absent", details={"dialect": dialect})

    statement = insert(model).values(**values).on_conflict_do_nothing()
    result = await session.execute(statement)
    return result.rowcount == 1
