"""
Dialect-aware INSERT ... ON CONFLICT DO UPDATE.

PostgreSQL in production, SQLite under test; both dialects expose the same
``on_conflict_do_update`` API.
"""

from typing import Any, Dict, Iterable, List, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_for(db: AsyncSession):
    dialect = db.bind.dialect.name
    try:
        return _INSERTS[dialect]
    except KeyError:
        raise ValueError(f"Upsert not supported for dialect: {dialect}")


async def upsert(
    db: AsyncSession,
    model: Any,
    rows: Sequence[Dict[str, Any]],
    index_elements: Iterable[str],
    update_columns: Iterable[str] = None,
    chunk_size: int = 500,
) -> int:
    """
    Insert rows, overwriting mutable columns when the key already exists.

    Args:
        db: Session to execute on
        model: Mapped class
        rows: Column dicts, all with the same keys
        index_elements: Conflict target (primary key or unique constraint)
        update_columns: Columns to overwrite; defaults to every non-key column

    Returns:
        Number of rows written
    """
    if not rows:
        return 0

    keys: List[str] = list(index_elements)
    if update_columns is None:
        update_columns = [c for c in rows[0].keys() if c not in keys]

    update_columns = list(update_columns)
    insert = _insert_for(db)

    # asyncpg caps a statement at 32767 bind parameters
    for i in range(0, len(rows), chunk_size):
        chunk = list(rows[i:i + chunk_size])
        stmt = insert(model).values(chunk)
        stmt = stmt.on_conflict_do_update(
            index_elements=keys,
            set_={col: stmt.excluded[col] for col in update_columns},
        )
        await db.execute(stmt)

    return len(rows)
