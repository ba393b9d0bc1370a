"""
Single-statement conditional writes.

Both helpers compile to INSERT ... ON CONFLICT, so the uniqueness check and
the write happen in one round-trip. Supported dialects: postgresql, sqlite.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def _insert_for(db: Session, model):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"ON CONFLICT is not wired for dialect {dialect!r}")


def insert_if_absent(
    db: Session,
    model,
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
) -> bool:
    """Insert *values* unless a row already holds the same *conflict_columns*.

    Returns True when a row was written. Does not commit.
    """
    stmt = _insert_for(db, model).values(**values).on_conflict_do_nothing(
        index_elements=list(conflict_columns)
    )
    result = db.execute(stmt)
    return bool(result.rowcount)


def upsert(
    db: Session,
    model,
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Iterable[str] | None = None,
) -> None:
    """Insert *values*, or overwrite *update_columns* of the conflicting row.

    *update_columns* defaults to every key of *values* except the conflict
    columns. Does not commit.
    """
    conflict = list(conflict_columns)
    if update_columns is None:
        update_columns = [k for k in values if k not in conflict]

    stmt = _insert_for(db, model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=conflict,
        set_={col: stmt.excluded[col] for col in update_columns},
    )
    db.execute(stmt)
