"""Dialect-aware INSERT ... ON CONFLICT DO NOTHING."""

from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session


def insert_ignore(
    db: Session,
    model: type,
    values: dict[str, Any],
    conflict_columns: list[str],
) -> bool:
    """
    Insert a row unless it collides with a unique constraint.

    Returns True when a row was inserted. Uses the native conflict clause on
    PostgreSQL and SQLite; other backends fall back to a savepoint that
    swallows only IntegrityError.
    """
    dialect = db.get_bind().dialect.name

    if dialect in ("postgresql", "sqlite"):
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        stmt = (
            insert(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=conflict_columns)
        )
        result = db.execute(stmt)
        return bool(result.rowcount)

    try:
        with db.begin_nested():
            db.add(model(**values))
        return True
    except IntegrityError:
        return False
