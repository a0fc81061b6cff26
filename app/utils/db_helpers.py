"""
Database Helper Utilities for Concurrency Control

Provides:
- Database dialect detection (PostgreSQL vs SQLite)
- Row locking where the backend supports it
- Conditional update / delete primitives (compare-and-set)
"""

import logging
from typing import Optional, TypeVar, Type
from sqlalchemy import update, delete
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_postgres(db: Session) -> bool:
    """Check if the database is PostgreSQL"""
    try:
        return db.bind.dialect.name == 'postgresql'
    except AttributeError:
        return False


def is_sqlite(db: Session) -> bool:
    """Check if the database is SQLite"""
    try:
        return db.bind.dialect.name == 'sqlite'
    except AttributeError:
        return True  # Default to SQLite for safety


def acquire_row_lock(
    db: Session,
    model: Type[T],
    filter_condition,
    nowait: bool = False
) -> Optional[T]:
    """
    Load a row, locking it FOR UPDATE on PostgreSQL.

    SQLite serializes writers on its own, so the lock is skipped there.

    Example:
        client = acquire_row_lock(db, Client, Client.id == client_id)
    """
    query = db.query(model).filter(filter_condition)

    if is_postgres(db):
        query = query.with_for_update(nowait=nowait) if nowait else query.with_for_update()

    return query.first()


def compare_and_set(
    db: Session,
    model: Type[T],
    filter_condition,
    values: dict,
    *guards
) -> bool:
    """
    Atomically update one row only if every guard still holds.

    Issues a single `UPDATE ... WHERE filter AND guards` and reports whether
    exactly one row changed. The caller owns the transaction.

    Example:
        won = compare_and_set(
            db, BookingIntent, BookingIntent.id == intent_id,
            {"consumed_at": now, "booking_id": booking_id},
            BookingIntent.consumed_at.is_(None),
        )
    """
    stmt = update(model).where(filter_condition)
    for guard in guards:
        stmt = stmt.where(guard)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)

    result = db.execute(stmt)
    return result.rowcount == 1


def delete_where(db: Session, model: Type[T], filter_condition, *guards) -> int:
    """Conditionally delete rows; returns how many were removed."""
    stmt = delete(model).where(filter_condition)
    for guard in guards:
        stmt = stmt.where(guard)
    stmt = stmt.execution_options(synchronize_session=False)

    result = db.execute(stmt)
    return result.rowcount


def safe_upsert(
    db: Session,
    model: Type[T],
    filter_condition,
    create_data: dict,
    update_data: dict
) -> tuple:
    """
    Upsert a record located by `filter_condition`.

    Uses locking to prevent duplicate creation on PostgreSQL; a unique
    constraint on the lookup columns backs this up everywhere else.

    Returns:
        Tuple of (record, is_new)
    """
    existing = acquire_row_lock(db, model, filter_condition)

    if existing:
        for key, value in update_data.items():
            if hasattr(existing, key):
                setattr(existing, key, value)
        db.flush()
        return existing, False

    new_record = model(**create_data)
    db.add(new_record)
    db.flush()
    return new_record, True
