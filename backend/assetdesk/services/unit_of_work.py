# Overview: Transaction scopes for multi-step mutations and consistent reads.

"""
Unit of work

Every multi-step mutation (assign, return, add stock, retire, delete,
bulk delete) runs inside `with transaction():`.

- Commit happens once, when the outermost scope exits cleanly.
- Any exception rolls back every write made inside the outermost scope.
- Nested scopes only flush, so services compose without committing early.
- Store failures are mapped to the error taxonomy:
    IntegrityError   -> ConflictError (the losing side of a race)
    OperationalError -> StoreUnavailableError
- No retries. The caller gets the typed error.
"""

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError

from ..errors import ConflictError, StoreUnavailableError
from ..extensions import db


_DEPTH_KEY = "unit_of_work_depth"
DEFAULT_CONFLICT_MESSAGE = "The record was changed by another request; retry the operation"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Correctness on SQLite rests on the conditional UPDATE in
    inventory_service.mark_assigned and the open-assignment unique index.
    """
    return query.with_for_update()


def _depth(session) -> int:
    return session.info.get(_DEPTH_KEY, 0)


@contextmanager
def transaction(conflict_message: str = DEFAULT_CONFLICT_MESSAGE):
    """Atomic write scope. Yields the session."""
    session = db.session
    depth = _depth(session)
    session.info[_DEPTH_KEY] = depth + 1
    outermost = depth == 0
    try:
        yield session
        if outermost:
            session.commit()
        else:
            session.flush()
    except IntegrityError as exc:
        if outermost:
            session.rollback()
        current_app.logger.warning("Integrity conflict rolled back: %s", exc.orig)
        raise ConflictError(conflict_message) from exc
    except OperationalError as exc:
        if outermost:
            session.rollback()
        current_app.logger.exception("Data store operation failed")
        raise StoreUnavailableError() from exc
    except BaseException:
        if outermost:
            session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = depth


@contextmanager
def read_transaction():
    """
    Read scope for multi-query views (analytics, dashboard, stock summary).

    All queries share one connection and one database transaction, which is
    ended on exit. Snapshot consistency across the queries is only as strong
    as the store's isolation level: PostgreSQL REPEATABLE READ gives one
    snapshot; SQLite and READ COMMITTED do not.
    """
    session = db.session
    depth = _depth(session)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except OperationalError as exc:
        if depth == 0:
            session.rollback()
        current_app.logger.exception("Data store read failed")
        raise StoreUnavailableError() from exc
    except BaseException:
        if depth == 0:
            session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = depth
