from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow


class TimestampMixin:
    # Python-side defaults keep microsecond precision on SQLite (FIFO ordering)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SoftDeleteMixin:
    """
    Rows are never removed through the repository; deleted_at is stamped instead.

    Reads go through services/repository.py, which excludes stamped rows
    unless include_deleted=True is passed explicitly.
    """
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


def live_unique_index(name: str, *columns: str):
    """Unique index that only covers rows without a deleted_at stamp."""
    return db.Index(
        name,
        *columns,
        unique=True,
        sqlite_where=db.text("deleted_at IS NULL"),
        postgresql_where=db.text("deleted_at IS NULL"),
    )
