# Overview: Append-only stock transaction log (writer and paginated reader).

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryUnit, Product, StockTransaction
from ..models.inventory import TX_TYPES
from ..validation import PageRequest
"""
Stock Transaction Log Invariants (authoritative)

- One row per unit state change: IN (stock added, unit returned),
  OUT (unit assigned, unit permanently deleted), ADJUSTMENT (manual status
  change), RETIRED (unit retired).
- quantity is always 1.
- Rows are written inside the same DB transaction as the state change they
  record. record() flushes but never commits.
- This module exposes no update/delete. The only removal path is the
  permanent unit delete in inventory_service, which purges the unit's rows
  and then records an OUT tombstone (inventory_unit_id = NULL).
"""


def record(
    *,
    unit: InventoryUnit | None,
    product_id: int,
    tx_type: str,
    reason: str | None = None,
    reference: str | None = None,
    acting_user_id: int | None = None,
) -> StockTransaction:
    """Append one transaction row. No domain logic here."""
    if tx_type not in TX_TYPES:
        raise ValueError(f"Unknown stock transaction type {tx_type!r}")

    tx = StockTransaction(
        inventory_unit_id=unit.id if unit is not None else None,
        product_id=product_id,
        type=tx_type,
        quantity=1,
        reason=reason,
        reference=reference,
        user_id=acting_user_id,
    )
    db.session.add(tx)
    db.session.flush()
    return tx


@dataclass(frozen=True)
class TransactionFilter:
    product_id: int | None = None
    inventory_unit_id: int | None = None
    tx_type: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None


def _filtered_query(filters: TransactionFilter):
    q = db.session.query(StockTransaction)
    if filters.product_id is not None:
        q = q.filter(StockTransaction.product_id == filters.product_id)
    if filters.inventory_unit_id is not None:
        q = q.filter(StockTransaction.inventory_unit_id == filters.inventory_unit_id)
    if filters.tx_type:
        if filters.tx_type not in TX_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(TX_TYPES)}")
        q = q.filter(StockTransaction.type == filters.tx_type)
    if filters.from_date is not None:
        q = q.filter(StockTransaction.created_at >= filters.from_date)
    if filters.to_date is not None:
        q = q.filter(StockTransaction.created_at <= filters.to_date)
    return q


def serialize(tx: StockTransaction) -> dict:
    data = tx.to_dict()
    data["inventory"] = tx.unit.to_summary() if tx.unit is not None else None
    data["product"] = tx.product.to_summary() if tx.product is not None else None
    data["user"] = tx.user.to_summary() if tx.user is not None else None
    return data


def list_transactions(filters: TransactionFilter, page: PageRequest) -> tuple[list[dict], int]:
    """Newest first. Returns (rows, total)."""
    q = _filtered_query(filters)
    total = q.count()
    rows = (
        q.order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
        .offset(page.offset)
        .limit(page.limit)
        .all()
    )
    return [serialize(tx) for tx in rows], total


def transactions_for_unit(unit_id: int) -> list[StockTransaction]:
    """Oldest first; used by tests and the unit detail view."""
    return (
        db.session.query(StockTransaction)
        .filter(StockTransaction.inventory_unit_id == unit_id)
        .order_by(StockTransaction.created_at.asc(), StockTransaction.id.asc())
        .all()
    )


def recent_transactions(limit: int = 10) -> list[dict]:
    """Most recent rows whose unit and product are both live."""
    rows = (
        db.session.query(StockTransaction)
        .join(InventoryUnit, StockTransaction.inventory_unit_id == InventoryUnit.id)
        .join(Product, StockTransaction.product_id == Product.id)
        .filter(InventoryUnit.deleted_at.is_(None), Product.deleted_at.is_(None))
        .order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
        .limit(limit)
        .all()
    )
    return [serialize(tx) for tx in rows]
