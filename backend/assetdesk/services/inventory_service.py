# Overview: Inventory unit ledger; unit creation, FIFO selection, status transitions and removal.

# backend/assetdesk/services/inventory_service.py

from __future__ import annotations

import time
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, NotAvailableError, NotFoundError, OutOfStockError, ValidationError
from ..extensions import db
from ..models import Assignment, InventoryUnit, Product, StockTransaction
from ..models.inventory import (
    TX_ADJUSTMENT, TX_IN, TX_OUT, TX_RETIRED,
    UNIT_ASSIGNED, UNIT_AVAILABLE, UNIT_DAMAGED, UNIT_MAINTENANCE, UNIT_RETIRED, UNIT_STATUSES,
)
from ..time_utils import add_months, utcnow
from ..validation import (
    ModelValidationPolicy, coerce_datetime, coerce_decimal, coerce_int, coerce_str, validate_payload,
)
from . import repository, stock_ledger_service
from .reference_service import require_product
from .unit_of_work import lock_for_update, read_transaction, transaction
"""
Inventory Unit Ledger Invariants (authoritative)

Time handling:
- All internal datetimes are UTC-naive (tzinfo=None).
- FIFO order is (created_at, id) ascending; created_at has microsecond precision.

Unit state:
- Units are created AVAILABLE (condition NEW unless given) in batches.
- ASSIGNED is entered only through mark_assigned() (assign operation) and left
  only through mark_returned() (return operation).
- A unit with an open assignment cannot change status, be retired, or be deleted.
- RETIRED units are excluded from active stock counts.

Audit:
- Every state change appends one StockTransaction in the same DB transaction.
- Functions prefixed with an underscore, mark_assigned and mark_returned
  never commit. Public operations commit through unit_of_work.transaction().
"""


UNIT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"status", "condition", "location", "notes", "serial_number", "warranty_expiry"},
    aliases={"serialNumber": "serial_number", "warrantyExpiry": "warranty_expiry"},
)

DUPLICATE_SERIAL_MESSAGE = "Serial number already exists"


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def _normalize_serial(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list, bool)):
        raise ValidationError("serialNumbers must contain strings")
    serial = str(value).strip()
    return serial or None


def resolve_return_status(disposition: str | None) -> str:
    """DAMAGED and MAINTENANCE are honored; anything else returns the unit to AVAILABLE."""
    normalized = (disposition or "").strip().upper()
    if normalized in (UNIT_DAMAGED, UNIT_MAINTENANCE):
        return normalized
    return UNIT_AVAILABLE


def warranty_expiry_for(product: Product, purchase_date: datetime | None) -> datetime | None:
    if purchase_date is None or not product.warranty_duration_months:
        return None
    return add_months(purchase_date, product.warranty_duration_months)


def has_open_assignment(unit_id: int) -> bool:
    return repository.assignments.exists(
        Assignment.inventory_unit_id == unit_id,
        Assignment.returned_at.is_(None),
    )


def open_assignment_for(unit_id: int) -> Assignment | None:
    return repository.assignments.filter(
        Assignment.inventory_unit_id == unit_id,
        Assignment.returned_at.is_(None),
    ).first()


def _ensure_serials_free(serials: list[str], exclude_unit_id: int | None = None) -> None:
    seen = set()
    for serial in serials:
        if serial in seen:
            raise ConflictError(f"Duplicate serial number in request: {serial}")
        seen.add(serial)
    if not serials:
        return
    criteria = [InventoryUnit.serial_number.in_(serials)]
    if exclude_unit_id is not None:
        criteria.append(InventoryUnit.id != exclude_unit_id)
    clash = repository.units.filter(*criteria).first()
    if clash is not None:
        raise ConflictError(f"Serial number {clash.serial_number} already exists")


# =============================================================================
# CREATION
# =============================================================================

def add_units(
    product: Product,
    count: int,
    *,
    serial_numbers: list | None = None,
    purchase_date: datetime | None = None,
    purchase_price: Decimal | None = None,
    location: str | None = None,
    condition: str = "NEW",
    reason: str = "Stock replenishment",
    reference: str | None = None,
    initial: bool = False,
    acting_user_id: int | None = None,
) -> list[InventoryUnit]:
    """
    Create `count` AVAILABLE units and one IN transaction per unit.

    serial_numbers[i] applies to the i-th unit; missing/blank entries mean
    no serial. Reference tags: INIT-<productId>-<n> for initial stock,
    otherwise the caller's reference or ADD-<epochMillis>-<n>.

    Must be called inside a transaction scope; flushes, never commits.
    """
    serial_numbers = list(serial_numbers or [])
    serials = [_normalize_serial(serial_numbers[i]) if i < len(serial_numbers) else None for i in range(count)]
    _ensure_serials_free([s for s in serials if s])

    warranty_expiry = warranty_expiry_for(product, purchase_date)
    batch_stamp = _epoch_millis()

    created = []
    for index, serial in enumerate(serials, start=1):
        unit = InventoryUnit(
            product_id=product.id,
            serial_number=serial,
            status=UNIT_AVAILABLE,
            condition=condition or "NEW",
            purchase_date=purchase_date,
            purchase_price=purchase_price,
            warranty_expiry=warranty_expiry,
            location=location,
        )
        db.session.add(unit)
        db.session.flush()

        if initial:
            tag = f"INIT-{product.id}-{index}"
        else:
            tag = reference or f"ADD-{batch_stamp}-{index}"

        stock_ledger_service.record(
            unit=unit,
            product_id=product.id,
            tx_type=TX_IN,
            reason=reason,
            reference=tag,
            acting_user_id=acting_user_id,
        )
        created.append(unit)
    return created


def parse_stock_input(payload: dict, *, quantity_key: str = "quantity", default_quantity: int = 1) -> dict:
    """Normalize the add-stock / initial-stock part of a request body."""
    raw_quantity = payload.get(quantity_key)
    quantity = default_quantity if raw_quantity in (None, "") else coerce_int(quantity_key, raw_quantity)

    serial_numbers = payload.get("serialNumbers") or []
    if not isinstance(serial_numbers, list):
        raise ValidationError("serialNumbers must be a list")

    purchase_date = payload.get("purchaseDate")
    purchase_price = payload.get("purchasePrice")
    location = payload.get("location")
    return {
        "quantity": quantity,
        "serial_numbers": serial_numbers,
        "purchase_date": coerce_datetime("purchaseDate", purchase_date) if purchase_date else None,
        "purchase_price": coerce_decimal("purchasePrice", purchase_price) if purchase_price not in (None, "") else None,
        "location": coerce_str("location", location),
    }


def add_stock(product_id: int, payload: dict, acting_user_id: int | None = None) -> list[InventoryUnit]:
    """Public add-stock operation: one atomic batch of units plus their IN transactions."""
    stock = parse_stock_input(payload or {})
    if stock["quantity"] < 1:
        raise ValidationError("quantity must be at least 1")

    product = require_product(product_id)
    condition = coerce_str("condition", payload.get("condition")) or "NEW"
    reason = coerce_str("reason", payload.get("reason")) or "Stock replenishment"
    reference = coerce_str("reference", payload.get("reference"))

    with transaction(DUPLICATE_SERIAL_MESSAGE):
        units = add_units(
            product,
            stock["quantity"],
            serial_numbers=stock["serial_numbers"],
            purchase_date=stock["purchase_date"],
            purchase_price=stock["purchase_price"],
            location=stock["location"],
            condition=condition,
            reason=reason,
            reference=reference,
            acting_user_id=acting_user_id,
        )

    current_app.logger.info("Added %d unit(s) to product %s", len(units), product.id)
    return units


# =============================================================================
# SELECTION AND ASSIGNMENT TRANSITIONS
# =============================================================================

def select_for_assignment(
    product_id: int,
    requested_unit_id: int | None = None,
    *,
    auto_select: bool = True,
) -> InventoryUnit:
    """
    Pick the unit an assignment will hold.

    Explicit id: must belong to the product, be AVAILABLE and not deleted,
    otherwise NotAvailableError. Auto-select: the oldest AVAILABLE unit (FIFO),
    otherwise OutOfStockError.
    """
    if requested_unit_id is not None:
        unit = repository.units.get(requested_unit_id)
        if unit is None or unit.product_id != product_id or unit.status != UNIT_AVAILABLE:
            raise NotAvailableError()
        return unit

    if not auto_select:
        raise ValidationError("Either specify inventoryId or set autoSelect to true")

    query = repository.units.filter(
        InventoryUnit.product_id == product_id,
        InventoryUnit.status == UNIT_AVAILABLE,
    ).order_by(InventoryUnit.created_at.asc(), InventoryUnit.id.asc())
    unit = lock_for_update(query).first()
    if unit is None:
        raise OutOfStockError()
    return unit


def mark_assigned(unit: InventoryUnit) -> InventoryUnit:
    """
    AVAILABLE -> ASSIGNED as a conditional UPDATE.

    If a concurrent request took the unit between selection and this write,
    zero rows match and the caller gets ConflictError.
    """
    updated = (
        db.session.query(InventoryUnit)
        .filter(
            InventoryUnit.id == unit.id,
            InventoryUnit.status == UNIT_AVAILABLE,
            InventoryUnit.deleted_at.is_(None),
        )
        .update(
            {InventoryUnit.status: UNIT_ASSIGNED, InventoryUnit.updated_at: utcnow()},
            synchronize_session=False,
        )
    )
    if updated != 1:
        current_app.logger.warning("Unit %s was taken by a concurrent request", unit.id)
        raise ConflictError("Inventory item is no longer available; retry the assignment")
    db.session.refresh(unit)
    return unit


def mark_returned(unit: InventoryUnit, disposition: str | None, condition: str | None) -> InventoryUnit:
    unit.status = resolve_return_status(disposition)
    if condition:
        unit.condition = condition
    db.session.flush()
    return unit


# =============================================================================
# MANUAL UPDATE / RETIRE / DELETE
# =============================================================================

def update_unit(unit_id: int, payload: dict, acting_user_id: int | None = None) -> InventoryUnit:
    unit = repository.units.get_or_404(unit_id)
    patch = validate_payload(model=InventoryUnit, payload=payload, policy=UNIT_UPDATE_POLICY, partial=True)
    reason = coerce_str("reason", (payload or {}).get("reason")) or "Manual update"

    new_status = None
    if "status" in patch:
        new_status = patch["status"] = patch["status"].upper()
        if new_status not in UNIT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(UNIT_STATUSES)}")
        if new_status == unit.status:
            patch.pop("status")
            new_status = None
    if new_status is not None:
        if unit.status == UNIT_ASSIGNED or has_open_assignment(unit.id):
            raise ConflictError("Cannot change status of an assigned inventory item")
        if new_status == UNIT_ASSIGNED:
            raise ValidationError("Use the assign operation to assign an inventory item")

    if "serial_number" in patch:
        patch["serial_number"] = _normalize_serial(patch["serial_number"])
        if patch["serial_number"] and patch["serial_number"] != unit.serial_number:
            _ensure_serials_free([patch["serial_number"]], exclude_unit_id=unit.id)
    if "condition" in patch and not patch["condition"]:
        raise ValidationError("condition cannot be blank")

    old_status = unit.status
    with transaction(DUPLICATE_SERIAL_MESSAGE):
        if new_status is not None:
            _claim_unassigned(unit, "change status of")
        for key, value in patch.items():
            setattr(unit, key, value)
        db.session.flush()
        if new_status is not None:
            stock_ledger_service.record(
                unit=unit,
                product_id=unit.product_id,
                tx_type=TX_ADJUSTMENT,
                reason=f"Status changed from {old_status} to {new_status}: {reason}",
                reference=f"UPD-{_epoch_millis()}",
                acting_user_id=acting_user_id,
            )
    return unit


def _ensure_not_assigned(unit: InventoryUnit, action: str) -> None:
    if unit.status == UNIT_ASSIGNED or has_open_assignment(unit.id):
        raise ConflictError(f"Cannot {action} an assigned inventory item")


def _claim_unassigned(unit: InventoryUnit, action: str) -> None:
    """
    In-transaction form of _ensure_not_assigned.

    The conditional UPDATE takes the row's write lock before the open-assignment
    lookup, so an assign committed earlier is seen here and an assign arriving
    later fails its own AVAILABLE check in mark_assigned.
    """
    claimed = (
        db.session.query(InventoryUnit)
        .filter(
            InventoryUnit.id == unit.id,
            InventoryUnit.status != UNIT_ASSIGNED,
            InventoryUnit.deleted_at.is_(None),
        )
        .update({InventoryUnit.updated_at: utcnow()}, synchronize_session=False)
    )
    if claimed != 1 or has_open_assignment(unit.id):
        current_app.logger.warning("Unit %s was assigned by a concurrent request", unit.id)
        raise ConflictError(f"Cannot {action} an assigned inventory item")


def _retire(unit: InventoryUnit, reason: str | None, acting_user_id: int | None) -> None:
    _claim_unassigned(unit, "retire")
    old_status = unit.status
    unit.status = UNIT_RETIRED
    db.session.flush()
    stock_ledger_service.record(
        unit=unit,
        product_id=unit.product_id,
        tx_type=TX_RETIRED,
        reason=reason or f"Retired (was {old_status})",
        reference=f"RETIRE-{unit.id}",
        acting_user_id=acting_user_id,
    )


def _purge(unit: InventoryUnit, reason: str | None, acting_user_id: int | None) -> None:
    """
    Hard delete: the unit's transactions, then its assignments, then the unit.
    An OUT tombstone (no unit ref) is appended so the removal stays visible.
    """
    _claim_unassigned(unit, "delete")
    unit_id, product_id, serial = unit.id, unit.product_id, unit.serial_number
    db.session.query(StockTransaction).filter(
        StockTransaction.inventory_unit_id == unit_id
    ).delete(synchronize_session=False)
    repository.assignments.purge(
        repository.assignments.list(Assignment.inventory_unit_id == unit_id, include_deleted=True)
    )
    repository.units.purge([unit])

    label = f" (serial {serial})" if serial else ""
    stock_ledger_service.record(
        unit=None,
        product_id=product_id,
        tx_type=TX_OUT,
        reason=reason or f"Inventory item {unit_id}{label} permanently deleted",
        reference=f"DELETE-{unit_id}",
        acting_user_id=acting_user_id,
    )


def retire_unit(unit_id: int, reason: str | None = None, acting_user_id: int | None = None) -> InventoryUnit:
    reason = coerce_str("reason", reason)
    unit = repository.units.get_or_404(unit_id)
    _ensure_not_assigned(unit, "retire")
    if unit.status == UNIT_RETIRED:
        raise ConflictError("Inventory item is already retired")
    with transaction():
        _retire(unit, reason, acting_user_id)
    current_app.logger.info("Unit %s retired", unit.id)
    return unit


def delete_unit(
    unit_id: int,
    *,
    permanent: bool = True,
    reason: str | None = None,
    acting_user_id: int | None = None,
) -> None:
    if not permanent:
        retire_unit(unit_id, reason=reason, acting_user_id=acting_user_id)
        return

    reason = coerce_str("reason", reason)
    unit = repository.units.get_or_404(unit_id)
    _ensure_not_assigned(unit, "delete")
    with transaction():
        _purge(unit, reason, acting_user_id)
    current_app.logger.info("Unit %s permanently deleted", unit_id)


def delete_units(
    unit_ids,
    *,
    permanent: bool = True,
    reason: str | None = None,
    acting_user_id: int | None = None,
) -> int:
    """All-or-nothing bulk form of delete_unit. Returns the number of units removed."""
    if not isinstance(unit_ids, list) or not unit_ids:
        raise ValidationError("Please provide an array of inventory IDs to delete")
    reason = coerce_str("reason", reason)
    ids = []
    for raw in unit_ids:
        unit_id = coerce_int("inventoryIds", raw)
        if unit_id not in ids:
            ids.append(unit_id)

    found = repository.units.list(InventoryUnit.id.in_(ids), order_by=InventoryUnit.id.asc())
    missing = sorted(set(ids) - {u.id for u in found})
    if missing:
        raise NotFoundError(f"Inventory items not found: {', '.join(str(i) for i in missing)}")

    assigned = [u.id for u in found if u.status == UNIT_ASSIGNED or has_open_assignment(u.id)]
    if assigned:
        raise ConflictError(
            f"Cannot delete assigned inventory items: {', '.join(str(i) for i in assigned)}"
        )

    with transaction():
        for unit in found:
            if permanent:
                _purge(unit, reason, acting_user_id)
            elif unit.status != UNIT_RETIRED:
                _retire(unit, reason, acting_user_id)

    current_app.logger.info("Bulk %s of %d unit(s)", "delete" if permanent else "retire", len(found))
    return len(found)


# =============================================================================
# STOCK VIEWS
# =============================================================================

STOCK_OUT = "OUT_OF_STOCK"
STOCK_LOW = "LOW_STOCK"
STOCK_OK = "AVAILABLE"


def stock_status(available: int, min_stock_level: int | None) -> str:
    if available == 0:
        return STOCK_OUT
    if available <= (min_stock_level or 0):
        return STOCK_LOW
    return STOCK_OK


def status_counts_by_product(product_ids: list[int]) -> dict[int, dict[str, int]]:
    """{product_id: {status: count}} over non-deleted units."""
    counts: dict[int, dict[str, int]] = defaultdict(dict)
    if not product_ids:
        return counts
    rows = (
        repository.units.query()
        .with_entities(InventoryUnit.product_id, InventoryUnit.status, func.count(InventoryUnit.id))
        .filter(InventoryUnit.product_id.in_(product_ids))
        .group_by(InventoryUnit.product_id, InventoryUnit.status)
        .all()
    )
    for product_id, status, count in rows:
        counts[product_id][status] = count
    return counts


def stock_info(product: Product, counts: dict[str, int] | None = None) -> dict:
    """
    Per-product stock breakdown. activeStock excludes RETIRED units, so
    available + assigned + damaged + maintenance == activeStock <= totalStock.
    """
    if counts is None:
        counts = status_counts_by_product([product.id]).get(product.id, {})
    available = counts.get(UNIT_AVAILABLE, 0)
    assigned = counts.get(UNIT_ASSIGNED, 0)
    damaged = counts.get(UNIT_DAMAGED, 0)
    maintenance = counts.get(UNIT_MAINTENANCE, 0)
    retired = counts.get(UNIT_RETIRED, 0)
    return {
        "totalStock": sum(counts.values()),
        "availableStock": available,
        "assignedStock": assigned,
        "damagedStock": damaged,
        "maintenanceStock": maintenance,
        "retiredStock": retired,
        "activeStock": available + assigned + damaged + maintenance,
        "stockStatus": stock_status(available, product.min_stock_level),
    }


def get_available_units(product_id: int) -> list[InventoryUnit]:
    require_product(product_id)
    return repository.units.list(
        InventoryUnit.product_id == product_id,
        InventoryUnit.status == UNIT_AVAILABLE,
        order_by=(InventoryUnit.created_at.asc(), InventoryUnit.id.asc()),
    )


def stock_summary() -> dict:
    with read_transaction():
        products = repository.products.list(order_by=Product.name.asc())
        total_units = (
            repository.units.query()
            .join(Product, InventoryUnit.product_id == Product.id)
            .filter(Product.deleted_at.is_(None))
            .count()
        )
        by_status_rows = (
            repository.units.query()
            .join(Product, InventoryUnit.product_id == Product.id)
            .filter(Product.deleted_at.is_(None))
            .with_entities(InventoryUnit.status, func.count(InventoryUnit.id))
            .group_by(InventoryUnit.status)
            .all()
        )
        counts = status_counts_by_product([p.id for p in products])

        low_stock = []
        for product in products:
            info = stock_info(product, counts.get(product.id, {}))
            if 0 < info["availableStock"] <= (product.min_stock_level or 0):
                low_stock.append({
                    "id": product.id,
                    "name": product.name,
                    "model": product.model,
                    "availableStock": info["availableStock"],
                    "minStockLevel": product.min_stock_level,
                })

        recent = stock_ledger_service.recent_transactions(limit=10)

    return {
        "totalProducts": len(products),
        "totalInventory": total_units,
        "stockByStatus": {status: count for status, count in by_status_rows},
        "lowStockProducts": low_stock,
        "recentTransactions": recent,
    }
