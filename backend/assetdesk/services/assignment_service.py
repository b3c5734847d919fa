# Overview: Assignment lifecycle engine; assign/return/update and the derived read views.

"""
Assignment Lifecycle

State machine per assignment:
    OPEN   (status=ASSIGNED, returned_at IS NULL)
      |  return_assignment()
      v
    CLOSED (status=RETURNED, returned_at set)   terminal

WHY: An assignment is the custody record for one physical unit. Assign and
return each touch three rows (unit, assignment, stock transaction); all three
commit together or not at all (unit_of_work.transaction).

FAIL FAST: acting user, required ids, expected return date and the
product/employee references are checked before the transaction opens.

RACES: two requests auto-selecting the same last unit both pass selection;
the conditional UPDATE in inventory_service.mark_assigned (and, behind it,
the open-assignment unique index) lets exactly one through. The loser gets
ConflictError (409), never a 500.

Derived fields (computed at read time, never stored):
- isOverdue:    expected_return_at set, still open, now > expected_return_at
- daysOverdue:  whole days past expected_return_at (0 when not overdue)
- durationDays: whole days from assigned_at to returned_at (or now)
- wasOverdue:   returned_at > expected_return_at
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError, NotFoundError, UnauthenticatedError, ValidationError
from ..extensions import db
from ..models import Assignment, Employee, InventoryUnit, Product
from ..models.assignments import ASSIGNMENT_ASSIGNED, ASSIGNMENT_RETURNED
from ..models.inventory import TX_IN, TX_OUT
from ..time_utils import to_utc_z, utcnow, whole_days_between
from ..validation import PageRequest, coerce_datetime, coerce_str
from . import inventory_service, repository, stock_ledger_service
from .reference_service import require_employee, require_product, validate_references
from .unit_of_work import read_transaction, transaction


DISPLAY_OVERDUE = "OVERDUE"


@dataclass(frozen=True)
class AssignmentFilter:
    """Every supported list predicate; None means "not filtered"."""
    search: str | None = None
    employee_id: int | None = None
    product_id: int | None = None
    overdue: bool = False
    from_date: datetime | None = None
    to_date: datetime | None = None


# =============================================================================
# DERIVED FIELDS
# =============================================================================

def is_overdue(assignment: Assignment, now: datetime | None = None) -> bool:
    if assignment.expected_return_at is None or assignment.returned_at is not None:
        return False
    now = now or utcnow()
    return now > assignment.expected_return_at


def days_overdue(assignment: Assignment, now: datetime | None = None) -> int:
    now = now or utcnow()
    if not is_overdue(assignment, now):
        return 0
    return max(0, whole_days_between(assignment.expected_return_at, now))


def duration_days(assignment: Assignment, now: datetime | None = None) -> int:
    end = assignment.returned_at or now or utcnow()
    return whole_days_between(assignment.assigned_at, end)


def was_overdue(assignment: Assignment) -> bool:
    return (
        assignment.expected_return_at is not None
        and assignment.returned_at is not None
        and assignment.returned_at > assignment.expected_return_at
    )


def display_status(assignment: Assignment, now: datetime | None = None) -> str:
    if assignment.returned_at is not None:
        return ASSIGNMENT_RETURNED
    if is_overdue(assignment, now):
        return DISPLAY_OVERDUE
    return ASSIGNMENT_ASSIGNED


def _active_row(assignment: Assignment, now: datetime) -> dict:
    data = assignment.to_dict()
    data["isOverdue"] = is_overdue(assignment, now)
    data["daysOverdue"] = days_overdue(assignment, now)
    return data


def _history_row(assignment: Assignment, now: datetime) -> dict:
    data = assignment.to_dict()
    data["durationDays"] = duration_days(assignment, now)
    data["wasOverdue"] = was_overdue(assignment)
    return data


# =============================================================================
# ASSIGN / RETURN / UPDATE
# =============================================================================

def _require_acting_user(acting_user_id) -> None:
    if acting_user_id is None:
        raise UnauthenticatedError("User not authenticated")


def _ensure_not_past(expected_return_at: datetime | None) -> None:
    if expected_return_at is not None and expected_return_at < utcnow():
        raise ValidationError("Expected return date cannot be in the past")


def assign(
    *,
    product_id: int | None,
    employee_id: int | None,
    acting_user_id: int | None,
    inventory_id: int | None = None,
    auto_select: bool = True,
    expected_return_at: datetime | None = None,
    notes: str | None = None,
    pc_name: str | None = None,
) -> Assignment:
    """
    Assign one unit of a product to an employee.

    Unit choice: inventory_id if given, else the oldest AVAILABLE unit when
    auto_select is true. Writes, atomically: unit -> ASSIGNED, a new OPEN
    assignment, and an OUT transaction tagged ASSIGN-<assignmentId>.

    Raises:
        UnauthenticatedError: no acting user
        ValidationError: missing ids, no unit choice, expected_return_at in the past
        NotFoundError: product or employee missing/deleted
        NotAvailableError: requested unit is not an AVAILABLE unit of this product
        OutOfStockError: nothing left to auto-select
        ConflictError: a concurrent request took the unit first
    """
    _require_acting_user(acting_user_id)
    if product_id is None or employee_id is None:
        raise ValidationError("Product ID and Employee ID are required")
    if inventory_id is None and not auto_select:
        raise ValidationError("Either specify inventoryId or set autoSelect to true")
    _ensure_not_past(expected_return_at)
    notes = coerce_str("notes", notes)
    pc_name = coerce_str("pcName", pc_name)

    refs = validate_references(product_id=product_id, employee_id=employee_id)
    product, employee = refs["product"], refs["employee"]

    with transaction("Inventory item is already assigned; retry the assignment"):
        unit = inventory_service.select_for_assignment(
            product.id, inventory_id, auto_select=auto_select
        )
        inventory_service.mark_assigned(unit)

        assignment = Assignment(
            product_id=product.id,
            inventory_unit_id=unit.id,
            employee_id=employee.id,
            assigned_by_id=acting_user_id,
            pc_name=pc_name,
            assigned_at=utcnow(),
            expected_return_at=expected_return_at,
            status=ASSIGNMENT_ASSIGNED,
            notes=notes,
        )
        repository.assignments.add(assignment)

        reason = f"Assigned to {employee.name} ({employee.emp_id})"
        if pc_name:
            reason += f" - PC: {pc_name}"
        stock_ledger_service.record(
            unit=unit,
            product_id=product.id,
            tx_type=TX_OUT,
            reason=reason,
            reference=f"ASSIGN-{assignment.id}",
            acting_user_id=acting_user_id,
        )

    current_app.logger.info(
        "Assignment %s: unit %s of product %s to employee %s",
        assignment.id, unit.id, product.id, employee.id,
    )
    return assignment


def return_assignment(
    assignment_id: int,
    *,
    acting_user_id: int | None,
    acting_username: str | None = None,
    condition: str | None = None,
    notes: str | None = None,
    inventory_status: str | None = None,
) -> Assignment:
    """
    Close an OPEN assignment.

    The unit goes to DAMAGED or MAINTENANCE when inventory_status says so,
    otherwise back to AVAILABLE; condition replaces the unit's condition only
    when supplied. Writes an IN transaction tagged RETURN-<assignmentId>.

    A second return of the same assignment raises ConflictError and writes nothing.
    """
    _require_acting_user(acting_user_id)
    assignment = repository.assignments.get_or_404(assignment_id)
    if not assignment.is_open:
        raise ConflictError("Product already returned")

    condition = coerce_str("condition", condition)
    notes = coerce_str("notes", notes)
    inventory_status = coerce_str("inventoryStatus", inventory_status)
    if not notes and acting_username:
        notes = f"Returned by {acting_username}"

    with transaction("Assignment was already returned"):
        now = utcnow()
        closed = (
            db.session.query(Assignment)
            .filter(Assignment.id == assignment.id, Assignment.returned_at.is_(None))
            .update(
                {
                    Assignment.status: ASSIGNMENT_RETURNED,
                    Assignment.returned_at: now,
                    Assignment.return_condition: condition,
                    Assignment.notes: notes if notes else Assignment.notes,
                    Assignment.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if closed != 1:
            raise ConflictError("Product already returned")
        db.session.refresh(assignment)

        unit = assignment.unit
        inventory_service.mark_returned(unit, inventory_status, condition)

        stock_ledger_service.record(
            unit=unit,
            product_id=assignment.product_id,
            tx_type=TX_IN,
            reason=f"Returned by {assignment.employee.name} - Status: {unit.status}",
            reference=f"RETURN-{assignment.id}",
            acting_user_id=acting_user_id,
        )

    current_app.logger.info("Assignment %s returned; unit %s -> %s", assignment.id, unit.id, unit.status)
    return assignment


def update_assignment(assignment_id: int, payload: dict) -> Assignment:
    """Metadata-only edit (expectedReturnAt, notes) while the assignment is OPEN."""
    assignment = repository.assignments.get_or_404(assignment_id)
    if not assignment.is_open:
        raise ConflictError("Cannot update a returned assignment")

    payload = payload or {}
    changes = {}
    if "expectedReturnAt" in payload:
        raw = payload["expectedReturnAt"]
        expected = coerce_datetime("expectedReturnAt", raw) if raw not in (None, "") else None
        _ensure_not_past(expected)
        changes["expected_return_at"] = expected
    if "notes" in payload:
        changes["notes"] = coerce_str("notes", payload["notes"])

    if not changes:
        return assignment

    with transaction():
        refreshed = repository.assignments.get(assignment.id)
        if refreshed is None or not refreshed.is_open:
            raise ConflictError("Cannot update a returned assignment")
        for key, value in changes.items():
            setattr(refreshed, key, value)
    return refreshed


# =============================================================================
# READ VIEWS
# =============================================================================

def _joined_query():
    return (
        repository.assignments.query()
        .join(Product, Assignment.product_id == Product.id)
        .join(Employee, Assignment.employee_id == Employee.id)
        .join(InventoryUnit, Assignment.inventory_unit_id == InventoryUnit.id)
    )


def _apply_common(q, filters: AssignmentFilter):
    if filters.search:
        pattern = f"%{filters.search}%"
        q = q.filter(or_(
            Product.name.ilike(pattern),
            Product.model.ilike(pattern),
            Employee.name.ilike(pattern),
            InventoryUnit.serial_number.ilike(pattern),
            Assignment.pc_name.ilike(pattern),
        ))
    if filters.employee_id is not None:
        q = q.filter(Assignment.employee_id == filters.employee_id)
    if filters.product_id is not None:
        q = q.filter(Assignment.product_id == filters.product_id)
    if filters.from_date is not None:
        q = q.filter(Assignment.assigned_at >= filters.from_date)
    if filters.to_date is not None:
        q = q.filter(Assignment.assigned_at <= filters.to_date)
    return q


def list_active(filters: AssignmentFilter, page: PageRequest, now: datetime | None = None) -> tuple[list[dict], int]:
    """OPEN assignments, newest assignedAt first. Returns (rows, total)."""
    now = now or utcnow()
    q = _apply_common(_joined_query(), filters).filter(
        Assignment.returned_at.is_(None),
        Assignment.status == ASSIGNMENT_ASSIGNED,
    )
    if filters.overdue:
        q = q.filter(
            Assignment.expected_return_at.isnot(None),
            Assignment.expected_return_at < now,
        )
    total = q.count()
    rows = (
        q.order_by(Assignment.assigned_at.desc(), Assignment.id.desc())
        .offset(page.offset)
        .limit(page.limit)
        .all()
    )
    return [_active_row(a, now) for a in rows], total


def list_history(filters: AssignmentFilter, page: PageRequest, now: datetime | None = None) -> tuple[list[dict], int]:
    """CLOSED assignments, most recently returned first. Returns (rows, total)."""
    now = now or utcnow()
    q = _apply_common(_joined_query(), filters).filter(Assignment.returned_at.isnot(None))
    total = q.count()
    rows = (
        q.order_by(Assignment.returned_at.desc(), Assignment.id.desc())
        .offset(page.offset)
        .limit(page.limit)
        .all()
    )
    return [_history_row(a, now) for a in rows], total


def get_assignment(assignment_id: int) -> dict:
    assignment = repository.assignments.get_or_404(assignment_id)
    now = utcnow()
    data = assignment.to_dict()
    data["isOverdue"] = is_overdue(assignment, now)
    data["daysOverdue"] = days_overdue(assignment, now)
    data["durationDays"] = duration_days(assignment, now)
    data["wasOverdue"] = was_overdue(assignment)
    return data


def list_employee_assignments(employee_id: int, active: bool = True) -> list[dict]:
    require_employee(employee_id)
    criteria = [Assignment.employee_id == employee_id]
    if active:
        criteria.append(Assignment.returned_at.is_(None))
    rows = repository.assignments.list(
        *criteria, order_by=(Assignment.assigned_at.desc(), Assignment.id.desc())
    )
    now = utcnow()
    result = []
    for assignment in rows:
        data = assignment.to_dict()
        data["isOverdue"] = is_overdue(assignment, now)
        data["displayStatus"] = display_status(assignment, now)
        result.append(data)
    return result


def list_product_assignments(product_id: int) -> list[dict]:
    require_product(product_id)
    rows = repository.assignments.list(
        Assignment.product_id == product_id,
        order_by=(Assignment.assigned_at.desc(), Assignment.id.desc()),
    )
    if not rows:
        raise NotFoundError("No assignments found for this product")
    now = utcnow()
    result = []
    for assignment in rows:
        data = assignment.to_dict()
        data["isOverdue"] = is_overdue(assignment, now)
        data["displayStatus"] = display_status(assignment, now)
        result.append(data)
    return result


def _top_by(column, range_criteria, limit: int = 5) -> list[tuple[int, int]]:
    count_col = func.count(Assignment.id)
    return (
        repository.assignments.query()
        .with_entities(column, count_col)
        .filter(*range_criteria)
        .group_by(column)
        .order_by(count_col.desc(), column.asc())
        .limit(limit)
        .all()
    )


def analytics(from_date: datetime | None = None, to_date: datetime | None = None) -> dict:
    """
    Aggregate counts, all read inside one read transaction.

    total and the top-5 lists respect the assignedAt range; active and
    overdue are current-state counts. returnRate = (total - active) / total * 100.
    """
    range_criteria = []
    if from_date is not None:
        range_criteria.append(Assignment.assigned_at >= from_date)
    if to_date is not None:
        range_criteria.append(Assignment.assigned_at <= to_date)

    with read_transaction():
        now = utcnow()
        total = repository.assignments.count(*range_criteria)
        active = repository.assignments.count(Assignment.returned_at.is_(None))
        overdue = repository.assignments.count(
            Assignment.returned_at.is_(None),
            Assignment.expected_return_at.isnot(None),
            Assignment.expected_return_at < now,
        )
        top_employee_rows = _top_by(Assignment.employee_id, range_criteria)
        top_product_rows = _top_by(Assignment.product_id, range_criteria)

        employee_names = {
            e.id: e.name
            for e in repository.employees.list(
                Employee.id.in_([r[0] for r in top_employee_rows]), include_deleted=True
            )
        } if top_employee_rows else {}
        product_names = {
            p.id: p.name
            for p in repository.products.list(
                Product.id.in_([r[0] for r in top_product_rows]), include_deleted=True
            )
        } if top_product_rows else {}

    return_rate = round((total - active) / total * 100, 2) if total > 0 else 0
    return {
        "totalAssignments": total,
        "activeAssignments": active,
        "overdueAssignments": overdue,
        "returnRate": return_rate,
        "topEmployees": [
            {"employeeId": emp_id, "name": employee_names.get(emp_id), "count": count}
            for emp_id, count in top_employee_rows
        ],
        "topProducts": [
            {"productId": prod_id, "name": product_names.get(prod_id), "count": count}
            for prod_id, count in top_product_rows
        ],
        "generatedAt": to_utc_z(now),
    }
