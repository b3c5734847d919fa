# Overview: Read-only cards behind the QR labels printed on assets; no authentication.

"""
The QR label on a device links to one of these cards. They expose what a
person holding the device needs (what it is, who it is issued to, warranty)
and nothing else: no prices, no user ids beyond the issuing username.
"""

from __future__ import annotations

from ..errors import NotFoundError
from ..models import Assignment, InventoryUnit, Product
from ..time_utils import to_utc_z, utcnow
from . import repository
from .assignment_service import days_overdue, is_overdue
from .inventory_service import open_assignment_for


NOT_ASSIGNED = "Not assigned"


def _name_or_default(ref) -> str:
    return ref.name if ref is not None else NOT_ASSIGNED


def _unit_card(unit: InventoryUnit) -> dict:
    return {
        "id": unit.id,
        "serialNumber": unit.serial_number,
        "status": unit.status,
        "condition": unit.condition,
        "purchaseDate": to_utc_z(unit.purchase_date),
        "warrantyExpiry": to_utc_z(unit.warranty_expiry),
        "location": unit.location,
        "notes": unit.notes,
    }


def _product_card(product: Product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "model": product.model,
        "category": _name_or_default(product.category),
        "branch": _name_or_default(product.branch),
        "department": _name_or_default(product.department),
        "warrantyDurationMonths": product.warranty_duration_months,
        "minStockLevel": product.min_stock_level,
        "createdAt": to_utc_z(product.created_at),
    }


def _employee_card(employee) -> dict:
    data = employee.to_summary()
    data["branch"] = _name_or_default(employee.branch)
    return data


def assignment_card(assignment_id: int) -> dict:
    assignment: Assignment | None = repository.assignments.get(assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")
    now = utcnow()
    return {
        "assignment": {
            "id": assignment.id,
            "assignedAt": to_utc_z(assignment.assigned_at),
            "returnedAt": to_utc_z(assignment.returned_at),
            "expectedReturnAt": to_utc_z(assignment.expected_return_at),
            "status": assignment.status,
            "returnCondition": assignment.return_condition,
            "notes": assignment.notes,
            "isOverdue": is_overdue(assignment, now),
            "daysOverdue": days_overdue(assignment, now),
        },
        "employee": _employee_card(assignment.employee),
        "assignedBy": assignment.assigned_by.to_summary() if assignment.assigned_by else None,
        "inventory": _unit_card(assignment.unit),
        "product": _product_card(assignment.product),
    }


def unit_card(unit_id: int) -> dict:
    """Unit, its product and, while it is out, who holds it."""
    unit = repository.units.get(unit_id)
    if unit is None:
        raise NotFoundError("Inventory item not found")

    current = open_assignment_for(unit.id)
    holder = None
    if current is not None:
        holder = {
            "id": current.id,
            "assignedAt": to_utc_z(current.assigned_at),
            "expectedReturnAt": to_utc_z(current.expected_return_at),
            "employee": _employee_card(current.employee),
        }
    return {
        "inventory": _unit_card(unit),
        "product": _product_card(unit.product),
        "currentAssignment": holder,
    }
