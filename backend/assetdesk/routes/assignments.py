# Overview: Flask API routes for product assignments; parses input and returns JSON responses.

"""
Product Assignment API Routes

DESIGN:
- Assign a unit (explicit inventoryId or FIFO auto-select) to an employee
- Return it (unit -> AVAILABLE / DAMAGED / MAINTENANCE)
- Metadata-only edits while open
- Active / history / analytics views

SECURITY:
- assign, return, update require role super_admin, admin or user
- All writes attributed to the authenticated user
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLES
from ..responses import json_body, ok, page_request
from ..services import assignment_service
from ..services.assignment_service import AssignmentFilter
from ..validation import (
    coerce_bool, coerce_datetime, coerce_int, optional_bool, optional_datetime,
    optional_int, optional_str,
)

assignments_bp = Blueprint("assignments", __name__, url_prefix="/api/product-assignments")


def _list_filter() -> AssignmentFilter:
    return AssignmentFilter(
        search=optional_str(request.args, "search"),
        employee_id=optional_int(request.args, "employeeId"),
        product_id=optional_int(request.args, "productId"),
        overdue=bool(optional_bool(request.args, "overdue")),
        from_date=optional_datetime(request.args, "fromDate"),
        to_date=optional_datetime(request.args, "toDate"),
    )


@assignments_bp.post("/assign")
@require_auth
@require_role(*ROLES)
def assign_route():
    """
    Request body:
    {
        "productId": 1,
        "employeeId": 7,
        "inventoryId": 42,            (optional; omit to auto-select FIFO)
        "autoSelect": true,           (optional, default: true)
        "expectedReturnAt": "2025-06-30T00:00:00Z",  (optional, not in the past)
        "pcName": "LT-0042",          (optional)
        "notes": "..."                (optional)
    }

    Returns:
        201: Assignment with product/inventory/employee/assignedBy expanded
        400: Missing ids, no unit choice, date in the past
        404: Product or employee not found
        409: Unit not available, out of stock, or taken concurrently
    """
    data = json_body()
    product_id = data.get("productId")
    employee_id = data.get("employeeId")
    inventory_id = data.get("inventoryId")
    auto_select = data.get("autoSelect", True)
    expected = data.get("expectedReturnAt")

    assignment = assignment_service.assign(
        product_id=coerce_int("productId", product_id) if product_id is not None else None,
        employee_id=coerce_int("employeeId", employee_id) if employee_id is not None else None,
        inventory_id=coerce_int("inventoryId", inventory_id) if inventory_id not in (None, "") else None,
        auto_select=coerce_bool("autoSelect", auto_select) if auto_select is not None else True,
        expected_return_at=coerce_datetime("expectedReturnAt", expected) if expected else None,
        notes=optional_str(data, "notes"),
        pc_name=optional_str(data, "pcName"),
        acting_user_id=g.current_user.id,
    )
    return ok(assignment.to_dict(), message="Product assigned successfully", status=201)


@assignments_bp.post("/return/<int:assignment_id>")
@require_auth
@require_role(*ROLES)
def return_route(assignment_id: int):
    """
    Request body (all optional):
    {"condition": "USED", "notes": "...", "inventoryStatus": "AVAILABLE|DAMAGED|MAINTENANCE"}
    """
    data = json_body()
    assignment = assignment_service.return_assignment(
        assignment_id,
        condition=optional_str(data, "condition"),
        notes=optional_str(data, "notes"),
        inventory_status=optional_str(data, "inventoryStatus"),
        acting_user_id=g.current_user.id,
        acting_username=g.current_user.username,
    )
    return ok(assignment.to_dict(), message="Product returned successfully")


@assignments_bp.get("/active")
@require_auth
def active_route():
    """Query params: search, employeeId, productId, overdue, fromDate, toDate, page, limit."""
    page = page_request()
    rows, total = assignment_service.list_active(_list_filter(), page)
    return ok(rows, pagination=page.meta(total))


@assignments_bp.get("/history")
@require_auth
def history_route():
    """Query params: search, employeeId, productId, fromDate, toDate (on assignedAt), page, limit."""
    page = page_request()
    rows, total = assignment_service.list_history(_list_filter(), page)
    return ok(rows, pagination=page.meta(total))


@assignments_bp.get("/analytics")
@require_auth
def analytics_route():
    data = assignment_service.analytics(
        from_date=optional_datetime(request.args, "fromDate"),
        to_date=optional_datetime(request.args, "toDate"),
    )
    return ok(data)


@assignments_bp.get("/employee/<int:employee_id>")
@require_auth
def employee_assignments_route(employee_id: int):
    active = optional_bool(request.args, "active")
    rows = assignment_service.list_employee_assignments(
        employee_id, active=True if active is None else active
    )
    return ok(rows)


@assignments_bp.get("/product/<int:product_id>")
@require_auth
def product_assignments_route(product_id: int):
    return ok(assignment_service.list_product_assignments(product_id))


@assignments_bp.get("/<int:assignment_id>")
@require_auth
def get_assignment_route(assignment_id: int):
    return ok(assignment_service.get_assignment(assignment_id))


@assignments_bp.put("/<int:assignment_id>")
@require_auth
@require_role(*ROLES)
def update_assignment_route(assignment_id: int):
    """Request body: {"expectedReturnAt": "...", "notes": "..."}"""
    assignment = assignment_service.update_assignment(assignment_id, json_body())
    return ok(assignment.to_dict(), message="Assignment updated successfully")
