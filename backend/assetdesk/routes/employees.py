# Overview: Flask API routes for employees.

from flask import Blueprint, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_SUPER_ADMIN
from ..responses import json_body, ok
from ..services import reference_service
from ..validation import optional_int, optional_str

employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")

ADMINS = (ROLE_SUPER_ADMIN, ROLE_ADMIN)


@employees_bp.get("")
@require_auth
def list_employees_route():
    """
    Query params: search (name, empId, email), branchId, department.
    Each row carries activeAssignments.
    """
    rows = reference_service.list_employees(
        search=optional_str(request.args, "search"),
        branch_id=optional_int(request.args, "branchId"),
        department=optional_str(request.args, "department"),
    )
    return ok(rows)


@employees_bp.get("/<int:employee_id>")
@require_auth
def get_employee_route(employee_id: int):
    return ok(reference_service.get_employee(employee_id))


@employees_bp.post("")
@require_auth
@require_role(*ADMINS)
def create_employee_route():
    employee = reference_service.create_employee(json_body())
    return ok(employee.to_dict(), message="Employee created", status=201)


@employees_bp.put("/<int:employee_id>")
@require_auth
@require_role(*ADMINS)
def update_employee_route(employee_id: int):
    employee = reference_service.update_employee(employee_id, json_body())
    return ok(employee.to_dict(), message="Employee updated")


@employees_bp.delete("/<int:employee_id>")
@require_auth
@require_role(*ADMINS)
def delete_employee_route(employee_id: int):
    reference_service.delete_employee(employee_id)
    return ok(message="Employee deleted")
