# Overview: Flask API routes for branches, departments and categories.

"""
Reference data routes

Reads require authentication; writes require an admin role. Delete is a
soft delete and is refused (409) while products or employees still point
at the row.
"""

from flask import Blueprint, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_SUPER_ADMIN
from ..responses import json_body, ok
from ..services import reference_service
from ..validation import optional_str

ADMINS = (ROLE_SUPER_ADMIN, ROLE_ADMIN)

branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")
departments_bp = Blueprint("departments", __name__, url_prefix="/api/departments")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


# =============================================================================
# BRANCHES
# =============================================================================

@branches_bp.get("")
@require_auth
def list_branches_route():
    rows = reference_service.list_branches(search=optional_str(request.args, "search"))
    return ok([b.to_dict() for b in rows])


@branches_bp.get("/<int:branch_id>")
@require_auth
def get_branch_route(branch_id: int):
    return ok(reference_service.get_branch(branch_id).to_dict())


@branches_bp.post("")
@require_auth
@require_role(*ADMINS)
def create_branch_route():
    branch = reference_service.create_branch(json_body())
    return ok(branch.to_dict(), message="Branch created", status=201)


@branches_bp.put("/<int:branch_id>")
@require_auth
@require_role(*ADMINS)
def update_branch_route(branch_id: int):
    branch = reference_service.update_branch(branch_id, json_body())
    return ok(branch.to_dict(), message="Branch updated")


@branches_bp.delete("/<int:branch_id>")
@require_auth
@require_role(*ADMINS)
def delete_branch_route(branch_id: int):
    reference_service.delete_branch(branch_id)
    return ok(message="Branch deleted")


# =============================================================================
# DEPARTMENTS
# =============================================================================

@departments_bp.get("")
@require_auth
def list_departments_route():
    rows = reference_service.list_departments(search=optional_str(request.args, "search"))
    return ok([d.to_dict() for d in rows])


@departments_bp.get("/<int:department_id>")
@require_auth
def get_department_route(department_id: int):
    return ok(reference_service.get_department(department_id).to_dict())


@departments_bp.post("")
@require_auth
@require_role(*ADMINS)
def create_department_route():
    department = reference_service.create_department(json_body())
    return ok(department.to_dict(), message="Department created", status=201)


@departments_bp.put("/<int:department_id>")
@require_auth
@require_role(*ADMINS)
def update_department_route(department_id: int):
    department = reference_service.update_department(department_id, json_body())
    return ok(department.to_dict(), message="Department updated")


@departments_bp.delete("/<int:department_id>")
@require_auth
@require_role(*ADMINS)
def delete_department_route(department_id: int):
    reference_service.delete_department(department_id)
    return ok(message="Department deleted")


# =============================================================================
# CATEGORIES
# =============================================================================

@categories_bp.get("")
@require_auth
def list_categories_route():
    rows = reference_service.list_categories(search=optional_str(request.args, "search"))
    return ok([c.to_dict() for c in rows])


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    return ok(reference_service.get_category(category_id).to_dict())


@categories_bp.post("")
@require_auth
@require_role(*ADMINS)
def create_category_route():
    category = reference_service.create_category(json_body())
    return ok(category.to_dict(), message="Category created", status=201)


@categories_bp.put("/<int:category_id>")
@require_auth
@require_role(*ADMINS)
def update_category_route(category_id: int):
    category = reference_service.update_category(category_id, json_body())
    return ok(category.to_dict(), message="Category updated")


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_role(*ADMINS)
def delete_category_route(category_id: int):
    reference_service.delete_category(category_id)
    return ok(message="Category deleted")
