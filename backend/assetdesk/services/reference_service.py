# Overview: Reference validators and CRUD for branches, departments, categories and employees.

"""
Reference entities

WHY: Products, employees and assignments point at these rows by id. Every
mutating operation that takes such an id calls the validators here before
its transaction opens (fail fast, nothing written on a bad reference).

Names (branch/department/category) and empId (employee) are unique among
non-deleted rows. The partial unique indexes back this up at the store level.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError
from ..models import Assignment, Branch, Category, Department, Employee, Product
from ..time_utils import to_utc_z
from ..validation import ModelValidationPolicy, validate_payload
from . import repository
from .unit_of_work import transaction


BRANCH_POLICY = ModelValidationPolicy(
    writable_fields={"name"},
    required_on_create={"name"},
)

DEPARTMENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

CATEGORY_POLICY = DEPARTMENT_POLICY

EMPLOYEE_POLICY = ModelValidationPolicy(
    writable_fields={"emp_id", "name", "email", "department", "position", "branch_id"},
    required_on_create={"emp_id", "name"},
    aliases={"empId": "emp_id", "branchId": "branch_id"},
)


# =============================================================================
# VALIDATORS
# =============================================================================

def require_product(product_id) -> Product:
    return repository.products.get_or_404(product_id)


def require_employee(employee_id) -> Employee:
    return repository.employees.get_or_404(employee_id)


def require_branch(branch_id) -> Branch:
    return repository.branches.get_or_404(branch_id)


def require_department(department_id) -> Department:
    return repository.departments.get_or_404(department_id)


def require_category(category_id) -> Category:
    return repository.categories.get_or_404(category_id)


def validate_references(
    *,
    product_id=None,
    employee_id=None,
    branch_id=None,
    department_id=None,
    category_id=None,
) -> dict:
    """
    Confirm each supplied id names a live row. None means "not supplied".

    Returns the loaded rows keyed by entity ("product", "employee", ...).
    Raises NotFoundError naming the first missing entity.
    """
    checks = (
        ("product", product_id, require_product),
        ("employee", employee_id, require_employee),
        ("category", category_id, require_category),
        ("branch", branch_id, require_branch),
        ("department", department_id, require_department),
    )
    found = {}
    for key, entity_id, loader in checks:
        if entity_id is not None:
            found[key] = loader(entity_id)
    return found


# =============================================================================
# NAMED ENTITIES (branch / department / category)
# =============================================================================

def _ensure_name_free(repo, name: str, exclude_id: int | None = None) -> None:
    criteria = [func.lower(repo.model.name) == name.lower()]
    if exclude_id is not None:
        criteria.append(repo.model.id != exclude_id)
    if repo.exists(*criteria):
        raise ConflictError(f"{repo.entity_name} with this name already exists")


def _list_named(repo, search: str | None):
    criteria = []
    if search:
        criteria.append(repo.model.name.ilike(f"%{search}%"))
    return repo.list(*criteria, order_by=repo.model.name.asc())


def _create_named(repo, policy, payload: dict):
    patch = validate_payload(model=repo.model, payload=payload, policy=policy, partial=False)
    _ensure_name_free(repo, patch["name"])
    with transaction(f"{repo.entity_name} with this name already exists"):
        obj = repo.add(repo.model(**patch))
    return obj


def _update_named(repo, policy, entity_id: int, payload: dict):
    obj = repo.get_or_404(entity_id)
    patch = validate_payload(model=repo.model, payload=payload, policy=policy, partial=True)
    if "name" in patch:
        _ensure_name_free(repo, patch["name"], exclude_id=obj.id)
    with transaction(f"{repo.entity_name} with this name already exists"):
        for key, value in patch.items():
            setattr(obj, key, value)
    return obj


def list_branches(search: str | None = None) -> list[Branch]:
    return _list_named(repository.branches, search)


def get_branch(branch_id: int) -> Branch:
    return require_branch(branch_id)


def create_branch(payload: dict) -> Branch:
    return _create_named(repository.branches, BRANCH_POLICY, payload)


def update_branch(branch_id: int, payload: dict) -> Branch:
    return _update_named(repository.branches, BRANCH_POLICY, branch_id, payload)


def delete_branch(branch_id: int) -> None:
    branch = require_branch(branch_id)
    if repository.products.exists(Product.branch_id == branch.id):
        raise ConflictError("Cannot delete branch with associated products")
    if repository.employees.exists(Employee.branch_id == branch.id):
        raise ConflictError("Cannot delete branch with associated employees")
    with transaction():
        repository.branches.delete(branch)
    current_app.logger.info("Branch %s soft-deleted", branch.id)


def list_departments(search: str | None = None) -> list[Department]:
    return _list_named(repository.departments, search)


def get_department(department_id: int) -> Department:
    return require_department(department_id)


def create_department(payload: dict) -> Department:
    return _create_named(repository.departments, DEPARTMENT_POLICY, payload)


def update_department(department_id: int, payload: dict) -> Department:
    return _update_named(repository.departments, DEPARTMENT_POLICY, department_id, payload)


def delete_department(department_id: int) -> None:
    department = require_department(department_id)
    if repository.products.exists(Product.department_id == department.id):
        raise ConflictError("Cannot delete department with associated products")
    with transaction():
        repository.departments.delete(department)
    current_app.logger.info("Department %s soft-deleted", department.id)


def list_categories(search: str | None = None) -> list[Category]:
    return _list_named(repository.categories, search)


def get_category(category_id: int) -> Category:
    return require_category(category_id)


def create_category(payload: dict) -> Category:
    return _create_named(repository.categories, CATEGORY_POLICY, payload)


def update_category(category_id: int, payload: dict) -> Category:
    return _update_named(repository.categories, CATEGORY_POLICY, category_id, payload)


def delete_category(category_id: int) -> None:
    category = require_category(category_id)
    if repository.products.exists(Product.category_id == category.id):
        raise ConflictError("Cannot delete category with associated products")
    with transaction():
        repository.categories.delete(category)
    current_app.logger.info("Category %s soft-deleted", category.id)


# =============================================================================
# EMPLOYEES
# =============================================================================

def _open_assignment_criteria(employee_id: int):
    return (Assignment.employee_id == employee_id, Assignment.returned_at.is_(None))


def _ensure_emp_id_free(emp_id: str, exclude_id: int | None = None) -> None:
    criteria = [Employee.emp_id == emp_id]
    if exclude_id is not None:
        criteria.append(Employee.id != exclude_id)
    if repository.employees.exists(*criteria):
        raise ConflictError("Employee ID already exists")


def list_employees(
    *,
    search: str | None = None,
    branch_id: int | None = None,
    department: str | None = None,
) -> list[dict]:
    criteria = []
    if search:
        pattern = f"%{search}%"
        criteria.append(or_(
            Employee.name.ilike(pattern),
            Employee.emp_id.ilike(pattern),
            Employee.email.ilike(pattern),
        ))
    if branch_id is not None:
        criteria.append(Employee.branch_id == branch_id)
    if department:
        criteria.append(Employee.department.ilike(f"%{department}%"))

    employees = repository.employees.list(*criteria, order_by=Employee.name.asc())

    counts = {}
    if employees:
        rows = (
            repository.assignments.query()
            .with_entities(Assignment.employee_id, func.count(Assignment.id))
            .filter(
                Assignment.returned_at.is_(None),
                Assignment.employee_id.in_([e.id for e in employees]),
            )
            .group_by(Assignment.employee_id)
            .all()
        )
        counts = dict(rows)

    result = []
    for employee in employees:
        data = employee.to_dict()
        data["activeAssignments"] = counts.get(employee.id, 0)
        result.append(data)
    return result


def get_employee(employee_id: int) -> dict:
    employee = require_employee(employee_id)
    open_assignments = repository.assignments.list(
        *_open_assignment_criteria(employee.id),
        order_by=Assignment.assigned_at.desc(),
    )
    data = employee.to_dict()
    data["assignments"] = [
        {
            "id": a.id,
            "assignedAt": to_utc_z(a.assigned_at),
            "expectedReturnAt": to_utc_z(a.expected_return_at),
            "pcName": a.pc_name,
            "product": a.product.to_summary() if a.product else None,
            "inventory": a.unit.to_summary() if a.unit else None,
        }
        for a in open_assignments
    ]
    return data


def create_employee(payload: dict) -> Employee:
    patch = validate_payload(model=Employee, payload=payload, policy=EMPLOYEE_POLICY, partial=False)
    if patch.get("branch_id") is not None:
        require_branch(patch["branch_id"])
    _ensure_emp_id_free(patch["emp_id"])
    with transaction("Employee ID already exists"):
        employee = repository.employees.add(Employee(**patch))
    return employee


def update_employee(employee_id: int, payload: dict) -> Employee:
    employee = require_employee(employee_id)
    patch = validate_payload(model=Employee, payload=payload, policy=EMPLOYEE_POLICY, partial=True)
    if patch.get("branch_id") is not None:
        require_branch(patch["branch_id"])
    if "emp_id" in patch and patch["emp_id"] != employee.emp_id:
        _ensure_emp_id_free(patch["emp_id"], exclude_id=employee.id)
    with transaction("Employee ID already exists"):
        for key, value in patch.items():
            setattr(employee, key, value)
    return employee


def delete_employee(employee_id: int) -> None:
    employee = require_employee(employee_id)
    if repository.assignments.exists(*_open_assignment_criteria(employee.id)):
        raise ConflictError("Cannot delete employee with active assignments")
    with transaction():
        repository.employees.delete(employee)
    current_app.logger.info("Employee %s soft-deleted", employee.id)
