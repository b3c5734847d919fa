# Overview: Product template CRUD with initial stock, stock status and cascade soft delete.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import ConflictError, ValidationError
from ..models import Assignment, InventoryUnit, Product
from ..validation import ModelValidationPolicy, PageRequest, validate_payload
from . import inventory_service, repository
from .reference_service import validate_references
from .unit_of_work import transaction


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "model", "description", "category_id", "branch_id", "department_id",
        "warranty_duration_months", "compliance_status", "min_stock_level",
    },
    required_on_create={"name", "model", "category_id", "branch_id"},
    aliases={
        "categoryId": "category_id",
        "branchId": "branch_id",
        "departmentId": "department_id",
        "warrantyDuration": "warranty_duration_months",
        "warrantyDurationMonths": "warranty_duration_months",
        "complianceStatus": "compliance_status",
        "minStockLevel": "min_stock_level",
    },
)

STOCK_STATUS_FILTERS = {
    "out": inventory_service.STOCK_OUT,
    "low": inventory_service.STOCK_LOW,
    "available": inventory_service.STOCK_OK,
}


def enforce_rules_product(patch: dict) -> None:
    """Rules SQLAlchemy metadata does not capture."""
    if patch.get("min_stock_level") is not None and patch["min_stock_level"] < 0:
        raise ValidationError("minStockLevel must be >= 0")
    months = patch.get("warranty_duration_months")
    if months is not None and months < 0:
        raise ValidationError("warrantyDuration must be >= 0")


def _open_assignments(product_id: int) -> list[Assignment]:
    return repository.assignments.list(
        Assignment.product_id == product_id,
        Assignment.returned_at.is_(None),
        order_by=Assignment.assigned_at.desc(),
    )


def create_product(payload: dict, acting_user_id: int | None = None) -> Product:
    """
    Create a product and, optionally, its initial stock in one transaction.

    initialStock units get INIT-<productId>-<n> reference tags and the reason
    "Initial stock".
    """
    payload = payload or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    stock = inventory_service.parse_stock_input(payload, quantity_key="initialStock", default_quantity=0)
    if stock["quantity"] < 0:
        raise ValidationError("initialStock must be >= 0")

    validate_references(
        category_id=patch["category_id"],
        branch_id=patch["branch_id"],
        department_id=patch.get("department_id"),
    )

    with transaction(inventory_service.DUPLICATE_SERIAL_MESSAGE):
        product = repository.products.add(Product(**patch))
        if stock["quantity"] > 0:
            inventory_service.add_units(
                product,
                stock["quantity"],
                serial_numbers=stock["serial_numbers"],
                purchase_date=stock["purchase_date"],
                purchase_price=stock["purchase_price"],
                location=stock["location"],
                reason="Initial stock",
                initial=True,
                acting_user_id=acting_user_id,
            )

    current_app.logger.info("Product %s created with %d initial unit(s)", product.id, stock["quantity"])
    return product


def update_product(product_id: int, payload: dict) -> Product:
    product = repository.products.get_or_404(product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    changed_refs = {
        key: patch[key]
        for key in ("category_id", "branch_id", "department_id")
        if patch.get(key) is not None and patch[key] != getattr(product, key)
    }
    validate_references(**changed_refs)

    with transaction():
        for key, value in patch.items():
            setattr(product, key, value)
    return product


def delete_product(product_id: int) -> int:
    """
    Soft-delete the product and all its units together.
    Refused while any unit of the product is assigned. Returns units stamped.
    """
    product = repository.products.get_or_404(product_id)
    if _open_assignments(product.id):
        raise ConflictError("Cannot delete product with active assignments")

    with transaction():
        unit_count = repository.units.delete_where(InventoryUnit.product_id == product.id)
        # Stamping the units first takes their write locks; an assign that
        # committed before that point shows up here.
        if _open_assignments(product.id):
            current_app.logger.warning("Product %s was assigned by a concurrent request", product.id)
            raise ConflictError("Cannot delete product with active assignments")
        repository.products.delete(product)

    current_app.logger.info("Product %s soft-deleted with %d unit(s)", product.id, unit_count)
    return unit_count


def _search_criteria(
    search: str | None,
    category_id: int | None,
    branch_id: int | None,
    department_id: int | None,
    compliance_status: bool | None,
) -> list:
    criteria = []
    if search:
        pattern = f"%{search}%"
        criteria.append(or_(
            Product.name.ilike(pattern),
            Product.model.ilike(pattern),
            Product.description.ilike(pattern),
        ))
    if category_id is not None:
        criteria.append(Product.category_id == category_id)
    if branch_id is not None:
        criteria.append(Product.branch_id == branch_id)
    if department_id is not None:
        criteria.append(Product.department_id == department_id)
    if compliance_status is not None:
        criteria.append(Product.compliance_status == compliance_status)
    return criteria


def list_products(
    page: PageRequest,
    *,
    search: str | None = None,
    category_id: int | None = None,
    branch_id: int | None = None,
    department_id: int | None = None,
    compliance_status: bool | None = None,
    stock_status: str | None = None,
) -> tuple[list[dict], int]:
    """
    Newest first. stock_status (low/out/available) is derived from unit counts,
    so it is applied before pagination over the whole filtered set.
    """
    wanted_status = None
    if stock_status:
        wanted_status = STOCK_STATUS_FILTERS.get(stock_status.lower())
        if wanted_status is None:
            raise ValidationError("stockStatus must be one of: low, out, available")

    products = repository.products.list(
        *_search_criteria(search, category_id, branch_id, department_id, compliance_status),
        order_by=(Product.created_at.desc(), Product.id.desc()),
    )
    counts = inventory_service.status_counts_by_product([p.id for p in products])

    rows = []
    for product in products:
        info = inventory_service.stock_info(product, counts.get(product.id, {}))
        if wanted_status and info["stockStatus"] != wanted_status:
            continue
        data = product.to_dict()
        data["stockInfo"] = info
        rows.append(data)

    total = len(rows)
    return rows[page.offset:page.offset + page.limit], total


def get_product(product_id: int) -> dict:
    product = repository.products.get_or_404(product_id)
    units = repository.units.list(
        InventoryUnit.product_id == product.id,
        order_by=(InventoryUnit.created_at.desc(), InventoryUnit.id.desc()),
    )
    open_by_unit = {a.inventory_unit_id: a for a in _open_assignments(product.id)}
    recent = (
        repository.assignments.filter(Assignment.product_id == product.id)
        .order_by(Assignment.assigned_at.desc(), Assignment.id.desc())
        .limit(10)
        .all()
    )

    data = product.to_dict()
    data["inventory"] = []
    for unit in units:
        unit_data = unit.to_dict()
        current = open_by_unit.get(unit.id)
        unit_data["currentAssignment"] = current.to_dict(expand=False) if current else None
        if current is not None and current.employee is not None:
            unit_data["currentAssignment"]["employee"] = current.employee.to_summary()
        data["inventory"].append(unit_data)
    data["recentAssignments"] = [a.to_dict() for a in recent]
    data["stockStats"] = inventory_service.stock_info(product)
    return data


def list_assigned_products() -> list[dict]:
    """Live products with at least one open assignment."""
    open_assignments = repository.assignments.list(
        Assignment.returned_at.is_(None),
        order_by=Assignment.assigned_at.desc(),
    )
    grouped: dict[int, list[Assignment]] = {}
    for assignment in open_assignments:
        grouped.setdefault(assignment.product_id, []).append(assignment)
    if not grouped:
        return []

    products = repository.products.list(
        Product.id.in_(list(grouped)), order_by=Product.name.asc()
    )
    result = []
    for product in products:
        data = product.to_dict()
        data["assignments"] = [
            {
                **a.to_dict(expand=False),
                "employee": a.employee.to_summary() if a.employee else None,
                "inventory": a.unit.to_summary() if a.unit else None,
            }
            for a in grouped[product.id]
        ]
        result.append(data)
    return result
