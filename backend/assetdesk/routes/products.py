# Overview: Flask API routes for products, inventory units and the stock transaction log.

"""
Products & Inventory API Routes

DESIGN:
- Product templates with optional initial stock
- Per-unit inventory: add stock, manual update, retire/delete, bulk delete
- Stock transaction history (append-only log, newest first)

SECURITY:
- Reads require authentication
- Writes require role super_admin, admin or user
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLES
from ..responses import json_body, ok, page_request
from ..services import inventory_service, products_service, stock_ledger_service
from ..services.stock_ledger_service import TransactionFilter
from ..validation import coerce_bool, optional_bool, optional_datetime, optional_int, optional_str

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


# =============================================================================
# PRODUCTS
# =============================================================================

@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params: search, categoryId, branchId, departmentId, complianceStatus,
    stockStatus (low|out|available), page, limit.
    """
    page = page_request()
    rows, total = products_service.list_products(
        page,
        search=optional_str(request.args, "search"),
        category_id=optional_int(request.args, "categoryId"),
        branch_id=optional_int(request.args, "branchId"),
        department_id=optional_int(request.args, "departmentId"),
        compliance_status=optional_bool(request.args, "complianceStatus"),
        stock_status=optional_str(request.args, "stockStatus"),
    )
    return ok(rows, pagination=page.meta(total))


@products_bp.get("/assigned")
@require_auth
def list_assigned_products_route():
    return ok(products_service.list_assigned_products())


@products_bp.get("/stock-summary")
@require_auth
def stock_summary_route():
    return ok(inventory_service.stock_summary())


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    return ok(products_service.get_product(product_id))


@products_bp.post("")
@require_auth
@require_role(*ROLES)
def create_product_route():
    """
    Request body:
    {
        "name": "ThinkPad T14", "model": "20W0", "categoryId": 1, "branchId": 1,
        "departmentId": 2, "warrantyDuration": 36, "complianceStatus": true,
        "minStockLevel": 2, "description": "...",
        "initialStock": 3, "serialNumbers": ["SN1", "SN2", "SN3"],
        "purchaseDate": "2024-01-15", "purchasePrice": 1200.00, "location": "Store room"
    }
    """
    product = products_service.create_product(json_body(), acting_user_id=g.current_user.id)
    return ok(products_service.get_product(product.id), message="Product created", status=201)


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(*ROLES)
def update_product_route(product_id: int):
    product = products_service.update_product(product_id, json_body())
    return ok(product.to_dict(), message="Product updated")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(*ROLES)
def delete_product_route(product_id: int):
    products_service.delete_product(product_id)
    return ok(message="Product deleted")


# =============================================================================
# INVENTORY UNITS
# =============================================================================

@products_bp.post("/<int:product_id>/add-stock")
@require_auth
@require_role(*ROLES)
def add_stock_route(product_id: int):
    """
    Request body:
    {
        "quantity": 2, "serialNumbers": ["SN-1", "SN-2"], "purchaseDate": "2024-01-15",
        "purchasePrice": 999.99, "location": "Rack A", "condition": "NEW",
        "reference": "PO-1234", "reason": "Quarterly order"
    }
    """
    units = inventory_service.add_stock(product_id, json_body(), acting_user_id=g.current_user.id)
    return ok(
        [u.to_dict() for u in units],
        message=f"Successfully added {len(units)} items to inventory",
        status=201,
    )


@products_bp.get("/<int:product_id>/available-inventory")
@require_auth
def available_inventory_route(product_id: int):
    units = inventory_service.get_available_units(product_id)
    return ok({"inventory": [u.to_dict() for u in units], "count": len(units)})


@products_bp.put("/inventory/<int:unit_id>")
@require_auth
@require_role(*ROLES)
def update_unit_route(unit_id: int):
    """
    Request body (all optional):
    {"status", "condition", "location", "notes", "serialNumber", "warrantyExpiry", "reason"}
    """
    unit = inventory_service.update_unit(unit_id, json_body(), acting_user_id=g.current_user.id)
    return ok(unit.to_dict(), message="Inventory item updated")


@products_bp.delete("/inventory/<int:unit_id>")
@require_auth
@require_role(*ROLES)
def delete_unit_route(unit_id: int):
    """?permanent=false retires the unit instead of deleting it."""
    permanent = optional_bool(request.args, "permanent")
    permanent = True if permanent is None else permanent
    reason = json_body().get("reason")
    inventory_service.delete_unit(
        unit_id, permanent=permanent, reason=reason, acting_user_id=g.current_user.id
    )
    return ok(message="Inventory item deleted" if permanent else "Inventory item retired")


@products_bp.post("/inventory/bulk-delete")
@require_auth
@require_role(*ROLES)
def bulk_delete_units_route():
    """Request body: {"inventoryIds": [1, 2, 3], "permanent": true, "reason": "..."}"""
    data = json_body()
    permanent = data.get("permanent", True)
    if not isinstance(permanent, bool):
        permanent = coerce_bool("permanent", permanent)
    count = inventory_service.delete_units(
        data.get("inventoryIds"),
        permanent=permanent,
        reason=data.get("reason"),
        acting_user_id=g.current_user.id,
    )
    return ok({"count": count}, message=f"Successfully deleted {count} inventory items")


# =============================================================================
# STOCK TRANSACTIONS
# =============================================================================

@products_bp.get("/transactions/history")
@require_auth
def transaction_history_route():
    """Query params: productId, inventoryId, type, fromDate, toDate, page, limit."""
    page = page_request()
    tx_type = optional_str(request.args, "type")
    filters = TransactionFilter(
        product_id=optional_int(request.args, "productId"),
        inventory_unit_id=optional_int(request.args, "inventoryId"),
        tx_type=tx_type.upper() if tx_type else None,
        from_date=optional_datetime(request.args, "fromDate"),
        to_date=optional_datetime(request.args, "toDate"),
    )
    rows, total = stock_ledger_service.list_transactions(filters, page)
    return ok(rows, pagination=page.meta(total))
