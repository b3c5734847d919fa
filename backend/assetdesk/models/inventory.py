from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import SoftDeleteMixin, TimestampMixin, live_unique_index


UNIT_AVAILABLE = "AVAILABLE"
UNIT_ASSIGNED = "ASSIGNED"
UNIT_DAMAGED = "DAMAGED"
UNIT_MAINTENANCE = "MAINTENANCE"
UNIT_RETIRED = "RETIRED"
UNIT_STATUSES = (UNIT_AVAILABLE, UNIT_ASSIGNED, UNIT_DAMAGED, UNIT_MAINTENANCE, UNIT_RETIRED)

TX_IN = "IN"
TX_OUT = "OUT"
TX_ADJUSTMENT = "ADJUSTMENT"
TX_RETIRED = "RETIRED"
TX_TYPES = (TX_IN, TX_OUT, TX_ADJUSTMENT, TX_RETIRED)


class Product(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    Product template (make/model). Physical stock lives in InventoryUnit rows.

    OWNERSHIP: a product exclusively owns its units; soft-deleting the product
    soft-deletes every unit in the same transaction (products_service.delete_product).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category", "category_id"),
        db.Index("ix_products_branch", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    model = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)

    warranty_duration_months = db.Column(db.Integer, nullable=True)
    compliance_status = db.Column(db.Boolean, nullable=False, default=False)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("products", lazy=True))
    department = db.relationship("Department", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} model={self.model!r}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "model": self.model}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "model": self.model,
            "description": self.description,
            "categoryId": self.category_id,
            "branchId": self.branch_id,
            "departmentId": self.department_id,
            "category": {"id": self.category.id, "name": self.category.name} if self.category else None,
            "branch": {"id": self.branch.id, "name": self.branch.name} if self.branch else None,
            "department": {"id": self.department.id, "name": self.department.name} if self.department else None,
            "warrantyDurationMonths": self.warranty_duration_months,
            "complianceStatus": bool(self.compliance_status),
            "minStockLevel": self.min_stock_level,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class InventoryUnit(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    One physically trackable instance of a Product.

    Invariants:
    - status == ASSIGNED iff exactly one open Assignment references the unit.
    - serial_number, when present, is unique among non-deleted units.
    - FIFO order is (created_at, id) ascending.
    """
    __tablename__ = "inventory_units"
    __table_args__ = (
        live_unique_index("uq_inventory_units_serial_live", "serial_number"),
        db.Index("ix_inventory_units_product_status_created", "product_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    serial_number = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=UNIT_AVAILABLE)
    # Free-form beyond NEW/USED/DAMAGED
    condition = db.Column(db.String(64), nullable=False, default="NEW")

    purchase_date = db.Column(db.DateTime, nullable=True)
    purchase_price = db.Column(db.Numeric(12, 2), nullable=True)
    warranty_expiry = db.Column(db.DateTime, nullable=True)
    location = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product", backref=db.backref("units", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryUnit id={self.id} product_id={self.product_id} status={self.status}>"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "serialNumber": self.serial_number,
            "status": self.status,
            "condition": self.condition,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "serialNumber": self.serial_number,
            "status": self.status,
            "condition": self.condition,
            "purchaseDate": to_utc_z(self.purchase_date),
            "purchasePrice": str(self.purchase_price) if self.purchase_price is not None else None,
            "warrantyExpiry": to_utc_z(self.warranty_expiry),
            "location": self.location,
            "notes": self.notes,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class StockTransaction(db.Model):
    """
    Append-only audit row, one per unit state change.

    product_id is stored alongside the unit ref so that the OUT tombstone
    written by a permanent unit delete (inventory_unit_id = NULL) still
    resolves to its product.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.Index("ix_stock_tx_unit_created", "inventory_unit_id", "created_at"),
        db.Index("ix_stock_tx_product_created", "product_id", "created_at"),
        db.Index("ix_stock_tx_type", "type"),
        db.Index("ix_stock_tx_reference", "reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_unit_id = db.Column(db.Integer, db.ForeignKey("inventory_units.id"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    reason = db.Column(db.String(500), nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    unit = db.relationship("InventoryUnit")
    product = db.relationship("Product")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventoryUnitId": self.inventory_unit_id,
            "productId": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "reference": self.reference,
            "userId": self.user_id,
            "createdAt": to_utc_z(self.created_at),
        }
