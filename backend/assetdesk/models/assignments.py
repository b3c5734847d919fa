from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import SoftDeleteMixin, TimestampMixin


ASSIGNMENT_ASSIGNED = "ASSIGNED"
ASSIGNMENT_RETURNED = "RETURNED"


class Assignment(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    Custody record of one inventory unit held by one employee.

    OPEN:   status=ASSIGNED, returned_at IS NULL
    CLOSED: status=RETURNED, returned_at set (terminal)

    The partial unique index on inventory_unit_id allows at most one open
    assignment per unit; a losing concurrent assign fails on it.
    """
    __tablename__ = "assignments"
    __table_args__ = (
        db.Index(
            "uq_assignments_open_unit",
            "inventory_unit_id",
            unique=True,
            sqlite_where=db.text("returned_at IS NULL"),
            postgresql_where=db.text("returned_at IS NULL"),
        ),
        db.Index("ix_assignments_employee", "employee_id"),
        db.Index("ix_assignments_product", "product_id"),
        db.Index("ix_assignments_assigned_at", "assigned_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    inventory_unit_id = db.Column(db.Integer, db.ForeignKey("inventory_units.id"), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False)
    assigned_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    pc_name = db.Column(db.String(128), nullable=True)
    assigned_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expected_return_at = db.Column(db.DateTime, nullable=True)
    returned_at = db.Column(db.DateTime, nullable=True)
    return_condition = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=ASSIGNMENT_ASSIGNED)
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product", backref=db.backref("assignments", lazy=True))
    unit = db.relationship("InventoryUnit", backref=db.backref("assignments", lazy=True))
    employee = db.relationship("Employee", backref=db.backref("assignments", lazy=True))
    assigned_by = db.relationship("User")

    @property
    def is_open(self) -> bool:
        return self.returned_at is None

    def to_dict(self, expand: bool = True) -> dict:
        data = {
            "id": self.id,
            "productId": self.product_id,
            "inventoryId": self.inventory_unit_id,
            "employeeId": self.employee_id,
            "assignedById": self.assigned_by_id,
            "pcName": self.pc_name,
            "assignedAt": to_utc_z(self.assigned_at),
            "expectedReturnAt": to_utc_z(self.expected_return_at),
            "returnedAt": to_utc_z(self.returned_at),
            "returnCondition": self.return_condition,
            "status": self.status,
            "notes": self.notes,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if expand:
            data["product"] = self.product.to_dict() if self.product else None
            data["inventory"] = self.unit.to_dict() if self.unit else None
            data["employee"] = self.employee.to_dict() if self.employee else None
            data["assignedBy"] = self.assigned_by.to_summary() if self.assigned_by else None
        return data
