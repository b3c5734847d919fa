from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import SoftDeleteMixin, TimestampMixin, live_unique_index


class Branch(TimestampMixin, SoftDeleteMixin, db.Model):
    """Physical site that owns products and employees."""
    __tablename__ = "branches"
    __table_args__ = (
        live_unique_index("uq_branches_name_live", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Department(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "departments"
    __table_args__ = (
        live_unique_index("uq_departments_name_live", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Department id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Category(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        live_unique_index("uq_categories_name_live", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Employee(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    Person who can hold assigned inventory.

    emp_id is the HR-facing identifier, unique among non-deleted employees.
    department is free text (HR naming), not a Department reference.
    """
    __tablename__ = "employees"
    __table_args__ = (
        live_unique_index("uq_employees_emp_id_live", "emp_id"),
        db.Index("ix_employees_branch", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    emp_id = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    department = db.Column(db.String(128), nullable=True)
    position = db.Column(db.String(128), nullable=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    branch = db.relationship("Branch", backref=db.backref("employees", lazy=True))

    def __repr__(self) -> str:
        return f"<Employee id={self.id} emp_id={self.emp_id!r} name={self.name!r}>"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "empId": self.emp_id,
            "name": self.name,
            "email": self.email,
            "department": self.department,
            "position": self.position,
        }

    def to_dict(self) -> dict:
        data = self.to_summary()
        data.update({
            "branchId": self.branch_id,
            "branch": {"id": self.branch.id, "name": self.branch.name} if self.branch else None,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        })
        return data
