# Overview: Soft-delete-aware repository; the only read/delete path for soft-deletable entities.

"""
Soft-delete policy (authoritative)

- Every read through a repository excludes rows whose deleted_at is set,
  unless the caller passes include_deleted=True.
- delete() never removes a row; it stamps deleted_at = now.
  delete_where() is the bulk form and returns the number of rows stamped.
- purge() is the explicit, separately named hard delete. It is used only by
  the permanent inventory-unit delete.

Services never call db.session.query(Model) directly for soft-deletable
models; they go through the module-level instances at the bottom of this file.
"""

from __future__ import annotations

from typing import Generic, Iterable, TypeVar

from sqlalchemy import func

from ..errors import NotFoundError
from ..extensions import db
from ..models import (
    Assignment, Branch, Category, Department, Employee,
    InventoryUnit, Product, User,
)
from ..time_utils import utcnow


ModelT = TypeVar("ModelT")


class SoftDeleteRepository(Generic[ModelT]):
    def __init__(self, model: type[ModelT], entity_name: str):
        self.model = model
        self.entity_name = entity_name

    def query(self, *, include_deleted: bool = False):
        q = db.session.query(self.model)
        if not include_deleted:
            q = q.filter(self.model.deleted_at.is_(None))
        return q

    def filter(self, *criteria, include_deleted: bool = False):
        return self.query(include_deleted=include_deleted).filter(*criteria)

    def get(self, entity_id, *, include_deleted: bool = False) -> ModelT | None:
        if entity_id is None:
            return None
        return self.query(include_deleted=include_deleted).filter(self.model.id == entity_id).first()

    def get_or_404(self, entity_id) -> ModelT:
        obj = self.get(entity_id)
        if obj is None:
            raise NotFoundError(entity=self.entity_name)
        return obj

    def list(self, *criteria, order_by=None, include_deleted: bool = False) -> list[ModelT]:
        q = self.filter(*criteria, include_deleted=include_deleted)
        if order_by is not None:
            q = q.order_by(*order_by) if isinstance(order_by, (list, tuple)) else q.order_by(order_by)
        return q.all()

    def count(self, *criteria, include_deleted: bool = False) -> int:
        q = db.session.query(func.count(self.model.id))
        if not include_deleted:
            q = q.filter(self.model.deleted_at.is_(None))
        return q.filter(*criteria).scalar() or 0

    def exists(self, *criteria) -> bool:
        return self.filter(*criteria).first() is not None

    def add(self, obj: ModelT) -> ModelT:
        db.session.add(obj)
        db.session.flush()
        return obj

    def delete(self, obj: ModelT) -> ModelT:
        obj.deleted_at = utcnow()
        db.session.flush()
        return obj

    def delete_where(self, *criteria) -> int:
        """Bulk soft delete; already-deleted rows are left untouched."""
        now = utcnow()
        count = (
            self.filter(*criteria)
            .update({self.model.deleted_at: now, self.model.updated_at: now}, synchronize_session="fetch")
        )
        db.session.flush()
        return count

    def purge(self, objs: Iterable[ModelT]) -> int:
        """Hard delete. Bypasses the soft-delete policy by name, never by default."""
        count = 0
        for obj in objs:
            db.session.delete(obj)
            count += 1
        db.session.flush()
        return count


branches = SoftDeleteRepository(Branch, "Branch")
departments = SoftDeleteRepository(Department, "Department")
categories = SoftDeleteRepository(Category, "Category")
employees = SoftDeleteRepository(Employee, "Employee")
users = SoftDeleteRepository(User, "User")
products = SoftDeleteRepository(Product, "Product")
units = SoftDeleteRepository(InventoryUnit, "Inventory item")
assignments = SoftDeleteRepository(Assignment, "Assignment")
