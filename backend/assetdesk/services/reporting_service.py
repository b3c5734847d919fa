# Overview: Read-only dashboard aggregates.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..models import Assignment, Category, Product
from ..time_utils import to_utc_z, utcnow
from . import repository
from .unit_of_work import read_transaction


WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def week_bounds(now: datetime) -> tuple[datetime, datetime]:
    """[Monday 00:00, next Monday 00:00) of the week containing now (UTC)."""
    start = (now - timedelta(days=now.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=7)


def dashboard_summary(now: datetime | None = None) -> dict:
    now = now or utcnow()
    week_start, week_end = week_bounds(now)

    with read_transaction():
        total_products = repository.products.count()
        assigned_products = (
            repository.assignments.query()
            .join(Product, Assignment.product_id == Product.id)
            .filter(Assignment.returned_at.is_(None), Product.deleted_at.is_(None))
            .count()
        )
        total_categories = repository.categories.count()
        total_branches = repository.branches.count()
        total_employees = repository.employees.count()

        week_rows = repository.assignments.list(
            Assignment.assigned_at >= week_start,
            Assignment.assigned_at < week_end,
        )
        per_day = [0] * 7
        for assignment in week_rows:
            per_day[assignment.assigned_at.weekday()] += 1

        recent = (
            repository.assignments.query()
            .order_by(Assignment.assigned_at.desc(), Assignment.id.desc())
            .limit(5)
            .all()
        )
        recent_activities = [
            {
                "id": a.id,
                "productName": a.product.name if a.product else None,
                "employeeName": a.employee.name if a.employee else None,
                "status": a.status,
                "assignedAt": to_utc_z(a.assigned_at),
                "returnedAt": to_utc_z(a.returned_at),
            }
            for a in recent
        ]

        distribution_rows = (
            repository.categories.query()
            .outerjoin(
                Product,
                (Product.category_id == Category.id) & Product.deleted_at.is_(None),
            )
            .with_entities(Category.id, Category.name, func.count(Product.id))
            .group_by(Category.id, Category.name)
            .order_by(Category.name.asc())
            .all()
        )

    return {
        "counts": {
            "totalProducts": total_products,
            "assignedProducts": assigned_products,
            "totalCategories": total_categories,
            "totalBranches": total_branches,
            "totalEmployees": total_employees,
        },
        "weeklyTrend": [
            {"day": label, "assignments": per_day[i]}
            for i, label in enumerate(WEEKDAY_LABELS)
        ],
        "recentActivities": recent_activities,
        "categoryDistribution": [
            {"categoryId": cat_id, "name": name, "productCount": count}
            for cat_id, name, count in distribution_rows
        ],
    }
