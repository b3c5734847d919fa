"""
Product catalogue and dashboard tests.
"""

from datetime import datetime, timedelta

import pytest

from assetdesk.errors import ConflictError, NotFoundError, ValidationError
from assetdesk.extensions import db
from assetdesk.models import InventoryUnit, Product, StockTransaction
from assetdesk.services import assignment_service, products_service, reporting_service, repository
from assetdesk.validation import PageRequest

from conftest import add_units, assign_when_transaction_opens


PAGE = PageRequest(page=1, limit=10)


def _payload(category, branch, **extra):
    body = {"name": "MacBook Air", "model": "M3", "categoryId": category.id, "branchId": branch.id}
    body.update(extra)
    return body


class TestCreateProduct:
    def test_create_with_initial_stock(self, db_session, category, branch, admin_user):
        product = products_service.create_product(
            _payload(category, branch, initialStock=3, warrantyDuration=24, serialNumbers=["M-1", "M-2"]),
            acting_user_id=admin_user.id,
        )

        assert product.warranty_duration_months == 24
        units = repository.units.list(InventoryUnit.product_id == product.id, order_by=InventoryUnit.id.asc())
        assert [u.serial_number for u in units] == ["M-1", "M-2", None]
        txs = db.session.query(StockTransaction).order_by(StockTransaction.id).all()
        assert [t.reference for t in txs] == [f"INIT-{product.id}-{n}" for n in (1, 2, 3)]
        assert {t.reason for t in txs} == {"Initial stock"}

    def test_create_without_stock(self, db_session, category, branch):
        product = products_service.create_product(_payload(category, branch))
        assert repository.units.count(InventoryUnit.product_id == product.id) == 0

    def test_missing_required_fields(self, db_session, category):
        with pytest.raises(ValidationError, match="branchId"):
            products_service.create_product({"name": "X", "model": "Y", "categoryId": category.id})

    def test_unknown_category(self, db_session, branch):
        with pytest.raises(NotFoundError, match="Category not found"):
            products_service.create_product({"name": "X", "model": "Y", "categoryId": 555, "branchId": branch.id})

    def test_negative_min_stock_rejected(self, db_session, category, branch):
        with pytest.raises(ValidationError):
            products_service.create_product(_payload(category, branch, minStockLevel=-1))

    def test_duplicate_initial_serial_rolls_back_product(self, db_session, category, branch, product):
        add_units(product, 1, serials=["TAKEN"])
        with pytest.raises(ConflictError):
            products_service.create_product(_payload(category, branch, initialStock=1, serialNumbers=["TAKEN"]))
        assert db.session.query(Product).filter_by(name="MacBook Air").count() == 0


class TestUpdateAndDelete:
    def test_update_fields(self, db_session, product):
        updated = products_service.update_product(product.id, {"minStockLevel": 5, "complianceStatus": True})
        assert updated.min_stock_level == 5
        assert updated.compliance_status is True

    def test_update_rejects_unknown_branch(self, db_session, product):
        with pytest.raises(NotFoundError):
            products_service.update_product(product.id, {"branchId": 9090})

    def test_delete_cascades_to_units(self, db_session, product):
        add_units(product, 2)
        assert products_service.delete_product(product.id) == 2

        assert repository.products.get(product.id) is None
        assert repository.units.count(InventoryUnit.product_id == product.id) == 0
        assert repository.units.count(InventoryUnit.product_id == product.id, include_deleted=True) == 2

    def test_delete_refused_with_open_assignment(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        assignment_service.assign(product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id)
        with pytest.raises(ConflictError):
            products_service.delete_product(product.id)

    def test_delete_sees_assign_committed_after_precheck(
        self, db_session, product, employee, admin_user, monkeypatch
    ):
        add_units(product, 2)
        assign_when_transaction_opens(
            monkeypatch, products_service,
            product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id,
        )

        with pytest.raises(ConflictError):
            products_service.delete_product(product.id)

        db.session.expire_all()
        assert repository.products.get(product.id) is not None
        assert repository.units.count(InventoryUnit.product_id == product.id) == 2
        assert repository.assignments.count() == 1


class TestReadViews:
    def test_list_with_stock_status_filter(self, db_session, product, category, branch):
        spare = products_service.create_product(_payload(category, branch, initialStock=3, minStockLevel=1))
        add_units(product, 1)

        rows, total = products_service.list_products(PAGE, stock_status="low")
        assert total == 1 and rows[0]["id"] == product.id
        rows, total = products_service.list_products(PAGE, stock_status="available")
        assert [r["id"] for r in rows] == [spare.id]
        assert rows[0]["stockInfo"]["availableStock"] == 3

    def test_list_invalid_stock_status(self, db_session):
        with pytest.raises(ValidationError):
            products_service.list_products(PAGE, stock_status="plenty")

    def test_list_search_and_pagination(self, db_session, category, branch):
        for i in range(3):
            products_service.create_product(_payload(category, branch, name=f"Headset {i}"))

        rows, total = products_service.list_products(PageRequest(page=2, limit=2), search="headset")
        assert total == 3
        assert len(rows) == 1

    def test_get_product_shows_current_assignment(self, db_session, product, employee, admin_user):
        add_units(product, 2)
        assignment_service.assign(product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id)

        data = products_service.get_product(product.id)
        holders = [u["currentAssignment"] for u in data["inventory"] if u["currentAssignment"]]
        assert len(holders) == 1
        assert holders[0]["employee"]["name"] == "Alex Rivera"
        assert data["stockStats"]["assignedStock"] == 1
        assert len(data["recentAssignments"]) == 1

    def test_assigned_products(self, db_session, product, employee, admin_user):
        assert products_service.list_assigned_products() == []
        add_units(product, 1)
        assignment_service.assign(product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id)

        rows = products_service.list_assigned_products()
        assert [r["id"] for r in rows] == [product.id]
        assert rows[0]["assignments"][0]["employee"]["empId"] == "E-001"


class TestDashboard:
    def test_week_bounds_start_monday(self):
        start, end = reporting_service.week_bounds(datetime(2025, 3, 13, 15, 30))  # Thursday
        assert start == datetime(2025, 3, 10)
        assert end == datetime(2025, 3, 17)

    def test_summary(self, db_session, product, employee, admin_user):
        add_units(product, 2)
        first = assignment_service.assign(
            product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id
        )
        assignment_service.assign(product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id)
        assignment_service.return_assignment(first.id, acting_user_id=admin_user.id)

        summary = reporting_service.dashboard_summary()
        assert summary["counts"] == {
            "totalProducts": 1,
            "assignedProducts": 1,
            "totalCategories": 1,
            "totalBranches": 1,
            "totalEmployees": 1,
        }
        assert sum(day["assignments"] for day in summary["weeklyTrend"]) == 2
        assert [d["day"] for d in summary["weeklyTrend"]][0] == "Mon"
        assert len(summary["recentActivities"]) == 2
        assert summary["categoryDistribution"] == [
            {"categoryId": product.category_id, "name": "Laptops", "productCount": 1}
        ]

    def test_weekly_trend_excludes_other_weeks(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        assignment = assignment_service.assign(
            product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id
        )
        assignment.assigned_at = assignment.assigned_at - timedelta(days=14)
        db_session.commit()

        summary = reporting_service.dashboard_summary()
        assert sum(day["assignments"] for day in summary["weeklyTrend"]) == 0
