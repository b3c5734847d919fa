"""
Assignment lifecycle tests.

Verifies:
- assign/return write unit, assignment and stock transaction together
- failures leave no partial state behind
- active/history listings, overdue filtering and derived fields
- analytics aggregates
"""

from datetime import datetime, timedelta

import pytest

from assetdesk.errors import (
    ConflictError, NotAvailableError, NotFoundError, OutOfStockError,
    UnauthenticatedError, ValidationError,
)
from assetdesk.extensions import db
from assetdesk.models import Assignment, StockTransaction
from assetdesk.services import assignment_service, repository, stock_ledger_service
from assetdesk.services.assignment_service import AssignmentFilter
from assetdesk.time_utils import utcnow
from assetdesk.validation import PageRequest

from conftest import add_units, age_units


PAGE = PageRequest(page=1, limit=10)


def _assign(product, employee, user, **kwargs):
    return assignment_service.assign(
        product_id=product.id, employee_id=employee.id, acting_user_id=user.id, **kwargs
    )


def _set_expected_return(assignment, value):
    # Past dates are rejected on write; tests backdate directly.
    assignment.expected_return_at = value
    db.session.commit()


# =============================================================================
# ASSIGN
# =============================================================================

class TestAssign:
    def test_assign_auto_selects_and_logs_out(self, db_session, product, employee, admin_user):
        (unit,) = add_units(product, 1)
        assignment = _assign(product, employee, admin_user, pc_name="PC-42")

        assert assignment.status == "ASSIGNED"
        assert assignment.returned_at is None
        assert assignment.inventory_unit_id == unit.id
        assert assignment.assigned_by_id == admin_user.id
        assert repository.units.get(unit.id).status == "ASSIGNED"

        out = stock_ledger_service.transactions_for_unit(unit.id)[-1]
        assert out.type == "OUT"
        assert out.reference == f"ASSIGN-{assignment.id}"
        assert out.reason == "Assigned to Alex Rivera (E-001) - PC: PC-42"

    def test_assign_explicit_unit(self, db_session, product, employee, admin_user):
        first, second = add_units(product, 2)
        age_units([first, second], datetime(2024, 1, 1))

        assignment = _assign(product, employee, admin_user, inventory_id=second.id, auto_select=False)
        assert assignment.inventory_unit_id == second.id
        assert repository.units.get(first.id).status == "AVAILABLE"

    def test_consecutive_auto_selects_follow_fifo(self, db_session, product, employee, second_employee, admin_user):
        # Created in reverse so id order disagrees with created_at order
        t3, t2, t1 = add_units(product, 3, serials=["T3", "T2", "T1"])
        age_units([t1, t2, t3], datetime(2024, 1, 1))

        taken = [
            _assign(product, employee, admin_user).inventory_unit_id,
            _assign(product, second_employee, admin_user).inventory_unit_id,
            _assign(product, employee, admin_user).inventory_unit_id,
        ]
        assert taken == [t1.id, t2.id, t3.id]
        with pytest.raises(OutOfStockError):
            _assign(product, employee, admin_user)

    def test_non_string_notes_rejected_before_mutation(self, db_session, product, employee, admin_user):
        (unit,) = add_units(product, 1)
        with pytest.raises(ValidationError, match="notes must be a string"):
            _assign(product, employee, admin_user, notes={"x": 1})
        with pytest.raises(ValidationError, match="pcName must be a string"):
            _assign(product, employee, admin_user, pc_name=["PC-1"])
        assert repository.units.get(unit.id).status == "AVAILABLE"
        assert repository.assignments.count() == 0

    def test_out_of_stock_writes_nothing(self, db_session, product, employee, admin_user):
        with pytest.raises(OutOfStockError):
            _assign(product, employee, admin_user)

        assert db.session.query(Assignment).count() == 0
        assert db.session.query(StockTransaction).count() == 0

    def test_past_expected_return_rejected_before_mutation(self, db_session, product, employee, admin_user):
        (unit,) = add_units(product, 1)
        with pytest.raises(ValidationError):
            _assign(product, employee, admin_user, expected_return_at=utcnow() - timedelta(days=1))

        assert repository.units.get(unit.id).status == "AVAILABLE"
        assert db.session.query(Assignment).count() == 0
        assert db.session.query(StockTransaction).filter_by(type="OUT").count() == 0

    def test_requires_acting_user(self, db_session, product, employee):
        with pytest.raises(UnauthenticatedError):
            assignment_service.assign(product_id=product.id, employee_id=employee.id, acting_user_id=None)

    def test_requires_ids(self, db_session, product, admin_user):
        with pytest.raises(ValidationError):
            assignment_service.assign(product_id=product.id, employee_id=None, acting_user_id=admin_user.id)

    def test_unit_choice_required(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        with pytest.raises(ValidationError):
            _assign(product, employee, admin_user, auto_select=False)

    def test_deleted_employee_not_found(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        repository.employees.delete(employee)
        db_session.commit()
        with pytest.raises(NotFoundError):
            _assign(product, employee, admin_user)

    def test_unit_already_assigned_not_available(self, db_session, product, employee, second_employee, admin_user):
        (unit,) = add_units(product, 1)
        _assign(product, employee, admin_user)
        with pytest.raises(NotAvailableError):
            _assign(product, second_employee, admin_user, inventory_id=unit.id)
        assert repository.assignments.count() == 1


# =============================================================================
# RETURN
# =============================================================================

class TestReturn:
    def test_return_damaged_closes_assignment(self, db_session, product, employee, admin_user):
        (unit,) = add_units(product, 1)
        assignment = _assign(product, employee, admin_user)

        returned = assignment_service.return_assignment(
            assignment.id,
            acting_user_id=admin_user.id,
            condition="Cracked screen",
            inventory_status="DAMAGED",
        )

        assert returned.status == "RETURNED"
        assert returned.returned_at is not None
        assert returned.return_condition == "Cracked screen"
        unit = repository.units.get(unit.id)
        assert unit.status == "DAMAGED"
        assert unit.condition == "Cracked screen"

        txs = stock_ledger_service.transactions_for_unit(unit.id)
        assert [(t.type, t.reference) for t in txs[1:]] == [
            ("OUT", f"ASSIGN-{assignment.id}"),
            ("IN", f"RETURN-{assignment.id}"),
        ]
        assert txs[-1].reason == "Returned by Alex Rivera - Status: DAMAGED"

    def test_return_defaults_to_available(self, db_session, product, employee, admin_user):
        (unit,) = add_units(product, 1)
        assignment = _assign(product, employee, admin_user)
        assignment_service.return_assignment(
            assignment.id, acting_user_id=admin_user.id, acting_username="admin"
        )

        unit = repository.units.get(unit.id)
        assert unit.status == "AVAILABLE"
        assert unit.condition == "NEW"
        assert repository.assignments.get(assignment.id).notes == "Returned by admin"

    def test_unit_can_be_reassigned_after_return(self, db_session, product, employee, second_employee, admin_user):
        add_units(product, 1)
        first = _assign(product, employee, admin_user)
        assignment_service.return_assignment(first.id, acting_user_id=admin_user.id)

        second = _assign(product, second_employee, admin_user)
        assert second.inventory_unit_id == first.inventory_unit_id

    def test_second_return_conflicts_and_writes_nothing(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        assignment = _assign(product, employee, admin_user)
        assignment_service.return_assignment(assignment.id, acting_user_id=admin_user.id)
        tx_count = db.session.query(StockTransaction).count()

        with pytest.raises(ConflictError):
            assignment_service.return_assignment(assignment.id, acting_user_id=admin_user.id)
        assert db.session.query(StockTransaction).count() == tx_count

    def test_return_unknown_assignment(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            assignment_service.return_assignment(424242, acting_user_id=admin_user.id)


# =============================================================================
# UPDATE
# =============================================================================

class TestUpdate:
    def test_update_open_assignment(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        assignment = _assign(product, employee, admin_user)
        due = (utcnow() + timedelta(days=14)).replace(microsecond=0)

        updated = assignment_service.update_assignment(
            assignment.id, {"expectedReturnAt": due.isoformat() + "Z", "notes": "Loaner"}
        )
        assert updated.expected_return_at == due
        assert updated.notes == "Loaner"

    def test_update_rejects_past_date(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        assignment = _assign(product, employee, admin_user)
        with pytest.raises(ValidationError):
            assignment_service.update_assignment(assignment.id, {"expectedReturnAt": "2000-01-01T00:00:00Z"})

    def test_update_closed_assignment_conflicts(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        assignment = _assign(product, employee, admin_user)
        assignment_service.return_assignment(assignment.id, acting_user_id=admin_user.id)
        with pytest.raises(ConflictError):
            assignment_service.update_assignment(assignment.id, {"notes": "too late"})

    def test_update_rejects_non_string_notes(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        assignment = _assign(product, employee, admin_user, notes="Loaner")
        with pytest.raises(ValidationError, match="notes must be a string"):
            assignment_service.update_assignment(assignment.id, {"notes": {"x": 1}})
        db.session.expire_all()
        assert repository.assignments.get(assignment.id).notes == "Loaner"


# =============================================================================
# READ VIEWS
# =============================================================================

class TestListings:
    def test_overdue_filter_is_strict(self, db_session, product, employee, second_employee, admin_user):
        add_units(product, 3)
        now = datetime(2030, 6, 1, 12, 0, 0)
        late = _assign(product, employee, admin_user)
        on_time = _assign(product, second_employee, admin_user)
        open_ended = _assign(product, employee, admin_user)
        _set_expected_return(late, now - timedelta(days=3, hours=1))
        _set_expected_return(on_time, now)

        rows, total = assignment_service.list_active(AssignmentFilter(overdue=True), PAGE, now=now)
        assert total == 1
        assert rows[0]["id"] == late.id
        assert rows[0]["isOverdue"] is True
        assert rows[0]["daysOverdue"] == 3

        rows, total = assignment_service.list_active(AssignmentFilter(), PAGE, now=now)
        assert total == 3
        by_id = {r["id"]: r for r in rows}
        assert by_id[on_time.id]["isOverdue"] is False
        assert by_id[open_ended.id]["daysOverdue"] == 0

    def test_active_excludes_returned_and_history_includes_them(self, db_session, product, employee, admin_user):
        add_units(product, 2)
        kept = _assign(product, employee, admin_user)
        closed = _assign(product, employee, admin_user)
        assignment_service.return_assignment(closed.id, acting_user_id=admin_user.id)

        active, _ = assignment_service.list_active(AssignmentFilter(), PAGE)
        history, total = assignment_service.list_history(AssignmentFilter(), PAGE)
        assert [r["id"] for r in active] == [kept.id]
        assert [r["id"] for r in history] == [closed.id]
        assert total == 1
        assert history[0]["durationDays"] == 0
        assert history[0]["wasOverdue"] is False

    def test_search_matches_employee_name_and_serial(self, db_session, product, employee, second_employee, admin_user):
        add_units(product, 2, serials=["SER-AAA", "SER-BBB"])
        _assign(product, employee, admin_user)
        _assign(product, second_employee, admin_user)

        rows, total = assignment_service.list_active(AssignmentFilter(search="okafor"), PAGE)
        assert total == 1
        assert rows[0]["employee"]["name"] == "Sam Okafor"

        rows, total = assignment_service.list_active(AssignmentFilter(search="SER-"), PAGE)
        assert total == 2

    def test_pagination(self, db_session, product, employee, admin_user):
        add_units(product, 3)
        for _ in range(3):
            _assign(product, employee, admin_user)

        rows, total = assignment_service.list_active(AssignmentFilter(), PageRequest(page=2, limit=2))
        assert total == 3
        assert len(rows) == 1

    def test_employee_and_product_views(self, db_session, product, employee, admin_user):
        add_units(product, 2)
        open_one = _assign(product, employee, admin_user)
        closed = _assign(product, employee, admin_user)
        assignment_service.return_assignment(closed.id, acting_user_id=admin_user.id)

        active = assignment_service.list_employee_assignments(employee.id, active=True)
        assert [r["id"] for r in active] == [open_one.id]
        everything = assignment_service.list_employee_assignments(employee.id, active=False)
        assert {r["displayStatus"] for r in everything} == {"ASSIGNED", "RETURNED"}

        assert len(assignment_service.list_product_assignments(product.id)) == 2

    def test_product_without_assignments(self, db_session, product):
        with pytest.raises(NotFoundError, match="No assignments found"):
            assignment_service.list_product_assignments(product.id)

    def test_get_assignment_derived_fields(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        assignment = _assign(product, employee, admin_user)
        data = assignment_service.get_assignment(assignment.id)
        assert data["inventory"]["id"] == assignment.inventory_unit_id
        assert data["isOverdue"] is False
        assert data["durationDays"] == 0


class TestDerivedFields:
    def test_was_overdue(self):
        assignment = Assignment(
            assigned_at=datetime(2024, 1, 1),
            expected_return_at=datetime(2024, 1, 10),
            returned_at=datetime(2024, 1, 12),
        )
        assert assignment_service.was_overdue(assignment) is True
        assert assignment_service.is_overdue(assignment) is False
        assert assignment_service.duration_days(assignment) == 11
        assert assignment_service.display_status(assignment) == "RETURNED"

    def test_open_overdue_display_status(self):
        assignment = Assignment(
            assigned_at=datetime(2024, 1, 1),
            expected_return_at=datetime(2024, 1, 10),
        )
        now = datetime(2024, 1, 15, 6)
        assert assignment_service.display_status(assignment, now) == "OVERDUE"
        assert assignment_service.days_overdue(assignment, now) == 5


class TestAnalytics:
    def test_counts_and_return_rate(self, db_session, product, employee, second_employee, admin_user):
        add_units(product, 3)
        first = _assign(product, employee, admin_user)
        second = _assign(product, employee, admin_user)
        _assign(product, second_employee, admin_user)
        assignment_service.return_assignment(first.id, acting_user_id=admin_user.id)
        assignment_service.return_assignment(second.id, acting_user_id=admin_user.id)

        stats = assignment_service.analytics()
        assert stats["totalAssignments"] == 3
        assert stats["activeAssignments"] == 1
        assert stats["overdueAssignments"] == 0
        assert stats["returnRate"] == 66.67
        assert stats["topEmployees"][0] == {"employeeId": employee.id, "name": "Alex Rivera", "count": 2}
        assert stats["topProducts"] == [{"productId": product.id, "name": "ThinkPad T14", "count": 3}]

    def test_empty_return_rate_is_zero(self, db_session):
        stats = assignment_service.analytics()
        assert stats["totalAssignments"] == 0
        assert stats["returnRate"] == 0
