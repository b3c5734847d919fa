"""
Soft-delete repository tests.

Verifies:
- Default reads exclude stamped rows; include_deleted=True brings them back
- delete() and delete_where() stamp deleted_at instead of removing rows
- get_or_404 names the entity
- purge() is the only hard delete
"""

import pytest

from assetdesk.errors import NotFoundError
from assetdesk.extensions import db
from assetdesk.models import Branch, InventoryUnit, StockTransaction
from assetdesk.services import repository

from conftest import add_units


class TestReads:
    def test_deleted_rows_hidden_by_default(self, db_session):
        live = Branch(name="North")
        gone = Branch(name="South")
        db_session.add_all([live, gone])
        db_session.commit()

        repository.branches.delete(gone)
        db_session.commit()

        names = [b.name for b in repository.branches.list(order_by=Branch.name)]
        assert names == ["North"]
        assert repository.branches.get(gone.id) is None
        assert repository.branches.count() == 1

    def test_include_deleted_escape_hatch(self, db_session):
        gone = Branch(name="Closed Site")
        db_session.add(gone)
        db_session.commit()
        repository.branches.delete(gone)
        db_session.commit()

        found = repository.branches.get(gone.id, include_deleted=True)
        assert found is not None
        assert found.is_deleted
        assert repository.branches.count(include_deleted=True) == 1

    def test_get_or_404_names_entity(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            repository.employees.get_or_404(999)
        assert exc.value.message == "Employee not found"
        assert exc.value.status_code == 404


class TestDeletes:
    def test_delete_stamps_instead_of_removing(self, db_session):
        branch = Branch(name="Annex")
        db_session.add(branch)
        db_session.commit()

        repository.branches.delete(branch)
        db_session.commit()

        raw = db.session.query(Branch).filter_by(id=branch.id).one()
        assert raw.deleted_at is not None

    def test_bulk_delete_where(self, db_session, product):
        add_units(product, 3)
        stamped = repository.units.delete_where(InventoryUnit.product_id == product.id)
        db_session.commit()

        assert stamped == 3
        assert repository.units.count(InventoryUnit.product_id == product.id) == 0
        assert db.session.query(InventoryUnit).count() == 3

        # Already-stamped rows are not stamped again
        assert repository.units.delete_where(InventoryUnit.product_id == product.id) == 0

    def test_purge_removes_rows(self, db_session, product):
        units = add_units(product, 1)
        db.session.query(StockTransaction).delete()
        repository.units.purge(units)
        db_session.commit()

        assert db.session.query(InventoryUnit).count() == 0
