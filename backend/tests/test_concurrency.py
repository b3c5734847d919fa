"""
Concurrency tests for assign.

Uses a file-backed SQLite database so every thread gets its own connection;
the shared in-memory database from conftest cannot exercise real contention.
"""

import threading

import pytest

from assetdesk import create_app
from assetdesk.errors import ConflictError, OutOfStockError
from assetdesk.extensions import db
from assetdesk.models import Assignment, Branch, Category, Employee, InventoryUnit, Product, User
from assetdesk.models.auth import ROLE_ADMIN
from assetdesk.services import assignment_service, inventory_service, repository
from assetdesk.services.unit_of_work import transaction


@pytest.fixture
def concurrent_app(tmp_path):
    db_path = tmp_path / "concurrency.db"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"check_same_thread": False, "timeout": 30}},
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


def _seed(app, unit_count, employee_count):
    with app.app_context():
        branch = Branch(name="Warehouse")
        category = Category(name="Monitors")
        user = User(username="operator", password_hash="dummy", role=ROLE_ADMIN)
        db.session.add_all([branch, category, user])
        db.session.commit()

        product = Product(name="Dell U2723", model="U2723QE", category_id=category.id, branch_id=branch.id)
        db.session.add(product)
        employees = [
            Employee(emp_id=f"C-{i}", name=f"Contender {i}", branch_id=branch.id)
            for i in range(employee_count)
        ]
        db.session.add_all(employees)
        db.session.commit()

        with transaction():
            inventory_service.add_units(product, unit_count)

        return product.id, [e.id for e in employees], user.id


def _race(app, product_id, employee_ids, user_id):
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(employee_ids))

    def worker(employee_id):
        with app.app_context():
            try:
                barrier.wait()
                assignment = assignment_service.assign(
                    product_id=product_id,
                    employee_id=employee_id,
                    acting_user_id=user_id,
                    auto_select=True,
                )
                with lock:
                    results.append(assignment.id)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(emp_id,)) for emp_id in employee_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_last_unit_goes_to_exactly_one_request(concurrent_app):
    product_id, employee_ids, user_id = _seed(concurrent_app, unit_count=1, employee_count=2)

    results = _race(concurrent_app, product_id, employee_ids, user_id)

    successes = [r for r in results if isinstance(r, int)]
    failures = [r for r in results if not isinstance(r, int)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], (ConflictError, OutOfStockError))

    with concurrent_app.app_context():
        available = repository.units.count(
            InventoryUnit.product_id == product_id,
            InventoryUnit.status == "AVAILABLE",
        )
        assert available == 0
        assert db.session.query(Assignment).count() == 1


def test_units_are_never_double_assigned(concurrent_app):
    product_id, employee_ids, user_id = _seed(concurrent_app, unit_count=3, employee_count=6)

    results = _race(concurrent_app, product_id, employee_ids, user_id)

    successes = [r for r in results if isinstance(r, int)]
    failures = [r for r in results if not isinstance(r, int)]
    assert len(successes) <= 3
    assert all(isinstance(f, (ConflictError, OutOfStockError)) for f in failures)

    with concurrent_app.app_context():
        held = [a.inventory_unit_id for a in db.session.query(Assignment).all()]
        assert len(held) == len(set(held)) == len(successes)
        assigned = repository.units.count(InventoryUnit.status == "ASSIGNED")
        assert assigned == len(successes)
