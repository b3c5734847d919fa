"""
Pytest fixtures for AssetDesk backend tests.

Provides test database setup, reference data, users and a test client.
"""

from contextlib import contextmanager
from datetime import timedelta

import pytest

from assetdesk import create_app
from assetdesk.extensions import db
from assetdesk.models import Branch, Category, Department, Employee, Product, User
from assetdesk.models.auth import ROLE_ADMIN, ROLE_SUPER_ADMIN, ROLE_USER
from assetdesk.services import assignment_service, inventory_service
from assetdesk.services.auth_service import hash_password
from assetdesk.services.unit_of_work import transaction


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash once per run."""
    return hash_password(TEST_PASSWORD)


def _make_user(db_session, username, role, password_hash):
    user = User(username=username, password_hash=password_hash, role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def super_admin(db_session, password_hash):
    return _make_user(db_session, "root", ROLE_SUPER_ADMIN, password_hash)


@pytest.fixture(scope='function')
def admin_user(db_session, password_hash):
    return _make_user(db_session, "admin", ROLE_ADMIN, password_hash)


@pytest.fixture(scope='function')
def plain_user(db_session, password_hash):
    return _make_user(db_session, "clerk", ROLE_USER, password_hash)


@pytest.fixture(scope='function')
def branch(db_session):
    branch = Branch(name="Head Office")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Laptops", description="Portable computers")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def department(db_session):
    department = Department(name="Engineering")
    db_session.add(department)
    db_session.commit()
    return department


@pytest.fixture(scope='function')
def employee(db_session, branch):
    employee = Employee(emp_id="E-001", name="Alex Rivera", email="alex@example.com", branch_id=branch.id)
    db_session.add(employee)
    db_session.commit()
    return employee


@pytest.fixture(scope='function')
def second_employee(db_session, branch):
    employee = Employee(emp_id="E-002", name="Sam Okafor", email="sam@example.com", branch_id=branch.id)
    db_session.add(employee)
    db_session.commit()
    return employee


@pytest.fixture(scope='function')
def product(db_session, category, branch, department):
    product = Product(
        name="ThinkPad T14",
        model="20W0",
        category_id=category.id,
        branch_id=branch.id,
        department_id=department.id,
        warranty_duration_months=12,
        min_stock_level=1,
    )
    db_session.add(product)
    db_session.commit()
    return product


def add_units(product, count, serials=None, **kwargs):
    """Create `count` AVAILABLE units and return them in creation order."""
    with transaction():
        units = inventory_service.add_units(product, count, serial_numbers=serials, **kwargs)
    return units


def age_units(units, base):
    """Give units strictly increasing created_at values starting at `base`."""
    for offset, unit in enumerate(units):
        unit.created_at = base + timedelta(minutes=offset)
    db.session.commit()


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def assign_when_transaction_opens(monkeypatch, module, **assign_kwargs):
    """
    Make the next `module.transaction()` commit an assign first.

    The service's pre-transaction checks have already run by then, so this
    replays a concurrent request winning the race between check and write.
    """
    real_transaction = module.transaction

    @contextmanager
    def assign_first(*args, **kwargs):
        monkeypatch.setattr(module, "transaction", real_transaction)
        assignment_service.assign(**assign_kwargs)
        with real_transaction(*args, **kwargs) as session:
            yield session

    monkeypatch.setattr(module, "transaction", assign_first)
