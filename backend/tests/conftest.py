"""
Pytest fixtures for back-office tests.

Provides the test app and client, a clean database per test, the standard
role ladder (super admin 99, manager 51, staff 40, viewer 0), two coded
stores, and factories for products and inventory lots.
"""

import itertools
import logging
from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.context import Actor, build_context
from backoffice.extensions import db
from backoffice.models import Category, InventoryLot, Product, Role, Store, User
from backoffice.services import session_service
from backoffice.services.auth_service import hash_password
from backoffice.services.inventory_service import compute_lot_status
from backoffice.time_utils import utcnow

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'LOG_LEVEL': 'WARNING',
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
    """One bcrypt hash shared by every fixture user (cost 12 is slow)."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def roles(db_session):
    roles = {
        "super_admin": Role(name="Super Admin", level=99),
        "manager": Role(name="Manager", level=51),
        "staff": Role(name="Staff", level=40),
        "viewer": Role(name="Viewer", level=0),
    }
    db_session.add_all(roles.values())
    db_session.commit()
    return roles


@pytest.fixture(scope='function')
def store_a(db_session):
    store = Store(name="Main Street", code="MAIN", address="1 Main St")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    store = Store(name="East Side", code="EAST")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Food", category_code="FOOD")
    db_session.add(category)
    db_session.commit()
    return category


def _make_user(session, *, username, role, store, password_hash):
    user = User(
        username=username,
        email=f"{username}@example.com",
        name=username.replace("_", " ").title(),
        password_hash=password_hash,
        role_id=role.id if role else None,
        store_id=store.id if store else None,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def super_admin(db_session, roles, password_hash):
    return _make_user(db_session, username="root", role=roles["super_admin"], store=None, password_hash=password_hash)


@pytest.fixture(scope='function')
def manager_a(db_session, roles, store_a, password_hash):
    return _make_user(db_session, username="manager_a", role=roles["manager"], store=store_a, password_hash=password_hash)


@pytest.fixture(scope='function')
def staff_a(db_session, roles, store_a, password_hash):
    return _make_user(db_session, username="staff_a", role=roles["staff"], store=store_a, password_hash=password_hash)


@pytest.fixture(scope='function')
def staff_b(db_session, roles, store_b, password_hash):
    return _make_user(db_session, username="staff_b", role=roles["staff"], store=store_b, password_hash=password_hash)


@pytest.fixture(scope='function')
def viewer_a(db_session, roles, store_a, password_hash):
    return _make_user(db_session, username="viewer_a", role=roles["viewer"], store=store_a, password_hash=password_hash)


@pytest.fixture(scope='function')
def staff_no_store(db_session, roles, password_hash):
    return _make_user(db_session, username="floater", role=roles["staff"], store=None, password_hash=password_hash)


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Issue a session for a user and return Authorization headers."""
    def _headers(user) -> dict:
        _, token = session_service.create_session(user.id)
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture(scope='function')
def super_admin_headers(headers_for, super_admin):
    return headers_for(super_admin)


@pytest.fixture(scope='function')
def manager_headers(headers_for, manager_a):
    return headers_for(manager_a)


@pytest.fixture(scope='function')
def staff_headers(headers_for, staff_a):
    return headers_for(staff_a)


@pytest.fixture(scope='function')
def staff_b_headers(headers_for, staff_b):
    return headers_for(staff_b)


@pytest.fixture(scope='function')
def viewer_headers(headers_for, viewer_a):
    return headers_for(viewer_a)


@pytest.fixture(scope='function')
def ctx_for(app):
    """Service-level RequestContext acting as the given user."""
    def _ctx(user):
        return build_context(logging.getLogger("backoffice.tests"), actor=Actor.from_user(user))
    return _ctx


@pytest.fixture(scope='function')
def make_product(db_session, category):
    counter = itertools.count(1)

    def _make(store, *, name=None, sku=None, selling_price="10.00", purchase_price="6.00"):
        n = next(counter)
        product = Product(
            name=name or f"Product {n}",
            category_id=category.id,
            store_id=store.id,
            sku=sku or f"{store.code}-TEST-{n:04d}",
            selling_price=Decimal(selling_price),
            purchase_price=Decimal(purchase_price),
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_lot(db_session):
    def _make(product, quantity, *, expiry_date=None, created_at=None, status=None, location=None):
        lot = InventoryLot(
            product_id=product.id,
            quantity=quantity,
            location=location,
            expiry_date=expiry_date,
            status=status or compute_lot_status(expiry_date),
            created_at=created_at or utcnow(),
        )
        db_session.add(lot)
        db_session.commit()
        return lot

    return _make
