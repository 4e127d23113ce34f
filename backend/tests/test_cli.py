"""
CLI command tests.
"""

from backoffice.extensions import db
from backoffice.models import Role, Store, User


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init", "--password", "superadmin"])
    assert result.exit_code == 0, result.output
    assert "PASS Created user: super_admin" in result.output

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0, result.output
    assert "already exists" in result.output

    user = db.session.query(User).filter_by(username="super_admin").one()
    assert user.level == 99
    assert db.session.query(Role).filter_by(level=99).count() == 1


def test_stores_and_users_create(app, roles):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["stores", "create", "--name", "Depot", "--code", "dep"])
    assert result.exit_code == 0, result.output
    assert db.session.query(Store).filter_by(code="DEP").count() == 1

    result = runner.invoke(args=[
        "users", "create",
        "--username", "picker", "--email", "Picker@Example.com", "--name", "Picker",
        "--password", "secret1", "--role", "Staff", "--store-code", "DEP",
    ])
    assert result.exit_code == 0, result.output

    user = db.session.query(User).filter_by(username="picker").one()
    assert user.email == "picker@example.com"
    assert user.store.code == "DEP"

    result = runner.invoke(args=["users", "list"])
    assert "picker" in result.output


def test_inventory_available(app, store_a, make_product, make_lot):
    product = make_product(store_a, name="Oats", sku="OATS-1")
    make_lot(product, 7)
    make_lot(product, 2.5)

    result = app.test_cli_runner().invoke(args=["inventory", "available", "--sku", "OATS-1"])

    assert result.exit_code == 0, result.output
    assert "Oats (OATS-1): 9.5 available" in result.output


def test_unknown_sku(app, db_session):
    result = app.test_cli_runner().invoke(args=["inventory", "available", "--sku", "NOPE"])
    assert result.exit_code != 0
    assert "not found" in result.output
