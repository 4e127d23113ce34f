# Overview: Flask CLI command groups for bootstrapping and inspecting the back office.

# Usage, from backend/ with FLASK_APP=wsgi.py:
#
#   flask system init [--password superadmin]
#       Creates the "Super Admin" role (level 99) and the super_admin user.
#       Re-running is harmless.
#   flask system reset-db --yes
#       Drops and recreates every table. Development databases only.
#   flask stores create --name "Main Street" --code MAIN
#   flask users list
#   flask users create --username jane --email jane@example.com --name "Jane" \
#       --password secret1 --role Staff --store-code MAIN
#   flask inventory available --sku MAIN-FOOD-2026101912
#       Sellable quantity of a product across its non-expired lots.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Role, Store, User
from .errors import BackofficeError
from .services import inventory_service
from .services.auth_service import hash_password
from .services.role_service import ensure_super_admin_role
from .services.store_service import normalize_store_code

SUPER_ADMIN_USERNAME = "super_admin"
SUPER_ADMIN_EMAIL = "super_admin@example.com"


@click.group('system')
def system_group():
    """Bootstrap and reset the database."""


@system_group.command('init')
@click.option('--password', default='superadmin', help='Password for the super_admin user')
@with_appcontext
def init_system(password):
    """
    Create the super admin role (level 99) and the super_admin user.

    Safe to re-run: existing rows are left untouched.
    """
    click.echo("START Initializing back-office...")
    db.create_all()

    role = ensure_super_admin_role()
    click.echo(f"PASS Super admin role: {role.name} (level {role.level})")

    user = db.session.query(User).filter_by(username=SUPER_ADMIN_USERNAME).first()
    if user:
        click.echo(f"WARN  User '{SUPER_ADMIN_USERNAME}' already exists, skipping...")
    else:
        try:
            user = User(
                username=SUPER_ADMIN_USERNAME,
                email=SUPER_ADMIN_EMAIL,
                name="Super Admin",
                password_hash=hash_password(password),
                role_id=role.id,
            )
        except BackofficeError as e:
            raise click.ClickException(str(e))
        db.session.add(user)
        click.echo(f"PASS Created user: {SUPER_ADMIN_USERNAME} ({SUPER_ADMIN_EMAIL})")

    db.session.commit()
    click.echo("DONE Initialized. Change the super_admin password in production!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """Drop every table and create the schema again. All data is lost."""
    if not yes:
        click.confirm("WARN Every table will be dropped. Continue?", abort=True)

    click.echo("DROP  Dropping tables...")
    db.drop_all()
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete. Run 'flask system init' to bootstrap.")


@click.group('stores')
def stores_group():
    """Store management commands."""


@stores_group.command('create')
@click.option('--name', required=True, help='Store name')
@click.option('--code', required=True, help='Short store code (SKU and invoice prefix)')
@click.option('--address', default=None)
@click.option('--phone', default=None)
@with_appcontext
def create_store_cli(name, code, address, phone):
    code = normalize_store_code(code)
    if db.session.query(Store).filter_by(code=code).first():
        raise click.ClickException(f"Store with code '{code}' already exists")

    store = Store(name=name, code=code, address=address, phone=phone)
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store: {store.name} (ID: {store.id}, Code: {store.code})")


@click.group('users')
def users_group():
    """Inspect and create users."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.username).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'Username':<20} {'Email':<32} {'Role':<16} {'Level':<6} {'Store'}")
    click.echo("=" * 90)
    for user in users:
        role = user.role.name if user.role else "-"
        store = user.store.code if user.store and user.store.code else "-"
        click.echo(f"{user.username:<20} {user.email:<32} {role:<16} {user.level:<6} {store}")
    click.echo("=" * 90 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--name', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', 'role_name', default=None, help='Role name')
@click.option('--store-code', default=None, help='Home store code')
@with_appcontext
def create_user_cli(username, email, name, password, role_name, store_code):
    if db.session.query(User).filter((User.username == username) | (User.email == email.lower())).first():
        raise click.ClickException(f"User '{username}' or email '{email}' already exists")

    role = None
    if role_name:
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            raise click.ClickException(f"Role '{role_name}' not found")

    store = None
    if store_code:
        store = db.session.query(Store).filter_by(code=normalize_store_code(store_code)).first()
        if not store:
            raise click.ClickException(f"Store '{store_code}' not found")

    try:
        password_hash = hash_password(password)
    except BackofficeError as e:
        raise click.ClickException(str(e))

    user = User(
        username=username,
        email=email.lower(),
        name=name,
        password_hash=password_hash,
        role_id=role.id if role else None,
        store_id=store.id if store else None,
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {user.username} (ID: {user.id})")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('available')
@click.option('--sku', required=True, help='Product SKU')
@with_appcontext
def available_cli(sku):
    product = db.session.query(Product).filter_by(sku=sku).first()
    if not product:
        raise click.ClickException(f"Product '{sku}' not found")

    available = inventory_service.get_available_quantity(product.id)
    lots = inventory_service.list_allocatable(product.id)
    click.echo(f"{product.name} ({product.sku}): {inventory_service.format_quantity(available)} available")
    for lot in lots:
        expiry = lot.expiry_date.date().isoformat() if lot.expiry_date else "-"
        click.echo(f"  lot {lot.id}  qty={inventory_service.format_quantity(lot.quantity):<8} expiry={expiry:<10} {lot.location or ''}")


def register_commands(app):
    """Attach the command groups to app.cli."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
