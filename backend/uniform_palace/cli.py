# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/uniform_palace/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="uniform_palace:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--username admin --email admin@uniformpalace.com]
#   Create all tables and the first admin account (prompts for the password).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system purge-sessions [--older-than-days 30]
#   Delete revoked or expired session tokens.
# - python -m flask system seed-demo
#   Add sample customers, products and one inquiry for local development.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username jane --email jane@uniformpalace.com --full-name "Jane" --role staff
#   Create a user (prompts if options are omitted).
# - python -m flask users deactivate jane
#   Deactivate an account and revoke its sessions.
#
# Inquiry maintenance:
# - python -m flask inquiries repair-conversions [--dry-run]
#   Stamp inquiries whose customer was created but whose conversion was never recorded.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services.auth_service import create_user, PasswordValidationError
from .services import conversion_service, customer_service, inquiry_service, product_service
from .services import session_service
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--username', default='admin', help='Admin username')
@click.option('--email', default='admin@uniformpalace.com', help='Admin email')
@click.option('--full-name', default='Administrator', help='Admin display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Admin password')
@with_appcontext
def init_system(username, email, full_name, password):
    """
    Initialize the back office: create tables and the first admin account.

    Idempotent: existing tables are kept and an existing admin is not touched.

    SECURITY: Password must meet strength requirements (8+ chars, uppercase,
    lowercase, digit, special char).
    """
    click.echo("START Initializing Uniform Palace back office...")

    db.create_all()
    click.echo("PASS Tables created")

    existing = db.session.query(User).filter(
        (User.username == username) | (User.email == email.lower())
    ).first()
    if existing:
        click.echo(f"WARN  User '{existing.username}' already exists, skipping...")
        return

    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            full_name=full_name,
            role="admin",
        )
    except (PasswordValidationError, ValidationError, ConflictError) as e:
        click.echo(f"FAIL Could not create admin: {str(e)}")
        raise SystemExit(1)

    click.echo(f"PASS Created admin: {user.username} ({user.email})")
    click.echo("\nDONE Uniform Palace initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete!")
    click.echo("   Run 'python -m flask system init' to create the admin account")


@system_group.command('purge-sessions')
@click.option('--older-than-days', default=30, show_default=True, type=click.IntRange(min=0), help='Age cutoff')
@with_appcontext
def purge_sessions(older_than_days):
    """Delete revoked or expired session tokens older than the cutoff."""
    deleted = session_service.purge_stale_sessions(older_than_days=older_than_days)
    click.echo(f"PASS Purged {deleted} stale session(s)")


DEMO_CUSTOMERS = [
    {
        "name": "St. Mary's School", "email": "office@stmarys.example", "phone": "+91 98200 00001",
        "company": "St. Mary's School", "business_type": "school", "city": "Mumbai",
        "state": "Maharashtra", "status": "active", "source": "referral",
    },
    {
        "name": "Hotel Sea Breeze", "email": "hr@seabreeze.example", "phone": "+91 98200 00002",
        "company": "Sea Breeze Hospitality", "business_type": "hotel", "city": "Goa",
        "state": "Goa", "status": "prospect", "source": "website",
    },
]

DEMO_PRODUCTS = [
    {
        "code": "SCH-SHIRT-01", "name": "School Shirt (White)", "category": "educational",
        "uniform_type": "school", "base_price_cents": 45000, "stock_quantity": 200,
        "minimum_order_quantity": 10,
    },
    {
        "code": "HTL-APRON-01", "name": "Chef Apron", "category": "hospitality",
        "uniform_type": "hotel", "base_price_cents": 60000, "stock_quantity": 8,
    },
]

DEMO_PRICE_TIERS = {
    "SCH-SHIRT-01": [
        {"min_quantity": 10, "max_quantity": 99, "price_per_unit_cents": 42000, "discount_percent": 6},
        {"min_quantity": 100, "max_quantity": None, "price_per_unit_cents": 39000, "discount_percent": 13},
    ],
}

DEMO_INQUIRY = {
    "customer_name": "Green Valley College", "email": "admin@greenvalley.example",
    "phone": "+91 98200 00003", "company": "Green Valley College", "business_type": "college",
    "uniform_type": "college", "quantity": 500,
    "requirements_description": "Blazers and trousers for the incoming batch",
    "source": "website",
}


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Add sample customers, products and an inquiry (skips records that already exist)."""
    admin = db.session.query(User).filter_by(role="admin").order_by(User.id).first()
    actor_id = admin.id if admin else None

    for data in DEMO_CUSTOMERS:
        if customer_service.find_by_email(data["email"]):
            click.echo(f"WARN  Customer '{data['email']}' already exists, skipping...")
            continue
        customer = customer_service.create_customer(patch=dict(data), actor_id=actor_id)
        click.echo(f"PASS Created customer: {customer.name}")

    for data in DEMO_PRODUCTS:
        try:
            product = product_service.create_product(
                patch=dict(data), price_tiers=DEMO_PRICE_TIERS.get(data["code"]), actor_id=actor_id,
            )
            click.echo(f"PASS Created product: {product.code}")
        except ConflictError:
            click.echo(f"WARN  Product '{data['code']}' already exists, skipping...")

    inquiry = inquiry_service.submit_inquiry(patch=dict(DEMO_INQUIRY))
    click.echo(f"PASS Created inquiry: {inquiry.inquiry_number}")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'manager', 'staff']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, full_name, password, role):
    """
    Create a new user interactively.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            full_name=full_name,
            role=role,
        )
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{role}'")
    except (PasswordValidationError, ValidationError, ConflictError) as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Role':<10} {'Active'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {user.role:<10} {active_str}")

    click.echo("="*90 + "\n")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    """Deactivate a user and revoke all of their sessions."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        raise SystemExit(1)
    if not user.is_active:
        click.echo(f"WARN  User '{username}' is already inactive")
        return

    user.is_active = False
    revoked = session_service.revoke_all_user_sessions(user.id, reason="User account deactivated", commit=False)
    db.session.commit()
    click.echo(f"PASS Deactivated {username} ({revoked} session(s) revoked)")


# =============================================================================
# INQUIRY MAINTENANCE
# =============================================================================

@click.group('inquiries')
def inquiries_group():
    """Inquiry maintenance commands."""


@inquiries_group.command('repair-conversions')
@click.option('--dry-run', is_flag=True, help='Only report, do not modify anything')
@with_appcontext
def repair_conversions(dry_run):
    """
    Find customers created from an inquiry whose conversion was never stamped
    on the inquiry, and stamp it.
    """
    if dry_run:
        pending = conversion_service.find_incomplete_conversions()
        if not pending:
            click.echo("PASS No incomplete conversions")
            return
        for customer, inquiry in pending:
            click.echo(f"WARN  {inquiry.inquiry_number} -> customer {customer.id} ({customer.email})")
        click.echo(f"\n{len(pending)} incomplete conversion(s); run without --dry-run to repair")
        return

    repaired = conversion_service.repair_incomplete_conversions()
    for item in repaired:
        click.echo(f"PASS Repaired {item['inquiry_number']} -> customer {item['customer_id']}")
    click.echo(f"DONE {len(repaired)} conversion(s) repaired")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inquiries_group)
