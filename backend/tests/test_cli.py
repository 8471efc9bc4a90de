"""
Flask CLI command tests.
"""

from uniform_palace.models import Customer, Inquiry, Product, User
from uniform_palace.services import customer_service
from conftest import PASSWORD


def test_seed_demo_is_idempotent_for_customers_and_products(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "seed-demo"])
    assert result.exit_code == 0, result.output
    assert "PASS Created product: SCH-SHIRT-01" in result.output
    assert db_session.query(Customer).count() == 2
    assert db_session.query(Product).count() == 2

    again = runner.invoke(args=["system", "seed-demo"])
    assert again.exit_code == 0, again.output
    assert "already exists, skipping" in again.output
    assert db_session.query(Customer).count() == 2
    assert db_session.query(Inquiry).count() == 2


def test_users_create_and_deactivate(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create", "--username", "jane", "--email", "jane@uniformpalace.test",
        "--full-name", "Jane", "--password", PASSWORD, "--role", "staff",
    ])
    assert result.exit_code == 0, result.output
    assert db_session.query(User).filter_by(username="jane").one().is_active is True

    result = runner.invoke(args=["users", "deactivate", "jane"])
    assert "PASS Deactivated jane" in result.output
    assert db_session.query(User).filter_by(username="jane").one().is_active is False


def test_repair_conversions_dry_run_then_apply(app, db_session, staff_user, inquiry_form):
    from uniform_palace.services import inquiry_service

    inquiry = inquiry_service.submit_inquiry(patch=dict(inquiry_form))
    customer = customer_service.create_customer(
        patch={"name": "Imported", "email": "imported@greenvalley.test"}, actor_id=staff_user.id,
    )
    customer.source_inquiry_id = inquiry.id
    db_session.commit()

    runner = app.test_cli_runner()
    dry = runner.invoke(args=["inquiries", "repair-conversions", "--dry-run"])
    assert f"WARN  {inquiry.inquiry_number}" in dry.output
    assert inquiry.status == "new"

    result = runner.invoke(args=["inquiries", "repair-conversions"])
    assert "DONE 1 conversion(s) repaired" in result.output
    assert inquiry.status == "converted"


def test_purge_sessions_keeps_live_tokens(app, db_session, staff_user):
    from datetime import timedelta

    from uniform_palace.models import SessionToken
    from uniform_palace.services import session_service
    from uniform_palace.time_utils import utcnow

    old, _ = session_service.create_session(staff_user.id)
    live, token = session_service.create_session(staff_user.id)
    old.created_at = utcnow() - timedelta(days=40)
    old.expires_at = utcnow() - timedelta(days=39)
    live.created_at = utcnow() - timedelta(days=40)
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["system", "purge-sessions"])
    assert "PASS Purged 1 stale session(s)" in result.output
    assert db_session.query(SessionToken).count() == 1
    assert session_service.validate_session(token).user.id == staff_user.id
