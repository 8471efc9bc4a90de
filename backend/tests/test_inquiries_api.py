"""
Inquiry API tests.

Verifies:
- The public enquiry form creates a numbered inquiry without a token
- Mail failures never fail the submission
- Staff status changes, notes, communications and follow-ups
"""

import pytest

from uniform_palace.models import Inquiry, Note
from uniform_palace.services import inquiry_service, notification_service
from uniform_palace.services.notification_service import DependencyError
from uniform_palace.validation import ConflictError


# =============================================================================
# PUBLIC SUBMISSION
# =============================================================================


class TestPublicSubmit:

    def test_submit_returns_number(self, client, db_session, inquiry_form):
        resp = client.post("/api/inquiries", json=inquiry_form)

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["inquiry_number"].startswith("INQ")
        assert data["status"] == "new"
        assert db_session.query(Inquiry).filter_by(inquiry_number=data["inquiry_number"]).count() == 1

    def test_submit_sends_alert_and_confirmation(self, client, mail_outbox, inquiry_form):
        resp = client.post("/api/inquiries", json=inquiry_form)
        assert resp.status_code == 201

        recipients = sorted(m["To"] for m in mail_outbox)
        assert recipients == ["admin@greenvalley.test", "office@uniformpalace.test"]
        number = resp.get_json()["inquiry_number"]
        assert any(number in m.get_body(("html",)).get_content() for m in mail_outbox)

    def test_nested_address_flattened(self, client, db_session, inquiry_form):
        payload = dict(inquiry_form, address={"city": "Pune", "state": "Maharashtra"})
        resp = client.post("/api/inquiries", json=payload)
        assert resp.status_code == 201

        inquiry = db_session.query(Inquiry).one()
        assert inquiry.city == "Pune"
        assert inquiry.state == "Maharashtra"

    @pytest.mark.parametrize("missing", ["customer_name", "email", "phone", "quantity", "requirements_description"])
    def test_required_fields(self, client, db_session, inquiry_form, missing):
        payload = dict(inquiry_form)
        payload.pop(missing)
        resp = client.post("/api/inquiries", json=payload)
        assert resp.status_code == 400
        assert missing in resp.get_json()["error"]

    @pytest.mark.parametrize(
        "field,value",
        [
            ("email", "not-an-email"),
            ("quantity", 0),
            ("uniform_type", "spacesuit"),
            ("status", "converted"),
        ],
    )
    def test_rejected_values(self, client, db_session, inquiry_form, field, value):
        resp = client.post("/api/inquiries", json=dict(inquiry_form, **{field: value}))
        assert resp.status_code == 400

    def test_budget_range_checked(self, client, db_session, inquiry_form):
        payload = dict(inquiry_form, budget_min_cents=500000, budget_max_cents=100000)
        assert client.post("/api/inquiries", json=payload).status_code == 400


class TestMailFailure:

    def test_render_failure_does_not_fail_submit(self, client, db_session, inquiry_form, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("template exploded")

        monkeypatch.setattr(notification_service, "build_message", broken)

        resp = client.post("/api/inquiries", json=inquiry_form)
        assert resp.status_code == 201
        assert db_session.query(Inquiry).count() == 1

    def test_smtp_failure_does_not_fail_submit(self, app, client, db_session, inquiry_form, monkeypatch):
        def refuse(settings, message):
            raise DependencyError("Mail delivery failed: connection refused")

        monkeypatch.setitem(app.config, "MAIL_SUPPRESS_SEND", False)
        monkeypatch.setitem(app.config, "MAIL_ASYNC", False)
        monkeypatch.setattr(notification_service, "_deliver", refuse)

        resp = client.post("/api/inquiries", json=inquiry_form)
        assert resp.status_code == 201

    def test_notify_disabled(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "MAIL_ENABLED", False)
        assert notification_service.notify("new_inquiry", inquiry=None) is False


# =============================================================================
# STAFF OPERATIONS
# =============================================================================


@pytest.fixture
def inquiry(db_session, inquiry_form):
    return inquiry_service.submit_inquiry(patch=dict(inquiry_form))


class TestStaffOperations:

    def test_list_and_detail(self, client, staff_headers, inquiry):
        resp = client.get("/api/inquiries?status=new", headers=staff_headers)
        assert resp.status_code == 200
        assert [i["id"] for i in resp.get_json()["items"]] == [inquiry.id]

        resp = client.get(f"/api/inquiries/{inquiry.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["inquiry"]["inquiry_number"] == inquiry.inquiry_number

    def test_status_change_with_note(self, client, staff_headers, inquiry, db_session):
        resp = client.put(
            f"/api/inquiries/{inquiry.id}/status",
            json={"status": "contacted", "notes": "Called the principal"},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["inquiry"]["status"] == "contacted"

        note = db_session.query(Note).filter_by(entity_type="inquiry", entity_id=inquiry.id).one()
        assert note.is_internal is True
        assert "Called the principal" in note.content

    def test_update_records_change_summary(self, staff_user, inquiry, db_session):
        inquiry_service.update_inquiry(
            inquiry, patch={"priority": "high", "category": "hot-lead"}, actor_id=staff_user.id,
        )

        note = db_session.query(Note).filter_by(entity_type="inquiry", entity_id=inquiry.id).one()
        assert note.content == "Inquiry updated: priority: high, category: hot-lead"
        assert [i.id for i in inquiry_service.find_high_priority()] == [inquiry.id]

    def test_converted_status_is_sticky(self, staff_user, inquiry):
        inquiry_service.update_status(inquiry, new_status="converted", actor_id=staff_user.id)
        assert inquiry.conversion_date is not None

        with pytest.raises(ConflictError):
            inquiry_service.update_status(inquiry, new_status="new", actor_id=staff_user.id)

    def test_converted_inquiry_cannot_be_deleted(self, client, staff_user, staff_headers, inquiry):
        inquiry_service.update_status(inquiry, new_status="converted", actor_id=staff_user.id)

        resp = client.delete(f"/api/inquiries/{inquiry.id}", headers=staff_headers)
        assert resp.status_code == 409

    def test_first_outbound_communication_stamps_response(self, client, staff_headers, inquiry):
        inbound = {"type": "email", "direction": "inbound", "content": "Any update?"}
        resp = client.post(f"/api/inquiries/{inquiry.id}/communications", json=inbound, headers=staff_headers)
        assert resp.status_code == 200
        assert inquiry.first_response_at is None
        assert inquiry.last_contact_at is not None

        outbound = {"type": "phone", "direction": "outbound", "content": "Sent the catalogue"}
        client.post(f"/api/inquiries/{inquiry.id}/communications", json=outbound, headers=staff_headers)
        assert inquiry.first_response_at is not None

    def test_communication_requires_type(self, client, staff_headers, inquiry):
        resp = client.post(
            f"/api/inquiries/{inquiry.id}/communications",
            json={"direction": "outbound", "content": "Hi"},
            headers=staff_headers,
        )
        assert resp.status_code == 400

    def test_blank_note_rejected(self, client, staff_headers, inquiry):
        resp = client.post(f"/api/inquiries/{inquiry.id}/notes", json={"content": "  "}, headers=staff_headers)
        assert resp.status_code == 400

    def test_follow_up_queue(self, staff_user, inquiry):
        # Never contacted: due now
        assert [i.id for i in inquiry_service.find_needing_follow_up()] == [inquiry.id]

        stats = inquiry_service.inquiry_stats()
        assert stats["total_inquiries"] == 1
        assert stats["new_inquiries"] == 1
        assert stats["needing_follow_up"] == 1
        assert stats["by_business_type"]["college"] == 1

    def test_schedule_follow_up_sends_reminder(self, client, staff_user, staff_headers, inquiry, mail_outbox):
        inquiry_service.assign_to(inquiry, user_id=staff_user.id, actor_id=staff_user.id)
        mail_outbox.clear()

        resp = client.post(
            f"/api/inquiries/{inquiry.id}/follow-up",
            json={"next_follow_up_at": "2030-01-15T10:00:00Z", "notes": "Send revised quote"},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["inquiry"]["follow_up_notes"] == "Send revised quote"
        assert [m["To"] for m in mail_outbox] == [staff_user.email]
