"""
Inquiry to customer conversion tests.

Verifies:
- A new customer is seeded from the inquiry and linked both ways
- An existing customer with the same e-mail is merged without overwriting
- A converted inquiry cannot be converted again
- Incomplete conversions are detected and repaired
"""

import pytest

from uniform_palace.models import Communication, Customer, Note
from uniform_palace.services import conversion_service, customer_service, inquiry_service
from uniform_palace.validation import ConflictError, NotFoundError, ValidationError
from conftest import auth_headers, get_auth_token


@pytest.fixture
def inquiry(db_session, inquiry_form):
    return inquiry_service.submit_inquiry(patch=dict(inquiry_form, city="Pune", employee_count=120))


class TestNewCustomer:

    def test_creates_customer_from_inquiry(self, inquiry, staff_user, db_session):
        result = conversion_service.convert_inquiry_to_customer(inquiry.id, actor_id=staff_user.id)

        customer = result.customer
        assert result.is_new_customer is True
        assert customer.name == "Green Valley College"
        assert customer.email == "admin@greenvalley.test"
        assert customer.city == "Pune"
        assert customer.employee_count == 120
        assert customer.status == "prospect"
        assert customer.source_inquiry_id == inquiry.id
        assert "converted-from-college" in customer.tags
        assert customer.assigned_to_user_id == staff_user.id

        assert inquiry.status == "converted"
        assert inquiry.converted_customer_id == customer.id
        assert inquiry.conversion_date is not None
        assert inquiry.resolved_at is not None

    def test_records_note_and_communication(self, inquiry, staff_user, db_session):
        result = conversion_service.convert_inquiry_to_customer(
            inquiry.id, actor_id=staff_user.id, additional_notes="Wants samples first",
        )

        note = db_session.query(Note).filter_by(entity_type="customer", entity_id=result.customer.id).one()
        assert inquiry.inquiry_number in note.content
        assert "Wants samples first" in note.content

        comm = db_session.query(Communication).filter_by(entity_type="inquiry", entity_id=inquiry.id).one()
        assert comm.subject == "Converted to Customer"
        assert inquiry.last_contact_at == comm.created_at

    def test_status_and_assignee_options(self, inquiry, staff_user, admin_user):
        result = conversion_service.convert_inquiry_to_customer(
            inquiry.id, actor_id=staff_user.id, assign_to=admin_user.id, customer_status="active",
        )
        assert result.customer.status == "active"
        assert result.customer.assigned_to_user_id == admin_user.id

    def test_bad_status_rejected(self, inquiry, staff_user, db_session):
        with pytest.raises(ValidationError):
            conversion_service.convert_inquiry_to_customer(inquiry.id, actor_id=staff_user.id, customer_status="vip")
        assert db_session.query(Customer).count() == 0

    def test_unknown_assignee_rejected(self, inquiry, staff_user):
        with pytest.raises(ValidationError):
            conversion_service.convert_inquiry_to_customer(inquiry.id, actor_id=staff_user.id, assign_to=999999)

    def test_missing_inquiry(self, staff_user):
        with pytest.raises(NotFoundError):
            conversion_service.convert_inquiry_to_customer(999999, actor_id=staff_user.id)


class TestMerge:

    def test_merges_into_existing_customer(self, inquiry, staff_user, db_session):
        existing = customer_service.create_customer(
            patch={"name": "GVC Admin Office", "email": "admin@greenvalley.test", "city": "Nashik"},
            actor_id=staff_user.id,
        )

        result = conversion_service.convert_inquiry_to_customer(inquiry.id, actor_id=staff_user.id)

        assert result.is_new_customer is False
        assert result.customer.id == existing.id
        assert db_session.query(Customer).count() == 1
        # Filled fields are never overwritten, empty ones are completed
        assert existing.name == "GVC Admin Office"
        assert existing.city == "Nashik"
        assert existing.company == "Green Valley College"
        assert existing.phone == "+91 98200 00003"
        assert existing.source_inquiry_id == inquiry.id
        assert inquiry.converted_customer_id == existing.id


class TestAlreadyConverted:

    def test_second_conversion_conflicts(self, inquiry, staff_user, db_session):
        conversion_service.convert_inquiry_to_customer(inquiry.id, actor_id=staff_user.id)

        with pytest.raises(ConflictError):
            conversion_service.convert_inquiry_to_customer(inquiry.id, actor_id=staff_user.id)
        assert db_session.query(Customer).count() == 1

    def test_api_status_codes(self, client, inquiry, staff_user, db_session):
        headers = auth_headers(get_auth_token(client, staff_user.username))
        path = f"/api/inquiries/{inquiry.id}/convert-to-customer"

        first = client.post(path, json={"customer_status": "lead"}, headers=headers)
        assert first.status_code == 201
        body = first.get_json()
        assert body["is_new_customer"] is True
        assert body["customer"]["status"] == "lead"
        assert body["inquiry"]["inquiry_number"] == inquiry.inquiry_number

        second = client.post(path, json={}, headers=headers)
        assert second.status_code == 409

    def test_api_merge_answers_200(self, client, inquiry, staff_user):
        customer_service.create_customer(
            patch={"name": "GVC", "email": "admin@greenvalley.test"}, actor_id=staff_user.id,
        )
        headers = auth_headers(get_auth_token(client, staff_user.username))

        resp = client.post(f"/api/inquiries/{inquiry.id}/convert-to-customer", json={}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["is_new_customer"] is False


class TestRepair:

    def test_detects_and_repairs_unstamped_inquiry(self, inquiry, staff_user, db_session):
        customer = customer_service.create_customer(
            patch={"name": "Imported", "email": "imported@greenvalley.test"}, actor_id=staff_user.id,
        )
        customer.source_inquiry_id = inquiry.id
        db_session.commit()

        pending = conversion_service.find_incomplete_conversions()
        assert [(c.id, i.id) for c, i in pending] == [(customer.id, inquiry.id)]

        repaired = conversion_service.repair_incomplete_conversions()
        assert repaired == [{"inquiry_number": inquiry.inquiry_number, "customer_id": customer.id}]
        assert inquiry.status == "converted"
        assert inquiry.converted_customer_id == customer.id

        assert conversion_service.find_incomplete_conversions() == []
        assert conversion_service.repair_incomplete_conversions() == []

    def test_completed_conversion_not_reported(self, inquiry, staff_user):
        conversion_service.convert_inquiry_to_customer(inquiry.id, actor_id=staff_user.id)
        assert conversion_service.find_incomplete_conversions() == []
