"""
Customer API tests.
"""

import pytest

from uniform_palace.models import Customer
from uniform_palace.services import customer_service, order_service
from uniform_palace.validation import ConflictError


class TestCreate:

    def test_create_normalizes_email_and_assigns_creator(self, client, staff_user, staff_headers):
        resp = client.post(
            "/api/customers",
            json={
                "name": "Hotel Sea Breeze",
                "email": "  HR@SeaBreeze.test ",
                "business_type": "hotel",
                "address": {"city": "Goa", "state": "Goa"},
            },
            headers=staff_headers,
        )
        assert resp.status_code == 201
        customer = resp.get_json()["customer"]
        assert customer["email"] == "hr@seabreeze.test"
        assert customer["status"] == "prospect"
        assert customer["address"]["city"] == "Goa"
        assert customer["assigned_to_user_id"] == staff_user.id

    def test_duplicate_email(self, client, staff_headers, customer):
        resp = client.post(
            "/api/customers",
            json={"name": "Copy", "email": customer.email.upper()},
            headers=staff_headers,
        )
        assert resp.status_code == 409

    def test_duplicate_email_past_precheck_is_conflict(self, client, staff_headers, customer, db_session, monkeypatch):
        # A concurrent insert lands between the lookup and the commit
        monkeypatch.setattr(customer_service, "_ensure_email_free", lambda *a, **k: None)

        resp = client.post(
            "/api/customers",
            json={"name": "Copy", "email": customer.email.upper()},
            headers=staff_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Customer with this email already exists"
        assert db_session.query(Customer).count() == 1

        # Session is usable again after the rollback
        ok = client.post(
            "/api/customers",
            json={"name": "Fresh", "email": "fresh@school.test"},
            headers=staff_headers,
        )
        assert ok.status_code == 201

    def test_update_email_past_precheck_is_conflict(self, staff_user, customer, db_session, monkeypatch):
        other = customer_service.create_customer(
            patch={"name": "Other", "email": "other@school.test"}, actor_id=staff_user.id,
        )
        monkeypatch.setattr(customer_service, "_ensure_email_free", lambda *a, **k: None)

        with pytest.raises(ConflictError, match="already exists"):
            customer_service.update_customer(other, patch={"email": customer.email})
        assert db_session.get(Customer, other.id).email == "other@school.test"

    @pytest.mark.parametrize(
        "payload",
        [
            {"email": "a@b.test"},
            {"name": "No Email"},
            {"name": "X", "email": "x@y.test", "status": "vip"},
            {"name": "X", "email": "x@y.test", "credit_limit_cents": -1},
        ],
    )
    def test_invalid_payloads(self, client, staff_headers, db_session, payload):
        assert client.post("/api/customers", json=payload, headers=staff_headers).status_code == 400

    def test_list_search(self, client, staff_headers, customer):
        resp = client.get("/api/customers?search=mary", headers=staff_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert [c["id"] for c in body["items"]] == [customer.id]
        assert body["pagination"]["total"] == 1


class TestActivity:

    def test_note_and_communication(self, client, staff_headers, customer):
        resp = client.post(
            f"/api/customers/{customer.id}/notes",
            json={"content": "Prefers morning calls"},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert [n["content"] for n in resp.get_json()["customer"]["notes"]] == ["Prefers morning calls"]

        resp = client.post(
            f"/api/customers/{customer.id}/communications",
            json={"type": "meeting", "direction": "outbound", "content": "Fabric samples shown"},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        detail = resp.get_json()["customer"]
        assert detail["communications"][0]["type"] == "meeting"
        assert detail["last_contact_at"] is not None

    def test_assign_to_unknown_user(self, client, staff_headers, customer):
        resp = client.post(
            f"/api/customers/{customer.id}/assign",
            json={"assigned_to_user_id": 999999},
            headers=staff_headers,
        )
        assert resp.status_code == 400

    def test_follow_up_requires_datetime(self, client, staff_headers, customer):
        path = f"/api/customers/{customer.id}/follow-up"
        assert client.post(path, json={"next_follow_up_at": "soon"}, headers=staff_headers).status_code == 400

        resp = client.post(path, json={"next_follow_up_at": "2030-02-01T09:30:00Z"}, headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["customer"]["next_follow_up_at"] == "2030-02-01T09:30:00Z"


class TestQueries:

    def test_never_contacted_prospect_needs_follow_up(self, customer):
        assert [c.id for c in customer_service.find_needing_follow_up()] == [customer.id]

    def test_high_value(self, client, staff_headers, customer):
        customer_service.record_completed_order(customer, amount_cents=customer_service.HIGH_VALUE_THRESHOLD_CENTS)
        resp = client.get("/api/customers/high-value", headers=staff_headers)
        assert [c["id"] for c in resp.get_json()["items"]] == [customer.id]

    def test_counters_never_go_negative(self, customer):
        with pytest.raises(ValueError):
            customer_service.record_completed_order(customer, amount_cents=-1)

    def test_stats(self, customer):
        stats = customer_service.customer_stats()
        assert stats["total_customers"] == 1
        assert stats["by_status"]["prospect"] == 1
        assert stats["by_business_type"]["school"] == 1


class TestDelete:

    def test_delete_customer(self, client, staff_headers, customer, db_session):
        resp = client.delete(f"/api/customers/{customer.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert db_session.query(Customer).count() == 0

    def test_customer_with_orders_cannot_be_deleted(self, customer, staff_user, shirt):
        order_service.create_order(
            customer_id=customer.id, items=[{"product_id": shirt.id, "quantity": 1}], actor_id=staff_user.id,
        )
        with pytest.raises(ConflictError, match="1 existing orders"):
            customer_service.delete_customer(customer)
