"""
Catalog tests: pricing, stock and images.
"""

import pytest

from uniform_palace.services import product_service
from uniform_palace.validation import ConflictError, NotFoundError, ValidationError


# =============================================================================
# PRICING
# =============================================================================


class TestBulkPricing:

    @pytest.mark.parametrize(
        "quantity,unit",
        [
            (1, 45000),    # below minimum order: effective price
            (9, 45000),
            (10, 42000),   # first tier
            (49, 42000),
            (50, 39000),   # open-ended tier
            (1000, 39000),
        ],
    )
    def test_unit_price(self, shirt, quantity, unit):
        assert product_service.unit_price_cents_for(shirt, quantity) == unit
        assert product_service.bulk_price_cents(shirt, quantity) == unit * quantity

    def test_special_price_is_effective(self, apron, staff_user):
        product_service.update_product(apron, patch={"special_price_cents": 55000}, actor_id=staff_user.id)
        assert apron.effective_price_cents == 55000
        assert product_service.unit_price_cents_for(apron, 1) == 55000

    def test_quote(self, shirt):
        quote = product_service.price_quote(shirt, 5)
        assert quote["below_minimum_order"] is True
        assert quote["total_price_cents"] == 5 * 45000

    def test_overlapping_tiers_rejected(self, apron, staff_user):
        with pytest.raises(ValidationError, match="overlap"):
            product_service.update_product(
                apron,
                patch={},
                price_tiers=[
                    {"min_quantity": 10, "max_quantity": 50, "price_per_unit_cents": 100},
                    {"min_quantity": 40, "max_quantity": None, "price_per_unit_cents": 90},
                ],
                actor_id=staff_user.id,
            )

    def test_price_endpoint(self, client, staff_headers, shirt):
        resp = client.get(f"/api/products/{shirt.id}/price?quantity=60", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["quote"]["unit_price_cents"] == 39000


# =============================================================================
# STOCK
# =============================================================================


class TestStock:

    @pytest.mark.parametrize(
        "stock,expected",
        [(0, "out-of-stock"), (1, "low-stock"), (10, "low-stock"), (11, "in-stock")],
    )
    def test_stock_status(self, shirt, staff_user, stock, expected):
        product_service.update_product(shirt, patch={"stock_quantity": stock}, actor_id=staff_user.id)
        assert shirt.stock_status == expected

    def test_decrease_floors_at_zero(self, apron):
        product_service.update_stock(apron, quantity=50, operation="decrease")
        assert apron.stock_quantity == 0

    def test_increase(self, apron):
        product_service.update_stock(apron, quantity=7, operation="increase")
        assert apron.stock_quantity == 12

    def test_low_stock_alert(self, apron, mail_outbox):
        product_service.update_stock(apron, quantity=3, operation="decrease")
        assert apron.stock_quantity == 2
        assert [m["Subject"] for m in mail_outbox] == ["Low Stock Alert - Chef Apron"]

    def test_no_alert_when_out_of_stock(self, apron, mail_outbox):
        product_service.update_stock(apron, quantity=5, operation="decrease")
        assert mail_outbox == []

    def test_stock_endpoint_validation(self, client, staff_headers, apron):
        path = f"/api/products/{apron.id}/stock"
        assert client.put(path, json={"quantity": 0, "operation": "increase"}, headers=staff_headers).status_code == 400
        assert client.put(path, json={"quantity": 1, "operation": "set"}, headers=staff_headers).status_code == 400

        resp = client.put(path, json={"quantity": 2, "operation": "increase"}, headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["product"]["stock_quantity"] == 7

    def test_low_and_out_of_stock_queries(self, shirt, apron, staff_user):
        product_service.update_stock(apron, quantity=4, operation="decrease")
        product_service.update_stock(shirt, quantity=100, operation="decrease")

        assert [p.id for p in product_service.find_low_stock()] == [apron.id]
        assert [p.id for p in product_service.find_out_of_stock()] == [shirt.id]

        stats = product_service.product_stats()
        assert stats["total_products"] == 2
        assert stats["low_stock"] == 1
        assert stats["out_of_stock"] == 1
        assert stats["inventory_value_cents"] == 1 * 60000

    def test_stock_status_filter(self, client, staff_headers, shirt, apron):
        product_service.update_stock(apron, quantity=5, operation="decrease")

        resp = client.get("/api/products?stock_status=out-of-stock", headers=staff_headers)
        assert resp.status_code == 200
        assert [p["code"] for p in resp.get_json()["items"]] == ["HTL-APRON-01"]


# =============================================================================
# CREATE / DELETE
# =============================================================================


class TestCatalog:

    def test_create_via_api_uppercases_code(self, client, staff_headers):
        resp = client.post(
            "/api/products",
            json={
                "code": "crp-blazer",
                "name": "Corporate Blazer",
                "category": "corporate",
                "uniform_type": "corporate",
                "base_price_cents": 250000,
                "supplier": {"name": "Weavers Ltd", "lead_time_days": 14},
                "price_tiers": [{"min_quantity": 20, "max_quantity": None, "price_per_unit_cents": 230000}],
            },
            headers=staff_headers,
        )
        assert resp.status_code == 201
        product = resp.get_json()["product"]
        assert product["code"] == "CRP-BLAZER"
        assert product["supplier"]["name"] == "Weavers Ltd"
        assert len(product["price_tiers"]) == 1

    def test_duplicate_code(self, client, staff_headers, shirt):
        resp = client.post(
            "/api/products",
            json={
                "code": shirt.code,
                "name": "Copy",
                "category": "educational",
                "uniform_type": "school",
                "base_price_cents": 100,
            },
            headers=staff_headers,
        )
        assert resp.status_code == 409

    def test_invalid_category(self, client, staff_headers):
        resp = client.post(
            "/api/products",
            json={"code": "X-001", "name": "X", "category": "space", "uniform_type": "other", "base_price_cents": 1},
            headers=staff_headers,
        )
        assert resp.status_code == 400

    def test_referenced_product_cannot_be_deleted(self, customer, staff_user, shirt):
        from uniform_palace.services import order_service

        order_service.create_order(
            customer_id=customer.id, items=[{"product_id": shirt.id, "quantity": 1}], actor_id=staff_user.id,
        )
        with pytest.raises(ConflictError):
            product_service.delete_product(shirt)

    def test_duplicate_code_past_precheck_is_conflict(self, client, staff_headers, shirt, db_session, monkeypatch):
        from uniform_palace.models import Product

        monkeypatch.setattr(product_service, "_ensure_code_free", lambda *a, **k: None)
        resp = client.post(
            "/api/products",
            json={
                "code": shirt.code, "name": "Copy", "category": "educational",
                "uniform_type": "school", "base_price_cents": 100,
            },
            headers=staff_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Product with this code already exists"
        assert db_session.query(Product).count() == 1

    def test_rename_to_taken_code_past_precheck(self, shirt, apron, staff_user, monkeypatch):
        monkeypatch.setattr(product_service, "_ensure_code_free", lambda *a, **k: None)
        with pytest.raises(ConflictError, match="code already exists"):
            product_service.update_product(apron, patch={"code": shirt.code}, actor_id=staff_user.id)
        assert apron.code == "HTL-APRON-01"


# =============================================================================
# IMAGES
# =============================================================================


class TestImages:

    def test_first_image_becomes_primary(self, apron):
        first = product_service.add_image(apron, url="https://cdn.example/apron-front.jpg")
        second = product_service.add_image(apron, url="https://cdn.example/apron-back.jpg")

        assert first.is_primary is True
        assert second.is_primary is False
        assert apron.primary_image.id == first.id
        assert first.alt == apron.name

    def test_single_primary(self, apron):
        first = product_service.add_image(apron, url="https://cdn.example/a.jpg")
        second = product_service.add_image(apron, url="https://cdn.example/b.jpg", is_primary=True)

        assert [img.is_primary for img in apron.images] == [False, True]

        product_service.set_primary_image(apron, first.id)
        assert first.is_primary is True
        assert second.is_primary is False

    def test_removing_primary_promotes_next(self, apron):
        first = product_service.add_image(apron, url="https://cdn.example/a.jpg")
        second = product_service.add_image(apron, url="https://cdn.example/b.jpg")

        product_service.remove_image(apron, first.id)
        assert [img.id for img in apron.images] == [second.id]
        assert second.is_primary is True

    def test_unknown_image(self, apron):
        with pytest.raises(NotFoundError):
            product_service.set_primary_image(apron, 999999)

    def test_link_image_endpoint(self, client, staff_headers, apron):
        resp = client.post(
            f"/api/products/{apron.id}/images",
            json={"url": "https://cdn.example/apron.jpg", "alt": "Apron"},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["product"]["primary_image"]["url"] == "https://cdn.example/apron.jpg"
