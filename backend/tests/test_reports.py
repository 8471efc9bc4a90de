"""
Admin dashboard and report tests.
"""

import pytest

from uniform_palace.services import order_service, reporting_service
from uniform_palace.services.reporting_service import ReportError


@pytest.fixture
def delivered_order(customer, staff_user, shirt):
    order = order_service.create_order(
        customer_id=customer.id,
        items=[{"product_id": shirt.id, "quantity": 20}],
        actor_id=staff_user.id,
    )
    order_service.update_status(order, new_status="delivered", actor_id=staff_user.id)
    return order


class TestSalesReport:

    def test_only_delivered_orders_count(self, delivered_order, customer, staff_user, shirt):
        order_service.create_order(
            customer_id=customer.id, items=[{"product_id": shirt.id, "quantity": 1}], actor_id=staff_user.id,
        )

        report = reporting_service.sales_report()
        assert report["summary"]["total_orders"] == 1
        assert report["summary"]["total_revenue_cents"] == 20 * 42000
        assert len(report["sales_data"]) == 1
        assert report["sales_data"][0]["period"] == delivered_order.order_date.strftime("%Y-%m")

    def test_group_by_customer(self, delivered_order, customer):
        report = reporting_service.sales_report(group_by="customer")
        [row] = report["sales_data"]
        assert row["customer_id"] == customer.id
        assert row["customer_name"] == customer.name
        assert row["average_order_value_cents"] == delivered_order.total_amount_cents

    def test_range_excludes_older_orders(self, delivered_order):
        report = reporting_service.sales_report(start="2099-01-01T00:00:00Z")
        assert report["sales_data"] == []
        assert report["summary"]["total_orders"] == 0
        assert report["summary"]["max_order_value_cents"] is None

    @pytest.mark.parametrize("kwargs", [{"group_by": "week"}, {"start": "yesterday"}])
    def test_bad_parameters(self, db_session, kwargs):
        with pytest.raises(ReportError):
            reporting_service.sales_report(**kwargs)


class TestCustomerAndProductReports:

    def test_customer_report(self, delivered_order, customer):
        report = reporting_service.customer_report()
        assert [c["id"] for c in report["customers"]] == [customer.id]
        assert report["customers"][0]["total_orders"] == 1
        assert report["summary"]["total_revenue_cents"] == delivered_order.total_amount_cents
        assert sum(report["by_status"].values()) == 1

    def test_customer_report_unknown_sort(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.customer_report(sort_by="password_hash")

    def test_product_report_sorted_by_sales(self, delivered_order, shirt, apron):
        report = reporting_service.product_report()
        assert [p["code"] for p in report["products"]] == [shirt.code, apron.code]
        assert report["products"][0]["total_sold"] == 20
        assert report["summary"]["total_products"] == 2
        assert report["summary"]["low_stock_products"] == 0
        assert report["by_category"]["educational"] == 1
        assert report["by_category"]["hospitality"] == 1


class TestDashboard:

    def test_dashboard_counts(self, delivered_order, customer):
        data = reporting_service.admin_dashboard()
        assert data["overview"]["orders"] == 1
        assert data["overview"]["customers"] == 1
        assert data["revenue"]["customer_revenue_cents"] == delivered_order.total_amount_cents
        assert [o["order_number"] for o in data["activity"]["recent_orders"]] == [delivered_order.order_number]
        assert data["pending"]["pending_orders"] == 0


class TestReportEndpoints:

    @pytest.mark.parametrize(
        "path",
        ["/api/admin/dashboard", "/api/admin/reports/sales", "/api/admin/reports/customers",
         "/api/admin/reports/products", "/api/admin/system/health"],
    )
    def test_staff_with_reports_flag(self, client, staff_headers, path):
        resp = client.get(path, headers=staff_headers)
        assert resp.status_code == 200

    def test_restricted_staff_denied(self, client, restricted_headers):
        resp = client.get("/api/admin/reports/sales", headers=restricted_headers)
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "reports"

    def test_bad_group_by(self, client, staff_headers):
        resp = client.get("/api/admin/reports/sales?group_by=week", headers=staff_headers)
        assert resp.status_code == 400

    def test_health_reports_counts(self, client, admin_headers, shirt):
        resp = client.get("/api/admin/system/health", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "ok"
        assert data["database"]["records"]["products"] == 1
        assert data["system"]["environment"] == "testing"
        assert "overdue_orders" in data["pending_tasks"]
