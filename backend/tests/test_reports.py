# Overview: Pytest coverage for the dashboard and reports.

from datetime import timedelta

import pytest

from pdv.errors import ValidationError
from pdv.services import reporting_service, sales_service
from pdv.time_utils import utcnow


def _sell(employee, product, quantity, method="CASH"):
    return sales_service.create_sale(
        employee=employee,
        items=[{"product_id": product.id, "quantity": quantity}],
        payment_method=method,
    )


class TestDashboard:

    def test_today_figures(self, client, seller_headers, seller, manager, make_product):
        coffee = make_product(price_cents=1000, stock_quantity=10, min_stock=2)
        tea = make_product(price_cents=500, stock_quantity=3, min_stock=5)
        _sell(seller, coffee, 2, "CASH")
        _sell(seller, tea, 1, "PIX")
        cancelled = _sell(seller, coffee, 1, "CASH")
        sales_service.cancel_sale(sale_id=cancelled.id, employee=manager)

        body = client.get("/api/reports/dashboard", headers=seller_headers).get_json()

        today = body["today"]
        assert today["sale_count"] == 2
        assert today["revenue_cents"] == 2500
        assert today["average_ticket_cents"] == 1250
        assert today["by_payment_method"]["PIX"] == {"count": 1, "total_cents": 500}

        assert body["low_stock"]["count"] == 1
        assert body["low_stock"]["products"][0]["id"] == tea.id
        assert body["totals"]["active_products"] == 2
        assert len(body["last_7_days"]) == 7
        assert body["last_7_days"][-1]["total_cents"] == 2500
        assert body["top_products_today"][0]["product_id"] == coffee.id
        assert body["top_products_today"][0]["quantity"] == 2
        assert len(body["recent_sales"]) == 2

    def test_empty(self, client, seller_headers):
        body = client.get("/api/reports/dashboard", headers=seller_headers).get_json()
        assert body["today"]["sale_count"] == 0
        assert body["today"]["average_ticket_cents"] == 0
        assert body["top_products_today"] == []


class TestSalesReport:

    def test_group_by_day(self, client, seller_headers, seller, make_product):
        product = make_product(price_cents=1000)
        _sell(seller, product, 1)
        _sell(seller, product, 2)
        today = utcnow().date().isoformat()

        body = client.get(f"/api/reports/sales?start={today}&end={today}", headers=seller_headers).get_json()
        assert body["sale_count"] == 2
        assert body["total_cents"] == 3000
        assert body["rows"] == [{"date": today, "count": 2, "total_cents": 3000}]

    def test_group_by_category(self, seller, make_product):
        food = make_product(category="Food", price_cents=1000)
        drink = make_product(category="Drinks", price_cents=300)
        _sell(seller, food, 1)
        _sell(seller, drink, 5)
        today = utcnow().date()

        report = reporting_service.sales_report(start=today, end=today, group_by="category")
        assert report["rows"] == [
            {"category": "Drinks", "quantity": 5, "total_cents": 1500},
            {"category": "Food", "quantity": 1, "total_cents": 1000},
        ]

    def test_group_by_product(self, seller, make_product):
        product = make_product(price_cents=250)
        _sell(seller, product, 4)
        today = utcnow().date()

        rows = reporting_service.sales_report(start=today, end=today, group_by="product")["rows"]
        assert rows[0]["product_id"] == product.id
        assert rows[0]["quantity"] == 4
        assert rows[0]["total_cents"] == 1000

    def test_dates_required(self, client, seller_headers):
        assert client.get("/api/reports/sales?start=2024-01-01", headers=seller_headers).status_code == 400

    def test_end_before_start(self):
        today = utcnow().date()
        with pytest.raises(ValidationError):
            reporting_service.sales_report(start=today, end=today - timedelta(days=1))

    def test_unknown_grouping(self):
        today = utcnow().date()
        with pytest.raises(ValidationError):
            reporting_service.sales_report(start=today, end=today, group_by="hour")


class TestStockReport:

    def test_statuses_and_value(self, client, seller_headers, make_product):
        make_product(stock_quantity=0, min_stock=2, cost_cents=100)
        make_product(stock_quantity=2, min_stock=2, cost_cents=100)
        make_product(stock_quantity=10, min_stock=2, cost_cents=300)

        body = client.get("/api/reports/stock", headers=seller_headers).get_json()
        assert body["product_count"] == 3
        assert body["out_of_stock_count"] == 1
        assert body["low_stock_count"] == 2
        assert body["total_value_cents"] == 3200
        assert [p["status"] for p in body["products"]] == ["OUT", "LOW", "OK"]


class TestOrderSuggestion:

    def test_fast_mover_is_high_priority(self, client, manager_headers, seller, make_product):
        fast = make_product(stock_quantity=6, min_stock=2)
        slow = make_product(stock_quantity=20, min_stock=2)
        _sell(seller, fast, 5)
        _sell(seller, slow, 1)

        body = client.get("/api/reports/order-suggestion?days=10", headers=manager_headers).get_json()
        assert body["days"] == 10
        assert [p["id"] for p in body["products"]] == [fast.id]

        suggestion = body["products"][0]
        assert suggestion["daily_sales"] == 0.5
        assert suggestion["days_to_zero"] == 2.0
        assert suggestion["suggested_quantity"] == 16
        assert suggestion["priority"] == "HIGH"

    def test_days_bounds(self, client, manager_headers):
        assert client.get("/api/reports/order-suggestion?days=0", headers=manager_headers).status_code == 400
        assert client.get("/api/reports/order-suggestion?days=400", headers=manager_headers).status_code == 400

    def test_seller_denied(self, client, seller_headers):
        assert client.get("/api/reports/order-suggestion", headers=seller_headers).status_code == 403


class TestAbcCurve:

    def test_classes(self, client, manager_headers, seller, make_product):
        star = make_product(price_cents=8000)
        middle = make_product(price_cents=1500)
        tail = make_product(price_cents=500)
        _sell(seller, star, 1)
        _sell(seller, middle, 1)
        _sell(seller, tail, 1)

        body = client.get("/api/reports/abc-curve", headers=manager_headers).get_json()
        assert body["total_revenue_cents"] == 10000
        assert [(p["id"], p["class"]) for p in body["products"]] == [
            (star.id, "A"), (middle.id, "B"), (tail.id, "C"),
        ]
        assert body["products"][1]["cumulative_pct"] == 95.0
        assert body["summary"]["A"]["revenue_cents"] == 8000
        assert body["summary"]["C"]["product_count"] == 1

    def test_no_sales(self, app):
        report = reporting_service.abc_curve()
        assert report["products"] == []
        assert report["summary"]["A"]["product_count"] == 0
