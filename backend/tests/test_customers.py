# Overview: Pytest coverage for customers and the loyalty points ledger.

import pytest

from conftest import reload
from pdv.errors import ConflictError, ValidationError
from pdv.services import customer_service


class TestCustomerCrud:

    def test_create_normalizes_cpf(self, client, seller_headers):
        resp = client.post(
            "/api/customers",
            json={"name": "Carla Dias", "cpf": "123.456.789-09", "email": "carla@example.com"},
            headers=seller_headers,
        )
        assert resp.status_code == 201
        customer = resp.get_json()["customer"]
        assert customer["cpf"] == "12345678909"
        assert customer["loyalty_points"] == 0
        assert customer["status"] == "ACTIVE"

    def test_duplicate_cpf(self, client, seller_headers):
        customer_service.create_customer({"name": "First", "cpf": "12345678909"})
        resp = client.post(
            "/api/customers", json={"name": "Second", "cpf": "123.456.789-09"}, headers=seller_headers
        )
        assert resp.status_code == 409
        assert resp.get_json()["details"] == {"field": "cpf"}

    def test_short_cpf(self):
        with pytest.raises(ValidationError):
            customer_service.create_customer({"name": "X", "cpf": "1234"})

    def test_bad_email(self):
        with pytest.raises(ValidationError):
            customer_service.create_customer({"name": "X", "email": "not-an-email"})

    def test_name_required(self, client, seller_headers):
        resp = client.post("/api/customers", json={"cpf": "12345678909"}, headers=seller_headers)
        assert resp.status_code == 400

    def test_find_by_cpf(self, client, seller_headers):
        customer = customer_service.create_customer({"name": "Dora", "cpf": "98765432100"})
        resp = client.get("/api/customers/cpf/987.654.321-00", headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["customer"]["id"] == customer.id

    def test_update_cpf_conflict(self, client, seller_headers):
        customer_service.create_customer({"name": "A", "cpf": "11111111111"})
        second = customer_service.create_customer({"name": "B", "cpf": "22222222222"})
        resp = client.put(f"/api/customers/{second.id}", json={"cpf": "11111111111"}, headers=seller_headers)
        assert resp.status_code == 409

    def test_update_same_cpf_allowed(self, client, seller_headers):
        customer = customer_service.create_customer({"name": "A", "cpf": "11111111111"})
        resp = client.put(
            f"/api/customers/{customer.id}", json={"cpf": "111.111.111-11", "phone": "555"}, headers=seller_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["customer"]["phone"] == "555"

    def test_search_and_deactivate(self, client, seller_headers, manager_headers):
        customer = customer_service.create_customer({"name": "Eva Souza"})
        customer_service.create_customer({"name": "Bruno Lima"})

        body = client.get("/api/customers?search=souza", headers=seller_headers).get_json()
        assert [c["id"] for c in body["items"]] == [customer.id]

        assert client.delete(f"/api/customers/{customer.id}", headers=seller_headers).status_code == 403
        assert client.delete(f"/api/customers/{customer.id}", headers=manager_headers).status_code == 200
        assert reload(customer).status == "INACTIVE"

        body = client.get("/api/customers", headers=seller_headers).get_json()
        assert body["pagination"]["total"] == 1
        body = client.get("/api/customers?include_inactive=true", headers=seller_headers).get_json()
        assert body["pagination"]["total"] == 2

    def test_detail_has_purchase_stats(self, client, seller_headers, make_product):
        customer = customer_service.create_customer({"name": "Fabi"})
        product = make_product(price_cents=700)
        client.post(
            "/api/sales",
            json={
                "items": [{"product_id": product.id, "quantity": 2}],
                "payment_method": "CASH",
                "customer_id": customer.id,
            },
            headers=seller_headers,
        )

        detail = client.get(f"/api/customers/{customer.id}", headers=seller_headers).get_json()["customer"]
        assert detail["stats"] == {"purchase_count": 1, "total_spent_cents": 1400}
        assert len(detail["recent_sales"]) == 1

    def test_inactive_customer_cannot_buy(self, client, seller_headers, make_product):
        customer = customer_service.create_customer({"name": "Gil"})
        customer_service.deactivate_customer(customer.id)
        product = make_product()
        resp = client.post(
            "/api/sales",
            json={
                "items": [{"product_id": product.id, "quantity": 1}],
                "payment_method": "CASH",
                "customer_id": customer.id,
            },
            headers=seller_headers,
        )
        assert resp.status_code == 409
        assert reload(product).stock_quantity == 10


class TestLoyaltyPoints:

    def test_credit_and_debit(self, client, manager_headers):
        customer = customer_service.create_customer({"name": "Hugo"})

        resp = client.post(
            f"/api/customers/{customer.id}/points", json={"points": 50, "reason": "Welcome bonus"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["previous_points"] == 0
        assert body["current_points"] == 50

        body = client.post(
            f"/api/customers/{customer.id}/points", json={"points": -20, "reason": "Redeemed"},
            headers=manager_headers,
        ).get_json()
        assert body["current_points"] == 30
        assert body["transaction"]["balance_after"] == 30

        history = client.get(f"/api/customers/{customer.id}/points", headers=manager_headers).get_json()
        assert [t["points"] for t in history["transactions"]] == [-20, 50]

    def test_negative_balance_rejected(self, manager):
        customer = customer_service.create_customer({"name": "Ines"})
        customer_service.adjust_points(customer.id, points=10, reason="Bonus", employee_id=manager.id)

        with pytest.raises(ConflictError):
            customer_service.adjust_points(customer.id, points=-11, reason="Redeem", employee_id=manager.id)
        assert reload(customer).loyalty_points == 10

    def test_zero_points_rejected(self, manager):
        customer = customer_service.create_customer({"name": "Joao"})
        with pytest.raises(ValidationError):
            customer_service.adjust_points(customer.id, points=0, reason="Nothing", employee_id=manager.id)

    def test_seller_cannot_adjust(self, client, seller_headers):
        customer = customer_service.create_customer({"name": "Kai"})
        resp = client.post(
            f"/api/customers/{customer.id}/points", json={"points": 5, "reason": "x"}, headers=seller_headers
        )
        assert resp.status_code == 403
