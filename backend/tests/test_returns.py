# Overview: Pytest coverage for returns against completed sales.

import pytest

from conftest import reload
from pdv.extensions import db
from pdv.errors import ConflictError, ValidationError
from pdv.models import StockMovement
from pdv.services import return_service, sales_service


@pytest.fixture
def sold(seller, make_product):
    """A product with 10 in stock and a completed sale of 3 units at 1000 cents."""
    product = make_product(price_cents=1000, stock_quantity=10)
    sale = sales_service.create_sale(
        employee=seller,
        items=[{"product_id": product.id, "quantity": 3}],
        payment_method="CASH",
    )
    return product, sale


class TestCreateReturn:

    def test_create_is_pending(self, client, seller_headers, sold):
        product, sale = sold
        resp = client.post(
            "/api/returns",
            json={"sale_id": sale.id, "reason": "DEFECT", "items": [{"product_id": product.id, "quantity": 2}]},
            headers=seller_headers,
        )
        assert resp.status_code == 201
        doc = resp.get_json()["return"]
        assert doc["status"] == "PENDING"
        assert doc["total_cents"] == 2000
        assert doc["sale_number"] == sale.number
        assert reload(product).stock_quantity == 7

    def test_refund_uses_sale_price(self, client, seller_headers, manager_headers, sold):
        product, sale = sold
        client.put(f"/api/products/{product.id}", json={"price_cents": 9999}, headers=manager_headers)
        doc = client.post(
            "/api/returns",
            json={"sale_id": sale.id, "reason": "REGRET", "items": [{"product_id": product.id, "quantity": 1}]},
            headers=seller_headers,
        ).get_json()["return"]
        assert doc["total_cents"] == 1000

    def test_over_quantity_rejected(self, client, seller_headers, sold):
        product, sale = sold
        resp = client.post(
            "/api/returns",
            json={"sale_id": sale.id, "reason": "DEFECT", "items": [{"product_id": product.id, "quantity": 4}]},
            headers=seller_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["details"] == {"product_id": product.id, "returnable": 3, "requested": 4}

    def test_earlier_returns_count(self, seller, sold):
        product, sale = sold
        return_service.create_return(
            employee=seller, sale_id=sale.id, reason="DEFECT",
            items=[{"product_id": product.id, "quantity": 2}],
        )
        with pytest.raises(ConflictError):
            return_service.create_return(
                employee=seller, sale_id=sale.id, reason="DEFECT",
                items=[{"product_id": product.id, "quantity": 2}],
            )

    def test_product_not_on_sale(self, seller, sold, make_product):
        _, sale = sold
        stranger = make_product()
        with pytest.raises(ConflictError):
            return_service.create_return(
                employee=seller, sale_id=sale.id, reason="DEFECT",
                items=[{"product_id": stranger.id, "quantity": 1}],
            )

    def test_cancelled_sale_rejected(self, seller, manager, sold):
        product, sale = sold
        sales_service.cancel_sale(sale_id=sale.id, employee=manager)
        with pytest.raises(ConflictError):
            return_service.create_return(
                employee=seller, sale_id=sale.id, reason="DEFECT",
                items=[{"product_id": product.id, "quantity": 1}],
            )

    def test_unknown_reason(self, seller, sold):
        product, sale = sold
        with pytest.raises(ValidationError):
            return_service.create_return(
                employee=seller, sale_id=sale.id, reason="BORED",
                items=[{"product_id": product.id, "quantity": 1}],
            )

    def test_unknown_sale(self, client, seller_headers):
        resp = client.post(
            "/api/returns",
            json={"sale_id": 999, "reason": "DEFECT", "items": [{"product_id": 1, "quantity": 1}]},
            headers=seller_headers,
        )
        assert resp.status_code == 404


class TestProcessReturn:

    def test_process_restores_stock(self, client, seller_headers, sold):
        product, sale = sold
        doc = client.post(
            "/api/returns",
            json={"sale_id": sale.id, "reason": "DEFECT", "items": [{"product_id": product.id, "quantity": 2}]},
            headers=seller_headers,
        ).get_json()["return"]

        resp = client.post(f"/api/returns/{doc['id']}/process", headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["return"]["status"] == "PROCESSED"
        assert reload(product).stock_quantity == 9

        movement = db.session.query(StockMovement).filter_by(return_id=doc["id"]).one()
        assert movement.kind == "IN"
        assert movement.quantity == 2
        assert movement.sale_id == sale.id
        assert movement.reason == f"Return #{doc['number']}"

    def test_process_twice(self, client, seller_headers, seller, sold):
        product, sale = sold
        doc = return_service.create_return(
            employee=seller, sale_id=sale.id, reason="DEFECT",
            items=[{"product_id": product.id, "quantity": 1}],
        )
        client.post(f"/api/returns/{doc.id}/process", headers=seller_headers)
        resp = client.post(f"/api/returns/{doc.id}/process", headers=seller_headers)
        assert resp.status_code == 409
        assert reload(product).stock_quantity == 8

    def test_list_by_status(self, client, seller_headers, seller, sold):
        product, sale = sold
        first = return_service.create_return(
            employee=seller, sale_id=sale.id, reason="DEFECT",
            items=[{"product_id": product.id, "quantity": 1}],
        )
        return_service.create_return(
            employee=seller, sale_id=sale.id, reason="REGRET",
            items=[{"product_id": product.id, "quantity": 1}],
        )
        return_service.process_return(first.id, employee=seller)

        body = client.get("/api/returns?status=PENDING", headers=seller_headers).get_json()
        assert body["count"] == 1
        assert body["items"][0]["reason"] == "REGRET"


class TestReturnsAndCancellation:
    """Goods come back to the shelf once, whichever of return or cancel happens first."""

    def test_cancel_after_processed_return(self, seller, manager, sold):
        product, sale = sold
        doc = return_service.create_return(
            employee=seller, sale_id=sale.id, reason="DEFECT",
            items=[{"product_id": product.id, "quantity": 2}],
        )
        return_service.process_return(doc.id, employee=seller)
        assert reload(product).stock_quantity == 9

        sales_service.cancel_sale(sale_id=sale.id, employee=manager, restore_stock=True)
        assert reload(product).stock_quantity == 10

        back = db.session.query(StockMovement).filter_by(sale_id=sale.id, kind="IN", return_id=None).one()
        assert back.quantity == 1

    def test_cancel_after_full_processed_return_moves_nothing(self, seller, manager, sold):
        product, sale = sold
        doc = return_service.create_return(
            employee=seller, sale_id=sale.id, reason="REGRET",
            items=[{"product_id": product.id, "quantity": 3}],
        )
        return_service.process_return(doc.id, employee=seller)

        sales_service.cancel_sale(sale_id=sale.id, employee=manager, restore_stock=True)
        assert reload(product).stock_quantity == 10
        assert db.session.query(StockMovement).filter_by(sale_id=sale.id, kind="IN", return_id=None).count() == 0

    def test_cancel_voids_pending_return(self, seller, manager, sold):
        product, sale = sold
        doc = return_service.create_return(
            employee=seller, sale_id=sale.id, reason="DEFECT",
            items=[{"product_id": product.id, "quantity": 2}],
        )

        sales_service.cancel_sale(sale_id=sale.id, employee=manager, restore_stock=True)
        assert reload(product).stock_quantity == 10
        assert reload(doc).status == "CANCELLED"

        with pytest.raises(ConflictError):
            return_service.process_return(doc.id, employee=seller)
        assert reload(product).stock_quantity == 10

    def test_process_rejected_when_sale_cancelled(self, client, seller_headers, seller, sold):
        product, sale = sold
        doc = return_service.create_return(
            employee=seller, sale_id=sale.id, reason="DEFECT",
            items=[{"product_id": product.id, "quantity": 1}],
        )
        # Status flipped outside cancel_sale, so the return is still PENDING
        reload(sale).status = "CANCELLED"
        db.session.commit()

        resp = client.post(f"/api/returns/{doc.id}/process", headers=seller_headers)
        assert resp.status_code == 409
        assert resp.get_json()["details"] == {"sale_id": sale.id}
        assert reload(product).stock_quantity == 7
