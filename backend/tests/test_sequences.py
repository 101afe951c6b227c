# Overview: Pytest coverage for monotonic document numbering.

import pytest

from pdv.extensions import db
from pdv.services.sequence_service import SequenceError, next_sequence, peek_sequence


class TestSequences:

    def test_first_value_is_one(self, app):
        assert peek_sequence("sale") == 1
        assert next_sequence("sale") == 1
        db.session.commit()
        assert peek_sequence("sale") == 2

    def test_strictly_increasing(self, app):
        values = []
        for _ in range(5):
            values.append(next_sequence("tab"))
            db.session.commit()
        assert values == [1, 2, 3, 4, 5]

    def test_sequences_are_independent(self, app):
        next_sequence("sale")
        next_sequence("sale")
        db.session.commit()
        assert next_sequence("return") == 1

    def test_rollback_releases_number(self, app):
        next_sequence("sale")
        db.session.commit()
        assert next_sequence("sale") == 2
        db.session.rollback()
        assert next_sequence("sale") == 2

    def test_unknown_name(self, app):
        with pytest.raises(SequenceError):
            next_sequence("invoice")

    def test_tabs_and_sales_numbered_separately(self, client, seller_headers, make_product):
        product = make_product()
        tab = client.post("/api/tabs", json={}, headers=seller_headers).get_json()["tab"]
        client.post(f"/api/tabs/{tab['id']}/lines", json={"product_id": product.id, "quantity": 1},
                    headers=seller_headers)
        sale = client.post(
            f"/api/tabs/{tab['id']}/close", json={"payment_method": "CASH"}, headers=seller_headers
        ).get_json()["sale"]
        direct = client.post(
            "/api/sales",
            json={"items": [{"product_id": product.id, "quantity": 1}], "payment_method": "CASH"},
            headers=seller_headers,
        ).get_json()["sale"]

        assert tab["number"] == 1
        assert sale["number"] == 1
        assert direct["number"] == 2
