# Overview: Pytest coverage for attribute types, variant grids and variant stock.

"""
Variant Tests

Grid generation is a cartesian product of options that skips combinations
already present; variant stock only moves through movement rows that carry
the variant id and never touch the product counter.
"""

import pytest

from conftest import reload
from pdv.errors import ConflictError, NotFoundError, ValidationError
from pdv.models import ProductVariant, StockMovement
from pdv.services import inventory_service, variant_service


@pytest.fixture
def size(app):
    return variant_service.create_attribute_type(name="Size", options=["P", "M"])


@pytest.fixture
def color(app):
    return variant_service.create_attribute_type(name="Color", options=["Red", "Blue"])


def _option_ids(*types):
    return [option.id for attribute_type in types for option in attribute_type.options]


class TestAttributeTypes:

    def test_create_with_options(self, client, manager_headers):
        resp = client.post(
            "/api/attributes",
            json={"name": "Size", "options": ["S", "M", "L"]},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()["attribute"]
        assert body["status"] == "ACTIVE"
        assert [(o["value"], o["position"]) for o in body["options"]] == [("S", 0), ("M", 1), ("L", 2)]

    def test_seller_cannot_create(self, client, seller_headers):
        resp = client.post("/api/attributes", json={"name": "Size"}, headers=seller_headers)
        assert resp.status_code == 403

    def test_duplicate_name_conflicts(self, client, manager_headers, size):
        resp = client.post("/api/attributes", json={"name": "Size"}, headers=manager_headers)
        assert resp.status_code == 409
        assert resp.get_json()["details"] == {"field": "name"}

    def test_duplicate_option_in_payload_rejected(self, app):
        with pytest.raises(ValidationError):
            variant_service.create_attribute_type(name="Size", options=["M", "M"])

    def test_add_option_goes_last(self, client, manager_headers, size):
        resp = client.post(
            f"/api/attributes/{size.id}/options", json={"value": "G"}, headers=manager_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["option"]["position"] == 2

        resp = client.post(
            f"/api/attributes/{size.id}/options", json={"value": "G"}, headers=manager_headers,
        )
        assert resp.status_code == 409

    def test_deactivated_types_hidden_by_default(self, client, seller_headers, manager_headers, size, color):
        resp = client.delete(f"/api/attributes/{color.id}", headers=manager_headers)
        assert resp.get_json()["attribute"]["status"] == "INACTIVE"

        names = [a["name"] for a in client.get("/api/attributes", headers=seller_headers).get_json()["attributes"]]
        assert names == ["Size"]

        resp = client.get("/api/attributes?include_inactive=true", headers=seller_headers)
        assert [a["name"] for a in resp.get_json()["attributes"]] == ["Color", "Size"]

    def test_rename(self, client, manager_headers, size):
        resp = client.put(f"/api/attributes/{size.id}", json={"name": "Shoe size"}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["attribute"]["name"] == "Shoe size"


class TestGridGeneration:

    def test_cartesian_grid(self, client, manager_headers, make_product, size, color):
        product = make_product(code="TSHIRT", price_cents=4990)
        resp = client.post(
            f"/api/products/{product.id}/variants/grid",
            json={"option_ids": _option_ids(size, color)},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["created_count"] == 4
        assert body["existing_count"] == 0
        assert [v["sku"] for v in body["created"]] == [
            "TSHIRT-P-RED-1",
            "TSHIRT-P-BLU-2",
            "TSHIRT-M-RED-3",
            "TSHIRT-M-BLU-4",
        ]
        first = body["created"][0]
        assert first["price_cents"] == 4990
        assert first["stock_quantity"] == 0
        assert [(o["attribute"], o["value"]) for o in first["options"]] == [("Size", "P"), ("Color", "Red")]

    def test_existing_combinations_skipped(self, manager, make_product, size, color):
        product = make_product(code="TSHIRT")
        variant_service.generate_grid(product_id=product.id, option_ids=_option_ids(size, color))
        extra = variant_service.add_option(size.id, value="Grande")

        result = variant_service.generate_grid(
            product_id=product.id, option_ids=_option_ids(size, color),
        )

        assert result["existing_count"] == 4
        assert [v["sku"] for v in result["created"]] == ["TSHIRT-GRA-RED-5", "TSHIRT-GRA-BLU-6"]
        assert all(extra.id in [o["option_id"] for o in v["options"]] for v in result["created"])
        assert ProductVariant.query.filter_by(product_id=product.id).count() == 6

    def test_unknown_option(self, make_product, size):
        product = make_product()
        with pytest.raises(NotFoundError) as exc:
            variant_service.generate_grid(product_id=product.id, option_ids=[size.options[0].id, 9999])
        assert exc.value.details == {"option_ids": [9999]}

    def test_inactive_attribute_rejected(self, make_product, size):
        product = make_product()
        variant_service.deactivate_attribute_type(size.id)
        with pytest.raises(ConflictError):
            variant_service.generate_grid(product_id=product.id, option_ids=_option_ids(size))

    def test_empty_selection(self, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            variant_service.generate_grid(product_id=product.id, option_ids=[])

    def test_option_in_use_cannot_be_deleted(self, client, manager_headers, make_product, size):
        product = make_product()
        variant_service.generate_grid(product_id=product.id, option_ids=[size.options[0].id])

        used, unused = size.options
        resp = client.delete(f"/api/attributes/options/{used.id}", headers=manager_headers)
        assert resp.status_code == 409
        assert resp.get_json()["details"] == {"option_id": used.id, "variant_count": 1}

        resp = client.delete(f"/api/attributes/options/{unused.id}", headers=manager_headers)
        assert resp.status_code == 200


class TestVariantUpdates:

    @pytest.fixture
    def variants(self, make_product, size):
        product = make_product(code="SHOE", price_cents=20000, stock_quantity=10)
        variant_service.generate_grid(product_id=product.id, option_ids=_option_ids(size))
        return product, ProductVariant.query.filter_by(product_id=product.id).order_by(ProductVariant.id).all()

    def test_stock_change_is_a_variant_movement(self, client, manager, manager_headers, variants):
        product, (small, _) = variants
        resp = client.put(
            f"/api/variants/{small.id}", json={"stock_quantity": 5}, headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["variant"]["stock_quantity"] == 5

        movement = StockMovement.query.filter_by(variant_id=small.id).one()
        assert movement.kind == "ADJUST"
        assert movement.product_id == product.id
        assert (movement.stock_before, movement.stock_after, movement.quantity) == (0, 5, 5)
        assert movement.employee_id == manager.id
        assert movement.note == "Stock adjusted from 0 to 5"

        assert reload(product).stock_quantity == 10
        assert inventory_service.audit_variant_stock(small.id)["consistent"] is True
        assert inventory_service.audit_product_stock(product.id) == {
            "product_id": product.id,
            "stock_quantity": 10,
            "replayed_quantity": 10,
            "movement_count": 1,
            "consistent": True,
        }

    def test_unchanged_stock_writes_no_movement(self, variants):
        _, (small, _) = variants
        variant_service.update_variant(small.id, {"stock_quantity": 0, "price_cents": 18000})
        assert StockMovement.query.filter_by(variant_id=small.id).count() == 0
        assert reload(small).price_cents == 18000

    def test_price_falls_back_to_product(self, variants):
        _, (small, _) = variants
        variant = variant_service.update_variant(small.id, {"price_cents": None})
        assert variant.to_dict()["effective_price_cents"] == 20000

    def test_duplicate_sku_conflicts(self, variants):
        _, (small, medium) = variants
        with pytest.raises(ConflictError) as exc:
            variant_service.update_variant(small.id, {"sku": medium.sku})
        assert exc.value.details == {"field": "sku"}

    def test_unknown_field_rejected(self, variants):
        _, (small, _) = variants
        with pytest.raises(ValidationError):
            variant_service.update_variant(small.id, {"product_id": 2})

    def test_deactivate_hides_variant(self, client, seller_headers, manager_headers, variants):
        product, (small, medium) = variants
        resp = client.delete(f"/api/variants/{small.id}", headers=manager_headers)
        assert resp.get_json()["variant"]["status"] == "INACTIVE"

        listed = client.get(f"/api/products/{product.id}/variants", headers=seller_headers).get_json()
        assert [v["id"] for v in listed["variants"]] == [medium.id]

    def test_batch_update(self, client, manager_headers, variants):
        _, (small, medium) = variants
        resp = client.put(
            "/api/variants/batch",
            json={"variants": [
                {"id": small.id, "stock_quantity": 3},
                {"id": medium.id, "price_cents": 21000, "status": "INACTIVE"},
            ]},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert reload(small).stock_quantity == 3
        assert reload(medium).price_cents == 21000
        assert medium.status == "INACTIVE"

    def test_batch_is_all_or_nothing(self, client, manager_headers, variants):
        _, (small, _) = variants
        resp = client.put(
            "/api/variants/batch",
            json={"variants": [{"id": small.id, "stock_quantity": 3}, {"id": 9999, "stock_quantity": 1}]},
            headers=manager_headers,
        )
        assert resp.status_code == 404
        assert reload(small).stock_quantity == 0
        assert StockMovement.query.filter(StockMovement.variant_id.isnot(None)).count() == 0

    def test_batch_validation_lists_every_item(self, variants):
        _, (small, medium) = variants
        with pytest.raises(ValidationError) as exc:
            variant_service.batch_update([
                {"id": small.id, "stock_quantity": -1},
                {"id": medium.id, "sku": "X"},
            ])
        assert [f["field"] for f in exc.value.fields] == ["variants[0].stock_quantity", "variants[1]"]
