# Overview: Pytest coverage for bulk product import from CSV and XLSX files.

import io

import pytest
from openpyxl import Workbook

from pdv.extensions import db
from pdv.models import Product, StockMovement
from pdv.services import import_service


HEADER = "code,barcode,name,category,sale_price,cost_price,stock,min_stock\n"


def _upload(client, headers, content: bytes, filename="products.csv"):
    return client.post(
        "/api/imports/products",
        data={"file": (io.BytesIO(content), filename)},
        content_type="multipart/form-data",
        headers=headers,
    )


class TestCsvImport:

    def test_all_rows_imported(self, client, manager_headers):
        content = (
            HEADER
            + "A1,789001,Coffee 500g,Grocery,\"12,50\",\"8,00\",20,5\n"
            + "A2,,Sugar 1kg,Grocery,4.99,3.10,0,\n"
        ).encode("utf-8")

        resp = _upload(client, manager_headers, content)
        assert resp.status_code == 201
        run = resp.get_json()["import"]
        assert run["status"] == "COMPLETED"
        assert run["total_rows"] == 2
        assert run["success_count"] == 2
        assert run["errors"] == []

        coffee = db.session.query(Product).filter_by(code="A1").one()
        assert coffee.price_cents == 1250
        assert coffee.cost_cents == 800
        assert coffee.stock_quantity == 20
        movement = db.session.query(StockMovement).filter_by(product_id=coffee.id).one()
        assert movement.reason == "Initial stock (import)"

        sugar = db.session.query(Product).filter_by(code="A2").one()
        assert sugar.price_cents == 499
        assert sugar.min_stock == 5
        assert db.session.query(StockMovement).filter_by(product_id=sugar.id).count() == 0

    def test_bad_rows_reported_with_line_numbers(self, client, manager_headers, make_product):
        make_product(code="EXISTING")
        content = (
            HEADER
            + "B1,,Good,Misc,10,,,\n"
            + "B2,,,Misc,10,,,\n"
            + "B3,,Free,Misc,0,,,\n"
            + "B1,,Again,Misc,10,,,\n"
            + "EXISTING,,Clash,Misc,10,,,\n"
        ).encode("utf-8")

        run = _upload(client, manager_headers, content).get_json()["import"]
        assert run["status"] == "PARTIAL"
        assert run["success_count"] == 1
        assert run["error_count"] == 4
        assert run["errors"] == [
            {"line": 3, "message": "Missing required fields: name"},
            {"line": 4, "message": "Invalid sale price"},
            {"line": 5, "message": "Product with code B1 already exists"},
            {"line": 6, "message": "Product with code EXISTING already exists"},
        ]

    @pytest.mark.parametrize("price", ["NaN", "Infinity", "-Infinity", "1e400", "abc"])
    def test_unreadable_price_is_reported(self, manager, price):
        run = import_service.import_products_csv(
            f"name,category,sale_price\nBad,Food,{price}\nGood,Food,2\n", file_name="prices.csv", employee_id=manager.id,
        )
        assert run.status == "PARTIAL"
        assert run.success_count == 1
        assert run.errors == [{"line": 2, "message": f"Invalid sale_price: {price}"}]

    def test_only_missing_columns_listed(self, manager):
        run = import_service.import_products_csv(
            "name,category,sale_price\n,Food,\n", file_name="gaps.csv", employee_id=manager.id,
        )
        assert run.errors == [{"line": 2, "message": "Missing required fields: name, sale_price"}]

    def test_nothing_imported_is_failed(self, client, manager_headers):
        content = (HEADER + "C1,,,Misc,,,,\n").encode("utf-8")
        run = _upload(client, manager_headers, content).get_json()["import"]
        assert run["status"] == "FAILED"
        assert db.session.query(Product).count() == 0

    def test_bom_and_blank_lines(self, client, manager_headers):
        content = ("\ufeff" + HEADER + "D1,,Tea,Drinks,3,,,\n,,,,,,,\n").encode("utf-8")
        run = _upload(client, manager_headers, content).get_json()["import"]
        assert run["total_rows"] == 1
        assert run["status"] == "COMPLETED"

    def test_generated_code(self, manager):
        run = import_service.import_products_csv(
            "name,category,sale_price\nNo Code,Misc,1\n", file_name="x.csv", employee_id=manager.id
        )
        assert run.status == "COMPLETED"
        product = db.session.query(Product).filter_by(name="No Code").one()
        assert product.code.startswith("IMPORT-")

    def test_seller_cannot_import(self, client, seller_headers):
        resp = _upload(client, seller_headers, HEADER.encode("utf-8"))
        assert resp.status_code == 403

    def test_missing_file(self, client, manager_headers):
        resp = client.post("/api/imports/products", data={}, content_type="multipart/form-data", headers=manager_headers)
        assert resp.status_code == 400

    def test_unsupported_extension(self, client, manager_headers):
        resp = _upload(client, manager_headers, b"whatever", filename="products.txt")
        assert resp.status_code == 400

    def test_history(self, client, manager_headers):
        _upload(client, manager_headers, (HEADER + "E1,,Salt,Grocery,2,,,\n").encode("utf-8"), filename="first.csv")
        _upload(client, manager_headers, (HEADER + "E2,,Rice,Grocery,6,,,\n").encode("utf-8"), filename="second.csv")

        imports = client.get("/api/imports/history", headers=manager_headers).get_json()["imports"]
        assert [i["file_name"] for i in imports] == ["second.csv", "first.csv"]


class TestDuplicateBarcodes:

    def test_within_file(self, manager):
        run = import_service.import_products_csv(
            HEADER + "F1,123,One,Misc,1,,,\nF2,123,Two,Misc,1,,,\n",
            file_name="dup.csv",
            employee_id=manager.id,
        )
        assert run.errors == [{"line": 3, "message": "Barcode 123 already exists"}]

    def test_against_database(self, manager, make_product):
        make_product(barcode="555")
        run = import_service.import_products_csv(
            HEADER + "G1,555,One,Misc,1,,,\n", file_name="dup.csv", employee_id=manager.id,
        )
        assert run.status == "FAILED"
        assert run.errors == [{"line": 2, "message": "Barcode 555 already exists"}]


class TestXlsxImport:

    @pytest.fixture
    def workbook_bytes(self):
        wb = Workbook()
        ws = wb.active
        ws.append(["code", "name", "category", "sale_price", "stock"])
        ws.append(["X1", "Soap", "Cleaning", 3.5, 12])
        ws.append([None, None, None, None, None])
        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    def test_xlsx_upload(self, client, manager_headers, workbook_bytes):
        resp = _upload(client, manager_headers, workbook_bytes, filename="products.xlsx")
        assert resp.status_code == 201
        run = resp.get_json()["import"]
        assert run["status"] == "COMPLETED"
        assert run["total_rows"] == 1

        soap = db.session.query(Product).filter_by(code="X1").one()
        assert soap.price_cents == 350
        assert soap.stock_quantity == 12
