# Overview: Service-layer operations for bulk product import from CSV / spreadsheet rows.

"""
Product import

Rows are processed one at a time inside a SAVEPOINT: a bad row is reported
and skipped, good rows are kept. Row numbers in the report are 1-based file
lines, so the header is line 1 and the first data row is line 2.

Columns:
    required  name, category, sale_price
    optional  code, barcode, cost_price, stock, min_stock, subcategory, brand,
              wholesale_price, wholesale_min_qty, expires_on, alert_expiry

Prices accept a decimal comma ("12,50").
"""

from __future__ import annotations

import csv
import io
import json
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from flask import current_app

from ..extensions import db
from ..errors import PDVError
from ..models import ProductImport
from ..time_utils import parse_iso_date
from ..validation import MAX_PRICE_CENTS
from .products_service import build_product


REQUIRED_COLUMNS = ("name", "category", "sale_price")
HISTORY_LIMIT = 20


class RowError(ValueError):
    pass


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_cents(value: Any, field: str) -> int | None:
    text = _to_text(value)
    if text is None:
        return None
    text = text.replace("R$", "").replace(" ", "")
    # "1.234,56" and "12,50" -> dot decimal
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise RowError(f"Invalid {field}: {value}")
    # NaN and Infinity parse as Decimal but are not prices
    if not amount.is_finite():
        raise RowError(f"Invalid {field}: {value}")
    try:
        cents = int((amount * 100).quantize(Decimal("1")))
    except (InvalidOperation, ValueError, OverflowError):
        raise RowError(f"Invalid {field}: {value}")
    if cents > MAX_PRICE_CENTS:
        raise RowError(f"{field} is too large")
    return cents


def _to_int(value: Any, field: str) -> int | None:
    text = _to_text(value)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        raise RowError(f"Invalid {field}: {value}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return (_to_text(value) or "").lower() in {"true", "1", "yes"}


def _normalize_row(raw: dict, index: int, default_min_stock: int) -> dict:
    row = {str(k).strip(): v for k, v in raw.items() if k is not None}

    missing = [c for c in REQUIRED_COLUMNS if not _to_text(row.get(c))]
    if missing:
        raise RowError(f"Missing required fields: {', '.join(missing)}")

    price = _to_cents(row.get("sale_price"), "sale_price")
    if price is None or price <= 0:
        raise RowError("Invalid sale price")

    cost = _to_cents(row.get("cost_price"), "cost_price") or 0
    stock = _to_int(row.get("stock"), "stock") or 0
    min_stock = _to_int(row.get("min_stock"), "min_stock")
    if cost < 0 or stock < 0 or (min_stock is not None and min_stock < 0):
        raise RowError("Negative values are not allowed")

    wholesale_min_qty = _to_int(row.get("wholesale_min_qty"), "wholesale_min_qty")
    if wholesale_min_qty is not None and wholesale_min_qty <= 0:
        raise RowError("wholesale_min_qty must be > 0")

    expires_on = None
    expires_text = _to_text(row.get("expires_on"))
    if expires_text:
        try:
            expires_on = parse_iso_date(expires_text)
        except ValueError:
            # unreadable dates are dropped, not fatal
            expires_on = None

    return {
        "code": _to_text(row.get("code")) or f"IMPORT-{int(time.time() * 1000)}-{index}",
        "barcode": _to_text(row.get("barcode")),
        "name": _to_text(row.get("name")),
        "category": _to_text(row.get("category")),
        "subcategory": _to_text(row.get("subcategory")),
        "brand": _to_text(row.get("brand")),
        "cost_cents": cost,
        "price_cents": price,
        "wholesale_price_cents": _to_cents(row.get("wholesale_price"), "wholesale_price"),
        "wholesale_min_qty": wholesale_min_qty,
        "stock_quantity": stock,
        "min_stock": default_min_stock if min_stock is None else min_stock,
        "expires_on": expires_on,
        "alert_expiry": _to_bool(row.get("alert_expiry")),
    }


def read_csv_rows(content: bytes | str) -> list[dict]:
    """Decode UTF-8 (BOM tolerated) and return one dict per non-empty data row."""
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    elif content.startswith("\ufeff"):
        content = content[1:]
    reader = csv.DictReader(io.StringIO(content))
    return [row for row in reader if any(_to_text(v) for v in row.values())]


def read_xlsx_rows(stream) -> list[dict]:
    from openpyxl import load_workbook

    wb = load_workbook(stream, data_only=True, read_only=True)
    data = list(wb.active.values)
    if not data:
        return []
    headers = [str(h).strip() if h is not None else "" for h in data[0]]
    rows = []
    for values in data[1:]:
        row = {headers[i]: values[i] for i in range(min(len(headers), len(values))) if headers[i]}
        if any(_to_text(v) for v in row.values()):
            rows.append(row)
    return rows


def import_product_rows(rows: Iterable[dict], *, file_name: str | None, employee_id: int) -> ProductImport:
    """
    Create one product per valid row and record the run.

    Duplicate codes / barcodes are rejected whether they already exist in
    the database or appeared on an earlier line of the same file.
    """
    rows = list(rows)
    default_min_stock = current_app.config.get("DEFAULT_MIN_STOCK", 5)
    errors: list[dict] = []
    success = 0
    seen_codes: set[str] = set()
    seen_barcodes: set[str] = set()

    for i, raw in enumerate(rows):
        line = i + 2
        try:
            patch = _normalize_row(raw, i, default_min_stock)
        except RowError as e:
            errors.append({"line": line, "message": str(e)})
            continue

        code, barcode = patch["code"], patch["barcode"]
        if code in seen_codes:
            errors.append({"line": line, "message": f"Product with code {code} already exists"})
            continue
        if barcode and barcode in seen_barcodes:
            errors.append({"line": line, "message": f"Barcode {barcode} already exists"})
            continue

        try:
            with db.session.begin_nested():
                build_product(patch, employee_id=employee_id, reason="Initial stock (import)")
        except PDVError as e:
            errors.append({"line": line, "message": _duplicate_message(e, code, barcode)})
            continue

        seen_codes.add(code)
        if barcode:
            seen_barcodes.add(barcode)
        success += 1

    if not errors:
        status = "COMPLETED"
    elif success:
        status = "PARTIAL"
    else:
        status = "FAILED"

    run = ProductImport(
        file_name=file_name,
        total_rows=len(rows),
        success_count=success,
        error_count=len(errors),
        status=status,
        error_detail=json.dumps(errors) if errors else None,
        employee_id=employee_id,
    )
    db.session.add(run)
    db.session.commit()

    current_app.logger.info(
        "Product import %s finished: %s rows, %s imported, %s rejected",
        file_name or "(unnamed)", len(rows), success, len(errors),
    )
    return run


def _duplicate_message(error: PDVError, code: str, barcode: str | None) -> str:
    field = (error.details or {}).get("field")
    if field == "barcode":
        return f"Barcode {barcode} already exists"
    if field == "code":
        return f"Product with code {code} already exists"
    return error.message


def import_products_csv(content: bytes | str, *, file_name: str | None, employee_id: int) -> ProductImport:
    return import_product_rows(read_csv_rows(content), file_name=file_name, employee_id=employee_id)


def import_history() -> list[ProductImport]:
    return (
        db.session.query(ProductImport)
        .order_by(ProductImport.created_at.desc(), ProductImport.id.desc())
        .limit(HISTORY_LIMIT)
        .all()
    )
