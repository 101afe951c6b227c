# Overview: Service-layer operations for reporting; dashboard, sales, stock, replenishment and ABC analysis.

from __future__ import annotations

import math
from datetime import date, timedelta

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Customer, Product, Sale, SaleLine
from ..models.sales import PAYMENT_METHODS
from ..time_utils import day_bounds, to_iso_date, to_utc_z, utcnow


GROUP_BY_CHOICES = ("day", "category", "product")
PRIORITY_ORDER = {"HIGH": 0, "MEDIUM": 1, "LOW": 2}
DEFAULT_ABC_DAYS = 90
DEFAULT_SUGGESTION_DAYS = 30
COVERAGE_DAYS = 30


def _completed_sales_between(lower, upper):
    return db.session.query(Sale).filter(
        Sale.status == "COMPLETED",
        Sale.created_at >= lower,
        Sale.created_at < upper,
    )


def _product_totals(lower, upper, *, limit: int | None = None, order_by_quantity: bool = False):
    """(product_id, quantity, revenue, sale_count) over COMPLETED sales."""
    qty = func.coalesce(func.sum(SaleLine.quantity), 0)
    revenue = func.coalesce(func.sum(SaleLine.line_total_cents), 0)
    query = (
        db.session.query(
            SaleLine.product_id,
            qty.label("quantity"),
            revenue.label("revenue_cents"),
            func.count(func.distinct(Sale.id)).label("sale_count"),
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(
            Sale.status == "COMPLETED",
            Sale.created_at >= lower,
            Sale.created_at < upper,
        )
        .group_by(SaleLine.product_id)
    )
    if order_by_quantity:
        query = query.order_by(qty.desc(), SaleLine.product_id.asc())
    if limit:
        query = query.limit(limit)
    return query.all()


def _products_by_id(ids) -> dict[int, Product]:
    ids = list(ids)
    if not ids:
        return {}
    return {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}


def dashboard() -> dict:
    today = utcnow().date()
    lower, upper = day_bounds(today)

    by_method = {method: {"count": 0, "total_cents": 0} for method in PAYMENT_METHODS}
    rows = (
        db.session.query(
            Sale.payment_method,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_cents), 0),
        )
        .filter(Sale.status == "COMPLETED", Sale.created_at >= lower, Sale.created_at < upper)
        .group_by(Sale.payment_method)
        .all()
    )
    sale_count = 0
    revenue = 0
    for method, count, total in rows:
        by_method[method] = {"count": int(count), "total_cents": int(total)}
        sale_count += int(count)
        revenue += int(total)

    low_stock = (
        db.session.query(Product)
        .filter(Product.status == "ACTIVE", Product.stock_quantity <= Product.min_stock)
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .limit(10)
        .all()
    )

    week_lower, _ = day_bounds(today - timedelta(days=6))
    per_day = {to_iso_date(today - timedelta(days=offset)): {"count": 0, "total_cents": 0} for offset in range(6, -1, -1)}
    for sale in _completed_sales_between(week_lower, upper).all():
        bucket = per_day[to_iso_date(sale.created_at.date())]
        bucket["count"] += 1
        bucket["total_cents"] += sale.total_cents

    top_rows = _product_totals(lower, upper, limit=5, order_by_quantity=True)
    products = _products_by_id(row.product_id for row in top_rows)

    recent = (
        db.session.query(Sale)
        .filter(Sale.status == "COMPLETED")
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(5)
        .all()
    )

    return {
        "today": {
            "sale_count": sale_count,
            "revenue_cents": revenue,
            "average_ticket_cents": revenue // sale_count if sale_count else 0,
            "by_payment_method": by_method,
        },
        "low_stock": {
            "count": len(low_stock),
            "products": [p.to_dict() for p in low_stock],
        },
        "totals": {
            "active_products": db.session.query(Product.id).filter(Product.status == "ACTIVE").count(),
            "active_customers": db.session.query(Customer.id).filter(Customer.status == "ACTIVE").count(),
        },
        "last_7_days": [{"date": day, **values} for day, values in per_day.items()],
        "top_products_today": [
            {
                "product_id": row.product_id,
                "code": products[row.product_id].code if row.product_id in products else None,
                "name": products[row.product_id].name if row.product_id in products else None,
                "quantity": int(row.quantity),
                "total_cents": int(row.revenue_cents),
            }
            for row in top_rows
        ],
        "recent_sales": [s.to_dict(include_lines=False) for s in recent],
    }


def sales_report(*, start: date, end: date, group_by: str = "day") -> dict:
    """COMPLETED sales in [start, end] (whole days) grouped by day, category or product."""
    if group_by not in GROUP_BY_CHOICES:
        raise ValidationError([{"field": "group_by", "message": f"group_by must be one of {', '.join(GROUP_BY_CHOICES)}"}])
    if end < start:
        raise ValidationError([{"field": "end", "message": "end must not be before start"}])

    lower, upper = day_bounds(start, end)
    sales = _completed_sales_between(lower, upper).all()

    rows: list[dict]
    if group_by == "day":
        per_day: dict[str, dict] = {}
        for sale in sales:
            bucket = per_day.setdefault(to_iso_date(sale.created_at.date()), {"count": 0, "total_cents": 0})
            bucket["count"] += 1
            bucket["total_cents"] += sale.total_cents
        rows = [{"date": day, **values} for day, values in sorted(per_day.items())]

    elif group_by == "category":
        category = func.coalesce(Product.category, "Uncategorized")
        result = (
            db.session.query(
                category.label("category"),
                func.coalesce(func.sum(SaleLine.quantity), 0),
                func.coalesce(func.sum(SaleLine.line_total_cents), 0),
            )
            .join(Sale, Sale.id == SaleLine.sale_id)
            .join(Product, Product.id == SaleLine.product_id)
            .filter(Sale.status == "COMPLETED", Sale.created_at >= lower, Sale.created_at < upper)
            .group_by(category)
            .all()
        )
        rows = sorted(
            ({"category": name, "quantity": int(qty), "total_cents": int(total)} for name, qty, total in result),
            key=lambda r: (-r["total_cents"], r["category"]),
        )

    else:
        totals = _product_totals(lower, upper)
        products = _products_by_id(row.product_id for row in totals)
        rows = sorted(
            (
                {
                    "product_id": row.product_id,
                    "code": products[row.product_id].code,
                    "name": products[row.product_id].name,
                    "quantity": int(row.quantity),
                    "total_cents": int(row.revenue_cents),
                }
                for row in totals
            ),
            key=lambda r: (-r["total_cents"], r["product_id"]),
        )

    return {
        "start": to_iso_date(start),
        "end": to_iso_date(end),
        "group_by": group_by,
        "sale_count": len(sales),
        "total_cents": sum(s.total_cents for s in sales),
        "rows": rows,
    }


def stock_status(product: Product) -> str:
    if product.stock_quantity <= 0:
        return "OUT"
    if product.stock_quantity <= product.min_stock:
        return "LOW"
    return "OK"


def stock_report() -> dict:
    """Every ACTIVE product with its stock status and valuation at cost."""
    products = (
        db.session.query(Product)
        .filter(Product.status == "ACTIVE")
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )

    rows = []
    total_value = 0
    low = out = 0
    for p in products:
        status = stock_status(p)
        value = p.stock_quantity * p.cost_cents
        total_value += value
        if status in ("LOW", "OUT"):
            low += 1
        if status == "OUT":
            out += 1
        rows.append({
            "id": p.id,
            "code": p.code,
            "name": p.name,
            "category": p.category,
            "stock_quantity": p.stock_quantity,
            "min_stock": p.min_stock,
            "cost_cents": p.cost_cents,
            "stock_value_cents": value,
            "status": status,
        })

    return {
        "product_count": len(products),
        "low_stock_count": low,
        "out_of_stock_count": out,
        "total_value_cents": total_value,
        "products": rows,
    }


def order_suggestion(days: int = DEFAULT_SUGGESTION_DAYS) -> dict:
    """
    Replenishment list from sales velocity over the last `days` days.

    A product needs ordering when it is at/below its minimum or would run
    out within 7 days. Suggested quantity covers 30 days of sales plus the
    minimum stock, minus what is on hand.
    """
    if not isinstance(days, int) or days <= 0 or days > 365:
        raise ValidationError([{"field": "days", "message": "days must be between 1 and 365"}])

    now = utcnow()
    totals = _product_totals(now - timedelta(days=days), now + timedelta(seconds=1))
    products = _products_by_id(row.product_id for row in totals)

    suggestions = []
    for row in totals:
        product = products[row.product_id]
        sold = int(row.quantity)
        daily = sold / days
        days_to_zero = product.stock_quantity / (daily or 1)

        needs_order = product.stock_quantity <= product.min_stock or days_to_zero < 7
        if not needs_order:
            continue

        suggested = math.ceil(daily * COVERAGE_DAYS) + product.min_stock - product.stock_quantity
        if days_to_zero < 3:
            priority = "HIGH"
        elif days_to_zero < 7:
            priority = "MEDIUM"
        else:
            priority = "LOW"

        suggestions.append({
            "id": product.id,
            "code": product.code,
            "name": product.name,
            "category": product.category,
            "stock_quantity": product.stock_quantity,
            "min_stock": product.min_stock,
            "quantity_sold": sold,
            "sale_count": int(row.sale_count),
            "daily_sales": round(daily, 2),
            "days_to_zero": round(days_to_zero, 1),
            "suggested_quantity": max(suggested, 0),
            "priority": priority,
        })

    suggestions.sort(key=lambda s: (PRIORITY_ORDER[s["priority"]], s["days_to_zero"]))
    return {
        "generated_at": to_utc_z(now),
        "days": days,
        "product_count": len(suggestions),
        "products": suggestions,
    }


def _classify(cumulative_pct: float) -> str:
    if cumulative_pct <= 80:
        return "A"
    if cumulative_pct <= 95:
        return "B"
    return "C"


def abc_curve(*, start: date | None = None, end: date | None = None) -> dict:
    """Pareto classification of products by revenue (A <= 80%, B <= 95%, C)."""
    end = end or utcnow().date()
    start = start or end - timedelta(days=DEFAULT_ABC_DAYS)
    if end < start:
        raise ValidationError([{"field": "end", "message": "end must not be before start"}])

    lower, upper = day_bounds(start, end)
    totals = _product_totals(lower, upper)
    products = _products_by_id(row.product_id for row in totals)

    ranked = sorted(totals, key=lambda row: (-int(row.revenue_cents), row.product_id))
    grand_total = sum(int(row.revenue_cents) for row in ranked)

    rows = []
    cumulative = 0.0
    for position, row in enumerate(ranked, start=1):
        revenue = int(row.revenue_cents)
        share = revenue * 100.0 / grand_total if grand_total else 0.0
        cumulative += share
        product = products[row.product_id]
        rows.append({
            "position": position,
            "id": product.id,
            "code": product.code,
            "name": product.name,
            "category": product.category,
            "quantity_sold": int(row.quantity),
            "sale_count": int(row.sale_count),
            "revenue_cents": revenue,
            "revenue_pct": round(share, 2),
            "cumulative_pct": round(cumulative, 2),
            "class": _classify(round(cumulative, 2)),
        })

    summary = {}
    for cls in ("A", "B", "C"):
        members = [r for r in rows if r["class"] == cls]
        summary[cls] = {
            "product_count": len(members),
            "product_pct": round(len(members) * 100.0 / len(rows), 1) if rows else 0.0,
            "revenue_cents": sum(r["revenue_cents"] for r in members),
            "revenue_pct": round(sum(r["revenue_pct"] for r in members), 1),
        }

    return {
        "start": to_iso_date(start),
        "end": to_iso_date(end),
        "total_revenue_cents": grand_total,
        "product_count": len(rows),
        "products": rows,
        "summary": summary,
    }
