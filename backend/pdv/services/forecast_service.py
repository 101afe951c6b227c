# Overview: Service-layer operations for demand forecasting; read-only, derived from completed sales.

"""
Demand Forecast

Nothing here writes sales or stock. Forecasts are recomputed on every call
from COMPLETED sale lines, aggregated per calendar day (days without sales
are absent from the history, not zero).

MODEL (per future day i = 1..N):
- trend     = slope * (len(history) + i) + intercept  (least squares, x in days)
- base      = trend * w + ema * (1 - w), w = min(0.6, r2)
- adjusted  = base * weekday factor * seasonality factor (category, month)
- predicted = max(0, round(adjusted, 2))

CONFIDENCE:
0.5 + min(0.2, len(history) / 100) + r2 * 0.2 - min(0.3, (i - 1) * 0.04),
clamped to [0.1, 0.95]. With fewer than 3 days of history every day is
predicted as 0 with confidence 0.1.

Seasonality factors live in SeasonalityFactor rows; a missing row is 1.0.
Category matching is case-insensitive.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Product, Sale, SaleLine, SeasonalityFactor
from ..time_utils import to_iso_date, to_utc_z, utcnow


DEFAULT_ALPHA = 0.3
DEFAULT_FORECAST_DAYS = 7
DEFAULT_HISTORY_DAYS = 90
GENERAL_HISTORY_DAYS = 60
DEFAULT_GENERAL_LIMIT = 50
MAX_FORECAST_DAYS = 90
MAX_HISTORY_DAYS = 730
MIN_HISTORY_POINTS = 3
TREND_THRESHOLD = 0.1
FACTOR_MIN = 0.1
FACTOR_MAX = 3.0
MODEL_NAME = "COMBINED"
RISK_ORDER = {"CRITICAL": 0, "HIGH": 1, "MEDIUM": 2}
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


@dataclass
class DailySales:
    day: date
    quantity: int


@dataclass
class Trend:
    slope: float
    intercept: float
    r2: float


@dataclass
class ForecastPoint:
    day: date
    predicted_quantity: float
    confidence: float
    model: str = MODEL_NAME

    def to_dict(self) -> dict:
        return {
            "date": to_iso_date(self.day),
            "predicted_quantity": self.predicted_quantity,
            "confidence": self.confidence,
            "model": self.model,
        }


# Pure math

def exponential_moving_average(values: list[float], alpha: float = DEFAULT_ALPHA) -> float:
    """EMA seeded with the first value; alpha is clamped to [0.01, 1]."""
    if not values:
        return 0.0
    alpha = max(0.01, min(1.0, alpha))
    ema = float(values[0])
    for value in values[1:]:
        ema = alpha * value + (1 - alpha) * ema
    return ema


def linear_trend(history: list[DailySales]) -> Trend:
    """Least-squares line over (days since first sale, quantity)."""
    if len(history) < 2:
        return Trend(slope=0.0, intercept=float(history[0].quantity) if history else 0.0, r2=0.0)

    ordered = sorted(history, key=lambda h: h.day)
    first = ordered[0].day
    xs = [(h.day - first).days for h in ordered]
    ys = [h.quantity for h in ordered]
    n = len(xs)

    mean_x = sum(xs) / n
    mean_y = sum(ys) / n
    numerator = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    denominator = sum((x - mean_x) ** 2 for x in xs)

    slope = numerator / denominator if denominator else 0.0
    intercept = mean_y - slope * mean_x

    ss_res = sum((y - (slope * x + intercept)) ** 2 for x, y in zip(xs, ys))
    ss_tot = sum((y - mean_y) ** 2 for y in ys)
    r2 = max(0.0, 1 - ss_res / ss_tot) if ss_tot else 0.0

    return Trend(slope=slope, intercept=intercept, r2=r2)


def weekday_factors(history: list[DailySales]) -> dict[int, float]:
    """
    Mean quantity per weekday (Monday=0) relative to the mean of the
    weekdays that had sales. Weekdays without data get 1.0.
    """
    buckets: dict[int, list[int]] = {day: [] for day in range(7)}
    for h in history:
        buckets[h.day.weekday()].append(h.quantity)

    means = {day: (sum(values) / len(values) if values else 0.0) for day, values in buckets.items()}
    positive = [m for m in means.values() if m > 0]
    overall = sum(positive) / max(1, len(positive))

    return {day: (m / overall if m > 0 and overall > 0 else 1.0) for day, m in means.items()}


def _confidence(points: int, r2: float, day_offset: int) -> float:
    confidence = 0.5
    confidence += min(0.2, points / 100)
    confidence += r2 * 0.2
    confidence -= min(0.3, (day_offset - 1) * 0.04)
    return round(max(0.1, min(0.95, confidence)), 2)


def trend_direction(slope: float) -> str:
    if slope > TREND_THRESHOLD:
        return "GROWING"
    if slope < -TREND_THRESHOLD:
        return "DECLINING"
    return "STABLE"


# Data access

def _check_days(value: int, field: str, upper: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1 or value > upper:
        raise ValidationError([{"field": field, "message": f"{field} must be between 1 and {upper}"}])
    return value


def _get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def sales_history(product_id: int, history_days: int = DEFAULT_HISTORY_DAYS) -> list[DailySales]:
    """Quantities of COMPLETED sales per calendar day, oldest first."""
    since = utcnow() - timedelta(days=history_days)
    rows = (
        db.session.query(Sale.created_at, SaleLine.quantity)
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(
            SaleLine.product_id == product_id,
            Sale.status == "COMPLETED",
            Sale.created_at >= since,
        )
        .all()
    )

    per_day: dict[date, int] = {}
    for created_at, quantity in rows:
        per_day[created_at.date()] = per_day.get(created_at.date(), 0) + quantity
    return [DailySales(day=day, quantity=qty) for day, qty in sorted(per_day.items())]


def seasonality_map() -> dict[tuple[str, int], float]:
    rows = db.session.query(SeasonalityFactor).all()
    return {(row.category.lower(), row.month): row.factor for row in rows}


def forecast_from_history(
    history: list[DailySales],
    *,
    category: str,
    days: int,
    start: date,
    seasonality: dict[tuple[str, int], float] | None = None,
) -> list[ForecastPoint]:
    """Forecast the `days` days after `start` from an already loaded history."""
    if len(history) < MIN_HISTORY_POINTS:
        return [
            ForecastPoint(day=start + timedelta(days=i), predicted_quantity=0.0, confidence=0.1)
            for i in range(1, days + 1)
        ]

    seasonality = seasonality or {}
    ema = exponential_moving_average([h.quantity for h in history])
    trend = linear_trend(history)
    by_weekday = weekday_factors(history)
    trend_weight = min(0.6, trend.r2)

    points = []
    for i in range(1, days + 1):
        day = start + timedelta(days=i)
        trend_value = trend.slope * (len(history) + i) + trend.intercept
        value = trend_value * trend_weight + ema * (1 - trend_weight)
        value *= by_weekday.get(day.weekday(), 1.0)
        value *= seasonality.get((category.lower(), day.month), 1.0)
        points.append(ForecastPoint(
            day=day,
            predicted_quantity=max(0.0, round(value, 2)),
            confidence=_confidence(len(history), trend.r2, i),
        ))
    return points


def forecast_product(
    product_id: int,
    days: int = DEFAULT_FORECAST_DAYS,
    history_days: int = DEFAULT_HISTORY_DAYS,
    *,
    seasonality: dict[tuple[str, int], float] | None = None,
) -> list[ForecastPoint]:
    product = _get_product(product_id)
    if seasonality is None:
        seasonality = seasonality_map()
    return forecast_from_history(
        sales_history(product.id, history_days),
        category=product.category,
        days=days,
        start=utcnow().date(),
        seasonality=seasonality,
    )


# Reports

def product_forecast_report(
    product_id: int,
    *,
    days: int = DEFAULT_FORECAST_DAYS,
    history_days: int = DEFAULT_HISTORY_DAYS,
) -> dict:
    """History, fitted statistics and the day-by-day forecast for one product."""
    _check_days(days, "days", MAX_FORECAST_DAYS)
    _check_days(history_days, "history_days", MAX_HISTORY_DAYS)
    product = _get_product(product_id)

    history = sales_history(product.id, history_days)
    points = forecast_from_history(
        history,
        category=product.category,
        days=days,
        start=utcnow().date(),
        seasonality=seasonality_map(),
    )
    ema = exponential_moving_average([h.quantity for h in history])
    trend = linear_trend(history)
    total = sum(p.predicted_quantity for p in points)

    return {
        "product": {
            "id": product.id,
            "code": product.code,
            "name": product.name,
            "category": product.category,
            "stock_quantity": product.stock_quantity,
            "min_stock": product.min_stock,
        },
        "history": [{"date": to_iso_date(h.day), "quantity": h.quantity} for h in history],
        "statistics": {
            "history_days": history_days,
            "days_with_sales": len(history),
            "ema": round(ema, 2),
            "trend": {
                "direction": trend_direction(trend.slope),
                "growth_rate": round(trend.slope, 3),
                "model_quality": round(trend.r2, 2),
            },
        },
        "forecast": [p.to_dict() for p in points],
        "next_days": {
            "days": days,
            "total": round(total, 1),
            "average_confidence": round(sum(p.confidence for p in points) / len(points), 2),
        },
    }


def _days_until_empty(stock: int, daily_demand: float) -> int | None:
    if daily_demand <= 0:
        return None
    return math.floor(stock / daily_demand)


def general_forecast(
    *,
    days: int = DEFAULT_FORECAST_DAYS,
    category: str | None = None,
    limit: int = DEFAULT_GENERAL_LIMIT,
) -> dict:
    """
    Forecast for the active products with the lowest stock.

    needs_restock is set when the stock runs out within the forecast
    window. Products without forecast demand sort last.
    """
    _check_days(days, "days", MAX_FORECAST_DAYS)
    _check_days(limit, "limit", 500)

    query = db.session.query(Product).filter(Product.status == "ACTIVE")
    if category:
        query = query.filter(Product.category == category)
    products = query.order_by(Product.stock_quantity.asc(), Product.id.asc()).limit(limit).all()

    seasonality = seasonality_map()
    today = utcnow().date()
    items = []
    for product in products:
        points = forecast_from_history(
            sales_history(product.id, GENERAL_HISTORY_DAYS),
            category=product.category,
            days=days,
            start=today,
            seasonality=seasonality,
        )
        demand = sum(p.predicted_quantity for p in points)
        until_empty = _days_until_empty(product.stock_quantity, demand / days)
        items.append({
            "product": {
                "id": product.id,
                "code": product.code,
                "name": product.name,
                "category": product.category,
            },
            "stock_quantity": product.stock_quantity,
            "min_stock": product.min_stock,
            "predicted_demand": round(demand, 1),
            "average_confidence": round(sum(p.confidence for p in points) / len(points), 2),
            "days_until_empty": until_empty,
            "needs_restock": until_empty is not None and until_empty <= days,
        })

    items.sort(key=lambda item: (item["days_until_empty"] is None, item["days_until_empty"] or 0))

    return {
        "period": {
            "days": days,
            "start": to_iso_date(today),
            "end": to_iso_date(today + timedelta(days=days)),
        },
        "summary": {
            "product_count": len(items),
            "needs_restock_count": sum(1 for item in items if item["needs_restock"]),
            "category_count": len({item["product"]["category"] for item in items}),
        },
        "products": items,
    }


def _risk_level(stock: int, min_stock: int, until_empty: int | None) -> str | None:
    if stock <= 0 or (until_empty is not None and until_empty <= 2):
        return "CRITICAL"
    if (until_empty is not None and until_empty <= 5) or stock <= min_stock:
        return "HIGH"
    if until_empty is not None and until_empty <= 10:
        return "MEDIUM"
    return None


def stockout_risk() -> list[dict]:
    """
    Active products that may run out, from a 7 day forecast.

    Levels: CRITICAL (stock <= 0 or empty within 2 days), HIGH (within 5
    days or at/below min_stock), MEDIUM (within 10 days). Lower risk is
    left out. Sorted by level, then by days until empty.
    """
    seasonality = seasonality_map()
    today = utcnow().date()
    results = []
    products = db.session.query(Product).filter(Product.status == "ACTIVE").order_by(Product.id.asc()).all()
    for product in products:
        points = forecast_from_history(
            sales_history(product.id, GENERAL_HISTORY_DAYS),
            category=product.category,
            days=7,
            start=today,
            seasonality=seasonality,
        )
        demand = sum(p.predicted_quantity for p in points)
        until_empty = _days_until_empty(product.stock_quantity, demand / 7)
        level = _risk_level(product.stock_quantity, product.min_stock, until_empty)
        if level is None:
            continue
        results.append({
            "id": product.id,
            "code": product.code,
            "name": product.name,
            "category": product.category,
            "stock_quantity": product.stock_quantity,
            "min_stock": product.min_stock,
            "predicted_demand_7_days": round(demand, 1),
            "days_until_empty": until_empty,
            "risk_level": level,
        })

    results.sort(key=lambda r: (
        RISK_ORDER[r["risk_level"]],
        r["days_until_empty"] is None,
        r["days_until_empty"] or 0,
    ))
    return results


def stockout_report() -> dict:
    risks = stockout_risk()
    counts = {level: sum(1 for r in risks if r["risk_level"] == level) for level in RISK_ORDER}
    alerts = []
    for r in risks:
        if r["risk_level"] != "CRITICAL":
            continue
        when = f"{r['days_until_empty']} days" if r["days_until_empty"] is not None else "no forecast"
        alerts.append(f"{r['name']} ({r['code']}) - stock {r['stock_quantity']}, runs out in {when}")
    return {
        "analysed_at": to_utc_z(utcnow()),
        "summary": {
            "at_risk": len(risks),
            "critical": counts["CRITICAL"],
            "high": counts["HIGH"],
            "medium": counts["MEDIUM"],
        },
        "products": risks,
        "alerts": alerts,
    }


def forecast_dashboard() -> dict:
    """Widget data: risk counts and the five most urgent products."""
    risks = stockout_risk()
    return {
        "at_risk": len(risks),
        "critical": sum(1 for r in risks if r["risk_level"] == "CRITICAL"),
        "high": sum(1 for r in risks if r["risk_level"] == "HIGH"),
        "highlights": risks[:5],
    }


# Seasonality

def list_seasonality() -> dict:
    """
    Twelve factors per category: every active product category plus any
    category that has stored factors. Months without a row show 1.0.
    """
    categories = {
        row[0]
        for row in db.session.query(Product.category).filter(Product.status == "ACTIVE").distinct().all()
    }
    stored = (
        db.session.query(SeasonalityFactor)
        .order_by(SeasonalityFactor.category.asc(), SeasonalityFactor.month.asc())
        .all()
    )
    categories.update(row.category for row in stored)

    grid = {
        category: [
            {"month": month, "month_name": MONTH_NAMES[month - 1], "factor": 1.0, "id": None}
            for month in range(1, 13)
        ]
        for category in categories
    }
    for row in stored:
        grid[row.category][row.month - 1].update(factor=row.factor, id=row.id)

    return {
        "months": list(MONTH_NAMES),
        "categories": [{"category": category, "factors": grid[category]} for category in sorted(grid)],
    }


def _parse_factor(item, idx: int) -> tuple[str, int, float]:
    if not isinstance(item, dict):
        raise ValidationError([{"field": f"factors[{idx}]", "message": "item must be an object"}])

    errors = []
    category = item.get("category")
    if not isinstance(category, str) or not category.strip():
        errors.append({"field": f"factors[{idx}].category", "message": "category is required"})
    month = item.get("month")
    if not isinstance(month, int) or isinstance(month, bool) or not 1 <= month <= 12:
        errors.append({"field": f"factors[{idx}].month", "message": "month must be an integer between 1 and 12"})
    factor = item.get("factor")
    if (
        not isinstance(factor, (int, float))
        or isinstance(factor, bool)
        or not math.isfinite(factor)
        or not FACTOR_MIN <= factor <= FACTOR_MAX
    ):
        errors.append({
            "field": f"factors[{idx}].factor",
            "message": f"factor must be a number between {FACTOR_MIN} and {FACTOR_MAX}",
        })
    if errors:
        raise ValidationError(errors)
    return category.strip(), month, float(factor)


def set_seasonality(factors) -> dict:
    """Upsert (category, month) factors; all or nothing."""
    if not isinstance(factors, list) or not factors:
        raise ValidationError([{"field": "factors", "message": "factors must be a non-empty list"}])

    parsed = []
    errors = []
    for idx, item in enumerate(factors):
        try:
            parsed.append(_parse_factor(item, idx))
        except ValidationError as e:
            errors.extend(e.fields)
    if errors:
        raise ValidationError(errors)

    created = 0
    updated = 0
    for category, month, factor in parsed:
        row = db.session.query(SeasonalityFactor).filter_by(category=category, month=month).first()
        if row:
            row.factor = factor
            updated += 1
        else:
            db.session.add(SeasonalityFactor(category=category, month=month, factor=factor))
            db.session.flush()
            created += 1
    db.session.commit()
    return {"created": created, "updated": updated}
