import calendar
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.models.inventory_ledger import LedgerEntry, LedgerType
from app.models.product import Product
from app.models.transaction import Transaction, TransactionItem


def _months_back(dt: datetime, months: int) -> datetime:
    month_index = dt.year * 12 + (dt.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def resolve_date_range(
    period: str | None = None, days: int | None = None, now: datetime | None = None
) -> tuple[datetime, datetime]:
    """daily: 30 days, weekly: 12 weeks, monthly: 12 months, else `days` (default 30)."""
    end = now or datetime.now(timezone.utc).replace(tzinfo=None)
    period = (period or "").lower()
    if period == "daily":
        start = end - timedelta(days=30)
    elif period == "weekly":
        start = end - timedelta(weeks=12)
    elif period == "monthly":
        start = _months_back(end, 12)
    else:
        d = days if days and days > 0 else settings.REPORT_DEFAULT_DAYS
        start = end - timedelta(days=d)
    return datetime.combine(start.date(), time.min), end


def inventory_valuation(db: Session) -> dict:
    products = db.query(Product).filter(Product.is_active.is_(True)).all()
    low_stock = [p for p in products if p.quantity <= p.min_quantity]

    return {
        "total_products": len(products),
        "total_units_in_stock": sum(p.quantity for p in products),
        "total_value_at_cost": round(sum(p.quantity * p.cost for p in products), 2),
        "total_value_at_price": round(sum(p.quantity * p.price for p in products), 2),
        "low_stock_count": len(low_stock),
        "by_category": _group_by_category(products),
    }


def _group_by_category(products: list[Product]) -> list[dict]:
    cats: dict[str, dict] = {}
    for p in products:
        cat = p.category or "Other"
        if cat not in cats:
            cats[cat] = {"category": cat, "product_count": 0, "total_units": 0, "value_at_cost": 0.0, "value_at_price": 0.0}
        cats[cat]["product_count"] += 1
        cats[cat]["total_units"] += p.quantity
        cats[cat]["value_at_cost"] += p.quantity * p.cost
        cats[cat]["value_at_price"] += p.quantity * p.price
    for v in cats.values():
        v["value_at_cost"] = round(v["value_at_cost"], 2)
        v["value_at_price"] = round(v["value_at_price"], 2)
    return sorted(cats.values(), key=lambda c: c["category"])


def low_stock(db: Session, limit: int = 200) -> list[dict]:
    products = (
        db.query(Product)
        .filter(Product.is_active.is_(True), Product.quantity <= Product.min_quantity)
        .order_by(Product.quantity.asc(), Product.sku)
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": p.id,
            "sku": p.sku,
            "name": p.name,
            "quantity": p.quantity,
            "min_quantity": p.min_quantity,
            "location": p.location,
        }
        for p in products
    ]


def best_sellers(db: Session, start: datetime, end: datetime, limit: int = 20) -> list[dict]:
    units = func.sum(TransactionItem.quantity)
    revenue = func.sum(TransactionItem.quantity * TransactionItem.unit_price)
    results = (
        db.query(
            TransactionItem.sku,
            TransactionItem.name,
            units.label("units_sold"),
            revenue.label("revenue"),
        )
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(Transaction.created_at >= start, Transaction.created_at <= end)
        .group_by(TransactionItem.sku, TransactionItem.name)
        .order_by(units.desc(), revenue.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "sku": r.sku,
            "name": r.name,
            "units_sold": float(r.units_sold),
            "revenue": round(float(r.revenue), 2),
        }
        for r in results
    ]


def turnover(db: Session, start: datetime, end: datetime, limit: int = 50) -> list[dict]:
    """
    Approximate inventory turnover per product from ledger balances.

    units_sold is the sum of OUT quantities in the window. The ending level
    is the balance after the last entry in the window; the starting level
    is rebuilt by adding units_sold back onto it. Receipts inside the window
    are not subtracted, so when IN and OUT both occur the starting level
    (and the resulting average) is overstated. Average inventory is floored
    at 1. Treat the figure as an indicator, not an accounting value.
    """
    entries = (
        db.query(LedgerEntry)
        .filter(LedgerEntry.created_at >= start, LedgerEntry.created_at <= end)
        .order_by(LedgerEntry.created_at.asc())
        .all()
    )

    per_product: dict[str, dict] = {}
    for e in entries:
        row = per_product.setdefault(
            e.product_id,
            {"product_id": e.product_id, "sku": e.sku, "name": e.product_name, "units_sold": 0.0},
        )
        if e.type == LedgerType.OUT.value:
            row["units_sold"] += e.quantity
        row["last_balance"] = e.balance_after

    results = []
    for row in per_product.values():
        approx_ending = row.pop("last_balance")
        approx_starting = approx_ending + row["units_sold"]
        avg_inventory = max((approx_starting + approx_ending) / 2, 1)
        row.update(
            approx_starting=approx_starting,
            approx_ending=approx_ending,
            avg_inventory=avg_inventory,
            turnover=row["units_sold"] / avg_inventory,
        )
        results.append(row)

    results.sort(key=lambda r: r["turnover"], reverse=True)
    return results[:limit]


def _bucket(dt: datetime, period: str) -> str:
    if period == "monthly":
        return dt.strftime("%Y-%m")
    if period == "daily":
        return dt.strftime("%Y-%m-%d")
    year, week, _ = dt.isocalendar()
    return f"{year}-W{week:02d}"


def sales_trends(db: Session, start: datetime, end: datetime, period: str = "weekly") -> list[dict]:
    rows = (
        db.query(Transaction.created_at, Transaction.total)
        .filter(Transaction.created_at >= start, Transaction.created_at <= end)
        .order_by(Transaction.created_at.asc())
        .all()
    )
    buckets: dict[str, dict] = {}
    for created_at, total in rows:
        label = _bucket(created_at, period)
        b = buckets.setdefault(label, {"label": label, "total": 0.0, "count": 0})
        b["total"] += total
        b["count"] += 1
    for b in buckets.values():
        b["total"] = round(b["total"], 2)
    return list(buckets.values())


def profit_margins(db: Session, start: datetime, end: datetime, limit: int = 50) -> dict:
    """
    Gross profit per day over the range, plus a margin snapshot per product.

    COGS uses each product's current cost, looked up by SKU; lines whose
    product no longer exists count at cost 0.
    """
    rows = (
        db.query(Transaction.created_at, TransactionItem.quantity, TransactionItem.unit_price, Product.cost)
        .join(TransactionItem, TransactionItem.transaction_id == Transaction.id)
        .outerjoin(Product, Product.sku == TransactionItem.sku)
        .filter(Transaction.created_at >= start, Transaction.created_at <= end)
        .order_by(Transaction.created_at.asc())
        .all()
    )
    days: dict[str, dict] = {}
    for created_at, quantity, unit_price, cost in rows:
        label = _bucket(created_at, "daily")
        d = days.setdefault(label, {"label": label, "revenue": 0.0, "cogs": 0.0})
        d["revenue"] += unit_price * quantity
        d["cogs"] += (cost or 0.0) * quantity
    for d in days.values():
        d["profit"] = round(d["revenue"] - d["cogs"], 2)
        d["revenue"] = round(d["revenue"], 2)
        d["cogs"] = round(d["cogs"], 2)

    products = db.query(Product).all()
    per_product = sorted(
        (
            {
                "sku": p.sku,
                "name": p.name,
                "price": p.price,
                "cost": p.cost,
                "quantity": p.quantity,
                "profit_margin_percent": p.profit_margin,
            }
            for p in products
        ),
        key=lambda r: r["profit_margin_percent"],
        reverse=True,
    )
    return {"time_series": list(days.values()), "per_product": per_product[:limit]}
