from datetime import datetime, timedelta, timezone

import pytest

from app.models.inventory_ledger import LedgerEntry
from app.models.transaction import Transaction, TransactionItem
from app.schemas.transaction import ClientInfo, SaleCreate, SaleItemCreate
from app.services import product_service, report_service, sale_service

CLIENT = ClientInfo(name="Ravi", address="4 Lake View", email="ravi@example.com", whatsapp="+100200301")


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_entry(db, product, type, quantity, balance_after, created_at):
    db.add(
        LedgerEntry(
            product_id=product.id,
            sku=product.sku,
            product_name=product.name,
            type=type,
            quantity=quantity,
            balance_after=balance_after,
            created_at=created_at,
        )
    )
    db.commit()


def sell(db, actor, *lines):
    return sale_service.create_sale(
        db,
        SaleCreate(client=CLIENT, items=[SaleItemCreate(product_id=p.id, quantity=q) for p, q in lines]),
        actor,
    )


# --- date ranges ---

NOW = datetime(2026, 3, 31, 15, 30)


@pytest.mark.parametrize(
    "period, days, start",
    [
        ("daily", None, datetime(2026, 3, 1)),
        ("weekly", None, datetime(2026, 1, 6)),
        ("monthly", None, datetime(2025, 3, 31)),
        (None, 7, datetime(2026, 3, 24)),
        (None, None, datetime(2026, 3, 1)),
    ],
)
def test_resolve_date_range(period, days, start):
    assert report_service.resolve_date_range(period, days, now=NOW) == (start, NOW)


def test_monthly_range_clamps_to_month_end():
    start, _ = report_service.resolve_date_range("monthly", now=datetime(2024, 2, 29, 9, 0))
    assert start == datetime(2023, 2, 28)


# --- turnover ---

def test_turnover_from_ledger_window(db, make_product):
    now = utcnow()
    mugs = make_product(sku="TURN-P")
    add_entry(db, mugs, "OUT", 100, 0, now - timedelta(days=10))
    add_entry(db, mugs, "ADJUSTMENT", 20, 20, now - timedelta(hours=3))
    add_entry(db, mugs, "OUT", 5, 15, now - timedelta(hours=2))
    add_entry(db, mugs, "OUT", 3, 12, now - timedelta(hours=1))

    idle = make_product(sku="TURN-Q")
    add_entry(db, idle, "IN", 4, 4, now - timedelta(minutes=30))

    sold_out = make_product(sku="TURN-R")
    add_entry(db, sold_out, "OUT", 1, 0, now - timedelta(minutes=20))

    rows = report_service.turnover(db, now - timedelta(days=1), now)

    assert [r["sku"] for r in rows] == ["TURN-R", "TURN-P", "TURN-Q"]
    p = rows[1]
    assert p["units_sold"] == 8
    assert p["approx_ending"] == 12
    assert p["approx_starting"] == 20
    assert p["avg_inventory"] == 16
    assert p["turnover"] == pytest.approx(0.5)

    r = rows[0]
    assert r["avg_inventory"] == 1
    assert r["turnover"] == 1

    assert rows[2]["units_sold"] == 0
    assert rows[2]["turnover"] == 0


def test_turnover_skips_products_without_entries_in_window(db, make_product):
    now = utcnow()
    old = make_product(sku="TURN-OLD")
    add_entry(db, old, "OUT", 2, 3, now - timedelta(days=60))

    assert report_service.turnover(db, now - timedelta(days=30), now) == []


# --- stock reports ---

def test_low_stock_lists_active_products_at_or_below_minimum(db, actor, make_product):
    make_product(sku="LOW-A", quantity=5, min_quantity=10)
    make_product(sku="LOW-B", quantity=50, min_quantity=10)
    make_product(sku="LOW-D", quantity=10, min_quantity=10)
    gone = make_product(sku="LOW-C", quantity=0, min_quantity=10)
    product_service.deactivate_product(db, gone.id, actor)

    rows = report_service.low_stock(db)

    assert [(r["sku"], r["quantity"]) for r in rows] == [("LOW-A", 5), ("LOW-D", 10)]


def test_inventory_valuation(db, make_product):
    make_product(sku="VAL-A", quantity=10, cost=6.0, price=10.0, category="Other", min_quantity=5)
    make_product(sku="VAL-B", quantity=2, cost=5.0, price=8.0, category="Books", min_quantity=5)

    report = report_service.inventory_valuation(db)

    assert report["total_products"] == 2
    assert report["total_units_in_stock"] == 12
    assert report["total_value_at_cost"] == 70.0
    assert report["total_value_at_price"] == 116.0
    assert report["low_stock_count"] == 1
    assert [c["category"] for c in report["by_category"]] == ["Books", "Other"]
    assert report["by_category"][0]["value_at_cost"] == 10.0


# --- sales reports ---

def test_best_sellers_ranked_by_units(db, actor, make_product):
    pens = make_product(sku="BS-X", name="Pen", quantity=20, price=3.0)
    lamps = make_product(sku="BS-Y", name="Lamp", quantity=20, price=10.0)
    sell(db, actor, (pens, 3), (lamps, 1))
    sell(db, actor, (pens, 2))

    start, end = report_service.resolve_date_range(days=1)
    rows = report_service.best_sellers(db, start, end)

    assert rows == [
        {"sku": "BS-X", "name": "Pen", "units_sold": 5.0, "revenue": 15.0},
        {"sku": "BS-Y", "name": "Lamp", "units_sold": 1.0, "revenue": 10.0},
    ]


def test_sales_trends_daily_bucket(db, actor, make_product):
    pens = make_product(quantity=20, price=3.0, gst_percent=0)
    sell(db, actor, (pens, 1))
    sell(db, actor, (pens, 2))

    start, end = report_service.resolve_date_range("daily")
    buckets = report_service.sales_trends(db, start, end, "daily")

    assert len(buckets) == 1
    assert buckets[0]["count"] == 2
    assert buckets[0]["total"] == 9.0


def test_profit_margins(db, actor, make_product):
    pens = make_product(sku="PM-A", name="Pen", quantity=10, price=10.0, cost=6.0)
    stickers = make_product(sku="PM-B", name="Sticker", quantity=10, price=8.0, cost=0.0)
    sell(db, actor, (pens, 2), (stickers, 1))
    # a line whose product row is gone counts at cost 0
    db.add(
        Transaction(
            invoice_number="INV-OLD-1",
            client_name="Walk-in",
            total=10.0,
            items=[TransactionItem(product_id="retired", sku="PM-GONE", name="Retired", unit_price=5.0, quantity=2)],
        )
    )
    db.commit()

    start, end = report_service.resolve_date_range(days=1)
    report = report_service.profit_margins(db, start, end)

    [day] = report["time_series"]
    assert day["label"] == utcnow().strftime("%Y-%m-%d")
    assert day["revenue"] == 38.0
    assert day["cogs"] == 12.0
    assert day["profit"] == 26.0
    assert [(r["sku"], r["profit_margin_percent"]) for r in report["per_product"]] == [("PM-A", 66.67), ("PM-B", 0.0)]


def test_profit_margins_empty_range(db, make_product):
    make_product(sku="PM-C", price=5.0, cost=4.0)
    now = utcnow()

    report = report_service.profit_margins(db, now - timedelta(days=30), now - timedelta(days=29))

    assert report["time_series"] == []
    assert report["per_product"][0]["profit_margin_percent"] == 25.0
