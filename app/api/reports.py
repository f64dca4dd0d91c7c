from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.auth import get_current_actor
from app.database import get_db
from app.schemas.ledger import Actor
from app.services import report_service

router = APIRouter(prefix="/reports", tags=["Reports"])

PERIOD_PATTERN = "^(daily|weekly|monthly)$"


@router.get("/valuation")
def valuation_report(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return report_service.inventory_valuation(db)


@router.get("/low-stock")
def low_stock_report(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return report_service.low_stock(db)


@router.get("/best-sellers")
def best_sellers_report(
    period: str | None = Query(None, pattern=PERIOD_PATTERN),
    days: int | None = Query(None, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    start, end = report_service.resolve_date_range(period, days)
    return report_service.best_sellers(db, start, end, limit=limit)


@router.get("/turnover")
def turnover_report(
    period: str | None = Query(None, pattern=PERIOD_PATTERN),
    days: int | None = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    start, end = report_service.resolve_date_range(period, days)
    return report_service.turnover(db, start, end)


@router.get("/sales-trends")
def sales_trends_report(
    period: str = Query("weekly", pattern=PERIOD_PATTERN),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    start, end = report_service.resolve_date_range(period)
    return report_service.sales_trends(db, start, end, period)


@router.get("/profit-margins")
def profit_margins_report(
    period: str | None = Query(None, pattern=PERIOD_PATTERN),
    days: int | None = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    start, end = report_service.resolve_date_range(period, days)
    return report_service.profit_margins(db, start, end)
