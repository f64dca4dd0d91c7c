from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.auth import get_current_actor, require_writer
from app.config import settings
from app.database import get_db
from app.schemas.ledger import (
    Actor,
    LedgerAudit,
    LedgerEntryOut,
    LedgerPage,
    LedgerQuery,
    MovementCreate,
    ReconcileResult,
    StockCountCreate,
)
from app.services import ledger_service, stock_count_service

router = APIRouter(tags=["Ledger"])


@router.get("/ledger", response_model=LedgerPage)
def list_ledger(
    sku: str | None = None,
    type: str | None = None,
    search: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    query = LedgerQuery(
        sku=sku,
        type=type,
        search=search,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size or settings.LEDGER_PAGE_SIZE,
        order=order,
    )
    return ledger_service.list_ledger(db, query)


@router.post("/ledger", response_model=LedgerEntryOut, status_code=201)
def create_movement(data: MovementCreate, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    return ledger_service.apply_movement(db, data, actor)


@router.get("/ledger/audit/{sku}", response_model=LedgerAudit)
def audit_ledger(sku: str, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Replay a product's ledger and compare it with the stored balances."""
    return ledger_service.verify_product_ledger(db, sku)


@router.post("/ledger/reconcile/{sku}", response_model=ReconcileResult)
def reconcile_product(sku: str, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    return ledger_service.reconcile_product_quantity(db, sku)


@router.post("/ledger/reconcile", response_model=list[ReconcileResult])
def reconcile_all(actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    """Reconcile every product with ledger history; returns the corrected ones."""
    return ledger_service.reconcile_all(db)


@router.post("/inventory/counts", response_model=list[LedgerEntryOut], status_code=201)
def submit_stock_count(data: StockCountCreate, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    return stock_count_service.apply_stock_count(db, data, actor)
