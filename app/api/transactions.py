from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.auth import get_current_actor, require_writer
from app.database import get_db
from app.schemas.ledger import Actor
from app.schemas.transaction import SaleCreate, TransactionOut, TransactionPage
from app.services import sale_service

router = APIRouter(prefix="/transactions", tags=["Sales"])


@router.post("", response_model=TransactionOut, status_code=201)
def create_sale(data: SaleCreate, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    try:
        return sale_service.create_sale(db, data, actor)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("", response_model=TransactionPage)
def list_transactions(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return sale_service.list_transactions(db, page=page, page_size=page_size)


@router.get("/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: str, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    tx = sale_service.get_transaction(db, transaction_id)
    if not tx:
        raise HTTPException(404, "Transaction not found")
    return tx
