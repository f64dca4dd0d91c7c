from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.auth import get_current_actor, require_writer
from app.database import get_db
from app.models.purchase_order import PurchaseOrderStatus
from app.schemas.ledger import Actor
from app.schemas.purchase_order import PurchaseOrderCreate, PurchaseOrderOut, PurchaseOrderReceive
from app.services import purchase_service

router = APIRouter(prefix="/purchase-orders", tags=["Purchase Orders"])


def _or_404(po):
    if not po:
        raise HTTPException(404, "Purchase order not found")
    return po


@router.post("", response_model=PurchaseOrderOut, status_code=201)
def create_purchase_order(data: PurchaseOrderCreate, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    return purchase_service.create_purchase_order(db, data)


@router.get("", response_model=list[PurchaseOrderOut])
def list_purchase_orders(
    skip: int = 0,
    limit: int = 100,
    status: PurchaseOrderStatus | None = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return purchase_service.list_purchase_orders(db, skip=skip, limit=limit, status=status)


@router.get("/{po_id}", response_model=PurchaseOrderOut)
def get_purchase_order(po_id: str, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return _or_404(purchase_service.get_purchase_order(db, po_id))


@router.post("/{po_id}/approve", response_model=PurchaseOrderOut)
def approve_purchase_order(po_id: str, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    return _or_404(purchase_service.approve_purchase_order(db, po_id))


@router.post("/{po_id}/receive", response_model=PurchaseOrderOut)
def receive_items(
    po_id: str,
    data: PurchaseOrderReceive,
    actor: Actor = Depends(require_writer),
    db: Session = Depends(get_db),
):
    try:
        po = purchase_service.receive_items(db, po_id, data, actor)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return _or_404(po)


@router.post("/{po_id}/complete", response_model=PurchaseOrderOut)
def complete_purchase_order(po_id: str, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    return _or_404(purchase_service.complete_purchase_order(db, po_id))


@router.post("/{po_id}/cancel", response_model=PurchaseOrderOut)
def cancel_purchase_order(po_id: str, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    return _or_404(purchase_service.cancel_purchase_order(db, po_id))
