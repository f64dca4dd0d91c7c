import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.exceptions import InvalidStateTransition, ProductNotFound
from app.models.inventory_ledger import LedgerSource, LedgerType
from app.models.product import Product
from app.models.purchase_order import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus
from app.schemas.ledger import Actor, MovementCreate
from app.schemas.purchase_order import PurchaseOrderCreate, PurchaseOrderReceive
from app.services import ledger_service

logger = logging.getLogger(__name__)


def _generate_po_number() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    short = uuid.uuid4().hex[:6].upper()
    return f"PO-{ts}-{short}"


def create_purchase_order(db: Session, data: PurchaseOrderCreate) -> PurchaseOrder:
    po = PurchaseOrder(
        po_number=_generate_po_number(),
        supplier=data.supplier,
        notes=data.notes,
        status=PurchaseOrderStatus.PENDING,
    )

    for item_data in data.items:
        product = db.query(Product).filter(Product.id == item_data.product_id).first()
        if not product:
            raise ProductNotFound(item_data.product_id)
        po.items.append(
            PurchaseOrderItem(
                product_id=product.id,
                sku=product.sku,
                product_name=product.name,
                quantity_ordered=item_data.quantity_ordered,
                unit_cost=item_data.unit_cost,
            )
        )

    db.add(po)
    db.commit()
    db.refresh(po)
    return po


def get_purchase_order(db: Session, po_id: str) -> PurchaseOrder | None:
    return db.query(PurchaseOrder).filter(PurchaseOrder.id == po_id).first()


def list_purchase_orders(
    db: Session, skip: int = 0, limit: int = 100, status: PurchaseOrderStatus | None = None
) -> list[PurchaseOrder]:
    q = db.query(PurchaseOrder)
    if status:
        q = q.filter(PurchaseOrder.status == status)
    return q.order_by(PurchaseOrder.created_at.desc()).offset(skip).limit(limit).all()


def _transition(db: Session, po_id: str, allowed_from: tuple, target: PurchaseOrderStatus) -> PurchaseOrder | None:
    po = get_purchase_order(db, po_id)
    if not po:
        return None
    if po.status not in allowed_from:
        raise InvalidStateTransition(f"Cannot move purchase order from '{po.status.value}' to '{target.value}'")
    po.status = target
    db.commit()
    db.refresh(po)
    return po


def approve_purchase_order(db: Session, po_id: str) -> PurchaseOrder | None:
    return _transition(db, po_id, (PurchaseOrderStatus.PENDING,), PurchaseOrderStatus.APPROVED)


def complete_purchase_order(db: Session, po_id: str) -> PurchaseOrder | None:
    return _transition(db, po_id, (PurchaseOrderStatus.RECEIVING,), PurchaseOrderStatus.COMPLETED)


def cancel_purchase_order(db: Session, po_id: str) -> PurchaseOrder | None:
    return _transition(
        db,
        po_id,
        (PurchaseOrderStatus.PENDING, PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.RECEIVING),
        PurchaseOrderStatus.CANCELLED,
    )


def receive_items(db: Session, po_id: str, data: PurchaseOrderReceive, actor: Actor) -> PurchaseOrder | None:
    """Record a delivery and book the received units into stock as IN movements."""
    po = get_purchase_order(db, po_id)
    if not po:
        return None
    if po.status not in (PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.RECEIVING):
        raise InvalidStateTransition(f"Cannot receive items for purchase order in '{po.status.value}' status")

    item_map = {item.id: item for item in po.items}
    for recv in data.items:
        if recv.item_id not in item_map:
            raise ValueError(f"Purchase order item {recv.item_id} not found")
        if recv.quantity_received < 0:
            raise ValueError("Received quantity cannot be negative")

    po.status = PurchaseOrderStatus.RECEIVING
    for recv in data.items:
        item_map[recv.item_id].quantity_received += recv.quantity_received
    db.commit()
    db.refresh(po)

    movements = [
        MovementCreate(
            product_id=item_map[recv.item_id].product_id,
            type=LedgerType.IN.value,
            quantity=recv.quantity_received,
            unit_cost=item_map[recv.item_id].unit_cost,
            reference=po.po_number,
            source=LedgerSource.PURCHASE.value,
            note=f"Received from {po.supplier}" if po.supplier else "Supplier receipt",
        )
        for recv in data.items
        if recv.quantity_received > 0
    ]
    ledger_service.apply_movements(db, movements, actor)
    logger.info("Received %d line(s) on %s", len(movements), po.po_number)

    db.refresh(po)
    return po
