import logging

from sqlalchemy.orm import Session

from app.exceptions import ProductNotFound
from app.models.inventory_ledger import LedgerEntry, LedgerSource, LedgerType
from app.models.product import Product
from app.schemas.ledger import Actor, MovementCreate, StockCountCreate
from app.services import ledger_service

logger = logging.getLogger(__name__)


def apply_stock_count(db: Session, data: StockCountCreate, actor: Actor) -> list[LedgerEntry]:
    """
    Set each counted SKU to its counted level.

    All SKUs are resolved before anything is written, so an unknown SKU
    rejects the whole count.
    """
    skus = [line.sku for line in data.items]
    found = {p.sku: p for p in db.query(Product).filter(Product.sku.in_(skus)).all()}
    missing = [sku for sku in skus if sku not in found]
    if missing:
        raise ProductNotFound(", ".join(missing))

    note = "stock count" + (f": {data.note}" if data.note else "")
    movements = [
        MovementCreate(
            product_id=found[line.sku].id,
            type=LedgerType.ADJUSTMENT.value,
            quantity=line.counted_quantity,
            reference=data.reference,
            source=LedgerSource.ADJUSTMENT.value,
            note=note,
        )
        for line in data.items
    ]
    entries = ledger_service.apply_movements(db, movements, actor)
    logger.info("Stock count by %s: %d SKU(s) adjusted", actor.username, len(entries))
    return entries
