import logging
import math
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.exceptions import InsufficientStock, ProductNotFound
from app.models.inventory_ledger import LedgerEntry, LedgerSource, LedgerType
from app.models.product import Product
from app.models.transaction import Transaction, TransactionItem
from app.schemas.ledger import Actor, MovementCreate
from app.schemas.transaction import SaleCreate, TransactionOut, TransactionPage
from app.services import ledger_service

logger = logging.getLogger(__name__)


def _generate_invoice_number() -> str:
    day = datetime.now(timezone.utc).strftime("%Y%m%d")
    short = uuid.uuid4().hex[:6].upper()
    return f"INV-{day}-{short}"


def _check_stock(products: dict[str, Product], data: SaleCreate) -> None:
    # Lines for the same product are summed, so two lines of 6 against a
    # stock of 10 are refused up front.
    requested: dict[str, float] = {}
    for item in data.items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity
    for product_id, qty in requested.items():
        product = products[product_id]
        if qty > product.quantity:
            raise InsufficientStock(product.sku, product.quantity, qty)


def create_sale(db: Session, data: SaleCreate, actor: Actor) -> Transaction:
    """
    Check out a sale and take the sold units out of stock.

    Stock is validated before anything is written. The transaction is
    saved first, then one OUT movement is applied per line item, strictly
    in the order the items were submitted.
    """
    ids = {item.product_id for item in data.items}
    products = {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()}
    for item in data.items:
        product = products.get(item.product_id)
        if not product:
            raise ProductNotFound(item.product_id)
        if not product.is_active:
            raise ValueError(f"Product {product.sku} is inactive")

    _check_stock(products, data)

    tx = Transaction(
        invoice_number=_generate_invoice_number(),
        client_name=data.client.name,
        client_address=data.client.address,
        client_email=data.client.email,
        client_whatsapp=data.client.whatsapp,
        username=actor.username,
    )

    subtotal = 0.0
    line_tax_total = 0.0
    for position, item in enumerate(data.items):
        product = products[item.product_id]
        line_total = product.price * item.quantity
        line_tax = line_total * (product.gst_percent / 100)
        subtotal += line_total
        line_tax_total += line_tax
        tx.items.append(
            TransactionItem(
                position=position,
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                unit_price=product.price,
                quantity=item.quantity,
                line_total=line_total,
                gst_percent=product.gst_percent,
                line_tax=line_tax,
            )
        )

    discount = data.discount or 0.0
    if data.discount_percent and data.discount_percent > 0:
        discount = subtotal * (data.discount_percent / 100)
    tax = data.tax if data.tax is not None else round(line_tax_total, 2)

    tx.subtotal = round(subtotal, 2)
    tx.tax = tax
    tx.discount = round(discount, 2)
    tx.discount_percent = data.discount_percent or 0.0
    tx.total = round(subtotal + tax - discount, 2)

    db.add(tx)
    db.commit()
    db.refresh(tx)
    logger.info("Sale %s for %s: %d lines, total %.2f", tx.invoice_number, tx.client_name, len(tx.items), tx.total)

    record_sale_movements(db, tx, actor)
    db.refresh(tx)
    return tx


def record_sale_movements(db: Session, tx: Transaction, actor: Actor) -> list[LedgerEntry]:
    movements = [
        MovementCreate(
            product_id=item.product_id,
            type=LedgerType.OUT.value,
            quantity=item.quantity,
            unit_price=item.unit_price,
            reference=tx.invoice_number,
            source=LedgerSource.SALE.value,
            note=f"Sale to {tx.client_name}",
        )
        for item in tx.items
    ]
    return ledger_service.apply_movements(db, movements, actor)


def get_transaction(db: Session, transaction_id: str) -> Transaction | None:
    return db.query(Transaction).filter(Transaction.id == transaction_id).first()


def list_transactions(db: Session, page: int = 1, page_size: int = 10) -> TransactionPage:
    q = db.query(Transaction)
    total = q.count()
    rows = q.order_by(Transaction.created_at.desc()).offset((page - 1) * page_size).limit(page_size).all()
    return TransactionPage(
        items=[TransactionOut.model_validate(t) for t in rows],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )
