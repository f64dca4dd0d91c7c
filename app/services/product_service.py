import logging
import math

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.inventory_ledger import LedgerSource, LedgerType
from app.models.product import Product
from app.schemas.ledger import Actor, MovementCreate
from app.schemas.product import ProductCreate, ProductOut, ProductPage, ProductUpdate
from app.services import ledger_service

logger = logging.getLogger(__name__)


def create_product(db: Session, data: ProductCreate, actor: Actor) -> Product:
    if get_product_by_sku(db, data.sku):
        raise ValueError(f"Product with SKU {data.sku} already exists")

    product = Product(
        sku=data.sku,
        name=data.name,
        description=data.description,
        category=data.category,
        price=data.price,
        cost=data.cost,
        gst_percent=data.gst_percent,
        quantity=0,
        min_quantity=data.min_quantity,
        location=data.location,
    )
    db.add(product)
    try:
        db.commit()
    except IntegrityError:
        # another request created the same SKU after the check above
        db.rollback()
        raise ValueError(f"Product with SKU {data.sku} already exists") from None
    db.refresh(product)
    logger.info("Created product %s (%s)", product.sku, product.id)

    if data.quantity > 0:
        ledger_service.apply_movement(
            db,
            MovementCreate(
                product_id=product.id,
                type=LedgerType.ADJUSTMENT.value,
                quantity=data.quantity,
                unit_cost=data.cost,
                source=LedgerSource.OPENING.value,
                note="Opening balance on product creation",
            ),
            actor,
        )
        db.refresh(product)

    return product


def get_product(db: Session, product_id: str) -> Product | None:
    return db.query(Product).filter(Product.id == product_id).first()


def get_product_by_sku(db: Session, sku: str) -> Product | None:
    return db.query(Product).filter(Product.sku == sku).first()


def lookup_product(db: Session, code: str) -> Product | None:
    """Exact SKU match first, then a name/description search."""
    product = get_product_by_sku(db, code)
    if product:
        return product
    pattern = f"%{code}%"
    return (
        db.query(Product)
        .filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        .order_by(Product.name)
        .first()
    )


def list_products(
    db: Session,
    page: int = 1,
    page_size: int = 10,
    search: str = "",
    category: str | None = None,
) -> ProductPage:
    q = db.query(Product).filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.description.ilike(pattern)))
    if category:
        q = q.filter(Product.category == category)

    page_size = min(page_size, settings.MAX_PAGE_SIZE)
    total = q.count()
    products = q.order_by(Product.created_at.desc(), Product.sku).offset((page - 1) * page_size).limit(page_size).all()
    return ProductPage(
        items=[ProductOut.model_validate(p) for p in products],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


def update_product(db: Session, product_id: str, data: ProductUpdate, actor: Actor) -> Product | None:
    """
    Apply a partial edit. Stock only moves when the payload explicitly
    carries a ``quantity`` different from the stored one; that change is
    recorded as an ADJUSTMENT to the new absolute level.
    """
    product = get_product(db, product_id)
    if not product:
        return None

    update_data = data.model_dump(exclude_unset=True)
    new_quantity = update_data.pop("quantity", None)
    for field, value in update_data.items():
        if value is not None:
            setattr(product, field, value)
    db.commit()
    db.refresh(product)

    if new_quantity is not None and not math.isclose(new_quantity, product.quantity):
        previous = product.quantity
        ledger_service.apply_movement(
            db,
            MovementCreate(
                product_id=product.id,
                type=LedgerType.ADJUSTMENT.value,
                quantity=new_quantity,
                source=LedgerSource.ADJUSTMENT.value,
                note=f"Manual edit (was {previous:g})",
            ),
            actor,
        )
        db.refresh(product)

    return product


def deactivate_product(db: Session, product_id: str, actor: Actor) -> Product | None:
    """Soft delete. Records a zero-effect ADJUSTMENT to attribute the change."""
    product = get_product(db, product_id)
    if not product:
        return None

    product.is_active = False
    db.commit()
    db.refresh(product)

    ledger_service.record_current_level(db, product.id, f"Product deactivated by {actor.username}", actor)
    db.refresh(product)
    logger.info("Deactivated product %s", product.sku)
    return product
