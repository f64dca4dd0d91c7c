from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.auth import get_current_actor, require_writer
from app.database import get_db
from app.schemas.ledger import Actor
from app.schemas.product import ProductCreate, ProductOut, ProductPage, ProductUpdate
from app.services import product_service

router = APIRouter(prefix="/products", tags=["Products"])


@router.post("", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    try:
        return product_service.create_product(db, data, actor)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("", response_model=ProductPage)
def list_products(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1),
    search: str = "",
    category: str | None = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return product_service.list_products(db, page=page, page_size=page_size, search=search, category=category)


@router.get("/lookup")
def lookup_product(
    code: str = Query(..., min_length=1, description="SKU or scanned code"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Lookup by exact SKU, falling back to a name/description match."""
    product = product_service.lookup_product(db, code.strip())
    return {"product": ProductOut.model_validate(product) if product else None}


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    product = product_service.get_product(db, product_id)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    data: ProductUpdate,
    actor: Actor = Depends(require_writer),
    db: Session = Depends(get_db),
):
    product = product_service.update_product(db, product_id, data, actor)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@router.delete("/{product_id}", response_model=ProductOut)
def deactivate_product(product_id: str, actor: Actor = Depends(require_writer), db: Session = Depends(get_db)):
    product = product_service.deactivate_product(db, product_id, actor)
    if not product:
        raise HTTPException(404, "Product not found")
    return product
