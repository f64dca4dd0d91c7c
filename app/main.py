import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api import auth, ledger, products, purchase_orders, reports, transactions
from app.config import settings
from app.database import SessionLocal, init_db
from app.exceptions import (
    InsufficientStock,
    InvalidMovement,
    InvalidStateTransition,
    InventoryError,
    LedgerImmutable,
    PersistenceFailure,
    ProductNotFound,
    ProjectionUpdateFailure,
)
from app.services.auth_service import ensure_default_admin

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ProductNotFound: 404,
    InvalidMovement: 400,
    InsufficientStock: 400,
    InvalidStateTransition: 400,
    LedgerImmutable: 409,
    PersistenceFailure: 503,
    ProjectionUpdateFailure: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = SessionLocal()
    try:
        ensure_default_admin(db)
    finally:
        db.close()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="Product catalog, sales, purchases and an auditable inventory ledger",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    status = ERROR_STATUS.get(type(exc), 400)
    content = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, ProjectionUpdateFailure):
        content["entry_id"] = exc.entry.id
        content["sku"] = exc.entry.sku
    if status >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return JSON for unhandled exceptions so frontend can parse error."""
    logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.include_router(auth.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(ledger.router, prefix="/api/v1")
app.include_router(transactions.router, prefix="/api/v1")
app.include_router(purchase_orders.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")


@app.get("/health")
def health():
    return {"status": "ok"}
