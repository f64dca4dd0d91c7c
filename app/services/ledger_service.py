"""
Inventory ledger: the balance engine, reconciliation, and ledger queries.

The ledger table is the source of truth for stock. ``Product.quantity`` is a
cached projection of the latest ``balance_after`` for that product. Every
stock change goes through ``apply_movement``, which writes the ledger entry
first and then updates the projection as a separate step.

Movements for the same product are serialized in-process by a per-product
lock, and the product row is re-read inside the lock, so two concurrent
requests never compute their balance from the same stale quantity. The lock
does not extend across processes.
"""

import logging
import math
import threading
import weakref
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import datetime, time, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import InvalidMovement, PersistenceFailure, ProductNotFound, ProjectionUpdateFailure
from app.models.inventory_ledger import LedgerEntry, LedgerSource, LedgerType
from app.models.product import Product
from app.schemas.ledger import (
    Actor,
    LedgerAudit,
    LedgerEntryOut,
    LedgerMismatch,
    LedgerPage,
    LedgerQuery,
    MovementCreate,
    ReconcileResult,
)

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
# entries go away once no caller holds or waits on the lock
_product_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()


@contextmanager
def product_lock(product_id: str):
    """Hold the movement lock for one product."""
    with _locks_guard:
        lock = _product_locks.setdefault(product_id, threading.Lock())
    with lock:
        yield


# --- Balance engine ---

def compute_balance(current: float, movement_type: LedgerType, quantity: float) -> float:
    if movement_type == LedgerType.IN:
        new_balance = current + quantity
    elif movement_type == LedgerType.OUT:
        new_balance = current - quantity
    else:
        # ADJUSTMENT carries the absolute target level, not a delta
        new_balance = quantity
    return max(new_balance, 0)


def _validate_movement(data: MovementCreate) -> tuple[LedgerType, float, LedgerSource]:
    try:
        movement_type = LedgerType(data.type)
    except ValueError:
        raise InvalidMovement(f"unknown type '{data.type}'; expected one of IN, OUT, ADJUSTMENT") from None

    if data.quantity is None:
        raise InvalidMovement("quantity is required")
    try:
        quantity = float(data.quantity)
    except (TypeError, ValueError):
        raise InvalidMovement(f"quantity must be a number, got {data.quantity!r}") from None
    if not math.isfinite(quantity):
        raise InvalidMovement(f"quantity must be finite, got {data.quantity!r}")

    try:
        source = LedgerSource(data.source) if data.source else LedgerSource.ADJUSTMENT
    except ValueError:
        raise InvalidMovement(f"unknown source '{data.source}'") from None

    return movement_type, quantity, source


def _load_product(db: Session, product_id: str) -> Product | None:
    # populate_existing so a product already in the session is re-read
    return db.query(Product).populate_existing().filter(Product.id == product_id).first()


def append_entry(
    db: Session,
    product: Product,
    movement_type: LedgerType,
    quantity: float,
    balance_after: float,
    source: LedgerSource,
    data: MovementCreate,
    actor: Actor,
) -> LedgerEntry:
    """Persist one immutable ledger entry. Raises PersistenceFailure."""
    entry = LedgerEntry(
        product_id=product.id,
        sku=product.sku,
        product_name=product.name,
        type=movement_type.value,
        quantity=quantity,
        unit_cost=data.unit_cost,
        unit_price=data.unit_price,
        balance_after=balance_after,
        reference=data.reference or "",
        source=source.value,
        note=data.note or "",
        username=actor.username,
        user_role=actor.role,
    )
    product_id = product.id
    db.add(entry)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Ledger append failed for product %s: %s", product_id, e)
        raise PersistenceFailure(product_id, str(e)) from e
    db.refresh(entry)
    # entries never change, so keep the loaded copy out of later commits/rollbacks
    db.expunge(entry)
    return entry


def update_projection(db: Session, product: Product, balance: float) -> Product:
    """Set the cached stock level on the product."""
    product.quantity = balance
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(product)
    return product


def apply_movement(db: Session, data: MovementCreate, actor: Actor) -> LedgerEntry:
    """
    Apply one stock movement and return the ledger entry it produced.

    IN adds ``quantity``, OUT subtracts it, ADJUSTMENT sets the stock to
    ``quantity``. The result is clamped at zero.

    Raises InvalidMovement or ProductNotFound before anything is written,
    PersistenceFailure if the ledger append fails, and
    ProjectionUpdateFailure (carrying the written entry) if the product
    could not be updated afterwards.
    """
    movement_type, quantity, source = _validate_movement(data)

    with product_lock(data.product_id):
        product = _load_product(db, data.product_id)
        if not product:
            raise ProductNotFound(data.product_id)
        return _apply_locked(db, product, movement_type, quantity, source, data, actor)


def record_current_level(db: Session, product_id: str, note: str, actor: Actor) -> LedgerEntry:
    """
    Write a zero-effect ADJUSTMENT at the product's current level.

    The level is read under the product lock, so a movement that lands
    just before this one is kept rather than overwritten.
    """
    with product_lock(product_id):
        product = _load_product(db, product_id)
        if not product:
            raise ProductNotFound(product_id)
        data = MovementCreate(
            product_id=product_id,
            type=LedgerType.ADJUSTMENT.value,
            quantity=product.quantity,
            source=LedgerSource.ADJUSTMENT.value,
            note=note,
        )
        return _apply_locked(
            db, product, LedgerType.ADJUSTMENT, product.quantity, LedgerSource.ADJUSTMENT, data, actor
        )


def _apply_locked(
    db: Session,
    product: Product,
    movement_type: LedgerType,
    quantity: float,
    source: LedgerSource,
    data: MovementCreate,
    actor: Actor,
) -> LedgerEntry:
    # caller holds product_lock(product.id)
    previous = product.quantity
    new_balance = compute_balance(previous, movement_type, quantity)
    entry = append_entry(db, product, movement_type, quantity, new_balance, source, data, actor)

    try:
        update_projection(db, product, new_balance)
    except SQLAlchemyError as e:
        logger.warning(
            "Reconciliation needed: ledger entry %s for %s has balance %s but product update failed: %s",
            entry.id, entry.sku, new_balance, e,
        )
        raise ProjectionUpdateFailure(entry, str(e)) from e

    logger.info(
        "%s %s qty=%s balance %s -> %s (%s by %s)",
        entry.type, entry.sku, quantity, previous, new_balance, entry.source, actor.username or "-",
    )
    return entry


def apply_movements(db: Session, movements: Iterable[MovementCreate], actor: Actor) -> list[LedgerEntry]:
    """Apply movements one after another, in the order given."""
    return [apply_movement(db, m, actor) for m in movements]


# --- Reconciliation ---

def replay_entries(entries: Iterable[LedgerEntry], start: float = 0) -> list[float]:
    """Balances produced by replaying entries in order."""
    balances = []
    balance = start
    for entry in entries:
        balance = compute_balance(balance, LedgerType(entry.type), entry.quantity)
        balances.append(balance)
    return balances


def _get_product_by_sku(db: Session, sku: str) -> Product:
    product = db.query(Product).populate_existing().filter(Product.sku == sku).first()
    if not product:
        raise ProductNotFound(sku)
    return product


def get_entries_for_sku(db: Session, sku: str) -> list[LedgerEntry]:
    return (
        db.query(LedgerEntry)
        .filter(LedgerEntry.sku == sku)
        .order_by(LedgerEntry.created_at.asc())
        .all()
    )


def verify_product_ledger(db: Session, sku: str) -> LedgerAudit:
    """Replay a product's history and compare it with what was recorded."""
    product = _get_product_by_sku(db, sku)
    entries = get_entries_for_sku(db, sku)
    replayed = replay_entries(entries)

    mismatches = [
        LedgerMismatch(
            entry_id=entry.id,
            created_at=entry.created_at,
            recorded_balance=entry.balance_after,
            replayed_balance=balance,
        )
        for entry, balance in zip(entries, replayed)
        if not math.isclose(entry.balance_after, balance)
    ]
    in_sync = not entries or math.isclose(entries[-1].balance_after, product.quantity)

    return LedgerAudit(
        sku=sku,
        product_quantity=product.quantity,
        entry_count=len(entries),
        replayed_quantity=replayed[-1] if replayed else None,
        mismatches=mismatches,
        projection_in_sync=in_sync,
    )


def reconcile_product_quantity(db: Session, sku: str) -> ReconcileResult:
    """Reset the product's quantity to the balance of its latest ledger entry."""
    product = _get_product_by_sku(db, sku)

    with product_lock(product.id):
        product = _get_product_by_sku(db, sku)
        previous = product.quantity
        latest = (
            db.query(LedgerEntry)
            .filter(LedgerEntry.sku == sku)
            .order_by(LedgerEntry.created_at.desc())
            .first()
        )
        entry_count = db.query(func.count(LedgerEntry.id)).filter(LedgerEntry.sku == sku).scalar()

        changed = latest is not None and not math.isclose(latest.balance_after, previous)
        if changed:
            update_projection(db, product, latest.balance_after)
            logger.warning("Reconciled %s: quantity %s -> %s", sku, previous, latest.balance_after)
        else:
            logger.debug("Reconcile %s: already in sync (%s)", sku, previous)

    return ReconcileResult(
        sku=sku,
        product_id=product.id,
        previous_quantity=previous,
        reconciled_quantity=latest.balance_after if latest else previous,
        changed=changed,
        entry_count=entry_count,
    )


def reconcile_all(db: Session) -> list[ReconcileResult]:
    """Reconcile every product that has ledger history; return the corrected ones."""
    skus = (
        db.query(Product.sku)
        .filter(Product.id.in_(select(LedgerEntry.product_id).distinct()))
        .order_by(Product.sku)
        .all()
    )
    results = [reconcile_product_quantity(db, sku) for (sku,) in skus]
    return [r for r in results if r.changed]


# --- Queries ---

def list_ledger(db: Session, query: LedgerQuery) -> LedgerPage:
    q = db.query(LedgerEntry)
    if query.sku:
        q = q.filter(LedgerEntry.sku == query.sku)
    if query.type:
        q = q.filter(LedgerEntry.type == query.type)
    if query.search:
        q = q.filter(LedgerEntry.product_name.ilike(f"%{query.search}%"))
    if query.date_from:
        q = q.filter(LedgerEntry.created_at >= datetime.combine(query.date_from, time.min))
    if query.date_to:
        # whole day of date_to is included
        q = q.filter(LedgerEntry.created_at < datetime.combine(query.date_to + timedelta(days=1), time.min))

    total = q.count()

    if query.order == "asc":
        q = q.order_by(LedgerEntry.created_at.asc(), LedgerEntry.id.asc())
    else:
        q = q.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())

    page_size = min(query.page_size, settings.MAX_PAGE_SIZE)
    items = q.offset((query.page - 1) * page_size).limit(page_size).all()

    return LedgerPage(
        items=[LedgerEntryOut.model_validate(e) for e in items],
        total=total,
        page=query.page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )
