import gc
import math

import pytest
from sqlalchemy.exc import OperationalError

from app.exceptions import InvalidMovement, LedgerImmutable, PersistenceFailure, ProductNotFound, ProjectionUpdateFailure
from app.models.inventory_ledger import LedgerEntry, LedgerType, ledger_timestamp
from app.models.product import Product
from app.schemas.ledger import MovementCreate
from app.services import ledger_service


def move(db, actor, product, type, quantity, **kw):
    return ledger_service.apply_movement(
        db, MovementCreate(product_id=product.id, type=type, quantity=quantity, **kw), actor
    )


def entry_count(db):
    return db.query(LedgerEntry).count()


@pytest.mark.parametrize(
    "current, type, quantity, expected",
    [
        (10, LedgerType.IN, 5, 15),
        (10, LedgerType.OUT, 4, 6),
        (10, LedgerType.OUT, 25, 0),
        (10, LedgerType.ADJUSTMENT, 3, 3),
        (0, LedgerType.ADJUSTMENT, 0, 0),
        (5, LedgerType.IN, -8, 0),
    ],
)
def test_compute_balance(current, type, quantity, expected):
    assert ledger_service.compute_balance(current, type, quantity) == expected


def test_in_and_out_move_stock_by_delta(db, actor, make_product):
    product = make_product(quantity=10)

    entry = move(db, actor, product, "IN", 5)
    assert entry.balance_after == 15
    entry = move(db, actor, product, "OUT", 7)
    assert entry.balance_after == 8

    db.refresh(product)
    assert product.quantity == 8


def test_adjustment_sets_absolute_level(db, actor, make_product):
    product = make_product(quantity=40)

    entry = move(db, actor, product, "ADJUSTMENT", 12)

    assert entry.type == "ADJUSTMENT"
    assert entry.quantity == 12
    assert entry.balance_after == 12
    db.refresh(product)
    assert product.quantity == 12


def test_oversell_clamps_at_zero(db, actor, make_product):
    product = make_product(quantity=5)

    entry = move(db, actor, product, "OUT", 8)

    assert entry.quantity == 8
    assert entry.balance_after == 0
    db.refresh(product)
    assert product.quantity == 0


def test_entry_snapshots_product_and_actor(db, actor, make_product):
    product = make_product(sku="SNAP-1", name="Blue Mug", quantity=3)

    entry = move(
        db, actor, product, "IN", 2,
        unit_cost=4.5, reference="PO-7", source="purchase", note="restock",
    )

    assert entry.product_id == product.id
    assert entry.sku == "SNAP-1"
    assert entry.product_name == "Blue Mug"
    assert entry.unit_cost == 4.5
    assert entry.reference == "PO-7"
    assert entry.source == "purchase"
    assert entry.note == "restock"
    assert entry.username == "tester"
    assert entry.user_role == "manager"
    assert entry.created_at is not None


def test_source_defaults_to_adjustment(db, actor, make_product):
    product = make_product(quantity=1)
    entry = move(db, actor, product, "IN", 1)
    assert entry.source == "adjustment"


@pytest.mark.parametrize(
    "type, quantity",
    [
        ("TRANSFER", 1),
        ("in", 1),
        ("IN", None),
        ("OUT", float("nan")),
        ("ADJUSTMENT", float("inf")),
    ],
)
def test_invalid_movement_writes_nothing(db, actor, make_product, type, quantity):
    product = make_product(quantity=10)
    before = entry_count(db)

    with pytest.raises(InvalidMovement):
        move(db, actor, product, type, quantity)

    assert entry_count(db) == before
    db.refresh(product)
    assert product.quantity == 10


def test_unknown_source_is_rejected(db, actor, make_product):
    product = make_product(quantity=10)
    with pytest.raises(InvalidMovement):
        move(db, actor, product, "IN", 1, source="gift")


def test_unknown_product_writes_nothing(db, actor):
    with pytest.raises(ProductNotFound):
        ledger_service.apply_movement(db, MovementCreate(product_id="missing", type="IN", quantity=1), actor)
    assert entry_count(db) == 0


def test_persistence_failure_leaves_product_untouched(db, actor, make_product, monkeypatch):
    product = make_product(quantity=10)
    before = entry_count(db)

    def failing_commit():
        raise OperationalError("INSERT INTO inventory_ledger", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", failing_commit)
    with pytest.raises(PersistenceFailure) as excinfo:
        move(db, actor, product, "OUT", 4)
    monkeypatch.undo()

    assert excinfo.value.product_id == product.id
    assert entry_count(db) == before
    db.refresh(product)
    assert product.quantity == 10


def test_projection_failure_keeps_entry_and_can_be_reconciled(db, actor, make_product, monkeypatch):
    product = make_product(sku="PROJ-1", quantity=10)

    def failing_update(db, product, balance):
        raise OperationalError("UPDATE products", {}, Exception("database is locked"))

    monkeypatch.setattr(ledger_service, "update_projection", failing_update)
    with pytest.raises(ProjectionUpdateFailure) as excinfo:
        move(db, actor, product, "OUT", 4)
    monkeypatch.undo()

    entry = excinfo.value.entry
    assert entry.balance_after == 6
    assert entry.sku == "PROJ-1"
    assert db.query(LedgerEntry).filter(LedgerEntry.id == entry.id).count() == 1
    db.refresh(product)
    assert product.quantity == 10

    audit = ledger_service.verify_product_ledger(db, "PROJ-1")
    assert not audit.projection_in_sync

    result = ledger_service.reconcile_product_quantity(db, "PROJ-1")
    assert result.changed
    assert result.previous_quantity == 10
    assert result.reconciled_quantity == 6
    db.refresh(product)
    assert product.quantity == 6


def test_projection_matches_latest_entry(db, actor, make_product):
    product = make_product(quantity=20)
    for type, qty in [("OUT", 3), ("IN", 10), ("ADJUSTMENT", 7), ("OUT", 2)]:
        last = move(db, actor, product, type, qty)

    db.refresh(product)
    assert product.quantity == last.balance_after == 5


def test_ledger_timestamps_strictly_increase():
    stamps = [ledger_timestamp() for _ in range(2000)]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))


def test_ledger_entry_cannot_be_updated(db, actor, make_product):
    product = make_product(quantity=10)
    entry_id = move(db, actor, product, "OUT", 1).id

    entry = db.get(LedgerEntry, entry_id)
    entry.quantity = 99
    with pytest.raises(LedgerImmutable):
        db.commit()
    db.rollback()

    assert db.get(LedgerEntry, entry_id).quantity == 1


def test_ledger_entry_cannot_be_deleted(db, actor, make_product):
    product = make_product(quantity=10)
    entry_id = move(db, actor, product, "OUT", 1).id

    db.delete(db.get(LedgerEntry, entry_id))
    with pytest.raises(LedgerImmutable):
        db.commit()
    db.rollback()

    assert db.get(LedgerEntry, entry_id) is not None


def test_stale_product_in_session_is_reread(db, actor, make_product, session_factory):
    product = make_product(quantity=10)
    assert product.quantity == 10

    other = session_factory()
    try:
        ledger_service.apply_movement(other, MovementCreate(product_id=product.id, type="OUT", quantity=3), actor)
    finally:
        other.close()

    # product is still loaded in `db` with quantity 10
    entry = move(db, actor, product, "OUT", 2)
    assert entry.balance_after == 5
    assert math.isclose(db.get(Product, product.id).quantity, 5)


def test_product_locks_are_released_after_use(db, actor, make_product):
    product = make_product(quantity=3)

    with ledger_service.product_lock(product.id):
        assert product.id in ledger_service._product_locks
    move(db, actor, product, "IN", 1)

    gc.collect()
    assert product.id not in ledger_service._product_locks
