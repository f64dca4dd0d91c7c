import threading
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, Text, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.exceptions import LedgerImmutable


class LedgerType(str, PyEnum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class LedgerSource(str, PyEnum):
    PURCHASE = "purchase"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    OPENING = "opening"


_clock_lock = threading.Lock()
_last_issued: datetime | None = None


def ledger_timestamp() -> datetime:
    """Naive UTC timestamp, strictly increasing within this process."""
    global _last_issued
    with _clock_lock:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if _last_issued is not None and now <= _last_issued:
            now = _last_issued + timedelta(microseconds=1)
        _last_issued = now
        return now


class LedgerEntry(Base):
    """Immutable record of one stock movement and the balance it produced."""

    __tablename__ = "inventory_ledger"
    __table_args__ = (Index("ix_inventory_ledger_sku_created_at", "sku", "created_at"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id: Mapped[str] = mapped_column(String, ForeignKey("products.id"), nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String, nullable=False)  # snapshot at write time
    type: Mapped[str] = mapped_column(String, nullable=False, index=True)  # IN, OUT, ADJUSTMENT
    # delta for IN/OUT, absolute target level for ADJUSTMENT
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    unit_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    balance_after: Mapped[float] = mapped_column(Float, nullable=False)
    reference: Mapped[str] = mapped_column(String, default="")  # invoice / PO number
    source: Mapped[str] = mapped_column(String, default=LedgerSource.ADJUSTMENT.value)
    note: Mapped[str] = mapped_column(Text, default="")
    username: Mapped[str] = mapped_column(String, default="")
    user_role: Mapped[str] = mapped_column(String, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=ledger_timestamp, index=True)


@event.listens_for(LedgerEntry, "before_update")
def _reject_ledger_update(mapper, connection, target):
    state = inspect(target)
    if any(attr.history.has_changes() for attr in state.attrs):
        raise LedgerImmutable(target.id, "update")


@event.listens_for(LedgerEntry, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise LedgerImmutable(target.id, "delete")
