from datetime import date, datetime

from pydantic import BaseModel, Field


class Actor(BaseModel):
    """Resolved identity of whoever originates a movement."""

    username: str
    role: str


class MovementCreate(BaseModel):
    # type/quantity are checked by the balance engine so that in-process
    # callers get the same InvalidMovement error as API callers
    product_id: str
    type: str
    quantity: float | None = None
    unit_cost: float | None = None
    unit_price: float | None = None
    reference: str = ""
    source: str | None = None
    note: str = ""


class LedgerEntryOut(BaseModel):
    id: str
    product_id: str
    sku: str
    product_name: str
    type: str
    quantity: float
    unit_cost: float | None = None
    unit_price: float | None = None
    balance_after: float
    reference: str
    source: str
    note: str
    username: str
    user_role: str
    created_at: datetime

    model_config = {"from_attributes": True}


class LedgerQuery(BaseModel):
    sku: str | None = None
    type: str | None = None
    search: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)
    order: str = "desc"


class LedgerPage(BaseModel):
    items: list[LedgerEntryOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class StockCountLine(BaseModel):
    sku: str
    counted_quantity: float = Field(ge=0, allow_inf_nan=False)


class StockCountCreate(BaseModel):
    items: list[StockCountLine] = Field(min_length=1)
    reference: str = ""
    note: str = ""


class ReconcileResult(BaseModel):
    sku: str
    product_id: str
    previous_quantity: float
    reconciled_quantity: float
    changed: bool
    entry_count: int


class LedgerMismatch(BaseModel):
    entry_id: str
    created_at: datetime
    recorded_balance: float
    replayed_balance: float


class LedgerAudit(BaseModel):
    sku: str
    product_quantity: float
    entry_count: int
    replayed_quantity: float | None
    mismatches: list[LedgerMismatch] = []
    projection_in_sync: bool
