from datetime import datetime

from pydantic import BaseModel, Field


class ClientInfo(BaseModel):
    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    email: str = Field(min_length=1)
    whatsapp: str = Field(min_length=1)


class SaleItemCreate(BaseModel):
    product_id: str
    quantity: float = Field(gt=0, allow_inf_nan=False)


class SaleCreate(BaseModel):
    client: ClientInfo
    items: list[SaleItemCreate] = Field(min_length=1)
    tax: float | None = None  # None = sum of per-line GST
    discount: float = 0.0
    discount_percent: float = 0.0


class TransactionItemOut(BaseModel):
    product_id: str
    sku: str
    name: str
    unit_price: float
    quantity: float
    line_total: float
    gst_percent: float
    line_tax: float

    model_config = {"from_attributes": True}


class TransactionOut(BaseModel):
    id: str
    invoice_number: str
    client_name: str
    client_address: str
    client_email: str
    client_whatsapp: str
    items: list[TransactionItemOut]
    subtotal: float
    tax: float
    discount: float
    discount_percent: float
    total: float
    username: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionPage(BaseModel):
    items: list[TransactionOut]
    total: int
    page: int
    page_size: int
    total_pages: int
