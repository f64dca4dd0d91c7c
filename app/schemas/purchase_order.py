from datetime import datetime

from pydantic import BaseModel, Field


class PurchaseOrderItemCreate(BaseModel):
    product_id: str
    quantity_ordered: float = Field(gt=0, allow_inf_nan=False)
    unit_cost: float = Field(default=0.0, ge=0)


class PurchaseOrderCreate(BaseModel):
    supplier: str = ""
    notes: str = ""
    items: list[PurchaseOrderItemCreate] = Field(min_length=1)


class PurchaseOrderItemReceive(BaseModel):
    item_id: str
    quantity_received: float = Field(allow_inf_nan=False)


class PurchaseOrderReceive(BaseModel):
    items: list[PurchaseOrderItemReceive]


class PurchaseOrderItemOut(BaseModel):
    id: str
    product_id: str
    sku: str
    product_name: str
    quantity_ordered: float
    quantity_received: float
    unit_cost: float

    model_config = {"from_attributes": True}


class PurchaseOrderOut(BaseModel):
    id: str
    po_number: str
    supplier: str
    status: str
    notes: str
    items: list[PurchaseOrderItemOut]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
