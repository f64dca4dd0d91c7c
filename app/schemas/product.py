from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.config import settings
from app.models.product import CATEGORIES


def _check_category(v):
    if v is not None and v not in CATEGORIES:
        raise ValueError(f"Invalid category '{v}'. Must be one of: {', '.join(CATEGORIES)}")
    return v


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    category: str = "Other"
    price: float = Field(ge=0)
    cost: float = Field(ge=0)
    gst_percent: float = Field(default_factory=lambda: settings.DEFAULT_GST_PERCENT, ge=0)
    quantity: float = Field(default=0, ge=0, allow_inf_nan=False)
    min_quantity: int = Field(default_factory=lambda: settings.DEFAULT_MIN_QUANTITY, ge=0)
    location: str = ""

    @field_validator("sku", "name", "location", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    check_category = field_validator("category")(_check_category)


class ProductUpdate(BaseModel):
    """Partial update. ``quantity`` is only applied when explicitly sent."""

    name: str | None = None
    description: str | None = None
    category: str | None = None
    price: float | None = Field(default=None, ge=0)
    cost: float | None = Field(default=None, ge=0)
    gst_percent: float | None = Field(default=None, ge=0)
    quantity: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    min_quantity: int | None = Field(default=None, ge=0)
    location: str | None = None

    check_category = field_validator("category")(_check_category)


class ProductOut(BaseModel):
    id: str
    sku: str
    name: str
    description: str
    category: str
    price: float
    cost: float
    gst_percent: float
    quantity: float
    min_quantity: int
    location: str
    is_active: bool
    stock_status: str
    profit_margin: float
    total_value: float
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProductPage(BaseModel):
    items: list[ProductOut]
    total: int
    page: int
    page_size: int
    total_pages: int
