import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.config import settings
from app.database import Base

CATEGORIES = ("Electronics", "Clothing", "Books", "Home & Garden", "Sports", "Other")


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    sku: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String, default="Other")
    price: Mapped[float] = mapped_column(Float, default=0.0)
    cost: Mapped[float] = mapped_column(Float, default=0.0)
    gst_percent: Mapped[float] = mapped_column(Float, default=lambda: settings.DEFAULT_GST_PERCENT)

    # Cached stock level; the ledger is the source of truth
    quantity: Mapped[float] = mapped_column(Float, default=0.0)
    min_quantity: Mapped[int] = mapped_column(Integer, default=lambda: settings.DEFAULT_MIN_QUANTITY)

    location: Mapped[str] = mapped_column(String, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def stock_status(self) -> str:
        if self.quantity <= 0:
            return "Out of Stock"
        if self.quantity <= self.min_quantity:
            return "Low Stock"
        return "In Stock"

    @property
    def profit_margin(self) -> float:
        if self.cost > 0:
            return round((self.price - self.cost) / self.cost * 100, 2)
        return 0.0

    @property
    def total_value(self) -> float:
        return self.price * self.quantity
