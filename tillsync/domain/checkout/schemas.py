# tillsync/domain/checkout/schemas.py
from decimal import Decimal
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class CartItem(BaseModel):
    barcode: str
    name: str = ""
    price: Decimal = Decimal("0")
    qty: int = Field(default=1, ge=1)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.qty


class OrderLine(CartItem):
    """A cart line as it was at checkout. Read-only."""

    class Config:
        frozen = True


class Order(BaseModel):
    """Immutable record of a completed checkout.

    `items` is a copy of the cart taken at checkout time and `total` is
    computed from it once; neither is ever edited afterwards.
    """

    id: str
    date: str
    items: Tuple[OrderLine, ...]
    total: Decimal

    class Config:
        frozen = True

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value):
        # remote tables may store the id as a bigint
        return str(value) if isinstance(value, int) and not isinstance(value, bool) else value

    def to_record(self) -> dict:
        return self.model_dump(mode="json")


class StockShortage(BaseModel):
    barcode: str
    requested: int
    available: int


class CheckoutResult(BaseModel):
    ok: bool
    order: Optional[Order] = None
    reason: Optional[str] = None
    shortages: List[StockShortage] = []

    def __bool__(self) -> bool:
        return self.ok


class CartItemIn(BaseModel):
    barcode: str
    qty: int = Field(default=1, ge=1)


class CartQtyIn(BaseModel):
    qty: int


class CartOut(BaseModel):
    items: List[CartItem]
    total: Decimal
