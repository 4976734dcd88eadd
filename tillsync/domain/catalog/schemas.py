# tillsync/domain/catalog/schemas.py
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

# columns every product row carries; anything else is passed through verbatim
KNOWN_FIELDS = ("barcode", "name", "price", "stock", "is_deleted")


class Product(BaseModel):
    """A catalog row keyed by its barcode.

    Unknown columns coming from the remote store (or from the caller) are kept
    as pydantic extras, in their original order, and written back untouched.
    """

    barcode: str = Field(min_length=1)
    name: str = ""
    price: Decimal = Field(default=Decimal("0"), ge=0)
    stock: int = 0
    is_deleted: bool = False

    class Config:
        extra = "allow"

    @field_validator("name", mode="before")
    @classmethod
    def _name_not_null(cls, value):
        return "" if value is None else value

    @field_validator("price", "stock", mode="before")
    @classmethod
    def _number_not_null(cls, value):
        return 0 if value is None else value

    @field_validator("is_deleted", mode="before")
    @classmethod
    def _flag_not_null(cls, value):
        return False if value is None else value

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ProductCreate(Product):
    stock: int = Field(default=0, ge=0)


class ProductPatch(BaseModel):
    barcode: str = Field(min_length=1)
    name: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    stock: Optional[int] = None
    # accepted so callers may send whole rows back, never applied by an update
    is_deleted: Optional[bool] = None

    class Config:
        extra = "allow"

    def changes(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", exclude_unset=True)
        data.pop("barcode", None)
        data.pop("is_deleted", None)
        return {
            k: v for k, v in data.items()
            if not (k in KNOWN_FIELDS and v is None)
        }


class RestockIn(BaseModel):
    amount: float = Field(allow_inf_nan=False)
