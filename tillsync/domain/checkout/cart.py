# tillsync/domain/checkout/cart.py
from collections import OrderedDict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterator, List, Optional

from tillsync.domain.catalog.schemas import Product
from .schemas import CartItem, OrderLine

TWO_PLACES = Decimal("0.01")


def round_money(value) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class Cart:
    """Transient basket shown at the till. Never persisted."""

    def __init__(self):
        self._items: "OrderedDict[str, CartItem]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[CartItem]:
        return iter(list(self._items.values()))

    def __contains__(self, barcode: str) -> bool:
        return barcode in self._items

    @property
    def items(self) -> List[CartItem]:
        return list(self._items.values())

    @property
    def total(self) -> Decimal:
        return round_money(sum((item.line_total for item in self._items.values()), Decimal("0")))

    def get(self, barcode: str) -> Optional[CartItem]:
        return self._items.get(barcode)

    def add(self, product: Product, qty: int = 1) -> CartItem:
        if qty < 1:
            raise ValueError("qty must be positive")

        item = self._items.get(product.barcode)
        if item is None:
            item = CartItem(barcode=product.barcode, name=product.name, price=product.price, qty=qty)
            self._items[product.barcode] = item
        else:
            item.qty += qty
        return item

    def set_qty(self, barcode: str, qty: int) -> bool:
        item = self._items.get(barcode)
        if item is None:
            return False
        if qty <= 0:
            del self._items[barcode]
        else:
            item.qty = qty
        return True

    def remove(self, barcode: str) -> bool:
        return self._items.pop(barcode, None) is not None

    def refresh(self, product: Product) -> None:
        """Copy the product's current name/price into its cart line, if any."""
        item = self._items.get(product.barcode)
        if item is not None:
            item.name = product.name
            item.price = product.price

    def snapshot(self) -> List[OrderLine]:
        return [OrderLine(**item.model_dump()) for item in self._items.values()]

    def clear(self) -> None:
        self._items.clear()
