# tillsync/api/v1/routes_checkout.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from tillsync.api.deps import get_engine
from tillsync.domain.checkout.schemas import CartItem, CartItemIn, CartOut, CartQtyIn, Order
from tillsync.domain.sync.engine import ReconciliationEngine


router = APIRouter(prefix="/api/v1", tags=["checkout"])


def _cart_out(engine: ReconciliationEngine) -> CartOut:
    return CartOut(items=engine.cart.items, total=engine.cart.total)


@router.get("/cart", response_model=CartOut)
async def get_cart_endpoint(engine: ReconciliationEngine = Depends(get_engine)):
    return _cart_out(engine)


@router.post("/cart/items", response_model=CartItem)
async def add_cart_item_endpoint(
    payload: CartItemIn,
    engine: ReconciliationEngine = Depends(get_engine),
):
    item = engine.add_to_cart(payload.barcode, payload.qty)
    if item is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return item


@router.put("/cart/items/{barcode}", response_model=CartOut)
async def set_cart_qty_endpoint(
    barcode: str,
    payload: CartQtyIn,
    engine: ReconciliationEngine = Depends(get_engine),
):
    if not engine.set_cart_qty(barcode, payload.qty):
        raise HTTPException(status_code=404, detail="Item not in cart")
    return _cart_out(engine)


@router.delete("/cart/items/{barcode}", response_model=CartOut)
async def remove_cart_item_endpoint(
    barcode: str,
    engine: ReconciliationEngine = Depends(get_engine),
):
    if not engine.remove_from_cart(barcode):
        raise HTTPException(status_code=404, detail="Item not in cart")
    return _cart_out(engine)


@router.post("/checkout", response_model=Order, status_code=201)
async def checkout_endpoint(engine: ReconciliationEngine = Depends(get_engine)):
    result = await engine.checkout()
    if not result:
        if result.reason == "insufficient_stock":
            raise HTTPException(
                status_code=409,
                detail=[s.model_dump() for s in result.shortages],
            )
        raise HTTPException(status_code=422, detail="Cart is empty")
    return result.order


@router.get("/orders", response_model=List[Order])
async def list_orders_endpoint(
    limit: int = 50,
    engine: ReconciliationEngine = Depends(get_engine),
):
    return engine.orders[:limit]
