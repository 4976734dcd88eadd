# tillsync/api/v1/routes_products.py
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from tillsync.api.deps import get_engine
from tillsync.domain.catalog.schemas import Product, ProductCreate, RestockIn
from tillsync.domain.sync.engine import ReconciliationEngine


router = APIRouter(prefix="/api/v1/products", tags=["products"])


class EnrichOut(BaseModel):
    barcode: str
    found: bool
    name: Optional[str] = None


def _get_or_404(engine: ReconciliationEngine, barcode: str, include_deleted: bool = False) -> Product:
    product = engine.find_product(barcode, include_deleted=include_deleted)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.get("", response_model=List[Product])
async def list_products_endpoint(
    include_deleted: bool = False,
    engine: ReconciliationEngine = Depends(get_engine),
):
    return engine.products if include_deleted else engine.live_products()


@router.get("/{barcode}", response_model=Product)
async def get_product_endpoint(
    barcode: str,
    engine: ReconciliationEngine = Depends(get_engine),
):
    return _get_or_404(engine, barcode)


@router.post("", response_model=Product, status_code=201)
async def add_product_endpoint(
    payload: ProductCreate,
    engine: ReconciliationEngine = Depends(get_engine),
):
    if not await engine.add_product(payload):
        raise HTTPException(status_code=409, detail="A product with this barcode already exists")
    return engine.find_product(payload.barcode)


@router.patch("/{barcode}", response_model=Product)
async def update_product_endpoint(
    barcode: str,
    payload: Dict[str, Any] = Body(...),
    engine: ReconciliationEngine = Depends(get_engine),
):
    _get_or_404(engine, barcode, include_deleted=True)
    if not await engine.update_product({**payload, "barcode": barcode}):
        raise HTTPException(status_code=422, detail="Invalid product fields")
    return engine.find_product(barcode, include_deleted=True)


@router.delete("/{barcode}", response_model=Product)
async def remove_product_endpoint(
    barcode: str,
    engine: ReconciliationEngine = Depends(get_engine),
):
    if not await engine.remove_product(barcode):
        raise HTTPException(status_code=404, detail="Product not found")
    return engine.find_product(barcode, include_deleted=True)


@router.post("/{barcode}/restock", response_model=Product)
async def restock_product_endpoint(
    barcode: str,
    payload: RestockIn,
    engine: ReconciliationEngine = Depends(get_engine),
):
    _get_or_404(engine, barcode)
    if not await engine.restock_product(barcode, payload.amount):
        raise HTTPException(status_code=422, detail="Restock amount must be a whole number")
    return engine.find_product(barcode)


@router.post("/{barcode}/enrich", response_model=EnrichOut)
async def enrich_product_endpoint(
    barcode: str,
    engine: ReconciliationEngine = Depends(get_engine),
):
    name = await engine.enrich_product_info(barcode)
    return EnrichOut(barcode=barcode, found=name is not None, name=name)
