# tillsync/remote/enrichment.py
import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel

from .client import RemoteError, RemoteStoreClient

logger = logging.getLogger(__name__)


class LookupResult(BaseModel):
    found: bool
    name: Optional[str] = None
    price: Optional[Decimal] = None
    spec: Optional[str] = None
    msg: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = self.name or ""
        return f"{name} ({self.spec})" if self.spec else name


def _parse_price(value: Any) -> Decimal:
    # unparsable or negative prices fall back to zero
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not price.is_finite() or price < 0:
        return Decimal("0")
    return price


def normalize_response(body: Any) -> LookupResult:
    if not isinstance(body, dict):
        return LookupResult(found=False, msg="malformed lookup response")

    msg = body.get("msg")
    if not body.get("found"):
        return LookupResult(found=False, msg=str(msg) if msg else None)

    name = body.get("name")
    if not isinstance(name, str) or not name.strip():
        return LookupResult(found=False, msg="lookup response has no name")

    spec = body.get("spec")
    return LookupResult(
        found=True,
        name=name.strip(),
        price=_parse_price(body.get("price")),
        spec=str(spec).strip() if spec else None,
        msg=str(msg) if msg else None,
    )


class EnrichmentService:
    """Best-effort barcode lookup through the store's `fetch-product` function.

    Never raises: network errors, timeouts and odd payloads all come back as
    a not-found result.
    """

    def __init__(self, client: RemoteStoreClient, function_name: str = "fetch-product", timeout: float = 6.0):
        self.client = client
        self.function_name = function_name
        self.timeout = timeout

    async def lookup(self, barcode: str) -> LookupResult:
        if not barcode:
            return LookupResult(found=False, msg="empty barcode")

        try:
            body = await asyncio.wait_for(
                self.client.invoke(self.function_name, {"barcode": barcode}),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("lookup for %s timed out after %.1fs", barcode, self.timeout)
            return LookupResult(found=False, msg="timeout")
        except RemoteError as e:
            logger.warning("lookup for %s failed: %s", barcode, e)
            return LookupResult(found=False, msg=str(e))

        result = normalize_response(body)
        if not result.found:
            logger.info("lookup for %s found nothing: %s", barcode, result.msg)
        return result
