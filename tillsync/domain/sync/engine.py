# tillsync/domain/sync/engine.py
"""Offline-first reconciliation between the till and the remote store.

Every mutation is applied to the in-memory model first, written through to
the local cache, recorded as a PendingOperation and only then pushed to the
remote store by a background drain. Remote failures never undo a local
change; they only leave the operation in the queue for the next drain.
"""
import asyncio
import logging
import time
from collections import OrderedDict, deque
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Deque, List, Mapping, Optional, Set, Union

from pydantic import BaseModel, ValidationError

from tillsync.db.repositories.cache import ORDERS, PRODUCTS, LocalCache
from tillsync.domain.catalog.schemas import Product, ProductCreate, ProductPatch
from tillsync.domain.checkout.cart import Cart, round_money
from tillsync.domain.checkout.schemas import CartItem, CheckoutResult, Order, StockShortage
from tillsync.remote.client import RemoteError, RemoteStoreClient, RemoteTransportError
from tillsync.remote.enrichment import EnrichmentService
from .queue import DrainReport, PendingOperationQueue
from .schemas import OperationKind, OperationState, PendingOperation, SyncStatus, utc_now_iso

logger = logging.getLogger(__name__)


def _order_sort_key(order: Order) -> datetime:
    try:
        parsed = datetime.fromisoformat(order.date.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ReconciliationEngine:
    """Owns the product catalog, order history, cart and pending queue.

    Build one per till session and share it; nothing else may write to the
    collections it holds.
    """

    def __init__(
        self,
        cache: LocalCache,
        remote: RemoteStoreClient,
        enrichment: Optional[EnrichmentService] = None,
        order_limit: int = 50,
        max_notices: int = 20,
    ):
        self.cache = cache
        self.remote = remote
        self.enrichment = enrichment or EnrichmentService(remote)
        self.order_limit = order_limit

        self.queue = PendingOperationQueue(cache)
        self.cart = Cart()
        self.orders: List[Order] = []
        self._products: "OrderedDict[str, Product]" = OrderedDict()

        self.online = True
        self.syncing = False
        self.last_sync_at: Optional[str] = None
        self.last_error: Optional[str] = None
        self.notices: Deque[str] = deque(maxlen=max_notices)

        self._tasks: Set[asyncio.Task] = set()
        self._drain_task: Optional[asyncio.Task] = None
        self._drain_again = False
        self._last_order_ms = 0

    # ------------------------------------------------------------------ state

    @property
    def products(self) -> List[Product]:
        return list(self._products.values())

    def live_products(self) -> List[Product]:
        return [p for p in self._products.values() if not p.is_deleted]

    def find_product(self, barcode: str, include_deleted: bool = False) -> Optional[Product]:
        product = self._products.get(barcode)
        if product is None or (product.is_deleted and not include_deleted):
            return None
        return product

    def status(self) -> SyncStatus:
        entries = self.queue.entries
        return SyncStatus(
            online=self.online,
            syncing=self.syncing or self.queue.draining,
            pending=len(entries),
            failed=sum(1 for op in entries if op.state == OperationState.FAILED),
            last_sync_at=self.last_sync_at,
            last_error=self.last_error,
            notices=list(self.notices),
        )

    async def load(self) -> None:
        """Restore products, orders and the pending log from the local cache."""
        products: "OrderedDict[str, Product]" = OrderedDict()
        for record in await self.cache.load(PRODUCTS):
            try:
                product = Product.model_validate(record)
            except ValidationError as e:
                logger.error("skipping unreadable cached product %r: %s", record, e)
                continue
            products[product.barcode] = product

        orders = []
        for record in await self.cache.load(ORDERS):
            try:
                orders.append(Order.model_validate(record))
            except ValidationError as e:
                logger.error("skipping unreadable cached order %r: %s", record, e)

        self._products = products
        self.orders = orders
        self._last_order_ms = max((int(o.id) for o in orders if o.id.isdigit()), default=0)
        await self.queue.load()
        logger.info("local cache loaded: %d products, %d orders", len(products), len(orders))

    async def _persist_products(self) -> None:
        await self.cache.save(PRODUCTS, [p.to_record() for p in self._products.values()])

    async def _persist_orders(self) -> None:
        await self.cache.save(ORDERS, [o.to_record() for o in self.orders])

    def _notice(self, message: str) -> None:
        self.notices.append(message)

    # ------------------------------------------------------------ initial sync

    async def init_sync(self) -> bool:
        """Pull the remote snapshot and merge it over the local cache, remote wins.

        Local-only products are kept. If the products pull fails the cache is
        left untouched and False is returned; the orders pull is best effort
        and never undoes the product merge.
        """
        if self.syncing:
            return False

        self.syncing = True
        try:
            try:
                rows = await self.remote.select("products")
                remote_products = [Product.model_validate(row) for row in rows]
            except (RemoteError, ValidationError) as e:
                logger.warning("initial sync failed, keeping local cache: %s", e)
                self._sync_failed(e)
                return False

            merged = OrderedDict(self._products)
            for product in remote_products:
                merged[product.barcode] = product
            self._products = merged
            for product in remote_products:
                if product.is_deleted:
                    self.cart.remove(product.barcode)
                else:
                    self.cart.refresh(product)
            await self._persist_products()
            self.online = True
            self.last_sync_at = utc_now_iso()

            remote_orders = await self._pull_orders()
            if remote_orders:
                by_id = OrderedDict((o.id, o) for o in self.orders)
                for order in remote_orders:
                    by_id[order.id] = order
                self.orders = sorted(by_id.values(), key=_order_sort_key, reverse=True)
                self._last_order_ms = max(
                    [self._last_order_ms] + [int(o.id) for o in remote_orders if o.id.isdigit()]
                )
                await self._persist_orders()
        finally:
            self.syncing = False

        logger.info("initial sync merged %d remote products, %d remote orders",
                    len(remote_products), len(remote_orders))
        self.schedule_drain()
        return True

    async def _pull_orders(self) -> List[Order]:
        if not self.order_limit:
            return []
        try:
            rows = await self.remote.select("orders", order="date.desc", limit=self.order_limit)
        except RemoteError as e:
            logger.warning("order history pull failed, keeping local orders: %s", e)
            self._sync_failed(e)
            return []

        orders = []
        for row in rows:
            try:
                orders.append(Order.model_validate(row))
            except ValidationError as e:
                logger.warning("skipping unreadable remote order %r: %s", row, e)
        return orders

    def _sync_failed(self, error: Exception) -> None:
        self.last_error = str(error)
        self._notice("sync failed, will retry")
        if isinstance(error, RemoteTransportError):
            self.online = False

    # --------------------------------------------------------------- products

    async def add_product(self, product: Union[Product, Mapping[str, Any]]) -> bool:
        data = product.model_dump() if isinstance(product, BaseModel) else dict(product)
        data["is_deleted"] = False
        try:
            new = ProductCreate.model_validate(data)
        except ValidationError as e:
            logger.info("rejected product %r: %s", data.get("barcode"), e)
            return False

        existing = self._products.get(new.barcode)
        if existing is not None and not existing.is_deleted:
            return False

        # a soft-deleted barcode is resurrected in place
        new = Product.model_validate(new.model_dump())
        self._products[new.barcode] = new
        await self._persist_products()
        await self._enqueue(PendingOperation(
            kind=OperationKind.ADD,
            key=new.barcode,
            payload=new.to_record(),
        ))
        return True

    async def update_product(self, patch: Union[ProductPatch, Mapping[str, Any]]) -> bool:
        try:
            if not isinstance(patch, ProductPatch):
                patch = ProductPatch.model_validate(patch)
        except ValidationError as e:
            logger.info("rejected product patch: %s", e)
            return False

        existing = self._products.get(patch.barcode)
        if existing is None:
            return False

        changes = patch.changes()
        if not changes:
            return True

        try:
            updated = Product.model_validate({
                **existing.model_dump(),
                **changes,
                "is_deleted": existing.is_deleted,
            })
        except ValidationError as e:
            logger.info("rejected product patch for %s: %s", patch.barcode, e)
            return False

        self._products[updated.barcode] = updated
        if not updated.is_deleted:
            self.cart.refresh(updated)
        await self._persist_products()
        await self._enqueue(PendingOperation(
            kind=OperationKind.UPDATE,
            key=updated.barcode,
            payload=changes,
        ))
        return True

    async def remove_product(self, barcode: str) -> bool:
        existing = self._products.get(barcode)
        if existing is None:
            return False
        if existing.is_deleted:
            return True

        self._products[barcode] = existing.model_copy(update={"is_deleted": True})
        self.cart.remove(barcode)
        await self._persist_products()
        await self._enqueue(PendingOperation(
            kind=OperationKind.DELETE,
            key=barcode,
            payload={"is_deleted": True},
        ))
        return True

    async def restock_product(self, barcode: str, amount: Any) -> bool:
        """Add `amount` (may be negative) to a live product's stock."""
        if isinstance(amount, bool):
            return False
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            return False
        if not value.is_finite() or value != value.to_integral_value():
            return False

        product = self.find_product(barcode)
        if product is None:
            return False

        stock = product.stock + int(value)
        self._products[barcode] = product.model_copy(update={"stock": stock})
        await self._persist_products()
        await self._enqueue(PendingOperation(
            kind=OperationKind.UPDATE,
            key=barcode,
            payload={"stock": stock},
        ))
        return True

    async def enrich_product_info(self, barcode: str) -> Optional[str]:
        """Fill in name and price from the barcode lookup service.

        Returns the resolved display name, or None when nothing was found.
        """
        result = await self.enrichment.lookup(barcode)
        if not result.found:
            return None

        name = result.display_name
        price = result.price if result.price is not None else Decimal("0")

        product = self._products.get(barcode)
        if product is not None:
            updated = product.model_copy(update={"name": name, "price": price})
            self._products[barcode] = updated
            await self._persist_products()
            record = updated.to_record()
            # the row may not exist remotely yet, so this update may upsert
            await self._enqueue(PendingOperation(
                kind=OperationKind.UPDATE,
                key=barcode,
                payload={
                    "name": record["name"],
                    "price": record["price"],
                    "stock": record["stock"],
                    "is_deleted": record["is_deleted"],
                },
                upsert_fallback=True,
            ))

        item = self.cart.get(barcode)
        if item is not None:
            item.name = name
            item.price = price

        return name

    # ------------------------------------------------------------ cart & checkout

    def add_to_cart(self, barcode: str, qty: int = 1) -> Optional[CartItem]:
        product = self.find_product(barcode)
        if product is None or qty < 1:
            return None
        return self.cart.add(product, qty)

    def set_cart_qty(self, barcode: str, qty: int) -> bool:
        return self.cart.set_qty(barcode, qty)

    def remove_from_cart(self, barcode: str) -> bool:
        return self.cart.remove(barcode)

    def _next_order_id(self) -> str:
        ms = int(time.time() * 1000)
        if ms <= self._last_order_ms:
            ms = self._last_order_ms + 1
        self._last_order_ms = ms
        return str(ms)

    async def checkout(self, cart: Optional[Cart] = None) -> CheckoutResult:
        cart = self.cart if cart is None else cart
        if not len(cart):
            return CheckoutResult(ok=False, reason="empty_cart")

        # validate every line before touching any state
        shortages = []
        for item in cart:
            product = self.find_product(item.barcode)
            available = product.stock if product is not None else 0
            if item.qty > available:
                shortages.append(StockShortage(barcode=item.barcode, requested=item.qty, available=available))
        if shortages:
            return CheckoutResult(ok=False, reason="insufficient_stock", shortages=shortages)

        items = cart.snapshot()
        total = round_money(sum((item.line_total for item in items), Decimal("0")))

        stock_ops = []
        for item in items:
            product = self._products[item.barcode]
            stock = product.stock - item.qty
            self._products[item.barcode] = product.model_copy(update={"stock": stock})
            stock_ops.append(PendingOperation(
                kind=OperationKind.UPDATE,
                key=item.barcode,
                payload={"stock": stock},
            ))

        order = Order(id=self._next_order_id(), date=utc_now_iso(), items=tuple(items), total=total)
        self.orders.insert(0, order)
        cart.clear()

        await self._persist_products()
        await self._persist_orders()
        await self._enqueue(
            PendingOperation(
                kind=OperationKind.ADD,
                collection="orders",
                key=order.id,
                payload=order.to_record(),
            ),
            *stock_ops,
        )
        logger.info("order %s checked out, %d lines, total %s", order.id, len(items), total)
        return CheckoutResult(ok=True, order=order)

    # ------------------------------------------------------------------ sync

    async def _enqueue(self, *ops: PendingOperation) -> None:
        for op in ops:
            await self.queue.append(op)
        self.schedule_drain()

    async def _apply(self, op: PendingOperation) -> None:
        match = {op.key_field: op.key}
        if op.kind == OperationKind.ADD:
            await self.remote.upsert(op.collection, [op.payload], op.key_field)
        elif op.kind == OperationKind.UPDATE:
            touched = await self.remote.update(op.collection, op.payload, match)
            if touched == 0 and op.upsert_fallback:
                logger.info("update of %s/%s touched no rows, upserting", op.collection, op.key)
                await self.remote.upsert(op.collection, [{**op.payload, **match}], op.key_field)
        elif op.kind == OperationKind.DELETE:
            # soft delete; a row that is already flagged or missing is fine
            await self.remote.update(op.collection, op.payload or {"is_deleted": True}, match)

    async def drain(self) -> DrainReport:
        if not len(self.queue):
            return DrainReport()

        report = await self.queue.drain(self._apply)
        if report.failures:
            self.last_error = str(report.failures[-1][1])
            self._notice(f"sync failed for {len(report.failures)} change(s), will retry")
            if report.transport_failed:
                self.online = False
        if report.confirmed:
            self.online = True
            self.last_sync_at = utc_now_iso()
        return report

    async def _drain_loop(self) -> None:
        while True:
            self._drain_again = False
            await self.drain()
            if not self._drain_again:
                break

    def schedule_drain(self) -> None:
        """Start a background drain, or ask the running one to go again."""
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_again = True
            return
        self._drain_task = self._spawn(self._drain_loop())

    def set_online(self, online: bool) -> None:
        was_online = self.online
        self.online = online
        if online and not was_online:
            logger.info("connectivity restored, draining %d pending operations", len(self.queue))
            self.schedule_drain()
        elif not online and was_online:
            logger.info("connectivity lost")

    def notify_online(self) -> None:
        self.online = True
        self.schedule_drain()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background sync task crashed", exc_info=exc)
            self.last_error = str(exc)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.wait_idle()
