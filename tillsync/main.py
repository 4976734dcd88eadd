import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from tillsync.api.v1.routes_checkout import router as checkout_router
from tillsync.api.v1.routes_products import router as products_router
from tillsync.api.v1.routes_sync import router as sync_router
from tillsync.core.config import settings
from tillsync.db.base import AsyncSessionLocal, engine as db_engine, init_models
from tillsync.db.repositories.cache import LocalCache
from tillsync.domain.sync.connectivity import ConnectivityMonitor
from tillsync.domain.sync.engine import ReconciliationEngine
from tillsync.remote.client import RemoteStoreClient, RestRemoteStoreClient
from tillsync.remote.enrichment import EnrichmentService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    remote: Optional[RemoteStoreClient] = None,
    db_bind: Optional[AsyncEngine] = None,
    session_factory: Optional[Callable[[], AsyncSession]] = None,
    probe_interval: Optional[float] = None,
) -> FastAPI:
    interval = settings.CONNECTIVITY_PROBE_INTERVAL if probe_interval is None else probe_interval

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_models(db_bind or db_engine)

        client = remote or RestRemoteStoreClient(
            settings.REMOTE_URL, settings.REMOTE_API_KEY, settings.REMOTE_TIMEOUT,
        )
        till = ReconciliationEngine(
            LocalCache(session_factory or AsyncSessionLocal),
            client,
            EnrichmentService(client, settings.ENRICHMENT_FUNCTION, settings.ENRICHMENT_TIMEOUT),
            order_limit=settings.INIT_SYNC_ORDER_LIMIT,
        )
        await till.load()
        await till.init_sync()
        app.state.engine = till

        monitor = None
        if interval > 0:
            monitor = ConnectivityMonitor(client.ping, till.set_online, interval)
            monitor.start()

        yield

        if monitor is not None:
            await monitor.stop()
        await till.close()
        logger.info("till session closed, %d operations still pending", len(till.queue))

    app = FastAPI(title="till-sync", lifespan=lifespan)

    app.include_router(products_router)
    app.include_router(checkout_router)
    app.include_router(sync_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
