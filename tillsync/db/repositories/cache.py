# tillsync/db/repositories/cache.py
import logging
from typing import Any, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import select

from tillsync.db.models.cache_entries import CacheEntry

logger = logging.getLogger(__name__)

PRODUCTS = "products"
ORDERS = "orders"
PENDING_OPERATIONS = "pending_operations"


async def get_entry(
    db: AsyncSession,
    key: str
) -> Optional[CacheEntry]:
    result = await db.execute(
        select(CacheEntry).where(CacheEntry.key == key)
    )
    return result.scalar_one_or_none()


async def put_entry(
    db: AsyncSession,
    key: str,
    payload: List[Any]
) -> CacheEntry:
    entry = await get_entry(db, key)
    if entry is None:
        entry = CacheEntry(key=key, payload=payload)
        db.add(entry)
    else:
        # a fresh list object so the JSON column is flagged dirty
        entry.payload = list(payload)

    await db.commit()
    return entry


class LocalCache:
    """Write-through persistence for the till's three collections.

    The cache is a passive mirror: callers hand it the complete, already
    serialized collection after every change and it replaces the stored copy
    inside a single short transaction.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def load(self, key: str) -> List[Any]:
        async with self._session_factory() as db:
            entry = await get_entry(db, key)
        if entry is None:
            return []
        if not isinstance(entry.payload, list):
            logger.warning("cache entry %s is not a list, ignoring it", key)
            return []
        return list(entry.payload)

    async def save(self, key: str, payload: List[Any]) -> None:
        async with self._session_factory() as db:
            await put_entry(db, key, payload)
        logger.debug("cache entry %s written (%d records)", key, len(payload))
