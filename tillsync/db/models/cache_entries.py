# tillsync/db/models/cache_entries.py
from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from tillsync.db.base import Base


class CacheEntry(Base):
    __tablename__ = "cache_entries"

    """One named collection of the till's local durable cache.

    The till keeps exactly three entries (products, orders and the pending
    operation log). Each row stores the whole collection as a JSON array and
    is rewritten every time the in-memory collection changes, so a restart
    restores the last observed state without talking to the remote store.
    """

    key = Column(String, primary_key=True)
    payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)

    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
