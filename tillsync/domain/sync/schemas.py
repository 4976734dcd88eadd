# tillsync/domain/sync/schemas.py
import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OperationKind(str, enum.Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class OperationState(str, enum.Enum):
    PROPOSED = "PROPOSED"    # applied locally, queued
    IN_FLIGHT = "IN_FLIGHT"  # remote call issued
    FAILED = "FAILED"        # kept for the next drain


# natural key column of each remote collection
KEY_FIELDS = {
    "products": "barcode",
    "orders": "id",
}


class PendingOperation(BaseModel):
    """Durable record of one mutation the remote store has not confirmed yet.

    Confirmation removes the record from the log; there is no CONFIRMED state
    stored anywhere. `attempts` and `last_error` are bookkeeping for the sync
    status screen and never affect whether an entry is retried.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    kind: OperationKind
    collection: str = "products"
    key: str
    payload: Dict[str, Any] = {}
    upsert_fallback: bool = False

    created_at: str = Field(default_factory=utc_now_iso)
    state: OperationState = OperationState.PROPOSED
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def key_field(self) -> str:
        return KEY_FIELDS[self.collection]

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class SyncStatus(BaseModel):
    online: bool
    syncing: bool
    pending: int
    failed: int
    last_sync_at: Optional[str] = None
    last_error: Optional[str] = None
    notices: List[str] = []
