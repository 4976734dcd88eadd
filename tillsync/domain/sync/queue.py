# tillsync/domain/sync/queue.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Set, Tuple

from pydantic import ValidationError

from tillsync.db.repositories.cache import PENDING_OPERATIONS, LocalCache
from tillsync.remote.client import RemoteError, RemoteTransportError
from .schemas import OperationState, PendingOperation

logger = logging.getLogger(__name__)

Apply = Callable[[PendingOperation], Awaitable[None]]


@dataclass
class DrainReport:
    attempted: int = 0
    confirmed: int = 0
    skipped: int = 0
    failures: List[Tuple[PendingOperation, RemoteError]] = field(default_factory=list)

    @property
    def transport_failed(self) -> bool:
        return any(isinstance(err, RemoteTransportError) for _, err in self.failures)


class PendingOperationQueue:
    """Ordered, durable log of mutations waiting for remote confirmation.

    The in-memory list is the working copy; every change is written through
    to the local cache before the call returns. Entries leave the log only
    when `drain` sees the remote store confirm them.
    """

    def __init__(self, cache: LocalCache):
        self._cache = cache
        self._entries: List[PendingOperation] = []
        self._drain_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[PendingOperation]:
        return list(self._entries)

    @property
    def draining(self) -> bool:
        return self._drain_lock.locked()

    async def load(self) -> None:
        entries = []
        for record in await self._cache.load(PENDING_OPERATIONS):
            try:
                op = PendingOperation.model_validate(record)
            except ValidationError as e:
                # an unreadable entry cannot be replayed; keep the rest
                logger.error("dropping unreadable pending operation %r: %s", record, e)
                continue
            if op.state == OperationState.IN_FLIGHT:
                # the process died while the call was outstanding
                op.state = OperationState.FAILED
            entries.append(op)
        self._entries = entries
        logger.info("loaded %d pending operations", len(entries))

    async def append(self, op: PendingOperation) -> PendingOperation:
        self._entries.append(op)
        await self._persist()
        return op

    async def drain(self, apply: Apply) -> DrainReport:
        """Attempt every entry once, in log order, then rebuild the log.

        After a failure for a key, later entries for the same key are left
        alone until the next drain so they never overtake it.
        """
        async with self._drain_lock:
            report = DrainReport()
            confirmed: Set[str] = set()
            blocked: Set[Tuple[str, str]] = set()

            for op in list(self._entries):
                if (op.collection, op.key) in blocked:
                    report.skipped += 1
                    continue

                op.state = OperationState.IN_FLIGHT
                op.attempts += 1
                report.attempted += 1
                try:
                    await apply(op)
                except RemoteError as e:
                    op.state = OperationState.FAILED
                    op.last_error = str(e)
                    blocked.add((op.collection, op.key))
                    report.failures.append((op, e))
                    logger.warning(
                        "%s %s/%s not confirmed (attempt %d): %s",
                        op.kind.value, op.collection, op.key, op.attempts, e,
                    )
                    continue

                confirmed.add(op.id)
                logger.debug("%s %s/%s confirmed", op.kind.value, op.collection, op.key)

            # entries appended while the drain was running stay in the log
            self._entries = [op for op in self._entries if op.id not in confirmed]
            report.confirmed = len(confirmed)
            await self._persist()
            return report

    async def _persist(self) -> None:
        await self._cache.save(PENDING_OPERATIONS, [op.to_record() for op in self._entries])
