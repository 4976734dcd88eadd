# tillsync/domain/sync/connectivity.py
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Polls a probe and reports online/offline transitions.

    `on_change(True)` is the network-recovery signal the engine drains on.
    """

    def __init__(
        self,
        probe: Callable[[], Awaitable[bool]],
        on_change: Callable[[bool], None],
        interval: float = 15.0,
    ):
        self.probe = probe
        self.on_change = on_change
        self.interval = interval
        self.online: Optional[bool] = None
        self._task: Optional[asyncio.Task] = None

    async def check(self) -> bool:
        try:
            online = bool(await self.probe())
        except Exception:
            logger.exception("connectivity probe failed, treating as offline")
            online = False
        if online != self.online:
            previous, self.online = self.online, online
            if previous is not None:
                logger.info("connectivity changed: %s", "online" if online else "offline")
            self.on_change(online)
        return online

    async def _run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
