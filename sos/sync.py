"""
Sync Engine - replays queued SOS reports once connectivity returns.

A drain works on a snapshot of the queue taken when it starts. Items are
tried in enqueue order; a delivered item is removed, a failed one stays
resident for the next drain. Reports queued while a drain is running are
picked up by the next drain.
"""

import asyncio
import logging
from typing import Optional, Set

from errors import classify_error
from sos.connectivity import ConnectivityEvent, ConnectivityMonitor
from sos.models import SyncResult
from sos.offline_queue import DurableQueue

log = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL_SECONDS = 300.0


class SyncEngine:
    """
    Drains the offline queue into the delivery collaborator.

    Usage:
        engine = SyncEngine(queue, store)
        engine.attach(monitor)          # drain on every went-online
        result = await engine.drain()   # or drain explicitly
    """

    def __init__(
        self,
        queue: DurableQueue,
        store,
        interval: float = DEFAULT_SYNC_INTERVAL_SECONDS,
    ):
        self.queue = queue
        self.store = store
        self.interval = interval
        self._draining = False
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe = None

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def drain(self) -> SyncResult:
        """Try to deliver every item resident when the call starts."""
        if self._draining:
            log.info("Queue drain already in progress, skipping")
            return SyncResult()

        self._draining = True
        try:
            snapshot = self.queue.list_items()
            if not snapshot:
                return SyncResult()

            log.info(f"Syncing {len(snapshot)} queued SOS request(s)")
            synced = 0
            failed = 0
            for item in snapshot:
                try:
                    server_id = await self.store.create(item.replay_report())
                except Exception as e:
                    error = classify_error(e)
                    log.error(f"Failed to sync SOS {item.id} ({error.reason}): {error}")
                    failed += 1
                    continue
                self.queue.remove(item.id)
                synced += 1
                log.info(f"Synced offline SOS {item.id} -> {server_id}")

            log.info(f"Queue drain finished: {synced} synced, {failed} failed")
            return SyncResult(synced=synced, failed=failed)
        finally:
            self._draining = False

    def attach(self, monitor: ConnectivityMonitor):
        """Drain automatically whenever the monitor reports went-online."""
        self.detach()
        self._unsubscribe = monitor.subscribe(ConnectivityEvent.WENT_ONLINE, self._on_online)

    def detach(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_online(self, event: ConnectivityEvent):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning("Back online but no event loop is running; drain deferred")
            return
        task = loop.create_task(self.drain())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run_periodic(self, stop: asyncio.Event, monitor: Optional[ConnectivityMonitor] = None):
        """Safety-net drain every `interval` seconds until `stop` is set."""
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass
            if monitor is not None and not monitor.is_online:
                log.debug("Periodic drain skipped: offline")
                continue
            await self.drain()

    async def wait_idle(self):
        """Wait for drains started by connectivity events to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
