"""
Offline Queue - durable, ordered list of SOS reports that could not be sent.

The whole queue lives as one JSON array under a single key in LocalStorage.
Every mutation rewrites the complete array, so a crash mid-write cannot
corrupt entries that were already resident.

The queue never raises to its callers:
- Storage that cannot be read lists as empty, and mutations are skipped
  rather than overwriting what is on disk.
- A payload that is not a JSON array lists as empty; the next enqueue moves
  it aside under `<key>.corrupt` before starting a fresh array.
- A single record that cannot be decoded is left out of listings but kept
  in storage untouched.
Every problem is reported through `on_error`.
"""

import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from errors import StorageError
from sos.models import IncidentReport, QueuedSubmission
from sos.storage import LocalStorage

log = logging.getLogger(__name__)

QUEUE_KEY = "rescuehq_offline_queue"


class CorruptQueueError(ValueError):
    """The stored queue payload is not a JSON array."""

    def __init__(self, message: str, raw: str):
        super().__init__(message)
        self.raw = raw


class DurableQueue:
    """
    Persistent FIFO of QueuedSubmission records.

    Usage:
        queue = DurableQueue(LocalStorage("offline_queue.db"))
        item = queue.enqueue(report)
        for item in queue.list_items():
            ...
        queue.remove(item.id)
    """

    def __init__(
        self,
        storage: LocalStorage,
        key: str = QUEUE_KEY,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Args:
            storage: Backing key-value store
            key: Key the queue is stored under
            on_error: Side channel for storage problems (called, never raised)
        """
        self.storage = storage
        self.key = key
        self.on_error = on_error
        self._lock = threading.RLock()
        self._last_stamp = 0

    def _report(self, exc: Exception):
        log.error(f"Offline queue storage problem: {exc}")
        if self.on_error is not None:
            try:
                self.on_error(exc)
            except Exception:
                log.exception("Offline queue error callback failed")

    def _read_records(self) -> List[Any]:
        """
        Raw persisted records.

        Raises:
            StorageError: if storage cannot be read
            CorruptQueueError: if the payload is not a JSON array
        """
        raw = self.storage.get_item(self.key)
        if not raw:
            return []
        try:
            records = json.loads(raw)
        except ValueError as e:
            raise CorruptQueueError(f"queue payload is not JSON: {e}", raw) from e
        if not isinstance(records, list):
            raise CorruptQueueError("queue payload is not a JSON array", raw)
        return records

    def _decode(self, records: List[Any]) -> List[QueuedSubmission]:
        items = []
        for record in records:
            try:
                if not isinstance(record, dict):
                    raise TypeError(f"queue record is not an object: {record!r}")
                items.append(QueuedSubmission.from_dict(record))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                self._report(e)
        return items

    def _records_for_write(self, set_aside_corrupt: bool) -> Optional[List[Any]]:
        """Records to mutate, or None when writing would destroy data on disk."""
        try:
            return self._read_records()
        except StorageError as e:
            self._report(e)
            return None
        except CorruptQueueError as e:
            self._report(e)
            if not set_aside_corrupt:
                return None
            backup_key = f"{self.key}.corrupt"
            try:
                self.storage.set_item(backup_key, e.raw)
            except StorageError as backup_error:
                self._report(backup_error)
                return None
            log.warning(f"Corrupt offline queue moved to '{backup_key}'")
            return []

    def _save(self, records: List[Any]) -> bool:
        try:
            self.storage.set_item(self.key, json.dumps(records))
            return True
        except StorageError as e:
            self._report(e)
            return False

    def _next_id(self, records: List[Any]) -> str:
        resident = {record.get("id") for record in records if isinstance(record, dict)}
        stamp = max(int(time.time() * 1000), self._last_stamp + 1)
        while f"offline_{stamp}" in resident:
            stamp += 1
        self._last_stamp = stamp
        return f"offline_{stamp}"

    def enqueue(self, report: IncidentReport) -> QueuedSubmission:
        """Append a report and persist the queue. Returns the created record."""
        with self._lock:
            records = self._records_for_write(set_aside_corrupt=True)
            if report.image is not None and not report.image_url:
                log.warning("Image attachment is not kept in the offline queue")
            item = QueuedSubmission(
                id=self._next_id(records or []),
                report=report,
                queued_at=datetime.now(timezone.utc).isoformat(),
            )
            if records is None:
                log.error(f"Offline queue unreadable, {item.id} was not persisted")
                return item
            records.append(item.to_dict())
            if self._save(records):
                log.info(f"SOS request queued for later sync: {item.id}")
            return item

    def list_items(self) -> List[QueuedSubmission]:
        """All decodable resident items in enqueue order. Does not mutate anything."""
        with self._lock:
            try:
                records = self._read_records()
            except (StorageError, CorruptQueueError) as e:
                self._report(e)
                return []
            return self._decode(records)

    def remove(self, item_id: str):
        """Delete an item by id. Removing an absent id is a no-op."""
        with self._lock:
            records = self._records_for_write(set_aside_corrupt=False)
            if records is None:
                return
            remaining = [
                record for record in records
                if not (isinstance(record, dict) and record.get("id") == item_id)
            ]
            if len(remaining) != len(records):
                self._save(remaining)

    def clear(self):
        """Drop everything in the queue."""
        with self._lock:
            try:
                self.storage.remove_item(self.key)
                log.info("Offline queue cleared")
            except StorageError as e:
                self._report(e)

    def __len__(self) -> int:
        return len(self.list_items())
