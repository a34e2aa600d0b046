"""
Submission Pipeline - gets an SOS report to the central store, or queues it.

Flow for one submission:
1. Offline -> queue it, no network attempt.
2. Online  -> race the delivery (image upload, then record create) against
   a fixed timeout.
3. Delivery wins and succeeds        -> Delivered(server_id)
   Delivery wins, store unavailable  -> queue it, Queued(local_id)
   Delivery wins, any other error    -> Failed(reason), not queued
   Timeout wins                      -> Failed("timeout")

When the timeout wins, the delivery task is left running: dropping it does
not cancel the underlying request, and its eventual result is only logged.
The caller should check the store before resubmitting.

The optional notifier runs as a background task after a delivery, so a slow
gateway never holds up the Delivered outcome.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, Set, Union

from errors import SubmissionError, SubmissionTimeout, UnavailableError, ValidationError, classify_error
from sos.connectivity import ConnectivityMonitor
from sos.models import Delivered, Failed, IncidentReport, Queued, SubmissionOutcome
from sos.offline_queue import DurableQueue

log = logging.getLogger(__name__)

SUBMISSION_TIMEOUT_SECONDS = 15.0
BLOB_PREFIX = "sos-images/"

Notifier = Callable[[IncidentReport, str], Awaitable[Any]]


class SubmissionPipeline:
    """
    Accepts new reports and decides between immediate delivery and the
    offline queue.

    Usage:
        pipeline = SubmissionPipeline(monitor, queue, store, blobs)
        outcome = await pipeline.submit(report)
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        queue: DurableQueue,
        store,
        blobs=None,
        timeout: float = SUBMISSION_TIMEOUT_SECONDS,
        notifier: Optional[Notifier] = None,
    ):
        """
        Args:
            monitor: Connectivity signal
            queue: Offline queue for undeliverable reports
            store: Delivery collaborator (see stores.base.IncidentStore)
            blobs: Blob collaborator for image attachments (optional)
            timeout: Seconds before a delivery attempt is reported as timed out
            notifier: Best-effort hook called after a successful delivery
        """
        self.monitor = monitor
        self.queue = queue
        self.store = store
        self.blobs = blobs
        self.timeout = timeout
        self.notifier = notifier
        # Deliveries that lost the race; kept referenced until they finish
        self._abandoned: Set[asyncio.Task] = set()
        # Notifications run in the background; kept referenced until they finish
        self._notifications: Set[asyncio.Task] = set()

    async def submit(self, report: Union[IncidentReport, Mapping[str, Any]]) -> SubmissionOutcome:
        """Submit one report. Never raises for delivery problems."""
        if not isinstance(report, IncidentReport):
            try:
                report = IncidentReport.from_input(report)
            except ValidationError as e:
                log.warning(f"Rejected SOS input: {e}")
                return Failed(e.reason, str(e))

        if not report.has_location:
            log.warning("SOS report has no location; operator will see it flagged")

        if not self.monitor.is_online:
            log.info("Offline mode: queuing SOS request")
            item = self.queue.enqueue(report)
            return Queued(item.id)

        delivery = asyncio.ensure_future(self._deliver(report))
        timer = asyncio.ensure_future(asyncio.sleep(self.timeout))
        done, _ = await asyncio.wait({delivery, timer}, return_when=asyncio.FIRST_COMPLETED)

        if delivery not in done:
            self._abandon(delivery)
            error = SubmissionTimeout(f"Submission timed out after {self.timeout:g} seconds")
            log.warning(f"{error}; the request may still be saved")
            return Failed(error.reason, str(error))

        timer.cancel()
        try:
            server_id = delivery.result()
        except UnavailableError as e:
            log.warning(f"Network error, queuing SOS request: {e}")
            item = self.queue.enqueue(report)
            return Queued(item.id)
        except SubmissionError as e:
            log.error(f"Failed to send SOS request: {e}")
            return Failed(e.reason, str(e))

        log.info(f"SOS submitted successfully with ID: {server_id}")
        if self.notifier is not None:
            task = asyncio.ensure_future(self._notify(report, server_id))
            self._notifications.add(task)
            task.add_done_callback(self._notifications.discard)
        return Delivered(server_id)

    async def _deliver(self, report: IncidentReport) -> str:
        """Upload the image (if any), then create the record. Raises classified errors."""
        try:
            if report.image is not None and not report.image_url:
                if self.blobs is None:
                    raise ValidationError("Image attached but no blob store configured")
                name = f"{BLOB_PREFIX}{int(time.time() * 1000)}_{report.image.filename}"
                log.info("Uploading image...")
                report.image_url = await self.blobs.upload(report.image.data, name)
            return await self.store.create(report)
        except SubmissionError:
            raise
        except Exception as e:
            raise classify_error(e) from e

    def _abandon(self, task: asyncio.Task):
        self._abandoned.add(task)
        task.add_done_callback(self._log_late_delivery)

    def _log_late_delivery(self, task: asyncio.Task):
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            log.warning(f"Delivery finished after timeout with ID: {task.result()}")
        else:
            log.warning(f"Delivery failed after timeout: {exc}")

    async def _notify(self, report: IncidentReport, server_id: str):
        try:
            await self.notifier(report, server_id)
            await self.store.update(server_id, {"notificationSent": True})
        except Exception as e:
            log.warning(f"Notification for incident {server_id} failed: {e}")

    @property
    def pending_late_deliveries(self) -> int:
        """Timed-out deliveries that are still running."""
        return len(self._abandoned)

    @property
    def pending_notifications(self) -> int:
        """Notifications for delivered reports that are still running."""
        return len(self._notifications)

    async def wait_notified(self):
        """Wait for background notifications to finish."""
        while self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)
