import asyncio
import pytest
from errors import UnavailableError, ValidationError
from sos.connectivity import ConnectivityMonitor
from sos.models import Delivered, Failed, GeoPoint, ImageAttachment, IncidentReport, IncidentType, Queued
from sos.offline_queue import DurableQueue
from sos.pipeline import SubmissionPipeline
from sos.storage import LocalStorage


class FakeStore:
    """Delivery collaborator double that records what it was given."""

    def __init__(self, error=None, delay=0.0, server_id="srv-1"):
        self.error = error
        self.delay = delay
        self.server_id = server_id
        self.created = []
        self.updates = []

    async def create(self, report):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.created.append(report)
        return self.server_id

    async def update(self, incident_id, fields):
        self.updates.append((incident_id, fields))


class FakeBlobs:
    def __init__(self, error=None):
        self.error = error
        self.uploads = []

    async def upload(self, data, name):
        if self.error is not None:
            raise self.error
        self.uploads.append(name)
        return f"https://blobs.example/{name}"


def make_report(**overrides):
    fields = dict(
        name="Sunil",
        phone="0779876543",
        type=IncidentType.TRAPPED,
        description="Trapped on the roof",
        location=GeoPoint(6.9, 79.9),
    )
    fields.update(overrides)
    return IncidentReport(**fields)


@pytest.fixture
def queue(tmp_path):
    return DurableQueue(LocalStorage(str(tmp_path / "pipeline_queue.db")))


def make_pipeline(queue, store, online=True, **kwargs):
    monitor = ConnectivityMonitor()
    monitor.set_online(online)
    return SubmissionPipeline(monitor, queue, store, **kwargs)


def test_offline_submit_queues_without_network(queue):
    """Offline: no delivery attempt, report queued exactly once."""
    store = FakeStore()
    pipeline = make_pipeline(queue, store, online=False)

    outcome = asyncio.run(pipeline.submit(make_report()))

    assert isinstance(outcome, Queued)
    assert store.created == []
    items = queue.list_items()
    assert [item.id for item in items] == [outcome.local_id]


def test_online_submit_delivers(queue):
    store = FakeStore(server_id="abc123")
    outcome = asyncio.run(make_pipeline(queue, store).submit(make_report()))

    assert outcome == Delivered("abc123")
    assert len(store.created) == 1
    assert queue.list_items() == []


def test_unavailable_store_queues(queue):
    store = FakeStore(error=UnavailableError("service down"))
    outcome = asyncio.run(make_pipeline(queue, store).submit(make_report()))

    assert isinstance(outcome, Queued)
    assert [item.id for item in queue.list_items()] == [outcome.local_id]


def test_raw_connection_error_is_classified_and_queued(queue):
    store = FakeStore(error=ConnectionError("network is unreachable"))
    outcome = asyncio.run(make_pipeline(queue, store).submit(make_report()))
    assert isinstance(outcome, Queued)


def test_validation_error_fails_without_queueing(queue):
    store = FakeStore(error=ValidationError("bad phone"))
    outcome = asyncio.run(make_pipeline(queue, store).submit(make_report()))

    assert isinstance(outcome, Failed)
    assert outcome.reason == "validation"
    assert queue.list_items() == []


def test_unknown_error_fails_without_queueing(queue):
    store = FakeStore(error=RuntimeError("weird"))
    outcome = asyncio.run(make_pipeline(queue, store).submit(make_report()))

    assert outcome.reason == "unknown"
    assert queue.list_items() == []


def test_invalid_input_mapping_fails(queue):
    store = FakeStore()
    outcome = asyncio.run(make_pipeline(queue, store).submit({"name": "", "phone": "1", "description": "x"}))

    assert isinstance(outcome, Failed)
    assert outcome.reason == "validation"
    assert store.created == []


def test_input_mapping_is_accepted(queue):
    store = FakeStore()
    outcome = asyncio.run(make_pipeline(queue, store).submit({
        "name": "Sunil", "phone": "077", "type": "medical", "description": "Chest pain",
    }))
    assert isinstance(outcome, Delivered)
    assert store.created[0].type == IncidentType.MEDICAL


def test_timeout_reports_failed_and_leaves_delivery_running(queue):
    """Timeout wins: Failed(timeout), nothing queued, delivery not cancelled."""
    store = FakeStore(delay=0.2)
    pipeline = make_pipeline(queue, store, timeout=0.05)

    async def scenario():
        outcome = await pipeline.submit(make_report())
        pending = pipeline.pending_late_deliveries
        await asyncio.sleep(0.3)
        return outcome, pending

    outcome, pending = asyncio.run(scenario())

    assert outcome.reason == "timeout"
    assert pending == 1
    assert pipeline.pending_late_deliveries == 0
    assert len(store.created) == 1
    assert queue.list_items() == []


def test_image_uploaded_before_record(queue):
    store = FakeStore()
    blobs = FakeBlobs()
    pipeline = make_pipeline(queue, store, blobs=blobs)
    report = make_report(image=ImageAttachment(b"jpegdata", "roof.jpg"))

    outcome = asyncio.run(pipeline.submit(report))

    assert isinstance(outcome, Delivered)
    assert len(blobs.uploads) == 1
    assert blobs.uploads[0].startswith("sos-images/")
    assert blobs.uploads[0].endswith("_roof.jpg")
    assert store.created[0].image_url == f"https://blobs.example/{blobs.uploads[0]}"


def test_image_upload_failure_aborts_delivery(queue):
    store = FakeStore()
    blobs = FakeBlobs(error=RuntimeError("bucket policy"))
    pipeline = make_pipeline(queue, store, blobs=blobs)

    outcome = asyncio.run(pipeline.submit(make_report(image=ImageAttachment(b"x", "a.jpg"))))

    assert isinstance(outcome, Failed)
    assert store.created == []
    assert queue.list_items() == []


def test_image_upload_network_failure_queues(queue):
    store = FakeStore()
    blobs = FakeBlobs(error=UnavailableError("upload failed"))
    pipeline = make_pipeline(queue, store, blobs=blobs)

    outcome = asyncio.run(pipeline.submit(make_report(image=ImageAttachment(b"x", "a.jpg"))))

    assert isinstance(outcome, Queued)
    assert store.created == []


def test_notifier_marks_notification_sent(queue):
    store = FakeStore(server_id="srv-9")
    notified = []

    async def notifier(report, server_id):
        notified.append(server_id)

    pipeline = make_pipeline(queue, store, notifier=notifier)

    async def scenario():
        outcome = await pipeline.submit(make_report())
        await pipeline.wait_notified()
        return outcome

    outcome = asyncio.run(scenario())

    assert outcome == Delivered("srv-9")
    assert notified == ["srv-9"]
    assert store.updates == [("srv-9", {"notificationSent": True})]
    assert pipeline.pending_notifications == 0


def test_notifier_failure_does_not_change_outcome(queue):
    store = FakeStore()

    async def notifier(report, server_id):
        raise RuntimeError("sms gateway down")

    pipeline = make_pipeline(queue, store, notifier=notifier)

    async def scenario():
        outcome = await pipeline.submit(make_report())
        await pipeline.wait_notified()
        return outcome

    outcome = asyncio.run(scenario())

    assert isinstance(outcome, Delivered)
    assert store.updates == []


def test_hung_notifier_does_not_delay_delivery(queue):
    """A gateway that never answers leaves the Delivered outcome untouched."""
    store = FakeStore(server_id="srv-3")

    async def notifier(report, server_id):
        await asyncio.Event().wait()

    pipeline = make_pipeline(queue, store, timeout=0.5, notifier=notifier)

    async def scenario():
        outcome = await asyncio.wait_for(pipeline.submit(make_report()), timeout=0.2)
        await asyncio.sleep(0)
        return outcome, pipeline.pending_notifications

    outcome, pending = asyncio.run(scenario())

    assert outcome == Delivered("srv-3")
    assert pending == 1
    assert store.updates == []
