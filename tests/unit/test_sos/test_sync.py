import asyncio
import pytest
from errors import UnavailableError, ValidationError
from sos.connectivity import ConnectivityMonitor
from sos.models import GeoPoint, IncidentReport, IncidentType, SyncResult
from sos.offline_queue import DurableQueue
from sos.storage import LocalStorage
from sos.sync import SyncEngine


class ScriptedStore:
    """Fails creates for reporters named in `failing`; records the rest."""

    def __init__(self, failing=(), error=None, on_create=None):
        self.failing = set(failing)
        self.error = error or UnavailableError("service down")
        self.on_create = on_create
        self.created = []

    async def create(self, report):
        if self.on_create is not None:
            self.on_create(report)
        await asyncio.sleep(0)
        if report.name in self.failing:
            raise self.error
        self.created.append(report)
        return f"srv-{len(self.created)}"


def make_report(name):
    return IncidentReport(
        name=name,
        phone="0711111111",
        type=IncidentType.FLOOD,
        description="Rising water",
        location=GeoPoint(7.0, 80.0),
    )


@pytest.fixture
def queue(tmp_path):
    return DurableQueue(LocalStorage(str(tmp_path / "sync_queue.db")))


def test_empty_queue_drains_to_zero(queue):
    result = asyncio.run(SyncEngine(queue, ScriptedStore()).drain())
    assert result == SyncResult(synced=0, failed=0)


def test_partial_failure_keeps_failed_items_in_order(queue):
    for name in ["A", "B", "C", "D"]:
        queue.enqueue(make_report(name))
    store = ScriptedStore(failing={"B", "D"})

    result = asyncio.run(SyncEngine(queue, store).drain())

    assert result == SyncResult(synced=2, failed=2)
    assert [r.name for r in store.created] == ["A", "C"]
    assert [item.report.name for item in queue.list_items()] == ["B", "D"]


def test_any_error_is_counted_and_drain_continues(queue):
    queue.enqueue(make_report("A"))
    queue.enqueue(make_report("B"))
    store = ScriptedStore(failing={"A"}, error=ValidationError("rejected"))

    result = asyncio.run(SyncEngine(queue, store).drain())

    assert result.synced == 1
    assert result.failed == 1
    assert [item.report.name for item in queue.list_items()] == ["A"]


def test_replayed_reports_are_marked_offline(queue):
    item = queue.enqueue(make_report("A"))
    store = ScriptedStore()

    asyncio.run(SyncEngine(queue, store).drain())

    doc = store.created[0].to_document()
    assert doc["offlineQueued"] is True
    assert doc["originalQueuedAt"] == item.queued_at


def test_items_enqueued_during_drain_are_not_lost(queue):
    """A report queued mid-drain stays for the next drain."""
    queue.enqueue(make_report("A"))
    queue.enqueue(make_report("B"))

    def enqueue_once(report):
        if report.name == "A":
            queue.enqueue(make_report("Late"))

    store = ScriptedStore(on_create=enqueue_once)
    result = asyncio.run(SyncEngine(queue, store).drain())

    assert result.synced == 2
    assert [item.report.name for item in queue.list_items()] == ["Late"]


def test_concurrent_drain_is_skipped(queue):
    queue.enqueue(make_report("A"))
    queue.enqueue(make_report("B"))
    store = ScriptedStore()
    engine = SyncEngine(queue, store)

    async def scenario():
        return await asyncio.gather(engine.drain(), engine.drain())

    first, second = asyncio.run(scenario())

    assert first == SyncResult(synced=2, failed=0)
    assert second == SyncResult()
    assert len(store.created) == 2
    assert queue.list_items() == []


def test_went_online_triggers_drain(queue):
    queue.enqueue(make_report("A"))
    store = ScriptedStore()
    engine = SyncEngine(queue, store)
    monitor = ConnectivityMonitor()
    monitor.set_online(False)
    engine.attach(monitor)

    async def scenario():
        monitor.set_online(True)
        await engine.wait_idle()

    asyncio.run(scenario())

    assert [r.name for r in store.created] == ["A"]
    assert queue.list_items() == []


def test_detach_stops_auto_drain(queue):
    queue.enqueue(make_report("A"))
    store = ScriptedStore()
    engine = SyncEngine(queue, store)
    monitor = ConnectivityMonitor()
    monitor.set_online(False)
    engine.attach(monitor)
    engine.detach()

    async def scenario():
        monitor.set_online(True)
        await engine.wait_idle()

    asyncio.run(scenario())
    assert store.created == []


def test_went_online_without_loop_does_not_raise(queue):
    engine = SyncEngine(queue, ScriptedStore())
    monitor = ConnectivityMonitor()
    monitor.set_online(False)
    engine.attach(monitor)
    monitor.set_online(True)
    assert len(queue) == 0


def test_run_periodic_drains_until_stopped(queue):
    queue.enqueue(make_report("A"))
    store = ScriptedStore()
    engine = SyncEngine(queue, store, interval=0.01)

    async def scenario():
        stop = asyncio.Event()
        runner = asyncio.ensure_future(engine.run_periodic(stop))
        await asyncio.sleep(0.05)
        stop.set()
        await runner

    asyncio.run(scenario())
    assert [r.name for r in store.created] == ["A"]


def test_run_periodic_skips_while_offline(queue):
    queue.enqueue(make_report("A"))
    store = ScriptedStore()
    engine = SyncEngine(queue, store, interval=0.01)
    monitor = ConnectivityMonitor()
    monitor.set_online(False)

    async def scenario():
        stop = asyncio.Event()
        runner = asyncio.ensure_future(engine.run_periodic(stop, monitor))
        await asyncio.sleep(0.05)
        stop.set()
        await runner

    asyncio.run(scenario())
    assert store.created == []
    assert len(queue) == 1
