import json
import pytest
from unittest.mock import MagicMock
from errors import StorageError
from sos.models import GeoPoint, IncidentReport, IncidentType
from sos.offline_queue import DurableQueue, QUEUE_KEY
from sos.storage import LocalStorage


def make_report(name="Nimal", **overrides):
    fields = dict(
        name=name,
        phone="0771234567",
        type=IncidentType.FLOOD,
        description="Water entering the house",
        location=GeoPoint(6.9271, 79.8612),
        address="Colombo 07",
    )
    fields.update(overrides)
    return IncidentReport(**fields)


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(db_path=str(tmp_path / "test_queue.db"))


@pytest.fixture
def queue(storage):
    return DurableQueue(storage)


def test_enqueue_returns_record(queue):
    """Verify enqueue assigns an id and timestamp."""
    item = queue.enqueue(make_report())
    assert item.id.startswith("offline_")
    assert item.queued_at
    assert item.synced is False
    assert queue.list_items() == [item]


def test_list_preserves_enqueue_order(queue):
    ids = [queue.enqueue(make_report(name=f"Reporter {i}")).id for i in range(5)]
    assert [item.id for item in queue.list_items()] == ids
    # Listing twice gives the same answer and changes nothing
    assert [item.id for item in queue.list_items()] == ids


def test_ids_are_unique_within_same_millisecond(queue, monkeypatch):
    monkeypatch.setattr("sos.offline_queue.time.time", lambda: 1700000000.0)
    ids = {queue.enqueue(make_report()).id for _ in range(3)}
    assert len(ids) == 3


def test_remove_is_idempotent(queue):
    """Verify remove deletes the item and tolerates absent ids."""
    keep = queue.enqueue(make_report(name="Keep"))
    drop = queue.enqueue(make_report(name="Drop"))

    queue.remove(drop.id)
    assert [item.id for item in queue.list_items()] == [keep.id]

    queue.remove(drop.id)
    queue.remove("offline_does_not_exist")
    assert [item.id for item in queue.list_items()] == [keep.id]


def test_clear(queue):
    queue.enqueue(make_report())
    queue.enqueue(make_report())
    queue.clear()
    assert queue.list_items() == []
    assert len(queue) == 0


def test_survives_restart(tmp_path):
    """A record reloaded from disk is identical to the one written."""
    db_path = str(tmp_path / "restart.db")
    item = DurableQueue(LocalStorage(db_path)).enqueue(make_report())

    reloaded = DurableQueue(LocalStorage(db_path)).list_items()
    assert len(reloaded) == 1
    assert reloaded[0].id == item.id
    assert reloaded[0].queued_at == item.queued_at
    assert reloaded[0].report == item.report
    assert reloaded[0].synced is False


def test_persisted_record_shape(queue, storage):
    item = queue.enqueue(make_report())
    records = json.loads(storage.get_item(QUEUE_KEY))
    assert records == [{
        "id": item.id,
        "name": "Nimal",
        "phone": "0771234567",
        "type": "flood",
        "description": "Water entering the house",
        "location": {"latitude": 6.9271, "longitude": 79.8612},
        "address": "Colombo 07",
        "queuedAt": item.queued_at,
        "synced": False,
    }]


def test_report_without_location_has_no_location_key(queue, storage):
    queue.enqueue(make_report(location=None, address=""))
    record = json.loads(storage.get_item(QUEUE_KEY))[0]
    assert "location" not in record
    assert "address" not in record


def test_corrupt_storage_reads_as_empty(storage):
    """Corrupt data must not raise; the problem goes to the side channel."""
    errors = []
    queue = DurableQueue(storage, on_error=errors.append)
    storage.set_item(QUEUE_KEY, "{not json")

    assert queue.list_items() == []
    assert len(errors) == 1


def test_wrong_shape_reads_as_empty(storage):
    errors = []
    queue = DurableQueue(storage, on_error=errors.append)
    storage.set_item(QUEUE_KEY, json.dumps({"id": "x"}))
    assert queue.list_items() == []
    assert errors


def test_unavailable_storage_never_raises():
    storage = MagicMock()
    storage.get_item.side_effect = StorageError("disk gone")
    storage.set_item.side_effect = StorageError("disk gone")
    storage.remove_item.side_effect = StorageError("disk gone")
    errors = []
    queue = DurableQueue(storage, on_error=errors.append)

    assert queue.list_items() == []
    item = queue.enqueue(make_report())
    assert item.id.startswith("offline_")
    queue.remove(item.id)
    queue.clear()
    assert len(errors) >= 3


def test_image_bytes_are_not_queued(queue, storage):
    from sos.models import ImageAttachment
    queue.enqueue(make_report(image=ImageAttachment(b"\x89PNG", "photo.png")))
    record = json.loads(storage.get_item(QUEUE_KEY))[0]
    assert "image" not in record
    assert queue.list_items()[0].report.image is None


def test_non_object_records_are_skipped(storage):
    errors = []
    queue = DurableQueue(storage, on_error=errors.append)
    storage.set_item(QUEUE_KEY, json.dumps([1, 2]))

    assert queue.list_items() == []
    assert len(errors) == 2

    item = queue.enqueue(make_report())
    assert [i.id for i in queue.list_items()] == [item.id]


def test_undecodable_record_does_not_hide_the_rest(queue, storage):
    """One bad record is skipped; its neighbours stay listed and stay on disk."""
    errors = []
    queue.on_error = errors.append
    first = queue.enqueue(make_report(name="First"))
    records = json.loads(storage.get_item(QUEUE_KEY))
    bad = dict(records[0], id="offline_1", type="fire")
    storage.set_item(QUEUE_KEY, json.dumps(records + [bad]))

    assert [i.id for i in queue.list_items()] == [first.id]
    assert len(errors) == 1

    second = queue.enqueue(make_report(name="Second"))
    assert [i.id for i in queue.list_items()] == [first.id, second.id]
    stored = json.loads(storage.get_item(QUEUE_KEY))
    assert [r["id"] for r in stored] == [first.id, "offline_1", second.id]
    assert stored[1]["type"] == "fire"


def test_read_failure_during_enqueue_keeps_resident_records(queue, storage, monkeypatch):
    resident = [queue.enqueue(make_report(name=f"R{i}")).id for i in range(3)]
    errors = []
    queue.on_error = errors.append
    real_get = storage.get_item
    calls = {"n": 0}

    def flaky_get(key):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StorageError("database is locked")
        return real_get(key)

    monkeypatch.setattr(storage, "get_item", flaky_get)

    item = queue.enqueue(make_report(name="Lost"))

    assert item.id.startswith("offline_")
    assert len(errors) == 1
    assert [i.id for i in queue.list_items()] == resident


def test_read_failure_during_remove_does_not_write(queue, storage, monkeypatch):
    kept = queue.enqueue(make_report())
    errors = []
    queue.on_error = errors.append
    real_get = storage.get_item
    set_item = MagicMock(side_effect=storage.set_item)
    monkeypatch.setattr(storage, "get_item", MagicMock(side_effect=StorageError("locked")))
    monkeypatch.setattr(storage, "set_item", set_item)

    queue.remove(kept.id)

    assert errors
    set_item.assert_not_called()
    monkeypatch.setattr(storage, "get_item", real_get)
    assert [i.id for i in queue.list_items()] == [kept.id]


def test_corrupt_payload_is_set_aside_on_enqueue(storage):
    errors = []
    queue = DurableQueue(storage, on_error=errors.append)
    storage.set_item(QUEUE_KEY, "{not json")

    item = queue.enqueue(make_report())

    assert storage.get_item(QUEUE_KEY + ".corrupt") == "{not json"
    assert [i.id for i in queue.list_items()] == [item.id]
    assert len(errors) == 1


def test_remove_leaves_corrupt_payload_alone(storage):
    queue = DurableQueue(storage, on_error=lambda e: None)
    storage.set_item(QUEUE_KEY, json.dumps({"id": "x"}))

    queue.remove("x")

    assert storage.get_item(QUEUE_KEY) == json.dumps({"id": "x"})
    assert storage.get_item(QUEUE_KEY + ".corrupt") is None
