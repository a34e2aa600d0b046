import asyncio
from unittest.mock import MagicMock

import pytest
import requests
from errors import UnavailableError, UnknownDeliveryError, ValidationError
from sos.models import IncidentReport, IncidentType
from stores.http_store import HttpBlobStore, HttpIncidentStore


def make_report():
    return IncidentReport(
        name="Ravi",
        phone="0701234567",
        type=IncidentType.FLOOD,
        description="Ground floor flooded",
    )


def make_response(status=200, body=None):
    response = MagicMock()
    response.status_code = status
    response.content = b"" if body is None else b"{}"
    response.json.return_value = body
    return response


@pytest.fixture
def session():
    mock = MagicMock()
    mock.headers = {}
    return mock


@pytest.fixture
def store(session):
    return HttpIncidentStore("https://rescue.example/api/", session=session)


def test_create_posts_document(store, session):
    session.request.return_value = make_response(201, {"id": "inc-1"})

    assert asyncio.run(store.create(make_report())) == "inc-1"

    method, url = session.request.call_args[0]
    kwargs = session.request.call_args[1]
    assert (method, url) == ("POST", "https://rescue.example/api/incidents")
    assert kwargs["json"]["name"] == "Ravi"
    assert kwargs["json"]["status"] == "pending"
    assert session.headers["User-Agent"].startswith("RescueHQ")


@pytest.mark.parametrize("status,error", [
    (400, ValidationError),
    (422, ValidationError),
    (429, UnavailableError),
    (503, UnavailableError),
    (418, UnknownDeliveryError),
])
def test_create_classifies_status(store, session, status, error):
    session.request.return_value = make_response(status, {"detail": "nope"})
    with pytest.raises(error) as exc:
        store.create_sync(make_report())
    assert "nope" in str(exc.value)


def test_connection_error_is_unavailable(store, session):
    session.request.side_effect = requests.ConnectionError("no route to host")
    with pytest.raises(UnavailableError):
        store.create_sync(make_report())


def test_timeout_is_unavailable(store, session):
    session.request.side_effect = requests.Timeout("read timed out")
    with pytest.raises(UnavailableError):
        store.create_sync(make_report())


def test_missing_id_is_unknown(store, session):
    session.request.return_value = make_response(200, {"ok": True})
    with pytest.raises(UnknownDeliveryError):
        store.create_sync(make_report())


def test_update_and_delete(store, session):
    session.request.return_value = make_response(204)

    asyncio.run(store.update("inc-1", {"status": "completed"}))
    asyncio.run(store.delete("inc-1"))

    calls = [c[0] for c in session.request.call_args_list]
    assert calls == [
        ("PATCH", "https://rescue.example/api/incidents/inc-1"),
        ("DELETE", "https://rescue.example/api/incidents/inc-1"),
    ]


def test_recent_returns_list(store, session):
    session.request.return_value = make_response(200, [{"id": "a", "type": "flood"}])
    assert asyncio.run(store.recent()) == [{"id": "a", "type": "flood"}]
    assert "since" in session.request.call_args[1]["params"]


def test_blob_upload(session):
    session.request.return_value = make_response(200, {"url": "https://cdn.example/sos-images/1_a.jpg"})
    blobs = HttpBlobStore("https://rescue.example/api", session=session)

    url = asyncio.run(blobs.upload(b"data", "sos-images/1_a.jpg"))

    assert url == "https://cdn.example/sos-images/1_a.jpg"
    assert session.request.call_args[1]["files"] == {"file": ("sos-images/1_a.jpg", b"data")}
