"""
HTTP collaborators - remote incident store and remote blob store.

Transport failures and HTTP status codes are classified into the error
taxonomy here, so callers never see raw `requests` exceptions. Deliveries
are not retried at this layer; retrying is the sync engine's job.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import requests

from errors import UnknownDeliveryError, classify_error, classify_status
from sos.models import IncidentReport
from stores.base import BlobStore, IncidentStore

log = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10


def _detail(response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or "")
    return ""


class _HttpCollaborator:
    USER_AGENT = "RescueHQ/1.0"

    def __init__(self, base_url: str, session: requests.Session = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": self.USER_AGENT})

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """Perform a request; returns decoded JSON (or None for empty bodies)."""
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=REQUEST_TIMEOUT_SECONDS, **kwargs)
        except requests.RequestException as e:
            raise classify_error(e) from e
        if not 200 <= response.status_code < 300:
            raise classify_status(response.status_code, _detail(response))
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            # requests' JSONDecodeError is also an OSError; keep it out of "unavailable"
            raise UnknownDeliveryError(f"Invalid JSON from {url}: {e}") from e


class HttpIncidentStore(_HttpCollaborator, IncidentStore):
    """
    Incident store behind a small REST API.

    POST   /incidents         -> {"id": "..."}
    PATCH  /incidents/<id>
    DELETE /incidents/<id>
    GET    /incidents?since=  -> [{...}, ...]
    """

    def create_sync(self, report: IncidentReport) -> str:
        body = self._request("POST", "/incidents", json=report.to_document())
        if not isinstance(body, dict) or not body.get("id"):
            raise classify_error(ValueError("Store response did not include an id"))
        return str(body["id"])

    async def create(self, report: IncidentReport) -> str:
        return await asyncio.to_thread(self.create_sync, report)

    async def update(self, incident_id: str, fields: Dict[str, Any]):
        await asyncio.to_thread(self._request, "PATCH", f"/incidents/{incident_id}", json=fields)

    async def delete(self, incident_id: str):
        await asyncio.to_thread(self._request, "DELETE", f"/incidents/{incident_id}")

    async def recent(self, hours: int = 24) -> List[Dict[str, Any]]:
        since = (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()
        body = await asyncio.to_thread(self._request, "GET", "/incidents", params={"since": since})
        return body if isinstance(body, list) else []


class HttpBlobStore(_HttpCollaborator, BlobStore):
    """Blob store accepting multipart uploads at POST /blobs -> {"url": "..."}."""

    def upload_sync(self, data: bytes, name: str) -> str:
        body = self._request("POST", "/blobs", files={"file": (name, data)})
        if not isinstance(body, dict) or not body.get("url"):
            raise classify_error(ValueError("Blob response did not include a url"))
        log.info(f"Image uploaded: {body['url']}")
        return str(body["url"])

    async def upload(self, data: bytes, name: str) -> str:
        return await asyncio.to_thread(self.upload_sync, data, name)
