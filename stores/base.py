"""
Collaborator interfaces the submission side depends on.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from sos.models import IncidentReport


class IncidentStore(ABC):
    """
    Durable central store for incident records (the delivery collaborator).

    Implementations raise ValidationError, UnavailableError or
    UnknownDeliveryError from errors.py, never raw transport exceptions.
    """

    @abstractmethod
    async def create(self, report: IncidentReport) -> str:
        """Persist a new incident and return the store-assigned id."""

    @abstractmethod
    async def update(self, incident_id: str, fields: Dict[str, Any]):
        """Patch fields of an existing incident (status, notification flag...)."""

    @abstractmethod
    async def delete(self, incident_id: str):
        """Remove an incident."""

    @abstractmethod
    async def recent(self, hours: int = 24) -> List[Dict[str, Any]]:
        """Incident documents created in the last `hours` hours, newest first."""


class BlobStore(ABC):
    """Binary storage for image attachments."""

    @abstractmethod
    async def upload(self, data: bytes, name: str) -> str:
        """Store bytes under `name` and return a URL for them."""
