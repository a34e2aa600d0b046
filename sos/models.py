"""
Data models for the SOS submission side: incident reports, queued
submissions and submission outcomes.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from errors import ValidationError

NO_LOCATION_LABEL = "Location not provided"


class IncidentType(str, Enum):
    """Emergency categories a reporter can pick."""
    FLOOD = "flood"
    LANDSLIDE = "landslide"
    MEDICAL = "medical"
    TRAPPED = "trapped"
    OTHER = "other"


class IncidentStatus(str, Enum):
    """Lifecycle of an incident once it is in the central store."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GeoPoint":
        return cls(latitude=float(data["latitude"]), longitude=float(data["longitude"]))


@dataclass(frozen=True)
class ImageAttachment:
    """Raw image bytes picked by the reporter, uploaded before the record."""
    data: bytes = field(repr=False)
    filename: str = "image.jpg"


@dataclass
class IncidentReport:
    """
    One emergency report.

    Attributes:
        name: Reporter name
        phone: Reporter phone number
        type: Emergency category
        description: Free text from the reporter
        location: Device geolocation; None when it could not be obtained
        address: Human-readable address resolved from the location
        image: Attachment that still has to be uploaded
        image_url: Resolved blob URL for the attachment
        status: Lifecycle status in the central store
        user_id: Authenticated user id, or "anonymous"
        queued_at: Set when a queued submission is being replayed
        created_at: Assigned by the store, never by the client
    """
    name: str
    phone: str
    type: IncidentType
    description: str
    location: Optional[GeoPoint] = None
    address: str = ""
    image: Optional[ImageAttachment] = None
    image_url: str = ""
    status: IncidentStatus = IncidentStatus.PENDING
    user_id: str = "anonymous"
    queued_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_input(cls, data: Mapping[str, Any]) -> "IncidentReport":
        """
        Build a report from raw form/CLI input.

        Raises:
            ValidationError: on missing required fields or an unknown category
        """
        missing = [key for key in ("name", "phone", "description") if not str(data.get(key) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

        raw_type = str(data.get("type") or IncidentType.OTHER.value).strip().lower()
        try:
            incident_type = IncidentType(raw_type)
        except ValueError:
            raise ValidationError(f"Unknown emergency type: {raw_type}")

        location = data.get("location")
        if location is not None and not isinstance(location, GeoPoint):
            try:
                location = GeoPoint.from_dict(location)
            except (KeyError, TypeError, ValueError):
                raise ValidationError("Location must have numeric latitude and longitude")

        return cls(
            name=str(data["name"]).strip(),
            phone=str(data["phone"]).strip(),
            type=incident_type,
            description=str(data["description"]).strip(),
            location=location,
            address=str(data.get("address") or ""),
            image=data.get("image"),
            image_url=str(data.get("imageUrl") or data.get("image_url") or ""),
            user_id=str(data.get("userId") or "anonymous"),
        )

    @property
    def has_location(self) -> bool:
        return self.location is not None

    def location_label(self) -> str:
        """Address, else coordinates, else an explicit missing-location flag."""
        if self.address:
            return self.address
        if self.location is not None:
            return f"{self.location.latitude:.4f}, {self.location.longitude:.4f}"
        return NO_LOCATION_LABEL

    def to_payload(self) -> Dict[str, Any]:
        """Fields carried by a queued submission (no image bytes)."""
        payload: Dict[str, Any] = {
            "name": self.name,
            "phone": self.phone,
            "type": self.type.value,
            "description": self.description,
        }
        if self.location is not None:
            payload["location"] = self.location.to_dict()
        if self.address:
            payload["address"] = self.address
        if self.image_url:
            payload["imageUrl"] = self.image_url
        if self.user_id != "anonymous":
            payload["userId"] = self.user_id
        return payload

    def to_document(self) -> Dict[str, Any]:
        """Record shape written to the central store."""
        doc = {
            "userId": self.user_id,
            "name": self.name,
            "phone": self.phone,
            "type": self.type.value,
            "description": self.description,
            "location": self.location.to_dict() if self.location else None,
            "address": self.address,
            "imageUrl": self.image_url,
            "status": self.status.value,
            "notificationSent": False,
        }
        if self.queued_at:
            doc["offlineQueued"] = True
            doc["originalQueuedAt"] = self.queued_at
        return doc

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "IncidentReport":
        location = doc.get("location")
        return cls(
            name=doc.get("name", ""),
            phone=doc.get("phone", ""),
            type=IncidentType(doc.get("type", IncidentType.OTHER.value)),
            description=doc.get("description", ""),
            location=GeoPoint.from_dict(location) if location else None,
            address=doc.get("address") or "",
            image_url=doc.get("imageUrl") or "",
            status=IncidentStatus(doc.get("status", IncidentStatus.PENDING.value)),
            user_id=doc.get("userId") or "anonymous",
            queued_at=doc.get("originalQueuedAt"),
            created_at=doc.get("createdAt"),
        )


@dataclass(frozen=True)
class QueuedSubmission:
    """
    A report waiting in the offline queue.

    `synced` is always False while the item is resident; it is kept in the
    persisted record for older readers and never drives any state.
    """
    id: str
    report: IncidentReport
    queued_at: str
    synced: bool = False

    def to_dict(self) -> Dict[str, Any]:
        record = {"id": self.id}
        record.update(self.report.to_payload())
        record["queuedAt"] = self.queued_at
        record["synced"] = False
        return record

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> "QueuedSubmission":
        location = record.get("location")
        report = IncidentReport(
            name=record["name"],
            phone=record["phone"],
            type=IncidentType(record["type"]),
            description=record.get("description", ""),
            location=GeoPoint.from_dict(location) if location else None,
            address=record.get("address") or "",
            image_url=record.get("imageUrl") or "",
            user_id=record.get("userId") or "anonymous",
        )
        return cls(id=str(record["id"]), report=report, queued_at=record["queuedAt"])

    def replay_report(self) -> IncidentReport:
        """The embedded report, marked as coming from the offline queue."""
        return replace(self.report, queued_at=self.queued_at)


# ═══════════════════════════════════════════════════════════════════════════
# OUTCOMES
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class Delivered:
    server_id: str


@dataclass(frozen=True)
class Queued:
    local_id: str


@dataclass(frozen=True)
class Failed:
    reason: str
    detail: str = ""


SubmissionOutcome = Union[Delivered, Queued, Failed]


@dataclass(frozen=True)
class SyncResult:
    synced: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"synced": self.synced, "failed": self.failed}
