"""
SOS submission side of RescueHQ.
Connectivity tracking, the durable offline queue, the submission
pipeline and the queue sync engine.
"""

from sos.models import (
    IncidentReport, IncidentType, IncidentStatus, GeoPoint, ImageAttachment,
    QueuedSubmission, Delivered, Queued, Failed, SyncResult,
)
from sos.connectivity import ConnectivityMonitor, ConnectivityEvent
from sos.storage import LocalStorage
from sos.offline_queue import DurableQueue, QUEUE_KEY
from sos.pipeline import SubmissionPipeline, SUBMISSION_TIMEOUT_SECONDS
from sos.sync import SyncEngine

__all__ = [
    "IncidentReport",
    "IncidentType",
    "IncidentStatus",
    "GeoPoint",
    "ImageAttachment",
    "QueuedSubmission",
    "Delivered",
    "Queued",
    "Failed",
    "SyncResult",
    "ConnectivityMonitor",
    "ConnectivityEvent",
    "LocalStorage",
    "DurableQueue",
    "QUEUE_KEY",
    "SubmissionPipeline",
    "SUBMISSION_TIMEOUT_SECONDS",
    "SyncEngine",
]
