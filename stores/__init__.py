"""
Delivery and blob collaborators for RescueHQ.

Includes:
- Local SQLite incident store
- REST incident store and blob store
- Filesystem blob store
"""

from stores.base import IncidentStore, BlobStore
from stores.sqlite_store import SqliteIncidentStore
from stores.http_store import HttpIncidentStore, HttpBlobStore
from stores.blob_dir import DirectoryBlobStore

__all__ = [
    "IncidentStore",
    "BlobStore",
    "SqliteIncidentStore",
    "HttpIncidentStore",
    "HttpBlobStore",
    "DirectoryBlobStore",
]
