"""
SQLite Incident Store - local central store for incident records.

Used when no remote store is configured, and by the admin commands of the
CLI. Blocking SQLite work runs in a worker thread so the event loop stays
responsive.
"""

import asyncio
import json
import sqlite3
import threading
import uuid
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from errors import UnavailableError, ValidationError
from sos.models import IncidentReport, IncidentStatus
from stores.base import IncidentStore

log = logging.getLogger(__name__)

# Columns that may be patched through update()
UPDATABLE_FIELDS = {"status", "notificationSent", "address", "imageUrl"}


class SqliteIncidentStore(IncidentStore):
    """
    Incident records in a local SQLite database.

    Usage:
        store = SqliteIncidentStore("incidents.db")
        incident_id = await store.create(report)
        await store.update(incident_id, {"status": "in-progress"})
    """

    DEFAULT_DB_PATH = "incidents.db"

    def __init__(self, db_path: str = None):
        self.db_path = db_path or self.DEFAULT_DB_PATH
        self._lock = threading.RLock()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS incidents (
                        id TEXT PRIMARY KEY,
                        document TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending',
                        created_at TEXT NOT NULL
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_incident_status ON incidents(status)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_incident_created ON incidents(created_at)")
                conn.commit()
                log.info(f"Incident store initialized at {self.db_path}")
            finally:
                conn.close()

    def _row_to_doc(self, row: sqlite3.Row) -> Dict[str, Any]:
        doc = json.loads(row["document"])
        doc["id"] = row["id"]
        doc["status"] = row["status"]
        doc["createdAt"] = row["created_at"]
        return doc

    # ── synchronous implementations ─────────────────────────────────────

    def create_sync(self, report: IncidentReport) -> str:
        incident_id = uuid.uuid4().hex
        doc = report.to_document()
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            try:
                conn = self._get_connection()
                try:
                    with conn:
                        conn.execute(
                            "INSERT INTO incidents (id, document, status, created_at) VALUES (?, ?, ?, ?)",
                            (incident_id, json.dumps(doc), doc["status"], now)
                        )
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise UnavailableError(f"Incident store unavailable: {e}") from e
        log.info(f"Stored incident {incident_id} ({report.type.value})")
        return incident_id

    def get(self, incident_id: str) -> Optional[Dict[str, Any]]:
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM incidents WHERE id = ?", (incident_id,)).fetchone()
            return self._row_to_doc(row) if row else None
        finally:
            conn.close()

    def update_sync(self, incident_id: str, fields: Dict[str, Any]):
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if "status" in fields:
            try:
                fields = dict(fields, status=IncidentStatus(fields["status"]).value)
            except ValueError:
                raise ValidationError(f"Unknown status: {fields['status']}")

        with self._lock:
            try:
                conn = self._get_connection()
                try:
                    with conn:
                        row = conn.execute(
                            "SELECT * FROM incidents WHERE id = ?", (incident_id,)
                        ).fetchone()
                        if row is None:
                            raise ValidationError(f"No incident with id {incident_id}")
                        doc = json.loads(row["document"])
                        doc.update(fields)
                        conn.execute(
                            "UPDATE incidents SET document = ?, status = ? WHERE id = ?",
                            (json.dumps(doc), doc.get("status", row["status"]), incident_id)
                        )
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise UnavailableError(f"Incident store unavailable: {e}") from e
        log.info(f"Updated incident {incident_id}: {fields}")

    def delete_sync(self, incident_id: str):
        with self._lock:
            try:
                conn = self._get_connection()
                try:
                    with conn:
                        conn.execute("DELETE FROM incidents WHERE id = ?", (incident_id,))
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise UnavailableError(f"Incident store unavailable: {e}") from e

    def list_incidents(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """All incidents, newest first, optionally filtered by status."""
        conn = self._get_connection()
        try:
            if status:
                rows = conn.execute(
                    "SELECT * FROM incidents WHERE status = ? ORDER BY created_at DESC", (status,)
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM incidents ORDER BY created_at DESC").fetchall()
            return [self._row_to_doc(row) for row in rows]
        finally:
            conn.close()

    def recent_sync(self, hours: int = 24) -> List[Dict[str, Any]]:
        since = (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM incidents WHERE created_at >= ? ORDER BY created_at DESC", (since,)
            ).fetchall()
            return [self._row_to_doc(row) for row in rows]
        finally:
            conn.close()

    def status_counts(self) -> Dict[str, int]:
        """Counts of incidents per status (all statuses present, zero-filled)."""
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS count FROM incidents GROUP BY status"
            ).fetchall()
        finally:
            conn.close()
        counts = {status.value: 0 for status in IncidentStatus}
        counts.update({row["status"]: row["count"] for row in rows})
        return counts

    # ── IncidentStore interface ─────────────────────────────────────────

    async def create(self, report: IncidentReport) -> str:
        return await asyncio.to_thread(self.create_sync, report)

    async def update(self, incident_id: str, fields: Dict[str, Any]):
        await asyncio.to_thread(self.update_sync, incident_id, fields)

    async def delete(self, incident_id: str):
        await asyncio.to_thread(self.delete_sync, incident_id)

    async def recent(self, hours: int = 24) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.recent_sync, hours)
