"""
Runtime settings, read from the environment (and an optional .env file).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Placeholder shipped in example .env files; treated as "not configured"
GEMINI_KEY_PLACEHOLDER = "your_gemini_api_key_here"

# Colombo, Sri Lanka
DEFAULT_LATITUDE = 6.9271
DEFAULT_LONGITUDE = 79.8612


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass
class Settings:
    """
    Everything the daemon and CLI need to wire up the components.

    Attributes:
        data_dir: Directory for the local SQLite files
        queue_db: Local key-value store holding the offline queue
        incident_db: Local incident store (used when store_url is not set)
        store_url: Base URL of a remote incident store
        blob_url: Base URL of a remote blob store
        blob_dir: Directory for locally stored images (when blob_url is not set)
        gemini_api_key: Credential for AI analysis; None disables it
        gemini_model: Model name for AI analysis
        ai_enabled: Whether the orchestrator consults AI analysis at all
        latitude, longitude: Location the alert forecast is fetched for
        check_host, check_port: TCP endpoint used as the connectivity signal
        sync_interval: Seconds between safety-net queue drains
    """
    data_dir: str = "."
    queue_db: str = "offline_queue.db"
    incident_db: str = "incidents.db"
    store_url: Optional[str] = None
    blob_url: Optional[str] = None
    blob_dir: str = "sos-images"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    ai_enabled: bool = False
    latitude: float = DEFAULT_LATITUDE
    longitude: float = DEFAULT_LONGITUDE
    check_host: str = "1.1.1.1"
    check_port: int = 53
    sync_interval: float = 300.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=os.getenv("RESCUEHQ_DATA_DIR", "."),
            queue_db=os.getenv("RESCUEHQ_QUEUE_DB", "offline_queue.db"),
            incident_db=os.getenv("RESCUEHQ_INCIDENT_DB", "incidents.db"),
            store_url=_env_str("RESCUEHQ_STORE_URL"),
            blob_url=_env_str("RESCUEHQ_BLOB_URL"),
            blob_dir=os.getenv("RESCUEHQ_BLOB_DIR", "sos-images"),
            gemini_api_key=_env_str("GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
            ai_enabled=_env_bool("RESCUEHQ_AI_ENABLED"),
            latitude=float(os.getenv("RESCUEHQ_LATITUDE", DEFAULT_LATITUDE)),
            longitude=float(os.getenv("RESCUEHQ_LONGITUDE", DEFAULT_LONGITUDE)),
            check_host=os.getenv("RESCUEHQ_CHECK_HOST", "1.1.1.1"),
            check_port=int(os.getenv("RESCUEHQ_CHECK_PORT", "53")),
            sync_interval=float(os.getenv("RESCUEHQ_SYNC_INTERVAL", "300")),
        )

    @property
    def has_gemini_key(self) -> bool:
        return bool(self.gemini_api_key) and self.gemini_api_key != GEMINI_KEY_PLACEHOLDER

    def path(self, filename: str) -> str:
        """Resolve a data file relative to data_dir (absolute paths pass through)."""
        if os.path.isabs(filename):
            return filename
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)
        return str(Path(self.data_dir) / filename)
