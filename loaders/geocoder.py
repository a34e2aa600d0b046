"""
Geocoder - turn a reporter's coordinates into a readable address (Nominatim).

Features:
- Rate limiting (1 request/second per Nominatim policy)
- SQLite cache so repeated reports from one spot don't hit the API
- Retry with exponential backoff
- Falls back to a "lat, lon" label when no address can be resolved
"""

import time
import sqlite3
import json
from typing import Optional, Dict
from dataclasses import dataclass, asdict
import logging
import requests
from tenacity import retry, stop_after_attempt, wait_exponential

log = logging.getLogger(__name__)

# Rate limiter - tracks last request time
_last_request_time = 0.0
_MIN_REQUEST_INTERVAL = 1.1  # 1.1 seconds between requests (slightly over 1/sec)


@dataclass
class ResolvedAddress:
    """Result of reverse geocoding one point."""
    address: str
    place: str = ""
    district: str = ""
    country: str = ""
    short_address: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)


def coordinate_label(lat: float, lon: float) -> str:
    return f"{lat:.4f}, {lon:.4f}"


class GeocodingCache:
    """SQLite cache for reverse geocoding results."""

    def __init__(self, db_path: str = "geocode_cache.db"):
        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(self.db_path)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS reverse_cache (
                point_key TEXT PRIMARY KEY,
                result_json TEXT,
                created_at REAL
            )
        """)
        conn.commit()
        conn.close()

    def _make_key(self, lat: float, lon: float) -> str:
        return f"{lat:.5f},{lon:.5f}"

    def get(self, lat: float, lon: float) -> Optional[ResolvedAddress]:
        conn = sqlite3.connect(self.db_path)
        row = conn.execute(
            "SELECT result_json FROM reverse_cache WHERE point_key = ?",
            (self._make_key(lat, lon),)
        ).fetchone()
        conn.close()
        if row:
            return ResolvedAddress(**json.loads(row[0]))
        return None

    def set(self, lat: float, lon: float, result: ResolvedAddress):
        conn = sqlite3.connect(self.db_path)
        conn.execute(
            """INSERT OR REPLACE INTO reverse_cache
               (point_key, result_json, created_at)
               VALUES (?, ?, ?)""",
            (self._make_key(lat, lon), json.dumps(result.to_dict()), time.time())
        )
        conn.commit()
        conn.close()


class Geocoder:
    """
    Reverse geocoder using the OpenStreetMap Nominatim API.

    Respects rate limits: max 1 request per second.
    """

    REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
    USER_AGENT = "RescueHQ/1.0 (emergency reporting)"

    def __init__(self, cache_path: str = "geocode_cache.db"):
        self.cache = GeocodingCache(cache_path)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": self.USER_AGENT})

    def _rate_limit(self):
        """Ensure we don't exceed 1 request per second."""
        global _last_request_time
        elapsed = time.time() - _last_request_time
        if elapsed < _MIN_REQUEST_INTERVAL:
            time.sleep(_MIN_REQUEST_INTERVAL - elapsed)
        _last_request_time = time.time()

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=2, min=2, max=10))
    def _make_request(self, params: Dict) -> Dict:
        """Make a rate-limited request with retry."""
        self._rate_limit()
        response = self.session.get(self.REVERSE_URL, params=params, timeout=10)
        response.raise_for_status()
        return response.json()

    def reverse_geocode(self, lat: float, lon: float) -> ResolvedAddress:
        """
        Convert coordinates to an address.

        Never fails: when the lookup does not work out, the address is the
        coordinate label itself.
        """
        cached = self.cache.get(lat, lon)
        if cached:
            log.debug(f"Cache hit for ({lat:.5f}, {lon:.5f})")
            return cached

        params = {
            "lat": lat,
            "lon": lon,
            "format": "jsonv2",
            "addressdetails": 1,
        }

        try:
            result = self._make_request(params)
        except Exception as e:
            log.error(f"Reverse geocoding failed: {e}")
            return ResolvedAddress(address=coordinate_label(lat, lon))

        display_name = result.get("display_name")
        if not display_name:
            log.warning(f"No address for ({lat:.4f}, {lon:.4f})")
            return ResolvedAddress(address=coordinate_label(lat, lon))

        parts = result.get("address", {})
        place = parts.get("city") or parts.get("town") or parts.get("village") or ""
        resolved = ResolvedAddress(
            address=display_name,
            place=place,
            district=parts.get("state_district") or parts.get("county") or "",
            country=parts.get("country", ""),
            short_address=result.get("name") or place,
        )

        self.cache.set(lat, lon, resolved)
        log.info(f"Reverse geocoded ({lat:.4f}, {lon:.4f}) -> {display_name}")
        return resolved
