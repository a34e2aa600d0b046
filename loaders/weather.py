"""
Weather Loader - daily forecast from Open-Meteo.

No authentication required. Only precipitation sums and peak wind speed
are requested, which is all the alert engines look at.
"""

import asyncio
import logging
from typing import Dict

import requests
from tenacity import retry, stop_after_attempt, wait_exponential

from alerts.models import Forecast

log = logging.getLogger(__name__)

# Major Sri Lankan regions (name, lat, lon)
REGIONS: Dict[str, tuple] = {
    "colombo": ("Colombo", 6.9271, 79.8612),
    "kandy": ("Kandy", 7.2906, 80.6337),
    "galle": ("Galle", 6.0535, 80.2210),
    "jaffna": ("Jaffna", 9.6615, 80.0255),
    "trincomalee": ("Trincomalee", 8.5874, 81.2152),
    "batticaloa": ("Batticaloa", 7.7310, 81.6747),
    "anuradhapura": ("Anuradhapura", 8.3114, 80.4037),
    "ratnapura": ("Ratnapura", 6.6828, 80.3992),
    "badulla": ("Badulla", 6.9934, 81.0550),
    "matara": ("Matara", 5.9549, 80.5550),
    "kurunegala": ("Kurunegala", 7.4863, 80.3647),
    "nuwara_eliya": ("Nuwara Eliya", 6.9497, 80.7891),
    "hambantota": ("Hambantota", 6.1241, 81.1185),
    "kalutara": ("Kalutara", 6.5854, 79.9607),
    "negombo": ("Negombo", 7.2094, 79.8385),
}


class WeatherLoader:
    """
    Fetch daily forecasts from the Open-Meteo API.

    API: https://open-meteo.com/en/docs
    """

    FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

    def __init__(self):
        self.session = requests.Session()

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=5), reraise=True)
    def _fetch(self, params: Dict) -> Dict:
        response = self.session.get(self.FORECAST_URL, params=params, timeout=15)
        response.raise_for_status()
        return response.json()

    def fetch_forecast(self, lat: float, lon: float, days: int = 5) -> Forecast:
        """
        Get the daily forecast for a point.

        Raises:
            requests.RequestException: if Open-Meteo cannot be reached after retries
        """
        params = {
            "latitude": lat,
            "longitude": lon,
            "daily": "precipitation_sum,wind_speed_10m_max",
            "forecast_days": days,
            "timezone": "auto",
        }
        data = self._fetch(params)
        forecast = Forecast.from_open_meteo(data)
        log.debug(f"Forecast for ({lat:.4f}, {lon:.4f}): {len(forecast.days)} day(s)")
        return forecast

    async def forecast(self, lat: float, lon: float, days: int = 5) -> Forecast:
        return await asyncio.to_thread(self.fetch_forecast, lat, lon, days)


def resolve_region(name: str) -> tuple:
    """(display name, lat, lon) for a region key such as 'nuwara_eliya'."""
    key = name.strip().lower().replace(" ", "_")
    if key not in REGIONS:
        raise KeyError(f"Unknown region '{name}'. Known: {', '.join(sorted(REGIONS))}")
    return REGIONS[key]
