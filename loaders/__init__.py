"""
Data loaders for RescueHQ.

Includes:
- Weather forecast (Open-Meteo)
- Reverse geocoding (Nominatim)
"""

from loaders.weather import WeatherLoader, REGIONS, resolve_region
from loaders.geocoder import Geocoder, ResolvedAddress, coordinate_label

__all__ = [
    "WeatherLoader",
    "REGIONS",
    "resolve_region",
    "Geocoder",
    "ResolvedAddress",
    "coordinate_label",
]
