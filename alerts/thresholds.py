"""
Threshold Alert Engine - rule-based weather alerts.

Thresholds follow the Sri Lanka Disaster Management Centre (DMC)
rainfall and wind guidelines. The engine is a pure function of the
forecast and the reference date, so the same input always produces the
same alerts in the same order.
"""

from datetime import date as Date
from typing import List, Optional

from alerts.models import AlertCategory, AlertRecord, Forecast, Severity, sort_by_severity

# Days of forecast that are evaluated
FORECAST_WINDOW_DAYS = 3

THRESHOLDS = {
    "rainfall": {          # mm in 24h
        "warning": 75,
        "severe": 150,
        "extreme": 200,
    },
    "wind": {              # km/h
        "warning": 50,
        "severe": 75,
        "extreme": 100,
    },
}


def format_day(day: str, today: Date) -> str:
    """'today', 'tomorrow', or a short label like 'Wed, Oct 21'."""
    try:
        parsed = Date.fromisoformat(day)
    except ValueError:
        return day
    delta = (parsed - today).days
    if delta == 0:
        return "today"
    if delta == 1:
        return "tomorrow"
    return f"{parsed:%a}, {parsed:%b} {parsed.day}"


def _rain_alert(day: str, label: str, rain: float) -> Optional[AlertRecord]:
    bands = THRESHOLDS["rainfall"]
    if rain >= bands["extreme"]:
        return AlertRecord(
            category=AlertCategory.FLOOD_RISK,
            severity=Severity.EXTREME,
            title="Extreme Flood Risk",
            message=f"Expected rainfall of {rain:.0f}mm on {label}. Evacuate low-lying areas immediately.",
            date=day,
            value=rain,
            icon="🌊",
        )
    if rain >= bands["severe"]:
        return AlertRecord(
            category=AlertCategory.HEAVY_RAIN,
            severity=Severity.SEVERE,
            title="Heavy Rainfall Warning",
            message=f"Expected rainfall of {rain:.0f}mm on {label}. Flash floods likely.",
            date=day,
            value=rain,
            icon="⛈️",
        )
    if rain >= bands["warning"]:
        return AlertRecord(
            category=AlertCategory.HEAVY_RAIN,
            severity=Severity.WARNING,
            title="Rainfall Advisory",
            message=f"Moderate rainfall of {rain:.0f}mm expected on {label}.",
            date=day,
            value=rain,
            icon="🌧️",
        )
    return None


def _wind_alert(day: str, label: str, wind: float) -> Optional[AlertRecord]:
    bands = THRESHOLDS["wind"]
    if wind >= bands["extreme"]:
        return AlertRecord(
            category=AlertCategory.CYCLONE_RISK,
            severity=Severity.EXTREME,
            title="Cyclone/Storm Warning",
            message=f"Wind speeds up to {wind:.0f}km/h expected on {label}. Stay indoors.",
            date=day,
            value=wind,
            icon="🌀",
        )
    if wind >= bands["severe"]:
        return AlertRecord(
            category=AlertCategory.STRONG_WIND,
            severity=Severity.SEVERE,
            title="Gale Force Wind Warning",
            message=f"Strong winds up to {wind:.0f}km/h on {label}.",
            date=day,
            value=wind,
            icon="💨",
        )
    if wind >= bands["warning"]:
        return AlertRecord(
            category=AlertCategory.STRONG_WIND,
            severity=Severity.WARNING,
            title="Strong Wind Advisory",
            message=f"Winds up to {wind:.0f}km/h expected on {label}. Secure loose objects.",
            date=day,
            value=wind,
            icon="💨",
        )
    return None


class ThresholdAlertEngine:
    """
    Maps a forecast to prioritized rule-based alerts.

    Per day: at most one rain alert (highest band), at most one wind alert
    (highest band), plus a landslide alert when rain reaches the severe band.
    """

    def analyze(self, forecast: Forecast, today: Optional[Date] = None) -> List[AlertRecord]:
        today = today or Date.today()
        alerts: List[AlertRecord] = []

        for day in forecast.days[:FORECAST_WINDOW_DAYS]:
            label = format_day(day.date, today)

            rain_alert = _rain_alert(day.date, label, day.precipitation)
            if rain_alert is not None:
                alerts.append(rain_alert)

            wind_alert = _wind_alert(day.date, label, day.wind_speed)
            if wind_alert is not None:
                alerts.append(wind_alert)

            # Heavy rain on steep terrain
            if day.precipitation >= THRESHOLDS["rainfall"]["severe"]:
                alerts.append(AlertRecord(
                    category=AlertCategory.LANDSLIDE_RISK,
                    severity=Severity.SEVERE,
                    title="Landslide Risk",
                    message=f"High landslide risk in hilly areas on {label} due to heavy rainfall.",
                    date=day.date,
                    value=day.precipitation,
                    icon="⛰️",
                ))

        return sort_by_severity(alerts)


def analyze_weather_for_alerts(forecast: Forecast, today: Optional[Date] = None) -> List[AlertRecord]:
    """Convenience wrapper around ThresholdAlertEngine.analyze."""
    return ThresholdAlertEngine().analyze(forecast, today=today)
