"""
Data models for weather risk alerts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class Severity(str, Enum):
    """
    Alert severity. Threshold alerts use warning/severe/extreme; AI analysis
    may also use low/medium/high/critical. Both share one order via `rank`.
    """
    LOW = "low"
    WARNING = "warning"
    MEDIUM = "medium"
    SEVERE = "severe"
    HIGH = "high"
    EXTREME = "extreme"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.WARNING: 1,
    Severity.MEDIUM: 1,
    Severity.SEVERE: 2,
    Severity.HIGH: 2,
    Severity.EXTREME: 3,
    Severity.CRITICAL: 3,
}


class AlertCategory(str, Enum):
    FLOOD_RISK = "flood_risk"
    CYCLONE_RISK = "cyclone_risk"
    LANDSLIDE_RISK = "landslide_risk"
    HEAVY_RAIN = "heavy_rain"
    STRONG_WIND = "strong_wind"


class AlertSource(str, Enum):
    THRESHOLD = "threshold"
    AI = "ai"


@dataclass(frozen=True)
class ForecastDay:
    date: str                 # ISO date, YYYY-MM-DD
    precipitation: float      # mm in 24h
    wind_speed: float         # peak km/h at 10m


@dataclass(frozen=True)
class Forecast:
    """Daily forecast as returned by the weather collaborator."""
    days: List[ForecastDay] = field(default_factory=list)

    @classmethod
    def from_open_meteo(cls, payload: Optional[Mapping[str, Any]]) -> "Forecast":
        """
        Build from an Open-Meteo style payload:
        {"daily": {"time": [...], "precipitation_sum": [...], "wind_speed_10m_max": [...]}}
        Missing or null values are read as 0.
        """
        daily = (payload or {}).get("daily") or {}
        times = daily.get("time") or []
        rain = daily.get("precipitation_sum") or []
        wind = daily.get("wind_speed_10m_max") or []

        def value_at(values, i):
            if i < len(values) and values[i] is not None:
                return float(values[i])
            return 0.0

        return cls(days=[
            ForecastDay(date=str(day), precipitation=value_at(rain, i), wind_speed=value_at(wind, i))
            for i, day in enumerate(times)
        ])


@dataclass(frozen=True)
class AlertRecord:
    """
    One derived risk signal.

    Attributes:
        category: AlertCategory value (AI alerts may carry other strings)
        severity: Position in the shared severity order
        title: Short headline
        message: Actionable text
        date: Forecast date the alert is about ("" when not tied to a day)
        value: Magnitude (mm of rain or km/h of wind), if any
        icon: Display icon
        affected_areas: Area names (AI alerts only)
        timeframe: Free-text timing (AI alerts only)
        source: Which engine produced it
    """
    category: str
    severity: Severity
    title: str
    message: str
    date: str = ""
    value: Optional[float] = None
    icon: str = "⚠️"
    affected_areas: List[str] = field(default_factory=list)
    timeframe: Optional[str] = None
    source: AlertSource = AlertSource.THRESHOLD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": str(getattr(self.category, "value", self.category)),
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "date": self.date,
            "value": self.value,
            "icon": self.icon,
            "affectedAreas": list(self.affected_areas),
            "timeframe": self.timeframe,
            "source": self.source.value,
        }


def sort_by_severity(alerts: List[AlertRecord]) -> List[AlertRecord]:
    """Most severe first; stable among equal severities."""
    return sorted(alerts, key=lambda alert: -alert.severity.rank)


@dataclass(frozen=True)
class AlertAnalysis:
    """Structured result from AI analysis."""
    overall_risk: Severity
    alerts: List[AlertRecord]
    risk_score: Optional[float] = None
    primary_threat: str = ""
    recommendations: List[str] = field(default_factory=list)
    summary: str = ""
    is_ai: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallRisk": self.overall_risk.value,
            "riskScore": self.risk_score,
            "primaryThreat": self.primary_threat,
            "alerts": [alert.to_dict() for alert in self.alerts],
            "recommendations": list(self.recommendations),
            "summary": self.summary,
            "isAI": self.is_ai,
        }
