"""
Alert Orchestrator - picks which alert engine's output is shown.

Each refresh fetches the forecast, then:
- AI mode on and AI returns at least one alert -> show the AI result only
- otherwise                                    -> show threshold alerts only

The two result sets are never merged.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from alerts.ai_client import AIAlertClient
from alerts.models import AlertAnalysis, AlertRecord, AlertSource
from alerts.thresholds import ThresholdAlertEngine

log = logging.getLogger(__name__)

REFRESH_INTERVAL_SECONDS = 30 * 60

IncidentsProvider = Callable[[], Awaitable[List[Mapping[str, Any]]]]


@dataclass(frozen=True)
class AlertSnapshot:
    """The alerts that are live after one refresh cycle."""
    alerts: List[AlertRecord]
    source: AlertSource
    analysis: Optional[AlertAnalysis] = None
    refreshed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alerts": [alert.to_dict() for alert in self.alerts],
            "source": self.source.value,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "refreshedAt": self.refreshed_at,
            "error": self.error,
        }


class AlertOrchestrator:
    """
    Periodic alert refresh with AI-first, threshold-fallback selection.

    Usage:
        orchestrator = AlertOrchestrator(weather, lat, lon, ai_client=client, ai_enabled=True)
        snapshot = await orchestrator.refresh()
    """

    def __init__(
        self,
        weather,
        latitude: float,
        longitude: float,
        threshold_engine: Optional[ThresholdAlertEngine] = None,
        ai_client: Optional[AIAlertClient] = None,
        ai_enabled: bool = False,
        incidents_provider: Optional[IncidentsProvider] = None,
        interval: float = REFRESH_INTERVAL_SECONDS,
    ):
        """
        Args:
            weather: Weather collaborator with an async forecast(lat, lon) method
            latitude, longitude: Where to fetch the forecast for
            threshold_engine: Rule-based engine (a default one is created)
            ai_client: AI analysis client
            ai_enabled: Whether AI analysis is consulted
            incidents_provider: Async callable returning recent incident documents
            interval: Seconds between refreshes in run()
        """
        self.weather = weather
        self.latitude = latitude
        self.longitude = longitude
        self.threshold_engine = threshold_engine or ThresholdAlertEngine()
        self.ai_client = ai_client
        self.ai_enabled = ai_enabled
        self.incidents_provider = incidents_provider
        self.interval = interval
        self._current: Optional[AlertSnapshot] = None

    @property
    def current(self) -> Optional[AlertSnapshot]:
        return self._current

    async def _recent_incidents(self) -> List[Mapping[str, Any]]:
        if self.incidents_provider is None:
            return []
        try:
            return await self.incidents_provider()
        except Exception as e:
            log.warning(f"Could not load recent incidents for AI context: {e}")
            return []

    async def refresh(self) -> AlertSnapshot:
        """Run one refresh cycle and make its result the live snapshot."""
        try:
            forecast = await self.weather.forecast(self.latitude, self.longitude)
        except Exception as e:
            log.error(f"Failed to fetch weather for alerts: {e}")
            snapshot = AlertSnapshot(alerts=[], source=AlertSource.THRESHOLD, error=str(e))
            self._current = snapshot
            return snapshot

        if self.ai_enabled and self.ai_client is not None:
            analysis = await self.ai_client.analyze(forecast, await self._recent_incidents())
            if analysis is not None and analysis.alerts:
                log.info(f"Showing {len(analysis.alerts)} AI alert(s), overall risk {analysis.overall_risk.value}")
                snapshot = AlertSnapshot(alerts=list(analysis.alerts), source=AlertSource.AI, analysis=analysis)
                self._current = snapshot
                return snapshot
            log.info("No usable AI analysis, falling back to threshold alerts")

        alerts = self.threshold_engine.analyze(forecast)
        log.info(f"Showing {len(alerts)} threshold alert(s)")
        snapshot = AlertSnapshot(alerts=alerts, source=AlertSource.THRESHOLD)
        self._current = snapshot
        return snapshot

    async def run(self, stop: asyncio.Event, on_refresh: Callable[[AlertSnapshot], Any] = None):
        """Refresh now, then every `interval` seconds until `stop` is set."""
        while not stop.is_set():
            snapshot = await self.refresh()
            if on_refresh is not None:
                on_refresh(snapshot)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
