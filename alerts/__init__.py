"""
Weather risk alerts for RescueHQ.
Rule-based threshold alerts, Gemini analysis with caching, and the
orchestrator that chooses between them.
"""

from alerts.models import (
    Severity, AlertCategory, AlertSource, AlertRecord, AlertAnalysis,
    Forecast, ForecastDay, sort_by_severity,
)
from alerts.thresholds import ThresholdAlertEngine, THRESHOLDS, analyze_weather_for_alerts
from alerts.ai_client import AIAlertClient, AnalysisCache, build_prompt, parse_analysis
from alerts.orchestrator import AlertOrchestrator, AlertSnapshot, REFRESH_INTERVAL_SECONDS

__all__ = [
    "Severity",
    "AlertCategory",
    "AlertSource",
    "AlertRecord",
    "AlertAnalysis",
    "Forecast",
    "ForecastDay",
    "sort_by_severity",
    "ThresholdAlertEngine",
    "THRESHOLDS",
    "analyze_weather_for_alerts",
    "AIAlertClient",
    "AnalysisCache",
    "build_prompt",
    "parse_analysis",
    "AlertOrchestrator",
    "AlertSnapshot",
    "REFRESH_INTERVAL_SECONDS",
]
