"""
AI Alert Client - Gemini-backed weather risk analysis.

Features:
- Skips the call entirely when no API key is configured
- Caches the last good analysis for 10 minutes (AnalysisCache)
- Rate limits (HTTP 429) fall back to the cached analysis, even if stale
- Responses are validated against a schema before they are trusted

The client never raises to its caller; every failure ends in either the
cached analysis or None, and the caller falls back to threshold alerts.
"""

import asyncio
import json
import logging
import re
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaError

from alerts.models import AlertAnalysis, AlertRecord, AlertSource, Forecast, Severity, sort_by_severity
from config import GEMINI_KEY_PLACEHOLDER
from errors import InvalidAnalysisError, RateLimitedError

log = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_MODEL = "gemini-2.0-flash"
CACHE_TTL_SECONDS = 10 * 60
PROMPT_FORECAST_DAYS = 5
REQUEST_TIMEOUT_SECONDS = 30

GENERATION_CONFIG = {
    "temperature": 0.3,
    "maxOutputTokens": 1024,
}

ICONS = {
    "flood": "🌊",
    "cyclone": "🌀",
    "landslide": "⛰️",
    "heavy_rain": "⛈️",
    "strong_wind": "💨",
}
DEFAULT_ICON = "⚠️"

# AI alert types -> threshold alert categories
CATEGORY_MAP = {
    "flood": "flood_risk",
    "cyclone": "cyclone_risk",
    "landslide": "landslide_risk",
    "heavy_rain": "heavy_rain",
    "strong_wind": "strong_wind",
}

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


# ═══════════════════════════════════════════════════════════════════════════
# RESPONSE SCHEMA
# ═══════════════════════════════════════════════════════════════════════════
_SEVERITY_VALUES = {s.value for s in Severity}


def _normalize_severity(value):
    # Models answer "High" or " EXTREME "; anything unrecognised counts as a warning
    if isinstance(value, str):
        value = value.strip().lower()
        return value if value in _SEVERITY_VALUES else Severity.WARNING.value
    return value


class AIAlertPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = "other"
    severity: Severity = Severity.WARNING
    title: str = ""
    message: str = ""
    affected_areas: List[str] = Field(default_factory=list, alias="affectedAreas")
    timeframe: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value):
        if value is None:
            return Severity.WARNING
        return _normalize_severity(value)

    @field_validator("affected_areas", mode="before")
    @classmethod
    def _null_list(cls, value):
        return [] if value is None else value

    @field_validator("type", "title", "message", mode="before")
    @classmethod
    def _null_text(cls, value, info):
        if value is None:
            return "other" if info.field_name == "type" else ""
        return value


class AIAnalysisPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    overall_risk: Severity = Field(alias="overallRisk")
    alerts: List[AIAlertPayload]
    risk_score: Optional[float] = Field(default=None, alias="riskScore")
    primary_threat: str = Field(default="", alias="primaryThreat")
    recommendations: List[str] = Field(default_factory=list)
    summary: str = ""

    @field_validator("overall_risk", mode="before")
    @classmethod
    def _overall_risk(cls, value):
        return _normalize_severity(value)

    @field_validator("recommendations", mode="before")
    @classmethod
    def _null_list(cls, value):
        return [] if value is None else value

    @field_validator("primary_threat", "summary", mode="before")
    @classmethod
    def _null_text(cls, value):
        return "" if value is None else value


# ═══════════════════════════════════════════════════════════════════════════
# CACHE
# ═══════════════════════════════════════════════════════════════════════════
class AnalysisCache:
    """
    Last successful analysis and when it was fetched.

    Only ever overwritten by a successful fetch; failures leave it alone.
    """

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._analysis: Optional[AlertAnalysis] = None
        self._fetched_at = 0.0

    @property
    def analysis(self) -> Optional[AlertAnalysis]:
        return self._analysis

    @property
    def fetched_at(self) -> float:
        return self._fetched_at

    def fresh(self) -> Optional[AlertAnalysis]:
        """The cached analysis if it is younger than the TTL, else None."""
        if self._analysis is not None and (self._clock() - self._fetched_at) < self.ttl:
            return self._analysis
        return None

    def store(self, analysis: AlertAnalysis):
        self._analysis = analysis
        self._fetched_at = self._clock()


# ═══════════════════════════════════════════════════════════════════════════
# PROMPT / PARSING
# ═══════════════════════════════════════════════════════════════════════════
def build_prompt(forecast: Forecast, recent_incidents: Iterable[Mapping[str, Any]] = ()) -> str:
    """Prompt summarizing the 5-day forecast and recent incident categories."""
    days = forecast.days[:PROMPT_FORECAST_DAYS]
    forecast_lines = "\n".join(
        f"- {d.date}: Rain {d.precipitation:g}mm, Wind {d.wind_speed:g}km/h" for d in days
    )

    incident_types = [str(i.get("type", "other")) for i in recent_incidents]
    if incident_types:
        incident_summary = f"Recent incidents (last 24h): {', '.join(incident_types)}"
    else:
        incident_summary = "No recent incidents reported."

    return f"""You are a disaster risk analyst for Sri Lanka. Analyze this weather data and provide risk assessment.

WEATHER FORECAST (Next {PROMPT_FORECAST_DAYS} days):
{forecast_lines}

{incident_summary}

CONTEXT:
- Location: Colombo, Sri Lanka (Monsoon region)
- High flood risk area near Kelani River
- Landslide-prone hilly regions in Central Province
- DMC thresholds: Warning >75mm rain, Severe >150mm, Extreme >200mm

Respond ONLY in this JSON format:
{{
  "overallRisk": "low|medium|high|critical",
  "riskScore": <number 0-100>,
  "primaryThreat": "<main threat type>",
  "alerts": [
    {{
      "type": "flood|cyclone|landslide|heavy_rain|strong_wind",
      "severity": "warning|severe|extreme",
      "title": "<short title>",
      "message": "<actionable advice in 1-2 sentences>",
      "affectedAreas": ["<area names>"],
      "timeframe": "<when this risk is expected>"
    }}
  ],
  "recommendations": ["<action item 1>", "<action item 2>"],
  "summary": "<2-3 sentence natural language summary of the situation>"
}}"""


def extract_json(text: str) -> Dict[str, Any]:
    """Pull the JSON object out of model text, with or without a code fence."""
    match = _FENCED_JSON.search(text)
    if match:
        text = match.group(1)
    try:
        data = json.loads(text.strip())
    except ValueError as e:
        raise InvalidAnalysisError(f"AI response is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidAnalysisError("AI response is not a JSON object")
    return data


def parse_analysis(text: str) -> AlertAnalysis:
    """
    Validate model text into an AlertAnalysis.

    Raises:
        InvalidAnalysisError: if the text is not JSON or lacks a risk level / alerts list
    """
    try:
        payload = AIAnalysisPayload.model_validate(extract_json(text))
    except SchemaError as e:
        raise InvalidAnalysisError(f"Invalid AI response structure: {e}") from e

    alerts = [
        AlertRecord(
            category=CATEGORY_MAP.get(item.type, item.type),
            severity=item.severity,
            title=item.title,
            message=item.message,
            icon=ICONS.get(item.type, DEFAULT_ICON),
            affected_areas=item.affected_areas,
            timeframe=item.timeframe,
            source=AlertSource.AI,
        )
        for item in payload.alerts
    ]
    return AlertAnalysis(
        overall_risk=payload.overall_risk,
        alerts=sort_by_severity(alerts),
        risk_score=payload.risk_score,
        primary_threat=payload.primary_threat,
        recommendations=payload.recommendations,
        summary=payload.summary,
        is_ai=True,
    )


def _response_text(body: Any) -> str:
    try:
        return body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise InvalidAnalysisError("No response text from Gemini")


# ═══════════════════════════════════════════════════════════════════════════
# CLIENT
# ═══════════════════════════════════════════════════════════════════════════
class AIAlertClient:
    """
    Gemini analysis with caching and graceful fallback.

    The cache is an explicit object: pass the same AnalysisCache to every
    client that should share results.

    Usage:
        client = AIAlertClient(api_key, cache=AnalysisCache())
        analysis = await client.analyze(forecast, recent_incidents)
    """

    def __init__(
        self,
        api_key: Optional[str],
        cache: Optional[AnalysisCache] = None,
        model: str = DEFAULT_MODEL,
        session: requests.Session = None,
    ):
        self.api_key = api_key
        self.cache = cache if cache is not None else AnalysisCache()
        self.model = model
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key) and self.api_key != GEMINI_KEY_PLACEHOLDER

    def _request(self, prompt: str) -> str:
        """POST the prompt; returns the model text. Raises on any failure."""
        response = self.session.post(
            GEMINI_API_URL.format(model=self.model),
            params={"key": self.api_key},
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": GENERATION_CONFIG,
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        if response.status_code == 429:
            raise RateLimitedError("Gemini API rate limit hit")
        response.raise_for_status()
        return _response_text(response.json())

    async def analyze(
        self,
        forecast: Forecast,
        recent_incidents: Iterable[Mapping[str, Any]] = (),
    ) -> Optional[AlertAnalysis]:
        """Fresh or cached analysis, or None when nothing usable is available."""
        if not self.configured:
            log.warning("Gemini API key not configured")
            return None

        cached = self.cache.fresh()
        if cached is not None:
            log.debug("Using cached AI analysis")
            return cached

        prompt = build_prompt(forecast, list(recent_incidents))
        log.info("Fetching fresh AI analysis...")
        try:
            text = await asyncio.to_thread(self._request, prompt)
            analysis = parse_analysis(text)
        except RateLimitedError:
            log.warning("Gemini API rate limit hit, using fallback")
            return self.cache.analysis
        except InvalidAnalysisError as e:
            log.error(f"Failed to parse AI response: {e}")
            return None
        except (requests.RequestException, ValueError) as e:
            log.error(f"AI analysis failed: {e}")
            return None

        self.cache.store(analysis)
        return analysis
