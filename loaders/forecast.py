"""
Forecast Loader - per-day forecasts for closure prediction.

Every call fetches the requested date on its own; nothing is cached
between dates.
"""

import re
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

import requests
from tenacity import retry, stop_after_attempt, wait_exponential

from core.config import Settings, get_settings
from core.exceptions import ForecastUnavailable, SourceFailure
from core.models import ForecastDay
from loaders.weather import parse_location

log = logging.getLogger(__name__)

WINTRY_KEYWORDS = ("snow", "sleet", "freezing", "ice", "blizzard", "wintry")

_SNOW_AMOUNT = re.compile(
    r"new snow accumulation of (?:around |up to )?(\d+(?:\.\d+)?)(?:\s*to\s*(\d+(?:\.\d+)?))?\s*inch",
    re.IGNORECASE,
)
_SNOW_TRACE = re.compile(r"new snow accumulation of less than (?:one|half an?) inch", re.IGNORECASE)
_ICE_AMOUNT = re.compile(
    r"ice accumulation of (?:around |less than |up to )?(\d+(?:\.\d+)?|one tenth|a tenth|one quarter|a quarter) of an inch",
    re.IGNORECASE,
)
_START_AFTER = re.compile(
    r"(?:snow|sleet|freezing rain|freezing drizzle|rain|ice)[^.]*?\bafter (\d{1,2})\s*(am|pm)",
    re.IGNORECASE,
)
_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")

_FRACTIONS = {"one tenth": 0.1, "a tenth": 0.1, "one quarter": 0.25, "a quarter": 0.25}


class ForecastProvider:
    """Anything that can produce one day's forecast for a location."""

    name = "Unknown"

    def fetch_forecast(self, location: str, target_date: date) -> ForecastDay:
        raise NotImplementedError


class StaticForecastProvider(ForecastProvider):
    """Serve forecasts from an in-memory mapping of date -> ForecastDay."""

    name = "static"

    def __init__(self, forecasts: Iterable[ForecastDay]):
        self.forecasts: Dict[date, ForecastDay] = {f.forecast_date: f for f in forecasts}

    def fetch_forecast(self, location: str, target_date: date) -> ForecastDay:
        forecast = self.forecasts.get(target_date)
        if forecast is None:
            raise ForecastUnavailable(self.name, f"no forecast for {target_date.isoformat()}")
        return forecast


# ═══════════════════════════════════════════════════════════════════════════
# NWS
# ═══════════════════════════════════════════════════════════════════════════
def _max_number(text: Optional[str]) -> float:
    values = [float(v) for v in _NUMBER.findall(text or "")]
    return max(values) if values else 0.0


def extract_snowfall(text: str) -> Optional[float]:
    """Inches of new snow mentioned in forecast text (upper end of a range)."""
    total = None
    for low, high in _SNOW_AMOUNT.findall(text):
        amount = float(high or low)
        total = amount if total is None else total + amount
    if total is None and _SNOW_TRACE.search(text):
        total = 0.5
    return total


def extract_ice(text: str) -> Optional[float]:
    match = _ICE_AMOUNT.search(text)
    if not match:
        return None
    raw = match.group(1).lower()
    return _FRACTIONS.get(raw) if raw in _FRACTIONS else float(raw)


def extract_start_hour(text: str) -> Optional[int]:
    match = _START_AFTER.search(text)
    if not match:
        return None
    hour = int(match.group(1)) % 12
    if match.group(2).lower() == "pm":
        hour += 12
    return hour


class NWSForecastLoader(ForecastProvider):
    """
    Daily forecast periods from the National Weather Service.

    The overnight period leading into the target date is included so that
    snow landing before the morning commute counts toward that date.
    """

    name = "NWS"
    BASE_URL = "https://api.weather.gov"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": self.settings.user_agent})

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=5), reraise=True)
    def _get_json(self, url: str) -> Dict:
        response = self.session.get(url, timeout=self.settings.http_timeout)
        response.raise_for_status()
        return response.json()

    def _periods_for(self, periods: List[Dict], target_date: date) -> List[Dict]:
        selected = []
        eve = target_date - timedelta(days=1)
        for period in periods:
            start = datetime.fromisoformat(period["startTime"]).date()
            if start == target_date or (start == eve and not period.get("isDaytime", True)):
                selected.append(period)
        return selected

    def fetch_forecast(self, location: str, target_date: date) -> ForecastDay:
        coords = parse_location(location)
        if coords is None:
            raise SourceFailure(self.name, f"coordinates required, got '{location}'")
        lat, lon = coords

        try:
            point = self._get_json(f"{self.BASE_URL}/points/{lat:.4f},{lon:.4f}")
            forecast = self._get_json(point["properties"]["forecast"])
        except (requests.RequestException, KeyError, ValueError) as e:
            raise SourceFailure(self.name, str(e)) from e

        periods = self._periods_for(forecast.get("properties", {}).get("periods", []), target_date)
        if not periods:
            raise ForecastUnavailable(self.name, f"no forecast periods for {target_date.isoformat()}")

        short = "; ".join(p.get("shortForecast", "") for p in periods)
        detailed = " ".join(p.get("detailedForecast", "") for p in periods)
        wintry = any(k in f"{short} {detailed}".lower() for k in WINTRY_KEYWORDS)

        snowfall = extract_snowfall(detailed)
        if snowfall is None and not wintry:
            snowfall = 0.0

        result = ForecastDay(
            forecast_date=target_date,
            temperature=float(min(p["temperature"] for p in periods)),
            wind_speed=max(_max_number(p.get("windSpeed")) for p in periods),
            precipitation=0.0,
            snowfall=snowfall,
            ice=extract_ice(detailed),
            condition=short,
            precipitation_start_hour=extract_start_hour(detailed),
            source=self.name,
        )
        log.debug(f"NWS forecast for {location} on {target_date}: {result}")
        return result


# Singleton
_loader: Optional[NWSForecastLoader] = None


def get_forecast_loader() -> NWSForecastLoader:
    """Get or create forecast loader instance."""
    global _loader
    if _loader is None:
        _loader = NWSForecastLoader()
    return _loader
