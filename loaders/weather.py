"""
Weather providers and the fallback resolver.

Current-conditions adapters for NWS (api.weather.gov) and OpenWeatherMap,
plus ProviderFallbackResolver which walks an ordered provider list and
returns the first reading that passes validation.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import requests
from tenacity import retry, stop_after_attempt, wait_exponential

from core.config import MIN_PROVIDER_CONFIDENCE, Settings, get_settings
from core.exceptions import AggregateFailure, SourceFailure
from core.models import Observation, WeatherContext, WeatherReading
from core.sources import WEATHER_PROVIDER_ORDER
from core.utils import parse_timestamp
from core.validation import validate_weather_reading

log = logging.getLogger(__name__)

KMH_TO_MPH = 0.621371
MS_TO_MPH = 2.237


def celsius_to_fahrenheit(celsius: Optional[float]) -> Optional[float]:
    if celsius is None:
        return None
    return celsius * 9 / 5 + 32


def parse_location(location: str) -> Optional[Tuple[float, float]]:
    """Parse a 'lat,lon' string; returns None for place names."""
    parts = [p.strip() for p in str(location).split(",")]
    if len(parts) != 2:
        return None
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return lat, lon


# ═══════════════════════════════════════════════════════════════════════════
# PROVIDERS
# ═══════════════════════════════════════════════════════════════════════════
class WeatherProvider:
    """Base class for a named current-conditions provider."""

    name = "Unknown"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": self.settings.user_agent})

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=5), reraise=True)
    def _get_json(self, url: str, params: Optional[Dict] = None) -> Dict:
        response = self.session.get(url, params=params, timeout=self.settings.http_timeout)
        response.raise_for_status()
        return response.json()

    def fetch_current(self, location: str) -> WeatherReading:
        raise NotImplementedError


class NWSWeatherProvider(WeatherProvider):
    """
    Latest station observation from the National Weather Service.

    API Documentation:
    https://www.weather.gov/documentation/services-web-api
    """

    name = "NWS"
    BASE_URL = "https://api.weather.gov"

    def fetch_current(self, location: str) -> WeatherReading:
        coords = parse_location(location)
        if coords is None:
            raise SourceFailure(self.name, f"coordinates required, got '{location}'")
        lat, lon = coords

        point = self._get_json(f"{self.BASE_URL}/points/{lat:.4f},{lon:.4f}")
        stations_url = point["properties"]["observationStations"]
        stations = self._get_json(stations_url).get("features", [])
        if not stations:
            raise SourceFailure(self.name, f"no observation stations near {location}")

        station_id = stations[0]["properties"]["stationIdentifier"]
        latest = self._get_json(f"{self.BASE_URL}/stations/{station_id}/observations/latest")
        props = latest["properties"]

        pressure_pa = (props.get("barometricPressure") or {}).get("value")
        wind_kmh = (props.get("windSpeed") or {}).get("value")

        return WeatherReading(
            temperature=celsius_to_fahrenheit((props.get("temperature") or {}).get("value")),
            humidity=(props.get("relativeHumidity") or {}).get("value"),
            pressure=pressure_pa / 100 if pressure_pa is not None else None,
            description=props.get("textDescription") or "",
            wind_speed=wind_kmh * KMH_TO_MPH if wind_kmh is not None else None,
            location=location,
            timestamp=props.get("timestamp"),
            source=self.name,
        )


class OpenWeatherMapProvider(WeatherProvider):
    """
    Current weather from OpenWeatherMap (requires OPENWEATHERMAP_API_KEY).

    API Documentation:
    https://openweathermap.org/current
    """

    name = "OpenWeatherMap"
    BASE_URL = "https://api.openweathermap.org/data/2.5/weather"

    def __init__(self, api_key: Optional[str] = None, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.api_key = api_key or self.settings.openweathermap_api_key

    def fetch_current(self, location: str) -> WeatherReading:
        if not self.api_key:
            raise SourceFailure(self.name, "API key not configured")

        params = {"appid": self.api_key, "units": "imperial"}
        coords = parse_location(location)
        if coords is not None:
            params["lat"], params["lon"] = coords
        else:
            params["q"] = location

        data = self._get_json(self.BASE_URL, params=params)
        main = data.get("main", {})
        weather = data.get("weather") or [{}]

        return WeatherReading(
            temperature=main.get("temp"),
            humidity=main.get("humidity"),
            pressure=main.get("pressure"),
            description=weather[0].get("description", ""),
            wind_speed=data.get("wind", {}).get("speed"),
            location=data.get("name") or location,
            timestamp=parse_timestamp(data.get("dt")),
            source=self.name,
        )


# ═══════════════════════════════════════════════════════════════════════════
# FALLBACK RESOLVER
# ═══════════════════════════════════════════════════════════════════════════
class ProviderFallbackResolver:
    """
    Try providers in declared order; accept the first that validates.

    Usage:
        resolver = ProviderFallbackResolver([NWSWeatherProvider(), OpenWeatherMapProvider()])
        reading = resolver.fetch_best("44.48,-73.21")
    """

    def __init__(self, providers: Sequence[WeatherProvider], min_confidence: int = MIN_PROVIDER_CONFIDENCE):
        self.providers = list(providers)
        self.min_confidence = min_confidence

    @property
    def provider_names(self) -> List[str]:
        return [p.name for p in self.providers]

    def _attempt(self, provider: WeatherProvider, location: str, now: Optional[datetime]) -> WeatherReading:
        """Fetch and validate one provider, raising SourceFailure on rejection."""
        try:
            reading = provider.fetch_current(location)
        except SourceFailure:
            raise
        except Exception as e:
            raise SourceFailure(provider.name, str(e)) from e

        tagged = replace(reading, source=provider.name)
        validation = validate_weather_reading(tagged, now=now)
        if not validation.is_valid or validation.confidence < self.min_confidence:
            issues = ", ".join(validation.issues) or f"confidence {validation.confidence}"
            raise SourceFailure(provider.name, f"Validation failed - {issues}")

        log.info(f"Using {provider.name} weather for {location} (confidence {validation.confidence})")
        return tagged

    def fetch_best(self, location: str, now: Optional[datetime] = None) -> WeatherReading:
        """
        Return the first acceptable reading.

        Raises:
            AggregateFailure: every provider failed or was rejected
        """
        failures: Dict[str, str] = {}
        for provider in self.providers:
            try:
                return self._attempt(provider, location, now)
            except SourceFailure as e:
                log.warning(f"Weather provider {provider.name} failed: {e.reason}")
                failures[provider.name] = e.reason

        raise AggregateFailure(failures)

    def fetch_from(self, provider_name: str, location: str, now: Optional[datetime] = None) -> WeatherReading:
        """Fetch from one named provider only."""
        for provider in self.providers:
            if provider.name.lower() == provider_name.lower():
                return self._attempt(provider, location, now)
        raise SourceFailure(provider_name, "provider not configured")

    def context_lookup(self, default: Optional[WeatherContext] = None):
        """
        Build a per-observation weather lookup for the road safety pipeline.

        Observations without coordinates get `default`.
        """
        def lookup(observation: Observation) -> Optional[WeatherContext]:
            if not observation.has_valid_coordinates:
                return default
            location = f"{observation.latitude},{observation.longitude}"
            return self.fetch_best(location).to_context()
        return lookup


# ═══════════════════════════════════════════════════════════════════════════
# FACTORY
# ═══════════════════════════════════════════════════════════════════════════
PROVIDER_CLASSES = {
    NWSWeatherProvider.name: NWSWeatherProvider,
    OpenWeatherMapProvider.name: OpenWeatherMapProvider,
}

_resolver: Optional[ProviderFallbackResolver] = None


def get_weather_resolver() -> ProviderFallbackResolver:
    """Get or create a resolver over the adapters available, in priority order."""
    global _resolver
    if _resolver is None:
        providers = [
            PROVIDER_CLASSES[name]() for name in WEATHER_PROVIDER_ORDER
            if name in PROVIDER_CLASSES
        ]
        _resolver = ProviderFallbackResolver(providers)
    return _resolver
