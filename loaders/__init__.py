"""
Data loaders for the road risk engine.

Includes:
- Weather providers (NWS, OpenWeatherMap) and the fallback resolver
- Concurrent observation collection
- Daily forecasts (NWS)
- District, threshold and closure history storage (SQLite)
"""

from loaders.weather import (
    WeatherProvider,
    NWSWeatherProvider,
    OpenWeatherMapProvider,
    ProviderFallbackResolver,
    get_weather_resolver,
)
from loaders.observations import ObservationSource, CallableSource, ObservationCollector, CollectionResult
from loaders.forecast import ForecastProvider, StaticForecastProvider, NWSForecastLoader, get_forecast_loader
from loaders.districts import DistrictRepository, get_district_repository

__all__ = [
    # Weather
    "WeatherProvider",
    "NWSWeatherProvider",
    "OpenWeatherMapProvider",
    "ProviderFallbackResolver",
    "get_weather_resolver",
    # Observations
    "ObservationSource",
    "CallableSource",
    "ObservationCollector",
    "CollectionResult",
    # Forecasts
    "ForecastProvider",
    "StaticForecastProvider",
    "NWSForecastLoader",
    "get_forecast_loader",
    # Districts
    "DistrictRepository",
    "get_district_repository",
]
