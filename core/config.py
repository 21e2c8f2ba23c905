"""
Runtime settings for the road risk engine.

Fixed values live as module constants; anything deployment-specific is read
from the environment once and cached.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# SERVICE REGION
# ═══════════════════════════════════════════════════════════════════════════
# (min_lat, max_lat, min_lon, max_lon) - Vermont
SERVICE_REGION_BBOX: Tuple[float, float, float, float] = (42.5, 45.5, -73.5, -71.0)
SERVICE_TIMEZONE = "America/New_York"

# ═══════════════════════════════════════════════════════════════════════════
# VALIDATION LIMITS
# ═══════════════════════════════════════════════════════════════════════════
MAX_FUTURE_SKEW_SECONDS = 60
STALE_OBSERVATION_HOURS = 24
STALE_READING_MINUTES = 30
TEMPERATURE_RANGE_F = (-50.0, 110.0)
HUMIDITY_RANGE = (0.0, 100.0)
PRESSURE_RANGE_HPA = (800.0, 1100.0)
MIN_PROVIDER_CONFIDENCE = 50

# ═══════════════════════════════════════════════════════════════════════════
# HTTP
# ═══════════════════════════════════════════════════════════════════════════
DEFAULT_HTTP_TIMEOUT = 10
DEFAULT_USER_AGENT = "RoadRiskEngine/1.0 (road-weather@example.org)"
DEFAULT_DB_PATH = "districts.db"


def _parse_bbox(raw: Optional[str]) -> Tuple[float, float, float, float]:
    if not raw:
        return SERVICE_REGION_BBOX
    try:
        parts = tuple(float(p) for p in raw.split(","))
    except ValueError:
        log.warning(f"Ignoring malformed ROADRISK_REGION_BBOX: {raw!r}")
        return SERVICE_REGION_BBOX
    if len(parts) != 4:
        log.warning(f"ROADRISK_REGION_BBOX needs 4 values, got {len(parts)}")
        return SERVICE_REGION_BBOX
    return parts


@dataclass(frozen=True)
class Settings:
    """Deployment settings, normally built from the environment."""
    region_bbox: Tuple[float, float, float, float] = SERVICE_REGION_BBOX
    timezone: str = SERVICE_TIMEZONE
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    db_path: str = DEFAULT_DB_PATH
    openweathermap_api_key: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        timeout_raw = os.environ.get("ROADRISK_HTTP_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_HTTP_TIMEOUT
        except ValueError:
            log.warning(f"Ignoring malformed ROADRISK_HTTP_TIMEOUT: {timeout_raw!r}")
            timeout = DEFAULT_HTTP_TIMEOUT

        return cls(
            region_bbox=_parse_bbox(os.environ.get("ROADRISK_REGION_BBOX")),
            timezone=os.environ.get("ROADRISK_TIMEZONE", SERVICE_TIMEZONE),
            http_timeout=timeout,
            user_agent=os.environ.get("ROADRISK_USER_AGENT", DEFAULT_USER_AGENT),
            db_path=os.environ.get("ROADRISK_DB_PATH", DEFAULT_DB_PATH),
            openweathermap_api_key=os.environ.get("OPENWEATHERMAP_API_KEY"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

    def in_region(self, lat: float, lon: float) -> bool:
        min_lat, max_lat, min_lon, max_lon = self.region_bbox
        return min_lat <= lat <= max_lat and min_lon <= lon <= max_lon


# Singleton
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings():
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
