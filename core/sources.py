"""
Source Priority Table

Static reliability ranking of the named providers feeding the engine.
Shared by the observation validator, the cross-referencer, the risk scorer
and the weather provider fallback chain.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

log = logging.getLogger(__name__)

UNKNOWN_RELIABILITY = 50


class SourceKind(Enum):
    """Broad provider category."""
    OFFICIAL = "official"        # government sensor networks and feeds
    COMMERCIAL = "commercial"    # paid weather APIs
    TRAFFIC = "traffic"          # traffic incident services
    AGGREGATOR = "aggregator"    # regional aggregators / community feeds
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SourceProfile:
    """Reliability entry for one named provider."""
    name: str
    reliability: int
    kind: SourceKind
    keywords: Tuple[str, ...] = ()

    @property
    def is_official(self) -> bool:
        return self.kind == SourceKind.OFFICIAL


UNKNOWN_SOURCE = SourceProfile("Unknown", UNKNOWN_RELIABILITY, SourceKind.UNKNOWN)


# ═══════════════════════════════════════════════════════════════════════════
# PRIORITY TABLE
# ═══════════════════════════════════════════════════════════════════════════
# Keyword matching walks this tuple in order, so more specific entries first.
SOURCE_PROFILES: Tuple[SourceProfile, ...] = (
    SourceProfile("VTrans RWIS", 100, SourceKind.OFFICIAL, ("rwis",)),
    SourceProfile("VTrans Lane Closures", 95, SourceKind.OFFICIAL, ("lane closure",)),
    SourceProfile("VTrans Incidents", 95, SourceKind.OFFICIAL, ("vtrans",)),
    SourceProfile("NWS", 90, SourceKind.OFFICIAL, ("nws", "national weather service", "weather.gov")),
    SourceProfile("Xweather", 80, SourceKind.COMMERCIAL, ("xweather", "aeris")),
    SourceProfile("TomTom", 75, SourceKind.TRAFFIC, ("tomtom",)),
    SourceProfile("New England 511", 70, SourceKind.AGGREGATOR, ("511",)),
    SourceProfile("Weatherbit", 70, SourceKind.COMMERCIAL, ("weatherbit",)),
    SourceProfile("Weatherstack", 65, SourceKind.COMMERCIAL, ("weatherstack",)),
    SourceProfile("Visual Crossing", 65, SourceKind.COMMERCIAL, ("visual crossing", "visualcrossing")),
    SourceProfile("OpenWeatherMap", 60, SourceKind.COMMERCIAL, ("openweather",)),
)

SOURCE_TABLE: Mapping[str, SourceProfile] = MappingProxyType(
    {profile.name: profile for profile in SOURCE_PROFILES}
)

# Order in which current-conditions weather providers are tried.
WEATHER_PROVIDER_ORDER: Tuple[str, ...] = (
    "NWS",
    "Weatherbit",
    "Weatherstack",
    "Visual Crossing",
    "OpenWeatherMap",
    "Xweather",
)


# ═══════════════════════════════════════════════════════════════════════════
# LOOKUPS
# ═══════════════════════════════════════════════════════════════════════════
def find_source(source: Optional[str]) -> SourceProfile:
    """
    Resolve a source name to its profile.

    Exact name match first, then case-insensitive keyword match against the
    table in priority order. Anything unrecognised maps to UNKNOWN_SOURCE.
    """
    if not source:
        return UNKNOWN_SOURCE

    profile = SOURCE_TABLE.get(source)
    if profile is not None:
        return profile

    lowered = source.lower()
    for candidate in SOURCE_PROFILES:
        if candidate.name.lower() == lowered:
            return candidate
        if any(keyword in lowered for keyword in candidate.keywords):
            return candidate

    log.debug(f"Unrecognised source '{source}', using default reliability")
    return UNKNOWN_SOURCE


def source_reliability(source: Optional[str]) -> int:
    return find_source(source).reliability


def is_official_source(source: Optional[str]) -> bool:
    return find_source(source).is_official


def prioritize(observations, key=lambda item: item.source):
    """Return items sorted by descending source reliability (stable)."""
    return sorted(observations, key=lambda item: -source_reliability(key(item)))
