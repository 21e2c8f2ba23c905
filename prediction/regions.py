"""
Regional adjustment table for closure prediction.

Vermont counties differ in terrain, route length and plowing capacity, so
the same forecast means different things in Essex and Chittenden. Each
county has a profile of rules; a rule adds points to the closing and delay
scores when its condition holds. Rules sharing a `group` are exclusive:
only the first match in the group applies.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Tuple

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionContext:
    """Forecast values a regional rule can look at."""
    snowfall: float
    temperature: float
    wind_speed: float
    ice: float
    condition: str
    target_hour: Optional[int]
    hours_until: float

    def hour_between(self, start: int, end: int) -> bool:
        return self.target_hour is not None and start <= self.target_hour <= end

    def snow_between(self, low: float, high: float) -> bool:
        return low <= self.snowfall <= high

    @property
    def wind_chill(self) -> float:
        return self.temperature - self.wind_speed * 0.7

    @property
    def overnight(self) -> bool:
        return self.hours_until <= 12

    def mentions(self, *words: str) -> bool:
        text = self.condition.lower()
        return any(word in text for word in words)


@dataclass(frozen=True)
class RegionRule:
    label: str
    closing: float
    delay: float
    applies: Callable[[RegionContext], bool]
    group: Optional[str] = None


@dataclass(frozen=True)
class RegionProfile:
    county: str
    description: str
    rules: Tuple[RegionRule, ...]


def _rule(label, closing, delay, applies, group=None) -> RegionRule:
    return RegionRule(label, closing, delay, applies, group)


# ═══════════════════════════════════════════════════════════════════════════
# COUNTY PROFILES
# ═══════════════════════════════════════════════════════════════════════════
REGION_PROFILES: Mapping[str, RegionProfile] = MappingProxyType({
    "addison": RegionProfile("Addison", "Champlain Valley, lake-effect bursts", (
        _rule("Addison: overnight threshold (4-6\")", 20, 0,
              lambda c: c.snow_between(4, 6) and c.hour_between(0, 6), group="snow"),
        _rule("Addison: commute-time snow (2-3\")", 18, 12,
              lambda c: c.snow_between(2, 3) and c.hour_between(5, 9), group="snow"),
        _rule("Addison: snow after midnight", 10, 0, lambda c: c.hour_between(0, 4)),
        _rule("Addison: lake-effect bursts", 8, 0, lambda c: c.wind_speed >= 20),
    )),
    "bennington": RegionProfile("Bennington", "Mountain roads with elevation changes", (
        _rule("Bennington: mountain road threshold (3-5\")", 15, 0, lambda c: 3 <= c.snowfall < 5),
        _rule("Bennington: freezing rain at elevation", 25, 15,
              lambda c: c.mentions("freezing rain") or c.ice > 0),
        _rule("Bennington: high-risk timing (4-5 AM)", 10, 0, lambda c: c.hour_between(4, 5)),
    )),
    "caledonia": RegionProfile("Caledonia", "Long rural routes, deep cold", (
        _rule("Caledonia: overnight threshold (4-6\")", 20, 0, lambda c: c.snow_between(4, 6)),
        _rule("Caledonia: extreme wind chill", 25, 15, lambda c: c.wind_chill <= -20),
        _rule("Caledonia: snow before buses", 12, 0, lambda c: c.hour_between(0, 6)),
    )),
    "chittenden": RegionProfile("Chittenden", "Urban districts with fast city plowing", (
        _rule("Chittenden: heavy snow (6\"+)", 25, 0, lambda c: c.snowfall >= 6, group="snow"),
        _rule("Chittenden: 4-6\" overnight with active snow", 20, 15,
              lambda c: c.snow_between(4, 6) and c.overnight, group="snow"),
        _rule("Chittenden: 3-4\" during commute", 18, 15,
              lambda c: c.snow_between(3, 4) and c.hour_between(5, 9), group="snow"),
        _rule("Chittenden: freezing rain", 20, 0, lambda c: c.mentions("freezing rain")),
        _rule("Chittenden: heavy wet snow with wind", 15, 0,
              lambda c: c.snowfall >= 4 and 28 <= c.temperature <= 32 and c.wind_speed >= 20),
        _rule("Chittenden: urban plowing advantage", -3, 0, lambda c: True),
    )),
    "essex": RegionProfile("Essex", "Very remote, any ice is serious", (
        _rule("Essex: low threshold (2-4\")", 20, 0, lambda c: c.snow_between(2, 4)),
        _rule("Essex: any ice", 30, 20, lambda c: c.ice > 0 or c.mentions("ice")),
        _rule("Essex: snow before buses", 10, 0, lambda c: c.hour_between(0, 6)),
    )),
    "franklin": RegionProfile("Franklin", "Blowing snow off the lake", (
        _rule("Franklin: threshold (4-6\")", 18, 0, lambda c: c.snow_between(4, 6)),
        _rule("Franklin: blowing snow", 15, 10, lambda c: c.wind_speed >= 20 and c.snowfall > 0),
        _rule("Franklin: snow before buses", 8, 0, lambda c: c.hour_between(0, 6)),
    )),
    "grand isle": RegionProfile("Grand Isle", "Bridges and causeways exposed to wind", (
        _rule("Grand Isle: threshold (3-5\")", 15, 0, lambda c: c.snow_between(3, 5)),
        _rule("Grand Isle: high winds on causeways", 20, 15, lambda c: c.wind_speed >= 25),
        _rule("Grand Isle: morning snow", 12, 0, lambda c: c.hour_between(0, 8) and c.snowfall > 0),
    )),
    "lamoille": RegionProfile("Lamoille", "Long rural routes, early 4 AM review", (
        _rule("Lamoille: 3-5\" overnight with drifting", 20, 12,
              lambda c: c.snow_between(3, 5) and c.overnight, group="snow"),
        _rule("Lamoille: threshold (3-5\")", 16, 0, lambda c: c.snow_between(3, 5), group="snow"),
        _rule("Lamoille: ice under snow", 25, 15, lambda c: c.ice > 0 and c.snowfall > 0),
        _rule("Lamoille: snow before buses", 12, 0, lambda c: c.hour_between(0, 6)),
        _rule("Lamoille: wind drift on rural roads", 12, 0, lambda c: c.wind_speed >= 20 and c.snowfall > 0),
        _rule("Lamoille: early morning review", 8, 0, lambda c: c.hour_between(4, 6)),
    )),
    "orange": RegionProfile("Orange", "Dirt roads and rising rivers", (
        _rule("Orange: threshold (4-6\")", 18, 0, lambda c: c.snow_between(4, 6)),
        _rule("Orange: flooding on dirt roads", 15, 0, lambda c: c.mentions("flood", "river")),
        _rule("Orange: snow before buses", 10, 0, lambda c: c.hour_between(0, 6)),
    )),
    "orleans": RegionProfile("Orleans", "Northeast Kingdom extreme cold", (
        _rule("Orleans: threshold (3-5\")", 16, 0, lambda c: c.snow_between(3, 5)),
        _rule("Orleans: extreme cold", 25, 15, lambda c: c.temperature <= -15),
        _rule("Orleans: snow before buses", 10, 0, lambda c: c.hour_between(0, 6)),
    )),
    "rutland": RegionProfile("Rutland", "Hill roads and small road crews", (
        _rule("Rutland: 4-7\" overnight", 22, 15,
              lambda c: c.snow_between(4, 7) and c.overnight, group="snow"),
        _rule("Rutland: threshold (4-6\")", 18, 0, lambda c: c.snow_between(4, 6), group="snow"),
        _rule("Rutland: ice storm on mountain passes", 30, 20,
              lambda c: c.mentions("ice storm") or c.ice >= 0.1),
        _rule("Rutland: ice layers under snow", 12, 0, lambda c: c.ice > 0 and c.snowfall > 0),
        _rule("Rutland: snow before 6 AM on hill roads", 12, 0, lambda c: c.hour_between(0, 6)),
        _rule("Rutland: drifting", 10, 0, lambda c: c.wind_speed >= 20 and c.snowfall > 0),
    )),
    "washington": RegionProfile("Washington", "Mixed elevation, ice accumulation", (
        _rule("Washington: threshold (3-5\")", 16, 0, lambda c: c.snow_between(3, 5)),
        _rule("Washington: ice accumulation", 22, 15, lambda c: c.ice > 0),
        _rule("Washington: snow before buses", 10, 0, lambda c: c.hour_between(0, 6)),
    )),
    "windham": RegionProfile("Windham", "River valleys prone to flooding", (
        _rule("Windham: threshold (4-6\")", 18, 0, lambda c: c.snow_between(4, 6)),
        _rule("Windham: flooding with snow", 20, 0, lambda c: c.mentions("flood")),
        _rule("Windham: morning snow", 10, 0, lambda c: c.hour_between(0, 8)),
    )),
    "windsor": RegionProfile("Windsor", "Connecticut River valley, snow/ice mix", (
        _rule("Windsor: threshold (4-6\")", 18, 0, lambda c: c.snow_between(4, 6)),
        _rule("Windsor: snow and ice mix", 22, 15, lambda c: c.ice > 0 and c.snowfall > 0),
        _rule("Windsor: snow before 5-6 AM", 12, 0, lambda c: c.hour_between(0, 6)),
        _rule("Windsor: Connecticut River flooding", 15, 0, lambda c: c.mentions("flood")),
    )),
})


def find_profiles(county: Optional[str]) -> List[RegionProfile]:
    """Profiles whose county name appears in `county` (case-insensitive)."""
    text = (county or "").lower()
    if not text:
        return []
    return [profile for key, profile in REGION_PROFILES.items() if key in text]


def regional_adjustments(county: Optional[str], context: RegionContext) -> Tuple[float, float, List[str]]:
    """
    Sum the matching county rules.

    Returns:
        (closing_points, delay_points, factor descriptions)
    """
    closing = 0.0
    delay = 0.0
    factors: List[str] = []

    for profile in find_profiles(county):
        used_groups = set()
        for rule in profile.rules:
            if rule.group is not None and rule.group in used_groups:
                continue
            if not rule.applies(context):
                continue
            if rule.group is not None:
                used_groups.add(rule.group)
            closing += rule.closing
            delay += rule.delay
            factors.append(rule.label)

    if factors:
        log.debug(f"Regional adjustments for {county}: +{closing} closing, +{delay} delay")
    return closing, delay, factors
