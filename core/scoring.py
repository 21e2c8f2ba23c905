"""
Weighted Risk Scoring Module

Turns one road observation plus ambient weather into a 0-100 safety score
(higher is safer) using sequential weighted blending:

    running = running * (1 - weight) + factor_score * weight

applied factor by factor in a fixed order, starting from 100. Because later
factors act on the partially updated total, a severe early factor such as a
closed road cannot be bought back by a favourable late one.
"""

import re
import logging
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from core.config import Settings, get_settings
from core.models import (
    FactorScore,
    Observation,
    RiskAssessment,
    RiskLevel,
    RiskSeverity,
    RoadCondition,
    Severity,
    WeatherContext,
)
from core.sources import find_source
from core.utils import clamp, ensure_aware, is_number, round_half_up

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# FACTOR WEIGHTS (blend order matters)
# ═══════════════════════════════════════════════════════════════════════════
FACTOR_WEIGHTS: Tuple[Tuple[str, float], ...] = (
    ("base_condition", 0.40),
    ("temperature", 0.20),
    ("data_freshness", 0.10),
    ("reported_severity", 0.15),
    ("source_reliability", 0.05),
    ("road_type", 0.05),
    ("time_of_day", 0.03),
    ("combination_effects", 0.02),
)

# ═══════════════════════════════════════════════════════════════════════════
# SUB-SCORE TABLES
# ═══════════════════════════════════════════════════════════════════════════
BASE_CONDITION_SCORES: Mapping[RoadCondition, int] = MappingProxyType({
    RoadCondition.CLOSED: 5,
    RoadCondition.ICE: 20,
    RoadCondition.SNOW_COVERED: 35,
    RoadCondition.WET: 60,
    RoadCondition.CLEAR: 95,
    RoadCondition.UNKNOWN: 50,
})

BASE_CONDITION_DESCRIPTIONS: Mapping[RoadCondition, str] = MappingProxyType({
    RoadCondition.CLOSED: "Road closed",
    RoadCondition.ICE: "Ice on road surface",
    RoadCondition.SNOW_COVERED: "Snow-covered road",
    RoadCondition.WET: "Wet road surface",
    RoadCondition.CLEAR: "Clear road conditions",
    RoadCondition.UNKNOWN: "Road condition unknown",
})


@dataclass(frozen=True)
class TemperatureTier:
    """Scores for temperatures at or below `ceiling_f`."""
    ceiling_f: float
    label: str
    score: int
    overrides: Optional[Mapping[RoadCondition, int]] = None


TEMPERATURE_TIERS: Tuple[TemperatureTier, ...] = (
    TemperatureTier(20, "Extreme cold", 15, MappingProxyType({RoadCondition.ICE: 5})),
    TemperatureTier(28, "Hard freeze", 30, MappingProxyType({RoadCondition.ICE: 10, RoadCondition.WET: 25})),
    TemperatureTier(32, "At or below freezing", 50, MappingProxyType({RoadCondition.ICE: 20, RoadCondition.WET: 35})),
    TemperatureTier(35, "Near freezing", 70, MappingProxyType({RoadCondition.WET: 55})),
    TemperatureTier(40, "Cool", 85),
)
WARM_TEMPERATURE_SCORE = 95
MISSING_TEMPERATURE_SCORE = 70
HIGH_HUMIDITY = 80
HUMIDITY_PENALTY = 15
FROST_CEILING_F = 35

# (max age in minutes, score, description)
FRESHNESS_BUCKETS: Tuple[Tuple[float, int, str], ...] = (
    (30, 100, "Very fresh data"),
    (60, 90, "Recent data"),
    (120, 75, "Data up to 2 hours old"),
    (360, 50, "Data up to 6 hours old"),
)
STALE_FRESHNESS_SCORE = 20
UNKNOWN_AGE_FRESHNESS_SCORE = 50
DANGEROUS_STALE_HOURS = 2
MAX_STALE_PENALTY = 20

SEVERITY_SCORES: Mapping[Severity, int] = MappingProxyType({
    Severity.MAJOR: 20,
    Severity.MODERATE: 50,
    Severity.MINOR: 80,
})
ABSENT_SEVERITY_DANGEROUS = 40
ABSENT_SEVERITY_DEFAULT = 85

# Road classification: first pattern that matches the route label wins
ROAD_CLASSES: Tuple[Tuple[str, "re.Pattern", int], ...] = (
    ("Interstate highway", re.compile(r"\b(i-?\s?\d+|interstate|turnpike|expressway|freeway)\b", re.IGNORECASE), 85),
    ("US route", re.compile(r"\bus\s*(route|rte|hwy|highway)?\s*-?\s*\d+", re.IGNORECASE), 88),
    ("State route", re.compile(r"\b(vt|sr|state)\s*(route|rte|hwy|highway)?\s*-?\s*\d+|\broute\b", re.IGNORECASE), 92),
)
LOCAL_ROAD_SCORE = 95

NIGHT_START_HOUR = 22
NIGHT_END_HOUR = 7
NIGHT_COLD_SCORE = 80
NIGHT_WET_COLD_SCORE = 60

STRONG_WIND_MPH = 30


# ═══════════════════════════════════════════════════════════════════════════
# COMBINATION RULES
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class ScoringInputs:
    """Everything the factor functions need, resolved once per call."""
    condition: RoadCondition
    temperature: Optional[float]
    wind_speed: Optional[float]
    humidity: Optional[float]
    is_night: bool
    warning: str


@dataclass(frozen=True)
class CombinationRule:
    """A dangerous pairing; its score also caps the final result."""
    name: str
    score: int
    description: str
    applies: Callable[[ScoringInputs], bool]


def _cold(inputs: ScoringInputs, ceiling: float) -> bool:
    return inputs.temperature is not None and inputs.temperature <= ceiling


def _windy(inputs: ScoringInputs) -> bool:
    return inputs.wind_speed is not None and inputs.wind_speed >= STRONG_WIND_MPH


COMBINATION_RULES: Tuple[CombinationRule, ...] = (
    CombinationRule(
        "ice_extreme_cold", 0, "Ice with extreme cold - extremely dangerous",
        lambda i: i.condition == RoadCondition.ICE and _cold(i, 20),
    ),
    CombinationRule(
        "ice_strong_wind", 30, "Ice with strong winds - loss of control risk",
        lambda i: i.condition == RoadCondition.ICE and _windy(i),
    ),
    CombinationRule(
        "snow_strong_wind", 40, "Snow with strong winds - drifting and low visibility",
        lambda i: i.condition == RoadCondition.SNOW_COVERED and _windy(i),
    ),
    CombinationRule(
        "wet_night_refreeze", 50, "Wet road at night near freezing - refreeze risk",
        lambda i: i.condition == RoadCondition.WET and _cold(i, FROST_CEILING_F) and i.is_night,
    ),
    CombinationRule(
        "closed_for_ice", 5, "Road closed due to ice",
        lambda i: i.condition == RoadCondition.CLOSED and "ice" in i.warning.lower(),
    ),
)
NO_COMBINATION_SCORE = 100


# ═══════════════════════════════════════════════════════════════════════════
# TIERS
# ═══════════════════════════════════════════════════════════════════════════
TIERS: Tuple[Tuple[int, RiskLevel, RiskSeverity], ...] = (
    (80, RiskLevel.EXCELLENT, RiskSeverity.LOW),
    (60, RiskLevel.GOOD, RiskSeverity.LOW),
    (40, RiskLevel.CAUTION, RiskSeverity.MODERATE),
    (20, RiskLevel.POOR, RiskSeverity.HIGH),
)


def classify(score: float) -> Tuple[RiskLevel, RiskSeverity]:
    """Map a 0-100 score onto its tier."""
    for floor, level, severity in TIERS:
        if score >= floor:
            return level, severity
    return RiskLevel.HAZARDOUS, RiskSeverity.EXTREME


# ═══════════════════════════════════════════════════════════════════════════
# SCORER
# ═══════════════════════════════════════════════════════════════════════════
class RoadRiskScorer:
    """
    Deterministic road safety scorer.

    Usage:
        scorer = RoadRiskScorer()
        assessment = scorer.score(observation, WeatherContext(temperature=18))
        print(assessment.score, assessment.level.value)
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.tz = ZoneInfo(self.settings.timezone)

    def score(
        self,
        observation: Observation,
        weather_context: Optional[WeatherContext] = None,
        now: Optional[datetime] = None,
    ) -> RiskAssessment:
        """
        Score an observation.

        Args:
            observation: A validated observation
            weather_context: Ambient weather; observation temperature wins
            now: Reference instant for staleness and time of day

        Returns:
            RiskAssessment with all eight factors in blend order
        """
        now = ensure_aware(now)
        context = weather_context or WeatherContext()
        inputs = self._resolve_inputs(observation, context, now)
        age_hours = self._age_hours(observation, now)

        factor_values: Dict[str, Tuple[float, str]] = {
            "base_condition": self._base_condition(inputs),
            "temperature": self._temperature(inputs),
            "data_freshness": self._freshness(inputs, age_hours),
            "reported_severity": self._severity(observation, inputs),
            "source_reliability": self._source_reliability(observation),
            "road_type": self._road_type(observation),
            "time_of_day": self._time_of_day(inputs),
        }
        rule = self._combination_rule(inputs)
        if rule is not None:
            factor_values["combination_effects"] = (rule.score, rule.description)
        else:
            factor_values["combination_effects"] = (NO_COMBINATION_SCORE, "No dangerous combinations")

        running = 100.0
        factors: List[FactorScore] = []
        for name, weight in FACTOR_WEIGHTS:
            value, description = factor_values[name]
            running = running * (1 - weight) + value * weight
            factors.append(FactorScore(name, value, weight, description))
            log.debug(f"{name}: {value} (w={weight}) -> {running:.2f}")

        if inputs.condition.is_dangerous and age_hours is not None and age_hours > DANGEROUS_STALE_HOURS:
            penalty = min(MAX_STALE_PENALTY, age_hours * 5)
            running -= penalty
            log.debug(f"Stale {inputs.condition.value} report penalty: -{penalty:.1f}")

        if rule is not None:
            running = min(running, rule.score)

        final = round_half_up(clamp(running, 0, 100))
        level, severity = classify(final)
        confidence = self._confidence(observation, inputs, age_hours)

        explanation = f"Safety score: {final}/100. " + ". ".join(
            f.description for f in factors if f.description
        )

        return RiskAssessment(
            score=final,
            level=level,
            severity=severity,
            factors=tuple(factors),
            explanation=explanation,
            confidence=confidence,
        )

    def explain_score(
        self,
        observation: Observation,
        weather_context: Optional[WeatherContext] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Generate a human-readable breakdown of a score."""
        assessment = self.score(observation, weather_context, now)
        lines = [
            f"Score: {assessment.score}/100 ({assessment.level.value}, {assessment.severity.value} severity)",
            f"Route: {observation.label}",
            f"Confidence: {assessment.confidence}%",
            "",
            "Factor contributions:",
        ]
        for factor in assessment.factors:
            lines.append(f"  {factor.name}: {factor.score:.0f} x {factor.weight:.2f} - {factor.description}")
        return "\n".join(lines)

    # ───────────────────────────────────────────────────────────────────────
    # Inputs
    # ───────────────────────────────────────────────────────────────────────
    def _resolve_inputs(self, observation: Observation, context: WeatherContext, now: datetime) -> ScoringInputs:
        condition = observation.condition_enum or RoadCondition.UNKNOWN
        if is_number(observation.temperature):
            temperature = observation.temperature
        elif is_number(context.temperature):
            temperature = context.temperature
        else:
            temperature = None

        hour = now.astimezone(self.tz).hour
        return ScoringInputs(
            condition=condition,
            temperature=temperature,
            wind_speed=context.wind_speed if is_number(context.wind_speed) else None,
            humidity=context.humidity if is_number(context.humidity) else None,
            is_night=hour >= NIGHT_START_HOUR or hour <= NIGHT_END_HOUR,
            warning=observation.warning or "",
        )

    @staticmethod
    def _age_hours(observation: Observation, now: datetime) -> Optional[float]:
        timestamp = observation.parsed_timestamp()
        if timestamp is None:
            return None
        # Future timestamps (clock skew) count as fresh
        return max(0.0, (now - timestamp).total_seconds() / 3600)

    # ───────────────────────────────────────────────────────────────────────
    # Factors: each returns (score, description)
    # ───────────────────────────────────────────────────────────────────────
    @staticmethod
    def _base_condition(inputs: ScoringInputs) -> Tuple[float, str]:
        return BASE_CONDITION_SCORES[inputs.condition], BASE_CONDITION_DESCRIPTIONS[inputs.condition]

    @staticmethod
    def _temperature(inputs: ScoringInputs) -> Tuple[float, str]:
        temp = inputs.temperature
        if temp is None:
            return MISSING_TEMPERATURE_SCORE, "Temperature unavailable"

        score, label = WARM_TEMPERATURE_SCORE, "Above freezing"
        for tier in TEMPERATURE_TIERS:
            if temp <= tier.ceiling_f:
                score = (tier.overrides or {}).get(inputs.condition, tier.score)
                label = tier.label
                break

        description = f"{label} ({temp:.0f}°F)"
        if inputs.humidity is not None and inputs.humidity > HIGH_HUMIDITY and temp <= FROST_CEILING_F:
            score = max(0, score - HUMIDITY_PENALTY)
            description += f", high humidity ({inputs.humidity:.0f}%) adds frost risk"
        return score, description

    @staticmethod
    def _freshness(inputs: ScoringInputs, age_hours: Optional[float]) -> Tuple[float, str]:
        if age_hours is None:
            return UNKNOWN_AGE_FRESHNESS_SCORE, "Data age unknown"

        age_minutes = age_hours * 60
        score, description = STALE_FRESHNESS_SCORE, f"Stale data ({age_hours:.0f} hours old)"
        for max_minutes, bucket_score, bucket_description in FRESHNESS_BUCKETS:
            if age_minutes <= max_minutes:
                score, description = bucket_score, bucket_description
                break

        if inputs.condition.is_dangerous and age_hours > DANGEROUS_STALE_HOURS:
            score = score / 2
            description += f" - {inputs.condition.value} report may be outdated"
        return score, description

    @staticmethod
    def _severity(observation: Observation, inputs: ScoringInputs) -> Tuple[float, str]:
        severity = observation.severity_enum
        if severity is not None:
            return SEVERITY_SCORES[severity], f"{severity.value.capitalize()} severity reported"
        if inputs.condition.is_dangerous:
            return ABSENT_SEVERITY_DANGEROUS, "No severity reported for dangerous condition"
        return ABSENT_SEVERITY_DEFAULT, "No severity reported"

    @staticmethod
    def _source_reliability(observation: Observation) -> Tuple[float, str]:
        profile = find_source(observation.source)
        return profile.reliability, f"Source {observation.source or 'unknown'} ({profile.reliability}% reliable)"

    @staticmethod
    def _road_type(observation: Observation) -> Tuple[float, str]:
        route = observation.route or ""
        for label, pattern, score in ROAD_CLASSES:
            if pattern.search(route):
                return score, label
        return LOCAL_ROAD_SCORE, "Local road"

    @staticmethod
    def _time_of_day(inputs: ScoringInputs) -> Tuple[float, str]:
        if inputs.is_night and inputs.temperature is not None and inputs.temperature <= FROST_CEILING_F:
            if inputs.condition == RoadCondition.WET:
                return NIGHT_WET_COLD_SCORE, "Night-time wet road near freezing"
            return NIGHT_COLD_SCORE, "Night-time near-freezing conditions"
        return 100, ""

    @staticmethod
    def _combination_rule(inputs: ScoringInputs) -> Optional[CombinationRule]:
        for rule in COMBINATION_RULES:
            if rule.applies(inputs):
                return rule
        return None

    # ───────────────────────────────────────────────────────────────────────
    # Confidence
    # ───────────────────────────────────────────────────────────────────────
    @staticmethod
    def _confidence(observation: Observation, inputs: ScoringInputs, age_hours: Optional[float]) -> int:
        confidence = 85
        if inputs.temperature is not None:
            confidence += 5
        if age_hours is None or age_hours > 1:
            confidence -= 15 if age_hours is not None and age_hours > 2 else 10
        if inputs.condition == RoadCondition.UNKNOWN:
            confidence -= 10
        if find_source(observation.source).is_official:
            confidence += 5
        return int(clamp(confidence, 50, 100))


# ═══════════════════════════════════════════════════════════════════════════
# FACTORY FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════
_scorer: Optional[RoadRiskScorer] = None


def get_scorer() -> RoadRiskScorer:
    """Get or create the shared scorer."""
    global _scorer
    if _scorer is None:
        _scorer = RoadRiskScorer()
    return _scorer


def score_observation(
    observation: Observation,
    weather_context: Optional[WeatherContext] = None,
    now: Optional[datetime] = None,
) -> RiskAssessment:
    """Convenience wrapper around the shared scorer."""
    return get_scorer().score(observation, weather_context, now)
