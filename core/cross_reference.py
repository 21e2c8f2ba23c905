"""
Deduplicator / Cross-Referencer

Groups validated observations by route and coarse location, reports a
majority condition per group or a conflict where sources disagree, and
removes near-duplicate display records.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Sequence

from core.models import (
    ConflictEntry,
    ConflictReport,
    ConsensusEntry,
    CrossReferenceResult,
    FactCheck,
    Observation,
    RoadCondition,
)
from core.sources import source_reliability
from core.utils import clamp, is_number, round_half_up

log = logging.getLogger(__name__)

SINGLE_SOURCE_CONFIDENCE = 60
MIN_AGREEMENT_RATIO = 0.5
DUPLICATE_DISTANCE_DEG = 0.01
NEARBY_DISTANCE_DEG = 0.1


def _condition_value(observation: Observation) -> str:
    parsed = RoadCondition.parse(observation.condition)
    return parsed.value if parsed else str(observation.condition)


def _timestamp_text(observation: Observation) -> str:
    parsed = observation.parsed_timestamp()
    return parsed.isoformat() if parsed else str(observation.timestamp)


def _coord_or_zero(value) -> float:
    return value if is_number(value) else 0.0


def group_key(observation: Observation) -> str:
    """Route label plus lat/lon rounded to two decimals when both exist."""
    route = observation.route if observation.has_route else ""
    if observation.has_coordinates:
        lat_key = round_half_up(observation.latitude * 100)
        lon_key = round_half_up(observation.longitude * 100)
        return f"{route}_{lat_key}_{lon_key}"
    return route


def location_text(observation: Observation) -> str:
    lat = observation.latitude if is_number(observation.latitude) else "N/A"
    lon = observation.longitude if is_number(observation.longitude) else "N/A"
    return f"{lat}, {lon}"


# ═══════════════════════════════════════════════════════════════════════════
# CONSENSUS
# ═══════════════════════════════════════════════════════════════════════════
def cross_reference(observations: Sequence[Observation]) -> CrossReferenceResult:
    """
    Compute consensus and conflicts over the full set of valid observations.

    Ties between equally common conditions go to the one seen first.
    """
    groups: "OrderedDict[str, List[Observation]]" = OrderedDict()
    for observation in observations:
        groups.setdefault(group_key(observation), []).append(observation)

    result = CrossReferenceResult()

    for key, members in groups.items():
        first = members[0]
        route = first.label
        location = location_text(first)

        if len(members) == 1:
            result.consensus.append(ConsensusEntry(
                key=key,
                route=route,
                location=location,
                condition=_condition_value(first),
                sources=[first.source],
                confidence=SINGLE_SOURCE_CONFIDENCE,
            ))
            continue

        counts: Dict[str, int] = OrderedDict()
        for member in members:
            value = _condition_value(member)
            counts[value] = counts.get(value, 0) + 1

        majority_condition = None
        majority_count = 0
        for value, count in counts.items():
            if count > majority_count:
                majority_condition, majority_count = value, count

        ratio = majority_count / len(members)
        if ratio >= MIN_AGREEMENT_RATIO:
            result.consensus.append(ConsensusEntry(
                key=key,
                route=route,
                location=location,
                condition=majority_condition,
                sources=[m.source for m in members if _condition_value(m) == majority_condition],
                confidence=round_half_up(ratio * 100),
                matching=majority_count,
                conflicting=len(members) - majority_count,
            ))
        else:
            log.info(f"Conflicting reports for {route}: {dict(counts)}")
            result.conflicts.append(ConflictEntry(
                key=key,
                route=route,
                location=location,
                reports=[
                    ConflictReport(m.source, _condition_value(m), _timestamp_text(m))
                    for m in members
                ],
            ))

    return result


# ═══════════════════════════════════════════════════════════════════════════
# DEDUPLICATION
# ═══════════════════════════════════════════════════════════════════════════
def deduplicate(observations: Sequence[Observation]) -> List[Observation]:
    """
    Drop later records repeating a (route, condition) pair within 0.01°.

    Missing coordinates compare as 0, so label-only duplicates collapse too.
    """
    unique: List[Observation] = []
    for observation in observations:
        lat = _coord_or_zero(observation.latitude)
        lon = _coord_or_zero(observation.longitude)
        condition = _condition_value(observation)

        duplicate = any(
            kept.route == observation.route
            and _condition_value(kept) == condition
            and abs(_coord_or_zero(kept.latitude) - lat) < DUPLICATE_DISTANCE_DEG
            and abs(_coord_or_zero(kept.longitude) - lon) < DUPLICATE_DISTANCE_DEG
            for kept in unique
        )
        if not duplicate:
            unique.append(observation)

    if len(unique) < len(observations):
        log.debug(f"Deduplicated {len(observations)} observations to {len(unique)}")
    return unique


# ═══════════════════════════════════════════════════════════════════════════
# FACT CHECK
# ═══════════════════════════════════════════════════════════════════════════
def _is_nearby(a: Observation, b: Observation) -> bool:
    if a.has_route and a.route == b.route:
        return True
    if a.has_coordinates and b.has_coordinates:
        return (
            abs(a.latitude - b.latitude) < NEARBY_DISTANCE_DEG
            and abs(a.longitude - b.longitude) < NEARBY_DISTANCE_DEG
        )
    return False


def fact_check(observation: Observation, all_observations: Sequence[Observation]) -> FactCheck:
    """Rate one observation against other reports for the same place."""
    nearby = [
        other for other in all_observations
        if other is not observation and _is_nearby(observation, other)
    ]
    condition = _condition_value(observation)
    matching = [o.source for o in nearby if _condition_value(o) == condition]
    conflicting = [o.source for o in nearby if _condition_value(o) != condition]

    reliability = source_reliability(observation.source)
    ratio = len(matching) / len(nearby) if nearby else 0.0
    raw = min(100.0, reliability + ratio * 30 - len(conflicting) * 20)
    confidence = round_half_up(clamp(raw, 0, 100))

    if confidence >= 80:
        recommendation = "High confidence - data appears reliable"
    elif confidence >= 60:
        recommendation = "Moderate confidence - consider cross-referencing with other sources"
    else:
        recommendation = "Low confidence - verify with additional sources before relying on it"

    return FactCheck(
        observation=observation,
        confidence=confidence,
        matching_sources=matching,
        conflicting_sources=conflicting,
        recommendation=recommendation,
    )
