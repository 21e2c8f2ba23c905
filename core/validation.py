"""
Observation Validator

Structural and physical-bound checks for incoming observations and weather
readings. Errors reject a single record; warnings only flag it. Nothing in
this module raises for business-rule reasons.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from core.config import (
    MAX_FUTURE_SKEW_SECONDS,
    STALE_OBSERVATION_HOURS,
    STALE_READING_MINUTES,
    TEMPERATURE_RANGE_F,
    HUMIDITY_RANGE,
    PRESSURE_RANGE_HPA,
    Settings,
    get_settings,
)
from core.models import (
    Observation,
    RoadCondition,
    ValidationReport,
    ValidationResult,
    WeatherReading,
    WeatherValidation,
)
from core.sources import source_reliability
from core.utils import clamp, ensure_aware, is_number, parse_timestamp, round_half_up

log = logging.getLogger(__name__)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ═══════════════════════════════════════════════════════════════════════════
# OBSERVATIONS
# ═══════════════════════════════════════════════════════════════════════════
def validate(
    observation: Observation,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> ValidationResult:
    """
    Validate one observation.

    Args:
        observation: Normalized provider record
        now: Reference instant for freshness checks (defaults to current time)
        settings: Supplies the service region bounding box

    Returns:
        ValidationResult; is_valid is False only when errors were found
    """
    now = ensure_aware(now)
    settings = settings or get_settings()
    errors: List[str] = []
    warnings: List[str] = []

    # Identity: a route label or a usable coordinate pair
    if not observation.has_route:
        if observation.has_valid_coordinates:
            warnings.append("Route name missing - identified by coordinates only")
        else:
            errors.append("Missing route name and valid coordinates")

    # Condition
    if _is_blank(observation.condition):
        errors.append("Missing condition")
    elif RoadCondition.parse(observation.condition) is None:
        errors.append(f"Invalid condition: {observation.condition}")

    # Source
    if _is_blank(observation.source):
        errors.append("Missing source")

    # Timestamp
    if _is_blank(observation.timestamp):
        errors.append("Missing timestamp")
    else:
        parsed = parse_timestamp(observation.timestamp)
        if parsed is None:
            errors.append(f"Invalid timestamp format: {observation.timestamp}")
        else:
            delta = (parsed - now).total_seconds()
            if delta > MAX_FUTURE_SKEW_SECONDS:
                warnings.append("Timestamp is in the future")
            else:
                age_hours = -delta / 3600
                if age_hours > STALE_OBSERVATION_HOURS:
                    warnings.append(f"Data is {int(age_hours)} hours old - may be stale")

    # Coordinates
    lat, lon = observation.latitude, observation.longitude
    if lat is not None and not (is_number(lat) and -90 <= lat <= 90):
        warnings.append(f"Invalid latitude: {lat} - will use route name mapping instead")
    if lon is not None and not (is_number(lon) and -180 <= lon <= 180):
        warnings.append(f"Invalid longitude: {lon} - will use route name mapping instead")
    if observation.has_valid_coordinates and not settings.in_region(lat, lon):
        warnings.append(f"Coordinates outside service region: {lat}, {lon}")

    # Temperature
    temp = observation.temperature
    if temp is not None:
        if not is_number(temp):
            errors.append(f"Invalid temperature value: {temp}")
        else:
            low, high = TEMPERATURE_RANGE_F
            if not low <= temp <= high:
                warnings.append(f"Temperature {temp}°F outside expected range")

    # Severity
    if not _is_blank(observation.severity) and observation.severity_enum is None:
        errors.append(f"Invalid severity: {observation.severity}")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_and_filter(
    observations: Iterable[Observation],
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> ValidationReport:
    """
    Partition a batch into kept and rejected records.

    Kept records preserve their input order. Warnings never cause rejection.
    """
    now = ensure_aware(now)
    settings = settings or get_settings()
    report = ValidationReport()

    for index, observation in enumerate(observations):
        result = validate(observation, now=now, settings=settings)
        label = observation.label

        if result.is_valid:
            report.kept.append(observation)
        else:
            report.rejected.append((observation, result))
            report.issues.append(f"Record {index} ({label}): {', '.join(result.errors)}")
            log.warning(f"Rejected observation {index} from {observation.source}: {result.errors}")

        if result.warnings:
            report.warning_count += len(result.warnings)
            report.issues.append(f"Record {index} ({label}) warnings: {', '.join(result.warnings)}")
            log.debug(f"Observation {index} warnings: {result.warnings}")

    log.info(
        f"Validated {report.total} observations: {len(report.kept)} kept, "
        f"{report.invalid_count} rejected, {report.warning_count} warnings"
    )
    return report


# ═══════════════════════════════════════════════════════════════════════════
# WEATHER READINGS
# ═══════════════════════════════════════════════════════════════════════════
def validate_weather_reading(
    reading: WeatherReading,
    now: Optional[datetime] = None,
) -> WeatherValidation:
    """
    Score a provider's current-conditions reading.

    Starts at 100 and subtracts per problem; the result is averaged with the
    provider's reliability. Missing or malformed core fields make the
    reading invalid outright.
    """
    now = ensure_aware(now)
    confidence = 100.0
    issues: List[str] = []
    recommendations: List[str] = []
    hard_failure = False

    temp = reading.temperature
    if temp is None:
        issues.append("Temperature data missing")
        confidence -= 20
        hard_failure = True
    elif not is_number(temp):
        issues.append(f"Invalid temperature value: {temp}")
        confidence -= 30
        hard_failure = True
    elif not TEMPERATURE_RANGE_F[0] <= temp <= TEMPERATURE_RANGE_F[1]:
        issues.append(f"Temperature {temp}°F outside expected range")
        recommendations.append("Verify temperature units and sensor calibration")
        confidence -= 10

    humidity = reading.humidity
    if humidity is not None and not (is_number(humidity) and HUMIDITY_RANGE[0] <= humidity <= HUMIDITY_RANGE[1]):
        issues.append(f"Invalid humidity: {humidity}%")
        confidence -= 15
        hard_failure = True

    pressure = reading.pressure
    if pressure is not None and not (is_number(pressure) and PRESSURE_RANGE_HPA[0] <= pressure <= PRESSURE_RANGE_HPA[1]):
        issues.append(f"Invalid pressure: {pressure} hPa")
        confidence -= 10
        hard_failure = True

    if _is_blank(reading.timestamp):
        issues.append("Timestamp missing")
        confidence -= 15
        hard_failure = True
    else:
        parsed = parse_timestamp(reading.timestamp)
        if parsed is None:
            issues.append(f"Invalid timestamp format: {reading.timestamp}")
            confidence -= 20
            hard_failure = True
        else:
            delta = (parsed - now).total_seconds()
            if delta > MAX_FUTURE_SKEW_SECONDS:
                issues.append("Timestamp is in the future")
                confidence -= 30
            else:
                age_minutes = -delta / 60
                if age_minutes > STALE_READING_MINUTES:
                    issues.append(f"Data is {int(age_minutes)} minutes old")
                    recommendations.append("Consider fetching fresher data")
                    confidence -= min(30.0, age_minutes / 10)

    if _is_blank(reading.location):
        issues.append("Location data missing")
        confidence -= 10
        hard_failure = True

    reliability = source_reliability(reading.source)
    if reliability < 70:
        recommendations.append("Cross-reference with a more reliable source")

    final = round_half_up(clamp((confidence + reliability) / 2, 0, 100))
    return WeatherValidation(
        is_valid=not hard_failure,
        confidence=final,
        issues=issues,
        recommendations=recommendations,
        source_reliability=reliability,
    )
