"""
Core module for the road risk engine.
Contains the data model, source priority table, validator,
cross-referencer, risk scorer and the road safety pipeline.
"""

from core.models import (
    Observation,
    RoadCondition,
    Severity,
    ValidationResult,
    ValidationReport,
    WeatherContext,
    WeatherReading,
    RiskAssessment,
    RiskLevel,
    RiskSeverity,
    RoadSafetyRecord,
    ClosurePrediction,
    ForecastDay,
    District,
    DistrictThresholds,
)
from core.exceptions import RoadRiskError, SourceFailure, AggregateFailure, ForecastUnavailable
from core.sources import SOURCE_TABLE, WEATHER_PROVIDER_ORDER, find_source, source_reliability
from core.validation import validate, validate_and_filter, validate_weather_reading
from core.cross_reference import cross_reference, deduplicate, fact_check
from core.scoring import RoadRiskScorer, classify, get_scorer
from core.pipeline import RoadSafetyPipeline, PipelineResult

__all__ = [
    # Models
    "Observation",
    "RoadCondition",
    "Severity",
    "ValidationResult",
    "ValidationReport",
    "WeatherContext",
    "WeatherReading",
    "RiskAssessment",
    "RiskLevel",
    "RiskSeverity",
    "RoadSafetyRecord",
    "ClosurePrediction",
    "ForecastDay",
    "District",
    "DistrictThresholds",
    # Errors
    "RoadRiskError",
    "SourceFailure",
    "AggregateFailure",
    "ForecastUnavailable",
    # Sources
    "SOURCE_TABLE",
    "WEATHER_PROVIDER_ORDER",
    "find_source",
    "source_reliability",
    # Engine
    "validate",
    "validate_and_filter",
    "validate_weather_reading",
    "cross_reference",
    "deduplicate",
    "fact_check",
    "RoadRiskScorer",
    "classify",
    "get_scorer",
    "RoadSafetyPipeline",
    "PipelineResult",
]
