"""
Core data models for the road risk engine.

Records that flow through the pipeline are frozen: stages derive new records
instead of editing the ones they were handed.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from core.utils import is_number, parse_timestamp


def _normalize_token(value: str) -> str:
    return value.strip().lower().replace("_", "-").replace(" ", "-")


# ═══════════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════════
class RoadCondition(Enum):
    """Road surface condition reported by a provider."""
    CLEAR = "clear"
    WET = "wet"
    SNOW_COVERED = "snow-covered"
    ICE = "ice"
    CLOSED = "closed"
    UNKNOWN = "unknown"

    @property
    def is_dangerous(self) -> bool:
        return self in (RoadCondition.ICE, RoadCondition.CLOSED)

    @classmethod
    def parse(cls, value: Any) -> Optional["RoadCondition"]:
        """Return the matching member, or None for anything not in the enum."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        token = _normalize_token(value)
        for member in cls:
            if member.value == token:
                return member
        return None


class Severity(Enum):
    """Provider-reported incident severity."""
    MINOR = "MINOR"
    MODERATE = "MODERATE"
    MAJOR = "MAJOR"

    @classmethod
    def parse(cls, value: Any) -> Optional["Severity"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class RiskLevel(Enum):
    """Five ordered safety tiers."""
    EXCELLENT = "excellent"
    GOOD = "good"
    CAUTION = "caution"
    POOR = "poor"
    HAZARDOUS = "hazardous"


class RiskSeverity(Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"


class ClosureType(Enum):
    FULL_CLOSING = "full_closing"
    DELAY = "delay"
    EARLY_DISMISSAL = "early_dismissal"
    NO_SCHOOL = "no_school"


# ═══════════════════════════════════════════════════════════════════════════
# OBSERVATIONS
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class Observation:
    """
    One fact from one provider about one place or road segment.

    `condition` and `severity` hold the raw provider values so the validator
    can reject values outside the enums. `timestamp` may be a datetime or an
    ISO-8601 string. Temperature is in Fahrenheit, delay in seconds.
    """
    route: Optional[str]
    condition: Any
    source: Optional[str]
    timestamp: Union[datetime, str, None]
    temperature: Optional[float] = None
    warning: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    severity: Optional[str] = None
    delay: Optional[float] = None

    @property
    def condition_enum(self) -> Optional[RoadCondition]:
        return RoadCondition.parse(self.condition)

    @property
    def severity_enum(self) -> Optional[Severity]:
        return Severity.parse(self.severity)

    @property
    def has_coordinates(self) -> bool:
        return is_number(self.latitude) and is_number(self.longitude)

    @property
    def has_valid_coordinates(self) -> bool:
        return (
            self.has_coordinates
            and -90 <= self.latitude <= 90
            and -180 <= self.longitude <= 180
        )

    @property
    def has_route(self) -> bool:
        return isinstance(self.route, str) and bool(self.route.strip())

    @property
    def label(self) -> str:
        """Route label, or the coordinate pair when the label is absent."""
        if self.has_route:
            return self.route
        if self.has_coordinates:
            return f"{self.latitude}, {self.longitude}"
        return "unknown location"

    def parsed_timestamp(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if isinstance(self.condition, RoadCondition):
            data["condition"] = self.condition.value
        if isinstance(self.timestamp, datetime):
            data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Observation":
        """Build from a normalized provider record (accepts lat/lon aliases)."""
        return cls(
            route=data.get("route"),
            condition=data.get("condition"),
            source=data.get("source"),
            timestamp=data.get("timestamp"),
            temperature=data.get("temperature"),
            warning=data.get("warning"),
            latitude=data.get("latitude", data.get("lat")),
            longitude=data.get("longitude", data.get("lon")),
            severity=data.get("severity"),
            delay=data.get("delay"),
        )


@dataclass
class ValidationResult:
    """Outcome of validating one record."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationReport:
    """Outcome of validating a batch, kept list in original order."""
    kept: List[Observation] = field(default_factory=list)
    rejected: List[Tuple[Observation, ValidationResult]] = field(default_factory=list)
    warning_count: int = 0
    issues: List[str] = field(default_factory=list)

    @property
    def invalid_count(self) -> int:
        return len(self.rejected)

    @property
    def total(self) -> int:
        return len(self.kept) + len(self.rejected)

    def summary(self, max_issues: int = 10) -> str:
        lines = [
            "Data Validation Report:",
            f"- Total records: {self.total}",
            f"- Valid records: {len(self.kept)}",
            f"- Invalid records: {self.invalid_count}",
            f"- Warnings: {self.warning_count}",
        ]
        if self.issues:
            lines.append("")
            lines.append("Issues found:")
            lines.extend(f"  {issue}" for issue in self.issues[:max_issues])
            if len(self.issues) > max_issues:
                lines.append(f"  ... and {len(self.issues) - max_issues} more")
        return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════════════════
# CROSS-REFERENCE
# ═══════════════════════════════════════════════════════════════════════════
@dataclass
class ConsensusEntry:
    """Majority condition for one route/location identity."""
    key: str
    route: str
    location: str
    condition: str
    sources: List[str]
    confidence: int
    matching: int = 1
    conflicting: int = 0


@dataclass(frozen=True)
class ConflictReport:
    source: str
    condition: str
    timestamp: str


@dataclass
class ConflictEntry:
    """An identity whose sources failed to reach majority agreement."""
    key: str
    route: str
    location: str
    reports: List[ConflictReport] = field(default_factory=list)


@dataclass
class CrossReferenceResult:
    consensus: List[ConsensusEntry] = field(default_factory=list)
    conflicts: List[ConflictEntry] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def consensus_for(self, route: str) -> List[ConsensusEntry]:
        return [entry for entry in self.consensus if entry.route == route]


@dataclass
class FactCheck:
    """Plausibility of one observation against nearby reports."""
    observation: Observation
    confidence: int
    matching_sources: List[str]
    conflicting_sources: List[str]
    recommendation: str

    @property
    def is_reliable(self) -> bool:
        return self.confidence >= 60


# ═══════════════════════════════════════════════════════════════════════════
# WEATHER
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class WeatherContext:
    """Ambient weather used by the scorer (Fahrenheit, mph, percent)."""
    temperature: Optional[float] = None
    wind_speed: Optional[float] = None
    humidity: Optional[float] = None


@dataclass(frozen=True)
class WeatherReading:
    """Current conditions from one weather provider."""
    temperature: Optional[float]            # °F
    humidity: Optional[float] = None        # %
    pressure: Optional[float] = None        # hPa
    description: str = ""
    wind_speed: Optional[float] = None      # mph
    location: Optional[str] = None
    timestamp: Union[datetime, str, None] = None
    source: Optional[str] = None

    def to_context(self) -> WeatherContext:
        return WeatherContext(
            temperature=self.temperature,
            wind_speed=self.wind_speed,
            humidity=self.humidity,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if isinstance(self.timestamp, datetime):
            data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class WeatherValidation:
    is_valid: bool
    confidence: int
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    source_reliability: int = 50


# ═══════════════════════════════════════════════════════════════════════════
# RISK ASSESSMENT
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class FactorScore:
    """One named contribution to a risk assessment."""
    name: str
    score: float
    weight: float
    description: str


@dataclass(frozen=True)
class RiskAssessment:
    """Scored safety for one observation; higher scores are safer."""
    score: int
    level: RiskLevel
    severity: RiskSeverity
    factors: Tuple[FactorScore, ...]
    explanation: str
    confidence: int

    def factor(self, name: str) -> Optional[FactorScore]:
        for item in self.factors:
            if item.name == name:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "severity": self.severity.value,
            "factors": {
                f.name: {"score": f.score, "weight": f.weight, "description": f.description}
                for f in self.factors
            },
            "explanation": self.explanation,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class RoadSafetyRecord:
    """Record handed to map/chat consumers."""
    route: str
    condition: str
    severity: str
    safety_level: str
    safety_score: int
    description: str
    coordinates: Optional[Tuple[Tuple[float, float], ...]]
    warning: Optional[str]
    route_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "route": self.route,
            "condition": self.condition,
            "severity": self.severity,
            "safetyLevel": self.safety_level,
            "safetyScore": self.safety_score,
            "description": self.description,
            "coordinates": [list(point) for point in self.coordinates] if self.coordinates else None,
            "warning": self.warning,
            "routeId": self.route_id,
        }


# ═══════════════════════════════════════════════════════════════════════════
# SCHOOL CLOSURES
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class ForecastDay:
    """
    Forecast for one location and calendar day.

    Temperatures in °F, wind in mph, depths in inches. Snowfall and ice may be
    absent, in which case the predictor estimates them.
    """
    forecast_date: date
    temperature: float
    wind_speed: float = 0.0
    precipitation: float = 0.0
    snowfall: Optional[float] = None
    ice: Optional[float] = None
    condition: str = ""
    precipitation_start_hour: Optional[int] = None
    source: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["forecast_date"] = self.forecast_date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ForecastDay":
        raw_date = data["forecast_date"]
        return cls(
            forecast_date=raw_date if isinstance(raw_date, date) else date.fromisoformat(raw_date),
            temperature=float(data["temperature"]),
            wind_speed=float(data.get("wind_speed", 0.0)),
            precipitation=float(data.get("precipitation", 0.0)),
            snowfall=data.get("snowfall"),
            ice=data.get("ice"),
            condition=data.get("condition", ""),
            precipitation_start_hour=data.get("precipitation_start_hour"),
            source=data.get("source", "unknown"),
        )


@dataclass
class District:
    id: int
    district_name: str
    district_code: Optional[str] = None
    county: Optional[str] = None
    zip_codes: List[str] = field(default_factory=list)
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    district_type: str = "public"
    enrollment: Optional[int] = None

    @property
    def location_query(self) -> str:
        """Location string handed to forecast providers."""
        if is_number(self.latitude) and is_number(self.longitude):
            return f"{self.latitude},{self.longitude}"
        if self.city:
            return f"{self.city}, VT"
        return self.district_name


@dataclass
class DistrictThresholds:
    """Closure thresholds for one district (inches, °F, mph)."""
    district_id: int = 0
    full_closing_snowfall: float = 6.0
    delay_snowfall: float = 3.0
    ice_threshold: float = 0.25
    temperature_threshold: float = 10.0
    wind_threshold: float = 30.0
    total_predictions: int = 0
    correct_predictions: int = 0

    @property
    def accuracy_rate(self) -> Optional[float]:
        if not self.total_predictions:
            return None
        return self.correct_predictions / self.total_predictions

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SchoolClosing:
    """One actual closure event from district history."""
    district_id: int
    closing_date: date
    closure_type: ClosureType
    snowfall_amount: Optional[float] = None
    ice_amount: Optional[float] = None
    temperature: Optional[float] = None
    notes: Optional[str] = None
    source: str = "manual"


@dataclass
class ClosurePrediction:
    """Closure likelihood for one district on one day."""
    district_id: int
    district_name: str
    prediction_date: datetime
    predicted_for_date: date
    full_closing_probability: float
    delay_probability: float
    early_dismissal_probability: float
    confidence: float
    forecast: ForecastDay
    factors: List[str] = field(default_factory=list)
    primary_reason: str = ""
    closure_reasons: List[str] = field(default_factory=list)
    thresholds: Optional[DistrictThresholds] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "district_id": self.district_id,
            "district_name": self.district_name,
            "prediction_date": self.prediction_date.isoformat(),
            "predicted_for_date": self.predicted_for_date.isoformat(),
            "full_closing_probability": self.full_closing_probability,
            "delay_probability": self.delay_probability,
            "early_dismissal_probability": self.early_dismissal_probability,
            "confidence": self.confidence,
            "forecast": self.forecast.to_dict(),
            "factors": list(self.factors),
            "primary_reason": self.primary_reason,
            "closure_reasons": list(self.closure_reasons),
            "thresholds": self.thresholds.to_dict() if self.thresholds else None,
        }


@dataclass
class MultiDayPrediction:
    district_id: int
    district_name: str
    predictions: List[ClosurePrediction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "district_id": self.district_id,
            "district_name": self.district_name,
            "predictions": [p.to_dict() for p in self.predictions],
        }
