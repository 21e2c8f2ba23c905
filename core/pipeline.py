"""
Road Safety Pipeline

raw observations -> validation -> cross-reference -> dedup -> scoring ->
records for map/chat consumers.

Per-record weather lookups fan out over a thread pool; every lookup is
joined before any record is scored.
"""

import re
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from core.config import Settings, get_settings
from core.cross_reference import cross_reference, deduplicate
from core.models import (
    CrossReferenceResult,
    Observation,
    RiskAssessment,
    RoadSafetyRecord,
    ValidationReport,
    WeatherContext,
)
from core.scoring import RoadRiskScorer
from core.utils import ensure_aware
from core.validation import validate_and_filter

log = logging.getLogger(__name__)

SEGMENT_HALF_SPAN_DEG = 0.005
LOOKUP_TIMEOUT_SECONDS = 60

ContextLookup = Callable[[Observation], Optional[WeatherContext]]


def slugify(text: str) -> str:
    slug = re.sub(r"\s+", "-", text.strip().lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


def build_route_id(observation: Observation) -> str:
    """Stable id: route slug, source slug and rounded position when known."""
    parts = ["road", slugify(observation.route or "unknown-route")]
    if observation.source:
        parts.append(slugify(observation.source))
    if observation.has_coordinates:
        parts.append(f"{observation.latitude:.4f}_{observation.longitude:.4f}".replace("-", "m").replace(".", "p"))
    return "-".join(parts)


def build_segment(observation: Observation) -> Optional[Tuple[Tuple[float, float], ...]]:
    if not observation.has_valid_coordinates:
        return None
    lat, lon = observation.latitude, observation.longitude
    return (
        (lat - SEGMENT_HALF_SPAN_DEG, lon - SEGMENT_HALF_SPAN_DEG),
        (lat + SEGMENT_HALF_SPAN_DEG, lon + SEGMENT_HALF_SPAN_DEG),
    )


@dataclass
class PipelineResult:
    """Everything a consumer needs to tell 'no data' from 'low confidence'."""
    records: List[RoadSafetyRecord] = field(default_factory=list)
    assessments: List[Tuple[Observation, RiskAssessment]] = field(default_factory=list)
    cross_reference: CrossReferenceResult = field(default_factory=CrossReferenceResult)
    validation: ValidationReport = field(default_factory=ValidationReport)
    lookup_errors: List[str] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return bool(self.records)

    @property
    def conflicts(self):
        return self.cross_reference.conflicts

    @property
    def consensus(self):
        return self.cross_reference.consensus

    def to_dict(self) -> Dict:
        return {
            "roads": [r.to_dict() for r in self.records],
            "conflicts": [
                {
                    "route": c.route,
                    "location": c.location,
                    "reports": [{"source": r.source, "condition": r.condition, "timestamp": r.timestamp} for r in c.reports],
                }
                for c in self.conflicts
            ],
            "consensus": [
                {
                    "route": c.route,
                    "location": c.location,
                    "condition": c.condition,
                    "sources": c.sources,
                    "confidence": c.confidence,
                }
                for c in self.consensus
            ],
            "validation": {
                "valid": len(self.validation.kept),
                "invalid": self.validation.invalid_count,
                "warnings": self.validation.warning_count,
            },
            "lookup_errors": list(self.lookup_errors),
        }


class RoadSafetyPipeline:
    """
    Runs the full road-safety path over one batch of observations.

    Usage:
        pipeline = RoadSafetyPipeline()
        result = pipeline.run(observations, weather_context=WeatherContext(temperature=28))
        for record in result.records:
            print(record.route, record.safety_level)
    """

    def __init__(
        self,
        scorer: Optional[RoadRiskScorer] = None,
        settings: Optional[Settings] = None,
        max_workers: int = 8,
        lookup_timeout: float = LOOKUP_TIMEOUT_SECONDS,
    ):
        self.settings = settings or get_settings()
        self.scorer = scorer or RoadRiskScorer(self.settings)
        self.max_workers = max_workers
        self.lookup_timeout = lookup_timeout

    def run(
        self,
        observations: Sequence[Observation],
        weather_context: Optional[WeatherContext] = None,
        context_lookup: Optional[ContextLookup] = None,
        now: Optional[datetime] = None,
    ) -> PipelineResult:
        """
        Validate, reconcile and score a batch.

        Args:
            observations: Normalized provider records
            weather_context: Shared ambient weather for every record
            context_lookup: Optional per-record weather lookup, run concurrently;
                a failed lookup falls back to `weather_context`
            now: Reference instant (injectable for tests)
        """
        now = ensure_aware(now)
        result = PipelineResult()

        result.validation = validate_and_filter(observations, now=now, settings=self.settings)
        kept = result.validation.kept

        # Consensus needs the full kept set, before display dedup
        result.cross_reference = cross_reference(kept)
        unique = deduplicate(kept)

        contexts: Dict[int, Optional[WeatherContext]] = {}
        if context_lookup is not None and unique:
            contexts = self._lookup_contexts(unique, context_lookup, result.lookup_errors)

        seen = set()
        for index, observation in enumerate(unique):
            context = contexts.get(index) or weather_context
            assessment = self.scorer.score(observation, context, now)
            result.assessments.append((observation, assessment))

            record = self._to_record(observation, assessment)
            identity = (record.route, record.route_id)
            if identity in seen:
                continue
            seen.add(identity)
            result.records.append(record)

        log.info(
            f"Scored {len(result.records)} roads "
            f"({len(result.conflicts)} conflicts, {len(result.lookup_errors)} lookup errors)"
        )
        return result

    def _lookup_contexts(
        self,
        observations: Sequence[Observation],
        lookup: ContextLookup,
        errors: List[str],
    ) -> Dict[int, Optional[WeatherContext]]:
        """Fetch weather per record concurrently, waiting up to lookup_timeout."""
        contexts: Dict[int, Optional[WeatherContext]] = {}
        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        futures = {
            executor.submit(lookup, observation): index
            for index, observation in enumerate(observations)
        }
        timed_out = False
        try:
            for future in as_completed(futures, timeout=self.lookup_timeout):
                index = futures[future]
                try:
                    contexts[index] = future.result()
                except Exception as e:
                    label = observations[index].label
                    log.error(f"Weather lookup failed for {label}: {e}")
                    errors.append(f"{label}: {e}")
        except FuturesTimeout:
            timed_out = True
            for future, index in futures.items():
                if not future.done():
                    label = observations[index].label
                    log.error(f"Weather lookup timed out for {label}")
                    errors.append(f"{label}: timed out")
        finally:
            # Hung lookups are abandoned, not joined
            executor.shutdown(wait=not timed_out, cancel_futures=timed_out)
        return contexts

    @staticmethod
    def _to_record(observation: Observation, assessment: RiskAssessment) -> RoadSafetyRecord:
        condition = observation.condition_enum
        condition_text = condition.value if condition else str(observation.condition)

        warning = observation.warning
        if not warning and observation.source == "TomTom":
            warning = f"Real-time traffic incident: {condition_text}"

        return RoadSafetyRecord(
            route=observation.route or observation.label,
            condition=condition_text,
            severity=assessment.severity.value,
            safety_level=assessment.level.value,
            safety_score=assessment.score,
            description=observation.warning or assessment.explanation,
            coordinates=build_segment(observation),
            warning=warning,
            route_id=build_route_id(observation),
        )
