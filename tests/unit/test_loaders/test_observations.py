import pytest
import time
from core.exceptions import SourceFailure
from core.models import Observation
from loaders.observations import CallableSource, ObservationCollector

TS = "2026-01-15T16:50:00Z"

def static(name, routes, delay=0.0):
    def fetch(location):
        if delay:
            time.sleep(delay)
        return [Observation(route, "clear", name, TS) for route in routes]
    return CallableSource(name, fetch)

def failing(name, error):
    def fetch(location):
        raise error
    return CallableSource(name, fetch)

def test_collects_in_source_order():
    """Results follow declaration order, not completion order."""
    collector = ObservationCollector([
        static("VTrans RWIS", ["I-89", "I-91"], delay=0.05),
        static("TomTom", ["US-2"]),
    ])
    result = collector.collect()
    assert [o.route for o in result.observations] == ["I-89", "I-91", "US-2"]
    assert result.counts == {"VTrans RWIS": 2, "TomTom": 1}
    assert result.failures == []
    assert not result.exhausted

def test_failing_source_is_isolated():
    collector = ObservationCollector([
        failing("Xweather", RuntimeError("HTTP 500")),
        static("NWS", ["VT-100"]),
    ])
    result = collector.collect()
    assert [o.source for o in result.observations] == ["NWS"]
    assert result.succeeded == ["NWS"]
    assert len(result.failures) == 1
    assert result.failures[0].source == "Xweather"
    assert result.failures[0].reason == "HTTP 500"

def test_source_failure_passed_through():
    error = SourceFailure("TomTom", "rate limited")
    result = ObservationCollector([failing("TomTom", error)]).collect()
    assert result.failures == [error]
    assert result.exhausted

def test_slow_source_times_out():
    collector = ObservationCollector(
        [static("New England 511", ["I-93"], delay=1.0), static("NWS", ["I-89"])],
        timeout=0.2,
    )
    result = collector.collect()
    assert [o.route for o in result.observations] == ["I-89"]
    assert [f.source for f in result.failures] == ["New England 511"]
    assert result.failures[0].reason == "timed out"

def test_timeout_bounds_collect_time():
    """A hung source does not hold collect() past the timeout."""
    collector = ObservationCollector(
        [static("New England 511", ["I-93"], delay=3.0), static("NWS", ["I-89"])],
        timeout=0.2,
    )
    started = time.monotonic()
    result = collector.collect()
    assert time.monotonic() - started < 2.0
    assert result.succeeded == ["NWS"]

def test_location_passed_to_sources():
    seen = []
    source = CallableSource("NWS", lambda location: seen.append(location) or [])
    ObservationCollector([source]).collect("44.48,-73.21")
    assert seen == ["44.48,-73.21"]

def test_no_sources():
    result = ObservationCollector([]).collect()
    assert result.observations == []
    assert result.exhausted
