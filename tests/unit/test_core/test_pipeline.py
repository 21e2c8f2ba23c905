import pytest
import threading
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from core.config import Settings
from core.models import Observation, WeatherContext
from core.pipeline import RoadSafetyPipeline, build_route_id, build_segment, slugify

NOW = datetime(2026, 1, 15, 17, 0, tzinfo=timezone.utc)
TS = (NOW - timedelta(minutes=10)).isoformat()

@pytest.fixture
def pipeline():
    return RoadSafetyPipeline(settings=Settings(), max_workers=4)

def obs(route, condition, source, lat=None, lon=None, **extra):
    return Observation(route, condition, source, TS, latitude=lat, longitude=lon, **extra)

def test_slugify():
    assert slugify("VTrans RWIS") == "vtrans-rwis"
    assert slugify("  US Route 7 (North) ") == "us-route-7-north"

def test_route_id_is_deterministic():
    a = obs("I-89", "ice", "VTrans RWIS", 44.48, -73.21)
    assert build_route_id(a) == build_route_id(a)
    assert build_route_id(a) == "road-i-89-vtrans-rwis-44p4800_m73p2100"
    assert build_route_id(obs("I-89", "ice", "NWS")) == "road-i-89-nws"

def test_segment_around_point():
    segment = build_segment(obs("I-89", "ice", "NWS", 44.48, -73.21))
    assert segment[0] == pytest.approx((44.475, -73.215))
    assert segment[1] == pytest.approx((44.485, -73.205))
    assert build_segment(obs("I-89", "ice", "NWS")) is None
    assert build_segment(obs("I-89", "ice", "NWS", 91.0, -73.21)) is None

def test_run_end_to_end(pipeline):
    """Invalid records are dropped, duplicates collapse, the rest are scored."""
    batch = [
        obs("I-89", "ice", "VTrans RWIS", 44.48, -73.21, temperature=18.0),
        obs("I-89", "ice", "Xweather", 44.482, -73.212),
        obs("VT-100", "slushy", "NWS"),
        obs("US-2", "clear", "TomTom", 44.26, -72.58),
    ]
    result = pipeline.run(batch, weather_context=WeatherContext(temperature=25.0), now=NOW)

    assert result.has_data
    assert result.validation.invalid_count == 1
    assert [r.route for r in result.records] == ["I-89", "US-2"]
    assert result.consensus[0].confidence == 100
    assert result.conflicts == []

    ice = result.records[0]
    assert ice.safety_level == "hazardous"
    assert ice.coordinates is not None

    traffic = result.records[1]
    assert traffic.warning == "Real-time traffic incident: clear"
    assert traffic.description.startswith("Safety score:")

def test_conflicts_reported_alongside_records(pipeline):
    batch = [
        obs("I-91", "ice", "VTrans RWIS"),
        obs("I-91", "wet", "NWS"),
        obs("I-91", "clear", "TomTom"),
    ]
    result = pipeline.run(batch, now=NOW)
    assert len(result.conflicts) == 1
    assert len(result.records) == 3

def test_empty_batch(pipeline):
    result = pipeline.run([], now=NOW)
    assert not result.has_data
    assert result.to_dict()["roads"] == []

def test_all_invalid_batch(pipeline):
    result = pipeline.run([obs(None, "ice", "NWS")], now=NOW)
    assert not result.has_data
    assert result.validation.invalid_count == 1

def test_context_lookup_runs_per_record(pipeline):
    """Every record gets its own weather before scoring."""
    calls = []
    lock = threading.Lock()

    def lookup(observation):
        with lock:
            calls.append(observation.route)
        return WeatherContext(temperature=10.0)

    batch = [obs("I-89", "ice", "NWS", 44.48, -73.21), obs("US-7", "ice", "NWS", 44.00, -73.15)]
    result = pipeline.run(batch, weather_context=WeatherContext(temperature=60.0), context_lookup=lookup, now=NOW)

    assert sorted(calls) == ["I-89", "US-7"]
    assert all(a.score == 0 for _, a in result.assessments)

def test_failed_lookup_falls_back(pipeline):
    """A failing lookup is recorded and the shared context is used instead."""
    lookup = MagicMock(side_effect=RuntimeError("provider down"))
    batch = [obs("I-89", "ice", "NWS", 44.48, -73.21)]
    result = pipeline.run(batch, weather_context=WeatherContext(temperature=15.0), context_lookup=lookup, now=NOW)

    assert result.lookup_errors == ["I-89: provider down"]
    assert result.assessments[0][1].factor("temperature").score == 5

def test_to_dict_shape(pipeline):
    result = pipeline.run([obs("I-89", "wet", "NWS", 44.48, -73.21)], now=NOW)
    data = result.to_dict()
    assert set(data) == {"roads", "conflicts", "consensus", "validation", "lookup_errors"}
    assert data["roads"][0]["routeId"].startswith("road-i-89-nws")
    assert data["validation"] == {"valid": 1, "invalid": 0, "warnings": 0}

def test_non_finite_coordinates_do_not_sink_batch(pipeline):
    """A record with an infinite latitude is kept by route and the rest still score."""
    result = pipeline.run([
        obs("I-89", "ice", "NWS", float("inf"), -73.2),
        obs("VT-100", "clear", "NWS", 44.3, -72.7),
    ], now=NOW)
    assert [r.route for r in result.records] == ["I-89", "VT-100"]
    assert result.records[0].coordinates is None
    assert result.records[0].route_id == "road-i-89-nws"
    assert any("Invalid latitude" in issue for issue in result.validation.issues)

def test_hung_lookup_is_abandoned():
    """A lookup past the timeout falls back without holding up the run."""
    def lookup(observation):
        if observation.route == "I-89":
            time.sleep(3.0)
        return WeatherContext(temperature=10.0)

    pipeline = RoadSafetyPipeline(settings=Settings(), max_workers=4, lookup_timeout=0.2)
    batch = [obs("I-89", "ice", "NWS", 44.48, -73.21), obs("US-7", "ice", "NWS", 44.00, -73.15)]
    started = time.monotonic()
    result = pipeline.run(batch, weather_context=WeatherContext(temperature=60.0), context_lookup=lookup, now=NOW)

    assert time.monotonic() - started < 2.0
    assert result.lookup_errors == ["I-89: timed out"]
    assert len(result.records) == 2
