import pytest
from datetime import datetime, timedelta, timezone
from core.config import Settings
from core.models import Observation, WeatherReading
from core.validation import validate, validate_and_filter, validate_weather_reading

NOW = datetime(2026, 1, 15, 17, 0, tzinfo=timezone.utc)
SETTINGS = Settings()

def make_obs(**overrides):
    fields = dict(
        route="I-89",
        condition="clear",
        source="VTrans RWIS",
        timestamp=(NOW - timedelta(minutes=10)).isoformat(),
        latitude=44.40,
        longitude=-72.70,
    )
    fields.update(overrides)
    return Observation(**fields)

def check(obs):
    return validate(obs, now=NOW, settings=SETTINGS)

def test_clean_record():
    """A complete in-region record has no errors and no warnings."""
    result = check(make_obs(temperature=28.0, severity="MINOR"))
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []

def test_invalid_latitude_with_route_is_kept():
    """Latitude 91 with a route label is a warning, not a rejection."""
    result = check(make_obs(latitude=91.0))
    assert result.is_valid
    assert any("Invalid latitude: 91.0" in w for w in result.warnings)

def test_invalid_latitude_without_route_is_rejected():
    result = check(make_obs(route=None, latitude=91.0))
    assert not result.is_valid
    assert "Missing route name and valid coordinates" in result.errors

def test_missing_route_with_coordinates():
    result = check(make_obs(route="  "))
    assert result.is_valid
    assert "Route name missing - identified by coordinates only" in result.warnings

def test_invalid_longitude_warning():
    result = check(make_obs(longitude=-200.0))
    assert result.is_valid
    assert any("Invalid longitude" in w for w in result.warnings)

@pytest.mark.parametrize("condition,message", [
    (None, "Missing condition"),
    ("", "Missing condition"),
    ("slushy", "Invalid condition: slushy"),
])
def test_bad_condition(condition, message):
    result = check(make_obs(condition=condition))
    assert not result.is_valid
    assert message in result.errors

def test_missing_source():
    result = check(make_obs(source=None))
    assert not result.is_valid
    assert "Missing source" in result.errors

def test_missing_timestamp():
    result = check(make_obs(timestamp=None))
    assert not result.is_valid
    assert "Missing timestamp" in result.errors

def test_invalid_timestamp():
    result = check(make_obs(timestamp="yesterday morning"))
    assert not result.is_valid
    assert "Invalid timestamp format: yesterday morning" in result.errors

def test_future_timestamp_warning():
    """More than 60s ahead warns; small clock skew is tolerated."""
    ahead = check(make_obs(timestamp=NOW + timedelta(minutes=5)))
    assert ahead.is_valid
    assert "Timestamp is in the future" in ahead.warnings

    skewed = check(make_obs(timestamp=NOW + timedelta(seconds=30)))
    assert skewed.warnings == []

def test_stale_timestamp_warning():
    result = check(make_obs(timestamp=NOW - timedelta(hours=30)))
    assert result.is_valid
    assert "Data is 30 hours old - may be stale" in result.warnings

def test_outside_service_region():
    result = check(make_obs(latitude=40.71, longitude=-74.0))
    assert result.is_valid
    assert any("outside service region" in w for w in result.warnings)

def test_temperature_checks():
    hot = check(make_obs(temperature=130.0))
    assert hot.is_valid
    assert any("outside expected range" in w for w in hot.warnings)

    broken = check(make_obs(temperature=float("nan")))
    assert not broken.is_valid
    assert any("Invalid temperature value" in e for e in broken.errors)

def test_severity_checks():
    assert check(make_obs(severity="major")).is_valid
    result = check(make_obs(severity="catastrophic"))
    assert not result.is_valid
    assert "Invalid severity: catastrophic" in result.errors

def test_errors_and_warnings_accumulate():
    """Every problem is listed, not only the first one."""
    result = check(make_obs(source="", condition="slushy", latitude=91.0))
    assert len(result.errors) == 2
    assert len(result.warnings) == 1

def test_validate_and_filter_preserves_order():
    """Kept records stay in input order; warnings do not reject."""
    batch = [
        make_obs(route="I-89"),
        make_obs(route="VT-100", condition="slushy"),
        make_obs(route="US-2", latitude=91.0),
        make_obs(route="I-91"),
    ]
    report = validate_and_filter(batch, now=NOW, settings=SETTINGS)

    assert [o.route for o in report.kept] == ["I-89", "US-2", "I-91"]
    assert report.invalid_count == 1
    assert report.rejected[0][0].route == "VT-100"
    assert report.warning_count == 1
    assert report.issues[0] == "Record 1 (VT-100): Invalid condition: slushy"
    assert report.issues[1].startswith("Record 2 (US-2) warnings:")

def test_validate_and_filter_empty():
    report = validate_and_filter([], now=NOW, settings=SETTINGS)
    assert report.total == 0
    assert report.kept == []


# ═══════════════════════════════════════════════════════════════════════════
# WEATHER READINGS
# ═══════════════════════════════════════════════════════════════════════════
def make_reading(**overrides):
    fields = dict(
        temperature=28.0,
        humidity=75.0,
        pressure=1013.0,
        description="Light Snow",
        wind_speed=10.0,
        location="44.48,-73.21",
        timestamp=NOW - timedelta(minutes=5),
        source="NWS",
    )
    fields.update(overrides)
    return WeatherReading(**fields)

def test_good_reading():
    """Confidence is averaged with source reliability."""
    result = validate_weather_reading(make_reading(), now=NOW)
    assert result.is_valid
    assert result.issues == []
    assert result.source_reliability == 90
    assert result.confidence == 95

def test_stale_reading_penalty():
    """One hour old: minus 6 points before averaging."""
    result = validate_weather_reading(make_reading(timestamp=NOW - timedelta(minutes=60)), now=NOW)
    assert result.is_valid
    assert result.confidence == 92
    assert "Consider fetching fresher data" in result.recommendations

def test_missing_temperature_is_invalid():
    result = validate_weather_reading(make_reading(temperature=None), now=NOW)
    assert not result.is_valid
    assert "Temperature data missing" in result.issues

@pytest.mark.parametrize("overrides", [
    {"humidity": 150.0},
    {"pressure": 500.0},
    {"timestamp": None},
    {"timestamp": "not a time"},
    {"location": ""},
])
def test_reading_hard_failures(overrides):
    assert not validate_weather_reading(make_reading(**overrides), now=NOW).is_valid

def test_future_reading_penalized_but_valid():
    result = validate_weather_reading(make_reading(timestamp=NOW + timedelta(minutes=10)), now=NOW)
    assert result.is_valid
    assert result.confidence == 80

def test_low_reliability_recommendation():
    result = validate_weather_reading(make_reading(source="OpenWeatherMap"), now=NOW)
    assert result.confidence == 80
    assert "Cross-reference with a more reliable source" in result.recommendations
