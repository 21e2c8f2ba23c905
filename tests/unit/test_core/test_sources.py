import pytest
from core.models import Observation
from core.sources import (
    SOURCE_PROFILES,
    SOURCE_TABLE,
    UNKNOWN_SOURCE,
    WEATHER_PROVIDER_ORDER,
    SourceKind,
    find_source,
    is_official_source,
    prioritize,
    source_reliability,
)

def test_priority_table_values():
    """Verify the reliability ranking of the named providers."""
    assert source_reliability("VTrans RWIS") == 100
    assert source_reliability("VTrans Lane Closures") == 95
    assert source_reliability("VTrans Incidents") == 95
    assert source_reliability("NWS") == 90
    assert source_reliability("Xweather") == 80
    assert source_reliability("TomTom") == 75
    assert source_reliability("New England 511") == 70
    assert source_reliability("Weatherbit") == 70
    assert source_reliability("Weatherstack") == 65
    assert source_reliability("Visual Crossing") == 65
    assert source_reliability("OpenWeatherMap") == 60

def test_table_is_read_only():
    with pytest.raises(TypeError):
        SOURCE_TABLE["NWS"] = UNKNOWN_SOURCE

def test_profiles_sorted_by_reliability():
    values = [p.reliability for p in SOURCE_PROFILES]
    assert values == sorted(values, reverse=True)

def test_unknown_source_default():
    assert source_reliability("Some Blog") == 50
    assert source_reliability(None) == 50
    assert find_source("") is UNKNOWN_SOURCE

def test_keyword_matching():
    """Provider names with extra words still resolve."""
    assert find_source("National Weather Service").name == "NWS"
    assert find_source("VTrans RWIS Station 14").name == "VTrans RWIS"
    assert find_source("Aeris Road Weather").name == "Xweather"
    assert find_source("openweathermap").name == "OpenWeatherMap"

def test_official_sources():
    assert is_official_source("NWS")
    assert is_official_source("VTrans RWIS")
    assert not is_official_source("TomTom")
    assert find_source("TomTom").kind == SourceKind.TRAFFIC

def test_weather_provider_order_uses_known_sources():
    assert WEATHER_PROVIDER_ORDER[0] == "NWS"
    for name in WEATHER_PROVIDER_ORDER:
        assert name in SOURCE_TABLE

def test_prioritize_is_stable():
    """Higher reliability first; ties keep input order."""
    observations = [
        Observation("A", "clear", "OpenWeatherMap", None),
        Observation("B", "clear", "Weatherbit", None),
        Observation("C", "clear", "VTrans RWIS", None),
        Observation("D", "clear", "New England 511", None),
    ]
    ordered = prioritize(observations)
    assert [o.route for o in ordered] == ["C", "B", "D", "A"]
