import pytest
from prediction.regions import REGION_PROFILES, RegionContext, find_profiles, regional_adjustments

def context(**overrides):
    fields = dict(
        snowfall=0.0, temperature=25.0, wind_speed=5.0, ice=0.0,
        condition="", target_hour=None, hours_until=30.0,
    )
    fields.update(overrides)
    return RegionContext(**fields)

def test_all_counties_have_profiles():
    assert len(REGION_PROFILES) == 14
    assert "grand isle" in REGION_PROFILES

def test_find_profiles_by_county_text():
    assert [p.county for p in find_profiles("Chittenden County")] == ["Chittenden"]
    assert find_profiles("Suffolk County") == []
    assert find_profiles(None) == []

def test_unknown_county_has_no_adjustment():
    assert regional_adjustments("Suffolk County", context(snowfall=10.0)) == (0.0, 0.0, [])

def test_urban_plowing_advantage_always_applies():
    closing, delay, factors = regional_adjustments("Chittenden", context())
    assert closing == -3
    assert delay == 0
    assert factors == ["Chittenden: urban plowing advantage"]

def test_exclusive_snow_group():
    """Only the first matching snow rule in a group counts."""
    closing, _, factors = regional_adjustments("Chittenden County", context(snowfall=7.0, temperature=20.0))
    assert closing == 22
    assert factors == ["Chittenden: heavy snow (6\"+)", "Chittenden: urban plowing advantage"]

def test_overnight_rule():
    closing, delay, factors = regional_adjustments("Chittenden", context(snowfall=5.0, hours_until=8.0))
    assert closing == 17
    assert delay == 15
    assert "Chittenden: 4-6\" overnight with active snow" in factors

def test_essex_any_ice():
    closing, delay, factors = regional_adjustments("Essex County", context(ice=0.02))
    assert closing == 30
    assert delay == 20

def test_hour_rules_need_a_known_hour():
    no_hour = regional_adjustments("Essex", context(target_hour=None))
    early = regional_adjustments("Essex", context(target_hour=3))
    assert no_hour[0] == 0
    assert early[0] == 10

def test_wind_chill():
    assert context(temperature=0.0, wind_speed=30.0).wind_chill == pytest.approx(-21.0)
    closing, _, factors = regional_adjustments("Caledonia", context(temperature=0.0, wind_speed=30.0))
    assert closing == 25
    assert factors == ["Caledonia: extreme wind chill"]

def test_condition_mentions():
    ctx = context(condition="rain and snow, minor river flooding")
    assert ctx.mentions("flood")
    assert regional_adjustments("Orange County", ctx)[0] == 15
