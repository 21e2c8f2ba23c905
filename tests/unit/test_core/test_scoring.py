import pytest
from datetime import datetime, timedelta, timezone
from core.config import Settings
from core.models import Observation, RiskLevel, RiskSeverity, WeatherContext
from core.scoring import FACTOR_WEIGHTS, TEMPERATURE_TIERS, RoadRiskScorer, classify, get_scorer, score_observation

# Noon in Vermont
NOW = datetime(2026, 1, 15, 17, 0, tzinfo=timezone.utc)
# 03:00 in Vermont
NIGHT = datetime(2026, 1, 15, 8, 0, tzinfo=timezone.utc)

@pytest.fixture
def scorer():
    return RoadRiskScorer(Settings())

def make_obs(minutes_old=10, now=NOW, **overrides):
    fields = dict(
        route="Main Street",
        condition="clear",
        source="NWS",
        timestamp=(now - timedelta(minutes=minutes_old)).isoformat(),
    )
    fields.update(overrides)
    return Observation(**fields)

def test_ice_extreme_cold_is_hazardous(scorer):
    """Ice at 15°F with a major incident scores at the bottom of the scale."""
    obs = make_obs(route="I-89", condition="ice", source="VTrans RWIS", temperature=15.0, severity="MAJOR")
    result = scorer.score(obs, now=NOW)
    assert result.score <= 10
    assert result.level == RiskLevel.HAZARDOUS
    assert result.severity == RiskSeverity.EXTREME
    assert result.factor("combination_effects").score == 0
    assert result.confidence == 95

def test_clear_warm_is_excellent(scorer):
    obs = make_obs(source="OpenWeatherMap", temperature=55.0, minutes_old=5)
    result = scorer.score(obs, now=NOW)
    assert result.score >= 90
    assert result.score == 94
    assert result.level == RiskLevel.EXCELLENT
    assert result.explanation.startswith("Safety score: 94/100. ")

@pytest.mark.parametrize("score,level", [
    (100, RiskLevel.EXCELLENT),
    (80, RiskLevel.EXCELLENT),
    (79, RiskLevel.GOOD),
    (60, RiskLevel.GOOD),
    (59, RiskLevel.CAUTION),
    (40, RiskLevel.CAUTION),
    (39, RiskLevel.POOR),
    (20, RiskLevel.POOR),
    (19, RiskLevel.HAZARDOUS),
    (0, RiskLevel.HAZARDOUS),
])
def test_tier_boundaries(score, level):
    assert classify(score)[0] == level

def test_tier_severities():
    assert classify(85)[1] == RiskSeverity.LOW
    assert classify(65)[1] == RiskSeverity.LOW
    assert classify(45)[1] == RiskSeverity.MODERATE
    assert classify(25)[1] == RiskSeverity.HIGH
    assert classify(5)[1] == RiskSeverity.EXTREME

def test_scoring_is_idempotent(scorer):
    """Same inputs and same `now` give identical assessments."""
    obs = make_obs(condition="snow-covered", severity="MODERATE")
    context = WeatherContext(temperature=26.0, wind_speed=12.0, humidity=70.0)
    assert scorer.score(obs, context, NOW) == scorer.score(obs, context, NOW)

@pytest.mark.parametrize("condition", ["clear", "wet", "ice", "snow-covered"])
def test_temperature_score_monotonic(scorer, condition):
    """Colder never scores safer, all else equal."""
    previous = None
    for temp in range(60, -11, -1):
        obs = make_obs(condition=condition, temperature=float(temp))
        value = scorer.score(obs, now=NOW).factor("temperature").score
        if previous is not None:
            assert value <= previous, f"{condition} at {temp}°F"
        previous = value

def test_factors_in_blend_order(scorer):
    result = scorer.score(make_obs(), now=NOW)
    assert [f.name for f in result.factors] == [name for name, _ in FACTOR_WEIGHTS]
    assert sum(weight for _, weight in FACTOR_WEIGHTS) == pytest.approx(1.0)

def test_observation_temperature_wins_over_context(scorer):
    obs = make_obs(condition="ice", temperature=50.0)
    result = scorer.score(obs, WeatherContext(temperature=15.0), NOW)
    assert result.factor("temperature").score == 95
    assert result.factor("combination_effects").score == 100

def test_context_temperature_used_when_missing(scorer):
    obs = make_obs(condition="ice")
    result = scorer.score(obs, WeatherContext(temperature=15.0), NOW)
    assert result.factor("temperature").score == 5
    assert result.score == 0

def test_missing_temperature_neutral(scorer):
    result = scorer.score(make_obs(), now=NOW)
    assert result.factor("temperature").score == 70
    assert result.factor("temperature").description == "Temperature unavailable"

def test_high_humidity_frost_penalty(scorer):
    obs = make_obs(temperature=30.0)
    dry = scorer.score(obs, WeatherContext(humidity=50.0), NOW)
    humid = scorer.score(obs, WeatherContext(humidity=90.0), NOW)
    assert dry.factor("temperature").score == 50
    assert humid.factor("temperature").score == 35

def test_ice_with_strong_wind_capped(scorer):
    obs = make_obs(condition="ice", temperature=30.0)
    result = scorer.score(obs, WeatherContext(wind_speed=35.0), NOW)
    assert result.factor("combination_effects").score == 30
    assert result.score <= 30

def test_snow_with_strong_wind_capped(scorer):
    obs = make_obs(condition="snow-covered", temperature=25.0)
    result = scorer.score(obs, WeatherContext(wind_speed=40.0), NOW)
    assert result.score <= 40

def test_closed_for_ice(scorer):
    obs = make_obs(condition="closed", warning="Closed due to ice on bridge deck")
    result = scorer.score(obs, now=NOW)
    assert result.score <= 5
    assert result.level == RiskLevel.HAZARDOUS

def test_wet_night_refreeze(scorer):
    obs = make_obs(condition="wet", temperature=33.0, now=NIGHT)
    result = scorer.score(obs, now=NIGHT)
    assert result.factor("time_of_day").score == 60
    assert result.score == 50
    assert result.level == RiskLevel.CAUTION

def test_daytime_has_no_time_penalty(scorer):
    obs = make_obs(condition="wet", temperature=33.0)
    assert scorer.score(obs, now=NOW).factor("time_of_day").score == 100

def test_stale_dangerous_report(scorer):
    """Ice older than two hours halves freshness and takes a flat penalty."""
    fresh = scorer.score(make_obs(route="I-89", condition="ice", source="VTrans RWIS"), now=NOW)
    stale = scorer.score(make_obs(route="I-89", condition="ice", source="VTrans RWIS", minutes_old=240), now=NOW)
    assert stale.factor("data_freshness").score == 25
    assert stale.score < fresh.score
    assert stale.confidence == 75

@pytest.mark.parametrize("minutes,expected", [
    (20, 100),
    (45, 90),
    (100, 75),
    (300, 50),
    (600, 20),
])
def test_freshness_buckets(scorer, minutes, expected):
    result = scorer.score(make_obs(minutes_old=minutes), now=NOW)
    assert result.factor("data_freshness").score == expected

def test_future_timestamp_counts_as_fresh(scorer):
    result = scorer.score(make_obs(minutes_old=-5), now=NOW)
    assert result.factor("data_freshness").score == 100

def test_unparseable_timestamp(scorer):
    result = scorer.score(make_obs(timestamp="sometime"), now=NOW)
    assert result.factor("data_freshness").score == 50
    assert result.confidence == 80

def test_confidence_floor_factors(scorer):
    obs = make_obs(condition="unknown", source="Some Blog", minutes_old=300)
    assert scorer.score(obs, now=NOW).confidence == 60

@pytest.mark.parametrize("route,expected", [
    ("I-89", 85),
    ("Interstate 91", 85),
    ("US Route 7", 88),
    ("US-2", 88),
    ("VT Route 100", 92),
    ("VT-100", 92),
    ("Church Street", 95),
])
def test_road_type(scorer, route, expected):
    result = scorer.score(make_obs(route=route), now=NOW)
    assert result.factor("road_type").score == expected

@pytest.mark.parametrize("severity,expected", [
    ("MAJOR", 20),
    ("MODERATE", 50),
    ("MINOR", 80),
])
def test_reported_severity(scorer, severity, expected):
    result = scorer.score(make_obs(severity=severity), now=NOW)
    assert result.factor("reported_severity").score == expected

def test_absent_severity_depends_on_condition(scorer):
    assert scorer.score(make_obs(condition="ice"), now=NOW).factor("reported_severity").score == 40
    assert scorer.score(make_obs(condition="wet"), now=NOW).factor("reported_severity").score == 85

def test_source_reliability_factor(scorer):
    result = scorer.score(make_obs(source="TomTom"), now=NOW)
    assert result.factor("source_reliability").score == 75

def test_scores_stay_in_range(scorer):
    for condition in ["clear", "wet", "snow-covered", "ice", "closed", "unknown"]:
        for temp in [-40.0, 0.0, 32.0, 80.0]:
            result = scorer.score(make_obs(condition=condition, temperature=temp, minutes_old=600), now=NOW)
            assert 0 <= result.score <= 100
            assert 50 <= result.confidence <= 100

def test_explain_score(scorer):
    text = scorer.explain_score(make_obs(route="I-89"), now=NOW)
    assert text.startswith("Score: ")
    assert "Route: I-89" in text
    assert "base_condition" in text

def test_get_scorer_singleton():
    assert get_scorer() is get_scorer()

def test_tier_without_overrides(scorer):
    """The cool tier scores every condition alike."""
    cool = TEMPERATURE_TIERS[-1]
    assert cool.overrides is None
    for condition in ("clear", "wet", "ice"):
        result = scorer.score(make_obs(condition=condition, temperature=38.0), now=NOW)
        assert result.factor("temperature").score == cool.score

def test_score_observation_uses_shared_scorer():
    obs = make_obs(condition="ice", temperature=15.0)
    assert score_observation(obs, now=NOW) == get_scorer().score(obs, now=NOW)
    assert score_observation(obs, now=NOW).score == 0
