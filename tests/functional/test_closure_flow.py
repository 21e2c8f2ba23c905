import json
import pytest
from datetime import date, datetime, timedelta, timezone
from core.config import Settings
from core.models import ClosureType, District, ForecastDay, SchoolClosing
from loaders.districts import DistrictRepository
from loaders.forecast import StaticForecastProvider
from prediction.closure import ClosurePredictor

NOW = datetime(2026, 1, 15, 17, 0, tzinfo=timezone.utc)

@pytest.fixture
def repository(tmp_path):
    repo = DistrictRepository(db_path=str(tmp_path / "flow_districts.db"))
    repo.add_district(District(
        id=41, district_name="Stowe School District", county="Lamoille County",
        zip_codes=["05672"], city="Stowe",
    ))
    return repo

def test_storm_week_by_zip(repository):
    """A week with one storm day peaks on that day only."""
    start = date(2026, 1, 16)
    forecasts = [
        ForecastDay(forecast_date=start + timedelta(days=i), temperature=30.0, snowfall=0.0, condition="Cloudy")
        for i in range(8)
    ]
    forecasts[2] = ForecastDay(
        forecast_date=start + timedelta(days=2), temperature=22.0, wind_speed=25.0,
        snowfall=10.0, condition="Heavy Snow", source="NWS",
    )
    predictor = ClosurePredictor(StaticForecastProvider(forecasts), repository, settings=Settings())

    week = predictor.predict_week("05672", now=NOW)

    assert week.district_id == 41
    assert len(week.predictions) == 8
    storm = week.predictions[2]
    calm = [p for i, p in enumerate(week.predictions) if i != 2]
    assert storm.full_closing_probability >= 75
    assert all(p.full_closing_probability < storm.full_closing_probability for p in calm)
    assert "Lamoille: wind drift on rural roads" in storm.factors

    payload = json.loads(json.dumps(week.to_dict()))
    assert payload["predictions"][2]["predicted_for_date"] == "2026-01-18"

def test_learning_changes_predictions(repository):
    """Thresholds learned from history shift the next prediction."""
    for day in range(1, 6):
        repository.add_closing(SchoolClosing(41, date(2025, 3, day), ClosureType.FULL_CLOSING, 3.0))
    learned = repository.learn_thresholds(41, now=NOW)
    assert learned.full_closing_snowfall == 3.0

    target = date(2026, 1, 17)
    provider = StaticForecastProvider([ForecastDay(forecast_date=target, temperature=33.0, snowfall=3.0)])
    prediction = ClosurePredictor(provider, repository, settings=Settings()).predict("Stowe", target, now=NOW)
    assert prediction.thresholds.full_closing_snowfall == 3.0
    assert "3.0\" snow (threshold: 3.0\")" in prediction.factors
