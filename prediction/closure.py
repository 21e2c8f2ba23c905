"""
Closure Likelihood Predictor

Estimates full-closing, delay and early-dismissal probabilities for a school
district on a given day. Unlike the road risk scorer this is strictly
additive: every driver adds points to a running closing score and a running
delay score, and both are clamped to 0-100 at the end.

Each target date is scored against its own forecast fetch.
"""

import re
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from core.config import Settings, get_settings
from core.exceptions import ForecastUnavailable
from core.models import (
    ClosurePrediction,
    District,
    DistrictThresholds,
    ForecastDay,
    MultiDayPrediction,
    Observation,
    RoadCondition,
    SchoolClosing,
)
from core.sources import find_source
from core.utils import clamp, ensure_aware, round_half_up
from core.validation import validate_and_filter
from loaders.districts import DistrictRepository, fallback_district
from loaders.forecast import ForecastProvider
from prediction.regions import RegionContext, regional_adjustments

log = logging.getLogger(__name__)

DEFAULT_FORECAST_DAYS = 8
DECISION_HOUR = 6
RECENT_HISTORY_DAYS = 7
ROAD_DANGER_CONDITIONS = (RoadCondition.ICE, RoadCondition.SNOW_COVERED, RoadCondition.CLOSED)

_ICE_WORD = re.compile(r"\bice\b", re.IGNORECASE)

DistrictRef = Union[District, int, str]


# ═══════════════════════════════════════════════════════════════════════════
# ESTIMATES
# ═══════════════════════════════════════════════════════════════════════════
def estimate_snowfall(precipitation: float, temperature: float) -> float:
    """Snow depth (in) from liquid precipitation (in) at a temperature (°F)."""
    if precipitation <= 0:
        return 0.0
    if temperature <= 32:
        return precipitation * 10
    if temperature <= 40:
        return precipitation * 5
    return 0.0


def estimate_ice(condition: str, road_observations: Sequence[Observation] = ()) -> float:
    """Ice accretion (in) implied by forecast wording or icy road reports."""
    text = (condition or "").lower()
    if "freezing rain" in text or "freezing drizzle" in text:
        if "heavy" in text or "significant" in text:
            return 0.08
        if "moderate" in text:
            return 0.05
        return 0.02
    if _ICE_WORD.search(text):
        return 0.03
    if any(o.condition_enum == RoadCondition.ICE for o in road_observations):
        return 0.04
    return 0.0


def probability_category(probability: float) -> str:
    """Plain-language label for a closure probability."""
    if probability >= 87:
        return "No School or Possible Early Dismissal"
    if probability >= 75:
        return "Possibility of No School"
    if probability >= 55:
        return "Delay Likely"
    if probability > 0:
        return "Little to no chance, but possible"
    return "No chance due to low precipitation chance"


@dataclass
class _Tally:
    closing: float = 0.0
    delay: float = 0.0
    factors: List[str] = field(default_factory=list)

    def add(self, closing: float, delay: float, factor: str):
        self.closing += closing
        self.delay += delay
        self.factors.append(factor)


# ═══════════════════════════════════════════════════════════════════════════
# PREDICTOR
# ═══════════════════════════════════════════════════════════════════════════
class ClosurePredictor:
    """
    Score school closure likelihood from per-day forecasts.

    Usage:
        predictor = ClosurePredictor(get_forecast_loader(), get_district_repository())
        week = predictor.predict_week("05401")
        for p in week.predictions:
            print(p.predicted_for_date, p.full_closing_probability)
    """

    def __init__(
        self,
        forecast_provider: ForecastProvider,
        repository: Optional[DistrictRepository] = None,
        settings: Optional[Settings] = None,
    ):
        self.forecast_provider = forecast_provider
        self.repository = repository
        self.settings = settings or get_settings()
        self.tz = ZoneInfo(self.settings.timezone)

    # ───────────────────────────────────────────────────────────────────────
    # Public API
    # ───────────────────────────────────────────────────────────────────────
    def resolve_district(self, district: DistrictRef) -> District:
        if isinstance(district, District):
            return district
        if self.repository is not None:
            return self.repository.resolve(district)
        return fallback_district(str(district))

    def predict(
        self,
        district: DistrictRef,
        target_date: date,
        now: Optional[datetime] = None,
        road_observations: Sequence[Observation] = (),
    ) -> ClosurePrediction:
        """
        Predict closures for one district and day.

        Raises:
            SourceFailure: the forecast for `target_date` could not be fetched
        """
        now = ensure_aware(now)
        resolved = self.resolve_district(district)
        forecast = self._fetch_forecast(resolved, target_date)
        return self._score(resolved, target_date, forecast, now, road_observations)

    def predict_week(
        self,
        district: DistrictRef,
        days: int = DEFAULT_FORECAST_DAYS,
        now: Optional[datetime] = None,
        road_observations: Sequence[Observation] = (),
    ) -> MultiDayPrediction:
        """
        Predict each of the next `days` days, starting tomorrow.

        Every day gets its own forecast fetch. A day whose forecast cannot be
        fetched is logged and left out.
        """
        now = ensure_aware(now)
        resolved = self.resolve_district(district)
        start = now.astimezone(self.tz).date() + timedelta(days=1)

        result = MultiDayPrediction(district_id=resolved.id, district_name=resolved.district_name)
        for offset in range(days):
            target = start + timedelta(days=offset)
            try:
                forecast = self._fetch_forecast(resolved, target)
            except Exception as e:
                log.error(f"Skipping {target} for {resolved.district_name}: {e}")
                continue
            result.predictions.append(self._score(resolved, target, forecast, now, road_observations))

        log.info(f"Predicted {len(result.predictions)}/{days} days for {resolved.district_name}")
        return result

    # ───────────────────────────────────────────────────────────────────────
    # Inputs
    # ───────────────────────────────────────────────────────────────────────
    def _fetch_forecast(self, district: District, target_date: date) -> ForecastDay:
        forecast = self.forecast_provider.fetch_forecast(district.location_query, target_date)
        if forecast.forecast_date != target_date:
            raise ForecastUnavailable(
                self.forecast_provider.name,
                f"asked for {target_date.isoformat()}, got {forecast.forecast_date.isoformat()}",
            )
        return forecast

    def _thresholds(self, district: District) -> DistrictThresholds:
        if self.repository is None:
            return DistrictThresholds(district_id=district.id)
        return self.repository.get_thresholds(district.id)

    def _history(self, district: District) -> List[SchoolClosing]:
        if self.repository is None:
            return []
        return self.repository.get_closings(district.id)

    # ───────────────────────────────────────────────────────────────────────
    # Scoring
    # ───────────────────────────────────────────────────────────────────────
    def _score(
        self,
        district: District,
        target_date: date,
        forecast: ForecastDay,
        now: datetime,
        road_observations: Sequence[Observation],
    ) -> ClosurePrediction:
        thresholds = self._thresholds(district)
        history = self._history(district)
        roads = validate_and_filter(road_observations, now=now, settings=self.settings).kept if road_observations else []

        temperature = forecast.temperature
        wind = forecast.wind_speed
        snowfall = forecast.snowfall if forecast.snowfall is not None else estimate_snowfall(forecast.precipitation, temperature)
        ice = forecast.ice if forecast.ice is not None else estimate_ice(forecast.condition, roads)
        used = replace(forecast, snowfall=snowfall, ice=ice)
        condition = (forecast.condition or "").lower()

        hour = forecast.precipitation_start_hour
        target_instant = datetime.combine(target_date, time(hour if hour is not None else DECISION_HOUR), tzinfo=self.tz)
        hours_until = (target_instant - now).total_seconds() / 3600
        decision_window = hour is not None and 4 <= hour <= 6
        commute_window = hour is not None and 4 <= hour <= 7

        tally = _Tally()

        # Regional adjustments
        region = RegionContext(
            snowfall=snowfall, temperature=temperature, wind_speed=wind, ice=ice,
            condition=condition, target_hour=hour, hours_until=hours_until,
        )
        closing, delay, regional = regional_adjustments(district.county, region)
        tally.closing += closing
        tally.delay += delay
        tally.factors.extend(regional)

        self._snowfall(tally, snowfall, thresholds)
        self._temperature(tally, temperature, thresholds)
        self._wind(tally, wind, snowfall, temperature, thresholds)
        self._ice(tally, ice, snowfall, condition, thresholds)
        self._timing(tally, hour, hours_until, snowfall, condition)

        # Recent history
        today = now.astimezone(self.tz).date()
        recent = sum(1 for c in history if abs((today - c.closing_date).days) <= RECENT_HISTORY_DAYS)
        if recent:
            tally.add(recent * 5, 0, f"{recent} recent closing(s) in past week")

        # Precipitation type
        if "snow" in condition or "blizzard" in condition:
            tally.add(15, 10, "Snow/blizzard conditions")
        elif _ICE_WORD.search(condition) or "freezing" in condition:
            tally.add(25, 15, "Ice/freezing conditions")

        self._roads(tally, roads, decision_window, snowfall, condition, temperature)

        full = clamp(tally.closing, 0, 100)
        delay_p = clamp(tally.delay, 0, 100)
        early = min(full * 0.6, 70)

        confidence = 70
        if snowfall > 0:
            confidence += 10
        if ice > 0:
            confidence += 10
        if roads:
            confidence += 5
        if len(history) >= 5:
            confidence += 5
        if thresholds.total_predictions > 10:
            confidence += 5
        confidence = min(confidence, 100)

        primary, reasons = self._reasons(
            full, delay_p, snowfall, ice, temperature, wind, condition,
            hours_until, commute_window, decision_window, roads, thresholds,
        )

        log.debug(
            f"{district.district_name} {target_date}: {snowfall:.1f}\" snow, {temperature:.0f}°F, "
            f"{wind:.0f}mph -> closing {full:.0f}, delay {delay_p:.0f}"
        )

        return ClosurePrediction(
            district_id=district.id,
            district_name=district.district_name,
            prediction_date=now,
            predicted_for_date=target_date,
            full_closing_probability=round_half_up(full),
            delay_probability=round_half_up(delay_p),
            early_dismissal_probability=round_half_up(early),
            confidence=confidence,
            forecast=used,
            factors=tally.factors,
            primary_reason=primary,
            closure_reasons=reasons,
            thresholds=thresholds,
        )

    @staticmethod
    def _snowfall(tally: _Tally, snowfall: float, thresholds: DistrictThresholds):
        closing_at = thresholds.full_closing_snowfall
        delay_at = thresholds.delay_snowfall

        if snowfall >= closing_at:
            tally.add(40 + (snowfall - closing_at) * 5, 0, f"{snowfall:.1f}\" snow (threshold: {closing_at}\")")
        elif snowfall >= closing_at * 0.8:
            tally.add(20, 0, "Approaching snowfall threshold")
        elif snowfall > 0:
            # Partial credit so "just under threshold" never reads as zero risk
            tally.add(min(snowfall * 5, 20), min(snowfall * 3, 15), f"{snowfall:.1f}\" snow (light accumulation)")

        if snowfall >= delay_at:
            tally.add(0, 30, f"{snowfall:.1f}\" snow meets delay threshold ({delay_at}\")")
        elif snowfall > 0:
            tally.delay += min(snowfall * 5, 20)

    @staticmethod
    def _temperature(tally: _Tally, temperature: float, thresholds: DistrictThresholds):
        cold_at = thresholds.temperature_threshold
        if temperature < cold_at:
            cold = (cold_at - temperature) / 10
            tally.add(min(cold * 10, 20), min(cold * 5, 10), f"Very cold: {temperature:.0f}°F")
        elif temperature <= 32:
            freezing = (32 - temperature) / 32
            tally.add(min(freezing * 8, 8), min(freezing * 4, 4), f"Below freezing: {temperature:.0f}°F")

    @staticmethod
    def _wind(tally: _Tally, wind: float, snowfall: float, temperature: float, thresholds: DistrictThresholds):
        wind_at = thresholds.wind_threshold
        if wind_at and wind >= wind_at:
            excess = (wind - wind_at) / 10
            tally.add(min(excess * 5, 15), min(excess * 3, 10), f"High winds: {wind:.0f} mph")
            if snowfall > 0:
                tally.add(10, 8, "Wind + snow = drifting on rural roads")
            if snowfall >= 4 and 28 <= temperature <= 32:
                tally.add(15, 10, "Heavy wet snow + wind")

        wind_chill = temperature - wind * 0.7
        if wind_chill <= -10:
            tally.add(20, 15, f"Very cold wind chill ({wind_chill:.0f}°F) - bus stop frostbite risk")
        elif wind_chill <= 0:
            tally.add(10, 8, f"Cold wind chill ({wind_chill:.0f}°F) - bus stop safety")

    @staticmethod
    def _ice(tally: _Tally, ice: float, snowfall: float, condition: str, thresholds: DistrictThresholds):
        if thresholds.ice_threshold and ice >= thresholds.ice_threshold:
            tally.add(50, 30, f"{ice:.2f}\" ice accumulation")
        elif ice > 0:
            tally.add(35, 25, f"{ice:.2f}\" ice - even trace amounts close schools")

        if "freezing rain" in condition or "freezing drizzle" in condition:
            tally.add(45, 30, "Freezing rain in forecast")
        elif _ICE_WORD.search(condition):
            tally.add(30, 20, "Ice in forecast")

        if ice > 0 and snowfall > 0:
            tally.add(15, 10, "Ice + snow mix (ice layers under snow)")

    @staticmethod
    def _timing(tally: _Tally, hour: Optional[int], hours_until: float, snowfall: float, condition: str):
        if hour is not None and 0 <= hours_until <= 12:
            if 4 <= hour <= 7:
                tally.add(25, 20, "Snow during morning commute window (4-7 AM)")
            elif 0 <= hour < 4:
                tally.add(15, 12, "Overnight snow - may be cleared before buses")
            elif hours_until <= 6:
                tally.add(10, 8, "Early morning decision window")

        if 12 <= hours_until <= 18 and snowfall >= 6:
            tally.add(15, 0, "6\"+ by morning - night-before closure pattern")

        if hour is not None and 4 <= hour <= 6 and "snow" in condition:
            tally.add(20, 15, "Active snow during decision window (4-6 AM)")

        if snowfall > 0 and 0 <= hours_until <= 6:
            rate = snowfall / max(hours_until, 1)
            if rate >= 2:
                tally.add(25, 20, f"High snow rate ({rate:.1f}\"/hr) before buses")

    @staticmethod
    def _roads(
        tally: _Tally,
        roads: Sequence[Observation],
        decision_window: bool,
        snowfall: float,
        condition: str,
        temperature: float,
    ):
        def is_xweather(o: Observation) -> bool:
            return find_source(o.source).name == "Xweather"

        def is_adverse(o: Observation) -> bool:
            return is_xweather(o) and "adverse" in (o.warning or "").lower()

        xweather = [o for o in roads if is_xweather(o)]
        dangerous = [o for o in roads if o.condition_enum in ROAD_DANGER_CONDITIONS or is_adverse(o)]
        storm_starting = decision_window and "snow" in condition and snowfall > 0

        if storm_starting and not dangerous:
            tally.add(20, 15, "Storm just starting in decision window - plows behind")

        if dangerous:
            adverse = sum(1 for o in xweather if is_adverse(o))
            if adverse:
                tally.add(20, 15, f"Xweather reports {adverse} adverse road condition(s)")
            others = [o for o in dangerous if not is_xweather(o)]
            if others:
                kinds = sorted({o.condition_enum.value for o in others if o.condition_enum})
                tally.add(min(len(others) * 5, 15), min(len(others) * 3, 10),
                          f"Road conditions: {', '.join(kinds)} reported")
            if decision_window:
                tally.add(15, 12, "Dangerous roads during decision window (4-6 AM)")
        elif xweather and all(o.condition_enum == RoadCondition.CLEAR for o in xweather) and not storm_starting:
            tally.add(-5, 0, "Xweather reports clear roads")

        if decision_window and temperature <= 32:
            tally.add(8, 6, "Bridges and shaded sections freezing in decision window")

        if roads and decision_window:
            clear_ratio = sum(1 for o in roads if o.condition_enum == RoadCondition.CLEAR) / len(roads)
            if clear_ratio >= 0.7:
                tally.add(-10, -8, "Plow reports: roads passable")
            elif clear_ratio < 0.3:
                tally.add(15, 12, "Plow reports: roads not yet passable")

    @staticmethod
    def _reasons(
        full: float,
        delay: float,
        snowfall: float,
        ice: float,
        temperature: float,
        wind: float,
        condition: str,
        hours_until: float,
        commute_window: bool,
        decision_window: bool,
        roads: Sequence[Observation],
        thresholds: DistrictThresholds,
    ):
        reasons: List[str] = []

        if full >= 70:
            if commute_window and snowfall > 0:
                reasons.append("Snow during morning commute window (4-7 AM) - buses start at 6 AM")
            elif decision_window and "snow" in condition:
                reasons.append("Active snow during decision window (4-6 AM)")

            if ice > 0 and ice >= thresholds.ice_threshold:
                reasons.append(f"Ice accumulation ({ice:.2f}\") - ice triggers closures even in small amounts")
            elif "freezing rain" in condition:
                reasons.append("Freezing rain warning - high closure likelihood")
            elif ice > 0:
                reasons.append(f"Ice conditions ({ice:.2f}\") - even trace amounts are dangerous")

            if snowfall >= thresholds.full_closing_snowfall:
                reasons.append(f"Heavy snowfall ({snowfall:.1f}\") - exceeds district threshold")
            elif snowfall >= 6 and hours_until <= 18:
                reasons.append("6\"+ predicted by morning - often announced the night before")

            wind_chill = temperature - wind * 0.7
            if wind_chill <= -10:
                reasons.append(f"Very cold wind chill ({wind_chill:.0f}°F) - bus safety and frostbite risk")
            elif temperature < thresholds.temperature_threshold:
                reasons.append(f"Extreme cold ({temperature:.0f}°F)")

            dangerous = [o for o in roads if o.condition_enum in ROAD_DANGER_CONDITIONS]
            if dangerous:
                reasons.append(f"Dangerous road conditions ({len(dangerous)} reported) - roads not passable for buses")

            if wind >= 20 and snowfall > 0:
                reasons.append("Wind + snow = drifting on rural roads")

            return (reasons[0] if reasons else "Multiple factors combined"), reasons

        if delay >= 50:
            if thresholds.delay_snowfall <= snowfall < thresholds.full_closing_snowfall:
                reasons.append(f"Moderate snowfall ({snowfall:.1f}\") - may delay rather than close")
            if commute_window:
                reasons.append("Snow timing during morning commute window")
            if thresholds.temperature_threshold < temperature <= 32:
                reasons.append(f"Freezing temperatures ({temperature:.0f}°F)")
            if 0 < ice < thresholds.ice_threshold:
                reasons.append("Trace ice conditions - may delay rather than close")
            primary = f"Delay likely due to: {reasons[0]}" if reasons else "Moderate weather conditions"
            return primary, reasons

        return "No significant closure factors", reasons
