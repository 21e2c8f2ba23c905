"""
Road Risk Engine command line.

    python main.py assess --input observations.json --temperature 24 --wind 12
    python main.py weather --location 44.48,-73.21
    python main.py predict --district 05401 --forecast forecasts.json
    python main.py learn --district 12
"""

import json
import sys
import logging
import argparse
from typing import List

from core.config import get_settings
from core.exceptions import AggregateFailure
from core.models import ForecastDay, Observation, WeatherContext
from core.pipeline import RoadSafetyPipeline
from loaders.districts import get_district_repository
from loaders.forecast import StaticForecastProvider, get_forecast_loader
from loaders.weather import get_weather_resolver
from prediction.closure import ClosurePredictor, probability_category

log = logging.getLogger("roadrisk")


def _load_json(path: str):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _load_observations(path: str) -> List[Observation]:
    data = _load_json(path)
    records = data.get("observations", data) if isinstance(data, dict) else data
    return [Observation.from_dict(r) for r in records]


def cmd_assess(args) -> int:
    observations = _load_observations(args.input)
    context = None
    if args.temperature is not None or args.wind is not None or args.humidity is not None:
        context = WeatherContext(temperature=args.temperature, wind_speed=args.wind, humidity=args.humidity)

    lookup = get_weather_resolver().context_lookup(context) if args.live_weather else None
    result = RoadSafetyPipeline().run(observations, weather_context=context, context_lookup=lookup)

    if not result.has_data:
        log.warning("No usable road data")
    print(json.dumps(result.to_dict(), indent=2))
    if args.report:
        print(result.validation.summary(), file=sys.stderr)
    return 0


def cmd_weather(args) -> int:
    try:
        reading = get_weather_resolver().fetch_best(args.location)
    except AggregateFailure as e:
        log.error(str(e))
        return 1
    print(json.dumps(reading.to_dict(), indent=2, default=str))
    return 0


def cmd_predict(args) -> int:
    if args.forecast:
        forecasts = [ForecastDay.from_dict(f) for f in _load_json(args.forecast)]
        provider = StaticForecastProvider(forecasts)
    else:
        provider = get_forecast_loader()

    road_observations = _load_observations(args.roads) if args.roads else ()
    predictor = ClosurePredictor(provider, get_district_repository())
    week = predictor.predict_week(args.district, days=args.days, road_observations=road_observations)

    output = week.to_dict()
    for entry in output["predictions"]:
        entry["category"] = probability_category(entry["full_closing_probability"])
    print(json.dumps(output, indent=2))
    return 0 if week.predictions else 1


def cmd_learn(args) -> int:
    repository = get_district_repository()
    district = repository.resolve(args.district)
    thresholds = repository.learn_thresholds(district.id)
    if thresholds is None:
        log.warning(f"Not enough closure history for {district.district_name}")
        return 1
    print(json.dumps(thresholds.to_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Road weather risk scoring and school closure prediction")
    sub = parser.add_subparsers(dest="command", required=True)

    assess = sub.add_parser("assess", help="Validate, reconcile and score road observations")
    assess.add_argument("--input", required=True, help="JSON file of normalized observations")
    assess.add_argument("--temperature", type=float, help="Ambient temperature (°F)")
    assess.add_argument("--wind", type=float, help="Wind speed (mph)")
    assess.add_argument("--humidity", type=float, help="Relative humidity (%%)")
    assess.add_argument("--live-weather", action="store_true", help="Look up weather per observation")
    assess.add_argument("--report", action="store_true", help="Print the validation report to stderr")
    assess.set_defaults(func=cmd_assess)

    weather = sub.add_parser("weather", help="Best current weather reading for a location")
    weather.add_argument("--location", required=True, help="'lat,lon' or place name")
    weather.set_defaults(func=cmd_weather)

    predict = sub.add_parser("predict", help="Closure likelihood for the coming days")
    predict.add_argument("--district", required=True, help="District id, ZIP code or name")
    predict.add_argument("--forecast", help="JSON list of daily forecasts (default: live NWS)")
    predict.add_argument("--roads", help="JSON file of road observations")
    predict.add_argument("--days", type=int, default=8, help="Number of days, starting tomorrow")
    predict.set_defaults(func=cmd_predict)

    learn = sub.add_parser("learn", help="Learn district thresholds from closure history")
    learn.add_argument("--district", required=True, help="District id, ZIP code or name")
    learn.set_defaults(func=cmd_learn)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level, logging.INFO),
        format='%(asctime)s │ %(name)-20s │ %(levelname)-8s │ %(message)s',
        datefmt='%H:%M:%S',
        handlers=[logging.StreamHandler(sys.stderr)]
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
