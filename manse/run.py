"""
Command-line entry point.

Usage:
    manse chart --birth-date YYYY-MM-DD [--birth-time HH:MM] [--timezone TZ]
        [--latitude LAT --longitude LON] [--calendar lunar [--leap-month]]
        [--gender male|female | --luck-start-age N [--luck-direction backward]]
        [--day-cutoff HH:MM] [--output FILE]
    manse terms --start-year 1900 --end-year 2100 [--timezone TZ] --output FILE
    manse context --chart FILE --date YYYY-MM-DD
"""

import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from manse.astro_calendar import compute_solar_term_table
from manse.bazi import LuckDirection
from manse.boundaries import BirthInput
from manse.chart import compute_chart, fixed_luck_policy, solar_term_table_for, traditional_luck_policy
from manse.config import EngineSettings, parse_cutoff
from manse.errors import ManseError
from manse.generate_context import generate_reading_context, load_chart

logger = logging.getLogger(__name__)


def _write(payload: dict, output) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        print(output)
    else:
        print(text)


def _cutoff_arg(value: str) -> tuple:
    try:
        cutoff = parse_cutoff(value)
        EngineSettings().with_cutoff(*cutoff)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return cutoff


def cmd_chart(args, settings: EngineSettings) -> dict:
    if args.day_cutoff:
        settings = settings.with_cutoff(*args.day_cutoff)
    if args.lmt:
        settings = replace(settings, apply_lmt=True)

    birth = BirthInput.from_strings(
        args.birth_date, args.birth_time,
        calendar=args.calendar,
        is_leap_month=args.leap_month,
        timezone=args.timezone,
        latitude=args.latitude,
        longitude=args.longitude,
        gender=args.gender,
    )

    policy = None
    if args.luck_start_age is not None:
        policy = fixed_luck_policy(args.luck_start_age, LuckDirection(args.luck_direction))
    elif args.gender:
        policy = traditional_luck_policy(args.gender)

    return compute_chart(birth, settings=settings, luck_policy=policy)


def cmd_terms(args, settings: EngineSettings) -> dict:
    table = compute_solar_term_table(args.start_year, args.end_year, args.timezone)
    return table.to_dict()


def cmd_context(args, settings: EngineSettings) -> dict:
    chart = load_chart(args.chart)
    table = solar_term_table_for(settings)
    return generate_reading_context(chart, args.date, table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="manse", description="Four Pillars calendar engine.")
    parser.add_argument("--log-level", dest="log_level",
                        default=os.getenv("MANSE_LOG_LEVEL", "WARNING"),
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    chart = sub.add_parser("chart", help="Compute a Four Pillars chart")
    chart.add_argument("--birth-date", required=True, dest="birth_date")
    chart.add_argument("--birth-time", dest="birth_time", default=None)
    chart.add_argument("--calendar", choices=["solar", "lunar"], default="solar")
    chart.add_argument("--leap-month", dest="leap_month", action="store_true")
    chart.add_argument("--timezone", default=None, help="IANA name of the birth clock timezone")
    chart.add_argument("--latitude", type=float, default=None)
    chart.add_argument("--longitude", type=float, default=None)
    chart.add_argument("--gender", choices=["male", "female"], default=None)
    chart.add_argument("--luck-start-age", dest="luck_start_age", type=int, default=None)
    chart.add_argument("--luck-direction", dest="luck_direction", default="forward",
                       choices=[d.value for d in LuckDirection])
    chart.add_argument("--day-cutoff", dest="day_cutoff", type=_cutoff_arg, default=None,
                       help="HH:MM between 23:00 and 23:59")
    chart.add_argument("--lmt", action="store_true", help="Apply local mean time correction")
    chart.add_argument("--output", default=None)
    chart.set_defaults(func=cmd_chart)

    terms = sub.add_parser("terms", help="Export a solar-term table computed with Swiss Ephemeris")
    terms.add_argument("--start-year", dest="start_year", type=int, required=True)
    terms.add_argument("--end-year", dest="end_year", type=int, required=True)
    terms.add_argument("--timezone", default="Asia/Seoul")
    terms.add_argument("--output", default=None)
    terms.set_defaults(func=cmd_terms)

    context = sub.add_parser("context", help="Reading context for a saved chart")
    context.add_argument("--chart", required=True)
    context.add_argument("--date", required=True)
    context.add_argument("--output", default=None)
    context.set_defaults(func=cmd_context)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = EngineSettings.from_env()
    try:
        payload = args.func(args, settings)
    except ManseError as exc:
        logger.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    _write(payload, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
