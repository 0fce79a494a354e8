"""
TripWeaver CLI entrypoint.

This CLI is intended for quick local runs and debugging without the HTTP API.
It delegates all optimization logic to `tripweaver.pipeline.optimize.optimize_trip`.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import yaml

from tripweaver.config.overrides import parse_override_assignments
from tripweaver.config.settings import get_settings
from tripweaver.core.logging import configure_logging
from tripweaver.core.time import format_clock
from tripweaver.domain.models import (
    DestinationVisit,
    GeoPoint,
    NormalizeRequest,
    OptimizationRequest,
    OptimizationResult,
)
from tripweaver.pipeline.optimize import optimize_trip
from tripweaver.preferences.normalize import analyze_normalization_quality, normalize_preferences
from tripweaver.transport.calculator import plan_hop


def _load_document(path: str) -> Any:
    """Read a JSON or YAML request file (JSON is valid YAML)."""
    return yaml.safe_load(Path(path).read_text(encoding="utf-8"))


def _parse_point(value: str) -> GeoPoint:
    lat, sep, lon = value.partition(",")
    if not sep:
        raise ValueError(f"Invalid coordinate '{value}', expected LAT,LON")
    return GeoPoint(lat=float(lat), lon=float(lon))


def _print_itinerary(result: OptimizationResult) -> None:
    print(f"Trip {result.trip_id}: {result.status}" + (f" ({result.reason})" if result.reason else ""))
    for day in result.days:
        print(
            f"Day {day.day_number} ({day.date.isoformat()}): "
            f"travel={day.total_travel_time}m visit={day.total_visit_time}m meals={day.total_meal_time}m"
        )
        for item in day.items:
            if isinstance(item, DestinationVisit):
                hop = item.transport_from_previous
                via = f"  <- {hop.mode} {hop.distance_km:.1f} km, {hop.travel_minutes}m" if hop else ""
                part = f" [part {item.split_part}]" if item.split_part else ""
                print(f"  {item.arrival:%H:%M}-{item.departure:%H:%M}  {item.name}{part}{via}")
            else:
                print(f"  {item.start:%H:%M}-{item.end:%H:%M}  ({item.meal})")
    for issue in [*result.errors, *result.warnings]:
        print(f"{issue.severity.upper()} {issue.code}: {issue.message}")
    score = result.summary.optimization_score
    if score:
        print(f"Score: total={score['total']:.1f} efficiency={score['efficiency']:.1f} fairness={score['fairness']:.1f}")


def _cmd_optimize(args: argparse.Namespace) -> int:
    """Handle the `optimize` subcommand."""
    payload = _load_document(args.input)
    if not isinstance(payload, dict):
        raise ValueError(f"{args.input} must contain a mapping")
    if args.override:
        payload["settings_overrides"] = parse_override_assignments(
            args.override, base=payload.get("settings_overrides")
        )

    request = OptimizationRequest.model_validate(payload)
    result = optimize_trip(request, settings=get_settings())

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
    else:
        _print_itinerary(result)
    return 0 if result.status == "ok" else 1


def _cmd_normalize(args: argparse.Namespace) -> int:
    payload = _load_document(args.input)
    if isinstance(payload, list):
        payload = {"preferences": payload}
    body = NormalizeRequest.model_validate(payload)

    settings = get_settings()
    result = normalize_preferences(body.preferences, settings.normalization)
    quality = analyze_normalization_quality(result.standardized, settings.normalization)
    print(
        json.dumps(
            {
                "standardized": [
                    {"user_key": p.user_key, "destination_id": p.destination_id, "rating": p.rating,
                     "standardized_score": round(p.standardized_score, 4)}
                    for p in result.standardized
                ],
                "warnings": [w.model_dump(mode="json") for w in result.warnings],
                "quality": quality.as_dict(),
            },
            ensure_ascii=False,
            indent=2,
        )
    )
    return 0


def _cmd_transport(args: argparse.Namespace) -> int:
    settings = get_settings()
    hop = plan_hop("from", _parse_point(args.origin), "to", _parse_point(args.target), settings.transport)
    print(f"mode={hop.mode} distance_km={hop.distance_km:.3f} travel={hop.travel_minutes}m ({format_clock(hop.travel_minutes)})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the TripWeaver CLI."""
    parser = argparse.ArgumentParser(prog="tripweaver")
    sub = parser.add_subparsers(dest="command", required=True)

    opt = sub.add_parser("optimize", help="Optimize a group trip described in a JSON/YAML request file.")
    opt.add_argument("--input", required=True, help="Path to an OptimizationRequest (JSON or YAML)")
    opt.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    opt.add_argument(
        "--override",
        action="append",
        default=[],
        help="Repeatable settings override, e.g. scheduling.max_daily_minutes=480",
    )
    opt.set_defaults(func=_cmd_optimize)

    norm = sub.add_parser("normalize", help="Standardize member ratings and report normalization quality.")
    norm.add_argument("--input", required=True, help="Path to a preference list (JSON or YAML)")
    norm.set_defaults(func=_cmd_normalize)

    tr = sub.add_parser("transport", help="Show the transport mode and travel time between two points.")
    tr.add_argument("--from", dest="origin", required=True, help="LAT,LON")
    tr.add_argument("--to", dest="target", required=True, help="LAT,LON")
    tr.set_defaults(func=_cmd_transport)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m tripweaver.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except (ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
