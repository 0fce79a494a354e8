from __future__ import annotations

# This module is the orchestrator for one optimization run.
# It wires together:
# - input checks (validation.inputs)
# - preference normalization and fairness (preferences, fairness)
# - route selection and ordering (routing)
# - constraint segmentation and day scheduling (scheduling)
# - itinerary validation and the summary/score (validation, scoring)
#
# Stages run strictly in sequence; each one only reads the previous stage's output.
# Problems found along the way are returned as ValidationIssue records, never raised.

import logging
import time
from typing import Any

from tripweaver.config.overrides import apply_settings_overrides
from tripweaver.config.settings import Settings, get_settings
from tripweaver.core.time import trip_origin
from tripweaver.domain.models import (
    Destination,
    DestinationCluster,
    OptimizationRequest,
    OptimizationResult,
    OptimizationSummary,
    RouteSolution,
    ValidationIssue,
)
from tripweaver.fairness.gini import analyze_fairness_distribution, calculate_fairness
from tripweaver.fairness.selection import merge_duplicate_destinations, select_round_robin
from tripweaver.preferences.normalize import analyze_normalization_quality, normalize_preferences
from tripweaver.routing.clustering import cluster_destinations
from tripweaver.routing.ordering import efficiency_score, order_route, two_opt_improve
from tripweaver.routing.selector import select_route
from tripweaver.scheduling.day_builder import build_daily_schedules
from tripweaver.scheduling.segments import (
    PlannedPlace,
    constrained_places,
    endpoint_place,
    flexible_place,
    segment_itinerary,
)
from tripweaver.scoring.composite import optimization_score
from tripweaver.transport.calculator import plan_hop, transport_stats
from tripweaver.validation.inputs import validate_request
from tripweaver.validation.itinerary import validate_itinerary

logger = logging.getLogger(__name__)


def _split(issues: list[ValidationIssue]) -> tuple[list[ValidationIssue], list[ValidationIssue]]:
    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]
    return errors, warnings


def _settings_snapshot(request: OptimizationRequest, settings: Settings, timezone: str) -> dict[str, Any]:
    return {
        "timezone": timezone,
        "max_daily_minutes": settings.scheduling.max_daily_minutes,
        "day_start": settings.scheduling.day_start,
        "day_end": settings.scheduling.day_end,
        "objective_weights": dict(settings.routing.objective_weights),
        "long_haul_km": settings.transport.long_haul_km,
        "overrides_enabled": bool(request.settings_overrides),
        "settings_overrides": request.settings_overrides or None,
    }


def _usable_clusters(
    request: OptimizationRequest,
    flexible: list[Destination],
    standardized,
    settings: Settings,
) -> list[DestinationCluster]:
    """Caller-supplied clusters restricted to routable destinations, or computed ones."""
    if request.clusters is None:
        return cluster_destinations(
            flexible,
            standardized,
            radius_km=settings.routing.cluster_radius_km,
            default_stay_minutes=settings.scheduling.default_stay_minutes,
        )

    by_id = {d.id: d for d in flexible}
    clusters: list[DestinationCluster] = []
    for cluster in request.clusters:
        members = [i for i in cluster.destination_ids if i in by_id]
        if not members:
            continue
        if members != cluster.destination_ids:
            stay = sum(
                by_id[i].stay_minutes if by_id[i].stay_minutes is not None else settings.scheduling.default_stay_minutes
                for i in members
            )
            cluster = cluster.model_copy(update={"destination_ids": members, "total_stay_minutes": stay})
        clusters.append(cluster)
    return clusters


def optimize_trip(
    request: OptimizationRequest,
    *,
    settings: Settings | None = None,
) -> OptimizationResult:
    t0 = time.monotonic()
    timings_ms: dict[str, int] = {}

    # ---- Step 1: Resolve settings and timezone for THIS run ----
    settings = settings or get_settings()
    settings = apply_settings_overrides(settings, request.settings_overrides)
    timezone = request.timezone or settings.app.timezone
    meta: dict[str, Any] = {"settings_snapshot": _settings_snapshot(request, settings, timezone)}

    def finish(result: OptimizationResult) -> OptimizationResult:
        if settings.pipeline.record_timings:
            timings_ms["total"] = int((time.monotonic() - t0) * 1000)
            result.meta["timings_ms"] = timings_ms
        return result

    # ---- Step 2: Structural input checks (errors mean we do not attempt the run) ----
    input_errors, warnings = _split(validate_request(request, settings, timezone=timezone))
    if input_errors:
        logger.warning("Optimization of %s not attempted: %s", request.trip_id, [e.code for e in input_errors])
        return finish(
            OptimizationResult(
                trip_id=request.trip_id,
                status="not_attempted",
                reason="; ".join(e.message for e in input_errors),
                trip_start=request.trip_start,
                errors=input_errors,
                warnings=warnings,
                summary=OptimizationSummary(
                    destination_count=len(request.destinations),
                    error_count=len(input_errors),
                    warning_count=len(warnings),
                ),
                meta=meta,
            )
        )

    # ---- Step 3: Merge duplicates and re-point preferences at the survivors ----
    destinations, aliases = merge_duplicate_destinations(request.destinations)
    known = {d.id for d in destinations}
    preferences = [
        p.model_copy(update={"destination_id": aliases.get(p.destination_id, p.destination_id)})
        for p in request.preferences
    ]
    preferences = [p for p in preferences if p.destination_id in known]

    # ---- Step 4: Normalize ratings per member ----
    t_stage = time.monotonic()
    normalization = normalize_preferences(preferences, settings.normalization)
    standardized = normalization.standardized
    user_keys = sorted(normalization.statistics)
    warnings.extend(normalization.warnings)
    meta["normalization"] = {
        "user_count": len(user_keys),
        "quality": analyze_normalization_quality(standardized, settings.normalization).as_dict(),
    }
    timings_ms["normalize"] = int((time.monotonic() - t_stage) * 1000)

    # ---- Step 5: Split constrained from flexible; fair pre-selection when capped ----
    constrained = [d for d in destinations if d.is_constrained]
    flexible = [d for d in destinations if not d.is_constrained]
    preselection_dropped: list[str] = []
    if request.max_destinations is not None and len(flexible) > request.max_destinations:
        keep = set(select_round_robin([d.id for d in flexible], standardized, request.max_destinations))
        preselection_dropped = [d.id for d in flexible if d.id not in keep]
        flexible = [d for d in flexible if d.id in keep]

    # ---- Step 6: Cluster and select a fairness-balanced route ----
    t_stage = time.monotonic()
    clusters = _usable_clusters(request, flexible, standardized, settings)
    trip_days = (request.trip_end - request.trip_start).days + 1 if request.trip_end else None
    origin = trip_origin(request.trip_start, timezone)
    default_stay = settings.scheduling.default_stay_minutes
    fixed: list[PlannedPlace] = [
        place for d in constrained for place in constrained_places(d, origin, default_stay=default_stay)
    ]
    available_hours: float | None = None
    if trip_days is not None:
        blocking_minutes = sum(p.stay_minutes for p in fixed if p.blocking)
        available_hours = max(0.0, (trip_days * settings.scheduling.max_daily_minutes - blocking_minutes) / 60)

    selection = select_route(
        clusters,
        departure=request.departure,
        return_location=request.return_location,
        standardized=standardized,
        user_keys=user_keys,
        settings=settings,
        available_hours=available_hours,
        flexible_count=len(flexible),
    )
    meta["selection"] = selection.as_dict()
    timings_ms["select_route"] = int((time.monotonic() - t_stage) * 1000)

    # ---- Step 7: Order the selected destinations between fixed endpoints ----
    selected_ids = set(selection.best.destination_ids)
    not_selected = [d.id for d in flexible if d.id not in selected_ids]
    cluster_of = {i: c.id for c in clusters for i in c.destination_ids}
    route = order_route(
        request.departure,
        [d for d in flexible if d.id in selected_ids],
        request.return_location,
    )
    end = request.return_location
    if end is not None and end.id == request.departure.id:
        end = None
    middle = route[1:-1] if end is not None else route[1:]
    middle, two_opt = two_opt_improve(
        request.departure.location, middle, end.location if end is not None else None
    )
    route = [route[0], *middle, *([end] if end is not None else [])]
    meta["two_opt"] = {
        "improved": two_opt.improved,
        "original_distance_km": round(two_opt.original_distance_km, 3),
        "new_distance_km": round(two_opt.new_distance_km, 3),
        "improvement_percent": round(two_opt.improvement_percent, 2),
        "swaps": two_opt.swaps,
    }

    # ---- Step 8: Segment around hard constraints ----
    t_stage = time.monotonic()

    def travel(a: PlannedPlace, b: PlannedPlace) -> int:
        return plan_hop(a.id, a.location, b.id, b.location, settings.transport).travel_minutes

    flexible_places: list[PlannedPlace] = [endpoint_place(request.departure)]
    flexible_places += [
        flexible_place(d, default_stay=default_stay, cluster_id=cluster_of.get(d.id)) for d in middle
    ]
    if end is not None:
        flexible_places.append(endpoint_place(end, is_final=True))
    segmentation = segment_itinerary(
        flexible_places,
        fixed,
        travel=travel,
        settings=settings.scheduling,
        trip_days=trip_days,
    )
    timings_ms["segment"] = int((time.monotonic() - t_stage) * 1000)

    # ---- Step 9: Build day-by-day schedules ----
    t_stage = time.monotonic()
    built = build_daily_schedules(
        segmentation.places,
        trip_start=request.trip_start,
        timezone=timezone,
        settings=settings.scheduling,
        transport=settings.transport,
        max_days=trip_days,
    )
    days = built.days
    timings_ms["schedule"] = int((time.monotonic() - t_stage) * 1000)

    dropped = list(
        dict.fromkeys(
            [*preselection_dropped, *not_selected]
            + [p.destination_id for p in segmentation.deleted]
            + [p.destination_id for p in built.dropped]
        )
    )
    for destination_id in dropped:
        warnings.append(
            ValidationIssue(
                severity="warning",
                code="DESTINATION_DROPPED",
                message=f"Destination '{destination_id}' did not fit the trip and was left out.",
                destination_id=destination_id,
            )
        )
    for issue in selection.best.issues:
        warnings.append(ValidationIssue(severity="warning", code="ROUTE_INFEASIBLE", message=issue))
    warnings.extend(built.notices)

    # ---- Step 10: Validate the itinerary ----
    report = validate_itinerary(days, settings=settings, trip_end=request.trip_end)
    errors = report.errors
    warnings.extend(report.warnings)

    # ---- Step 11: Summaries and scores ----
    scheduled_ids = [v.destination_id for d in days for v in d.visits if v.kind == "visit"]
    fairness = calculate_fairness(scheduled_ids, standardized, user_keys)
    meta["fairness"] = {
        "gini": fairness.gini,
        "fairness_score": fairness.fairness_score,
        "analysis": analyze_fairness_distribution(fairness, settings.fairness).model_dump(),
    }
    meta["transport"] = transport_stats(built.hops).as_dict()

    segments = [
        plan_hop(a.id, a.location, b.id, b.location, settings.transport) for a, b in zip(route, route[1:])
    ]
    best: RouteSolution = selection.best.model_copy(
        update={
            "destination_ids": [d.id for d in middle],
            "segments": segments,
            "total_distance_km": round(sum(s.distance_km for s in segments), 3),
            "efficiency_score": efficiency_score([p.location for p in route]),
            "fairness_score": fairness.fairness_score,
            "member_satisfaction": {s.user_key: s.satisfaction_score for s in fairness.user_satisfactions},
        }
    )
    score = optimization_score(
        days,
        fairness_score=fairness.fairness_score,
        error_count=len(errors),
        warning_count=len(warnings),
    )
    summary = OptimizationSummary(
        destination_count=len(request.destinations),
        scheduled_visit_count=len(
            {v.original_place_id or v.destination_id for d in days for v in d.visits if v.kind != "endpoint"}
        ),
        dropped_count=len(dropped),
        day_count=len(days),
        total_distance_km=round(sum(s.distance_km for s in built.hops), 3),
        total_travel_minutes=sum(d.total_travel_time for d in days),
        total_visit_minutes=sum(d.total_visit_time for d in days),
        total_meal_minutes=sum(d.total_meal_time for d in days),
        fairness_score=fairness.fairness_score,
        optimization_score=score.as_dict(),
        error_count=len(errors),
        warning_count=len(warnings),
    )

    status = "ok" if report.is_valid else "invalid"
    logger.info(
        "Optimized %s: status=%s days=%d visits=%d dropped=%d fairness=%.3f",
        request.trip_id,
        status,
        summary.day_count,
        summary.scheduled_visit_count,
        summary.dropped_count,
        fairness.fairness_score,
    )
    return finish(
        OptimizationResult(
            trip_id=request.trip_id,
            status=status,
            reason=None if report.is_valid else "Itinerary failed validation: " + ", ".join(sorted({e.code for e in errors})),
            trip_start=request.trip_start,
            route=best,
            days=days,
            errors=errors,
            warnings=warnings,
            dropped_destination_ids=dropped,
            summary=summary,
            meta=meta,
        )
    )
