"""
API routes.

Endpoints:
- POST `/api/optimize`: run the full optimization pipeline for one trip.
- POST `/api/fairness/incremental`: fairness delta of adding/removing destinations.
- POST `/api/preferences/normalize`: per-member z-scores plus a quality report.
- GET  `/api/settings`: effective engine settings (defaults + env overrides).
- GET  `/api/health`: liveness probe.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from fastapi import APIRouter, HTTPException

from tripweaver import __version__
from tripweaver.config.settings import get_settings
from tripweaver.domain.models import (
    FairnessDeltaRequest,
    IncrementalFairness,
    NormalizeRequest,
    OptimizationRequest,
    OptimizationResult,
)
from tripweaver.fairness.gini import calculate_incremental_fairness
from tripweaver.pipeline.optimize import optimize_trip
from tripweaver.preferences.normalize import analyze_normalization_quality, normalize_preferences

router = APIRouter()

T = TypeVar("T")


def _run(fn: Callable[[], T]) -> T:
    """Call `fn`, mapping bad input to 400 and anything else to 500."""
    try:
        return fn()
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": str(e)},
        ) from e
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail={"code": "INTERNAL_ERROR", "message": str(e)},
        ) from e


@router.post("/api/optimize", response_model=OptimizationResult)
def post_optimize(request: OptimizationRequest) -> OptimizationResult:
    """Build a fairness-balanced, time-feasible itinerary for one trip."""
    settings = get_settings()
    return _run(lambda: optimize_trip(request, settings=settings))


@router.post("/api/fairness/incremental", response_model=IncrementalFairness)
def post_incremental_fairness(body: FairnessDeltaRequest) -> IncrementalFairness:
    settings = get_settings()

    def compute() -> IncrementalFairness:
        normalized = normalize_preferences(body.preferences, settings.normalization)
        return calculate_incremental_fairness(
            body.current_ids,
            body.candidate_ids,
            normalized.standardized,
            sorted(normalized.statistics),
            body.action,
            settings.fairness,
        )

    return _run(compute)


@router.post("/api/preferences/normalize")
def post_normalize(body: NormalizeRequest) -> dict[str, Any]:
    settings = get_settings()

    def compute() -> dict[str, Any]:
        result = normalize_preferences(body.preferences, settings.normalization)
        quality = analyze_normalization_quality(result.standardized, settings.normalization)
        return {
            "standardized": [p.model_dump(mode="json") for p in result.standardized],
            "statistics": {k: v.model_dump(mode="json") for k, v in result.statistics.items()},
            "warnings": [w.model_dump(mode="json") for w in result.warnings],
            "quality": quality.as_dict(),
        }

    return _run(compute)


@router.get("/api/settings")
def get_public_settings() -> dict:
    """Return the engine tuning knobs clients may override per request."""
    data = get_settings().model_dump(mode="json")
    return {
        "app": {"timezone": data["app"]["timezone"]},
        "normalization": data["normalization"],
        "fairness": data["fairness"],
        "routing": data["routing"],
        "transport": data["transport"],
        "scheduling": data["scheduling"],
        "validation": data["validation"],
    }


@router.get("/api/health")
def get_health() -> dict:
    return {"status": "ok", "version": __version__}
