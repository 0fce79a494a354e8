# src/tripweaver/api/app.py
"""
FastAPI application wiring.

`create_app()` builds the API (routes + CORS); `app` is the instance uvicorn serves:

    uvicorn tripweaver.api.app:app --reload

Business logic lives in `tripweaver.api.routes` and `tripweaver.pipeline`.
"""

from __future__ import annotations

import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from tripweaver import __version__
from tripweaver.core.logging import configure_logging

from .routes import router

_LOCAL_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"


def cors_config() -> tuple[list[str], str | None]:
    """Allowed origins from the environment.

    - TRIPWEAVER_CORS_ORIGINS="http://localhost:5173,https://planner.example"
    - TRIPWEAVER_CORS_ALLOW_LOCAL=0 turns off the default localhost allowance
      (which only applies when no explicit origins are given)
    """
    origins = [s.strip() for s in os.getenv("TRIPWEAVER_CORS_ORIGINS", "").split(",") if s.strip()]
    allow_local = os.getenv("TRIPWEAVER_CORS_ALLOW_LOCAL", "1").strip().lower() in {"1", "true", "yes", "y"}
    regex = _LOCAL_ORIGIN_REGEX if allow_local and not origins else None
    return origins, regex


def create_app() -> FastAPI:
    configure_logging()
    api = FastAPI(title="TripWeaver API", version=__version__)

    origins, regex = cors_config()
    if origins or regex:
        api.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_origin_regex=regex,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    api.include_router(router)
    return api


app = create_app()
