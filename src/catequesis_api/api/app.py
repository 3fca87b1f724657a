"""
catequesis_api.api.app

FastAPI app factory for the catechesis backend.

Responsibilities:
- Build the FastAPI application and register routers/middleware/error handlers.
- Initialize and dispose shared infrastructure (DB engine, gating pipeline, activity drain).
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI

from catequesis_api import __version__
from catequesis_api.api.errors import register_error_handlers
from catequesis_api.api.policies import ROUTE_POLICIES
from catequesis_api.api.routers.auth import router as auth_router
from catequesis_api.api.routers.dev_auth import router as dev_auth_router
from catequesis_api.api.routers.health import router as health_router
from catequesis_api.api.routers.info import router as info_router
from catequesis_api.api.routers.parishes import router as parishes_router
from catequesis_api.api.routers.users import router as users_router
from catequesis_api.auth.directory import PrincipalDirectory, SqlPrincipalDirectory
from catequesis_api.auth.jwt import JwtConfig
from catequesis_api.auth.models import Role
from catequesis_api.db.init_db import init_db
from catequesis_api.db.session import create_engine, create_sessionmaker
from catequesis_api.gating.pipeline import Pipeline
from catequesis_api.gating.policy import API_LIMITER, CREDENTIAL_CHANGE_LIMITER, LOGIN_LIMITER
from catequesis_api.gating.ratelimit import SlidingWindowLimiter
from catequesis_api.observability.activity import ActivityLogger
from catequesis_api.observability.logging import configure_logging, get_logger
from catequesis_api.observability.middleware import RequestContextMiddleware
from catequesis_api.settings import Settings

log = get_logger(__name__)


def build_limiters(
    settings: Settings, *, clock: Callable[[], float] = time.monotonic
) -> dict[str, SlidingWindowLimiter]:
    # One independent limiter per concern; an identity's state in one never affects another.
    quotas = {
        API_LIMITER: (settings.api_rate_limit_max, settings.api_rate_limit_window_seconds),
        LOGIN_LIMITER: (settings.login_rate_limit_max, settings.login_rate_limit_window_seconds),
        CREDENTIAL_CHANGE_LIMITER: (
            settings.credential_change_rate_limit_max,
            settings.credential_change_rate_limit_window_seconds,
        ),
    }
    return {
        name: SlidingWindowLimiter(
            quota=quota,
            window_seconds=window,
            max_keys=settings.rate_limit_max_keys,
            clock=clock,
            name=name,
        )
        for name, (quota, window) in quotas.items()
    }


def build_pipeline(
    settings: Settings,
    *,
    directory: PrincipalDirectory,
    activity: ActivityLogger,
    clock: Callable[[], float] = time.monotonic,
) -> Pipeline:
    pipeline = Pipeline(
        jwt_cfg=JwtConfig.from_settings(settings),
        directory=directory,
        limiters=build_limiters(settings, clock=clock),
        activity=activity,
        privileged_role=Role(settings.privileged_role),
    )
    pipeline.check_policies(ROUTE_POLICIES.values())
    return pipeline


def create_app(*, settings: Settings) -> FastAPI:
    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(
        service_name=settings.service_name, level=settings.log_level, env=settings.env
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            # Dev/test convenience: create tables automatically. Prod uses Alembic migrations.
            await init_db(engine)

        activity = ActivityLogger(max_pending=settings.activity_queue_size)
        app.state.activity = activity
        app.state.pipeline = build_pipeline(
            settings,
            directory=SqlPrincipalDirectory(app.state.sessionmaker),
            activity=activity,
        )
        activity.start()
        try:
            yield
        finally:
            await activity.stop()
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="Catequesis API",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    register_error_handlers(app)
    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(info_router)
    app.include_router(auth_router)
    app.include_router(parishes_router)
    app.include_router(users_router)
    if settings.env != "prod":
        app.include_router(dev_auth_router)

    return app


# --- Module Notes -----------------------------------------------------------
# App composition stays here; gating lives in
# `catequesis_api.gating`, HTTP glue in `api.gating`, handlers in routers.
