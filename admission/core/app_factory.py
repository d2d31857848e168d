from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (store lifecycle, middleware, handlers, routers)
so tests can build isolated apps with their own settings and store.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Sequence

from fastapi import FastAPI

from admission.adapters.counter_store import AbstractCounterStore, create_counter_store
from admission.api.routes import health_router, ping_router
from admission.core.admission import AdmissionFilterMiddleware, PostHook
from admission.core.config import Settings, settings as default_settings
from admission.core.exception_handlers import setup_exception_handlers
from admission.core.logging import configure_logging, redact_url
from admission.core.middleware import request_id_middleware
from admission.core.rate_limit import RateDecisionEngine

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Settings | None = None,
    *,
    store: AbstractCounterStore | None = None,
    post_hooks: Sequence[PostHook] | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use; defaults to the module-level settings.
        store: Counter store to use instead of the configured backend. The
            app closes it on shutdown either way.
        post_hooks: Hooks run after admitted requests; defaults to logging.
        clock: Time source for window bucketing.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    counter_store = store if store is not None else create_counter_store(cfg.store)
    engine = RateDecisionEngine.from_settings(counter_store, cfg.rate_limit, clock=clock)

    logger.info(
        "admission.configured",
        extra={
            "store_backend": counter_store.backend,
            "store_location": redact_url(cfg.store.url),
            "threshold": cfg.rate_limit.threshold,
            "window_s": cfg.rate_limit.window_seconds,
            "expiry_s": cfg.rate_limit.expiry_seconds,
            "strategy": engine.strategy.value,
            "failure_policy": cfg.rate_limit.failure_policy,
        },
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            counter_store.close()
            logger.info("admission.store_closed", extra={"store_backend": counter_store.backend})

    app = FastAPI(
        title="Admission Filter",
        description=(
            "Per-client fixed-window rate limiting in front of a downstream "
            "handler chain, backed by a shared Redis counter store."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.counter_store = counter_store
    app.state.rate_engine = engine

    # Middleware: the last one added runs first, so request IDs wrap admission.
    app.add_middleware(
        AdmissionFilterMiddleware,
        engine=engine,
        rate_settings=cfg.rate_limit,
        post_hooks=post_hooks,
    )
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(ping_router)
    app.include_router(health_router)

    return app
