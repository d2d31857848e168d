from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns a simple status response to verify the API process is up. Does not
    touch the counter store.
    """

    return {"status": "ok"}


@router.get("/health/store")
def store_health_check(request: Request) -> dict:
    """Readiness check for the shared counter store.

    Raises:
        StoreError: Rendered as 503 by the global handler when the store
            cannot be reached or refuses the ping.
    """

    store = request.app.state.counter_store
    store.ping()
    return {"status": "ok", "backend": store.backend}
