from __future__ import annotations

import logging

from fastapi import APIRouter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ping"])


@router.get("/ping")
def ping() -> dict:
    """Test endpoint protected by the admission filter."""

    logger.debug("ping.called")
    return {"message": "pong"}
