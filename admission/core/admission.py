"""Admission filter middleware.

Wraps the downstream application and decides, per request, whether the
client is still within its quota. Rejected requests never reach the
downstream handler.

Design goals:
- The engine raises on store failure; the failure policy is applied here,
  explicitly, from configuration.
- Store round trips are blocking, so the decision runs in the thread pool and
  is bounded by a timeout.
- The request is only read, never modified.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
from typing import Any, Awaitable, Callable, Sequence, Union

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from admission.core.config import RateLimitSettings
from admission.core.errors import StoreCommandError, StoreError
from admission.core.identity import identity_from_request
from admission.core.logging import get_request_id
from admission.core.rate_limit import (
    FailurePolicy,
    RateDecision,
    RateDecisionEngine,
    RejectReason,
    hash_identity,
)

logger = logging.getLogger(__name__)

REJECTION_MESSAGE = "Max Rate Limiting Reached, Please try after some time"
STORE_UNAVAILABLE_MESSAGE = "Rate limiting is temporarily unavailable. Try again later."

PostHook = Callable[[Request, Response, RateDecision], Union[Awaitable[None], None]]


def log_completed_request(request: Request, response: Response, decision: RateDecision) -> None:
    """Default post-processing hook: log the admitted request's outcome."""

    logger.info(
        "admission.completed",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "count": decision.count,
            "degraded": decision.degraded,
        },
    )


class AdmissionFilterMiddleware(BaseHTTPMiddleware):
    """Apply the per-client rate decision in front of every route."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        engine: RateDecisionEngine,
        rate_settings: RateLimitSettings,
        post_hooks: Sequence[PostHook] | None = None,
    ) -> None:
        super().__init__(app)
        self.engine = engine
        self.rate_settings = rate_settings
        self.failure_policy = FailurePolicy(rate_settings.failure_policy)
        self.post_hooks: list[PostHook] = (
            list(post_hooks) if post_hooks is not None else [log_completed_request]
        )

    def _is_exempt(self, path: str) -> bool:
        # Whole segments only: "/health" covers "/health/store", not "/healthcare".
        for exempt in self.rate_settings.exempt_paths:
            base = exempt.rstrip("/")
            if path == exempt or path == base or path.startswith(base + "/"):
                return True
        return False

    async def _decide(self, identity: str) -> RateDecision:
        """Run the engine, resolving store failures through the failure policy."""

        timeout = self.rate_settings.decision_timeout_seconds
        loop = asyncio.get_running_loop()
        # Copy the context so store logs keep the request_id.
        ctx = contextvars.copy_context()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, ctx.run, self.engine.check, identity),
                timeout=timeout,
            )
        except StoreError as exc:
            event = (
                "rate_limit.store_command_rejected"
                if isinstance(exc, StoreCommandError)
                else "rate_limit.store_unavailable"
            )
            logger.error(
                event,
                extra={
                    "identity_hash": hash_identity(identity),
                    "error_code": exc.code,
                    "error_message": exc.message,
                    "failure_policy": self.failure_policy.value,
                },
            )
        except asyncio.TimeoutError:
            logger.error(
                "rate_limit.store_unavailable",
                extra={
                    "identity_hash": hash_identity(identity),
                    "error_code": "store_timeout",
                    "timeout_seconds": timeout,
                    "failure_policy": self.failure_policy.value,
                },
            )
        return self.engine.fallback(identity, self.failure_policy)

    def _limit_headers(self, decision: RateDecision) -> dict[str, str]:
        if not self.rate_settings.include_headers or decision.degraded:
            return {}
        headers = {
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Reset": str(decision.reset_at),
        }
        if decision.retry_after_seconds is not None:
            headers["Retry-After"] = str(decision.retry_after_seconds)
        return headers

    def _rejection_response(self, decision: RateDecision) -> JSONResponse:
        if decision.reason is RejectReason.STORE_UNAVAILABLE:
            status_code = 503
            code = RejectReason.STORE_UNAVAILABLE.value
            message = STORE_UNAVAILABLE_MESSAGE
        else:
            status_code = self.rate_settings.reject_status_code
            code = "rate_limit_exceeded"
            message = REJECTION_MESSAGE

        content: dict[str, Any] = {
            "error": {
                "code": code,
                "message": message,
                "request_id": get_request_id(),
            }
        }
        return JSONResponse(
            status_code=status_code,
            content=content,
            headers=self._limit_headers(decision) or None,
        )

    async def _run_post_hooks(
        self, request: Request, response: Response, decision: RateDecision
    ) -> None:
        for hook in self.post_hooks:
            result = hook(request, response, decision)
            if inspect.isawaitable(result):
                await result

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.rate_settings.enabled or self._is_exempt(request.url.path):
            return await call_next(request)

        identity = identity_from_request(
            request,
            trust_forwarded=self.rate_settings.trust_forwarded_headers,
        )
        decision = await self._decide(identity)
        identity_hash = hash_identity(identity)

        if not decision.allowed:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "identity_hash": identity_hash,
                    "reason": decision.reason.value if decision.reason else None,
                    "count": decision.count,
                    "threshold": decision.threshold,
                    "window_s": self.engine.window_seconds,
                    "retry_after_s": decision.retry_after_seconds,
                },
            )
            return self._rejection_response(decision)

        logger.debug(
            "rate_limit.allowed",
            extra={
                "identity_hash": identity_hash,
                "count": decision.count,
                "threshold": decision.threshold,
                "remaining": decision.remaining,
                "degraded": decision.degraded,
            },
        )

        response = await call_next(request)
        for name, value in self._limit_headers(decision).items():
            response.headers.setdefault(name, value)
        await self._run_post_hooks(request, response, decision)
        return response
