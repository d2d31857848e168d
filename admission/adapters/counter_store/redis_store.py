"""Redis counter store adapter.

Connections come from a bounded redis-py ``ConnectionPool``. redis-py checks a
connection out for each command (or for the lifetime of a pipeline) and
returns it to the pool when the call finishes, on success and on error.
"""

from __future__ import annotations

import logging

import redis
from redis.exceptions import RedisError, ResponseError

from admission.adapters.counter_store.base import AbstractCounterStore
from admission.core.errors import StoreCommandError, StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisCounterStore(AbstractCounterStore):
    """Counter store backed by a shared Redis server.

    Uses the official redis-py client with a pooled, timeout-bounded
    connection set so concurrent requests never block indefinitely.
    """

    backend = "redis"

    def __init__(
        self,
        url: str,
        *,
        max_connections: int = 100,
        socket_timeout_seconds: float = 1.0,
        connect_timeout_seconds: float = 1.0,
        client: redis.Redis | None = None,
    ) -> None:
        """Initialize the Redis client.

        Args:
            url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
            max_connections: Upper bound on pooled connections.
            socket_timeout_seconds: Timeout for each command round trip.
            connect_timeout_seconds: Timeout for establishing a connection.
            client: Pre-built client (tests inject a mock here).
        """
        if client is None:
            pool = redis.ConnectionPool.from_url(
                url,
                max_connections=max_connections,
                socket_timeout=socket_timeout_seconds,
                socket_connect_timeout=connect_timeout_seconds,
                decode_responses=True,
            )
            client = redis.Redis(connection_pool=pool)
        self.client = client
        self._socket_timeout = socket_timeout_seconds

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.warning(
            "store.command_failed",
            extra={
                "operation": operation,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return StoreUnavailableError(
            code="store_unavailable",
            message=f"Counter store {operation} failed: {exc}",
            details={
                "operation": operation,
                "backend": self.backend,
                "timeout_seconds": self._socket_timeout,
            },
        )

    def _rejected(self, operation: str, exc: ResponseError) -> StoreCommandError:
        # The server answered, so the connection is fine; the command or the
        # stored value is not (WRONGTYPE, overflow, unknown option).
        logger.error(
            "store.command_rejected",
            extra={
                "operation": operation,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return StoreCommandError(
            code="store_command_rejected",
            message=f"Counter store rejected {operation}: {exc}",
            details={"operation": operation, "backend": self.backend},
        )

    def get(self, key: str) -> tuple[int, bool]:
        try:
            raw = self.client.get(key)
        except ResponseError as exc:
            raise self._rejected("get", exc) from exc
        except RedisError as exc:
            raise self._unavailable("get", exc) from exc

        if raw is None:
            return 0, False
        try:
            return int(raw), True
        except (TypeError, ValueError):
            logger.warning("store.non_integer_value", extra={"operation": "get"})
            return 0, False

    def set(self, key: str, value: int, *, ttl_seconds: int | None = None) -> None:
        try:
            if ttl_seconds is None:
                self.client.set(key, value, keepttl=True)
            else:
                self.client.set(key, value, ex=ttl_seconds)
        except ResponseError as exc:
            raise self._rejected("set", exc) from exc
        except RedisError as exc:
            raise self._unavailable("set", exc) from exc

    def expire(self, key: str, ttl_seconds: int) -> None:
        try:
            self.client.expire(key, ttl_seconds)
        except ResponseError as exc:
            raise self._rejected("expire", exc) from exc
        except RedisError as exc:
            raise self._unavailable("expire", exc) from exc

    def increment(self, key: str, ttl_seconds: int) -> int:
        # SET NX EX only succeeds on creation, so the TTL is never refreshed.
        try:
            with self.client.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, ex=ttl_seconds, nx=True)
                pipe.incr(key)
                _, value = pipe.execute()
        except ResponseError as exc:
            raise self._rejected("increment", exc) from exc
        except RedisError as exc:
            raise self._unavailable("increment", exc) from exc
        return int(value)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except ResponseError as exc:
            raise self._rejected("ping", exc) from exc
        except RedisError as exc:
            raise self._unavailable("ping", exc) from exc

    def close(self) -> None:
        self.client.close()
        self.client.connection_pool.disconnect()
