"""Shared HTTP client for the REST backend.

Every remote-mode session gets its own RestBackend (its own access token),
but they all share one pooled ``httpx.AsyncClient`` owned by this manager.
The client is opened and closed by the FastAPI lifespan.
"""

from __future__ import annotations

import httpx
import structlog

logger = structlog.get_logger()


class HTTPClientManager:
    """Owns the pooled ``httpx.AsyncClient``.

    Usage:
        await http_client_manager.startup()
        client = http_client_manager.client
        ...
        await http_client_manager.shutdown()
    """

    def __init__(
        self,
        *,
        max_connections: int = 100,
        max_keepalive_connections: int = 20,
        keepalive_expiry: float = 30.0,
        timeout: float = 10.0,
    ) -> None:
        """Initialize HTTP client manager.

        Args:
            max_connections: Maximum number of concurrent connections.
            max_keepalive_connections: Idle connections kept in the pool.
            keepalive_expiry: Seconds before idle connections are closed.
            timeout: Per-request timeout in seconds. The gateway applies its
                own deadline on top of this.
        """
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
            keepalive_expiry=keepalive_expiry,
        )
        self._timeout = httpx.Timeout(timeout)
        self._client: httpx.AsyncClient | None = None
        self._log = logger.bind(component="http_client")

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the shared HTTP client.

        Raises:
            RuntimeError: If client is not initialized (call startup first)
        """
        if self._client is None:
            raise RuntimeError("HTTP client not initialized. Call startup() first.")
        return self._client

    @property
    def is_started(self) -> bool:
        return self._client is not None

    async def startup(self) -> None:
        if self._client is not None:
            self._log.warning("http_client.already_started")
            return
        self._client = httpx.AsyncClient(limits=self._limits, timeout=self._timeout)
        self._log.info("http_client.started")

    async def shutdown(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        self._log.info("http_client.shutdown")


# Global singleton instance
http_client_manager = HTTPClientManager()


def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client.

    Raises:
        RuntimeError: If client not initialized
    """
    return http_client_manager.client
