"""PostgREST backend.

Talks to a hosted Postgres exposed through PostgREST (e.g. Supabase):

    GET    /rest/v1/boards?parent_id=eq.ws-1&archived=eq.false&order=position.asc
    POST   /rest/v1/boards                      (insert / bulk upsert)
    PATCH  /rest/v1/boards?id=eq.board-1
    DELETE /rest/v1/boards?id=in.(board-1,board-2)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from boardstore.backends.base import RemoteBackend
from boardstore.errors import AuthError, NetworkError

if TYPE_CHECKING:
    from boardstore.models.container import ContainerKind

logger = structlog.get_logger()


def _filter_value(value: Any) -> str:
    """Encode a filter value in PostgREST operator syntax."""
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class RestBackend(RemoteBackend):
    """Hosted store over PostgREST using a shared ``httpx.AsyncClient``."""

    name = "rest"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
    ) -> None:
        """Initialize backend.

        Args:
            client: Shared HTTP client (connection pooled)
            base_url: Project URL, without the ``/rest/v1`` suffix
            api_key: Project API key, sent as ``apikey``
            access_token: User JWT; falls back to the API key
        """
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
        }
        self._log = logger.bind(backend="rest")

    def _url(self, kind: "ContainerKind") -> str:
        return f"{self._base_url}/rest/v1/{kind.table}"

    async def _request(
        self,
        method: str,
        kind: "ContainerKind",
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        self._log.debug("rest.request", method=method, table=kind.table)
        try:
            response = await self._client.request(
                method,
                self._url(kind),
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise NetworkError(
                f"{method} {kind.table} failed: {e}",
                details={"table": kind.table},
            ) from e

        if response.status_code in (401, 403):
            raise AuthError(
                f"{method} {kind.table} was refused (HTTP {response.status_code})",
                details={"table": kind.table, "status_code": response.status_code},
            )
        if response.status_code >= 400:
            # Schema errors (missing column, missing table) land here too
            raise NetworkError(
                f"{method} {kind.table} returned HTTP {response.status_code}",
                details={
                    "table": kind.table,
                    "status_code": response.status_code,
                    "body": response.text[:500],
                },
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(
                f"{method} {kind.table} returned non-JSON response",
                details={"table": kind.table},
            ) from e

    @staticmethod
    def _first(payload: Any) -> dict[str, Any]:
        if isinstance(payload, list):
            return payload[0] if payload else {}
        if isinstance(payload, dict):
            return payload
        return {}

    async def select(
        self,
        kind: "ContainerKind",
        filters: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        params = {"select": "*", "order": "position.asc"}
        for column, value in filters.items():
            params[column] = _filter_value(value)
        payload = await self._request("GET", kind, params=params)
        return list(payload or [])

    async def insert(self, kind: "ContainerKind", row: dict[str, Any]) -> dict[str, Any]:
        payload = await self._request(
            "POST", kind, json=row, prefer="return=representation"
        )
        return self._first(payload)

    async def update(
        self,
        kind: "ContainerKind",
        container_id: str,
        values: dict[str, Any],
    ) -> dict[str, Any]:
        payload = await self._request(
            "PATCH",
            kind,
            params={"id": f"eq.{container_id}"},
            json=values,
            prefer="return=representation",
        )
        return self._first(payload)

    async def upsert_many(
        self,
        kind: "ContainerKind",
        rows: Sequence[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        if not rows:
            return []
        # A single bulk upsert is one statement, so all rows land or none do
        payload = await self._request(
            "POST",
            kind,
            json=list(rows),
            prefer="resolution=merge-duplicates,return=representation",
        )
        return list(payload or [])

    async def delete(self, kind: "ContainerKind", ids: Sequence[str]) -> None:
        if not ids:
            return
        await self._request(
            "DELETE",
            kind,
            params={"id": f"in.({','.join(ids)})"},
        )
