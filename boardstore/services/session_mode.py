"""Session mode resolution.

A session is either *remote* (signed-in user, hosted store configured) or
*isolated* (guest/demo). The mode is decided once from the explicit
``SessionContext`` and never from the shape of entity ids.

Remote sessions get a gateway over the configured backend with a JSON file
mirror per user. The file mirror is only used once the remote store has
accepted the session's credentials; until then fallback data lives in
memory. For the REST backend the access token's ``sub`` claim must name the
session's user, so a token the remote store accepts also vouches for the
mirror namespace.

Isolated sessions get a gateway with no remote at all over an in-memory
mirror seeded with starter data; these namespaces live as long as the
resolver that created them.
"""

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from boardstore.backends import RemoteBackend, RestBackend, SqlBackend
from boardstore.errors import AuthError
from boardstore.managers.registry import StoreRegistry
from boardstore.ordering import PositionAllocator
from boardstore.seed import STARTER_DATA
from boardstore.services.gateway import PersistenceGateway
from boardstore.services.http import get_http_client
from boardstore.storage import JsonFileMirror, MemoryMirror

if TYPE_CHECKING:
    from boardstore.config import Settings

logger = structlog.get_logger()


class SessionMode(str, Enum):
    REMOTE = "remote"
    ISOLATED = "isolated"


@dataclass(frozen=True)
class SessionContext:
    """Who is asking. Fixed for the lifetime of a session."""

    session_id: str
    user_id: str | None = None
    access_token: str | None = None
    guest: bool = False


def mirror_namespace(user_id: str) -> str:
    """Path-safe mirror namespace for a user id."""
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()


def token_subject(token: str) -> str | None:
    """``sub`` claim of a JWT, read without checking the signature.

    The remote store checks the signature on every call.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except ValueError:
        return None
    if not isinstance(claims, dict):
        return None
    subject = claims.get("sub")
    return subject if isinstance(subject, str) else None


class SessionModeResolver:
    """Classifies sessions and hands out their StoreRegistry."""

    def __init__(self, settings: "Settings") -> None:
        self._settings = settings
        self._allocator = PositionAllocator(
            gap=settings.ordering.gap,
            min_headroom=settings.ordering.min_headroom,
        )
        # session_id -> registry over that session's in-memory namespace
        self._isolated: dict[str, StoreRegistry] = {}
        # user_id -> (access_token, registry)
        self._remote: dict[str, tuple[str, StoreRegistry]] = {}
        self._sql: SqlBackend | None = None
        self._log = logger.bind(component="session_mode")

    def resolve(self, context: SessionContext) -> SessionMode:
        if (
            self._settings.remote.is_configured
            and not context.guest
            and context.user_id
            and context.access_token
        ):
            return SessionMode.REMOTE
        return SessionMode.ISOLATED

    def registry_for(self, context: SessionContext) -> StoreRegistry:
        """Registry backing ``context``.

        Registries are reused across calls, so scope locks and the Archive
        board cache cover every request of the same session. A remote
        registry is rebuilt when the user's access token changes.
        """
        mode = self.resolve(context)
        if mode is SessionMode.REMOTE:
            return self._remote_registry(context)

        registry = self._isolated.get(context.session_id)
        if registry is None:
            seed = STARTER_DATA if self._settings.isolated.seed_starter_data else None
            registry = StoreRegistry(
                PersistenceGateway(MemoryMirror(seed=seed)),
                allocator=self._allocator,
            )
            self._isolated[context.session_id] = registry
            self._log.info("session.isolated_created", session_id=context.session_id)
        return registry

    def _remote_registry(self, context: SessionContext) -> StoreRegistry:
        """Registry over the hosted store.

        Raises:
            AuthError: If the REST access token names another user
        """
        cached = self._remote.get(context.user_id)
        if cached is not None and cached[0] == context.access_token:
            return cached[1]

        remote_config = self._settings.remote
        mirror_config = self._settings.mirror
        if (
            remote_config.backend == "rest"
            and token_subject(context.access_token) != context.user_id
        ):
            raise AuthError(
                "Access token does not belong to the session user",
                details={"user_id": context.user_id},
            )

        verified_mirror = JsonFileMirror(
            mirror_config.directory,
            namespace=mirror_namespace(context.user_id),
            seed=STARTER_DATA if mirror_config.seed_starter_data else None,
        )
        gateway = PersistenceGateway(
            MemoryMirror(),
            self._build_backend(context),
            timeout_seconds=remote_config.timeout_seconds,
            prefetch=mirror_config.prefetch,
            verified_mirror=verified_mirror,
        )
        registry = StoreRegistry(gateway, allocator=self._allocator)
        self._remote[context.user_id] = (context.access_token, registry)
        self._log.info("session.remote_created", user_id=context.user_id)
        return registry

    def _build_backend(self, context: SessionContext) -> RemoteBackend:
        config = self._settings.remote
        if config.backend == "sql":
            return self._sql_backend()
        return RestBackend(
            get_http_client(),
            base_url=config.url,
            api_key=config.api_key,
            access_token=context.access_token,
        )

    def _sql_backend(self) -> SqlBackend:
        # One engine (and its pool) for every remote session
        if self._sql is None:
            self._sql = SqlBackend.from_config(self._settings.remote)
        return self._sql

    def end_session(self, session_id: str) -> None:
        """Drop an isolated session's namespace."""
        if self._isolated.pop(session_id, None) is not None:
            self._log.info("session.isolated_dropped", session_id=session_id)

    async def close(self) -> None:
        self._isolated.clear()
        self._remote.clear()
        if self._sql is not None:
            await self._sql.close()
            self._sql = None
