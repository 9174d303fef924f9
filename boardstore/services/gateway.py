"""PersistenceGateway - remote store with local mirror fallback.

Every operation is attempted exactly once against the remote backend,
bounded by a timeout. On success the canonical rows are returned and also
merged into the local mirror. On failure (``NetworkError`` or timeout) a
warning is logged and the same operation is applied to the mirror; the
caller gets a result of the same shape, told apart only by ``source``.

A gateway built without a remote backend (isolated sessions) works on the
mirror alone and never touches the network.

Reconciliation policy: nothing written through the fallback is pushed to
the remote store automatically. The gateway journals those ids per kind.
When a later remote read succeeds, journaled rows are reported as
``gateway.mirror_diverged`` warnings; rows the remote does not know about
stay in the mirror, rows it does know about take the remote version.
``pending_writes`` exposes the journal for an explicit resync.

Every load-modify-save of a kind's snapshot holds that kind's mirror lock,
so concurrent commands on different sibling scopes never overwrite each
other's writes.

The first successful remote call for a kind also pulls the kind's full
collection into the mirror (``prefetch``), so an outage later on can still
answer for rows that were never read individually.

A gateway may be given a ``verified_mirror``: until the remote store has
accepted this session's credentials once, fallback reads and writes go to
the initial (ephemeral) mirror only. After the first success the
verified mirror takes over, with everything cached so far merged into it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from boardstore.backends.base import RemoteBackend
from boardstore.errors import NetworkError
from boardstore.models.container import Container, ContainerKind, ResultSource
from boardstore.storage.mirror import Mirror, Rows
from boardstore.utils.ids import new_id

logger = structlog.get_logger()


class Action(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    UPDATE_MANY = "update_many"
    DELETE = "delete"


@dataclass
class Operation:
    """One persistence command for a single container kind."""

    kind: ContainerKind
    action: Action
    filters: dict[str, Any] = field(default_factory=dict)
    container_id: str | None = None
    values: dict[str, Any] = field(default_factory=dict)
    rows: list[dict[str, Any]] = field(default_factory=list)
    ids: list[str] = field(default_factory=list)


@dataclass
class GatewayResult:
    """Rows produced by an operation and where they came from."""

    kind: ContainerKind
    rows: list[dict[str, Any]]
    source: ResultSource
    # Served by the mirror because the remote store failed. A miss in such
    # a result says nothing about whether the row exists remotely.
    fallback: bool = False

    @property
    def row(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def containers(self) -> list[Container]:
        return [Container.from_row(self.kind, r, self.source) for r in self.rows]

    def container(self) -> Container | None:
        row = self.row
        return Container.from_row(self.kind, row, self.source) if row else None


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    for column, value in filters.items():
        if value is None:
            if row.get(column) is not None:
                return False
        elif row.get(column) != value:
            return False
    return True


def _by_position(rows: Rows) -> Rows:
    return sorted(rows, key=lambda r: (r.get("position") is None, r.get("position") or 0))


def _upsert(snapshot: Rows, rows: Sequence[dict[str, Any]]) -> None:
    index = {r.get("id"): i for i, r in enumerate(snapshot)}
    for row in rows:
        i = index.get(row.get("id"))
        if i is None:
            index[row.get("id")] = len(snapshot)
            snapshot.append(dict(row))
        else:
            snapshot[i] = {**snapshot[i], **row}


class PersistenceGateway:
    """Uniform create/read/update/delete with automatic mirror fallback."""

    def __init__(
        self,
        mirror: Mirror,
        remote: RemoteBackend | None = None,
        *,
        timeout_seconds: float = 10.0,
        prefetch: bool = True,
        verified_mirror: Mirror | None = None,
    ) -> None:
        """Initialize gateway.

        Args:
            mirror: Snapshot store used for fallback (and for everything
                when there is no remote)
            remote: Hosted store; ``None`` for isolated sessions
            timeout_seconds: Bound on the single remote attempt
            prefetch: Pull each kind's full collection into the mirror on
                the first successful remote call for that kind
            verified_mirror: Mirror to switch to once the remote store has
                accepted a call
        """
        self._mirror = mirror
        self._remote = remote
        self._timeout = timeout_seconds
        self._prefetch = prefetch and remote is not None
        self._verified_mirror = verified_mirror
        self._degraded: set[ContainerKind] = set()
        self._prefetched: set[ContainerKind] = set()
        # kind -> {id: "upsert" | "delete"} written while the remote was down
        self._pending: dict[ContainerKind, dict[str, str]] = {}
        self._mirror_locks = {kind: asyncio.Lock() for kind in ContainerKind}
        self._log = logger.bind(
            component="gateway",
            remote=remote.name if remote else None,
        )

    @property
    def isolated(self) -> bool:
        """True when there is no remote store at all."""
        return self._remote is None

    @property
    def degraded_kinds(self) -> set[ContainerKind]:
        """Kinds whose last remote attempt failed."""
        return set(self._degraded)

    def pending_writes(self, kind: ContainerKind) -> dict[str, str]:
        """Ids written only to the mirror, with the write type."""
        return dict(self._pending.get(kind, {}))

    def clear_pending(self, kind: ContainerKind) -> None:
        self._pending.pop(kind, None)

    async def close(self) -> None:
        if self._remote is not None:
            await self._remote.close()

    # ---- command surface ----

    async def execute(self, operation: Operation) -> GatewayResult:
        """Run ``operation`` remotely, falling back to the mirror."""
        kind = operation.kind
        if self._remote is None:
            async with self._mirror_locks[kind]:
                rows = await self._apply_to_mirror(operation)
            return GatewayResult(kind, rows, "mirror")

        try:
            rows = await asyncio.wait_for(
                self._call_remote(self._remote, operation),
                timeout=self._timeout,
            )
        except (NetworkError, TimeoutError) as e:
            self._log.warning(
                "gateway.remote_failed",
                kind=kind.value,
                action=operation.action.value,
                error=str(e) or type(e).__name__,
            )
            self._degraded.add(kind)
            async with self._mirror_locks[kind]:
                rows = await self._apply_to_mirror(operation, journal=True)
            return GatewayResult(kind, rows, "mirror", fallback=True)

        if kind in self._degraded:
            self._degraded.discard(kind)
            self._log.info("gateway.remote_recovered", kind=kind.value)

        try:
            if self._verified_mirror is not None:
                await self._promote_mirror()
            async with self._mirror_locks[kind]:
                await self._sync_mirror(operation, rows)
            if self._prefetch and kind not in self._prefetched:
                await self._prefetch_kind(kind)
        except OSError as e:
            # Remote write already succeeded; a stale mirror only matters offline
            self._log.warning(
                "gateway.mirror_sync_failed",
                kind=kind.value,
                error=str(e),
            )
        return GatewayResult(kind, rows, "remote")

    async def _prefetch_kind(self, kind: ContainerKind) -> None:
        """Replace the kind's snapshot with the remote's full collection."""
        # Held across the remote read so no sync lands between read and save
        async with self._mirror_locks[kind]:
            if kind in self._prefetched:
                return
            try:
                rows = await asyncio.wait_for(
                    self._remote.select(kind, {}),
                    timeout=self._timeout,
                )
            except (NetworkError, TimeoutError) as e:
                # Retried on the next successful call
                self._log.warning(
                    "gateway.prefetch_failed",
                    kind=kind.value,
                    error=str(e) or type(e).__name__,
                )
                return
            await self._sync_mirror(Operation(kind=kind, action=Action.SELECT), rows)
            self._prefetched.add(kind)
        self._log.info("gateway.prefetched", kind=kind.value, count=len(rows))

    async def _promote_mirror(self) -> None:
        """Switch to the verified mirror, carrying over what was cached so far."""
        target, self._verified_mirror = self._verified_mirror, None
        async with AsyncExitStack() as stack:
            for kind in ContainerKind:
                await stack.enter_async_context(self._mirror_locks[kind])
            for kind in ContainerKind:
                rows = await self._mirror.load(kind)
                pending = self._pending.get(kind, {})
                if not rows and not pending:
                    continue
                gone = {row_id for row_id, write in pending.items() if write == "delete"}
                snapshot = [r for r in await target.load(kind) if r.get("id") not in gone]
                _upsert(snapshot, rows)
                await target.save(kind, snapshot)
            self._mirror = target
        self._log.info("gateway.mirror_verified")

    async def select(
        self,
        kind: ContainerKind,
        filters: Mapping[str, Any] | None = None,
    ) -> GatewayResult:
        return await self.execute(
            Operation(kind=kind, action=Action.SELECT, filters=dict(filters or {}))
        )

    async def get(self, kind: ContainerKind, container_id: str) -> Container | None:
        result = await self.select(kind, {"id": container_id})
        return result.container()

    async def insert(self, kind: ContainerKind, row: dict[str, Any]) -> GatewayResult:
        return await self.execute(Operation(kind=kind, action=Action.INSERT, rows=[row]))

    async def update(
        self,
        kind: ContainerKind,
        container_id: str,
        values: dict[str, Any],
    ) -> GatewayResult:
        return await self.execute(
            Operation(
                kind=kind,
                action=Action.UPDATE,
                container_id=container_id,
                values=values,
            )
        )

    async def update_many(
        self,
        kind: ContainerKind,
        rows: Sequence[dict[str, Any]],
    ) -> GatewayResult:
        """Write full rows atomically (all or nothing)."""
        return await self.execute(
            Operation(kind=kind, action=Action.UPDATE_MANY, rows=list(rows))
        )

    async def delete(self, kind: ContainerKind, ids: Sequence[str]) -> GatewayResult:
        return await self.execute(
            Operation(kind=kind, action=Action.DELETE, ids=list(ids))
        )

    # ---- remote path ----

    async def _call_remote(self, remote: RemoteBackend, op: Operation) -> Rows:
        if op.action is Action.SELECT:
            return await remote.select(op.kind, op.filters)

        if op.action is Action.INSERT:
            sent = op.rows[0]
            stored = await remote.insert(op.kind, sent)
            row = {**sent, **stored}
            if not row.get("id"):
                row["id"] = new_id(op.kind.id_prefix)
            return [row]

        if op.action is Action.UPDATE:
            stored = await remote.update(op.kind, op.container_id, op.values)
            return [{**op.values, **stored, "id": op.container_id}]

        if op.action is Action.UPDATE_MANY:
            stored_rows = await remote.upsert_many(op.kind, op.rows)
            return stored_rows or [dict(r) for r in op.rows]

        await remote.delete(op.kind, op.ids)
        return []

    async def _sync_mirror(self, op: Operation, rows: Rows) -> None:
        """Merge a successful remote result into the mirror snapshot."""
        pending = self._pending.setdefault(op.kind, {})
        snapshot = await self._mirror.load(op.kind)

        if op.action is Action.SELECT:
            returned = {r.get("id") for r in rows}
            # Journaled ids the remote now answers for take the remote version
            diverged = [row_id for row_id in returned if row_id in pending]
            kept = []
            for existing in snapshot:
                row_id = existing.get("id")
                if not _matches(existing, op.filters) or row_id in returned:
                    kept.append(existing)
                elif pending.get(row_id) == "upsert":
                    # Only the mirror knows this row; keep it
                    kept.append(existing)
                    diverged.append(row_id)
            if diverged:
                self._log.warning(
                    "gateway.mirror_diverged",
                    kind=op.kind.value,
                    ids=sorted(diverged),
                )
            snapshot = kept
            _upsert(snapshot, rows)
            for row_id in returned:
                pending.pop(row_id, None)
        elif op.action is Action.DELETE:
            gone = set(op.ids)
            snapshot = [r for r in snapshot if r.get("id") not in gone]
            for row_id in gone:
                pending.pop(row_id, None)
        else:
            _upsert(snapshot, rows)
            for row in rows:
                pending.pop(row.get("id"), None)

        await self._mirror.save(op.kind, snapshot)

    # ---- mirror path ----

    async def _apply_to_mirror(self, op: Operation, *, journal: bool = False) -> Rows:
        snapshot = await self._mirror.load(op.kind)

        if op.action is Action.SELECT:
            return _by_position([r for r in snapshot if _matches(r, op.filters)])

        pending = self._pending.setdefault(op.kind, {}) if journal else {}

        if op.action is Action.INSERT:
            row = dict(op.rows[0])
            if not row.get("id"):
                row["id"] = new_id(op.kind.id_prefix)
            _upsert(snapshot, [row])
            pending[row["id"]] = "upsert"
            await self._mirror.save(op.kind, snapshot)
            return [row]

        if op.action is Action.UPDATE:
            for i, existing in enumerate(snapshot):
                if existing.get("id") == op.container_id:
                    snapshot[i] = {**existing, **op.values, "id": op.container_id}
                    pending[op.container_id] = "upsert"
                    await self._mirror.save(op.kind, snapshot)
                    return [snapshot[i]]
            return []

        if op.action is Action.UPDATE_MANY:
            _upsert(snapshot, op.rows)
            for row in op.rows:
                pending[row["id"]] = "upsert"
            await self._mirror.save(op.kind, snapshot)
            return [dict(r) for r in op.rows]

        gone = set(op.ids)
        snapshot = [r for r in snapshot if r.get("id") not in gone]
        for row_id in gone:
            pending[row_id] = "delete"
        await self._mirror.save(op.kind, snapshot)
        return []
