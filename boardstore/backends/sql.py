"""SQL backend using SQLModel async.

Any SQLAlchemy async URL works (``postgresql+asyncpg://``,
``sqlite+aiosqlite://``). ``upsert_many`` runs in a single transaction.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, select

from boardstore.backends.base import RemoteBackend
from boardstore.errors import NetworkError
from boardstore.models.container import ROW_FIELDS
from boardstore.models.records import RECORD_TYPES

if TYPE_CHECKING:
    from boardstore.config import RemoteConfig
    from boardstore.models.container import ContainerKind

logger = structlog.get_logger()


def _to_row(record: SQLModel) -> dict[str, Any]:
    data = record.model_dump(mode="json")
    return {field: data.get(field) for field in ROW_FIELDS}


class SqlBackend(RemoteBackend):
    """Hosted store reached through an async SQLAlchemy engine."""

    name = "sql"

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._log = logger.bind(backend="sql")

    @classmethod
    def from_config(cls, config: "RemoteConfig") -> SqlBackend:
        """Build from settings; ``api_key`` is the database password."""
        url = make_url(config.url)
        if config.api_key and not url.password and not url.drivername.startswith("sqlite"):
            url = url.set(password=config.api_key)
        return cls(create_async_engine(url, future=True))

    async def create_tables(self) -> None:
        """Create container tables (development/testing convenience)."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"create tables failed: {e}") from e

    async def select(
        self,
        kind: "ContainerKind",
        filters: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        record_type = RECORD_TYPES[kind]
        query = select(record_type)
        for column, value in filters.items():
            attr = getattr(record_type, column)
            query = query.where(attr.is_(None) if value is None else attr == value)
        query = query.order_by(record_type.position)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [_to_row(r) for r in result.scalars().all()]
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"select {kind.table} failed: {e}") from e

    async def insert(self, kind: "ContainerKind", row: dict[str, Any]) -> dict[str, Any]:
        record_type = RECORD_TYPES[kind]
        values = {k: v for k, v in row.items() if v is not None or k != "id"}
        try:
            record = record_type.model_validate(values)
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
                return _to_row(record)
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"insert {kind.table} failed: {e}") from e

    async def update(
        self,
        kind: "ContainerKind",
        container_id: str,
        values: dict[str, Any],
    ) -> dict[str, Any]:
        record_type = RECORD_TYPES[kind]
        try:
            async with self._session_factory() as session:
                record = await session.get(record_type, container_id)
                if record is None:
                    return {}
                patched = record_type.model_validate({**_to_row(record), **values})
                for field in ROW_FIELDS:
                    if field != "id":
                        setattr(record, field, getattr(patched, field))
                await session.commit()
                await session.refresh(record)
                return _to_row(record)
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"update {kind.table} failed: {e}") from e

    async def upsert_many(
        self,
        kind: "ContainerKind",
        rows: Sequence[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        record_type = RECORD_TYPES[kind]
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    merged = [
                        await session.merge(record_type.model_validate(row))
                        for row in rows
                    ]
                return [_to_row(r) for r in merged]
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"upsert {kind.table} failed: {e}") from e

    async def delete(self, kind: "ContainerKind", ids: Sequence[str]) -> None:
        record_type = RECORD_TYPES[kind]
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for container_id in ids:
                        record = await session.get(record_type, container_id)
                        if record is not None:
                            await session.delete(record)
        except (SQLAlchemyError, OSError) as e:
            raise NetworkError(f"delete {kind.table} failed: {e}") from e

    async def close(self) -> None:
        await self._engine.dispose()
        self._log.info("sql.closed")
