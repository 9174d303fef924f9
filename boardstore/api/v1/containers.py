"""Container API endpoints.

Workspaces, boards, lists and cards expose the same commands, so one
router is built per kind.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query, Response
from pydantic import BaseModel, Field

from boardstore.api.dependencies import RegistryDep, SessionContextDep
from boardstore.models.container import Container, ContainerKind, ResultSource

# Request/Response Models


class CreateContainerRequest(BaseModel):
    """Create at the end of ``parent_id``'s children."""

    parent_id: str | None = None
    name: str
    workspace_id: str | None = Field(
        default=None,
        description="Used only when the parent cannot be read during an outage.",
    )


class RenameContainerRequest(BaseModel):
    name: str


class MoveContainerRequest(BaseModel):
    parent_id: str | None = None
    index: int | None = Field(
        default=None,
        description="Target index among the new siblings; null means end of list.",
    )


class MoveToBoardRequest(BaseModel):
    board_id: str
    list_id: str | None = Field(
        default=None,
        description="Target list; defaults to the board's first list.",
    )
    index: int | None = None


class RestoreContainerRequest(BaseModel):
    parent_id: str | None = Field(
        default=None,
        description="Restore target; defaults to the remembered parent.",
    )


class ContainerResponse(BaseModel):
    kind: ContainerKind
    id: str
    parent_id: str | None
    workspace_id: str | None
    name: str
    position: float
    archived: bool
    is_archive: bool
    restore_parent_id: str | None
    created_at: datetime
    updated_at: datetime
    source: ResultSource


class ContainerListResponse(BaseModel):
    items: list[ContainerResponse]


def _to_response(container: Container) -> ContainerResponse:
    return ContainerResponse.model_validate(container.model_dump())


# Endpoints


def build_router(kind: ContainerKind) -> APIRouter:
    """Router with the container commands for ``kind``."""
    router = APIRouter()

    @router.get("", response_model=ContainerListResponse)
    async def list_containers(
        registry: RegistryDep,
        parent_id: str | None = Query(None),
    ) -> ContainerListResponse:
        """List children of ``parent_id`` in display order."""
        items = await registry.store(kind).list(parent_id)
        return ContainerListResponse(items=[_to_response(c) for c in items])

    @router.get("/{container_id}", response_model=ContainerResponse)
    async def get_container(container_id: str, registry: RegistryDep) -> ContainerResponse:
        return _to_response(await registry.store(kind).get(container_id))

    @router.post("", response_model=ContainerResponse, status_code=201)
    async def create_container(
        request: CreateContainerRequest,
        registry: RegistryDep,
    ) -> ContainerResponse:
        container = await registry.store(kind).create(
            request.parent_id, request.name, workspace_id=request.workspace_id
        )
        return _to_response(container)

    @router.patch("/{container_id}", response_model=ContainerResponse)
    async def rename_container(
        container_id: str,
        request: RenameContainerRequest,
        registry: RegistryDep,
    ) -> ContainerResponse:
        container = await registry.store(kind).rename(container_id, request.name)
        return _to_response(container)

    @router.post("/{container_id}/move", response_model=ContainerResponse)
    async def move_container(
        container_id: str,
        request: MoveContainerRequest,
        registry: RegistryDep,
    ) -> ContainerResponse:
        container = await registry.store(kind).move(
            container_id, request.parent_id, request.index
        )
        return _to_response(container)

    @router.post("/{container_id}/archive", response_model=ContainerResponse)
    async def archive_container(
        container_id: str,
        registry: RegistryDep,
    ) -> ContainerResponse:
        return _to_response(await registry.store(kind).archive(container_id))

    @router.post("/{container_id}/restore", response_model=ContainerResponse)
    async def restore_container(
        container_id: str,
        registry: RegistryDep,
        request: RestoreContainerRequest | None = None,
    ) -> ContainerResponse:
        target = request.parent_id if request else None
        container = await registry.store(kind).restore(container_id, target)
        return _to_response(container)

    @router.delete("/{container_id}", status_code=204)
    async def delete_container(container_id: str, registry: RegistryDep) -> Response:
        """Permanently delete an archived container."""
        await registry.store(kind).delete(container_id)
        return Response(status_code=204)

    return router


workspaces_router = build_router(ContainerKind.WORKSPACE)


@workspaces_router.get("/{workspace_id}/archive", response_model=ContainerResponse)
async def get_archive_board(workspace_id: str, registry: RegistryDep) -> ContainerResponse:
    """The workspace's Archive board, created on first request."""
    return _to_response(await registry.archives.archive_for(workspace_id))


boards_router = build_router(ContainerKind.BOARD)


@boards_router.get("/{board_id}/cards", response_model=ContainerListResponse)
async def list_board_cards(board_id: str, registry: RegistryDep) -> ContainerListResponse:
    """Cards of the board, list by list."""
    items = await registry.cards.cards_on_board(board_id)
    return ContainerListResponse(items=[_to_response(c) for c in items])


@boards_router.get("/{board_id}/cards/archived", response_model=ContainerListResponse)
async def list_archived_board_cards(
    board_id: str,
    registry: RegistryDep,
) -> ContainerListResponse:
    """Archived cards that came from this board."""
    items = await registry.cards.archived_cards(board_id)
    return ContainerListResponse(items=[_to_response(c) for c in items])


cards_router = build_router(ContainerKind.CARD)


@cards_router.post("/{card_id}/move-to-board", response_model=ContainerResponse)
async def move_card_to_board(
    card_id: str,
    request: MoveToBoardRequest,
    registry: RegistryDep,
) -> ContainerResponse:
    card = await registry.cards.move_to_board(
        card_id, request.board_id, request.list_id, request.index
    )
    return _to_response(card)


me_router = APIRouter()


@me_router.get("/workspaces", response_model=ContainerListResponse)
async def list_my_workspaces(
    context: SessionContextDep,
    registry: RegistryDep,
) -> ContainerListResponse:
    """Workspaces of the session's user; guests see their demo dataset."""
    if context.user_id is None or context.guest:
        items = await registry.workspaces.list(None)
    else:
        items = await registry.workspaces.workspaces_for_user(context.user_id)
    return ContainerListResponse(items=[_to_response(c) for c in items])
