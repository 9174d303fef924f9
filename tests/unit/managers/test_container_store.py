"""Unit tests for ContainerStore ordering commands."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from boardstore.errors import ConstraintViolation, NotFoundError, ValidationError
from boardstore.managers import StoreRegistry
from boardstore.models.container import ContainerKind
from boardstore.ordering import is_strictly_increasing
from boardstore.services.gateway import PersistenceGateway
from boardstore.storage import JsonFileMirror, MemoryMirror
from tests.fakes import FakeRemoteBackend, make_row


def _registry(seed=None, remote=None) -> StoreRegistry:
    return StoreRegistry(PersistenceGateway(MemoryMirror(seed=seed), remote))


@pytest.fixture
def registry() -> StoreRegistry:
    return _registry()


@pytest.fixture
async def workspace(registry: StoreRegistry):
    return await registry.workspaces.create(None, "Team")


@pytest.fixture
async def board(registry: StoreRegistry, workspace):
    return await registry.boards.create(workspace.id, "Roadmap")


async def _positions(store, parent_id) -> list[float]:
    return [c.position for c in await store.list(parent_id)]


class TestCreate:
    async def test_first_child_gets_gap(self, registry: StoreRegistry, board):
        created = await registry.lists.create(board.id, "To Do")
        assert created.position == 1000
        assert created.parent_id == board.id
        assert created.workspace_id == board.workspace_id

    async def test_append_after_existing_siblings(self):
        registry = _registry(
            seed={
                ContainerKind.WORKSPACE: [make_row("ws-1", None, 1000)],
                ContainerKind.BOARD: [make_row("board-1", "ws-1", 1000)],
                ContainerKind.LIST: [
                    make_row("list-1", "board-1", 1000),
                    make_row("list-2", "board-1", 2000),
                ],
            }
        )
        created = await registry.lists.create("board-1", "Done")

        assert created.position == 3000
        assert [c.id for c in await registry.lists.list("board-1")][-1] == created.id

    async def test_workspace_is_its_own_owner(self, workspace):
        assert workspace.parent_id is None
        assert workspace.workspace_id is None
        assert workspace.owning_workspace_id == workspace.id

    @pytest.mark.parametrize("name", ["", "   "])
    async def test_empty_name_rejected(self, registry: StoreRegistry, board, name):
        with pytest.raises(ValidationError):
            await registry.lists.create(board.id, name)
        assert await registry.lists.list(board.id) == []

    async def test_name_is_trimmed(self, registry: StoreRegistry, board):
        created = await registry.lists.create(board.id, "  Doing  ")
        assert created.name == "Doing"

    async def test_missing_parent(self, registry: StoreRegistry):
        with pytest.raises(NotFoundError):
            await registry.lists.create("board-nope", "To Do")

    async def test_parent_required(self, registry: StoreRegistry):
        with pytest.raises(ValidationError):
            await registry.cards.create(None, "Orphan")

    async def test_workspace_cannot_have_parent(self, registry: StoreRegistry, workspace):
        with pytest.raises(ValidationError):
            await registry.workspaces.create(workspace.id, "Nested")

    async def test_cannot_create_inside_archive_board(self, registry: StoreRegistry, workspace):
        archive = await registry.archives.archive_for(workspace.id)
        with pytest.raises(ConstraintViolation):
            await registry.lists.create(archive.id, "Sneaky")

    async def test_concurrent_creates_get_distinct_positions(
        self, registry: StoreRegistry, board
    ):
        await asyncio.gather(*(registry.lists.create(board.id, f"L{i}") for i in range(5)))
        positions = await _positions(registry.lists, board.id)
        assert positions == [1000, 2000, 3000, 4000, 5000]


class TestRename:
    async def test_rename_keeps_position(self, registry: StoreRegistry, board):
        created = await registry.lists.create(board.id, "To Do")
        renamed = await registry.lists.rename(created.id, "Backlog")

        assert renamed.name == "Backlog"
        assert renamed.position == created.position
        assert (await registry.lists.get(created.id)).name == "Backlog"

    async def test_rename_rejects_empty(self, registry: StoreRegistry, board):
        created = await registry.lists.create(board.id, "To Do")
        with pytest.raises(ValidationError):
            await registry.lists.rename(created.id, "")

    async def test_rename_missing(self, registry: StoreRegistry):
        with pytest.raises(NotFoundError):
            await registry.cards.rename("card-nope", "x")


class TestMove:
    @pytest.fixture
    async def lists(self, registry: StoreRegistry, board):
        return [await registry.lists.create(board.id, name) for name in ("A", "B", "C")]

    async def test_insert_between_takes_midpoint(self, registry: StoreRegistry, board, lists):
        a, b, c = lists
        moved = await registry.lists.move(c.id, board.id, 1)

        assert moved.position == 1500
        assert [x.id for x in await registry.lists.list(board.id)] == [a.id, c.id, b.id]

    async def test_move_to_head(self, registry: StoreRegistry, board, lists):
        moved = await registry.lists.move(lists[2].id, board.id, 0)
        assert moved.position == 500
        assert (await registry.lists.list(board.id))[0].id == lists[2].id

    async def test_index_is_clamped(self, registry: StoreRegistry, board, lists):
        moved = await registry.lists.move(lists[0].id, board.id, 99)
        assert (await registry.lists.list(board.id))[-1].id == moved.id
        assert moved.position == 4000

    async def test_none_index_appends(self, registry: StoreRegistry, board, lists):
        moved = await registry.lists.move(lists[0].id, board.id)
        assert (await registry.lists.list(board.id))[-1].id == moved.id

    async def test_negative_index_rejected(self, registry: StoreRegistry, board, lists):
        with pytest.raises(ValidationError):
            await registry.lists.move(lists[0].id, board.id, -1)

    async def test_move_then_list_places_at_index(
        self, registry: StoreRegistry, workspace, board, lists
    ):
        other = await registry.boards.create(workspace.id, "Other")
        for name in ("X", "Y"):
            await registry.lists.create(other.id, name)

        for index in (0, 1, 2):
            moved = await registry.lists.move(lists[index].id, other.id, index)
            siblings = await registry.lists.list(other.id)
            assert siblings[index].id == moved.id
            assert is_strictly_increasing([s.position for s in siblings])

        assert await registry.lists.list(board.id) == []

    async def test_card_moves_to_other_list(self, registry: StoreRegistry, board, lists):
        card = await registry.cards.create(lists[0].id, "Task")
        moved = await registry.cards.move(card.id, lists[1].id, 0)

        assert moved.parent_id == lists[1].id
        assert await registry.cards.list(lists[0].id) == []
        assert [c.id for c in await registry.cards.list(lists[1].id)] == [card.id]

    async def test_cross_workspace_move_rejected(self, registry: StoreRegistry, lists):
        other_ws = await registry.workspaces.create(None, "Elsewhere")
        other_board = await registry.boards.create(other_ws.id, "Theirs")

        with pytest.raises(ConstraintViolation):
            await registry.lists.move(lists[0].id, other_board.id, 0)

    async def test_move_into_archive_rejected(self, registry: StoreRegistry, workspace, lists):
        archive = await registry.archives.archive_for(workspace.id)
        with pytest.raises(ConstraintViolation):
            await registry.lists.move(lists[0].id, archive.id, 0)

    async def test_missing_target(self, registry: StoreRegistry, lists):
        with pytest.raises(NotFoundError):
            await registry.lists.move(lists[0].id, "board-nope", 0)


class TestRebalance:
    @pytest.fixture
    def tight(self) -> StoreRegistry:
        return _registry(
            seed={
                ContainerKind.WORKSPACE: [make_row("ws-1", None, 1000)],
                ContainerKind.BOARD: [make_row("board-1", "ws-1", 1000)],
                ContainerKind.LIST: [
                    make_row("list-a", "board-1", 1000),
                    make_row("list-b", "board-1", 1001),
                ],
            }
        )

    async def test_insert_without_headroom_renumbers_scope(self, tight: StoreRegistry):
        created = await tight.lists.create("board-1", "New")
        moved = await tight.lists.move(created.id, "board-1", 1)

        siblings = await tight.lists.list("board-1")
        assert [s.id for s in siblings] == ["list-a", created.id, "list-b"]
        assert [s.position for s in siblings] == [1000, 2000, 3000]
        assert moved.position == 2000

    async def test_repeated_inserts_keep_order(self, registry: StoreRegistry, board):
        first = await registry.lists.create(board.id, "first")
        last = await registry.lists.create(board.id, "last")

        inserted = []
        for i in range(12):
            created = await registry.lists.create(board.id, f"n{i}")
            await registry.lists.move(created.id, board.id, 1)
            inserted.insert(0, created.id)

            positions = await _positions(registry.lists, board.id)
            assert is_strictly_increasing(positions)

        siblings = await registry.lists.list(board.id)
        assert [s.id for s in siblings] == [first.id, *inserted, last.id]
        # Headroom between the first two ran out at least once
        assert any(p % 1000 == 0 for p in (s.position for s in siblings[1:-1]))

    async def test_rebalance_is_one_bulk_write(self):
        remote = FakeRemoteBackend(
            {
                ContainerKind.WORKSPACE: [make_row("ws-1", None, 1000)],
                ContainerKind.BOARD: [make_row("board-1", "ws-1", 1000)],
                ContainerKind.LIST: [
                    make_row("list-a", "board-1", 1000),
                    make_row("list-b", "board-1", 1001),
                    make_row("list-c", "board-1", 2001),
                ],
            }
        )
        registry = _registry(remote=remote)

        await registry.lists.move("list-c", "board-1", 1)

        assert remote.count("upsert_many") == 1
        assert remote.count("update") == 0
        positions = {r["id"]: r["position"] for r in remote.tables[ContainerKind.LIST]}
        assert positions == {"list-a": 1000, "list-c": 2000, "list-b": 3000}


class TestOffline:
    async def test_create_during_outage(self):
        remote = FakeRemoteBackend(
            {
                ContainerKind.WORKSPACE: [make_row("ws-1", None, 1000)],
                ContainerKind.BOARD: [make_row("board-1", "ws-1", 1000)],
            }
        )
        registry = _registry(remote=remote)
        # Warm the mirror while online
        await registry.boards.list("ws-1")
        await registry.workspaces.get("ws-1")
        await registry.boards.get("board-1")

        remote.go_offline()
        created = await registry.lists.create("board-1", "Offline list")
        listed = await registry.lists.list("board-1")

        assert created.id
        assert created.source == "mirror"
        assert [c.id for c in listed] == [created.id]
        assert remote.tables[ContainerKind.LIST] == []

    async def test_concurrent_creates_across_lists(self, tmp_path: Path):
        remote = FakeRemoteBackend()
        mirror = JsonFileMirror(
            tmp_path,
            "user-1",
            seed={
                ContainerKind.WORKSPACE: [make_row("ws-1", None, 1000)],
                ContainerKind.BOARD: [make_row("board-1", "ws-1", 1000)],
                ContainerKind.LIST: [
                    make_row("list-a", "board-1", 1000),
                    make_row("list-b", "board-1", 2000),
                ],
            },
        )
        registry = StoreRegistry(PersistenceGateway(mirror, remote, timeout_seconds=0.2))
        remote.go_offline()

        created = await asyncio.gather(
            *(
                registry.cards.create("list-a" if i % 2 else "list-b", f"Card {i}")
                for i in range(10)
            )
        )

        listed = await registry.cards.list("list-a") + await registry.cards.list("list-b")
        assert {c.id for c in listed} == {c.id for c in created}
        assert is_strictly_increasing([c.position for c in await registry.cards.list("list-a")])

    async def test_create_with_cold_mirror(self):
        remote = FakeRemoteBackend(
            {
                ContainerKind.WORKSPACE: [make_row("ws-1", None, 1000)],
                ContainerKind.BOARD: [make_row("board-1", "ws-1", 1000)],
            }
        )
        registry = _registry(remote=remote)
        remote.go_offline()

        board = await registry.boards.create("ws-1", "Offline board")
        created = await registry.lists.create("board-1", "Offline list", workspace_id="ws-1")

        assert board.workspace_id == "ws-1"
        assert created.source == "mirror"
        assert created.parent_id == "board-1"
        assert created.workspace_id == "ws-1"
        assert [c.id for c in await registry.lists.list("board-1")] == [created.id]

    async def test_cold_mirror_workspace_from_siblings(self):
        remote = FakeRemoteBackend()
        registry = _registry(remote=remote)
        remote.go_offline()

        first = await registry.lists.create("board-1", "One", workspace_id="ws-1")
        second = await registry.lists.create("board-1", "Two")

        assert second.workspace_id == first.workspace_id == "ws-1"
        assert second.position > first.position

    async def test_missing_parent_still_rejected_online(self):
        registry = _registry(remote=FakeRemoteBackend())
        with pytest.raises(NotFoundError):
            await registry.lists.create("board-nope", "To Do")

    async def test_earlier_contact_fills_mirror(self):
        remote = FakeRemoteBackend(
            {
                ContainerKind.WORKSPACE: [make_row("ws-1", None, 1000)],
                ContainerKind.BOARD: [
                    make_row("board-1", "ws-1", 1000),
                    make_row("board-2", "ws-1", 2000),
                ],
            }
        )
        registry = _registry(remote=remote)
        await registry.boards.get("board-1")

        remote.go_offline()
        created = await registry.lists.create("board-2", "Never read before")

        assert created.workspace_id == "ws-1"


class TestBoardViews:
    @pytest.fixture
    def seeded(self) -> StoreRegistry:
        return _registry(
            seed={
                ContainerKind.WORKSPACE: [make_row("ws-1", None, 1000)],
                ContainerKind.BOARD: [
                    make_row("board-1", "ws-1", 1000),
                    make_row("board-2", "ws-1", 2000),
                    make_row("board-empty", "ws-1", 3000),
                ],
                ContainerKind.LIST: [
                    make_row("list-2", "board-1", 2000),
                    make_row("list-1", "board-1", 1000),
                    make_row("list-x", "board-2", 1000),
                    make_row("list-y", "board-2", 2000),
                ],
                ContainerKind.CARD: [
                    make_row("card-b", "list-2", 1000),
                    make_row("card-a2", "list-1", 2000),
                    make_row("card-a1", "list-1", 1000),
                    make_row("card-x", "list-x", 1000),
                ],
            }
        )

    async def test_cards_on_board_in_list_order(self, seeded: StoreRegistry):
        cards = await seeded.cards.cards_on_board("board-1")
        assert [c.id for c in cards] == ["card-a1", "card-a2", "card-b"]

    async def test_cards_on_archive_board_are_archived_ones(self, seeded: StoreRegistry):
        await seeded.cards.archive("card-a1")
        archive = await seeded.archives.archive_for("ws-1")

        cards = await seeded.cards.cards_on_board(archive.id)

        assert [c.id for c in cards] == ["card-a1"]
        assert "card-a1" not in [c.id for c in await seeded.cards.cards_on_board("board-1")]

    async def test_archived_cards_of_a_board(self, seeded: StoreRegistry):
        await seeded.cards.archive("card-a1")
        await seeded.cards.archive("card-x")

        assert [c.id for c in await seeded.cards.archived_cards("board-1")] == ["card-a1"]
        assert [c.id for c in await seeded.cards.archived_cards("board-2")] == ["card-x"]

    async def test_move_to_board_defaults_to_first_list(self, seeded: StoreRegistry):
        moved = await seeded.cards.move_to_board("card-b", "board-2")

        assert moved.parent_id == "list-x"
        assert [c.id for c in await seeded.cards.list("list-x")] == ["card-x", "card-b"]

    async def test_move_to_board_explicit_list_and_index(self, seeded: StoreRegistry):
        moved = await seeded.cards.move_to_board("card-b", "board-2", "list-y", 0)
        assert moved.parent_id == "list-y"

    async def test_move_to_board_list_must_be_on_board(self, seeded: StoreRegistry):
        with pytest.raises(ConstraintViolation):
            await seeded.cards.move_to_board("card-b", "board-2", "list-1")

    async def test_move_to_board_without_lists(self, seeded: StoreRegistry):
        with pytest.raises(ValidationError):
            await seeded.cards.move_to_board("card-b", "board-empty")

    async def test_move_to_archive_board_rejected(self, seeded: StoreRegistry):
        archive = await seeded.archives.archive_for("ws-1")
        with pytest.raises(ConstraintViolation):
            await seeded.cards.move_to_board("card-b", archive.id)

    async def test_card_views_only_on_card_store(self, seeded: StoreRegistry):
        with pytest.raises(ValidationError):
            await seeded.lists.cards_on_board("board-1")


class TestUserWorkspace:
    async def test_created_once_with_user_id(self, registry: StoreRegistry):
        first = await registry.workspaces.user_workspace("user-1")
        second = await registry.workspaces.user_workspace("user-1")

        assert first.id == second.id == "user-1"
        assert first.name == "My Workspace"
        assert [w.id for w in await registry.workspaces.list(None)] == ["user-1"]

    async def test_concurrent_callers_share_one(self, registry: StoreRegistry):
        results = await asyncio.gather(
            *(registry.workspaces.user_workspace("user-1") for _ in range(5))
        )
        assert {w.id for w in results} == {"user-1"}
        assert len(await registry.workspaces.list(None)) == 1

    async def test_workspaces_for_user(self, registry: StoreRegistry):
        await registry.workspaces.create(None, "Someone else's")
        workspaces = await registry.workspaces.workspaces_for_user("user-1")
        assert [w.id for w in workspaces] == ["user-1"]

    async def test_only_on_workspace_store(self, registry: StoreRegistry):
        with pytest.raises(ValidationError):
            await registry.boards.user_workspace("user-1")
