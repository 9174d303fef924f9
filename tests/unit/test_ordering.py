"""Unit tests for PositionAllocator."""

from __future__ import annotations

import pytest

from boardstore.errors import NeedsRebalance
from boardstore.ordering import PositionAllocator, is_strictly_increasing


@pytest.fixture
def allocator() -> PositionAllocator:
    return PositionAllocator()


class TestEndOfList:
    def test_empty_scope_starts_at_gap(self, allocator: PositionAllocator):
        assert allocator.end_of_list([]) == 1000.0

    def test_appends_after_max(self, allocator: PositionAllocator):
        assert allocator.end_of_list([1000, 2000]) == 3000.0

    def test_unordered_input(self, allocator: PositionAllocator):
        assert allocator.end_of_list([2500, 1000, 1500]) == 3500.0

    def test_custom_gap(self):
        assert PositionAllocator(gap=10).end_of_list([10, 20]) == 30.0


class TestBetween:
    def test_midpoint(self, allocator: PositionAllocator):
        assert allocator.between(1000, 2000) == 1500.0

    def test_no_headroom_raises(self, allocator: PositionAllocator):
        with pytest.raises(NeedsRebalance) as exc_info:
            allocator.between(1000, 1001)
        assert exc_info.value.before == 1000
        assert exc_info.value.after == 1001

    def test_exactly_min_headroom_is_allowed(self, allocator: PositionAllocator):
        assert allocator.between(1000, 1002) == 1001.0

    def test_repeated_inserts_eventually_need_rebalance(self, allocator: PositionAllocator):
        before, after = 1000.0, 2000.0
        inserted = 0
        with pytest.raises(NeedsRebalance):
            for _ in range(50):
                after = allocator.between(before, after)
                inserted += 1
        # 1000 / 2**9 < 2
        assert inserted == 9


class TestAtIndex:
    def test_head_uses_zero_as_neighbour(self, allocator: PositionAllocator):
        assert allocator.at_index([1000, 2000], 0) == 500.0

    def test_middle(self, allocator: PositionAllocator):
        assert allocator.at_index([1000, 2000], 1) == 1500.0

    def test_end(self, allocator: PositionAllocator):
        assert allocator.at_index([1000, 2000], 2) == 3000.0

    def test_empty_scope(self, allocator: PositionAllocator):
        assert allocator.at_index([], 0) == 1000.0

    def test_tight_neighbours_raise(self, allocator: PositionAllocator):
        with pytest.raises(NeedsRebalance):
            allocator.at_index([1000, 1001], 1)


class TestRebalance:
    def test_fixed_gaps_in_order(self, allocator: PositionAllocator):
        assert allocator.rebalance(["a", "b", "c"]) == [1000.0, 2000.0, 3000.0]

    def test_empty(self, allocator: PositionAllocator):
        assert allocator.rebalance([]) == []

    def test_deterministic(self, allocator: PositionAllocator):
        items = ["x", "y"]
        assert allocator.rebalance(items) == allocator.rebalance(items)


def test_is_strictly_increasing():
    assert is_strictly_increasing([])
    assert is_strictly_increasing([1000])
    assert is_strictly_increasing([500, 1000, 1500])
    assert not is_strictly_increasing([1000, 1000])
    assert not is_strictly_increasing([2000, 1000])
