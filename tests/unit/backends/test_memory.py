import asyncio

import pytest

from stock_reservation.backends.memory import MemoryReservationStore
from stock_reservation.exceptions import ValidationError


class TestMemoryReservationStore:
    @pytest.mark.asyncio
    async def test_init(self):
        store = MemoryReservationStore(namespace="test_ns")
        assert store.namespace == "test_ns"
        assert store._holds == {}
        assert await store.get_reserved_count(1) == 0

    @pytest.mark.asyncio
    async def test_add_hold(self, memory_store):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        assert await memory_store.get_hold(1, "alice") == 3
        assert await memory_store.get_reserved_count(1) == 3

    @pytest.mark.asyncio
    async def test_holds_accumulate_across_users(self, memory_store):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        await memory_store.add_hold(1, "bob", 2, ttl=60)
        assert await memory_store.get_reserved_count(1) == 5

    @pytest.mark.asyncio
    async def test_products_are_isolated(self, memory_store):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        assert await memory_store.get_reserved_count(2) == 0
        assert await memory_store.get_hold(2, "alice") is None

    @pytest.mark.asyncio
    async def test_overwrite_moves_counter_by_difference(self, memory_store):
        """Re-holding replaces the quantity and corrects the counter."""
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        await memory_store.add_hold(1, "alice", 1, ttl=60)
        assert await memory_store.get_hold(1, "alice") == 1
        assert await memory_store.get_reserved_count(1) == 1

        await memory_store.add_hold(1, "alice", 4, ttl=60)
        assert await memory_store.get_reserved_count(1) == 4

    @pytest.mark.asyncio
    async def test_overwrite_refreshes_ttl(self, memory_store, clock):
        await memory_store.add_hold(1, "alice", 2, ttl=60)
        clock.advance(50)
        await memory_store.add_hold(1, "alice", 2, ttl=60)
        clock.advance(50)
        assert await memory_store.get_hold(1, "alice") == 2

    @pytest.mark.asyncio
    async def test_remove_hold(self, memory_store):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        assert await memory_store.remove_hold(1, "alice") == 3
        assert await memory_store.get_hold(1, "alice") is None
        assert await memory_store.get_reserved_count(1) == 0

    @pytest.mark.asyncio
    async def test_remove_missing_hold(self, memory_store):
        await memory_store.add_hold(1, "bob", 2, ttl=60)
        assert await memory_store.remove_hold(1, "alice") is None
        assert await memory_store.get_reserved_count(1) == 2

    @pytest.mark.asyncio
    async def test_remove_twice(self, memory_store):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        assert await memory_store.remove_hold(1, "alice") == 3
        assert await memory_store.remove_hold(1, "alice") is None
        assert await memory_store.get_reserved_count(1) == 0

    @pytest.mark.asyncio
    async def test_add_hold_validates(self, memory_store):
        with pytest.raises(ValidationError):
            await memory_store.add_hold(1, "alice", 0, ttl=60)
        with pytest.raises(ValidationError):
            await memory_store.add_hold(1, "", 1, ttl=60)
        assert await memory_store.get_reserved_count(1) == 0


class TestPassiveExpiry:
    @pytest.mark.asyncio
    async def test_hold_expires_but_counter_stays(self, memory_store, clock):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        clock.advance(60)

        assert await memory_store.get_hold(1, "alice") is None
        assert await memory_store.get_reserved_count(1) == 3

    @pytest.mark.asyncio
    async def test_hold_alive_before_ttl(self, memory_store, clock):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        clock.advance(59.9)
        assert await memory_store.get_hold(1, "alice") == 3

    @pytest.mark.asyncio
    async def test_remove_after_expiry_is_noop(self, memory_store, clock):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        clock.advance(61)
        assert await memory_store.remove_hold(1, "alice") is None
        assert await memory_store.get_reserved_count(1) == 3

    @pytest.mark.asyncio
    async def test_add_after_expiry_counts_from_zero(self, memory_store, clock):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        clock.advance(61)
        await memory_store.add_hold(1, "alice", 2, ttl=60)
        # The expired 3 is drift; the new 2 is added on top
        assert await memory_store.get_reserved_count(1) == 5

    @pytest.mark.asyncio
    async def test_stale_heap_entries_skipped(self, memory_store, clock):
        """An overwritten hold keeps its newer expiry."""
        await memory_store.add_hold(1, "alice", 1, ttl=10)
        await memory_store.add_hold(1, "alice", 1, ttl=100)
        clock.advance(20)
        assert await memory_store.get_hold(1, "alice") == 1


class TestReconcile:
    @pytest.mark.asyncio
    async def test_reconcile_removes_drift(self, memory_store, clock):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        await memory_store.add_hold(1, "bob", 2, ttl=600)
        clock.advance(61)

        assert await memory_store.get_reserved_count(1) == 5
        assert await memory_store.reconcile(1) == 2
        assert await memory_store.get_reserved_count(1) == 2

    @pytest.mark.asyncio
    async def test_reconcile_ignores_other_products(self, memory_store):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        await memory_store.add_hold(11, "alice", 7, ttl=60)
        assert await memory_store.reconcile(1) == 3
        assert await memory_store.get_reserved_count(11) == 7

    @pytest.mark.asyncio
    async def test_reconcile_without_holds(self, memory_store):
        assert await memory_store.reconcile(1) == 0


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_adds_keep_counter_exact(self, memory_store):
        await asyncio.gather(
            *[memory_store.add_hold(1, f"user-{i}", 2, ttl=60) for i in range(50)]
        )
        assert await memory_store.get_reserved_count(1) == 100

    @pytest.mark.asyncio
    async def test_concurrent_removes_of_one_hold(self, memory_store):
        await memory_store.add_hold(1, "alice", 4, ttl=60)
        results = await asyncio.gather(
            *[memory_store.remove_hold(1, "alice") for _ in range(10)]
        )
        assert [r for r in results if r is not None] == [4]
        assert results.count(None) == 9
        assert await memory_store.get_reserved_count(1) == 0


class TestCheckoutClaims:
    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, memory_store):
        assert await memory_store.try_claim(1, "alice", ttl=30) is True
        assert await memory_store.try_claim(1, "alice", ttl=30) is False
        assert await memory_store.try_claim(1, "bob", ttl=30) is True
        assert await memory_store.try_claim(2, "alice", ttl=30) is True

    @pytest.mark.asyncio
    async def test_claim_leaves_hold_and_counter(self, memory_store):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        await memory_store.try_claim(1, "alice", ttl=30)
        assert await memory_store.get_hold(1, "alice") == 3
        assert await memory_store.get_reserved_count(1) == 3

    @pytest.mark.asyncio
    async def test_release_claim(self, memory_store):
        await memory_store.try_claim(1, "alice", ttl=30)
        await memory_store.release_claim(1, "alice")
        assert await memory_store.try_claim(1, "alice", ttl=30) is True

    @pytest.mark.asyncio
    async def test_release_without_claim(self, memory_store):
        await memory_store.release_claim(1, "alice")

    @pytest.mark.asyncio
    async def test_claim_lapses(self, memory_store, clock):
        await memory_store.try_claim(1, "alice", ttl=30)
        clock.advance(29)
        assert await memory_store.try_claim(1, "alice", ttl=30) is False
        clock.advance(1)
        assert await memory_store.try_claim(1, "alice", ttl=30) is True

    @pytest.mark.asyncio
    async def test_concurrent_claims(self, memory_store):
        results = await asyncio.gather(
            *[memory_store.try_claim(1, "alice", ttl=30) for _ in range(10)]
        )
        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_claim_validates(self, memory_store):
        with pytest.raises(ValidationError):
            await memory_store.try_claim(1, "alice", ttl=0)
        with pytest.raises(ValidationError):
            await memory_store.try_claim(0, "alice", ttl=30)


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_clear(self, memory_store):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        await memory_store.try_claim(1, "alice", ttl=30)
        await memory_store.clear()
        assert await memory_store.get_hold(1, "alice") is None
        assert await memory_store.get_reserved_count(1) == 0
        assert await memory_store.try_claim(1, "alice", ttl=30) is True

    @pytest.mark.asyncio
    async def test_health_check(self, memory_store, clock):
        await memory_store.add_hold(1, "alice", 3, ttl=60)
        await memory_store.add_hold(2, "bob", 1, ttl=10)
        clock.advance(11)

        result = await memory_store.health_check()
        assert result.healthy is True
        assert result.backend_type == "memory"
        assert result.namespace == "test"
        assert result.metadata == {"live_holds": 1, "counters": 2}
