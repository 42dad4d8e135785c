"""
Fixtures running the same scenarios against every hold store.

The ``store`` fixture is parametrized over the memory store (fake clock)
and the Redis store (fakeredis, real time). ``expire_holds`` advances time
far enough for a hold created with ``ttl=1`` to expire on either of them.
"""

import asyncio

import pytest

from stock_reservation.config import ReservationConfig
from stock_reservation.engine import ReservationEngine


@pytest.fixture(params=["memory", "redis"])
def store_kind(request):
    return request.param


@pytest.fixture
def store(request, store_kind):
    if store_kind == "memory":
        return request.getfixturevalue("memory_store")
    return request.getfixturevalue("redis_store")


@pytest.fixture
def expire_holds(store_kind, clock):
    async def expire() -> None:
        if store_kind == "memory":
            clock.advance(2)
        else:
            await asyncio.sleep(1.2)

    return expire


@pytest.fixture
def short_ttl_config():
    return ReservationConfig(hold_ttl=1, namespace="test")


@pytest.fixture
async def shop(ledger, store, config, metrics):
    """Engine over the parametrized store."""
    engine = ReservationEngine(ledger, store, config=config, metrics=metrics)
    yield engine
    await engine.stop()
