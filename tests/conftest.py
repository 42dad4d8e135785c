"""
Shared fixtures for the stock reservation test suite.

Every ledger is a fresh SQLite file under tmp_path, every engine gets its
own Prometheus registry, and the memory store runs on a fake clock so hold
expiry can be tested without sleeping.
"""

import pytest
from prometheus_client import CollectorRegistry

from stock_reservation.backends.memory import MemoryReservationStore
from stock_reservation.config import ReservationConfig
from stock_reservation.engine import ReservationEngine
from stock_reservation.ledger import StockLedger
from stock_reservation.observability.collector import MetricsCollector

try:
    import fakeredis.aioredis as fakeredis
except ImportError:
    fakeredis = None


class FakeClock:
    """Manually advanced clock for MemoryReservationStore."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return MemoryReservationStore(namespace="test", clock=clock)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path}/ledger.db"


@pytest.fixture
async def ledger(database_url):
    """Ledger with the schema created, disposed after the test."""
    async with StockLedger(database_url) as ledger:
        yield ledger


@pytest.fixture
def metrics():
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def config():
    return ReservationConfig(hold_ttl=600, namespace="test")


@pytest.fixture
async def engine(ledger, memory_store, config, metrics):
    engine = ReservationEngine(ledger, memory_store, config=config, metrics=metrics)
    yield engine
    await engine.stop()


@pytest.fixture
async def product(engine):
    """A product with five units of durable stock."""
    return await engine.create_product(
        {"name": "Desk Lamp", "description": "Brass", "price": "19.99", "total_stock": 5}
    )


@pytest.fixture
async def fake_redis():
    """A flushed fakeredis client with decoded responses."""
    if fakeredis is None:
        pytest.skip("fakeredis not installed")
    r = fakeredis.FakeRedis(decode_responses=True)
    await r.flushall()
    yield r
    await r.aclose()


@pytest.fixture
def redis_store(fake_redis):
    from stock_reservation.backends.redis import RedisReservationStore

    return RedisReservationStore(redis_client=fake_redis, namespace="test")
