"""
Shared fixtures for benchmark tests.
"""

import pytest
from prometheus_client import CollectorRegistry

from stock_reservation.backends.memory import MemoryReservationStore
from stock_reservation.config import ReservationConfig
from stock_reservation.engine import ReservationEngine
from stock_reservation.ledger import StockLedger
from stock_reservation.observability.collector import MetricsCollector


@pytest.fixture
async def ledger(tmp_path):
    """File-backed SQLite ledger with the schema created."""
    async with StockLedger(f"sqlite+aiosqlite:///{tmp_path}/bench.db") as ledger:
        yield ledger


@pytest.fixture
def memory_store():
    return MemoryReservationStore(namespace="bench")


@pytest.fixture
def benchmark_config():
    """Configuration with a long TTL so no hold expires mid-benchmark."""
    return ReservationConfig(hold_ttl=3600, namespace="bench")


@pytest.fixture
async def engine(ledger, memory_store, benchmark_config):
    engine = ReservationEngine(
        ledger,
        memory_store,
        config=benchmark_config,
        metrics=MetricsCollector(registry=CollectorRegistry()),
    )
    yield engine
    await engine.stop()


@pytest.fixture
async def bench_product(engine):
    """A product with enough stock that reservations never run out."""
    return await engine.create_product(
        {"name": "Benchmark Widget", "price": "1.00", "total_stock": 1_000_000}
    )
