# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Configuration for the stock reservation engine.

Connection URLs are not part of this object: the ledger and the Redis store
take them as constructor arguments and fall back to the ``DATABASE_URL`` and
``REDIS_URL`` environment variables.
"""

import os
from dataclasses import dataclass

from .exceptions import ConfigurationError

DEFAULT_HOLD_TTL = 600
"""Default lifetime of a reservation hold in seconds."""

HOLD_TTL_ENV = "CART_RESERVATION_TTL"
RECONCILE_INTERVAL_ENV = "RESERVATION_RECONCILE_INTERVAL"
NAMESPACE_ENV = "RESERVATION_NAMESPACE"


@dataclass
class ReservationConfig:
    """
    Configuration for the reservation engine and its cache store.
    """

    # === Holds ===

    hold_ttl: int = DEFAULT_HOLD_TTL
    """Seconds a reservation hold lives before passive expiry."""

    namespace: str = "stock"
    """Prefix for every cache key written by the store."""

    checkout_claim_ttl: int = 30
    """Seconds a checkout claim lives if the process dies before releasing it."""

    # === Drift Reconciliation ===

    reconcile_interval: float = 0.0
    """Seconds between background counter reconciliations (0 disables the loop)."""

    # === Cache Transactions ===

    max_watch_retries: int = 5
    """Attempts for an optimistic cache transaction before giving up."""

    # === Metrics ===

    metrics_enabled: bool = True
    """Enable metrics collection."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not isinstance(self.hold_ttl, int) or self.hold_ttl < 1:
            raise ConfigurationError("hold_ttl must be a positive integer")
        if not isinstance(self.checkout_claim_ttl, int) or self.checkout_claim_ttl < 1:
            raise ConfigurationError("checkout_claim_ttl must be a positive integer")
        if not self.namespace:
            raise ConfigurationError("namespace must not be empty")
        if self.reconcile_interval < 0:
            raise ConfigurationError("reconcile_interval must be >= 0")
        if self.max_watch_retries < 1:
            raise ConfigurationError("max_watch_retries must be at least 1")

    @classmethod
    def from_env(cls) -> "ReservationConfig":
        """
        Build a configuration from environment variables.

        Environment Variables:
            CART_RESERVATION_TTL: Hold TTL in seconds (default 600).
            RESERVATION_RECONCILE_INTERVAL: Background reconcile interval in seconds.
            RESERVATION_NAMESPACE: Cache key prefix.

        Raises:
            ConfigurationError: If a variable is present but not a valid number.
        """
        try:
            hold_ttl = int(os.environ.get(HOLD_TTL_ENV, DEFAULT_HOLD_TTL))
            reconcile_interval = float(os.environ.get(RECONCILE_INTERVAL_ENV, 0.0))
        except ValueError as e:
            raise ConfigurationError(f"Invalid reservation environment: {e}") from e

        return cls(
            hold_ttl=hold_ttl,
            namespace=os.environ.get(NAMESPACE_ENV, "stock"),
            reconcile_interval=reconcile_interval,
        )
