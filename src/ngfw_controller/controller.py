"""Continuous reconciliation loop.

Every ``RECONCILE_INTERVAL`` seconds the controller reloads the spec files
and the state file and runs one sync pass. A pass that fails as a whole
(invalid specs, unreadable state) is logged and retried on the next cycle;
failures of single objects are already contained by the sync pass.

After MAX_CONSECUTIVE_FAILURES failed passes in a row the circuit opens and
passes are skipped for CIRCUIT_BREAKER_RESET_SECONDS.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from .config import Config
from .spec_loader import SpecLoadError, load_specs
from .state_store import StateStore, StateStoreError
from .sync import Syncer, SyncResult

logger = logging.getLogger(__name__)

# Circuit breaker
MAX_CONSECUTIVE_FAILURES = 5
CIRCUIT_BREAKER_RESET_SECONDS = 300  # 5 minutes


class Controller:
    """Runs sync passes at the configured interval until shutdown."""

    def __init__(self, config: Config, clients: Mapping[str, Any]) -> None:
        self._config = config
        self._store = StateStore(config.state_file)
        self._syncer = Syncer(
            clients,
            self._store,
            region=config.region,
            dry_run=config.dry_run,
            prune=config.prune,
        )
        self._shutdown_event = asyncio.Event()
        self._consecutive_failures = 0
        self._circuit_open_until: datetime | None = None

    @property
    def config(self) -> Config:
        return self._config

    async def run(self) -> None:
        """Run the reconciliation loop until shutdown."""
        logger.info(
            "Starting controller",
            extra={
                "region": self._config.region,
                "specs_dir": str(self._config.specs_dir),
                "state_file": str(self._config.state_file),
                "interval_seconds": self._config.reconcile_interval_seconds,
                "dry_run": self._config.dry_run,
                "prune": self._config.prune,
            },
        )

        while not self._shutdown_event.is_set():
            if self._circuit_open_until is not None:
                now = datetime.now(UTC)
                if now < self._circuit_open_until:
                    remaining = (self._circuit_open_until - now).total_seconds()
                    logger.warning(
                        "Circuit breaker open, skipping sync",
                        extra={
                            "remaining_seconds": remaining,
                            "consecutive_failures": self._consecutive_failures,
                        },
                    )
                    await self._wait(min(remaining, self._config.reconcile_interval_seconds))
                    continue

                logger.info("Circuit breaker reset, resuming sync")
                self._circuit_open_until = None
                self._consecutive_failures = 0

            try:
                result = await self.sync_once()
            except (SpecLoadError, StateStoreError) as e:
                logger.error(
                    "Sync pass failed",
                    extra={"error": str(e), "error_type": type(e).__name__},
                )
                result = None

            if result is None or not result.success:
                self._consecutive_failures += 1
                if self._consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                    self._circuit_open_until = datetime.now(UTC) + timedelta(
                        seconds=CIRCUIT_BREAKER_RESET_SECONDS
                    )
                    logger.error(
                        "Circuit breaker opened after consecutive failures",
                        extra={
                            "consecutive_failures": self._consecutive_failures,
                            "reset_seconds": CIRCUIT_BREAKER_RESET_SECONDS,
                        },
                    )
            else:
                self._consecutive_failures = 0

            await self._wait(self._config.reconcile_interval_seconds)

        logger.info("Controller shutdown complete")

    async def sync_once(self) -> SyncResult:
        """Load specs and state, then run one sync pass.

        Raises:
            SpecLoadError: If the spec files are invalid.
            StateStoreError: If the state file cannot be read or written.
        """
        objects = load_specs(self._config.specs_dir)
        self._store.load()
        return await self._syncer.sync(objects)

    def shutdown(self) -> None:
        """Signal the controller to stop."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    async def _wait(self, timeout: float) -> None:
        # Wait for next cycle or shutdown
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
        except TimeoutError:
            pass
