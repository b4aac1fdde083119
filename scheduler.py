"""Polling scheduler - feeds the outlet store from the charge status source"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from sources.base import ChargeStatusSource
from store.outlets import OutletReading, OutletStore

logger = logging.getLogger(__name__)


class PollingScheduler:
    """
    Sequential poller over a fixed list of outlets.

    Exactly one query is in flight at a time. After each successful query
    the scheduler waits for the polling interval; failed queries move on to
    the next outlet immediately. A cycle ends after the last outlet and the
    next one starts right away.
    """

    def __init__(
        self,
        source: ChargeStatusSource,
        store: OutletStore,
        outlets: Sequence[str],
        interval_ms: int,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_cycle: Optional[Callable[[int], Awaitable[None]]] = None
    ):
        """
        Initialize the scheduler.

        Args:
            source: Charge status client queried for each outlet
            store: Store receiving successful readings
            outlets: Outlet ids, polled in this order
            interval_ms: Pause after each successful query, in milliseconds
            sleep: Awaitable used for the pause (default: asyncio.sleep)
            on_cycle: Optional hook awaited with the error count after each cycle
        """
        self.source = source
        self.store = store
        self.interval = interval_ms / 1000
        self._sleep = sleep
        self._on_cycle = on_cycle
        self._outlets = self._checked(outlets)
        self.cycles = 0
        self.last_error_count = 0

    @staticmethod
    def _checked(outlets: Sequence[str]) -> list[str]:
        outlets = list(outlets)
        if not outlets:
            raise ValueError("at least one outlet is required")
        return outlets

    @property
    def outlets(self) -> list[str]:
        return list(self._outlets)

    def replace_outlets(self, outlets: Sequence[str]) -> None:
        """Swap the outlet list; the running cycle finishes with the old one."""
        self._outlets = self._checked(outlets)
        logger.info(f"Scheduler: Outlet list replaced ({len(self._outlets)} outlets)")

    async def poll_outlet(self, outlet_id: str) -> bool:
        """Query one outlet and store the result. Returns False on failure."""
        try:
            status = await self.source.query(outlet_id)
        except Exception as e:
            logger.error(f"Scheduler: Failed to query charge status for outlet {outlet_id}: {e}")
            return False

        self.store.set(
            outlet_id,
            OutletReading(power=status.power, used_minutes=status.used_minutes)
        )
        return True

    async def run_cycle(self) -> int:
        """Poll every outlet once, in order. Returns the number of failures."""
        outlets = self._outlets
        error_count = 0

        for outlet_id in outlets:
            if not await self.poll_outlet(outlet_id):
                error_count += 1
                continue
            await self._sleep(self.interval)

        self.cycles += 1
        self.last_error_count = error_count
        logger.info(f"Scheduler: Completed a full polling cycle ({error_count} errors)")

        if self._on_cycle is not None:
            await self._on_cycle(error_count)

        return error_count

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Run cycles back to back until stop is set (never, if not given)."""
        logger.info(
            f"Scheduler: Starting polling of {len(self._outlets)} outlets "
            f"(interval: {self.interval}s)"
        )
        while stop is None or not stop.is_set():
            await self.run_cycle()
            # Yield to the HTTP server even when every query failed fast
            await asyncio.sleep(0)
        logger.info("Scheduler: Stopped")
