"""Background scheduling of ingestion cycles."""

import asyncio
import logging
import os

from feed_aggregator.ingestion import FeedIngestor
from feed_aggregator.models import RunSummary

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3600  # 1 hour
DEFAULT_STARTUP_DELAY = 2


class FeedScheduler:
    """Runs the ingestor once after startup, then on a fixed interval.

    Also the manual refresh entry point: refresh_now() runs a cycle in the
    caller's thread and returns its summary.
    """

    def __init__(
        self,
        ingestor: FeedIngestor,
        interval: float | None = None,
        startup_delay: float | None = None,
    ):
        self.ingestor = ingestor
        self.interval = (
            interval
            if interval is not None
            else float(os.environ.get("FEED_POLL_INTERVAL", DEFAULT_POLL_INTERVAL))
        )
        self.startup_delay = (
            startup_delay
            if startup_delay is not None
            else float(os.environ.get("FEED_STARTUP_DELAY", DEFAULT_STARTUP_DELAY))
        )

    def refresh_now(self) -> RunSummary:
        """Run one ingestion cycle synchronously."""
        logger.info("Manual refresh requested")
        return self.ingestor.run_cycle()

    async def run(self) -> None:
        """Run the polling loop indefinitely."""
        logger.info(
            "Scheduler started (startup delay: %gs, interval: %gs)",
            self.startup_delay,
            self.interval,
        )
        await asyncio.sleep(self.startup_delay)

        # Run starts stay on a fixed cadence regardless of cycle duration
        loop = asyncio.get_running_loop()
        next_run = loop.time()
        while True:
            await self._run_once()
            next_run += self.interval
            await asyncio.sleep(max(0.0, next_run - loop.time()))

    async def _run_once(self) -> None:
        try:
            await asyncio.to_thread(self.ingestor.run_cycle)
        except Exception as e:
            logger.error("Ingestion cycle failed: %s", e)
