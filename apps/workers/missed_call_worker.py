"""Missed-call worker: marks scheduled calls nobody joined as missed."""

import asyncio
import logging

from core.config import settings
from core.redis import close_redis, get_redis
from services.calls import CallSessionController
from services.container import build_repository

logger = logging.getLogger(__name__)


class MissedCallWorker:
    """Periodically applies the missed-call grace period to scheduled calls."""

    def __init__(self, calls: CallSessionController, interval_seconds: float | None = None) -> None:
        self.calls = calls
        self.interval_seconds = interval_seconds or settings.missed_call_sweep_interval_seconds
        self.running = False

    async def run_once(self) -> int:
        missed = await self.calls.mark_missed_calls()
        if missed:
            logger.info(f"Marked {len(missed)} call(s) as missed")
        return len(missed)

    async def start(self) -> None:
        """Start the sweep loop."""
        self.running = True
        logger.info(f"Missed-call worker started (interval={self.interval_seconds}s)")

        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in missed-call worker loop: {e}")
            await asyncio.sleep(self.interval_seconds)

    async def stop(self) -> None:
        """Stop the sweep loop."""
        self.running = False


async def main() -> None:
    """Run missed-call worker."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    redis_client = await get_redis()
    calls = CallSessionController(build_repository(settings), redis_client, settings)
    worker = MissedCallWorker(calls)
    try:
        await worker.start()
    except KeyboardInterrupt:
        await worker.stop()
    finally:
        await close_redis()


if __name__ == "__main__":
    asyncio.run(main())
