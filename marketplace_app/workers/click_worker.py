"""
Click worker.

Consumes ClickContext messages published by the redirect endpoint
(click_dispatch_backend = "queue") and records them. Each click is
acknowledged right after the recorder stored it. A click whose record
failed stays pending and is reclaimed by a later run once it has been
idle for queue_reclaim_idle_ms, so delivery is at least once.

Usage:
    python -m marketplace_app.workers.click_worker
"""

import asyncio
import logging
import signal
import sys
from typing import List

from marketplace_app.config import settings
from marketplace_app.database.connection import SessionLocal
from marketplace_app.queue.models import ClickContext
from marketplace_app.queue.strategies import QueueStrategy
from marketplace_app.services.click_recorder import ClickRecorder

logger = logging.getLogger(__name__)


class ClickWorker:

    def __init__(
        self,
        queue: QueueStrategy,
        recorder: ClickRecorder,
        queue_name: str = None,
        batch_size: int = None,
        reclaim_idle_ms: int = None,
    ):
        self.queue = queue
        self.recorder = recorder
        self.queue_name = queue_name or settings.queue_name
        self.batch_size = batch_size or settings.queue_batch_size
        self.reclaim_idle_ms = settings.queue_reclaim_idle_ms if reclaim_idle_ms is None else reclaim_idle_ms
        self.block_time = settings.queue_worker_interval * 1000
        self.running = False
        self.processed_count = 0

    async def start(self):
        """Run until stop() is called or a shutdown signal arrives"""
        self.running = True
        logger.info(f"Click worker started (queue={self.queue_name}, batch size={self.batch_size})")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        while self.running:
            try:
                processed = await self.run_once()
                if not processed:
                    # memory queue returns immediately when empty
                    await asyncio.sleep(settings.queue_worker_interval)
            except asyncio.CancelledError:
                logger.info("Worker task cancelled")
                break
            except Exception:
                logger.exception("Error processing batch")
                await asyncio.sleep(1)

        logger.info("Click worker stopped")

    async def run_once(self) -> int:
        """
        Record one batch: stale pending clicks first, then new ones.

        Returns:
            Number of clicks recorded and acknowledged
        """
        clicks = await self.queue.reclaim(
            queue_name=self.queue_name,
            min_idle_time=self.reclaim_idle_ms,
            batch_size=self.batch_size,
        )
        if clicks:
            logger.info(f"Reclaimed {len(clicks)} pending clicks")
        else:
            clicks = await self.queue.consume(
                queue_name=self.queue_name,
                batch_size=self.batch_size,
                block_time=self.block_time,
            )
        if not clicks:
            return 0

        recorded = await self._process_batch(clicks)

        self.processed_count += recorded
        logger.info(f"Processed {recorded}/{len(clicks)} clicks. Total: {self.processed_count}")
        return recorded

    async def _process_batch(self, clicks: List[ClickContext]) -> int:
        recorded = 0
        for click in clicks:
            try:
                # unknown applications are logged and skipped by the recorder
                await self.recorder.record(click)
            except Exception:
                logger.exception(f"Recording click {click.message_id} failed; left pending")
                continue
            if click.message_id:
                await self.queue.ack(self.queue_name, [click.message_id])
            recorded += 1
        return recorded

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}. Shutting down gracefully...")
        self.stop()

    def stop(self):
        self.running = False


async def main():
    logging.basicConfig(level=settings.log_level)
    logger.info(f"Environment: {settings.environment}, queue backend: {settings.queue_backend}")

    from marketplace_app.geo.factory import GeoLookupFactory, GeoBackend
    from marketplace_app.queue.factory import QueueFactory, QueueBackend

    queue = QueueFactory.create(QueueBackend(settings.queue_backend))
    geo_lookup = GeoLookupFactory.create(GeoBackend(settings.geo_backend))
    worker = ClickWorker(queue=queue, recorder=ClickRecorder(SessionLocal, geo_lookup))

    try:
        await worker.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
