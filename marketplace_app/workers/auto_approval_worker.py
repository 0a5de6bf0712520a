"""
Auto-approval worker.

Applications that nobody approved within auto_approval_delay_minutes
are approved automatically, through the same mutation as a manual
approval, so they get a tracking code and link as well.

Usage:
    python -m marketplace_app.workers.auto_approval_worker
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime
from typing import Optional

from marketplace_app.config import settings
from marketplace_app.database.connection import SessionLocal
from marketplace_app.services.application_service import ApplicationService

logger = logging.getLogger(__name__)


class AutoApprovalWorker:

    def __init__(self, db_session_factory=SessionLocal, interval_seconds: int = None):
        self.db_session_factory = db_session_factory
        self.interval_seconds = interval_seconds or settings.auto_approval_interval_seconds
        self.running = False

    async def start(self):
        self.running = True
        logger.info(f"Auto-approval worker started (interval={self.interval_seconds}s)")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        while self.running:
            try:
                self.run_once()
            except Exception:
                logger.exception("Auto-approval pass failed")
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                logger.info("Worker task cancelled")
                break

        logger.info("Auto-approval worker stopped")

    def run_once(self, now: Optional[datetime] = None) -> int:
        """
        Approve every application that is due.

        A failure on one application is logged and the pass moves on.

        Returns:
            Number of applications approved
        """
        db = self.db_session_factory()
        approved = 0
        try:
            service = ApplicationService(db)
            due = [application.id for application in service.get_due_for_auto_approval(now)]
            for application_id in due:
                try:
                    service.approve_application(application_id, automatic=True)
                    approved += 1
                except Exception:
                    db.rollback()
                    logger.exception(f"Auto-approval failed for application {application_id}")
        finally:
            db.close()

        if approved:
            logger.info(f"Auto-approved {approved} application(s)")
        return approved

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}. Shutting down gracefully...")
        self.stop()

    def stop(self):
        self.running = False


async def main():
    logging.basicConfig(level=settings.log_level)
    worker = AutoApprovalWorker()
    try:
        await worker.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
