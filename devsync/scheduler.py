"""Background scheduler for periodic reconciliation"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from devsync.config import settings
from devsync.models.base import SessionLocal
from devsync.services.outbound import get_outbound_sync
from devsync.services.reconciler import Reconciler

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "reconcile_development_requests"


class ReconcileScheduler:
    """Scheduler for periodic GitHub reconciliation"""

    def __init__(self, interval_minutes: int = None, initial_delay_seconds: int = None):
        self.scheduler = BackgroundScheduler()
        self.interval_minutes = interval_minutes or settings.reconcile_interval_minutes
        self.initial_delay_seconds = (
            settings.reconcile_initial_delay_seconds
            if initial_delay_seconds is None
            else initial_delay_seconds
        )
        # Lease: a run never starts while another one is still going.
        self._lease = threading.Lock()
        self.last_result: Optional[Dict[str, Any]] = None
        self.last_run_at: Optional[datetime] = None

    def start(self):
        """Start the scheduler"""
        if not settings.reconcile_enabled:
            logger.info("Reconciliation disabled by configuration")
            return
        self.scheduler.start()
        self.schedule()
        logger.info("Reconcile scheduler started")

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reconcile scheduler stopped")

    def schedule(self):
        """Run shortly after start, then every interval"""
        first_run = datetime.now() + timedelta(seconds=self.initial_delay_seconds)
        self.scheduler.add_job(
            func=self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=RECONCILE_JOB_ID,
            next_run_time=first_run,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            f"Scheduled reconciliation every {self.interval_minutes} minutes "
            f"(first run in {self.initial_delay_seconds}s)"
        )

    def job_info(self) -> Dict[str, Any]:
        job = self.scheduler.get_job(RECONCILE_JOB_ID) if self.scheduler.running else None
        return {
            "running": self.scheduler.running,
            "interval_minutes": self.interval_minutes,
            "next_run_at": job.next_run_time if job is not None else None,
            "last_run_at": self.last_run_at,
            "last_result": self.last_result,
        }

    def run_once(self) -> Optional[Dict[str, Any]]:
        """Job function: one reconciliation pass. Returns None if a pass is already running."""
        if not self._lease.acquire(blocking=False):
            logger.warning("Previous reconciliation still running; skipping this run")
            return None

        db = SessionLocal()
        try:
            logger.info("Running scheduled reconciliation")
            result = Reconciler(db, get_outbound_sync(), settings).reconcile_all()
            self.last_result = result
            logger.info(f"Scheduled reconciliation completed: {result}")
            return result
        except Exception as e:
            logger.error(f"Scheduled reconciliation failed: {e}")
            self.last_result = {"status": "failed", "error": str(e)}
            return self.last_result
        finally:
            self.last_run_at = datetime.now()
            db.close()
            self._lease.release()


# Global scheduler instance
scheduler = ReconcileScheduler()
