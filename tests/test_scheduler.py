import logging
import unittest
from unittest.mock import patch

from devsync.scheduler import RECONCILE_JOB_ID, ReconcileScheduler

logging.disable(logging.CRITICAL)


class ReconcileSchedulerTests(unittest.TestCase):
    def setUp(self):
        self.scheduler = ReconcileScheduler(interval_minutes=5, initial_delay_seconds=0)

    def tearDown(self):
        self.scheduler.stop()

    def test_run_once_returns_reconcile_result(self):
        with patch("devsync.scheduler.SessionLocal"), patch("devsync.scheduler.Reconciler") as reconciler:
            reconciler.return_value.reconcile_all.return_value = {"status": "success", "stats": {}}

            result = self.scheduler.run_once()

        self.assertEqual(result["status"], "success")
        self.assertEqual(self.scheduler.last_result, result)
        self.assertIsNotNone(self.scheduler.last_run_at)

    def test_overlapping_run_is_skipped(self):
        nested = []

        def reconcile_all():
            nested.append(self.scheduler.run_once())
            return {"status": "success", "stats": {}}

        with patch("devsync.scheduler.SessionLocal"), patch("devsync.scheduler.Reconciler") as reconciler:
            reconciler.return_value.reconcile_all.side_effect = reconcile_all

            result = self.scheduler.run_once()

        self.assertEqual(nested, [None])
        self.assertEqual(result["status"], "success")
        self.assertEqual(reconciler.return_value.reconcile_all.call_count, 1)

    def test_failure_releases_lease(self):
        with patch("devsync.scheduler.SessionLocal"), patch("devsync.scheduler.Reconciler") as reconciler:
            reconciler.return_value.reconcile_all.side_effect = RuntimeError("boom")

            first = self.scheduler.run_once()
            reconciler.return_value.reconcile_all.side_effect = None
            reconciler.return_value.reconcile_all.return_value = {"status": "success", "stats": {}}
            second = self.scheduler.run_once()

        self.assertEqual(first["status"], "failed")
        self.assertEqual(second["status"], "success")

    def test_schedule_registers_single_instance_job(self):
        self.scheduler.scheduler.start(paused=True)
        self.scheduler.schedule()

        job = self.scheduler.scheduler.get_job(RECONCILE_JOB_ID)

        self.assertIsNotNone(job)
        self.assertEqual(job.max_instances, 1)
        self.assertTrue(job.coalesce)
        self.assertEqual(self.scheduler.job_info()["interval_minutes"], 5)

    def test_disabled_start_does_not_run(self):
        with patch("devsync.scheduler.settings") as settings:
            settings.reconcile_enabled = False
            self.scheduler.start()

        self.assertFalse(self.scheduler.scheduler.running)


if __name__ == "__main__":
    unittest.main()
