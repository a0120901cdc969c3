"""
Background expiry scheduler.

Cron triggers post job names onto a queue; a single worker thread takes them
off one at a time and runs the matching sweep, so two sweeps never overlap.
"""

import queue
import threading
import time
from typing import Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from .constants import INVITE_BUCKET, INVITE_JOB, PASS_RESET_BUCKET, PASS_RESET_JOB
from .errors import AdminKitError
from .records import Invite, PassReset
from .storage import Store, sweep

# Hour of day each job fires at
JOB_HOURS = {
    INVITE_JOB: 20,
    PASS_RESET_JOB: 21,
}


class ExpiryScheduler:
    """
    Purges stale invites and password resets on a daily schedule.

    Only start it once the session checkpoint has been loaded.
    """

    def __init__(
        self,
        store: Store,
        clock: Callable[[], float] = time.time,
        cron: Optional[BackgroundScheduler] = None,
    ):
        """
        Initialize scheduler.

        Args:
            store: Open store with all buckets created
            clock: Source of the current time in seconds
            cron: APScheduler instance to register triggers on
        """
        self.store = store
        self.clock = clock
        self.cron = cron or BackgroundScheduler()
        self.jobs: "queue.Queue[Optional[str]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._handlers: Dict[str, Callable[[], List[bytes]]] = {
            INVITE_JOB: self.expired_invites,
            PASS_RESET_JOB: self.expired_pass_resets,
        }

    def send(self, job: str) -> None:
        """Queue a job for the worker."""
        self.jobs.put(job)

    def schedule(self) -> None:
        """Register the daily cron triggers."""
        for job, hour in JOB_HOURS.items():
            self.cron.add_job(
                self.send,
                trigger=CronTrigger(hour=hour, minute=0, second=0),
                args=[job],
                id=job,
                replace_existing=True,
                max_instances=1,
            )

        logger.info("Scheduled recurring jobs.")

    def start(self) -> None:
        if self._worker is not None:
            return

        self.schedule()
        self._worker = threading.Thread(
            target=self.process,
            name="expiry-worker",
            daemon=True,
        )
        self._worker.start()
        self.cron.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the triggers and let the worker finish its current job."""
        if self._worker is None:
            return

        if self.cron.running:
            self.cron.shutdown(wait=False)
        self.jobs.put(None)
        self._worker.join(timeout)
        self._worker = None
        logger.info("Expiry scheduler stopped.")

    def process(self) -> None:
        """Worker loop: run queued jobs in arrival order until stopped."""
        while True:
            job = self.jobs.get()
            try:
                if job is None:
                    return
                self.dispatch(job)
            finally:
                self.jobs.task_done()

    def dispatch(self, job: str) -> Optional[List[bytes]]:
        """
        Run one job.

        Failures are logged and left for the next trigger.

        Returns:
            Deleted keys, or None if the job is unknown or failed
        """
        handler = self._handlers.get(job)
        if handler is None:
            logger.error(f"Unknown job received: {job}")
            return None

        try:
            deleted = handler()
        except AdminKitError as e:
            logger.error(f"{job} expiry job failed: {e.message}")
            return None
        except Exception:
            logger.exception(f"{job} expiry job crashed")
            return None

        logger.info(f"{job} expiry job removed {len(deleted)} records")
        return deleted

    def expired_invites(self) -> List[bytes]:
        """Remove expired or cancelled invitations."""
        now = self.clock()
        return sweep(self.store, INVITE_BUCKET, lambda invite: invite.is_stale(now), Invite.from_json)

    def expired_pass_resets(self) -> List[bytes]:
        """Remove expired, unused password resets."""
        now = self.clock()
        return sweep(self.store, PASS_RESET_BUCKET, lambda reset: reset.is_stale(now), PassReset.from_json)
