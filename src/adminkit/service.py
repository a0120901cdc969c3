"""
Service bootstrap and shutdown.

Wires the store, session cache, session manager and expiry scheduler
together, and checkpoints sessions on the way down.
"""

import time
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .auth import AuditLogger, RecordDatabase, Role, SessionCache, SessionManager, User
from .config import Config
from .constants import ADMIN_KEY, ALL_BUCKETS
from .errors import AdminKitError, KeyNotFound, StorageError
from .scheduler import ExpiryScheduler
from .storage import Store

# Seconds to wait for write access to the store at startup
STORE_OPEN_TIMEOUT = 1.0


class Service:
    """
    The running application.

    Owns the process-wide session cache and store. ``start()`` must finish
    before requests are served; ``shutdown()`` is called once on the way out.
    """

    def __init__(self, config: Config, clock: Callable[[], float] = time.time):
        self.config = config
        self.clock = clock
        self.cache = SessionCache()
        self.store: Optional[Store] = None
        self.db: Optional[RecordDatabase] = None
        self.audit: Optional[AuditLogger] = None
        self.sessions: Optional[SessionManager] = None
        self.scheduler: Optional[ExpiryScheduler] = None

    def start(self, run_scheduler: bool = True) -> None:
        """
        Open storage, restore sessions and start background jobs.

        Raises:
            StorageError: If the store cannot be opened or sessions restored
        """
        self.store = Store(Path(self.config.storage), timeout=STORE_OPEN_TIMEOUT)
        self.store.create_buckets(ALL_BUCKETS)

        self.db = RecordDatabase(self.store, self.clock)
        self.audit = AuditLogger(self.store, self.clock)
        self.sessions = SessionManager(self.store, self.cache, self.db, self.audit, self.clock)

        self.ensure_admin()
        self.sessions.reconcile_load()

        if run_scheduler:
            self.scheduler = ExpiryScheduler(self.store, self.clock)
            self.scheduler.start()

        logger.info(f"{self.config.server} started")

    def ensure_admin(self) -> Optional[User]:
        """
        Create the bootstrap admin account if there is none yet.

        Returns:
            The created admin (sanitized), or None if one already existed or
            creation failed
        """
        try:
            self.db.cache_get(ADMIN_KEY)
            return None
        except KeyNotFound:
            pass

        try:
            user = self.db.create_user(
                first_name=self.config.server,
                last_name=Role.ADMIN.value,
                email=self.config.admin_email,
                password=self.config.admin_pass,
                role=Role.ADMIN.value,
            )
            self.db.cache_put(ADMIN_KEY, user.uuid.encode("utf-8"))
        except AdminKitError as e:
            logger.error(f"Failed to create admin: {e.message}")
            return None

        return user.sanitized()

    def shutdown(self) -> None:
        """Stop background jobs, checkpoint live sessions, close storage."""
        if self.scheduler is not None:
            self.scheduler.stop()
            self.scheduler = None

        if self.store is None or self.store.closed:
            return

        try:
            self.sessions.reconcile_save()
        except StorageError as e:
            logger.error(f"Failed to save sessions: {e.detail}")
        finally:
            self.store.close()

        logger.info("Shutdown complete.")
