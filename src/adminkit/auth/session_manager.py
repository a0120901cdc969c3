"""
Session manager.

Creates sessions, validates privileged requests against them, and
checkpoints the session cache to the store across restarts.
"""

import secrets
import time
from dataclasses import replace
from typing import Callable, Iterable, Optional, Tuple

from loguru import logger

from ..constants import SESSION_BUCKET, SESSION_RENEWAL, SESSION_TTL
from ..errors import (
    AdminKitError,
    ExpiredSession,
    KeyNotFound,
    StorageError,
    UnauthorizedAccess,
)
from ..storage import Store, collect, delete_keys
from .database import RecordDatabase
from .models import RequestLog, Session
from .permissions import is_granted
from .protocol import RequestInfo, get_session_token
from .request_log import AuditLogger
from .session_cache import SessionCache

# Token draws before giving up on finding an unused one
MAX_TOKEN_ATTEMPTS = 8


class SessionManager:
    """
    Session lifecycle and request authorization.

    The cache is injected and owned by the caller; the manager is the only
    thing that creates or renews the sessions in it. While the process runs
    the cache is authoritative and the store's session bucket is empty; the
    bucket only holds sessions between ``reconcile_save()`` at shutdown and
    ``reconcile_load()`` at the next start.
    """

    def __init__(
        self,
        store: Store,
        cache: SessionCache,
        db: Optional[RecordDatabase] = None,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize manager.

        Args:
            store: Open store with all buckets created
            cache: Session cache shared with the rest of the process
            db: Record database (built on store if not given)
            audit: Audit logger (built on store if not given)
            clock: Source of the current time in seconds
        """
        self.store = store
        self.cache = cache
        self.clock = clock
        self.db = db or RecordDatabase(store, clock)
        self.audit = audit or AuditLogger(store, clock)
        self.ttl = int(SESSION_TTL.total_seconds())
        self.renewal = int(SESSION_RENEWAL.total_seconds())

    # ========================================================================
    # Session Lifecycle
    # ========================================================================

    def create_session(self, principal: str, access: str) -> Session:
        """
        Create a session for an authenticated principal.

        Args:
            principal: User identifier
            access: Access level for authorization

        Returns:
            The new session, expiring two hours from now
        """
        now = int(self.clock())
        for _ in range(MAX_TOKEN_ATTEMPTS):
            session = Session(
                user=principal,
                token=secrets.token_urlsafe(24),
                access=access,
                created_on=now,
                expiry=now + self.ttl,
            )
            if self.cache.set_if_absent(session):
                logger.debug(f"Session created for {principal} ({access})")
                return session

        raise RuntimeError("failed to generate a unique session token")

    def login(self, email: str, password: str) -> Session:
        """
        Exchange credentials for a session.

        Args:
            email: User email address
            password: Plain text password

        Returns:
            New session carrying the user's role

        Raises:
            KeyNotFound: If no user is registered under email
            UnauthorizedAccess: If the password is wrong or the user is deleted
        """
        user = self.db.get_user_by_email(email)

        if user.deleted:
            logger.warning(f"Login failed: user '{email}' is deleted")
            raise UnauthorizedAccess()

        if not self.db.verify_password(user, password):
            logger.warning(f"Login failed: invalid password for '{email}'")
            raise UnauthorizedAccess()

        session = self.create_session(user.uuid, user.role)
        user.last_login = session.created_on
        self.db.put_user(user)

        logger.info(f"User logged in: {email}")
        return session

    def get_session(self, token: str) -> Session:
        """
        Look a session up by token.

        Raises:
            KeyNotFound: If no session has that token
        """
        session = self.cache.get(token)
        if session is None:
            raise KeyNotFound(token)
        return session

    def logout(self, token: str) -> bool:
        """
        End a session.

        Returns:
            True if a session was removed
        """
        removed = self.cache.remove(token) is not None
        if removed:
            logger.info(f"Session ended: {token[:6]}...")
        return removed

    # ========================================================================
    # Request Validation
    # ========================================================================

    def validate_request(
        self,
        allowed_roles: Iterable[str],
        request: RequestInfo,
    ) -> Tuple[bool, Optional[AdminKitError]]:
        """
        Check that a request carries a live session with enough clearance.

        Every request that gets as far as a parsed body is written to the
        audit log, granted or not. A granted request pushes its session's
        expiry back by one minute from the current expiry.

        Args:
            allowed_roles: Access levels the endpoint accepts (admin always passes)
            request: The incoming request

        Returns:
            (granted, error) - error is None only when granted and audited
        """
        try:
            token = get_session_token(request.headers)

            session = self.cache.get(token)
            if session is None:
                raise UnauthorizedAccess()

            if session.is_expired(self.clock()):
                self.cache.remove(token)
                logger.info(f"Session expired: {token[:6]}...")
                raise ExpiredSession()

            payload = request.payload()
        except AdminKitError as e:
            logger.warning(f"Rejected {request.method} {request.route}: {e.message}")
            return False, e

        error: Optional[AdminKitError] = None
        record = RequestLog(
            origin=request.origin,
            requestor=token,
            request_type=request.method,
            route=request.route,
            query_params=request.query,
            payload=payload,
            timestamp=self.clock(),
        )
        try:
            self.audit.append(record)
        except StorageError as e:
            logger.error(f"Failed to audit {request.method} {request.route}: {e.detail}")
            error = e

        granted = is_granted(session.access, allowed_roles)
        if not granted:
            logger.warning(
                f"Access denied: {session.access} on {request.method} {request.route}"
            )
            return False, UnauthorizedAccess()

        self._renew(token)
        return True, error

    def _renew(self, token: str) -> None:
        """Extend a session's expiry from its current expiry."""
        while True:
            current = self.cache.get(token)
            if current is None:
                # Logged out or expired concurrently
                return
            renewed = replace(current, expiry=current.expiry + self.renewal)
            if self.cache.replace(current, renewed):
                return

    # ========================================================================
    # Cache/Store Reconciliation
    # ========================================================================

    def reconcile_load(self) -> int:
        """
        Load checkpointed sessions into the cache, then empty the bucket.

        Only sessions that are still live are loaded. Expired ones are
        dropped along with the rest of the bucket.

        Returns:
            Number of sessions loaded

        Raises:
            StorageError: If either transaction fails
        """
        now = self.clock()
        loaded = 0

        with self.store.view() as tx:
            bucket = tx.bucket(SESSION_BUCKET)
            if bucket is None:
                raise KeyNotFound(SESSION_BUCKET.decode("utf-8"))

            for _, value in bucket.items():
                session = Session.from_json(value)
                if not session.is_expired(now):
                    self.cache.set(session)
                    loaded += 1

        delete_keys(self.store, SESSION_BUCKET, collect(self.store, SESSION_BUCKET, lambda _: True))

        logger.info(f"Loaded {loaded} sessions from checkpoint")
        return loaded

    def reconcile_save(self) -> int:
        """
        Checkpoint every live cached session into the store.

        Returns:
            Number of sessions saved

        Raises:
            StorageError: If the write transaction fails
        """
        now = self.clock()
        saved = 0

        with self.store.update() as tx:
            bucket = tx.create_bucket_if_not_exists(SESSION_BUCKET)
            for session in self.cache.snapshot():
                if session.is_expired(now):
                    continue
                bucket.put(session.token, session.to_json())
                saved += 1

        logger.info(f"Saved {saved} sessions to checkpoint")
        return saved
