"""
Record database for adminkit.

Key-fetch-and-decode access to the users, invites, password resets, feedback
and cache buckets of the store.
"""

import base64
import time
import uuid
from typing import Callable, Type, TypeVar

import bcrypt
from loguru import logger

from ..constants import (
    CACHE_BUCKET,
    FEEDBACK_BUCKET,
    INVITE_BUCKET,
    INVITE_TTL,
    MAX_PASSWORD_BYTES,
    PASS_RESET_BUCKET,
    PASS_RESET_TTL,
    USER_BUCKET,
)
from ..errors import InvalidParameter, KeyNotFound, NotApplicable
from ..records import PENDING, Feedback, Invite, JSONRecord, PassReset
from ..storage import Store
from .models import Session, User

R = TypeVar("R", bound=JSONRecord)


def user_key(email: str) -> str:
    """Storage key of the user registered under an email address."""
    normalized = email.strip().lower().encode("utf-8")
    return base64.urlsafe_b64encode(normalized).decode("ascii").rstrip("=")


class RecordDatabase:
    """
    Record database.

    Reads run concurrently. Every write goes through ``Store.update()`` and so
    is serialized behind the store's global write lock.
    """

    def __init__(self, store: Store, clock: Callable[[], float] = time.time):
        """
        Initialize database.

        Args:
            store: Open store with all buckets created
            clock: Source of the current time in seconds
        """
        self.store = store
        self.clock = clock

    def _get(self, bucket_name: bytes, key: str, record_type: Type[R]) -> R:
        with self.store.view() as tx:
            bucket = tx.bucket(bucket_name)
            value = bucket.get(key) if bucket is not None else None
            if value is None:
                raise KeyNotFound(key)
            return record_type.from_json(value)

    def _put(self, bucket_name: bytes, key: str, record: JSONRecord) -> None:
        data = record.to_json()
        with self.store.update() as tx:
            tx.create_bucket_if_not_exists(bucket_name).put(key, data)

    # ========================================================================
    # User Operations
    # ========================================================================

    def create_user(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        role: str,
        invite: str = "-",
    ) -> User:
        """
        Create a user with a hashed password.

        Args:
            first_name: Given name
            last_name: Family name
            email: Email address, also the login name
            password: Plain text password (will be hashed)
            role: Access level
            invite: Invite the account came from

        Returns:
            Created User object

        Raises:
            InvalidParameter: If the password is longer than bcrypt accepts
        """
        secret = password.encode("utf-8")
        if len(secret) > MAX_PASSWORD_BYTES:
            raise InvalidParameter("password")

        password_hash = bcrypt.hashpw(
            secret,
            bcrypt.gensalt()
        ).decode("utf-8")

        user = User(
            uuid=user_key(email),
            first_name=first_name,
            last_name=last_name,
            password=password_hash,
            email=email,
            role=role,
            created_on=int(self.clock()),
            invite=invite,
        )
        self.put_user(user)

        logger.info(f"User created: {email} ({user.uuid}) with role: {role}")
        return user

    def get_user(self, uuid: str) -> User:
        """
        Get user by ID.

        Raises:
            KeyNotFound: If no such user exists
        """
        return self._get(USER_BUCKET, uuid, User)

    def get_user_by_email(self, email: str) -> User:
        return self.get_user(user_key(email))

    def put_user(self, user: User) -> None:
        self._put(USER_BUCKET, user.uuid, user)

    @staticmethod
    def verify_password(user: User, password: str) -> bool:
        """
        Verify password against the user's hash.

        Returns:
            True if password matches, False otherwise
        """
        try:
            return bcrypt.checkpw(
                password.encode("utf-8"),
                user.password.encode("utf-8")
            )
        except ValueError:
            logger.warning(f"Stored password hash for {user.uuid} is invalid")
            return False

    # ========================================================================
    # Invite & Password Reset Operations
    # ========================================================================

    def create_invite(self, email: str, role: str, invited_by: str) -> Invite:
        """Create a pending invite that expires in seven days."""
        now = int(self.clock())
        invite = Invite(
            uuid=uuid.uuid4().hex,
            email=email,
            role=role,
            status=PENDING,
            last_modified=now,
            created_on=now,
            expiry=now + int(INVITE_TTL.total_seconds()),
            invited_by=invited_by,
        )
        self.put_invite(invite)

        logger.info(f"Invite created for {email} by {invited_by}")
        return invite

    def create_pass_reset(self, user: User, reset_url: str = "") -> PassReset:
        """Create a password reset for a user, valid for five days."""
        now = int(self.clock())
        reset = PassReset(
            uuid=uuid.uuid4().hex,
            email=user.email,
            user=user.uuid,
            expiry=now + int(PASS_RESET_TTL.total_seconds()),
            last_modified=now,
            created_on=now,
            reset_url=reset_url,
        )
        self.put_pass_reset(reset)

        logger.info(f"Password reset created for {user.email}")
        return reset

    def get_invite(self, uuid: str) -> Invite:
        return self._get(INVITE_BUCKET, uuid, Invite)

    def put_invite(self, invite: Invite) -> None:
        self._put(INVITE_BUCKET, invite.uuid, invite)

    def get_pass_reset(self, uuid: str) -> PassReset:
        return self._get(PASS_RESET_BUCKET, uuid, PassReset)

    def put_pass_reset(self, reset: PassReset) -> None:
        self._put(PASS_RESET_BUCKET, reset.uuid, reset)

    def put_feedback(self, feedback: Feedback) -> None:
        self._put(FEEDBACK_BUCKET, feedback.uuid, feedback)

    # ========================================================================
    # Cache Operations
    # ========================================================================

    def cache_get(self, key: bytes) -> bytes:
        """
        Get a value from the server cache bucket.

        Raises:
            KeyNotFound: If the key is not cached
        """
        with self.store.view() as tx:
            bucket = tx.bucket(CACHE_BUCKET)
            value = bucket.get(key) if bucket is not None else None
            if value is None:
                raise KeyNotFound(key.decode("utf-8"))
            return value

    def cache_put(self, key: bytes, value: bytes) -> None:
        with self.store.update() as tx:
            tx.create_bucket_if_not_exists(CACHE_BUCKET).put(key, value)

    # ========================================================================
    # Deletion
    # ========================================================================

    def delete(self, bucket_name: bytes, key: str) -> None:
        """Remove a key and its value from a bucket."""
        with self.store.update() as tx:
            bucket = tx.bucket(bucket_name)
            if bucket is None:
                raise KeyNotFound(bucket_name.decode("utf-8"))
            bucket.delete(key)

    def delete_entity(self, entity: JSONRecord) -> None:
        """
        Soft-delete an entity.

        Users and invites are flagged deleted and stay in storage. Sessions
        and password resets cannot be deleted this way.

        Raises:
            NotApplicable: For sessions and password resets
        """
        if isinstance(entity, (Session, PassReset)):
            raise NotApplicable(type(entity).__name__.lower())

        now = int(self.clock())
        if isinstance(entity, User):
            entity.deleted = True
            entity.last_modified = now
            self.put_user(entity)
        elif isinstance(entity, Invite):
            entity.deleted = True
            entity.last_modified = now
            self.put_invite(entity)
        else:
            raise NotApplicable(type(entity).__name__.lower())
