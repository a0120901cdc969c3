"""
Time-bound and administrative records.

Data classes for invitations, password resets and feedback, plus the JSON
encoding shared by everything kept in the store.
"""

import json
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

from .errors import StorageError

# Invitation states
PENDING = "pending"
ACCEPTED = "accepted"
CANCELLED = "cancelled"


class JSONRecord:
    """Mixin giving data classes a self-describing JSON encoding."""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)}
        try:
            return cls(**{k: v for k, v in data.items() if k in known})
        except TypeError as e:
            raise StorageError(f"malformed {cls.__name__.lower()} record: {e}") from e

    @classmethod
    def from_json(cls, data: bytes):
        try:
            raw = json.loads(data)
        except (TypeError, ValueError) as e:
            raise StorageError(f"malformed {cls.__name__.lower()} record: {e}") from e
        if not isinstance(raw, dict):
            raise StorageError(f"malformed {cls.__name__.lower()} record")
        return cls.from_dict(raw)


@dataclass
class Invite(JSONRecord):
    """
    Invitation to use the service.

    Attributes:
        uuid: Unique invite identifier
        email: Invitee email address
        role: Access level granted on acceptance
        status: One of pending, accepted, cancelled
        last_modified: Last modification (seconds since epoch)
        created_on: Creation (seconds since epoch)
        expiry: Expiry (seconds since epoch)
        invited_by: User who sent the invite
        deleted: Hidden from queries when set
    """
    uuid: str
    email: str
    role: str
    status: str
    last_modified: int
    created_on: int
    expiry: int
    invited_by: str
    deleted: bool = False

    def is_stale(self, now: float) -> bool:
        """Expired and no longer pending, or cancelled outright."""
        return (now > self.expiry and self.status != PENDING) or self.status == CANCELLED


@dataclass
class PassReset(JSONRecord):
    """
    Password reset request.

    Attributes:
        uuid: Unique reset identifier
        email: Email of the user resetting
        user: User identifier
        reset_url: Link sent to the user
        expiry: Expiry (seconds since epoch)
        last_modified: Last modification (seconds since epoch)
        created_on: Creation (seconds since epoch)
        used: Whether the reset has been used
    """
    uuid: str
    email: str
    user: str
    expiry: int
    last_modified: int
    created_on: int
    reset_url: str = ""
    used: bool = False

    def is_stale(self, now: float) -> bool:
        """Expired without ever being used."""
        return now > self.expiry and not self.used

    def sanitized(self) -> "PassReset":
        data = self.to_dict()
        data["reset_url"] = ""
        return PassReset(**data)


@dataclass
class Feedback(JSONRecord):
    """User feedback entry."""
    uuid: str
    user: str
    comment: str
    created_on: int
