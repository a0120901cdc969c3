"""
Authentication data models.

Data classes for users, sessions, and request audit records.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict

from ..records import JSONRecord


@dataclass
class User(JSONRecord):
    """
    User account.

    Attributes:
        uuid: Unique user identifier, derived from the email address
        first_name: Given name
        last_name: Family name
        password: Bcrypt hashed password
        email: User email address
        role: Access level (admin, management, finance)
        last_login: Last login (seconds since epoch, 0 if never)
        last_modified: Last modification (seconds since epoch)
        created_on: Account creation (seconds since epoch)
        deleted: Whether the account has been removed
        invite: Invite the account was created from ("-" if none)
    """
    uuid: str
    first_name: str
    last_name: str
    password: str
    email: str
    role: str
    last_login: int = 0
    last_modified: int = 0
    created_on: int = 0
    deleted: bool = False
    invite: str = "-"

    def sanitized(self) -> "User":
        """Copy safe to send in a response (no password hash)."""
        return replace(self, password="")


@dataclass(frozen=True)
class Session(JSONRecord):
    """
    Active user session.

    Sessions are values: change one with ``dataclasses.replace`` and
    re-insert it into the cache.

    Attributes:
        user: User who owns this session
        token: Bearer token identifying the session
        access: Access level used for authorization
        created_on: Session creation (seconds since epoch)
        expiry: Session expiry (seconds since epoch)
    """
    user: str
    token: str
    access: str
    created_on: int
    expiry: int

    def is_expired(self, now: float) -> bool:
        return now >= self.expiry


@dataclass
class RequestLog(JSONRecord):
    """
    Audit record for one validated request.

    Attributes:
        origin: Caller address
        requestor: Session token of the caller
        request_type: HTTP method
        route: Request path
        query_params: Encoded query string
        payload: Parsed JSON body (empty if none)
        timestamp: When the request was validated (seconds since epoch)
    """
    origin: str
    requestor: str
    request_type: str
    route: str
    query_params: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0
