"""
Authentication module for adminkit.

Provides session-based authentication with role checks and request auditing.
"""

from .models import User, Session, RequestLog
from .database import RecordDatabase, user_key
from .session_cache import SessionCache
from .session_manager import SessionManager
from .request_log import AuditLogger, day_partition
from .protocol import (
    AUTHORIZATION_HEADER,
    TOKEN_SCHEME,
    RequestInfo,
    from_aiohttp,
    get_session_token,
)
from .permissions import ALL_ROLES, Role, is_granted

__all__ = [
    # Models and database
    "User",
    "Session",
    "RequestLog",
    "RecordDatabase",
    "user_key",
    # Sessions
    "SessionCache",
    "SessionManager",
    # Auditing
    "AuditLogger",
    "day_partition",
    # Protocol
    "AUTHORIZATION_HEADER",
    "TOKEN_SCHEME",
    "RequestInfo",
    "from_aiohttp",
    "get_session_token",
    # Roles
    "ALL_ROLES",
    "Role",
    "is_granted",
]
