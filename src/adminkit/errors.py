"""
Error types for adminkit.

Every error carries a short English message that is safe to hand back to
clients, plus the HTTP status the web layer maps it to.
"""

from typing import Optional


class AdminKitError(Exception):
    """
    Base class for all adminkit errors.

    Attributes:
        message: Client-facing message
        status: HTTP status code for the web layer
    """

    status = 400

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        if status is not None:
            self.status = status
        super().__init__(message)


class AuthorizationNotFound(AdminKitError):
    """Raised when a request carries no Authorization header."""

    status = 401

    def __init__(self):
        super().__init__("authorization header not found")


class UnexpectedAuthorization(AdminKitError):
    """Raised when the Authorization header is not of the form 'Token <value>'."""

    status = 401

    def __init__(self):
        super().__init__("unexpected authorization type")


class UnauthorizedAccess(AdminKitError):
    """Raised when a request lacks the clearance needed for an endpoint."""

    status = 403

    def __init__(self):
        super().__init__("unauthorized access")


class ExpiredSession(AdminKitError):
    """Raised when the session referenced by a request has expired."""

    status = 401

    def __init__(self):
        super().__init__("expired session")


class MalformedRequest(AdminKitError):
    """Raised when the request body cannot be read."""

    def __init__(self):
        super().__init__("malformed request")


class MalformedPayload(AdminKitError):
    """Raised when the request body is not a JSON object."""

    def __init__(self):
        super().__init__("malformed payload")


class KeyNotFound(AdminKitError):
    """
    Raised when a lookup returns nothing for the supplied key.

    Attributes:
        key: The key that was looked up
    """

    status = 404

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"associated value for '{key}' not found")


class NotApplicable(AdminKitError):
    """Raised when an operation is undefined for an entity kind."""

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f"functionality not applicable to entity '{entity}'")


class StorageError(AdminKitError):
    """Wraps any failure raised by the durable store."""

    status = 500

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"storage failure: {detail}")


class ConfigError(AdminKitError):
    """Raised when the configuration file is missing or invalid."""

    status = 500

    def __init__(self, detail: str):
        super().__init__(f"invalid configuration: {detail}")


class InvalidParameter(AdminKitError):
    """Raised when a request parameter has an unexpected type or format."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"invalid parameter type for '{key}'")
