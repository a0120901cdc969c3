"""
Request authentication protocol.

Defines the Authorization header contract and the transport-neutral view of
an incoming request that the session manager validates.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from ..errors import AuthorizationNotFound, MalformedPayload, MalformedRequest, UnexpectedAuthorization

AUTHORIZATION_HEADER = "Authorization"
TOKEN_SCHEME = "Token"


def get_session_token(headers: Mapping[str, str]) -> str:
    """
    Extract the session token from request headers.

    The expected format is ``Authorization: Token <session-token>``.

    Raises:
        AuthorizationNotFound: If there is no Authorization header
        UnexpectedAuthorization: If the header uses another scheme
    """
    value = headers.get(AUTHORIZATION_HEADER)
    if value is None:
        raise AuthorizationNotFound()

    parts = value.split(" ", 1)
    if len(parts) != 2 or parts[0] != TOKEN_SCHEME:
        raise UnexpectedAuthorization()
    return parts[1]


@dataclass
class RequestInfo:
    """
    What the session manager needs to know about a request.

    Attributes:
        method: HTTP method
        route: Request path
        query: Encoded query string
        origin: Caller address
        headers: Request headers (case-insensitive mapping in practice)
        body: Raw request body, None if there was none
        body_error: Error raised while reading the body, if any
    """
    method: str
    route: str
    query: str = ""
    origin: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    body_error: Optional[Exception] = None

    def read_body(self) -> Optional[bytes]:
        if self.body_error is not None:
            raise MalformedRequest() from self.body_error
        return self.body

    def payload(self) -> Dict[str, Any]:
        """
        Parse the body as a JSON object.

        Returns:
            The parsed object, empty if there is no body

        Raises:
            MalformedRequest: If reading the body failed
            MalformedPayload: If the body is not a JSON object
        """
        body = self.read_body()
        if not body:
            return {}
        try:
            payload = json.loads(body)
        except (TypeError, ValueError) as e:
            raise MalformedPayload() from e
        if not isinstance(payload, dict):
            raise MalformedPayload()
        return payload


async def from_aiohttp(request) -> RequestInfo:
    """
    Build a RequestInfo from an aiohttp request.

    A failure reading the body is captured rather than raised so validation
    can report it in order.
    """
    body = None
    body_error = None
    if request.body_exists:
        try:
            body = await request.read()
        except Exception as e:
            body_error = e

    return RequestInfo(
        method=request.method,
        route=request.path,
        query=request.query_string,
        origin=request.remote or "",
        headers=request.headers,
        body=body,
        body_error=body_error,
    )
