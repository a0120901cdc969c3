"""
Shared fixtures for adminkit tests.
"""

import json

import pytest

from adminkit.auth import RecordDatabase, RequestInfo, SessionCache, SessionManager
from adminkit.constants import ALL_BUCKETS
from adminkit.storage import Store

NOW = 1_760_000_000.0


class FakeClock:
    """Settable clock, in seconds since epoch."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    store = Store(tmp_path / "test.db")
    store.create_buckets(ALL_BUCKETS)
    yield store
    store.close()


@pytest.fixture
def cache():
    return SessionCache()


@pytest.fixture
def db(store, clock):
    return RecordDatabase(store, clock)


@pytest.fixture
def manager(store, cache, db, clock):
    return SessionManager(store, cache, db=db, clock=clock)


@pytest.fixture
def make_request():
    """Build a RequestInfo carrying an optional session token and JSON body."""

    def _make(token=None, method="GET", route="/users", body=None, authorization=None, query=""):
        headers = {}
        if authorization is not None:
            headers["Authorization"] = authorization
        elif token is not None:
            headers["Authorization"] = f"Token {token}"

        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")

        return RequestInfo(
            method=method,
            route=route,
            query=query,
            origin="127.0.0.1:5000",
            headers=headers,
            body=body,
        )

    return _make
