"""
Sham pytest plugin

Fixtures that start Sham sessions and close them when the test finishes, so
failures deferred from request handlers are reported against the test.

Example:
    def test_client_fetches_user(sham):
        sham.expect("GET", "/users/1", lambda request: {"id": 1})

        assert MyClient(sham.url).get_user(1)["id"] == 1

    def test_https(sham_factory):
        sham = sham_factory(ssl=True)
        ...
"""

from typing import Any, Callable, List

import pytest

from .instance import Sham, start


@pytest.fixture
def sham_factory(request) -> Callable[..., Sham]:
    """Start Sham sessions with custom options; all are closed at teardown."""
    sessions: List[Sham] = []

    def factory(**options: Any) -> Sham:
        session = start(**options)
        sessions.append(session)
        return session

    def close_all():
        failures = []
        for session in sessions:
            try:
                session.close()
            except BaseException as e:
                failures.append(e)
        if failures:
            raise failures[0]

    request.addfinalizer(close_all)
    return factory


@pytest.fixture
def sham(sham_factory) -> Sham:
    """A plain HTTP Sham session."""
    return sham_factory()
