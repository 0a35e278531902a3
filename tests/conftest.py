"""Shared test doubles: a fake requests session and canned responses."""

import threading

import pytest
import requests


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None, chunks=None):
        self.status_code = status_code
        self._body = body
        self._text = text
        self._chunks = chunks or []

    def json(self):
        if self._text is not None:
            raise ValueError(f"not JSON: {self._text!r}")
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)

    def iter_content(self, chunk_size=1):
        yield from self._chunks

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Answers GETs from a {url: response} table or a callable(url, params).

    A response may also be an exception instance, which is raised.
    """

    def __init__(self, routes=None, handler=None):
        self.routes = routes or {}
        self.handler = handler
        self.headers = {}
        self.auth = None
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, params=None, timeout=None, stream=False):
        with self._lock:
            self.calls.append((url, dict(params or {})))
        if self.handler is not None:
            response = self.handler(url, params or {})
        else:
            key = url
            if params and "page" in params:
                key = f"{url}?page={params['page']}"
            response = self.routes.get(key, FakeResponse(404, {"code": "rest_no_route"}))
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession
