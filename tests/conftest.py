"""Pytest configuration and fixtures for gh-request tests.

This file provides:
- Reply / MockGitHub: In-process scripted GitHub API on httpx.MockTransport
- make_page: RawPage builder for classifier and retry policy tests
- Fixtures: zero-delay retry config, mock server, executor wired to the mock
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Generator

import httpx
import pytest

from ghrequest.executor import Executor
from ghrequest.models import EngineConfig, RawPage, RetryConfig

API = "https://api.github.com"
TEST_TOKEN = "test-token"


def make_page(
    status_code: int = 200,
    body: Any = None,
    headers: dict[str, str] | None = None,
    content: bytes | None = None,
    url: str = f"{API}/test",
) -> RawPage:
    """Create a RawPage for classifier and policy tests.

    ``body`` is JSON-encoded unless raw ``content`` is given.
    """
    if content is None:
        content = b"" if body is None else json.dumps(body).encode("utf-8")
    return RawPage(
        status_code=status_code,
        headers=httpx.Headers(headers or {}),
        content=content,
        url=url,
    )


def link_header(**rels: str) -> dict[str, str]:
    """Build a Link header, e.g. link_header(next=url, last=url)."""
    return {"Link": ", ".join(f'<{url}>; rel="{rel}"' for rel, url in rels.items())}


@dataclass
class Reply:
    """A scripted response. A fresh httpx.Response is built for every request."""

    status_code: int = 200
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        return self.build()

    def build(self) -> httpx.Response:
        if self.body is None:
            return httpx.Response(self.status_code, headers=self.headers)
        return httpx.Response(self.status_code, json=self.body, headers=self.headers)


# Tests import this module as tests.conftest while pytest loads it as
# conftest, so Reply may come from either copy. Responders are only called.
Responder = Callable[[httpx.Request], httpx.Response]


class MockGitHub:
    """Scripted GitHub API keyed by method and raw path (including query).

    Replies registered for a target are served in order; the last one repeats.
    Unknown targets answer 404. Every request is recorded.

    Usage:
        mock = MockGitHub()
        mock.add("GET", "/repos/o/r", Reply(200, {"id": 1}))
        executor = Executor(config, transport=mock.transport)
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Responder]] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def add(self, method: str, target: str, *responders: Responder) -> None:
        self._routes.setdefault((method.upper(), target), []).extend(responders)

    def count(self, method: str, target: str) -> int:
        """Number of requests received for a method and raw path."""
        return sum(
            1
            for request in self.requests
            if request.method == method.upper() and _target(request) == target
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, _target(request)))
        if not queue:
            return httpx.Response(404, json={"message": "Not Found"})
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        return responder(request)


def _target(request: httpx.Request) -> str:
    return request.url.raw_path.decode("ascii")


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry settings with the default cap and no waiting."""
    return RetryConfig(max_retries=3, min_backoff=0.0, base_delay=0.0, max_backoff=0.0)


@pytest.fixture
def mock_github() -> MockGitHub:
    return MockGitHub()


@pytest.fixture
def executor(mock_github: MockGitHub, fast_retry: RetryConfig) -> Generator[Executor, None, None]:
    """Executor talking to mock_github with a test token and zero-delay retries."""
    engine = Executor(
        EngineConfig(token=TEST_TOKEN, retry=fast_retry),
        transport=mock_github.transport,
    )
    try:
        yield engine
    finally:
        engine.close()
