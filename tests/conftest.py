"""
Shared test fixtures for the gateway test suite.

No test talks to the real GitHub. Every component that makes HTTP calls
accepts an httpx transport, and the `github` fixture provides an
`httpx.MockTransport`-backed stub that serves canned responses and records
every request it receives. Asserting on `github.requests` is how tests prove
that a rejected call never left the process.

Key fixtures:
- github: GitHubStub for api.github.com and the OAuth token endpoint
- clock: a manually advanced monotonic clock for expiry tests
- state_store: an InMemoryStateStore on that clock
- make_auth_header: builds "Bearer <token>" strings

Testing approach:
- test_state_store.py, test_oauth.py, test_github_client.py, test_tools.py and
  test_dispatcher.py test each component in isolation
- test_server.py drives the JSON endpoints through the ASGI app
- test_mcp_protocol.py drives the MCP endpoint the way an MCP client would
"""

import os

# Must be set before github_oauth_mcp.config creates its `settings` singleton.
os.environ.setdefault("GITHUB_CLIENT_ID", "test-client-id")
os.environ.setdefault("GITHUB_CLIENT_SECRET", "test-client-secret")

from dataclasses import dataclass, field  # noqa: E402
from typing import Any  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

from github_oauth_mcp.config import Settings  # noqa: E402
from github_oauth_mcp.state_store import InMemoryStateStore  # noqa: E402

TEST_TOKEN = "gho_test_token"


# ---------------------------------------------------------------------------
# GitHub stub
# ---------------------------------------------------------------------------


@dataclass
class CannedResponse:
    status_code: int = 200
    json: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    text: str | None = None


class GitHubStub:
    """
    Stands in for api.github.com and github.com/login/oauth.

    Responses are keyed by (method, decoded path). Unregistered paths answer
    404 the way GitHub does, so a test only registers what it expects to be
    called.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._responses: dict[tuple[str, str], CannedResponse] = {}

    def add(
        self,
        method: str,
        path: str,
        status_code: int = 200,
        json: Any = None,
        headers: dict[str, str] | None = None,
        text: str | None = None,
    ) -> None:
        self._responses[(method.upper(), path)] = CannedResponse(
            status_code=status_code, json=json, headers=headers or {}, text=text
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        canned = self._responses.get((request.method, request.url.path))
        if canned is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if canned.text is not None:
            return httpx.Response(canned.status_code, text=canned.text, headers=canned.headers)
        if canned.json is None:
            return httpx.Response(canned.status_code, headers=canned.headers)
        return httpx.Response(canned.status_code, json=canned.json, headers=canned.headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def github():
    """A fresh GitHub stub with no canned responses."""
    return GitHubStub()


# ---------------------------------------------------------------------------
# Clock and state store
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def state_store(clock):
    store = InMemoryStateStore(ttl_seconds=600.0, sweep_interval_seconds=600.0, clock=clock)
    yield store
    await store.aclose()


@pytest.fixture
def oauth_settings():
    """Settings with known credentials, independent of the environment."""
    return Settings(
        github_client_id="cid-123",
        github_client_secret="shh-secret",
        redirect_uri="http://localhost:3000/auth/callback",
        github_api_base="https://api.github.com",
        github_oauth_base="https://github.com/login/oauth",
    )


# ---------------------------------------------------------------------------
# Authorization header helper fixture
# ---------------------------------------------------------------------------
@pytest.fixture
def make_auth_header():
    """
    Returns a factory for "Bearer <token>" strings.

    Usage in tests:
        def test_something(make_auth_header):
            header = make_auth_header()              # default test token
            header = make_auth_header("gho_other")   # specific token
    """

    def _make_auth_header(token: str = TEST_TOKEN) -> str:
        return f"Bearer {token}"

    return _make_auth_header
