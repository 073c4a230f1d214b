"""
Tests for the GitHub REST client (github_oauth_mcp/github_client.py).

Focus: the headers every request carries, and how each kind of upstream
failure is classified.
"""

import json
import time

import httpx
import pytest

from github_oauth_mcp.errors import (
    Forbidden,
    NotFound,
    RateLimited,
    Unauthorized,
    UpstreamError,
)
from github_oauth_mcp.github_client import GitHubClient


@pytest.fixture
def client(github):
    return GitHubClient(transport=github.transport, user_agent="test-agent")


def _failing_client(exc: Exception) -> GitHubClient:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    return GitHubClient(transport=httpx.MockTransport(handler))


class TestRequests:
    async def test_headers(self, client, github):
        github.add("GET", "/user", json={"login": "octocat"})

        await client.call("gho_abc", "GET", "user")

        headers = github.last_request.headers
        assert headers["authorization"] == "Bearer gho_abc"
        assert headers["accept"] == "application/vnd.github+json"
        assert headers["x-github-api-version"] == "2022-11-28"
        assert headers["user-agent"] == "test-agent"

    async def test_returns_parsed_json(self, client, github):
        github.add("GET", "/repos/octocat/hello-world", json={"full_name": "octocat/hello-world"})

        body = await client.call("t", "GET", "repos/octocat/hello-world")

        assert body == {"full_name": "octocat/hello-world"}

    async def test_none_query_values_are_dropped(self, client, github):
        github.add("GET", "/user/repos", json=[])

        await client.call("t", "GET", "/user/repos", query={"per_page": 30, "page": None})

        assert dict(github.last_request.url.params) == {"per_page": "30"}

    async def test_json_body_is_sent(self, client, github):
        github.add("POST", "/user/repos", status_code=201, json={"id": 1})

        await client.call("t", "POST", "user/repos", body={"name": "demo", "private": True})

        assert github.last_request.headers["content-type"] == "application/json"
        assert json.loads(github.last_request.content) == {"name": "demo", "private": True}

    async def test_no_content_returns_none(self, client, github):
        github.add("DELETE", "/repos/o/r", status_code=204)

        assert await client.call("t", "DELETE", "repos/o/r") is None

    async def test_custom_api_base(self, github):
        client = GitHubClient(api_base="https://ghe.example.com/api/v3/", transport=github.transport)
        github.add("GET", "/api/v3/user", json={"login": "me"})

        assert await client.call("t", "GET", "user") == {"login": "me"}


class TestErrorClassification:
    async def test_401_is_unauthorized(self, client, github):
        github.add("GET", "/user", status_code=401, json={"message": "Bad credentials"})

        with pytest.raises(Unauthorized, match="Bad credentials") as exc_info:
            await client.call("t", "GET", "user")

        assert exc_info.value.status == 401
        assert exc_info.value.to_dict() == {
            "error": "unauthorized",
            "status": 401,
            "message": "Bad credentials",
        }

    async def test_403_is_forbidden(self, client, github):
        github.add(
            "GET",
            "/repos/o/r",
            status_code=403,
            json={"message": "Resource not accessible by integration"},
            headers={"X-RateLimit-Remaining": "4999"},
        )

        with pytest.raises(Forbidden) as exc_info:
            await client.call("t", "GET", "repos/o/r")

        assert exc_info.value.kind == "forbidden"

    async def test_403_with_exhausted_quota_is_rate_limited(self, client, github):
        github.add(
            "GET",
            "/user",
            status_code=403,
            json={"message": "API rate limit exceeded"},
            headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000000"},
        )

        with pytest.raises(RateLimited) as exc_info:
            await client.call("t", "GET", "user")

        assert exc_info.value.reset_at == 1700000000
        assert exc_info.value.to_dict()["reset_at"] == 1700000000

    async def test_429_uses_retry_after(self, client, github):
        github.add("GET", "/user", status_code=429, headers={"Retry-After": "30"}, text="slow down")

        before = int(time.time())
        with pytest.raises(RateLimited) as exc_info:
            await client.call("t", "GET", "user")

        assert before + 30 <= exc_info.value.reset_at <= int(time.time()) + 30
        assert exc_info.value.message == "slow down"

    async def test_404_is_not_found(self, client, github):
        with pytest.raises(NotFound, match="Not Found") as exc_info:
            await client.call("t", "GET", "repos/o/missing")

        assert exc_info.value.status == 404

    async def test_other_status_is_generic(self, client, github):
        github.add(
            "POST",
            "/repos/o/r/issues",
            status_code=422,
            json={"message": "Validation Failed"},
        )

        with pytest.raises(UpstreamError) as exc_info:
            await client.call("t", "POST", "repos/o/r/issues", body={})

        assert type(exc_info.value) is UpstreamError
        assert exc_info.value.status == 422
        assert exc_info.value.kind == "upstream_error"

    async def test_connection_failure(self):
        client = _failing_client(httpx.ConnectError("connection refused"))

        with pytest.raises(UpstreamError, match="Could not reach GitHub") as exc_info:
            await client.call("t", "GET", "user")

        assert exc_info.value.status is None

    async def test_timeout(self):
        client = _failing_client(httpx.ReadTimeout("timed out"))

        with pytest.raises(UpstreamError, match="timed out") as exc_info:
            await client.call("t", "GET", "user")

        assert exc_info.value.status is None
