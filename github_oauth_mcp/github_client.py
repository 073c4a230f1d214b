"""
GitHub REST API client: a thin, stateless, authenticated transport.

Every call receives the caller's bearer token explicitly; nothing about the
caller is cached between calls. Non-2xx responses are classified into the
transport-phase errors from `errors.py` so the dispatcher can report *what*
went wrong (bad token, missing permission, missing resource, rate limit)
rather than a generic failure. Nothing is retried here.
"""
import logging
import time
from typing import Any, Dict, Optional

import httpx

from github_oauth_mcp.config import Settings
from github_oauth_mcp.errors import (
    Forbidden,
    NotFound,
    RateLimited,
    Unauthorized,
    UpstreamError,
)

logger = logging.getLogger(__name__)

GITHUB_MEDIA_TYPE = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"


class GitHubClient:
    """
    Issues authenticated requests against the GitHub REST API.

    Args:
        api_base: Root of the REST API
        timeout: Per-request timeout in seconds
        user_agent: Sent on every request (GitHub rejects requests without one)
        transport: Optional httpx transport, used by tests to stub GitHub
    """

    def __init__(
        self,
        api_base: str = "https://api.github.com",
        timeout: float = 30.0,
        user_agent: str = "github-oauth-mcp",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "GitHubClient":
        return cls(
            api_base=settings.github_api_base,
            timeout=settings.upstream_timeout,
            user_agent=settings.user_agent,
        )

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": GITHUB_MEDIA_TYPE,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": self.user_agent,
        }

    async def call(
        self,
        token: str,
        method: str,
        path: str,
        query: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Perform one API request and return the parsed JSON body.

        Args:
            token: The caller's OAuth access token
            method: HTTP method (GET, POST, PATCH, PUT, DELETE)
            path: API path relative to the API root, e.g. "user/repos"
            query: Query parameters; None values are dropped
            body: JSON request body for write operations

        Returns:
            The decoded JSON body, the raw text for non-JSON bodies, or None
            for empty responses (204 No Content)

        Raises:
            Unauthorized, Forbidden, NotFound, RateLimited: for 401/403/404/429
            UpstreamError: any other non-2xx status, or a network failure
        """
        url = f"{self.api_base}/{path.lstrip('/')}"
        params = {k: v for k, v in (query or {}).items() if v is not None}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.request(
                    method.upper(),
                    url,
                    headers=self._headers(token),
                    params=params or None,
                    json=body,
                )
        except httpx.TimeoutException:
            logger.warning("GitHub %s %s timed out", method.upper(), path)
            raise UpstreamError("Request to GitHub timed out")
        except httpx.HTTPError as exc:
            logger.warning("GitHub %s %s failed: %s", method.upper(), path, type(exc).__name__)
            raise UpstreamError(f"Could not reach GitHub: {exc}")

        logger.debug("GitHub %s %s -> %s", method.upper(), path, resp.status_code)

        if not resp.is_success:
            raise _classify(resp)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text


def _error_message(resp: httpx.Response) -> str:
    """GitHub puts a human-readable reason in the JSON `message` field."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return resp.text.strip()[:500] or resp.reason_phrase or f"HTTP {resp.status_code}"


def _reset_hint(resp: httpx.Response) -> Optional[int]:
    reset = resp.headers.get("X-RateLimit-Reset")
    if reset and reset.isdigit():
        return int(reset)
    retry_after = resp.headers.get("Retry-After")
    if retry_after and retry_after.isdigit():
        return int(time.time()) + int(retry_after)
    return None


def _classify(resp: httpx.Response) -> UpstreamError:
    status = resp.status_code
    message = _error_message(resp)

    if status == 401:
        return Unauthorized(message, status)
    if status == 403:
        # GitHub signals an exhausted primary rate limit with 403, not 429.
        if resp.headers.get("X-RateLimit-Remaining") == "0":
            return RateLimited(message, status, reset_at=_reset_hint(resp))
        return Forbidden(message, status)
    if status == 404:
        return NotFound(message, status)
    if status == 429:
        return RateLimited(message, status, reset_at=_reset_hint(resp))
    return UpstreamError(message, status)
