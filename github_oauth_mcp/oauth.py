"""
GitHub OAuth2 authorization-code flow.

The flow, from this service's point of view:

    Idle
      -> AwaitingRedirect   begin_authorization(): state is stored, the
                            browser is sent to github.com/login/oauth/authorize
      -> AwaitingCallback   the user approves (or denies) on GitHub
      -> Exchanging         handle_callback(): state is consumed, the code is
                            POSTed to /login/oauth/access_token
      -> Success | Failed   the identity is fetched and an AccessGrant returned

The resulting token is handed to the browser and never stored server-side;
the grant object only lives for the duration of the callback request.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Sequence
from urllib.parse import urlencode

import httpx

from github_oauth_mcp.config import Settings
from github_oauth_mcp.errors import (
    ExchangeFailed,
    IdentityFetchFailed,
    MissingParameters,
    OAuthError,
    UpstreamError,
    UserDenied,
)
from github_oauth_mcp.github_client import GitHubClient
from github_oauth_mcp.state_store import StateStore

logger = logging.getLogger(__name__)


class FlowPhase(str, Enum):
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING = "exchanging"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class Identity:
    """The subset of GitHub's `GET /user` response handed to the browser."""

    login: str
    name: Optional[str]
    avatar_url: Optional[str]
    email: Optional[str]

    @classmethod
    def from_github(cls, data: dict[str, Any]) -> "Identity":
        return cls(
            login=data.get("login") or "",
            name=data.get("name"),
            avatar_url=data.get("avatar_url"),
            email=data.get("email"),
        )

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "login": self.login,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "email": self.email,
        }


@dataclass(frozen=True)
class AccessGrant:
    """
    The outcome of a successful code exchange.

    Attributes:
        token: The OAuth access token (excluded from repr)
        token_type: Usually "bearer"
        granted_scopes: Scopes GitHub actually granted
        identity: The authenticated user, or None if the lookup failed
        identity_error: Error code explaining a missing identity
    """

    token: str
    token_type: str
    granted_scopes: frozenset[str]
    identity: Optional[Identity]
    identity_error: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"AccessGrant(token_type={self.token_type!r}, "
            f"granted_scopes={sorted(self.granted_scopes)!r}, identity={self.identity!r})"
        )


def parse_scopes(raw: Optional[str]) -> list[str]:
    """
    Split a scope list separated by commas and/or whitespace.

    GitHub returns granted scopes comma-separated ("repo,user") while the
    authorize endpoint takes them space-separated; the /auth/github endpoint
    accepts either. Order is kept, duplicates are dropped.
    """
    if not raw:
        return []
    scopes: list[str] = []
    for scope in re.split(r"[,\s]+", raw.strip()):
        if scope and scope not in scopes:
            scopes.append(scope)
    return scopes


class GitHubOAuthClient:
    """
    Converts an authorization code into an AccessGrant.

    Args:
        settings: Supplies the client credentials and endpoints
        state_store: Where pending authorizations are recorded and consumed
        api: Used for the identity lookup with the freshly issued token
        transport: Optional httpx transport for the token endpoint (tests)
    """

    def __init__(
        self,
        settings: Settings,
        state_store: StateStore,
        api: GitHubClient,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.state_store = state_store
        self.api = api
        self.transport = transport

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.settings.github_oauth_base.rstrip('/')}/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.settings.github_oauth_base.rstrip('/')}/access_token"

    def build_authorization_url(self, scopes: Sequence[str], state: str) -> str:
        """Pure function of the configuration and inputs; no network call."""
        params = {
            "client_id": self.settings.github_client_id,
            "redirect_uri": self.settings.callback_url,
            "scope": " ".join(scopes),
            "state": state,
        }
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    async def begin_authorization(self, scopes: Iterable[str]) -> str:
        """Record a pending authorization and return the URL to redirect to."""
        scopes = list(scopes)
        state = await self.state_store.create_pending(scopes)
        _log_phase(FlowPhase.AWAITING_REDIRECT, scopes=scopes)
        return self.build_authorization_url(scopes, state)

    async def handle_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> AccessGrant:
        """
        Validate GitHub's redirect back to us and complete the exchange.

        Exactly one state mutation happens (the consume), and only once the
        error and missing-parameter checks have passed.

        Raises:
            UserDenied: GitHub reported an error (the user clicked "Cancel")
            MissingParameters: code or state absent
            InvalidState, ExpiredState: state unknown, reused or too old
            ExchangeFailed: GitHub did not issue a token
        """
        try:
            if error:
                raise UserDenied(error, error_description)
            if not code or not state:
                raise MissingParameters()

            pending = await self.state_store.consume_pending(state)
            _log_phase(FlowPhase.EXCHANGING)

            token_data = await self.exchange_code(code, state)
        except OAuthError as exc:
            _log_phase(FlowPhase.FAILED, level=logging.WARNING, reason=exc.code, detail=exc.message)
            raise

        token = token_data["access_token"]
        granted = parse_scopes(token_data.get("scope")) or list(pending.requested_scopes)

        identity: Optional[Identity] = None
        identity_error: Optional[str] = None
        try:
            identity = await self.fetch_identity(token)
        except IdentityFetchFailed as exc:
            identity_error = exc.code
            logger.warning(
                "Identity lookup failed after a successful exchange",
                extra={"event_data": {"phase": FlowPhase.SUCCESS.value, "detail": exc.detail}},
            )

        _log_phase(
            FlowPhase.SUCCESS,
            login=identity.login if identity else None,
            scopes=sorted(granted),
        )
        return AccessGrant(
            token=token,
            token_type=token_data.get("token_type") or "bearer",
            granted_scopes=frozenset(granted),
            identity=identity,
            identity_error=identity_error,
        )

    async def exchange_code(self, code: str, state: str) -> dict[str, Any]:
        """POST the code to GitHub's token endpoint and return its JSON answer."""
        payload = {
            "client_id": self.settings.github_client_id,
            "client_secret": self.settings.github_client_secret,
            "code": code,
            "state": state,
            "redirect_uri": self.settings.callback_url,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.upstream_timeout, transport=self.transport
            ) as client:
                resp = await client.post(
                    self.token_endpoint,
                    json=payload,
                    headers={"Accept": "application/json", "User-Agent": self.settings.user_agent},
                )
        except httpx.HTTPError as exc:
            raise ExchangeFailed(f"token endpoint unreachable ({type(exc).__name__})")

        if not resp.is_success:
            raise ExchangeFailed(f"token endpoint returned HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            raise ExchangeFailed("token endpoint returned a non-JSON body")
        if not isinstance(data, dict):
            raise ExchangeFailed("token endpoint returned an unexpected body")

        # GitHub reports bad/expired codes as 200 with an `error` field.
        if not data.get("access_token"):
            reason = data.get("error_description") or data.get("error")
            raise ExchangeFailed(reason or "no access token received")

        return data

    async def fetch_identity(self, token: str) -> Identity:
        try:
            data = await self.api.call(token, "GET", "user")
        except UpstreamError as exc:
            raise IdentityFetchFailed(f"{exc.kind}: {exc.message}")
        if not isinstance(data, dict):
            raise IdentityFetchFailed("unexpected response shape")
        return Identity.from_github(data)


def _log_phase(phase: FlowPhase, level: int = logging.INFO, **fields: Any) -> None:
    logger.log(
        level,
        "OAuth flow %s",
        phase.value,
        extra={"event_data": {"phase": phase.value, **fields}},
    )
