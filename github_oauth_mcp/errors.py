"""
Error taxonomy, grouped by the phase in which each failure can occur.

- OAuth phase (`OAuthError`): raised while turning an authorization code
  into an access grant. Each class carries a stable, machine-readable
  `code` that the callback handler puts into the redirect (`?error=<code>`)
  so the UI can translate it.
- Validation phase (`ToolValidationError`): raised by the dispatcher before
  any network call is made. Always answered with HTTP 400 and a specific
  reason.
- Transport phase (`UpstreamError`): raised by the GitHub client when the
  upstream API answers with a non-2xx status or cannot be reached. The
  dispatcher converts these into `isError` results instead of propagating.
"""

from typing import Any, Optional, Sequence


class GatewayError(Exception):
    """Base exception for every failure this service reports to a caller."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# OAuth phase
# ---------------------------------------------------------------------------


class OAuthError(GatewayError):
    """Base class for failures of the authorization-code flow."""

    code = "oauth_error"


class InvalidState(OAuthError):
    """The callback's state is unknown or was already consumed."""

    code = "invalid_state"

    def __init__(self, message: str = "Unknown or already used state"):
        super().__init__(message)


class ExpiredState(OAuthError):
    """The callback's state is known but older than the expiry window.

    Reported to the browser with the same code as `InvalidState`: from the
    user's point of view both mean "start the sign-in again".
    """

    code = "invalid_state"

    def __init__(self, message: str = "State has expired"):
        super().__init__(message)


class UserDenied(OAuthError):
    """GitHub redirected back with an `error` parameter (usually access_denied)."""

    def __init__(self, error: str = "access_denied", description: Optional[str] = None):
        self.code = error or "access_denied"
        self.description = description
        super().__init__(f"Authorization was not granted: {self.code}")


class MissingParameters(OAuthError):
    code = "missing_code_or_state"

    def __init__(self, message: str = "Callback is missing code or state"):
        super().__init__(message)


class ExchangeFailed(OAuthError):
    """The code-for-token exchange was rejected or returned no token."""

    code = "oauth_exchange_failed"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"OAuth code exchange failed: {detail}")


class IdentityFetchFailed(OAuthError):
    """The token was issued but `GET /user` failed.

    The grant remains valid; callers record this on the grant rather than
    aborting the sign-in.
    """

    code = "identity_fetch_failed"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Could not fetch the authenticated user: {detail}")


# ---------------------------------------------------------------------------
# Validation phase
# ---------------------------------------------------------------------------


class ToolValidationError(GatewayError):
    """Base class for rejections that happen before any upstream call."""

    code = "invalid_request"

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code}


class UnknownTool(ToolValidationError):
    code = "unknown_tool"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "tool": self.tool_name}


class MissingArgument(ToolValidationError):
    code = "missing_argument"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Missing required argument: {name}")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "argument": self.name}


class InvalidArgument(ToolValidationError):
    code = "invalid_argument"

    def __init__(
        self,
        name: str,
        reason: str,
        allowed: Optional[Sequence[Any]] = None,
    ):
        self.name = name
        self.reason = reason
        self.allowed = list(allowed) if allowed is not None else None
        msg = f"Invalid argument '{name}': {reason}"
        if self.allowed is not None:
            msg += f" (allowed: {', '.join(str(a) for a in self.allowed)})"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        data = {**super().to_dict(), "argument": self.name}
        if self.allowed is not None:
            data["allowed"] = self.allowed
        return data


# ---------------------------------------------------------------------------
# Transport phase
# ---------------------------------------------------------------------------


class UpstreamError(GatewayError):
    """The GitHub API answered with an unexpected status or was unreachable.

    Also the base class of the more specific transport errors below, so
    `except UpstreamError` catches the whole phase.

    Attributes:
        status: HTTP status from GitHub, or None for network failures
        message: GitHub's own error message when it sent one
    """

    kind = "upstream_error"

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "status": self.status, "message": self.message}


class Unauthorized(UpstreamError):
    kind = "unauthorized"


class Forbidden(UpstreamError):
    kind = "forbidden"


class NotFound(UpstreamError):
    kind = "not_found"


class RateLimited(UpstreamError):
    """GitHub refused the call because a rate limit was exhausted.

    `reset_at` is the Unix timestamp at which the limit resets, when GitHub
    told us (X-RateLimit-Reset, or now + Retry-After).
    """

    kind = "rate_limited"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        reset_at: Optional[int] = None,
    ):
        self.reset_at = reset_at
        super().__init__(message, status)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.reset_at is not None:
            data["reset_at"] = self.reset_at
        return data
