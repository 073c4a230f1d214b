"""
GitHub OAuth gateway for MCP clients, built on FastMCP.

This module wires the components together and exposes them over HTTP:

- OAuth2 authorization-code flow against GitHub
    GET  /auth/github       redirect the browser to GitHub's consent page
    GET  /auth/callback     validate state, exchange the code, redirect back
- Plain JSON tool endpoints (any HTTP client, bearer token required)
    POST /mcp/tools/list    the tool catalogue
    POST /mcp/tools/call    {name, arguments} -> {content, isError}
- MCP Streamable HTTP at /mcp exposing the same catalogue as MCP tools,
  plus the resources github://user/profile and github://user/repositories
- GET /api/auth/status, /health and /ready

Architecture:
    Every tool call, whichever surface it arrives on, follows the same path:

    1. The bearer token is extracted from the Authorization header
       (auth.extract_bearer_token); a missing or malformed header is a 401
    2. The dispatcher validates the arguments against the catalogue; failures
       are answered before anything is sent to GitHub
    3. The routing table turns the call into one GitHub REST request, sent
       with the caller's own token
    4. GitHub's answer, or its error, is returned as a tool result

    The server never stores tokens. GitHub decides whether a token is valid
    and what it may do; this service only forwards it.

Running the server:
    python -m github_oauth_mcp.server

    This starts the server on http://0.0.0.0:3000 (PORT overrides the port).
"""

import json
import logging
import sys
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence
from urllib.parse import urlencode

from fastmcp import FastMCP
from fastmcp.exceptions import ResourceError, ToolError
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools import Tool, ToolResult
from mcp.types import CallToolRequestParams, ListToolsRequest, TextContent
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from github_oauth_mcp.auth import AuthError, extract_bearer_token
from github_oauth_mcp.config import settings
from github_oauth_mcp.dispatcher import ToolDispatcher, ToolInvocation
from github_oauth_mcp.errors import (
    IdentityFetchFailed,
    OAuthError,
    ToolValidationError,
    UpstreamError,
)
from github_oauth_mcp.github_client import GitHubClient
from github_oauth_mcp.oauth import GitHubOAuthClient, parse_scopes
from github_oauth_mcp.state_store import InMemoryStateStore
from github_oauth_mcp.tools import CATALOGUE, ToolDescriptor

# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------
# One JSON object per line on stdout, so the container runtime's log
# collector can index fields like tool, phase and decision. Tokens and the
# client secret never go into a log record.


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,123", "level": "INFO",
         "logger": "github_oauth_mcp.oauth", "message": "OAuth flow success",
         "phase": "success", "login": "octocat", "scopes": ["repo", "user"]}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Structured fields passed via logger.info("msg", extra={"event_data": {...}})
        if hasattr(record, "event_data"):
            log_entry.update(record.event_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(JSONLogFormatter())

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    handlers=[handler],
)
logger = logging.getLogger("github-oauth-mcp")


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------
# Module-level singletons, like `settings`. Tests swap the httpx transport on
# `github_client` and `oauth_client` to stand in for GitHub.

state_store = InMemoryStateStore(
    ttl_seconds=settings.state_ttl_seconds,
    sweep_interval_seconds=settings.state_sweep_interval_seconds,
)
github_client = GitHubClient.from_settings(settings)
oauth_client = GitHubOAuthClient(settings, state_store, github_client)
dispatcher = ToolDispatcher(github_client, CATALOGUE)


def _request_id() -> str:
    return str(uuid.uuid4())[:8]


def _auth_failure(request_id: str, surface: str, exc: AuthError) -> None:
    logger.warning(
        "Authentication failed",
        extra={
            "event_data": {
                "request_id": request_id,
                "surface": surface,
                "decision": "rejected",
                "reason": exc.message,
            }
        },
    )


# ---------------------------------------------------------------------------
# MCP surface: authentication middleware
# ---------------------------------------------------------------------------
# Runs on every MCP tools/list and tools/call. It only checks that a bearer
# token is present and well-formed; whether GitHub accepts it is discovered
# on the first upstream call, which reports `unauthorized` as a tool error.


class AuthMiddleware(Middleware):
    """Rejects MCP tool requests that carry no usable bearer token."""

    def _get_auth_header(self) -> str | None:
        """
        Extract the Authorization header from the current HTTP request.

        Returns None if no HTTP request is available (e.g., stdio transport).
        """
        try:
            request = get_http_request()
            return request.headers.get("authorization")
        except RuntimeError:
            return None

    def _authenticate(self, request_id: str) -> str:
        try:
            return extract_bearer_token(self._get_auth_header())
        except AuthError as exc:
            _auth_failure(request_id, "mcp", exc)
            raise

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        request_id = _request_id()
        self._authenticate(request_id)

        tools = await call_next(context)
        logger.info(
            "Tool list served",
            extra={
                "event_data": {
                    "request_id": request_id,
                    "surface": "mcp",
                    "total_tools": len(tools),
                    "decision": "authenticated",
                }
            },
        )
        return tools

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        request_id = _request_id()
        self._authenticate(request_id)

        logger.info(
            "Tool call accepted",
            extra={
                "event_data": {
                    "request_id": request_id,
                    "surface": "mcp",
                    "tool": context.message.name,
                    "decision": "authenticated",
                }
            },
        )
        return await call_next(context)


# ---------------------------------------------------------------------------
# MCP surface: one Tool per catalogue entry
# ---------------------------------------------------------------------------


class GitHubTool(Tool):
    """
    An MCP tool backed by the dispatcher.

    The input schema is the catalogue's, so MCP clients see exactly the
    contract the dispatcher enforces. Validation failures and GitHub errors
    come back as `isError` results rather than protocol errors.
    """

    @classmethod
    def from_descriptor(cls, descriptor: ToolDescriptor) -> "GitHubTool":
        return cls(
            name=descriptor.name,
            description=descriptor.description,
            parameters=descriptor.input_schema,
        )

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        try:
            request = get_http_request()
            token = extract_bearer_token(request.headers.get("authorization"))
        except (RuntimeError, AuthError) as exc:
            raise ToolError(f"Authentication required: {exc}")

        invocation = ToolInvocation(self.name, arguments, bearer_token=token)
        try:
            result = await dispatcher.dispatch(invocation)
        except ToolValidationError as exc:
            raise ToolError(json.dumps(exc.to_dict()))

        return ToolResult(
            content=[TextContent(type="text", text=item.text) for item in result.content],
            is_error=result.is_error,
        )


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Stop the state store's reaper when the server shuts down."""
    try:
        yield {}
    finally:
        await state_store.aclose()


mcp = FastMCP(
    name="github-oauth-mcp",
    lifespan=lifespan,
    instructions=(
        "GitHub tools authenticated with the caller's own OAuth token. "
        "Obtain a token by visiting /auth/github in a browser, then send it "
        "as 'Authorization: Bearer <token>' on every request."
    ),
    middleware=[AuthMiddleware()],
)

for _descriptor in CATALOGUE.list_tools():
    mcp.add_tool(GitHubTool.from_descriptor(_descriptor))


# ---------------------------------------------------------------------------
# MCP surface: read-only resources for the signed-in user
# ---------------------------------------------------------------------------


async def _read_as_caller(path: str, query: dict[str, Any] | None = None) -> str:
    """GET `path` with the caller's token and return the body as JSON text."""
    try:
        request = get_http_request()
        token = extract_bearer_token(request.headers.get("authorization"))
    except (RuntimeError, AuthError) as exc:
        raise ResourceError(f"Authentication required: {exc}")

    try:
        body = await github_client.call(token, "GET", path, query=query)
    except UpstreamError as exc:
        raise ResourceError(json.dumps(exc.to_dict()))
    return json.dumps(body, indent=2)


@mcp.resource(
    "github://user/profile",
    name="User Profile",
    description="Current authenticated user profile information",
    mime_type="application/json",
)
async def user_profile() -> str:
    return await _read_as_caller("user")


@mcp.resource(
    "github://user/repositories",
    name="User Repositories",
    description="Repositories of the authenticated user, most recently updated first",
    mime_type="application/json",
)
async def user_repositories() -> str:
    return await _read_as_caller("user/repos", {"sort": "updated", "per_page": 100})


# ---------------------------------------------------------------------------
# OAuth2 authorization-code flow
# ---------------------------------------------------------------------------


def _post_auth_url(params: dict[str, str]) -> str:
    base = settings.post_auth_redirect
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode(params)}"


@mcp.custom_route("/auth/github", methods=["GET"])
async def auth_github(request: Request) -> Response:
    """Start the flow: remember a fresh state and send the browser to GitHub."""
    if not settings.github_client_id:
        return JSONResponse(
            {"error": "GitHub OAuth is not configured", "code": "oauth_not_configured"},
            status_code=503,
        )

    scopes = parse_scopes(request.query_params.get("scopes") or settings.default_scopes)
    authorize_url = await oauth_client.begin_authorization(scopes)
    return RedirectResponse(authorize_url, status_code=302)


@mcp.custom_route("/auth/callback", methods=["GET"])
async def auth_callback(request: Request) -> Response:
    """
    GitHub redirects here after the user approves or denies access.

    The outcome always goes back to the browser as a redirect: on success the
    token, user and granted scopes; on failure a stable `error` code.
    """
    params = request.query_params
    try:
        grant = await oauth_client.handle_callback(
            code=params.get("code"),
            state=params.get("state"),
            error=params.get("error"),
            error_description=params.get("error_description"),
        )
    except OAuthError as exc:
        return RedirectResponse(_post_auth_url({"error": exc.code}), status_code=302)

    outcome = {"success": "true", "access_token": grant.token}
    if grant.identity is not None:
        outcome["user"] = json.dumps(grant.identity.to_dict())
    else:
        outcome["warning"] = grant.identity_error or "identity_fetch_failed"
    outcome["scope"] = ",".join(sorted(grant.granted_scopes))

    return RedirectResponse(_post_auth_url(outcome), status_code=302)


# ---------------------------------------------------------------------------
# JSON tool endpoints
# ---------------------------------------------------------------------------


def _unauthorized(exc: AuthError) -> Response:
    return JSONResponse({"error": exc.message, "code": "unauthorized"}, status_code=exc.status_code)


@mcp.custom_route("/mcp/tools/list", methods=["POST"])
async def tools_list(request: Request) -> Response:
    request_id = _request_id()
    try:
        extract_bearer_token(request.headers.get("authorization"))
    except AuthError as exc:
        _auth_failure(request_id, "http", exc)
        return _unauthorized(exc)

    return JSONResponse({"tools": [t.to_dict() for t in CATALOGUE.list_tools()]})


@mcp.custom_route("/mcp/tools/call", methods=["POST"])
async def tools_call(request: Request) -> Response:
    """
    Invoke one tool.

    400 means the call was rejected before reaching GitHub. Once dispatched,
    the answer is always 200; GitHub failures are reported with isError.
    """
    request_id = _request_id()
    try:
        token = extract_bearer_token(request.headers.get("authorization"))
    except AuthError as exc:
        _auth_failure(request_id, "http", exc)
        return _unauthorized(exc)

    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(
            {"error": "Request body must be JSON", "code": "invalid_request"},
            status_code=400,
        )

    name = payload.get("name") if isinstance(payload, dict) else None
    if not isinstance(name, str) or not name:
        return JSONResponse(
            {"error": "Tool name is required", "code": "invalid_request"},
            status_code=400,
        )

    invocation = ToolInvocation(name, payload.get("arguments"), bearer_token=token)
    try:
        result = await dispatcher.dispatch(invocation)
    except ToolValidationError as exc:
        logger.info(
            "Tool call rejected",
            extra={
                "event_data": {
                    "request_id": request_id,
                    "surface": "http",
                    "tool": name,
                    "decision": "rejected",
                    "reason": exc.code,
                }
            },
        )
        return JSONResponse(exc.to_dict(), status_code=400)

    return JSONResponse(result.to_dict())


@mcp.custom_route("/api/auth/status", methods=["GET"])
async def auth_status(request: Request) -> Response:
    """Report whether the presented token is still accepted by GitHub."""
    try:
        token = extract_bearer_token(request.headers.get("authorization"))
    except AuthError:
        return JSONResponse({"authenticated": False, "user": None})

    try:
        identity = await oauth_client.fetch_identity(token)
    except IdentityFetchFailed:
        return JSONResponse({"authenticated": False, "user": None, "error": "invalid_token"})

    return JSONResponse({"authenticated": True, "user": identity.to_dict()})


# ---------------------------------------------------------------------------
# Health and Readiness Endpoints
# ---------------------------------------------------------------------------
# Unauthenticated: probes have no token and the answers reveal nothing
# beyond whether the OAuth App is configured.


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> Response:
    """Liveness probe: is the server process alive and responsive?"""
    return JSONResponse(
        {"status": "healthy", "oauth_configured": bool(settings.github_client_id)}
    )


@mcp.custom_route("/ready", methods=["GET"])
async def readiness_check(request: Request) -> Response:
    """Readiness probe: can this instance complete an OAuth flow?"""
    if not settings.oauth_configured:
        return JSONResponse(
            {"status": "not_ready", "reason": "GitHub OAuth credentials missing"},
            status_code=503,
        )

    return JSONResponse({"status": "ready"})


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def main() -> None:
    if not settings.oauth_configured:
        logger.warning("GITHUB_CLIENT_ID / GITHUB_CLIENT_SECRET not set, OAuth flow disabled")
    logger.info(
        "Starting GitHub OAuth MCP server on %s:%d (transport=streamable-http, callback=%s)",
        settings.host,
        settings.port,
        settings.callback_url,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
