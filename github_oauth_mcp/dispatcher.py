"""
Tool dispatcher: turns "call tool X with arguments Y" into one GitHub request.

A call goes through two strictly ordered stages:

1. Preparation (no I/O). The tool is resolved in the catalogue, the
   arguments are validated and normalized against its parameters, defaults
   are applied, and the routing table turns the result into a concrete
   method, path, query and body. Every failure here is a
   `ToolValidationError` and no network call is made.
2. Execution. The prepared request is sent with the caller's token.
   Upstream failures do not propagate: they become a `ToolResult` with
   `is_error=True` whose text is the JSON error envelope.

Adding a tool means adding a descriptor to `tools.py` and a `Route` here;
no new code paths.
"""

import base64
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote

from github_oauth_mcp.errors import InvalidArgument, MissingArgument, UpstreamError
from github_oauth_mcp.github_client import GitHubClient
from github_oauth_mcp.tools import CATALOGUE, Parameter, ToolCatalogue, ToolDescriptor

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
_INTEGER = re.compile(r"^[+-]?\d+$")

# Path arguments that may legitimately contain "/" (file paths in a repo).
_MULTI_SEGMENT_FIELDS = frozenset({"path"})


# ---------------------------------------------------------------------------
# Invocations and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolInvocation:
    tool_name: str
    arguments: Any
    bearer_token: str = field(repr=False)


@dataclass(frozen=True)
class ContentItem:
    text: str
    type: str = "text"

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ToolResult:
    """What a tool call produced, in the shape MCP clients expect."""

    content: tuple[ContentItem, ...]
    is_error: bool = False

    @classmethod
    def from_body(cls, body: Any, is_error: bool = False) -> "ToolResult":
        return cls(content=(ContentItem(json.dumps(body, indent=2)),), is_error=is_error)

    @property
    def text(self) -> str:
        return "\n".join(item.text for item in self.content)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": [item.to_dict() for item in self.content],
            "isError": self.is_error,
        }


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _coerce(param: Parameter, value: Any) -> Any:
    """Convert a JSON value to the parameter's declared type, or raise."""
    name = param.name

    if param.type == "string":
        if isinstance(value, str):
            return value
        # Numeric IDs (e.g. a workflow ID) are accepted where a name would be.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        raise InvalidArgument(name, "must be a string")

    if param.type == "integer":
        if isinstance(value, bool):
            raise InvalidArgument(name, "must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and _INTEGER.match(value.strip()):
            return int(value.strip())
        raise InvalidArgument(name, "must be an integer")

    if param.type == "number":
        if isinstance(value, bool):
            raise InvalidArgument(name, "must be a number")
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                pass
        raise InvalidArgument(name, "must be a number")

    if param.type == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise InvalidArgument(name, "must be a boolean")

    if param.type == "array":
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return list(value)
        raise InvalidArgument(name, "must be an array of strings")

    raise InvalidArgument(name, f"unsupported type {param.type}")


def validate_arguments(descriptor: ToolDescriptor, arguments: Any) -> dict[str, Any]:
    """
    Validate raw client arguments against a tool's parameters.

    Returns a new dict holding only declared parameters, coerced to their
    types, with defaults filled in. Required parameters are checked first so
    that a call missing one always reports MissingArgument, whatever else is
    wrong with it.

    Raises:
        MissingArgument: A required parameter is absent, None or ""
        InvalidArgument: Unknown key, wrong type, value outside enum or bounds
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise InvalidArgument("arguments", "must be an object")

    declared = [p.name for p in descriptor.parameters]
    for key in arguments:
        if key not in declared:
            raise InvalidArgument(key, "unknown argument", allowed=declared)

    for param in descriptor.parameters:
        if param.required and _is_missing(arguments.get(param.name)):
            raise MissingArgument(param.name)

    normalized: dict[str, Any] = {}
    for param in descriptor.parameters:
        value = arguments.get(param.name)
        if _is_missing(value):
            if param.default is not None:
                normalized[param.name] = param.default
            continue

        value = _coerce(param, value)

        if param.enum is not None and value not in param.enum:
            raise InvalidArgument(param.name, f"unsupported value {value!r}", allowed=param.enum)
        if param.minimum is not None and value < param.minimum:
            raise InvalidArgument(param.name, f"must be >= {param.minimum:g}")
        if param.maximum is not None and value > param.maximum:
            raise InvalidArgument(param.name, f"must be <= {param.maximum:g}")

        normalized[param.name] = value

    return normalized


# ---------------------------------------------------------------------------
# Routing table
# ---------------------------------------------------------------------------


def encode_base64(text: str) -> str:
    """The contents API takes file bodies base64-encoded."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _quote_segment(name: str, value: Any) -> str:
    """
    Percent-encode a path argument.

    "." and ".." survive quoting and would be resolved by the HTTP client,
    moving the request to another endpoint, so they are rejected along with
    empty segments.
    """
    text = str(value)
    if name in _MULTI_SEGMENT_FIELDS:
        text = text.strip("/")
        segments = text.split("/")
    else:
        segments = [text]
    if any(segment in ("", ".", "..") for segment in segments):
        raise InvalidArgument(name, "must not contain '.' or '..' path segments")

    if name in _MULTI_SEGMENT_FIELDS:
        return quote(text, safe="/")
    return quote(text, safe="")


def render_path(templates: tuple[str, ...], arguments: Mapping[str, Any]) -> str:
    """
    Fill in the first template whose placeholders are all supplied.

    Templates are ordered most specific first, so `users/{owner}/repos` is
    used when an owner is given and `user/repos` otherwise.

    Raises:
        InvalidArgument: A path argument holds a ".", ".." or empty segment
    """
    for template in templates:
        fields = _PLACEHOLDER.findall(template)
        if all(arguments.get(f) is not None for f in fields):
            return _PLACEHOLDER.sub(
                lambda m: _quote_segment(m.group(1), arguments[m.group(1)]), template
            )
    raise ValueError(f"No path template matches the supplied arguments: {templates}")


@dataclass(frozen=True)
class PreparedRequest:
    method: str
    path: str
    query: dict[str, Any]
    body: Optional[dict[str, Any]]


@dataclass(frozen=True)
class Route:
    """
    How one tool maps onto the REST API.

    Attributes:
        method: HTTP method
        paths: Candidate path templates, most specific first
        query: Arguments sent as query parameters
        body: Arguments sent in the JSON body
        encoders: Per-field transforms applied to body values
    """

    method: str
    paths: tuple[str, ...]
    query: tuple[str, ...] = ()
    body: tuple[str, ...] = ()
    encoders: Mapping[str, Callable[[Any], Any]] = field(default_factory=dict)

    @property
    def fields(self) -> set[str]:
        names = set(self.query) | set(self.body)
        for template in self.paths:
            names.update(_PLACEHOLDER.findall(template))
        return names

    def build(self, arguments: Mapping[str, Any]) -> PreparedRequest:
        query = {k: arguments[k] for k in self.query if arguments.get(k) is not None}

        body: Optional[dict[str, Any]] = None
        if self.method != "GET":
            body = {}
            for key in self.body:
                if arguments.get(key) is None:
                    continue
                encode = self.encoders.get(key)
                body[key] = encode(arguments[key]) if encode else arguments[key]

        return PreparedRequest(
            method=self.method,
            path=render_path(self.paths, arguments),
            query=query,
            body=body,
        )


_REPO = "repos/{owner}/{repo}"
_PAGING = ("per_page", "page")

ROUTES: dict[str, Route] = {
    "get_user": Route("GET", ("users/{username}", "user")),
    "list_repositories": Route(
        "GET",
        ("users/{owner}/repos", "user/repos"),
        query=("type", "sort", *_PAGING),
    ),
    "get_repository": Route("GET", (_REPO,)),
    "create_repository": Route(
        "POST",
        ("user/repos",),
        body=(
            "name",
            "description",
            "private",
            "auto_init",
            "gitignore_template",
            "license_template",
        ),
    ),
    "list_issues": Route(
        "GET",
        (f"{_REPO}/issues",),
        query=("state", "labels", "assignee", "sort", *_PAGING),
    ),
    "get_issue": Route("GET", (f"{_REPO}/issues/{{issue_number}}",)),
    "create_issue": Route(
        "POST",
        (f"{_REPO}/issues",),
        body=("title", "body", "assignees", "labels"),
    ),
    "update_issue": Route(
        "PATCH",
        (f"{_REPO}/issues/{{issue_number}}",),
        body=("title", "body", "state", "assignees", "labels"),
    ),
    "list_pull_requests": Route(
        "GET",
        (f"{_REPO}/pulls",),
        query=("state", "head", "base", "sort", *_PAGING),
    ),
    "get_pull_request": Route("GET", (f"{_REPO}/pulls/{{pull_number}}",)),
    "create_pull_request": Route(
        "POST",
        (f"{_REPO}/pulls",),
        body=("title", "head", "base", "body", "draft"),
    ),
    "list_branches": Route(
        "GET",
        (f"{_REPO}/branches",),
        query=("protected", *_PAGING),
    ),
    "list_commits": Route(
        "GET",
        (f"{_REPO}/commits",),
        query=("sha", "path", "author", "since", "until", *_PAGING),
    ),
    "get_file_contents": Route(
        "GET",
        (f"{_REPO}/contents/{{path}}",),
        query=("ref",),
    ),
    "create_or_update_file": Route(
        "PUT",
        (f"{_REPO}/contents/{{path}}",),
        body=("message", "content", "branch", "sha"),
        encoders={"content": encode_base64},
    ),
    "list_workflows": Route(
        "GET",
        (f"{_REPO}/actions/workflows",),
        query=_PAGING,
    ),
    "list_workflow_runs": Route(
        "GET",
        (f"{_REPO}/actions/workflows/{{workflow_id}}/runs", f"{_REPO}/actions/runs"),
        query=("branch", "status", *_PAGING),
    ),
}


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class ToolDispatcher:
    """
    Validates, routes and executes tool invocations.

    Stateless apart from its collaborators; one instance serves every caller
    because the token travels with each invocation.
    """

    def __init__(
        self,
        client: GitHubClient,
        catalogue: ToolCatalogue = CATALOGUE,
        routes: Mapping[str, Route] = ROUTES,
    ):
        unrouted = [t.name for t in catalogue.list_tools() if t.name not in routes]
        if unrouted:
            raise ValueError(f"Tools without a route: {', '.join(unrouted)}")
        self.client = client
        self.catalogue = catalogue
        self.routes = routes

    def prepare(self, invocation: ToolInvocation) -> PreparedRequest:
        """
        Resolve and validate an invocation without touching the network.

        Raises:
            UnknownTool, MissingArgument, InvalidArgument
        """
        descriptor = self.catalogue.get_tool(invocation.tool_name)
        arguments = validate_arguments(descriptor, invocation.arguments)
        return self.routes[descriptor.name].build(arguments)

    async def dispatch(self, invocation: ToolInvocation) -> ToolResult:
        request = self.prepare(invocation)

        try:
            body = await self.client.call(
                invocation.bearer_token,
                request.method,
                request.path,
                query=request.query,
                body=request.body,
            )
        except UpstreamError as exc:
            logger.warning(
                "Tool call failed upstream",
                extra={
                    "event_data": {
                        "tool": invocation.tool_name,
                        "method": request.method,
                        "path": request.path,
                        "error": exc.kind,
                        "status": exc.status,
                    }
                },
            )
            return ToolResult.from_body(exc.to_dict(), is_error=True)

        logger.info(
            "Tool call completed",
            extra={
                "event_data": {
                    "tool": invocation.tool_name,
                    "method": request.method,
                    "path": request.path,
                }
            },
        )
        return ToolResult.from_body(body)
