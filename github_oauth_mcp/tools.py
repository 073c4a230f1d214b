"""
Tool catalogue: the single source of truth for what can be invoked.

Each `ToolDescriptor` names one GitHub operation and declares its input
contract. The contract is used three ways:

- Clients see it as a JSON Schema (`inputSchema`) in tools/list responses
- The dispatcher validates and normalizes arguments against it
- Defaults declared here are applied before routing

Which endpoint a tool calls lives in the dispatcher's routing table; this
module only describes *what* each tool accepts.

The catalogue is built once at import time and never mutated.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from github_oauth_mcp.errors import UnknownTool

# Parameter types understood by the dispatcher. "array" means array of strings.
PARAMETER_TYPES = ("string", "integer", "number", "boolean", "array")


@dataclass(frozen=True)
class Parameter:
    """
    One named input of a tool.

    Attributes:
        name: Argument key as sent by the client
        type: One of PARAMETER_TYPES
        description: Shown to the client (and to the model driving it)
        required: Whether the call is rejected when the argument is absent
        enum: Allowed values, if restricted
        default: Applied when the argument is absent
        minimum, maximum: Inclusive bounds for numeric parameters
    """

    name: str
    type: str
    description: str = ""
    required: bool = False
    enum: Optional[tuple[Any, ...]] = None
    default: Any = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    def __post_init__(self):
        if self.type not in PARAMETER_TYPES:
            raise ValueError(f"Unsupported parameter type for '{self.name}': {self.type}")

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type}
        if self.type == "array":
            schema["items"] = {"type": "string"}
        if self.description:
            schema["description"] = self.description
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.default is not None:
            schema["default"] = self.default
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        return schema


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    parameters: tuple[Parameter, ...] = ()

    def parameter(self, name: str) -> Optional[Parameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {p.name: p.to_json_schema() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
            "additionalProperties": False,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class ToolCatalogue:
    """An ordered, read-only collection of tool descriptors."""

    def __init__(self, tools: Sequence[ToolDescriptor]):
        self._tools = tuple(tools)
        self._by_name = {t.name: t for t in self._tools}
        if len(self._by_name) != len(self._tools):
            raise ValueError("Tool names must be unique")

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def list_tools(self) -> tuple[ToolDescriptor, ...]:
        return self._tools

    def get_tool(self, name: str) -> ToolDescriptor:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownTool(name)


# ---------------------------------------------------------------------------
# Shared parameter definitions
# ---------------------------------------------------------------------------

OWNER = Parameter("owner", "string", "Repository owner (user or organization)", required=True)
REPO = Parameter("repo", "string", "Repository name", required=True)
PER_PAGE = Parameter(
    "per_page", "integer", "Results per page (max 100)", default=30, minimum=1, maximum=100
)
PAGE = Parameter("page", "integer", "Page number of the results to fetch", minimum=1)


def _state(default: Optional[str] = "open") -> Parameter:
    return Parameter(
        "state",
        "string",
        "Filter by state",
        enum=("open", "closed", "all"),
        default=default,
    )


WORKFLOW_RUN_STATUSES = (
    "completed",
    "action_required",
    "cancelled",
    "failure",
    "neutral",
    "skipped",
    "stale",
    "success",
    "timed_out",
    "in_progress",
    "queued",
    "requested",
    "waiting",
)


# ---------------------------------------------------------------------------
# The catalogue
# ---------------------------------------------------------------------------

TOOLS: tuple[ToolDescriptor, ...] = (
    # --- Users ---
    ToolDescriptor(
        name="get_user",
        description=(
            "Get the authenticated user's GitHub profile, or another user's "
            "public profile when a username is given"
        ),
        parameters=(
            Parameter("username", "string", "Username to look up (omit for the authenticated user)"),
        ),
    ),
    # --- Repositories ---
    ToolDescriptor(
        name="list_repositories",
        description=(
            "List repositories for the authenticated user, or for another "
            "user when an owner is given"
        ),
        parameters=(
            Parameter("owner", "string", "List this user's repositories instead"),
            Parameter(
                "type",
                "string",
                "Type of repositories to list",
                enum=("all", "owner", "public", "private", "member"),
                default="owner",
            ),
            Parameter(
                "sort",
                "string",
                "Sort order",
                enum=("created", "updated", "pushed", "full_name"),
                default="updated",
            ),
            PER_PAGE,
            PAGE,
        ),
    ),
    ToolDescriptor(
        name="get_repository",
        description="Get detailed information about a specific repository",
        parameters=(OWNER, REPO),
    ),
    ToolDescriptor(
        name="create_repository",
        description="Create a new repository owned by the authenticated user",
        parameters=(
            Parameter("name", "string", "Repository name", required=True),
            Parameter("description", "string", "Repository description"),
            Parameter("private", "boolean", "Whether the repository is private", default=False),
            Parameter(
                "auto_init", "boolean", "Create an initial commit with an empty README", default=True
            ),
            Parameter("gitignore_template", "string", "Gitignore template, e.g. Python"),
            Parameter("license_template", "string", "License keyword, e.g. mit"),
        ),
    ),
    # --- Issues ---
    ToolDescriptor(
        name="list_issues",
        description="List issues for a repository",
        parameters=(
            OWNER,
            REPO,
            _state(),
            Parameter("labels", "string", "Comma-separated label names to filter by"),
            Parameter("assignee", "string", "Username of the assignee to filter by"),
            Parameter(
                "sort", "string", "Sort order", enum=("created", "updated", "comments")
            ),
            PER_PAGE,
            PAGE,
        ),
    ),
    ToolDescriptor(
        name="get_issue",
        description="Get detailed information about a specific issue",
        parameters=(
            OWNER,
            REPO,
            Parameter("issue_number", "integer", "Issue number", required=True, minimum=1),
        ),
    ),
    ToolDescriptor(
        name="create_issue",
        description="Create a new issue in a repository",
        parameters=(
            OWNER,
            REPO,
            Parameter("title", "string", "Issue title", required=True),
            Parameter("body", "string", "Issue body (Markdown)"),
            Parameter("assignees", "array", "Usernames to assign"),
            Parameter("labels", "array", "Labels to apply"),
        ),
    ),
    ToolDescriptor(
        name="update_issue",
        description="Update the title, body, state, assignees or labels of an issue",
        parameters=(
            OWNER,
            REPO,
            Parameter("issue_number", "integer", "Issue number", required=True, minimum=1),
            Parameter("title", "string", "New title"),
            Parameter("body", "string", "New body (Markdown)"),
            Parameter("state", "string", "New state", enum=("open", "closed")),
            Parameter("assignees", "array", "Replace the assignees"),
            Parameter("labels", "array", "Replace the labels"),
        ),
    ),
    # --- Pull requests ---
    ToolDescriptor(
        name="list_pull_requests",
        description="List pull requests for a repository",
        parameters=(
            OWNER,
            REPO,
            _state(),
            Parameter("head", "string", "Filter by head branch (user:branch)"),
            Parameter("base", "string", "Filter by base branch"),
            Parameter(
                "sort",
                "string",
                "Sort order",
                enum=("created", "updated", "popularity", "long-running"),
            ),
            PER_PAGE,
            PAGE,
        ),
    ),
    ToolDescriptor(
        name="get_pull_request",
        description="Get detailed information about a specific pull request",
        parameters=(
            OWNER,
            REPO,
            Parameter("pull_number", "integer", "Pull request number", required=True, minimum=1),
        ),
    ),
    ToolDescriptor(
        name="create_pull_request",
        description="Open a new pull request",
        parameters=(
            OWNER,
            REPO,
            Parameter("title", "string", "Pull request title", required=True),
            Parameter("head", "string", "Branch containing the changes", required=True),
            Parameter("base", "string", "Branch to merge into", default="main"),
            Parameter("body", "string", "Pull request description (Markdown)"),
            Parameter("draft", "boolean", "Open as a draft", default=False),
        ),
    ),
    # --- Branches and commits ---
    ToolDescriptor(
        name="list_branches",
        description="List branches for a repository",
        parameters=(
            OWNER,
            REPO,
            Parameter("protected", "boolean", "Only return protected (true) or unprotected (false) branches"),
            PER_PAGE,
            PAGE,
        ),
    ),
    ToolDescriptor(
        name="list_commits",
        description="List commits for a repository",
        parameters=(
            OWNER,
            REPO,
            Parameter("sha", "string", "Branch name or commit SHA to start from"),
            Parameter("path", "string", "Only commits touching this file path"),
            Parameter("author", "string", "GitHub username or email of the author"),
            Parameter("since", "string", "Only commits after this date (ISO 8601)"),
            Parameter("until", "string", "Only commits before this date (ISO 8601)"),
            PER_PAGE,
            PAGE,
        ),
    ),
    # --- Contents ---
    ToolDescriptor(
        name="get_file_contents",
        description="Get the contents of a file or directory in a repository",
        parameters=(
            OWNER,
            REPO,
            Parameter("path", "string", "File or directory path", required=True),
            Parameter("ref", "string", "Branch, tag or commit SHA (defaults to the default branch)"),
        ),
    ),
    ToolDescriptor(
        name="create_or_update_file",
        description=(
            "Create a file, or update it when the SHA of the current blob is "
            "given; the content is committed directly"
        ),
        parameters=(
            OWNER,
            REPO,
            Parameter("path", "string", "File path", required=True),
            Parameter("message", "string", "Commit message", required=True),
            Parameter("content", "string", "New file content (plain text)", required=True),
            Parameter("branch", "string", "Branch to commit to (defaults to the default branch)"),
            Parameter("sha", "string", "Blob SHA of the file being replaced (required for updates)"),
        ),
    ),
    # --- Actions ---
    ToolDescriptor(
        name="list_workflows",
        description="List GitHub Actions workflows for a repository",
        parameters=(OWNER, REPO, PER_PAGE, PAGE),
    ),
    ToolDescriptor(
        name="list_workflow_runs",
        description="List workflow runs for a repository, or for one workflow",
        parameters=(
            OWNER,
            REPO,
            Parameter("workflow_id", "string", "Workflow ID or file name, e.g. ci.yml"),
            Parameter("branch", "string", "Only runs for this branch"),
            Parameter("status", "string", "Filter by run status", enum=WORKFLOW_RUN_STATUSES),
            PER_PAGE,
            PAGE,
        ),
    ),
)

CATALOGUE = ToolCatalogue(TOOLS)
