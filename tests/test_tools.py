"""
Tests for the tool catalogue (github_oauth_mcp/tools.py) and its agreement
with the dispatcher's routing table.
"""

import pytest

from github_oauth_mcp.dispatcher import ROUTES
from github_oauth_mcp.errors import UnknownTool
from github_oauth_mcp.tools import CATALOGUE, Parameter, ToolCatalogue, ToolDescriptor

EXPECTED_TOOLS = [
    "get_user",
    "list_repositories",
    "get_repository",
    "create_repository",
    "list_issues",
    "get_issue",
    "create_issue",
    "update_issue",
    "list_pull_requests",
    "get_pull_request",
    "create_pull_request",
    "list_branches",
    "list_commits",
    "get_file_contents",
    "create_or_update_file",
    "list_workflows",
    "list_workflow_runs",
]


class TestCatalogue:
    def test_tools_in_stable_order(self):
        assert [t.name for t in CATALOGUE.list_tools()] == EXPECTED_TOOLS

    def test_get_tool(self):
        tool = CATALOGUE.get_tool("get_repository")

        assert tool.name == "get_repository"
        assert [p.name for p in tool.parameters] == ["owner", "repo"]

    def test_unknown_tool(self):
        with pytest.raises(UnknownTool) as exc_info:
            CATALOGUE.get_tool("delete_everything")

        assert exc_info.value.to_dict() == {
            "error": "Unknown tool: delete_everything",
            "code": "unknown_tool",
            "tool": "delete_everything",
        }

    def test_duplicate_names_rejected(self):
        tool = ToolDescriptor(name="dup", description="")

        with pytest.raises(ValueError, match="unique"):
            ToolCatalogue([tool, tool])

    def test_membership(self):
        assert "list_issues" in CATALOGUE
        assert "list_gists" not in CATALOGUE
        assert len(CATALOGUE) == len(EXPECTED_TOOLS)

    def test_unsupported_parameter_type(self):
        with pytest.raises(ValueError, match="Unsupported parameter type"):
            Parameter("when", "date")


class TestInputSchema:
    def test_list_repositories_schema(self):
        schema = CATALOGUE.get_tool("list_repositories").input_schema

        assert schema["type"] == "object"
        assert schema["required"] == []
        assert schema["additionalProperties"] is False
        assert schema["properties"]["per_page"] == {
            "type": "integer",
            "description": "Results per page (max 100)",
            "default": 30,
            "minimum": 1,
            "maximum": 100,
        }
        assert schema["properties"]["sort"]["default"] == "updated"
        assert schema["properties"]["type"]["enum"] == [
            "all",
            "owner",
            "public",
            "private",
            "member",
        ]

    def test_required_parameters(self):
        schema = CATALOGUE.get_tool("get_issue").input_schema

        assert schema["required"] == ["owner", "repo", "issue_number"]

    def test_array_parameters_hold_strings(self):
        schema = CATALOGUE.get_tool("create_issue").input_schema

        assert schema["properties"]["labels"] == {
            "type": "array",
            "items": {"type": "string"},
            "description": "Labels to apply",
        }

    def test_to_dict(self):
        data = CATALOGUE.get_tool("get_user").to_dict()

        assert set(data) == {"name", "description", "inputSchema"}
        assert data["inputSchema"]["properties"]["username"]["type"] == "string"


class TestRoutingAgreement:
    @pytest.mark.parametrize("name", EXPECTED_TOOLS)
    def test_every_tool_has_a_route(self, name):
        assert name in ROUTES

    @pytest.mark.parametrize("name", EXPECTED_TOOLS)
    def test_route_only_uses_declared_parameters(self, name):
        declared = {p.name for p in CATALOGUE.get_tool(name).parameters}

        assert ROUTES[name].fields <= declared

    @pytest.mark.parametrize("name", EXPECTED_TOOLS)
    def test_every_parameter_is_routed(self, name):
        route = ROUTES[name]

        for param in CATALOGUE.get_tool(name).parameters:
            assert param.name in route.fields, f"{name}.{param.name} is never sent"
