"""
CLI utility to call the gateway's JSON tool endpoints.

Handy after completing the browser sign-in: copy the access token from the
redirect and use it here instead of hand-writing curl requests.

Usage examples:

    # List the available tools
    python -m scripts.call_tool --token gho_xxx --list

    # Call a tool; key=value pairs become the arguments
    python -m scripts.call_tool --token gho_xxx get_repository owner=octocat repo=hello-world

    # Values are parsed as JSON when possible, so numbers, booleans and
    # arrays keep their type
    python -m scripts.call_tool --token gho_xxx list_issues owner=octocat repo=hello-world per_page=5
    python -m scripts.call_tool --token gho_xxx create_issue owner=me repo=demo title=Bug 'labels=["bug"]'

    # The token can also come from the environment
    GITHUB_TOKEN=gho_xxx python -m scripts.call_tool --list

Exit status is 0 on success, 1 when the tool reported an error (isError),
and 2 when the request itself was rejected (HTTP 4xx/5xx).
"""

import argparse
import json
import os
import sys
from typing import Any

import httpx


def parse_arguments(pairs: list[str]) -> dict[str, Any]:
    """
    Turn ["owner=octocat", "per_page=5"] into {"owner": "octocat", "per_page": 5}.

    Values that parse as JSON keep their JSON type; anything else is a string.

    Raises:
        ValueError: If a pair has no "="
    """
    arguments: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        try:
            arguments[key] = json.loads(raw)
        except ValueError:
            arguments[key] = raw
    return arguments


def build_request(base_url: str, token: str, tool: str | None, arguments: dict[str, Any]) -> httpx.Request:
    """Build the POST for /mcp/tools/list (no tool) or /mcp/tools/call."""
    headers = {"Authorization": f"Bearer {token}"}
    base_url = base_url.rstrip("/")
    if tool is None:
        return httpx.Request("POST", f"{base_url}/mcp/tools/list", headers=headers)
    return httpx.Request(
        "POST",
        f"{base_url}/mcp/tools/call",
        headers=headers,
        json={"name": tool, "arguments": arguments},
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Call tools on the GitHub OAuth MCP gateway.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  List tools:
    %(prog)s --token gho_xxx --list

  Get a repository:
    %(prog)s --token gho_xxx get_repository owner=octocat repo=hello-world
        """,
    )

    parser.add_argument("tool", nargs="?", help="Tool name (omit with --list)")
    parser.add_argument("arguments", nargs="*", help="Tool arguments as key=value pairs")
    parser.add_argument(
        "--list",
        action="store_true",
        help="List the available tools instead of calling one",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("GITHUB_TOKEN"),
        help="GitHub OAuth access token (default: $GITHUB_TOKEN)",
    )
    parser.add_argument(
        "--url",
        default="http://localhost:3000",
        help="Base URL of the gateway (default: http://localhost:3000)",
    )

    args = parser.parse_args()

    if not args.token:
        parser.error("a token is required (--token or GITHUB_TOKEN)")
    if not args.list and not args.tool:
        parser.error("a tool name is required unless --list is given")

    try:
        arguments = parse_arguments(args.arguments)
    except ValueError as exc:
        parser.error(str(exc))

    request = build_request(args.url, args.token, None if args.list else args.tool, arguments)
    with httpx.Client(timeout=60.0) as client:
        response = client.send(request)

    try:
        body = response.json()
    except ValueError:
        body = response.text

    if response.is_error:
        print(f"HTTP {response.status_code}: {json.dumps(body, indent=2)}", file=sys.stderr)
        sys.exit(2)

    if args.list:
        for tool in body["tools"]:
            print(f"{tool['name']:<24} {tool['description']}")
        return

    for item in body.get("content", []):
        print(item.get("text", ""))
    if body.get("isError"):
        sys.exit(1)


if __name__ == "__main__":
    main()
