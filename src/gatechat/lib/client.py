"""Centralized Agent SDK client creation.

All Agent SDK client construction goes through this module to ensure
consistent defaults: no on-disk session persistence (the client keeps its
own History) and no built-in Claude Code tools (the agent only acts
through gateway tools).

Examples:
    >>> async with build_client(
    ...     model="sonnet",
    ...     system_prompt="You are helpful.",
    ...     mcp_servers={"gateway": connection.server_config()},
    ...     max_turns=10,
    ... ) as client:
    ...     await client.query("Hello")
    ...     async for message in client.receive_response():
    ...         print(message)
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal

from claude_agent_sdk import ClaudeAgentOptions, ClaudeSDKClient
from claude_agent_sdk.types import McpServerConfig, SystemPromptPreset

logger = logging.getLogger(__name__)

MCP_TOOL_PREFIX = "mcp__"


def mcp_tool_name(server: str, tool: str) -> str:
    """Name the SDK exposes for *tool* on MCP server *server*."""
    return f"{MCP_TOOL_PREFIX}{server}__{tool}"


def display_tool_name(name: str) -> str:
    """Strip the ``mcp__<server>__`` prefix for display."""
    if name.startswith(MCP_TOOL_PREFIX):
        _server, _, tool = name[len(MCP_TOOL_PREFIX) :].partition("__")
        return tool or name
    return name


def build_options(
    *,
    model: str | None = None,
    system_prompt: str | SystemPromptPreset | None = None,
    allowed_tools: list[str] | None = None,
    permission_mode: Literal["default", "acceptEdits", "plan", "bypassPermissions"]
    | None = "bypassPermissions",
    mcp_servers: dict[str, McpServerConfig] | None = None,
    max_thinking_tokens: int | None = None,
    max_turns: int | None = None,
    include_partial_messages: bool = True,
    extra_args: dict[str, str | None] | None = None,
) -> ClaudeAgentOptions:
    """Build ClaudeAgentOptions with project-wide defaults.

    Always injects ``no-session-persistence`` into extra_args (caller
    wins on conflict) and disables the built-in tool set.
    """
    merged_extra: dict[str, str | None] = {
        "no-session-persistence": None,
        **(extra_args or {}),
    }
    return ClaudeAgentOptions(
        model=model,
        system_prompt=system_prompt,
        tools=[],
        allowed_tools=allowed_tools if allowed_tools is not None else [],
        permission_mode=permission_mode,
        mcp_servers=mcp_servers if mcp_servers is not None else {},
        max_thinking_tokens=max_thinking_tokens,
        max_turns=max_turns,
        include_partial_messages=include_partial_messages,
        extra_args=merged_extra,
    )


@asynccontextmanager
async def build_client(
    *,
    options: ClaudeAgentOptions | None = None,
    **kwargs: object,
) -> AsyncIterator[ClaudeSDKClient]:
    """Return a connected ClaudeSDKClient.

    Pass ``options`` (pre-built) to use as-is, or keyword arguments for
    ``build_options``.
    """
    if options is None:
        options = build_options(**kwargs)  # type: ignore[arg-type]
    async with ClaudeSDKClient(options=options) as client:
        yield client
