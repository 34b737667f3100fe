"""Claude-backed agent provider.

Turns the conversation History into one streamed Agent SDK exchange:

1. The History is rendered into a single prompt (the SDK keeps no state
   between our calls).
2. The gateway is registered as an HTTP MCP server using the bearer token
   from the bootstrap, and its tools are the only ones allowed.
3. Partial messages are enabled so text arrives as deltas; tool use and
   tool result blocks become tool-call lifecycle events.
4. The ``ResultMessage`` supplies the canonical final output.
"""

import json
import logging
from collections.abc import AsyncIterator, Sequence

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)
from claude_agent_sdk.types import StreamEvent as SdkStreamEvent

from gatechat.agent.config import Settings
from gatechat.agent.history import format_history_for_prompt
from gatechat.agent.models import Turn, assistant
from gatechat.agent.prompts import get_system_prompt
from gatechat.agent.provider import (
    AgentExchangeError,
    StreamEvent,
    TextDelta,
    ToolCallFinished,
    ToolCallStarted,
)
from gatechat.lib.client import build_client, build_options, display_tool_name, mcp_tool_name
from gatechat.lib.gateway import GatewayConnection

logger = logging.getLogger(__name__)

GATEWAY_SERVER = "gateway"


def _text_delta(event: dict[str, object]) -> str | None:
    """Extract assistant text from a raw ``content_block_delta`` event."""
    if event.get("type") != "content_block_delta":
        return None
    delta = event.get("delta")
    if isinstance(delta, dict) and delta.get("type") == "text_delta":
        text = delta.get("text")
        return text if isinstance(text, str) else None
    return None


class ClaudeRun:
    """One streamed exchange; iterate it once, then read the results."""

    def __init__(
        self,
        turns: Sequence[Turn],
        options: ClaudeAgentOptions,
    ) -> None:
        self.turns = list(turns)
        self.options = options
        self.final_output: str | None = None
        self.history: list[Turn] = []
        self.result: ResultMessage | None = None

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        texts: list[str] = []
        streamed = False
        need_break = False

        async with build_client(options=self.options) as client:
            await client.query(format_history_for_prompt(self.turns))

            async for message in client.receive_response():
                match message:
                    case SdkStreamEvent():
                        if message.parent_tool_use_id is not None:
                            continue
                        text = _text_delta(message.event)
                        if text:
                            if need_break:
                                text = "\n\n" + text
                                need_break = False
                            streamed = True
                            yield TextDelta(text=text)

                    case AssistantMessage():
                        for block in message.content:
                            match block:
                                case TextBlock():
                                    texts.append(block.text)
                                    if not streamed:
                                        prefix = "\n\n" if len(texts) > 1 else ""
                                        yield TextDelta(text=prefix + block.text)
                                case ToolUseBlock():
                                    need_break = streamed
                                    yield ToolCallStarted(
                                        call_id=block.id,
                                        name=display_tool_name(block.name),
                                        args_text=json.dumps(block.input)
                                        if block.input
                                        else "",
                                    )

                    case UserMessage():
                        if isinstance(message.content, list):
                            for block in message.content:
                                if isinstance(block, ToolResultBlock):
                                    yield ToolCallFinished(
                                        call_id=block.tool_use_id,
                                        is_error=bool(block.is_error),
                                    )

                    case ResultMessage():
                        self.result = message
                        if message.subtype == "error_max_turns":
                            raise AgentExchangeError(
                                f"Agent stopped after {message.num_turns} turns "
                                "without finishing"
                            )
                        if message.is_error:
                            raise AgentExchangeError(f"Agent error: {message.result}")

                    case SystemMessage():
                        logger.debug("System [%s]: %s", message.subtype, message.data)

        if self.result is None:
            raise AgentExchangeError("No result received from agent")

        self.final_output = self.result.result or "\n\n".join(texts) or None
        if self.final_output:
            self.history = [*self.turns, assistant(self.final_output)]
        logger.debug(
            "Exchange finished in %sms (cost: $%.4f)",
            self.result.duration_ms,
            self.result.total_cost_usd or 0,
        )


class ClaudeAgentProvider:
    """Agent provider that reaches gateway tools through the Agent SDK."""

    def __init__(self, settings: Settings, connection: GatewayConnection) -> None:
        self.settings = settings
        self.connection = connection

    def _build_options(self, max_turns: int) -> ClaudeAgentOptions:
        """Build options from settings and the live gateway connection.

        Separated from stream() so the option-building logic can be
        tested independently.
        """
        tool_names = self.connection.tool_names
        return build_options(
            model=self.settings.model,
            system_prompt=get_system_prompt(tool_names=tool_names),
            allowed_tools=[mcp_tool_name(GATEWAY_SERVER, name) for name in tool_names],
            mcp_servers={GATEWAY_SERVER: self.connection.server_config()},
            max_thinking_tokens=self.settings.max_thinking_tokens,
            max_turns=max_turns,
        )

    def stream(self, turns: Sequence[Turn], *, max_turns: int) -> ClaudeRun:
        return ClaudeRun(turns, self._build_options(max_turns))
