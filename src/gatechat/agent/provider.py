"""Agent provider interface.

The Session Runner talks to the remote agent through this narrow seam:
``provider.stream(turns, max_turns=...)`` returns an ``AgentRun``, an
async iterable of stream events. Once iteration finishes the run exposes
the provider's canonical final output and post-turn history.

``gatechat.agent.core.ClaudeAgentProvider`` is the production
implementation; tests use scripted fakes.
"""

from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from gatechat.agent.models import Turn


class AgentExchangeError(Exception):
    """A single exchange with the agent failed."""


class TextDelta(BaseModel):
    """A chunk of assistant text."""

    model_config = ConfigDict(frozen=True)

    text: str


class ToolCallStarted(BaseModel):
    """The agent issued a tool call."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    name: str
    args_text: str = ""


class ToolCallFinished(BaseModel):
    """A tool call returned."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    is_error: bool = False


type StreamEvent = TextDelta | ToolCallStarted | ToolCallFinished


class AgentRun(Protocol):
    """One streamed exchange with the agent."""

    final_output: str | None
    history: list[Turn]

    def __aiter__(self) -> AsyncIterator[StreamEvent]: ...


class AgentProvider(Protocol):
    def stream(self, turns: Sequence[Turn], *, max_turns: int) -> AgentRun: ...
