"""Session runner: one user input in, one streamed agent response out.

The runner owns the conversation History and a display transcript. Per
input it:

1. appends the user Turn (before the network call, so the agent sees it),
2. streams a response bounded by ``max_turns`` agent-internal turns,
   exposing the growing text through ``streaming_text`` and stream
   subscribers, and tool-call updates through the notifier,
3. replaces the History with the provider's canonical post-turn history
   (when non-empty) and records the assistant Turn in the transcript.

Failures become a system Turn in the transcript; History keeps just the
user Turn. Cancellation discards the partial output and re-raises.

The runner has no lock of its own: ``TurnQueue`` guarantees it is never
entered twice at once.
"""

import asyncio
import logging
from collections.abc import Callable

from gatechat.agent.history import History
from gatechat.agent.models import Turn, assistant, system, user
from gatechat.agent.provider import (
    AgentProvider,
    TextDelta,
    ToolCallFinished,
    ToolCallStarted,
)
from gatechat.lib.events import EventNotifier, Subscribers, ToolCallInfo, Unsubscribe

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 10


class SessionRunner:
    """Executes exchanges against the agent and keeps the History."""

    def __init__(
        self,
        provider: AgentProvider,
        notifier: EventNotifier,
        *,
        max_turns: int = DEFAULT_MAX_TURNS,
        history: History | None = None,
    ) -> None:
        self.provider = provider
        self.notifier = notifier
        self.max_turns = max_turns
        self.history = history if history is not None else History()
        self.transcript: list[Turn] = []
        self.tool_calls: list[ToolCallInfo] = []
        self.busy = False
        self._buffer: list[str] = []
        self._stream_subscribers: Subscribers[str] = Subscribers()
        self._transcript_subscribers: Subscribers[Turn] = Subscribers()

    # ------------------------------------------------------------------
    # Presentation hooks
    # ------------------------------------------------------------------

    @property
    def streaming_text(self) -> str:
        """Assistant text received so far for the in-flight exchange."""
        return "".join(self._buffer)

    def subscribe_stream(self, callback: Callable[[str], None]) -> Unsubscribe:
        """Called with the full in-progress text after every chunk.

        An empty string signals the stream was reset.
        """
        return self._stream_subscribers.add(callback)

    def subscribe_transcript(self, callback: Callable[[Turn], None]) -> Unsubscribe:
        """Called with each Turn appended to the transcript."""
        return self._transcript_subscribers.add(callback)

    def _record(self, turn: Turn) -> None:
        self.transcript.append(turn)
        self._transcript_subscribers.publish(turn)

    def _reset_stream(self) -> None:
        if self._buffer:
            self._buffer.clear()
            self._stream_subscribers.publish("")

    def _append_text(self, text: str) -> None:
        self._buffer.append(text)
        self._stream_subscribers.publish(self.streaming_text)

    # ------------------------------------------------------------------
    # Tool calls
    # ------------------------------------------------------------------

    def _tool_started(self, event: ToolCallStarted) -> None:
        info = ToolCallInfo(
            call_id=event.call_id, name=event.name, args_text=event.args_text
        )
        self.tool_calls.append(info)
        logger.debug("Tool call %s started: %s", event.call_id, event.name)
        self.notifier.tool_call(info)

    def _tool_finished(self, event: ToolCallFinished) -> None:
        for info in self.tool_calls:
            if info.call_id == event.call_id and info.status == "running":
                info.complete(is_error=event.is_error)
                logger.debug(
                    "Tool call %s completed in %.2fs", info.call_id, info.duration or 0
                )
                self.notifier.tool_call(info)
                return
        logger.debug("Result for unknown tool call %s", event.call_id)

    # ------------------------------------------------------------------
    # Exchange
    # ------------------------------------------------------------------

    async def process(self, text: str) -> str | None:
        """Run one exchange for *text*.

        Returns:
            The assistant's reply, or ``None`` if the exchange failed.

        Raises:
            asyncio.CancelledError: If the exchange was cancelled.
        """
        prompt = user(text)
        self.history.append(prompt)
        self._record(prompt)
        self.tool_calls = []
        self._reset_stream()
        self.busy = True

        try:
            run = self.provider.stream(self.history.turns, max_turns=self.max_turns)
            async for event in run:
                match event:
                    case TextDelta():
                        self._append_text(event.text)
                    case ToolCallStarted():
                        self._tool_started(event)
                    case ToolCallFinished():
                        self._tool_finished(event)

            reply = run.final_output or self.streaming_text
            if run.history:
                self.history.replace(run.history)
            self._record(assistant(reply))
            return reply

        except asyncio.CancelledError:
            logger.info("Response cancelled")
            raise
        except Exception as e:
            logger.debug("Exchange failed", exc_info=True)
            self._record(system(f"Error: {e}"))
            return None
        finally:
            self.busy = False
            self._reset_stream()

    def reset(self) -> None:
        """Forget the conversation (explicit ``clear`` command)."""
        self.history.clear()
        self.transcript.clear()
        self.tool_calls = []
        self._reset_stream()
