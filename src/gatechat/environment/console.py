"""Rich terminal presentation for the chat session.

Consumes the core's collaborator surface and nothing else:

- log events and tool-call updates from the ``EventNotifier``
- transcript turns and the in-progress text from the ``SessionRunner``
- queue depth from the ``TurnQueue``

Streaming text is shown in a transient live region and replaced by the
final assistant message rendered as markdown.
"""

import logging
from datetime import datetime

from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.text import Text

from gatechat.agent.dispatcher import TurnQueue
from gatechat.agent.models import Turn
from gatechat.agent.runner import SessionRunner
from gatechat.lib.events import EventNotifier, LogEvent, LogLevel, ToolCallInfo, Unsubscribe

logger = logging.getLogger(__name__)

LEVEL_STYLES = {
    LogLevel.DEBUG: "dim",
    LogLevel.INFO: "cyan",
    LogLevel.WARN: "yellow",
    LogLevel.ERROR: "bold red",
}
USER_PROMPT = "?> "


def truncate_str(value: str, max_len: int = 120) -> str:
    """Truncate a string to max_len, appending '...' if trimmed."""
    if len(value) > max_len:
        return value[:max_len] + "..."
    return value


class ChatConsole:
    """Prints session activity to the terminal."""

    def __init__(
        self,
        *,
        timestamps: bool = True,
        color: bool = True,
        console: Console | None = None,
    ) -> None:
        self.timestamps = timestamps
        self.console = console or Console(highlight=False, no_color=not color)
        self._live: Live | None = None

    def timestamp(self, when: datetime | None = None) -> str:
        if not self.timestamps:
            return ""
        return f"[{(when or datetime.now()).strftime('%H:%M:%S')}] "

    def _line(self, text: str, style: str = "", when: datetime | None = None) -> None:
        line = Text(self.timestamp(when), style="dim")
        line.append(text, style=style)
        self.console.print(line)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def show_log(self, event: LogEvent) -> None:
        self._line(event.message, LEVEL_STYLES[event.level], event.timestamp)

    def show_tool_call(self, info: ToolCallInfo) -> None:
        if info.status == "running":
            args = f" {truncate_str(info.args_text)}" if info.args_text else ""
            self._line(f"🔧 {info.name}{args}", "magenta")
            return
        mark, style = ("✗", "red") if info.is_error else ("✓", "green")
        self._line(f"{mark} {info.name} ({info.duration or 0:.1f}s)", style)

    def show_turn(self, turn: Turn) -> None:
        match turn.role:
            case "user":
                self._line(f"{USER_PROMPT}{turn.content}", "green", turn.timestamp)
            case "assistant":
                self._stop_live()
                self.console.print(Markdown(turn.content or "_(no response)_"))
            case "system":
                self._stop_live()
                self._line(turn.content, "bold red", turn.timestamp)

    def show_stream(self, text: str) -> None:
        if not text:
            self._stop_live()
            return
        if self._live is None:
            self._live = Live(
                Markdown(text),
                console=self.console,
                transient=True,
                refresh_per_second=8,
            )
            self._live.start()
        else:
            self._live.update(Markdown(text))

    def show_depth(self, depth: int) -> None:
        if depth > 0:
            self._line(f"⏳ {depth} message(s) queued", "dim")

    def _stop_live(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach_notifier(self, notifier: EventNotifier) -> list[Unsubscribe]:
        """Show log lines and tool calls; returns the unsubscribe handles."""
        return [
            notifier.subscribe_logs(self.show_log),
            notifier.subscribe_tool_calls(self.show_tool_call),
        ]

    def attach_session(
        self, runner: SessionRunner, queue: TurnQueue
    ) -> list[Unsubscribe]:
        """Show turns, streamed text and queue depth."""
        return [
            runner.subscribe_transcript(self.show_turn),
            runner.subscribe_stream(self.show_stream),
            queue.subscribe_depth(self.show_depth),
        ]

    def close(self) -> None:
        self._stop_live()
