"""Tests for input handling and terminal rendering."""

import asyncio
import io
import os
import signal
from pathlib import Path

import pytest
from conftest import FakeProvider
from rich.console import Console

from gatechat.agent.config import Settings
from gatechat.agent.dispatcher import TurnQueue
from gatechat.agent.models import assistant, system, user
from gatechat.agent.runner import SessionRunner
from gatechat.environment import chat
from gatechat.environment.chat import handle_input, run_chat
from gatechat.environment.console import ChatConsole, truncate_str
from gatechat.lib.events import EventNotifier, LogEvent, LogLevel, ToolCallInfo


@pytest.fixture
def runner(provider: FakeProvider, notifier: EventNotifier) -> SessionRunner:
    return SessionRunner(provider, notifier)


class TestHandleInput:
    """Tests for command dispatch."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["quit", "exit", "BYE", "  bye  "])
    async def test_exit_commands(self, runner: SessionRunner, command: str) -> None:
        queue = TurnQueue(runner.process)

        assert not handle_input(command, queue=queue, runner=runner)
        assert queue.depth == 0

    @pytest.mark.asyncio
    async def test_blank_line_ignored(self, runner: SessionRunner) -> None:
        queue = TurnQueue(runner.process)

        assert handle_input("   ", queue=queue, runner=runner)
        assert queue.depth == 0

    @pytest.mark.asyncio
    async def test_message_enqueued(self, runner: SessionRunner) -> None:
        queue = TurnQueue(runner.process)

        assert handle_input("hello", queue=queue, runner=runner)
        await queue.join()

        assert [t.content for t in runner.history] == ["hello", "Hello there"]

    @pytest.mark.asyncio
    async def test_clear_resets_history(self, runner: SessionRunner) -> None:
        queue = TurnQueue(runner.process)
        handle_input("hello", queue=queue, runner=runner)
        await queue.join()

        assert handle_input("clear", queue=queue, runner=runner)

        assert len(runner.history) == 0

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, runner: SessionRunner) -> None:
        queue = TurnQueue(runner.process)

        assert handle_input("cancel", queue=queue, runner=runner)


class TestInteract:
    """Tests for the input loop."""

    @pytest.mark.asyncio
    async def test_initial_exit_command_ends_session(
        self, monkeypatch: pytest.MonkeyPatch, runner: SessionRunner
    ) -> None:
        started: list[object] = []
        monkeypatch.setattr(chat, "start_input_thread", started.append)
        queue = TurnQueue(runner.process)

        await chat.interact(
            queue, runner, model="m", tool_names=[], initial_message="quit"
        )

        assert started == []
        assert queue.depth == 0
        assert len(runner.history) == 0

    @pytest.mark.asyncio
    async def test_initial_message_answered_before_end_of_input(
        self, monkeypatch: pytest.MonkeyPatch, runner: SessionRunner
    ) -> None:
        monkeypatch.setattr(
            chat, "start_input_thread", lambda lines: lines.put_nowait(None)
        )
        queue = TurnQueue(runner.process)

        await chat.interact(
            queue, runner, model="m", tool_names=[], initial_message="hello"
        )

        assert [t.content for t in runner.history] == ["hello", "Hello there"]


class HangingBootstrapper:
    """Bootstrapper whose connect never finishes."""

    def __init__(self) -> None:
        self.connecting = asyncio.Event()
        self.closed = False

    async def connect(self) -> None:
        self.connecting.set()
        await asyncio.Event().wait()

    async def close(self) -> None:
        self.closed = True


class TestShutdown:
    """Tests for ending a session from outside the input loop."""

    @pytest.fixture
    def settings(self, tmp_path: Path) -> Settings:
        return Settings.model_validate(
            {"AGENT_CONTEXT_DIR": tmp_path / ".context", "LOG_COLOR": False}
        )

    async def _start(
        self, settings: Settings, bootstrapper: HangingBootstrapper
    ) -> asyncio.Task[None]:
        task = asyncio.create_task(
            run_chat(
                settings,
                "https://gateway.example.com/mcp",
                bootstrapper=bootstrapper,  # type: ignore[arg-type]
            )
        )
        await asyncio.wait_for(bootstrapper.connecting.wait(), timeout=5)
        return task

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sig", [signal.SIGINT, signal.SIGTERM])
    async def test_signal_closes_gateway(self, settings: Settings, sig: int) -> None:
        bootstrapper = HangingBootstrapper()
        task = await self._start(settings, bootstrapper)

        os.kill(os.getpid(), sig)
        await asyncio.wait_for(task, timeout=5)

        assert bootstrapper.closed
        assert not task.cancelled()
        assert task.exception() is None

    @pytest.mark.asyncio
    async def test_cancel_closes_gateway(self, settings: Settings) -> None:
        bootstrapper = HangingBootstrapper()
        task = await self._start(settings, bootstrapper)

        task.cancel()
        await asyncio.wait_for(task, timeout=5)

        assert bootstrapper.closed
        assert not task.cancelled()


class TestChatConsole:
    """Tests for rendering to a captured console."""

    @pytest.fixture
    def output(self) -> io.StringIO:
        return io.StringIO()

    @pytest.fixture
    def view(self, output: io.StringIO) -> ChatConsole:
        console = Console(file=output, width=100, no_color=True, force_terminal=False)
        return ChatConsole(timestamps=False, console=console)

    def test_log_line(self, view: ChatConsole, output: io.StringIO) -> None:
        view.show_log(LogEvent(level=LogLevel.WARN, message="careful"))

        assert output.getvalue().strip() == "careful"

    def test_timestamps(self, output: io.StringIO) -> None:
        console = Console(file=output, width=100, no_color=True)
        view = ChatConsole(timestamps=True, console=console)

        view.show_log(LogEvent(level=LogLevel.INFO, message="hi"))

        assert output.getvalue().startswith("[")

    def test_tool_call_lifecycle(self, view: ChatConsole, output: io.StringIO) -> None:
        info = ToolCallInfo(call_id="c1", name="Gmail_ListEmails", args_text='{"n": 3}')
        view.show_tool_call(info)
        info.complete(is_error=True)
        view.show_tool_call(info)

        lines = output.getvalue().splitlines()
        assert lines[0] == '🔧 Gmail_ListEmails {"n": 3}'
        assert lines[1].startswith("✗ Gmail_ListEmails")

    def test_turns(self, view: ChatConsole, output: io.StringIO) -> None:
        view.show_turn(user("hello"))
        view.show_turn(assistant("**Hi**"))
        view.show_turn(system("Error: boom"))

        text = output.getvalue()
        assert "?> hello" in text
        assert "Hi" in text
        assert "Error: boom" in text

    def test_attach_notifier(self, view: ChatConsole, output: io.StringIO) -> None:
        notifier = EventNotifier()
        handles = view.attach_notifier(notifier)

        notifier.info("visible")
        for unsubscribe in handles:
            unsubscribe()
        notifier.info("hidden")

        assert "visible" in output.getvalue()
        assert "hidden" not in output.getvalue()


def test_truncate_str() -> None:
    assert truncate_str("abc", 5) == "abc"
    assert truncate_str("abcdef", 3) == "abc..."
