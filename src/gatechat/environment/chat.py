"""Interactive chat session lifecycle.

Wires the core together for one process:

1. route ``gatechat`` log records into the notifier
2. install SIGINT/SIGTERM handlers that cancel the session
3. bootstrap the gateway connection (OAuth in the browser if needed)
4. read input lines on a daemon thread and hand them to the turn queue
5. on exit or signal, close the queue and the gateway connection
"""

import asyncio
import logging
import signal
import threading

from gatechat.agent.config import Settings
from gatechat.agent.core import ClaudeAgentProvider
from gatechat.agent.dispatcher import TurnQueue
from gatechat.agent.prompts import toolkit_names
from gatechat.agent.runner import SessionRunner
from gatechat.environment.console import USER_PROMPT, ChatConsole
from gatechat.lib.credentials import CredentialStore
from gatechat.lib.events import EventNotifier, LogLevel, NotifierHandler
from gatechat.lib.gateway import GatewayBootstrapper

logger = logging.getLogger(__name__)

EXIT_COMMANDS = frozenset({"quit", "exit", "bye"})
CLEAR_COMMAND = "clear"
CANCEL_COMMAND = "cancel"
PACKAGE_LOGGER = "gatechat"


def handle_input(text: str, *, queue: TurnQueue, runner: SessionRunner) -> bool:
    """Dispatch one line of user input.

    Returns:
        False when the user asked to end the session.
    """
    text = text.strip()
    if not text:
        return True

    command = text.lower()
    if command in EXIT_COMMANDS:
        logger.info("👋 Goodbye!")
        return False
    if command == CLEAR_COMMAND:
        runner.reset()
        logger.info("🧹 Conversation history cleared!")
        return True
    if command == CANCEL_COMMAND:
        if not queue.cancel_current():
            logger.info("Nothing to cancel")
        return True

    queue.enqueue(text)
    return True


def start_input_thread(lines: asyncio.Queue[str | None]) -> threading.Thread:
    """Read stdin on a daemon thread; ``None`` marks end of input.

    A daemon thread never blocks interpreter exit, unlike the default
    executor used by ``asyncio.to_thread``.
    """
    loop = asyncio.get_running_loop()

    def read() -> None:
        while True:
            try:
                line = input(USER_PROMPT)
            except (EOFError, KeyboardInterrupt):
                loop.call_soon_threadsafe(lines.put_nowait, None)
                return
            loop.call_soon_threadsafe(lines.put_nowait, line)

    thread = threading.Thread(target=read, name="stdin-reader", daemon=True)
    thread.start()
    return thread


async def interact(
    queue: TurnQueue,
    runner: SessionRunner,
    *,
    model: str,
    tool_names: list[str],
    initial_message: str | None = None,
) -> None:
    """Run the input loop until the user quits or input ends."""
    logger.info("🤖 Starting chat session with your agent (%s)", model)
    logger.info("📦 Available toolkits: %s", ", ".join(toolkit_names(tool_names)) or "none")
    logger.info("💡 Type 'quit', 'exit', or 'bye' to end the session")
    logger.info("💡 Type 'clear' to clear the conversation history")
    logger.info("💡 Type 'cancel' to stop the response in progress")

    if initial_message and not handle_input(initial_message, queue=queue, runner=runner):
        return

    lines: asyncio.Queue[str | None] = asyncio.Queue()
    start_input_thread(lines)
    while True:
        line = await lines.get()
        if line is None:
            await queue.join()
            return
        if not handle_input(line, queue=queue, runner=runner):
            return


async def run_chat(
    settings: Settings,
    gateway_url: str,
    *,
    initial_message: str | None = None,
    level: LogLevel = LogLevel.INFO,
    bootstrapper: GatewayBootstrapper | None = None,
) -> None:
    """Bootstrap the gateway and run an interactive session.

    Args:
        bootstrapper: Replaces the default one built from *settings*.

    Raises:
        GatewayConnectionError: If the gateway cannot be reached or
            authorized. Signals end the session normally.
    """
    notifier = EventNotifier(level=level)
    view = ChatConsole(timestamps=settings.log_timestamps, color=settings.log_color)
    handles = view.attach_notifier(notifier)
    handler = NotifierHandler(notifier)
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.addHandler(handler)
    if level <= LogLevel.DEBUG:
        package_logger.setLevel(logging.DEBUG)

    loop = asyncio.get_running_loop()
    main = asyncio.current_task()
    signals = (signal.SIGINT, signal.SIGTERM)
    if main is not None:
        for sig in signals:
            loop.add_signal_handler(sig, main.cancel)

    if bootstrapper is None:
        bootstrapper = GatewayBootstrapper(
            gateway_url,
            CredentialStore(settings.credentials_dir),
            callback_port=settings.oauth_callback_port,
            auth_timeout=settings.oauth_timeout_seconds,
            http_timeout=settings.http_timeout_seconds,
        )
    queue: TurnQueue | None = None
    try:
        connection = await bootstrapper.connect()
        provider = ClaudeAgentProvider(settings, connection)
        runner = SessionRunner(provider, notifier, max_turns=settings.max_turns)
        queue = TurnQueue(runner.process)
        handles += view.attach_session(runner, queue)
        await interact(
            queue,
            runner,
            model=settings.model,
            tool_names=connection.tool_names,
            initial_message=initial_message,
        )
    except asyncio.CancelledError:
        logger.debug("Shutdown requested")
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)
        if queue is not None:
            await queue.close()
        await bootstrapper.close()
        view.close()
        for unsubscribe in handles:
            unsubscribe()
        package_logger.removeHandler(handler)
