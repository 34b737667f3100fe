"""Conversation history store.

The History is the ordered list of user and assistant turns the agent
sees on every exchange. It is append-only between exchanges and replaced
wholesale with the provider's canonical post-turn history when one is
returned. Only the explicit reset command empties it.

``format_history_for_prompt`` renders the History into the single prompt
string the agent SDK accepts.

Examples:
    >>> history = History()
    >>> history.append(user("What's on my calendar?"))
    >>> len(history)
    1
    >>> format_history_for_prompt(history.turns)
    "What's on my calendar?"
"""

import logging
from collections.abc import Callable, Iterator, Sequence

from gatechat.agent.models import Turn

logger = logging.getLogger(__name__)


class History:
    """Ordered sequence of conversation turns."""

    def __init__(self, turns: Sequence[Turn] = ()) -> None:
        self._turns: list[Turn] = list(turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    @property
    def turns(self) -> tuple[Turn, ...]:
        """Snapshot of the current turns."""
        return tuple(self._turns)

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def replace(self, turns: Sequence[Turn]) -> bool:
        """Replace every turn with *turns*.

        An empty sequence is ignored so a provider that returns no
        canonical history cannot wipe the conversation.

        Returns:
            True if the history was replaced.
        """
        if not turns:
            return False
        self._turns = list(turns)
        return True

    def clear(self) -> None:
        self._turns.clear()
        logger.debug("Conversation history cleared")


# -- Prompt rendering ---------------------------------------------------------


def default_turn_formatter(turn: Turn) -> str:
    """Format a past turn as a markdown paragraph."""
    speaker = "User" if turn.role == "user" else "Assistant"
    return f"**{speaker}**: {turn.content}"


def format_history_for_prompt(
    turns: Sequence[Turn],
    *,
    max_turns: int | None = None,
    formatter: Callable[[Turn], str] | None = None,
) -> str:
    """Render the conversation as one prompt ending with the latest input.

    Args:
        turns: History ending with the user turn to answer.
        max_turns: Keep only this many earlier turns as context.
        formatter: Callable that formats a single earlier turn. Uses
            ``default_turn_formatter`` if ``None``.

    Returns:
        The latest user message alone when there is no earlier context,
        otherwise a "conversation so far" section followed by it.
    """
    if not turns:
        return ""

    *earlier, latest = [t for t in turns if t.role != "system"] or [turns[-1]]
    if not earlier:
        return latest.content

    if max_turns is not None:
        earlier = earlier[-max_turns:]

    fmt = formatter or default_turn_formatter
    lines = ["## Conversation so far\n"]
    lines.extend(fmt(turn) + "\n" for turn in earlier)
    lines.append("## Latest message\n")
    lines.append(latest.content)
    return "\n".join(lines)
