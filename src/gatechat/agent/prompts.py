"""System prompt for the chat agent.

Key patterns:
1. Use {date} placeholder for current date
2. Name the gateway tools only as a list of toolkits; the tools
   self-document through their MCP descriptions
3. Output is rendered as markdown in the terminal
"""

from collections.abc import Sequence
from datetime import datetime

_SYSTEM_PROMPT_TEMPLATE = """\
You are a general-purpose AI agent that can assist with a wide range of tasks.
Today's date is {date}.

You can take many actions via the tools provided to you.
ALWAYS prefer to call tools, but only when you are CERTAIN that you understand
the user's request. Otherwise, ask clarifying questions. Do not rely on any
pre-existing knowledge - only use the tools provided to you.
{toolkits}
## Response Formatting (IMPORTANT)

Format ALL responses using Markdown. Your output is rendered through a
Markdown engine in the terminal, so raw text will look plain. Specifically:
- Use **bold** and *italics* for emphasis
- Use `inline code` for commands, function names, file paths, and technical terms
- Use fenced code blocks with language tags for code snippets or command output
- Use tables (GFM pipe syntax) for structured or comparative data
- Use headings (##, ###) to organize longer responses into sections
- Use bullet/numbered lists instead of prose for steps or multiple items
"""


def toolkit_names(tool_names: Sequence[str]) -> list[str]:
    """Group gateway tool names (``Toolkit_Action``) into toolkit names."""
    toolkits = {name.split("_", 1)[0] if "_" in name else name for name in tool_names}
    return sorted(toolkits)


def get_system_prompt(
    *,
    date: datetime | None = None,
    tool_names: Sequence[str] = (),
) -> str:
    """Generate the system prompt.

    Args:
        date: Date to use as "today". If None, uses current date.
        tool_names: Gateway tool names, summarized as toolkits.

    Returns:
        The formatted system prompt.
    """
    effective_date = date or datetime.now()
    toolkits = toolkit_names(tool_names)
    toolkit_section = (
        f"\nAvailable toolkits: {', '.join(toolkits)}\n" if toolkits else ""
    )
    return _SYSTEM_PROMPT_TEMPLATE.format(
        date=effective_date.strftime("%Y-%m-%d"),
        toolkits=toolkit_section,
    )
