"""Interactive chat client for an agent that acts through MCP gateway tools.

Structure:
- gatechat/agent/: Session orchestration
  - config.py: Configuration via pydantic-settings
  - models.py: Conversation turns
  - history.py: Conversation history store and prompt rendering
  - provider.py: Agent provider interface and stream events
  - core.py: Claude Agent SDK provider
  - runner.py: Session runner (one input -> one streamed response)
  - dispatcher.py: Turn queue serializing inputs
  - prompts.py: System prompt

- gatechat/lib/: Reusable building blocks (OAuth, gateway, events)

- gatechat/environment/: Terminal presentation and the CLI
  - chat.py: Session lifecycle and input loop
  - console.py: Rich rendering
  - cli/__main__.py: Typer entry point
"""
