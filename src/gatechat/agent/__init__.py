"""Session orchestration.

This subpackage sequences user turns against the remote agent:
- config.py: Configuration via pydantic-settings
- models.py: Turn model
- history.py: Conversation history store
- provider.py: Agent provider interface
- core.py: Claude Agent SDK provider
- runner.py: Session runner
- dispatcher.py: Turn queue
- prompts.py: System prompt
"""
