"""Terminal harness for the chat client.

This package contains the user-facing scaffolding:
- chat.py: Session lifecycle, signals and the input loop
- console.py: Rich rendering of logs, tool calls and responses
- cli/__main__.py: Typer entry point (``gatechat chat``)
"""
