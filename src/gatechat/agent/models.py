"""Conversation models.

A ``Turn`` is one message in the conversation. User and assistant turns
make up the History sent to the agent; system turns only appear in the
display transcript (errors and notices).
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

type Role = Literal["user", "assistant", "system"]


class Turn(BaseModel):
    """A single immutable message in the conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)


def user(content: str) -> Turn:
    return Turn(role="user", content=content)


def assistant(content: str) -> Turn:
    return Turn(role="assistant", content=content)


def system(content: str) -> Turn:
    return Turn(role="system", content=content)
