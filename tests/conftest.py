"""Shared test fixtures.

Scripted stand-ins for the agent provider, the gateway session and the
OAuth callback listener, so session and bootstrap logic can be tested
without a network, a browser or the agent SDK.
"""

import asyncio
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from types import TracebackType
from typing import Self

import pytest
from mcp.shared.auth import OAuthClientInformationFull, OAuthToken
from pydantic import AnyUrl

from gatechat.agent.models import Turn, assistant
from gatechat.agent.provider import StreamEvent, TextDelta
from gatechat.lib.credentials import CredentialStore
from gatechat.lib.events import EventNotifier, LogLevel

# ---------------------------------------------------------------------------
# Agent provider
# ---------------------------------------------------------------------------


class FakeRun:
    """Replays scripted events, then publishes a canonical history."""

    def __init__(
        self,
        turns: Sequence[Turn],
        events: Sequence[StreamEvent],
        *,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.turns = list(turns)
        self.events = list(events)
        self.error = error
        self.gate = gate
        self.final_output: str | None = None
        self.history: list[Turn] = []

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        texts: list[str] = []
        for event in self.events:
            if isinstance(event, TextDelta):
                texts.append(event.text)
            yield event
            await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        self.final_output = "".join(texts) or None
        if self.final_output:
            self.history = [*self.turns, assistant(self.final_output)]


class FakeProvider:
    """Agent provider that answers every input with scripted events."""

    def __init__(
        self,
        events: Sequence[StreamEvent] = (TextDelta(text="Hello"), TextDelta(text=" there")),
        *,
        error: Exception | None = None,
    ) -> None:
        self.events = list(events)
        self.error = error
        self.gate: asyncio.Event | None = None
        self.calls: list[list[Turn]] = []
        self.max_turns: list[int] = []

    def stream(self, turns: Sequence[Turn], *, max_turns: int) -> FakeRun:
        self.calls.append(list(turns))
        self.max_turns.append(max_turns)
        return FakeRun(turns, self.events, error=self.error, gate=self.gate)


@pytest.fixture
def notifier() -> EventNotifier:
    return EventNotifier(level=LogLevel.DEBUG)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


# ---------------------------------------------------------------------------
# Gateway / OAuth
# ---------------------------------------------------------------------------


class FakeListener:
    """Callback listener that delivers a fixed code (or never does)."""

    def __init__(self, port: int, code: str | None = "auth-code") -> None:
        self.port = port
        self.code = code
        self.entered = False
        self.exited = False

    async def wait_for_code(self) -> str:
        if self.code is None:
            await asyncio.Event().wait()
        assert self.code is not None
        return self.code

    async def __aenter__(self) -> Self:
        self.entered = True
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self.exited = True


@pytest.fixture
def store(tmp_path: Path) -> CredentialStore:
    return CredentialStore(tmp_path / "gateway")


@pytest.fixture
def client_info() -> OAuthClientInformationFull:
    return OAuthClientInformationFull(
        client_id="client-123",
        redirect_uris=[AnyUrl("http://localhost:9876/callback")],
        token_endpoint_auth_method="none",
    )


@pytest.fixture
def tokens() -> OAuthToken:
    return OAuthToken(
        access_token="access-abc",
        token_type="Bearer",
        expires_in=3600,
        refresh_token="refresh-xyz",
    )
