"""Library utilities for the gateway chat client.

This package contains reusable, **parametric** building blocks that are
configured through function arguments, never through global settings.
Session orchestration belongs in gatechat.agent.

Modules:
- callback: Ephemeral local listener for the OAuth redirect
- client: Centralized Agent SDK client creation (build_client, build_options)
- credentials: File-backed OAuth client/token/verifier store
- events: EventNotifier, tool-call records and the logging bridge
- gateway: MCP gateway session and OAuth-gated bootstrapper
- oauth: Discovery, registration, PKCE and token exchange
- retry: Retry decorator for transient HTTP failures
"""

from gatechat.lib.callback import CallbackListener
from gatechat.lib.client import build_client, build_options, display_tool_name
from gatechat.lib.credentials import CredentialStore
from gatechat.lib.events import (
    EventNotifier,
    LogEvent,
    LogLevel,
    NotifierHandler,
    ToolCallInfo,
    expected_errors,
)
from gatechat.lib.gateway import (
    BootstrapInProgressError,
    BootstrapState,
    GatewayBootstrapper,
    GatewayConnection,
    GatewayConnectionError,
    UnauthorizedError,
    open_gateway_session,
)
from gatechat.lib.oauth import GatewayAuth, OAuthClient, OAuthError, PkcePair
from gatechat.lib.retry import with_retry

__all__ = [
    # Callback
    "CallbackListener",
    # Client
    "build_client",
    "build_options",
    "display_tool_name",
    # Credentials
    "CredentialStore",
    # Events
    "EventNotifier",
    "LogEvent",
    "LogLevel",
    "NotifierHandler",
    "ToolCallInfo",
    "expected_errors",
    # Gateway
    "BootstrapInProgressError",
    "BootstrapState",
    "GatewayBootstrapper",
    "GatewayConnection",
    "GatewayConnectionError",
    "UnauthorizedError",
    "open_gateway_session",
    # OAuth
    "GatewayAuth",
    "OAuthClient",
    "OAuthError",
    "PkcePair",
    # Retry
    "with_retry",
]
