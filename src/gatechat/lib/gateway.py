"""Gateway connection and OAuth-gated bootstrap.

``GatewayConnection`` is one live MCP session over streamable HTTP. The
session's transport lives in a dedicated owner task, because the MCP
client's task groups must be entered and exited from the same task; the
rest of the program only ever signals that task to close.

``GatewayBootstrapper`` establishes the connection and recovers from an
unauthorized gateway by running the browser-based OAuth flow once::

    Idle -> Connecting -> Connected
               |
               +-(401)-> AwaitingAuthorization -> Authorizing -> Connecting -> Connected

Any unrecoverable error ends in ``Failed`` and raises
``GatewayConnectionError``. The post-authorization retry is one-shot.

Examples:
    >>> store = CredentialStore(settings.credentials_dir)
    >>> bootstrapper = GatewayBootstrapper("https://gateway.example.com/mcp", store)
    >>> connection = await bootstrapper.connect()
    >>> connection.tool_names
    ['Gmail_ListEmails', 'Slack_SendMessage']
    >>> await bootstrapper.close()
"""

import asyncio
import functools
import logging
import webbrowser
from collections.abc import Awaitable, Callable
from datetime import timedelta
from enum import StrEnum

import httpx
from claude_agent_sdk.types import McpHttpServerConfig
from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from mcp.shared.auth import OAuthClientInformationFull, OAuthToken
from mcp.types import LATEST_PROTOCOL_VERSION, Tool

from gatechat.lib.callback import CallbackListener
from gatechat.lib.credentials import CredentialStore
from gatechat.lib.events import expected_errors
from gatechat.lib.oauth import (
    CLIENT_NAME,
    GatewayAuth,
    OAuthClient,
    OAuthError,
    PkcePair,
    client_metadata,
    redirect_uri,
    resource_metadata_hint,
)
from gatechat.version import VERSION

logger = logging.getLogger(__name__)


class GatewayConnectionError(ConnectionError):
    """The gateway could not be reached or authorized."""


class BootstrapInProgressError(GatewayConnectionError):
    """``connect()`` was called while another bootstrap was pending."""


class UnauthorizedError(Exception):
    """The gateway answered 401; recoverable through the OAuth flow."""

    def __init__(self, message: str, *, resource_metadata: str | None = None) -> None:
        super().__init__(message)
        self.resource_metadata = resource_metadata


class BootstrapState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    AUTHORIZING = "authorizing"
    CONNECTED = "connected"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Gateway session
# ---------------------------------------------------------------------------


def _auth_headers(tokens: OAuthToken | None) -> dict[str, str]:
    if tokens is None:
        return {}
    return {"Authorization": f"Bearer {tokens.access_token}"}


async def probe_gateway(
    url: str,
    tokens: OAuthToken | None,
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Send an ``initialize`` request to check that *tokens* are accepted.

    The MCP transport swallows HTTP errors inside its background writer,
    so a 401 would otherwise surface as a read timeout. Probing first
    turns it into a prompt ``UnauthorizedError``.

    Raises:
        UnauthorizedError: On HTTP 401.
        GatewayConnectionError: On any other HTTP error or network failure.
    """
    payload = {
        "jsonrpc": "2.0",
        "id": 0,
        "method": "initialize",
        "params": {
            "protocolVersion": LATEST_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": CLIENT_NAME, "version": VERSION},
        },
    }
    headers = {
        "Accept": "application/json, text/event-stream",
        **_auth_headers(tokens),
    }
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            async with client.stream("POST", url, json=payload, headers=headers) as response:
                status = response.status_code
                challenge = response.headers.get("www-authenticate")
                session_id = response.headers.get("mcp-session-id")
            if session_id:
                await client.delete(url, headers={**headers, "mcp-session-id": session_id})
    except httpx.HTTPError as e:
        raise GatewayConnectionError(f"Gateway unreachable at {url}: {e}") from e

    if status == 401:
        raise UnauthorizedError(
            "Gateway requires authorization",
            resource_metadata=resource_metadata_hint(challenge),
        )
    if status >= 400 and status != 405:
        raise GatewayConnectionError(f"Gateway returned HTTP {status} for {url}")


class GatewayConnection:
    """A live MCP session with the gateway, owned by a background task."""

    def __init__(self, url: str, tokens: OAuthToken | None, *, timeout: float) -> None:
        self.url = url
        self.tokens = tokens
        self.timeout = timeout
        self.tools: list[Tool] = []
        self._ready = asyncio.Event()
        self._closing = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]

    @property
    def connected(self) -> bool:
        return self._ready.is_set() and self._task is not None and not self._task.done()

    def server_config(self) -> McpHttpServerConfig:
        """MCP server entry for the agent SDK, reusing our bearer token."""
        config: McpHttpServerConfig = {"type": "http", "url": self.url}
        headers = _auth_headers(self.tokens)
        if headers:
            config["headers"] = headers
        return config

    async def _run(self) -> None:
        async with streamablehttp_client(
            self.url, headers=_auth_headers(self.tokens), timeout=self.timeout
        ) as (read, write, _get_session_id):
            async with ClientSession(
                read, write, read_timeout_seconds=timedelta(seconds=self.timeout)
            ) as session:
                await session.initialize()
                self.tools = list((await session.list_tools()).tools)
                self._ready.set()
                await self._closing.wait()

    async def start(self) -> None:
        """Open the session and wait until it is initialized.

        Raises:
            GatewayConnectionError: If the session fails before it is ready.
        """
        self._task = asyncio.create_task(self._run(), name=f"gateway:{self.url}")
        ready = asyncio.create_task(self._ready.wait())
        try:
            await asyncio.wait({self._task, ready}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            self._task.cancel()
            try:
                await self._task
            except (asyncio.CancelledError, Exception) as e:
                logger.debug("Gateway session cancelled during startup: %r", e)
            self._task = None
            raise
        finally:
            ready.cancel()

        if not self._ready.is_set():
            try:
                self._task.result()
            except Exception as e:
                logger.error("Error initializing MCP server: %s", e)
                raise GatewayConnectionError(f"Gateway session failed: {e}") from e
            raise GatewayConnectionError("Gateway session closed during startup")
        logger.debug("Gateway session ready with %d tools", len(self.tools))

    async def aclose(self) -> None:
        """Close the session; errors are logged, never raised."""
        self._closing.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._task, timeout=5)
        except Exception as e:
            logger.debug("Gateway session closed with error: %r", e)
        finally:
            self._task = None


type SessionFactory = Callable[[str, OAuthToken | None], Awaitable[GatewayConnection]]


async def open_gateway_session(
    url: str, tokens: OAuthToken | None, *, timeout: float = 60
) -> GatewayConnection:
    """Probe the gateway with *tokens*, then open a full MCP session."""
    await probe_gateway(url, tokens, timeout=timeout)
    connection = GatewayConnection(url, tokens, timeout=timeout)
    await connection.start()
    return connection


# ---------------------------------------------------------------------------
# Bootstrapper
# ---------------------------------------------------------------------------


class GatewayBootstrapper:
    """Connects to the gateway, running the OAuth flow when required.

    Holds at most one pending authorization at a time: a concurrent
    ``connect()`` raises ``BootstrapInProgressError`` instead of replacing
    the pending waiter.
    """

    def __init__(
        self,
        gateway_url: str,
        store: CredentialStore,
        *,
        oauth: OAuthClient | None = None,
        session_factory: SessionFactory | None = None,
        listener_factory: Callable[[int], CallbackListener] | None = None,
        open_browser: Callable[[str], object] = webbrowser.open,
        callback_port: int = 9876,
        auth_timeout: float = 300,
        http_timeout: float = 60,
        on_transition: Callable[[BootstrapState], None] | None = None,
    ) -> None:
        self.gateway_url = gateway_url
        self.store = store
        self.oauth = oauth or OAuthClient(timeout=http_timeout)
        self.session_factory = session_factory or functools.partial(
            open_gateway_session, timeout=http_timeout
        )
        self.listener_factory = listener_factory or (
            lambda port: CallbackListener(port=port)
        )
        self.open_browser = open_browser
        self.callback_port = callback_port
        self.auth_timeout = auth_timeout
        self.on_transition = on_transition
        self.state = BootstrapState.IDLE
        self.connection: GatewayConnection | None = None
        self._in_progress = False

    @property
    def redirect_uri(self) -> str:
        return redirect_uri(self.callback_port)

    def _transition(self, state: BootstrapState) -> None:
        logger.debug("Bootstrap %s -> %s", self.state, state)
        self.state = state
        if self.on_transition is not None:
            self.on_transition(state)

    async def connect(self) -> GatewayConnection:
        """Establish the gateway connection.

        Raises:
            BootstrapInProgressError: If another ``connect()`` is pending.
            GatewayConnectionError: If the gateway stays unreachable or
                unauthorized after the OAuth flow.
        """
        if self._in_progress:
            raise BootstrapInProgressError("Gateway bootstrap already in progress")
        if self.connection is not None and self.state == BootstrapState.CONNECTED:
            return self.connection

        self._in_progress = True
        try:
            self.connection = await self._bootstrap()
        except GatewayConnectionError:
            self._transition(BootstrapState.FAILED)
            raise
        except (OAuthError, httpx.HTTPError, OSError) as e:
            self._transition(BootstrapState.FAILED)
            raise GatewayConnectionError(f"Gateway authorization failed: {e}") from e
        finally:
            self._in_progress = False

        self._transition(BootstrapState.CONNECTED)
        logger.info("Connected to gateway %s", self.gateway_url)
        return self.connection

    async def _bootstrap(self) -> GatewayConnection:
        self._transition(BootstrapState.CONNECTING)
        with expected_errors.expecting():
            try:
                return await self.session_factory(self.gateway_url, self.store.tokens())
            except UnauthorizedError as e:
                logger.debug("Gateway unauthorized; starting OAuth flow")
                hint = e.resource_metadata

        tokens = await self._authorize(hint)

        self._transition(BootstrapState.CONNECTING)
        try:
            return await self.session_factory(self.gateway_url, tokens)
        except UnauthorizedError as e:
            raise GatewayConnectionError(
                "Gateway rejected the credentials obtained through OAuth"
            ) from e

    async def _client_information(self, auth: GatewayAuth) -> OAuthClientInformationFull:
        info = self.store.client_information()
        if info is None:
            info = await self.oauth.register(auth, client_metadata(self.callback_port))
            self.store.save_client_information(info)
        return info

    async def _authorize(self, resource_metadata: str | None) -> OAuthToken:
        auth = await self.oauth.discover(self.gateway_url, resource_metadata)
        client_info = await self._client_information(auth)

        stored = self.store.tokens()
        if stored is not None and stored.refresh_token:
            self._transition(BootstrapState.AUTHORIZING)
            try:
                tokens = await self.oauth.refresh(auth, client_info, stored.refresh_token)
            except (OAuthError, httpx.HTTPError) as e:
                logger.info("Token refresh failed, re-authorizing in browser: %s", e)
            else:
                self.store.save_tokens(tokens)
                return tokens

        self._transition(BootstrapState.AWAITING_AUTHORIZATION)
        pkce = PkcePair.generate()
        self.store.save_code_verifier(pkce.verifier)
        url = self.oauth.authorization_url(
            auth, client_info, pkce.challenge, self.redirect_uri
        )

        async with self.listener_factory(self.callback_port) as listener:
            logger.info("Opening browser for authentication...\n  %s", url)
            self.open_browser(url)
            logger.info("Waiting for browser authentication...")
            try:
                code = await asyncio.wait_for(
                    listener.wait_for_code(), timeout=self.auth_timeout
                )
            except TimeoutError as e:
                raise GatewayConnectionError(
                    f"No authorization received within {self.auth_timeout:.0f}s"
                ) from e

        self._transition(BootstrapState.AUTHORIZING)
        verifier = self.store.code_verifier()
        if verifier is None:
            raise OAuthError("PKCE verifier missing from credential store")
        tokens = await self.oauth.exchange_code(
            auth,
            client_info,
            code=code,
            verifier=verifier,
            redirect=self.redirect_uri,
        )
        self.store.save_tokens(tokens)
        return tokens

    async def close(self) -> None:
        """Close the connection, if any. Errors are swallowed."""
        connection, self.connection = self.connection, None
        if connection is None:
            return
        try:
            await connection.aclose()
        except Exception as e:
            logger.debug("Ignoring error while closing gateway connection: %r", e)
        if self.state == BootstrapState.CONNECTED:
            self._transition(BootstrapState.IDLE)
