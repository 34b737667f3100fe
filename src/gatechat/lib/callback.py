"""Ephemeral HTTP listener that captures the OAuth redirect.

The browser delivers the authorization code to
``http://localhost:<port>/callback?code=...``. The listener resolves a
single pending waiter with that code, answers with a small success page
and shuts itself down. Requests to any other path get a 404.

Only one listener can hold the port at a time. Use it as an async context
manager so the socket is released on success, failure and cancellation::

    async with CallbackListener(port=9876) as listener:
        webbrowser.open(authorization_url)
        code = await asyncio.wait_for(listener.wait_for_code(), timeout=300)
"""

import asyncio
import logging
import socket
from types import TracebackType
from typing import Self

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, PlainTextResponse, Response
from starlette.routing import Route

from gatechat.lib.oauth import CALLBACK_PATH, OAuthError

logger = logging.getLogger(__name__)

SUCCESS_PAGE = (
    "<html><body><h2>Authentication successful!</h2>"
    "<p>You can close this tab.</p></body></html>"
)


class CallbackListener:
    """Single-use local listener for the OAuth authorization redirect."""

    def __init__(
        self,
        *,
        port: int,
        host: str = "127.0.0.1",
        path: str = CALLBACK_PATH,
    ) -> None:
        self.port = port
        self.host = host
        self.path = path
        self._code: asyncio.Future[str] | None = None
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _app(self) -> Starlette:
        return Starlette(routes=[Route(self.path, self._handle_callback)])

    async def _handle_callback(self, request: Request) -> Response:
        code = request.query_params.get("code")
        error = request.query_params.get("error")

        if not code and not error:
            return PlainTextResponse("Missing authorization code", status_code=400)

        if self._code is not None and not self._code.done():
            if code:
                self._code.set_result(code)
            else:
                description = request.query_params.get("error_description", "")
                self._code.set_exception(
                    OAuthError(f"Authorization denied: {error} {description}".strip())
                )
        self.request_stop()

        if error:
            return PlainTextResponse(f"Authorization failed: {error}", status_code=400)
        return HTMLResponse(SUCCESS_PAGE)

    async def start(self) -> None:
        """Bind the port and begin serving in the background.

        Raises:
            OAuthError: If the port cannot be bound.
        """
        if self.running:
            raise OAuthError("Callback listener already running")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise OAuthError(
                f"Cannot listen for the OAuth callback on port {self.port}: {e}"
            ) from e

        self._code = asyncio.get_running_loop().create_future()
        config = uvicorn.Config(
            self._app(),
            log_level="warning",
            lifespan="off",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._task.done():
                # serve() returned or raised before startup completed
                self._task.result()
                raise OAuthError("Callback listener exited during startup")
            await asyncio.sleep(0.01)
        logger.debug("Listening for OAuth callback on %s:%d%s", self.host, self.port, self.path)

    async def wait_for_code(self) -> str:
        """Wait for the callback and return the authorization code."""
        if self._code is None:
            raise OAuthError("No authorization flow in progress")
        return await self._code

    def request_stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True

    async def stop(self) -> None:
        """Shut the server down and release the port."""
        self.request_stop()
        if self._task is not None:
            try:
                await self._task
            except (OSError, asyncio.CancelledError) as e:
                logger.debug("Callback listener stopped with %r", e)
            self._task = None
        if self._code is not None and not self._code.done():
            self._code.cancel()
        self._server = None

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
