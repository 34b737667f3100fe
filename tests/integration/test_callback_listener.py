"""Integration tests for the OAuth callback listener on a real local port."""

import asyncio
import socket

import httpx
import pytest

from gatechat.lib.callback import CallbackListener
from gatechat.lib.oauth import OAuthError

pytestmark = pytest.mark.integration


@pytest.fixture
def port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestCallbackListener:
    """Tests against a live uvicorn server."""

    @pytest.mark.asyncio
    async def test_code_is_captured(self, port: int) -> None:
        async with CallbackListener(port=port) as listener:
            waiter = asyncio.create_task(listener.wait_for_code())
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"http://127.0.0.1:{port}/callback", params={"code": "abc123"}
                )
            code = await asyncio.wait_for(waiter, timeout=5)

        assert response.status_code == 200
        assert "Authentication successful" in response.text
        assert code == "abc123"
        assert not listener.running

    @pytest.mark.asyncio
    async def test_other_paths_are_not_found(self, port: int) -> None:
        async with CallbackListener(port=port) as listener:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"http://127.0.0.1:{port}/favicon.ico")
            assert listener.running

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_code_keeps_listening(self, port: int) -> None:
        async with CallbackListener(port=port) as listener:
            async with httpx.AsyncClient() as client:
                missing = await client.get(f"http://127.0.0.1:{port}/callback")
                assert listener.running
                await client.get(
                    f"http://127.0.0.1:{port}/callback", params={"code": "late"}
                )
            code = await asyncio.wait_for(listener.wait_for_code(), timeout=5)

        assert missing.status_code == 400
        assert code == "late"

    @pytest.mark.asyncio
    async def test_error_parameter_fails_the_wait(self, port: int) -> None:
        async with CallbackListener(port=port) as listener:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"http://127.0.0.1:{port}/callback",
                    params={"error": "access_denied"},
                )
            with pytest.raises(OAuthError, match="access_denied"):
                await asyncio.wait_for(listener.wait_for_code(), timeout=5)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_port_in_use(self, port: int) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", port))
            blocker.listen()

            with pytest.raises(OAuthError, match=str(port)):
                await CallbackListener(port=port).start()

    @pytest.mark.asyncio
    async def test_port_released_after_stop(self, port: int) -> None:
        async with CallbackListener(port=port):
            pass

        async with CallbackListener(port=port) as listener:
            assert listener.running
