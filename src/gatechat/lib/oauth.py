"""OAuth 2.1 helpers for authorizing against an MCP gateway.

Implements the client side of the MCP authorization flow:

1. **Discovery**: protected-resource metadata (RFC 9728) names the
   authorization server, whose metadata (RFC 8414) lists the endpoints.
   Missing documents fall back to ``/authorize``, ``/token`` and
   ``/register`` on the gateway origin.
2. **Dynamic client registration** (RFC 7591) for a public client.
3. **PKCE** (RFC 7636, S256) for the authorization-code exchange.
4. **Token exchange** for an authorization code or a refresh token.

All HTTP goes through ``httpx``; pass ``transport=httpx.MockTransport(...)``
to exercise the flow without a network.

Examples:
    >>> oauth = OAuthClient(timeout=30)
    >>> auth = await oauth.discover("https://gateway.example.com/mcp")
    >>> info = await oauth.register(auth, client_metadata(9876))
    >>> pkce = PkcePair.generate()
    >>> url = oauth.authorization_url(auth, info, pkce.challenge, redirect_uri(9876))
"""

import base64
import hashlib
import logging
import re
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from mcp.shared.auth import (
    OAuthClientInformationFull,
    OAuthClientMetadata,
    OAuthMetadata,
    OAuthToken,
    ProtectedResourceMetadata,
)
from pydantic import AnyUrl, BaseModel, ValidationError

from gatechat.lib.retry import with_retry
from gatechat.version import VERSION

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
CLIENT_NAME = "gatechat"

_RESOURCE_METADATA_RE = re.compile(r'resource_metadata="([^"]+)"')


class OAuthError(Exception):
    """The authorization server rejected a request or returned garbage."""


def redirect_uri(port: int) -> str:
    """Redirect URI served by the local callback listener."""
    return f"http://localhost:{port}{CALLBACK_PATH}"


def client_metadata(port: int) -> OAuthClientMetadata:
    """Registration metadata for this CLI as a public client."""
    return OAuthClientMetadata(
        redirect_uris=[AnyUrl(redirect_uri(port))],
        client_name=CLIENT_NAME,
        software_version=VERSION,
        grant_types=["authorization_code", "refresh_token"],
        response_types=["code"],
        token_endpoint_auth_method="none",
    )


def resource_metadata_hint(www_authenticate: str | None) -> str | None:
    """Extract the ``resource_metadata`` URL from a 401 challenge header."""
    if not www_authenticate:
        return None
    match = _RESOURCE_METADATA_RE.search(www_authenticate)
    return match.group(1) if match else None


class PkcePair(BaseModel):
    """PKCE code verifier and its S256 challenge."""

    verifier: str
    challenge: str

    @classmethod
    def generate(cls) -> "PkcePair":
        verifier = secrets.token_urlsafe(64)
        return cls(verifier=verifier, challenge=code_challenge(verifier))


def code_challenge(verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class GatewayAuth(BaseModel):
    """Discovered authorization endpoints for one gateway."""

    resource: str
    metadata: OAuthMetadata


def _origin(url: str) -> str:
    parsed = httpx.URL(url)
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme}://{parsed.host}{port}"


def _well_known_urls(url: str, suffix: str) -> list[str]:
    """Path-aware well-known URL first, then the origin-level one."""
    origin = _origin(url)
    path = httpx.URL(url).path.rstrip("/")
    urls = [f"{origin}/.well-known/{suffix}{path}"] if path else []
    urls.append(f"{origin}/.well-known/{suffix}")
    return urls


class OAuthClient:
    """Stateless OAuth client; persistence is the caller's job."""

    def __init__(
        self,
        *,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.transport = transport

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            follow_redirects=True,
        ) as client:
            yield client

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @with_retry(max_attempts=3)
    async def _get_json(self, client: httpx.AsyncClient, url: str) -> object:
        response = await client.get(url, headers={"Accept": "application/json"})
        response.raise_for_status()
        return response.json()

    async def _first_document[T: BaseModel](
        self, client: httpx.AsyncClient, urls: list[str], model: type[T]
    ) -> T | None:
        for url in urls:
            try:
                data = await self._get_json(client, url)
                return model.model_validate(data)
            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500:
                    raise
                logger.debug("No metadata at %s (%d)", url, e.response.status_code)
            except (ValidationError, ValueError) as e:
                logger.debug("Invalid metadata at %s: %s", url, e)
        return None

    async def discover(
        self, server_url: str, resource_metadata_url: str | None = None
    ) -> GatewayAuth:
        """Discover the authorization server for *server_url*.

        Args:
            server_url: The gateway URL that answered 401.
            resource_metadata_url: Hint from the 401 ``WWW-Authenticate``
                header, tried before the well-known locations.

        Raises:
            httpx.HTTPError: On network failure after retries.
        """
        async with self._http() as client:
            prm_urls = _well_known_urls(server_url, "oauth-protected-resource")
            if resource_metadata_url:
                prm_urls.insert(0, resource_metadata_url)
            resource_meta = await self._first_document(
                client, prm_urls, ProtectedResourceMetadata
            )

            if resource_meta and resource_meta.authorization_servers:
                issuer = str(resource_meta.authorization_servers[0])
                resource = str(resource_meta.resource)
            else:
                issuer = _origin(server_url)
                resource = server_url

            as_urls = _well_known_urls(issuer, "oauth-authorization-server")
            as_urls += _well_known_urls(issuer, "openid-configuration")
            metadata = await self._first_document(client, as_urls, OAuthMetadata)

        if metadata is None:
            origin = _origin(issuer)
            logger.info("No authorization server metadata; using defaults on %s", origin)
            metadata = OAuthMetadata.model_validate(
                {
                    "issuer": origin,
                    "authorization_endpoint": f"{origin}/authorize",
                    "token_endpoint": f"{origin}/token",
                    "registration_endpoint": f"{origin}/register",
                }
            )
        return GatewayAuth(resource=resource, metadata=metadata)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(
        self, auth: GatewayAuth, metadata: OAuthClientMetadata
    ) -> OAuthClientInformationFull:
        """Register a client dynamically and return its credentials."""
        endpoint = auth.metadata.registration_endpoint
        if endpoint is None:
            raise OAuthError(
                "Authorization server does not support dynamic client registration"
            )
        async with self._http() as client:
            response = await client.post(
                str(endpoint),
                json=metadata.model_dump(mode="json", exclude_none=True),
            )
        if response.status_code not in (200, 201):
            raise OAuthError(
                f"Client registration failed ({response.status_code}): {response.text}"
            )
        try:
            info = OAuthClientInformationFull.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise OAuthError(f"Malformed registration response: {e}") from e
        logger.info("Registered OAuth client %s", info.client_id)
        return info

    # ------------------------------------------------------------------
    # Authorization code flow
    # ------------------------------------------------------------------

    def authorization_url(
        self,
        auth: GatewayAuth,
        client_info: OAuthClientInformationFull,
        challenge: str,
        redirect: str,
    ) -> str:
        """Build the browser URL that starts the authorization-code flow."""
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": client_info.client_id,
            "redirect_uri": redirect,
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "resource": auth.resource,
        }
        if client_info.scope:
            params["scope"] = client_info.scope
        url = httpx.URL(str(auth.metadata.authorization_endpoint))
        return str(url.copy_merge_params(params))

    async def _token_request(
        self,
        auth: GatewayAuth,
        client_info: OAuthClientInformationFull,
        data: dict[str, str],
    ) -> OAuthToken:
        data = {**data, "client_id": client_info.client_id, "resource": auth.resource}
        if client_info.client_secret:
            data["client_secret"] = client_info.client_secret

        async with self._http() as client:
            response = await client.post(
                str(auth.metadata.token_endpoint),
                data=data,
                headers={"Accept": "application/json"},
            )
        if response.status_code != 200:
            raise OAuthError(
                f"Token request failed ({response.status_code}): {response.text}"
            )
        try:
            return OAuthToken.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise OAuthError(f"Malformed token response: {e}") from e

    async def exchange_code(
        self,
        auth: GatewayAuth,
        client_info: OAuthClientInformationFull,
        *,
        code: str,
        verifier: str,
        redirect: str,
    ) -> OAuthToken:
        """Exchange an authorization code (plus PKCE verifier) for tokens."""
        return await self._token_request(
            auth,
            client_info,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect,
                "code_verifier": verifier,
            },
        )

    async def refresh(
        self,
        auth: GatewayAuth,
        client_info: OAuthClientInformationFull,
        refresh_token: str,
    ) -> OAuthToken:
        """Trade a refresh token for a new token set.

        Servers may omit the refresh token from the response; the old one
        is carried over in that case.
        """
        tokens = await self._token_request(
            auth,
            client_info,
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        if tokens.refresh_token is None:
            tokens = tokens.model_copy(update={"refresh_token": refresh_token})
        return tokens
