"""Persistent OAuth state for the gateway connection.

Three independent records live under one directory:

- ``client.json``: dynamic client registration (``OAuthClientInformationFull``)
- ``tokens.json``: the latest token response (``OAuthToken``)
- ``verifier.txt``: the PKCE code verifier of the pending authorization

Each record is read-if-present and written-on-update. A missing record
means "not yet authorized" and is never an error; an unreadable one is
logged and treated as missing.

Examples:
    >>> store = CredentialStore(Path(".context/gateway"))
    >>> store.tokens() is None
    True
    >>> store.save_code_verifier("abc")
    >>> store.code_verifier()
    'abc'
"""

import logging
from pathlib import Path

from mcp.shared.auth import OAuthClientInformationFull, OAuthToken
from pydantic import BaseModel

logger = logging.getLogger(__name__)

CLIENT_FILE = "client.json"
TOKENS_FILE = "tokens.json"
VERIFIER_FILE = "verifier.txt"


class CredentialStore:
    """File-backed store for OAuth client info, tokens and PKCE verifier."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    @property
    def client_path(self) -> Path:
        return self.directory / CLIENT_FILE

    @property
    def tokens_path(self) -> Path:
        return self.directory / TOKENS_FILE

    @property
    def verifier_path(self) -> Path:
        return self.directory / VERIFIER_FILE

    def _read_model[T: BaseModel](self, path: Path, model: type[T]) -> T | None:
        if not path.exists():
            return None
        try:
            return model.model_validate_json(path.read_text(encoding="utf-8"))
        # ValidationError and UnicodeDecodeError are both ValueError
        except (ValueError, OSError) as e:
            logger.warning("Ignoring unreadable credential file %s: %s", path, e)
            return None

    def _write(self, path: Path, content: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.debug("Saved %s", path)

    def client_information(self) -> OAuthClientInformationFull | None:
        return self._read_model(self.client_path, OAuthClientInformationFull)

    def save_client_information(self, info: OAuthClientInformationFull) -> None:
        self._write(
            self.client_path, info.model_dump_json(indent=2, exclude_none=True)
        )

    def tokens(self) -> OAuthToken | None:
        return self._read_model(self.tokens_path, OAuthToken)

    def save_tokens(self, tokens: OAuthToken) -> None:
        self._write(self.tokens_path, tokens.model_dump_json(indent=2, exclude_none=True))

    def code_verifier(self) -> str | None:
        if not self.verifier_path.exists():
            return None
        try:
            return self.verifier_path.read_text(encoding="utf-8").strip() or None
        except (ValueError, OSError) as e:
            logger.warning("Ignoring unreadable verifier file: %s", e)
            return None

    def save_code_verifier(self, verifier: str) -> None:
        self._write(self.verifier_path, verifier)

    def clear(self) -> list[Path]:
        """Delete every stored record. Returns the paths that were removed."""
        removed: list[Path] = []
        for path in (self.client_path, self.tokens_path, self.verifier_path):
            if path.exists():
                path.unlink()
                removed.append(path)
        return removed
