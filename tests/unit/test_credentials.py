"""Tests for the CredentialStore."""

import logging
from pathlib import Path

import pytest
from mcp.shared.auth import OAuthClientInformationFull, OAuthToken

from gatechat.lib.credentials import CredentialStore


class TestCredentialStore:
    """Tests for reading and writing the three credential records."""

    def test_empty_store(self, store: CredentialStore) -> None:
        """A fresh store is 'not yet authorized', not an error."""
        assert store.client_information() is None
        assert store.tokens() is None
        assert store.code_verifier() is None

    def test_tokens_round_trip(self, store: CredentialStore, tokens: OAuthToken) -> None:
        store.save_tokens(tokens)

        loaded = store.tokens()

        assert loaded is not None
        assert loaded.access_token == "access-abc"
        assert loaded.refresh_token == "refresh-xyz"

    def test_client_information_round_trip(
        self, store: CredentialStore, client_info: OAuthClientInformationFull
    ) -> None:
        store.save_client_information(client_info)

        loaded = store.client_information()

        assert loaded is not None
        assert loaded.client_id == "client-123"

    def test_code_verifier(self, store: CredentialStore) -> None:
        store.save_code_verifier("verifier-1")
        store.save_code_verifier("verifier-2")

        assert store.code_verifier() == "verifier-2"

    def test_records_are_independent(
        self, store: CredentialStore, tokens: OAuthToken
    ) -> None:
        store.save_tokens(tokens)

        assert store.client_information() is None
        assert store.code_verifier() is None

    def test_unreadable_record_is_treated_as_missing(
        self, store: CredentialStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        store.directory.mkdir(parents=True)
        store.tokens_path.write_text("{not json", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="gatechat.lib.credentials"):
            assert store.tokens() is None
        assert "Ignoring unreadable credential file" in caplog.text

    @pytest.mark.parametrize("filename", ["client.json", "tokens.json", "verifier.txt"])
    def test_non_utf8_record_is_treated_as_missing(
        self, store: CredentialStore, filename: str
    ) -> None:
        store.directory.mkdir(parents=True)
        (store.directory / filename).write_bytes(b"\xff\xfe\x00garbage")

        assert store.client_information() is None
        assert store.tokens() is None
        assert store.code_verifier() is None

    def test_clear(
        self,
        store: CredentialStore,
        tokens: OAuthToken,
        client_info: OAuthClientInformationFull,
    ) -> None:
        store.save_tokens(tokens)
        store.save_client_information(client_info)

        removed = store.clear()

        assert {p.name for p in removed} == {"tokens.json", "client.json"}
        assert store.tokens() is None
        assert store.clear() == []

    def test_creates_directory_on_write(self, tmp_path: Path) -> None:
        store = CredentialStore(tmp_path / "nested" / "gateway")

        store.save_code_verifier("v")

        assert store.verifier_path.exists()
