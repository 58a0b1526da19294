"""
Pytest configuration and shared fixtures for the Gmail multi-inbox tests.

Every test gets its own config root under tmp_path so nothing touches
~/.gmail-multi-mcp.
"""

import base64
import json
from pathlib import Path

import pytest

from gmail_multi_inbox.models import AccountConfig, AccountsConfig
from gmail_multi_inbox.registry import (
    get_default_account_paths,
    save_accounts_config,
    write_json_atomic,
)

INSTALLED_CLIENT = {
    "installed": {
        "client_id": "client-123.apps.googleusercontent.com",
        "client_secret": "shh-secret",
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
        "redirect_uris": ["http://localhost"],
    }
}


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep the developer's environment out of Settings()."""
    monkeypatch.delenv("GMAIL_MCP_CONFIG_DIR", raising=False)


@pytest.fixture
def config_root(tmp_path) -> Path:
    root = tmp_path / "gmail-config"
    root.mkdir()
    return root


@pytest.fixture
def client_credentials():
    return json.loads(json.dumps(INSTALLED_CLIENT))


def make_account(account_id: str, enabled: bool = True, email: str = None, **kwargs) -> AccountConfig:
    return AccountConfig(
        id=account_id,
        email=email or f"{account_id}@example.com",
        enabled=enabled,
        **kwargs
    )


def encode_body(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode().rstrip("=")


def make_gmail_message(message_id: str, internal_date: int, subject: str = "Hello",
                       sender: str = "alice@example.com", body: str = None) -> dict:
    """Build a message resource shaped like users.messages.get output."""
    payload = {
        "mimeType": "text/plain",
        "headers": [
            {"name": "From", "value": sender},
            {"name": "To", "value": "me@example.com"},
            {"name": "Subject", "value": subject},
            {"name": "Date", "value": "Mon, 01 Sep 2025 10:00:00 +0000"},
        ],
    }
    if body is not None:
        payload["body"] = {"data": encode_body(body)}
    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "snippet": f"snippet {message_id}",
        "internalDate": str(internal_date),
        "labelIds": ["INBOX", "UNREAD"],
        "payload": payload,
    }


@pytest.fixture
def registry_with_accounts(config_root, client_credentials):
    """
    Persist a registry with two enabled accounts and one disabled account.

    The enabled accounts get credential and token files on disk.
    """
    accounts = [
        make_account("personal"),
        make_account("work"),
        make_account("old", enabled=False),
    ]
    for account in accounts[:2]:
        paths = get_default_account_paths(config_root, account.id)
        write_json_atomic(paths.credentials_path, client_credentials)
        write_json_atomic(paths.token_path, {"token": f"token-{account.id}", "refresh_token": "r"})
    config = AccountsConfig(default_account="personal", accounts=accounts)
    save_accounts_config(config_root, config)
    return config
