"""
Google OAuth handling for Gmail accounts.

Normalizes OAuth client JSON (``installed`` or ``web`` layout), builds
authorization URLs, exchanges authorization codes and owns the per-account
token file. Token refreshes are written back synchronously so a restart
never needs re-onboarding.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from .exceptions import ExternalCollaboratorError, ValidationError
from .models import OAuthClientConfig
from .registry import write_json_atomic
from .utils.logging import get_logger

logger = get_logger("auth")

# Broadest Gmail scope Google offers (full mailbox access)
GMAIL_SCOPES = ["https://mail.google.com/"]

EXPIRY_FORMAT = "%Y-%m-%dT%H:%M:%S"


def parse_client_config(data: Any) -> OAuthClientConfig:
    """
    Normalize Google OAuth client JSON into a single credential record.

    Accepts the ``{"installed": {...}}`` and ``{"web": {...}}`` layouts
    downloaded from Google Cloud Console.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid credentials content.")

    source = data.get("installed") or data.get("web")
    if not isinstance(source, dict) or not source.get("client_id") or not source.get("client_secret"):
        raise ValidationError(
            'Credentials must include client_id and client_secret under "installed" or "web".'
        )

    redirect_uris = source.get("redirect_uris") or []
    fields: Dict[str, Any] = {
        "client_id": source["client_id"],
        "client_secret": source["client_secret"],
    }
    if redirect_uris:
        fields["redirect_uri"] = redirect_uris[0]
    if source.get("auth_uri"):
        fields["auth_uri"] = source["auth_uri"]
    if source.get("token_uri"):
        fields["token_uri"] = source["token_uri"]
    return OAuthClientConfig(**fields)


def read_json_file(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as file:
        return json.load(file)


def read_client_config_file(credentials_path: Path) -> OAuthClientConfig:
    try:
        data = read_json_file(credentials_path)
    except FileNotFoundError as e:
        raise ValidationError(f"Credentials file not found at {credentials_path}") from e
    except json.JSONDecodeError as e:
        raise ValidationError(f"Credentials file at {credentials_path} is not valid JSON: {e}") from e
    return parse_client_config(data)


class GoogleOAuthFlow:
    """Builds authorization URLs and exchanges codes with google-auth-oauthlib."""

    def __init__(self, scopes: Optional[List[str]] = None):
        self.scopes = scopes or list(GMAIL_SCOPES)

    def _build_flow(self, client: OAuthClientConfig) -> Flow:
        client_config = {
            "installed": {
                "client_id": client.client_id,
                "client_secret": client.client_secret,
                "auth_uri": client.auth_uri,
                "token_uri": client.token_uri,
                "redirect_uris": [client.redirect_uri],
            }
        }
        # No PKCE verifier: the code is exchanged in a later, separate tool call
        return Flow.from_client_config(
            client_config,
            scopes=self.scopes,
            redirect_uri=client.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def authorization_url(self, client: OAuthClientConfig) -> str:
        flow = self._build_flow(client)
        auth_url, _state = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
        )
        return auth_url

    async def exchange_code(self, client: OAuthClientConfig, authorization_code: str) -> Dict[str, Any]:
        """Exchange an authorization code for a token payload."""
        flow = self._build_flow(client)
        try:
            token = await asyncio.to_thread(flow.fetch_token, code=authorization_code)
        except Exception as e:
            raise ExternalCollaboratorError(f"OAuth code exchange failed: {e}") from e
        return dict(token)


def _format_expiry(expiry: Optional[datetime]) -> Optional[str]:
    if expiry is None:
        return None
    return expiry.strftime(EXPIRY_FORMAT) + "Z"


def _parse_expiry(document: Dict[str, Any]) -> Optional[datetime]:
    """Read the expiry as the naive UTC datetime google-auth expects."""
    expiry = document.get("expiry")
    if isinstance(expiry, str) and expiry:
        return datetime.strptime(expiry.rstrip("Z").split(".")[0], EXPIRY_FORMAT)

    # Token payload style: expires_at in seconds, or expiry_date in milliseconds
    expires_at = document.get("expires_at")
    if isinstance(expires_at, (int, float)):
        return datetime.fromtimestamp(expires_at, tz=timezone.utc).replace(tzinfo=None)
    expiry_date = document.get("expiry_date")
    if isinstance(expiry_date, (int, float)):
        return datetime.fromtimestamp(expiry_date / 1000, tz=timezone.utc).replace(tzinfo=None)
    return None


def _parse_scopes(value: Any) -> Optional[List[str]]:
    if isinstance(value, str):
        return value.split()
    if isinstance(value, list):
        return [str(scope) for scope in value]
    return None


def build_token_document(client: OAuthClientConfig, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a token exchange payload into the authorized-user JSON google-auth reads."""
    return {
        "token": payload.get("access_token"),
        "refresh_token": payload.get("refresh_token"),
        "token_uri": client.token_uri,
        "client_id": client.client_id,
        "client_secret": client.client_secret,
        "scopes": _parse_scopes(payload.get("scope")) or list(GMAIL_SCOPES),
        "expiry": _format_expiry(_parse_expiry(payload)),
    }


class TokenStore:
    """Owns one account's token file."""

    def __init__(self, account_id: str, token_path: Path):
        self.account_id = account_id
        self.token_path = Path(token_path)

    def read_document(self) -> Dict[str, Any]:
        try:
            document = read_json_file(self.token_path)
        except (OSError, json.JSONDecodeError) as e:
            raise ExternalCollaboratorError(
                f'Token file missing or invalid for account "{self.account_id}" '
                f"at {self.token_path}: {e}"
            ) from e
        if not isinstance(document, dict):
            raise ExternalCollaboratorError(
                f'Token file for account "{self.account_id}" at {self.token_path} is not a JSON object'
            )
        return document

    def write_document(self, document: Dict[str, Any]) -> None:
        write_json_atomic(self.token_path, document)

    def load(self, client: OAuthClientConfig) -> Credentials:
        """Build Credentials from the token file, falling back to the client record."""
        document = self.read_document()
        return Credentials(
            token=document.get("token") or document.get("access_token"),
            refresh_token=document.get("refresh_token"),
            token_uri=document.get("token_uri") or client.token_uri,
            client_id=document.get("client_id") or client.client_id,
            client_secret=document.get("client_secret") or client.client_secret,
            scopes=_parse_scopes(document.get("scopes") or document.get("scope")) or list(GMAIL_SCOPES),
            expiry=_parse_expiry(document),
        )

    def persist(self, credentials: Credentials) -> None:
        """Merge refreshed credential fields into the token file."""
        try:
            document = self.read_document()
        except ExternalCollaboratorError:
            document = {}

        document.update({
            "token": credentials.token,
            "token_uri": credentials.token_uri,
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "scopes": list(credentials.scopes) if credentials.scopes else document.get("scopes"),
            "expiry": _format_expiry(credentials.expiry),
        })
        if credentials.refresh_token:
            document["refresh_token"] = credentials.refresh_token

        self.write_document(document)
        logger.info(
            "Persisted refreshed token",
            extra={"data": {"account_id": self.account_id, "path": str(self.token_path)}}
        )


async def refresh_if_expired(credentials: Credentials, token_store: TokenStore) -> None:
    """Refresh expired credentials up front and write the new token before returning."""
    if credentials.expired and credentials.refresh_token:
        try:
            await asyncio.to_thread(credentials.refresh, Request())
        except Exception as e:
            raise ExternalCollaboratorError(
                f'Token refresh failed for account "{token_store.account_id}": {e}'
            ) from e
        token_store.persist(credentials)
