"""
Two-step OAuth onboarding for Gmail accounts.

begin_account_auth stores the OAuth client credentials and registers the
account as pending (disabled). finish_account_auth exchanges the
authorization code, stores the token and enables the account.
"""

import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from .accounts import get_account_or_raise
from .auth import (
    GoogleOAuthFlow,
    build_token_document,
    parse_client_config,
    read_client_config_file,
    read_json_file,
)
from .exceptions import TokenExchangeIncomplete, ValidationError
from .gmail_tools import GmailAccountClient
from .models import AccountConfig, BeginAuthResult, FinishAuthResult
from .registry import (
    ensure_config_layout,
    get_default_account_paths,
    load_accounts_config,
    resolve_paths,
    save_accounts_config,
    upsert_account,
    validate_account_id,
    write_json_atomic,
)
from .utils.logging import get_logger

logger = get_logger("onboarding")

ClientFactory = Callable[[Path, AccountConfig], Awaitable[Any]]


def _load_credentials_input(
    credentials_json: Any,
    credentials_path: Optional[str],
    default_credentials_path: Path
) -> Any:
    """Pick the client credentials: inline JSON, then a file path, then an existing file."""
    if credentials_json is not None:
        if isinstance(credentials_json, str):
            try:
                return json.loads(credentials_json)
            except json.JSONDecodeError as e:
                raise ValidationError(f"credentials_json is not valid JSON: {e}") from e
        if isinstance(credentials_json, dict):
            return credentials_json
        raise ValidationError("credentials_json must be either a JSON string or object.")

    source = Path(credentials_path).expanduser() if credentials_path and credentials_path.strip() else default_credentials_path
    try:
        return read_json_file(source)
    except FileNotFoundError as e:
        raise ValidationError(
            f"Credentials file not found at {source}. Provide credentials_json or credentials_path."
        ) from e
    except json.JSONDecodeError as e:
        raise ValidationError(f"Credentials file at {source} is not valid JSON: {e}") from e


async def begin_account_auth(
    config_root: Path,
    account_id: str,
    email: str,
    display_name: Optional[str] = None,
    credentials_json: Any = None,
    credentials_path: Optional[str] = None,
    oauth: Optional[GoogleOAuthFlow] = None
) -> BeginAuthResult:
    """
    Store client credentials and register the account as pending.

    Re-running for the same id overwrites the pending entry and the
    credentials file.
    """
    if not account_id:
        raise ValidationError("account_id is required.")
    if not email or not email.strip():
        raise ValidationError("email is required.")
    validate_account_id(account_id)
    oauth = oauth or GoogleOAuthFlow()

    ensure_config_layout(config_root)
    default_paths = get_default_account_paths(config_root, account_id)
    default_paths.account_dir.mkdir(parents=True, exist_ok=True)

    credentials = _load_credentials_input(
        credentials_json, credentials_path, default_paths.credentials_path
    )
    client_config = parse_client_config(credentials)
    write_json_atomic(default_paths.credentials_path, credentials)

    auth_url = oauth.authorization_url(client_config)

    config = load_accounts_config(config_root)
    config = upsert_account(config, AccountConfig(
        id=account_id,
        email=email.strip(),
        display_name=display_name or None,
        enabled=False,
        credential_path=str(default_paths.credentials_path),
        token_path=str(default_paths.token_path),
    ))
    save_accounts_config(config_root, config)

    logger.info(
        "Account onboarding started",
        extra={"data": {"account_id": account_id, "credentials_path": str(default_paths.credentials_path)}}
    )
    return BeginAuthResult(
        account_id=account_id,
        email=email.strip(),
        credentials_path=str(default_paths.credentials_path),
        auth_url=auth_url,
    )


async def finish_account_auth(
    config_root: Path,
    account_id: str,
    authorization_code: str,
    oauth: Optional[GoogleOAuthFlow] = None,
    client_factory: Optional[ClientFactory] = None
) -> FinishAuthResult:
    """
    Exchange the authorization code, store the token and enable the account.

    The profile lookup afterwards is best-effort: if it fails the account is
    still enabled with the email given to begin_account_auth.
    """
    if not account_id:
        raise ValidationError("account_id is required.")
    if not authorization_code or not authorization_code.strip():
        raise ValidationError("authorization_code is required.")
    validate_account_id(account_id)
    oauth = oauth or GoogleOAuthFlow()
    client_factory = client_factory or GmailAccountClient.create

    config = load_accounts_config(config_root)
    account = get_account_or_raise(config, account_id)
    paths = resolve_paths(config_root, account)

    client_config = read_client_config_file(paths.credentials_path)
    payload = await oauth.exchange_code(client_config, authorization_code.strip())
    if not payload.get("access_token") and not payload.get("refresh_token"):
        raise TokenExchangeIncomplete(account_id)

    write_json_atomic(paths.token_path, build_token_document(client_config, payload))

    enabled_account = account.model_copy(update={
        "enabled": True,
        "credential_path": str(paths.credentials_path),
        "token_path": str(paths.token_path),
    })
    config = upsert_account(config, enabled_account)
    save_accounts_config(config_root, config)

    profile_email = enabled_account.email
    profile_verified = False
    try:
        client = await client_factory(config_root, enabled_account)
        profile_email = await client.get_profile_email()
        profile_verified = True
    except Exception as e:
        logger.warning(
            "Could not verify Gmail profile after onboarding",
            extra={"data": {"account_id": account_id, "error": str(e)}}
        )

    config = upsert_account(config, enabled_account.model_copy(update={"email": profile_email}))
    if not config.default_account:
        config = config.model_copy(update={"default_account": account_id})
    save_accounts_config(config_root, config)

    logger.info(
        "Account onboarding completed",
        extra={"data": {"account_id": account_id, "email": profile_email, "verified": profile_verified}}
    )
    return FinishAuthResult(
        account_id=account_id,
        email=profile_email,
        token_path=str(paths.token_path),
        profile_verified=profile_verified,
        is_default=config.default_account == account_id,
    )
