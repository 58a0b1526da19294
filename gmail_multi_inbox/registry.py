"""
Account registry: accounts.json plus the per-account file layout.

Layout under the config root (a persisted contract, do not change without a
migration):

    <root>/accounts.json
    <root>/accounts/<id>/credentials.json
    <root>/accounts/<id>/token.json
    <root>/accounts/<id>/meta.json
"""

import json
import re
from pathlib import Path
from typing import Any, Optional

from .config import expand_home
from .exceptions import ConfigCorrupt, InvalidAccountId
from .models import AccountConfig, AccountPaths, AccountsConfig
from .utils.logging import get_logger, log_config_change

logger = get_logger("registry")

ACCOUNT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
ACCOUNTS_FILE_NAME = "accounts.json"


def validate_account_id(account_id: str) -> None:
    """Raise InvalidAccountId unless the id is non-empty and matches [A-Za-z0-9_-]+."""
    if not isinstance(account_id, str) or not ACCOUNT_ID_PATTERN.fullmatch(account_id):
        raise InvalidAccountId(account_id if isinstance(account_id, str) else repr(account_id))


def get_accounts_file_path(config_root: Path) -> Path:
    return Path(config_root) / ACCOUNTS_FILE_NAME


def get_default_account_paths(config_root: Path, account_id: str) -> AccountPaths:
    account_dir = Path(config_root) / "accounts" / account_id
    return AccountPaths(
        account_dir=account_dir,
        credentials_path=account_dir / "credentials.json",
        token_path=account_dir / "token.json",
        meta_path=account_dir / "meta.json",
    )


def resolve_paths(config_root: Path, account: AccountConfig) -> AccountPaths:
    """Resolve an account's file paths, honouring per-account overrides."""
    defaults = get_default_account_paths(config_root, account.id)
    return AccountPaths(
        account_dir=defaults.account_dir,
        credentials_path=(
            expand_home(account.credential_path) if account.credential_path
            else defaults.credentials_path
        ),
        token_path=(
            expand_home(account.token_path) if account.token_path
            else defaults.token_path
        ),
        meta_path=defaults.meta_path,
    )


def ensure_config_layout(config_root: Path) -> None:
    (Path(config_root) / "accounts").mkdir(parents=True, exist_ok=True)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to a temporary sibling file, then move it into place."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    with open(temp_path, "w", encoding="utf-8") as file:
        file.write(json.dumps(data, indent=2))
        file.write("\n")
    temp_path.replace(path)


def _sanitize_account(config_root: Path, candidate: Any) -> Optional[AccountConfig]:
    """Turn one raw registry entry into an AccountConfig, or None to drop it."""
    if not isinstance(candidate, dict):
        return None

    account_id = candidate.get("id")
    email = candidate.get("email")
    if not isinstance(account_id, str) or not account_id.strip():
        return None
    if not isinstance(email, str) or not email.strip():
        return None

    try:
        validate_account_id(account_id)
    except InvalidAccountId as e:
        raise ConfigCorrupt(f"Failed to read accounts config: {e}") from e
    defaults = get_default_account_paths(config_root, account_id)

    credential_path = candidate.get("credentialPath")
    token_path = candidate.get("tokenPath")
    display_name = candidate.get("displayName")

    return AccountConfig(
        id=account_id,
        email=email,
        display_name=display_name if isinstance(display_name, str) else None,
        enabled=bool(candidate.get("enabled")),
        credential_path=str(
            expand_home(credential_path) if isinstance(credential_path, str)
            else defaults.credentials_path
        ),
        token_path=str(
            expand_home(token_path) if isinstance(token_path, str)
            else defaults.token_path
        ),
    )


def load_accounts_config(config_root: Path) -> AccountsConfig:
    """
    Load the registry from accounts.json.

    A missing file produces (and persists) an empty registry. A file that
    exists but cannot be read as a JSON object raises ConfigCorrupt. A
    defaultAccount pointing at an absent id loads as None.
    """
    ensure_config_layout(config_root)
    accounts_file = get_accounts_file_path(config_root)

    try:
        raw = accounts_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        empty = AccountsConfig(default_account=None, accounts=[])
        save_accounts_config(config_root, empty)
        logger.info(
            "Created empty accounts registry",
            extra={"data": {"path": str(accounts_file)}}
        )
        return empty
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigCorrupt(f"Failed to read accounts config: {e}") from e

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigCorrupt(f"Failed to read accounts config: {e}") from e

    if not isinstance(parsed, dict):
        raise ConfigCorrupt("Failed to read accounts config: top-level value must be an object")

    raw_accounts = parsed.get("accounts")
    if not isinstance(raw_accounts, list):
        raw_accounts = []

    accounts = []
    for candidate in raw_accounts:
        account = _sanitize_account(config_root, candidate)
        if account is not None:
            accounts.append(account)

    default_account = parsed.get("defaultAccount")
    if not isinstance(default_account, str) or not any(a.id == default_account for a in accounts):
        default_account = None

    return AccountsConfig(default_account=default_account, accounts=accounts)


def save_accounts_config(config_root: Path, config: AccountsConfig) -> None:
    """Persist the full registry, replacing the previous file atomically."""
    ensure_config_layout(config_root)
    accounts_file = get_accounts_file_path(config_root)
    write_json_atomic(accounts_file, config.to_document())
    log_config_change(
        "saved",
        "accounts",
        {
            "path": str(accounts_file),
            "accounts": len(config.accounts),
            "default_account": config.default_account,
        },
        logger=logger,
    )


def upsert_account(config: AccountsConfig, next_account: AccountConfig) -> AccountsConfig:
    """Return a new registry with the account replaced in place, or appended."""
    accounts = list(config.accounts)
    for index, account in enumerate(accounts):
        if account.id == next_account.id:
            accounts[index] = next_account
            break
    else:
        accounts.append(next_account)
    return config.model_copy(update={"accounts": accounts})
