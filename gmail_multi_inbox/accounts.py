"""
Account resolution and health checks.

Reads aggregate across every enabled account unless an account is named;
writes and admin operations always require an explicit, enabled account.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

from .exceptions import AccountDisabled, AccountRequired, NoEnabledAccounts, UnknownAccount
from .models import AccountConfig, AccountHealth, AccountsConfig
from .registry import resolve_paths, validate_account_id


def get_account_or_raise(config: AccountsConfig, account_id: str) -> AccountConfig:
    validate_account_id(account_id)
    for account in config.accounts:
        if account.id == account_id:
            return account
    raise UnknownAccount(account_id)


def get_enabled_accounts(config: AccountsConfig) -> List[AccountConfig]:
    return [account for account in config.accounts if account.enabled]


def _get_enabled_account(config: AccountsConfig, account_id: str) -> AccountConfig:
    account = get_account_or_raise(config, account_id)
    if not account.enabled:
        raise AccountDisabled(account_id)
    return account


def resolve_read_accounts(config: AccountsConfig, account_id: Optional[str] = None) -> List[AccountConfig]:
    """
    Pick the accounts a read or search targets.

    A non-blank account_id selects exactly that account, which must exist and
    be enabled. Otherwise every enabled account is returned in registry order.

    Raises:
        UnknownAccount: account_id is not in the registry
        AccountDisabled: account_id is present but not enabled
        NoEnabledAccounts: no account_id and nothing is enabled
    """
    if account_id and account_id.strip():
        return [_get_enabled_account(config, account_id)]

    enabled_accounts = get_enabled_accounts(config)
    if not enabled_accounts:
        raise NoEnabledAccounts()
    return enabled_accounts


def resolve_write_account(config: AccountsConfig, account_id: Optional[str]) -> AccountConfig:
    """
    Pick the single account a write or admin operation targets.

    Raises:
        AccountRequired: account_id is missing or blank
        UnknownAccount: account_id is not in the registry
        AccountDisabled: account_id is present but not enabled
    """
    if not account_id or not account_id.strip():
        raise AccountRequired()
    return _get_enabled_account(config, account_id)


async def get_account_health(config_root: Path, account: AccountConfig) -> AccountHealth:
    """Report whether an account's credential and token files exist."""
    paths = resolve_paths(config_root, account)
    has_credentials_file, has_token_file = await asyncio.gather(
        asyncio.to_thread(paths.credentials_path.exists),
        asyncio.to_thread(paths.token_path.exists),
    )
    return AccountHealth(
        account=account,
        has_credentials_file=has_credentials_file,
        has_token_file=has_token_file,
        ready=account.enabled and has_credentials_file and has_token_file,
    )
