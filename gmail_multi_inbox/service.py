"""
Gmail multi-inbox service: one coroutine per MCP tool.

Each call loads the registry, resolves the target account(s) and delegates
to a per-account GmailAccountClient. Reads and searches fan out across all
enabled accounts when no account is named.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .accounts import get_account_health, resolve_read_accounts, resolve_write_account
from .aggregator import clamp_limit, run_fan_out
from .arguments import (
    require_string,
    require_string_list,
    value_to_boolean,
    value_to_number,
    value_to_string,
)
from .auth import GoogleOAuthFlow
from .gmail_tools import GmailAccountClient
from .models import AccountConfig, AccountsConfig, AggregateResult, ParsedEmail
from .onboarding import begin_account_auth, finish_account_auth
from .registry import ensure_config_layout, load_accounts_config

DEFAULT_READ_MAX_RESULTS = 20
DEFAULT_SEARCH_MAX_RESULTS = 25

ClientFactory = Callable[[Path, AccountConfig], Awaitable[GmailAccountClient]]


def _email_to_dict(email: ParsedEmail) -> Dict[str, Any]:
    return email.model_dump(by_alias=True, exclude_none=True)


def _account_summary(account: AccountConfig) -> Dict[str, str]:
    return {"id": account.id, "email": account.email}


class GmailMultiInboxService:
    """Coordinates the registry, account resolution and per-account Gmail clients."""

    def __init__(self, config_root: Path, oauth: Optional[GoogleOAuthFlow] = None,
                 client_factory: Optional[ClientFactory] = None):
        self.config_root = Path(config_root)
        self.oauth = oauth or GoogleOAuthFlow()
        self.client_factory = client_factory or GmailAccountClient.create
        ensure_config_layout(self.config_root)

    def load_config(self) -> AccountsConfig:
        return load_accounts_config(self.config_root)

    async def get_client(self, account: AccountConfig) -> GmailAccountClient:
        return await self.client_factory(self.config_root, account)

    # === Account Tools ===

    async def list_accounts(self) -> Dict[str, Any]:
        config = self.load_config()
        health_list = await asyncio.gather(
            *(get_account_health(self.config_root, account) for account in config.accounts)
        )

        accounts = []
        for health in health_list:
            account = health.account
            if health.ready:
                status = "ready"
            elif account.enabled:
                status = "needs-auth-files"
            else:
                status = "disabled"
            accounts.append({
                "id": account.id,
                "email": account.email,
                "display_name": account.display_name,
                "enabled": account.enabled,
                "default": config.default_account == account.id,
                "status": status,
                "credentials_file": "present" if health.has_credentials_file else "missing",
                "token_file": "present" if health.has_token_file else "missing",
            })

        return {
            "config_root": str(self.config_root),
            "default_account": config.default_account,
            "accounts": accounts,
        }

    # === Aggregated Read Tools ===

    def _read_response(self, title: str, account_id: Optional[str], targets: List[AccountConfig],
                       query: str, result: AggregateResult) -> Dict[str, Any]:
        scope = f"account {account_id}" if account_id else f"all enabled accounts ({len(targets)})"
        return {
            "title": title,
            "scope": scope,
            "query": query,
            "total_found": result.total_found,
            "returned": len(result.emails),
            "emails": [_email_to_dict(email) for email in result.emails],
            "errors": result.errors,
        }

    async def read_emails(self, account: Any = None, query: Any = "", max_results: Any = None,
                          include_body: Any = False) -> Dict[str, Any]:
        account_id = value_to_string(account).strip() or None
        query_text = value_to_string(query).strip()
        limit = clamp_limit(value_to_number(max_results, DEFAULT_READ_MAX_RESULTS))
        with_body = value_to_boolean(include_body, False)

        targets = resolve_read_accounts(self.load_config(), account_id)

        async def operation(target: AccountConfig) -> List[ParsedEmail]:
            client = await self.get_client(target)
            return await client.read_emails(query_text, limit, with_body)

        result = await run_fan_out(targets, operation, limit)
        return self._read_response("Gmail Emails", account_id, targets, query_text, result)

    async def search_emails(self, query: Any, account: Any = None,
                            max_results: Any = None) -> Dict[str, Any]:
        account_id = value_to_string(account).strip() or None
        query_text = require_string(query, "query")
        limit = clamp_limit(value_to_number(max_results, DEFAULT_SEARCH_MAX_RESULTS))

        targets = resolve_read_accounts(self.load_config(), account_id)

        async def operation(target: AccountConfig) -> List[ParsedEmail]:
            client = await self.get_client(target)
            return await client.search_emails(query_text, limit)

        result = await run_fan_out(targets, operation, limit)
        return self._read_response("Gmail Search Results", account_id, targets, query_text, result)

    # === Single-Account Tools ===

    async def _client_for_write(self, account: Any) -> GmailAccountClient:
        target = resolve_write_account(self.load_config(), value_to_string(account).strip())
        return await self.get_client(target)

    async def get_email_thread(self, account: Any, thread_id: Any) -> Dict[str, Any]:
        thread_id_text = require_string(thread_id, "thread_id")
        client = await self._client_for_write(account)
        thread = await client.get_thread(thread_id_text)
        return {
            "account": _account_summary(client.account),
            "thread_id": thread.thread_id,
            "message_count": len(thread.messages),
            "messages": [_email_to_dict(message) for message in thread.messages],
        }

    async def get_labels(self, account: Any) -> Dict[str, Any]:
        client = await self._client_for_write(account)
        labels = await client.get_labels()
        return {
            "account": _account_summary(client.account),
            "count": len(labels),
            "labels": [label.model_dump() for label in labels],
        }

    async def mark_as_read(self, account: Any, message_ids: Any) -> Dict[str, Any]:
        ids = require_string_list(message_ids, "message_ids")
        client = await self._client_for_write(account)
        updated = await client.mark_as_read(ids)
        return {
            "status": "success",
            "account": client.account.id,
            "updated": updated,
            "message": f"Marked {updated} message(s) as read in account {client.account.id}.",
        }

    async def add_labels(self, account: Any, message_ids: Any, label_ids: Any) -> Dict[str, Any]:
        ids = require_string_list(message_ids, "message_ids")
        labels = require_string_list(label_ids, "label_ids")
        client = await self._client_for_write(account)
        updated = await client.add_labels(ids, labels)
        return {
            "status": "success",
            "account": client.account.id,
            "updated": updated,
            "label_ids": labels,
            "message": f"Added label(s) to {updated} message(s) in account {client.account.id}.",
        }

    async def remove_labels(self, account: Any, message_ids: Any, label_ids: Any) -> Dict[str, Any]:
        ids = require_string_list(message_ids, "message_ids")
        labels = require_string_list(label_ids, "label_ids")
        client = await self._client_for_write(account)
        updated = await client.remove_labels(ids, labels)
        return {
            "status": "success",
            "account": client.account.id,
            "updated": updated,
            "label_ids": labels,
            "message": f"Removed label(s) from {updated} message(s) in account {client.account.id}.",
        }

    async def archive_emails(self, account: Any, message_ids: Any) -> Dict[str, Any]:
        ids = require_string_list(message_ids, "message_ids")
        client = await self._client_for_write(account)
        updated = await client.archive_emails(ids)
        return {
            "status": "success",
            "account": client.account.id,
            "updated": updated,
            "message": f"Archived {updated} message(s) in account {client.account.id}.",
        }

    async def trash_emails(self, account: Any, message_ids: Any) -> Dict[str, Any]:
        ids = require_string_list(message_ids, "message_ids")
        client = await self._client_for_write(account)
        updated = await client.trash_emails(ids)
        return {
            "status": "success",
            "account": client.account.id,
            "updated": updated,
            "message": f"Trashed {updated} message(s) in account {client.account.id}.",
        }

    async def create_label(self, account: Any, name: Any, label_list_visibility: Any = "labelShow",
                           message_list_visibility: Any = "show") -> Dict[str, Any]:
        label_name = require_string(name, "name")
        client = await self._client_for_write(account)
        label = await client.create_label(
            label_name,
            value_to_string(label_list_visibility, "labelShow") or "labelShow",
            value_to_string(message_list_visibility, "show") or "show",
        )
        return {
            "status": "success",
            "account": client.account.id,
            "label": label.model_dump(),
        }

    async def delete_label(self, account: Any, label_id: Any) -> Dict[str, Any]:
        label_id_text = require_string(label_id, "label_id")
        client = await self._client_for_write(account)
        await client.delete_label(label_id_text)
        return {
            "status": "success",
            "account": client.account.id,
            "message": f"Deleted label {label_id_text} in account {client.account.id}.",
        }

    def _outgoing_args(self, to: Any, subject: Any, body: Any, cc: Any, bcc: Any,
                       html: Any) -> Dict[str, Any]:
        return {
            "to": require_string(to, "to"),
            "subject": value_to_string(subject),
            "body": value_to_string(body),
            "cc": value_to_string(cc) or None,
            "bcc": value_to_string(bcc) or None,
            "html": value_to_boolean(html, False),
        }

    async def create_draft(self, account: Any, to: Any, subject: Any, body: Any, cc: Any = None,
                           bcc: Any = None, html: Any = False) -> Dict[str, Any]:
        outgoing = self._outgoing_args(to, subject, body, cc, bcc, html)
        client = await self._client_for_write(account)
        result = await client.create_draft(**outgoing)
        return {
            "status": "success",
            "account": _account_summary(client.account),
            **result,
        }

    async def send_email(self, account: Any, to: Any, subject: Any, body: Any, cc: Any = None,
                         bcc: Any = None, html: Any = False) -> Dict[str, Any]:
        outgoing = self._outgoing_args(to, subject, body, cc, bcc, html)
        client = await self._client_for_write(account)
        result = await client.send_email(**outgoing)
        return {
            "status": "success",
            "account": _account_summary(client.account),
            **result,
        }

    # === Onboarding Tools ===

    async def begin_account_auth(self, account_id: Any, email: Any, display_name: Any = None,
                                 credentials_json: Any = None, credentials_path: Any = None) -> Dict[str, Any]:
        result = await begin_account_auth(
            self.config_root,
            account_id=require_string(account_id, "account_id"),
            email=require_string(email, "email"),
            display_name=value_to_string(display_name) or None,
            credentials_json=credentials_json,
            credentials_path=value_to_string(credentials_path) or None,
            oauth=self.oauth,
        )
        return {
            **result.model_dump(),
            "next_step": (
                "Open auth_url, approve access, then call finish_account_auth "
                "with the same account_id and the returned authorization_code."
            ),
        }

    async def finish_account_auth(self, account_id: Any, authorization_code: Any) -> Dict[str, Any]:
        result = await finish_account_auth(
            self.config_root,
            account_id=require_string(account_id, "account_id"),
            authorization_code=require_string(authorization_code, "authorization_code"),
            oauth=self.oauth,
            client_factory=self.client_factory,
        )
        return {
            "status": "success",
            **result.model_dump(),
            "message": (
                "This account is now enabled for aggregate reads/search "
                "and explicit write/admin tools."
            ),
        }
