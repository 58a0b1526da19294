"""
Service-level tests: tool semantics over a real registry with fake
per-account Gmail clients.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from gmail_multi_inbox.exceptions import (
    AccountDisabled,
    AccountRequired,
    NoEnabledAccounts,
    UnknownAccount,
    ValidationError,
)
from gmail_multi_inbox.models import LabelInfo, ParsedEmail
from gmail_multi_inbox.service import GmailMultiInboxService


def fake_client(account, emails=None, error=None):
    client = MagicMock()
    client.account = account
    if error is not None:
        client.read_emails = AsyncMock(side_effect=error)
        client.search_emails = AsyncMock(side_effect=error)
    else:
        client.read_emails = AsyncMock(return_value=emails or [])
        client.search_emails = AsyncMock(return_value=emails or [])
    client.mark_as_read = AsyncMock(return_value=2)
    client.archive_emails = AsyncMock(return_value=1)
    client.get_labels = AsyncMock(return_value=[LabelInfo(id="INBOX", name="INBOX", type="system")])
    client.send_email = AsyncMock(return_value={"message_id": "m", "thread_id": "t"})
    return client


def parsed(message_id, internal_date, account):
    return ParsedEmail(
        id=message_id, internal_date=internal_date,
        account_id=account.id, account_email=account.email,
    )


@pytest.fixture
def clients():
    return {}


@pytest.fixture
def service(config_root, registry_with_accounts, clients):
    async def factory(root, account):
        if account.id not in clients:
            clients[account.id] = fake_client(account)
        return clients[account.id]

    return GmailMultiInboxService(config_root, oauth=MagicMock(), client_factory=factory)


class TestListAccounts:

    async def test_reports_status_per_account(self, service, config_root):
        result = await service.list_accounts()

        assert result["config_root"] == str(config_root)
        assert result["default_account"] == "personal"
        by_id = {a["id"]: a for a in result["accounts"]}
        assert by_id["personal"]["status"] == "ready"
        assert by_id["personal"]["default"] is True
        assert by_id["work"]["status"] == "ready"
        assert by_id["old"]["status"] == "disabled"
        assert by_id["old"]["token_file"] == "missing"

    async def test_enabled_without_token_needs_auth_files(self, service, config_root):
        (config_root / "accounts" / "work" / "token.json").unlink()

        result = await service.list_accounts()

        by_id = {a["id"]: a for a in result["accounts"]}
        assert by_id["work"]["status"] == "needs-auth-files"


class TestAggregatedReads:

    async def test_read_fans_out_to_enabled_accounts(self, service, registry_with_accounts, clients):
        personal, work, _ = registry_with_accounts.accounts
        clients["personal"] = fake_client(personal, [parsed("p1", 100, personal)])
        clients["work"] = fake_client(work, [parsed("w1", 200, work), parsed("w2", 50, work)])

        result = await service.read_emails()

        assert result["scope"] == "all enabled accounts (2)"
        assert [e["id"] for e in result["emails"]] == ["w1", "p1", "w2"]
        assert result["emails"][0]["accountId"] == "work"
        assert result["total_found"] == 3
        assert result["returned"] == 3
        assert result["errors"] == []
        clients["work"].read_emails.assert_awaited_once_with("", 20, False)

    async def test_failing_account_becomes_error_entry(self, service, registry_with_accounts, clients):
        personal, work, _ = registry_with_accounts.accounts
        clients["personal"] = fake_client(personal, [parsed("p1", 100, personal)])
        clients["work"] = fake_client(work, error=RuntimeError("token revoked"))

        result = await service.search_emails("from:boss", max_results=10)

        assert [e["id"] for e in result["emails"]] == ["p1"]
        assert result["errors"] == ["work: token revoked"]

    async def test_explicit_account_limits_scope(self, service, registry_with_accounts, clients):
        _, work, _ = registry_with_accounts.accounts
        clients["work"] = fake_client(work, [parsed("w1", 1, work)])

        result = await service.read_emails(account="work", max_results=500, include_body=True)

        assert result["scope"] == "account work"
        clients["work"].read_emails.assert_awaited_once_with("", 100, True)
        assert "personal" not in clients

    async def test_loose_arguments_fall_back_to_defaults(self, service, registry_with_accounts, clients):
        personal, work, _ = registry_with_accounts.accounts
        clients["personal"] = fake_client(personal)
        clients["work"] = fake_client(work)

        await service.search_emails("x", max_results="many")

        clients["personal"].search_emails.assert_awaited_once_with("x", 25)

    async def test_search_requires_query(self, service):
        with pytest.raises(ValidationError, match="query is required."):
            await service.search_emails("  ")

    async def test_disabled_account_read_raises(self, service):
        with pytest.raises(AccountDisabled):
            await service.read_emails(account="old")

    async def test_unknown_account_read_raises(self, service):
        with pytest.raises(UnknownAccount):
            await service.read_emails(account="nobody")

    async def test_no_enabled_accounts(self, config_root):
        empty = GmailMultiInboxService(config_root, oauth=MagicMock(), client_factory=AsyncMock())

        with pytest.raises(NoEnabledAccounts):
            await empty.read_emails()


class TestSingleAccountTools:

    async def test_write_requires_account(self, service, clients):
        with pytest.raises(AccountRequired):
            await service.mark_as_read(None, ["m1"])
        assert clients == {}

    async def test_arguments_are_validated_before_client_is_built(self, service, clients):
        with pytest.raises(ValidationError, match="message_ids must include at least one value."):
            await service.archive_emails("work", [])
        with pytest.raises(ValidationError, match="label_ids"):
            await service.add_labels("work", ["m1"], "Label_1")
        with pytest.raises(ValidationError, match="thread_id is required."):
            await service.get_email_thread("work", "")
        assert clients == {}

    async def test_mark_as_read(self, service, clients):
        result = await service.mark_as_read("work", ["m1", "m1", "m2"])

        clients["work"].mark_as_read.assert_awaited_once_with(["m1", "m2"])
        assert result["status"] == "success"
        assert result["updated"] == 2
        assert result["account"] == "work"

    async def test_get_labels(self, service):
        result = await service.get_labels("personal")

        assert result["account"] == {"id": "personal", "email": "personal@example.com"}
        assert result["labels"][0]["id"] == "INBOX"

    async def test_send_email_requires_recipient(self, service, clients):
        with pytest.raises(ValidationError, match="to is required."):
            await service.send_email("work", "  ", "Hi", "Body")
        assert clients == {}

    async def test_send_email(self, service, clients):
        result = await service.send_email("work", "to@example.com", "Hi", "Body", html=True)

        clients["work"].send_email.assert_awaited_once_with(
            to="to@example.com", subject="Hi", body="Body", cc=None, bcc=None, html=True
        )
        assert result["message_id"] == "m"
        assert result["account"]["id"] == "work"

    async def test_disabled_account_write_raises(self, service):
        with pytest.raises(AccountDisabled):
            await service.archive_emails("old", ["m1"])


class TestOnboardingTools:

    async def test_begin_account_auth_adds_next_step(self, service, client_credentials):
        service.oauth.authorization_url.return_value = "https://accounts.google.com/o/oauth2/auth?x=1"

        result = await service.begin_account_auth("new", "new@example.com", credentials_json=client_credentials)

        assert result["account_id"] == "new"
        assert result["auth_url"] == "https://accounts.google.com/o/oauth2/auth?x=1"
        assert "finish_account_auth" in result["next_step"]
        listed = await service.list_accounts()
        assert {a["id"]: a["status"] for a in listed["accounts"]}["new"] == "disabled"

    async def test_finish_account_auth_enables_account(self, service, client_credentials, clients):
        service.oauth.authorization_url.return_value = "https://accounts.google.com/o/oauth2/auth"
        service.oauth.exchange_code = AsyncMock(return_value={"access_token": "t"})
        await service.begin_account_auth("new", "new@example.com", credentials_json=client_credentials)

        result = await service.finish_account_auth("new", "code")

        assert result["status"] == "success"
        assert result["account_id"] == "new"
        assert result["is_default"] is False
        assert any(a.id == "new" and a.enabled for a in service.load_config().accounts)
