"""
Gmail API client scoped to a single configured account.
Contains all Gmail operations the tools call, plus message parsing.
"""

import asyncio
import base64
import re
from email.header import decode_header
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Dict, List, Optional

from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .arguments import require_string_list
from .auth import TokenStore, read_client_config_file, refresh_if_expired
from .exceptions import ExternalCollaboratorError, ValidationError
from .models import AccountConfig, AccountPaths, LabelInfo, ParsedEmail, ParsedThread
from .registry import resolve_paths
from .utils.logging import get_logger, log_external_api_call

logger = get_logger("gmail_tools")

METADATA_HEADERS = ["From", "To", "Subject", "Date"]
MAX_RESULTS_CAP = 100


def decode_mime_header(header: str) -> str:
    """Decodes MIME-encoded header values."""
    decoded_pieces = decode_header(header)
    return ''.join([
        piece.decode(encoding or 'utf-8', errors='replace') if isinstance(piece, bytes) else piece
        for piece, encoding in decoded_pieces
    ])


def decode_base64url(value: str) -> str:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def strip_html_tags(html: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"<[^>]+>", " ", html)).strip()


def get_header_value(headers: Optional[List[Dict[str, str]]], name: str) -> str:
    for header in headers or []:
        if (header.get("name") or "").lower() == name.lower():
            return decode_mime_header((header.get("value") or "").strip())
    return ""


def extract_email_body(payload: Optional[Dict[str, Any]]) -> str:
    """Prefer the first text/plain part; fall back to the first text/html part without tags."""
    if not payload:
        return ""

    body_data = (payload.get("body") or {}).get("data")
    parts = payload.get("parts") or []
    if body_data and not parts:
        return decode_base64url(body_data)
    if not parts:
        return ""

    text_plain = ""
    text_html = ""
    queue = list(parts)
    while queue:
        part = queue.pop(0)
        queue.extend(part.get("parts") or [])

        data = (part.get("body") or {}).get("data")
        if not data:
            continue
        if part.get("mimeType") == "text/plain" and not text_plain:
            text_plain = decode_base64url(data)
        elif part.get("mimeType") == "text/html" and not text_html:
            text_html = decode_base64url(data)

    if text_plain:
        return text_plain
    if text_html:
        return strip_html_tags(text_html)
    return ""


def normalize_address_list(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    return ", ".join(item.strip() for item in value.split(",") if item.strip())


def build_raw_message(
    to: str,
    subject: str,
    body: str,
    cc: Optional[str] = None,
    bcc: Optional[str] = None,
    html: bool = False
) -> str:
    """Build a base64url-encoded RFC 822 message for the Gmail API."""
    recipients = normalize_address_list(to)
    if not recipients:
        raise ValidationError('Recipient "to" is required.')

    message_obj = EmailMessage()
    message_obj['To'] = recipients
    message_obj['Subject'] = subject
    cc_list = normalize_address_list(cc)
    if cc_list:
        message_obj['Cc'] = cc_list
    bcc_list = normalize_address_list(bcc)
    if bcc_list:
        message_obj['Bcc'] = bcc_list
    message_obj.set_content(body, subtype="html" if html else "plain", charset="utf-8")
    return base64.urlsafe_b64encode(message_obj.as_bytes()).decode()


class GmailAccountClient:
    """Gmail operations for one account, backed by googleapiclient."""

    def __init__(self, account: AccountConfig, paths: AccountPaths, gmail_service,
                 token_store: Optional[TokenStore] = None, credentials=None):
        self.account = account
        self.paths = paths
        self.gmail_service = gmail_service
        self.token_store = token_store
        self.credentials = credentials
        self._last_token = getattr(credentials, "token", None)

    @classmethod
    async def create(cls, config_root: Path, account: AccountConfig) -> "GmailAccountClient":
        """Load the account's client credentials and token, then build the Gmail service."""
        paths = resolve_paths(config_root, account)
        try:
            client_config = read_client_config_file(paths.credentials_path)
        except ValidationError as e:
            raise ExternalCollaboratorError(str(e)) from e

        token_store = TokenStore(account.id, paths.token_path)
        credentials = token_store.load(client_config)
        await refresh_if_expired(credentials, token_store)

        gmail_service = await asyncio.to_thread(
            build, 'gmail', 'v1', credentials=credentials, cache_discovery=False
        )
        return cls(account, paths, gmail_service, token_store, credentials)

    def _persist_if_refreshed(self) -> None:
        if self.token_store is None or self.credentials is None:
            return
        token = getattr(self.credentials, "token", None)
        if token and token != self._last_token:
            self.token_store.persist(self.credentials)
            self._last_token = token

    async def _execute(self, request, endpoint: str) -> Dict[str, Any]:
        """Run a googleapiclient request in a worker thread, persisting any token refresh."""
        try:
            response = await asyncio.to_thread(request.execute)
        except (HttpError, GoogleAuthError) as error:
            logger.error(f"Error calling Gmail {endpoint} for account {self.account.id}: {error}")
            raise ExternalCollaboratorError(f"Gmail {endpoint} failed: {error}") from error
        finally:
            self._persist_if_refreshed()
        log_external_api_call("gmail", endpoint, self.account.id, logger=logger)
        return response or {}

    async def get_profile_email(self) -> str:
        profile = await self._execute(
            self.gmail_service.users().getProfile(userId='me'), "users.getProfile"
        )
        email_address = profile.get('emailAddress')
        if not email_address:
            raise ExternalCollaboratorError(
                f'Gmail profile did not return an email address for account "{self.account.id}".'
            )
        return email_address

    async def read_emails(self, query: str, max_results: int, include_body: bool) -> List[ParsedEmail]:
        return await self._fetch_messages(query, max_results, include_body)

    async def search_emails(self, query: str, max_results: int) -> List[ParsedEmail]:
        if not query or not query.strip():
            raise ValidationError("Search query is required.")
        return await self._fetch_messages(query, max_results, False)

    async def _fetch_messages(self, query: str, max_results: int, include_body: bool) -> List[ParsedEmail]:
        bounded_max = max(1, min(int(max_results), MAX_RESULTS_CAP))
        list_kwargs: Dict[str, Any] = {'userId': 'me', 'maxResults': bounded_max}
        if query and query.strip():
            list_kwargs['q'] = query

        response = await self._execute(
            self.gmail_service.users().messages().list(**list_kwargs), "messages.list"
        )
        message_ids = [m['id'] for m in response.get('messages', []) if m.get('id')]

        emails = []
        for message_id in message_ids:
            if include_body:
                request = self.gmail_service.users().messages().get(
                    userId='me', id=message_id, format='full'
                )
            else:
                request = self.gmail_service.users().messages().get(
                    userId='me', id=message_id, format='metadata', metadataHeaders=METADATA_HEADERS
                )
            message = await self._execute(request, "messages.get")
            emails.append(self.parse_message(message, include_body))

        emails.sort(key=lambda email: email.internal_date, reverse=True)
        return emails

    async def get_thread(self, thread_id: str) -> ParsedThread:
        if not thread_id or not thread_id.strip():
            raise ValidationError("thread_id is required.")

        thread = await self._execute(
            self.gmail_service.users().threads().get(userId='me', id=thread_id, format='full'),
            "threads.get"
        )
        messages = [self.parse_message(message, True) for message in thread.get('messages', [])]
        messages.sort(key=lambda email: email.internal_date)
        return ParsedThread(thread_id=thread_id, messages=messages)

    async def get_labels(self) -> List[LabelInfo]:
        results = await self._execute(
            self.gmail_service.users().labels().list(userId='me'), "labels.list"
        )
        return [self._parse_label(label) for label in results.get('labels', [])]

    async def _batch_modify(self, ids: List[str], add_label_ids: Optional[List[str]] = None,
                            remove_label_ids: Optional[List[str]] = None) -> int:
        body: Dict[str, Any] = {'ids': ids}
        if add_label_ids:
            body['addLabelIds'] = add_label_ids
        if remove_label_ids:
            body['removeLabelIds'] = remove_label_ids
        await self._execute(
            self.gmail_service.users().messages().batchModify(userId='me', body=body),
            "messages.batchModify"
        )
        return len(ids)

    async def mark_as_read(self, message_ids: List[str]) -> int:
        ids = require_string_list(message_ids, "message_ids")
        updated = await self._batch_modify(ids, remove_label_ids=['UNREAD'])
        logger.info(f"Marked {updated} message(s) as read in account {self.account.id}")
        return updated

    async def add_labels(self, message_ids: List[str], label_ids: List[str]) -> int:
        ids = require_string_list(message_ids, "message_ids")
        labels = require_string_list(label_ids, "label_ids")
        return await self._batch_modify(ids, add_label_ids=labels)

    async def remove_labels(self, message_ids: List[str], label_ids: List[str]) -> int:
        ids = require_string_list(message_ids, "message_ids")
        labels = require_string_list(label_ids, "label_ids")
        return await self._batch_modify(ids, remove_label_ids=labels)

    async def archive_emails(self, message_ids: List[str]) -> int:
        ids = require_string_list(message_ids, "message_ids")
        updated = await self._batch_modify(ids, remove_label_ids=['INBOX'])
        logger.info(f"Archived {updated} message(s) in account {self.account.id}")
        return updated

    async def trash_emails(self, message_ids: List[str]) -> int:
        ids = require_string_list(message_ids, "message_ids")
        for message_id in ids:
            await self._execute(
                self.gmail_service.users().messages().trash(userId='me', id=message_id),
                "messages.trash"
            )
        logger.info(f"Moved {len(ids)} message(s) to trash in account {self.account.id}")
        return len(ids)

    async def create_label(self, name: str, label_list_visibility: str = 'labelShow',
                           message_list_visibility: str = 'show') -> LabelInfo:
        if not name or not name.strip():
            raise ValidationError("Label name is required.")

        label_object = {
            'name': name.strip(),
            'labelListVisibility': label_list_visibility,
            'messageListVisibility': message_list_visibility,
        }
        created_label = await self._execute(
            self.gmail_service.users().labels().create(userId='me', body=label_object),
            "labels.create"
        )
        logger.info(f"Label created in account {self.account.id}: {created_label.get('id')}")
        label = self._parse_label(created_label)
        if not created_label.get('name'):
            label.name = name.strip()
        return label

    async def delete_label(self, label_id: str) -> None:
        if not label_id or not label_id.strip():
            raise ValidationError("label_id is required.")
        await self._execute(
            self.gmail_service.users().labels().delete(userId='me', id=label_id),
            "labels.delete"
        )

    async def create_draft(self, to: str, subject: str, body: str, cc: Optional[str] = None,
                           bcc: Optional[str] = None, html: bool = False) -> Dict[str, Optional[str]]:
        raw = build_raw_message(to, subject, body, cc=cc, bcc=bcc, html=html)
        # Gmail API expects 'message' key for draft
        draft = await self._execute(
            self.gmail_service.users().drafts().create(userId='me', body={'message': {'raw': raw}}),
            "drafts.create"
        )
        logger.info(f"Draft created in account {self.account.id}: {draft.get('id')}")
        return {
            "draft_id": draft.get('id', ''),
            "thread_id": (draft.get('message') or {}).get('threadId'),
        }

    async def send_email(self, to: str, subject: str, body: str, cc: Optional[str] = None,
                         bcc: Optional[str] = None, html: bool = False) -> Dict[str, Optional[str]]:
        raw = build_raw_message(to, subject, body, cc=cc, bcc=bcc, html=html)
        sent = await self._execute(
            self.gmail_service.users().messages().send(userId='me', body={'raw': raw}),
            "messages.send"
        )
        logger.info(f"Message sent from account {self.account.id}: {sent.get('id')}")
        return {
            "message_id": sent.get('id', ''),
            "thread_id": sent.get('threadId'),
        }

    @staticmethod
    def _parse_label(label: Dict[str, Any]) -> LabelInfo:
        return LabelInfo(
            id=label.get('id', ''),
            name=label.get('name') or '(unnamed)',
            type=label.get('type'),
            messages_total=label.get('messagesTotal'),
        )

    def parse_message(self, message: Dict[str, Any], include_body: bool) -> ParsedEmail:
        payload = message.get('payload') or {}
        headers = payload.get('headers')
        try:
            internal_date = int(message.get('internalDate') or 0)
        except (TypeError, ValueError):
            internal_date = 0

        return ParsedEmail(
            id=message.get('id', ''),
            thread_id=message.get('threadId', ''),
            snippet=message.get('snippet', ''),
            sender=get_header_value(headers, 'From'),
            to=get_header_value(headers, 'To'),
            subject=get_header_value(headers, 'Subject') or '(no subject)',
            date=get_header_value(headers, 'Date'),
            internal_date=internal_date,
            body=extract_email_body(payload) if include_body else None,
            labels=message.get('labelIds', []),
            account_id=self.account.id,
            account_email=self.account.email,
        )
