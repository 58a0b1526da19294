"""
Gmail Multi-Inbox Domain Models

Pydantic V2 models for the account registry, per-account file layout,
parsed Gmail messages and aggregated read results.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AccountConfig(BaseModel):
    """One configured mailbox as persisted in accounts.json."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Stable account id ([A-Za-z0-9_-]+)")
    email: str = Field(..., description="Mailbox address, refreshed from the Gmail profile")
    display_name: Optional[str] = Field(None, alias="displayName", description="Optional label")
    enabled: bool = Field(False, description="Whether the account takes part in reads and writes")
    credential_path: Optional[str] = Field(None, alias="credentialPath", description="OAuth client JSON path")
    token_path: Optional[str] = Field(None, alias="tokenPath", description="OAuth token JSON path")


class AccountsConfig(BaseModel):
    """The durable registry: ordered accounts plus the default pointer."""
    model_config = ConfigDict(populate_by_name=True)

    default_account: Optional[str] = Field(None, alias="defaultAccount")
    accounts: List[AccountConfig] = Field(default_factory=list)

    def to_document(self) -> dict:
        """Serialize with the camelCase keys of the on-disk contract."""
        return self.model_dump(by_alias=True, exclude_none=False)


class AccountPaths(BaseModel):
    """Resolved filesystem locations for one account."""
    account_dir: Path
    credentials_path: Path
    token_path: Path
    meta_path: Path


class AccountHealth(BaseModel):
    """Derived readiness view of an account. Never persisted."""
    account: AccountConfig
    has_credentials_file: bool
    has_token_file: bool
    ready: bool


class ParsedEmail(BaseModel):
    """A Gmail message reduced to the fields the tools return."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    thread_id: str = Field("", alias="threadId")
    snippet: str = ""
    sender: str = Field("", alias="from")
    to: str = ""
    subject: str = "(no subject)"
    date: str = ""
    internal_date: int = Field(0, alias="internalDate")
    body: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    account_id: str = Field("", alias="accountId")
    account_email: str = Field("", alias="accountEmail")


class ParsedThread(BaseModel):
    """A Gmail thread with its messages ordered oldest first."""
    thread_id: str
    messages: List[ParsedEmail] = Field(default_factory=list)


class LabelInfo(BaseModel):
    """Summary of a Gmail label."""
    id: str
    name: str
    type: Optional[str] = None
    messages_total: Optional[int] = None


class AggregateResult(BaseModel):
    """Merged outcome of a fan-out read across accounts."""
    emails: List[ParsedEmail] = Field(default_factory=list, description="Merged, sorted and truncated messages")
    total_found: int = Field(0, description="Merged count before truncation")
    errors: List[str] = Field(default_factory=list, description="Per-account failures as '<id>: <message>'")
    limit: int = Field(..., description="Clamped result limit that was applied")


class OAuthClientConfig(BaseModel):
    """Google OAuth client credentials normalized from the installed/web layouts."""
    client_id: str
    client_secret: str
    redirect_uri: str = "http://localhost"
    auth_uri: str = "https://accounts.google.com/o/oauth2/auth"
    token_uri: str = "https://oauth2.googleapis.com/token"


class BeginAuthResult(BaseModel):
    """Outcome of the first onboarding step."""
    account_id: str
    email: str
    credentials_path: str
    auth_url: str


class FinishAuthResult(BaseModel):
    """Outcome of the second onboarding step."""
    account_id: str
    email: str
    token_path: str
    profile_verified: bool = Field(..., description="Whether the Gmail profile lookup succeeded")
    is_default: bool = Field(..., description="Whether the account is the registry default")
