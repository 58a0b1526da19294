"""
Exception classes for account resolution, onboarding and Gmail access.
"""


class GmailMultiInboxError(Exception):
    """Base class for all errors raised by the server."""
    pass


class ValidationError(GmailMultiInboxError):
    """Raised when a caller argument is missing or malformed."""
    pass


class InvalidAccountId(ValidationError):
    """Raised when an account id contains characters outside [A-Za-z0-9_-]."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f'Invalid account id "{account_id}". '
            "Use letters, numbers, underscores, or hyphens only."
        )


class UnknownAccount(GmailMultiInboxError):
    """Raised when an account id is not present in the registry."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f'Unknown account "{account_id}".')


class AccountDisabled(GmailMultiInboxError):
    """Raised when an explicitly requested account is not enabled."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f'Account "{account_id}" is disabled.')


class AccountRequired(GmailMultiInboxError):
    """Raised when a write tool is called without an explicit account."""

    def __init__(self):
        super().__init__('This tool requires an explicit "account" value.')


class NoEnabledAccounts(GmailMultiInboxError):
    """Raised when an aggregate read finds no enabled accounts."""

    def __init__(self):
        super().__init__(
            "No enabled Gmail accounts are configured. "
            "Use begin_account_auth and finish_account_auth first."
        )


class ConfigCorrupt(GmailMultiInboxError):
    """Raised when accounts.json exists but cannot be read as JSON."""
    pass


class TokenExchangeIncomplete(GmailMultiInboxError):
    """Raised when the OAuth exchange returned neither an access nor a refresh token."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f'OAuth exchange for account "{account_id}" succeeded '
            "but no token payload was returned."
        )


class ExternalCollaboratorError(GmailMultiInboxError):
    """Raised when the Gmail API or the OAuth endpoint reports a failure."""
    pass
