"""Exceptions raised by the archive pipeline."""
from typing import Optional


class MailArchiverError(Exception):
    """Base class for archive pipeline errors."""


class NotFoundOrUnauthorized(MailArchiverError):
    """The thread does not exist or is not owned by the caller."""

    def __init__(self, thread_id):
        super().__init__(f"Thread not found or access denied: {thread_id}")
        self.thread_id = thread_id


class CredentialError(MailArchiverError):
    """No usable Gmail credential for a user."""


class GmailApiError(MailArchiverError):
    """A Gmail API call failed.

    ``status_code`` is None for network-level failures (timeouts, refused
    connections). ``retryable`` reflects the configured classification and is
    informational only: every failure goes through the queue's backoff.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ThreadGoneError(MailArchiverError):
    """Gmail no longer has the conversation, so there is nothing left to archive."""

    def __init__(self, gmail_thread_id: str, status_code: int):
        super().__init__(f"Gmail thread {gmail_thread_id} no longer exists (HTTP {status_code})")
        self.gmail_thread_id = gmail_thread_id
        self.status_code = status_code
