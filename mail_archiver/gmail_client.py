"""Minimal Gmail API client for archiving conversations."""
from typing import Optional, Iterable

import requests

from mail_archiver import settings
from mail_archiver.errors import GmailApiError, ThreadGoneError
from mail_archiver.logging_conf import logger


class GmailClient:
    """Removes conversations from the Gmail inbox.

    Makes a single attempt per call; retries are scheduled by the queue.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        not_found_codes: Optional[Iterable[int]] = None,
        retryable_codes: Optional[Iterable[int]] = None,
    ):
        self.base_url = base_url or settings.GMAIL_API_BASE
        self.timeout = timeout or settings.GMAIL_REQUEST_TIMEOUT
        self.not_found_codes = frozenset(
            not_found_codes if not_found_codes is not None else settings.GMAIL_NOT_FOUND_STATUS_CODES
        )
        self.retryable_codes = frozenset(
            retryable_codes if retryable_codes is not None else settings.GMAIL_RETRYABLE_STATUS_CODES
        )
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def archive_thread(self, access_token: str, gmail_thread_id: str) -> None:
        """
        Archive a conversation by removing its INBOX label.

        Raises:
            ThreadGoneError: Gmail reports the conversation does not exist
            GmailApiError: any other HTTP or network failure
        """
        url = f"{self.base_url}/threads/{gmail_thread_id}/modify"

        try:
            response = self.session.post(
                url,
                json={"removeLabelIds": ["INBOX"]},
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise GmailApiError(f"Gmail request failed: {e}") from e

        if response.status_code in self.not_found_codes:
            raise ThreadGoneError(gmail_thread_id, response.status_code)

        if not response.ok:
            retryable = response.status_code in self.retryable_codes
            raise GmailApiError(
                f"Gmail API error {response.status_code}: {self._error_detail(response)}",
                status_code=response.status_code,
                retryable=retryable,
            )

        logger.debug(f"Removed INBOX label from Gmail thread {gmail_thread_id}")

    def _error_detail(self, response) -> str:
        """Extract Gmail's error message, falling back to the raw body."""
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return response.text[:200]
