"""Queue processor: mirrors archived threads to Gmail."""
from dataclasses import dataclass, asdict
from typing import Optional

from mail_archiver.logging_conf import logger
from mail_archiver.errors import GmailApiError, ThreadGoneError
from mail_archiver.queue.archive_queue import ArchiveQueue
from mail_archiver.queue.models import QueueItem, COMPLETED, FAILED

MAX_ERROR_LENGTH = 500


@dataclass
class ProcessSummary:
    selected: int = 0
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    superseded: int = 0

    def to_dict(self):
        return asdict(self)


class QueueProcessor:
    """Processes one bounded batch of archive requests per call."""

    def __init__(self, queue: ArchiveQueue, gmail, tokens):
        self.queue = queue
        self.gmail = gmail
        self.tokens = tokens

    def process_queue(self, limit: Optional[int] = None) -> ProcessSummary:
        """Claim and process up to ``limit`` eligible items, oldest first.

        Each item is claimed, sent to Gmail and finalized on its own; an error
        on one item (including a store error) never stops the rest of the batch.
        """
        summary = ProcessSummary()
        items = self.queue.get_pending_items(limit)
        summary.selected = len(items)

        for item in items:
            claim_token = None
            try:
                claim_token = self.queue.claim(item.id)
                if claim_token is None:
                    summary.skipped += 1  # Already claimed by another worker
                    continue
                summary.claimed += 1
                outcome = self._process_item(item, claim_token)
            except Exception as e:
                logger.error(f"Archive queue item {item.id} aborted: {e}", exc_info=True)
                summary.failed += 1
                if claim_token is not None:
                    self._record_abort(item, claim_token, e)
                continue

            if outcome == COMPLETED:
                summary.completed += 1
            elif outcome == FAILED:
                summary.failed += 1
            else:
                summary.superseded += 1

        if items:
            logger.info(
                f"Archive queue batch: {summary.completed} completed, "
                f"{summary.failed} failed, {summary.skipped} skipped, "
                f"{summary.superseded} superseded"
            )
        return summary

    def _process_item(self, item: QueueItem, claim_token) -> Optional[str]:
        """Archive one thread in Gmail and record the outcome.

        Returns the status written, or None when the claim was superseded.
        """
        try:
            access_token = self.tokens.get_access_token(item.user_id)
            self.gmail.archive_thread(access_token, item.gmail_thread_id)
        except ThreadGoneError as e:
            logger.info(f"Gmail thread {item.gmail_thread_id} no longer exists; marking completed")
            return self._finalize(item, claim_token, COMPLETED, f"Already gone from Gmail: {e}")
        except GmailApiError as e:
            if e.status_code == 401:
                self.tokens.invalidate(item.user_id)
            return self._fail(item, claim_token, str(e))
        except Exception as e:
            # Includes CredentialError
            return self._fail(item, claim_token, str(e))

        status = self._finalize(item, claim_token, COMPLETED)
        if status:
            logger.info(f"Archived Gmail thread {item.gmail_thread_id} (item {item.id})")
        return status

    def _finalize(self, item: QueueItem, claim_token, status: str,
                  error: Optional[str] = None) -> Optional[str]:
        updated = self.queue.update_status(item.id, status, error, claim_token=claim_token)
        if updated is None:
            logger.info(
                f"Claim on archive queue item {item.id} was superseded "
                f"(re-queued or reclaimed); dropping {status} outcome"
            )
            return None
        return status

    def _fail(self, item: QueueItem, claim_token, error: str) -> Optional[str]:
        updated = self.queue.update_status(item.id, FAILED, error[:MAX_ERROR_LENGTH], claim_token=claim_token)
        if updated is None:
            logger.info(f"Claim on archive queue item {item.id} was superseded; dropping failure")
            return None
        if updated.exhausted:
            logger.error(
                f"Giving up on Gmail thread {item.gmail_thread_id} after "
                f"{updated.attempts} attempts: {error}"
            )
        else:
            logger.warning(
                f"Archive of Gmail thread {item.gmail_thread_id} failed "
                f"(attempt {updated.attempts}/{updated.max_attempts}), "
                f"retry at {updated.next_retry_at}: {error}"
            )
        return FAILED

    def _record_abort(self, item: QueueItem, claim_token, error: Exception) -> None:
        """Try once more to record an aborted item as failed; stuck-claim recovery covers the rest."""
        try:
            self.queue.update_status(item.id, FAILED, str(error)[:MAX_ERROR_LENGTH], claim_token=claim_token)
        except Exception as e:
            logger.error(f"Could not record failure for archive queue item {item.id}: {e}")
