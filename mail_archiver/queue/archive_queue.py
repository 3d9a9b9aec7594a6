"""PostgreSQL-backed queue of Gmail archive requests."""
from typing import List, Optional

from mail_archiver import settings
from mail_archiver.db import parse_uuid
from mail_archiver.logging_conf import logger
from mail_archiver.queue import backoff
from mail_archiver.queue.models import (
    QueueItem,
    QueueStats,
    STATUSES,
    COMPLETED,
    FAILED,
)

# Selection shared by dequeue and claim
ELIGIBLE = """
    (status = 'pending'
     OR (status = 'failed' AND attempts < max_attempts AND next_retry_at <= NOW()))
"""


class ArchiveQueue:
    """Durable queue with at-least-once delivery and bounded retries."""

    def __init__(self, db, max_attempts: Optional[int] = None):
        self.db = db
        self.max_attempts = max_attempts or settings.MAX_ATTEMPTS

    def enqueue(self, cur, user_id, thread_id, gmail_thread_id: str):
        """Queue a thread for archiving, restarting its history if it was already queued.

        Runs on the caller's cursor so it commits or rolls back with the
        caller's transaction. Returns the queue item ID.
        """
        cur.execute("""
            INSERT INTO gmail_archive_queue (
                user_id, thread_id, gmail_thread_id, status, max_attempts
            ) VALUES (%s, %s, %s, 'pending', %s)
            ON CONFLICT (thread_id) DO UPDATE
            SET user_id = EXCLUDED.user_id,
                gmail_thread_id = EXCLUDED.gmail_thread_id,
                max_attempts = EXCLUDED.max_attempts,
                status = 'pending',
                attempts = 0,
                error_message = NULL,
                next_retry_at = NULL,
                processed_at = NULL,
                claimed_at = NULL,
                claim_token = NULL
            RETURNING id
        """, (user_id, thread_id, gmail_thread_id, self.max_attempts))
        item_id = cur.fetchone()["id"]
        logger.info(f"Queued Gmail archive for thread {thread_id} (item {item_id})")
        return item_id

    def get_pending_items(self, limit: Optional[int] = None) -> List[QueueItem]:
        """Fetch pending items and failed items due for retry, oldest first."""
        with self.db.cursor() as cur:
            cur.execute(f"""
                SELECT id, user_id, thread_id, gmail_thread_id, status,
                       attempts, max_attempts, error_message,
                       created_at, processed_at, next_retry_at
                FROM gmail_archive_queue
                WHERE {ELIGIBLE}
                ORDER BY created_at ASC
                LIMIT %s
            """, (limit or settings.BATCH_SIZE,))
            return [QueueItem.from_row(row) for row in cur.fetchall()]

    def claim(self, item_id) -> Optional[str]:
        """Mark an item as processing (atomic claim).

        Returns the claim token the outcome must be recorded with, or None when
        another worker claimed it first or it is no longer eligible.
        """
        with self.db.cursor() as cur:
            cur.execute(f"""
                UPDATE gmail_archive_queue
                SET status = 'processing',
                    claim_token = gen_random_uuid(),
                    claimed_at = NOW(),
                    processed_at = NULL,
                    next_retry_at = NULL
                WHERE id = %s AND {ELIGIBLE}
                RETURNING claim_token
            """, (item_id,))
            row = cur.fetchone()
            return str(row["claim_token"]) if row else None

    def update_status(self, item_id, status: str, error_message: Optional[str] = None,
                      claim_token: Optional[str] = None) -> Optional[QueueItem]:
        """Record an outcome for a queue item.

        ``failed`` counts an attempt and schedules the next retry with
        exponential backoff until ``max_attempts`` is reached, after which the
        item stays failed with no retry time.

        With ``claim_token`` the write only lands while the item is still in
        'processing' under that claim. Returns None when nothing was updated,
        e.g. the item was re-queued or reclaimed in the meantime.
        """
        if status not in STATUSES:
            raise ValueError(f"Unknown queue status: {status}")

        where = "id = %s"
        params = [item_id]
        if claim_token is not None:
            where += " AND status = 'processing' AND claim_token = %s"
            params.append(claim_token)

        with self.db.cursor() as cur:
            if status == FAILED:
                cur.execute(f"""
                    UPDATE gmail_archive_queue
                    SET status = 'failed',
                        error_message = %s,
                        attempts = LEAST(attempts + 1, max_attempts),
                        processed_at = NOW(),
                        claimed_at = NULL,
                        claim_token = NULL,
                        next_retry_at = NULL
                    WHERE {where}
                    RETURNING *
                """, (error_message, *params))
                row = cur.fetchone()
                if row is None:
                    return None

                # Same transaction, so the row is still ours
                minutes = backoff.retry_delay_minutes(row["attempts"], row["max_attempts"])
                if minutes is not None:
                    cur.execute("""
                        UPDATE gmail_archive_queue
                        SET next_retry_at = NOW() + make_interval(mins => %s)
                        WHERE id = %s
                        RETURNING *
                    """, (minutes, item_id))
                    row = cur.fetchone()
            elif status == COMPLETED:
                cur.execute(f"""
                    UPDATE gmail_archive_queue
                    SET status = 'completed',
                        error_message = %s,
                        processed_at = NOW(),
                        claimed_at = NULL,
                        claim_token = NULL,
                        next_retry_at = NULL
                    WHERE {where}
                    RETURNING *
                """, (error_message, *params))
                row = cur.fetchone()
            else:
                cur.execute(f"""
                    UPDATE gmail_archive_queue
                    SET status = %s,
                        error_message = %s,
                        claimed_at = CASE WHEN %s = 'processing' THEN NOW() ELSE NULL END,
                        claim_token = NULL,
                        processed_at = NULL,
                        next_retry_at = NULL
                    WHERE {where}
                    RETURNING *
                """, (status, error_message, status, *params))
                row = cur.fetchone()

        return QueueItem.from_row(row) if row else None

    def cleanup(self, retention_days: Optional[int] = None) -> int:
        """Delete completed and exhausted items processed more than ``retention_days`` ago."""
        days = retention_days if retention_days is not None else settings.RETENTION_DAYS
        with self.db.cursor() as cur:
            cur.execute("""
                DELETE FROM gmail_archive_queue
                WHERE status = 'completed'
                  AND processed_at < NOW() - make_interval(days => %s)
            """, (days,))
            deleted = cur.rowcount

            cur.execute("""
                DELETE FROM gmail_archive_queue
                WHERE status = 'failed'
                  AND attempts >= max_attempts
                  AND processed_at < NOW() - make_interval(days => %s)
            """, (days,))
            deleted += cur.rowcount

        logger.info(f"Queue cleanup removed {deleted} items older than {days} days")
        return deleted

    def reset_stuck_items(self, minutes: Optional[int] = None) -> int:
        """Return items stuck in 'processing' (e.g. after a crash) to 'pending'."""
        minutes = minutes if minutes is not None else settings.STUCK_PROCESSING_MINUTES
        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE gmail_archive_queue
                SET status = 'pending', claimed_at = NULL, claim_token = NULL
                WHERE status = 'processing'
                  AND claimed_at < NOW() - make_interval(mins => %s)
                RETURNING id
            """, (minutes,))
            count = len(cur.fetchall())
        if count > 0:
            logger.warning(f"Reset {count} stuck archive queue items")
        return count

    def get_stats(self) -> QueueStats:
        """Counts per status plus retry and exhaustion totals."""
        stats = QueueStats()
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT status, COUNT(*) AS count
                FROM gmail_archive_queue
                GROUP BY status
            """)
            for row in cur.fetchall():
                stats.by_status[row["status"]] = row["count"]

            cur.execute("""
                SELECT
                    COUNT(*) FILTER (
                        WHERE status = 'failed' AND attempts < max_attempts
                    ) AS retry_scheduled,
                    COUNT(*) FILTER (
                        WHERE status = 'failed' AND attempts >= max_attempts
                    ) AS exhausted,
                    MIN(created_at) FILTER (WHERE status = 'pending') AS oldest_pending_at
                FROM gmail_archive_queue
            """)
            row = cur.fetchone()
            stats.retry_scheduled = row["retry_scheduled"]
            stats.exhausted = row["exhausted"]
            stats.oldest_pending_at = row["oldest_pending_at"]
        return stats

    def get_item_for_thread(self, user_id, thread_id) -> Optional[QueueItem]:
        """Gmail sync status of one thread, visible only to its owner."""
        user_id, thread_id = parse_uuid(user_id), parse_uuid(thread_id)
        if user_id is None or thread_id is None:
            return None
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT id, user_id, thread_id, gmail_thread_id, status,
                       attempts, max_attempts, error_message,
                       created_at, processed_at, next_retry_at
                FROM gmail_archive_queue
                WHERE thread_id = %s AND user_id = %s
            """, (thread_id, user_id))
            row = cur.fetchone()
            return QueueItem.from_row(row) if row else None
