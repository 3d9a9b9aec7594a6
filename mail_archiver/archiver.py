"""Archive requests: mark threads archived locally and queue the Gmail sync."""
from typing import Optional

from mail_archiver import settings
from mail_archiver.db import parse_uuid
from mail_archiver.errors import NotFoundOrUnauthorized
from mail_archiver.logging_conf import logger
from mail_archiver.queue.archive_queue import ArchiveQueue
from mail_archiver.queue.models import ArchiveResult


def archive_thread(db, user_id, thread_id, should_sync_remote: bool = True,
                   queue: Optional[ArchiveQueue] = None) -> ArchiveResult:
    """
    Archive a thread for its owner and optionally queue the Gmail archive.

    The status change and the queue entry are written in one transaction. The
    local archived state never waits on Gmail and is not reverted if the sync
    later fails.

    Args:
        db: Database instance
        user_id: The calling user; must own the thread
        thread_id: Internal thread ID
        should_sync_remote: Also archive the conversation in Gmail

    Raises:
        NotFoundOrUnauthorized: thread missing or owned by someone else
    """
    # Malformed IDs name no thread the caller could own
    owner, thread = parse_uuid(user_id), parse_uuid(thread_id)
    if owner is None or thread is None:
        raise NotFoundOrUnauthorized(thread_id)
    user_id, thread_id = owner, thread

    queue = queue or ArchiveQueue(db)

    with db.cursor() as cur:
        gmail_thread_id = db.mark_thread_archived(cur, user_id, thread_id, source="user", from_ui=True)
        if gmail_thread_id is None:
            raise NotFoundOrUnauthorized(thread_id)

        if should_sync_remote:
            queue.enqueue(cur, user_id, thread_id, gmail_thread_id)

    logger.info(
        f"Archived thread {thread_id} for user {user_id} "
        f"(gmail sync {'queued' if should_sync_remote else 'skipped'})"
    )
    return ArchiveResult(thread_id=thread_id, remote_sync_queued=should_sync_remote)


def auto_archive_due_threads(db, limit: Optional[int] = None,
                             queue: Optional[ArchiveQueue] = None) -> int:
    """Archive newsletters whose auto_archive_after has passed. Returns count archived."""
    queue = queue or ArchiveQueue(db)

    with db.cursor() as cur:
        threads = db.archive_due_threads(cur, limit or settings.BATCH_SIZE)
        for thread in threads:
            queue.enqueue(cur, thread["user_id"], thread["id"], thread["gmail_thread_id"])

    if threads:
        logger.info(f"Auto-archived {len(threads)} newsletter threads")
    return len(threads)
