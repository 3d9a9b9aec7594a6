"""
Test configuration and fixtures.
Mocks psycopg2 and HTTP; an in-memory queue mirrors the SQL transition rules.
"""
import os
import tempfile
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

os.environ.setdefault("LOGS_DIR", tempfile.mkdtemp(prefix="mail-archiver-logs-"))
os.environ.pop("BETTERSTACK_SOURCE_TOKEN", None)

from mail_archiver.queue import backoff  # noqa: E402
from mail_archiver.queue.models import (  # noqa: E402
    QueueItem,
    PENDING,
    PROCESSING,
    COMPLETED,
    FAILED,
)


@pytest.fixture
def cursor():
    """A psycopg2 RealDictCursor stand-in."""
    cur = MagicMock()
    cur.fetchone.return_value = None
    cur.fetchall.return_value = []
    cur.rowcount = 0
    return cur


@pytest.fixture
def db(cursor):
    """A Database whose cursor() yields the shared mock cursor."""
    database = MagicMock()

    @contextmanager
    def _cursor():
        yield cursor

    database.cursor.side_effect = _cursor
    return database


class Clock:
    def __init__(self):
        self.now = datetime(2025, 1, 20, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class MemoryQueue:
    """In-memory stand-in for ArchiveQueue applying the same status rules."""

    def __init__(self, clock):
        self.clock = clock
        self.items = {}
        self.claims = {}
        self._tokens = 0

    def add(self, gmail_thread_id, user_id="user-1", max_attempts=3):
        item = QueueItem(
            id=f"item-{len(self.items) + 1}",
            user_id=user_id,
            thread_id=f"thread-{len(self.items) + 1}",
            gmail_thread_id=gmail_thread_id,
            max_attempts=max_attempts,
            created_at=self.clock(),
        )
        self.items[item.id] = item
        self.clock.advance(seconds=1)
        return item

    def _eligible(self, item):
        if item.status == PENDING:
            return True
        return (
            item.status == FAILED
            and item.attempts < item.max_attempts
            and item.next_retry_at is not None
            and item.next_retry_at <= self.clock()
        )

    def get_pending_items(self, limit=None):
        eligible = [i for i in self.items.values() if self._eligible(i)]
        eligible.sort(key=lambda i: i.created_at)
        return [replace(i) for i in eligible[:limit or 50]]

    def claim(self, item_id):
        item = self.items[item_id]
        if not self._eligible(item):
            return None
        self._tokens += 1
        token = f"claim-{self._tokens}"
        self.claims[item_id] = token
        item.status = PROCESSING
        item.processed_at = None
        item.next_retry_at = None
        return token

    def reenqueue(self, item_id):
        """Archive the thread again: back to pending with a fresh history."""
        item = self.items[item_id]
        self.claims.pop(item_id, None)
        item.status = PENDING
        item.attempts = 0
        item.error_message = None
        item.processed_at = None
        item.next_retry_at = None

    def update_status(self, item_id, status, error_message=None, claim_token=None):
        item = self.items[item_id]
        if claim_token is not None and (item.status != PROCESSING or self.claims.get(item_id) != claim_token):
            return None
        self.claims.pop(item_id, None)
        now = self.clock()
        item.status = status
        item.error_message = error_message
        if status == FAILED:
            item.attempts = min(item.attempts + 1, item.max_attempts)
            item.processed_at = now
            item.next_retry_at = backoff.next_retry_at(item.attempts, item.max_attempts, now)
        elif status == COMPLETED:
            item.processed_at = now
            item.next_retry_at = None
        return replace(item)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def memory_queue(clock):
    return MemoryQueue(clock)


@pytest.fixture
def gmail():
    return MagicMock()


@pytest.fixture
def tokens():
    manager = MagicMock()
    manager.get_access_token.return_value = "ya29.test-token"
    return manager
