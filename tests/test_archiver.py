"""
Tests for mail_archiver/archiver.py: archive requests and newsletter auto-archive.
"""
import uuid
from unittest.mock import MagicMock

import pytest

from mail_archiver.archiver import archive_thread, auto_archive_due_threads
from mail_archiver.errors import NotFoundOrUnauthorized


USER_ID = uuid.UUID("6f1c2d3e-4a5b-4c6d-8e7f-0a1b2c3d4e5f")
THREAD_ID = uuid.UUID("0b7e9c1a-2d3f-4e5a-9b6c-7d8e9f0a1b2c")


class TestArchiveThread:

    def test_archives_and_queues_sync(self, db, cursor):
        db.mark_thread_archived.return_value = "gm-123"
        queue = MagicMock()

        result = archive_thread(db, USER_ID, THREAD_ID, queue=queue)

        db.mark_thread_archived.assert_called_once_with(cursor, USER_ID, THREAD_ID, source="user", from_ui=True)
        queue.enqueue.assert_called_once_with(cursor, USER_ID, THREAD_ID, "gm-123")
        assert result.thread_id == THREAD_ID
        assert result.remote_sync_queued is True
        assert result.to_dict() == {"success": True, "thread_id": str(THREAD_ID), "gmail_sync_queued": True}

    def test_string_ids_are_normalised(self, db, cursor):
        db.mark_thread_archived.return_value = "gm-123"

        archive_thread(db, str(USER_ID), str(THREAD_ID).upper(), queue=MagicMock())

        db.mark_thread_archived.assert_called_once_with(cursor, USER_ID, THREAD_ID, source="user", from_ui=True)

    def test_skips_queue_when_sync_disabled(self, db):
        db.mark_thread_archived.return_value = "gm-123"
        queue = MagicMock()

        result = archive_thread(db, USER_ID, THREAD_ID, should_sync_remote=False, queue=queue)

        queue.enqueue.assert_not_called()
        assert result.remote_sync_queued is False

    def test_unknown_or_foreign_thread_raises(self, db):
        db.mark_thread_archived.return_value = None
        queue = MagicMock()

        with pytest.raises(NotFoundOrUnauthorized):
            archive_thread(db, USER_ID, uuid.uuid4(), queue=queue)

        queue.enqueue.assert_not_called()

    @pytest.mark.parametrize("user_id, thread_id", [
        (USER_ID, "not-a-uuid"),
        (USER_ID, ""),
        (USER_ID, None),
        ("user-1", THREAD_ID),
    ])
    def test_malformed_ids_are_not_found_without_touching_db(self, db, user_id, thread_id):
        queue = MagicMock()

        with pytest.raises(NotFoundOrUnauthorized):
            archive_thread(db, user_id, thread_id, queue=queue)

        db.cursor.assert_not_called()
        db.mark_thread_archived.assert_not_called()
        queue.enqueue.assert_not_called()

    def test_enqueue_failure_propagates(self, db):
        db.mark_thread_archived.return_value = "gm-123"
        queue = MagicMock()
        queue.enqueue.side_effect = RuntimeError("unique violation")

        with pytest.raises(RuntimeError):
            archive_thread(db, USER_ID, THREAD_ID, queue=queue)


class TestAutoArchive:

    def test_enqueues_every_due_thread(self, db, cursor):
        due = [
            {"id": uuid.uuid4(), "user_id": "user-1", "gmail_thread_id": "gm-1"},
            {"id": uuid.uuid4(), "user_id": "user-2", "gmail_thread_id": "gm-2"},
        ]
        db.archive_due_threads.return_value = due
        queue = MagicMock()

        assert auto_archive_due_threads(db, limit=10, queue=queue) == 2

        db.archive_due_threads.assert_called_once_with(cursor, 10)
        assert queue.enqueue.call_count == 2
        queue.enqueue.assert_any_call(cursor, "user-2", due[1]["id"], "gm-2")

    def test_nothing_due(self, db):
        db.archive_due_threads.return_value = []
        queue = MagicMock()
        assert auto_archive_due_threads(db, queue=queue) == 0
        queue.enqueue.assert_not_called()
