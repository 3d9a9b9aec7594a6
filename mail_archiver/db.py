"""Database connection and thread/token operations."""
import uuid
from pathlib import Path
from typing import List, Optional, Dict, Any
from contextlib import contextmanager

import psycopg2
from psycopg2.extras import RealDictCursor, register_uuid

from mail_archiver import settings
from mail_archiver.logging_conf import logger

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

register_uuid()


def parse_uuid(value) -> Optional[uuid.UUID]:
    """Coerce an ID to a UUID, or None when it is not one."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class Database:
    """Database connection plus the thread and OAuth token queries."""

    def __init__(self, dsn: Optional[str] = None):
        self.dsn = dsn or settings.DATABASE_URL
        self._conn = None

    @property
    def conn(self):
        """Get or create database connection."""
        if self._conn is None or self._conn.closed:
            self._conn = psycopg2.connect(self.dsn)
        return self._conn

    def close(self):
        """Close database connection."""
        if self._conn and not self._conn.closed:
            self._conn.close()
            self._conn = None

    @contextmanager
    def cursor(self):
        """Context manager for cursor with auto-commit/rollback.

        Everything executed on the yielded cursor is one transaction.
        """
        cur = self.conn.cursor(cursor_factory=RealDictCursor)
        try:
            yield cur
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()

    def apply_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self.cursor() as cur:
            cur.execute(SCHEMA_PATH.read_text())
        logger.info("Schema applied")

    # -- threads -----------------------------------------------------------

    def mark_thread_archived(self, cur, user_id, thread_id, source: str, from_ui: bool) -> Optional[str]:
        """Archive a thread owned by ``user_id`` on the caller's cursor.

        Returns the Gmail thread ID, or None when no such thread belongs to the user.
        """
        cur.execute("""
            UPDATE mail_threads
            SET status = 'archived',
                archived_at = NOW(),
                archive_source = %s,
                archive_requested_from_ui = %s
            WHERE id = %s AND user_id = %s
            RETURNING gmail_thread_id
        """, (source, from_ui, thread_id, user_id))
        row = cur.fetchone()
        return row["gmail_thread_id"] if row else None

    def archive_due_threads(self, cur, limit: int) -> List[Dict[str, Any]]:
        """Archive active threads whose auto-archive time has passed."""
        cur.execute("""
            UPDATE mail_threads
            SET status = 'archived',
                archived_at = NOW(),
                archive_source = 'auto_newsletter',
                archive_requested_from_ui = false
            WHERE id IN (
                SELECT id FROM mail_threads
                WHERE status = 'active'
                  AND auto_archive_after IS NOT NULL
                  AND auto_archive_after <= NOW()
                ORDER BY auto_archive_after ASC
                LIMIT %s
                FOR UPDATE SKIP LOCKED
            )
            RETURNING id, user_id, gmail_thread_id
        """, (limit,))
        return cur.fetchall()

    def get_thread(self, user_id, thread_id) -> Optional[Dict[str, Any]]:
        """Fetch a thread's status fields for its owner."""
        with self.cursor() as cur:
            cur.execute("""
                SELECT id, user_id, gmail_thread_id, status, archived_at,
                       archive_source, archive_requested_from_ui
                FROM mail_threads
                WHERE id = %s AND user_id = %s
            """, (thread_id, user_id))
            return cur.fetchone()

    # -- oauth tokens ------------------------------------------------------

    def get_oauth_token(self, user_id, provider: str = "gmail") -> Optional[Dict[str, Any]]:
        """Fetch and decrypt a user's OAuth token."""
        with self.cursor() as cur:
            cur.execute("""
                SELECT user_id,
                       pgp_sym_decrypt(refresh_token_encrypted, %s) AS refresh_token,
                       pgp_sym_decrypt(access_token_encrypted, %s) AS access_token,
                       expires_at
                FROM oauth_tokens
                WHERE user_id = %s AND provider = %s
            """, (settings.TOKEN_ENCRYPTION_KEY, settings.TOKEN_ENCRYPTION_KEY, user_id, provider))
            return cur.fetchone()

    def update_access_token(self, user_id, access_token: str, expires_at: int, provider: str = "gmail") -> None:
        """Store a refreshed access token (expires_at in epoch milliseconds)."""
        with self.cursor() as cur:
            cur.execute("""
                UPDATE oauth_tokens
                SET access_token_encrypted = pgp_sym_encrypt(%s, %s),
                    expires_at = %s,
                    updated_at = NOW()
                WHERE user_id = %s AND provider = %s
            """, (access_token, settings.TOKEN_ENCRYPTION_KEY, expires_at, user_id, provider))
