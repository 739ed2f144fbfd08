from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import datetime
from pathlib import Path

from notify_slackbot.errors import StoreError
from notify_slackbot.models import NotificationRecord
from notify_slackbot.utils.datetime_utils import format_iso, parse_datetime_utc

from .base import Store

logger = logging.getLogger(__name__)

_COLUMNS = "thread_id, message_id, title, url, last_reminded_at"


class SQLiteStore(Store):
    def __init__(self, db_path: str, timeout_seconds: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.timeout_seconds = timeout_seconds

    def init_db(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"cannot create database directory {self.db_path.parent}: {exc}") from exc

        with closing(self._connect()) as connection:
            try:
                connection.execute("PRAGMA journal_mode=WAL")
            except sqlite3.Error as exc:
                raise StoreError(f"cannot enable WAL on {self.db_path}: {exc}") from exc

        with self._transaction() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    thread_id TEXT PRIMARY KEY,
                    message_id TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    url TEXT NOT NULL,
                    last_reminded_at TEXT NOT NULL
                )
                """
            )

    def get(self, thread_id: str) -> NotificationRecord | None:
        with self._transaction() as connection:
            row = connection.execute(
                f"SELECT {_COLUMNS} FROM notifications WHERE thread_id = ?",
                (thread_id,),
            ).fetchone()

        if row is None:
            return None
        return _row_to_record(row)

    def upsert(self, record: NotificationRecord) -> None:
        with self._transaction() as connection:
            connection.execute(
                f"""
                INSERT INTO notifications ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(thread_id) DO UPDATE SET
                    message_id = excluded.message_id,
                    title = excluded.title,
                    url = excluded.url,
                    last_reminded_at = MAX(notifications.last_reminded_at, excluded.last_reminded_at)
                """,
                (
                    record.thread_id,
                    record.message_id,
                    record.title,
                    record.url,
                    format_iso(record.last_reminded_at),
                ),
            )

    def touch_reminder(self, thread_id: str, now: datetime) -> bool:
        with self._transaction() as connection:
            exists = connection.execute(
                "SELECT 1 FROM notifications WHERE thread_id = ?",
                (thread_id,),
            ).fetchone()
            if exists is None:
                return False

            connection.execute(
                """
                UPDATE notifications
                SET last_reminded_at = ?
                WHERE thread_id = ? AND last_reminded_at < ?
                """,
                (format_iso(now), thread_id, format_iso(now)),
            )
        return True

    def pop_by_message_id(self, message_id: str) -> NotificationRecord | None:
        with self._transaction() as connection:
            row = connection.execute(
                f"SELECT {_COLUMNS} FROM notifications WHERE message_id = ?",
                (message_id,),
            ).fetchone()
            if row is None:
                return None

            connection.execute(
                "DELETE FROM notifications WHERE message_id = ?",
                (message_id,),
            )
        return _row_to_record(row)

    def list_records(self) -> list[NotificationRecord]:
        with self._transaction() as connection:
            rows = connection.execute(
                f"SELECT {_COLUMNS} FROM notifications ORDER BY last_reminded_at, thread_id"
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def _connect(self) -> sqlite3.Connection:
        try:
            connection = sqlite3.connect(
                self.db_path,
                timeout=self.timeout_seconds,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"cannot open {self.db_path}: {exc}") from exc
        connection.row_factory = sqlite3.Row
        return connection

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        # BEGIN IMMEDIATE takes the write lock up front so read-then-write
        # sequences cannot interleave with another connection's writes.
        connection = self._connect()
        try:
            connection.execute("BEGIN IMMEDIATE")
            yield connection
            connection.execute("COMMIT")
        except sqlite3.Error as exc:
            _rollback(connection)
            raise StoreError(f"sqlite operation failed on {self.db_path}: {exc}") from exc
        except BaseException:
            _rollback(connection)
            raise
        finally:
            connection.close()


def _rollback(connection: sqlite3.Connection) -> None:
    if not connection.in_transaction:
        return
    try:
        connection.execute("ROLLBACK")
    except sqlite3.Error as exc:
        logger.warning("Rollback failed: %s", exc)


def _row_to_record(row: sqlite3.Row) -> NotificationRecord:
    last_reminded_at = parse_datetime_utc(row["last_reminded_at"])
    if last_reminded_at is None:
        raise StoreError(
            f"record {row['thread_id']} has unreadable last_reminded_at {row['last_reminded_at']!r}"
        )
    return NotificationRecord(
        thread_id=row["thread_id"],
        message_id=row["message_id"],
        title=row["title"],
        url=row["url"],
        last_reminded_at=last_reminded_at,
    )
