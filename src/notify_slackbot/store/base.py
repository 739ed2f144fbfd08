from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from notify_slackbot.models import NotificationRecord


class Store(ABC):
    @abstractmethod
    def init_db(self) -> None:
        """Create any required schema."""

    @abstractmethod
    def get(self, thread_id: str) -> NotificationRecord | None:
        """Return the open record for a feed item, otherwise None."""

    @abstractmethod
    def upsert(self, record: NotificationRecord) -> None:
        """Insert the record, or replace it without moving last_reminded_at backward."""

    @abstractmethod
    def touch_reminder(self, thread_id: str, now: datetime) -> bool:
        """Advance last_reminded_at; return False if the record no longer exists."""

    @abstractmethod
    def pop_by_message_id(self, message_id: str) -> NotificationRecord | None:
        """Delete the record correlated to message_id and return it, if any."""

    @abstractmethod
    def list_records(self) -> list[NotificationRecord]:
        """Return every open record, least recently reminded first."""

    def delete_by_message_id(self, message_id: str) -> bool:
        return self.pop_by_message_id(message_id) is not None
