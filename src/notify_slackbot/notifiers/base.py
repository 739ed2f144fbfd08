from __future__ import annotations

from abc import ABC, abstractmethod

from notify_slackbot.models import Announcement, DeliveryReceipt, MessageRef, NotificationRecord


class Notifier(ABC):
    @abstractmethod
    def announce(self, announcement: Announcement, correlation_token: str) -> DeliveryReceipt:
        """Post a new item with a Done control carrying correlation_token."""

    @abstractmethod
    def remind(self, title: str, correlation_token: str, url: str = "") -> DeliveryReceipt:
        """Post a reminder for an item that is still open."""

    @abstractmethod
    def apply_terminal_ui(self, record: NotificationRecord, message_ref: MessageRef | None) -> None:
        """Replace the Done control on an acknowledged message with a completion marker."""

    @abstractmethod
    def confirm(self, message_ref: MessageRef | None) -> None:
        """Confirm a repeated acknowledgment without changing the message."""
