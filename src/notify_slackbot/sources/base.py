from __future__ import annotations

from abc import ABC, abstractmethod

from notify_slackbot.models import FeedItem


class FeedSource(ABC):
    headline = "New notification"

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id

    @abstractmethod
    def list_open_items(self) -> list[FeedItem]:
        """Fetch the items that are currently open upstream."""

    @abstractmethod
    def mark_item_read(self, identity: str) -> None:
        """Clear an item upstream after it was acknowledged locally."""
