from __future__ import annotations

from datetime import datetime, timezone

import pytest

from notify_slackbot.errors import DeliveryError, FetchError, MarkReadError
from notify_slackbot.models import (
    Announcement,
    DeliveryReceipt,
    FeedItem,
    MessageRef,
    NotificationRecord,
)
from notify_slackbot.notifiers.base import Notifier
from notify_slackbot.sources.base import FeedSource
from notify_slackbot.store.sqlite_store import SQLiteStore

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.announced: list[tuple[Announcement, str]] = []
        self.reminded: list[tuple[str, str, str]] = []
        self.terminal: list[tuple[NotificationRecord, MessageRef | None]] = []
        self.confirmed: list[MessageRef | None] = []
        self.fail_announce = False
        self.fail_remind = False
        self.fail_terminal = False
        self.on_remind = None

    def announce(self, announcement: Announcement, correlation_token: str) -> DeliveryReceipt:
        if self.fail_announce:
            raise DeliveryError("channel_not_found")
        self.announced.append((announcement, correlation_token))
        return DeliveryReceipt(channel="C1", ts=f"1700000000.{len(self.announced):06d}")

    def remind(self, title: str, correlation_token: str, url: str = "") -> DeliveryReceipt:
        if self.fail_remind:
            raise DeliveryError("rate_limited")
        if self.on_remind is not None:
            self.on_remind(correlation_token)
        self.reminded.append((title, correlation_token, url))
        return DeliveryReceipt(channel="C1", ts="1700000001.000001")

    def apply_terminal_ui(self, record: NotificationRecord, message_ref: MessageRef | None) -> None:
        if self.fail_terminal:
            raise DeliveryError("message_not_found")
        self.terminal.append((record, message_ref))

    def confirm(self, message_ref: MessageRef | None) -> None:
        self.confirmed.append(message_ref)


class StaticFeedSource(FeedSource):
    def __init__(self, items: list[FeedItem] | None = None) -> None:
        super().__init__(source_id="test_feed")
        self.items = list(items or [])
        self.marked_read: list[str] = []
        self.fail_fetch = False
        self.fail_mark_read = False
        self.fetch_calls = 0

    def list_open_items(self) -> list[FeedItem]:
        self.fetch_calls += 1
        if self.fail_fetch:
            raise FetchError("503 Service Unavailable")
        return list(self.items)

    def mark_item_read(self, identity: str) -> None:
        if self.fail_mark_read:
            raise MarkReadError("401 Bad credentials")
        self.marked_read.append(identity)


def feed_item(identity: str = "t1", title: str = "Fix bug", **overrides: object) -> FeedItem:
    item = FeedItem(
        identity=identity,
        title=title,
        canonical_url=f"https://github.com/octo/repo/issues/{identity}",
        kind="Issue",
        reason="assign",
        origin="octo/repo",
    )
    for key, value in overrides.items():
        setattr(item, key, value)
    return item


@pytest.fixture
def store(tmp_path) -> SQLiteStore:
    sqlite_store = SQLiteStore(str(tmp_path / "state.sqlite"))
    sqlite_store.init_db()
    return sqlite_store


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def source() -> StaticFeedSource:
    return StaticFeedSource([feed_item()])
