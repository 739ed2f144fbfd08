from __future__ import annotations

import contextlib
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, ContextManager

from notify_slackbot.errors import DeliveryError, StoreError
from notify_slackbot.models import Announcement, FeedItem, NotificationRecord
from notify_slackbot.notifiers import Notifier
from notify_slackbot.reminders import DEFAULT_REMINDER_THRESHOLD, should_remind
from notify_slackbot.store import Store
from notify_slackbot.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TickStats:
    fetched: int = 0
    announced: int = 0
    reminded: int = 0
    unchanged: int = 0
    failed: int = 0
    fetch_failed: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def new_correlation_token() -> str:
    return uuid.uuid4().hex


class Reconciler:
    """Merge one poll result into the record store.

    Store errors are not caught here; they surface to whoever drives the tick.
    """

    def __init__(
        self,
        *,
        store: Store,
        notifier: Notifier,
        reminder_threshold: timedelta = DEFAULT_REMINDER_THRESHOLD,
        lock: ContextManager | None = None,
        token_factory: Callable[[], str] = new_correlation_token,
        headline: str = "New GitHub notification",
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.reminder_threshold = reminder_threshold
        self.lock = lock if lock is not None else contextlib.nullcontext()
        self.token_factory = token_factory
        self.headline = headline

    def reconcile(self, items: Iterable[FeedItem], now: datetime | None = None) -> TickStats:
        stats = TickStats()
        now = now or utc_now()

        for item in items:
            stats.fetched += 1
            try:
                with self.lock:
                    record = self.store.get(item.identity)
                    if record is None:
                        self._announce(item, now, stats)
                    else:
                        self._maybe_remind(record, now, stats)
            except StoreError:
                raise
            except Exception as exc:  # noqa: BLE001
                message = f"failed to process {item.identity}: {exc}"
                logger.exception(message)
                stats.failed += 1
                stats.errors.append(message)

        return stats

    def _announce(self, item: FeedItem, now: datetime, stats: TickStats) -> None:
        message_id = self.token_factory()
        announcement = Announcement.from_item(item, headline=self.headline)

        try:
            receipt = self.notifier.announce(announcement, message_id)
        except DeliveryError as exc:
            message = f"failed to announce {item.identity}: {exc}"
            logger.warning(message)
            stats.failed += 1
            stats.errors.append(message)
            return

        self.store.upsert(
            NotificationRecord(
                thread_id=item.identity,
                message_id=message_id,
                title=item.title,
                url=item.canonical_url,
                last_reminded_at=now,
            )
        )
        stats.announced += 1
        logger.info("Announced %s (%s) as %s", item.identity, item.title, receipt.ts)

    def _maybe_remind(self, record: NotificationRecord, now: datetime, stats: TickStats) -> None:
        if not should_remind(record.last_reminded_at, now, self.reminder_threshold):
            stats.unchanged += 1
            logger.debug("No reminder due for %s", record.thread_id)
            return

        try:
            self.notifier.remind(record.title, record.message_id, url=record.url)
        except DeliveryError as exc:
            message = f"failed to remind {record.thread_id}: {exc}"
            logger.warning(message)
            stats.failed += 1
            stats.errors.append(message)
            return

        if self.store.touch_reminder(record.thread_id, now):
            stats.reminded += 1
            logger.info("Reminded %s (%s)", record.thread_id, record.title)
        else:
            logger.info("Record %s was acknowledged while reminding", record.thread_id)
