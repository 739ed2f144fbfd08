from __future__ import annotations

import contextlib
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import ContextManager

from notify_slackbot.errors import DeliveryError, MarkReadError, StoreError
from notify_slackbot.models import AcknowledgmentEvent, NotificationRecord
from notify_slackbot.notifiers import Notifier
from notify_slackbot.sources import FeedSource
from notify_slackbot.store import Store

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AckOutcome:
    correlation_token: str
    removed: NotificationRecord | None = None
    marked_read: bool = False
    ui_updated: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def duplicate(self) -> bool:
        return self.removed is None


class AcknowledgmentHandler:
    """Close the record behind a Done click.

    Only the local deletion is authoritative. Upstream "mark read" and the
    chat update are attempted once and their failures are logged, never
    retried or rolled back.
    """

    def __init__(
        self,
        *,
        store: Store,
        source: FeedSource,
        notifier: Notifier,
        lock: ContextManager | None = None,
    ) -> None:
        self.store = store
        self.source = source
        self.notifier = notifier
        self.lock = lock if lock is not None else contextlib.nullcontext()

    def handle(self, event: AcknowledgmentEvent) -> AckOutcome:
        outcome = AckOutcome(correlation_token=event.correlation_token)

        with self.lock:
            outcome.removed = self.store.pop_by_message_id(event.correlation_token)

        if outcome.removed is None:
            logger.info("Duplicate acknowledgment for %s", event.correlation_token)
            try:
                self.notifier.confirm(event.message_ref)
                outcome.ui_updated = True
            except DeliveryError as exc:
                self._record(outcome, f"failed to confirm duplicate {event.correlation_token}: {exc}")
            return outcome

        record = outcome.removed
        logger.info(
            "Acknowledged %s (%s)%s",
            record.thread_id,
            record.title,
            f" by {event.user}" if event.user else "",
        )

        try:
            self.source.mark_item_read(record.thread_id)
            outcome.marked_read = True
        except MarkReadError as exc:
            self._record(outcome, f"failed to mark {record.thread_id} read upstream: {exc}")

        try:
            self.notifier.apply_terminal_ui(record, event.message_ref)
            outcome.ui_updated = True
        except DeliveryError as exc:
            self._record(outcome, f"failed to update message for {record.thread_id}: {exc}")

        return outcome

    def _record(self, outcome: AckOutcome, message: str) -> None:
        logger.warning(message)
        outcome.errors.append(message)


class AcknowledgmentDispatcher:
    """Single consumer of acknowledgment events produced by the interaction receiver."""

    def __init__(self, handler: AcknowledgmentHandler, poll_seconds: float = 0.5) -> None:
        self.handler = handler
        self.poll_seconds = poll_seconds
        self.failure: StoreError | None = None
        self._events: queue.Queue[AcknowledgmentEvent] = queue.Queue()

    @property
    def pending(self) -> int:
        return self._events.qsize()

    def submit(self, event: AcknowledgmentEvent) -> None:
        self._events.put_nowait(event)

    def run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                event = self._events.get(timeout=self.poll_seconds)
            except queue.Empty:
                continue

            try:
                self.handler.handle(event)
            except StoreError as exc:
                logger.critical("Record store failed while acknowledging %s: %s", event.correlation_token, exc)
                self.failure = exc
                stop_event.set()
            except Exception:  # noqa: BLE001
                logger.exception("Failed to handle acknowledgment %s", event.correlation_token)
            finally:
                self._events.task_done()

        if self.pending:
            logger.info("Dispatcher stopped with %d unprocessed acknowledgments", self.pending)
