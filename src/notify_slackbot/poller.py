from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta

from notify_slackbot.errors import FetchError, StoreError
from notify_slackbot.reconciler import Reconciler, TickStats
from notify_slackbot.sources import FeedSource

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = timedelta(minutes=5)


class FeedPoller:
    def __init__(
        self,
        *,
        source: FeedSource,
        reconciler: Reconciler,
        interval: timedelta = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.source = source
        self.reconciler = reconciler
        self.interval = interval

    def tick(self, now: datetime | None = None) -> TickStats:
        try:
            items = self.source.list_open_items()
        except FetchError as exc:
            message = f"source {self.source.source_id} fetch failed: {exc}"
            logger.error(message)
            return TickStats(fetch_failed=True, errors=[message])
        except StoreError:
            raise
        except Exception as exc:  # noqa: BLE001
            message = f"source {self.source.source_id} fetch failed unexpectedly: {exc}"
            logger.exception(message)
            return TickStats(fetch_failed=True, errors=[message])

        logger.info("Source %s returned %d open items", self.source.source_id, len(items))
        return self.reconciler.reconcile(items, now=now)

    def run_forever(self, stop_event: threading.Event) -> None:
        """Run ticks back to back, one at a time, until stop_event is set.

        A tick that overruns the interval delays the next one instead of
        overlapping it.
        """
        interval_seconds = self.interval.total_seconds()
        while not stop_event.is_set():
            started = time.monotonic()
            stats = self.tick()
            logger.info(
                "Tick complete | fetched=%d announced=%d reminded=%d unchanged=%d failed=%d fetch_failed=%s",
                stats.fetched,
                stats.announced,
                stats.reminded,
                stats.unchanged,
                stats.failed,
                stats.fetch_failed,
            )

            elapsed = time.monotonic() - started
            if elapsed > interval_seconds:
                logger.warning(
                    "Tick took %.1fs, longer than the %.0fs interval",
                    elapsed,
                    interval_seconds,
                )
            stop_event.wait(max(0.0, interval_seconds - elapsed))
