from __future__ import annotations

from datetime import datetime, timedelta

from notify_slackbot.utils.datetime_utils import to_utc

DEFAULT_REMINDER_THRESHOLD = timedelta(hours=2)


def should_remind(
    last_reminded_at: datetime,
    now: datetime,
    threshold: timedelta = DEFAULT_REMINDER_THRESHOLD,
) -> bool:
    """Return True once ``threshold`` has elapsed since the last announcement or reminder.

    Naive datetimes are treated as UTC. There is no backoff: an overdue item
    is reminded on every poll tick at which it is still overdue, and each
    successful reminder resets the clock.
    """
    return to_utc(now) - to_utc(last_reminded_at) >= threshold
