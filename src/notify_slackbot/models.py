from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

_KIND_LABELS = {
    "PullRequest": "Pull request",
    "Issue": "Issue",
    "Commit": "Commit",
    "Release": "Release",
    "Discussion": "Discussion",
    "CheckSuite": "Check suite",
    "RepositoryVulnerabilityAlert": "Vulnerability alert",
}


@dataclass(slots=True)
class FeedItem:
    identity: str
    title: str
    canonical_url: str
    kind: str | None = None
    reason: str | None = None
    origin: str | None = None
    updated_at: datetime | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class NotificationRecord:
    thread_id: str
    message_id: str
    title: str
    url: str
    last_reminded_at: datetime


@dataclass(slots=True, frozen=True)
class MessageRef:
    channel: str
    ts: str


@dataclass(slots=True, frozen=True)
class DeliveryReceipt:
    channel: str
    ts: str


@dataclass(slots=True, frozen=True)
class AcknowledgmentEvent:
    correlation_token: str
    message_ref: MessageRef | None = None
    user: str | None = None


@dataclass(slots=True)
class Announcement:
    title: str
    url: str
    headline: str
    details: list[str] = field(default_factory=list)

    @classmethod
    def from_item(cls, item: FeedItem, headline: str = "New GitHub notification") -> Announcement:
        classification = [
            part
            for part in (
                _KIND_LABELS.get(item.kind or "", item.kind),
                (item.reason or "").replace("_", " ") or None,
                item.origin,
            )
            if part
        ]
        details = [" · ".join(classification)] if classification else []
        return cls(
            title=item.title,
            url=item.canonical_url,
            headline=headline,
            details=details,
        )
