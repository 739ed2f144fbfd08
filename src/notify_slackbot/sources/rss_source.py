from __future__ import annotations

import html as html_lib
import logging
import re
from datetime import datetime, timezone
from typing import Any

import feedparser
import requests

from notify_slackbot.config import ConfigError, SourceSettings
from notify_slackbot.errors import FetchError
from notify_slackbot.models import FeedItem
from notify_slackbot.utils.datetime_utils import parse_datetime_utc
from notify_slackbot.utils.url_utils import canonicalize_url, derive_external_id

from .base import FeedSource
from .registry import register_source

logger = logging.getLogger(__name__)

_MULTISPACE = re.compile(r"\s+")


class RssSource(FeedSource):
    """Every entry currently in an RSS/Atom feed counts as an open item."""

    headline = "New feed item"

    def __init__(self, settings: SourceSettings) -> None:
        super().__init__(source_id=settings.id)
        self.url = settings.url
        timeout_raw = settings.options.get("timeout_seconds", 30)
        self.timeout_seconds = int(timeout_raw) if timeout_raw is not None else 30

    def list_open_items(self) -> list[FeedItem]:
        headers = {"User-Agent": "notify-slackbot/0.1 (+https://github.com/)"}
        try:
            response = requests.get(self.url, timeout=self.timeout_seconds, headers=headers)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(f"feed {self.source_id} request failed: {exc}") from exc

        parsed = feedparser.parse(response.content)
        if getattr(parsed, "bozo", False):
            if not parsed.entries:
                raise FetchError(f"feed {self.source_id} is malformed: {parsed.bozo_exception}")
            logger.warning("Feed parsing bozo exception for %s: %s", self.url, parsed.bozo_exception)

        items = [self._entry_to_item(entry) for entry in parsed.entries]
        items.sort(
            key=lambda item: item.updated_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return items

    def mark_item_read(self, identity: str) -> None:
        logger.debug("Feed %s has no read state; nothing to clear for %s", self.source_id, identity)

    def _entry_to_item(self, entry: Any) -> FeedItem:
        title = _normalize_whitespace(html_lib.unescape(str(entry.get("title", "Untitled item"))))
        url = canonicalize_url(str(entry.get("link", "")).strip())

        raw_identifier = (
            str(entry.get("id", "")).strip()
            or str(entry.get("guid", "")).strip()
            or None
        )
        fallback_seed = url or f"{self.source_id}:{title}"

        updated_at = (
            parse_datetime_utc(entry.get("updated"))
            or parse_datetime_utc(entry.get("published"))
            or parse_datetime_utc(entry.get("updated_parsed"))
            or parse_datetime_utc(entry.get("published_parsed"))
        )

        return FeedItem(
            identity=derive_external_id(raw_identifier, fallback_seed),
            title=title,
            canonical_url=url,
            kind=_first_tag(entry),
            origin=self.source_id,
            updated_at=updated_at,
        )


def _first_tag(entry: Any) -> str | None:
    tags = entry.get("tags")
    if not isinstance(tags, list):
        return None
    for tag in tags:
        if isinstance(tag, dict):
            value = str(tag.get("term", "")).strip()
            if value:
                return value
    return None


def _normalize_whitespace(value: str) -> str:
    return _MULTISPACE.sub(" ", value).strip()


@register_source("rss")
def _build_rss_source(settings: SourceSettings) -> FeedSource:
    if not settings.url:
        raise ConfigError(f"rss source {settings.id} needs a url")
    return RssSource(settings)
