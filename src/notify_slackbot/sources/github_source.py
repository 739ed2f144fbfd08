from __future__ import annotations

import logging
import os
from typing import Any

import requests

from notify_slackbot.config import ConfigError, SourceSettings
from notify_slackbot.errors import FetchError, MarkReadError
from notify_slackbot.models import FeedItem
from notify_slackbot.utils.datetime_utils import parse_datetime_utc
from notify_slackbot.utils.url_utils import github_web_url

from .base import FeedSource
from .registry import register_source

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
_USER_AGENT = "notify-slackbot/0.1 (+https://github.com/)"
_MAX_PAGES = 20


class GitHubNotificationsSource(FeedSource):
    """Unread notifications of the token's user, via the REST notifications API."""

    headline = "New GitHub notification"

    def __init__(
        self,
        settings: SourceSettings,
        token: str,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source_id=settings.id)
        self.api_url = (settings.url or DEFAULT_API_URL).rstrip("/")
        self.token = token
        timeout_raw = settings.options.get("timeout_seconds", 30)
        self.timeout_seconds = int(timeout_raw) if timeout_raw is not None else 30
        self.participating = bool(settings.options.get("participating", False))
        self.session = session or requests.Session()

    def list_open_items(self) -> list[FeedItem]:
        url: str | None = f"{self.api_url}/notifications"
        params: dict[str, Any] | None = {
            "all": "false",
            "participating": "true" if self.participating else "false",
            "per_page": 50,
        }

        items: list[FeedItem] = []
        for _ in range(_MAX_PAGES):
            try:
                response = self.session.get(
                    url,
                    params=params,
                    headers=self._headers(),
                    timeout=self.timeout_seconds,
                )
                response.raise_for_status()
                payload = response.json()
            except requests.RequestException as exc:
                raise FetchError(f"GitHub notifications request failed: {exc}") from exc
            except ValueError as exc:
                raise FetchError(f"GitHub notifications response is not valid JSON: {exc}") from exc

            if not isinstance(payload, list):
                raise FetchError(f"GitHub notifications response must be a list, got {type(payload).__name__}")

            for entry in payload:
                items.append(self._entry_to_item(entry))

            url = response.links.get("next", {}).get("url")
            if url is None:
                break
            # The next link already carries the query string.
            params = None
        else:
            logger.warning("Stopped after %d pages of GitHub notifications", _MAX_PAGES)

        return items

    def mark_item_read(self, identity: str) -> None:
        url = f"{self.api_url}/notifications/threads/{identity}"
        try:
            response = self.session.patch(url, headers=self._headers(), timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            raise MarkReadError(f"mark read request failed for thread {identity}: {exc}") from exc

        if response.status_code >= 400:
            raise MarkReadError(
                f"GitHub returned {response.status_code} marking thread {identity} read: {response.text}"
            )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": _USER_AGENT,
        }

    def _entry_to_item(self, entry: Any) -> FeedItem:
        if not isinstance(entry, dict):
            raise FetchError(f"GitHub notification entry must be an object, got {type(entry).__name__}")

        thread_id = str(entry.get("id") or "").strip()
        subject = entry.get("subject")
        if not thread_id or not isinstance(subject, dict):
            raise FetchError(f"GitHub notification entry missing id or subject: {entry!r}")

        repository = entry.get("repository") if isinstance(entry.get("repository"), dict) else {}
        fields = {
            "subject.title": subject.get("title"),
            "subject.url": subject.get("url"),
            "subject.type": subject.get("type"),
            "reason": entry.get("reason"),
            "updated_at": entry.get("updated_at"),
            "repository.full_name": repository.get("full_name"),
            "repository.html_url": repository.get("html_url"),
        }
        for name, value in fields.items():
            if value is not None and not isinstance(value, str):
                raise FetchError(
                    f"GitHub notification {thread_id} has a non-string {name}: {type(value).__name__}"
                )

        return FeedItem(
            identity=thread_id,
            title=(fields["subject.title"] or "Untitled notification").strip(),
            canonical_url=github_web_url(fields["subject.url"], fallback=fields["repository.html_url"] or ""),
            kind=fields["subject.type"],
            reason=fields["reason"],
            origin=fields["repository.full_name"],
            updated_at=parse_datetime_utc(fields["updated_at"]),
            raw=entry,
        )


@register_source("github")
def _build_github_source(settings: SourceSettings) -> FeedSource:
    env_var = str(settings.options.get("token_env_var", "GITHUB_TOKEN"))
    token = os.getenv(env_var, "").strip()
    if not token:
        raise ConfigError(f"Missing GitHub token in environment variable {env_var}")
    return GitHubNotificationsSource(settings, token=token)
