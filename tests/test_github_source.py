from __future__ import annotations

import logging
from typing import Any

import pytest
import requests

from notify_slackbot.config import ConfigError, SourceSettings
from notify_slackbot.errors import FetchError, MarkReadError
from notify_slackbot.sources import create_source
from notify_slackbot.sources.github_source import _MAX_PAGES, GitHubNotificationsSource


class _DummyResponse:
    def __init__(
        self,
        payload: Any = None,
        status_code: int = 200,
        links: dict[str, dict[str, str]] | None = None,
        text: str = "",
    ) -> None:
        self._payload = payload
        self.status_code = status_code
        self.links = links or {}
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeSession:
    def __init__(self, responses: list[_DummyResponse]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def get(self, url: str, **kwargs: Any) -> _DummyResponse:
        self.calls.append(("GET", url, kwargs))
        return self.responses.pop(0)

    def patch(self, url: str, **kwargs: Any) -> _DummyResponse:
        self.calls.append(("PATCH", url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _notification(thread_id: str, title: str, api_url: str | None, kind: str = "PullRequest") -> dict:
    return {
        "id": thread_id,
        "reason": "review_requested",
        "updated_at": "2026-01-05T09:00:00Z",
        "subject": {"title": title, "url": api_url, "type": kind},
        "repository": {"full_name": "octo/repo", "html_url": "https://github.com/octo/repo"},
    }


def _source(session: _FakeSession) -> GitHubNotificationsSource:
    return GitHubNotificationsSource(
        SourceSettings(id="github", type="github", url="https://api.github.com", options={"timeout_seconds": 7}),
        token="ghp_test",
        session=session,
    )


def test_lists_notifications_across_pages() -> None:
    session = _FakeSession(
        [
            _DummyResponse(
                [_notification("1", "Add feature", "https://api.github.com/repos/octo/repo/pulls/5")],
                links={"next": {"url": "https://api.github.com/notifications?page=2"}},
            ),
            _DummyResponse(
                [_notification("2", "v1.0", "https://api.github.com/repos/octo/repo/releases/99", kind="Release")]
            ),
        ]
    )

    items = _source(session).list_open_items()

    assert [item.identity for item in items] == ["1", "2"]
    assert items[0].title == "Add feature"
    assert items[0].canonical_url == "https://github.com/octo/repo/pull/5"
    assert items[0].kind == "PullRequest"
    assert items[0].reason == "review_requested"
    assert items[0].origin == "octo/repo"
    assert items[0].updated_at is not None
    assert items[1].canonical_url == "https://github.com/octo/repo"

    first_call, second_call = session.calls
    assert first_call[2]["params"]["all"] == "false"
    assert first_call[2]["headers"]["Authorization"] == "Bearer ghp_test"
    assert first_call[2]["timeout"] == 7
    assert second_call[1] == "https://api.github.com/notifications?page=2"
    assert second_call[2]["params"] is None


def test_subject_without_url_falls_back_to_repository() -> None:
    session = _FakeSession([_DummyResponse([_notification("3", "CI failed", None, kind="CheckSuite")])])

    items = _source(session).list_open_items()

    assert items[0].canonical_url == "https://github.com/octo/repo"


@pytest.mark.parametrize(
    "response",
    [
        _DummyResponse(status_code=401),
        _DummyResponse(ValueError("Expecting value")),
        _DummyResponse({"message": "Bad credentials"}),
        _DummyResponse([{"id": "4"}]),
    ],
)
def test_unusable_responses_raise_fetch_error(response: _DummyResponse) -> None:
    with pytest.raises(FetchError):
        _source(_FakeSession([response])).list_open_items()


def test_network_errors_raise_fetch_error() -> None:
    class _TimeoutSession(_FakeSession):
        def get(self, url: str, **kwargs: Any) -> _DummyResponse:
            raise requests.Timeout("read timed out")

    with pytest.raises(FetchError):
        _source(_TimeoutSession([])).list_open_items()


@pytest.mark.parametrize(
    "mutate",
    [
        lambda entry: entry["subject"].update(url=123),
        lambda entry: entry["subject"].update(type=["PullRequest"]),
        lambda entry: entry["subject"].update(title={"text": "Fix"}),
        lambda entry: entry.update(reason=5),
        lambda entry: entry.update(updated_at=1767603600),
        lambda entry: entry["repository"].update(full_name=None, html_url=42),
        lambda entry: entry["repository"].update(full_name=7),
    ],
    ids=["subject-url", "subject-type", "subject-title", "reason", "updated-at", "html-url", "full-name"],
)
def test_entries_with_non_string_fields_raise_fetch_error(mutate) -> None:
    entry = _notification("5", "Fix", "https://api.github.com/repos/octo/repo/issues/5")
    mutate(entry)

    with pytest.raises(FetchError, match="non-string"):
        _source(_FakeSession([_DummyResponse([entry])])).list_open_items()


def test_last_page_does_not_warn_about_the_page_cap(caplog: pytest.LogCaptureFixture) -> None:
    pages = [
        _DummyResponse(
            [_notification(str(page), f"Item {page}", None)],
            links={"next": {"url": f"https://api.github.com/notifications?page={page + 1}"}},
        )
        for page in range(1, _MAX_PAGES)
    ]
    pages.append(_DummyResponse([_notification(str(_MAX_PAGES), "Last", None)]))

    with caplog.at_level(logging.WARNING, logger="notify_slackbot.sources.github_source"):
        items = _source(_FakeSession(pages)).list_open_items()

    assert len(items) == _MAX_PAGES
    assert "Stopped after" not in caplog.text


def test_page_cap_stops_pagination_with_a_warning(caplog: pytest.LogCaptureFixture) -> None:
    pages = [
        _DummyResponse(
            [_notification(str(page), f"Item {page}", None)],
            links={"next": {"url": f"https://api.github.com/notifications?page={page + 1}"}},
        )
        for page in range(1, _MAX_PAGES + 2)
    ]
    session = _FakeSession(pages)

    with caplog.at_level(logging.WARNING, logger="notify_slackbot.sources.github_source"):
        items = _source(session).list_open_items()

    assert len(items) == _MAX_PAGES
    assert len(session.calls) == _MAX_PAGES
    assert f"Stopped after {_MAX_PAGES} pages" in caplog.text


def test_mark_item_read_patches_thread() -> None:
    session = _FakeSession([_DummyResponse(status_code=205)])

    _source(session).mark_item_read("42")

    method, url, kwargs = session.calls[0]
    assert method == "PATCH"
    assert url == "https://api.github.com/notifications/threads/42"
    assert kwargs["timeout"] == 7


@pytest.mark.parametrize(
    "response",
    [
        _DummyResponse(status_code=403, text="Forbidden"),
        requests.ConnectionError("connection reset"),
    ],
)
def test_mark_item_read_failures_raise_mark_read_error(response) -> None:
    with pytest.raises(MarkReadError):
        _source(_FakeSession([response])).mark_item_read("42")


def test_factory_requires_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)

    with pytest.raises(ConfigError):
        create_source(SourceSettings(id="github", type="github", url="https://api.github.com"))


def test_factory_reads_token_from_configured_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MY_GH_TOKEN", "ghp_from_env")

    source = create_source(
        SourceSettings(
            id="github",
            type="github",
            url="https://api.github.com",
            options={"token_env_var": "MY_GH_TOKEN"},
        )
    )

    assert isinstance(source, GitHubNotificationsSource)
    assert source.token == "ghp_from_env"
