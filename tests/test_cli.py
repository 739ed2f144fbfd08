from __future__ import annotations

from pathlib import Path

from conftest import T0, feed_item
from notify_slackbot.cli import _dry_run_preview, main
from notify_slackbot.models import Announcement, NotificationRecord
from notify_slackbot.notifiers.slack_api import render_announcement_text
from notify_slackbot.store.sqlite_store import SQLiteStore


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "source:\n  type: github\nslack:\n  channel: C1\nstorage:\n  path: state.sqlite\n",
        encoding="utf-8",
    )
    return path


def test_dry_run_preview_prints_exact_rendered_text(capsys) -> None:
    item = feed_item()

    _dry_run_preview(item, "New GitHub notification")

    expected = (
        "[DRY RUN] WOULD ANNOUNCE:\n"
        f"{render_announcement_text(Announcement.from_item(item))}\n\n"
    )
    assert capsys.readouterr().out == expected


def test_missing_config_exits_with_config_status(tmp_path: Path, capsys) -> None:
    assert main(["-c", str(tmp_path / "absent.yaml"), "init-db"]) == 2
    assert "Config error" in capsys.readouterr().err


def test_init_db_creates_database(tmp_path: Path) -> None:
    assert main(["-c", str(_write_config(tmp_path)), "init-db"]) == 0
    assert (tmp_path / "state.sqlite").exists()


def test_list_prints_open_records(tmp_path: Path, capsys) -> None:
    config_path = _write_config(tmp_path)
    store = SQLiteStore(str(tmp_path / "state.sqlite"))
    store.init_db()
    store.upsert(
        NotificationRecord(
            thread_id="t1",
            message_id="m1",
            title="Fix bug",
            url="https://github.com/octo/repo/issues/1",
            last_reminded_at=T0,
        )
    )

    assert main(["-c", str(config_path), "list"]) == 0
    assert "t1\t2026-01-05 09:00 UTC\tFix bug" in capsys.readouterr().out


def test_poll_once_without_tokens_is_a_config_error(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)

    assert main(["-c", str(_write_config(tmp_path)), "poll-once"]) == 2


def test_run_exits_cleanly_when_the_receiver_port_is_taken(tmp_path: Path, monkeypatch, caplog) -> None:
    for env_var in ("GITHUB_TOKEN", "SLACK_BOT_TOKEN", "SLACK_SIGNING_SECRET"):
        monkeypatch.setenv(env_var, "test-value")

    def _address_in_use(*args, **kwargs):
        raise OSError(98, "Address already in use")

    monkeypatch.setattr("notify_slackbot.cli.make_server", _address_in_use)

    assert main(["-c", str(_write_config(tmp_path)), "run"]) == 1
    assert "Cannot listen on 0.0.0.0:3000" in caplog.text
