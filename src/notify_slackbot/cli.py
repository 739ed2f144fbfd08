from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading

from werkzeug.serving import make_server

from notify_slackbot.acknowledgments import AcknowledgmentDispatcher, AcknowledgmentHandler
from notify_slackbot.config import AppConfig, ConfigError, load_config
from notify_slackbot.errors import FetchError, StoreError
from notify_slackbot.logging_config import setup_logging
from notify_slackbot.models import Announcement, FeedItem
from notify_slackbot.notifiers import SlackNotifier, render_announcement_text
from notify_slackbot.poller import FeedPoller
from notify_slackbot.receiver import create_app
from notify_slackbot.reconciler import Reconciler, TickStats
from notify_slackbot.sources import FeedSource, SourceRegistrationError, create_source
from notify_slackbot.store import SQLiteStore
from notify_slackbot.utils.datetime_utils import format_datetime

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notify-bot",
        description="Relay feed notifications into Slack with reminders and Done buttons.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to config YAML file (default: config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        help="Override config log level (e.g. INFO, DEBUG)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("run", help="Poll on schedule and serve Slack button clicks")
    subparsers.add_parser("poll-once", help="Run a single poll tick and exit")
    subparsers.add_parser("dry-run", help="Fetch once and print what would be announced")
    subparsers.add_parser("init-db", help="Initialize SQLite schema")
    subparsers.add_parser("list", help="Print open notification records")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = load_config(args.config)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    log_level = args.log_level or app_config.log_level
    setup_logging(log_level)

    try:
        return _dispatch(args.command, app_config)
    except ConfigError as exc:
        logger.error("Config error: %s", exc)
        return 2
    except StoreError as exc:
        logger.critical("Record store failure: %s", exc)
        return 1


def _dispatch(command: str, app_config: AppConfig) -> int:
    store = _build_store(app_config)

    if command == "init-db":
        store.init_db()
        logger.info("Initialized SQLite database at %s", app_config.storage.path)
        return 0

    store.init_db()

    if command == "list":
        return _print_records(store)

    source = _build_source(app_config)

    if command == "dry-run":
        return _run_dry(store=store, source=source)

    notifier = _build_notifier(app_config)
    item_lock = threading.Lock()
    reconciler = Reconciler(
        store=store,
        notifier=notifier,
        reminder_threshold=app_config.schedule.reminder_threshold,
        lock=item_lock,
        headline=source.headline,
    )
    poller = FeedPoller(
        source=source,
        reconciler=reconciler,
        interval=app_config.schedule.poll_interval,
    )

    if command == "poll-once":
        stats = poller.tick()
        _log_stats(stats)
        return 0 if stats.ok else 1

    signing_secret = _require_env(app_config.slack.signing_secret_env_var, "Slack signing secret")
    handler = AcknowledgmentHandler(store=store, source=source, notifier=notifier, lock=item_lock)
    dispatcher = AcknowledgmentDispatcher(handler)
    return _run_service(app_config, poller, dispatcher, signing_secret)


def _run_service(
    app_config: AppConfig,
    poller: FeedPoller,
    dispatcher: AcknowledgmentDispatcher,
    signing_secret: str,
) -> int:
    stop_event = threading.Event()

    def _request_shutdown(signum, _frame) -> None:
        logger.info("Received signal %d, shutting down", signum)
        stop_event.set()

    try:
        server = make_server(
            app_config.receiver.host,
            app_config.receiver.port,
            create_app(dispatcher, signing_secret),
            threaded=True,
        )
    except OSError as exc:
        logger.critical(
            "Cannot listen on %s:%d: %s",
            app_config.receiver.host,
            app_config.receiver.port,
            exc,
        )
        return 1

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _request_shutdown)

    server_thread = threading.Thread(target=server.serve_forever, name="receiver", daemon=True)
    dispatcher_thread = threading.Thread(
        target=dispatcher.run,
        args=(stop_event,),
        name="ack-dispatcher",
    )

    server_thread.start()
    dispatcher_thread.start()
    logger.info(
        "Listening for Slack interactions on %s:%d; polling every %ss, reminding after %ss",
        app_config.receiver.host,
        app_config.receiver.port,
        int(app_config.schedule.poll_interval.total_seconds()),
        int(app_config.schedule.reminder_threshold.total_seconds()),
    )

    try:
        poller.run_forever(stop_event)
    finally:
        stop_event.set()
        server.shutdown()
        server.server_close()
        dispatcher_thread.join()
        logger.info("Stopped")

    if dispatcher.failure is not None:
        return 1
    return 0


def _build_store(app_config: AppConfig) -> SQLiteStore:
    if app_config.storage.type != "sqlite":
        raise ConfigError(f"Unsupported storage type: {app_config.storage.type}")
    return SQLiteStore(app_config.storage.path)


def _build_source(app_config: AppConfig) -> FeedSource:
    try:
        return create_source(app_config.source)
    except SourceRegistrationError as exc:
        raise ConfigError(str(exc)) from exc


def _build_notifier(app_config: AppConfig) -> SlackNotifier:
    token = _require_env(app_config.slack.token_env_var, "Slack bot token")
    return SlackNotifier.from_token(
        token,
        channel=app_config.slack.channel,
        timeout_seconds=app_config.slack.timeout_seconds,
    )


def _require_env(env_var: str, description: str) -> str:
    value = os.getenv(env_var, "").strip()
    if not value:
        raise ConfigError(f"Missing {description} in environment variable {env_var}")
    return value


def _run_dry(*, store: SQLiteStore, source: FeedSource) -> int:
    try:
        items = source.list_open_items()
    except FetchError as exc:
        logger.error("dry-run fetch failed for %s: %s", source.source_id, exc)
        return 1

    new_items = 0
    for item in items:
        if store.get(item.identity) is not None:
            continue
        new_items += 1
        _dry_run_preview(item, source.headline)

    logger.info("Dry run complete | fetched=%d new=%d", len(items), new_items)
    return 0


def _dry_run_preview(item: FeedItem, headline: str) -> None:
    print("[DRY RUN] WOULD ANNOUNCE:")
    print(render_announcement_text(Announcement.from_item(item, headline=headline)))
    print("")


def _print_records(store: SQLiteStore) -> int:
    records = store.list_records()
    for record in records:
        print(f"{record.thread_id}\t{format_datetime(record.last_reminded_at)}\t{record.title}\t{record.url}")
    logger.info("%d open records", len(records))
    return 0


def _log_stats(stats: TickStats) -> None:
    logger.info(
        "Poll complete | fetched=%d announced=%d reminded=%d unchanged=%d failed=%d fetch_failed=%s",
        stats.fetched,
        stats.announced,
        stats.reminded,
        stats.unchanged,
        stats.failed,
        stats.fetch_failed,
    )


if __name__ == "__main__":
    raise SystemExit(main())
