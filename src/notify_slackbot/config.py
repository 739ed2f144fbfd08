from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

_DURATION = re.compile(r"^\s*(?P<amount>\d+)\s*(?P<unit>s|sec|m|min|h|hr|d)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    None: 1,
    "s": 1,
    "sec": 1,
    "m": 60,
    "min": 60,
    "h": 3600,
    "hr": 3600,
    "d": 86400,
}
_DEFAULT_SOURCE_URLS = {
    "github": "https://api.github.com",
}


class ConfigError(ValueError):
    """Raised when configuration is invalid."""


@dataclass(slots=True)
class SourceSettings:
    id: str
    type: str
    url: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SlackSettings:
    channel: str
    token_env_var: str = "SLACK_BOT_TOKEN"
    signing_secret_env_var: str = "SLACK_SIGNING_SECRET"
    timeout_seconds: int = 15


@dataclass(slots=True)
class ScheduleSettings:
    poll_interval: timedelta = timedelta(minutes=5)
    reminder_threshold: timedelta = timedelta(hours=2)


@dataclass(slots=True)
class ReceiverSettings:
    host: str = "0.0.0.0"
    port: int = 3000


@dataclass(slots=True)
class StorageSettings:
    type: str = "sqlite"
    path: str = "data/state.sqlite"


@dataclass(slots=True)
class AppConfig:
    source: SourceSettings
    slack: SlackSettings
    schedule: ScheduleSettings = field(default_factory=ScheduleSettings)
    receiver: ReceiverSettings = field(default_factory=ReceiverSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    log_level: str = "INFO"


def _as_int(value: Any, *, field_name: str, minimum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be an integer") from exc

    if minimum is not None and parsed < minimum:
        raise ConfigError(f"{field_name} must be >= {minimum}")
    return parsed


def _as_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value

    if isinstance(value, int) and value in {0, 1}:
        return bool(value)

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "on"}:
            return True
        if normalized in {"false", "0", "no", "off"}:
            return False

    raise ConfigError(f"{field_name} must be a boolean")


def parse_duration(value: Any, *, field_name: str) -> timedelta:
    """Parse ``300``, ``"90s"``, ``"5m"``, ``"2h"`` or ``"1d"`` into a positive timedelta."""
    if isinstance(value, timedelta):
        seconds = int(value.total_seconds())
    elif isinstance(value, bool):
        raise ConfigError(f"{field_name} must be a duration")
    elif isinstance(value, int):
        seconds = value
    elif isinstance(value, str):
        match = _DURATION.match(value)
        if match is None:
            raise ConfigError(f"{field_name} must be a duration such as 90s, 5m or 2h")
        unit = match.group("unit")
        seconds = int(match.group("amount")) * _DURATION_UNITS[unit.lower() if unit else None]
    else:
        raise ConfigError(f"{field_name} must be a duration")

    if seconds <= 0:
        raise ConfigError(f"{field_name} must be positive")
    return timedelta(seconds=seconds)


def _as_mapping(parsed: dict[str, Any], key: str) -> dict[str, Any]:
    value = parsed.get(key, {}) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping")
    return value


def _as_text(raw: dict[str, Any], key: str, default: str) -> str:
    return str(raw.get(key, default) or "").strip() or default


def _resolve_relative_path(config_path: Path, raw_path: str) -> str:
    candidate = Path(raw_path).expanduser()
    if candidate.is_absolute():
        return str(candidate)
    return str((config_path.parent / candidate).resolve())


def _load_source(parsed: dict[str, Any]) -> SourceSettings:
    raw_source = parsed.get("source")
    if not isinstance(raw_source, dict):
        raise ConfigError("Config must define a source mapping")

    source_type = str(raw_source.get("type", "")).strip()
    if not source_type:
        raise ConfigError("source.type is required")

    source_url = str(raw_source.get("url") or _DEFAULT_SOURCE_URLS.get(source_type, "")).strip()
    if not source_url:
        raise ConfigError(f"source.url is required for source type {source_type}")

    options = {
        key: value
        for key, value in raw_source.items()
        if key not in {"id", "type", "url"}
    }
    if "timeout_seconds" in options:
        options["timeout_seconds"] = _as_int(
            options["timeout_seconds"],
            field_name="source.timeout_seconds",
            minimum=1,
        )
    if "participating" in options:
        options["participating"] = _as_bool(
            options["participating"],
            field_name="source.participating",
        )

    return SourceSettings(
        id=str(raw_source.get("id") or source_type).strip(),
        type=source_type,
        url=source_url,
        options=options,
    )


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            parsed = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ConfigError("Config root must be a mapping")

    source_settings = _load_source(parsed)

    raw_slack = _as_mapping(parsed, "slack")
    channel = str(raw_slack.get("channel", "")).strip()
    if not channel:
        raise ConfigError("slack.channel is required")

    slack_settings = SlackSettings(
        channel=channel,
        token_env_var=_as_text(raw_slack, "token_env_var", "SLACK_BOT_TOKEN"),
        signing_secret_env_var=_as_text(raw_slack, "signing_secret_env_var", "SLACK_SIGNING_SECRET"),
        timeout_seconds=_as_int(
            raw_slack.get("timeout_seconds", 15),
            field_name="slack.timeout_seconds",
            minimum=1,
        ),
    )

    raw_schedule = _as_mapping(parsed, "schedule")
    schedule_settings = ScheduleSettings(
        poll_interval=parse_duration(
            raw_schedule.get("poll_interval", "5m"),
            field_name="schedule.poll_interval",
        ),
        reminder_threshold=parse_duration(
            raw_schedule.get("reminder_threshold", "2h"),
            field_name="schedule.reminder_threshold",
        ),
    )

    raw_receiver = _as_mapping(parsed, "receiver")
    receiver_settings = ReceiverSettings(
        host=_as_text(raw_receiver, "host", "0.0.0.0"),
        port=_as_int(raw_receiver.get("port", 3000), field_name="receiver.port", minimum=1),
    )

    raw_storage = _as_mapping(parsed, "storage")
    storage_path = _as_text(raw_storage, "path", "data/state.sqlite")
    storage_settings = StorageSettings(
        type=_as_text(raw_storage, "type", "sqlite"),
        path=_resolve_relative_path(config_path, storage_path),
    )

    return AppConfig(
        source=source_settings,
        slack=slack_settings,
        schedule=schedule_settings,
        receiver=receiver_settings,
        storage=storage_settings,
        log_level=str(parsed.get("log_level", "INFO")).upper(),
    )
