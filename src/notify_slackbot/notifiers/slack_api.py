from __future__ import annotations

import logging
from typing import Any

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackClientError

from notify_slackbot.errors import DeliveryError
from notify_slackbot.models import Announcement, DeliveryReceipt, MessageRef, NotificationRecord

from .base import Notifier

logger = logging.getLogger(__name__)

ACKNOWLEDGE_ACTION_ID = "acknowledge"
DONE_REACTION = "white_check_mark"
_ALREADY_REACTED = "already_reacted"


class SlackNotifier(Notifier):
    def __init__(self, client: WebClient, channel: str) -> None:
        self.client = client
        self.channel = channel

    @classmethod
    def from_token(cls, token: str, channel: str, timeout_seconds: int = 15) -> SlackNotifier:
        return cls(WebClient(token=token, timeout=timeout_seconds), channel)

    def announce(self, announcement: Announcement, correlation_token: str) -> DeliveryReceipt:
        payload = build_announcement_payload(announcement, correlation_token)
        return self._post_message(payload)

    def remind(self, title: str, correlation_token: str, url: str = "") -> DeliveryReceipt:
        payload = build_reminder_payload(title, correlation_token, url)
        return self._post_message(payload)

    def apply_terminal_ui(self, record: NotificationRecord, message_ref: MessageRef | None) -> None:
        if message_ref is None:
            raise DeliveryError(f"no message reference to update for {record.thread_id}")

        payload = build_done_payload(record)
        try:
            self.client.chat_update(channel=message_ref.channel, ts=message_ref.ts, **payload)
        except (SlackClientError, OSError) as exc:
            raise DeliveryError(f"chat.update failed for {record.thread_id}: {_describe(exc)}") from exc

        self._react(message_ref)

    def confirm(self, message_ref: MessageRef | None) -> None:
        if message_ref is None:
            logger.debug("No message reference to confirm")
            return
        self._react(message_ref)

    def _post_message(self, payload: dict[str, Any]) -> DeliveryReceipt:
        try:
            response = self.client.chat_postMessage(channel=self.channel, **payload)
        except (SlackClientError, OSError) as exc:
            raise DeliveryError(f"chat.postMessage failed: {_describe(exc)}") from exc

        return DeliveryReceipt(
            channel=str(response.get("channel") or self.channel),
            ts=str(response.get("ts") or ""),
        )

    def _react(self, message_ref: MessageRef) -> None:
        try:
            self.client.reactions_add(
                channel=message_ref.channel,
                timestamp=message_ref.ts,
                name=DONE_REACTION,
            )
        except SlackApiError as exc:
            if _slack_error_code(exc) == _ALREADY_REACTED:
                return
            raise DeliveryError(f"reactions.add failed: {_describe(exc)}") from exc
        except (SlackClientError, OSError) as exc:
            raise DeliveryError(f"reactions.add failed: {_describe(exc)}") from exc


def build_announcement_payload(announcement: Announcement, correlation_token: str) -> dict:
    title_link = (
        f"*<{announcement.url}|{announcement.title}>*"
        if announcement.url
        else f"*{announcement.title}*"
    )
    blocks: list[dict[str, Any]] = [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": title_link},
        },
        {
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": announcement.headline}],
        },
    ]
    if announcement.details:
        blocks.append(
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": "\n".join(announcement.details)},
            }
        )
    blocks.append(_actions_block(correlation_token, announcement.url))

    return {
        "text": f"{announcement.headline}: {announcement.title}",
        "blocks": blocks,
    }


def build_reminder_payload(title: str, correlation_token: str, url: str = "") -> dict:
    text = f"Reminder: {title}"
    body = f"Reminder: <{url}|{title}>" if url else text
    return {
        "text": text,
        "blocks": [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": body},
            },
            _actions_block(correlation_token, url),
        ],
    }


def build_done_payload(record: NotificationRecord) -> dict:
    title_link = f"~<{record.url}|{record.title}>~" if record.url else f"~{record.title}~"
    return {
        "text": f"Done: {record.title}",
        "blocks": [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": title_link},
            },
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": ":white_check_mark: Done"}],
            },
        ],
    }


def render_announcement_text(announcement: Announcement) -> str:
    payload = build_announcement_payload(announcement, correlation_token="preview")
    lines: list[str] = []

    top_text = payload.get("text")
    if isinstance(top_text, str) and top_text:
        lines.append(top_text)

    for block in payload["blocks"]:
        _append_payload_text(lines, block.get("text"))
        for element in block.get("elements", []):
            if element.get("type") == "button":
                continue
            _append_payload_text(lines, element.get("text"))

    return "\n".join(lines)


def _actions_block(correlation_token: str, url: str) -> dict:
    elements: list[dict[str, Any]] = [
        {
            "type": "button",
            "action_id": ACKNOWLEDGE_ACTION_ID,
            "style": "primary",
            "text": {"type": "plain_text", "text": ":white_check_mark: Done", "emoji": True},
            "value": correlation_token,
        }
    ]
    if url:
        elements.append(
            {
                "type": "button",
                "action_id": "open",
                "text": {"type": "plain_text", "text": "Open"},
                "url": url,
            }
        )
    return {"type": "actions", "elements": elements}


def _append_payload_text(lines: list[str], payload_value: object) -> None:
    if isinstance(payload_value, str) and payload_value:
        lines.append(payload_value)
        return
    if isinstance(payload_value, dict):
        text = payload_value.get("text")
        if isinstance(text, str) and text:
            lines.append(text)


def _slack_error_code(exc: SlackApiError) -> str | None:
    response = getattr(exc, "response", None)
    if response is None:
        return None
    try:
        return response.get("error")
    except AttributeError:
        return None


def _describe(exc: Exception) -> str:
    if isinstance(exc, SlackApiError):
        return _slack_error_code(exc) or str(exc)
    return str(exc)
