from __future__ import annotations

import json
import logging
from typing import Any

from flask import Blueprint, Flask, current_app, jsonify, request
from slack_sdk.signature import SignatureVerifier

from notify_slackbot.acknowledgments import AcknowledgmentDispatcher
from notify_slackbot.models import AcknowledgmentEvent, MessageRef
from notify_slackbot.notifiers.slack_api import ACKNOWLEDGE_ACTION_ID

logger = logging.getLogger(__name__)

interactions_bp = Blueprint("interactions", __name__)


def create_app(dispatcher: AcknowledgmentDispatcher, signing_secret: str) -> Flask:
    app = Flask(__name__)
    app.config["DISPATCHER"] = dispatcher
    app.config["SIGNATURE_VERIFIER"] = SignatureVerifier(signing_secret)
    app.register_blueprint(interactions_bp)
    return app


@interactions_bp.route("/slack/interactions", methods=["POST"])
def slack_interactions():
    """
    Receive Slack block_actions callbacks.

    Slack expects an answer within three seconds, so events are only queued
    here; the dispatcher does the work.
    """
    body = request.get_data()
    verifier: SignatureVerifier = current_app.config["SIGNATURE_VERIFIER"]
    if not verifier.is_valid_request(body, dict(request.headers)):
        logger.warning("Rejected Slack interaction with invalid signature")
        return jsonify({"error": "invalid signature"}), 401

    raw_payload = request.form.get("payload")
    if not raw_payload:
        return jsonify({"error": "missing payload"}), 400

    try:
        payload = json.loads(raw_payload)
    except json.JSONDecodeError:
        return jsonify({"error": "payload is not valid JSON"}), 400
    if not isinstance(payload, dict):
        return jsonify({"error": "payload must be an object"}), 400

    dispatcher: AcknowledgmentDispatcher = current_app.config["DISPATCHER"]
    events = parse_interaction_payload(payload)
    for event in events:
        dispatcher.submit(event)

    logger.debug("Queued %d acknowledgment events", len(events))
    return "", 200


@interactions_bp.route("/health", methods=["GET"])
def health():
    dispatcher: AcknowledgmentDispatcher = current_app.config["DISPATCHER"]
    return jsonify({"status": "ok", "pending_events": dispatcher.pending})


def parse_interaction_payload(payload: dict[str, Any]) -> list[AcknowledgmentEvent]:
    if payload.get("type") != "block_actions":
        return []

    message_ref = _message_ref(payload)
    user = payload.get("user") if isinstance(payload.get("user"), dict) else {}
    user_name = user.get("username") or user.get("name") or user.get("id")

    events: list[AcknowledgmentEvent] = []
    for action in payload.get("actions") or []:
        if not isinstance(action, dict) or action.get("action_id") != ACKNOWLEDGE_ACTION_ID:
            continue
        token = str(action.get("value") or "").strip()
        if not token:
            continue
        events.append(
            AcknowledgmentEvent(
                correlation_token=token,
                message_ref=message_ref,
                user=user_name,
            )
        )
    return events


def _message_ref(payload: dict[str, Any]) -> MessageRef | None:
    container = payload.get("container") if isinstance(payload.get("container"), dict) else {}
    channel = container.get("channel_id")
    ts = container.get("message_ts")

    if not channel and isinstance(payload.get("channel"), dict):
        channel = payload["channel"].get("id")
    if not ts and isinstance(payload.get("message"), dict):
        ts = payload["message"].get("ts")

    if not channel or not ts:
        return None
    return MessageRef(channel=str(channel), ts=str(ts))
