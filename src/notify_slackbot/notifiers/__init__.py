"""Notifier implementations."""

from .base import Notifier
from .slack_api import SlackNotifier, render_announcement_text

__all__ = ["Notifier", "SlackNotifier", "render_announcement_text"]
