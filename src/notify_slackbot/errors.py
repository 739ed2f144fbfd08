from __future__ import annotations


class NotifyBotError(Exception):
    """Base class for errors raised at the feed, chat and storage boundaries."""


class FetchError(NotifyBotError):
    """Raised when the feed source is unreachable or returns a malformed payload."""


class MarkReadError(NotifyBotError):
    """Raised when the upstream "mark read" call fails."""


class DeliveryError(NotifyBotError):
    """Raised when a chat message could not be sent or updated."""


class StoreError(NotifyBotError):
    """Raised when the record store cannot be read or written."""
