"""Feed sources and registry."""

from .base import FeedSource
from .github_source import GitHubNotificationsSource
from .registry import (
    SourceRegistrationError,
    create_source,
    register_source,
    registered_source_types,
)
from .rss_source import RssSource

__all__ = [
    "FeedSource",
    "GitHubNotificationsSource",
    "RssSource",
    "SourceRegistrationError",
    "create_source",
    "register_source",
    "registered_source_types",
]
