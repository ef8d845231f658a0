import time
import types
from datetime import datetime, timezone

import pytest

from rss_relay.models import CategoryConfig, Feed

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)


def make_entry(link="https://example.com/a", title="T", hours_ago=1.0, **fields):
    """Build a feedparser-like entry published ``hours_ago`` before NOW."""
    if hours_ago is not None:
        fields.setdefault(
            "published_parsed", time.gmtime(NOW.timestamp() - hours_ago * 3600)
        )
    return types.SimpleNamespace(link=link, title=title, **fields)


@pytest.fixture
def entry_factory():
    return make_entry


@pytest.fixture
def category():
    return CategoryConfig(
        name="technology",
        feeds=[Feed(name="Feed", url="https://feed.example.com/rss")],
        webhook_url="https://hooks.slack.com/services/T/B/X",
        policy="Only fintech news is relevant.",
    )
