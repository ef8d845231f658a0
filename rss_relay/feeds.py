"""Feed fetching and entry normalisation."""

from __future__ import annotations

import calendar
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import requests

from .models import Article, Feed

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; RSSBot/1.0)"
SUMMARY_LENGTH = 200
ELLIPSIS = "..."
UNTITLED = "Untitled"
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

_TAG_RE = re.compile(r"<[^>]*>")
_IMAGE_URL_RE = re.compile(r"\.(?:jpe?g|png|gif|webp)(?:[?#].*)?$", re.IGNORECASE)
_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


def fetch_feed_entries(
    feed: Feed,
    session: Optional[requests.Session] = None,
    timeout: float = 10.0,
    user_agent: str = DEFAULT_USER_AGENT,
) -> List[Any]:
    """Download and parse a feed, returning its raw entries.

    Network errors are logged and produce an empty list.
    """
    logger.info("Fetching feed '%s' (%s)", feed.name, feed.url)
    getter = session or requests
    try:
        response = getter.get(
            feed.url, timeout=timeout, headers={"User-Agent": user_agent}
        )
        response.raise_for_status()
        content = response.content
    except requests.RequestException as e:
        logger.warning("Failed to fetch feed '%s' (%s): %s", feed.name, feed.url, e)
        return []

    parsed = feedparser.parse(content)
    entries = list(getattr(parsed, "entries", None) or [])
    if not entries and getattr(parsed, "bozo", False):
        logger.warning(
            "Feed '%s' could not be parsed: %s",
            feed.name,
            getattr(parsed, "bozo_exception", "unknown error"),
        )
        return []

    logger.info("Collected %d entries from feed '%s'", len(entries), feed.name)
    return entries


def to_datetime(value: Optional[time.struct_time]) -> datetime:
    """Convert a feedparser UTC struct_time to an aware datetime.

    Missing or invalid values map to the Unix epoch so they never look recent.
    """
    if value is None:
        return EPOCH
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return EPOCH


def entry_published_at(entry: Any) -> datetime:
    for attr in ("published_parsed", "updated_parsed", "created_parsed"):
        value = getattr(entry, attr, None)
        if value:
            return to_datetime(value)
    return EPOCH


def is_recent(published: datetime, cutoff: datetime) -> bool:
    return published >= cutoff


def strip_tags(raw_value: str) -> str:
    """Remove anything that looks like a markup tag."""
    return _TAG_RE.sub("", raw_value)


def truncate(text: str, max_length: int = SUMMARY_LENGTH) -> str:
    """Limit text to ``max_length`` characters, marking truncation with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def _raw_content(entry: Any) -> Optional[str]:
    content = getattr(entry, "content", None)
    if not content:
        return None
    try:
        return content[0].get("value")
    except (TypeError, KeyError, IndexError, AttributeError):
        return None


def _plain_snippet(entry: Any) -> Optional[str]:
    detail = getattr(entry, "summary_detail", None)
    if detail and detail.get("type") == "text/plain":
        return detail.get("value")
    return None


def select_summary(entry: Any, max_length: int = SUMMARY_LENGTH) -> str:
    """Pick the richest text field, strip markup and bound its length."""
    candidates = (
        _plain_snippet(entry),
        _raw_content(entry),
        getattr(entry, "summary", None),
    )
    raw = next((value for value in candidates if value), "")
    return truncate(strip_tags(raw).strip(), max_length)


def _first_url(items: Any, key: str = "url") -> Optional[str]:
    if not items:
        return None
    for item in items:
        try:
            url = item.get(key)
        except AttributeError:
            continue
        if url:
            return url
    return None


def extract_image_url(entry: Any) -> Optional[str]:
    """Return the first image reference found on the entry, if any."""
    image = _first_url(getattr(entry, "media_content", None))
    if image:
        return image

    image = _first_url(getattr(entry, "media_thumbnail", None))
    if image:
        return image

    for enclosure in getattr(entry, "enclosures", None) or []:
        try:
            url = enclosure.get("href") or enclosure.get("url")
        except AttributeError:
            continue
        if url and _IMAGE_URL_RE.search(url):
            return url

    for html in (_raw_content(entry), getattr(entry, "summary", None)):
        if not html:
            continue
        match = _IMG_SRC_RE.search(html)
        if match:
            return match.group(1)

    return None


def extract_article(
    entry: Any, source: str, summary_length: int = SUMMARY_LENGTH
) -> Optional[Article]:
    """Build an :class:`Article` from a raw feed entry.

    Returns ``None`` when the entry has no link.
    """
    link = (getattr(entry, "link", None) or "").strip()
    if not link:
        logger.debug("Skipping entry without link in feed '%s'", source)
        return None

    title = (getattr(entry, "title", None) or "").strip() or UNTITLED

    return Article(
        title=title,
        link=link,
        source=source,
        summary=select_summary(entry, summary_length),
        image_url=extract_image_url(entry),
    )
