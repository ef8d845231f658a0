"""High-level orchestration for the rss_relay pipeline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Set

import requests

from .classifier import RelevanceClassifier, build_backend
from .feeds import (
    DEFAULT_USER_AGENT,
    SUMMARY_LENGTH,
    entry_published_at,
    extract_article,
    fetch_feed_entries,
    is_recent,
)
from .ledger import Ledger, is_handled, load_ledger, mark_handled, prune, save_ledger
from .models import Article, CategoryConfig, Feed
from .slack import post_article

logger = logging.getLogger(__name__)


@dataclass
class RunConfig:
    """Runtime options for executing the pipeline."""

    categories: List[CategoryConfig]
    ledger_path: str
    max_age_hours: float = 24.0
    retention_days: float = 7.0
    post_delay_seconds: float = 1.0
    summary_length: int = SUMMARY_LENGTH
    request_timeout: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT
    classifier_provider: str = "openai"
    classifier_model: Optional[str] = None
    classifier_api_key: Optional[str] = None
    dry_run: bool = False


@dataclass
class RunResult:
    """Counters describing what a single run did."""

    fetched: int = 0
    skipped_seen: int = 0
    skipped_stale: int = 0
    irrelevant: int = 0
    published: int = 0
    failed: int = 0
    published_links: List[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _collect_new_articles(
    feed: Feed,
    ledger: Ledger,
    cutoff: datetime,
    config: RunConfig,
    session: requests.Session,
    result: RunResult,
) -> List[Article]:
    try:
        entries = fetch_feed_entries(
            feed,
            session=session,
            timeout=config.request_timeout,
            user_agent=config.user_agent,
        )
    except Exception:
        logger.exception("Failed to process feed %s", feed.url)
        return []

    articles: List[Article] = []
    for entry in entries:
        try:
            article = extract_article(entry, feed.name, config.summary_length)
            published = entry_published_at(entry)
        except Exception:
            logger.exception("Skipping malformed entry in feed %s", feed.url)
            continue
        if article is None:
            continue
        result.fetched += 1
        if is_handled(ledger, article.link):
            result.skipped_seen += 1
            continue
        if not is_recent(published, cutoff):
            logger.debug(
                "Skipping entry older than cutoff (%s < %s): %s",
                published,
                cutoff,
                article.link,
            )
            result.skipped_stale += 1
            continue
        articles.append(article)

    logger.info("Found %d new articles in feed '%s'", len(articles), feed.name)
    return articles


def _process_category(
    category: CategoryConfig,
    ledger: Ledger,
    cutoff: datetime,
    config: RunConfig,
    classifier: RelevanceClassifier,
    session: requests.Session,
    clock: Callable[[], datetime],
    sleep: Callable[[float], Any],
    result: RunResult,
) -> None:
    logger.info("Processing category: %s", category.name)
    attempted: Set[str] = set()
    for feed in category.feeds:
        articles = _collect_new_articles(feed, ledger, cutoff, config, session, result)

        for article in articles:
            # Links can repeat across feeds of one category.
            if is_handled(ledger, article.link) or article.link in attempted:
                result.skipped_seen += 1
                continue
            attempted.add(article.link)

            if not classifier.classify(article, category):
                logger.info("Not relevant for %s: %s", category.name, article.title)
                mark_handled(ledger, article.link, _to_millis(clock()))
                result.irrelevant += 1
                continue

            if config.dry_run:
                logger.info("[dry-run] Would post to %s: %s", category.name, article.title)
                success = True
            else:
                success = post_article(
                    category.webhook_url,
                    article,
                    session=session,
                    timeout=config.request_timeout,
                )

            if success:
                mark_handled(ledger, article.link, _to_millis(clock()))
                result.published += 1
                result.published_links.append(article.link)
                logger.info("Posted: %s", article.title)
            else:
                result.failed += 1
                logger.warning("Will retry next run: %s", article.link)

            sleep(config.post_delay_seconds)


def execute(
    config: RunConfig,
    classifier: Optional[RelevanceClassifier] = None,
    session: Optional[requests.Session] = None,
    clock: Callable[[], datetime] = _utcnow,
    sleep: Callable[[float], Any] = time.sleep,
) -> RunResult:
    """Run one pass over every category and persist the ledger."""
    if config.max_age_hours <= 0:
        raise ValueError("max-age-hours must be positive.")

    if classifier is None:
        classifier = RelevanceClassifier(
            build_backend(
                config.classifier_provider,
                config.classifier_api_key,
                config.classifier_model,
            )
        )

    started = clock()
    ledger = prune(
        load_ledger(config.ledger_path),
        _to_millis(started),
        timedelta(days=config.retention_days),
    )
    cutoff = started - timedelta(hours=config.max_age_hours)
    logger.info("Applying article cutoff: newer than %s", cutoff)

    owns_session = session is None
    if owns_session:
        session = requests.Session()
        session.headers["User-Agent"] = config.user_agent

    result = RunResult()
    try:
        for category in config.categories:
            if not category.webhook_url:
                logger.info("No webhook configured for %s, skipping", category.name)
                continue
            _process_category(
                category,
                ledger,
                cutoff,
                config,
                classifier,
                session,
                clock,
                sleep,
                result,
            )
    finally:
        if owns_session:
            session.close()

    if config.dry_run:
        logger.info("Dry run; ledger not saved")
    else:
        save_ledger(config.ledger_path, ledger)

    logger.info(
        "Run complete: %d fetched, %d seen, %d stale, %d irrelevant, %d posted, %d failed",
        result.fetched,
        result.skipped_seen,
        result.skipped_stale,
        result.irrelevant,
        result.published,
        result.failed,
    )
    return result
