"""Delivery of articles to Slack incoming webhooks."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from .models import Article
from .templating import get_environment

logger = logging.getLogger(__name__)

NO_SUMMARY = "No summary available."


def build_heading(article: Article) -> str:
    template = get_environment().get_template("heading.mrkdwn.j2")
    return template.render(article=article).strip()


def build_blocks(article: Article) -> List[Dict[str, Any]]:
    """Build the Block Kit layout for one article."""
    blocks: List[Dict[str, Any]] = [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": build_heading(article)},
        },
        {
            "type": "section",
            "text": {
                "type": "plain_text",
                "text": article.summary or NO_SUMMARY,
                "emoji": True,
            },
        },
    ]
    if article.image_url:
        blocks.append(
            {
                "type": "image",
                "image_url": article.image_url,
                "alt_text": article.title,
            }
        )
    blocks.append({"type": "divider"})
    return blocks


def build_payload(article: Article) -> Dict[str, Any]:
    # ``text`` is the notification fallback for clients that cannot show blocks.
    return {"text": f"{article.title} {article.link}", "blocks": build_blocks(article)}


def post_article(
    webhook_url: str,
    article: Article,
    session: Optional[requests.Session] = None,
    timeout: float = 10.0,
) -> bool:
    """Post the article to the webhook. Returns True only on a 2xx response."""
    poster = session or requests
    try:
        response = poster.post(webhook_url, json=build_payload(article), timeout=timeout)
    except requests.RequestException as exc:
        logger.error("Failed to post %s to Slack: %s", article.link, exc)
        return False
    except Exception as exc:  # noqa: BLE001
        logger.error("Unexpected error posting %s to Slack: %s", article.link, exc)
        return False

    if not response.ok:
        logger.error(
            "Slack rejected %s with status %s: %s",
            article.link,
            response.status_code,
            (response.text or "")[:200],
        )
        return False

    return True
