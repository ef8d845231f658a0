"""Shared data models for rss_relay."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

CATEGORIES = ("technology", "corporate_finance", "eam_build_up")


@dataclass(frozen=True)
class Feed:
    """A single RSS feed endpoint."""

    name: str
    url: str


@dataclass
class CategoryConfig:
    """Feeds, destination and relevance policy for one category."""

    name: str
    feeds: List[Feed] = field(default_factory=list)
    webhook_url: Optional[str] = None
    policy: str = ""


@dataclass
class Article:
    """Normalised feed entry ready for classification and publishing."""

    title: str
    link: str
    source: str
    summary: str
    image_url: Optional[str] = None
