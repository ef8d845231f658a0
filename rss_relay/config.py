"""Configuration loading for the relay."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from xml.etree import ElementTree as ET

from .classifier import DEFAULT_MODELS
from .feeds import DEFAULT_USER_AGENT, SUMMARY_LENGTH
from .models import CATEGORIES, CategoryConfig, Feed

logger = logging.getLogger(__name__)

DEFAULT_POLICIES = {
    "technology": (
        "The channel covers technology relevant to a wealth and asset management "
        "firm: fintech, software platforms, AI, cybersecurity, data and "
        "infrastructure. Consumer gadget reviews and entertainment news are not "
        "relevant."
    ),
    "corporate_finance": (
        "The channel covers corporate finance: mergers and acquisitions, "
        "private equity, capital raising, valuations, deal financing and "
        "restructuring. General market commentary and personal finance tips are "
        "not relevant."
    ),
    "eam_build_up": (
        "The channel covers the external asset manager (EAM) industry: "
        "independent wealth managers, multi-family offices, custody and booking "
        "centre relationships, regulation of independent advisers, and "
        "consolidation or acquisitions among EAMs. Retail banking news is not "
        "relevant."
    ),
}


def default_webhook_env(category: str) -> str:
    return f"SLACK_WEBHOOK_{category.upper()}"


@dataclass
class ClassifierConfig:
    provider: str = "openai"
    model: Optional[str] = None


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class CategorySettings:
    policy: str
    webhook_env: str


@dataclass
class AppConfig:
    feeds_file: str
    env_file: Optional[str] = None
    ledger_path: str = "posted.json"
    max_age_hours: float = 24.0
    retention_days: float = 7.0
    post_delay_seconds: float = 1.0
    interval_minutes: float = 30.0
    summary_length: int = SUMMARY_LENGTH
    request_timeout: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    categories: Dict[str, CategorySettings] = field(
        default_factory=lambda: {
            name: CategorySettings(DEFAULT_POLICIES[name], default_webhook_env(name))
            for name in CATEGORIES
        }
    )


def parse_feeds_config(path: str) -> Dict[str, List[Feed]]:
    """Parse the JSON feeds file into feeds keyed by category."""
    logger.info("Loading feed configuration from %s", path)
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Feeds file must contain a JSON object keyed by category.")

    unknown = sorted(set(payload) - set(CATEGORIES))
    if unknown:
        raise ValueError(f"Unknown categories in feeds file: {', '.join(unknown)}")

    feeds: Dict[str, List[Feed]] = {name: [] for name in CATEGORIES}
    for category, items in payload.items():
        if not isinstance(items, list):
            raise ValueError(f"Feeds for '{category}' must be a list.")
        for item in items:
            if not isinstance(item, dict) or not item.get("name") or not item.get("url"):
                raise ValueError(
                    f"Every feed in '{category}' needs a 'name' and a 'url'."
                )
            feeds[category].append(Feed(name=str(item["name"]), url=str(item["url"])))

    logger.info(
        "Loaded %d feed endpoints from configuration",
        sum(len(items) for items in feeds.values()),
    )
    return feeds


def _resolve_path(config_path: Path, value: str) -> str:
    """Paths in the config file are relative to the file itself."""
    return str((config_path.parent / value).resolve())


def parse_env_config(path: str) -> Dict[str, str]:
    """Read ``<variable name="...">value</variable>`` secrets from an XML file."""
    logger.info("Loading environment configuration from %s", path)
    root = ET.parse(path).getroot()
    return {
        var.attrib["name"]: var.text.strip()
        for var in root.iter("variable")
        if var.attrib.get("name") and var.text and var.text.strip()
    }


def _float(root: ET.Element, tag: str, default: float) -> float:
    text = root.findtext(tag)
    if text is None or not text.strip():
        return default
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"<{tag}> must be a number, got {text!r}")


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    feeds_node = root.find("feeds")
    if feeds_node is None or not feeds_node.text:
        raise ValueError("Config missing <feeds> path")

    config = AppConfig(feeds_file=_resolve_path(config_path, feeds_node.text.strip()))

    env_node = root.find("env")
    if env_node is not None and env_node.text:
        config.env_file = _resolve_path(config_path, env_node.text.strip())

    ledger_text = root.findtext("ledger")
    if ledger_text and ledger_text.strip():
        config.ledger_path = _resolve_path(config_path, ledger_text.strip())

    config.max_age_hours = _float(root, "max-age-hours", config.max_age_hours)
    config.retention_days = _float(root, "retention-days", config.retention_days)
    config.post_delay_seconds = _float(
        root, "post-delay-seconds", config.post_delay_seconds
    )
    config.interval_minutes = _float(root, "interval-minutes", config.interval_minutes)
    config.summary_length = int(_float(root, "summary-length", config.summary_length))
    config.request_timeout = _float(root, "request-timeout", config.request_timeout)
    config.user_agent = (root.findtext("user-agent") or "").strip() or config.user_agent

    if config.max_age_hours <= 0:
        raise ValueError("<max-age-hours> must be positive.")
    if config.summary_length < 3:
        raise ValueError("<summary-length> must be at least 3.")
    if config.interval_minutes <= 0:
        raise ValueError("<interval-minutes> must be positive.")

    clf_node = root.find("classifier")
    if clf_node is not None:
        config.classifier.provider = (
            clf_node.findtext("provider", "openai").strip().lower()
        )
        model = clf_node.findtext("model")
        config.classifier.model = model.strip() if model and model.strip() else None
        if config.classifier.provider not in DEFAULT_MODELS:
            raise ValueError(
                f"Unsupported classifier provider: {config.classifier.provider}"
            )

    log_node = root.find("logging")
    if log_node is not None:
        config.logging.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            config.logging.file = _resolve_path(config_path, log_file)

    categories_node = root.find("categories")
    if categories_node is not None:
        for node in categories_node.findall("category"):
            name = node.attrib.get("name")
            if name not in CATEGORIES:
                raise ValueError(f"Unknown category in config: {name}")
            settings = config.categories[name]
            policy = node.findtext("policy")
            if policy and policy.strip():
                settings.policy = " ".join(policy.split())
            webhook_env = node.findtext("webhook-env")
            if webhook_env and webhook_env.strip():
                settings.webhook_env = webhook_env.strip()

    return config


def resolve_classifier_key(
    provider: str, environ: Mapping[str, str] = os.environ
) -> Optional[str]:
    """Return the API key for the classifier provider, if one is set."""
    if provider == "gemini":
        return environ.get("GOOGLE_API_KEY") or environ.get("GEMINI_API_KEY") or None
    return environ.get("OPENAI_API_KEY") or None


def build_categories(
    app_config: AppConfig,
    feeds: Mapping[str, List[Feed]],
    environ: Mapping[str, str] = os.environ,
) -> List[CategoryConfig]:
    """Combine feeds, policies and webhook URLs in the fixed category order."""
    categories = []
    for name in CATEGORIES:
        settings = app_config.categories[name]
        categories.append(
            CategoryConfig(
                name=name,
                feeds=list(feeds.get(name, [])),
                webhook_url=environ.get(settings.webhook_env) or None,
                policy=settings.policy,
            )
        )
    return categories
