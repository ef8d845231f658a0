"""Command-line interface for the rss_relay application."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import pprint
from pathlib import Path
from typing import List, Mapping, Optional
from xml.etree import ElementTree as ET

from .config import (
    AppConfig,
    build_categories,
    parse_app_config,
    parse_env_config,
    parse_feeds_config,
    resolve_classifier_key,
)
from .classifier import RelevanceClassifier, build_backend
from .runner import RunConfig, execute
from .scheduler import run_forever

logger = logging.getLogger(__name__)

MASK = "***MASKED***"


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Relay new RSS articles to per-category Slack channels."
    )
    parser.add_argument(
        "--config",
        default="configs/config.xml",
        help="Path to the main configuration XML file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass and exit instead of polling on a schedule.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Classify articles but do not post to Slack or save the ledger.",
    )
    return parser


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# HTTP client libraries log every request at DEBUG.
NOISY_LOGGERS = ("urllib3", "httpx", "openai", "google_genai")


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Send log records to stderr and, when given, to a UTF-8 log file."""
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.debug(
        "Logging at %s to %s", level_name.upper(), log_file or "the console only"
    )


def build_run_config(
    app_config: AppConfig,
    dry_run: bool = False,
    environ: Mapping[str, str] = os.environ,
) -> RunConfig:
    """Assemble the immutable per-process run configuration."""
    feeds = parse_feeds_config(app_config.feeds_file)
    provider = app_config.classifier.provider
    return RunConfig(
        categories=build_categories(app_config, feeds, environ),
        ledger_path=environ.get("DATA_PATH") or app_config.ledger_path,
        max_age_hours=app_config.max_age_hours,
        retention_days=app_config.retention_days,
        post_delay_seconds=app_config.post_delay_seconds,
        summary_length=app_config.summary_length,
        request_timeout=app_config.request_timeout,
        user_agent=app_config.user_agent,
        classifier_provider=provider,
        classifier_model=app_config.classifier.model,
        classifier_api_key=resolve_classifier_key(provider, environ),
        dry_run=dry_run,
    )


def describe_config(config: RunConfig) -> str:
    config_dict = dataclasses.asdict(config)
    if config_dict.get("classifier_api_key"):
        config_dict["classifier_api_key"] = MASK
    for category in config_dict["categories"]:
        if category.get("webhook_url"):
            category["webhook_url"] = MASK
        category["feeds"] = [feed["name"] for feed in category["feeds"]]
    return pprint.pformat(config_dict)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config)

        if app_config.env_file:
            env_vars = parse_env_config(app_config.env_file)
            os.environ.update(env_vars)

        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file

        configure_logging(log_level, log_file)

        config = build_run_config(app_config, dry_run=args.dry_run)
        logger.info("Active Configuration:\n%s", describe_config(config))
        classifier = RelevanceClassifier(
            build_backend(
                config.classifier_provider,
                config.classifier_api_key,
                config.classifier_model,
            )
        )
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, OSError, ET.ParseError) as exc:
        logger.error("%s", exc)
        return 1

    if args.once:
        try:
            execute(config, classifier=classifier)
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error during execution.")
            return 1
        return 0

    try:
        run_forever(
            lambda: execute(config, classifier=classifier),
            app_config.interval_minutes,
        )
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down.")
    return 0
