"""Jinja2 environment for rss_relay message templates."""

from __future__ import annotations

from importlib import resources

from jinja2 import Environment, FileSystemLoader

_ENV: Environment | None = None


def _slack_escape(value: str | None) -> str:
    """Escape the characters Slack reserves for control sequences in mrkdwn."""
    if not value:
        return ""
    return value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _slack_link_target(value: str | None) -> str:
    """Make a URL safe to embed in a ``<url|label>`` link."""
    if not value:
        return ""
    return value.replace("|", "%7C").replace(">", "%3E").replace("<", "%3C")


def get_environment() -> Environment:
    """Return a cached Jinja environment configured for package templates."""
    global _ENV
    if _ENV is None:
        template_dir = resources.files(__package__) / "templates"
        loader = FileSystemLoader(str(template_dir))
        _ENV = Environment(
            loader=loader,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )
        _ENV.filters["slack_escape"] = _slack_escape
        _ENV.filters["slack_link"] = _slack_link_target
    return _ENV
