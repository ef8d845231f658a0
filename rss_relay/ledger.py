"""Persistent record of article links that were already handled."""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping

logger = logging.getLogger(__name__)

Ledger = Dict[str, int]

RETENTION_WINDOW = timedelta(days=7)
DEFAULT_MODE = 0o644


def load_ledger(path: str) -> Ledger:
    """Return the stored ledger, or an empty one if the file is missing or unreadable."""
    location = Path(path)
    if not location.exists():
        logger.info("No ledger found at %s; starting empty", location)
        return {}

    try:
        payload = json.loads(location.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ledger at %s is unreadable (%s); starting empty", location, exc)
        return {}

    if not isinstance(payload, dict):
        logger.warning("Ledger at %s is not a JSON object; starting empty", location)
        return {}

    ledger: Ledger = {}
    for link, timestamp in payload.items():
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            logger.debug("Dropping ledger entry with invalid timestamp: %s", link)
            continue
        ledger[link] = int(timestamp)

    logger.info("Loaded %d ledger entries from %s", len(ledger), location)
    return ledger


def prune(
    ledger: Mapping[str, int], now_ms: int, retention: timedelta = RETENTION_WINDOW
) -> Ledger:
    """Return entries newer than ``now_ms - retention``."""
    cutoff = now_ms - int(retention.total_seconds() * 1000)
    return {link: ts for link, ts in ledger.items() if ts > cutoff}


def save_ledger(path: str, ledger: Mapping[str, int]) -> None:
    """Write the ledger, replacing the previous file.

    The data is written to a temporary file next to the target and then moved
    into place. Errors are not caught here.
    """
    location = Path(path)
    if location.parent and not location.parent.exists():
        location.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=location.parent,
        prefix=f".{location.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        json.dump(dict(ledger), handle, indent=2, ensure_ascii=False)
        handle.flush()
        temp_path = Path(handle.name)

    try:
        os.chmod(temp_path, _target_mode(location))
        temp_path.replace(location)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
    logger.info("Saved %d ledger entries to %s", len(ledger), location)


def _target_mode(location: Path) -> int:
    try:
        return stat.S_IMODE(location.stat().st_mode)
    except FileNotFoundError:
        return DEFAULT_MODE


def mark_handled(ledger: Ledger, link: str, now_ms: int) -> None:
    ledger[link] = now_ms


def is_handled(ledger: Mapping[str, int], link: str) -> bool:
    return link in ledger
