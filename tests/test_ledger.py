import json
import stat
from datetime import timedelta

import pytest

from rss_relay import ledger

DAY_MS = 24 * 60 * 60 * 1000
NOW_MS = 1_700_000_000_000


def test_load_ledger_missing_file_returns_empty(tmp_path):
    assert ledger.load_ledger(str(tmp_path / "missing.json")) == {}


def test_load_ledger_corrupt_file_returns_empty(tmp_path, caplog):
    path = tmp_path / "posted.json"
    path.write_text("{not json", encoding="utf-8")

    caplog.set_level("WARNING")
    assert ledger.load_ledger(str(path)) == {}
    assert "unreadable" in caplog.text


def test_load_ledger_non_object_returns_empty(tmp_path):
    path = tmp_path / "posted.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert ledger.load_ledger(str(path)) == {}


def test_load_ledger_drops_invalid_timestamps(tmp_path):
    path = tmp_path / "posted.json"
    path.write_text(
        json.dumps({"a": 1, "b": "yesterday", "c": 2.0, "d": True}), encoding="utf-8"
    )

    assert ledger.load_ledger(str(path)) == {"a": 1, "c": 2}


def test_prune_keeps_only_entries_inside_window():
    data = {
        "fresh": NOW_MS - DAY_MS,
        "edge": NOW_MS - 7 * DAY_MS,
        "old": NOW_MS - 8 * DAY_MS,
    }

    pruned = ledger.prune(data, NOW_MS)

    assert pruned == {"fresh": NOW_MS - DAY_MS}
    assert "old" in data


def test_prune_is_idempotent():
    data = {str(i): NOW_MS - i * DAY_MS for i in range(10)}
    window = timedelta(days=3)

    once = ledger.prune(data, NOW_MS, window)

    assert ledger.prune(once, NOW_MS, window) == once


def test_save_then_load_preserves_entries(tmp_path):
    path = tmp_path / "nested" / "posted.json"

    ledger.save_ledger(str(path), {"https://example.com/a": NOW_MS})

    assert json.loads(path.read_text(encoding="utf-8")) == {
        "https://example.com/a": NOW_MS
    }
    assert ledger.load_ledger(str(path)) == {"https://example.com/a": NOW_MS}
    assert list(path.parent.glob("*.tmp")) == []


def test_save_overwrites_previous_contents(tmp_path):
    path = tmp_path / "posted.json"
    ledger.save_ledger(str(path), {"old": 1})

    ledger.save_ledger(str(path), {"new": 2})

    assert json.loads(path.read_text(encoding="utf-8")) == {"new": 2}


def test_save_failure_propagates(tmp_path):
    target = tmp_path / "posted.json"
    target.mkdir()

    with pytest.raises(OSError):
        ledger.save_ledger(str(target), {"a": 1})

    assert list(tmp_path.glob("*.tmp")) == []


def test_mark_handled_is_idempotent_and_updates_timestamp():
    data = {}

    ledger.mark_handled(data, "a", 1)
    ledger.mark_handled(data, "a", 2)

    assert data == {"a": 2}
    assert ledger.is_handled(data, "a")
    assert not ledger.is_handled(data, "b")


def _mode(path):
    return stat.S_IMODE(path.stat().st_mode)


def test_save_creates_world_readable_file(tmp_path):
    path = tmp_path / "posted.json"

    ledger.save_ledger(str(path), {"a": 1})

    assert _mode(path) == ledger.DEFAULT_MODE


def test_save_keeps_existing_permissions(tmp_path):
    path = tmp_path / "posted.json"
    path.write_text("{}", encoding="utf-8")
    path.chmod(0o640)

    ledger.save_ledger(str(path), {"a": 1})

    assert _mode(path) == 0o640
