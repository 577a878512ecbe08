"""Tests for EmitterStats."""

from __future__ import annotations

import pytest

from webemitter.utils.stats import EmitterStats

pytestmark = [pytest.mark.unit]


def test_counters_and_failures():
    """Failures bump <source>_failures and are kept in order."""
    stats = EmitterStats(max_failures=2)
    stats.increment("syncs")
    stats.increment("syncs", 2)
    stats.record_failure("remote_emit", RuntimeError("a"), target="http://a:1")
    stats.record_failure("remote_emit", "b")
    stats.record_failure("probe", "c", target="http://c:1")

    snapshot = stats.snapshot()
    assert snapshot["counters"] == {"syncs": 3, "remote_emit_failures": 2, "probe_failures": 1}
    assert [f["error"] for f in snapshot["recent_failures"]] == ["b", "c"]
    assert snapshot["recent_failures"][1]["target"] == "http://c:1"


def test_snapshot_is_a_copy():
    """Mutating a snapshot does not touch the statistics."""
    stats = EmitterStats()
    stats.increment("x")
    stats.snapshot()["counters"]["x"] = 100
    assert stats.counters["x"] == 1
