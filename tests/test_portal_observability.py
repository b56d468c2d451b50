import pytest

from portal.observability import GatewayMetrics


def test_track_counts_calls_failures_and_inflight():
    metrics = GatewayMetrics()

    with metrics.track("list_grades") as slot:
        assert metrics.inflight == 1
    with metrics.track("list_grades") as slot:
        slot["outcome"] = "error"
    with pytest.raises(RuntimeError):
        with metrics.track("search_courses"):
            raise RuntimeError("boom")

    snap = metrics.snapshot()
    assert snap["inflight"] == 0
    assert snap["calls_total"] == 3
    assert snap["failures_total"] == 2
    assert snap["calls_by_operation"] == {"list_grades": 2, "search_courses": 1}
    assert snap["failures_by_operation"] == {"list_grades": 1, "search_courses": 1}
    assert snap["latency_sec"]["sample_count"] == 3
    assert 0.0 <= snap["failure_rate"] <= 1.0


def test_inflight_never_negative():
    metrics = GatewayMetrics()
    metrics.dec_inflight()
    assert metrics.inflight == 0
