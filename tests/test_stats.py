"""
Tests for the statistics aggregator
"""

import pytest

from probekit.models import ProbeOutcome, ProbeStatus
from probekit.stats import loss_rate, population_stddev, summarize_outcomes, summarize_slots


def _outcome(sequence, latency):
    if latency is None:
        return ProbeOutcome(sequence, "target", "192.0.2.1", ProbeStatus.TIMEOUT)
    return ProbeOutcome(sequence, "target", "192.0.2.1", ProbeStatus.SUCCESS, latency_ms=latency)


class TestSummarizeOutcomes:
    """Test ping statistics"""

    def test_mixed_run(self):
        outcomes = [_outcome(i + 1, v) for i, v in enumerate([10, 12, None, 11, 13])]
        stats = summarize_outcomes(outcomes)

        assert stats.sent == 5
        assert stats.received == 4
        assert stats.lost == 1
        assert stats.loss_rate == pytest.approx(20.0)
        assert stats.avg_ms == pytest.approx(11.5)
        assert stats.min_ms == 10
        assert stats.max_ms == 13
        assert stats.stddev_ms == pytest.approx(1.118034, rel=1e-5)

    def test_single_success_has_zero_stddev(self):
        stats = summarize_outcomes([_outcome(1, 42.0)])
        assert stats.stddev_ms == 0.0
        assert stats.avg_ms == 42.0

    def test_no_successes(self):
        stats = summarize_outcomes([_outcome(1, None), _outcome(2, None)])
        assert stats.received == 0
        assert stats.lost == 2
        assert stats.loss_rate == 100.0
        assert stats.avg_ms == 0.0
        assert stats.stddev_ms == 0.0
        assert stats.min_ms is None
        assert stats.max_ms is None

    def test_empty(self):
        stats = summarize_outcomes([])
        assert stats.sent == 0
        assert stats.loss_rate == 0.0

    def test_errors_count_as_lost(self):
        error = ProbeOutcome(1, "target", "192.0.2.1", ProbeStatus.ERROR, reason="boom")
        stats = summarize_outcomes([error, _outcome(2, 5.0)])
        assert stats.sent == stats.received + stats.lost
        assert stats.lost == 1


class TestSummarizeSlots:
    """Test per-hop reduction"""

    def test_partial_hop(self):
        summary = summarize_slots([20.0, None, 22.0])
        assert summary.sent == 3
        assert summary.received == 2
        assert summary.loss_rate == pytest.approx(100 / 3)
        assert summary.avg_ms == pytest.approx(21.0)
        assert summary.min_ms == 20.0
        assert summary.max_ms == 22.0

    def test_all_lost(self):
        summary = summarize_slots([None, None, None])
        assert summary.received == 0
        assert summary.loss_rate == 100.0
        assert summary.avg_ms is None
        assert summary.stddev_ms == 0.0


def test_population_stddev():
    assert population_stddev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
    assert population_stddev([]) == 0.0


def test_loss_rate():
    assert loss_rate(0, 0) == 0.0
    assert loss_rate(4, 1) == 25.0
