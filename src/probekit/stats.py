"""
Statistics aggregation.

Summaries are recomputed from the full outcome list on every call
rather than updated incrementally.
"""

import statistics
from dataclasses import dataclass
from typing import Iterable, Sequence

from probekit.models import ProbeOutcome


@dataclass(frozen=True)
class PingStatistics:
    """Summary of a ping run. Latencies are in milliseconds."""
    sent: int = 0
    received: int = 0
    lost: int = 0
    loss_rate: float = 0.0       # percent, 0-100
    min_ms: float | None = None  # None until something is received
    avg_ms: float = 0.0
    max_ms: float | None = None
    stddev_ms: float = 0.0


@dataclass(frozen=True)
class LatencySummary:
    """Loss and latency reduction over a fixed-size slot array."""
    sent: int
    received: int
    loss_rate: float
    min_ms: float | None
    avg_ms: float | None
    max_ms: float | None
    stddev_ms: float


def loss_rate(sent: int, lost: int) -> float:
    """Lost packets as a percentage of sent, 0 when nothing was sent."""
    if sent <= 0:
        return 0.0
    return lost / sent * 100


def population_stddev(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for fewer than two samples."""
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


def summarize_outcomes(outcomes: Iterable[ProbeOutcome]) -> PingStatistics:
    """Fold a ping outcome stream into statistics."""
    outcomes = list(outcomes)
    latencies = [o.latency_ms for o in outcomes if o.is_success and o.latency_ms is not None]

    sent = len(outcomes)
    received = len(latencies)
    lost = sent - received

    if not latencies:
        return PingStatistics(sent=sent, received=0, lost=lost, loss_rate=loss_rate(sent, lost))

    return PingStatistics(
        sent=sent,
        received=received,
        lost=lost,
        loss_rate=loss_rate(sent, lost),
        min_ms=min(latencies),
        avg_ms=sum(latencies) / received,
        max_ms=max(latencies),
        stddev_ms=population_stddev(latencies),
    )


def summarize_slots(slots: Sequence[float | None]) -> LatencySummary:
    """Reduce one traceroute hop's probe slots; None marks no reply."""
    latencies = [s for s in slots if s is not None]
    sent = len(slots)
    received = len(latencies)

    return LatencySummary(
        sent=sent,
        received=received,
        loss_rate=loss_rate(sent, sent - received),
        min_ms=min(latencies) if latencies else None,
        avg_ms=sum(latencies) / received if latencies else None,
        max_ms=max(latencies) if latencies else None,
        stddev_ms=population_stddev(latencies),
    )
