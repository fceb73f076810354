"""
Health, risk and confidence derivation.

Pure functions over heartbeats; the heartbeat service walks a tree bottom-up,
feeding each node its own latest heartbeat and its children's derived state,
and writes the result back.

Risk of a single node signal::

    0.60 * health + 0.25 * confidence + 0.15 * overdue

with each component on a 0-100 scale. Every component only grows as health,
confidence or recency get worse. A node combines its own risk with its worst
child's as a probabilistic union, so the score is monotonic in each input,
bounded to [0, 100], and a worse heartbeat on the node itself always shows
in its own score.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from vantage.models.heartbeat import Confidence, Heartbeat, HealthSignal
from vantage.models.objective import ConfidenceTrend, Health

HEALTH_BY_SIGNAL: dict[HealthSignal, Health] = {
    HealthSignal.green: Health.green,
    HealthSignal.yellow: Health.amber,
    HealthSignal.red: Health.red,
}

HEALTH_SEVERITY: dict[Health, int] = {Health.green: 0, Health.amber: 1, Health.red: 2}
TREND_SEVERITY: dict[ConfidenceTrend, int] = {
    ConfidenceTrend.improving: 0,
    ConfidenceTrend.stable: 1,
    ConfidenceTrend.declining: 2,
}
CONFIDENCE_RANK: dict[Confidence, int] = {
    Confidence.low: 0,
    Confidence.medium: 1,
    Confidence.high: 2,
}

HEALTH_RISK: dict[Health, float] = {Health.green: 0.0, Health.amber: 50.0, Health.red: 100.0}
CONFIDENCE_RISK: dict[Confidence, float] = {
    Confidence.high: 0.0,
    Confidence.medium: 40.0,
    Confidence.low: 100.0,
}

WEIGHT_HEALTH = 0.60
WEIGHT_CONFIDENCE = 0.25
WEIGHT_OVERDUE = 0.15

CADENCE_DAYS: dict[str, int] = {
    "weekly": 7,
    "biweekly": 14,
    "monthly": 30,
    "quarterly": 91,
}


@dataclass(frozen=True)
class NodeSignal:
    """What one heartbeat-bearing node contributes to its ancestors."""

    health: Health
    confidence: Confidence
    trend: ConfidenceTrend
    period_end: date
    cadence_days: int


@dataclass(frozen=True)
class DerivedState:
    health: Health
    risk_score: int
    trend: ConfidenceTrend
    last_heartbeat_on: date


def cadence_days(cadence: dict[str, Any] | None, default_frequency: str) -> int:
    frequency = (cadence or {}).get("frequency") or default_frequency
    return CADENCE_DAYS.get(frequency, CADENCE_DAYS[default_frequency])


def worst_health(values: Iterable[Health]) -> Health:
    return max(values, key=HEALTH_SEVERITY.__getitem__, default=Health.green)


def worst_trend(values: Iterable[ConfidenceTrend]) -> ConfidenceTrend:
    return max(values, key=TREND_SEVERITY.__getitem__, default=ConfidenceTrend.stable)


def ordered(heartbeats: Iterable[Heartbeat]) -> list[Heartbeat]:
    """Oldest first; the last element is the node's latest heartbeat."""
    return sorted(heartbeats, key=lambda hb: (hb.period_end, hb.sequence, hb.created_at))


def effective_confidence(heartbeat: Heartbeat) -> Confidence:
    """A key result's structured assessment outranks the plain confidence field."""
    assessment = heartbeat.confidence_assessment or {}
    overall = assessment.get("overall_confidence")
    if overall:
        return Confidence(overall)
    return heartbeat.confidence


def confidence_trend(latest: Heartbeat, previous: Heartbeat | None) -> ConfidenceTrend:
    assessment = latest.confidence_assessment or {}
    if assessment.get("confidence_trend"):
        return ConfidenceTrend(assessment["confidence_trend"])
    if previous is None:
        return ConfidenceTrend.stable
    delta = CONFIDENCE_RANK[effective_confidence(latest)] - CONFIDENCE_RANK[effective_confidence(previous)]
    if delta > 0:
        return ConfidenceTrend.improving
    if delta < 0:
        return ConfidenceTrend.declining
    return ConfidenceTrend.stable


def node_signal(heartbeats: Sequence[Heartbeat], interval_days: int) -> NodeSignal | None:
    history = ordered(heartbeats)
    if not history:
        return None
    latest = history[-1]
    previous = history[-2] if len(history) > 1 else None
    return NodeSignal(
        health=HEALTH_BY_SIGNAL[latest.health_signal],
        confidence=effective_confidence(latest),
        trend=confidence_trend(latest, previous),
        period_end=latest.period_end,
        cadence_days=interval_days,
    )


def overdue_ratio(period_end: date, interval_days: int, today: date) -> float:
    """0 while within cadence, growing to 1 once a full extra interval has passed."""
    overdue_days = (today - period_end).days - interval_days
    if overdue_days <= 0:
        return 0.0
    return min(1.0, overdue_days / interval_days)


def signal_risk(signal: NodeSignal, today: date) -> float:
    return (
        WEIGHT_HEALTH * HEALTH_RISK[signal.health]
        + WEIGHT_CONFIDENCE * CONFIDENCE_RISK[signal.confidence]
        + WEIGHT_OVERDUE * 100.0 * overdue_ratio(signal.period_end, signal.cadence_days, today)
    )


def combine_risk(own: float, children: float) -> float:
    """
    Union of a node's own risk with its worst child's.

    Neither side can lower the result, and any rise in the node's own risk
    raises it unless the children already sit at 100.
    """
    return own + children - own * children / 100.0


def derive(
    signals: Sequence[NodeSignal],
    today: date,
    children: Sequence[DerivedState | None] = (),
) -> DerivedState | None:
    """
    Derive a node's state from its own signals and its children's states.

    ``None`` when neither the node nor any child has a heartbeat.
    """
    states = [c for c in children if c is not None]
    if not signals and not states:
        return None
    own = max((signal_risk(s, today) for s in signals), default=0.0)
    worst_child = max((float(c.risk_score) for c in states), default=0.0)
    risk = combine_risk(own, worst_child)
    return DerivedState(
        health=worst_health([s.health for s in signals] + [c.health for c in states]),
        risk_score=max(0, min(100, round(risk))),
        trend=worst_trend([s.trend for s in signals] + [c.trend for c in states]),
        last_heartbeat_on=max(
            [s.period_end for s in signals] + [c.last_heartbeat_on for c in states]
        ),
    )
