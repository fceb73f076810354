"""
Derivation function tests. No database involved.
"""

from datetime import UTC, date, datetime

import pytest

from vantage.models.heartbeat import Confidence, Heartbeat, HealthSignal
from vantage.models.objective import ConfidenceTrend, Health
from vantage.services import scoring

TODAY = date(2026, 3, 2)


def hb(period_end, signal=HealthSignal.green, confidence=Confidence.high, sequence=1, assessment=None):
    return Heartbeat(
        period_start=period_end,
        period_end=period_end,
        health_signal=signal,
        confidence=confidence,
        sequence=sequence,
        created_at=datetime(2026, 3, 1, tzinfo=UTC),
        confidence_assessment=assessment,
    )


def signal(health=Health.green, confidence=Confidence.high, trend=ConfidenceTrend.stable, period_end=TODAY):
    return scoring.NodeSignal(
        health=health, confidence=confidence, trend=trend, period_end=period_end, cadence_days=7
    )


def test_no_signals_derive_nothing():
    assert scoring.derive([], TODAY) is None


def test_worst_of_health_and_trend():
    state = scoring.derive(
        [
            signal(Health.green, trend=ConfidenceTrend.improving),
            signal(Health.amber, trend=ConfidenceTrend.declining),
        ],
        TODAY,
    )

    assert state.health == Health.amber
    assert state.trend == ConfidenceTrend.declining


def test_risk_bounds():
    best = scoring.derive([signal()], TODAY)
    worst = scoring.derive(
        [signal(Health.red, Confidence.low, period_end=date(2026, 1, 1))], TODAY
    )

    assert best.risk_score == 0
    assert worst.risk_score == 100


@pytest.mark.parametrize(
    "worse",
    [
        {"health": Health.amber},
        {"confidence": Confidence.medium},
        {"period_end": date(2026, 2, 16)},
    ],
)
def test_risk_is_monotonic_in_each_input(worse):
    baseline = scoring.derive([signal()], TODAY).risk_score
    degraded = scoring.derive([signal(**worse)], TODAY).risk_score

    assert degraded > baseline


def test_overdue_ratio():
    assert scoring.overdue_ratio(date(2026, 2, 23), 7, TODAY) == 0.0
    assert scoring.overdue_ratio(date(2026, 2, 20), 7, TODAY) == pytest.approx(3 / 7)
    assert scoring.overdue_ratio(date(2025, 12, 1), 7, TODAY) == 1.0


def test_cadence_days_falls_back_to_default():
    assert scoring.cadence_days(None, "weekly") == 7
    assert scoring.cadence_days({"frequency": "monthly"}, "weekly") == 30
    assert scoring.cadence_days({"frequency": "hourly"}, "biweekly") == 14


def test_node_signal_uses_latest_period_then_sequence():
    history = [
        hb(date(2026, 2, 23), HealthSignal.red, sequence=1),
        hb(date(2026, 3, 1), HealthSignal.yellow, sequence=2),
        hb(date(2026, 3, 1), HealthSignal.green, sequence=3),
        hb(date(2026, 2, 9), HealthSignal.red, sequence=4),
    ]

    result = scoring.node_signal(history, 7)

    assert result.health == Health.green
    assert result.period_end == date(2026, 3, 1)


def test_trend_from_consecutive_confidence():
    improving = scoring.node_signal(
        [hb(date(2026, 2, 23), confidence=Confidence.low), hb(date(2026, 3, 1), confidence=Confidence.medium, sequence=2)],
        7,
    )
    single = scoring.node_signal([hb(date(2026, 3, 1))], 7)

    assert improving.trend == ConfidenceTrend.improving
    assert single.trend == ConfidenceTrend.stable


def test_assessment_outranks_plain_confidence():
    heartbeat = hb(
        date(2026, 3, 1),
        confidence=Confidence.high,
        assessment={"overall_confidence": "Low", "confidence_trend": "Improving"},
    )

    result = scoring.node_signal([heartbeat], 7)

    assert result.confidence == Confidence.low
    assert result.trend == ConfidenceTrend.improving


def test_own_confidence_drop_shows_under_a_riskier_child():
    child = scoring.derive([signal(Health.red)], TODAY)
    confident = scoring.derive([signal()], TODAY, [child])
    doubtful = scoring.derive([signal(confidence=Confidence.low)], TODAY, [child])

    assert child.risk_score == 60
    assert confident.risk_score == 60
    assert doubtful.risk_score == 70


def test_parent_takes_worst_child():
    children = [
        scoring.derive([signal(Health.amber)], TODAY),
        None,
        scoring.derive([signal(confidence=Confidence.medium)], TODAY),
    ]

    parent = scoring.derive([], TODAY, children)

    assert parent.risk_score == 30
    assert parent.health == Health.amber
    assert scoring.derive([], TODAY, [None, None]) is None
