"""
Compliance Metrics Aggregator.

Derives display scores from the current predictions and alerts. Metrics are
recomputed, never mutated field by field.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from .alert_service import Alert
from .override_service import OverrideCounters
from .prediction_service import PredictionSeverity, ViolationPrediction

# Risk rises with critical predictions faster than with warnings.
CRITICAL_RISK_WEIGHT = 40
WARNING_RISK_WEIGHT = 20
CRITICAL_SCORE_PENALTY = 25
WARNING_SCORE_PENALTY = 10


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def risk_level(violation_risk: float) -> str:
    """Bucket a 0-100 risk score into Low / Medium / High / Critical."""
    if violation_risk >= 80:
        return 'Critical'
    if violation_risk >= 60:
        return 'High'
    if violation_risk >= 30:
        return 'Medium'
    return 'Low'


@dataclass(frozen=True)
class ComplianceMetrics:
    violation_risk: float
    compliance_score: float
    hours_until_violation: float
    rule_updates_count: int
    last_rule_sync: Optional[datetime]
    active_alerts: int
    overrides_used: int
    overrides_this_week: int
    critical_predictions: int = 0
    warning_predictions: int = 0

    @property
    def risk_level(self) -> str:
        return risk_level(self.violation_risk)

    @property
    def time_to_next_violation(self) -> float:
        """Minutes until the nearest predicted violation."""
        return self.hours_until_violation * 60

    def to_dict(self) -> Dict:
        return {
            'violation_risk': self.violation_risk,
            'compliance_score': self.compliance_score,
            'risk_level': self.risk_level,
            'hours_until_violation': round(self.hours_until_violation, 2),
            'time_to_next_violation': round(self.time_to_next_violation, 1),
            'rule_updates_count': self.rule_updates_count,
            'last_rule_sync': self.last_rule_sync.isoformat() if self.last_rule_sync else None,
            'active_alerts': self.active_alerts,
            'overrides_used': self.overrides_used,
            'overrides_this_week': self.overrides_this_week,
            'critical_predictions': self.critical_predictions,
            'warning_predictions': self.warning_predictions,
        }


class MetricsAggregator:
    """Recomputes ComplianceMetrics from engine state."""

    def __init__(self, default_hours_until_violation: float = 24.0):
        self.default_hours_until_violation = default_hours_until_violation

    def recompute(
        self,
        predictions: Iterable[ViolationPrediction],
        alerts: Iterable[Alert],
        counters: OverrideCounters,
        rule_updates_count: int = 0,
        last_rule_sync: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> ComplianceMetrics:
        now = now or datetime.now(timezone.utc)
        predictions = list(predictions)

        critical = sum(1 for p in predictions if p.severity == PredictionSeverity.CRITICAL)
        warning = sum(1 for p in predictions if p.severity == PredictionSeverity.WARNING)

        violation_risk = _clamp(critical * CRITICAL_RISK_WEIGHT + warning * WARNING_RISK_WEIGHT)
        compliance_score = _clamp(
            100 - critical * CRITICAL_SCORE_PENALTY - warning * WARNING_SCORE_PENALTY
        )

        if predictions:
            hours_until_violation = min(p.time_to_violation for p in predictions) / 60
        else:
            hours_until_violation = self.default_hours_until_violation

        return ComplianceMetrics(
            violation_risk=violation_risk,
            compliance_score=compliance_score,
            hours_until_violation=hours_until_violation,
            rule_updates_count=rule_updates_count,
            last_rule_sync=last_rule_sync,
            active_alerts=len(list(alerts)),
            overrides_used=counters.overrides_used,
            overrides_this_week=counters.this_week(now),
            critical_predictions=critical,
            warning_predictions=warning,
        )
