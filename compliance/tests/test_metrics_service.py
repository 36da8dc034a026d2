"""
Tests for the Compliance Metrics Aggregator.
"""

import pytest
from datetime import datetime, timezone

from compliance.services.metrics_service import MetricsAggregator, risk_level
from compliance.services.override_service import OverrideCounters
from compliance.services.prediction_service import DutyStateSnapshot, ViolationPredictionService
from compliance.services.rules import default_rules


NOW = datetime(2025, 8, 1, 12, 0, tzinfo=timezone.utc)


def evaluate(driving=0.0, since_break=0.0, on_duty=0.0, weekly=0.0):
    state = DutyStateSnapshot(driving, since_break, on_duty, weekly)
    return ViolationPredictionService().evaluate(state, default_rules())


class TestMetricsAggregator:
    """Test metric derivation from predictions."""

    def setup_method(self):
        self.aggregator = MetricsAggregator()
        self.counters = OverrideCounters()

    def test_no_predictions(self):
        metrics = self.aggregator.recompute([], [], self.counters, now=NOW)

        assert metrics.violation_risk == 0
        assert metrics.compliance_score == 100
        assert metrics.hours_until_violation == 24
        assert metrics.time_to_next_violation == 24 * 60
        assert metrics.risk_level == 'Low'

    def test_single_warning(self):
        metrics = self.aggregator.recompute(evaluate(driving=10.5), [], self.counters, now=NOW)

        assert metrics.warning_predictions == 1
        assert metrics.violation_risk == 20
        assert metrics.compliance_score == 90
        assert metrics.hours_until_violation == pytest.approx(0.5)

    def test_critical_weighted_higher(self):
        metrics = self.aggregator.recompute(evaluate(since_break=8), [], self.counters, now=NOW)

        assert metrics.critical_predictions == 1
        assert metrics.violation_risk == 40
        assert metrics.compliance_score == 75
        assert metrics.hours_until_violation == 0
        assert metrics.risk_level == 'Medium'

    def test_scores_are_clamped(self):
        predictions = evaluate(driving=12, since_break=9, on_duty=15, weekly=72)

        metrics = self.aggregator.recompute(predictions, [], self.counters, now=NOW)

        assert metrics.violation_risk == 100
        assert metrics.compliance_score == 0
        assert metrics.risk_level == 'Critical'

    def test_counts_alerts_and_overrides(self):
        self.counters.record(NOW)
        sync_time = datetime(2025, 8, 1, 11, 0, tzinfo=timezone.utc)

        metrics = self.aggregator.recompute(
            [], ['a', 'b'], self.counters,
            rule_updates_count=3, last_rule_sync=sync_time, now=NOW,
        )

        assert metrics.active_alerts == 2
        assert metrics.overrides_used == 1
        assert metrics.overrides_this_week == 1
        assert metrics.rule_updates_count == 3
        assert metrics.to_dict()['last_rule_sync'] == sync_time.isoformat()

    def test_custom_default_horizon(self):
        metrics = MetricsAggregator(default_hours_until_violation=48).recompute(
            [], [], self.counters, now=NOW
        )

        assert metrics.hours_until_violation == 48


class TestRiskLevel:
    """Test risk level buckets."""

    @pytest.mark.parametrize('score,level', [
        (0, 'Low'), (29, 'Low'), (30, 'Medium'), (59, 'Medium'),
        (60, 'High'), (79, 'High'), (80, 'Critical'), (100, 'Critical'),
    ])
    def test_buckets(self, score, level):
        assert risk_level(score) == level
