"""
Tests for the ORM-backed Compliance Store and engine persistence.
"""

import pytest
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from compliance.models import (
    AuditRecordImmutable,
    ComplianceMetricsRecord,
    ComplianceRule,
    RuleUpdateRecord,
    ViolationOverrideRecord,
)
from compliance.services.compliance_engine import ComplianceEngine
from compliance.services.config import ComplianceConfig
from compliance.services.metrics_service import MetricsAggregator
from compliance.services.override_service import (
    OverrideCounters,
    SupervisorApproval,
    ViolationOverride,
)
from compliance.services.prediction_service import DutyStateSnapshot
from compliance.services.rules import (
    ChangeType,
    ImpactLevel,
    RuleUpdateNotification,
    default_rules,
)
from compliance.services.store import ComplianceStore


NOW = datetime(2025, 8, 1, 12, 0, tzinfo=timezone.utc)


def make_override(override_id='override-1', timestamp=NOW, approval=None):
    return ViolationOverride(
        override_id=override_id,
        timestamp=timestamp,
        prediction_id='prediction-hos-30min-break-1',
        rule_id='hos-30min-break',
        reason='Shipper running late',
        driver_id='driver-42',
        risk_acknowledged=True,
        estimated_fine_accepted=True,
        supervisor_approval=approval,
        documented_in_trip=True,
        trip_id='trip-9',
    )


def make_notification(i):
    return RuleUpdateNotification(
        notification_id=f'update-{i}',
        rule_id='hos-driving-limit',
        change_type=ChangeType.MODIFIED,
        effective_date=date(2025, 9, 1),
        summary=f'Update {i}',
        impact_level=ImpactLevel.MEDIUM,
        parameters={'threshold': 11.0, 'warning_lead_hours': 0.5},
    )


@pytest.mark.django_db
class TestComplianceStore:
    """Test dataclass <-> model mapping."""

    def setup_method(self):
        self.store = ComplianceStore(max_rule_updates=3)

    def test_rules_round_trip(self):
        rules = default_rules()

        self.store.save_rules(rules)
        loaded = {r.rule_id: r for r in self.store.load_rules()}

        assert ComplianceRule.objects.count() == 4
        for rule in rules:
            assert loaded[rule.rule_id].content_key() == rule.content_key()

    def test_save_rules_updates_in_place(self):
        rule = default_rules()[0]
        self.store.save_rules([rule])

        self.store.save_rules([replace(rule, parameters={'threshold': 10.0, 'warning_lead_hours': 0.5})])

        assert ComplianceRule.objects.count() == 1
        assert ComplianceRule.objects.get(rule_id=rule.rule_id).parameters['threshold'] == 10.0

    def test_rule_update_history_is_capped(self):
        self.store.record_rule_updates([make_notification(i) for i in range(5)])

        assert RuleUpdateRecord.objects.count() == 3
        loaded = self.store.load_rule_updates()
        assert [n.notification_id for n in loaded] == ['update-4', 'update-3', 'update-2']
        assert loaded[0].parameters == {'threshold': 11.0, 'warning_lead_hours': 0.5}

    def test_metrics_single_row(self):
        metrics = MetricsAggregator().recompute([], [], OverrideCounters(), last_rule_sync=NOW, now=NOW)

        self.store.save_metrics(metrics)
        self.store.save_metrics(metrics)

        assert ComplianceMetricsRecord.objects.count() == 1
        assert self.store.load_last_sync() == NOW

    def test_load_last_sync_without_metrics(self):
        assert self.store.load_last_sync() is None

    def test_rule_updates_count_from_metrics_row(self):
        assert self.store.load_rule_updates_count() == 0

        metrics = MetricsAggregator().recompute([], [], OverrideCounters(), rule_updates_count=14, now=NOW)
        self.store.save_metrics(metrics)

        assert self.store.load_rule_updates_count() == 14

    def test_record_override(self):
        approval = SupervisorApproval('sup-7', NOW, notes='Approved by dispatch')

        record = self.store.record_override(make_override(approval=approval))

        assert record.supervisor_id == 'sup-7'
        assert record.trip_id == 'trip-9'
        assert self.store.count_overrides() == 1

    def test_override_timestamps_since(self):
        self.store.record_override(make_override('override-old', NOW - timedelta(days=9)))
        self.store.record_override(make_override('override-new', NOW - timedelta(days=1)))

        timestamps = self.store.load_override_timestamps(since=NOW - timedelta(days=7))

        assert timestamps == [NOW - timedelta(days=1)]


@pytest.mark.django_db
class TestOverrideAuditImmutability:
    """Test that audit rows cannot be changed or removed."""

    def test_update_refused(self):
        record = ComplianceStore().record_override(make_override())
        record.reason = 'Edited reason'

        with pytest.raises(AuditRecordImmutable):
            record.save()

        assert ViolationOverrideRecord.objects.get().reason == 'Shipper running late'

    def test_delete_refused(self):
        record = ComplianceStore().record_override(make_override())

        with pytest.raises(AuditRecordImmutable):
            record.delete()

        assert ViolationOverrideRecord.objects.count() == 1

    def test_bulk_update_refused(self):
        ComplianceStore().record_override(make_override())

        with pytest.raises(AuditRecordImmutable):
            ViolationOverrideRecord.objects.filter(driver_id='driver-42').update(reason='Edited reason')

        assert ViolationOverrideRecord.objects.get().reason == 'Shipper running late'

    def test_bulk_delete_refused(self):
        ComplianceStore().record_override(make_override())

        with pytest.raises(AuditRecordImmutable):
            ViolationOverrideRecord.objects.all().delete()

        assert ViolationOverrideRecord.objects.count() == 1


@pytest.mark.django_db
class TestEnginePersistence:
    """Test that the engine restores state across restarts."""

    def make_engine(self):
        return ComplianceEngine(
            config=ComplianceConfig(),
            store=ComplianceStore(),
            clock=lambda: NOW,
        )

    def test_first_start_seeds_default_rules(self):
        self.make_engine()

        assert ComplianceRule.objects.count() == 4
        assert ComplianceMetricsRecord.objects.count() == 0

    def test_stored_rules_win_over_defaults(self):
        store = ComplianceStore()
        rule = default_rules()[0]
        store.save_rules([replace(rule, parameters={'threshold': 10.0, 'warning_lead_hours': 0.5})])

        engine = self.make_engine()

        assert len(engine.list_rules()) == 1
        assert engine.registry.lookup(rule.rule_id).threshold == 10.0

    def test_override_survives_restart(self):
        engine = self.make_engine()
        prediction = engine.evaluate(DutyStateSnapshot(0, 8, 0, 0))[0]
        engine.override(
            prediction.prediction_id, reason='Shipper running late',
            driver_id='driver-42', risk_acknowledged=True, estimated_fine_accepted=True,
        )

        restarted = self.make_engine()

        assert ViolationOverrideRecord.objects.count() == 1
        metrics = restarted.get_metrics()
        assert metrics.overrides_used == 1
        assert metrics.overrides_this_week == 1
        assert ComplianceMetricsRecord.objects.get().overrides_used == 1

    def test_rule_update_count_survives_restart(self):
        engine = self.make_engine()
        for i in range(12):
            engine.apply_rule_update(make_notification(i))

        restarted = self.make_engine()

        assert len(restarted.list_rule_updates()) == 10
        assert restarted.get_metrics().rule_updates_count == 12
