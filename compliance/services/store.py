"""
Compliance Store.

Maps engine dataclasses to and from the Django models. The engine owns the
in-memory state; the store only persists the parts that must survive a
restart (rules, rule-update history, metrics, override audit trail).
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from django.db import transaction

from ..models import (
    ComplianceMetricsRecord,
    ComplianceRule,
    RuleUpdateRecord,
    ViolationOverrideRecord,
)
from .metrics_service import ComplianceMetrics
from .override_service import ViolationOverride
from .rules import (
    ChangeType,
    DutyMetric,
    ImpactLevel,
    Rule,
    RuleCategory,
    RuleSeverity,
    RuleUpdateNotification,
)

logger = logging.getLogger(__name__)


class ComplianceStore:
    """ORM-backed persistence for the compliance engine."""

    def __init__(self, max_rule_updates: int = 10):
        self.max_rule_updates = max_rule_updates

    # =========================================================================
    # Rules
    # =========================================================================

    def load_rules(self) -> List[Rule]:
        return [self._rule_from_record(record) for record in ComplianceRule.objects.all()]

    @transaction.atomic
    def save_rules(self, rules: Iterable[Rule]) -> None:
        for rule in rules:
            ComplianceRule.objects.update_or_create(
                rule_id=rule.rule_id,
                defaults={
                    'category': rule.category.value,
                    'title': rule.title,
                    'description': rule.description,
                    'source': rule.source,
                    'severity': rule.severity.value,
                    'effective_date': rule.effective_date,
                    'last_updated': rule.last_updated,
                    'parameters': dict(rule.parameters),
                    'metric': rule.metric.value if rule.metric else '',
                    'can_override': rule.can_override,
                    'deprecated': rule.deprecated,
                    'applicable_vehicle_types': list(rule.applicable_vehicle_types),
                },
            )

    def _rule_from_record(self, record: ComplianceRule) -> Rule:
        return Rule(
            rule_id=record.rule_id,
            category=RuleCategory(record.category),
            title=record.title,
            description=record.description,
            source=record.source,
            severity=RuleSeverity(record.severity),
            effective_date=record.effective_date,
            last_updated=record.last_updated,
            parameters=dict(record.parameters),
            metric=DutyMetric(record.metric) if record.metric else None,
            can_override=record.can_override,
            deprecated=record.deprecated,
            applicable_vehicle_types=tuple(record.applicable_vehicle_types),
        )

    # =========================================================================
    # Rule update history
    # =========================================================================

    def load_rule_updates(self, limit: Optional[int] = None) -> List[RuleUpdateNotification]:
        """Newest first."""
        records = RuleUpdateRecord.objects.all()[:limit or self.max_rule_updates]
        return [
            RuleUpdateNotification(
                notification_id=record.notification_id,
                rule_id=record.rule_id,
                change_type=ChangeType(record.change_type),
                effective_date=record.effective_date,
                summary=record.summary,
                impact_level=ImpactLevel(record.impact_level),
                action_required=record.action_required,
                deadline=record.deadline,
                parameters=record.parameters,
            )
            for record in records
        ]

    @transaction.atomic
    def record_rule_updates(self, notifications: Iterable[RuleUpdateNotification]) -> None:
        """Append notifications and prune the history back to its cap."""
        created = 0
        for notification in notifications:
            RuleUpdateRecord.objects.create(
                notification_id=notification.notification_id,
                rule_id=notification.rule_id,
                change_type=notification.change_type.value,
                effective_date=notification.effective_date,
                summary=notification.summary,
                impact_level=notification.impact_level.value,
                action_required=notification.action_required,
                deadline=notification.deadline,
                parameters=notification.parameters,
            )
            created += 1
        if not created:
            return

        keep = RuleUpdateRecord.objects.values_list('id', flat=True)[:self.max_rule_updates]
        pruned, _ = RuleUpdateRecord.objects.exclude(id__in=list(keep)).delete()
        if pruned:
            logger.debug(f"Pruned {pruned} rule update record(s) beyond cap")

    # =========================================================================
    # Metrics
    # =========================================================================

    def save_metrics(self, metrics: ComplianceMetrics) -> None:
        ComplianceMetricsRecord.objects.update_or_create(
            pk=1,
            defaults={
                'violation_risk': metrics.violation_risk,
                'compliance_score': metrics.compliance_score,
                'hours_until_violation': metrics.hours_until_violation,
                'rule_updates_count': metrics.rule_updates_count,
                'last_rule_sync': metrics.last_rule_sync,
                'active_alerts': metrics.active_alerts,
                'overrides_used': metrics.overrides_used,
                'overrides_this_week': metrics.overrides_this_week,
            },
        )

    def load_last_sync(self) -> Optional[datetime]:
        record = ComplianceMetricsRecord.objects.filter(pk=1).first()
        return record.last_rule_sync if record else None

    def load_rule_updates_count(self) -> int:
        """Cumulative count; the stored history itself is capped."""
        record = ComplianceMetricsRecord.objects.filter(pk=1).first()
        return record.rule_updates_count if record else 0

    # =========================================================================
    # Override audit trail
    # =========================================================================

    def record_override(self, record: ViolationOverride) -> ViolationOverrideRecord:
        approval = record.supervisor_approval
        return ViolationOverrideRecord.objects.create(
            override_id=record.override_id,
            timestamp=record.timestamp,
            prediction_id=record.prediction_id,
            rule_id=record.rule_id,
            reason=record.reason,
            driver_id=record.driver_id,
            risk_acknowledged=record.risk_acknowledged,
            estimated_fine_accepted=record.estimated_fine_accepted,
            supervisor_id=approval.supervisor_id if approval else '',
            supervisor_approved_at=approval.approved_at if approval else None,
            supervisor_notes=approval.notes if approval else '',
            documented_in_trip=record.documented_in_trip,
            trip_id=record.trip_id or '',
        )

    def count_overrides(self) -> int:
        return ViolationOverrideRecord.objects.count()

    def load_override_timestamps(self, since: datetime) -> List[datetime]:
        return list(
            ViolationOverrideRecord.objects
            .filter(timestamp__gt=since)
            .order_by('timestamp')
            .values_list('timestamp', flat=True)
        )
