"""
Tests for the Alert Manager.
"""

import pytest
from datetime import datetime, timedelta, timezone

from compliance.services.alert_service import Alert, AlertManager, AlertPriority, AlertType


NOW = datetime(2025, 8, 1, 12, 0, tzinfo=timezone.utc)


def make_alert(title='Violation Prevention Alert', ttl_minutes=None, rule_id=None,
               alert_type=AlertType.VIOLATION_PREVENTION, action_required=True, now=NOW):
    return Alert.create(
        alert_type=alert_type,
        priority=AlertPriority.CRITICAL,
        title=title,
        message='Driving limit reached in 12 minutes',
        now=now,
        ttl_minutes=ttl_minutes,
        action_required=action_required,
        related_rule_id=rule_id,
    )


class TestAlert:
    """Test alert construction and expiry."""

    def test_create_sets_expiry_from_ttl(self):
        alert = make_alert(ttl_minutes=5)

        assert alert.alert_id.startswith('alert-')
        assert alert.expires_at == NOW + timedelta(minutes=5)

    def test_no_ttl_never_expires(self):
        alert = make_alert()

        assert alert.expires_at is None
        assert not alert.is_expired(NOW + timedelta(days=365))

    def test_expired_only_after_expiry(self):
        alert = make_alert(ttl_minutes=5)

        assert not alert.is_expired(NOW + timedelta(minutes=5))
        assert alert.is_expired(NOW + timedelta(minutes=5, seconds=1))

    def test_to_dict(self):
        data = make_alert(ttl_minutes=5, rule_id='hos-driving-limit').to_dict()

        assert data['type'] == 'Violation Prevention'
        assert data['priority'] == 'Critical'
        assert data['related_rule_id'] == 'hos-driving-limit'
        assert data['expires_at'] == (NOW + timedelta(minutes=5)).isoformat()


class TestAlertManager:
    """Test the bounded alert list."""

    def setup_method(self):
        self.manager = AlertManager(max_alerts=20)

    def test_newest_first(self):
        first = make_alert(title='first')
        second = make_alert(title='second')

        self.manager.raise_alert(first)
        self.manager.raise_alert(second)

        assert self.manager.list() == [second, first]

    def test_list_never_exceeds_cap(self):
        alerts = [make_alert(title=f'alert {i}') for i in range(50)]

        for alert in alerts:
            self.manager.raise_alert(alert)
            assert len(self.manager) <= 20

        assert self.manager.list() == list(reversed(alerts))[:20]

    def test_cap_evicts_oldest(self):
        manager = AlertManager(max_alerts=2)
        oldest, middle, newest = make_alert(), make_alert(), make_alert()

        for alert in (oldest, middle, newest):
            manager.raise_alert(alert)

        assert manager.list() == [newest, middle]

    def test_invalid_cap(self):
        with pytest.raises(ValueError):
            AlertManager(max_alerts=0)

    def test_dismiss(self):
        alert = make_alert()
        self.manager.raise_alert(alert)

        assert self.manager.dismiss(alert.alert_id) is True
        assert len(self.manager) == 0

    def test_dismiss_is_idempotent(self):
        alert = make_alert()
        self.manager.raise_alert(alert)
        self.manager.dismiss(alert.alert_id)

        assert self.manager.dismiss(alert.alert_id) is False
        assert self.manager.dismiss('alert-does-not-exist') is False

    def test_expire_stale_removes_only_expired(self):
        short = make_alert(ttl_minutes=1)
        long = make_alert(ttl_minutes=60)
        forever = make_alert()
        for alert in (short, long, forever):
            self.manager.raise_alert(alert)

        expired = self.manager.expire_stale(NOW + timedelta(minutes=2))

        assert expired == [short]
        assert self.manager.list() == [forever, long]

    def test_dismiss_related_filters_by_rule_type_and_action(self):
        violation = make_alert(rule_id='hos-30min-break')
        informational = make_alert(rule_id='hos-30min-break', action_required=False)
        other_rule = make_alert(rule_id='hos-driving-limit')
        rule_update = make_alert(rule_id='hos-30min-break', alert_type=AlertType.RULE_UPDATE)
        for alert in (violation, informational, other_rule, rule_update):
            self.manager.raise_alert(alert)

        removed = self.manager.dismiss_related(
            'hos-30min-break', AlertType.VIOLATION_PREVENTION, action_required=True
        )

        assert removed == 1
        assert violation not in self.manager.list()
        assert len(self.manager) == 3
