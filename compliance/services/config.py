"""
Compliance engine configuration.

Defaults mirror the reference monitoring behaviour; deployments override
them through the ``COMPLIANCE_CONFIG`` Django setting.
"""

from dataclasses import dataclass
from typing import Optional

from django.conf import settings


@dataclass
class ComplianceConfig:
    """
    Tunables for monitoring, alerting and rule sync.
    All values can be adjusted per deployment or for testing.
    """
    # Scheduling
    monitoring_interval_seconds: float = 30.0
    rule_sync_interval_seconds: float = 3600.0

    # Bounded collections
    max_alerts: int = 20
    max_rule_updates: int = 10

    # Informational alerts
    override_alert_ttl_minutes: float = 5.0
    action_alert_ttl_minutes: float = 5.0

    # Overrides
    override_window_days: int = 7

    # Metrics
    default_hours_until_violation: float = 24.0

    # Rule-content provider
    rules_provider_url: str = ''
    rules_provider_token: str = ''
    sync_timeout_seconds: float = 15.0

    @classmethod
    def from_settings(cls, overrides: Optional[dict] = None) -> 'ComplianceConfig':
        """Build a config from ``settings.COMPLIANCE_CONFIG`` plus overrides."""
        raw = dict(getattr(settings, 'COMPLIANCE_CONFIG', {}))
        raw.update(overrides or {})
        defaults = cls()
        return cls(
            monitoring_interval_seconds=float(raw.get(
                'MONITORING_INTERVAL_SECONDS', defaults.monitoring_interval_seconds)),
            rule_sync_interval_seconds=float(raw.get(
                'RULE_SYNC_INTERVAL_SECONDS', defaults.rule_sync_interval_seconds)),
            max_alerts=int(raw.get('MAX_ALERTS', defaults.max_alerts)),
            max_rule_updates=int(raw.get('MAX_RULE_UPDATES', defaults.max_rule_updates)),
            override_alert_ttl_minutes=float(raw.get(
                'OVERRIDE_ALERT_TTL_MINUTES', defaults.override_alert_ttl_minutes)),
            action_alert_ttl_minutes=float(raw.get(
                'ACTION_ALERT_TTL_MINUTES', defaults.action_alert_ttl_minutes)),
            override_window_days=int(raw.get(
                'OVERRIDE_WINDOW_DAYS', defaults.override_window_days)),
            default_hours_until_violation=float(raw.get(
                'DEFAULT_HOURS_UNTIL_VIOLATION', defaults.default_hours_until_violation)),
            rules_provider_url=raw.get('RULES_PROVIDER_URL', defaults.rules_provider_url),
            rules_provider_token=raw.get('RULES_PROVIDER_TOKEN', defaults.rules_provider_token),
            sync_timeout_seconds=float(raw.get(
                'SYNC_TIMEOUT_SECONDS', defaults.sync_timeout_seconds)),
        )
