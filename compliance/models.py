"""
Compliance Models for the HOS Compliance Engine.

Persists the rule set, the capped rule-update history, the latest metrics
snapshot and the append-only override audit trail. Predictions and alerts are
recomputed from live duty state and never stored.
"""

from django.db import models


class AuditRecordImmutable(Exception):
    """Raised when code tries to change or remove an override audit record."""


class ComplianceRule(models.Model):
    """
    A regulatory rule as last synced from the rule-content provider.
    """
    CATEGORY_CHOICES = [
        ('HOS', 'Hours of Service'),
        ('ELD', 'Electronic Logging Device'),
        ('Inspection', 'Inspection'),
        ('Medical', 'Medical'),
        ('Vehicle', 'Vehicle'),
        ('Driver', 'Driver'),
    ]
    SEVERITY_CHOICES = [
        ('Critical', 'Critical'),
        ('Important', 'Important'),
        ('Standard', 'Standard'),
    ]
    METRIC_CHOICES = [
        ('current_driving_hours', 'Current Driving Hours'),
        ('time_since_last_break', 'Time Since Last Break'),
        ('on_duty_elapsed', 'On-Duty Elapsed'),
        ('weekly_on_duty_hours', 'Weekly On-Duty Hours'),
    ]

    rule_id = models.CharField(max_length=100, unique=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    source = models.CharField(max_length=200, blank=True, help_text="Authoritative source, e.g. 49 CFR 395.3")
    severity = models.CharField(max_length=20, choices=SEVERITY_CHOICES)

    effective_date = models.DateField()
    last_updated = models.DateTimeField()

    parameters = models.JSONField(default=dict, help_text="Rule-specific thresholds and lead times")
    metric = models.CharField(
        max_length=30,
        choices=METRIC_CHOICES,
        blank=True,
        help_text="Duty-state value the rule is measured against; blank for informational rules"
    )
    can_override = models.BooleanField(default=False)
    deprecated = models.BooleanField(default=False)
    applicable_vehicle_types = models.JSONField(default=list)

    # Metadata
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['rule_id']
        verbose_name = 'Compliance Rule'
        verbose_name_plural = 'Compliance Rules'

    def __str__(self):
        return f"{self.rule_id}: {self.title}"


class RuleUpdateRecord(models.Model):
    """
    One applied rule change. History is capped; the store prunes old rows.
    """
    CHANGE_TYPE_CHOICES = [
        ('New', 'New'),
        ('Modified', 'Modified'),
        ('Deprecated', 'Deprecated'),
    ]
    IMPACT_LEVEL_CHOICES = [
        ('High', 'High'),
        ('Medium', 'Medium'),
        ('Low', 'Low'),
    ]

    notification_id = models.CharField(max_length=100, unique=True)
    rule_id = models.CharField(max_length=100, db_index=True)
    change_type = models.CharField(max_length=20, choices=CHANGE_TYPE_CHOICES)
    effective_date = models.DateField()
    summary = models.TextField()
    impact_level = models.CharField(max_length=10, choices=IMPACT_LEVEL_CHOICES)
    action_required = models.BooleanField(default=False)
    deadline = models.DateField(null=True, blank=True)
    parameters = models.JSONField(null=True, blank=True)

    recorded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-recorded_at', '-id']
        verbose_name = 'Rule Update'
        verbose_name_plural = 'Rule Updates'

    def __str__(self):
        return f"{self.change_type} {self.rule_id}: {self.summary}"


class ComplianceMetricsRecord(models.Model):
    """
    Latest compliance metrics snapshot. A single row (pk=1).
    """
    violation_risk = models.FloatField(default=0)
    compliance_score = models.FloatField(default=100)
    hours_until_violation = models.FloatField(default=24)
    rule_updates_count = models.IntegerField(default=0)
    last_rule_sync = models.DateTimeField(null=True, blank=True)
    active_alerts = models.IntegerField(default=0)
    overrides_used = models.IntegerField(default=0)
    overrides_this_week = models.IntegerField(default=0)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Compliance Metrics'
        verbose_name_plural = 'Compliance Metrics'

    def __str__(self):
        return f"Score {self.compliance_score:g}, risk {self.violation_risk:g}"


class AppendOnlyQuerySet(models.QuerySet):
    """Bulk update and delete are refused; rows can only be inserted."""

    def update(self, **kwargs):
        raise AuditRecordImmutable("Override audit records cannot be updated")

    def delete(self):
        raise AuditRecordImmutable("Override audit records cannot be deleted")


class ViolationOverrideRecord(models.Model):
    """
    Append-only audit record of a driver override.
    Rows can be created but never updated or deleted.
    """
    override_id = models.CharField(max_length=100, unique=True)
    timestamp = models.DateTimeField(db_index=True)
    prediction_id = models.CharField(max_length=150)
    rule_id = models.CharField(max_length=100, db_index=True)

    reason = models.TextField()
    driver_id = models.CharField(max_length=100)
    risk_acknowledged = models.BooleanField()
    estimated_fine_accepted = models.BooleanField(default=False)

    # Supervisor approval
    supervisor_id = models.CharField(max_length=100, blank=True)
    supervisor_approved_at = models.DateTimeField(null=True, blank=True)
    supervisor_notes = models.TextField(blank=True)

    # Trip documentation
    documented_in_trip = models.BooleanField(default=False)
    trip_id = models.CharField(max_length=100, blank=True)

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        ordering = ['-timestamp']
        verbose_name = 'Violation Override'
        verbose_name_plural = 'Violation Overrides'
        indexes = [
            models.Index(fields=['driver_id', 'timestamp'], name='override_driver_ts_idx'),
        ]

    def __str__(self):
        return f"Override {self.override_id} of {self.rule_id} by {self.driver_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AuditRecordImmutable(f"Override {self.override_id} cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditRecordImmutable(f"Override {self.override_id} cannot be deleted")
