"""
Admin configuration for compliance models.
"""

from django.contrib import admin
from .models import ComplianceRule, RuleUpdateRecord, ComplianceMetricsRecord, ViolationOverrideRecord


@admin.register(ComplianceRule)
class ComplianceRuleAdmin(admin.ModelAdmin):
    list_display = ['rule_id', 'title', 'category', 'severity', 'can_override', 'deprecated', 'last_updated']
    list_filter = ['category', 'severity', 'can_override', 'deprecated']
    search_fields = ['rule_id', 'title', 'source']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(RuleUpdateRecord)
class RuleUpdateRecordAdmin(admin.ModelAdmin):
    list_display = ['rule_id', 'change_type', 'impact_level', 'action_required', 'effective_date', 'recorded_at']
    list_filter = ['change_type', 'impact_level']
    search_fields = ['rule_id', 'summary']


@admin.register(ComplianceMetricsRecord)
class ComplianceMetricsRecordAdmin(admin.ModelAdmin):
    list_display = ['compliance_score', 'violation_risk', 'active_alerts', 'overrides_this_week', 'updated_at']


@admin.register(ViolationOverrideRecord)
class ViolationOverrideRecordAdmin(admin.ModelAdmin):
    list_display = ['override_id', 'rule_id', 'driver_id', 'timestamp', 'documented_in_trip']
    list_filter = ['rule_id', 'timestamp']
    search_fields = ['override_id', 'driver_id', 'trip_id']

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
