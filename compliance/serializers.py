"""
Serializers for the Compliance API.

Validates duty-state snapshots and override requests. Engine output is
rendered through the dataclasses' own ``to_dict()``.
"""

from rest_framework import serializers

from .services.override_service import SupervisorApproval
from .services.prediction_service import DutyStateSnapshot

# Accepted camelCase aliases for clients that speak the mobile app's field names
CAMEL_CASE_ALIASES = {
    'currentDrivingHours': 'current_driving_hours',
    'timeSinceLastBreak': 'time_since_last_break',
    'onDutyElapsed': 'on_duty_elapsed',
    'weeklyOnDutyHours': 'weekly_on_duty_hours',
    'driverId': 'driver_id',
    'riskAcknowledged': 'risk_acknowledged',
    'estimatedFineAccepted': 'estimated_fine_accepted',
    'supervisorApproval': 'supervisor_approval',
    'tripId': 'trip_id',
    'supervisorId': 'supervisor_id',
    'approvedAt': 'approved_at',
}


def normalize_keys(data):
    """Map camelCase request keys onto their snake_case field names."""
    if not hasattr(data, 'items'):
        return data
    normalized = {}
    for key, value in data.items():
        if isinstance(value, dict):
            value = normalize_keys(value)
        normalized[CAMEL_CASE_ALIASES.get(key, key)] = value
    return normalized


class DutyStateSnapshotSerializer(serializers.Serializer):
    """
    Input serializer for a driver's duty state. All values in hours.
    """
    current_driving_hours = serializers.FloatField(
        min_value=0,
        help_text="Hours driven since the last 10-hour off-duty period"
    )
    time_since_last_break = serializers.FloatField(
        min_value=0,
        help_text="Driving hours since the last 30-minute break"
    )
    on_duty_elapsed = serializers.FloatField(
        min_value=0,
        help_text="Hours since coming on duty (14-hour window)"
    )
    weekly_on_duty_hours = serializers.FloatField(
        min_value=0,
        help_text="On-duty hours in the current 8-day cycle"
    )

    def to_snapshot(self) -> DutyStateSnapshot:
        return DutyStateSnapshot(**self.validated_data)


class SupervisorApprovalSerializer(serializers.Serializer):
    supervisor_id = serializers.CharField(max_length=100)
    approved_at = serializers.DateTimeField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class OverrideRequestSerializer(serializers.Serializer):
    """
    Input serializer for a violation override.

    Blank reasons and an unacknowledged risk are not rejected here; the
    override service refuses them with a typed error the client can explain.
    """
    reason = serializers.CharField(allow_blank=True, trim_whitespace=False)
    driver_id = serializers.CharField(max_length=100, allow_blank=True)
    risk_acknowledged = serializers.BooleanField()
    estimated_fine_accepted = serializers.BooleanField(required=False, default=False)
    supervisor_approval = SupervisorApprovalSerializer(required=False, allow_null=True)
    trip_id = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)

    def to_override_kwargs(self) -> dict:
        data = dict(self.validated_data)
        approval = data.pop('supervisor_approval', None)
        data['supervisor_approval'] = SupervisorApproval(**approval) if approval else None
        data['trip_id'] = data.get('trip_id') or None
        return data


class HealthCheckSerializer(serializers.Serializer):
    """
    Serializer for health check response.
    """
    status = serializers.CharField()
    message = serializers.CharField()
    version = serializers.CharField()
    monitoring = serializers.BooleanField()
    timestamp = serializers.DateTimeField()
