"""
Exception hierarchy for the compliance engine.

Engine and alert errors signal a caller contract violation and should fail
loudly. Override errors are expected, user-facing refusals that the API
surfaces with a machine-readable code. SyncFailure is recoverable.
"""


class ComplianceError(Exception):
    """Base class for all compliance engine errors."""
    code = 'compliance_error'


class InvalidSnapshotError(ComplianceError):
    """Duty-state snapshot holds negative, NaN or non-numeric values."""
    code = 'invalid_snapshot'


class InvalidRuleError(ComplianceError):
    """Rule definition is missing required parameters or is malformed."""
    code = 'invalid_rule'


class UnknownRuleError(ComplianceError):
    """Rule update references a rule the registry does not know."""
    code = 'unknown_rule'


class UnknownPredictionError(ComplianceError):
    """No current prediction carries the requested id."""
    code = 'unknown_prediction'


class UnknownActionError(ComplianceError):
    """No current prediction owns the requested prevention action."""
    code = 'unknown_action'


class SyncFailure(ComplianceError):
    """Rule-content provider unreachable or returned invalid data."""
    code = 'sync_failure'


class OverrideError(ComplianceError):
    """Base class for refused override requests."""
    code = 'override_refused'


class NotOverridableError(OverrideError):
    """The rule behind the prediction does not permit overrides."""
    code = 'not_overridable'


class RiskNotAcknowledgedError(OverrideError):
    """Driver did not acknowledge the risk of proceeding."""
    code = 'risk_not_acknowledged'


class InvalidOverrideError(OverrideError):
    """Override payload is incomplete (blank reason or driver id)."""
    code = 'invalid_override'


class OverrideAlreadyRecordedError(OverrideError):
    """Prediction already carries an override; records are immutable."""
    code = 'override_already_recorded'
