"""
Violation Override Service.

Records a driver's documented decision to proceed despite a predicted
violation. Whether a violation may be overridden is decided by the rule's
static policy, never by flags the caller supplies. Override records are
immutable audit entries; a prediction accepts at most one.
"""

import logging
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Deque, Dict, Iterable, Optional

from .alert_service import Alert, AlertManager, AlertPriority, AlertType
from .errors import (
    InvalidOverrideError,
    NotOverridableError,
    OverrideAlreadyRecordedError,
    RiskNotAcknowledgedError,
)
from .prediction_service import ViolationPrediction
from .rules import Rule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SupervisorApproval:
    supervisor_id: str
    approved_at: datetime
    notes: str = ''

    def to_dict(self) -> Dict:
        return {
            'supervisor_id': self.supervisor_id,
            'approved_at': self.approved_at.isoformat(),
            'notes': self.notes,
        }


@dataclass(frozen=True)
class ViolationOverride:
    """Immutable audit record of an accepted violation."""
    override_id: str
    timestamp: datetime
    prediction_id: str
    rule_id: str
    reason: str
    driver_id: str
    risk_acknowledged: bool
    estimated_fine_accepted: bool
    supervisor_approval: Optional[SupervisorApproval] = None
    documented_in_trip: bool = False
    trip_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.override_id,
            'timestamp': self.timestamp.isoformat(),
            'prediction_id': self.prediction_id,
            'rule_id': self.rule_id,
            'reason': self.reason,
            'driver_id': self.driver_id,
            'risk_acknowledged': self.risk_acknowledged,
            'estimated_fine_accepted': self.estimated_fine_accepted,
            'supervisor_approval': (
                self.supervisor_approval.to_dict() if self.supervisor_approval else None
            ),
            'documented_in_trip': self.documented_in_trip,
            'trip_id': self.trip_id,
        }


class OverrideCounters:
    """
    Cumulative and trailing-window override counts.

    "This week" is the trailing ``window_days`` (7) days ending at the
    moment of the query, not a calendar week.
    """

    def __init__(self, overrides_used: int = 0,
                 timestamps: Iterable[datetime] = (),
                 window_days: int = 7):
        self.overrides_used = overrides_used
        self.window = timedelta(days=window_days)
        self._timestamps: Deque[datetime] = deque(sorted(timestamps))

    def record(self, when: datetime) -> None:
        self.overrides_used += 1
        self._timestamps.append(when)

    def this_week(self, now: datetime) -> int:
        cutoff = now - self.window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()
        return sum(1 for ts in self._timestamps if ts <= now)


class OverrideService:
    """Validates override requests and produces audit records."""

    def __init__(self, counters: OverrideCounters, alerts: AlertManager,
                 alert_ttl_minutes: float = 5.0):
        self.counters = counters
        self.alerts = alerts
        self.alert_ttl_minutes = alert_ttl_minutes

    def override(self, prediction: ViolationPrediction, rule: Optional[Rule],
                 **kwargs) -> ViolationOverride:
        """Validate, build and commit an override in one step (no persistence)."""
        record = self.build_record(prediction, rule, **kwargs)
        self.commit(prediction, record)
        return record

    def build_record(
        self,
        prediction: ViolationPrediction,
        rule: Optional[Rule],
        reason: str,
        driver_id: str,
        risk_acknowledged: bool,
        estimated_fine_accepted: bool,
        supervisor_approval: Optional[SupervisorApproval] = None,
        trip_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> ViolationOverride:
        """
        Check the override preconditions and build the audit record.

        Nothing is changed; the caller persists the record and then calls
        ``commit``.

        Args:
            prediction: Current prediction the driver wants to proceed past
            rule: Registry rule the prediction was derived from
            reason: Free-text justification (required)
            driver_id: Driver making the decision
            risk_acknowledged: Must be True
            estimated_fine_accepted: Whether the driver accepts the fine
            supervisor_approval: Optional supervisor sign-off
            trip_id: Trip the override is documented in

        Returns:
            The immutable ViolationOverride, not yet attached

        Raises:
            NotOverridableError: If the rule does not permit overrides
            RiskNotAcknowledgedError: If risk_acknowledged is not True
            InvalidOverrideError: If reason or driver_id is blank
            OverrideAlreadyRecordedError: If the prediction already has one
        """
        if rule is None or not rule.can_override or not prediction.can_override:
            logger.warning(
                f"Refused override of {prediction.prediction_id}: "
                f"rule {prediction.rule_id} is a hard limit"
            )
            raise NotOverridableError(
                f"Rule {prediction.rule_id} does not permit overrides"
            )
        if risk_acknowledged is not True:
            logger.warning(f"Refused override of {prediction.prediction_id}: risk not acknowledged")
            raise RiskNotAcknowledgedError("Risk must be acknowledged to record an override")
        if not reason or not reason.strip():
            raise InvalidOverrideError("Override reason is required")
        if not driver_id or not str(driver_id).strip():
            raise InvalidOverrideError("Driver id is required")
        if prediction.override_info is not None:
            raise OverrideAlreadyRecordedError(
                f"Prediction {prediction.prediction_id} already has override "
                f"{prediction.override_info.override_id}"
            )

        now = now or datetime.now(timezone.utc)
        record = ViolationOverride(
            override_id=f"override-{uuid.uuid4()}",
            timestamp=now,
            prediction_id=prediction.prediction_id,
            rule_id=prediction.rule_id,
            reason=reason.strip(),
            driver_id=str(driver_id),
            risk_acknowledged=True,
            estimated_fine_accepted=bool(estimated_fine_accepted),
            supervisor_approval=supervisor_approval,
            documented_in_trip=bool(trip_id),
            trip_id=trip_id,
        )
        return record

    def commit(self, prediction: ViolationPrediction, record: ViolationOverride) -> None:
        """Attach a persisted record, count it and raise the informational alert."""
        now = record.timestamp
        prediction.override_info = record
        self.counters.record(now)

        self.alerts.raise_alert(Alert.create(
            alert_type=AlertType.VIOLATION_PREVENTION,
            priority=AlertPriority.MEDIUM,
            title='Violation Override Applied',
            message=f"Override documented: {record.reason}",
            now=now,
            ttl_minutes=self.alert_ttl_minutes,
            action_required=False,
            auto_resolved=True,
            related_rule_id=record.rule_id,
        ))

        logger.info(
            f"Override {record.override_id} recorded for {record.prediction_id} "
            f"by driver {record.driver_id}"
        )
