"""
Violation Prediction Service.

Forecasts Hours of Service violations from a live duty-state snapshot.

For each rule that reads a duty metric:
=====================================
1. Skip the rule until the metric is within ``pre_warning_hours`` of the
   threshold (rules far from their limit produce nothing)
2. time_to_violation = max(0, threshold - metric) * 60 minutes
3. Critical when time_to_violation is below the rule's warning lead time or
   the limit is already reached, Warning otherwise
4. can_override comes verbatim from the rule's static policy

Evaluation is pure: no I/O, no clock, no randomness. Prediction ids are
derived from the rule id and the caller-supplied cycle number.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import InvalidSnapshotError
from .rules import DutyMetric, Rule, validate_rule


class PredictionSeverity(Enum):
    CRITICAL = 'Critical'
    WARNING = 'Warning'
    ADVISORY = 'Advisory'


class ActionType(Enum):
    BREAK = 'Break'
    ROUTE = 'Route'
    INSPECTION = 'Inspection'
    DOCUMENTATION = 'Documentation'


class Urgency(Enum):
    IMMEDIATE = 'Immediate'
    SOON = 'Soon'
    PLANNED = 'Planned'


@dataclass(frozen=True)
class DutyStateSnapshot:
    """Driver duty state at evaluation time. All values in hours."""
    current_driving_hours: float
    time_since_last_break: float
    on_duty_elapsed: float
    weekly_on_duty_hours: float

    def validate(self) -> None:
        """
        Reject malformed values instead of coercing them.

        Raises:
            InvalidSnapshotError: If any value is non-numeric, NaN, infinite or negative
        """
        for metric in DutyMetric:
            value = getattr(self, metric.value)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidSnapshotError(f"{metric.value} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise InvalidSnapshotError(f"{metric.value} must be finite, got {value!r}")
            if value < 0:
                raise InvalidSnapshotError(f"{metric.value} must not be negative, got {value!r}")

    def to_dict(self) -> Dict:
        return {metric.value: getattr(self, metric.value) for metric in DutyMetric}


@dataclass(frozen=True)
class PreventionAction:
    """Step that keeps a predicted violation from happening."""
    action_id: str
    action_type: ActionType
    title: str
    description: str
    urgency: Urgency
    estimated_time: int  # minutes
    automated: bool

    def to_dict(self) -> Dict:
        return {
            'id': self.action_id,
            'type': self.action_type.value,
            'title': self.title,
            'description': self.description,
            'urgency': self.urgency.value,
            'estimated_time': self.estimated_time,
            'automated': self.automated,
        }


@dataclass
class ViolationPrediction:
    """One rule's forecast for one evaluation cycle."""
    prediction_id: str
    rule_id: str
    prediction_type: str
    severity: PredictionSeverity
    time_to_violation: float  # minutes, never negative
    current_value: float
    threshold_value: float
    message: str
    recommendations: List[str] = field(default_factory=list)
    prevention_actions: List[PreventionAction] = field(default_factory=list)
    estimated_fine: Optional[float] = None
    can_override: bool = False
    override_info: Optional[Any] = None  # ViolationOverride once recorded

    @property
    def is_violated(self) -> bool:
        return self.time_to_violation <= 0

    def find_action(self, action_id: str) -> Optional[PreventionAction]:
        for action in self.prevention_actions:
            if action.action_id == action_id:
                return action
        return None

    def to_dict(self) -> Dict:
        return {
            'id': self.prediction_id,
            'rule_id': self.rule_id,
            'type': self.prediction_type,
            'severity': self.severity.value,
            'time_to_violation': round(self.time_to_violation, 2),
            'current_value': self.current_value,
            'threshold_value': self.threshold_value,
            'message': self.message,
            'recommendations': list(self.recommendations),
            'prevention_actions': [a.to_dict() for a in self.prevention_actions],
            'estimated_fine': self.estimated_fine,
            'can_override': self.can_override,
            'override_info': self.override_info.to_dict() if self.override_info else None,
        }


@dataclass(frozen=True)
class _ActionTemplate:
    slug: str
    action_type: ActionType
    title: str
    description: str
    urgency: Urgency
    estimated_time: int
    automated: bool


@dataclass(frozen=True)
class _PredictionTemplate:
    prediction_type: Optional[str]  # None: use the rule category
    upcoming_message: Callable[[Rule, int], str]
    violated_message: Callable[[Rule], str]
    recommendations: List[str]
    actions: List[_ActionTemplate]


PREDICTION_TEMPLATES: Dict[DutyMetric, _PredictionTemplate] = {
    DutyMetric.TIME_SINCE_LAST_BREAK: _PredictionTemplate(
        prediction_type='Break',
        upcoming_message=lambda rule, minutes: f"30-minute break required in {minutes} minutes",
        violated_message=lambda rule: 'Break required now - 30-minute break overdue',
        recommendations=[
            'Find nearest rest area or truck stop',
            'Take minimum 30-minute off-duty break',
            'Log break time in ELD system',
        ],
        actions=[
            _ActionTemplate(
                slug='take-break',
                action_type=ActionType.BREAK,
                title='Take Required Break',
                description='Start 30-minute off-duty break immediately',
                urgency=Urgency.IMMEDIATE,
                estimated_time=30,
                automated=False,
            ),
        ],
    ),
    DutyMetric.CURRENT_DRIVING_HOURS: _PredictionTemplate(
        prediction_type=None,
        upcoming_message=lambda rule, minutes: f"Driving limit reached in {minutes} minutes",
        violated_message=lambda rule: 'Driving time limit exceeded - stop driving immediately',
        recommendations=[
            'Plan to stop driving before limit',
            'Find safe parking location',
            'Take required 10-hour off-duty period',
        ],
        actions=[
            _ActionTemplate(
                slug='find-parking',
                action_type=ActionType.ROUTE,
                title='Find Parking',
                description='Locate nearest truck stop or rest area',
                urgency=Urgency.SOON,
                estimated_time=15,
                automated=True,
            ),
        ],
    ),
    DutyMetric.ON_DUTY_ELAPSED: _PredictionTemplate(
        prediction_type=None,
        upcoming_message=lambda rule, minutes: (
            f"{rule.threshold:g}-hour window expires in {minutes} minutes"
        ),
        violated_message=lambda rule: (
            f"{rule.threshold:g}-hour window expired - driving not permitted"
        ),
        recommendations=[
            'Complete current trip segment',
            'Cannot drive after 14th hour',
            'Plan 10-hour reset period',
        ],
        actions=[
            _ActionTemplate(
                slug='plan-reset',
                action_type=ActionType.ROUTE,
                title='Plan Reset Location',
                description='Find location for 10-hour off-duty period',
                urgency=Urgency.SOON,
                estimated_time=20,
                automated=True,
            ),
        ],
    ),
    DutyMetric.WEEKLY_ON_DUTY_HOURS: _PredictionTemplate(
        prediction_type=None,
        upcoming_message=lambda rule, minutes: (
            f"{rule.threshold:g}-hour cycle limit reached in {minutes} minutes"
        ),
        violated_message=lambda rule: (
            f"{rule.threshold:g}-hour cycle limit exceeded - 34-hour restart required"
        ),
        recommendations=[
            'Review remaining cycle hours before accepting loads',
            'Plan a 34-hour restart',
            'Keep on-duty time documented in ELD system',
        ],
        actions=[
            _ActionTemplate(
                slug='plan-restart',
                action_type=ActionType.ROUTE,
                title='Plan 34-Hour Restart',
                description='Find location for a 34-hour off-duty restart',
                urgency=Urgency.PLANNED,
                estimated_time=30,
                automated=True,
            ),
            _ActionTemplate(
                slug='document-cycle',
                action_type=ActionType.DOCUMENTATION,
                title='Review Cycle Hours',
                description='Confirm on-duty hours for the last 8 days in the logbook',
                urgency=Urgency.PLANNED,
                estimated_time=10,
                automated=False,
            ),
        ],
    ),
}


class ViolationPredictionService:
    """
    Service for forecasting rule violations.

    Stateless; ``evaluate`` may run off the owning thread.
    """

    def evaluate(
        self,
        snapshot: DutyStateSnapshot,
        rules: Iterable[Rule],
        cycle: int = 0
    ) -> List[ViolationPrediction]:
        """
        Produce predictions for every applicable rule near its limit.

        Args:
            snapshot: Current duty state
            rules: Rule set to evaluate against
            cycle: Evaluation cycle number, used to build prediction ids

        Returns:
            Predictions in rule order; empty when nothing is near its limit

        Raises:
            InvalidSnapshotError: If the snapshot is malformed
            InvalidRuleError: If an applicable rule lacks required parameters
        """
        snapshot.validate()

        predictions = []
        for rule in rules:
            if rule.metric is None or rule.deprecated:
                continue
            prediction = self._predict(rule, snapshot, cycle)
            if prediction is not None:
                predictions.append(prediction)
        return predictions

    def _predict(
        self,
        rule: Rule,
        snapshot: DutyStateSnapshot,
        cycle: int
    ) -> Optional[ViolationPrediction]:
        validate_rule(rule)
        metric = float(getattr(snapshot, rule.metric.value))
        threshold = rule.threshold

        if metric < threshold - rule.pre_warning_hours:
            return None

        time_to_violation = max(0.0, threshold - metric) * 60
        lead_minutes = rule.warning_lead_hours * 60
        if time_to_violation <= 0 or time_to_violation < lead_minutes:
            severity = PredictionSeverity.CRITICAL
        else:
            severity = PredictionSeverity.WARNING

        template = PREDICTION_TEMPLATES[rule.metric]
        prediction_id = f"prediction-{rule.rule_id}-{cycle}"
        if time_to_violation <= 0:
            message = template.violated_message(rule)
        else:
            message = template.upcoming_message(rule, round(time_to_violation))

        return ViolationPrediction(
            prediction_id=prediction_id,
            rule_id=rule.rule_id,
            prediction_type=template.prediction_type or rule.category.value,
            severity=severity,
            time_to_violation=time_to_violation,
            current_value=metric,
            threshold_value=threshold,
            message=message,
            recommendations=list(template.recommendations),
            prevention_actions=[
                PreventionAction(
                    action_id=f"{prediction_id}-{action.slug}",
                    action_type=action.action_type,
                    title=action.title,
                    description=action.description,
                    urgency=action.urgency,
                    estimated_time=action.estimated_time,
                    automated=action.automated,
                )
                for action in template.actions
            ],
            estimated_fine=rule.estimated_fine,
            can_override=rule.can_override,
        )
