"""
Compliance Rule Registry.

Owns the set of regulatory rules the prediction engine evaluates against.
Rule *content* is supplied data (bundled defaults, then the rule-content
provider); this module only stores, validates and versions it.

Reference HOS rules bundled as defaults:
=======================================
1. 11-Hour Driving Limit: Max 11 hours driving after 10 hours off-duty
2. 30-Minute Break: Required after 8 hours of driving (overridable)
3. 14-Hour On-Duty Window: Cannot drive beyond the 14th hour on duty
4. 70-Hour/8-Day Limit: Max 70 hours on-duty in 8 consecutive days

References:
- https://www.fmcsa.dot.gov/regulations/hours-of-service
"""

import logging
import math
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import InvalidRuleError, UnknownRuleError

logger = logging.getLogger(__name__)

REQUIRED_PARAMETERS = ('threshold', 'warning_lead_hours')


class RuleCategory(Enum):
    HOS = 'HOS'
    ELD = 'ELD'
    INSPECTION = 'Inspection'
    MEDICAL = 'Medical'
    VEHICLE = 'Vehicle'
    DRIVER = 'Driver'


class RuleSeverity(Enum):
    CRITICAL = 'Critical'
    IMPORTANT = 'Important'
    STANDARD = 'Standard'


class DutyMetric(Enum):
    """Duty-state field a rule is measured against (hours)."""
    CURRENT_DRIVING_HOURS = 'current_driving_hours'
    TIME_SINCE_LAST_BREAK = 'time_since_last_break'
    ON_DUTY_ELAPSED = 'on_duty_elapsed'
    WEEKLY_ON_DUTY_HOURS = 'weekly_on_duty_hours'


class ChangeType(Enum):
    NEW = 'New'
    MODIFIED = 'Modified'
    DEPRECATED = 'Deprecated'


class ImpactLevel(Enum):
    HIGH = 'High'
    MEDIUM = 'Medium'
    LOW = 'Low'


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _parse_date(value: Any, field_name: str) -> date:
    if value is None:
        raise InvalidRuleError(f"Missing {field_name}")
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise InvalidRuleError(f"Invalid {field_name}: {value!r}") from e


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError as e:
        raise InvalidRuleError(f"Invalid last_updated: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Rule:
    """
    A regulatory constraint and its versioned parameters.

    ``parameters`` must carry ``threshold`` and ``warning_lead_hours``; it may
    also carry ``pre_warning_hours`` (how close to the threshold a prediction
    starts being emitted, defaults to the warning lead) and ``estimated_fine``.
    ``metric`` names the duty-state field the rule reads; rules without a
    metric are informational and never evaluated.
    """
    rule_id: str
    category: RuleCategory
    title: str
    description: str
    source: str
    severity: RuleSeverity
    effective_date: date
    last_updated: datetime
    parameters: Dict[str, Any] = field(default_factory=dict)
    metric: Optional[DutyMetric] = None
    can_override: bool = False
    deprecated: bool = False
    applicable_vehicle_types: Tuple[str, ...] = ('CMV',)

    @property
    def threshold(self) -> float:
        return float(self.parameters['threshold'])

    @property
    def warning_lead_hours(self) -> float:
        return float(self.parameters['warning_lead_hours'])

    @property
    def pre_warning_hours(self) -> float:
        return float(self.parameters.get('pre_warning_hours', self.warning_lead_hours))

    @property
    def estimated_fine(self) -> Optional[float]:
        fine = self.parameters.get('estimated_fine')
        return float(fine) if fine is not None else None

    def content_key(self) -> tuple:
        """Everything that constitutes rule content, minus bookkeeping timestamps."""
        return (
            self.category, self.title, self.description, self.source,
            self.severity, self.effective_date,
            tuple(sorted(self.parameters.items())),
            self.metric, self.can_override, self.deprecated,
            tuple(self.applicable_vehicle_types),
        )

    def to_dict(self) -> Dict:
        return {
            'id': self.rule_id,
            'category': self.category.value,
            'title': self.title,
            'description': self.description,
            'source': self.source,
            'severity': self.severity.value,
            'effective_date': self.effective_date.isoformat(),
            'last_updated': self.last_updated.isoformat(),
            'parameters': dict(self.parameters),
            'metric': self.metric.value if self.metric else None,
            'can_override': self.can_override,
            'deprecated': self.deprecated,
            'applicable_vehicle_types': list(self.applicable_vehicle_types),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Rule':
        """
        Build a rule from provider/persistence data.

        Raises:
            InvalidRuleError: If any field is missing or malformed
        """
        if not isinstance(data, dict):
            raise InvalidRuleError(f"Rule definition must be an object, got {type(data).__name__}")
        try:
            rule_id = str(data['id'])
            metric = data.get('metric')
            rule = cls(
                rule_id=rule_id,
                category=RuleCategory(data['category']),
                title=str(data['title']),
                description=str(data.get('description', '')),
                source=str(data.get('source', '')),
                severity=RuleSeverity(data['severity']),
                effective_date=_parse_date(data['effective_date'], 'effective_date'),
                last_updated=_parse_datetime(
                    data.get('last_updated') or datetime.now(timezone.utc)
                ),
                parameters=dict(data.get('parameters') or {}),
                metric=DutyMetric(metric) if metric else None,
                can_override=bool(data.get('can_override', False)),
                deprecated=bool(data.get('deprecated', False)),
                applicable_vehicle_types=tuple(data.get('applicable_vehicle_types') or ('CMV',)),
            )
        except KeyError as e:
            raise InvalidRuleError(f"Rule definition missing field {e}") from e
        except (ValueError, TypeError) as e:
            raise InvalidRuleError(f"Rule definition {data.get('id')!r} is malformed: {e}") from e
        validate_rule(rule)
        return rule


def validate_rule(rule: Rule) -> None:
    """
    Check that a rule carries the parameters the prediction engine needs.

    Raises:
        InvalidRuleError: If a required parameter is missing or not a number
    """
    if not rule.rule_id:
        raise InvalidRuleError("Rule id must not be empty")
    missing = [key for key in REQUIRED_PARAMETERS if key not in rule.parameters]
    if missing:
        raise InvalidRuleError(
            f"Rule {rule.rule_id} missing required parameters: {', '.join(missing)}"
        )
    for key in REQUIRED_PARAMETERS + ('pre_warning_hours', 'estimated_fine'):
        if key in rule.parameters and not _is_number(rule.parameters[key]):
            raise InvalidRuleError(
                f"Rule {rule.rule_id} parameter {key} must be a number, "
                f"got {rule.parameters[key]!r}"
            )
        if key in rule.parameters and rule.parameters[key] < 0:
            raise InvalidRuleError(f"Rule {rule.rule_id} parameter {key} must not be negative")


@dataclass(frozen=True)
class RuleUpdateNotification:
    """A change to a rule, kept in an append-only, capped history."""
    notification_id: str
    rule_id: str
    change_type: ChangeType
    effective_date: date
    summary: str
    impact_level: ImpactLevel
    action_required: bool = False
    deadline: Optional[date] = None
    parameters: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.notification_id,
            'rule_id': self.rule_id,
            'change_type': self.change_type.value,
            'effective_date': self.effective_date.isoformat(),
            'summary': self.summary,
            'impact_level': self.impact_level.value,
            'action_required': self.action_required,
            'deadline': self.deadline.isoformat() if self.deadline else None,
            'parameters': dict(self.parameters) if self.parameters is not None else None,
        }


RULES_LAST_UPDATED = datetime(2025, 7, 15, tzinfo=timezone.utc)


def default_rules() -> List[Rule]:
    """Bundled reference rule set used to seed the registry at startup."""
    return [
        Rule(
            rule_id='hos-driving-limit',
            category=RuleCategory.HOS,
            title='11-Hour Driving Limit',
            description='Maximum 11 hours of driving after 10 consecutive hours off duty',
            source='FMCSA',
            severity=RuleSeverity.CRITICAL,
            effective_date=date(2017, 12, 18),
            last_updated=RULES_LAST_UPDATED,
            parameters={
                'threshold': 11.0,
                'required_off_duty_hours': 10.0,
                'warning_lead_hours': 0.5,  # 30 minutes
                'estimated_fine': 1150,
            },
            metric=DutyMetric.CURRENT_DRIVING_HOURS,
            can_override=False,
        ),
        Rule(
            rule_id='hos-30min-break',
            category=RuleCategory.HOS,
            title='30-Minute Break Rule',
            description='Required 30-minute break after 8 hours of driving',
            source='FMCSA',
            severity=RuleSeverity.CRITICAL,
            effective_date=date(2013, 7, 1),
            last_updated=RULES_LAST_UPDATED,
            parameters={
                'threshold': 8.0,
                'minimum_break_duration': 0.5,
                'warning_lead_hours': 10 / 60,
                'estimated_fine': 395,
            },
            metric=DutyMetric.TIME_SINCE_LAST_BREAK,
            can_override=True,
        ),
        Rule(
            rule_id='hos-14hour-window',
            category=RuleCategory.HOS,
            title='14-Hour On-Duty Window',
            description='Cannot drive after 14th hour since coming on duty',
            source='FMCSA',
            severity=RuleSeverity.CRITICAL,
            effective_date=date(2004, 1, 4),
            last_updated=RULES_LAST_UPDATED,
            parameters={
                'threshold': 14.0,
                'warning_lead_hours': 1.0,
                'estimated_fine': 1150,
            },
            metric=DutyMetric.ON_DUTY_ELAPSED,
            can_override=False,
        ),
        Rule(
            rule_id='hos-70hour-limit',
            category=RuleCategory.HOS,
            title='70-Hour/8-Day Limit',
            description='Cannot drive after 70 hours on duty in 8 consecutive days',
            source='FMCSA',
            severity=RuleSeverity.CRITICAL,
            effective_date=date(1938, 8, 9),
            last_updated=RULES_LAST_UPDATED,
            parameters={
                'threshold': 70.0,
                'days_period': 8,
                'warning_lead_hours': 4.0,
                'estimated_fine': 2750,
            },
            metric=DutyMetric.WEEKLY_ON_DUTY_HOURS,
            can_override=False,
        ),
    ]


class RuleRegistry:
    """
    Thread-safe store of the current rule set and its update history.

    Writers build a new mapping and swap it in with a single assignment, so
    readers always see either the previous or the next rule set, never a
    partially applied one.
    """

    def __init__(self, rules: Optional[Iterable[Rule]] = None, max_history: int = 10):
        self.max_history = max_history
        self._lock = threading.Lock()
        seed = default_rules() if rules is None else list(rules)
        for rule in seed:
            validate_rule(rule)
        self._rules: Dict[str, Rule] = {rule.rule_id: rule for rule in seed}
        self._history: List[RuleUpdateNotification] = []
        self.total_updates = 0
        self.last_sync: Optional[datetime] = None

    def get(self) -> List[Rule]:
        return list(self._rules.values())

    def lookup(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def __len__(self) -> int:
        return len(self._rules)

    def history(self) -> List[RuleUpdateNotification]:
        """Rule update notifications, newest first."""
        return list(self._history)

    def upsert(self, rule: Rule) -> None:
        """
        Insert a rule or replace the rule with the same id.

        Raises:
            InvalidRuleError: If the rule lacks required parameters
        """
        validate_rule(rule)
        with self._lock:
            rules = dict(self._rules)
            rules[rule.rule_id] = rule
            self._rules = rules
        logger.debug(f"Upserted rule {rule.rule_id}")

    def apply_update(self, update: RuleUpdateNotification,
                     now: Optional[datetime] = None) -> Rule:
        """
        Record an update notification and apply any new parameters it carries.

        Returns:
            The rule as it stands after the update

        Raises:
            UnknownRuleError: If the update references an unknown rule
            InvalidRuleError: If the new parameters lack required keys
        """
        now = now or datetime.now(timezone.utc)
        with self._lock:
            current = self._rules.get(update.rule_id)
            if current is None:
                raise UnknownRuleError(f"Unknown rule id: {update.rule_id}")

            changes: Dict[str, Any] = {}
            if update.parameters is not None:
                changes['parameters'] = dict(update.parameters)
            if update.change_type == ChangeType.DEPRECATED:
                changes['deprecated'] = True
            updated = current
            if changes:
                updated = replace(current, last_updated=now, **changes)
                validate_rule(updated)

            rules = dict(self._rules)
            rules[updated.rule_id] = updated
            self._rules = rules
            self._push_history([update])

        logger.info(f"Applied {update.change_type.value} update to rule {update.rule_id}")
        return updated

    def record_notification(self, update: RuleUpdateNotification) -> None:
        """Append a notification to the history without touching any rule."""
        with self._lock:
            self._push_history([update])

    def replace(self, rules: Iterable[Rule],
                notifications: Iterable[RuleUpdateNotification] = (),
                synced_at: Optional[datetime] = None) -> None:
        """
        Swap in a complete rule set and its notifications in one step.

        Raises:
            InvalidRuleError: If any rule is invalid (nothing is applied)
        """
        rules = list(rules)
        for rule in rules:
            validate_rule(rule)
        with self._lock:
            self._rules = {rule.rule_id: rule for rule in rules}
            self._push_history(list(notifications))
            if synced_at is not None:
                self.last_sync = synced_at

    def reconcile(
        self,
        diff: Callable[[Dict[str, Rule]], Tuple[Iterable[Rule], List[RuleUpdateNotification]]],
        synced_at: Optional[datetime] = None
    ) -> List[RuleUpdateNotification]:
        """
        Diff against the current rules and swap in the result under one lock.

        ``diff`` receives a copy of the current mapping and returns the new
        complete rule set plus the notifications describing the change.

        Raises:
            InvalidRuleError: If any resulting rule is invalid (nothing is applied)
        """
        with self._lock:
            rules, notifications = diff(dict(self._rules))
            rules = list(rules)
            for rule in rules:
                validate_rule(rule)
            self._rules = {rule.rule_id: rule for rule in rules}
            self._push_history(list(notifications))
            if synced_at is not None:
                self.last_sync = synced_at
        return notifications

    def restore_history(self, notifications: Iterable[RuleUpdateNotification],
                        total_updates: int = 0) -> None:
        """Load persisted history (newest first) and the cumulative count at startup."""
        with self._lock:
            self._history = list(notifications)[:self.max_history]
            self.total_updates = max(total_updates, len(self._history))

    def _push_history(self, notifications: List[RuleUpdateNotification]) -> None:
        if not notifications:
            return
        self.total_updates += len(notifications)
        self._history = (list(reversed(notifications)) + self._history)[:self.max_history]
