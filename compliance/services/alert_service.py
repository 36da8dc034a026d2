"""
Alert Manager.

Turns critical predictions, overrides, completed actions and rule updates
into time-bounded alerts for the notification surface. The list is bounded;
expiry is explicit (``expire_stale`` runs once per monitoring cycle).
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class AlertType(Enum):
    VIOLATION_PREVENTION = 'Violation Prevention'
    RULE_UPDATE = 'Rule Update'
    INSPECTION_ALERT = 'Inspection Alert'
    ROUTE_ADVISORY = 'Route Advisory'


class AlertPriority(Enum):
    CRITICAL = 'Critical'
    HIGH = 'High'
    MEDIUM = 'Medium'
    LOW = 'Low'


@dataclass(frozen=True)
class Alert:
    """A notification the host UI renders and the driver may dismiss."""
    alert_id: str
    timestamp: datetime
    alert_type: AlertType
    priority: AlertPriority
    title: str
    message: str
    action_required: bool = False
    auto_resolved: bool = False
    expires_at: Optional[datetime] = None
    related_rule_id: Optional[str] = None

    @classmethod
    def create(
        cls,
        alert_type: AlertType,
        priority: AlertPriority,
        title: str,
        message: str,
        now: datetime,
        ttl_minutes: Optional[float] = None,
        action_required: bool = False,
        auto_resolved: bool = False,
        related_rule_id: Optional[str] = None
    ) -> 'Alert':
        expires_at = now + timedelta(minutes=ttl_minutes) if ttl_minutes is not None else None
        return cls(
            alert_id=f"alert-{uuid.uuid4()}",
            timestamp=now,
            alert_type=alert_type,
            priority=priority,
            title=title,
            message=message,
            action_required=action_required,
            auto_resolved=auto_resolved,
            expires_at=expires_at,
            related_rule_id=related_rule_id,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def to_dict(self) -> Dict:
        return {
            'id': self.alert_id,
            'timestamp': self.timestamp.isoformat(),
            'type': self.alert_type.value,
            'priority': self.priority.value,
            'title': self.title,
            'message': self.message,
            'action_required': self.action_required,
            'auto_resolved': self.auto_resolved,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'related_rule_id': self.related_rule_id,
        }


class AlertManager:
    """
    Bounded, newest-first alert list.

    Not synchronised on its own; the compliance engine serialises access.
    """

    def __init__(self, max_alerts: int = 20):
        if max_alerts < 1:
            raise ValueError(f"max_alerts must be at least 1, got {max_alerts}")
        self.max_alerts = max_alerts
        self._alerts: List[Alert] = []

    def raise_alert(self, alert: Alert) -> None:
        """Add an alert, evicting the oldest ones beyond the cap."""
        self._alerts.insert(0, alert)
        evicted = self._alerts[self.max_alerts:]
        del self._alerts[self.max_alerts:]
        if evicted:
            logger.debug(f"Evicted {len(evicted)} oldest alert(s) beyond cap of {self.max_alerts}")

    def dismiss(self, alert_id: str) -> bool:
        """Remove an alert. Unknown ids are ignored; returns whether one was removed."""
        before = len(self._alerts)
        self._alerts = [a for a in self._alerts if a.alert_id != alert_id]
        return len(self._alerts) != before

    def dismiss_related(self, rule_id: str, alert_type: AlertType,
                        action_required: Optional[bool] = None) -> int:
        """Remove alerts of one type raised for a rule; returns how many."""
        def matches(alert: Alert) -> bool:
            if alert.related_rule_id != rule_id or alert.alert_type != alert_type:
                return False
            return action_required is None or alert.action_required == action_required

        before = len(self._alerts)
        self._alerts = [a for a in self._alerts if not matches(a)]
        return before - len(self._alerts)

    def expire_stale(self, now: datetime) -> List[Alert]:
        """Drop every alert whose expiry has passed and return them."""
        expired = [a for a in self._alerts if a.is_expired(now)]
        if expired:
            self._alerts = [a for a in self._alerts if not a.is_expired(now)]
            logger.debug(f"Expired {len(expired)} alert(s)")
        return expired

    def list(self) -> List[Alert]:
        return list(self._alerts)

    def __len__(self) -> int:
        return len(self._alerts)
