"""
Compliance Engine.

Single owner of the engine's mutable state (rule registry, current
predictions, alerts, override counters, metrics) and the invocation surface
the host application calls.

Monitoring cycle:
================
1. Read the latest duty-state snapshot and the current rule set
2. Evaluate predictions outside the lock (pure, may be slow)
3. Under the lock: expire stale alerts, supersede the previous cycle's
   predictions, raise one alert per Critical prediction, recompute metrics

Lock order: in-flight guard, then scheduler lock, then engine lock. Manual
evaluation waits on the same in-flight guard as scheduler ticks.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from .alert_service import Alert, AlertManager, AlertPriority, AlertType
from .config import ComplianceConfig
from .errors import InvalidSnapshotError, SyncFailure, UnknownActionError, UnknownPredictionError
from .metrics_service import ComplianceMetrics, MetricsAggregator
from .monitoring_service import MonitoringScheduler
from .override_service import OverrideCounters, OverrideService, SupervisorApproval, ViolationOverride
from .prediction_service import (
    DutyStateSnapshot,
    PredictionSeverity,
    PreventionAction,
    ViolationPrediction,
    ViolationPredictionService,
)
from .rule_sync_service import HttpRuleContentProvider, RuleSyncService
from .rules import ImpactLevel, Rule, RuleRegistry, RuleUpdateNotification

logger = logging.getLogger(__name__)

PRIORITY_BY_IMPACT = {
    ImpactLevel.HIGH: AlertPriority.HIGH,
    ImpactLevel.MEDIUM: AlertPriority.MEDIUM,
    ImpactLevel.LOW: AlertPriority.LOW,
}


class DutyStateSource(Protocol):
    """Live duty-state feed (ELD integration or host application)."""

    def current(self) -> Optional[DutyStateSnapshot]:
        ...


class LatestDutyStateSource:
    """Holds the most recently reported snapshot."""

    def __init__(self, snapshot: Optional[DutyStateSnapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = snapshot
        self.reported_at: Optional[datetime] = None

    def report(self, snapshot: DutyStateSnapshot, now: Optional[datetime] = None) -> None:
        snapshot.validate()
        with self._lock:
            self._snapshot = snapshot
            self.reported_at = now or datetime.now(timezone.utc)

    def current(self) -> Optional[DutyStateSnapshot]:
        with self._lock:
            return self._snapshot


class ComplianceEngine:
    """
    Predictive Hours of Service compliance engine.

    All mutations are serialised with one re-entrant lock. Prediction runs
    outside it; rule reads see either the pre-sync or the post-sync rule set.
    """

    def __init__(
        self,
        config: Optional[ComplianceConfig] = None,
        registry: Optional[RuleRegistry] = None,
        provider=None,
        duty_state_source: Optional[DutyStateSource] = None,
        store=None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.config = config or ComplianceConfig()
        self._lock = threading.RLock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.store = store
        self.registry = registry or RuleRegistry(max_history=self.config.max_rule_updates)
        self.alerts = AlertManager(self.config.max_alerts)
        self.counters = OverrideCounters(window_days=self.config.override_window_days)
        self.duty_state = duty_state_source or LatestDutyStateSource()

        if provider is None:
            provider = HttpRuleContentProvider(
                self.config.rules_provider_url,
                token=self.config.rules_provider_token,
                timeout=self.config.sync_timeout_seconds,
            )
        self.prediction_service = ViolationPredictionService()
        self.override_service = OverrideService(
            self.counters, self.alerts, self.config.override_alert_ttl_minutes
        )
        self.metrics_aggregator = MetricsAggregator(self.config.default_hours_until_violation)
        self.rule_sync = RuleSyncService(self.registry, provider)

        self._predictions: List[ViolationPrediction] = []
        self._cycle = 0

        if self.store is not None:
            self._load_state()
        self._metrics = self._recompute_metrics(self._clock())

        self.monitor = MonitoringScheduler(
            compute=self._compute_cycle,
            apply=self._apply_cycle,
            interval_seconds=self.config.monitoring_interval_seconds,
            name='compliance-monitor',
            manage_db_connections=self.store is not None,
        )
        self.rule_sync_scheduler = MonitoringScheduler(
            compute=self._periodic_sync,
            apply=lambda notifications: None,
            interval_seconds=self.config.rule_sync_interval_seconds,
            name='rule-sync',
            manage_db_connections=self.store is not None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_monitoring(self, sync_rules: bool = True) -> bool:
        """Start the monitoring loop (and periodic rule sync). Idempotent."""
        started = self.monitor.start()
        if sync_rules and self.config.rules_provider_url:
            self.rule_sync_scheduler.start()
        return started

    def stop_monitoring(self) -> bool:
        """Stop both schedulers; in-flight results are discarded. Idempotent."""
        self.rule_sync_scheduler.stop()
        return self.monitor.stop()

    @property
    def is_monitoring(self) -> bool:
        return self.monitor.is_running

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def report_duty_state(self, snapshot: DutyStateSnapshot) -> None:
        """Store the latest snapshot for the next monitoring cycle."""
        if not hasattr(self.duty_state, 'report'):
            raise TypeError(f"{type(self.duty_state).__name__} does not accept reports")
        self.duty_state.report(snapshot, now=self._clock())

    def evaluate(self, snapshot: Optional[DutyStateSnapshot] = None) -> List[ViolationPrediction]:
        """
        Run one evaluation now and apply its result.

        Args:
            snapshot: Duty state to evaluate; defaults to the latest reported one

        Returns:
            The current predictions after this evaluation

        Raises:
            InvalidSnapshotError: If the snapshot is malformed or none is available
        """
        if snapshot is None:
            snapshot = self.duty_state.current()
            if snapshot is None:
                raise InvalidSnapshotError("No duty-state snapshot has been reported")

        # Shares the in-flight guard with scheduler ticks
        self.monitor.run_exclusive(lambda: self._apply_cycle(self._predict(snapshot)))
        return self.list_predictions()

    def run_monitoring_cycle(self) -> bool:
        """Drive one scheduler tick synchronously. Returns whether it was applied."""
        return self.monitor.tick()

    def _predict(self, snapshot: DutyStateSnapshot) -> List[ViolationPrediction]:
        rules = self.registry.get()
        with self._lock:
            self._cycle += 1
            cycle = self._cycle
        return self.prediction_service.evaluate(snapshot, rules, cycle=cycle)

    def _compute_cycle(self) -> Optional[List[ViolationPrediction]]:
        snapshot = self.duty_state.current()
        if snapshot is None:
            logger.debug("No duty-state snapshot yet; skipping prediction")
            return None
        return self._predict(snapshot)

    def _apply_cycle(self, predictions: Optional[List[ViolationPrediction]]) -> None:
        now = self._clock()
        with self._lock:
            self.alerts.expire_stale(now)
            if predictions is not None:
                self._replace_predictions(predictions, now)
            self._refresh_metrics(now)

    def _replace_predictions(self, predictions: List[ViolationPrediction], now: datetime) -> None:
        superseded = {
            p.rule_id for p in self._predictions
            if p.severity == PredictionSeverity.CRITICAL
        }
        superseded.update(
            p.rule_id for p in predictions
            if p.severity == PredictionSeverity.CRITICAL
        )
        for rule_id in superseded:
            self.alerts.dismiss_related(
                rule_id, AlertType.VIOLATION_PREVENTION, action_required=True
            )

        self._predictions = list(predictions)
        for prediction in self._predictions:
            if prediction.severity != PredictionSeverity.CRITICAL:
                continue
            self.alerts.raise_alert(Alert.create(
                alert_type=AlertType.VIOLATION_PREVENTION,
                priority=AlertPriority.CRITICAL,
                title='Violation Prevention Alert',
                message=prediction.message,
                now=now,
                ttl_minutes=prediction.time_to_violation,
                action_required=True,
                related_rule_id=prediction.rule_id,
            ))

        critical = sum(1 for p in predictions if p.severity == PredictionSeverity.CRITICAL)
        logger.info(
            f"Evaluation cycle {self._cycle}: {len(predictions)} prediction(s), "
            f"{critical} critical"
        )

    # ------------------------------------------------------------------
    # Predictions and prevention actions
    # ------------------------------------------------------------------

    def list_predictions(self) -> List[ViolationPrediction]:
        with self._lock:
            return list(self._predictions)

    def get_prediction(self, prediction_id: str) -> ViolationPrediction:
        with self._lock:
            for prediction in self._predictions:
                if prediction.prediction_id == prediction_id:
                    return prediction
        raise UnknownPredictionError(f"No current prediction with id {prediction_id}")

    def resolve_prediction(self, prediction_id: str) -> bool:
        """Remove a prediction once it has been addressed. Unknown ids are ignored."""
        now = self._clock()
        with self._lock:
            before = len(self._predictions)
            self._predictions = [
                p for p in self._predictions if p.prediction_id != prediction_id
            ]
            resolved = len(self._predictions) != before
            if resolved:
                self._refresh_metrics(now)
        if resolved:
            logger.info(f"Resolved prediction {prediction_id}")
        return resolved

    def execute_prevention_action(self, action_id: str) -> PreventionAction:
        """
        Carry out a prevention action and resolve the prediction that owns it.

        Automated actions raise a short-lived "Action Completed" advisory;
        manual ones are assumed to be done by the driver.

        Raises:
            UnknownActionError: If no current prediction owns the action
        """
        now = self._clock()
        with self._lock:
            owner = None
            action = None
            for prediction in self._predictions:
                action = prediction.find_action(action_id)
                if action is not None:
                    owner = prediction
                    break
            if owner is None:
                raise UnknownActionError(f"No current prevention action with id {action_id}")

            if action.automated:
                self.alerts.raise_alert(Alert.create(
                    alert_type=AlertType.ROUTE_ADVISORY,
                    priority=AlertPriority.MEDIUM,
                    title='Action Completed',
                    message=f"{action.title} completed automatically",
                    now=now,
                    ttl_minutes=self.config.action_alert_ttl_minutes,
                    auto_resolved=True,
                    related_rule_id=owner.rule_id,
                ))
            self.resolve_prediction(owner.prediction_id)

        logger.info(f"Executed prevention action {action_id} ({action.action_type.value})")
        return action

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    def override(
        self,
        prediction_id: str,
        reason: str,
        driver_id: str,
        risk_acknowledged: bool,
        estimated_fine_accepted: bool,
        supervisor_approval: Optional[SupervisorApproval] = None,
        trip_id: Optional[str] = None
    ) -> ViolationOverride:
        """
        Record a documented override of a current prediction.

        Raises:
            UnknownPredictionError: If no current prediction has the id
            OverrideError: Subclass naming the refused precondition
        """
        now = self._clock()
        with self._lock:
            prediction = self.get_prediction(prediction_id)
            record = self.override_service.build_record(
                prediction,
                self.registry.lookup(prediction.rule_id),
                reason=reason,
                driver_id=driver_id,
                risk_acknowledged=risk_acknowledged,
                estimated_fine_accepted=estimated_fine_accepted,
                supervisor_approval=supervisor_approval,
                trip_id=trip_id,
                now=now,
            )
            # Audit row first: a failed write leaves the prediction overridable
            if self.store is not None:
                self.store.record_override(record)
            self.override_service.commit(prediction, record)
            self._refresh_metrics(now)
        return record

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def list_rules(self) -> List[Rule]:
        return self.registry.get()

    def list_rule_updates(self) -> List[RuleUpdateNotification]:
        return self.registry.history()

    def sync_rules(self) -> List[RuleUpdateNotification]:
        """
        Pull rule content from the provider and apply what changed.

        Raises:
            SyncFailure: If the provider fails; the registry is unchanged
        """
        now = self._clock()
        notifications = self.rule_sync.sync(now=now)
        with self._lock:
            for notification in notifications:
                self.alerts.raise_alert(self._rule_update_alert(notification, now))
            self._refresh_metrics(now)
            if self.store is not None:
                self.store.save_rules(self.registry.get())
                self.store.record_rule_updates(notifications)
        return notifications

    def apply_rule_update(self, update: RuleUpdateNotification) -> Rule:
        """
        Apply a pushed rule update notification.

        Raises:
            UnknownRuleError: If the update references an unknown rule
            InvalidRuleError: If the new parameters are incomplete
        """
        now = self._clock()
        with self._lock:
            rule = self.registry.apply_update(update, now=now)
            self.alerts.raise_alert(self._rule_update_alert(update, now))
            self._refresh_metrics(now)
            if self.store is not None:
                self.store.save_rules([rule])
                self.store.record_rule_updates([update])
        return rule

    def _periodic_sync(self) -> List[RuleUpdateNotification]:
        try:
            return self.sync_rules()
        except SyncFailure as e:
            logger.warning(f"Periodic rule sync failed, keeping current rules: {e}")
            return []

    def _rule_update_alert(self, update: RuleUpdateNotification, now: datetime) -> Alert:
        title = (
            'Important Rule Update' if update.impact_level == ImpactLevel.HIGH
            else 'DOT Rule Update Available'
        )
        return Alert.create(
            alert_type=AlertType.RULE_UPDATE,
            priority=PRIORITY_BY_IMPACT[update.impact_level],
            title=title,
            message=update.summary,
            now=now,
            action_required=update.action_required,
            related_rule_id=update.rule_id,
        )

    # ------------------------------------------------------------------
    # Alerts and metrics
    # ------------------------------------------------------------------

    def list_alerts(self) -> List[Alert]:
        with self._lock:
            return self.alerts.list()

    def dismiss_alert(self, alert_id: str) -> bool:
        """Dismiss an alert. Dismissing an unknown id is a no-op."""
        now = self._clock()
        with self._lock:
            dismissed = self.alerts.dismiss(alert_id)
            if dismissed:
                self._refresh_metrics(now)
        return dismissed

    def get_metrics(self) -> ComplianceMetrics:
        """Metrics as of now; the trailing override window rolls without a mutation."""
        now = self._clock()
        with self._lock:
            self._metrics = self._recompute_metrics(now)
            return self._metrics

    def _recompute_metrics(self, now: datetime) -> ComplianceMetrics:
        return self.metrics_aggregator.recompute(
            self._predictions,
            self.alerts.list(),
            self.counters,
            rule_updates_count=self.registry.total_updates,
            last_rule_sync=self.registry.last_sync,
            now=now,
        )

    def _refresh_metrics(self, now: datetime) -> None:
        self._metrics = self._recompute_metrics(now)
        if self.store is not None:
            self.store.save_metrics(self._metrics)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_state(self) -> None:
        now = self._clock()
        rules = self.store.load_rules()
        if rules:
            self.registry.replace(rules)
        else:
            self.store.save_rules(self.registry.get())
        self.registry.restore_history(
            self.store.load_rule_updates(self.config.max_rule_updates),
            total_updates=self.store.load_rule_updates_count(),
        )
        self.registry.last_sync = self.store.load_last_sync()

        self.counters = OverrideCounters(
            overrides_used=self.store.count_overrides(),
            timestamps=self.store.load_override_timestamps(
                since=now - self.counters.window
            ),
            window_days=self.config.override_window_days,
        )
        self.override_service.counters = self.counters
        logger.info(
            f"Loaded {len(self.registry)} rule(s) and {self.counters.overrides_used} "
            f"override(s) from storage"
        )
