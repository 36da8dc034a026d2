"""
Compliance API Views.

REST API for the Predictive HOS Compliance Engine with:
- Health check
- Monitoring lifecycle
- Duty-state reporting and evaluation
- Violation predictions, overrides and prevention actions
- Rule registry and rule sync
- Alerts and compliance metrics
"""

import logging
from datetime import datetime, timezone

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework.views import APIView

from .apps import get_engine
from .serializers import (
    DutyStateSnapshotSerializer,
    HealthCheckSerializer,
    OverrideRequestSerializer,
    normalize_keys,
)
from .services.errors import (
    InvalidSnapshotError,
    OverrideAlreadyRecordedError,
    OverrideError,
    SyncFailure,
    UnknownActionError,
    UnknownPredictionError,
)

logger = logging.getLogger(__name__)


def error_response(message, details=None, code=None, http_status=status.HTTP_400_BAD_REQUEST):
    body = {'error': message}
    if details is not None:
        body['details'] = details
    if code is not None:
        body['code'] = code
    return Response(body, status=http_status)


def monitoring_status(engine):
    metrics = engine.get_metrics()
    return {
        'monitoring': engine.is_monitoring,
        'interval_seconds': engine.config.monitoring_interval_seconds,
        'last_rule_sync': metrics.last_rule_sync.isoformat() if metrics.last_rule_sync else None,
        'active_alerts': metrics.active_alerts,
    }


class HealthCheckView(APIView):
    """
    Health check endpoint for monitoring and load balancers.

    GET /api/health/
    """

    def get(self, request):
        """Return health status of the API."""
        data = {
            'status': 'healthy',
            'message': 'HOS Compliance Engine API is running',
            'version': '1.0.0',
            'monitoring': get_engine().is_monitoring,
            'timestamp': datetime.now(timezone.utc),
        }
        serializer = HealthCheckSerializer(data)
        return Response(serializer.data, status=status.HTTP_200_OK)


# =============================================================================
# Monitoring lifecycle - /api/compliance/monitoring
# =============================================================================

class MonitoringStatusView(APIView):
    """
    GET /api/compliance/monitoring
    """

    def get(self, request):
        return Response(monitoring_status(get_engine()), status=status.HTTP_200_OK)


class MonitoringStartView(APIView):
    """
    POST /api/compliance/monitoring/start
    Start the monitoring loop. Starting a running engine is a no-op.
    """

    def post(self, request):
        engine = get_engine()
        started = engine.start_monitoring()
        data = monitoring_status(engine)
        data['changed'] = started
        return Response(data, status=status.HTTP_200_OK)


class MonitoringStopView(APIView):
    """
    POST /api/compliance/monitoring/stop
    Stop the monitoring loop. Stopping a stopped engine is a no-op.
    """

    def post(self, request):
        engine = get_engine()
        stopped = engine.stop_monitoring()
        data = monitoring_status(engine)
        data['changed'] = stopped
        return Response(data, status=status.HTTP_200_OK)


# =============================================================================
# Duty state and evaluation
# =============================================================================

class DutyStateView(APIView):
    """
    PUT /api/compliance/duty-state
    Report the driver's latest duty state for the next monitoring cycle.
    """

    def put(self, request):
        """
        Request:
        {
            "current_driving_hours": 10.5,
            "time_since_last_break": 7.8,
            "on_duty_elapsed": 12,
            "weekly_on_duty_hours": 65
        }
        """
        serializer = DutyStateSnapshotSerializer(data=normalize_keys(request.data))
        if not serializer.is_valid():
            return error_response('Invalid duty state', serializer.errors)

        snapshot = serializer.to_snapshot()
        try:
            get_engine().report_duty_state(snapshot)
        except InvalidSnapshotError as e:
            return error_response('Invalid duty state', str(e), code=e.code)

        return Response({'duty_state': snapshot.to_dict()}, status=status.HTTP_200_OK)


class EvaluateView(APIView):
    """
    POST /api/compliance/evaluate
    Run an evaluation now. The body is an optional duty-state snapshot;
    without one the latest reported snapshot is used.
    """

    def post(self, request):
        engine = get_engine()
        snapshot = None
        if request.data:
            serializer = DutyStateSnapshotSerializer(data=normalize_keys(request.data))
            if not serializer.is_valid():
                return error_response('Invalid duty state', serializer.errors)
            snapshot = serializer.to_snapshot()

        try:
            predictions = engine.evaluate(snapshot)
        except InvalidSnapshotError as e:
            return error_response('Evaluation failed', str(e), code=e.code)
        except Exception as e:
            logger.exception(f"Evaluation failed: {e}")
            return error_response(
                'Evaluation failed', str(e), http_status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        return Response({
            'predictions': [p.to_dict() for p in predictions],
            'metrics': engine.get_metrics().to_dict(),
        }, status=status.HTTP_200_OK)


# =============================================================================
# Predictions, overrides and prevention actions
# =============================================================================

class PredictionListView(APIView):
    """
    GET /api/compliance/predictions
    """

    def get(self, request):
        predictions = get_engine().list_predictions()
        return Response({
            'count': len(predictions),
            'predictions': [p.to_dict() for p in predictions],
        }, status=status.HTTP_200_OK)


class PredictionOverrideView(APIView):
    """
    POST /api/compliance/predictions/{id}/override
    Record a documented override of a predicted violation.
    """

    def post(self, request, prediction_id):
        """
        Request:
        {
            "reason": "Customer dock closes in 20 minutes",
            "driver_id": "driver-42",
            "risk_acknowledged": true,
            "estimated_fine_accepted": true,
            "supervisor_approval": {"supervisor_id": "sup-7", "approved_at": "..."},
            "trip_id": "trip-9"
        }
        """
        serializer = OverrideRequestSerializer(data=normalize_keys(request.data))
        if not serializer.is_valid():
            return error_response('Invalid override request', serializer.errors)

        try:
            record = get_engine().override(prediction_id, **serializer.to_override_kwargs())
        except UnknownPredictionError as e:
            return error_response(
                'Prediction not found', str(e), code=e.code,
                http_status=status.HTTP_404_NOT_FOUND
            )
        except OverrideAlreadyRecordedError as e:
            return error_response(
                'Override refused', str(e), code=e.code,
                http_status=status.HTTP_409_CONFLICT
            )
        except OverrideError as e:
            return error_response('Override refused', str(e), code=e.code)

        return Response({'override': record.to_dict()}, status=status.HTTP_201_CREATED)


class PreventionActionExecuteView(APIView):
    """
    POST /api/compliance/actions/{action_id}/execute
    Execute a prevention action and resolve the prediction that owns it.
    """

    def post(self, request, action_id):
        engine = get_engine()
        try:
            action = engine.execute_prevention_action(action_id)
        except UnknownActionError as e:
            return error_response(
                'Prevention action not found', str(e), code=e.code,
                http_status=status.HTTP_404_NOT_FOUND
            )

        return Response({
            'action': action.to_dict(),
            'predictions': [p.to_dict() for p in engine.list_predictions()],
        }, status=status.HTTP_200_OK)


# =============================================================================
# Rules - /api/compliance/rules
# =============================================================================

class RuleListView(APIView):
    """
    GET /api/compliance/rules
    """

    def get(self, request):
        rules = get_engine().list_rules()
        return Response({
            'count': len(rules),
            'rules': [r.to_dict() for r in rules],
        }, status=status.HTTP_200_OK)


class RuleSyncView(APIView):
    """
    POST /api/compliance/rules/sync
    Pull rule content from the provider and apply what changed.
    """

    def post(self, request):
        engine = get_engine()
        try:
            notifications = engine.sync_rules()
        except SyncFailure as e:
            logger.error(f"Rule sync failed: {e}")
            return error_response(
                'Rule sync failed', str(e), code=e.code,
                http_status=status.HTTP_502_BAD_GATEWAY
            )

        last_sync = engine.registry.last_sync
        return Response({
            'updates': [n.to_dict() for n in notifications],
            'last_rule_sync': last_sync.isoformat() if last_sync else None,
        }, status=status.HTTP_200_OK)


class RuleUpdateListView(APIView):
    """
    GET /api/compliance/rules/updates
    Rule-update history, newest first.
    """

    def get(self, request):
        updates = get_engine().list_rule_updates()
        return Response({
            'count': len(updates),
            'updates': [u.to_dict() for u in updates],
        }, status=status.HTTP_200_OK)


# =============================================================================
# Alerts and metrics
# =============================================================================

class AlertListView(APIView):
    """
    GET /api/compliance/alerts
    """

    def get(self, request):
        alerts = get_engine().list_alerts()
        return Response({
            'count': len(alerts),
            'alerts': [a.to_dict() for a in alerts],
        }, status=status.HTTP_200_OK)


class AlertDetailView(APIView):
    """
    DELETE /api/compliance/alerts/{id}
    Dismiss an alert. Dismissing an unknown alert succeeds.
    """

    def delete(self, request, alert_id):
        dismissed = get_engine().dismiss_alert(alert_id)
        return Response({'dismissed': dismissed}, status=status.HTTP_200_OK)


class MetricsView(APIView):
    """
    GET /api/compliance/metrics
    """

    def get(self, request):
        return Response(get_engine().get_metrics().to_dict(), status=status.HTTP_200_OK)


@api_view(['GET'])
def api_root(request):
    """
    GET /api/
    API documentation and endpoint listing.
    """
    return Response({
        'name': 'HOS Compliance Engine API',
        'version': '1.0.0',
        'description': 'Predictive Hours of Service compliance monitoring for truck drivers',
        'endpoints': {
            'health': {
                'GET /api/health/': 'Health check'
            },
            'monitoring': {
                'GET /api/compliance/monitoring': 'Monitoring status',
                'POST /api/compliance/monitoring/start': 'Start monitoring',
                'POST /api/compliance/monitoring/stop': 'Stop monitoring'
            },
            'evaluation': {
                'PUT /api/compliance/duty-state': 'Report latest duty state',
                'POST /api/compliance/evaluate': 'Evaluate now'
            },
            'predictions': {
                'GET /api/compliance/predictions': 'Current violation predictions',
                'POST /api/compliance/predictions/{id}/override': 'Override a prediction',
                'POST /api/compliance/actions/{actionId}/execute': 'Execute a prevention action'
            },
            'rules': {
                'GET /api/compliance/rules': 'List rules',
                'POST /api/compliance/rules/sync': 'Sync rules from provider',
                'GET /api/compliance/rules/updates': 'Rule update history'
            },
            'alerts': {
                'GET /api/compliance/alerts': 'List alerts',
                'DELETE /api/compliance/alerts/{id}': 'Dismiss alert'
            },
            'metrics': {
                'GET /api/compliance/metrics': 'Compliance metrics'
            }
        }
    })
