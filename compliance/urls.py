"""
URL configuration for the compliance app.

Mounted under /api/compliance/.
"""

from django.urls import path
from .views import (
    # Monitoring lifecycle
    MonitoringStatusView,
    MonitoringStartView,
    MonitoringStopView,

    # Evaluation
    DutyStateView,
    EvaluateView,

    # Predictions
    PredictionListView,
    PredictionOverrideView,
    PreventionActionExecuteView,

    # Rules
    RuleListView,
    RuleSyncView,
    RuleUpdateListView,

    # Alerts and metrics
    AlertListView,
    AlertDetailView,
    MetricsView,
)

app_name = 'compliance'

urlpatterns = [
    # ==========================================================================
    # Monitoring lifecycle
    # ==========================================================================
    path('monitoring', MonitoringStatusView.as_view(), name='monitoring_status'),
    path('monitoring/start', MonitoringStartView.as_view(), name='monitoring_start'),
    path('monitoring/stop', MonitoringStopView.as_view(), name='monitoring_stop'),

    # ==========================================================================
    # Duty state and evaluation
    # ==========================================================================
    path('duty-state', DutyStateView.as_view(), name='duty_state'),
    path('evaluate', EvaluateView.as_view(), name='evaluate'),

    # ==========================================================================
    # Predictions, overrides and prevention actions
    # ==========================================================================
    path('predictions', PredictionListView.as_view(), name='prediction_list'),
    path('predictions/<str:prediction_id>/override', PredictionOverrideView.as_view(), name='prediction_override'),
    path('actions/<str:action_id>/execute', PreventionActionExecuteView.as_view(), name='action_execute'),

    # ==========================================================================
    # Rules
    # ==========================================================================
    path('rules', RuleListView.as_view(), name='rule_list'),
    path('rules/sync', RuleSyncView.as_view(), name='rule_sync'),
    path('rules/updates', RuleUpdateListView.as_view(), name='rule_update_list'),

    # ==========================================================================
    # Alerts and metrics
    # ==========================================================================
    path('alerts', AlertListView.as_view(), name='alert_list'),
    path('alerts/<str:alert_id>', AlertDetailView.as_view(), name='alert_detail'),
    path('metrics', MetricsView.as_view(), name='metrics'),
]
