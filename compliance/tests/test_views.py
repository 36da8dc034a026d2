"""
Tests for Compliance API Views.
"""

from django.test import TestCase, override_settings
from rest_framework.test import APIClient
from rest_framework import status

from compliance.apps import get_engine, reset_engine
from compliance.models import ViolationOverrideRecord
from compliance.services.rules import default_rules


BASE = '/api/compliance'

NO_PROVIDER = {
    'MONITORING_INTERVAL_SECONDS': 30,
    'RULES_PROVIDER_URL': '',
}


def duty_state(driving=0.0, since_break=0.0, on_duty=0.0, weekly=0.0):
    return {
        'current_driving_hours': driving,
        'time_since_last_break': since_break,
        'on_duty_elapsed': on_duty,
        'weekly_on_duty_hours': weekly,
    }


class StaticProvider:
    """Rule-content provider returning a fixed payload."""

    def __init__(self, rules):
        self.rules = rules

    def fetch_rules(self):
        return [dict(r) for r in self.rules]


@override_settings(COMPLIANCE_CONFIG=NO_PROVIDER)
class ComplianceAPITestCase(TestCase):
    """Fresh engine per test, stopped afterwards."""

    def setUp(self):
        reset_engine()
        self.client = APIClient()

    def tearDown(self):
        reset_engine()

    def evaluate(self, **kwargs):
        response = self.client.post(f'{BASE}/evaluate', duty_state(**kwargs), format='json')
        assert response.status_code == status.HTTP_200_OK
        return response.data['predictions']


class TestHealthCheckEndpoint(ComplianceAPITestCase):
    """Test health check endpoint."""

    def test_health_check_returns_200(self):
        response = self.client.get('/api/health/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'healthy'
        assert response.data['version'] == '1.0.0'
        assert response.data['monitoring'] is False
        assert 'timestamp' in response.data


class TestApiRootEndpoint(ComplianceAPITestCase):
    """Test API root endpoint."""

    def test_api_root_returns_endpoints(self):
        response = self.client.get('/api/')

        assert response.status_code == status.HTTP_200_OK
        for group in ('health', 'monitoring', 'evaluation', 'predictions', 'rules', 'alerts', 'metrics'):
            assert group in response.data['endpoints']


class TestMonitoringEndpoints(ComplianceAPITestCase):
    """Test monitoring lifecycle endpoints."""

    def test_status_when_stopped(self):
        response = self.client.get(f'{BASE}/monitoring')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['monitoring'] is False
        assert response.data['interval_seconds'] == 30

    def test_start_and_stop_are_idempotent(self):
        first = self.client.post(f'{BASE}/monitoring/start')
        second = self.client.post(f'{BASE}/monitoring/start')

        assert first.data['changed'] is True
        assert second.data['changed'] is False
        assert second.data['monitoring'] is True

        first = self.client.post(f'{BASE}/monitoring/stop')
        second = self.client.post(f'{BASE}/monitoring/stop')

        assert first.data['changed'] is True
        assert second.data['changed'] is False
        assert second.data['monitoring'] is False


class TestDutyStateEndpoint(ComplianceAPITestCase):
    """Test duty-state reporting."""

    def test_report_duty_state(self):
        response = self.client.put(f'{BASE}/duty-state', duty_state(driving=10.5), format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['duty_state']['current_driving_hours'] == 10.5
        assert get_engine().duty_state.current().current_driving_hours == 10.5

    def test_camel_case_keys_accepted(self):
        payload = {
            'currentDrivingHours': 2,
            'timeSinceLastBreak': 7.9,
            'onDutyElapsed': 3,
            'weeklyOnDutyHours': 20,
        }

        response = self.client.put(f'{BASE}/duty-state', payload, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['duty_state']['time_since_last_break'] == 7.9

    def test_negative_value_rejected(self):
        response = self.client.put(f'{BASE}/duty-state', duty_state(driving=-1), format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'current_driving_hours' in response.data['details']
        assert get_engine().duty_state.current() is None

    def test_missing_field_rejected(self):
        response = self.client.put(f'{BASE}/duty-state', {'current_driving_hours': 1}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'error' in response.data


class TestEvaluateEndpoint(ComplianceAPITestCase):
    """Test on-demand evaluation."""

    def test_reference_scenario(self):
        predictions = self.evaluate(driving=10.5, since_break=7.8, on_duty=12, weekly=65)

        assert len(predictions) == 1
        assert predictions[0]['rule_id'] == 'hos-driving-limit'
        assert predictions[0]['severity'] == 'Warning'
        assert predictions[0]['time_to_violation'] == 30

    def test_response_includes_metrics(self):
        response = self.client.post(f'{BASE}/evaluate', duty_state(since_break=8), format='json')

        assert response.data['metrics']['critical_predictions'] == 1
        assert response.data['metrics']['hours_until_violation'] == 0

    def test_uses_reported_duty_state(self):
        self.client.put(f'{BASE}/duty-state', duty_state(driving=10.8), format='json')

        response = self.client.post(f'{BASE}/evaluate', format='json')

        assert response.status_code == status.HTTP_200_OK
        assert [p['rule_id'] for p in response.data['predictions']] == ['hos-driving-limit']

    def test_without_any_duty_state(self):
        response = self.client.post(f'{BASE}/evaluate', format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'invalid_snapshot'

    def test_invalid_body_rejected(self):
        response = self.client.post(f'{BASE}/evaluate', duty_state(weekly=-5), format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_predictions_listed(self):
        self.evaluate(driving=10.8)

        response = self.client.get(f'{BASE}/predictions')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['predictions'][0]['severity'] == 'Critical'


class TestOverrideEndpoint(ComplianceAPITestCase):
    """Test violation overrides."""

    def setUp(self):
        super().setUp()
        self.payload = {
            'reason': 'Customer dock closes in 20 minutes',
            'driver_id': 'driver-42',
            'risk_acknowledged': True,
            'estimated_fine_accepted': True,
        }

    def override_url(self, prediction_id):
        return f'{BASE}/predictions/{prediction_id}/override'

    def test_override_recorded(self):
        prediction = self.evaluate(since_break=8)[0]

        response = self.client.post(self.override_url(prediction['id']), self.payload, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['override']['rule_id'] == 'hos-30min-break'
        assert ViolationOverrideRecord.objects.count() == 1
        metrics = self.client.get(f'{BASE}/metrics').data
        assert metrics['overrides_used'] == 1
        assert metrics['overrides_this_week'] == 1

    def test_override_with_supervisor_approval(self):
        prediction = self.evaluate(since_break=8)[0]
        payload = {
            **self.payload,
            'supervisorApproval': {'supervisorId': 'sup-7', 'approvedAt': '2025-08-01T11:55:00Z'},
            'tripId': 'trip-9',
        }

        response = self.client.post(self.override_url(prediction['id']), payload, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['override']['supervisor_approval']['supervisor_id'] == 'sup-7'
        assert ViolationOverrideRecord.objects.get().trip_id == 'trip-9'

    def test_hard_limit_not_overridable(self):
        prediction = self.evaluate(driving=10.8)[0]

        response = self.client.post(self.override_url(prediction['id']), self.payload, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'not_overridable'
        assert ViolationOverrideRecord.objects.count() == 0

    def test_risk_must_be_acknowledged(self):
        prediction = self.evaluate(since_break=8)[0]
        payload = {**self.payload, 'risk_acknowledged': False}

        response = self.client.post(self.override_url(prediction['id']), payload, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'risk_not_acknowledged'

    def test_blank_reason_refused(self):
        prediction = self.evaluate(since_break=8)[0]
        payload = {**self.payload, 'reason': '   '}

        response = self.client.post(self.override_url(prediction['id']), payload, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'invalid_override'

    def test_unknown_prediction(self):
        response = self.client.post(self.override_url('prediction-missing-1'), self.payload, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'unknown_prediction'

    def test_second_override_conflicts(self):
        prediction = self.evaluate(since_break=8)[0]
        url = self.override_url(prediction['id'])
        self.client.post(url, self.payload, format='json')

        response = self.client.post(url, self.payload, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'override_already_recorded'
        assert ViolationOverrideRecord.objects.count() == 1


class TestPreventionActionEndpoint(ComplianceAPITestCase):
    """Test prevention action execution."""

    def test_execute_automated_action(self):
        prediction = self.evaluate(driving=10.8)[0]
        action_id = prediction['prevention_actions'][0]['id']

        response = self.client.post(f'{BASE}/actions/{action_id}/execute')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['action']['automated'] is True
        assert response.data['predictions'] == []
        titles = [a['title'] for a in self.client.get(f'{BASE}/alerts').data['alerts']]
        assert 'Action Completed' in titles

    def test_unknown_action(self):
        response = self.client.post(f'{BASE}/actions/no-such-action/execute')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'unknown_action'


class TestRuleEndpoints(ComplianceAPITestCase):
    """Test rule listing and sync."""

    def test_list_rules(self):
        response = self.client.get(f'{BASE}/rules')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 4
        assert {r['id'] for r in response.data['rules']} == {r.rule_id for r in default_rules()}

    def test_sync_without_provider_fails(self):
        response = self.client.post(f'{BASE}/rules/sync')

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.data['code'] == 'sync_failure'
        assert self.client.get(f'{BASE}/rules').data['count'] == 4

    def test_sync_applies_changes(self):
        payload = [r.to_dict() for r in default_rules()]
        payload[0]['parameters']['threshold'] = 10.0
        get_engine().rule_sync.provider = StaticProvider(payload)

        response = self.client.post(f'{BASE}/rules/sync')

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data['updates']) == 1
        assert response.data['last_rule_sync'] is not None

        updates = self.client.get(f'{BASE}/rules/updates').data
        assert updates['count'] == 1
        assert updates['updates'][0]['rule_id'] == payload[0]['id']
        titles = [a['title'] for a in self.client.get(f'{BASE}/alerts').data['alerts']]
        assert titles == ['Important Rule Update']

    def test_rule_updates_initially_empty(self):
        response = self.client.get(f'{BASE}/rules/updates')

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'count': 0, 'updates': []}


class TestAlertEndpoints(ComplianceAPITestCase):
    """Test alert listing and dismissal."""

    def test_critical_prediction_raises_alert(self):
        self.evaluate(since_break=8)

        response = self.client.get(f'{BASE}/alerts')

        assert response.data['count'] == 1
        alert = response.data['alerts'][0]
        assert alert['priority'] == 'Critical'
        assert alert['related_rule_id'] == 'hos-30min-break'

    def test_dismiss_alert(self):
        self.evaluate(since_break=8)
        alert_id = self.client.get(f'{BASE}/alerts').data['alerts'][0]['id']

        response = self.client.delete(f'{BASE}/alerts/{alert_id}')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['dismissed'] is True
        assert self.client.get(f'{BASE}/alerts').data['count'] == 0

    def test_dismiss_unknown_alert_is_a_no_op(self):
        response = self.client.delete(f'{BASE}/alerts/alert-missing')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['dismissed'] is False


class TestMetricsEndpoint(ComplianceAPITestCase):
    """Test compliance metrics."""

    def test_initial_metrics(self):
        response = self.client.get(f'{BASE}/metrics')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['compliance_score'] == 100
        assert response.data['violation_risk'] == 0
        assert response.data['risk_level'] == 'Low'
        assert response.data['last_rule_sync'] is None

    def test_metrics_follow_evaluation(self):
        self.evaluate(driving=10.5)

        response = self.client.get(f'{BASE}/metrics')

        assert response.data['warning_predictions'] == 1
        assert response.data['compliance_score'] == 90
        assert response.data['active_alerts'] == 0
