"""
Tests for the scheduled audit service jobs.
"""
from unittest.mock import MagicMock

import pytest
from prometheus_client import REGISTRY

from orgcheck import orgcheck_service
from orgcheck.api import OrgCheckAPI
from orgcheck.data.records import SFDC_LightningAuraComponent
from orgcheck.dataset_manager import DatasetOutcome


@pytest.fixture
def api(transport):
    return OrgCheckAPI(transport)


def _violations(rule_id, description):
    return REGISTRY.get_sample_value('orgcheck_rule_violations',
                                     {'rule_id': str(rule_id), 'description': description})


class TestPublishRuleViolations:
    """Tests for the per rule gauge."""

    def test_counts_successful_outcomes_only(self, api):
        """Test violations are counted per rule and failed datasets are ignored."""
        outcomes = {
            'LightningAuraComponents': DatasetOutcome('LightningAuraComponents', data={
                'a': SFDC_LightningAuraComponent(id='a', bad_reason_ids=[3]),
                'b': SFDC_LightningAuraComponent(id='b', bad_reason_ids=[3]),
                'c': SFDC_LightningAuraComponent(id='c', bad_reason_ids=[]),
            }),
            'Broken': DatasetOutcome('Broken', error=RuntimeError('boom')),
        }

        violations = orgcheck_service.publish_rule_violations(api, outcomes)

        assert violations[3] == 2
        assert _violations(3, 'No description') == 2
        assert _violations(0, 'Not referenced anywhere') == 0


class TestMonitorApiUsage:
    """Tests for the daily API usage job."""

    def test_usage_is_given_to_the_watchdog(self, api, transport):
        """Test the DailyApiRequests limit sets the watchdog and the gauge."""
        transport.limits_result = {'DailyApiRequests': {'Max': 1000, 'Remaining': 50}}

        orgcheck_service.monitor_api_usage(api)

        information = api.get_daily_api_request_limit_information()
        assert information.percentage == 95.0
        assert information.is_red_zone is True
        assert REGISTRY.get_sample_value('orgcheck_daily_api_usage_ratio') == 0.95

    def test_missing_limit(self, api, transport, caplog):
        """Test an org without the limit leaves the watchdog untouched."""
        transport.limits_result = {}

        orgcheck_service.monitor_api_usage(api)

        assert api.get_daily_api_request_limit_information().percentage == 0
        assert any('DailyApiRequests limit not returned' in m for m in caplog.messages)

    def test_errors_are_logged(self, api, transport, caplog):
        """Test a failing call does not stop the scheduler."""
        transport.limits = MagicMock(side_effect=ConnectionError('unreachable'))

        orgcheck_service.monitor_api_usage(api)

        assert any('unreachable' in m for m in caplog.messages)

    def test_limits_are_refreshed(self, api, transport):
        """Test every run reads /limits again instead of the cached dataset."""
        transport.limits_result = {'DailyApiRequests': {'Max': 1000, 'Remaining': 900}}

        orgcheck_service.monitor_api_usage(api)
        orgcheck_service.monitor_api_usage(api)

        assert len(transport.calls_of('limits')) == 2


class TestRunAudit:
    """Tests for the audit job."""

    def test_audit_publishes_violations(self, api, transport, monkeypatch):
        """Test the audited datasets are retrieved again and their violations published."""
        monkeypatch.setattr(orgcheck_service, 'get_audited_datasets', lambda available: ['OrgLimits', 'ObjectTypes'])
        transport.limits_result = {'DailyApiRequests': {'Max': 1000, 'Remaining': 100}}
        api.dataset_manager.cache.set('OrgLimits', {})

        orgcheck_service.run_audit(api)

        assert transport.calls_of('limits') == [('limits',)]
        assert _violations(32, 'Near the limit') == 1

    def test_object_detail_is_not_audited(self, api, monkeypatch):
        """Test the parameterized dataset is not offered to the audit."""
        available = []
        monkeypatch.setattr(orgcheck_service, 'get_audited_datasets',
                            lambda names: available.extend(names) or [])

        orgcheck_service.run_audit(api)

        assert 'Object' not in available
        assert 'Users' in available


class TestScheduleTasks:
    """Tests for the APScheduler wiring."""

    def test_jobs_run_at_startup_then_scheduled(self, api, monkeypatch):
        """Test both jobs run once, then are added with their schedules."""
        calls = []
        monkeypatch.setattr(orgcheck_service, 'monitor_api_usage', lambda a: calls.append('monitor'))
        monkeypatch.setattr(orgcheck_service, 'run_audit', lambda a: calls.append('audit'))
        monkeypatch.setattr(orgcheck_service, 'get_schedule', lambda job_id, default: default)
        scheduler = MagicMock()

        orgcheck_service.schedule_tasks(api, scheduler)

        assert calls == ['monitor', 'audit']
        job_ids = [c.kwargs['id'] for c in scheduler.add_job.call_args_list]
        assert job_ids == ['monitor_api_usage', 'run_audit']

    def test_disabled_job_is_not_scheduled(self, api, monkeypatch):
        """Test a job without schedule is skipped."""
        monkeypatch.setattr(orgcheck_service, 'monitor_api_usage', lambda a: None)
        monkeypatch.setattr(orgcheck_service, 'run_audit', lambda a: None)
        monkeypatch.setattr(orgcheck_service, 'get_schedule',
                            lambda job_id, default: None if job_id == 'run_audit' else default)
        scheduler = MagicMock()

        orgcheck_service.schedule_tasks(api, scheduler)

        assert [c.kwargs['id'] for c in scheduler.add_job.call_args_list] == ['monitor_api_usage']
