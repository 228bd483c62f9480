"""
Org Check Audit Service - Main Entry Point

Long running service that audits the hygiene of a Salesforce org and exposes
the results to Prometheus on port 9001. It:
    - refreshes the audited datasets (cache cleared, then every dataset retrieved
      and scored again) and publishes per dataset and per rule metrics
    - follows the daily API request usage so the watchdog knows the quota
      before the next audit starts spending it

The service uses APScheduler with cron-style scheduling.

Environment Variables Required:
    - SALESFORCE_AUTH_URL: SFDX authentication URL for org
      (or SALESFORCE_INSTANCE_URL + SALESFORCE_ACCESS_TOKEN for an existing session)

Environment Variables Optional:
    - METRICS_PORT: Port of the Prometheus endpoint (default: 9001)
    - QUERY_TIMEOUT_SECONDS: Timeout in seconds for every Salesforce call (default: 30)
    - CONFIG_FILE_PATH: JSON file selecting datasets, schedules and API usage thresholds
    - SCHEDULE_<JOB_ID>: Custom cron schedule for any job. Set to "disabled" to skip a job.
                         Format: "minute=*/5", "hour=7,minute=30", "*/5 * * * *", or JSON.
                         Example: SCHEDULE_RUN_AUDIT="hour=6,minute=0"

Functions:
    - run_audit: Refresh the audited datasets and publish their metrics
    - monitor_api_usage: Refresh the daily API usage from /limits
    - schedule_tasks: Configures the APScheduler jobs
    - main: Entry point that initializes connection and starts scheduler
"""
import asyncio
import os
from collections import Counter

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from prometheus_client import start_http_server

from orgcheck.api import OrgCheckAPI
from orgcheck.config import get_api_usage_thresholds, get_audited_datasets, get_schedule
from orgcheck.connection_sf import get_salesforce_connection
from orgcheck.dataset import DATASETS
from orgcheck.gauges import daily_api_usage_gauge, rule_violations_gauge
from orgcheck.logger import logger
from orgcheck.transport import SalesforceTransport

# Datasets that need parameters are only retrieved on demand
PARAMETERIZED_DATASETS = ('Object',)


def _records_of(data):
    if isinstance(data, dict):
        return data.values()
    return [] if data is None else [data]


def publish_rule_violations(api, outcomes):
    """Count, per validation rule, the records of the audited datasets violating it."""
    violations = Counter()
    for outcome in outcomes.values():
        if not outcome.ok:
            continue
        for record in _records_of(outcome.data):
            violations.update(getattr(record, 'bad_reason_ids', None) or [])
    rule_violations_gauge.clear()
    for rule in api.factory.validations:
        rule_violations_gauge.labels(rule_id=str(rule.id), description=rule.description).set(violations[rule.id])
    return violations


def run_audit(api):
    """
    Clear the cache and retrieve every audited dataset again.
    """
    try:
        names = get_audited_datasets([n for n in DATASETS if n not in PARAMETERIZED_DATASETS])
        logger.info("Running audit on %d datasets...", len(names))
        api.remove_all_cache()
        outcomes = asyncio.run(api.dataset_manager.run_settled(names))
        failed = [name for name, outcome in outcomes.items() if not outcome.ok]
        violations = publish_rule_violations(api, outcomes)
        logger.info("Audit completed: %d datasets succeeded, %d failed, %d rule violations",
                    len(outcomes) - len(failed), len(failed), sum(violations.values()))
        for name in failed:
            logger.error("Dataset %s failed: %s", name, outcomes[name].error)
    # pylint: disable=broad-except
    except Exception as e:
        logger.error("Error running the audit: %s", e)


def monitor_api_usage(api):
    """
    Read the DailyApiRequests limit and hand it to the watchdog.
    """
    try:
        logger.info("Getting the daily API request usage...")
        api.remove_cache('OrgLimits')
        limits = {limit.id: limit for limit in asyncio.run(api.get_org_limits())}
        daily = limits.get('DailyApiRequests')
        if daily is None or not daily.max:
            logger.warning("DailyApiRequests limit not returned by the org")
            return
        api.sfdc_manager.set_last_api_usage(daily.used / daily.max)
        daily_api_usage_gauge.set(daily.used / daily.max)
        information = api.get_daily_api_request_limit_information()
        logger.info("Daily API request usage: %s%% (green=%s, yellow=%s, red=%s)",
                    information.percentage, information.is_green_zone,
                    information.is_yellow_zone, information.is_red_zone)
    # pylint: disable=broad-except
    except Exception as e:
        logger.error("Error getting the daily API request usage: %s", e)


def schedule_tasks(api, scheduler):
    """
    Run every job once, then schedule them with APScheduler.

    The usage check runs first so that the watchdog knows the quota before the
    audit starts querying the org.
    """
    logger.info("Executing tasks at startup...")
    monitor_api_usage(api)
    run_audit(api)
    logger.info("Initial execution completed, scheduling tasks with APScheduler...")

    schedule = get_schedule('monitor_api_usage', {'minute': '*/5'})
    if schedule:
        scheduler.add_job(
            func=lambda: monitor_api_usage(api),
            trigger=CronTrigger(**schedule),
            id='monitor_api_usage',
            name='Monitor Daily API Usage'
        )

    schedule = get_schedule('run_audit', {'hour': '6', 'minute': '0'})
    if schedule:
        scheduler.add_job(
            func=lambda: run_audit(api),
            trigger=CronTrigger(**schedule),
            id='run_audit',
            name='Run Org Audit'
        )

    logger.info("All jobs scheduled successfully with APScheduler")


def main():
    """
    Main function. Runs tasks using APScheduler with cron syntax for precise timing.
    """
    metrics_port = int(os.getenv('METRICS_PORT', 9001))
    start_http_server(metrics_port)
    sf = get_salesforce_connection()
    warning_threshold, fatal_threshold = get_api_usage_thresholds()
    api = OrgCheckAPI(SalesforceTransport(sf), warning_threshold=warning_threshold,
                      fatal_threshold=fatal_threshold)
    scheduler = BlockingScheduler()
    schedule_tasks(api, scheduler)
    try:
        logger.info("Starting APScheduler...")
        scheduler.start()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down scheduler...")
        scheduler.shutdown()


if __name__ == '__main__':
    main()
