"""
Configuration Module

This module loads the audit service configuration from a JSON file. The file
lets an operator choose which datasets are audited and when the scheduled jobs
run, without modifying code or juggling environment variables.

Scheduling Behavior:
    - If NO config file exists: every job runs with its DEFAULT schedule
    - If the config file lists schedules: OPT-IN approach, only listed jobs run
    - Set a job to "disabled" to explicitly disable it
    - A SCHEDULE_<JOB_ID> environment variable always wins over the file

Configuration File Location:
    - Default: /app/orgcheck/config.json (inside container)
    - Can be overridden via CONFIG_FILE_PATH environment variable

Configuration Structure:
    {
        "schedules": {
            "run_audit": "hour=6,minute=0",
            "monitor_api_usage": "*/5"
        },
        "datasets": ["ApexClasses", "CustomFields", "Users"],
        "api_usage": {"warning_threshold": 0.7, "fatal_threshold": 0.9}
    }
"""
import json
import os
import re

from orgcheck.constants import DAILY_API_REQUEST_FATAL_THRESHOLD, DAILY_API_REQUEST_WARNING_THRESHOLD
from orgcheck.logger import logger

DEFAULT_CONFIG_PATH = '/app/orgcheck/config.json'

# Order of the fields of a standard five-part cron expression
CRON_FIELDS = ('minute', 'hour', 'day', 'month', 'day_of_week')

_cached_config = None
_config_file_has_schedules = None


def _default_config():
    return {
        'schedules': {},
        'datasets': None,
        'api_usage': {}
    }


def load_config(force_reload=False):
    """
    Load configuration from the JSON file.

    Args:
        force_reload: If True, reload config from file even if cached

    Returns:
        dict: Configuration dictionary with schedules and datasets
    """
    global _cached_config, _config_file_has_schedules

    if _cached_config is not None and not force_reload:
        return _cached_config

    config_file_path = os.getenv('CONFIG_FILE_PATH', DEFAULT_CONFIG_PATH)
    result = _default_config()

    if not os.path.exists(config_file_path):
        logger.info("Config file not found at %s, using default schedules and all datasets", config_file_path)
        _cached_config = result
        _config_file_has_schedules = False
        return _cached_config

    try:
        with open(config_file_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
        if not isinstance(config, dict):
            raise ValueError('top level JSON value must be an object')

        result['schedules'] = {k.lower(): v for k, v in (config.get('schedules') or {}).items()}
        result['datasets'] = config.get('datasets')
        result['api_usage'] = config.get('api_usage') or {}
        _config_file_has_schedules = bool(result['schedules'])

        logger.info("Loaded configuration from %s with %d scheduled jobs and %s datasets",
                    config_file_path, len(result['schedules']),
                    len(result['datasets']) if result['datasets'] is not None else 'all')
    except (json.JSONDecodeError, ValueError, OSError) as e:
        logger.error("Error loading config file %s: %s. Using default configuration.", config_file_path, e)
        result = _default_config()
        _config_file_has_schedules = False

    _cached_config = result
    return _cached_config


def has_custom_schedules():
    """Return True when the config file defines at least one schedule (opt-in mode)."""
    if _config_file_has_schedules is None:
        load_config()
    return _config_file_has_schedules


def parse_cron_schedule(schedule_str):
    """
    Parse a cron schedule string into CronTrigger parameters.

    Supports multiple formats:
    1. Standard cron: "*/5 * * * *" -> minute='*/5'
    2. Parameter format: "minute=*/5" or "hour=7,minute=30"
    3. JSON format: '{"minute": "*/5"}'
    4. Simple minute: "*/5" -> minute='*/5'

    Args:
        schedule_str: Cron schedule string in one of the supported formats

    Returns:
        dict or None: Keyword arguments for CronTrigger, None if disabled or unparsable
    """
    if not schedule_str or schedule_str.strip().lower() in ('disabled', 'none'):
        return None

    schedule_str = schedule_str.strip()

    if schedule_str.startswith('{'):
        try:
            return json.loads(schedule_str)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON schedule: %s", schedule_str)
            return None

    cron_parts = schedule_str.split()
    if len(cron_parts) == len(CRON_FIELDS):
        result = {field: part for field, part in zip(CRON_FIELDS, cron_parts) if part != '*'}
        return result or None

    if '=' in schedule_str:
        params = dict(
            (key.strip(), value.strip())
            for key, value in (part.split('=', 1) for part in schedule_str.split(',') if '=' in part)
        )
        return params or None

    if re.match(r'^[\d\*\/,]+$', schedule_str):
        return {'minute': schedule_str}

    logger.warning("Could not parse schedule string: %s", schedule_str)
    return None


def get_schedule(job_id, default_schedule):
    """
    Resolve the schedule of a job.

    The SCHEDULE_<JOB_ID> environment variable wins. Otherwise the config file
    is used in opt-in mode when it defines schedules, and the default applies
    when it does not.

    Args:
        job_id: The job identifier
        default_schedule: Default keyword arguments for CronTrigger

    Returns:
        dict or None: Keyword arguments for CronTrigger, None if the job is disabled
    """
    env_value = os.getenv(f'SCHEDULE_{job_id.upper()}')
    if env_value:
        parsed = parse_cron_schedule(env_value)
        if parsed is None:
            logger.info("Job %s is disabled by environment, skipping", job_id)
        else:
            logger.info("Using environment schedule for %s: %s", job_id, env_value)
        return parsed

    if not has_custom_schedules():
        logger.debug("Job %s using default schedule", job_id)
        return default_schedule

    config_schedule = load_config()['schedules'].get(job_id.lower())
    if config_schedule is None:
        logger.debug("Job %s not defined in config file, skipping (opt-in mode)", job_id)
        return None

    parsed = parse_cron_schedule(config_schedule)
    if parsed is None:
        logger.info("Job %s is disabled in config file", job_id)
    else:
        logger.info("Job %s enabled with custom schedule: %s", job_id, config_schedule)
    return parsed


def get_audited_datasets(available):
    """
    Get the dataset names the audit service should refresh.

    Args:
        available: Names of every registered dataset

    Returns:
        list: The configured names that exist, or every available name when none are configured
    """
    configured = load_config().get('datasets')
    if not configured:
        return list(available)
    unknown = [name for name in configured if name not in available]
    if unknown:
        logger.warning("Ignoring unknown datasets from config file: %s", ', '.join(unknown))
    return [name for name in configured if name in available]


def get_api_usage_thresholds():
    """
    Get the daily API usage thresholds of the watchdog.

    Returns:
        tuple: (warning, fatal) ratios, from the config file when set, else from the environment
    """
    api_usage = load_config().get('api_usage') or {}
    warning = float(api_usage.get('warning_threshold', DAILY_API_REQUEST_WARNING_THRESHOLD))
    fatal = float(api_usage.get('fatal_threshold', DAILY_API_REQUEST_FATAL_THRESHOLD))
    if not 0 < warning <= fatal <= 1:
        logger.warning("Invalid API usage thresholds %s / %s, using %s / %s", warning, fatal,
                       DAILY_API_REQUEST_WARNING_THRESHOLD, DAILY_API_REQUEST_FATAL_THRESHOLD)
        return DAILY_API_REQUEST_WARNING_THRESHOLD, DAILY_API_REQUEST_FATAL_THRESHOLD
    return warning, fatal
