"""
Prometheus Metrics Definitions Module

This module defines the Prometheus Gauge metrics exposed by the audit service.
They are scraped by Prometheus and let dashboards follow the hygiene of the
org over time.

Metric Categories:
    1. API quota: Daily API usage ratio as last seen by the watchdog
    2. Cache: Number of records held per cached dataset
    3. Datasets: Record count, total badness score and bad records per dataset
    4. Rules: Number of records violating each validation rule

Note: Dataset gauges are labeled by dataset name and rule gauges by rule id and
description, so they can be filtered and aggregated in Grafana dashboards.
"""
from prometheus_client import Gauge

daily_api_usage_gauge = Gauge('orgcheck_daily_api_usage_ratio',
                              'Daily API request usage ratio as last reported by Salesforce')

dataset_cache_size_gauge = Gauge('orgcheck_dataset_cache_size',
                                 'Number of records held in cache per dataset',
                                 ['dataset'])

dataset_records_gauge = Gauge('orgcheck_dataset_records',
                              'Number of records retrieved per dataset',
                              ['dataset'])

dataset_score_gauge = Gauge('orgcheck_dataset_score',
                            'Sum of the badness scores of the records of a dataset',
                            ['dataset'])

dataset_bad_records_gauge = Gauge('orgcheck_dataset_bad_records',
                                  'Number of records with a badness score above zero',
                                  ['dataset'])

rule_violations_gauge = Gauge('orgcheck_rule_violations',
                              'Number of records violating a validation rule',
                              ['rule_id', 'description'])
