"""
Logger Configuration Module

This module configures Python logging for the org audit engine. It sets up
basic logging with a configurable level and timestamp formatting so that the
dataset manager, the query client and the scheduled audit service all write
to the same stream.

Environment Variables:
    - LOG_LEVEL: Logging verbosity level (default: INFO)
                 Options: DEBUG, INFO, WARNING, ERROR, CRITICAL

Exports:
    - logger: Configured logging instance shared by every orgcheck module
"""
import logging
import os

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

VALID_LOG_LEVELS = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
if LOG_LEVEL not in VALID_LOG_LEVELS:
    LOG_LEVEL = 'INFO'

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger('orgcheck')
