"""
Org Check Audit Engine

Retrieves datasets describing the configuration of a Salesforce org, scores
every record against a registry of bad practices and caches the results.

Main entry points are re-exported for clean imports.
"""
from .api import OrgCheckAPI
from .constants import SOFTWARE_VERSION
from .exceptions import (DatasetRunError, OrgCheckError, QuotaExceededError,
                         RequestTimeoutError, SchemaViolationError, TransientQueryError)
from .transport import SalesforceTransport

__version__ = SOFTWARE_VERSION

__all__ = [
    'OrgCheckAPI',
    'SalesforceTransport',
    'OrgCheckError',
    'TransientQueryError',
    'RequestTimeoutError',
    'QuotaExceededError',
    'SchemaViolationError',
    'DatasetRunError',
]
