"""
Constants and Configuration Module

This module defines global constants used across the audit engine. It includes
timeout values, the daily API quota thresholds guarded by the watchdog, the
batch sizes of composite and metadata calls, and the identifiers of the
object types returned by the ObjectTypes dataset.

Constants:
    - SOFTWARE_VERSION: Version tag stored with every cache entry
    - QUERY_TIMEOUT_SECONDS: Timeout for every Salesforce call (configurable via
      QUERY_TIMEOUT_SECONDS env var, default: 30s)
    - DAILY_API_REQUEST_WARNING_THRESHOLD: Usage ratio above which the quota is yellow (default: 0.70)
    - DAILY_API_REQUEST_FATAL_THRESHOLD: Usage ratio above which the watchdog refuses calls (default: 0.90)
    - WATCHDOG_FRESHNESS_SECONDS: How long a known usage ratio stays trustworthy (60s)
    - MAX_COMPOSITE_REQUEST_SIZE: Sub-requests per composite call (25)
    - MAX_DEPENDENCY_REQUEST_SIZE: Sub-requests per Dependency API composite call (5)
    - MAX_METADATA_READ_MEMBERS: Members per metadata read call (10)

Object Types:
    The OBJECTTYPE_ID_* values are the keys of the ObjectTypes dataset and the
    values returned by utils.get_object_type for an API name.
"""
import os

SOFTWARE_VERSION = '1.0.0'

QUERY_TIMEOUT_SECONDS = int(os.getenv('QUERY_TIMEOUT_SECONDS', 30))

DAILY_API_REQUEST_WARNING_THRESHOLD = float(os.getenv('DAILY_API_REQUEST_WARNING_THRESHOLD', 0.70))
DAILY_API_REQUEST_FATAL_THRESHOLD = float(os.getenv('DAILY_API_REQUEST_FATAL_THRESHOLD', 0.90))
WATCHDOG_FRESHNESS_SECONDS = 60

MAX_COMPOSITE_REQUEST_SIZE = 25
# The Dependency API rejects composite calls with more sub-requests than this
MAX_DEPENDENCY_REQUEST_SIZE = 5
MAX_METADATA_READ_MEMBERS = 10

# A record is "old" when its API version is at least this many years behind
API_VERSION_DEFINITION_OF_OLD = 3

OBJECTTYPE_ID_STANDARD_SOBJECT = 'StandardEntity'
OBJECTTYPE_ID_CUSTOM_SOBJECT = 'CustomObject'
OBJECTTYPE_ID_CUSTOM_EXTERNAL_SOBJECT = 'ExternalObject'
OBJECTTYPE_ID_CUSTOM_SETTING = 'CustomSetting'
OBJECTTYPE_ID_CUSTOM_METADATA_TYPE = 'CustomMetadataType'
OBJECTTYPE_ID_CUSTOM_EVENT = 'CustomEvent'
OBJECTTYPE_ID_KNOWLEDGE_ARTICLE = 'KnowledgeArticle'
OBJECTTYPE_ID_CUSTOM_BIG_OBJECT = 'CustomBigObject'

OBJECT_TYPE_LABELS = {
    OBJECTTYPE_ID_STANDARD_SOBJECT: 'Standard Object',
    OBJECTTYPE_ID_CUSTOM_SOBJECT: 'Custom Object',
    OBJECTTYPE_ID_CUSTOM_EXTERNAL_SOBJECT: 'External Object',
    OBJECTTYPE_ID_CUSTOM_SETTING: 'Custom Setting',
    OBJECTTYPE_ID_CUSTOM_METADATA_TYPE: 'Custom Metadata Type',
    OBJECTTYPE_ID_CUSTOM_EVENT: 'Platform Event',
    OBJECTTYPE_ID_KNOWLEDGE_ARTICLE: 'Knowledge Article',
    OBJECTTYPE_ID_CUSTOM_BIG_OBJECT: 'Big Object',
}

# Filter shared by every metadata query: local components plus editable package components
MANAGEABLE_STATE_FILTER = "ManageableState IN ('installedEditable', 'unmanaged')"

WILDCARD = '*'
