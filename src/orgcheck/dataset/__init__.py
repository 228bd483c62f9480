"""
Dataset Retrievers Package

One retriever per dataset, registered by name in DATASETS. The name is also
the cache key of the dataset, except for the parameterized ones (see
Dataset.cache_key).
"""
from orgcheck.dataset.apex import APEX_CLASSES
from orgcheck.dataset.automation import FLOWS, WORKFLOWS
from orgcheck.dataset.base import Dataset, SimpleDataset
from orgcheck.dataset.metadata import (APEX_TRIGGERS, CUSTOM_FIELDS, CUSTOM_LABELS,
                                       LIGHTNING_AURA_COMPONENTS, LIGHTNING_PAGES,
                                       LIGHTNING_WEB_COMPONENTS, STATIC_RESOURCES,
                                       VISUALFORCE_COMPONENTS, VISUALFORCE_PAGES)
from orgcheck.dataset.org import (OBJECT, OBJECT_TYPES, OBJECTS, ORG_INFORMATION,
                                  ORG_LIMITS, PACKAGES)
from orgcheck.dataset.security import (GROUPS, PERMISSION_SETS, PROFILE_PASSWORD_POLICIES,
                                       PROFILE_RESTRICTIONS, PROFILES, USER_ROLES, USERS)

DATASETS = {dataset.name: dataset for dataset in (
    ORG_INFORMATION, PACKAGES, OBJECT_TYPES, OBJECTS, OBJECT, CUSTOM_FIELDS, CUSTOM_LABELS,
    VISUALFORCE_PAGES, VISUALFORCE_COMPONENTS, LIGHTNING_PAGES, LIGHTNING_AURA_COMPONENTS,
    LIGHTNING_WEB_COMPONENTS, STATIC_RESOURCES, APEX_TRIGGERS, APEX_CLASSES, FLOWS, WORKFLOWS,
    USERS, PROFILES, PERMISSION_SETS, USER_ROLES, GROUPS, PROFILE_PASSWORD_POLICIES,
    PROFILE_RESTRICTIONS, ORG_LIMITS,
)}

__all__ = [
    'DATASETS',
    'Dataset',
    'SimpleDataset',
]
