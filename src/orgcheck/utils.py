"""
Salesforce Helper Functions Module

Small pure helpers shared by the query client, the dependency resolver and the
dataset retrievers.

Functions:
    - case_safe_id: Normalizes an 18 character Salesforce id to its 15 character form
    - array_safe_ids: Renders a list of ids as a quoted SOQL IN list
    - is_empty: True for None, empty or blank values
    - setup_url: Lightning Setup URL of a component
    - get_object_type: Object type id from an sObject API name
    - split_developer_name: Namespace and short name of a developer name
    - current_api_version: Latest Salesforce API version for a date
    - is_version_old: Whether an API version is far behind the current one
"""
import datetime

from orgcheck.constants import (API_VERSION_DEFINITION_OF_OLD,
                                OBJECTTYPE_ID_CUSTOM_BIG_OBJECT,
                                OBJECTTYPE_ID_CUSTOM_EVENT,
                                OBJECTTYPE_ID_CUSTOM_EXTERNAL_SOBJECT,
                                OBJECTTYPE_ID_CUSTOM_METADATA_TYPE,
                                OBJECTTYPE_ID_CUSTOM_SETTING,
                                OBJECTTYPE_ID_CUSTOM_SOBJECT,
                                OBJECTTYPE_ID_KNOWLEDGE_ARTICLE,
                                OBJECTTYPE_ID_STANDARD_SOBJECT)


def case_safe_id(record_id):
    """Return the first 15 characters of an 18 character id, anything else unchanged."""
    if record_id and len(record_id) == 18:
        return record_id[:15]
    return record_id


def array_safe_ids(ids):
    """Render ids as a SOQL IN list body, dropping single quotes from the values."""
    if not ids:
        return "''"
    return ','.join(f"'{str(i).replace(chr(39), '')}'" for i in ids)


def is_empty(value):
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    try:
        return len(value) == 0
    except TypeError:
        return not value


_SUFFIX_OBJECT_TYPES = (
    ('__c', OBJECTTYPE_ID_CUSTOM_SOBJECT),
    ('__x', OBJECTTYPE_ID_CUSTOM_EXTERNAL_SOBJECT),
    ('__mdt', OBJECTTYPE_ID_CUSTOM_METADATA_TYPE),
    ('__e', OBJECTTYPE_ID_CUSTOM_EVENT),
    ('__ka', OBJECTTYPE_ID_KNOWLEDGE_ARTICLE),
    ('__b', OBJECTTYPE_ID_CUSTOM_BIG_OBJECT),
)


def get_object_type(api_name, is_custom_setting=False):
    """Map an sObject API name to one of the OBJECTTYPE_ID_* values."""
    if is_custom_setting is True:
        return OBJECTTYPE_ID_CUSTOM_SETTING
    for suffix, object_type in _SUFFIX_OBJECT_TYPES:
        if api_name.endswith(suffix):
            return object_type
    return OBJECTTYPE_ID_STANDARD_SOBJECT


_SETUP_PAGES_BY_OBJECT_TYPE = {
    OBJECTTYPE_ID_CUSTOM_BIG_OBJECT: 'BigObjects',
    OBJECTTYPE_ID_CUSTOM_EVENT: 'EventObjects',
    OBJECTTYPE_ID_CUSTOM_SETTING: 'CustomSettings',
    OBJECTTYPE_ID_CUSTOM_METADATA_TYPE: 'CustomMetadata',
    OBJECTTYPE_ID_CUSTOM_EXTERNAL_SOBJECT: 'ExternalObjects',
}

# Component types (ours and the Dependency API ones) opened through a setup page address
_SETUP_PAGES_BY_TYPE = {
    'validation-rule': 'ObjectManager',
    'ValidationRule': 'ObjectManager',
    'profile': 'EnhancedProfiles',
    'permission-set': 'PermSets',
    'permission-set-group': 'PermSetGroups',
    'custom-label': 'ExternalStrings',
    'CustomLabel': 'ExternalStrings',
    'visual-force-page': 'ApexPages',
    'ApexPage': 'ApexPages',
    'visual-force-component': 'ApexComponent',
    'ApexComponent': 'ApexComponent',
    'static-resource': 'StaticResources',
    'StaticResource': 'StaticResources',
    'apex-class': 'ApexClasses',
    'ApexClass': 'ApexClasses',
    'role': 'Roles',
    'roleAndSub': 'Roles',
    'publicGroup': 'PublicGroups',
    'queue': 'Queues',
    'workflow': 'WorkflowRules',
}


def _object_manager_url(durable_id, object_durable_id, object_type, section):
    if object_type in (OBJECTTYPE_ID_STANDARD_SOBJECT, OBJECTTYPE_ID_CUSTOM_SOBJECT):
        return f'/lightning/setup/ObjectManager/{object_durable_id}/{section}'
    page = _SETUP_PAGES_BY_OBJECT_TYPE.get(object_type)
    if page:
        return f'/lightning/setup/{page}/page?address=%2F{durable_id}%3Fsetupid%3D{page}'
    return f'/{durable_id}'


def setup_url(component_type, durable_id, object_durable_id=None, object_type=None):
    """
    Build the Setup URL of a component.

    Args:
        component_type: Either one of our component types (e.g. 'field', 'apex-class')
                        or a Dependency API type (e.g. 'CustomField', 'ApexClass')
        durable_id: Id of the component
        object_durable_id: Durable id of the parent object, when relevant
        object_type: OBJECTTYPE_ID_* of the parent object, when relevant

    Returns:
        str: URL relative to the instance, '/<id>' when the type is unknown
    """
    if component_type == 'field':
        return _object_manager_url(durable_id, object_durable_id, object_type,
                                   f'FieldsAndRelationships/{durable_id}/view')
    if component_type == 'object':
        return _object_manager_url(object_durable_id, object_durable_id, object_type, 'Details/view')
    if component_type == 'layout':
        return f'/lightning/setup/ObjectManager/{object_durable_id}/PageLayouts/{durable_id}/view'
    if component_type == 'web-link':
        return f'/lightning/setup/ObjectManager/{object_durable_id}/ButtonsLinksActions/{durable_id}/view'
    if component_type == 'record-type':
        return f'/lightning/setup/ObjectManager/{object_durable_id}/RecordTypes/{durable_id}/view'
    if component_type == 'apex-trigger':
        return f'/lightning/setup/ObjectManager/{object_durable_id}/ApexTriggers/{durable_id}/view'
    if component_type == 'field-set':
        return f'/lightning/setup/ObjectManager/{object_durable_id}/FieldSets/{durable_id}/view'
    if component_type == 'user':
        return f'/lightning/setup/ManageUsers/page?address=%2F{durable_id}%3Fnoredirect%3D1%26isUserEntityOverride%3D1'
    if component_type in ('flow', 'Flow'):
        return f'/builder_platform_interaction/flowBuilder.app?flowId={durable_id}'
    page = _SETUP_PAGES_BY_TYPE.get(component_type)
    if page:
        return f'/lightning/setup/{page}/page?address=%2F{durable_id}'
    return f'/{durable_id}'


def split_developer_name(developer_name):
    """
    Split a developer name into its namespace and its short name.

    'ns__Name__c' gives ('ns', 'Name'), 'Name__c' gives ('', 'Name').
    """
    parts = developer_name.split('__')
    if len(parts) == 3:
        return parts[0], parts[1]
    return '', parts[0]


def current_api_version(today=None):
    """Salesforce ships three releases a year; version 53 was the first of 2022."""
    today = today or datetime.date.today()
    if today.month <= 2:
        release = 0
    elif today.month <= 6:
        release = 1
    elif today.month <= 10:
        release = 2
    else:
        release = 3
    return 3 * (today.year - 2022) + 53 + release


def is_version_old(version, api_version, definition_of_old=API_VERSION_DEFINITION_OF_OLD):
    """True when ``version`` is at least ``definition_of_old`` years behind ``api_version``."""
    if version is None:
        return False
    try:
        return (api_version - float(version)) / 3 >= definition_of_old
    except (TypeError, ValueError):
        return False
