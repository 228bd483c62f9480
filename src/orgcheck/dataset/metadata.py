"""
Metadata Components Datasets Module

Tooling API components that need one query each: custom fields, custom labels,
Visualforce pages and components, Lightning pages, Aura and web components,
static resources and Apex triggers. Only editable components are kept
(unmanaged or installed as editable).

Data Sources:
    - CustomField, ExternalString, ApexPage, ApexComponent, FlexiPage,
      AuraDefinitionBundle, LightningComponentBundle, StaticResource,
      ApexTrigger (via Tooling API)
    - MetadataComponentDependency (via Tooling API) for the dependencies
"""
import re

from orgcheck.constants import MANAGEABLE_STATE_FILTER
from orgcheck.data.records import RecordKind
from orgcheck.dataset.base import SimpleDataset, tooling_query

SOQL_IN_TRIGGER = re.compile(r'\[\s*(?:SELECT|FIND)')
DML_IN_TRIGGER = re.compile(r'(?:insert|update|delete)\s*(?:\w+|\(|\[)')


def _common(manager, row, url):
    return {
        'id': manager.case_safe_id(row['Id']),
        'url': url,
        'package': row.get('NamespacePrefix') or '',
        'created_date': row.get('CreatedDate'),
        'last_modified_date': row.get('LastModifiedDate')
    }


def _custom_field(manager, row):
    entity = row.get('EntityDefinition')
    if not entity:
        return None
    object_api_name = entity['QualifiedApiName']
    object_type = manager.get_object_type(object_api_name, entity.get('IsCustomSetting'))
    values = _common(manager, row, manager.setup_url('field', row['Id'], object_api_name, object_type))
    values.update({
        'name': row['DeveloperName'],
        'label': row['DeveloperName'],
        'description': row.get('Description'),
        'object_id': manager.case_safe_id(object_api_name),
        'is_custom': True
    })
    return values


def _custom_label(manager, row):
    values = _common(manager, row, manager.setup_url('custom-label', row['Id']))
    values.update({
        'name': row['Name'],
        'category': row.get('Category'),
        'is_protected': row.get('IsProtected') is True,
        'language': row.get('Language'),
        'label': row.get('MasterLabel'),
        'value': row.get('Value')
    })
    return values


def _visualforce_page(manager, row):
    values = _common(manager, row, manager.setup_url('visual-force-page', row['Id']))
    values.update({
        'name': row['Name'],
        'api_version': row.get('ApiVersion'),
        'description': row.get('Description'),
        'is_mobile_ready': row.get('IsAvailableInTouch') is True
    })
    return values


def _visualforce_component(manager, row):
    values = _common(manager, row, manager.setup_url('visual-force-component', row['Id']))
    values.update({
        'name': row['Name'],
        'api_version': row.get('ApiVersion'),
        'description': row.get('Description')
    })
    return values


def _lightning_page(manager, row):
    entity = row.get('EntityDefinition')
    values = _common(manager, row, manager.setup_url('lightning-page', row['Id']))
    values.update({
        'name': row['MasterLabel'],
        'type': row.get('Type'),
        'description': row.get('Description'),
        'object_id': manager.case_safe_id(entity['QualifiedApiName']) if entity else None
    })
    return values


def _bundle(component_type):
    def mapper(manager, row):
        values = _common(manager, row, manager.setup_url(component_type, row['Id']))
        values.update({
            'name': row['MasterLabel'],
            'api_version': row.get('ApiVersion'),
            'description': row.get('Description')
        })
        return values
    return mapper


def _static_resource(manager, row):
    values = _common(manager, row, manager.setup_url('static-resource', row['Id']))
    values.update({
        'name': row['Name'],
        'content_type': row.get('ContentType')
    })
    return values


def _apex_trigger(manager, row):
    entity = row.get('EntityDefinition')
    if not entity:
        return None
    body = row.get('Body') or ''
    values = _common(manager, row,
                     manager.setup_url('apex-trigger', row['Id'], entity['QualifiedApiName']))
    values.update({
        'name': row['Name'],
        'api_version': row.get('ApiVersion'),
        'length': row.get('LengthWithoutComments'),
        'is_active': row.get('Status') == 'Active',
        'before_insert': row.get('UsageBeforeInsert'),
        'after_insert': row.get('UsageAfterInsert'),
        'before_update': row.get('UsageBeforeUpdate'),
        'after_update': row.get('UsageAfterUpdate'),
        'before_delete': row.get('UsageBeforeDelete'),
        'after_delete': row.get('UsageAfterDelete'),
        'after_undelete': row.get('UsageAfterUndelete'),
        'object_id': manager.case_safe_id(entity['QualifiedApiName']),
        'has_soql': SOQL_IN_TRIGGER.search(body) is not None,
        'has_dml': DML_IN_TRIGGER.search(body) is not None
    })
    return values


CUSTOM_FIELDS = SimpleDataset(
    'CustomFields', RecordKind.FIELD,
    tooling_query(
        'SELECT Id, EntityDefinition.QualifiedApiName, EntityDefinition.IsCustomSetting, '
        'DeveloperName, NamespacePrefix, Description, CreatedDate, LastModifiedDate '
        f'FROM CustomField WHERE {MANAGEABLE_STATE_FILTER}'
    ),
    _custom_field
)

CUSTOM_LABELS = SimpleDataset(
    'CustomLabels', RecordKind.CUSTOM_LABEL,
    tooling_query(
        'SELECT Id, Name, NamespacePrefix, Category, IsProtected, Language, MasterLabel, Value, '
        f'CreatedDate, LastModifiedDate FROM ExternalString WHERE {MANAGEABLE_STATE_FILTER}'
    ),
    _custom_label
)

VISUALFORCE_PAGES = SimpleDataset(
    'VisualForcePages', RecordKind.VISUALFORCE_PAGE,
    tooling_query(
        'SELECT Id, Name, ApiVersion, NamespacePrefix, Description, IsAvailableInTouch, '
        f'CreatedDate, LastModifiedDate FROM ApexPage WHERE {MANAGEABLE_STATE_FILTER}'
    ),
    _visualforce_page
)

VISUALFORCE_COMPONENTS = SimpleDataset(
    'VisualForceComponents', RecordKind.VISUALFORCE_COMPONENT,
    tooling_query(
        'SELECT Id, Name, ApiVersion, NamespacePrefix, Description, CreatedDate, LastModifiedDate '
        f'FROM ApexComponent WHERE {MANAGEABLE_STATE_FILTER}'
    ),
    _visualforce_component
)

LIGHTNING_PAGES = SimpleDataset(
    'LightningPages', RecordKind.LIGHTNING_PAGE,
    tooling_query(
        'SELECT Id, MasterLabel, EntityDefinition.QualifiedApiName, Type, NamespacePrefix, '
        f'Description, CreatedDate, LastModifiedDate FROM FlexiPage WHERE {MANAGEABLE_STATE_FILTER}'
    ),
    _lightning_page
)

LIGHTNING_AURA_COMPONENTS = SimpleDataset(
    'LightningAuraComponents', RecordKind.AURA_COMPONENT,
    tooling_query(
        'SELECT Id, MasterLabel, ApiVersion, NamespacePrefix, Description, CreatedDate, LastModifiedDate '
        f'FROM AuraDefinitionBundle WHERE {MANAGEABLE_STATE_FILTER}'
    ),
    _bundle('aura-component')
)

LIGHTNING_WEB_COMPONENTS = SimpleDataset(
    'LightningWebComponents', RecordKind.LIGHTNING_WEB_COMPONENT,
    tooling_query(
        'SELECT Id, MasterLabel, ApiVersion, NamespacePrefix, Description, CreatedDate, LastModifiedDate '
        f'FROM LightningComponentBundle WHERE {MANAGEABLE_STATE_FILTER}'
    ),
    _bundle('lightning-web-component')
)

STATIC_RESOURCES = SimpleDataset(
    'StaticResources', RecordKind.STATIC_RESOURCE,
    tooling_query(
        'SELECT Id, Name, ContentType, NamespacePrefix, CreatedDate, LastModifiedDate '
        f'FROM StaticResource WHERE {MANAGEABLE_STATE_FILTER}',
        dependency_id_field=None
    ),
    _static_resource
)

APEX_TRIGGERS = SimpleDataset(
    'ApexTriggers', RecordKind.APEX_TRIGGER,
    tooling_query(
        'SELECT Id, Name, ApiVersion, Status, NamespacePrefix, Body, '
        'UsageBeforeInsert, UsageAfterInsert, UsageBeforeUpdate, UsageAfterUpdate, '
        'UsageBeforeDelete, UsageAfterDelete, UsageAfterUndelete, UsageIsBulk, '
        'LengthWithoutComments, EntityDefinition.QualifiedApiName, CreatedDate, LastModifiedDate '
        f'FROM ApexTrigger WHERE {MANAGEABLE_STATE_FILTER}'
    ),
    _apex_trigger
)
