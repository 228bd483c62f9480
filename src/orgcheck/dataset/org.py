"""
Org Structure Datasets Module

The org itself, its packages, its objects (list and detail) and its limits.

Data Sources:
    - Organization (via standard API)
    - InstalledSubscriberPackage, EntityDefinition (via Tooling API)
    - describeGlobal and sObject describe (via REST API)
    - /limits and /limits/recordCount (via REST API)
"""
import asyncio

from orgcheck.constants import OBJECT_TYPE_LABELS
from orgcheck.data.records import RecordKind
from orgcheck.dataset.base import Dataset, build_records
from orgcheck.exceptions import OrgCheckError
from orgcheck.logger import logger
from orgcheck.salesforce_manager import SOQLQuery
from orgcheck.utils import split_developer_name

ORGANIZATION_NAMESPACE_QUERY = SOQLQuery(text='SELECT NamespacePrefix FROM Organization')


def _local_namespace(result):
    if not result.records:
        return ''
    return result.records[0].get('NamespacePrefix') or ''


def limit_values(record_id, label, maximum, remaining, limit_type):
    used = (maximum - remaining) if maximum is not None and remaining is not None else None
    return {
        'id': record_id,
        'label': label,
        'max': maximum,
        'remaining': remaining,
        'used': used,
        'used_percentage': used / maximum if used is not None and maximum else 0,
        'type': limit_type
    }


class OrgInformationDataset(Dataset):

    name = 'OrgInformation'

    query = SOQLQuery(text='SELECT Id, Name, IsSandbox, OrganizationType, TrialExpirationDate, '
                           'NamespacePrefix FROM Organization')

    async def run(self, manager, factory, parameters):
        result, = await manager.soql_query([self.query])
        rows = []
        for organization in result.records:
            if organization.get('OrganizationType') == 'Developer Edition':
                org_type = 'Developer Edition'
            elif organization.get('IsSandbox') is True:
                org_type = 'Sandbox'
            elif organization.get('TrialExpirationDate'):
                org_type = 'TrialOrDemo'
            else:
                org_type = 'Production'
            rows.append({
                'id': manager.case_safe_id(organization['Id']),
                'name': organization.get('Name'),
                'type': org_type,
                'is_production': org_type == 'Production',
                'local_namespace': organization.get('NamespacePrefix') or ''
            })
        return build_records(factory.get_instance(RecordKind.ORGANIZATION), rows)


class PackagesDataset(Dataset):

    name = 'Packages'

    queries = [
        SOQLQuery(text='SELECT Id, SubscriberPackage.NamespacePrefix, SubscriberPackage.Name '
                       'FROM InstalledSubscriberPackage',
                  tooling=True),
        ORGANIZATION_NAMESPACE_QUERY
    ]

    async def run(self, manager, factory, parameters):
        installed_result, organization_result = await manager.soql_query(self.queries)
        rows = []
        for row in installed_result.records:
            package = row.get('SubscriberPackage') or {}
            rows.append({
                'id': manager.case_safe_id(row['Id']),
                'name': package.get('Name'),
                'namespace': package.get('NamespacePrefix'),
                'type': 'Installed'
            })
        local_namespace = _local_namespace(organization_result)
        if local_namespace:
            rows.append({'id': local_namespace, 'name': local_namespace, 'namespace': local_namespace,
                         'type': 'Local'})
        return build_records(factory.get_instance(RecordKind.PACKAGE), rows)


class ObjectTypesDataset(Dataset):

    name = 'ObjectTypes'

    async def run(self, manager, factory, parameters):
        rows = [{'id': type_id, 'label': label} for type_id, label in OBJECT_TYPE_LABELS.items()]
        return build_records(factory.get_instance(RecordKind.OBJECT_TYPE), rows)


class ObjectsDataset(Dataset):
    """Every object of the org, except the ones only visible through a managed package."""

    name = 'Objects'

    async def run(self, manager, factory, parameters):
        organization_result, = await manager.soql_query([ORGANIZATION_NAMESPACE_QUERY])
        local_namespace = _local_namespace(organization_result)
        entity_query = SOQLQuery(
            text='SELECT DurableId, NamespacePrefix, DeveloperName, QualifiedApiName '
                 'FROM EntityDefinition '
                 f"WHERE PublisherId IN ('System', '<local>', '{local_namespace}') "
                 'AND keyPrefix <> null AND DeveloperName <> null',
            tooling=True
        )
        sobjects, (entity_result,) = await asyncio.gather(
            manager.describe_global(),
            manager.soql_query([entity_query])
        )
        entities = {row['QualifiedApiName']: row for row in entity_result.records}

        rows = []
        for sobject in sobjects:
            entity = entities.get(sobject['name'])
            if entity is None:
                continue
            object_type = manager.get_object_type(sobject['name'], sobject.get('customSetting'))
            rows.append({
                'id': manager.case_safe_id(sobject['name']),
                'label': sobject.get('label'),
                'label_plural': sobject.get('labelPlural'),
                'is_custom': sobject.get('custom'),
                'is_feed_enabled': sobject.get('feedEnabled'),
                'is_most_recent_enabled': sobject.get('mruEnabled'),
                'is_searchable': sobject.get('searchable'),
                'key_prefix': sobject.get('keyPrefix'),
                'name': entity.get('DeveloperName'),
                'api_name': sobject['name'],
                'url': manager.setup_url('object', '', entity.get('DurableId'), object_type),
                'package': entity.get('NamespacePrefix') or '',
                'type_id': object_type
            })
        logger.debug("Objects: %d described, %d kept", len(sobjects), len(rows))
        return build_records(factory.get_instance(RecordKind.OBJECT), rows)


def _object_entity_query(object_name):
    namespace, short_name = split_developer_name(object_name.replace("'", ''))
    publisher = f"NamespacePrefix = '{namespace}'" if namespace else "PublisherId IN ('System', '<local>')"
    return SOQLQuery(
        text='SELECT DurableId, DeveloperName, Description, NamespacePrefix, '
             'ExternalSharingModel, InternalSharingModel, '
             '(SELECT Id, DurableId, QualifiedApiName, Description FROM Fields), '
             '(SELECT Id, Name FROM ApexTriggers), '
             '(SELECT Id, MasterLabel, Description FROM FieldSets), '
             '(SELECT Id, Name, LayoutType FROM Layouts), '
             '(SELECT DurableId, Label, Max, Remaining, Type FROM Limits), '
             '(SELECT Id, Active, Description, ErrorDisplayField, ErrorMessage, ValidationName '
             'FROM ValidationRules), '
             '(SELECT Id, Name FROM WebLinks) '
             f"FROM EntityDefinition WHERE DeveloperName = '{short_name}' AND {publisher}",
        tooling=True
    )


def _children(entity, relationship):
    return (entity.get(relationship) or {}).get('records') or []


class ObjectDataset(Dataset):
    """Detail of one object; its cache key carries the object name."""

    name = 'Object'

    def cache_key(self, parameters):
        return f"Object_{parameters['object']}"

    async def run(self, manager, factory, parameters):
        object_name = parameters['object']
        namespace, _ = split_developer_name(object_name)
        describe, record_count, (entity_result,) = await asyncio.gather(
            manager.describe(object_name),
            manager.record_count(object_name),
            manager.soql_query([_object_entity_query(object_name)])
        )
        if not entity_result.records:
            raise OrgCheckError(
                f'No entity definition record found for object {object_name}',
                {'when': 'While retrieving the detail of an object', 'what': {'object': object_name}}
            )
        entity = entity_result.records[0]
        durable_id = entity['DurableId']
        object_type = manager.get_object_type(object_name, describe.get('customSetting'))

        def child(kind, values):
            return factory.get_instance(kind).create_with_score(values)

        described_fields = {f['name']: f for f in describe.get('fields') or []}
        fields = []
        for row in _children(entity, 'Fields'):
            field_id = manager.case_safe_id(row['DurableId'].split('.')[1])
            described = described_fields.get(row['QualifiedApiName']) or {}
            fields.append(child(RecordKind.FIELD, {
                'id': field_id,
                'url': manager.setup_url('field', field_id, durable_id, object_type),
                'name': row['QualifiedApiName'],
                'label': described.get('label'),
                'description': row.get('Description'),
                'object_id': manager.case_safe_id(object_name),
                'is_custom': described.get('custom'),
                'tooltip': described.get('inlineHelpText'),
                'type': described.get('type'),
                'length': described.get('length'),
                'is_unique': described.get('unique'),
                'is_encrypted': described.get('encrypted'),
                'is_external_id': described.get('externalId'),
                'default_value': described.get('defaultValue'),
                'formula': described.get('calculatedFormula')
            }))

        apex_triggers = [child(RecordKind.APEX_TRIGGER, {
            'id': manager.case_safe_id(row['Id']),
            'url': manager.setup_url('apex-trigger', row['Id'], durable_id),
            'name': row.get('Name')
        }) for row in _children(entity, 'ApexTriggers')]

        field_sets = [child(RecordKind.FIELD_SET, {
            'id': manager.case_safe_id(row['Id']),
            'label': row.get('MasterLabel'),
            'description': row.get('Description'),
            'url': manager.setup_url('field-set', row['Id'], durable_id)
        }) for row in _children(entity, 'FieldSets')]

        layouts = [child(RecordKind.PAGE_LAYOUT, {
            'id': manager.case_safe_id(row['Id']),
            'name': row.get('Name'),
            'type': row.get('LayoutType'),
            'url': manager.setup_url('layout', row['Id'], durable_id)
        }) for row in _children(entity, 'Layouts')]

        limits = [child(RecordKind.LIMIT, limit_values(
            manager.case_safe_id(row['DurableId']), row.get('Label'), row.get('Max'), row.get('Remaining'),
            row.get('Type')
        )) for row in _children(entity, 'Limits')]

        validation_rules = [child(RecordKind.VALIDATION_RULE, {
            'id': manager.case_safe_id(row['Id']),
            'name': row.get('ValidationName'),
            'is_active': row.get('Active'),
            'description': row.get('Description'),
            'error_display_field': row.get('ErrorDisplayField'),
            'error_message': row.get('ErrorMessage'),
            'url': manager.setup_url('validation-rule', row['Id'])
        }) for row in _children(entity, 'ValidationRules')]

        web_links = [child(RecordKind.WEB_LINK, {
            'id': manager.case_safe_id(row['Id']),
            'name': row.get('Name'),
            'url': manager.setup_url('web-link', row['Id'], durable_id)
        }) for row in _children(entity, 'WebLinks')]

        record_types = [child(RecordKind.RECORD_TYPE, {
            'id': manager.case_safe_id(info.get('recordTypeId')),
            'name': info.get('name'),
            'developer_name': info.get('developerName'),
            'url': manager.setup_url('record-type', info.get('recordTypeId'), durable_id),
            'is_active': info.get('active'),
            'is_available': info.get('available'),
            'is_default_record_type_mapping': info.get('defaultRecordTypeMapping'),
            'is_master': info.get('master')
        }) for info in describe.get('recordTypeInfos') or []]

        relationships = [child(RecordKind.OBJECT_RELATIONSHIP, {
            'id': relationship['relationshipName'],
            'name': relationship['relationshipName'],
            'child_object': relationship.get('childSObject'),
            'field_name': relationship.get('field'),
            'is_cascade_delete': relationship.get('cascadeDelete'),
            'is_restricted_delete': relationship.get('restrictedDelete')
        }) for relationship in describe.get('childRelationships') or [] if relationship.get('relationshipName')]

        return factory.get_instance(RecordKind.OBJECT).create_with_score({
            'id': manager.case_safe_id(object_name),
            'label': describe.get('label'),
            'label_plural': describe.get('labelPlural'),
            'is_custom': describe.get('custom'),
            'is_feed_enabled': describe.get('feedEnabled'),
            'is_most_recent_enabled': describe.get('mruEnabled'),
            'is_searchable': describe.get('searchable'),
            'key_prefix': describe.get('keyPrefix'),
            'name': entity.get('DeveloperName'),
            'api_name': object_name,
            'url': manager.setup_url('object', '', durable_id, object_type),
            'package': namespace,
            'type_id': object_type,
            'description': entity.get('Description'),
            'external_sharing_model': entity.get('ExternalSharingModel'),
            'internal_sharing_model': entity.get('InternalSharingModel'),
            'apex_triggers': apex_triggers,
            'field_sets': field_sets,
            'limits': limits,
            'layouts': layouts,
            'validation_rules': validation_rules,
            'web_links': web_links,
            'fields': fields,
            'record_types': record_types,
            'relationships': relationships,
            'record_count': record_count
        })


class OrgLimitsDataset(Dataset):

    name = 'OrgLimits'

    async def run(self, manager, factory, parameters):
        limits = await manager.limits()
        rows = [limit_values(name, name, values.get('Max'), values.get('Remaining'), 'OrgLimit')
                for name, values in limits.items()]
        return build_records(factory.get_instance(RecordKind.LIMIT), rows)


ORG_INFORMATION = OrgInformationDataset()
PACKAGES = PackagesDataset()
OBJECT_TYPES = ObjectTypesDataset()
OBJECTS = ObjectsDataset()
OBJECT = ObjectDataset()
ORG_LIMITS = OrgLimitsDataset()
