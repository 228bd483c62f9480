"""
Automation Datasets Module

Flows (including process builders) and workflow rules. Their details live in
the Metadata field of the Tooling API sObjects, which can only be read one
record at a time: ids are listed first, then every record is read through
batched composite calls.

Data Sources:
    - Flow (via Tooling API): versions of every flow
    - WorkflowRule (via Tooling API)
    - MetadataComponentDependency (via Tooling API) for the flow dependencies
"""
from orgcheck.constants import MANAGEABLE_STATE_FILTER
from orgcheck.data.records import RecordKind
from orgcheck.dataset.base import Dataset, build_records, tooling_query
from orgcheck.logger import logger
from orgcheck.salesforce_manager import SOQLQuery


def flow_values(manager, record):
    metadata = record.get('Metadata') or {}
    values = {
        'id': manager.case_safe_id(record['Id']),
        'url': manager.setup_url('flow', record['Id']),
        'name': record.get('FullName'),
        'definition_id': manager.case_safe_id(record.get('DefinitionId')),
        'definition_name': record.get('MasterLabel'),
        'version': record.get('VersionNumber'),
        'api_version': record.get('ApiVersion'),
        'dml_creates': len(metadata.get('recordCreates') or []),
        'dml_deletes': len(metadata.get('recordDeletes') or []),
        'dml_updates': len(metadata.get('recordUpdates') or []),
        'is_active': record.get('Status') == 'Active',
        'description': record.get('Description'),
        'type': record.get('ProcessType'),
        'created_date': record.get('CreatedDate'),
        'last_modified_date': record.get('LastModifiedDate')
    }
    for metadata_value in metadata.get('processMetadataValues') or []:
        value = (metadata_value.get('value') or {}).get('stringValue')
        if metadata_value.get('name') == 'ObjectType':
            values['sobject'] = value
        elif metadata_value.get('name') == 'TriggerType':
            values['trigger_type'] = value
    return values


def workflow_values(manager, record):
    metadata = record.get('Metadata') or {}
    actions = metadata.get('actions') or []
    future_actions = metadata.get('workflowTimeTriggers') or []
    return {
        'id': manager.case_safe_id(record['Id']),
        'url': manager.setup_url('workflow', record['Id']),
        'name': record.get('FullName'),
        'description': metadata.get('description'),
        'actions': actions,
        'future_actions': future_actions,
        'empty_time_triggers': [t for t in future_actions if not t.get('actions')],
        'is_active': metadata.get('active') is True,
        'has_action': len(actions) > 0 or len(future_actions) > 0,
        'created_date': record.get('CreatedDate'),
        'last_modified_date': record.get('LastModifiedDate')
    }


class FlowsDataset(Dataset):

    name = 'Flows'

    query = tooling_query(f'SELECT Id FROM Flow WHERE {MANAGEABLE_STATE_FILTER}')

    async def run(self, manager, factory, parameters):
        result, = await manager.soql_query([self.query])
        ids = [manager.case_safe_id(row['Id']) for row in result.records]
        logger.debug("Flows: reading the metadata of %d flow versions...", len(ids))
        records = await manager.read_metadata_at_scale('Flow', ids)
        rows = [flow_values(manager, record) for record in records]
        return build_records(factory.get_instance(RecordKind.FLOW), rows, result.all_dependencies)


class WorkflowsDataset(Dataset):

    name = 'Workflows'

    query = SOQLQuery(text='SELECT Id FROM WorkflowRule', tooling=True)

    async def run(self, manager, factory, parameters):
        result, = await manager.soql_query([self.query])
        ids = [manager.case_safe_id(row['Id']) for row in result.records]
        logger.debug("Workflows: reading the metadata of %d workflow rules...", len(ids))
        records = await manager.read_metadata_at_scale('WorkflowRule', ids, ('UNKNOWN_EXCEPTION',))
        rows = [workflow_values(manager, record) for record in records]
        return build_records(factory.get_instance(RecordKind.WORKFLOW), rows)


FLOWS = FlowsDataset()
WORKFLOWS = WorkflowsDataset()
