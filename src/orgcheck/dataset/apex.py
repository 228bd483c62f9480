"""
Apex Classes Dataset Module

Apex classes enriched with their code coverage, the test classes covering
them and whether they are scheduled. The four queries run concurrently and
are joined by class id once all of them returned.

Data Sources:
    - ApexCodeCoverage (via Tooling API): test classes covering each class
    - ApexCodeCoverageAggregate (via Tooling API): covered and uncovered lines
    - ApexClass (via Tooling API): body and compiled symbol table
    - AsyncApexJob (via standard API): scheduled classes
"""
import re

from orgcheck.constants import MANAGEABLE_STATE_FILTER
from orgcheck.data.records import RecordKind
from orgcheck.dataset.base import Dataset, build_records, tooling_query
from orgcheck.logger import logger
from orgcheck.salesforce_manager import SOQLQuery

INTERFACE_DECLARATION = re.compile(r'(?:public|global)\s+(?:interface)\s+\w+\s*\{', re.IGNORECASE)
ENUM_DECLARATION = re.compile(r'(?:public|global)\s+(?:enum)\s+\w+\s*\{', re.IGNORECASE)
SYSTEM_ASSERT = re.compile(r'(?:System\.assert(?:Equals|NotEquals)?|Assert\.\w+)\s*\(', re.IGNORECASE)

SHARING_MODIFIERS = ('with sharing', 'without sharing', 'inherited sharing')
ACCESS_MODIFIERS = ('public', 'global', 'private')


def _apply_symbol_table(values, symbol_table):
    values['inner_classes_count'] = len(symbol_table.get('innerClasses') or [])
    values['interfaces'] = symbol_table.get('interfaces') or []
    values['methods_count'] = len(symbol_table.get('methods') or [])
    values['is_schedulable'] = any(i.lower() in ('schedulable', 'system.schedulable')
                                   for i in values['interfaces'])
    declaration = symbol_table.get('tableDeclaration') or {}
    annotations = declaration.get('annotations') or []
    values['annotations'] = [a.get('name') for a in annotations if isinstance(a, dict)]
    if any((name or '').lower() == 'istest' for name in values['annotations']):
        values['is_test'] = True
    for modifier in declaration.get('modifiers') or []:
        lowered = modifier.lower()
        if lowered in SHARING_MODIFIERS:
            values['specified_sharing'] = lowered
        elif lowered in ACCESS_MODIFIERS:
            values['specified_access'] = lowered
        elif lowered == 'abstract':
            values['is_abstract'] = True
        elif lowered == 'testmethod':
            values['is_test'] = True


def apex_class_values(manager, row):
    """Record values of one ApexClass row, before the coverage and schedule joins."""
    body = row.get('Body') or ''
    symbol_table = row.get('SymbolTable')
    values = {
        'id': manager.case_safe_id(row['Id']),
        'url': manager.setup_url('apex-class', row['Id']),
        'name': row['Name'],
        'api_version': row.get('ApiVersion'),
        'package': row.get('NamespacePrefix') or '',
        'length': row.get('LengthWithoutComments'),
        'is_test': False,
        'is_abstract': False,
        'is_schedulable': False,
        'is_scheduled': False,
        'is_sharing_missing': False,
        'is_interface': INTERFACE_DECLARATION.search(body) is not None,
        'is_enum': ENUM_DECLARATION.search(body) is not None,
        'needs_recompilation': not symbol_table,
        'coverage': 0,
        'related_test_class_ids': [],
        'nb_system_asserts': len(SYSTEM_ASSERT.findall(body)),
        'created_date': row.get('CreatedDate'),
        'last_modified_date': row.get('LastModifiedDate')
    }
    values['is_class'] = not values['is_interface'] and not values['is_enum']
    if symbol_table:
        _apply_symbol_table(values, symbol_table)
    if values['is_enum'] or values['is_interface']:
        values['specified_sharing'] = 'n/a'
    if not values['is_test'] and values['is_class'] and not values.get('specified_sharing'):
        values['is_sharing_missing'] = True
    return values


class ApexClassesDataset(Dataset):

    name = 'ApexClasses'

    queries = [
        SOQLQuery(text='SELECT ApexClassOrTriggerId, ApexTestClassId FROM ApexCodeCoverage',
                  tooling=True),
        SOQLQuery(text='SELECT ApexClassOrTriggerId, NumLinesCovered, NumLinesUncovered '
                       'FROM ApexCodeCoverageAggregate',
                  tooling=True),
        tooling_query('SELECT Id, Name, ApiVersion, NamespacePrefix, Body, LengthWithoutComments, '
                      'SymbolTable, CreatedDate, LastModifiedDate '
                      f'FROM ApexClass WHERE {MANAGEABLE_STATE_FILTER}'),
        SOQLQuery(text="SELECT ApexClassId FROM AsyncApexJob WHERE JobType = 'ScheduledApex'")
    ]

    async def run(self, manager, factory, parameters):
        coverage_result, aggregate_result, class_result, scheduled_result = \
            await manager.soql_query(self.queries)

        related_tests = {}
        for row in coverage_result.records:
            class_id = manager.case_safe_id(row['ApexClassOrTriggerId'])
            test_id = manager.case_safe_id(row['ApexTestClassId'])
            tests = related_tests.setdefault(class_id, [])
            if test_id not in tests:
                tests.append(test_id)

        coverages = {}
        for row in aggregate_result.records:
            covered = row.get('NumLinesCovered') or 0
            uncovered = row.get('NumLinesUncovered') or 0
            total = covered + uncovered
            coverages[manager.case_safe_id(row['ApexClassOrTriggerId'])] = covered / total if total else 0

        scheduled_ids = {manager.case_safe_id(row['ApexClassId']) for row in scheduled_result.records}

        rows = []
        for row in class_result.records:
            values = apex_class_values(manager, row)
            values['coverage'] = coverages.get(values['id'], 0)
            values['related_test_class_ids'] = related_tests.get(values['id'], [])
            values['is_scheduled'] = values['id'] in scheduled_ids
            rows.append(values)

        logger.debug("ApexClasses: %d classes, %d with coverage, %d scheduled",
                     len(rows), len(coverages), len(scheduled_ids))
        return build_records(factory.get_instance(RecordKind.APEX_CLASS), rows, class_result.all_dependencies)


APEX_CLASSES = ApexClassesDataset()
