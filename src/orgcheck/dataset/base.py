"""
Dataset Base Module

A dataset retriever extracts raw rows from the org through the
SalesforceManager, turns them into scored records with the DataFactory and
returns them keyed by their (case safe) id.

Classes:
    - Dataset: Base class, one ``run`` coroutine per retriever
    - SimpleDataset: Descriptor for the "one query, one record per row" retrievers
"""
from orgcheck.logger import logger
from orgcheck.salesforce_manager import SOQLQuery


class Dataset:
    """Base class of the dataset retrievers."""

    name = None

    def cache_key(self, parameters):
        return self.name

    async def run(self, manager, factory, parameters):
        """
        Retrieve the dataset.

        Args:
            manager: SalesforceManager
            factory: DataFactory
            parameters: dict of retriever specific parameters (may be empty)

        Returns:
            dict: record id -> record (or a single record for singleton datasets)
        """
        raise NotImplementedError


def build_records(instance, rows, all_dependencies=None):
    """Score raw value dicts and index the records by id."""
    records = {}
    for values in rows:
        if all_dependencies is not None:
            values['all_dependencies'] = all_dependencies
        record = instance.create_with_score(values)
        records[record.id] = record
    return records


class SimpleDataset(Dataset):
    """
    One query whose rows map one to one to records.

    Args:
        name: Dataset name, also its cache key
        kind: RecordKind of the records
        query: SOQLQuery to run (set dependency_id_field to get dependencies)
        mapper: Callable(manager, row) returning the record values, or None to skip the row
    """

    def __init__(self, name, kind, query, mapper):
        self.name = name
        self.kind = kind
        self.query = query
        self.mapper = mapper

    async def run(self, manager, factory, parameters):
        logger.debug("%s: querying...", self.name)
        result, = await manager.soql_query([self.query])
        rows = []
        for row in result.records:
            values = self.mapper(manager, row)
            if values is not None:
                rows.append(values)
        records = build_records(factory.get_instance(self.kind), rows, result.all_dependencies)
        logger.debug("%s: %d records out of %d rows", self.name, len(records), len(result.records))
        return records


def tooling_query(text, dependency_id_field='Id', **kwargs):
    return SOQLQuery(text=text, tooling=True, dependency_id_field=dependency_id_field, **kwargs)
