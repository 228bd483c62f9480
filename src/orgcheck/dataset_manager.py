"""
Dataset Manager Module

Runs dataset retrievers on behalf of the callers: every requested dataset is
served from the cache when possible, otherwise retrieved from the org, and
the retrievals of one call run concurrently.

Failure semantics:
    - An unknown dataset name raises SchemaViolationError before anything is fetched
    - A failed dataset never reads from nor writes to the cache
    - Datasets that succeeded are cached even when a sibling failed
    - run() raises DatasetRunError carrying the partial results when any dataset failed;
      run_settled() returns one DatasetOutcome per dataset instead

Classes:
    - DatasetRequest: Name, cache key and parameters of one dataset to run
    - DatasetOutcome: Result or error of one dataset
    - DatasetManager: The orchestrator
"""
import asyncio
from dataclasses import dataclass, field

from orgcheck.cache import DatasetCache
from orgcheck.data.factory import DataFactory
from orgcheck.dataset import DATASETS
from orgcheck.exceptions import DatasetRunError, SchemaViolationError
from orgcheck.gauges import dataset_bad_records_gauge, dataset_records_gauge, dataset_score_gauge
from orgcheck.logger import logger


@dataclass
class DatasetRequest:
    name: str
    cache_key: str = None
    parameters: dict = field(default_factory=dict)


@dataclass
class DatasetOutcome:
    name: str
    data: object = None
    error: Exception = None
    from_cache: bool = False

    @property
    def ok(self):
        return self.error is None


def _records_of(data):
    if isinstance(data, dict):
        return list(data.values())
    return [] if data is None else [data]


def publish_dataset_metrics(name, data):
    """Set the record count and badness gauges of one dataset."""
    records = _records_of(data)
    scores = [getattr(r, 'score', None) or 0 for r in records]
    dataset_records_gauge.labels(dataset=name).set(len(records))
    dataset_score_gauge.labels(dataset=name).set(sum(scores))
    dataset_bad_records_gauge.labels(dataset=name).set(sum(1 for s in scores if s > 0))


class DatasetManager:
    """Cache aware, concurrent runner of the registered datasets."""

    def __init__(self, sfdc_manager, factory=None, cache=None, datasets=None):
        self.sfdc_manager = sfdc_manager
        self.factory = factory or DataFactory(sfdc_manager.is_version_old)
        self.cache = cache if cache is not None else DatasetCache()
        self.datasets = DATASETS if datasets is None else datasets

    def _resolve(self, requests):
        resolved = []
        for request in requests:
            if isinstance(request, str):
                request = DatasetRequest(name=request)
            dataset = self.datasets.get(request.name)
            if dataset is None:
                raise SchemaViolationError(
                    f"Dataset '{request.name}' does not exist",
                    {'when': 'While resolving the requested datasets', 'what': {'name': request.name}}
                )
            parameters = request.parameters or {}
            cache_key = request.cache_key or dataset.cache_key(parameters)
            resolved.append((DatasetRequest(request.name, cache_key, parameters), dataset))
        return resolved

    async def _run_one(self, request, dataset):
        entry = self.cache.get(request.cache_key)
        if entry is not None:
            logger.info("Dataset %s: %d records retrieved from cache", request.cache_key, entry.size)
            return DatasetOutcome(name=request.name, data=entry.data, from_cache=True)

        logger.info("Dataset %s: not in cache, retrieving from the org...", request.cache_key)
        data = await dataset.run(self.sfdc_manager, self.factory, request.parameters)
        entry = self.cache.set(request.cache_key, data)
        publish_dataset_metrics(request.cache_key, data)
        logger.info("Dataset %s: %d records retrieved and cached", request.cache_key, entry.size)
        return DatasetOutcome(name=request.name, data=data)

    async def run_settled(self, requests):
        """
        Run datasets and report each outcome without raising.

        Args:
            requests: list of DatasetRequest or dataset names

        Returns:
            dict: dataset name -> DatasetOutcome

        Raises:
            SchemaViolationError: A requested dataset does not exist (nothing is fetched)
        """
        resolved = self._resolve(requests)
        results = await asyncio.gather(*(self._run_one(request, dataset) for request, dataset in resolved),
                                       return_exceptions=True)
        outcomes = {}
        for (request, _), result in zip(resolved, results):
            if isinstance(result, Exception):
                logger.error("Dataset %s failed: %s", request.cache_key, result)
                result = DatasetOutcome(name=request.name, error=result)
            elif isinstance(result, BaseException):
                raise result
            outcomes[request.name] = result
        return outcomes

    async def run(self, requests):
        """
        Run datasets.

        Args:
            requests: list of DatasetRequest or dataset names

        Returns:
            dict: dataset name -> data (a dict of records keyed by id)

        Raises:
            SchemaViolationError: A requested dataset does not exist (nothing is fetched)
            DatasetRunError: At least one dataset failed; carries the results of the others
        """
        outcomes = await self.run_settled(requests)
        results = {name: o.data for name, o in outcomes.items() if o.ok}
        errors = {name: o.error for name, o in outcomes.items() if not o.ok}
        if errors:
            raise DatasetRunError(results, errors)
        return results

    def get_cache_information(self):
        return self.cache.information()

    def remove_cache(self, key):
        removed = self.cache.remove(key)
        logger.info("Cache entry %s %s", key, 'removed' if removed else 'was not cached')
        return removed

    def remove_all_cache(self):
        count = self.cache.clear()
        logger.info("Removed %d cache entries", count)
        return count
