"""
Salesforce Query Client Module

Asynchronous client used by every dataset retriever. It issues paginated SOQL
queries, composite calls, describes and Metadata API reads through a
SalesforceTransport, and guards the org's daily API quota with a watchdog.

Concurrency:
    - Queries of one soql_query call run concurrently (asyncio.gather)
    - Pages of one query are fetched sequentially (each page gives the next URL)
    - Composite batches and metadata read chunks run concurrently
    - Blocking transport calls run in worker threads
    - The scheduled jobs run their own event loops in scheduler threads, so
      the watchdog state is read and written under a lock

Watchdog:
    Before every call the last known usage ratio is checked: if it is above
    DAILY_API_REQUEST_FATAL_THRESHOLD and was observed less than
    WATCHDOG_FRESHNESS_SECONDS ago, QuotaExceededError is raised without any I/O.
    After every REST response the ratio is refreshed from the Sforce-Limit-Info
    header and checked again. Metadata API (SOAP) calls do not refresh it.

Classes:
    - SOQLQuery: One query to run, with its bypass and pagination options
    - QueryResult: Records of a query and, optionally, their dependency graph
    - DailyApiRequestLimitInformation: Traffic light view of the daily quota
    - SalesforceManager: The client itself
"""
import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from orgcheck.constants import (DAILY_API_REQUEST_FATAL_THRESHOLD,
                                DAILY_API_REQUEST_WARNING_THRESHOLD,
                                MAX_COMPOSITE_REQUEST_SIZE,
                                MAX_METADATA_READ_MEMBERS,
                                WATCHDOG_FRESHNESS_SECONDS, WILDCARD)
from orgcheck.dependencies import DependencyGraph, resolve_dependencies
from orgcheck.exceptions import OrgCheckError, QuotaExceededError, TransientQueryError
from orgcheck.gauges import daily_api_usage_gauge
from orgcheck import utils
from orgcheck.logger import logger


@dataclass
class SOQLQuery:
    """
    One SOQL query.

    Attributes:
        text: The SOQL statement
        tooling: Run it on the Tooling API instead of the REST API
        bypass_error_codes: Salesforce error codes that turn a failure into an empty result
        allow_partial_page: Only return the first page
        dependency_id_field: Field (or list of fields) whose values are sent to the Dependency API
    """
    text: str
    tooling: bool = False
    bypass_error_codes: tuple = ()
    allow_partial_page: bool = False
    dependency_id_field: object = None


@dataclass
class QueryResult:
    records: list = field(default_factory=list)
    all_dependencies: Optional[DependencyGraph] = None


@dataclass
class DailyApiRequestLimitInformation:
    percentage: float
    is_green_zone: bool
    is_yellow_zone: bool
    is_red_zone: bool
    yellow_threshold_percentage: float
    red_threshold_percentage: float


def _composite_error_code(body):
    if isinstance(body, list) and body and isinstance(body[0], dict):
        return body[0].get('errorCode')
    if isinstance(body, dict):
        return body.get('errorCode')
    return None


class SalesforceManager:
    """Async query client with a daily API quota watchdog."""

    def __init__(self, transport, warning_threshold=DAILY_API_REQUEST_WARNING_THRESHOLD,
                 fatal_threshold=DAILY_API_REQUEST_FATAL_THRESHOLD,
                 freshness_seconds=WATCHDOG_FRESHNESS_SECONDS, clock=time.monotonic, api_version=None):
        self.transport = transport
        self.warning_threshold = warning_threshold
        self.fatal_threshold = fatal_threshold
        self.freshness_seconds = freshness_seconds
        self.api_version = api_version or utils.current_api_version()
        self._clock = clock
        self._last_request_at = None
        self._last_api_usage = 0.0
        self._watchdog_lock = threading.Lock()

    # Helpers shared with the dataset retrievers

    case_safe_id = staticmethod(utils.case_safe_id)
    array_safe_ids = staticmethod(utils.array_safe_ids)
    setup_url = staticmethod(utils.setup_url)
    get_object_type = staticmethod(utils.get_object_type)
    is_empty = staticmethod(utils.is_empty)

    def is_version_old(self, version, definition_of_old=utils.API_VERSION_DEFINITION_OF_OLD):
        return utils.is_version_old(version, self.api_version, definition_of_old)

    # Watchdog

    def _watchdog_before_request(self):
        with self._watchdog_lock:
            last_request_at, last_api_usage = self._last_request_at, self._last_api_usage
        if (last_request_at is not None
                and self._clock() - last_request_at <= self.freshness_seconds
                and last_api_usage > self.fatal_threshold):
            raise QuotaExceededError(last_api_usage, self.fatal_threshold)

    def _watchdog_record_usage(self):
        usage = self.transport.api_usage()
        if usage is None:
            return False
        used, maximum = usage
        self.set_last_api_usage(used / maximum)
        daily_api_usage_gauge.set(used / maximum)
        return True

    def _watchdog_after_request(self):
        if self._watchdog_record_usage():
            self._watchdog_before_request()

    def set_last_api_usage(self, ratio, observed_at=None):
        """Seed the watchdog with a known usage ratio (e.g. read from /limits)."""
        with self._watchdog_lock:
            self._last_api_usage = ratio
            self._last_request_at = self._clock() if observed_at is None else observed_at

    def get_daily_api_request_limit_information(self):
        with self._watchdog_lock:
            ratio = self._last_api_usage
        return DailyApiRequestLimitInformation(
            percentage=round(ratio * 100, 3),
            is_red_zone=ratio > self.fatal_threshold,
            is_yellow_zone=self.warning_threshold < ratio <= self.fatal_threshold,
            is_green_zone=ratio <= self.warning_threshold,
            yellow_threshold_percentage=round(self.warning_threshold * 100, 3),
            red_threshold_percentage=round(self.fatal_threshold * 100, 3)
        )

    async def _request(self, func, *args, refresh_usage=True, **kwargs):
        """
        Run one blocking transport call under the watchdog.

        Metadata API (SOAP) responses carry no Sforce-Limit-Info header: they are
        made with ``refresh_usage=False`` so the last REST reading is not renewed.
        """
        self._watchdog_before_request()
        try:
            result = await asyncio.to_thread(func, *args, **kwargs)
        except OrgCheckError:
            if refresh_usage:
                self._watchdog_record_usage()
            raise
        if refresh_usage:
            self._watchdog_after_request()
        return result

    # SOQL

    async def soql_query(self, queries):
        """
        Run queries concurrently.

        Args:
            queries: list of SOQLQuery

        Returns:
            list: One QueryResult per query, in the same order

        Raises:
            TransientQueryError: The first query that failed with a non bypassed error
            QuotaExceededError: The daily API quota is critically low
        """
        self._watchdog_before_request()
        return list(await asyncio.gather(*(self._run_query(q) for q in queries)))

    async def _run_query(self, query):
        records = []
        pages = 0
        try:
            page = await self._request(self.transport.query, query.text, query.tooling)
            pages += 1
            records.extend((page or {}).get('records') or [])
            while page and page.get('done') is False and not query.allow_partial_page:
                page = await self._request(self.transport.query_more, page['nextRecordsUrl'])
                pages += 1
                records.extend((page or {}).get('records') or [])
        except TransientQueryError as e:
            if e.error_code is not None and e.error_code in query.bypass_error_codes:
                logger.info("Bypassing %s error for query: %s", e.error_code, query.text)
                return QueryResult(records=[])
            e.context = {
                'when': 'While calling a SOQL query.',
                'what': {
                    'query_string': query.text,
                    'query_use_tooling': query.tooling,
                    'allow_partial_page': query.allow_partial_page,
                    'pages_read': pages
                }
            }
            raise

        result = QueryResult(records=records)
        if query.dependency_id_field:
            result.all_dependencies = await self._dependencies_of(query, records)
        return result

    async def _dependencies_of(self, query, records):
        fields = query.dependency_id_field
        if isinstance(fields, str):
            fields = [fields]
        ids = list(dict.fromkeys(
            utils.case_safe_id(record[f]) for f in fields for record in records if record.get(f)
        ))
        try:
            return await resolve_dependencies(self, ids)
        except TransientQueryError as e:
            logger.error("Issue while accessing the Dependency API for %d ids: %s", len(ids), e)
            return None

    # Composite

    async def call_composite(self, ids, tooling, uri_pattern, bypass_error_codes=(),
                             max_request_size=MAX_COMPOSITE_REQUEST_SIZE):
        """
        GET ``uri_pattern`` for every id, batching the calls in composite requests.

        Args:
            ids: Values substituted to the "(id)" placeholder
            tooling: Use the Tooling API
            uri_pattern: Path relative to /services/data/vXX.X[/tooling]
            bypass_error_codes: Sub-response error codes that are skipped instead of failing
            max_request_size: Sub-requests per composite call (capped at MAX_COMPOSITE_REQUEST_SIZE)

        Returns:
            list: Bodies of the sub-responses with HTTP status 200
        """
        self._watchdog_before_request()
        size = min(max_request_size, MAX_COMPOSITE_REQUEST_SIZE)
        prefix = f'/services/data/v{self.transport.api_version:.1f}' + ('/tooling' if tooling else '')
        bodies = [
            {
                'allOrNone': False,
                'compositeRequest': [
                    {'url': prefix + uri_pattern.replace('(id)', i), 'method': 'GET', 'referenceId': i}
                    for i in ids[start:start + size]
                ]
            }
            for start in range(0, len(ids), size)
        ]
        try:
            responses = await asyncio.gather(*(self._request(self.transport.composite, b, tooling) for b in bodies))
        except TransientQueryError as e:
            e.context = {
                'when': f"While calling the {'Tooling Composite API' if tooling else 'Composite API'}.",
                'what': {'tooling': tooling, 'pattern': uri_pattern, 'ids': ids}
            }
            raise

        records = []
        for response in responses:
            for sub_response in (response or {}).get('compositeResponse') or []:
                body = sub_response.get('body')
                if sub_response.get('httpStatusCode') == 200:
                    records.append(body)
                    continue
                code = _composite_error_code(body)
                if code in bypass_error_codes:
                    logger.debug("Bypassing %s error for %s", code, sub_response.get('referenceId'))
                    continue
                raise TransientQueryError(
                    f"Composite sub-request {sub_response.get('referenceId')} failed "
                    f"with HTTP {sub_response.get('httpStatusCode')} ({code})",
                    {'when': 'After receiving a response with bad HTTP status code.',
                     'what': {'tooling': tooling, 'pattern': uri_pattern, 'body': body}},
                    error_code=code
                )
        return records

    async def read_metadata_at_scale(self, metadata_type, ids, bypass_error_codes=()):
        """Read Tooling API sObject records (with their Metadata field) one per id."""
        return await self.call_composite(ids, True, f'/sobjects/{metadata_type}/(id)', bypass_error_codes)

    # Describes, limits and Metadata API

    async def describe_global(self):
        result = await self._request(self.transport.describe_global)
        return (result or {}).get('sobjects') or []

    async def describe(self, sobject_name):
        return await self._request(self.transport.describe, sobject_name)

    async def record_count(self, sobject_name):
        result = await self._request(self.transport.record_count, sobject_name)
        sobjects = (result or {}).get('sObjects')
        if isinstance(sobjects, list) and len(sobjects) == 1:
            return sobjects[0].get('count', 0)
        return 0

    async def limits(self):
        return await self._request(self.transport.limits) or {}

    async def read_metadata(self, specs):
        """
        Read Metadata API members.

        Args:
            specs: list of {'type': ..., 'members': [...]}; a '*' member stands for every member of the type

        Returns:
            dict: type -> list of member dicts
        """
        self._watchdog_before_request()
        wildcard_specs = [s for s in specs if WILDCARD in s['members']]
        listed = await asyncio.gather(*(
            self._request(self.transport.list_metadata, s['type'], refresh_usage=False) for s in wildcard_specs
        ))
        listed_by_spec = {id(s): names for s, names in zip(wildcard_specs, listed)}

        chunks = []
        for spec in specs:
            members = [m for m in spec['members'] if m != WILDCARD] + listed_by_spec.get(id(spec), [])
            for start in range(0, len(members), MAX_METADATA_READ_MEMBERS):
                chunks.append((spec['type'], members[start:start + MAX_METADATA_READ_MEMBERS]))

        results = await asyncio.gather(*(self._request(self.transport.read_metadata, metadata_type, members,
                                                       refresh_usage=False)
                                         for metadata_type, members in chunks))
        response = {spec['type']: [] for spec in specs}
        for (metadata_type, _), members in zip(chunks, results):
            response[metadata_type].extend(members)
        return response
