"""
Pytest configuration and fixtures.

FakeTransport stands in for SalesforceTransport: it answers from in-memory
tables and records every call, so tests can assert on what was sent.
"""
import pytest

from orgcheck.data.factory import DataFactory
from orgcheck.exceptions import TransientQueryError
from orgcheck.salesforce_manager import SalesforceManager

EMPTY_DEPENDENCIES = {'done': True, 'totalSize': 0, 'records': []}


class FakeTransport:
    """In-memory transport: SOQL answers are matched on the longest registered fragment."""

    api_version = 60.0

    def __init__(self):
        self.calls = []
        self.queries = {}
        self.more_pages = {}
        self.composite_handler = lambda sub_request: (200, EMPTY_DEPENDENCIES)
        self.sobjects = []
        self.describes = {}
        self.record_counts = {}
        self.limits_result = {}
        self.metadata_lists = {}
        self.metadata = {}
        self.usage = None

    def add_query(self, fragment, records=None, pages=None, error=None):
        """
        Register the answer of every query containing ``fragment``.

        Args:
            records: Rows returned in a single page
            pages: List of row lists, returned page by page
            error: Exception raised instead
        """
        if pages is None:
            pages = [records or []]
        self.queries[fragment] = (pages, error)

    def _match(self, soql):
        candidates = [f for f in self.queries if f in soql]
        if not candidates:
            raise AssertionError(f'Unexpected query: {soql}')
        return self.queries[max(candidates, key=len)]

    def _page(self, key, pages, index):
        done = index == len(pages) - 1
        page = {'totalSize': sum(len(p) for p in pages), 'done': done, 'records': pages[index]}
        if not done:
            url = f'/services/data/v60.0/query/{key}-{index + 1}'
            page['nextRecordsUrl'] = url
            self.more_pages[url] = (key, pages, index + 1)
        return page

    def query(self, soql, tooling=False):
        self.calls.append(('query', soql, tooling))
        pages, error = self._match(soql)
        if error is not None:
            raise error
        return self._page(len(self.calls), pages, 0)

    def query_more(self, next_records_url):
        self.calls.append(('query_more', next_records_url))
        key, pages, index = self.more_pages[next_records_url]
        return self._page(key, pages, index)

    def composite(self, body, tooling=False):
        self.calls.append(('composite', body, tooling))
        responses = []
        for sub_request in body['compositeRequest']:
            status, sub_body = self.composite_handler(sub_request)
            responses.append({'httpStatusCode': status, 'referenceId': sub_request['referenceId'],
                              'body': sub_body})
        return {'compositeResponse': responses}

    def describe_global(self):
        self.calls.append(('describe_global',))
        return {'sobjects': self.sobjects}

    def describe(self, sobject_name):
        self.calls.append(('describe', sobject_name))
        return self.describes[sobject_name]

    def record_count(self, sobject_name):
        self.calls.append(('record_count', sobject_name))
        if sobject_name not in self.record_counts:
            return {'sObjects': []}
        return {'sObjects': [{'name': sobject_name, 'count': self.record_counts[sobject_name]}]}

    def limits(self):
        self.calls.append(('limits',))
        return self.limits_result

    def list_metadata(self, metadata_type):
        self.calls.append(('list_metadata', metadata_type))
        return list(self.metadata_lists.get(metadata_type, []))

    def read_metadata(self, metadata_type, members):
        self.calls.append(('read_metadata', metadata_type, list(members)))
        table = self.metadata.get(metadata_type, {})
        return [table[m] for m in members if m in table]

    def api_usage(self):
        return self.usage

    def calls_of(self, kind):
        return [c for c in self.calls if c[0] == kind]


def salesforce_error(code):
    return TransientQueryError(f'{code}: something went wrong', {'when': 'Query'}, error_code=code)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def manager(transport):
    return SalesforceManager(transport, api_version=60)


@pytest.fixture
def factory(manager):
    return DataFactory(manager.is_version_old)
