"""
Tests for the asynchronous Salesforce query client.
"""
import threading

import pytest
from conftest import salesforce_error

from orgcheck.exceptions import QuotaExceededError, TransientQueryError
from orgcheck.salesforce_manager import SalesforceManager, SOQLQuery


class FakeClock:

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestSoqlQuery:
    """Tests for SOQL queries and pagination."""

    @pytest.mark.asyncio
    async def test_all_pages_are_read(self, transport, manager):
        """Test every page is fetched and concatenated in order."""
        transport.add_query('FROM Account', pages=[[{'Id': '1'}, {'Id': '2'}], [{'Id': '3'}], [{'Id': '4'}]])

        result, = await manager.soql_query([SOQLQuery('SELECT Id FROM Account')])

        assert [r['Id'] for r in result.records] == ['1', '2', '3', '4']
        assert len(transport.calls_of('query_more')) == 2
        assert result.all_dependencies is None

    @pytest.mark.asyncio
    async def test_partial_page(self, transport, manager):
        """Test only the first page is read when partial pages are allowed."""
        transport.add_query('FROM Account', pages=[[{'Id': '1'}], [{'Id': '2'}]])

        result, = await manager.soql_query([SOQLQuery('SELECT Id FROM Account', allow_partial_page=True)])

        assert [r['Id'] for r in result.records] == ['1']
        assert transport.calls_of('query_more') == []

    @pytest.mark.asyncio
    async def test_results_keep_query_order(self, transport, manager):
        """Test one result per query in the order of the queries."""
        transport.add_query('FROM Account', [{'Id': 'a'}])
        transport.add_query('FROM Contact', [{'Id': 'c'}])

        results = await manager.soql_query([SOQLQuery('SELECT Id FROM Contact'),
                                            SOQLQuery('SELECT Id FROM Account', tooling=True)])

        assert [r.records[0]['Id'] for r in results] == ['c', 'a']
        assert ('query', 'SELECT Id FROM Account', True) in transport.calls

    @pytest.mark.asyncio
    async def test_bypassed_error_gives_empty_result(self, transport, manager):
        """Test a bypassed error code turns the failure into no records."""
        transport.add_query('FROM PermissionSetGroup', error=salesforce_error('INVALID_TYPE'))

        result, = await manager.soql_query([SOQLQuery('SELECT Id FROM PermissionSetGroup',
                                                      bypass_error_codes=('INVALID_TYPE',))])

        assert result.records == []

    @pytest.mark.asyncio
    async def test_error_carries_query_context(self, transport, manager):
        """Test a failing query reports the statement and options."""
        transport.add_query('FROM Account', error=salesforce_error('MALFORMED_QUERY'))

        with pytest.raises(TransientQueryError) as exc_info:
            await manager.soql_query([SOQLQuery('SELECT Id FROM Account', tooling=True)])

        what = exc_info.value.context['what']
        assert what['query_string'] == 'SELECT Id FROM Account'
        assert what['query_use_tooling'] is True
        assert exc_info.value.error_code == 'MALFORMED_QUERY'

    @pytest.mark.asyncio
    async def test_dependencies_are_requested_for_unique_ids(self, transport, manager):
        """Test the dependency ids are case safe and deduplicated."""
        transport.add_query('FROM ApexClass', [{'Id': '01p000000000001AAA'}, {'Id': '01p000000000001'}])

        result, = await manager.soql_query([SOQLQuery('SELECT Id FROM ApexClass', tooling=True,
                                                      dependency_id_field='Id')])

        composite_calls = transport.calls_of('composite')
        assert len(composite_calls) == 1
        references = [r['referenceId'] for r in composite_calls[0][1]['compositeRequest']]
        assert references == ['01p000000000001']
        assert len(result.all_dependencies) == 0

    @pytest.mark.asyncio
    async def test_dependency_failure_gives_none(self, transport, manager):
        """Test a failing Dependency API call does not fail the query."""
        transport.add_query('FROM ApexClass', [{'Id': '01p000000000001'}])
        transport.composite_handler = lambda sub_request: (400, [{'errorCode': 'INVALID_TYPE'}])

        result, = await manager.soql_query([SOQLQuery('SELECT Id FROM ApexClass', tooling=True,
                                                      dependency_id_field='Id')])

        assert len(result.records) == 1
        assert result.all_dependencies is None


class TestComposite:
    """Tests for composite calls."""

    @pytest.mark.asyncio
    async def test_batches_of_twenty_five(self, transport, manager):
        """Test 30 ids are sent in two composite calls."""
        transport.composite_handler = lambda sub_request: (200, {'Id': sub_request['referenceId']})
        ids = [f'id{i}' for i in range(30)]

        bodies = await manager.call_composite(ids, False, '/sobjects/Account/(id)')

        calls = transport.calls_of('composite')
        assert sorted(len(c[1]['compositeRequest']) for c in calls) == [5, 25]
        assert sorted(b['Id'] for b in bodies) == sorted(ids)

    @pytest.mark.asyncio
    async def test_sub_request_urls(self, transport, manager):
        """Test the placeholder is replaced and the tooling prefix added."""
        await manager.call_composite(['300000000000001'], True, '/sobjects/Flow/(id)')

        sub_request = transport.calls_of('composite')[0][1]['compositeRequest'][0]
        assert sub_request['url'] == '/services/data/v60.0/tooling/sobjects/Flow/300000000000001'
        assert sub_request['method'] == 'GET'

    @pytest.mark.asyncio
    async def test_bypassed_sub_request_error(self, transport, manager):
        """Test a bypassed sub-response is skipped."""
        transport.composite_handler = lambda sub_request: (
            (200, {'Id': 'ok'}) if sub_request['referenceId'] == 'a'
            else (500, [{'errorCode': 'UNKNOWN_EXCEPTION', 'message': 'boom'}])
        )

        bodies = await manager.call_composite(['a', 'b'], True, '/sobjects/WorkflowRule/(id)',
                                              bypass_error_codes=('UNKNOWN_EXCEPTION',))

        assert bodies == [{'Id': 'ok'}]

    @pytest.mark.asyncio
    async def test_sub_request_error(self, transport, manager):
        """Test any other sub-response error fails the call."""
        transport.composite_handler = lambda sub_request: (404, [{'errorCode': 'NOT_FOUND'}])

        with pytest.raises(TransientQueryError) as exc_info:
            await manager.call_composite(['a'], True, '/sobjects/Flow/(id)')

        assert exc_info.value.error_code == 'NOT_FOUND'
        assert exc_info.value.context['what']['pattern'] == '/sobjects/Flow/(id)'


class TestMetadataApi:
    """Tests for Metadata API reads, describes and counts."""

    @pytest.mark.asyncio
    async def test_wildcard_lists_members(self, transport, manager):
        """Test a wildcard member is expanded with list_metadata."""
        transport.metadata_lists['ProfilePasswordPolicy'] = ['Admin', 'Standard']
        transport.metadata['ProfilePasswordPolicy'] = {'Admin': {'fullName': 'Admin'},
                                                       'Standard': {'fullName': 'Standard'}}

        response = await manager.read_metadata([{'type': 'ProfilePasswordPolicy', 'members': ['*']}])

        assert [m['fullName'] for m in response['ProfilePasswordPolicy']] == ['Admin', 'Standard']
        assert transport.calls_of('list_metadata') == [('list_metadata', 'ProfilePasswordPolicy')]

    @pytest.mark.asyncio
    async def test_reads_by_chunks_of_ten(self, transport, manager):
        """Test members are read ten at a time."""
        members = [f'm{i}' for i in range(23)]
        transport.metadata['Profile'] = {m: {'fullName': m} for m in members}

        response = await manager.read_metadata([{'type': 'Profile', 'members': members}])

        assert sorted(len(c[2]) for c in transport.calls_of('read_metadata')) == [3, 10, 10]
        assert [m['fullName'] for m in response['Profile']] == members

    @pytest.mark.asyncio
    async def test_record_count(self, transport, manager):
        """Test the count of an object, zero when unknown."""
        transport.record_counts['Account'] = 42

        assert await manager.record_count('Account') == 42
        assert await manager.record_count('Invoice__c') == 0


class TestWatchdog:
    """Tests for the daily API quota watchdog."""

    @pytest.mark.asyncio
    async def test_high_usage_raises_after_response(self, transport):
        """Test a response above the fatal threshold raises, then the next call fails before any I/O."""
        manager = SalesforceManager(transport, clock=FakeClock(), api_version=60)
        transport.add_query('FROM Account', [{'Id': '1'}])
        transport.usage = (95, 100)

        with pytest.raises(QuotaExceededError) as exc_info:
            await manager.soql_query([SOQLQuery('SELECT Id FROM Account')])
        assert exc_info.value.usage_ratio == 0.95

        calls = len(transport.calls)
        with pytest.raises(QuotaExceededError):
            await manager.soql_query([SOQLQuery('SELECT Id FROM Account')])
        assert len(transport.calls) == calls

    @pytest.mark.asyncio
    async def test_stale_usage_is_not_trusted(self, transport):
        """Test an old usage ratio does not block calls."""
        clock = FakeClock()
        manager = SalesforceManager(transport, clock=clock, api_version=60)
        transport.add_query('FROM Account', [{'Id': '1'}])
        manager.set_last_api_usage(0.95)
        clock.now += 61

        result, = await manager.soql_query([SOQLQuery('SELECT Id FROM Account')])

        assert len(result.records) == 1

    @pytest.mark.asyncio
    async def test_composite_is_guarded(self, transport):
        """Test composite calls are refused when the quota is critical."""
        manager = SalesforceManager(transport, clock=FakeClock(), api_version=60)
        manager.set_last_api_usage(0.91)

        with pytest.raises(QuotaExceededError):
            await manager.call_composite(['a'], True, '/sobjects/Flow/(id)')
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_metadata_api_does_not_renew_a_stale_reading(self, transport):
        """Test a SOAP call does not turn the last REST usage header into a fresh reading."""
        clock = FakeClock()
        manager = SalesforceManager(transport, clock=clock, api_version=60)
        transport.add_query('FROM Account', [{'Id': '1'}])
        transport.metadata['Profile'] = {'Admin': {'fullName': 'Admin'}}
        transport.usage = (95, 100)
        manager.set_last_api_usage(0.95)
        clock.now += 61

        response = await manager.read_metadata([{'type': 'Profile', 'members': ['Admin']}])
        transport.usage = None
        result, = await manager.soql_query([SOQLQuery('SELECT Id FROM Account')])

        assert len(response['Profile']) == 1
        assert len(result.records) == 1

    def test_usage_updates_wait_for_the_lock(self, transport):
        """Test a usage update from another scheduler thread waits for the current reader."""
        manager = SalesforceManager(transport, clock=FakeClock(), api_version=60)
        writer = threading.Thread(target=manager.set_last_api_usage, args=(0.5,))

        with manager._watchdog_lock:
            writer.start()
            writer.join(timeout=0.1)
            assert writer.is_alive()
        writer.join()

        assert manager.get_daily_api_request_limit_information().percentage == 50.0

    @pytest.mark.parametrize('ratio,zone', [
        (0.5, 'green'),
        (0.7, 'green'),
        (0.8, 'yellow'),
        (0.9, 'yellow'),
        (0.95, 'red'),
    ])
    def test_zones(self, transport, ratio, zone):
        """Test the traffic light view of the quota."""
        manager = SalesforceManager(transport, warning_threshold=0.7, fatal_threshold=0.9, api_version=60)
        manager.set_last_api_usage(ratio)

        information = manager.get_daily_api_request_limit_information()

        assert information.percentage == round(ratio * 100, 3)
        assert (information.is_green_zone, information.is_yellow_zone, information.is_red_zone) == (
            zone == 'green', zone == 'yellow', zone == 'red')
        assert information.yellow_threshold_percentage == 70.0
        assert information.red_threshold_percentage == 90.0
