"""
Tests for the blocking Simple Salesforce transport.
"""
from collections import namedtuple
from unittest.mock import MagicMock

import pytest
import requests
from simple_salesforce.exceptions import SalesforceMalformedRequest

from orgcheck.exceptions import RequestTimeoutError, TransientQueryError
from orgcheck.transport import SalesforceTransport

Usage = namedtuple('Usage', 'used total')


@pytest.fixture
def sf():
    connection = MagicMock()
    connection.sf_version = '60.0'
    connection.api_usage = {}
    return connection


class TestQueries:
    """Tests for queries and errors."""

    def test_rest_query(self, sf):
        """Test REST queries go through query with the timeout."""
        sf.query.return_value = {'done': True, 'records': []}

        SalesforceTransport(sf, timeout=12).query('SELECT Id FROM Account')

        sf.query.assert_called_once_with('SELECT Id FROM Account', timeout=12)

    def test_tooling_query(self, sf):
        """Test Tooling API queries go through toolingexecute."""
        SalesforceTransport(sf, timeout=12).query('SELECT Id FROM ApexClass', tooling=True)

        sf.toolingexecute.assert_called_once_with('query/', params={'q': 'SELECT Id FROM ApexClass'}, timeout=12)

    def test_salesforce_error_code(self, sf):
        """Test Salesforce errors carry their errorCode."""
        sf.query.side_effect = SalesforceMalformedRequest(
            'https://x/query', 400, 'query', [{'errorCode': 'INVALID_TYPE', 'message': 'sObject type not supported'}])

        with pytest.raises(TransientQueryError) as exc_info:
            SalesforceTransport(sf).query('SELECT Id FROM PermissionSetGroup')

        assert exc_info.value.error_code == 'INVALID_TYPE'

    def test_timeout(self, sf):
        """Test a requests timeout becomes a retryable error."""
        sf.restful.side_effect = requests.exceptions.ReadTimeout()

        with pytest.raises(RequestTimeoutError) as exc_info:
            SalesforceTransport(sf).limits()

        assert exc_info.value.retryable is True

    def test_connection_error(self, sf):
        """Test other request failures are transient query errors."""
        sf.restful.side_effect = requests.exceptions.ConnectionError('reset')

        with pytest.raises(TransientQueryError):
            SalesforceTransport(sf).describe('Account')


class TestComposite:
    """Tests for composite calls."""

    def test_rest_composite(self, sf):
        """Test REST composite calls post the body as JSON."""
        body = {'compositeRequest': []}

        SalesforceTransport(sf, timeout=5).composite(body)

        sf.restful.assert_called_once_with('composite', method='POST', json=body, timeout=5)

    def test_tooling_composite(self, sf):
        """Test Tooling composite calls go through toolingexecute."""
        body = {'compositeRequest': []}

        SalesforceTransport(sf, timeout=5).composite(body, tooling=True)

        sf.toolingexecute.assert_called_once_with('composite', method='POST', data=body, timeout=5)


class TestMetadataApi:
    """Tests for Metadata API calls."""

    def test_list_metadata(self, sf):
        """Test the full names of the listed members."""
        sf.mdapi.list_metadata.return_value = [MagicMock(fullName='Admin'), MagicMock(fullName='Sales')]

        assert SalesforceTransport(sf).list_metadata('ProfilePasswordPolicy') == ['Admin', 'Sales']

    def test_list_metadata_without_member(self, sf):
        """Test an empty answer gives no member."""
        sf.mdapi.list_metadata.return_value = None

        assert SalesforceTransport(sf).list_metadata('ProfilePasswordPolicy') == []

    def test_read_metadata_failure(self, sf):
        """Test a failing read is a transient query error."""
        sf.mdapi.Profile.read.side_effect = RuntimeError('soap fault')

        with pytest.raises(TransientQueryError) as exc_info:
            SalesforceTransport(sf).read_metadata('Profile', ['Admin'])

        assert exc_info.value.context['what'] == {'type': 'Profile', 'members': ['Admin']}

    def test_list_metadata_is_bounded_by_the_timeout(self, sf):
        """Test the SOAP transport of the Metadata API gets the transport timeout before listing."""
        sf.mdapi._client.transport.operation_timeout = None
        timeouts = []
        sf.mdapi.list_metadata.side_effect = \
            lambda queries: timeouts.append(sf.mdapi._client.transport.operation_timeout) or []

        SalesforceTransport(sf, timeout=7).list_metadata('ApexClass')

        assert timeouts == [7]

    def test_read_metadata_is_bounded_by_the_timeout(self, sf):
        """Test the SOAP transport of the Metadata API gets the transport timeout before reading."""
        sf.mdapi._client.transport.operation_timeout = None
        sf.mdapi.ApexClass.read.return_value = None

        SalesforceTransport(sf, timeout=7).read_metadata('ApexClass', ['A'])

        assert sf.mdapi._client.transport.operation_timeout == 7
        sf.mdapi.ApexClass.read.assert_called_once_with(['A'])

    @pytest.mark.parametrize('method, args', [
        ('list_metadata', ('ApexClass',)),
        ('read_metadata', ('ApexClass', ['A'])),
    ])
    def test_metadata_timeout(self, sf, method, args):
        """Test a timed out SOAP call becomes a retryable error."""
        sf.mdapi.list_metadata.side_effect = requests.exceptions.ReadTimeout()
        sf.mdapi.ApexClass.read.side_effect = requests.exceptions.ReadTimeout()

        with pytest.raises(RequestTimeoutError) as exc_info:
            getattr(SalesforceTransport(sf, timeout=7), method)(*args)

        assert exc_info.value.retryable is True
        assert '7 seconds' in str(exc_info.value)


class TestApiUsage:
    """Tests for the Sforce-Limit-Info reading."""

    def test_usage(self, sf):
        """Test used and max of the last response."""
        sf.api_usage = {'api-usage': Usage(used=150, total=15000)}

        assert SalesforceTransport(sf).api_usage() == (150, 15000)

    def test_unknown_usage(self, sf):
        """Test no usage before the first response."""
        assert SalesforceTransport(sf).api_usage() is None

    def test_api_version(self, sf):
        """Test the API version of the connection."""
        assert SalesforceTransport(sf).api_version == 60.0
