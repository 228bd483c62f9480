"""
Salesforce Transport Module

Blocking calls against one authenticated Simple Salesforce connection. This is
the only module that talks to Salesforce: the asynchronous query client runs
these methods in worker threads and never touches the connection directly.

Every call:
    - is bounded by QUERY_TIMEOUT_SECONDS (a requests timeout becomes RequestTimeoutError)
    - turns Simple Salesforce errors into TransientQueryError carrying the
      Salesforce errorCode (e.g. INVALID_TYPE) so callers can bypass it

Functions:
    - SalesforceTransport.query / query_more: One page of a SOQL query (REST or Tooling API)
    - SalesforceTransport.composite: One composite call (REST or Tooling API)
    - SalesforceTransport.describe_global / describe: sObject describes
    - SalesforceTransport.record_count: /limits/recordCount for one sObject
    - SalesforceTransport.limits: /limits
    - SalesforceTransport.list_metadata / read_metadata: Metadata API list and read
    - SalesforceTransport.api_usage: Daily API usage from the last response headers
"""
import requests
from simple_salesforce.exceptions import SalesforceError
from zeep.helpers import serialize_object

from orgcheck.constants import QUERY_TIMEOUT_SECONDS
from orgcheck.exceptions import RequestTimeoutError, TransientQueryError
from orgcheck.logger import logger


def _error_code(error):
    """Extract the Salesforce errorCode of a Simple Salesforce error, if any."""
    content = getattr(error, 'content', None)
    if isinstance(content, list) and content and isinstance(content[0], dict):
        return content[0].get('errorCode')
    if isinstance(content, dict):
        return content.get('errorCode')
    return None


class SalesforceTransport:
    """Thin blocking wrapper around a simple_salesforce.Salesforce connection."""

    def __init__(self, sf, timeout=QUERY_TIMEOUT_SECONDS):
        self.sf = sf
        self.timeout = timeout

    @property
    def api_version(self):
        return float(self.sf.sf_version)

    def _call(self, what, func, *args, **kwargs):
        try:
            return func(*args, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.error("%s timed out after : %s seconds.", what, self.timeout)
            raise RequestTimeoutError(f'{what} timed out after {self.timeout} seconds',
                                      {'when': what}) from e
        except SalesforceError as e:
            code = _error_code(e)
            raise TransientQueryError(f'{what} failed: {e}', {'when': what}, error_code=code) from e
        except requests.exceptions.RequestException as e:
            raise TransientQueryError(f'{what} failed: {e}', {'when': what}) from e

    def query(self, soql, tooling=False):
        """Return the first page of a query: a dict with records, done and nextRecordsUrl."""
        if tooling:
            return self._call('Tooling API query', self.sf.toolingexecute, 'query/', params={'q': soql})
        return self._call('Query', self.sf.query, soql)

    def query_more(self, next_records_url):
        """Return the page behind a nextRecordsUrl (works for both APIs, the URL carries the path)."""
        return self._call('Query more', self.sf.query_more, next_records_url, identifier_is_url=True)

    def composite(self, body, tooling=False):
        """POST one composite request and return its parsed body."""
        if tooling:
            return self._call('Tooling composite', self.sf.toolingexecute, 'composite', method='POST', data=body)
        return self._call('Composite', self.sf.restful, 'composite', method='POST', json=body)

    def describe_global(self):
        return self._call('Describe global', self.sf.restful, 'sobjects/')

    def describe(self, sobject_name):
        return self._call(f'Describe {sobject_name}', self.sf.restful, f'sobjects/{sobject_name}/describe/')

    def record_count(self, sobject_name):
        return self._call(f'Record count of {sobject_name}', self.sf.restful,
                          'limits/recordCount', params={'sObjects': sobject_name})

    def limits(self):
        return self._call('Limits', self.sf.restful, 'limits/')

    def _metadata_api(self):
        """Return the Metadata API client, its SOAP calls bounded by the transport timeout."""
        mdapi = self.sf.mdapi
        # pylint: disable=protected-access
        mdapi._client.transport.operation_timeout = self.timeout
        return mdapi

    def list_metadata(self, metadata_type):
        """Return the fullName of every member of a metadata type."""
        mdapi = self._metadata_api()
        query = mdapi.ListMetadataQuery(type=metadata_type)
        try:
            members = mdapi.list_metadata([query])
        except requests.exceptions.Timeout as e:
            logger.error("Metadata list of %s timed out after : %s seconds.", metadata_type, self.timeout)
            raise RequestTimeoutError(f'Metadata list of {metadata_type} timed out after {self.timeout} seconds',
                                      {'when': 'While calling a metadata api list.'}) from e
        # pylint: disable=broad-except
        except Exception as e:
            raise TransientQueryError(f'Metadata list of {metadata_type} failed: {e}',
                                      {'when': 'While calling a metadata api list.',
                                       'what': {'type': metadata_type}}) from e
        if not members:
            return []
        if not isinstance(members, list):
            members = [members]
        return [m.fullName for m in members]

    def read_metadata(self, metadata_type, members):
        """Read up to MAX_METADATA_READ_MEMBERS members and return them as plain dicts."""
        try:
            results = getattr(self._metadata_api(), metadata_type).read(members)
        except requests.exceptions.Timeout as e:
            logger.error("Metadata read of %s timed out after : %s seconds.", metadata_type, self.timeout)
            raise RequestTimeoutError(f'Metadata read of {metadata_type} timed out after {self.timeout} seconds',
                                      {'when': 'While calling a metadata api read.'}) from e
        # pylint: disable=broad-except
        except Exception as e:
            raise TransientQueryError(f'Metadata read of {metadata_type} failed: {e}',
                                      {'when': 'While calling a metadata api read.',
                                       'what': {'type': metadata_type, 'members': members}}) from e
        if results is None:
            return []
        if not isinstance(results, list):
            results = [results]
        return [dict(serialize_object(r)) for r in results if r is not None]

    def api_usage(self):
        """
        Return (used, max) of the daily API requests as reported by the
        Sforce-Limit-Info header of the last response, or None when unknown.
        """
        usage = (getattr(self.sf, 'api_usage', None) or {}).get('api-usage')
        if usage is None or not usage.total:
            return None
        return usage.used, usage.total
