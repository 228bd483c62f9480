"""
Audit Engine Exceptions Module

Error kinds raised by the query client, the entity factory and the dataset
manager. Every error carries a ``context`` dictionary describing when it
happened and what was being processed, so callers can present it without
parsing the message.

Exceptions:
    - OrgCheckError: Base class of every engine error
    - TransientQueryError: A single query, page or composite batch failed
    - RequestTimeoutError: A remote call exceeded QUERY_TIMEOUT_SECONDS (retryable)
    - QuotaExceededError: The watchdog refused a call because the daily API quota is critically low
    - SchemaViolationError: Undeclared field assigned on a record, or unknown dataset requested
    - DatasetRunError: At least one requested dataset failed; carries the partial results
"""


class OrgCheckError(Exception):
    """Base class for the audit engine errors."""

    retryable = False

    def __init__(self, message, context=None):
        self.context = context or {}
        super().__init__(message)


class TransientQueryError(OrgCheckError):
    """Raised when a query, a page of a query or a composite batch fails."""

    def __init__(self, message, context=None, error_code=None):
        self.error_code = error_code
        super().__init__(message, context)


class RequestTimeoutError(TransientQueryError):
    """Raised when a remote call does not answer in time."""

    retryable = True


class QuotaExceededError(OrgCheckError):
    """Raised before any I/O when the last known daily API usage is above the fatal threshold."""

    def __init__(self, usage_ratio, threshold):
        self.usage_ratio = usage_ratio
        self.threshold = threshold
        super().__init__(
            f"WATCH DOG: Daily API Request limit is {usage_ratio * 100:.3f}%, "
            f"and our internal threshold is {threshold * 100:.3f}%. "
            "We stop there to keep your org safe.",
            {'when': 'Before calling Salesforce', 'what': {'usage_ratio': usage_ratio, 'threshold': threshold}}
        )


class SchemaViolationError(OrgCheckError, AttributeError):
    """Raised on programming errors: undeclared record field or unknown dataset name."""


class DatasetRunError(OrgCheckError):
    """
    Raised by DatasetManager.run when at least one dataset failed.

    Attributes:
        results: dict of dataset name to data for the datasets that succeeded
        errors: dict of dataset name to the exception that made it fail
    """

    def __init__(self, results, errors):
        self.results = results
        self.errors = errors
        names = ', '.join(sorted(errors))
        first = next(iter(errors.values()))
        super().__init__(
            f"{len(errors)} dataset(s) failed: {names} (first error: {first})",
            {'when': 'While running datasets', 'what': {'failed': sorted(errors), 'succeeded': sorted(results)}}
        )
