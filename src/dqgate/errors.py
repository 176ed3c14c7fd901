"""Exceptions raised by dqgate.

Only precondition failures are exceptions. Consistency failures are
reported as :class:`~dqgate.validation.framework.Violation` values.
"""


class DqgateError(Exception):
    """Base class for dqgate errors."""
    pass


class DatasetError(DqgateError):
    """Raised when input cannot be interpreted as a dataset."""
    pass


class DatasetLoadError(DatasetError):
    """Raised when a dataset file cannot be read or decoded."""
    pass


class JurisdictionTableError(DqgateError):
    """Raised on invalid jurisdiction rule registration."""
    pass
