"""
Custom exceptions for the kinsync application.
"""

from typing import Optional


class KinsyncException(Exception):
    """Base exception for all application-specific errors."""
    pass


class ConfigurationError(KinsyncException):
    """Error related to sync settings or the static field table."""
    pass


class TransportError(KinsyncException):
    """HTTP call failed. Carries the request and response details for diagnostics."""

    transient = False

    def __init__(
        self,
        message: str,
        *,
        method: Optional[str] = None,
        url: Optional[str] = None,
        status: Optional[int] = None,
        body: Optional[str] = None,
        retry_after: Optional[str] = None,
    ):
        super().__init__(message)
        self.method = method
        self.url = url
        self.status = status
        self.body = body
        self.retry_after = retry_after


class TransientTransportError(TransportError):
    """Rate limit or server error. Retried by the transport itself."""

    transient = True


class PermanentTransportError(TransportError):
    """Client error or exhausted retries. Propagated to the caller."""
    pass


class ConnectorError(KinsyncException):
    """Error related to a connector."""
    pass


# Specific API error classes for connectors
class PlanningCenterAPIError(ConnectorError):
    """Exception raised for Planning Center API errors."""
    pass


class FiberyAPIError(ConnectorError):
    """Exception raised for Fibery API errors, including failed commands in a batch."""
    pass


class MappingError(KinsyncException):
    """A single record could not be mapped. The record is skipped, the batch continues."""
    pass


class ReconciliationBatchError(KinsyncException):
    """The destination rejected a write batch. Aborts the current direction."""
    pass


class ConnectivityError(KinsyncException):
    """Pre-flight connectivity check failed. Aborts the run before any cursor is read."""
    pass


class CursorStoreError(KinsyncException):
    """Cursor store could not be read or written."""
    pass
