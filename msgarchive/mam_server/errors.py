"""
Error types for the message archive server.

This module defines the exception hierarchy raised by the archive core and
the fault kinds reported back to requesters:
- ArchiveError: Base exception
- MalformedRequest: Bad filter or paging syntax in a query
- PolicyViolation: Result set would exceed the enforced maximum
- StoreError / StoreUnavailable: Storage backend failures

Invariants:
    - All errors inherit from ArchiveError
    - Every query-path error maps to exactly one FaultKind
    - Error messages never include archived message content
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class FaultKind(Enum):
    """Terminal, user-visible outcomes reported in place of a result page.

    The value is the stanza error condition name.
    """

    BAD_REQUEST = "bad-request"
    POLICY_VIOLATION = "policy-violation"
    SERVICE_UNAVAILABLE = "service-unavailable"
    NOT_ALLOWED = "not-allowed"
    FEATURE_NOT_IMPLEMENTED = "feature-not-implemented"

    @property
    def error_type(self) -> str:
        """Stanza error ``type`` attribute for this condition."""
        return _ERROR_TYPES[self]


_ERROR_TYPES = {
    FaultKind.BAD_REQUEST: "modify",
    FaultKind.POLICY_VIOLATION: "modify",
    FaultKind.SERVICE_UNAVAILABLE: "cancel",
    FaultKind.NOT_ALLOWED: "cancel",
    FaultKind.FEATURE_NOT_IMPLEMENTED: "cancel",
}


class ArchiveError(Exception):
    """Base exception for all archive errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    fault = FaultKind.SERVICE_UNAVAILABLE

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ARCHIVE_ERROR"
        self.details = details or {}


class MalformedRequest(ArchiveError):
    """Query constraints could not be parsed.

    Raised when:
    - A ``start``/``end`` value is not a valid timestamp
    - ``start``, ``end`` or a paging field occurs twice
    - The paging block has a missing or wrong namespace
    - A paging field is empty or not a non-negative integer
    """

    fault = FaultKind.BAD_REQUEST

    def __init__(self, message: str, element: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="BAD_REQUEST",
            details={"element": element},
        )
        self.element = element


class PolicyViolation(ArchiveError):
    """The unrestricted result set would exceed the enforced maximum."""

    fault = FaultKind.POLICY_VIOLATION

    def __init__(self, message: str = "Too many results", limit: Optional[int] = None) -> None:
        super().__init__(
            message,
            code="POLICY_VIOLATION",
            details={"limit": limit},
        )
        self.limit = limit


class StoreError(ArchiveError):
    """Storage backend error."""

    def __init__(self, message: str, host: Optional[str] = None) -> None:
        super().__init__(message, code="STORE_ERROR", details={"host": host})
        self.host = host


class StoreUnavailable(StoreError):
    """Storage backend could not be reached or queried.

    Distinguishes "could not query" from "no matches".
    """

    def __init__(self, message: str, host: Optional[str] = None) -> None:
        super().__init__(message, host=host)
        self.code = "SERVICE_UNAVAILABLE"


def fault_for(exc: BaseException) -> FaultKind:
    """Map an exception raised on the query path to its fault kind."""
    if isinstance(exc, ArchiveError):
        return exc.fault
    return FaultKind.SERVICE_UNAVAILABLE
