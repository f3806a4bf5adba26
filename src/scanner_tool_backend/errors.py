"""
Error taxonomy shared by the registry, job store, lifecycle engine and service.

Every error carries a human-readable message; the HTTP layer returns that
message verbatim as the response ``detail``.
"""

from __future__ import annotations

from typing import Sequence


class ScannerToolError(Exception):
    """Base class for errors surfaced to callers of the scanner service."""


class NotFoundError(ScannerToolError):
    def __init__(self, entity: str, identifier: str) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} with ID {identifier} not found")


class ConflictError(ScannerToolError):
    """
    Raised when an operation is refused because of the current state.

    Attributes:
        reason: Description of the conflicting state
        active_job_ids: Jobs blocking the operation, when relevant
    """

    def __init__(self, reason: str, active_job_ids: Sequence[str] = ()) -> None:
        self.reason = reason
        self.active_job_ids = list(active_job_ids)
        super().__init__(reason)


class IOFailureError(ScannerToolError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class LockFailureError(ScannerToolError):
    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"Could not acquire the {resource} lock")
