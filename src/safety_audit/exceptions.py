"""
Exception hierarchy for the vehicle safety audit core.

Every failure path raises one of these so callers can tell input problems,
lookup misses, workflow misuse and persistence outages apart.
"""

from typing import Any, List, Optional


class AuditError(Exception):
    """Base exception for all safety audit errors."""


class InputError(AuditError):
    """A feed could not be turned into rows."""

    def __init__(self, message: str, source: str = ""):
        self.source = source
        super().__init__(message)


class UnreadableFile(InputError):
    """The feed file is missing, corrupt or cannot be parsed."""


class UnsupportedFormat(InputError):
    """The feed file type is not one the reader understands."""


class VehicleNotFound(AuditError, LookupError):
    """No vehicle record exists for the requested plate."""

    def __init__(self, plate: str, normalized_plate: str = ""):
        self.plate = plate
        self.normalized_plate = normalized_plate
        super().__init__(f"No vehicle found for plate '{plate}'")


class WorkflowError(AuditError):
    """An audit session operation was rejected."""


class EmptyProblem(WorkflowError):
    """A block decision was submitted without a problem description."""

    def __init__(self):
        super().__init__("Problem description must not be empty")


class InvalidState(WorkflowError):
    """The requested transition is not allowed from the current state."""

    def __init__(self, state: Any, action: str):
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} while session is {getattr(state, 'value', state)}")


class PersistenceUnavailable(AuditError):
    """The remote datastore could not complete an operation."""

    def __init__(self, operation: str, reason: str = ""):
        self.operation = operation
        self.reason = reason
        message = f"Datastore unavailable during {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FlushFailed(PersistenceUnavailable):
    """
    Saving a freshly merged store failed.

    Carries the merged-but-unsaved store and the batch warnings so the caller
    can retry the flush or discard the batch.
    """

    def __init__(
        self,
        reason: str,
        store: Any,
        warnings: Optional[List[Any]] = None
    ):
        self.store = store
        self.warnings = warnings or []
        super().__init__("saveVehicles", reason)
