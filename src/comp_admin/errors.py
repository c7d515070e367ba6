"""Error taxonomy for compensation admin operations."""

from __future__ import annotations


class CompAdminError(Exception):
    """Base class for errors raised by compensation admin services."""


class ValidationError(CompAdminError):
    """Input failed validation; the operation was not attempted."""


class NotFoundError(CompAdminError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, key: object):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key} not found")


class ConflictError(CompAdminError):
    """The operation conflicts with existing data."""


class InvalidTransitionError(CompAdminError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
