"""Exception taxonomy for goalpost.

Validation and authentication errors are raised before any write.
Store and integration errors wrap failures of external collaborators.
Missing documents are not errors: session-facing operations treat them
as a no-op because the live snapshot may lag the store.
"""

from __future__ import annotations


class GoalpostError(Exception):
    """Base class for all goalpost errors."""


class ValidationError(GoalpostError):
    """A precondition or required field check failed."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NotAuthenticated(GoalpostError):
    """An operation needed an owner but no session is active."""

    def __init__(self, message: str = "No user logged in"):
        super().__init__(message)


class StoreError(GoalpostError):
    """The document store could not complete a read or write."""


class DuplicateSourceItem(GoalpostError):
    """A create violated a uniqueness constraint on the given fields."""

    def __init__(self, collection: str, fields: dict[str, object]):
        self.collection = collection
        self.fields = fields
        desc = ", ".join(f"{k}={v!r}" for k, v in fields.items())
        super().__init__(f"Duplicate {collection} document: {desc}")


class CyclicHierarchy(GoalpostError):
    """A goal's parent chain (or child walk) revisits a goal."""

    def __init__(self, path: list[str]):
        self.path = list(path)
        super().__init__("Cyclic goal hierarchy: " + " -> ".join(self.path))


class InboxStateError(GoalpostError):
    """An inbox transition was requested from a terminal status."""


class IntegrationError(GoalpostError):
    """A third-party platform API call failed or returned an error."""
