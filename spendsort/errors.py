"""Exception hierarchy shared by the categorizer and the repository.

NotFoundError, DuplicateRuleError, ValidationError and UnauthorizedError are
recoverable: callers show them to the user.  StorageError wraps any failure
from SQLite and carries a generic message only.
"""

from __future__ import annotations


class SpendsortError(Exception):
    """Base class for all errors raised by spendsort."""


class NotFoundError(SpendsortError):
    """Raised when a referenced transaction, category or rule does not exist."""

    def __init__(self, kind: str, object_id: str):
        self.kind = kind
        self.object_id = object_id
        super().__init__(f"{kind} '{object_id}' not found")


class DuplicateRuleError(SpendsortError):
    """Raised when creating a rule whose key already exists for the user."""

    def __init__(self, learning_key: str, existing_rule_id: str | None = None):
        self.learning_key = learning_key
        self.existing_rule_id = existing_rule_id
        super().__init__(f"A rule with pattern '{learning_key}' already exists")


class ValidationError(SpendsortError):
    """Raised for bad user input: empty pattern, unknown mode, missing category."""


class UnauthorizedError(SpendsortError):
    """Raised when a user acts on a transaction owned by someone else."""


class StorageError(SpendsortError):
    """Opaque failure from the underlying store."""
