"""Service-layer exceptions.

Raised by the sequence allocator and the CRUD helpers; the API layer turns
them into error envelopes in ``clientdesk.core.errors``.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base service exception."""


class UnknownNamespace(ServiceError, LookupError):
    """No sequence namespace is registered under the given name."""

    def __init__(self, namespace: str):
        self.namespace = namespace
        super().__init__(f"Unknown sequence namespace: {namespace}")


class SequenceError(ServiceError):
    """Base class for allocation failures."""

    def __init__(self, namespace: str, message: str):
        self.namespace = namespace
        super().__init__(message)


class LimitExceeded(SequenceError):
    """The namespace is exhausted; nothing may be created until an admin acts."""

    def __init__(self, namespace: str, label: str, max_value: int):
        self.max_value = max_value
        super().__init__(
            namespace,
            f"Maximum {label} ({max_value}) reached. Please contact administrator.",
        )


class ConflictRetryable(SequenceError):
    """Another writer committed the same value first; allocate again."""

    def __init__(self, namespace: str, value: int | str):
        self.value = value
        super().__init__(namespace, f"{namespace} value {value} was taken by a concurrent writer")


class AllocationContention(SequenceError):
    """Retries ran out while competing with concurrent writers."""

    def __init__(self, namespace: str, attempts: int):
        self.attempts = attempts
        super().__init__(
            namespace,
            f"Could not allocate a {namespace} code after {attempts} attempts. Please try again.",
        )


class CodeConflict(ServiceError):
    """An explicitly supplied code is already used by another record."""

    def __init__(self, field: str, value: int | str):
        self.field = field
        self.value = value
        super().__init__(f"{field} {value} is already in use")


class NotFound(ServiceError, LookupError):
    """Record does not exist (or is hidden by soft delete)."""


class DeletionBlocked(ServiceError):
    """A record still has open dependants and can only be archived."""

    def __init__(self, reason: str, details: dict[str, int] | None = None):
        self.details = details or {}
        super().__init__(reason)
