"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. Nothing in the engine retries on
them; callers decide.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    code: Optional[str] = None

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Malformed input, rejected before any mutation."""

    code = "validation"


class DuplicateCodeError(ValidationException):
    """Another status already uses the requested machine code."""

    code = "duplicate_code"


class InvalidSlaCombinationError(ValidationException):
    """A final status cannot keep the SLA clock running."""

    code = "invalid_sla_combination"


class StructuralException(DomainException):
    """A graph edit that would break a structural invariant; graph left unchanged."""

    code = "structural"


class SelfLoopError(StructuralException):
    code = "self_loop"


class TransitionFromFinalError(StructuralException):
    code = "transition_from_final"


class TransitionToEntryError(StructuralException):
    code = "transition_to_entry"


class DuplicateTransitionError(StructuralException):
    code = "duplicate_transition"


class AlreadyPresentError(StructuralException):
    code = "already_present"


class LockedException(DomainException):
    """Attempt to mutate a system-category status or a locked transition."""

    code = "locked"


class ReferentialException(DomainException):
    """Delete of a status still bound into a workflow graph."""

    code = "referenced_by_graph"


class CloneException(ApplicationException):
    """Clone failed and was rolled back wholesale."""

    code = "clone_failed"


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    code = "not_found"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

    code = "configuration"
