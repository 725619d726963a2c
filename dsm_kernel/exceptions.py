"""
Typed Exception Hierarchy for the document workflow kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the workflow store must react to errors precisely: a stale UI
retries with fresh state, an admin fixes a template, a webhook handler
treats a duplicate as success.  Parsing message strings for that is fragile,
so every error here:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        store.record_action(command)
    except Exception as e:
        if "already" in str(e):  # FRAGILE - message might change
            refresh()

Example - RIGHT way (what this module enables):
    try:
        store.record_action(command)
    except ActionConflictError as e:
        render(e.current_state)          # Authoritative state is attached
        api_response(code=e.code)        # Machine-readable

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from WorkflowKernelError:

    WorkflowKernelError (base)
    |
    +-- ConfigurationError
    |
    +-- CommandError
    |   +-- ActionConflictError
    |   +-- UnknownDocumentError
    |   +-- DocumentTombstonedError
    |   +-- DuplicateDocumentError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Requirements/assignments inconsistent
----------------|-----------------------------|-----------------------------------------
Command         | ACTION_CONFLICT             | Action/assignee != current next step
                | UNKNOWN_DOCUMENT            | Document id not in the snapshot
                | DOCUMENT_TOMBSTONED         | Command against a removed document
                | DUPLICATE_DOCUMENT          | Document id registered twice
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Persisted revision moved underneath us
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of action history rows

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONFLICTS ARE RECOVERABLE (someone else acted first):

    except ActionConflictError as e:
        notify_actor("This step was already completed")
        render(e.current_state)

2. CONFIGURATION ERRORS CARRY ISSUES:

    except ConfigurationError as e:
        return {"error": e.code, "issues": [i.code for i in e.issues]}

3. IMMUTABILITY ERRORS (investigate immediately):

    except ImmutabilityViolationError as e:
        alert_security_team(e)

None of these are fatal to the process.  The pure derivation functions
never raise; every check lives at the command boundary.
===============================================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dsm_kernel.domain.workflow import ConfigIssue, DocumentState


class WorkflowKernelError(Exception):
    """
    Base exception for all workflow kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "WORKFLOW_KERNEL_ERROR"


# Configuration-related exceptions


class ConfigurationError(WorkflowKernelError):
    """
    A document's requirements or role assignments are inconsistent.

    Raised when a configuration is submitted (add or edit), never at read
    time.  ``issues`` holds every problem found, not just the first.
    """

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, document_id: str, issues: tuple[ConfigIssue, ...]):
        self.document_id = document_id
        self.issues = tuple(issues)
        summary = "; ".join(issue.message for issue in self.issues)
        super().__init__(
            f"Invalid configuration for document {document_id}: {summary}"
        )


# Command-related exceptions


class CommandError(WorkflowKernelError):
    """Base exception for rejected store commands."""

    code: str = "COMMAND_ERROR"


class ActionConflictError(CommandError):
    """
    The requested action does not match the document's pending step.

    Either the caller's view is stale or a concurrent actor already advanced
    the document.  ``current_state`` is the authoritative state at the time
    of rejection so the caller can re-render without a full reload.
    """

    code: str = "ACTION_CONFLICT"

    def __init__(
        self,
        document_id: str,
        attempted_action: str,
        attempted_by: str,
        current_state: DocumentState | None,
        reason: str,
    ):
        self.document_id = document_id
        self.attempted_action = attempted_action
        self.attempted_by = attempted_by
        self.current_state = current_state
        self.reason = reason
        super().__init__(
            f"Action {attempted_action} by {attempted_by} rejected for "
            f"document {document_id}: {reason}"
        )


class UnknownDocumentError(CommandError):
    """Document with given ID is not present in the current snapshot."""

    code: str = "UNKNOWN_DOCUMENT"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Unknown document: {document_id}")


class DocumentTombstonedError(CommandError):
    """Document was removed from its deal; its history is read-only."""

    code: str = "DOCUMENT_TOMBSTONED"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document {document_id} has been removed")


class DuplicateDocumentError(CommandError):
    """Document with given ID is already registered."""

    code: str = "DUPLICATE_DOCUMENT"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document already exists: {document_id}")


# Concurrency-related exceptions


class ConcurrencyError(WorkflowKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_revision: Any = None,
        actual_revision: Any = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(WorkflowKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Action history entries are append-only and documents are never
    physically deleted (removal is a tombstone).
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
