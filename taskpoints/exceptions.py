"""
Error types raised by the task/habit engine.

Every error carries a ``user_message``: a short string the presentation layer
can show as-is. The technical detail stays in ``str(exc)`` for the logs.
"""
from __future__ import annotations


class TaskPointsError(Exception):
    """Base exception for the engine"""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class NotAuthenticated(TaskPointsError):
    """Raised when an operation needs a signed-in user and there is none"""

    user_message = "Please sign in again."

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} requires a signed-in user")


class NotFound(TaskPointsError):
    """Raised when a task, sub-task or habit does not exist for the user"""

    def __init__(self, kind: str, item_id: int) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} with ID {item_id} not found", user_message=f"That {kind} no longer exists.")


class InsufficientPoints(TaskPointsError):
    """Raised when a spend would take the balance below zero"""

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Spend of {required} points refused: only {available} available",
            user_message=f"Insufficient points (need {required}, have {available}).",
        )


class PersistenceFailure(TaskPointsError):
    """Raised when the underlying store rejects a read or write"""

    user_message = "Could not save your changes. Please retry."

    def __init__(self, operation: str, details: str) -> None:
        self.operation = operation
        self.details = details
        super().__init__(f"Store {operation} failed: {details}")


class PartialUpdateInconsistency(TaskPointsError):
    """Raised when the item was saved but the matching ledger entry was not

    The two are left disagreeing; nothing attempts to reconcile them.
    """

    user_message = "The change was only partly saved. Please check your points and retry."

    def __init__(self, item_ref: str, details: str) -> None:
        self.item_ref = item_ref
        self.details = details
        super().__init__(f"{item_ref} updated but ledger write failed: {details}")


class ValidationError(TaskPointsError):
    """Raised when input data fails validation"""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"Validation error for {field}: {message}", user_message=f"Invalid {field}: {message}.")
