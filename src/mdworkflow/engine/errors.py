"""Collection lifecycle errors."""

from __future__ import annotations

from typing import Iterable


class WorkflowError(Exception):
    """Base exception for collection lifecycle operations."""


class NotFoundError(WorkflowError):
    """Raised when a workflow or collection does not exist."""

    def __init__(self, kind: str, identifier: str, available: Iterable[str] | None = None) -> None:
        self.kind = kind
        self.identifier = identifier
        self.available = list(available) if available is not None else None
        message = f"{kind} not found: {identifier}"
        if self.available is not None:
            message += f". Available: {', '.join(self.available) or '(none)'}"
        super().__init__(message)


class InvalidStatusError(WorkflowError):
    """Raised when a status does not name a stage declared by the workflow."""


class InvalidTransitionError(WorkflowError):
    """Raised when the current stage does not allow moving to the requested stage."""


class ActionError(WorkflowError):
    """Raised when an action is unknown, misconfigured or fails while running."""


class MetadataError(WorkflowError):
    """Raised when collection metadata is missing, unreadable or cannot be written."""


class CollectionExistsError(WorkflowError):
    """Raised when creating a collection whose identifier is already in use."""


__all__ = [
    "WorkflowError",
    "NotFoundError",
    "InvalidStatusError",
    "InvalidTransitionError",
    "ActionError",
    "MetadataError",
    "CollectionExistsError",
]
