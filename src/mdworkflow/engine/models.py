"""Collection records persisted by the lifecycle engine."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

RESERVED_FIELDS = frozenset(
    {"collection_id", "workflow", "status", "date_created", "date_modified", "status_history"}
)


class StatusEntry(BaseModel):
    """One entry of a collection's status history."""

    status: str
    date: datetime


class CollectionMetadata(BaseModel):
    """Contents of ``collection.yml``.

    Workflow-specific fields (``company``, ``role``, ``title``...) are kept as
    extra attributes and round-trip unchanged.

    Attributes:
        collection_id: Stable identifier derived once at creation.
        workflow: Name of the owning workflow.
        status: Current stage name.
        date_created: Creation instant.
        date_modified: Instant of the latest change.
        status_history: Append-only list of transitions, creation first.
    """

    model_config = ConfigDict(extra="allow")

    collection_id: str
    workflow: str
    status: str
    date_created: datetime
    date_modified: datetime
    status_history: List[StatusEntry] = Field(default_factory=list)

    def custom_fields(self) -> Dict[str, Any]:
        """Return the workflow-specific fields."""
        return dict(self.model_extra or {})


class Collection(BaseModel):
    """A collection as found on disk.

    Attributes:
        metadata: Parsed ``collection.yml``.
        artifacts: Names of the regular, non-hidden files in the directory.
        path: Collection directory.
    """

    metadata: CollectionMetadata
    artifacts: List[str] = Field(default_factory=list)
    path: Path

    @property
    def collection_id(self) -> str:
        return self.metadata.collection_id

    @property
    def status(self) -> str:
        return self.metadata.status


class BatchResult(BaseModel):
    """Outcome of an operation applied to many collections."""

    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


__all__ = ["RESERVED_FIELDS", "StatusEntry", "CollectionMetadata", "Collection", "BatchResult"]
