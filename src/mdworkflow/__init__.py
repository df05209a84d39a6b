"""Markdown collections driven through workflow-defined lifecycle stages.

The usual entry point is :class:`WorkflowEngine`, built either from a project
directory (:meth:`WorkflowEngine.from_project`) or from an explicit
:class:`ResourceEnvironment`.
"""

from importlib import metadata as _metadata

from mdworkflow.engine import Collection, CollectionMetadata, WorkflowEngine, WorkflowError
from mdworkflow.environment import (
    ArchiveEnvironment,
    FilesystemEnvironment,
    InMemoryEnvironment,
    MergedEnvironment,
    ResourceEnvironment,
)
from mdworkflow.errors import ResourceError, ResourceNotFoundError, SecurityError, ValidationError

__all__ = [
    "ArchiveEnvironment",
    "Collection",
    "CollectionMetadata",
    "FilesystemEnvironment",
    "InMemoryEnvironment",
    "MergedEnvironment",
    "ResourceEnvironment",
    "ResourceError",
    "ResourceNotFoundError",
    "SecurityError",
    "ValidationError",
    "WorkflowEngine",
    "WorkflowError",
    "__version__",
]


def __getattr__(name: str):
    if name == "__version__":
        return _metadata.version("mdworkflow")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
