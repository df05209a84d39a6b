"""Resource environments: where workflows, templates and definitions come from."""

from mdworkflow.errors import ResourceError, ResourceNotFoundError, SecurityError, ValidationError

from .archive import ArchiveEnvironment
from .base import Manifest, ResourceEnvironment
from .context import WorkflowContext
from .factory import (
    EnvironmentReport,
    create_cli_environment,
    create_from_discovery,
    create_workflow_context,
    validate_environment,
)
from .filesystem import AuditIssue, FilesystemEnvironment
from .memory import InMemoryEnvironment, MemoryData
from .merged import MergedEnvironment, merge_manifests
from .security import (
    DEFAULT_SECURITY_SETTINGS,
    FileInfo,
    SecuritySettings,
    SecurityValidator,
    sanitize_filename,
)

__all__ = [
    "ArchiveEnvironment",
    "AuditIssue",
    "DEFAULT_SECURITY_SETTINGS",
    "EnvironmentReport",
    "FileInfo",
    "FilesystemEnvironment",
    "InMemoryEnvironment",
    "Manifest",
    "MemoryData",
    "MergedEnvironment",
    "ResourceEnvironment",
    "ResourceError",
    "ResourceNotFoundError",
    "SecurityError",
    "SecuritySettings",
    "SecurityValidator",
    "ValidationError",
    "WorkflowContext",
    "create_cli_environment",
    "create_from_discovery",
    "create_workflow_context",
    "merge_manifests",
    "sanitize_filename",
    "validate_environment",
]
