"""Collection lifecycle engine: stages, metadata and actions."""

from .actions import (
    ActionKind,
    AddParameters,
    FormatParameters,
    parse_parameters,
    resolve_action_kind,
)
from .errors import (
    ActionError,
    CollectionExistsError,
    InvalidStatusError,
    InvalidTransitionError,
    MetadataError,
    NotFoundError,
    WorkflowError,
)
from .lifecycle import FORMATTED_DIRNAME, WorkflowEngine
from .metadata import METADATA_FILENAME, MetadataStore, MissingMetadataError
from .models import RESERVED_FIELDS, BatchResult, Collection, CollectionMetadata, StatusEntry
from .rendering import (
    DateValue,
    TemplateRenderError,
    generate_collection_id,
    render_string,
    sanitize_for_filename,
    sanitize_identifier,
)

__all__ = [
    "ActionError",
    "ActionKind",
    "AddParameters",
    "BatchResult",
    "Collection",
    "CollectionExistsError",
    "CollectionMetadata",
    "DateValue",
    "FORMATTED_DIRNAME",
    "FormatParameters",
    "InvalidStatusError",
    "InvalidTransitionError",
    "METADATA_FILENAME",
    "MetadataError",
    "MetadataStore",
    "MissingMetadataError",
    "NotFoundError",
    "RESERVED_FIELDS",
    "StatusEntry",
    "TemplateRenderError",
    "WorkflowEngine",
    "WorkflowError",
    "generate_collection_id",
    "parse_parameters",
    "render_string",
    "resolve_action_kind",
    "sanitize_for_filename",
    "sanitize_identifier",
]
