"""Typed schema contracts: parse text into models or raise ``ValidationError``."""

from __future__ import annotations

from typing import Any, Mapping, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from mdworkflow.config.resolver import load_yaml_mapping, parse_project_config
from mdworkflow.errors import ValidationError

from .external import (
    ConverterExecution,
    ExternalConverterDefinition,
    ExternalConverterFile,
    ExternalProcessorDefinition,
    ExternalProcessorFile,
    ToolDetection,
    ToolExecution,
)
from .workflow import (
    ActionProcessor,
    WorkflowAction,
    WorkflowActionParameter,
    WorkflowCollectionId,
    WorkflowDefinition,
    WorkflowFile,
    WorkflowMetadataSpec,
    WorkflowStage,
    WorkflowStatic,
    WorkflowTemplate,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _validate(model: type[ModelT], data: str | Mapping[str, Any], source: str) -> ModelT:
    mapping = load_yaml_mapping(data, source=source) if isinstance(data, str) else dict(data)
    try:
        return model.model_validate(mapping)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {model.__name__} in {source}: {exc}") from exc


def parse_workflow(data: str | Mapping[str, Any], *, source: str = "workflow.yml") -> WorkflowDefinition:
    """Parse a ``workflow.yml`` document into a ``WorkflowDefinition``."""
    return _validate(WorkflowFile, data, source).workflow


def parse_processor(
    data: str | Mapping[str, Any], *, source: str = "processor definition"
) -> ExternalProcessorDefinition:
    """Parse a ``processors/*.yml`` document."""
    return _validate(ExternalProcessorFile, data, source).processor


def parse_converter(
    data: str | Mapping[str, Any], *, source: str = "converter definition"
) -> ExternalConverterDefinition:
    """Parse a ``converters/*.yml`` document."""
    return _validate(ExternalConverterFile, data, source).converter


__all__ = [
    "ActionProcessor",
    "ConverterExecution",
    "ExternalConverterDefinition",
    "ExternalConverterFile",
    "ExternalProcessorDefinition",
    "ExternalProcessorFile",
    "ToolDetection",
    "ToolExecution",
    "WorkflowAction",
    "WorkflowActionParameter",
    "WorkflowCollectionId",
    "WorkflowDefinition",
    "WorkflowFile",
    "WorkflowMetadataSpec",
    "WorkflowStage",
    "WorkflowStatic",
    "WorkflowTemplate",
    "parse_converter",
    "parse_processor",
    "parse_project_config",
    "parse_workflow",
]
