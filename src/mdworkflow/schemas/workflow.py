"""Workflow definition models."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class WorkflowStage(BaseModel):
    """A named lifecycle state.

    Attributes:
        name: Stage identifier; doubles as the stage directory name.
        description: Human-readable summary.
        color: Display color hint.
        next: Stages reachable from this one; ``None`` when undeclared.
        terminal: Whether the stage accepts no outgoing transitions.
    """

    name: str
    description: str = ""
    color: str = "white"
    next: Optional[List[str]] = None
    terminal: bool = False

    def allows(self, target: str) -> bool:
        """Return whether a transition to ``target`` is declared."""
        if self.terminal or self.next is None:
            return False
        return target in self.next


class WorkflowTemplate(BaseModel):
    """A renderable template and the filename pattern of its output."""

    name: str
    file: str
    output: str
    description: str = ""


class WorkflowStatic(BaseModel):
    """A static resource shipped with the workflow (for example reference documents)."""

    name: str
    file: str
    description: str = ""

    @property
    def filename(self) -> str:
        """Return the file name used to look the static up in an environment."""
        return PurePosixPath(self.file).name


class WorkflowActionParameter(BaseModel):
    """Declared parameter for a workflow action."""

    name: str
    type: Literal["string", "number", "boolean", "enum", "array", "date"] = "string"
    required: bool = False
    default: Optional[Union[str, int, float, bool, List[str]]] = None
    options: Optional[List[str]] = None
    description: str = ""


class ActionProcessor(BaseModel):
    """Reference to a processor an action runs before conversion."""

    name: str
    enabled: bool = True


class WorkflowAction(BaseModel):
    """A named operation that can run against a collection."""

    name: str
    description: str = ""
    usage: Optional[str] = None
    templates: Optional[List[str]] = None
    converter: Optional[str] = None
    formats: Optional[List[str]] = None
    processors: Optional[List[ActionProcessor]] = None
    parameters: Optional[List[WorkflowActionParameter]] = None
    metadata_file: Optional[str] = None

    def required_parameters(self) -> list[WorkflowActionParameter]:
        """Return parameters flagged as required, in declaration order."""
        return [param for param in self.parameters or [] if param.required]


class WorkflowMetadataSpec(BaseModel):
    """Field requirements for collection metadata."""

    required_fields: List[str] = Field(default_factory=list)
    optional_fields: List[str] = Field(default_factory=list)
    auto_generated: List[str] = Field(default_factory=list)


class WorkflowCollectionId(BaseModel):
    """Collection identifier pattern and its maximum length."""

    pattern: str
    max_length: int = 50


class WorkflowDefinition(BaseModel):
    """Declarative description of one document workflow."""

    name: str
    description: str = ""
    version: str = "1.0.0"
    stages: List[WorkflowStage]
    templates: List[WorkflowTemplate] = Field(default_factory=list)
    statics: List[WorkflowStatic] = Field(default_factory=list)
    actions: List[WorkflowAction] = Field(default_factory=list)
    metadata: WorkflowMetadataSpec = Field(default_factory=WorkflowMetadataSpec)
    collection_id: WorkflowCollectionId

    @model_validator(mode="after")
    def _check_stage_graph(self) -> "WorkflowDefinition":
        if not self.stages:
            raise ValueError("workflow must declare at least one stage")
        names = [stage.name for stage in self.stages]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate stage names: {', '.join(duplicates)}")
        declared = set(names)
        for stage in self.stages:
            unknown = [target for target in stage.next or [] if target not in declared]
            if unknown:
                raise ValueError(
                    f"stage '{stage.name}' lists undeclared next stages: {', '.join(unknown)}"
                )
            if stage.terminal and stage.next:
                raise ValueError(f"terminal stage '{stage.name}' must not declare next stages")
        return self

    @property
    def initial_stage(self) -> WorkflowStage:
        return self.stages[0]

    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    def get_stage(self, name: str) -> WorkflowStage | None:
        return next((stage for stage in self.stages if stage.name == name), None)

    def get_template(self, name: str) -> WorkflowTemplate | None:
        return next((template for template in self.templates if template.name == name), None)

    def get_static(self, name: str) -> WorkflowStatic | None:
        return next((static for static in self.statics if static.name == name), None)

    def get_action(self, name: str) -> WorkflowAction | None:
        return next((action for action in self.actions if action.name == name), None)


class WorkflowFile(BaseModel):
    """On-disk shape of ``workflow.yml``."""

    workflow: WorkflowDefinition


__all__ = [
    "WorkflowStage",
    "WorkflowTemplate",
    "WorkflowStatic",
    "WorkflowActionParameter",
    "ActionProcessor",
    "WorkflowAction",
    "WorkflowMetadataSpec",
    "WorkflowCollectionId",
    "WorkflowDefinition",
    "WorkflowFile",
]
