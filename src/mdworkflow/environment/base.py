"""Uniform contract for sources of configuration, workflows and templates."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from mdworkflow.config.models import ProjectConfig
from mdworkflow.errors import ResourceNotFoundError
from mdworkflow.schemas import (
    ExternalConverterDefinition,
    ExternalProcessorDefinition,
    WorkflowDefinition,
)


class Manifest(BaseModel):
    """Read-only summary of one environment's contents.

    Attributes:
        workflows: Available workflow names.
        processors: Available processor definition names.
        converters: Available converter definition names.
        templates: Template names keyed by workflow name.
        statics: Static file names keyed by workflow name.
        has_config: Whether the environment holds a project configuration.
    """

    workflows: List[str] = Field(default_factory=list)
    processors: List[str] = Field(default_factory=list)
    converters: List[str] = Field(default_factory=list)
    templates: Dict[str, List[str]] = Field(default_factory=dict)
    statics: Dict[str, List[str]] = Field(default_factory=dict)
    has_config: bool = False


class ResourceEnvironment(ABC):
    """Abstract source of mdworkflow resources.

    Implementations raise ``ResourceNotFoundError`` for absent single resources
    and ``ValidationError`` for resources that exist but fail their schema. The
    ``has_*`` predicates are derived from the getters and only translate
    ``ResourceNotFoundError`` into ``False``.
    """

    @abstractmethod
    def get_config(self) -> Optional[ProjectConfig]:
        """Return the project configuration, or ``None`` when absent."""

    @abstractmethod
    def get_workflow(self, name: str) -> WorkflowDefinition:
        """Return the workflow definition named ``name``."""

    @abstractmethod
    def get_processor_definitions(self) -> List[ExternalProcessorDefinition]:
        """Return every valid processor definition; invalid ones are skipped."""

    @abstractmethod
    def get_converter_definitions(self) -> List[ExternalConverterDefinition]:
        """Return every valid converter definition; invalid ones are skipped."""

    @abstractmethod
    def get_template(self, workflow: str, template: str, variant: str | None = None) -> str:
        """Return template text, preferring ``variant`` and falling back to the default."""

    @abstractmethod
    def get_static(self, workflow: str, static: str) -> bytes:
        """Return the raw bytes of a static file."""

    @abstractmethod
    def list_workflows(self) -> List[str]:
        """Return the names of available workflows."""

    @abstractmethod
    def get_manifest(self) -> Manifest:
        """Return a summary of the environment's contents."""

    def has_workflow(self, name: str) -> bool:
        try:
            self.get_workflow(name)
        except ResourceNotFoundError:
            return False
        return True

    def has_template(self, workflow: str, template: str, variant: str | None = None) -> bool:
        try:
            self.get_template(workflow, template, variant)
        except ResourceNotFoundError:
            return False
        return True

    def has_static(self, workflow: str, static: str) -> bool:
        try:
            self.get_static(workflow, static)
        except ResourceNotFoundError:
            return False
        return True


__all__ = ["Manifest", "ResourceEnvironment"]
