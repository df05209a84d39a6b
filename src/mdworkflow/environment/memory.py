"""Environment backed by in-process mappings."""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from mdworkflow.config.models import ProjectConfig
from mdworkflow.errors import ResourceError, ResourceNotFoundError
from mdworkflow.schemas import (
    ExternalConverterDefinition,
    ExternalProcessorDefinition,
    WorkflowDefinition,
)

from .base import Manifest, ResourceEnvironment

LOGGER = logging.getLogger(__name__)


@dataclass
class MemoryData:
    """Raw storage of an ``InMemoryEnvironment``.

    Templates are keyed by ``"<workflow>/<template>[/<variant>]"`` and statics by
    ``"<workflow>/<static>"``.
    """

    config: Optional[ProjectConfig] = None
    workflows: Dict[str, WorkflowDefinition] = field(default_factory=dict)
    processors: Dict[str, ExternalProcessorDefinition] = field(default_factory=dict)
    converters: Dict[str, ExternalConverterDefinition] = field(default_factory=dict)
    templates: Dict[str, str] = field(default_factory=dict)
    statics: Dict[str, bytes] = field(default_factory=dict)


def template_key(workflow: str, template: str, variant: str | None = None) -> str:
    key = f"{workflow}/{template}"
    return f"{key}/{variant}" if variant else key


def static_key(workflow: str, static: str) -> str:
    return f"{workflow}/{static}"


class InMemoryEnvironment(ResourceEnvironment):
    """Resolve resources from dictionaries held in memory.

    Used for tests and for request-scoped resources. Mutations are visible to the
    next read; nothing is cached.
    """

    def __init__(self, data: MemoryData | None = None) -> None:
        self._data = data or MemoryData()

    def get_config(self) -> Optional[ProjectConfig]:
        return self._data.config

    def get_workflow(self, name: str) -> WorkflowDefinition:
        try:
            return self._data.workflows[name]
        except KeyError:
            raise ResourceNotFoundError("Workflow", name) from None

    def get_processor_definitions(self) -> List[ExternalProcessorDefinition]:
        return list(self._data.processors.values())

    def get_converter_definitions(self) -> List[ExternalConverterDefinition]:
        return list(self._data.converters.values())

    def get_template(self, workflow: str, template: str, variant: str | None = None) -> str:
        if variant:
            content = self._data.templates.get(template_key(workflow, template, variant))
            if content is not None:
                return content
        content = self._data.templates.get(template_key(workflow, template))
        if content is None:
            raise ResourceNotFoundError("Template", template_key(workflow, template, variant))
        return content

    def get_static(self, workflow: str, static: str) -> bytes:
        try:
            return self._data.statics[static_key(workflow, static)]
        except KeyError:
            raise ResourceNotFoundError("Static", static_key(workflow, static)) from None

    def list_workflows(self) -> List[str]:
        return sorted(self._data.workflows)

    def get_manifest(self) -> Manifest:
        templates: dict[str, list[str]] = {}
        for key in self._data.templates:
            workflow, template = key.split("/")[:2]
            names = templates.setdefault(workflow, [])
            if template not in names:
                names.append(template)
        statics: dict[str, list[str]] = {}
        for key in self._data.statics:
            workflow, static = key.split("/", 1)
            statics.setdefault(workflow, []).append(static)
        return Manifest(
            workflows=self.list_workflows(),
            processors=sorted(self._data.processors),
            converters=sorted(self._data.converters),
            templates={name: sorted(values) for name, values in templates.items()},
            statics={name: sorted(values) for name, values in statics.items()},
            has_config=self._data.config is not None,
        )

    def set_config(self, config: ProjectConfig | None) -> None:
        self._data.config = config

    def set_workflow(self, workflow: WorkflowDefinition, name: str | None = None) -> None:
        self._data.workflows[name or workflow.name] = workflow

    def set_processor(self, definition: ExternalProcessorDefinition) -> None:
        self._data.processors[definition.name] = definition

    def set_converter(self, definition: ExternalConverterDefinition) -> None:
        self._data.converters[definition.name] = definition

    def set_template(
        self, workflow: str, template: str, content: str, variant: str | None = None
    ) -> None:
        self._data.templates[template_key(workflow, template, variant)] = content

    def set_static(self, workflow: str, static: str, content: bytes) -> None:
        self._data.statics[static_key(workflow, static)] = bytes(content)

    def remove_workflow(self, name: str) -> None:
        self._data.workflows.pop(name, None)

    def remove_processor(self, name: str) -> None:
        self._data.processors.pop(name, None)

    def remove_converter(self, name: str) -> None:
        self._data.converters.pop(name, None)

    def remove_template(self, workflow: str, template: str, variant: str | None = None) -> None:
        self._data.templates.pop(template_key(workflow, template, variant), None)

    def remove_static(self, workflow: str, static: str) -> None:
        self._data.statics.pop(static_key(workflow, static), None)

    def clear(self) -> None:
        self._data = MemoryData()

    def snapshot(self) -> MemoryData:
        """Return a deep copy of the stored data."""
        return deepcopy(self._data)

    def merge_from(self, other: ResourceEnvironment) -> None:
        """Copy resources from ``other`` that this environment does not have yet.

        The configuration is copied only when none is set. Existing entries are
        never overwritten, and a resource that fails to load is skipped with a
        warning.

        Args:
            other: Environment to import from.
        """
        if self._data.config is None:
            try:
                self._data.config = other.get_config()
            except ResourceError as exc:
                LOGGER.warning("Skipping configuration during merge: %s", exc)

        for name in other.list_workflows():
            if name in self._data.workflows:
                continue
            try:
                self._data.workflows[name] = other.get_workflow(name)
            except ResourceError as exc:
                LOGGER.warning("Skipping workflow %s during merge: %s", name, exc)

        for definition in other.get_processor_definitions():
            self._data.processors.setdefault(definition.name, definition)
        for definition in other.get_converter_definitions():
            self._data.converters.setdefault(definition.name, definition)

        manifest = other.get_manifest()
        for workflow in {*manifest.workflows, *manifest.templates, *manifest.statics}:
            for template in manifest.templates.get(workflow, []):
                key = template_key(workflow, template)
                if key in self._data.templates:
                    continue
                try:
                    self._data.templates[key] = other.get_template(workflow, template)
                except (ResourceError, OSError) as exc:
                    LOGGER.warning("Skipping template %s during merge: %s", key, exc)
            for static in manifest.statics.get(workflow, []):
                key = static_key(workflow, static)
                if key in self._data.statics:
                    continue
                try:
                    self._data.statics[key] = other.get_static(workflow, static)
                except (ResourceError, OSError) as exc:
                    LOGGER.warning("Skipping static %s during merge: %s", key, exc)


__all__ = ["InMemoryEnvironment", "MemoryData", "static_key", "template_key"]
