"""Per-workflow view over an environment with memoized resources."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from mdworkflow.config.models import ProjectConfig
from mdworkflow.errors import ResourceNotFoundError
from mdworkflow.patterns import compile_output_pattern
from mdworkflow.schemas import (
    ExternalConverterDefinition,
    ExternalProcessorDefinition,
    WorkflowAction,
    WorkflowDefinition,
    WorkflowStatic,
    WorkflowTemplate,
)

from .base import ResourceEnvironment

LOGGER = logging.getLogger(__name__)

_UNSET = object()


class WorkflowContext:
    """Lazily load one workflow and the external tools its actions need.

    The definition, the configuration, the required processor and converter
    definitions and the compiled artifact patterns are loaded on first use and
    reused until :meth:`reload` is called.
    """

    def __init__(self, environment: ResourceEnvironment, workflow_name: str) -> None:
        self._environment = environment
        self._workflow_name = workflow_name
        self.reload()

    @property
    def name(self) -> str:
        return self._workflow_name

    @property
    def environment(self) -> ResourceEnvironment:
        return self._environment

    @property
    def workflow(self) -> WorkflowDefinition:
        if self._workflow is None:
            self._workflow = self._environment.get_workflow(self._workflow_name)
        return self._workflow

    @property
    def config(self) -> Optional[ProjectConfig]:
        if self._config is _UNSET:
            self._config = self._environment.get_config()
        return self._config  # type: ignore[return-value]

    def required_processor_names(self) -> List[str]:
        names: list[str] = []
        for action in self.workflow.actions:
            for processor in action.processors or []:
                if processor.enabled and processor.name not in names:
                    names.append(processor.name)
        return names

    def required_converter_names(self) -> List[str]:
        names: list[str] = []
        for action in self.workflow.actions:
            if action.converter and action.converter not in names:
                names.append(action.converter)
        return names

    @property
    def processors(self) -> Dict[str, ExternalProcessorDefinition]:
        """Processor definitions referenced by enabled action processors, keyed by name."""
        if self._processors is None:
            required = self.required_processor_names()
            available = {
                definition.name: definition
                for definition in self._environment.get_processor_definitions()
                if definition.name in required
            }
            for missing in (name for name in required if name not in available):
                LOGGER.warning("Workflow %s requires unknown processor %s", self._workflow_name, missing)
            self._processors = available
        return self._processors

    @property
    def converters(self) -> Dict[str, ExternalConverterDefinition]:
        """Converter definitions referenced by actions, keyed by name."""
        if self._converters is None:
            required = self.required_converter_names()
            available = {
                definition.name: definition
                for definition in self._environment.get_converter_definitions()
                if definition.name in required
            }
            for missing in (name for name in required if name not in available):
                LOGGER.warning("Workflow %s requires unknown converter %s", self._workflow_name, missing)
            self._converters = available
        return self._converters

    @property
    def artifact_patterns(self) -> Dict[str, re.Pattern[str]]:
        """Compiled output-filename patterns keyed by template name."""
        if self._patterns is None:
            patterns: dict[str, re.Pattern[str]] = {}
            for template in self.workflow.templates:
                try:
                    patterns[template.name] = compile_output_pattern(template.output)
                except re.error as exc:
                    LOGGER.warning(
                        "Cannot derive artifact pattern for template %s from %r: %s",
                        template.name,
                        template.output,
                        exc,
                    )
            self._patterns = patterns
        return self._patterns

    def get_action(self, name: str) -> WorkflowAction:
        action = self.workflow.get_action(name)
        if action is None:
            raise ResourceNotFoundError(
                "Action",
                f"{self._workflow_name}/{name}",
                available=[item.name for item in self.workflow.actions],
            )
        return action

    def get_template_definition(self, name: str) -> WorkflowTemplate:
        template = self.workflow.get_template(name)
        if template is None:
            raise ResourceNotFoundError(
                "Template",
                f"{self._workflow_name}/{name}",
                available=[item.name for item in self.workflow.templates],
            )
        return template

    def get_template(self, name: str, variant: str | None = None) -> str:
        return self._environment.get_template(self._workflow_name, name, variant)

    def has_template(self, name: str, variant: str | None = None) -> bool:
        return self._environment.has_template(self._workflow_name, name, variant)

    def get_static_definition(self, name: str) -> WorkflowStatic | None:
        return self.workflow.get_static(name)

    def get_static(self, filename: str) -> bytes:
        return self._environment.get_static(self._workflow_name, filename)

    def has_static(self, filename: str) -> bool:
        return self._environment.has_static(self._workflow_name, filename)

    def reload(self) -> None:
        """Forget every memoized resource."""
        self._workflow: WorkflowDefinition | None = None
        self._config: object = _UNSET
        self._processors: Dict[str, ExternalProcessorDefinition] | None = None
        self._converters: Dict[str, ExternalConverterDefinition] | None = None
        self._patterns: Dict[str, re.Pattern[str]] | None = None


__all__ = ["WorkflowContext"]
