"""Two environments composed with local-wins, global-fills-gaps precedence."""

from __future__ import annotations

import logging
from typing import Callable, List, Literal, Optional, TypeVar

from mdworkflow.config.models import ProjectConfig
from mdworkflow.config.resolver import merge_project_configs
from mdworkflow.errors import ResourceError, ResourceNotFoundError
from mdworkflow.schemas import (
    ExternalConverterDefinition,
    ExternalProcessorDefinition,
    WorkflowDefinition,
)

from .base import Manifest, ResourceEnvironment

LOGGER = logging.getLogger(__name__)

ResourceKind = Literal["workflow", "template", "static", "processor", "converter", "config"]
ResourceSource = Literal["local", "global", "none"]

ValueT = TypeVar("ValueT")
DefinitionT = TypeVar("DefinitionT", ExternalProcessorDefinition, ExternalConverterDefinition)


def _union(first: list[str], second: list[str]) -> list[str]:
    merged = list(first)
    merged.extend(name for name in second if name not in merged)
    return merged


def merge_manifests(local: Manifest, global_: Manifest) -> Manifest:
    """Union two manifests; per-workflow template and static maps merge per key."""
    templates = {key: list(value) for key, value in global_.templates.items()}
    for key, value in local.templates.items():
        templates[key] = _union(value, templates.get(key, []))
    statics = {key: list(value) for key, value in global_.statics.items()}
    for key, value in local.statics.items():
        statics[key] = _union(value, statics.get(key, []))
    return Manifest(
        workflows=_union(local.workflows, global_.workflows),
        processors=_union(local.processors, global_.processors),
        converters=_union(local.converters, global_.converters),
        templates=templates,
        statics=statics,
        has_config=local.has_config or global_.has_config,
    )


class MergedEnvironment(ResourceEnvironment):
    """Overlay a ``local`` environment on a ``global`` one.

    Single-resource lookups try local first and fall back to global only when
    local raises ``ResourceNotFoundError``. Configurations are deep-merged with
    local values winning at every leaf. Processor and converter definitions are
    merged by name with local entries replacing global ones.
    """

    def __init__(self, local: ResourceEnvironment, global_: ResourceEnvironment) -> None:
        self._local = local
        self._global = global_

    @property
    def local(self) -> ResourceEnvironment:
        return self._local

    @property
    def global_(self) -> ResourceEnvironment:
        return self._global

    def get_config(self) -> Optional[ProjectConfig]:
        local = self._local.get_config()
        global_ = self._global.get_config()
        if local is None or global_ is None:
            return local or global_
        return merge_project_configs(local, global_)

    def get_workflow(self, name: str) -> WorkflowDefinition:
        return self._first(lambda env: env.get_workflow(name))

    def get_template(self, workflow: str, template: str, variant: str | None = None) -> str:
        return self._first(lambda env: env.get_template(workflow, template, variant))

    def get_static(self, workflow: str, static: str) -> bytes:
        return self._first(lambda env: env.get_static(workflow, static))

    def get_processor_definitions(self) -> List[ExternalProcessorDefinition]:
        return self._merge_definitions("processor", lambda env: env.get_processor_definitions())

    def get_converter_definitions(self) -> List[ExternalConverterDefinition]:
        return self._merge_definitions("converter", lambda env: env.get_converter_definitions())

    def list_workflows(self) -> List[str]:
        return _union(self._local.list_workflows(), self._global.list_workflows())

    def has_workflow(self, name: str) -> bool:
        return self._local.has_workflow(name) or self._global.has_workflow(name)

    def has_template(self, workflow: str, template: str, variant: str | None = None) -> bool:
        return self._local.has_template(workflow, template, variant) or self._global.has_template(
            workflow, template, variant
        )

    def has_static(self, workflow: str, static: str) -> bool:
        return self._local.has_static(workflow, static) or self._global.has_static(workflow, static)

    def get_manifest(self) -> Manifest:
        return merge_manifests(self._local.get_manifest(), self._global.get_manifest())

    def get_resource_source(self, kind: ResourceKind, identifier: str = "") -> ResourceSource:
        """Report which side provides a resource.

        Args:
            kind: Resource kind to look up.
            identifier: ``name`` for workflows, processors and converters;
                ``"<workflow>/<template>"`` or ``"<workflow>/<static>"`` for
                templates and statics; ignored for ``config``.

        Returns:
            ResourceSource: ``"local"`` when the local side has it (even if the
                global side does too), ``"global"`` when only the global side has
                it, otherwise ``"none"``. Errors count as absence.
        """
        for label, env in (("local", self._local), ("global", self._global)):
            try:
                if _provides(env, kind, identifier):
                    return label  # type: ignore[return-value]
            except Exception as exc:  # errors count as absence
                LOGGER.debug("Ignoring %s error while locating %s %s: %s", label, kind, identifier, exc)
        return "none"

    def _first(self, getter: Callable[[ResourceEnvironment], ValueT]) -> ValueT:
        try:
            return getter(self._local)
        except ResourceNotFoundError:
            return getter(self._global)

    def _merge_definitions(
        self, kind: str, getter: Callable[[ResourceEnvironment], List[DefinitionT]]
    ) -> List[DefinitionT]:
        merged: dict[str, DefinitionT] = {}
        for label, env in (("global", self._global), ("local", self._local)):
            try:
                definitions = getter(env)
            except (ResourceError, OSError) as exc:
                LOGGER.warning("Ignoring %s %s definitions: %s", label, kind, exc)
                definitions = []
            for definition in definitions:
                merged[definition.name] = definition
        return list(merged.values())


def _provides(env: ResourceEnvironment, kind: ResourceKind, identifier: str) -> bool:
    if kind == "config":
        return env.get_config() is not None
    if kind == "workflow":
        return env.has_workflow(identifier)
    if kind == "processor":
        return any(item.name == identifier for item in env.get_processor_definitions())
    if kind == "converter":
        return any(item.name == identifier for item in env.get_converter_definitions())
    workflow, _, name = identifier.partition("/")
    if kind == "template":
        return env.has_template(workflow, name)
    if kind == "static":
        return env.has_static(workflow, name)
    raise ValueError(f"Unknown resource kind: {kind}")


__all__ = ["MergedEnvironment", "ResourceKind", "ResourceSource", "merge_manifests"]
