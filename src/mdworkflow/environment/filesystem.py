"""Environment backed by a directory tree on disk.

Layout under the root::

    config.yml
    workflows/<name>/workflow.yml
    workflows/<name>/templates/<template>/{default.md,<variant>.md}
    workflows/<name>/templates/static/<static>
    processors/*.yml
    converters/*.yml
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from mdworkflow.config.models import ProjectConfig
from mdworkflow.errors import ResourceError, ResourceNotFoundError, SecurityError, ValidationError
from mdworkflow.schemas import (
    ExternalConverterDefinition,
    ExternalProcessorDefinition,
    WorkflowDefinition,
    parse_converter,
    parse_processor,
    parse_project_config,
    parse_workflow,
)

from .base import Manifest, ResourceEnvironment
from .security import FileInfo, SecuritySettings, SecurityValidator

LOGGER = logging.getLogger(__name__)

DefinitionT = TypeVar("DefinitionT")
_DEFINITION_SUFFIXES = (".yml", ".yaml")


@dataclass(frozen=True, slots=True)
class AuditIssue:
    """A problem found while auditing an environment tree.

    Attributes:
        path: Path relative to the environment root (``"."`` for batch issues).
        error: The security or validation error raised for the path.
    """

    path: str
    error: ResourceError


class FilesystemEnvironment(ResourceEnvironment):
    """Resolve resources from a fixed directory layout rooted at ``root``.

    Every file is checked by a ``SecurityValidator`` before it is read. The
    manifest is computed once per instance; construct a new environment to
    observe later changes on disk.
    """

    def __init__(self, root: Path, security: SecuritySettings | None = None) -> None:
        self._root = Path(root).expanduser().resolve()
        self._validator = SecurityValidator(security)
        self._manifest: Manifest | None = None

    @property
    def root(self) -> Path:
        return self._root

    @property
    def validator(self) -> SecurityValidator:
        return self._validator

    def get_config(self) -> Optional[ProjectConfig]:
        if not (self._root / "config.yml").is_file():
            return None
        return parse_project_config(self._read_text("config.yml"), source=str(self._root / "config.yml"))

    def get_workflow(self, name: str) -> WorkflowDefinition:
        relative = f"workflows/{name}/workflow.yml"
        if not (self._root / relative).is_file():
            raise ResourceNotFoundError("Workflow", name)
        return parse_workflow(self._read_text(relative), source=str(self._root / relative))

    def get_processor_definitions(self) -> List[ExternalProcessorDefinition]:
        return self._load_definitions("processors", parse_processor)

    def get_converter_definitions(self) -> List[ExternalConverterDefinition]:
        return self._load_definitions("converters", parse_converter)

    def get_template(self, workflow: str, template: str, variant: str | None = None) -> str:
        base = f"workflows/{workflow}/templates/{template}"
        candidates = [f"{base}/{variant}.md"] if variant else []
        candidates.append(f"{base}/default.md")
        for relative in candidates:
            if (self._root / relative).is_file():
                return self._read_text(relative)
        identifier = f"{workflow}/{template}" + (f"/{variant}" if variant else "")
        raise ResourceNotFoundError("Template", identifier)

    def get_static(self, workflow: str, static: str) -> bytes:
        for relative in (
            f"workflows/{workflow}/templates/static/{static}",
            f"workflows/{workflow}/templates/{static}",
        ):
            if (self._root / relative).is_file():
                return self._read_bytes(relative)
        raise ResourceNotFoundError("Static", f"{workflow}/{static}")

    def list_workflows(self) -> List[str]:
        workflows_dir = self._root / "workflows"
        if not workflows_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in workflows_dir.iterdir()
            if entry.is_dir() and (entry / "workflow.yml").is_file()
        )

    def get_manifest(self) -> Manifest:
        if self._manifest is not None:
            return self._manifest
        workflows = self.list_workflows()
        manifest = Manifest(
            workflows=workflows,
            processors=[definition.name for definition in self.get_processor_definitions()],
            converters=[definition.name for definition in self.get_converter_definitions()],
            templates={name: self._scan_templates(name) for name in workflows},
            statics={name: self._scan_statics(name) for name in workflows},
            has_config=(self._root / "config.yml").is_file(),
        )
        self._manifest = manifest
        return manifest

    def audit(self) -> list[AuditIssue]:
        """Check every file under the root against the security rules.

        Batch ceilings are evaluated first; when they fail no per-file checks
        run. Otherwise each file is checked individually and, when content
        validation is enabled, parsed against its schema.

        Returns:
            list[AuditIssue]: Problems found; empty when the tree is clean.
        """
        files = self._collect_files()
        try:
            self._validator.validate_batch(files)
        except SecurityError as exc:
            return [AuditIssue(path=".", error=exc)]

        issues: list[AuditIssue] = []
        for info in files:
            try:
                self._validator.validate_file(info)
                self._validator.validate_content(info.path, (self._root / info.path).read_bytes())
            except (SecurityError, ValidationError) as exc:
                issues.append(AuditIssue(path=info.path, error=exc))
        return issues

    def _collect_files(self) -> list[FileInfo]:
        if not self._root.is_dir():
            return []
        files: list[FileInfo] = []
        for path in sorted(self._root.rglob("*")):
            relative = path.relative_to(self._root)
            if any(part.startswith(".") for part in relative.parts) or not path.is_file():
                continue
            files.append(FileInfo(path=relative.as_posix(), size=path.stat().st_size))
        return files

    def _load_definitions(
        self, dirname: str, parser: Callable[..., DefinitionT]
    ) -> list[DefinitionT]:
        directory = self._root / dirname
        if not directory.is_dir():
            return []
        definitions: list[DefinitionT] = []
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.suffix not in _DEFINITION_SUFFIXES:
                continue
            relative = f"{dirname}/{path.name}"
            try:
                definitions.append(parser(self._read_text(relative), source=str(path)))
            except (ResourceError, OSError) as exc:
                LOGGER.warning("Skipping invalid definition %s: %s", path, exc)
        return definitions

    def _scan_templates(self, workflow: str) -> list[str]:
        templates_dir = self._root / "workflows" / workflow / "templates"
        if not templates_dir.is_dir():
            return []
        return sorted(
            entry.name for entry in templates_dir.iterdir() if entry.is_dir() and entry.name != "static"
        )

    def _scan_statics(self, workflow: str) -> list[str]:
        static_dir = self._root / "workflows" / workflow / "templates" / "static"
        if not static_dir.is_dir():
            return []
        return sorted(entry.name for entry in static_dir.iterdir() if entry.is_file())

    def _checked(self, relative: str) -> Path:
        self._validator.validate_path(relative)
        path = self._root / relative
        self._validator.validate_file(FileInfo(path=relative, size=path.stat().st_size))
        return path

    def _read_text(self, relative: str) -> str:
        return self._checked(relative).read_text(encoding="utf-8")

    def _read_bytes(self, relative: str) -> bytes:
        return self._checked(relative).read_bytes()


__all__ = ["AuditIssue", "FilesystemEnvironment"]
