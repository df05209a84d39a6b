"""Environment backed by a ZIP archive.

The archive uses the same layout as :class:`FilesystemEnvironment`. Every entry
is read and checked when the environment is constructed, so a malformed or
oversized archive is rejected before any resource is served.
"""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional, TypeVar

from mdworkflow.config.models import ProjectConfig
from mdworkflow.errors import ResourceError, ResourceNotFoundError, ValidationError
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


class ArchiveEnvironment(ResourceEnvironment):
    """Resolve resources from the entries of a ZIP archive.

    Args:
        source: Path to the archive or its raw bytes.
        security: Bounds applied to the archive entries.
        name: Label used in error messages; defaults to the file name.

    Raises:
        SecurityError: If the entries break the batch or per-file bounds.
        ValidationError: If the archive cannot be read or an entry fails
            content validation.
    """

    def __init__(
        self,
        source: Path | bytes,
        security: SecuritySettings | None = None,
        *,
        name: str | None = None,
    ) -> None:
        if isinstance(source, bytes):
            self._name = name or "<archive>"
        else:
            self._name = name or Path(source).name
        self._validator = SecurityValidator(security)
        self._files = self._extract(source)
        self._manifest: Manifest | None = None
        LOGGER.debug("Loaded %d entries from %s", len(self._files), self._name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def validator(self) -> SecurityValidator:
        return self._validator

    def paths(self) -> List[str]:
        """Return the entry paths served by this environment."""
        return sorted(self._files)

    def get_config(self) -> Optional[ProjectConfig]:
        for relative in ("config.yml", "config.yaml"):
            if relative in self._files:
                return parse_project_config(self._text(relative), source=self._source(relative))
        return None

    def get_workflow(self, name: str) -> WorkflowDefinition:
        relative = f"workflows/{name}/workflow.yml"
        if relative not in self._files:
            raise ResourceNotFoundError("Workflow", name)
        return parse_workflow(self._text(relative), source=self._source(relative))

    def get_processor_definitions(self) -> List[ExternalProcessorDefinition]:
        return self._load_definitions("processors", parse_processor)

    def get_converter_definitions(self) -> List[ExternalConverterDefinition]:
        return self._load_definitions("converters", parse_converter)

    def get_template(self, workflow: str, template: str, variant: str | None = None) -> str:
        base = f"workflows/{workflow}/templates/{template}"
        candidates = [f"{base}/{variant}.md"] if variant else []
        candidates.append(f"{base}/default.md")
        for relative in candidates:
            if relative in self._files:
                return self._text(relative)
        identifier = f"{workflow}/{template}" + (f"/{variant}" if variant else "")
        raise ResourceNotFoundError("Template", identifier)

    def get_static(self, workflow: str, static: str) -> bytes:
        for relative in (
            f"workflows/{workflow}/templates/static/{static}",
            f"workflows/{workflow}/templates/{static}",
        ):
            if relative in self._files:
                return self._files[relative]
        raise ResourceNotFoundError("Static", f"{workflow}/{static}")

    def list_workflows(self) -> List[str]:
        workflows = set()
        for relative in self._files:
            parts = relative.split("/")
            if len(parts) == 3 and parts[0] == "workflows" and parts[2] == "workflow.yml":
                workflows.add(parts[1])
        return sorted(workflows)

    def get_manifest(self) -> Manifest:
        if self._manifest is not None:
            return self._manifest
        workflows = self.list_workflows()
        self._manifest = Manifest(
            workflows=workflows,
            processors=[definition.name for definition in self.get_processor_definitions()],
            converters=[definition.name for definition in self.get_converter_definitions()],
            templates={name: self._template_names(name) for name in workflows},
            statics={name: self._static_names(name) for name in workflows},
            has_config="config.yml" in self._files or "config.yaml" in self._files,
        )
        return self._manifest

    def _extract(self, source: Path | bytes) -> Dict[str, bytes]:
        stream = io.BytesIO(source) if isinstance(source, bytes) else Path(source)
        try:
            with zipfile.ZipFile(stream) as archive:
                entries = [
                    (entry, _normalize(entry.filename))
                    for entry in archive.infolist()
                    if not entry.is_dir()
                ]
                entries = [(entry, path) for entry, path in entries if not _hidden(path)]
                files = [FileInfo(path=path, size=entry.file_size) for entry, path in entries]
                self._validator.validate_batch(files)
                for info in files:
                    self._validator.validate_file(info)

                contents: Dict[str, bytes] = {}
                for (entry, path), info in zip(entries, files):
                    data = archive.read(entry)
                    # Declared sizes are untrusted; recheck what was actually read.
                    self._validator.validate_file_size(info.extension, len(data))
                    self._validator.validate_content(path, data)
                    contents[path] = data
        except (zipfile.BadZipFile, OSError) as exc:
            raise ValidationError(f"Cannot read archive {self._name}: {exc}") from exc
        return contents

    def _load_definitions(
        self, dirname: str, parser: Callable[..., DefinitionT]
    ) -> list[DefinitionT]:
        definitions: list[DefinitionT] = []
        for relative in sorted(self._files):
            path = PurePosixPath(relative)
            if path.parent.as_posix() != dirname or path.suffix not in _DEFINITION_SUFFIXES:
                continue
            try:
                definitions.append(parser(self._text(relative), source=self._source(relative)))
            except ResourceError as exc:
                LOGGER.warning("Skipping invalid definition %s: %s", self._source(relative), exc)
        return definitions

    def _template_names(self, workflow: str) -> list[str]:
        prefix = f"workflows/{workflow}/templates/"
        names = set()
        for relative in self._files:
            if not relative.startswith(prefix):
                continue
            parts = relative[len(prefix):].split("/")
            if len(parts) > 1 and parts[0] != "static":
                names.add(parts[0])
        return sorted(names)

    def _static_names(self, workflow: str) -> list[str]:
        prefix = f"workflows/{workflow}/templates/static/"
        return sorted(
            relative[len(prefix):]
            for relative in self._files
            if relative.startswith(prefix) and "/" not in relative[len(prefix):]
        )

    def _text(self, relative: str) -> str:
        try:
            return self._files[relative].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError(f"{self._source(relative)} is not valid UTF-8") from exc

    def _source(self, relative: str) -> str:
        return f"{self._name}:{relative}"


def _normalize(filename: str) -> str:
    return filename.replace("\\", "/")


def _hidden(path: str) -> bool:
    return any(
        (part.startswith(".") and part not in {".", ".."}) or part == "__MACOSX"
        for part in path.split("/")
    )


__all__ = ["ArchiveEnvironment"]
