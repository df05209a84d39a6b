"""Markdown processors backed by external command-line tools."""

from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from mdworkflow.schemas import ExternalProcessorDefinition

from .converters import DETECTION_TIMEOUT
from .runner import CommandRunner, build_command, run_command

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessingRequest:
    """Working directories for one processing run."""

    collection_path: Path
    intermediate_dir: Path
    assets_dir: Path


@dataclass(slots=True)
class ProcessingResult:
    """Outcome of a processing run.

    Attributes:
        success: Whether the tool ran successfully.
        content: Processed markdown; the original content when skipped or failed.
        artifacts: Files produced by the tool.
        error: Failure description.
        skipped: True when the detection pattern did not match the content.
    """

    success: bool
    content: str
    artifacts: list[Path] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False


class ExternalProcessor:
    """Run a processor definition over markdown content."""

    def __init__(
        self, definition: ExternalProcessorDefinition, runner: CommandRunner = run_command
    ) -> None:
        self._definition = definition
        self._runner = runner
        self._available: bool | None = None

    @property
    def name(self) -> str:
        return self._definition.name

    def is_available(self) -> bool:
        if self._available is None:
            result = self._runner(
                shlex.split(self._definition.detection.command), timeout=DETECTION_TIMEOUT
            )
            if not result.ok:
                LOGGER.warning("External tool detection failed for %s: %s", self.name, result.describe())
            self._available = result.ok
        return self._available

    def can_process(self, content: str) -> bool:
        """Return whether the detection pattern (if any) occurs in ``content``."""
        pattern = self._definition.detection.pattern
        if not pattern:
            return True
        try:
            return re.search(pattern, content, re.MULTILINE) is not None
        except re.error:
            LOGGER.warning("Invalid detection pattern for %s: %s", self.name, pattern)
            return False

    def process(self, content: str, request: ProcessingRequest) -> ProcessingResult:
        if not self.can_process(content):
            return ProcessingResult(success=True, content=content, skipped=True)
        if not self.is_available():
            return ProcessingResult(
                success=False,
                content=content,
                error=f"External tool not available for processor: {self.name}",
            )
        request.intermediate_dir.mkdir(parents=True, exist_ok=True)
        if self._definition.execution.mode == "in-place":
            return self._process_in_place(content, request)
        return self._process_with_output(content, request)

    def _process_in_place(self, content: str, request: ProcessingRequest) -> ProcessingResult:
        execution = self._definition.execution
        temp_file = _temp_markdown(request.intermediate_dir, f"{self.name}-")
        backup_file = temp_file.with_name(temp_file.name + ".bak")
        keep_backup = False
        try:
            temp_file.write_text(content, encoding="utf-8")
            if execution.backup:
                shutil.copyfile(temp_file, backup_file)
            variables = _variables(request, temp_file)
            result = self._runner(
                build_command(execution.command_template, variables),
                timeout=execution.timeout,
                cwd=request.collection_path,
            )
            if not result.ok:
                keep_backup = execution.backup
                if keep_backup:
                    LOGGER.warning("Input to failed %s run kept at %s", self.name, backup_file)
                return ProcessingResult(
                    success=False,
                    content=content,
                    error=f"External processing failed: {result.describe()}",
                )
            return ProcessingResult(success=True, content=temp_file.read_text(encoding="utf-8"))
        finally:
            temp_file.unlink(missing_ok=True)
            if not keep_backup:
                backup_file.unlink(missing_ok=True)

    def _process_with_output(self, content: str, request: ProcessingRequest) -> ProcessingResult:
        execution = self._definition.execution
        request.assets_dir.mkdir(parents=True, exist_ok=True)
        input_file = _temp_markdown(request.intermediate_dir, f"{self.name}-input-")
        output_file = request.assets_dir / input_file.name.replace("-input-", "-output-", 1)
        try:
            input_file.write_text(content, encoding="utf-8")
            variables = _variables(request, input_file)
            variables["output_file"] = str(output_file)
            result = self._runner(
                build_command(execution.command_template, variables),
                timeout=execution.timeout,
                cwd=request.collection_path,
            )
            if not result.ok:
                return ProcessingResult(
                    success=False,
                    content=content,
                    error=f"External processing failed: {result.describe()}",
                )
            if output_file.exists():
                return ProcessingResult(
                    success=True,
                    content=output_file.read_text(encoding="utf-8"),
                    artifacts=[output_file],
                )
            return ProcessingResult(success=True, content=content)
        finally:
            input_file.unlink(missing_ok=True)


def _temp_markdown(directory: Path, prefix: str) -> Path:
    handle, name = tempfile.mkstemp(prefix=prefix, suffix=".md", dir=directory)
    os.close(handle)
    return Path(name)


def _variables(request: ProcessingRequest, input_file: Path) -> dict[str, str]:
    return {
        "file": str(input_file),
        "input_file": str(input_file),
        "temp_dir": str(request.intermediate_dir),
        "assets_dir": str(request.assets_dir),
        "collection_path": str(request.collection_path),
    }


__all__ = ["ExternalProcessor", "ProcessingRequest", "ProcessingResult"]
