"""Document converters backed by external command-line tools."""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from mdworkflow.schemas import ExternalConverterDefinition

from .runner import CommandRunner, build_command, run_command

LOGGER = logging.getLogger(__name__)

DETECTION_TIMEOUT = 10


@dataclass(frozen=True, slots=True)
class ConversionRequest:
    """Inputs for one conversion.

    Attributes:
        input_file: Markdown file to convert.
        output_file: Destination file.
        format: Output format such as ``docx`` or ``html``.
        reference_doc: Optional style reference document.
        collection_path: Collection directory, exposed as ``{collection_path}``.
    """

    input_file: Path
    output_file: Path
    format: str
    reference_doc: Path | None = None
    collection_path: Path | None = None


@dataclass(slots=True)
class ConversionResult:
    """Outcome of a conversion."""

    success: bool
    output_file: Path
    artifacts: list[Path] = field(default_factory=list)
    error: str | None = None


class ExternalConverter:
    """Run a converter definition's command template as a subprocess."""

    def __init__(
        self, definition: ExternalConverterDefinition, runner: CommandRunner = run_command
    ) -> None:
        self._definition = definition
        self._runner = runner
        self._available: bool | None = None

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def definition(self) -> ExternalConverterDefinition:
        return self._definition

    def supports(self, fmt: str) -> bool:
        formats = self._definition.supported_formats
        return not formats or fmt in formats

    def is_available(self) -> bool:
        """Run the detection command once and remember the answer."""
        if self._available is None:
            result = self._runner(
                shlex.split(self._definition.detection.command), timeout=DETECTION_TIMEOUT
            )
            if not result.ok:
                LOGGER.warning("External tool detection failed for %s: %s", self.name, result.describe())
            self._available = result.ok
        return self._available

    def convert(self, request: ConversionRequest) -> ConversionResult:
        """Convert ``request.input_file`` and verify the output was written."""
        if not self.is_available():
            return ConversionResult(
                success=False,
                output_file=request.output_file,
                error=f"External tool not available for converter: {self.name}",
            )
        if not self.supports(request.format):
            return ConversionResult(
                success=False,
                output_file=request.output_file,
                error=(
                    f"Format '{request.format}' not supported by {self.name}. "
                    f"Supported formats: {', '.join(self._definition.supported_formats)}"
                ),
            )

        request.output_file.parent.mkdir(parents=True, exist_ok=True)
        execution = self._definition.execution
        variables = {
            "input_file": str(request.input_file),
            "input": str(request.input_file),
            "output_file": str(request.output_file),
            "output": str(request.output_file),
            "format": request.format,
            "reference_doc": str(request.reference_doc) if request.reference_doc else "",
            "collection_path": str(request.collection_path or request.input_file.parent),
        }
        command = [arg for arg in build_command(execution.command_template, variables) if arg]
        if request.reference_doc and execution.reference_doc_flag:
            command.extend(build_command(execution.reference_doc_flag, variables))

        LOGGER.info("Running converter %s for %s", self.name, request.input_file.name)
        result = self._runner(command, timeout=execution.timeout, cwd=request.collection_path)
        if not result.ok:
            return ConversionResult(
                success=False,
                output_file=request.output_file,
                error=f"External conversion failed: {result.describe()}",
            )
        if not request.output_file.exists():
            return ConversionResult(
                success=False,
                output_file=request.output_file,
                error=f"Output file was not created: {request.output_file}",
            )
        return ConversionResult(
            success=True, output_file=request.output_file, artifacts=[request.output_file]
        )


__all__ = ["ConversionRequest", "ConversionResult", "ExternalConverter"]
