"""Definitions of external processors and converters.

These definitions are resolved from environments but never interpreted by the
resolution layer; :mod:`mdworkflow.conversion` turns them into runnable tools.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ToolDetection(BaseModel):
    """How to prove an external tool is installed.

    Attributes:
        command: Command whose successful exit proves availability.
        pattern: Optional regex a processor's input must match to be processed.
    """

    command: str
    pattern: Optional[str] = None


class ToolExecution(BaseModel):
    """How to run an external tool.

    Attributes:
        command_template: Command with ``{placeholder}`` substitutions.
        mode: ``in-place`` rewrites the input file; ``output`` writes a new file.
        timeout: Seconds before the subprocess is killed.
        backup: Keep a ``.bak`` copy of the input before an in-place run.
    """

    command_template: str
    mode: Literal["in-place", "output"] = "output"
    timeout: int = 30
    backup: bool = False


class ConverterExecution(ToolExecution):
    """Execution rule for converters; adds the reference-document flag."""

    timeout: int = 60
    reference_doc_flag: Optional[str] = None


class ExternalProcessorDefinition(BaseModel):
    """A markdown-to-markdown transformation backed by a command-line tool."""

    name: str
    description: str = ""
    version: str = "1.0.0"
    detection: ToolDetection
    execution: ToolExecution


class ExternalConverterDefinition(BaseModel):
    """A document converter backed by a command-line tool."""

    name: str
    description: str = ""
    version: str = "1.0.0"
    supported_formats: List[str] = Field(default_factory=list)
    detection: ToolDetection
    execution: ConverterExecution


class ExternalProcessorFile(BaseModel):
    """On-disk shape of ``processors/*.yml``."""

    processor: ExternalProcessorDefinition


class ExternalConverterFile(BaseModel):
    """On-disk shape of ``converters/*.yml``."""

    converter: ExternalConverterDefinition


__all__ = [
    "ToolDetection",
    "ToolExecution",
    "ConverterExecution",
    "ExternalProcessorDefinition",
    "ExternalConverterDefinition",
    "ExternalProcessorFile",
    "ExternalConverterFile",
]
