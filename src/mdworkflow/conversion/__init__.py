"""Wrappers that turn external tool definitions into runnable converters and processors."""

from .converters import ConversionRequest, ConversionResult, ExternalConverter
from .processors import ExternalProcessor, ProcessingRequest, ProcessingResult
from .runner import CommandResult, CommandRunner, build_command, run_command

__all__ = [
    "CommandResult",
    "CommandRunner",
    "ConversionRequest",
    "ConversionResult",
    "ExternalConverter",
    "ExternalProcessor",
    "ProcessingRequest",
    "ProcessingResult",
    "build_command",
    "run_command",
]
