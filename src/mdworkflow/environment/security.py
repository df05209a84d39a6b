"""Validation of untrusted resource files before their contents are used."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import PurePosixPath, PureWindowsPath
from typing import Any, Dict, Iterable, List

import yaml
from pydantic import BaseModel, ConfigDict, Field

from mdworkflow.errors import SecurityError, ValidationError
from mdworkflow.schemas import (
    parse_converter,
    parse_processor,
    parse_project_config,
    parse_workflow,
)


KB = 1024
MB = 1024 * KB

_FORBIDDEN_CHARACTERS = re.compile(r'[<>:"|?*\x00-\x1f]')
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")
_TEXT_EXTENSIONS = frozenset({".yml", ".yaml", ".json", ".md", ".markdown", ".css"})
MAX_FILENAME_LENGTH = 255


def _default_size_limits() -> Dict[str, int]:
    return {
        ".yml": 100 * KB,
        ".yaml": 100 * KB,
        ".json": 100 * KB,
        ".md": 100 * KB,
        ".markdown": 100 * KB,
        ".css": 100 * KB,
        ".png": 500 * KB,
        ".jpg": 500 * KB,
        ".jpeg": 500 * KB,
        ".svg": 500 * KB,
        ".docx": 1 * MB,
        ".pdf": 1 * MB,
    }


class SecuritySettings(BaseModel):
    """Immutable bounds applied to files loaded from untrusted trees.

    Attributes:
        file_size_limits: Maximum size in bytes keyed by lowercase extension.
        allowed_extensions: Extensions permitted at all.
        max_file_count: Ceiling on the number of files in one batch.
        max_total_size: Ceiling on the cumulative byte size of one batch.
        max_depth: Allowed directory depth; two extra levels are granted for the
            ``workflows/<name>`` prefix.
        enable_content_validation: Parse and schema-check recognised files.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    file_size_limits: Dict[str, int] = Field(default_factory=_default_size_limits)
    allowed_extensions: List[str] = Field(default_factory=lambda: list(_default_size_limits()))
    max_file_count: int = 500
    max_total_size: int = 5 * MB
    max_depth: int = 3
    enable_content_validation: bool = True

    def with_overrides(self, **overrides: Any) -> "SecuritySettings":
        """Return a copy with ``overrides`` applied; size limits are merged, not replaced."""
        limits = dict(self.file_size_limits)
        limits.update(overrides.pop("file_size_limits", None) or {})
        return self.model_copy(update={"file_size_limits": limits, **overrides})


DEFAULT_SECURITY_SETTINGS = SecuritySettings()


@dataclass(frozen=True, slots=True)
class FileInfo:
    """A candidate file described relative to its environment root.

    Attributes:
        path: POSIX-style path relative to the root.
        size: Size in bytes.
    """

    path: str
    size: int

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix.lower()


class SecurityValidator:
    """Apply the configured bounds to file names, paths, sizes and contents.

    The validator is stateless apart from its settings; every method is a pure
    function of its arguments.
    """

    def __init__(self, settings: SecuritySettings | None = None) -> None:
        self._settings = settings or DEFAULT_SECURITY_SETTINGS

    @property
    def settings(self) -> SecuritySettings:
        return self._settings

    def validate_file(self, info: FileInfo) -> None:
        """Run every per-file check against ``info``.

        Raises:
            SecurityError: On the first violated rule.
        """
        self.validate_filename(info.name)
        self.validate_path(info.path)
        self.validate_extension(info.extension)
        self.validate_file_size(info.extension, info.size)

    def validate_files(self, files: Iterable[FileInfo]) -> None:
        """Validate a batch; the count and total-size ceilings are checked first."""
        batch = list(files)
        self.validate_batch(batch)
        for info in batch:
            self.validate_file(info)

    def validate_batch(self, files: Iterable[FileInfo]) -> None:
        """Check the file-count and cumulative-size ceilings for a batch."""
        batch = list(files)
        if len(batch) > self._settings.max_file_count:
            raise SecurityError(
                "too_many_files",
                f"Too many files: {len(batch)} exceeds limit of {self._settings.max_file_count}",
            )
        total = sum(info.size for info in batch)
        if total > self._settings.max_total_size:
            raise SecurityError(
                "total_size_exceeded",
                f"Total file size {total} bytes exceeds limit of {self._settings.max_total_size} bytes",
            )

    def validate_filename(self, filename: str) -> None:
        if not filename or not filename.strip():
            raise SecurityError("empty_filename", "Empty filename not allowed")
        if ".." in filename or "./" in filename or ".\\" in filename:
            raise SecurityError("path_traversal", f"Path traversal attempt in filename: {filename}")
        if _is_absolute(filename):
            raise SecurityError("absolute_path", f"Absolute path not allowed: {filename}")
        if _FORBIDDEN_CHARACTERS.search(filename):
            raise SecurityError(
                "forbidden_characters", f"Filename contains forbidden characters: {filename!r}"
            )
        if len(filename) > MAX_FILENAME_LENGTH:
            raise SecurityError(
                "filename_too_long",
                f"Filename too long: {len(filename)} chars, max {MAX_FILENAME_LENGTH}",
            )

    def validate_path(self, path: str) -> None:
        """Validate a path relative to the environment root."""
        if not path or not path.strip():
            raise SecurityError("empty_filename", "Empty path not allowed")
        parts = re.split(r"[\\/]", path)
        if ".." in path or any(part == "." for part in parts):
            raise SecurityError("path_traversal", f"Path traversal attempt: {path}")
        if _is_absolute(path):
            raise SecurityError("absolute_path", f"Absolute path not allowed: {path}")
        depth = len([part for part in parts if part])
        limit = self._settings.max_depth + 2
        if depth > limit:
            raise SecurityError("path_too_deep", f"File path too deep: {depth} levels, max {limit}")

    def validate_extension(self, extension: str) -> None:
        allowed = self._settings.allowed_extensions
        if extension.lower() not in allowed:
            raise SecurityError(
                "extension_not_allowed",
                f"File extension not allowed: {extension or '(none)'}. Allowed: {', '.join(allowed)}",
            )

    def validate_file_size(self, extension: str, size: int) -> None:
        limit = self._settings.file_size_limits.get(extension.lower())
        if limit is not None and size > limit:
            raise SecurityError(
                "file_too_large",
                f"File size {size} bytes exceeds limit for {extension}: {limit} bytes",
            )

    def validate_content(self, path: str, content: bytes | str) -> Any:
        """Parse recognised text files and check them against their schema.

        Args:
            path: Path relative to the environment root.
            content: Raw file content.

        Returns:
            Any: The parsed document, or ``None`` for formats without a parser or
                when content validation is disabled.

        Raises:
            ValidationError: If the content cannot be parsed or fails its schema.
        """
        if not self._settings.enable_content_validation:
            return None
        extension = PurePosixPath(path).suffix.lower()
        if extension not in _TEXT_EXTENSIONS:
            return None
        try:
            text = content.decode("utf-8") if isinstance(content, bytes) else content
        except UnicodeDecodeError as exc:
            raise ValidationError(f"Content validation failed for {path}: not valid UTF-8") from exc

        if extension in {".yml", ".yaml"}:
            return self._validate_yaml(path, text)
        if extension == ".json":
            try:
                return json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValidationError(f"Content validation failed for {path}: {exc}") from exc
        if extension in {".md", ".markdown"} and not text:
            raise ValidationError(f"Content validation failed for {path}: empty markdown file")
        return None

    def _validate_yaml(self, path: str, text: str) -> Any:
        posix = path.replace("\\", "/")
        name = PurePosixPath(posix).name
        if name == "config.yml":
            return parse_project_config(text, source=path)
        if name == "workflow.yml":
            return parse_workflow(text, source=path)
        if posix.startswith("processors/") or "/processors/" in posix:
            return parse_processor(text, source=path)
        if posix.startswith("converters/") or "/converters/" in posix:
            return parse_converter(text, source=path)
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValidationError(f"Content validation failed for {path}: {exc}") from exc


def sanitize_filename(filename: str) -> str:
    """Replace forbidden characters with underscores."""
    return _FORBIDDEN_CHARACTERS.sub("_", filename).strip()


def _is_absolute(path: str) -> bool:
    return (
        PurePosixPath(path).is_absolute()
        or PureWindowsPath(path).is_absolute()
        or path.startswith("\\")
        or bool(_DRIVE_LETTER.match(path))
    )


__all__ = [
    "DEFAULT_SECURITY_SETTINGS",
    "FileInfo",
    "SecuritySettings",
    "SecurityValidator",
    "sanitize_filename",
]
