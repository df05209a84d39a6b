"""Persistence of ``collection.yml`` files."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError

from .errors import MetadataError
from .models import CollectionMetadata

METADATA_FILENAME = "collection.yml"


class MissingMetadataError(MetadataError):
    """Raised when a collection directory has no metadata file."""


class MetadataStore:
    """Read and write collection metadata."""

    def __init__(self, filename: str = METADATA_FILENAME) -> None:
        """Initialize the store.

        Args:
            filename: Name of the metadata file inside each collection directory.
        """
        self._filename = filename

    @property
    def filename(self) -> str:
        return self._filename

    def path_for(self, collection_dir: Path) -> Path:
        return collection_dir / self._filename

    def exists(self, collection_dir: Path) -> bool:
        return self.path_for(collection_dir).is_file()

    def load(self, collection_dir: Path) -> CollectionMetadata:
        """Load metadata from ``collection_dir``.

        Raises:
            MissingMetadataError: If no metadata file is present.
            MetadataError: If the stored data cannot be parsed or validated.
        """
        path = self.path_for(collection_dir)
        if not path.is_file():
            raise MissingMetadataError(f"No collection metadata found at {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise MetadataError(f"Cannot read collection metadata {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise MetadataError(f"Collection metadata {path} must contain a mapping")
        try:
            return CollectionMetadata.model_validate(data)
        except PydanticValidationError as exc:
            raise MetadataError(f"Invalid collection metadata in {path}: {exc}") from exc

    def save(self, collection_dir: Path, metadata: CollectionMetadata) -> Path:
        """Write ``metadata`` atomically into ``collection_dir``.

        The document is written to a temporary file in the same directory and
        moved over the destination, so readers never observe a partial file.

        Returns:
            Path: The metadata file path.

        Raises:
            MetadataError: If the file cannot be written.
        """
        path = self.path_for(collection_dir)
        payload = yaml.safe_dump(
            metadata.model_dump(mode="json"), sort_keys=False, allow_unicode=True
        )
        temp_path: Path | None = None
        try:
            handle, temp_name = tempfile.mkstemp(
                prefix=f".{self._filename}.", suffix=".tmp", dir=collection_dir
            )
            temp_path = Path(temp_name)
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                stream.write(payload)
            os.chmod(temp_path, _file_mode(path))
            os.replace(temp_path, path)
        except OSError as exc:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise MetadataError(f"Cannot write collection metadata {path}: {exc}") from exc
        return path


def _file_mode(path: Path) -> int:
    """Return the permission bits a rewrite of ``path`` should carry.

    ``mkstemp`` creates files readable only by the owner; an existing file keeps
    its mode and a new one gets what a plain ``open`` would give it.
    """
    try:
        return path.stat().st_mode & 0o7777
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


__all__ = ["METADATA_FILENAME", "MetadataStore", "MissingMetadataError"]
