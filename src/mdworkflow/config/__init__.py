"""Project discovery and configuration management for mdworkflow."""

from __future__ import annotations

import os
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

from .exceptions import ConfigError
from .models import DEFAULT_USER, ProjectConfig, SystemConfig, UserConfig
from .resolver import deep_merge, load_yaml_mapping, merge_project_configs, parse_project_config

PROJECT_MARKER = ".markdown-workflow"
CONFIG_FILENAME = "config.yml"
COLLECTIONS_DIRNAME = "collections"
SYSTEM_ROOT_ENV = "MDWORKFLOW_SYSTEM_ROOT"

_CONFIG_HEADER = textwrap.dedent(
    """\
    # mdworkflow project configuration
    # Values set here override the system defaults; anything omitted is inherited.
    """
)


@dataclass(frozen=True, slots=True)
class ProjectPaths:
    """Well-known locations inside a project.

    Attributes:
        project_root: Directory that contains the project marker.
        marker_dir: The ``.markdown-workflow`` directory (local environment root).
        config_file: Project configuration file.
        collections_dir: Root of all collection directories.
    """

    project_root: Path
    marker_dir: Path
    config_file: Path
    collections_dir: Path

    @classmethod
    def for_root(cls, project_root: Path) -> "ProjectPaths":
        root = project_root.expanduser().resolve()
        marker = root / PROJECT_MARKER
        return cls(
            project_root=root,
            marker_dir=marker,
            config_file=marker / CONFIG_FILENAME,
            collections_dir=root / COLLECTIONS_DIRNAME,
        )


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk upwards from ``start`` looking for a project marker directory."""
    current = (start or Path.cwd()).expanduser().resolve()
    for candidate in [current, *current.parents]:
        if (candidate / PROJECT_MARKER).is_dir():
            return candidate
    return None


def require_project_root(start: Path | None = None) -> Path:
    """Return the enclosing project root or raise ``ConfigError``."""
    root = find_project_root(start)
    if root is None:
        raise ConfigError(
            f"No {PROJECT_MARKER} directory found from {start or Path.cwd()}. "
            "Run `wf init` to initialize a project."
        )
    return root


def system_root(env: Mapping[str, str] | None = None) -> Path:
    """Return the system resource root.

    The ``MDWORKFLOW_SYSTEM_ROOT`` environment variable wins; otherwise the
    resources bundled with the package are used.
    """
    environ = env if env is not None else os.environ
    override = environ.get(SYSTEM_ROOT_ENV)
    if override:
        path = Path(override).expanduser().resolve()
        if not path.is_dir():
            raise ConfigError(f"{SYSTEM_ROOT_ENV} points to a missing directory: {path}")
        return path
    return Path(__file__).resolve().parent.parent / "resources"


def initialize_project(
    root: Path, *, user: UserConfig | None = None, force: bool = False
) -> ProjectPaths:
    """Create the marker directory, a starter config, and the collections root.

    Args:
        root: Directory that becomes the project root.
        user: Optional user profile to record in the starter config.
        force: Overwrite an existing config file when True.

    Returns:
        ProjectPaths: Paths of the initialized project.

    Raises:
        ConfigError: If the project already has a config and ``force`` is False.
    """
    paths = ProjectPaths.for_root(root)
    if paths.config_file.exists() and not force:
        raise ConfigError(f"Project already initialized at {paths.project_root}")

    paths.marker_dir.mkdir(parents=True, exist_ok=True)
    paths.collections_dir.mkdir(parents=True, exist_ok=True)
    for child in ("workflows", "processors", "converters"):
        (paths.marker_dir / child).mkdir(exist_ok=True)

    starter = {"user": (user or DEFAULT_USER).model_dump(mode="python")}
    serialized = yaml.safe_dump(starter, sort_keys=False)
    paths.config_file.write_text(_CONFIG_HEADER + serialized, encoding="utf-8")
    return paths


__all__ = [
    "COLLECTIONS_DIRNAME",
    "CONFIG_FILENAME",
    "ConfigError",
    "PROJECT_MARKER",
    "ProjectConfig",
    "ProjectPaths",
    "SYSTEM_ROOT_ENV",
    "SystemConfig",
    "UserConfig",
    "deep_merge",
    "find_project_root",
    "initialize_project",
    "load_yaml_mapping",
    "merge_project_configs",
    "parse_project_config",
    "require_project_root",
    "system_root",
]
