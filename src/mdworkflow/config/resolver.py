"""Configuration resolution helpers."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Mapping

import yaml
from pydantic import ValidationError as PydanticValidationError

from mdworkflow.errors import ValidationError

from .models import ProjectConfig


def deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``overrides`` onto ``base`` recursively.

    Nested mappings merge key by key; any other value in ``overrides`` (lists
    included) replaces the base value wholesale. Neither input is mutated.

    Args:
        base: Mapping providing fallback values.
        overrides: Mapping whose values take precedence.

    Returns:
        dict[str, Any]: Newly allocated merged mapping.
    """
    merged: dict[str, Any] = {}
    for key, value in base.items():
        merged[key] = deepcopy(value)
    for key, value in overrides.items():
        if isinstance(value, MappingABC) and isinstance(merged.get(key), MappingABC):
            merged[key] = deep_merge(dict(merged[key]), value)
        else:
            merged[key] = deepcopy(value)
    return merged


def load_yaml_mapping(text: str, *, source: str) -> dict[str, Any]:
    """Parse YAML text that must contain a mapping at the top level.

    Raises:
        ValidationError: If the text is not valid YAML or not a mapping.
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValidationError(f"Invalid YAML in {source}: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError(f"{source} must contain a mapping at the top level.")
    return raw


def parse_project_config(data: str | Mapping[str, Any], *, source: str = "config.yml") -> ProjectConfig:
    """Validate YAML text or a mapping into a ``ProjectConfig``.

    Args:
        data: Raw YAML text or an already-parsed mapping.
        source: Label used in error messages.

    Returns:
        ProjectConfig: Validated configuration.

    Raises:
        ValidationError: If parsing or schema validation fails.
    """
    mapping = load_yaml_mapping(data, source=source) if isinstance(data, str) else dict(data)
    try:
        return ProjectConfig.model_validate(mapping)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid project config in {source}: {exc}") from exc


def merge_project_configs(local: ProjectConfig, global_: ProjectConfig) -> ProjectConfig:
    """Overlay the explicitly-set values of ``local`` onto ``global_``.

    Only values present in the local source take precedence; everything the
    local side leaves unset is inherited from the global configuration.
    """
    merged = deep_merge(
        global_.model_dump(mode="python", exclude_unset=True),
        local.model_dump(mode="python", exclude_unset=True),
    )
    return parse_project_config(merged, source="merged configuration")


__all__ = ["deep_merge", "load_yaml_mapping", "parse_project_config", "merge_project_configs"]
