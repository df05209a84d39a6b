"""Template rendering and identifier generation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

from jinja2 import Environment, StrictUndefined, TemplateError
from jinja2.filters import do_format

from mdworkflow.clock import format_date
from mdworkflow.config.models import CollectionIdSettings

from .errors import WorkflowError


class TemplateRenderError(WorkflowError):
    """Raised when a template or filename pattern cannot be rendered."""


@dataclass(frozen=True)
class DateValue:
    """A date that renders with a default token format but accepts ``| format``.

    ``{{ date }}`` prints ``default_format``; ``{{ date | format('YYYYMMDD') }}``
    applies the given token format to the same instant.
    """

    instant: datetime
    default_format: str = "YYYY-MM-DD"

    def __str__(self) -> str:
        return format_date(self.instant, self.default_format)


def _format_filter(value: Any, *args: Any, **kwargs: Any) -> str:
    if isinstance(value, DateValue):
        value = value.instant
    if isinstance(value, (date, datetime)):
        pattern = args[0] if args else "YYYY-MM-DD"
        return format_date(value, pattern)
    return do_format(value, *args, **kwargs)


def build_environment(*, strict: bool = False) -> Environment:
    """Return a Jinja2 environment for markdown templates and filename patterns."""
    options: dict[str, Any] = {"keep_trailing_newline": True, "autoescape": False}
    if strict:
        options["undefined"] = StrictUndefined
    environment = Environment(**options)
    environment.filters["format"] = _format_filter
    return environment


_ENVIRONMENT = build_environment()


def render_string(source: str, variables: Mapping[str, Any]) -> str:
    """Render ``source`` with ``variables``; undefined names render empty.

    Raises:
        TemplateRenderError: If the template has a syntax or runtime error.
    """
    try:
        return _ENVIRONMENT.from_string(source).render(**variables)
    except TemplateError as exc:
        raise TemplateRenderError(f"Cannot render template: {exc}") from exc


def sanitize_for_filename(value: str) -> str:
    """Lowercase, keep letters, digits and spaces, then join words with underscores."""
    cleaned = re.sub(r"[^a-z0-9\s]", "", value.lower())
    cleaned = re.sub(r"_+", "_", re.sub(r"\s+", "_", cleaned.strip()))
    return cleaned.strip("_")


def sanitize_identifier(value: str, spaces: str = "_") -> str:
    """Normalize a rendered identifier to lowercase ``[a-z0-9_-]``."""
    cleaned = re.sub(r"\s+", spaces, value.strip().lower())
    cleaned = re.sub(r"[^a-z0-9_\-]", "", cleaned)
    cleaned = re.sub(r"_+", "_", cleaned)
    return cleaned.strip("_-")


def generate_collection_id(
    pattern: str,
    fields: Mapping[str, Any],
    now: datetime,
    settings: CollectionIdSettings,
    max_length: int | None = None,
) -> str:
    """Derive a collection identifier from a workflow's id pattern.

    Args:
        pattern: Jinja2 pattern such as ``{{company}}_{{role}}_{{date}}``.
        fields: Values supplied at creation.
        now: Creation instant; exposed as ``date``.
        settings: Project identifier rules (date format, space replacement, length).
        max_length: Workflow-specific cap; the stricter of it and the project cap wins.

    Returns:
        str: Sanitized, truncated identifier.
    """
    variables = {key: value for key, value in fields.items() if value is not None}
    variables["date"] = DateValue(now, settings.date_format)
    rendered = render_string(pattern, variables)
    identifier = sanitize_identifier(rendered, settings.sanitize_spaces)
    limit = min(value for value in (max_length, settings.max_length) if value)
    return identifier[:limit].rstrip("_-")


__all__ = [
    "DateValue",
    "TemplateRenderError",
    "build_environment",
    "generate_collection_id",
    "render_string",
    "sanitize_for_filename",
    "sanitize_identifier",
]
