"""Configuration models describing project and system settings."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WorkflowBaseModel(BaseModel):
    """Shared configuration for strict mdworkflow Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class UserConfig(WorkflowBaseModel):
    """User profile used for template substitution.

    Attributes:
        name: Full display name.
        preferred_name: Filename-friendly name used in artifact names.
        email: Contact email address.
        phone: Contact phone number.
        address: Street address.
        city: City name.
        state: State or region.
        zip: Postal code.
        linkedin: LinkedIn profile reference.
        github: GitHub profile reference.
        website: Personal website.
    """

    name: str = "Your Name"
    preferred_name: str = "your_name"
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    linkedin: str = ""
    github: str = ""
    website: str = ""


DEFAULT_USER = UserConfig(
    name="Your Name",
    preferred_name="john_doe",
    email="your.email@example.com",
    phone="(555) 123-4567",
    address="123 Main St",
    city="Your City",
    state="ST",
    zip="12345",
    linkedin="linkedin.com/in/yourname",
    github="github.com/yourusername",
    website="yourwebsite.com",
)


class WebDownloadSettings(WorkflowBaseModel):
    """Options for the (external) web download step."""

    timeout: int = 30
    add_utf8_bom: bool = True
    html_cleanup: Literal["none", "scripts", "markdown"] = "scripts"


class GitSettings(WorkflowBaseModel):
    """Git integration preferences."""

    auto_commit: bool = False
    commit_message_template: str = "Add {{ workflow }} collection: {{ collection_id }}"


class CollectionIdSettings(WorkflowBaseModel):
    """Rules applied when deriving collection identifiers.

    Attributes:
        date_format: Token format (``YYYY``, ``MM``, ``DD``...) for date components.
        sanitize_spaces: Replacement for whitespace in identifiers.
        max_length: Upper bound on identifier length.
    """

    date_format: str = "YYYYMMDD"
    sanitize_spaces: str = "_"
    max_length: int = 50


class OverrideSettings(WorkflowBaseModel):
    """Overrides that make dates and identifiers deterministic in tests.

    Attributes:
        override_current_date: ISO-8601 instant used instead of the system clock;
            naive values are read as UTC.
        override_timezone: IANA timezone name used for date formatting.
    """

    override_current_date: Optional[datetime] = None
    override_timezone: Optional[str] = None

    @field_validator("override_current_date")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("override_timezone")
    @classmethod
    def _known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value


class LoggingSettings(WorkflowBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
    """

    level: str = "WARNING"


class SystemConfig(WorkflowBaseModel):
    """System-level settings shared by every workflow."""

    scraper: Literal["wget", "curl", "native"] = "wget"
    web_download: WebDownloadSettings = Field(default_factory=WebDownloadSettings)
    output_formats: List[str] = Field(default_factory=lambda: ["docx", "html", "pdf"])
    git: GitSettings = Field(default_factory=GitSettings)
    collection_id: CollectionIdSettings = Field(default_factory=CollectionIdSettings)
    testing: Optional[OverrideSettings] = None
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


class TemplateVariantSettings(WorkflowBaseModel):
    """Variant selection for a single template."""

    default_template: str = "default"
    available_templates: List[str] = Field(default_factory=lambda: ["default"])


class CustomField(WorkflowBaseModel):
    """Additional metadata field declared by a project for a workflow."""

    name: str
    type: Literal["string", "number", "boolean", "enum", "array"] = "string"
    options: Optional[List[str]] = None
    description: str = ""


class WorkflowOverride(BaseModel):
    """Project-specific overrides for one workflow; unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    templates: Dict[str, TemplateVariantSettings] = Field(default_factory=dict)
    custom_fields: List[CustomField] = Field(default_factory=list)


class ProjectConfig(WorkflowBaseModel):
    """Top-level project configuration.

    Attributes:
        user: User profile; ``None`` when the project has not configured one.
        system: System settings.
        workflows: Per-workflow overrides keyed by workflow name.
    """

    user: Optional[UserConfig] = None
    system: SystemConfig = Field(default_factory=SystemConfig)
    workflows: Dict[str, WorkflowOverride] = Field(default_factory=dict)

    def effective_user(self) -> UserConfig:
        """Return the configured user or the placeholder profile."""
        return self.user or DEFAULT_USER

    def default_variant(self, workflow: str, template: str) -> str | None:
        """Return the configured default variant for ``template`` in ``workflow``."""
        override = self.workflows.get(workflow)
        if override is None:
            return None
        settings = override.templates.get(template)
        return settings.default_template if settings else None


__all__ = [
    "WorkflowBaseModel",
    "UserConfig",
    "DEFAULT_USER",
    "WebDownloadSettings",
    "GitSettings",
    "CollectionIdSettings",
    "OverrideSettings",
    "LoggingSettings",
    "SystemConfig",
    "TemplateVariantSettings",
    "CustomField",
    "WorkflowOverride",
    "ProjectConfig",
]
