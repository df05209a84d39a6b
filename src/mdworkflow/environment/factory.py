"""Construction helpers for the standard environment stacks."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from mdworkflow.config import PROJECT_MARKER, require_project_root, system_root
from mdworkflow.errors import ResourceError, ResourceNotFoundError

from .base import ResourceEnvironment
from .context import WorkflowContext
from .filesystem import FilesystemEnvironment
from .merged import MergedEnvironment
from .security import SecuritySettings


def create_cli_environment(
    project_root: Path,
    system_root_path: Path,
    *,
    security: SecuritySettings | None = None,
) -> MergedEnvironment:
    """Overlay the project's ``.markdown-workflow`` directory on the system root."""
    local = FilesystemEnvironment(Path(project_root) / PROJECT_MARKER, security)
    global_ = FilesystemEnvironment(system_root_path, security)
    return MergedEnvironment(local, global_)


def create_from_discovery(
    start: Path | None = None, *, security: SecuritySettings | None = None
) -> tuple[MergedEnvironment, Path]:
    """Locate the enclosing project and build its environment.

    Returns:
        tuple[MergedEnvironment, Path]: The environment and the project root.

    Raises:
        ConfigError: If no project or system root can be found.
    """
    project_root = require_project_root(start)
    return create_cli_environment(project_root, system_root(), security=security), project_root


def create_workflow_context(environment: ResourceEnvironment, workflow: str) -> WorkflowContext:
    """Return a context for ``workflow`` after checking that it exists."""
    if not environment.has_workflow(workflow):
        raise ResourceNotFoundError("Workflow", workflow, available=environment.list_workflows())
    return WorkflowContext(environment, workflow)


@dataclass
class EnvironmentReport:
    """Outcome of :func:`validate_environment`."""

    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues


def validate_environment(environment: ResourceEnvironment) -> EnvironmentReport:
    """Load every resource the manifest advertises and report problems.

    Every filesystem layer, including both sides of a merged environment, is
    audited against its security bounds first. Audit findings, workflows that
    fail to load and templates declared by a workflow but missing from the
    environment are issues; an empty environment, missing statics or an
    invalid configuration are warnings.
    """
    report = EnvironmentReport()
    for layer in _layers(environment):
        if isinstance(layer, FilesystemEnvironment):
            for issue in layer.audit():
                report.issues.append(f"{layer.root}: {issue.path}: {issue.error}")

    manifest = environment.get_manifest()
    if not manifest.workflows:
        report.warnings.append("No workflows found")

    for name in manifest.workflows:
        try:
            workflow = environment.get_workflow(name)
        except ResourceError as exc:
            report.issues.append(f"Failed to load workflow '{name}': {exc}")
            continue
        for template in workflow.templates:
            if not environment.has_template(name, template.name):
                report.issues.append(f"Workflow '{name}' is missing template '{template.name}'")
        for static in workflow.statics:
            if not environment.has_static(name, static.filename):
                report.warnings.append(f"Workflow '{name}' is missing static '{static.name}'")
        converters = set(manifest.converters)
        for action in workflow.actions:
            if action.converter and action.converter not in converters:
                report.warnings.append(
                    f"Action '{name}/{action.name}' uses unknown converter '{action.converter}'"
                )

    try:
        environment.get_config()
    except ResourceError as exc:
        report.warnings.append(f"Configuration issues: {exc}")
    return report


def _layers(environment: ResourceEnvironment) -> list[ResourceEnvironment]:
    if isinstance(environment, MergedEnvironment):
        return _layers(environment.local) + _layers(environment.global_)
    return [environment]


__all__ = [
    "EnvironmentReport",
    "create_cli_environment",
    "create_from_discovery",
    "create_workflow_context",
    "validate_environment",
]
