"""Collection lifecycle: discovery, stage transitions and action dispatch."""

from __future__ import annotations

import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from mdworkflow.clock import Clock, clock_from_config
from mdworkflow.config import ProjectPaths
from mdworkflow.config.models import ProjectConfig
from mdworkflow.conversion import (
    CommandRunner,
    ConversionRequest,
    ExternalConverter,
    ExternalProcessor,
    ProcessingRequest,
    run_command,
)
from mdworkflow.environment import (
    ResourceEnvironment,
    SecurityValidator,
    WorkflowContext,
    create_from_discovery,
)
from mdworkflow.errors import ResourceError, ResourceNotFoundError, SecurityError
from mdworkflow.patterns import match_template, normalize_name, output_base_name
from mdworkflow.schemas import WorkflowAction, WorkflowDefinition

from .actions import (
    ActionKind,
    AddParameters,
    FormatParameters,
    parse_parameters,
    resolve_action_kind,
)
from .errors import (
    ActionError,
    CollectionExistsError,
    InvalidStatusError,
    InvalidTransitionError,
    MetadataError,
    NotFoundError,
    WorkflowError,
)
from .metadata import MetadataStore, MissingMetadataError
from .models import RESERVED_FIELDS, BatchResult, Collection, CollectionMetadata, StatusEntry
from .rendering import DateValue, generate_collection_id, render_string, sanitize_for_filename

LOGGER = logging.getLogger(__name__)

FORMATTED_DIRNAME = "formatted"
INTERMEDIATE_DIRNAME = "intermediate"
ASSETS_DIRNAME = "assets"


class WorkflowEngine:
    """Own the collections of one project.

    Collections live at ``<project>/collections/<workflow>/<status>/<id>/``
    with their metadata in ``collection.yml``. The engine assumes it is the
    only writer under the project root.
    """

    def __init__(
        self,
        project_root: Path,
        environment: ResourceEnvironment,
        *,
        clock: Clock | None = None,
        command_runner: CommandRunner = run_command,
        metadata_store: MetadataStore | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            project_root: Directory containing ``.markdown-workflow``.
            environment: Source of workflows, templates and tool definitions.
            clock: Time source; derived from the configuration when omitted.
            command_runner: Executes external converters and processors.
            metadata_store: Persistence for ``collection.yml``.
        """
        self._paths = ProjectPaths.for_root(Path(project_root))
        self._environment = environment
        self._clock = clock
        self._runner = command_runner
        self._store = metadata_store or MetadataStore()
        self._validator = SecurityValidator()
        self._contexts: dict[str, WorkflowContext] = {}
        self._config: ProjectConfig | None = None

    @classmethod
    def from_project(cls, start: Path | None = None, **kwargs: Any) -> "WorkflowEngine":
        """Discover the enclosing project and build an engine for it."""
        environment, project_root = create_from_discovery(start)
        return cls(project_root, environment, **kwargs)

    @property
    def paths(self) -> ProjectPaths:
        return self._paths

    @property
    def environment(self) -> ResourceEnvironment:
        return self._environment

    @property
    def config(self) -> ProjectConfig:
        """Resolved project configuration; defaults when no source defines one."""
        if self._config is None:
            self._config = self._environment.get_config() or ProjectConfig()
        return self._config

    @property
    def clock(self) -> Clock:
        if self._clock is None:
            self._clock = clock_from_config(self.config)
        return self._clock

    def reload(self) -> None:
        """Drop cached configuration and workflow contexts."""
        self._contexts.clear()
        self._config = None

    # Workflows -----------------------------------------------------------------

    def list_workflows(self) -> list[str]:
        return self._environment.list_workflows()

    def context(self, workflow: str) -> WorkflowContext:
        """Return the memoized context for ``workflow``.

        Raises:
            NotFoundError: If no environment layer defines the workflow.
        """
        context = self._contexts.get(workflow)
        if context is None:
            if not self._environment.has_workflow(workflow):
                raise NotFoundError("Workflow", workflow, available=self.list_workflows())
            context = WorkflowContext(self._environment, workflow)
            self._contexts[workflow] = context
        return context

    def get_workflow(self, workflow: str) -> WorkflowDefinition:
        return self.context(workflow).workflow

    # Collections ---------------------------------------------------------------

    def collection_path(self, workflow: str, status: str, collection_id: str) -> Path:
        return self._paths.collections_dir / workflow / status / collection_id

    def get_collections(self, workflow: str, status: str | None = None) -> list[Collection]:
        """Return the collections of ``workflow``, optionally limited to one stage.

        Unreadable collections are skipped with a warning.
        """
        definition = self.context(workflow).workflow
        if status is not None and definition.get_stage(status) is None:
            raise InvalidStatusError(
                f"Invalid status '{status}' for workflow {workflow}. "
                f"Available stages: {', '.join(definition.stage_names())}"
            )
        collections: list[Collection] = []
        for stage_dir in self._stage_dirs(workflow):
            if status is not None and stage_dir.name != status:
                continue
            for entry in sorted(stage_dir.iterdir()):
                if not entry.is_dir() or entry.name.startswith("."):
                    continue
                try:
                    collection = self._load(entry)
                except MetadataError as exc:
                    LOGGER.warning("Skipping collection %s: %s", entry, exc)
                    continue
                if collection.metadata.status != stage_dir.name:
                    LOGGER.warning(
                        "Collection %s is stored under %s but its metadata says %s; "
                        "run repair to reconcile it",
                        entry.name,
                        stage_dir.name,
                        collection.metadata.status,
                    )
                collections.append(collection)
        return collections

    def get_collection(self, workflow: str, collection_id: str) -> Collection | None:
        """Return the collection or ``None`` when it does not exist.

        Raises:
            NotFoundError: If the workflow does not exist.
            MetadataError: If the collection exists but its metadata is unreadable.
        """
        self.context(workflow)
        if not self._is_safe_id(collection_id):
            return None
        directory = self._find_collection_dir(workflow, collection_id)
        if directory is None:
            return None
        return self._load(directory)

    def create_collection(
        self,
        workflow: str,
        fields: Mapping[str, Any],
        *,
        template_variant: str | None = None,
        force: bool = False,
    ) -> Collection:
        """Create a collection in the workflow's first stage.

        The identifier is derived once from the workflow's ``collection_id``
        pattern. Templates listed by the workflow's ``create`` action are
        rendered into the new directory.

        Args:
            workflow: Workflow name.
            fields: Workflow-specific metadata such as ``company`` and ``role``.
            template_variant: Template variant; falls back to the configured default.
            force: Replace an existing collection with the same identifier.

        Returns:
            Collection: The created collection.

        Raises:
            ActionError: If required fields are missing or no identifier can be derived.
            CollectionExistsError: If the identifier is taken and ``force`` is False.
        """
        context = self.context(workflow)
        definition = context.workflow
        values = {key: value for key, value in fields.items() if value not in (None, "")}
        variant = template_variant or values.pop("template_variant", None)
        values.pop("template_variant", None)
        self._reject_reserved(values)

        missing = [name for name in self._required_fields(definition) if name not in values]
        if missing:
            raise ActionError(f"Missing required fields for {workflow}: {', '.join(missing)}")

        now = self.clock.now()
        collection_id = generate_collection_id(
            definition.collection_id.pattern,
            values,
            now,
            self.config.system.collection_id,
            definition.collection_id.max_length,
        )
        if not collection_id:
            raise ActionError(f"Could not derive a collection id from {definition.collection_id.pattern!r}")

        existing = self._find_collection_dir(workflow, collection_id, require_metadata=False)
        if existing is not None:
            if not force:
                raise CollectionExistsError(
                    f"Collection already exists: {collection_id}. "
                    f"Use --force to recreate it."
                )
            LOGGER.warning("Recreating collection %s at %s", collection_id, existing)
            shutil.rmtree(existing)

        stage = definition.initial_stage.name
        directory = self.collection_path(workflow, stage, collection_id)
        directory.mkdir(parents=True)
        metadata = CollectionMetadata(
            collection_id=collection_id,
            workflow=workflow,
            status=stage,
            date_created=now,
            date_modified=now,
            status_history=[StatusEntry(status=stage, date=now)],
            **values,
        )
        self._store.save(directory, metadata)
        LOGGER.info("Created collection %s in %s", collection_id, directory)

        create_action = definition.get_action("create")
        variables = self._template_variables(context, metadata, {**values, "prefix": ""})
        if variant:
            variables["template_variant"] = variant
        for template_name in (create_action.templates or []) if create_action else []:
            self._instantiate(context, directory, template_name, variant, variables)
        return self._load(directory)

    def update_status(self, workflow: str, collection_id: str, new_status: str) -> Collection:
        """Move a collection to ``new_status``.

        The status must name a declared stage reachable from the current stage
        through its ``next`` list; a stage without ``next`` and a terminal stage
        allow no transition. Re-applying the current status only records a
        history entry. The directory is renamed before the metadata is
        rewritten, so a failed rename leaves everything untouched.

        Raises:
            NotFoundError: If the workflow or collection does not exist.
            InvalidStatusError: If ``new_status`` is not a declared stage.
            InvalidTransitionError: If the transition is not allowed.
            WorkflowError: If the directory cannot be moved.
            MetadataError: If the metadata cannot be written after the move.
        """
        definition = self.context(workflow).workflow
        collection = self._require_collection(workflow, collection_id)

        if definition.get_stage(new_status) is None:
            raise InvalidStatusError(
                f"Invalid status '{new_status}' for workflow {workflow}. "
                f"Available stages: {', '.join(definition.stage_names())}"
            )
        current_status = collection.metadata.status
        current = definition.get_stage(current_status)
        if current is None:
            raise InvalidTransitionError(
                f"Collection {collection_id} has undeclared status '{current_status}'; "
                f"run `wf repair {workflow} {collection_id}` first"
            )
        if new_status != current_status and not current.allows(new_status):
            allowed = ", ".join(current.next or []) or "none"
            raise InvalidTransitionError(
                f"Invalid status transition: {current_status} -> {new_status}. "
                f"Allowed from {current_status}: {allowed}"
            )

        now = _not_before(self.clock.now(), collection.metadata.date_modified)
        updated = collection.metadata.model_copy(deep=True)
        updated.status = new_status
        updated.date_modified = now
        updated.status_history.append(StatusEntry(status=new_status, date=now))

        destination = collection.path
        if new_status != current_status:
            destination = self.collection_path(workflow, new_status, collection_id)
            if destination.exists():
                raise WorkflowError(
                    f"Cannot move {collection_id} to {new_status}: {destination} already exists"
                )
            destination.parent.mkdir(parents=True, exist_ok=True)
            try:
                collection.path.rename(destination)
            except OSError as exc:
                raise WorkflowError(
                    f"Cannot move collection {collection_id} to {new_status}: {exc}"
                ) from exc
            LOGGER.info("Moved %s from %s to %s", collection_id, current_status, new_status)

        try:
            self._store.save(destination, updated)
        except MetadataError as exc:
            raise MetadataError(
                f"{exc}. The collection now lives at {destination}; "
                f"run `wf repair {workflow} {collection_id}` to reconcile its metadata."
            ) from exc
        return Collection(metadata=updated, artifacts=collection.artifacts, path=destination)

    def update_metadata(
        self, workflow: str, collection_id: str, fields: Mapping[str, Any]
    ) -> Collection:
        """Set or clear (``None``) workflow-specific metadata fields."""
        self.context(workflow)
        collection = self._require_collection(workflow, collection_id)
        self._reject_reserved(fields)
        data = collection.metadata.model_dump()
        for key, value in fields.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        data["date_modified"] = _not_before(self.clock.now(), collection.metadata.date_modified)
        updated = CollectionMetadata.model_validate(data)
        self._store.save(collection.path, updated)
        return Collection(metadata=updated, artifacts=collection.artifacts, path=collection.path)

    def repair_collection(self, workflow: str, collection_id: str) -> Collection:
        """Reconcile a collection's metadata with the stage directory it lives in.

        Covers a transition interrupted after the rename: the status recorded in
        ``collection.yml`` is reset to the directory's stage and a history entry
        is appended. A directory without metadata gets a fresh metadata file.

        Raises:
            NotFoundError: If no directory exists for the collection.
            InvalidStatusError: If the directory's stage is not declared.
        """
        definition = self.context(workflow).workflow
        directory = None
        if self._is_safe_id(collection_id):
            directory = self._find_collection_dir(workflow, collection_id, require_metadata=False)
        if directory is None:
            raise NotFoundError("Collection", f"{workflow}/{collection_id}")
        stage = directory.parent.name
        if definition.get_stage(stage) is None:
            raise InvalidStatusError(
                f"Collection {collection_id} is stored under undeclared stage '{stage}'. "
                f"Available stages: {', '.join(definition.stage_names())}"
            )

        now = self.clock.now()
        try:
            metadata = self._store.load(directory)
        except MissingMetadataError:
            LOGGER.warning("Rebuilding missing metadata for %s", directory)
            metadata = CollectionMetadata(
                collection_id=collection_id,
                workflow=workflow,
                status=stage,
                date_created=now,
                date_modified=now,
                status_history=[StatusEntry(status=stage, date=now)],
            )
            self._store.save(directory, metadata)
            return self._load(directory)

        if (metadata.status, metadata.collection_id, metadata.workflow) == (stage, collection_id, workflow):
            return self._load(directory)

        updated = metadata.model_copy(deep=True)
        updated.collection_id = collection_id
        updated.workflow = workflow
        if updated.status != stage:
            LOGGER.info("Repairing %s: status %s -> %s", collection_id, updated.status, stage)
            now = _not_before(now, metadata.date_modified)
            updated.status = stage
            updated.date_modified = now
            updated.status_history.append(StatusEntry(status=stage, date=now))
        self._store.save(directory, updated)
        return self._load(directory)

    def clean_collection(
        self,
        workflow: str,
        collection_id: str,
        *,
        processors: Iterable[str] | None = None,
        dry_run: bool = False,
    ) -> list[Path]:
        """Remove intermediate files left behind by formatting.

        Args:
            workflow: Workflow name.
            collection_id: Collection to clean.
            processors: Only remove entries written by these processors, i.e.
                entries named after the processor or prefixed with ``<name>-``.
            dry_run: Report what would be removed without touching the disk.

        Returns:
            list[Path]: Entries removed, or that would be removed on a dry run.

        Raises:
            NotFoundError: If the workflow or collection does not exist.
            WorkflowError: If an entry cannot be removed.
        """
        collection = self._require_collection(workflow, collection_id)
        intermediate_dir = collection.path / FORMATTED_DIRNAME / INTERMEDIATE_DIRNAME
        if not intermediate_dir.is_dir():
            LOGGER.info("No intermediate directory found at %s", intermediate_dir)
            return []

        names = list(processors or [])
        targets = [
            entry
            for entry in sorted(intermediate_dir.iterdir())
            if not names or any(_written_by(entry.name, name) for name in names)
        ]
        for entry in targets:
            LOGGER.debug("%s %s", "Would remove" if dry_run else "Removing", entry)
            if dry_run:
                continue
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError as exc:
                raise WorkflowError(f"Cannot remove {entry}: {exc}") from exc
        return targets

    # Actions -------------------------------------------------------------------

    def execute_action(
        self,
        workflow: str,
        collection_id: str,
        action_name: str,
        parameters: Mapping[str, Any] | None = None,
    ) -> list[Path]:
        """Run a workflow action against a collection.

        Returns:
            list[Path]: Files written by the action.

        Raises:
            NotFoundError: If the workflow or collection does not exist.
            ActionError: If the action is unknown, misconfigured or fails.
        """
        context = self.context(workflow)
        collection = self._require_collection(workflow, collection_id)
        action = context.workflow.get_action(action_name)
        if action is None:
            available = ", ".join(item.name for item in context.workflow.actions) or "(none)"
            raise ActionError(f"Action not found: {action_name}. Available actions: {available}")

        parsed = parse_parameters(resolve_action_kind(action_name), parameters)
        if isinstance(parsed, FormatParameters):
            return self._format(context, collection, action, parsed)
        if isinstance(parsed, AddParameters):
            return [self._add(context, collection, parsed)]
        raise ActionError(f"Action not implemented: {action_name}")

    def format_collections(
        self,
        workflow: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        status: str | None = None,
    ) -> BatchResult:
        """Format every collection, recording failures instead of stopping."""
        if self.context(workflow).workflow.get_action(ActionKind.FORMAT.value) is None:
            raise ActionError(f"Workflow {workflow} has no format action")
        result = BatchResult()
        for collection in self.get_collections(workflow, status):
            try:
                self.execute_action(workflow, collection.collection_id, ActionKind.FORMAT.value, parameters)
            except (WorkflowError, ResourceError, OSError) as exc:
                LOGGER.warning("Formatting %s failed: %s", collection.collection_id, exc)
                result.failed[collection.collection_id] = str(exc)
            else:
                result.succeeded.append(collection.collection_id)
        return result

    def _format(
        self,
        context: WorkflowContext,
        collection: Collection,
        action: WorkflowAction,
        parameters: FormatParameters,
    ) -> list[Path]:
        converter = self._converter_for(context, action)
        formats = self._requested_formats(action, parameters.format)
        files = self._select_markdown(context, collection, parameters.artifacts)
        if not files:
            LOGGER.warning("No markdown files to format in %s", collection.path)
            return []

        output_dir = collection.path / FORMATTED_DIRNAME
        output_dir.mkdir(exist_ok=True)
        processors = self._processors_for(context, action)
        outputs: list[Path] = []
        with tempfile.TemporaryDirectory(prefix="mdworkflow-") as scratch:
            for filename in files:
                source = self._preprocess(collection, filename, processors)
                template_type = self._template_type(context, filename)
                for fmt in formats:
                    reference = self._reference_doc(context, template_type, fmt, Path(scratch))
                    LOGGER.info("Converting %s to %s", filename, fmt.upper())
                    result = converter.convert(
                        ConversionRequest(
                            input_file=source,
                            output_file=output_dir / f"{Path(filename).stem}.{fmt}",
                            format=fmt,
                            reference_doc=reference,
                            collection_path=collection.path,
                        )
                    )
                    if not result.success:
                        raise ActionError(f"Document conversion failed for {filename}: {result.error}")
                    outputs.append(result.output_file)
        return outputs

    def _add(
        self, context: WorkflowContext, collection: Collection, parameters: AddParameters
    ) -> Path:
        template = context.workflow.get_template(parameters.template)
        if template is None:
            available = ", ".join(item.name for item in context.workflow.templates) or "(none)"
            raise ActionError(
                f"Template '{parameters.template}' not found. Available templates: {available}"
            )
        variant = self.config.default_variant(context.name, template.name)
        try:
            source = context.get_template(template.name, variant)
        except ResourceNotFoundError as exc:
            raise ActionError(f"Template file not found: {exc}") from exc

        prefix = (parameters.prefix or "").strip()
        variables = self._template_variables(
            context,
            collection.metadata,
            {**parameters.extra_variables(), "template": parameters.template},
        )
        variables["prefix"] = prefix[:1].upper() + prefix[1:]
        content = render_string(source, variables)

        if prefix:
            base = output_base_name(template.output) or normalize_name(template.name)
            safe_prefix = sanitize_for_filename(prefix)
            filename = f"{safe_prefix}_{base}.md" if safe_prefix else f"{base}.md"
        else:
            filename = render_string(template.output, variables)
        self._check_filename(filename)

        target = collection.path / filename
        if target.exists():
            raise ActionError(
                f"File already exists: {filename}. Use a different prefix or remove the existing file."
            )
        target.write_text(content, encoding="utf-8")
        LOGGER.info("Created %s", target)
        return target

    # Helpers -------------------------------------------------------------------

    def _converter_for(self, context: WorkflowContext, action: WorkflowAction) -> ExternalConverter:
        if not action.converter:
            raise ActionError(f"Action '{action.name}' of workflow {context.name} declares no converter")
        definition = context.converters.get(action.converter)
        if definition is None:
            available = [item.name for item in self._environment.get_converter_definitions()]
            raise ActionError(
                f"Converter not found: {action.converter}. "
                f"Available converters: {', '.join(available) or '(none)'}"
            )
        return ExternalConverter(definition, self._runner)

    def _processors_for(
        self, context: WorkflowContext, action: WorkflowAction
    ) -> list[ExternalProcessor]:
        definitions = context.processors
        return [
            ExternalProcessor(definitions[reference.name], self._runner)
            for reference in action.processors or []
            if reference.enabled and reference.name in definitions
        ]

    def _requested_formats(self, action: WorkflowAction, requested: str) -> list[str]:
        declared = action.formats or self.config.system.output_formats
        if requested == "all":
            return list(declared)
        if action.formats and requested not in action.formats:
            raise ActionError(
                f"Format '{requested}' is not supported by action '{action.name}'. "
                f"Available formats: {', '.join(action.formats)}"
            )
        return [requested]

    def _select_markdown(
        self, context: WorkflowContext, collection: Collection, requested: Iterable[str] | None
    ) -> list[str]:
        markdown = [name for name in collection.artifacts if name.endswith(".md")]
        requested = list(requested or [])
        if not requested:
            return markdown

        patterns = context.artifact_patterns
        matched: dict[str, list[str]] = {
            name: [filename for filename in markdown if pattern.match(filename)]
            for name, pattern in patterns.items()
        }
        available = [name for name, files in matched.items() if files]
        selected: set[str] = set()
        for name in requested:
            files = matched.get(name, [])
            if not files:
                LOGGER.warning(
                    "Unknown artifact '%s'. Available artifacts: %s",
                    name,
                    ", ".join(available) or "(none)",
                )
            selected.update(files)
        if not selected:
            raise ActionError(f"No files found for requested artifacts: {', '.join(requested)}")
        return [filename for filename in markdown if filename in selected]

    def _preprocess(
        self, collection: Collection, filename: str, processors: list[ExternalProcessor]
    ) -> Path:
        source = collection.path / filename
        if not processors:
            return source
        intermediate_dir = collection.path / FORMATTED_DIRNAME / INTERMEDIATE_DIRNAME
        request = ProcessingRequest(
            collection_path=collection.path,
            intermediate_dir=intermediate_dir,
            assets_dir=collection.path / ASSETS_DIRNAME,
        )
        content = source.read_text(encoding="utf-8")
        for processor in processors:
            result = processor.process(content, request)
            if result.success:
                content = result.content
            else:
                LOGGER.warning(
                    "Processor %s failed for %s, continuing with unprocessed content: %s",
                    processor.name,
                    filename,
                    result.error,
                )
        intermediate_dir.mkdir(parents=True, exist_ok=True)
        target = intermediate_dir / filename
        target.write_text(content, encoding="utf-8")
        return target

    def _template_type(self, context: WorkflowContext, filename: str) -> str | None:
        matched = match_template(filename, context.artifact_patterns)
        if matched:
            return matched
        stem = Path(filename).stem
        names = sorted((item.name for item in context.workflow.templates), key=len, reverse=True)
        return next((name for name in names if stem == name or stem.startswith(f"{name}_")), None)

    def _reference_doc(
        self, context: WorkflowContext, template_type: str | None, fmt: str, scratch: Path
    ) -> Path | None:
        if template_type is None:
            return None
        static = context.get_static_definition(f"{template_type}_reference")
        if static is None or Path(static.filename).suffix.lower() != f".{fmt}":
            return None
        target = scratch / static.filename
        if not target.exists():
            try:
                target.write_bytes(context.get_static(static.filename))
            except ResourceNotFoundError as exc:
                LOGGER.debug("Reference document unavailable for %s: %s", template_type, exc)
                return None
        return target

    def _instantiate(
        self,
        context: WorkflowContext,
        directory: Path,
        template_name: str,
        variant: str | None,
        variables: dict[str, Any],
    ) -> Path | None:
        template = context.workflow.get_template(template_name)
        if template is None:
            LOGGER.warning("Workflow %s has no template named %s", context.name, template_name)
            return None
        chosen = variant or self.config.default_variant(context.name, template_name)
        try:
            source = context.get_template(template_name, chosen)
        except ResourceNotFoundError as exc:
            LOGGER.warning("Skipping template %s: %s", template_name, exc)
            return None
        filename = render_string(template.output, variables)
        self._check_filename(filename)
        target = directory / filename
        target.write_text(render_string(source, variables), encoding="utf-8")
        return target

    def _template_variables(
        self,
        context: WorkflowContext,
        metadata: CollectionMetadata,
        parameters: Mapping[str, Any],
    ) -> dict[str, Any]:
        variables = dict(parameters)
        variables.update(metadata.custom_fields())
        variables.update(
            collection_id=metadata.collection_id,
            workflow=context.name,
            status=metadata.status,
            date=DateValue(self.clock.now(), "YYYY-MM-DD"),
            user=self.config.effective_user().model_dump(),
        )
        return variables

    def _required_fields(self, definition: WorkflowDefinition) -> list[str]:
        create_action = definition.get_action("create")
        names = [param.name for param in create_action.required_parameters()] if create_action else []
        auto = set(definition.metadata.auto_generated) | RESERVED_FIELDS
        names.extend(definition.metadata.required_fields)
        required: list[str] = []
        for name in names:
            if name not in auto and name != "template_variant" and name not in required:
                required.append(name)
        return required

    def _reject_reserved(self, fields: Mapping[str, Any]) -> None:
        reserved = sorted(RESERVED_FIELDS.intersection(fields))
        if reserved:
            raise MetadataError(f"Reserved metadata fields cannot be set: {', '.join(reserved)}")

    def _check_filename(self, filename: str) -> None:
        try:
            self._validator.validate_filename(filename)
        except SecurityError as exc:
            raise ActionError(f"Refusing to write {filename!r}: {exc}") from exc

    def _is_safe_id(self, collection_id: str) -> bool:
        try:
            self._validator.validate_filename(collection_id)
        except SecurityError:
            return False
        return "/" not in collection_id and "\\" not in collection_id

    def _stage_dirs(self, workflow: str) -> list[Path]:
        root = self._paths.collections_dir / workflow
        if not root.is_dir():
            return []
        order = {name: index for index, name in enumerate(self.context(workflow).workflow.stage_names())}
        entries = [entry for entry in root.iterdir() if entry.is_dir() and not entry.name.startswith(".")]
        return sorted(entries, key=lambda entry: (order.get(entry.name, len(order)), entry.name))

    def _find_collection_dir(
        self, workflow: str, collection_id: str, *, require_metadata: bool = True
    ) -> Path | None:
        fallback: Path | None = None
        for stage_dir in self._stage_dirs(workflow):
            candidate = stage_dir / collection_id
            if not candidate.is_dir():
                continue
            if self._store.exists(candidate):
                return candidate
            fallback = fallback or candidate
        return None if require_metadata else fallback

    def _require_collection(self, workflow: str, collection_id: str) -> Collection:
        collection = self.get_collection(workflow, collection_id)
        if collection is None:
            raise NotFoundError("Collection", f"{workflow}/{collection_id}")
        return collection

    def _load(self, directory: Path) -> Collection:
        metadata = self._store.load(directory)
        artifacts = sorted(
            entry.name
            for entry in directory.iterdir()
            if entry.is_file() and not entry.name.startswith(".") and entry.name != self._store.filename
        )
        return Collection(metadata=metadata, artifacts=artifacts, path=directory)


def _written_by(entry_name: str, processor: str) -> bool:
    return entry_name == processor or entry_name.startswith(f"{processor}-")


def _not_before(now: datetime, previous: datetime) -> datetime:
    """Return ``now``, or ``previous`` if the clock reads earlier than it."""
    if previous.tzinfo is None:
        previous = previous.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(now, previous)


__all__ = ["WorkflowEngine", "FORMATTED_DIRNAME"]
