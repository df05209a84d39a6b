"""Collection lifecycle tests: creation, discovery, transitions and repair."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from mdworkflow.config.models import ProjectConfig
from mdworkflow.engine import (
    ActionError,
    CollectionExistsError,
    InvalidStatusError,
    InvalidTransitionError,
    MetadataError,
    NotFoundError,
    WorkflowEngine,
    WorkflowError,
)

COLLECTION_ID = "acme_corp_senior_engineer_20250115"


def _create(engine: WorkflowEngine, company: str = "Acme Corp", role: str = "Senior Engineer"):
    return engine.create_collection("job", {"company": company, "role": role})


def _collections_dir(tmp_path: Path) -> Path:
    return tmp_path.resolve() / "collections" / "job"


def test_create_collection_writes_metadata_and_templates(engine: WorkflowEngine, tmp_path: Path) -> None:
    """Ensure creation derives the id, lands in the first stage and renders templates.

    Args:
        engine: Engine over the in-memory job workflow.
        tmp_path: Temporary project root provided by pytest.
    """
    collection = _create(engine)

    assert collection.collection_id == COLLECTION_ID
    assert collection.path == _collections_dir(tmp_path) / "active" / COLLECTION_ID
    assert collection.artifacts == ["cover_letter_jane_doe.md", "resume_jane_doe.md"]
    assert collection.metadata.status == "active"
    assert [entry.status for entry in collection.metadata.status_history] == ["active"]
    assert collection.metadata.custom_fields() == {"company": "Acme Corp", "role": "Senior Engineer"}
    assert (collection.path / "collection.yml").is_file()

    resume = (collection.path / "resume_jane_doe.md").read_text(encoding="utf-8")
    assert resume == "# Jane Doe\nSenior Engineer at Acme Corp\n"
    letter = (collection.path / "cover_letter_jane_doe.md").read_text(encoding="utf-8")
    assert "2025-01-15" in letter


def test_create_collection_requires_declared_fields(engine: WorkflowEngine) -> None:
    with pytest.raises(ActionError, match="role"):
        engine.create_collection("job", {"company": "Acme"})


def test_create_collection_rejects_reserved_fields(engine: WorkflowEngine) -> None:
    with pytest.raises(MetadataError, match="status"):
        engine.create_collection("job", {"company": "Acme", "role": "Dev", "status": "offered"})


def test_create_collection_refuses_duplicates_without_force(engine: WorkflowEngine) -> None:
    first = _create(engine)
    (first.path / "scratch.md").write_text("keep?", encoding="utf-8")

    with pytest.raises(CollectionExistsError):
        _create(engine)

    recreated = engine.create_collection(
        "job", {"company": "Acme Corp", "role": "Senior Engineer"}, force=True
    )
    assert recreated.path == first.path
    assert "scratch.md" not in recreated.artifacts


def test_create_collection_uses_explicit_variant(engine: WorkflowEngine) -> None:
    collection = engine.create_collection(
        "job", {"company": "Acme", "role": "Dev"}, template_variant="mobile"
    )

    assert (collection.path / "resume_jane_doe.md").read_text(encoding="utf-8") == "mobile Acme\n"
    # cover_letter has no mobile variant and falls back to default.md
    assert (collection.path / "cover_letter_jane_doe.md").read_text(encoding="utf-8").startswith("Dear Acme")


def test_create_collection_uses_configured_default_variant(
    tmp_path: Path, memory_env, clock, fake_runner
) -> None:
    config = ProjectConfig.model_validate(
        {
            "user": {"name": "Jane Doe", "preferred_name": "jane_doe"},
            "workflows": {"job": {"templates": {"resume": {"default_template": "mobile"}}}},
        }
    )
    memory_env.set_config(config)
    engine = WorkflowEngine(tmp_path, memory_env, clock=clock, command_runner=fake_runner)

    collection = engine.create_collection("job", {"company": "Acme", "role": "Dev"})

    assert (collection.path / "resume_jane_doe.md").read_text(encoding="utf-8") == "mobile Acme\n"


def test_collection_id_is_truncated_to_workflow_limit(engine: WorkflowEngine) -> None:
    collection = _create(engine, company="Extraordinarily Long Company Name Incorporated", role="Principal Engineer")

    assert len(collection.collection_id) <= 50
    assert not collection.collection_id.endswith(("_", "-"))


def test_unknown_workflow_lists_available(engine: WorkflowEngine) -> None:
    with pytest.raises(NotFoundError, match="Available: job"):
        engine.get_collections("blog")


def test_get_collection_returns_none_when_absent(engine: WorkflowEngine) -> None:
    assert engine.get_collection("job", "missing") is None
    assert engine.get_collection("job", "../escape") is None


def test_update_status_moves_directory_and_appends_history(
    engine: WorkflowEngine, clock, tmp_path: Path
) -> None:
    """Verify a declared transition renames the directory and records history.

    Args:
        engine: Engine over the in-memory job workflow.
        clock: Fixed clock driving timestamps.
        tmp_path: Temporary project root provided by pytest.
    """
    created = _create(engine)
    later = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)
    clock.set(later)

    moved = engine.update_status("job", COLLECTION_ID, "submitted")

    assert moved.path == _collections_dir(tmp_path) / "submitted" / COLLECTION_ID
    assert not created.path.exists()
    assert moved.collection_id == COLLECTION_ID
    assert moved.metadata.date_modified == later
    assert [entry.status for entry in moved.metadata.status_history] == ["active", "submitted"]

    reloaded = engine.get_collection("job", COLLECTION_ID)
    assert reloaded is not None
    assert reloaded.status == "submitted"
    assert reloaded.artifacts == created.artifacts


def test_update_status_rejects_undeclared_transition(engine: WorkflowEngine) -> None:
    created = _create(engine)
    before = (created.path / "collection.yml").read_bytes()

    with pytest.raises(InvalidTransitionError, match="submitted, rejected"):
        engine.update_status("job", COLLECTION_ID, "offered")

    assert created.path.is_dir()
    assert (created.path / "collection.yml").read_bytes() == before
    assert engine.get_collection("job", COLLECTION_ID).status == "active"


def test_update_status_rejects_unknown_stage(engine: WorkflowEngine) -> None:
    _create(engine)

    with pytest.raises(InvalidStatusError, match="Available stages"):
        engine.update_status("job", COLLECTION_ID, "hired")


def test_terminal_stage_allows_no_transition(engine: WorkflowEngine) -> None:
    _create(engine)
    engine.update_status("job", COLLECTION_ID, "rejected")

    with pytest.raises(InvalidTransitionError):
        engine.update_status("job", COLLECTION_ID, "active")


def test_stage_without_next_allows_no_transition(engine: WorkflowEngine) -> None:
    _create(engine)
    for stage in ("submitted", "interview", "offered"):
        engine.update_status("job", COLLECTION_ID, stage)

    with pytest.raises(InvalidTransitionError, match="none"):
        engine.update_status("job", COLLECTION_ID, "rejected")


def test_same_status_update_only_records_history(engine: WorkflowEngine) -> None:
    created = _create(engine)

    updated = engine.update_status("job", COLLECTION_ID, "active")

    assert updated.path == created.path
    assert [entry.status for entry in updated.metadata.status_history] == ["active", "active"]


def test_update_status_refuses_to_overwrite_destination(engine: WorkflowEngine, tmp_path: Path) -> None:
    created = _create(engine)
    blocker = _collections_dir(tmp_path) / "submitted" / COLLECTION_ID
    blocker.mkdir(parents=True)

    with pytest.raises(WorkflowError, match="already exists"):
        engine.update_status("job", COLLECTION_ID, "submitted")

    assert created.path.is_dir()


def test_failed_move_leaves_collection_untouched(
    engine: WorkflowEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    created = _create(engine)
    before = (created.path / "collection.yml").read_bytes()

    def refuse(self, target):
        raise OSError("device busy")

    monkeypatch.setattr(Path, "rename", refuse)

    with pytest.raises(WorkflowError, match="device busy"):
        engine.update_status("job", COLLECTION_ID, "submitted")

    assert created.path.is_dir()
    assert (created.path / "collection.yml").read_bytes() == before
    assert engine.get_collection("job", COLLECTION_ID).status == "active"


def test_update_status_for_missing_collection(engine: WorkflowEngine) -> None:
    with pytest.raises(NotFoundError):
        engine.update_status("job", "missing", "submitted")


def test_get_collections_orders_by_stage_and_filters(engine: WorkflowEngine) -> None:
    _create(engine)
    _create(engine, company="Globex", role="Analyst")
    engine.update_status("job", "globex_analyst_20250115", "submitted")

    ordered = [(item.status, item.collection_id) for item in engine.get_collections("job")]
    assert ordered == [("active", COLLECTION_ID), ("submitted", "globex_analyst_20250115")]

    submitted = engine.get_collections("job", status="submitted")
    assert [item.collection_id for item in submitted] == ["globex_analyst_20250115"]

    with pytest.raises(InvalidStatusError):
        engine.get_collections("job", status="hired")


def test_get_collections_skips_corrupt_metadata(
    engine: WorkflowEngine, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    _create(engine)
    broken = _collections_dir(tmp_path) / "active" / "broken"
    broken.mkdir()
    (broken / "collection.yml").write_text("collection_id: [unclosed", encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        collections = engine.get_collections("job")

    assert [item.collection_id for item in collections] == [COLLECTION_ID]
    assert "Skipping collection" in caplog.text
    with pytest.raises(MetadataError):
        engine.get_collection("job", "broken")


def test_repair_reconciles_status_with_directory(
    engine: WorkflowEngine, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    created = _create(engine)
    target = _collections_dir(tmp_path) / "submitted" / COLLECTION_ID
    target.parent.mkdir(parents=True)
    created.path.rename(target)

    with caplog.at_level(logging.WARNING):
        engine.get_collections("job")
    assert "run repair" in caplog.text

    repaired = engine.repair_collection("job", COLLECTION_ID)

    assert repaired.path == target
    assert repaired.status == "submitted"
    assert [entry.status for entry in repaired.metadata.status_history] == ["active", "submitted"]


def test_repair_rebuilds_missing_metadata(engine: WorkflowEngine, tmp_path: Path) -> None:
    orphan = _collections_dir(tmp_path) / "interview" / "orphan"
    orphan.mkdir(parents=True)
    (orphan / "notes.md").write_text("# notes\n", encoding="utf-8")

    repaired = engine.repair_collection("job", "orphan")

    assert repaired.status == "interview"
    assert repaired.artifacts == ["notes.md"]
    assert (orphan / "collection.yml").is_file()


def test_repair_rejects_undeclared_stage_directory(engine: WorkflowEngine, tmp_path: Path) -> None:
    stray = _collections_dir(tmp_path) / "limbo" / "stray"
    stray.mkdir(parents=True)

    with pytest.raises(InvalidStatusError, match="limbo"):
        engine.repair_collection("job", "stray")

    with pytest.raises(NotFoundError):
        engine.repair_collection("job", "nowhere")


def test_update_metadata_sets_and_clears_fields(engine: WorkflowEngine, clock) -> None:
    _create(engine)
    clock.set(datetime(2025, 3, 1, tzinfo=timezone.utc))

    updated = engine.update_metadata("job", COLLECTION_ID, {"url": "https://example.com/job"})
    assert updated.metadata.custom_fields()["url"] == "https://example.com/job"
    assert updated.metadata.date_modified == datetime(2025, 3, 1, tzinfo=timezone.utc)

    cleared = engine.update_metadata("job", COLLECTION_ID, {"url": None})
    assert "url" not in cleared.metadata.custom_fields()
    assert engine.get_collection("job", COLLECTION_ID).metadata.custom_fields().get("url") is None

    with pytest.raises(MetadataError):
        engine.update_metadata("job", COLLECTION_ID, {"collection_id": "other"})


def test_modified_date_never_moves_backwards(engine: WorkflowEngine, clock) -> None:
    created = _create(engine)
    clock.set(datetime(2024, 1, 1, tzinfo=timezone.utc))

    moved = engine.update_status("job", COLLECTION_ID, "submitted")

    assert moved.metadata.date_modified >= created.metadata.date_modified


def _intermediate(collection) -> Path:
    directory = collection.path / "formatted" / "intermediate"
    (directory / "mermaid").mkdir(parents=True)
    (directory / "mermaid" / "diagram.svg").write_text("<svg/>", encoding="utf-8")
    (directory / "mermaid-3f2a.md.bak").write_text("graph", encoding="utf-8")
    (directory / "resume_jane_doe.md").write_text("# Jane", encoding="utf-8")
    return directory


def test_clean_collection_dry_run_keeps_files(engine: WorkflowEngine) -> None:
    directory = _intermediate(_create(engine))

    planned = engine.clean_collection("job", COLLECTION_ID, dry_run=True)

    expected = ["mermaid", "mermaid-3f2a.md.bak", "resume_jane_doe.md"]
    assert [path.name for path in planned] == expected
    assert all(path.exists() for path in planned)
    assert sorted(entry.name for entry in directory.iterdir()) == [path.name for path in planned]


def test_clean_collection_removes_intermediate_files(engine: WorkflowEngine) -> None:
    created = _create(engine)
    directory = _intermediate(created)

    by_processor = engine.clean_collection("job", COLLECTION_ID, processors=["mermaid"])

    assert [path.name for path in by_processor] == ["mermaid", "mermaid-3f2a.md.bak"]
    assert [entry.name for entry in directory.iterdir()] == ["resume_jane_doe.md"]

    engine.clean_collection("job", COLLECTION_ID)

    assert list(directory.iterdir()) == []
    assert (created.path / "resume_jane_doe.md").is_file()


def test_clean_collection_without_intermediate_dir(
    engine: WorkflowEngine, caplog: pytest.LogCaptureFixture
) -> None:
    _create(engine)

    with caplog.at_level(logging.INFO, logger="mdworkflow.engine.lifecycle"):
        assert engine.clean_collection("job", COLLECTION_ID) == []

    assert "No intermediate directory found" in caplog.text
    with pytest.raises(NotFoundError):
        engine.clean_collection("job", "missing")
