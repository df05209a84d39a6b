"""Tests for the format and add actions."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from mdworkflow.engine import ActionError, ActionKind, WorkflowEngine, parse_parameters, resolve_action_kind
from mdworkflow.engine.actions import FormatParameters

COLLECTION_ID = "acme_corp_senior_engineer_20250115"


@pytest.fixture
def collection(engine: WorkflowEngine):
    return engine.create_collection("job", {"company": "Acme Corp", "role": "Senior Engineer"})


def test_resolve_action_kind() -> None:
    assert resolve_action_kind("format") is ActionKind.FORMAT
    assert resolve_action_kind("add") is ActionKind.ADD
    with pytest.raises(ActionError, match="not implemented"):
        resolve_action_kind("scrape")


def test_format_parameters_split_comma_separated_artifacts() -> None:
    parameters = parse_parameters(ActionKind.FORMAT, {"artifacts": "resume, cover_letter", "format": None})

    assert isinstance(parameters, FormatParameters)
    assert parameters.format == "docx"
    assert parameters.artifacts == ["resume", "cover_letter"]


def test_add_requires_template_parameter() -> None:
    with pytest.raises(ActionError, match="template parameter is required"):
        parse_parameters(ActionKind.ADD, {"prefix": "x"})


def test_add_with_prefix_writes_prefixed_file(engine: WorkflowEngine, collection) -> None:
    written = engine.execute_action("job", COLLECTION_ID, "add", {"template": "notes", "prefix": "recruiter"})

    assert written == [collection.path / "recruiter_notes.md"]
    assert written[0].read_text(encoding="utf-8") == "# Recruiter notes for Acme Corp\n"
    assert "recruiter_notes.md" in engine.get_collection("job", COLLECTION_ID).artifacts


def test_add_without_prefix_uses_output_pattern(engine: WorkflowEngine, collection) -> None:
    written = engine.execute_action("job", COLLECTION_ID, "add", {"template": "notes"})

    assert written == [collection.path / "notes.md"]


def test_add_sanitizes_prefix(engine: WorkflowEngine, collection) -> None:
    written = engine.execute_action("job", COLLECTION_ID, "add", {"template": "notes", "prefix": "Phone Screen #1"})

    assert written[0].name == "phone_screen_1_notes.md"


def test_add_refuses_to_overwrite(engine: WorkflowEngine, collection) -> None:
    engine.execute_action("job", COLLECTION_ID, "add", {"template": "notes", "prefix": "recruiter"})

    with pytest.raises(ActionError, match="File already exists: recruiter_notes.md"):
        engine.execute_action("job", COLLECTION_ID, "add", {"template": "notes", "prefix": "recruiter"})


def test_add_unknown_template_lists_available(engine: WorkflowEngine, collection) -> None:
    with pytest.raises(ActionError, match="Available templates: resume, cover_letter, notes"):
        engine.execute_action("job", COLLECTION_ID, "add", {"template": "thank_you"})


def test_unknown_and_unimplemented_actions(engine: WorkflowEngine, collection) -> None:
    with pytest.raises(ActionError, match="Action not found: publish"):
        engine.execute_action("job", COLLECTION_ID, "publish")
    with pytest.raises(ActionError, match="not implemented"):
        engine.execute_action("job", COLLECTION_ID, "scrape")


def test_unhandled_parameter_model_is_not_dispatched(
    engine: WorkflowEngine, collection, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        "mdworkflow.engine.lifecycle.parse_parameters", lambda kind, parameters: object()
    )

    with pytest.raises(ActionError, match="Action not implemented: format"):
        engine.execute_action("job", COLLECTION_ID, "format")


def test_format_converts_processed_markdown(engine: WorkflowEngine, collection, fake_runner) -> None:
    """Ensure format preprocesses each file and writes one output per file.

    Args:
        engine: Engine over the in-memory job workflow.
        collection: Freshly created collection.
        fake_runner: Recording stand-in for external tools.
    """
    outputs = engine.execute_action("job", COLLECTION_ID, "format", {"format": "docx"})

    formatted = collection.path / "formatted"
    assert outputs == [formatted / "cover_letter_jane_doe.docx", formatted / "resume_jane_doe.docx"]
    assert all(path.is_file() for path in outputs)

    intermediate = formatted / "intermediate" / "resume_jane_doe.md"
    original = (collection.path / "resume_jane_doe.md").read_text(encoding="utf-8")
    assert intermediate.read_text(encoding="utf-8") == original.upper()

    conversions = fake_runner.conversions()
    assert [Path(call[1]).parent for call in conversions] == [formatted / "intermediate"] * 2
    resume_call = next(call for call in conversions if "resume_jane_doe.md" in call[1])
    letter_call = next(call for call in conversions if "cover_letter_jane_doe.md" in call[1])
    assert any(arg.startswith("--reference-doc=") and arg.endswith("resume_reference.docx") for arg in resume_call)
    assert not any(arg.startswith("--reference-doc=") for arg in letter_call)


def test_format_reference_doc_only_for_matching_extension(engine: WorkflowEngine, collection, fake_runner) -> None:
    engine.execute_action("job", COLLECTION_ID, "format", {"format": "html"})

    assert not any(arg.startswith("--reference-doc=") for call in fake_runner.conversions() for arg in call)


def test_format_all_uses_declared_formats(engine: WorkflowEngine, collection) -> None:
    outputs = engine.execute_action("job", COLLECTION_ID, "format", {"format": "all"})

    assert sorted(path.name for path in outputs) == [
        "cover_letter_jane_doe.docx",
        "cover_letter_jane_doe.html",
        "resume_jane_doe.docx",
        "resume_jane_doe.html",
    ]


def test_format_rejects_undeclared_format(engine: WorkflowEngine, collection) -> None:
    with pytest.raises(ActionError, match="Available formats: docx, html"):
        engine.execute_action("job", COLLECTION_ID, "format", {"format": "pdf"})


def test_format_filters_by_artifact(engine: WorkflowEngine, collection) -> None:
    outputs = engine.execute_action("job", COLLECTION_ID, "format", {"artifacts": ["resume"]})

    assert [path.name for path in outputs] == ["resume_jane_doe.docx"]


def test_format_unknown_artifacts_fail(
    engine: WorkflowEngine, collection, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        with pytest.raises(ActionError, match="No files found for requested artifacts: bogus"):
            engine.execute_action("job", COLLECTION_ID, "format", {"artifacts": ["bogus"]})

    assert "Unknown artifact 'bogus'" in caplog.text


def test_format_reports_conversion_failure(engine: WorkflowEngine, collection, fake_runner) -> None:
    fake_runner.fail_when = "pandoc"

    with pytest.raises(ActionError, match="Document conversion failed for cover_letter_jane_doe.md"):
        engine.execute_action("job", COLLECTION_ID, "format")


def test_format_continues_when_processor_fails(
    engine: WorkflowEngine, collection, fake_runner, caplog: pytest.LogCaptureFixture
) -> None:
    fake_runner.fail_when = "upper"

    with caplog.at_level(logging.WARNING):
        outputs = engine.execute_action("job", COLLECTION_ID, "format", {"artifacts": "resume"})

    intermediate = collection.path / "formatted" / "intermediate" / "resume_jane_doe.md"
    original = (collection.path / "resume_jane_doe.md").read_text(encoding="utf-8")
    assert intermediate.read_text(encoding="utf-8") == original
    assert [path.name for path in outputs] == ["resume_jane_doe.docx"]
    assert "Processor upper failed" in caplog.text


def test_format_requires_known_converter(engine: WorkflowEngine, memory_env, collection) -> None:
    memory_env.remove_converter("pandoc")
    engine.reload()

    with pytest.raises(ActionError, match="Converter not found: pandoc"):
        engine.execute_action("job", COLLECTION_ID, "format")


def test_format_collections_records_failures(engine: WorkflowEngine, collection, fake_runner) -> None:
    engine.create_collection("job", {"company": "Globex", "role": "Analyst"})
    fake_runner.fail_when = "globex"

    result = engine.format_collections("job", {"format": "docx"})

    assert result.succeeded == [COLLECTION_ID]
    assert list(result.failed) == ["globex_analyst_20250115"]
    assert not result.ok
