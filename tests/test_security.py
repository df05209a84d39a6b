"""Security validator tests."""

from __future__ import annotations

import pytest

from mdworkflow.environment import FileInfo, SecuritySettings, SecurityValidator, sanitize_filename
from mdworkflow.errors import SecurityError, ValidationError

KB = 1024


def _rule(callable_, *args) -> str:
    with pytest.raises(SecurityError) as excinfo:
        callable_(*args)
    return excinfo.value.rule


@pytest.mark.parametrize(
    ("filename", "rule"),
    [
        ("", "empty_filename"),
        ("   ", "empty_filename"),
        ("../secret.md", "path_traversal"),
        ("bad|name.md", "forbidden_characters"),
        ("tab\tname.md", "forbidden_characters"),
        ("x" * 256 + ".md", "filename_too_long"),
    ],
)
def test_validate_filename_rules(filename: str, rule: str) -> None:
    assert _rule(SecurityValidator().validate_filename, filename) == rule


@pytest.mark.parametrize(
    ("path", "rule"),
    [
        ("workflows/../config.yml", "path_traversal"),
        ("workflows/./job/workflow.yml", "path_traversal"),
        ("/etc/passwd.yml", "absolute_path"),
        ("C:\\templates\\x.md", "absolute_path"),
        ("a/b/c/d/e/f.md", "path_too_deep"),
    ],
)
def test_validate_path_rules(path: str, rule: str) -> None:
    assert _rule(SecurityValidator().validate_path, path) == rule


def test_validate_path_allows_workflow_template_depth() -> None:
    SecurityValidator().validate_path("workflows/job/templates/resume/default.md")


def test_validate_file_checks_extension_and_size() -> None:
    validator = SecurityValidator()

    assert _rule(validator.validate_file, FileInfo("tools/run.exe", 10)) == "extension_not_allowed"
    assert _rule(validator.validate_file, FileInfo("notes.md", 101 * KB)) == "file_too_large"
    validator.validate_file(FileInfo("workflows/job/templates/static/ref.docx", 900 * KB))


def test_validate_files_checks_batch_ceilings_first() -> None:
    validator = SecurityValidator(SecuritySettings(max_file_count=2))
    batch = [FileInfo(f"f{index}.exe", 1) for index in range(3)]

    assert _rule(validator.validate_files, batch) == "too_many_files"

    small = SecurityValidator(SecuritySettings(max_total_size=10))
    assert _rule(small.validate_files, [FileInfo("a.md", 6), FileInfo("b.md", 6)]) == "total_size_exceeded"


def test_settings_overrides_merge_size_limits() -> None:
    settings = SecuritySettings().with_overrides(file_size_limits={".md": 1}, max_depth=1)

    assert settings.file_size_limits[".md"] == 1
    assert settings.file_size_limits[".yml"] == 100 * KB
    assert settings.max_depth == 1
    assert _rule(SecurityValidator(settings).validate_file_size, ".md", 2) == "file_too_large"


def test_validate_content_parses_recognised_files() -> None:
    validator = SecurityValidator()

    assert validator.validate_content("data.json", b'{"a": 1}') == {"a": 1}
    assert validator.validate_content("notes.yml", "a: 1\n") == {"a": 1}
    assert validator.validate_content("template.md", "# hi") is None
    assert validator.validate_content("image.png", b"\x89PNG") is None


@pytest.mark.parametrize(
    ("path", "content"),
    [
        ("data.json", "{broken"),
        ("notes.yml", "a: [unclosed"),
        ("template.md", ""),
        ("template.md", b"\xff\xfe"),
        ("config.yml", "system:\n  nonsense: 1\n"),
        ("workflows/job/workflow.yml", "workflow:\n  name: job\n"),
        ("converters/pandoc.yml", "converter:\n  name: pandoc\n"),
    ],
)
def test_validate_content_rejects_invalid_documents(path: str, content) -> None:
    with pytest.raises(ValidationError):
        SecurityValidator().validate_content(path, content)


def test_content_validation_can_be_disabled() -> None:
    validator = SecurityValidator(SecuritySettings(enable_content_validation=False))

    assert validator.validate_content("data.json", "{broken") is None


def test_sanitize_filename() -> None:
    assert sanitize_filename('report: "final"?.md') == "report_ _final__.md"
