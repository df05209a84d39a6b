"""Tests for template rendering, identifiers and artifact patterns."""

from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from mdworkflow.config.models import CollectionIdSettings
from mdworkflow.engine import DateValue, TemplateRenderError, generate_collection_id, render_string
from mdworkflow.engine.rendering import sanitize_for_filename, sanitize_identifier
from mdworkflow.patterns import compile_output_pattern, match_template, normalize_name, output_base_name

NOW = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


def test_date_value_renders_default_and_custom_formats() -> None:
    variables = {"date": DateValue(NOW, "YYYY-MM-DD")}

    assert render_string("{{ date }}", variables) == "2025-01-15"
    assert render_string("{{ date | format('YYYYMMDD') }}", variables) == "20250115"


def test_format_filter_keeps_printf_behaviour() -> None:
    assert render_string("{{ '%s-%s' | format('a', 'b') }}", {}) == "a-b"


def test_render_string_treats_undefined_as_empty() -> None:
    assert render_string("Hello {{ missing }}!", {}) == "Hello !"


def test_render_string_wraps_syntax_errors() -> None:
    with pytest.raises(TemplateRenderError):
        render_string("{% if %}", {})


def test_sanitizers() -> None:
    assert sanitize_for_filename("  Phone Screen: Round #2 ") == "phone_screen_round_2"
    assert sanitize_identifier("Acme Corp/Dev Ops!", "-") == "acme-corpdev-ops"
    assert sanitize_identifier("__Acme   Corp__") == "acme_corp"


def test_generate_collection_id_uses_pattern_and_settings() -> None:
    settings = CollectionIdSettings(date_format="YYYYMMDD")

    identifier = generate_collection_id(
        "{{ company }}_{{ role }}_{{ date }}", {"company": "Acme Corp", "role": "Dev"}, NOW, settings
    )

    assert identifier == "acme_corp_dev_20250115"


def test_generate_collection_id_applies_stricter_limit() -> None:
    settings = CollectionIdSettings(max_length=12)

    identifier = generate_collection_id("{{ title }}", {"title": "A Very Long Title"}, NOW, settings, 40)

    assert identifier == "a_very_long"


def test_output_base_name_and_normalize() -> None:
    assert output_base_name("resume_{{ user.preferred_name }}.md") == "resume"
    assert output_base_name("{% if prefix %}{{ prefix }}_{% endif %}notes.md") == "notes"
    assert normalize_name("  cover   letter ") == "cover_letter"


def test_compile_output_pattern_matches_rendered_names() -> None:
    resume = compile_output_pattern("resume_{{ user.preferred_name }}.md")
    notes = compile_output_pattern("{% if prefix %}{{ prefix }}_{% endif %}notes.md")

    assert resume.match("resume_jane_doe.md")
    assert resume.match("tailored_resume.md")
    assert not resume.match("resume.txt")
    assert notes.match("notes.md")
    assert notes.match("recruiter_notes.md")
    assert not notes.match("notes.md.bak")


def test_compile_output_pattern_rejects_unbalanced_blocks() -> None:
    with pytest.raises(re.error):
        compile_output_pattern("{% if prefix %}notes.md")


def test_match_template_prefers_longest_literal_prefix() -> None:
    patterns = {
        "notes": compile_output_pattern("{% if prefix %}{{ prefix }}_{% endif %}notes.md"),
        "meeting_notes": compile_output_pattern("meeting_notes.md"),
    }

    assert match_template("meeting_notes.md", patterns) == "meeting_notes"
    assert match_template("recruiter_notes.md", patterns) == "notes"
    assert match_template("resume.md", patterns) is None
