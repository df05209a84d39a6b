"""Configuration, project discovery and clock tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from mdworkflow.clock import FixedClock, SystemClock, clock_from_config, format_date
from mdworkflow.config import (
    PROJECT_MARKER,
    SYSTEM_ROOT_ENV,
    ConfigError,
    ProjectConfig,
    deep_merge,
    find_project_root,
    initialize_project,
    merge_project_configs,
    parse_project_config,
    require_project_root,
    system_root,
)
from mdworkflow.errors import ValidationError


def test_deep_merge_nested_mappings_and_replaces_lists() -> None:
    base = {"system": {"output_formats": ["docx", "html"], "git": {"auto_commit": False}}}
    overrides = {"system": {"output_formats": ["pdf"], "git": {"commit_message_template": "x"}}}

    merged = deep_merge(base, overrides)

    assert merged == {
        "system": {
            "output_formats": ["pdf"],
            "git": {"auto_commit": False, "commit_message_template": "x"},
        }
    }
    assert base["system"]["output_formats"] == ["docx", "html"]


def test_merge_project_configs_local_wins_only_where_set() -> None:
    global_ = parse_project_config(
        "system:\n  output_formats: [docx, html, pdf]\n  collection_id:\n    date_format: YYYY-MM-DD\n"
    )
    local = parse_project_config(
        "user:\n  name: Jane Doe\nsystem:\n  collection_id:\n    max_length: 30\n"
    )

    merged = merge_project_configs(local, global_)

    assert merged.user is not None and merged.user.name == "Jane Doe"
    assert merged.system.output_formats == ["docx", "html", "pdf"]
    assert merged.system.collection_id.date_format == "YYYY-MM-DD"
    assert merged.system.collection_id.max_length == 30


def test_parse_project_config_rejects_unknown_keys() -> None:
    with pytest.raises(ValidationError):
        parse_project_config("system:\n  unknown_setting: true\n")


def test_parse_project_config_rejects_non_mapping() -> None:
    with pytest.raises(ValidationError, match="mapping"):
        parse_project_config("- a\n- b\n")


def test_effective_user_and_default_variant() -> None:
    config = ProjectConfig.model_validate(
        {"workflows": {"job": {"templates": {"resume": {"default_template": "frontend"}}}}}
    )

    assert config.effective_user().preferred_name == "john_doe"
    assert config.default_variant("job", "resume") == "frontend"
    assert config.default_variant("job", "notes") is None
    assert config.default_variant("blog", "post") is None


def test_initialize_project_creates_layout(tmp_path: Path) -> None:
    """Ensure init creates the marker, config and collections directories.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    paths = initialize_project(tmp_path)

    assert paths.marker_dir == tmp_path.resolve() / PROJECT_MARKER
    assert paths.collections_dir.is_dir()
    config = yaml.safe_load(paths.config_file.read_text(encoding="utf-8"))
    assert config["user"]["preferred_name"] == "john_doe"
    parse_project_config(paths.config_file.read_text(encoding="utf-8"))

    with pytest.raises(ConfigError, match="already initialized"):
        initialize_project(tmp_path)
    initialize_project(tmp_path, force=True)


def test_find_project_root_walks_upwards(tmp_path: Path) -> None:
    initialize_project(tmp_path)
    nested = tmp_path / "collections" / "job" / "active"
    nested.mkdir(parents=True)

    assert find_project_root(nested) == tmp_path.resolve()


def test_require_project_root_without_marker(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="wf init"):
        require_project_root(tmp_path)


def test_system_root_honours_environment(tmp_path: Path) -> None:
    assert system_root({}).name == "resources"
    assert system_root({SYSTEM_ROOT_ENV: str(tmp_path)}) == tmp_path.resolve()
    with pytest.raises(ConfigError):
        system_root({SYSTEM_ROOT_ENV: str(tmp_path / "missing")})


def test_clock_from_config_uses_testing_override() -> None:
    config = ProjectConfig.model_validate(
        {"system": {"testing": {"override_current_date": "2025-01-15T09:30:00Z"}}}
    )

    clock = clock_from_config(config)

    assert isinstance(clock, FixedClock)
    assert clock.now() == datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)
    assert isinstance(clock_from_config(ProjectConfig()), SystemClock)
    assert isinstance(clock_from_config(None), SystemClock)


def test_format_date_tokens() -> None:
    instant = datetime(2025, 3, 7, 14, 5, 9, tzinfo=timezone.utc)

    assert format_date(instant, "YYYYMMDD") == "20250307"
    assert format_date(instant, "YYYY-MM-DD HH:mm:ss") == "2025-03-07 14:05:09"
    assert format_date(instant, "DD/MM/YY") == "07/03/25"


@pytest.mark.parametrize(
    "testing",
    [
        {"override_current_date": "yesterday"},
        {"override_timezone": "Mars/Olympus_Mons"},
        {"deterministic_ids": True},
    ],
)
def test_parse_project_config_rejects_bad_testing_overrides(testing: dict) -> None:
    with pytest.raises(ValidationError):
        parse_project_config({"system": {"testing": testing}})


def test_clock_from_config_applies_override_timezone() -> None:
    config = parse_project_config(
        "system:\n  testing:\n    override_current_date: '2025-01-15T23:30:00'\n"
        "    override_timezone: Asia/Tokyo\n"
    )

    now = clock_from_config(config).now()

    assert now == datetime(2025, 1, 15, 23, 30, tzinfo=timezone.utc)
    assert format_date(now, "YYYYMMDD") == "20250116"
