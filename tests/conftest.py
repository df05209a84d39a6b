"""Shared fixtures for mdworkflow tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import pytest

from mdworkflow.clock import FixedClock
from mdworkflow.config.models import ProjectConfig, UserConfig
from mdworkflow.conversion import CommandResult
from mdworkflow.engine import WorkflowEngine
from mdworkflow.environment import InMemoryEnvironment
from mdworkflow.schemas import parse_converter, parse_processor, parse_workflow

JOB_WORKFLOW_YAML = """\
workflow:
  name: job
  description: Job applications
  stages:
    - {name: active, color: blue, next: [submitted, rejected]}
    - {name: submitted, color: yellow, next: [interview, rejected]}
    - {name: interview, next: [offered, rejected]}
    - {name: offered}
    - {name: rejected, terminal: true}
  templates:
    - name: resume
      file: templates/resume/default.md
      output: "resume_{{ user.preferred_name }}.md"
    - name: cover_letter
      file: templates/cover_letter/default.md
      output: "cover_letter_{{ user.preferred_name }}.md"
    - name: notes
      file: templates/notes/default.md
      output: "{% if prefix %}{{ prefix }}_{% endif %}notes.md"
  statics:
    - name: resume_reference
      file: templates/static/resume_reference.docx
  actions:
    - name: create
      templates: [resume, cover_letter]
      parameters:
        - {name: company, required: true}
        - {name: role, required: true}
        - {name: url}
    - name: format
      converter: pandoc
      formats: [docx, html]
      processors:
        - {name: upper}
        - {name: disabled_tool, enabled: false}
    - name: add
      parameters:
        - {name: template, required: true}
        - {name: prefix}
    - name: scrape
  metadata:
    required_fields: [company, role, date_created, status]
    auto_generated: [collection_id, date_created, date_modified, status_history]
  collection_id:
    pattern: "{{ company }}_{{ role }}_{{ date | format('YYYYMMDD') }}"
    max_length: 50
"""

PANDOC = {
    "converter": {
        "name": "pandoc",
        "detection": {"command": "pandoc --version"},
        "execution": {
            "command_template": "pandoc {input_file} -o {output_file}",
            "reference_doc_flag": "--reference-doc={reference_doc}",
        },
        "supported_formats": ["docx", "html", "pdf"],
    }
}

UPPER = {
    "processor": {
        "name": "upper",
        "detection": {"command": "upper --version"},
        "execution": {"command_template": "upper {input_file}", "mode": "in-place"},
    }
}

NOW = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


class FakeRunner:
    """Stand-in for external tools.

    ``--version`` checks succeed; ``upper`` uppercases its file in place;
    any command with ``-o`` writes the named output file. Commands containing
    ``fail_when`` fail.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.fail_when: str | None = None

    def __call__(
        self, args: Sequence[str], *, timeout: float, cwd: Path | None = None
    ) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        if args[-1] == "--version":
            return CommandResult(returncode=0, stdout=f"{args[0]} 1.0")
        if self.fail_when and any(self.fail_when in arg for arg in args):
            return CommandResult(returncode=1, stderr="simulated failure")
        if args[0] == "upper":
            target = Path(args[1])
            target.write_text(target.read_text(encoding="utf-8").upper(), encoding="utf-8")
        elif "-o" in args:
            Path(args[args.index("-o") + 1]).write_text(f"converted {args[1]}", encoding="utf-8")
        return CommandResult(returncode=0)

    def conversions(self) -> list[list[str]]:
        return [call for call in self.calls if "-o" in call]


@pytest.fixture
def job_workflow():
    return parse_workflow(JOB_WORKFLOW_YAML)


@pytest.fixture
def memory_env(job_workflow) -> InMemoryEnvironment:
    env = InMemoryEnvironment()
    env.set_config(ProjectConfig(user=UserConfig(name="Jane Doe", preferred_name="jane_doe")))
    env.set_workflow(job_workflow)
    env.set_converter(parse_converter(PANDOC))
    env.set_processor(parse_processor(UPPER))
    env.set_template("job", "resume", "# {{ user.name }}\n{{ role }} at {{ company }}\n")
    env.set_template("job", "resume", "mobile {{ company }}\n", variant="mobile")
    env.set_template("job", "cover_letter", "Dear {{ company }},\n{{ date }}\n")
    env.set_template("job", "notes", "# {{ prefix }} notes for {{ company }}\n")
    env.set_static("job", "resume_reference.docx", b"reference")
    return env


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def engine(tmp_path: Path, memory_env, clock, fake_runner) -> WorkflowEngine:
    return WorkflowEngine(tmp_path, memory_env, clock=clock, command_runner=fake_runner)


@pytest.fixture
def job_workflow_yaml() -> str:
    return JOB_WORKFLOW_YAML


@pytest.fixture
def pandoc_definition() -> dict:
    return PANDOC
